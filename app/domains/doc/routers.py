# app/domains/doc/routers.py

"""
'doc' 도메인 (참고 문서) 관련 API 엔드포인트를 정의하는 모듈입니다.

문서 파일 업로드/다운로드와 함께, 문서를 미생물, 항균제, 판정 기준, 전문가 규칙에
연결하는 기능을 제공합니다.
"""

from typing import List, Optional
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse

from app.core import dependencies as deps
from app.domains.usr import models as usr_models

from . import crud as doc_crud
from . import schemas as doc_schemas
from . import services as doc_services
from .models import DocumentCategory, EntityType

router = APIRouter(
    tags=["Documents (참고 문서 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 문서 (Document) 라우터
# =============================================================================
@router.post("/documents", response_model=doc_schemas.DocumentResponse, status_code=status.HTTP_201_CREATED, summary="참고 문서 업로드")
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(...),
    category: DocumentCategory = Form(...),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="쉼표로 구분된 태그"),
    version: Optional[str] = Form(None),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    return await doc_services.upload_document(
        db=db,
        upload_file=file,
        uploader_id=current_user.id,
        title=title,
        category=category,
        description=description,
        tags=doc_services.parse_tags(tags),
        version=version,
    )


@router.get("/documents", response_model=List[doc_schemas.DocumentResponse], summary="참고 문서 목록/검색")
async def read_documents(
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
    category: Optional[DocumentCategory] = None,
    tag: Optional[str] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """제목/설명 부분 일치(`search`), 분류, 태그로 검색합니다."""
    return await doc_crud.document.search(db, keyword=search, category=category, tag=tag, skip=skip, limit=limit)


@router.get("/documents/statistics", response_model=doc_schemas.DocumentStatistics, summary="참고 문서 통계")
async def read_document_statistics(
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await doc_crud.document.get_statistics(db)


@router.get("/documents/entity/{entity_type}/{entity_id}", response_model=List[doc_schemas.DocumentResponse], summary="엔티티에 연결된 문서 조회")
async def read_documents_for_entity(
    entity_type: EntityType,
    entity_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await doc_crud.document.get_by_entity(db, entity_type=entity_type, entity_id=entity_id)


@router.delete("/documents/associations/{association_id}", status_code=status.HTTP_204_NO_CONTENT, summary="문서 연결 삭제")
async def delete_document_association(
    association_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_reviewer_user),
):
    """연결 정보만 삭제하며, 문서 자체는 삭제되지 않습니다."""
    db_obj = await doc_crud.document_association.get(db, id=association_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document association not found")
    await doc_crud.document_association.delete(db, id=association_id)
    return


@router.get("/documents/{document_id}", response_model=doc_schemas.DocumentResponse, summary="특정 문서 정보 조회")
async def read_document(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await doc_crud.document.get(db, id=document_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return db_obj


@router.get("/documents/{document_id}/download", summary="문서 파일 다운로드")
async def download_document(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    full_path, db_document = await doc_services.prepare_document_for_download(db, document_id=document_id)
    return FileResponse(path=full_path, filename=db_document.file_name, media_type=db_document.content_type)


@router.put("/documents/{document_id}", response_model=doc_schemas.DocumentResponse, summary="문서 정보 업데이트")
async def update_document(
    document_id: int,
    document_in: doc_schemas.DocumentUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """업로더 본인 또는 관리자만 수정할 수 있습니다."""
    db_document = await doc_services.check_document_modification_permission(db, document_id=document_id, user=current_user)
    return await doc_crud.document.update(db=db, db_obj=db_document, obj_in=document_in)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT, summary="문서 삭제")
async def delete_document(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """파일과 문서 정보, 연결 정보를 함께 삭제합니다. 업로더 본인 또는 관리자만 가능합니다."""
    db_document = await doc_services.check_document_modification_permission(db, document_id=document_id, user=current_user)
    await doc_services.delete_document(db, db_document=db_document)
    return


# =============================================================================
# 2. 문서 연결 (DocumentAssociation) 라우터
# =============================================================================
@router.post("/documents/{document_id}/associations", response_model=doc_schemas.DocumentAssociationResponse, status_code=status.HTTP_201_CREATED, summary="문서를 엔티티에 연결")
async def create_document_association(
    document_id: int,
    association_in: doc_schemas.DocumentAssociationCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_reviewer_user),
):
    return await doc_crud.document_association.create_for_document(db, document_id=document_id, obj_in=association_in)


@router.get("/documents/{document_id}/associations", response_model=List[doc_schemas.DocumentAssociationResponse], summary="문서의 연결 목록")
async def read_document_associations(
    document_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    if not await doc_crud.document.get(db, id=document_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return await doc_crud.document_association.get_by_document(db, document_id=document_id)
