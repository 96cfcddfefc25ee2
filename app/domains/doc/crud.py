# app/domains/doc/crud.py

"""
'doc' 도메인 (참고 문서)과 관련된 CRUD 로직을 담당하는 모듈입니다.

파일 저장/삭제는 services.py에서 처리하며, 여기서는 데이터베이스 레코드만 다룹니다.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import HTTPException, status

from app.core.config import settings
from app.core.crud_base import CRUDBase
from app.domains.ref import crud as ref_crud
from app.domains.std import crud as std_crud
from app.domains.usr import crud as usr_crud

from . import models as doc_models
from . import schemas as doc_schemas

# 연결 대상 엔티티의 존재 여부를 확인할 CRUD 객체
ENTITY_READERS = {
    doc_models.EntityType.MICROORGANISM: ref_crud.microorganism,
    doc_models.EntityType.DRUG: ref_crud.drug,
    doc_models.EntityType.BREAKPOINT_STANDARD: std_crud.breakpoint_standard,
    doc_models.EntityType.EXPERT_RULE: std_crud.expert_rule,
}


# =============================================================================
# 1. 문서 (Document) CRUD
# =============================================================================
class CRUDDocument(CRUDBase[doc_models.Document, doc_schemas.DocumentCreate, doc_schemas.DocumentUpdate]):
    def __init__(self):
        super().__init__(model=doc_models.Document)

    async def create(self, db: AsyncSession, *, obj_in: doc_schemas.DocumentCreate) -> doc_models.Document:
        """업로더 유효성을 확인하고 생성합니다."""
        if obj_in.uploader_id and not await usr_crud.user.get(db, id=obj_in.uploader_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Uploader not found.")

        db_obj = doc_models.Document(**obj_in.model_dump(exclude={"category"}), category=obj_in.category.value)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self, db: AsyncSession, *, db_obj: doc_models.Document, obj_in: doc_schemas.DocumentUpdate
    ) -> doc_models.Document:
        update_data = obj_in.model_dump(exclude_unset=True)
        for key in ("title", "category", "tags", "version"):
            if key in update_data and update_data[key] is None:
                del update_data[key]
        for key, value in update_data.items():
            setattr(db_obj, key, getattr(value, "value", value))
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def search(
        self,
        db: AsyncSession,
        *,
        keyword: Optional[str] = None,
        category: Optional[doc_models.DocumentCategory] = None,
        tag: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[doc_models.Document]:
        """제목/설명 부분 일치, 분류, 태그로 문서를 검색합니다 (최신 등록순)."""
        statement = select(self.model)
        if keyword:
            pattern = f"%{keyword}%"
            statement = statement.where(or_(self.model.title.ilike(pattern), self.model.description.ilike(pattern)))
        if category:
            statement = statement.where(self.model.category == doc_models.DocumentCategory(category).value)
        if tag:
            statement = statement.where(self.model.tags.contains([tag]))
        statement = statement.order_by(self.model.created_at.desc(), self.model.id.desc()).offset(skip).limit(limit)
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_by_entity(
        self, db: AsyncSession, *, entity_type: doc_models.EntityType, entity_id: int
    ) -> List[doc_models.Document]:
        """특정 엔티티에 연결된 문서 목록"""
        statement = (
            select(self.model)
            .join(doc_models.DocumentAssociation, doc_models.DocumentAssociation.document_id == self.model.id)
            .where(
                doc_models.DocumentAssociation.entity_type == doc_models.EntityType(entity_type).value,
                doc_models.DocumentAssociation.entity_id == entity_id,
            )
            .order_by(self.model.id)
        )
        result = await db.execute(statement)
        return result.scalars().unique().all()

    async def get_statistics(self, db: AsyncSession) -> Dict[str, Any]:
        total = await self.count(db)
        size_result = await db.execute(select(func.coalesce(func.sum(self.model.size_kb), 0)))
        by_category = await db.execute(
            select(self.model.category, func.count()).group_by(self.model.category)
        )
        return {
            "total": total,
            "total_size_kb": int(size_result.scalar_one()),
            "by_category": {str(category): count for category, count in by_category.all()},
        }

    def get_full_file_path(self, db_document: doc_models.Document) -> Path:
        """DB에 저장된 상대 경로로 전체 파일 시스템 경로를 반환합니다."""
        return Path(settings.UPLOAD_DIR) / db_document.file_path


document = CRUDDocument()


# =============================================================================
# 2. 문서 연결 (DocumentAssociation) CRUD
# =============================================================================
class CRUDDocumentAssociation(
    CRUDBase[doc_models.DocumentAssociation, doc_schemas.DocumentAssociationCreate, doc_schemas.DocumentAssociationCreate]
):
    def __init__(self):
        super().__init__(model=doc_models.DocumentAssociation)

    async def get_by_document(self, db: AsyncSession, *, document_id: int) -> List[doc_models.DocumentAssociation]:
        statement = select(self.model).where(self.model.document_id == document_id).order_by(self.model.id)
        result = await db.execute(statement)
        return result.scalars().all()

    async def create_for_document(
        self, db: AsyncSession, *, document_id: int, obj_in: doc_schemas.DocumentAssociationCreate
    ) -> doc_models.DocumentAssociation:
        """
        문서와 엔티티를 연결합니다. 같은 문서-엔티티 연결은 하나만 허용합니다.
        """
        if not await document.get(db, id=document_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
        if not await ENTITY_READERS[obj_in.entity_type].get(db, id=obj_in.entity_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{obj_in.entity_type.value} with id {obj_in.entity_id} not found",
            )
        existing = await self.get_one_filtered(
            db,
            filters={
                "document_id": document_id,
                "entity_type": obj_in.entity_type.value,
                "entity_id": obj_in.entity_id,
            },
        )
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Document is already associated with this entity")

        db_obj = doc_models.DocumentAssociation(
            document_id=document_id,
            entity_type=obj_in.entity_type.value,
            entity_id=obj_in.entity_id,
            association_type=obj_in.association_type.value,
        )
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj


document_association = CRUDDocumentAssociation()
