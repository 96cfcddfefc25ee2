# app/domains/doc/services.py

"""
참고 문서 파일의 저장, 다운로드 준비, 삭제를 담당하는 서비스 모듈입니다.
"""

import logging
import math
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os
from fastapi import HTTPException, UploadFile, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.domains.usr import models as usr_models

from . import crud, models, schemas

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "text/markdown",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/png",
    "image/gif",
}


def parse_tags(raw_tags: Optional[str]) -> List[str]:
    """쉼표로 구분된 태그 문자열을 공백 제거, 중복 제거된 목록으로 변환합니다."""
    if not raw_tags:
        return []
    tags = []
    for tag in raw_tags.split(","):
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


async def _save_document_to_disk(upload_file: UploadFile) -> Tuple[str, int]:
    """
    UploadFile 객체를 디스크에 저장하고, (업로드 디렉터리 기준 상대 경로, 크기 KB)를 반환합니다.
    """
    # monkeypatch로 변경된 settings 값을 참조하도록 런타임에 경로를 계산합니다.
    upload_directory = Path(settings.UPLOAD_DIR)
    upload_directory.mkdir(parents=True, exist_ok=True)

    file_content = await upload_file.read()
    if not file_content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")
    if len(file_content) > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the maximum upload size of {settings.MAX_UPLOAD_SIZE_MB} MB.",
        )

    # 원본 파일명의 경로 구성 요소는 버리고 고유 접두어를 붙입니다.
    safe_file_name = f"{uuid.uuid4()}-{Path(upload_file.filename or 'document').name}"
    file_path = upload_directory / safe_file_name

    try:
        async with aiofiles.open(file_path, "wb") as f:
            await f.write(file_content)
    except OSError as e:
        logger.error("문서 파일 저장 실패: %s", file_path, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to store uploaded file: {e}",
        )

    return safe_file_name, math.ceil(len(file_content) / 1024)


async def upload_document(
    db: AsyncSession,
    *,
    upload_file: UploadFile,
    uploader_id: int,
    title: str,
    category: models.DocumentCategory,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
    version: Optional[str] = None,
) -> models.Document:
    """
    문서 파일을 저장하고 메타데이터를 DB에 기록합니다.
    DB 기록에 실패하면 저장한 파일을 삭제합니다.
    """
    content_type = upload_file.content_type or "application/octet-stream"
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported document type: {content_type}",
        )

    relative_path, size_kb = await _save_document_to_disk(upload_file)

    document_data = schemas.DocumentCreate(
        title=title,
        description=description,
        file_name=Path(upload_file.filename or relative_path).name,
        file_path=relative_path,
        size_kb=size_kb,
        content_type=content_type,
        version=version or "1.0",
        category=category,
        tags=tags or [],
        uploader_id=uploader_id,
    )
    try:
        return await crud.document.create(db=db, obj_in=document_data)
    except Exception:
        await aiofiles.os.remove(Path(settings.UPLOAD_DIR) / relative_path)
        raise


async def prepare_document_for_download(db: AsyncSession, *, document_id: int) -> Tuple[Path, models.Document]:
    """
    다운로드할 파일의 전체 경로와 문서 객체를 반환합니다.
    """
    db_document = await crud.document.get(db, id=document_id)
    if not db_document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found.")

    full_path = crud.document.get_full_file_path(db_document)
    if not full_path.exists():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document file not found on disk.")
    return full_path, db_document


async def check_document_modification_permission(
    db: AsyncSession, *, document_id: int, user: usr_models.User
) -> models.Document:
    """
    업로더 본인 또는 관리자만 문서를 수정/삭제할 수 있습니다.
    """
    db_document = await crud.document.get(db, id=document_id)
    if not db_document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    is_owner = db_document.uploader_id == user.id
    is_admin = user.role <= usr_models.UserRole.ADMIN
    if not (is_owner or is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not enough permissions to modify this document."
        )
    return db_document


async def delete_document(db: AsyncSession, *, db_document: models.Document) -> None:
    """DB 레코드(연결 정보 포함)를 먼저 삭제하고, 커밋된 뒤에 파일을 지웁니다."""
    full_path = crud.document.get_full_file_path(db_document)

    for association in await crud.document_association.get_by_document(db, document_id=db_document.id):
        await db.delete(association)
    await crud.document.delete(db, id=db_document.id)

    if not full_path.exists():
        logger.warning("삭제할 문서 파일이 디스크에 없습니다: %s", full_path)
        return
    try:
        await aiofiles.os.remove(full_path)
    except OSError as e:
        # 레코드는 이미 삭제되었으므로 남은 파일만 기록합니다.
        logger.error("문서 파일 삭제 실패 (document_id=%s, path=%s): %s", db_document.id, full_path, e)
