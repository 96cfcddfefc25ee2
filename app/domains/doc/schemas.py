# app/domains/doc/schemas.py

"""
'doc' 도메인 (참고 문서)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField

from .models import AssociationType, DocumentCategory, EntityType


# =============================================================================
# 1. 문서 (Document) 스키마
# =============================================================================
class DocumentCreate(BaseModel):
    """업로드 서비스가 파일 저장 후 DB 기록에 사용하는 스키마"""
    title: str = PydanticField(max_length=255)
    description: Optional[str] = None
    file_name: str
    file_path: str
    size_kb: int
    content_type: str
    version: str = "1.0"
    category: DocumentCategory
    tags: List[str] = PydanticField(default_factory=list)
    uploader_id: Optional[int] = None


class DocumentUpdate(BaseModel):
    title: Optional[str] = PydanticField(None, max_length=255)
    description: Optional[str] = None
    category: Optional[DocumentCategory] = None
    tags: Optional[List[str]] = None
    version: Optional[str] = PydanticField(None, max_length=20)


class DocumentResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    file_name: str
    size_kb: int
    content_type: str
    version: str
    category: DocumentCategory
    tags: List[str] = PydanticField(default_factory=list)
    uploader_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DocumentStatistics(BaseModel):
    total: int
    total_size_kb: int
    by_category: Dict[str, int]


# =============================================================================
# 2. 문서 연결 (DocumentAssociation) 스키마
# =============================================================================
class DocumentAssociationCreate(BaseModel):
    entity_type: EntityType
    entity_id: int
    association_type: AssociationType = AssociationType.REFERENCE


class DocumentAssociationResponse(BaseModel):
    id: int
    document_id: int
    entity_type: EntityType
    entity_id: int
    association_type: AssociationType
    created_at: datetime

    class Config:
        from_attributes = True
