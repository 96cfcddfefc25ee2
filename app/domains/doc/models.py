# app/domains/doc/models.py

"""
'doc' 도메인 (PostgreSQL 'doc' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- documents: 업로드된 참고 문서(CLSI 표준, 논문, 지침 등)의 메타데이터
- document_associations: 문서와 미생물/항균제/판정 기준/전문가 규칙의 연결
"""

from typing import List, Optional
from datetime import datetime, UTC
from enum import Enum
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


# =============================================================================
# Enum 정의
# =============================================================================
class DocumentCategory(str, Enum):
    CLSI_STANDARD = "clsi_standard"
    REFERENCE_PAPER = "reference_paper"
    GUIDELINE = "guideline"
    MANUAL = "manual"
    PROTOCOL = "protocol"
    OTHER = "other"


class EntityType(str, Enum):
    """문서를 연결할 수 있는 엔티티 유형"""
    MICROORGANISM = "microorganism"
    DRUG = "drug"
    BREAKPOINT_STANDARD = "breakpoint_standard"
    EXPERT_RULE = "expert_rule"


class AssociationType(str, Enum):
    REFERENCE = "reference"
    GUIDELINE = "guideline"
    VALIDATION_SOURCE = "validation_source"
    PROTOCOL = "protocol"
    SUPPORTING_DOCUMENT = "supporting_document"


# =============================================================================
# 1. doc.documents 테이블 모델
# =============================================================================
class Document(SQLModel, table=True):
    __tablename__ = "documents"
    __table_args__ = {'schema': 'doc'}

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=255, description="문서 제목")
    description: Optional[str] = Field(default=None, sa_column=Column(Text), description="문서 설명")
    file_name: str = Field(max_length=255, description="원본 파일명")
    file_path: str = Field(max_length=300, unique=True, description="업로드 디렉터리 기준 상대 경로 (고유 파일명)")
    size_kb: int = Field(description="파일 크기 (KB)")
    content_type: str = Field(max_length=100, description="파일 MIME 타입")
    version: str = Field(default="1.0", max_length=20, description="문서 버전")
    category: DocumentCategory = Field(sa_column=Column(String(30), nullable=False), description="문서 분류")
    tags: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default="[]"),
        description="검색용 태그"
    )
    uploader_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="SET NULL"), nullable=True),
        description="업로더 ID (FK)"
    )

    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )


# =============================================================================
# 2. doc.document_associations 테이블 모델
# =============================================================================
class DocumentAssociation(SQLModel, table=True):
    __tablename__ = "document_associations"
    __table_args__ = (
        UniqueConstraint("document_id", "entity_type", "entity_id"),
        {'schema': 'doc'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    document_id: int = Field(
        sa_column=Column(Integer, ForeignKey("doc.documents.id", ondelete="CASCADE"), nullable=False, index=True),
        description="문서 ID (FK)"
    )
    entity_type: EntityType = Field(sa_column=Column(String(30), nullable=False), description="연결된 엔티티 유형")
    entity_id: int = Field(description="연결된 엔티티의 ID")
    association_type: AssociationType = Field(
        default=AssociationType.REFERENCE.value,
        sa_column=Column(String(30), nullable=False),
        description="연결 유형"
    )

    created_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )
