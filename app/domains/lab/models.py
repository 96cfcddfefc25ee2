# app/domains/lab/models.py

"""
'lab' 도메인 (PostgreSQL 'lab' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

- samples: 환자 검체
- lab_results: 검체에서 분리된 미생물에 대한 항균제 감수성 검사 결과와 검증 상태
"""

from typing import List, Optional
from datetime import datetime, UTC
from enum import Enum
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


# =============================================================================
# Enum 정의
# =============================================================================
class SampleType(str, Enum):
    BLOOD = "blood"
    URINE = "urine"
    SPUTUM = "sputum"
    WOUND = "wound"
    CSF = "csf"
    STOOL = "stool"
    THROAT = "throat"
    OTHER = "other"


class SamplePriority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


class SampleStatus(str, Enum):
    RECEIVED = "received"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class Interpretation(str, Enum):
    """검사 결과에 기록되는 판정"""
    SUSCEPTIBLE = "S"
    INTERMEDIATE = "I"
    RESISTANT = "R"
    NOT_TESTED = "NT"         # 수치가 아닌 원시 결과 등으로 판정하지 않음
    NO_INTERPRETATION = "NI"  # 적용할 판정 기준이 없음


class ValidationStatus(str, Enum):
    """
    검사 결과 검증 상태.
    PENDING -> {VALIDATED, REJECTED, REQUIRES_REVIEW}, VALIDATED/REJECTED는 명시적 재개(reopen) 전까지 종결 상태입니다.
    """
    PENDING = "pending"
    VALIDATED = "validated"
    REJECTED = "rejected"
    REQUIRES_REVIEW = "requires_review"


# 재판정(submit)과 검토(review)가 가능한 상태
OPEN_STATUSES = frozenset({ValidationStatus.PENDING, ValidationStatus.REQUIRES_REVIEW})
# 재개(reopen) 전까지 변경할 수 없는 상태
TERMINAL_STATUSES = frozenset({ValidationStatus.VALIDATED, ValidationStatus.REJECTED})


# =============================================================================
# 1. lab.samples 테이블 모델
# =============================================================================
class SampleBase(SQLModel):
    id: Optional[int] = Field(default=None, primary_key=True, description="검체 고유 ID")
    patient_id: str = Field(max_length=50, index=True, description="환자 식별자")
    sample_type: SampleType = Field(sa_column=Column(String(20), nullable=False), description="검체 종류")
    collection_date: datetime = Field(
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
        description="채취 일시"
    )
    received_date: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="접수 일시"
    )
    specimen_source: str = Field(max_length=255, description="채취 부위")
    clinical_info: Optional[str] = Field(default=None, sa_column=Column(Text), description="임상 정보")
    requesting_physician: Optional[str] = Field(default=None, max_length=100, description="의뢰 의사")
    priority: SamplePriority = Field(
        default=SamplePriority.ROUTINE.value,
        sa_column=Column(String(10), nullable=False, server_default=SamplePriority.ROUTINE.value),
        description="처리 우선순위"
    )
    status: SampleStatus = Field(
        default=SampleStatus.RECEIVED.value,
        sa_column=Column(String(20), nullable=False, server_default=SampleStatus.RECEIVED.value),
        description="검체 처리 상태"
    )
    barcode_id: Optional[str] = Field(default=None, max_length=50, unique=True, description="바코드")
    comments: Optional[str] = Field(default=None, sa_column=Column(Text), description="비고")

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


class Sample(SampleBase, table=True):
    __tablename__ = "samples"
    __table_args__ = {'schema': 'lab'}


# =============================================================================
# 2. lab.lab_results 테이블 모델
# =============================================================================
class LabResultBase(SQLModel):
    """
    lab.lab_results 테이블의 기본 속성입니다.
    미생물, 항균제, 판정 기준, 사용자는 참조만 하며 삭제 시 연쇄 삭제하지 않습니다.
    """
    id: Optional[int] = Field(default=None, primary_key=True, description="검사 결과 고유 ID")
    sample_id: int = Field(
        sa_column=Column(Integer, ForeignKey("lab.samples.id", ondelete="RESTRICT"), nullable=False, index=True),
        description="검체 ID (FK)"
    )
    microorganism_id: int = Field(
        sa_column=Column(Integer, ForeignKey("ref.microorganisms.id", ondelete="RESTRICT"), nullable=False),
        description="미생물 ID (FK)"
    )
    drug_id: int = Field(
        sa_column=Column(Integer, ForeignKey("ref.drugs.id", ondelete="RESTRICT"), nullable=False),
        description="항균제 ID (FK)"
    )
    test_method: str = Field(sa_column=Column(String(30), nullable=False), description="시험 방법")
    raw_result: str = Field(max_length=100, description="원시 측정값 (예: '18', '<=0.25', 'Positive')")
    interpretation: Optional[str] = Field(
        default=None, sa_column=Column(String(2)), description="판정 (S/I/R/NT/NI)"
    )
    breakpoint_used_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("std.breakpoint_standards.id", ondelete="SET NULL"), nullable=True),
        description="판정에 사용된 기준 ID (FK)"
    )
    expert_rule_applied: List[int] = Field(
        default_factory=list,
        sa_column=Column(JSONB, nullable=False, server_default="[]"),
        description="적용된 전문가 규칙 ID 목록 (우선순위 순)"
    )
    validation_status: str = Field(
        default=ValidationStatus.PENDING.value,
        sa_column=Column(String(20), nullable=False, server_default=ValidationStatus.PENDING.value, index=True),
        description="검증 상태"
    )
    validation_comments: Optional[str] = Field(default=None, sa_column=Column(Text), description="검증 의견")
    technician_id: int = Field(
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="RESTRICT"), nullable=False),
        description="검사자 ID (FK)"
    )
    reviewed_by_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("usr.users.id", ondelete="SET NULL"), nullable=True),
        description="검토자 ID (FK)"
    )
    test_date: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now()),
        description="검사 일시"
    )
    report_date: Optional[datetime] = Field(
        default=None, sa_column=Column(TIMESTAMP(timezone=True)), description="보고 일시"
    )
    instrument_id: Optional[str] = Field(default=None, max_length=50, description="검사 장비 식별자")
    quality_control_passed: bool = Field(default=True, description="정도 관리 통과 여부")
    comments: Optional[str] = Field(default=None, sa_column=Column(Text), description="비고")

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


class LabResult(LabResultBase, table=True):
    __tablename__ = "lab_results"
    __table_args__ = {'schema': 'lab'}
