# app/domains/std/models.py

"""
'std' 도메인 (PostgreSQL 'std' 스키마)의 판정 기준 ORM 모델을 정의하는 모듈입니다.

- breakpoint_standards: 미생물/항균제/시험 방법/발행 연도별 감수성 판정 기준값
- expert_rules: 판정 결과에 추가로 적용되는 전문가 규칙 (조건식 + 조치 메시지)
"""

from typing import Optional
from datetime import datetime, UTC
from enum import Enum
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


# =============================================================================
# Enum 정의
# =============================================================================
class TestMethod(str, Enum):
    """감수성 시험 방법"""
    DISK_DIFFUSION = "disk_diffusion"           # 디스크 확산법 (억제대 직경, mm)
    BROTH_MICRODILUTION = "broth_microdilution"  # 액체 미량 희석법 (MIC)
    AGAR_DILUTION = "agar_dilution"             # 한천 희석법 (MIC)
    E_TEST = "e_test"                           # E-test (MIC)
    AUTOMATED = "automated"                     # 자동화 장비 (MIC)
    MOLECULAR = "molecular"                     # 분자 진단 (수치 판정 없음)

    __test__ = False  # pytest가 테스트 클래스로 수집하지 않도록 함


# 억제대 직경(mm)으로 판정하는 방법
ZONE_METHODS = frozenset({TestMethod.DISK_DIFFUSION})
# 최소억제농도(µg/mL)로 판정하는 방법
MIC_METHODS = frozenset({
    TestMethod.BROTH_MICRODILUTION,
    TestMethod.AGAR_DILUTION,
    TestMethod.E_TEST,
    TestMethod.AUTOMATED,
})


class ExpertRuleType(str, Enum):
    """전문가 규칙 유형"""
    INTRINSIC_RESISTANCE = "intrinsic_resistance"      # 자연 내성
    ACQUIRED_RESISTANCE = "acquired_resistance"        # 획득 내성
    PHENOTYPE_CONFIRMATION = "phenotype_confirmation"  # 표현형 확인 필요
    QUALITY_CONTROL = "quality_control"                # 정도 관리
    REPORTING_GUIDANCE = "reporting_guidance"          # 보고 지침


# =============================================================================
# 1. std.breakpoint_standards 테이블 모델
# =============================================================================
class BreakpointStandardBase(SQLModel):
    """
    std.breakpoint_standards 테이블의 기본 속성을 정의하는 SQLModel Base 클래스입니다.
    판정 기준값이 비어 있으면(None) 해당 기준은 적용하지 않으며, 0과 구분됩니다.
    """
    id: Optional[int] = Field(default=None, primary_key=True, description="판정 기준 고유 ID")
    microorganism_id: int = Field(
        sa_column=Column(Integer, ForeignKey("ref.microorganisms.id", ondelete="RESTRICT"), nullable=False),
        description="미생물 ID (FK)"
    )
    drug_id: int = Field(
        sa_column=Column(Integer, ForeignKey("ref.drugs.id", ondelete="RESTRICT"), nullable=False),
        description="항균제 ID (FK)"
    )
    year: int = Field(description="기준 발행 연도 (예: 2024)")
    method: TestMethod = Field(sa_column=Column(String(30), nullable=False), description="시험 방법")

    # 디스크 확산법 기준 (mm): 직경이 클수록 감수성
    susceptible_min: Optional[float] = Field(default=None, description="감수성(S) 최소 억제대 직경")
    intermediate_min: Optional[float] = Field(default=None, description="중간(I) 구간 하한")
    intermediate_max: Optional[float] = Field(default=None, description="중간(I) 구간 상한")
    resistant_max: Optional[float] = Field(default=None, description="내성(R) 최대 억제대 직경")

    # MIC 기준 (µg/mL): 농도가 낮을수록 감수성
    susceptible_max: Optional[float] = Field(default=None, description="감수성(S) 최대 MIC")
    resistant_min: Optional[float] = Field(default=None, description="내성(R) 최소 MIC")

    notes: Optional[str] = Field(default=None, sa_column=Column(Text), description="판정 시 참고 사항")
    source_document: Optional[str] = Field(default=None, max_length=255, description="출처 문서 (예: CLSI M100 34th)")
    is_active: bool = Field(default=True, description="활성 여부 (비활성 기준은 이력 비교에만 사용)")

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


class BreakpointStandard(BreakpointStandardBase, table=True):
    """
    PostgreSQL의 std.breakpoint_standards 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "breakpoint_standards"
    __table_args__ = (
        Index("ix_breakpoint_pair_method_year", "microorganism_id", "drug_id", "method", "year"),
        {'schema': 'std'},
    )


# =============================================================================
# 2. std.expert_rules 테이블 모델
# =============================================================================
class ExpertRuleBase(SQLModel):
    """
    std.expert_rules 테이블의 기본 속성을 정의하는 SQLModel Base 클래스입니다.
    microorganism_id / drug_id가 비어 있으면 모든 미생물 / 모든 항균제에 적용됩니다.
    """
    id: Optional[int] = Field(default=None, primary_key=True, description="전문가 규칙 고유 ID")
    name: str = Field(max_length=200, description="규칙명")
    description: Optional[str] = Field(default=None, sa_column=Column(Text), description="규칙 설명")
    rule_type: ExpertRuleType = Field(sa_column=Column(String(30), nullable=False), description="규칙 유형")
    microorganism_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("ref.microorganisms.id", ondelete="RESTRICT"), nullable=True),
        description="적용 대상 미생물 ID (FK, 없으면 전체)"
    )
    drug_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("ref.drugs.id", ondelete="RESTRICT"), nullable=True),
        description="적용 대상 항균제 ID (FK, 없으면 전체)"
    )
    condition: str = Field(sa_column=Column(Text, nullable=False), description="조건식 (예: interpretation == 'S' && test_value < 14)")
    action: str = Field(sa_column=Column(Text, nullable=False), description="조건 충족 시 조치 메시지 템플릿 ({field} 치환)")
    priority: int = Field(default=0, description="우선순위 (클수록 먼저 평가)")
    year: int = Field(description="규칙 발행 연도")
    source_reference: Optional[str] = Field(default=None, max_length=255, description="출처")
    notes: Optional[str] = Field(default=None, sa_column=Column(Text), description="비고")
    is_active: bool = Field(default=True, description="활성 여부")

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


class ExpertRule(ExpertRuleBase, table=True):
    """
    PostgreSQL의 std.expert_rules 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "expert_rules"
    __table_args__ = {'schema': 'std'}
