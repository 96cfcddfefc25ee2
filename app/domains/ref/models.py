# app/domains/ref/models.py

"""
'ref' 도메인 (PostgreSQL 'ref' 스키마)의 기준 정보 ORM 모델을 정의하는 모듈입니다.

- microorganisms: 검사 대상 미생물 (속/종/그룹)
- drugs: 감수성 검사에 사용되는 항균제
"""

from typing import Optional
from datetime import datetime, UTC
from enum import Enum
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import String, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP


class DrugCategory(str, Enum):
    """항균제 분류"""
    ANTIBIOTIC = "antibiotic"
    ANTIFUNGAL = "antifungal"
    ANTIVIRAL = "antiviral"
    ANTIMYCOBACTERIAL = "antimycobacterial"


# =============================================================================
# 1. ref.microorganisms 테이블 모델
# =============================================================================
class MicroorganismBase(SQLModel):
    """
    ref.microorganisms 테이블의 기본 속성을 정의하는 SQLModel Base 클래스입니다.
    """
    id: Optional[int] = Field(default=None, primary_key=True, description="미생물 고유 ID")
    genus: str = Field(max_length=100, description="속 (예: Escherichia)")
    species: Optional[str] = Field(default=None, max_length=100, description="종 (예: coli)")
    organism_group: Optional[str] = Field(default=None, max_length=100, description="그룹 (예: Enterobacterales)")
    common_name: Optional[str] = Field(default=None, max_length=200, description="통용 명칭")
    description: Optional[str] = Field(default=None, description="설명")
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


class Microorganism(MicroorganismBase, table=True):
    """
    PostgreSQL의 ref.microorganisms 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "microorganisms"
    __table_args__ = (
        UniqueConstraint("genus", "species", "organism_group", name="uq_microorganism_name"),
        {'schema': 'ref'},
    )

    @property
    def full_name(self) -> str:
        """'속 종' 형식의 전체 학명"""
        return f"{self.genus} {self.species}" if self.species else self.genus


# =============================================================================
# 2. ref.drugs 테이블 모델
# =============================================================================
class DrugBase(SQLModel):
    """
    ref.drugs 테이블의 기본 속성을 정의하는 SQLModel Base 클래스입니다.
    """
    id: Optional[int] = Field(default=None, primary_key=True, description="항균제 고유 ID")
    name: str = Field(max_length=200, description="항균제명 (예: Ciprofloxacin)")
    code: str = Field(max_length=20, sa_column_kwargs={"unique": True}, description="항균제 약어 코드 (예: CIP)")
    category: DrugCategory = Field(
        default=DrugCategory.ANTIBIOTIC,
        sa_column=Column(String(30), nullable=False),
        description="항균제 분류"
    )
    description: Optional[str] = Field(default=None, description="설명")
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


class Drug(DrugBase, table=True):
    """
    PostgreSQL의 ref.drugs 테이블에 매핑되는 SQLModel ORM 클래스입니다.
    """
    __tablename__ = "drugs"
    __table_args__ = {'schema': 'ref'}
