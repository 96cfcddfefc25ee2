# app/domains/ref/schemas.py

"""
'ref' 도메인 (미생물 및 항균제 기준 정보)의 Pydantic 스키마를 정의하는 모듈입니다.
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field as PydanticField

from .models import DrugCategory


# =============================================================================
# 1. 미생물 (Microorganism) 스키마
# =============================================================================
class MicroorganismBase(BaseModel):
    genus: str = PydanticField(max_length=100, description="속")
    species: Optional[str] = PydanticField(default=None, max_length=100, description="종")
    organism_group: Optional[str] = PydanticField(default=None, max_length=100, description="그룹")
    common_name: Optional[str] = PydanticField(default=None, max_length=200, description="통용 명칭")
    description: Optional[str] = PydanticField(default=None, description="설명")
    is_active: bool = PydanticField(default=True, description="활성 여부")


class MicroorganismCreate(MicroorganismBase):
    pass


class MicroorganismUpdate(BaseModel):
    genus: Optional[str] = PydanticField(None, max_length=100)
    species: Optional[str] = PydanticField(None, max_length=100)
    organism_group: Optional[str] = PydanticField(None, max_length=100)
    common_name: Optional[str] = PydanticField(None, max_length=200)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class MicroorganismResponse(MicroorganismBase):
    id: int = PydanticField(description="미생물 고유 ID")
    full_name: str = PydanticField(description="전체 학명")
    created_at: datetime = PydanticField(description="레코드 생성 일시")
    updated_at: datetime = PydanticField(description="레코드 마지막 업데이트 일시")

    class Config:
        from_attributes = True


# =============================================================================
# 2. 항균제 (Drug) 스키마
# =============================================================================
class DrugBase(BaseModel):
    name: str = PydanticField(max_length=200, description="항균제명")
    code: str = PydanticField(max_length=20, description="항균제 약어 코드")
    category: DrugCategory = PydanticField(default=DrugCategory.ANTIBIOTIC, description="항균제 분류")
    description: Optional[str] = PydanticField(default=None, description="설명")
    is_active: bool = PydanticField(default=True, description="활성 여부")


class DrugCreate(DrugBase):
    pass


class DrugUpdate(BaseModel):
    name: Optional[str] = PydanticField(None, max_length=200)
    code: Optional[str] = PydanticField(None, max_length=20)
    category: Optional[DrugCategory] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class DrugResponse(DrugBase):
    id: int = PydanticField(description="항균제 고유 ID")
    created_at: datetime = PydanticField(description="레코드 생성 일시")
    updated_at: datetime = PydanticField(description="레코드 마지막 업데이트 일시")

    class Config:
        from_attributes = True
