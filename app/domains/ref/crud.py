# app/domains/ref/crud.py

"""
'ref' 도메인 (미생물 및 항균제)의 CRUD 작업을 담당하는 모듈입니다.
"""

from typing import List, Optional
from sqlalchemy import or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import HTTPException, status

from app.core.crud_base import CRUDBase
from . import models as ref_models
from . import schemas as ref_schemas


# =============================================================================
# 1. 미생물 (Microorganism) CRUD
# =============================================================================
class CRUDMicroorganism(CRUDBase[ref_models.Microorganism, ref_schemas.MicroorganismCreate, ref_schemas.MicroorganismUpdate]):
    def __init__(self):
        super().__init__(model=ref_models.Microorganism)

    async def get_by_name(
        self, db: AsyncSession, *, genus: str, species: Optional[str], organism_group: Optional[str] = None
    ) -> Optional[ref_models.Microorganism]:
        statement = select(self.model).where(
            self.model.genus == genus,
            self.model.species.is_(None) if species is None else self.model.species == species,
            self.model.organism_group.is_(None) if organism_group is None else self.model.organism_group == organism_group,
        )
        result = await db.execute(statement)
        return result.scalars().first()

    async def search(
        self, db: AsyncSession, *, keyword: str, active_only: bool = True, skip: int = 0, limit: int = 100
    ) -> List[ref_models.Microorganism]:
        """속/종/통용 명칭에 대한 부분 일치 검색"""
        pattern = f"%{keyword}%"
        statement = select(self.model).where(
            or_(
                self.model.genus.ilike(pattern),
                self.model.species.ilike(pattern),
                self.model.common_name.ilike(pattern),
            )
        )
        if active_only:
            statement = statement.where(self.model.is_active == True)  # noqa: E712
        statement = statement.order_by(self.model.genus, self.model.species).offset(skip).limit(limit)
        result = await db.execute(statement)
        return result.scalars().all()

    async def create(self, db: AsyncSession, *, obj_in: ref_schemas.MicroorganismCreate) -> ref_models.Microorganism:
        existing = await self.get_by_name(
            db, genus=obj_in.genus, species=obj_in.species, organism_group=obj_in.organism_group
        )
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Microorganism already exists")
        return await super().create(db, obj_in=obj_in)


microorganism = CRUDMicroorganism()


# =============================================================================
# 2. 항균제 (Drug) CRUD
# =============================================================================
class CRUDDrug(CRUDBase[ref_models.Drug, ref_schemas.DrugCreate, ref_schemas.DrugUpdate]):
    def __init__(self):
        super().__init__(model=ref_models.Drug)

    async def get_by_code(self, db: AsyncSession, *, code: str) -> Optional[ref_models.Drug]:
        return await self.get_by_attribute(db, attribute="code", value=code)

    async def search(
        self, db: AsyncSession, *, keyword: str, active_only: bool = True, skip: int = 0, limit: int = 100
    ) -> List[ref_models.Drug]:
        """항균제명/코드에 대한 부분 일치 검색"""
        pattern = f"%{keyword}%"
        statement = select(self.model).where(
            or_(self.model.name.ilike(pattern), self.model.code.ilike(pattern))
        )
        if active_only:
            statement = statement.where(self.model.is_active == True)  # noqa: E712
        statement = statement.order_by(self.model.name).offset(skip).limit(limit)
        result = await db.execute(statement)
        return result.scalars().all()

    async def create(self, db: AsyncSession, *, obj_in: ref_schemas.DrugCreate) -> ref_models.Drug:
        if await self.get_by_code(db, code=obj_in.code):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Drug with this code already exists")
        return await super().create(db, obj_in=obj_in)

    async def update(self, db: AsyncSession, *, db_obj: ref_models.Drug, obj_in: ref_schemas.DrugUpdate) -> ref_models.Drug:
        if obj_in.code and obj_in.code != db_obj.code:
            if await self.get_by_code(db, code=obj_in.code):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Drug with this code already exists")
        return await super().update(db, db_obj=db_obj, obj_in=obj_in)


drug = CRUDDrug()
