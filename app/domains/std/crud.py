# app/domains/std/crud.py

"""
'std' 도메인 (판정 기준 및 전문가 규칙)의 CRUD 작업을 담당하는 모듈입니다.

판정 엔진이 사용하는 조회 메서드(미생물/항균제별 기준, 이력, 활성 규칙)를 함께 제공하며,
기준이나 규칙이 바뀌면 해당 조합의 미확정 검사 결과를 재판정하는 백그라운드 작업을 요청합니다.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import HTTPException, status

from app.core.crud_base import CRUDBase
from app.domains.ref import crud as ref_crud

from . import models as std_models
from . import rules as std_rules
from . import schemas as std_schemas

logger = logging.getLogger(__name__)

REVALIDATION_TASK = "revalidate_lab_results_task"


async def _enqueue_revalidation(arq_redis_pool, microorganism_id: Optional[int], drug_id: Optional[int]) -> None:
    if arq_redis_pool:
        await arq_redis_pool.enqueue_job(REVALIDATION_TASK, microorganism_id, drug_id)
    else:
        logger.info(
            "ARQ Redis pool not available, skipping revalidation for microorganism=%s drug=%s",
            microorganism_id, drug_id,
        )


async def _check_references(db: AsyncSession, microorganism_id: Optional[int], drug_id: Optional[int]) -> None:
    if microorganism_id is not None and not await ref_crud.microorganism.get(db, id=microorganism_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Microorganism with id {microorganism_id} not found")
    if drug_id is not None and not await ref_crud.drug.get(db, id=drug_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Drug with id {drug_id} not found")


# =============================================================================
# 1. 판정 기준 (BreakpointStandard) CRUD
# =============================================================================
class CRUDBreakpointStandard(
    CRUDBase[std_models.BreakpointStandard, std_schemas.BreakpointStandardCreate, std_schemas.BreakpointStandardUpdate]
):
    def __init__(self):
        super().__init__(model=std_models.BreakpointStandard)

    async def get_by_microorganism_and_drug(
        self,
        db: AsyncSession,
        *,
        microorganism_id: int,
        drug_id: int,
        year: Optional[int] = None,
        method: Optional[std_models.TestMethod] = None,
        active_only: bool = True,
    ) -> List[std_models.BreakpointStandard]:
        """미생물/항균제 조합의 기준 목록 (연도 내림차순)"""
        statement = select(self.model).where(
            self.model.microorganism_id == microorganism_id,
            self.model.drug_id == drug_id,
        )
        if active_only:
            statement = statement.where(self.model.is_active == True)  # noqa: E712
        if year is not None:
            statement = statement.where(self.model.year == year)
        if method is not None:
            statement = statement.where(self.model.method == std_models.TestMethod(method).value)
        statement = statement.order_by(self.model.year.desc(), self.model.updated_at.desc())
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_latest_by_microorganism_and_drug(
        self,
        db: AsyncSession,
        *,
        microorganism_id: int,
        drug_id: int,
        method: Optional[std_models.TestMethod] = None,
    ) -> Optional[std_models.BreakpointStandard]:
        """활성 기준 중 최신 연도(동일 연도는 최근 수정) 하나"""
        standards = await self.get_by_microorganism_and_drug(
            db, microorganism_id=microorganism_id, drug_id=drug_id, method=method
        )
        return standards[0] if standards else None

    async def get_historical_versions(
        self, db: AsyncSession, *, microorganism_id: int, drug_id: int
    ) -> List[std_models.BreakpointStandard]:
        """비활성 기준을 포함한 전체 이력"""
        return await self.get_by_microorganism_and_drug(
            db, microorganism_id=microorganism_id, drug_id=drug_id, active_only=False
        )

    async def get_available_years(self, db: AsyncSession) -> List[int]:
        """활성 기준이 존재하는 발행 연도 목록 (내림차순)"""
        statement = (
            select(self.model.year)
            .where(self.model.is_active == True)  # noqa: E712
            .distinct()
            .order_by(self.model.year.desc())
        )
        result = await db.execute(statement)
        return list(result.scalars().all())

    async def get_active_duplicate(
        self,
        db: AsyncSession,
        *,
        microorganism_id: int,
        drug_id: int,
        method: std_models.TestMethod,
        year: int,
        exclude_id: Optional[int] = None,
    ) -> Optional[std_models.BreakpointStandard]:
        statement = select(self.model).where(
            self.model.microorganism_id == microorganism_id,
            self.model.drug_id == drug_id,
            self.model.method == std_models.TestMethod(method).value,
            self.model.year == year,
            self.model.is_active == True,  # noqa: E712
        )
        if exclude_id is not None:
            statement = statement.where(self.model.id != exclude_id)
        result = await db.execute(statement)
        return result.scalars().first()

    async def create(
        self, db: AsyncSession, *, obj_in: std_schemas.BreakpointStandardCreate, arq_redis_pool=None
    ) -> std_models.BreakpointStandard:
        """
        새 기준을 등록합니다. 같은 조합/방법/연도의 활성 기준은 하나만 허용합니다.
        """
        await _check_references(db, obj_in.microorganism_id, obj_in.drug_id)
        if obj_in.is_active and await self.get_active_duplicate(
            db,
            microorganism_id=obj_in.microorganism_id,
            drug_id=obj_in.drug_id,
            method=obj_in.method,
            year=obj_in.year,
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An active breakpoint standard already exists for this microorganism, drug, method and year",
            )

        db_obj = std_models.BreakpointStandard(**obj_in.model_dump(exclude={"method"}), method=obj_in.method.value)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)

        await _enqueue_revalidation(arq_redis_pool, db_obj.microorganism_id, db_obj.drug_id)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: std_models.BreakpointStandard,
        obj_in: std_schemas.BreakpointStandardUpdate,
        arq_redis_pool=None,
    ) -> std_models.BreakpointStandard:
        update_data = obj_in.model_dump(exclude_unset=True)
        # NOT NULL 컬럼에 대한 명시적 null은 무시
        for key in ("method", "year", "is_active"):
            if key in update_data and update_data[key] is None:
                del update_data[key]
        if "method" in update_data:
            update_data["method"] = std_models.TestMethod(update_data["method"]).value

        merged = {
            "method": update_data.get("method", db_obj.method),
            "year": update_data.get("year", db_obj.year),
            "is_active": update_data.get("is_active", db_obj.is_active),
        }
        if merged["is_active"] and await self.get_active_duplicate(
            db,
            microorganism_id=db_obj.microorganism_id,
            drug_id=db_obj.drug_id,
            method=merged["method"],
            year=merged["year"],
            exclude_id=db_obj.id,
        ):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An active breakpoint standard already exists for this microorganism, drug, method and year",
            )

        low = update_data.get("intermediate_min", db_obj.intermediate_min)
        high = update_data.get("intermediate_max", db_obj.intermediate_max)
        if low is not None and high is not None and low > high:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="intermediate_min must not be greater than intermediate_max",
            )

        for key, value in update_data.items():
            setattr(db_obj, key, value)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)

        await _enqueue_revalidation(arq_redis_pool, db_obj.microorganism_id, db_obj.drug_id)
        return db_obj

    async def deactivate(
        self, db: AsyncSession, *, db_obj: std_models.BreakpointStandard, arq_redis_pool=None
    ) -> std_models.BreakpointStandard:
        db_obj = await super().deactivate(db, db_obj=db_obj)
        await _enqueue_revalidation(arq_redis_pool, db_obj.microorganism_id, db_obj.drug_id)
        return db_obj


breakpoint_standard = CRUDBreakpointStandard()


# =============================================================================
# 2. 전문가 규칙 (ExpertRule) CRUD
# =============================================================================
class CRUDExpertRule(CRUDBase[std_models.ExpertRule, std_schemas.ExpertRuleCreate, std_schemas.ExpertRuleUpdate]):
    def __init__(self):
        super().__init__(model=std_models.ExpertRule)

    async def get_by_microorganism_and_drug(
        self,
        db: AsyncSession,
        *,
        microorganism_id: int,
        drug_id: int,
        year: Optional[int] = None,
    ) -> List[std_models.ExpertRule]:
        """조합에 적용되는 활성 규칙 (조합 전용, 미생물 전용, 항균제 전용, 전체 적용 규칙 포함)"""
        statement = select(self.model).where(
            self.model.is_active == True,  # noqa: E712
            (self.model.microorganism_id == microorganism_id) | (self.model.microorganism_id.is_(None)),
            (self.model.drug_id == drug_id) | (self.model.drug_id.is_(None)),
        )
        if year is not None:
            statement = statement.where(self.model.year == year)
        statement = statement.order_by(self.model.priority.desc(), self.model.id)
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_active_rules(self, db: AsyncSession) -> List[std_models.ExpertRule]:
        """전체 활성 규칙 (우선순위 내림차순)"""
        statement = (
            select(self.model)
            .where(self.model.is_active == True)  # noqa: E712
            .order_by(self.model.priority.desc(), self.model.id)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_statistics(self, db: AsyncSession) -> Dict[str, Any]:
        """규칙 수 통계 (전체, 활성, 유형별, 연도별)"""
        total = await self.count(db)
        active = await self.count(db, is_active=True)

        by_type_result = await db.execute(
            select(self.model.rule_type, func.count()).group_by(self.model.rule_type)
        )
        by_year_result = await db.execute(
            select(self.model.year, func.count()).group_by(self.model.year).order_by(self.model.year.desc())
        )
        return {
            "total": total,
            "active": active,
            "by_type": {str(rule_type): count for rule_type, count in by_type_result.all()},
            "by_year": {year: count for year, count in by_year_result.all()},
        }

    async def create(
        self, db: AsyncSession, *, obj_in: std_schemas.ExpertRuleCreate, arq_redis_pool=None
    ) -> std_models.ExpertRule:
        """조건식 문법을 검사한 뒤 규칙을 등록합니다."""
        std_rules.validate_condition(obj_in.condition)
        await _check_references(db, obj_in.microorganism_id, obj_in.drug_id)

        db_obj = std_models.ExpertRule(**obj_in.model_dump(exclude={"rule_type"}), rule_type=obj_in.rule_type.value)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)

        await _enqueue_revalidation(arq_redis_pool, db_obj.microorganism_id, db_obj.drug_id)
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: std_models.ExpertRule,
        obj_in: std_schemas.ExpertRuleUpdate,
        arq_redis_pool=None,
    ) -> std_models.ExpertRule:
        update_data = obj_in.model_dump(exclude_unset=True)
        for key in ("name", "rule_type", "condition", "action", "priority", "year", "is_active"):
            if key in update_data and update_data[key] is None:
                del update_data[key]
        if "condition" in update_data:
            std_rules.validate_condition(update_data["condition"])
        if "rule_type" in update_data:
            update_data["rule_type"] = std_models.ExpertRuleType(update_data["rule_type"]).value
        await _check_references(db, update_data.get("microorganism_id"), update_data.get("drug_id"))

        # 적용 범위가 바뀌면 이전 범위의 결과도 재판정 대상
        previous_scope = (db_obj.microorganism_id, db_obj.drug_id)

        for key, value in update_data.items():
            setattr(db_obj, key, value)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)

        await _enqueue_revalidation(arq_redis_pool, db_obj.microorganism_id, db_obj.drug_id)
        if previous_scope != (db_obj.microorganism_id, db_obj.drug_id):
            await _enqueue_revalidation(arq_redis_pool, *previous_scope)
        return db_obj

    async def deactivate(
        self, db: AsyncSession, *, db_obj: std_models.ExpertRule, arq_redis_pool=None
    ) -> std_models.ExpertRule:
        db_obj = await super().deactivate(db, db_obj=db_obj)
        await _enqueue_revalidation(arq_redis_pool, db_obj.microorganism_id, db_obj.drug_id)
        return db_obj


expert_rule = CRUDExpertRule()
