# app/domains/lab/crud.py

"""
'lab' 도메인 (검체 및 검사 결과)의 CRUD 작업을 담당하는 모듈입니다.

검사 결과의 판정과 상태 전이는 services.LabResultValidationService가 담당하며,
이 모듈은 조회와 저장(save)만 제공합니다.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import HTTPException, status

from app.core.crud_base import CRUDBase
from app.domains.ref import crud as ref_crud

from . import models as lab_models
from . import schemas as lab_schemas


# =============================================================================
# 1. 검체 (Sample) CRUD
# =============================================================================
class CRUDSample(CRUDBase[lab_models.Sample, lab_schemas.SampleCreate, lab_schemas.SampleUpdate]):
    def __init__(self):
        super().__init__(model=lab_models.Sample)

    async def get_by_barcode(self, db: AsyncSession, *, barcode_id: str) -> Optional[lab_models.Sample]:
        return await self.get_by_attribute(db, attribute="barcode_id", value=barcode_id)

    async def create(self, db: AsyncSession, *, obj_in: lab_schemas.SampleCreate) -> lab_models.Sample:
        if obj_in.barcode_id and await self.get_by_barcode(db, barcode_id=obj_in.barcode_id):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Sample with this barcode already exists")

        data = obj_in.model_dump(exclude={"sample_type", "priority"}, exclude_none=True)
        db_obj = lab_models.Sample(**data, sample_type=obj_in.sample_type.value, priority=obj_in.priority.value)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self, db: AsyncSession, *, db_obj: lab_models.Sample, obj_in: lab_schemas.SampleUpdate
    ) -> lab_models.Sample:
        update_data = obj_in.model_dump(exclude_unset=True)
        for key in ("sample_type", "specimen_source", "priority", "status"):
            if key in update_data and update_data[key] is None:
                del update_data[key]
        for key, value in update_data.items():
            setattr(db_obj, key, getattr(value, "value", value))
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update_status(
        self, db: AsyncSession, *, db_obj: lab_models.Sample, new_status: lab_models.SampleStatus
    ) -> lab_models.Sample:
        db_obj.status = lab_models.SampleStatus(new_status).value
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def remove(self, db: AsyncSession, *, id: int) -> Optional[lab_models.Sample]:
        """검사 결과가 연결된 검체는 삭제할 수 없습니다."""
        if await lab_result.count(db, sample_id=id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Sample has lab results and cannot be deleted",
            )
        return await self.delete(db, id=id)


sample = CRUDSample()


# =============================================================================
# 2. 검사 결과 (LabResult) CRUD
# =============================================================================
class CRUDLabResult(CRUDBase[lab_models.LabResult, lab_schemas.LabResultCreate, lab_schemas.LabResultUpdate]):
    def __init__(self):
        super().__init__(model=lab_models.LabResult)

    async def check_references(
        self, db: AsyncSession, *, sample_id: int, microorganism_id: int, drug_id: int
    ) -> None:
        """검체/미생물/항균제 존재 여부를 확인합니다."""
        if not await sample.get(db, id=sample_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Sample with id {sample_id} not found")
        if not await ref_crud.microorganism.get(db, id=microorganism_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Microorganism with id {microorganism_id} not found")
        if not await ref_crud.drug.get(db, id=drug_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Drug with id {drug_id} not found")

    async def get_by_validation_status(
        self, db: AsyncSession, *, validation_status: lab_models.ValidationStatus, skip: int = 0, limit: int = 100
    ) -> List[lab_models.LabResult]:
        return await self.get_filtered(
            db,
            filters={"validation_status": lab_models.ValidationStatus(validation_status).value},
            order_by_field="test_date",
            order_desc=False,
            skip=skip,
            limit=limit,
        )

    async def get_unsettled_by_microorganism_and_drug(
        self,
        db: AsyncSession,
        *,
        microorganism_id: Optional[int] = None,
        drug_id: Optional[int] = None,
    ) -> List[lab_models.LabResult]:
        """
        재판정 대상(PENDING, REQUIRES_REVIEW) 결과를 조회합니다.
        microorganism_id / drug_id가 None이면 해당 조건으로 제한하지 않습니다.
        """
        statement = select(self.model).where(
            self.model.validation_status.in_([s.value for s in lab_models.OPEN_STATUSES])
        )
        if microorganism_id is not None:
            statement = statement.where(self.model.microorganism_id == microorganism_id)
        if drug_id is not None:
            statement = statement.where(self.model.drug_id == drug_id)
        result = await db.execute(statement.order_by(self.model.id))
        return result.scalars().all()

    async def save(self, db: AsyncSession, *, db_obj: lab_models.LabResult) -> lab_models.LabResult:
        """변경된 모든 필드를 한 번의 커밋으로 저장합니다."""
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def get_statistics(self, db: AsyncSession) -> Dict[str, Any]:
        """시험 방법별, 판정별, 검증 상태별 건수와 정도 관리 통과율"""
        total = await self.count(db)
        passed = await self.count(db, quality_control_passed=True)

        async def _group_by(column) -> Dict[str, int]:
            result = await db.execute(select(column, func.count()).group_by(column))
            return {str(key): count for key, count in result.all() if key is not None}

        return {
            "total": total,
            "by_method": await _group_by(self.model.test_method),
            "by_interpretation": await _group_by(self.model.interpretation),
            "by_status": await _group_by(self.model.validation_status),
            "quality_control": {
                "passed": passed,
                "failed": total - passed,
                "percentage": round(passed / total * 100, 2) if total else 0.0,
            },
        }


lab_result = CRUDLabResult()
