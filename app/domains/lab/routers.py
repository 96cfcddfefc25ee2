# app/domains/lab/routers.py

"""
'lab' 도메인 (검체 및 검사 결과) 관련 API 엔드포인트를 정의하는 모듈입니다.

- 검체/결과 등록과 수정은 검사자 이상, 검토와 재개는 미생물 전문가 이상,
  삭제는 관리자만 가능합니다.
- 결과의 상태 전이는 LabResultValidationService를 통해서만 이루어집니다.
"""

from typing import List, Optional
from datetime import date
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import APIRouter, Depends, HTTPException, status

from app.core import dependencies as deps
from app.domains.std.models import TestMethod
from app.domains.usr import models as usr_models

from . import crud as lab_crud
from . import schemas as lab_schemas
from .models import Interpretation, SamplePriority, SampleStatus, SampleType, ValidationStatus
from .services import LabResultValidationService, get_validation_service

router = APIRouter(
    tags=["Laboratory (검체 및 감수성 검사 결과)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 검체 (Sample) 라우터
# =============================================================================
@router.post("/samples", response_model=lab_schemas.SampleResponse, status_code=status.HTTP_201_CREATED, summary="새 검체 접수")
async def create_sample(
    sample_in: lab_schemas.SampleCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    return await lab_crud.sample.create(db=db, obj_in=sample_in)


@router.get("/samples", response_model=List[lab_schemas.SampleResponse], summary="검체 목록 조회")
async def read_samples(
    skip: int = 0,
    limit: int = 100,
    patient_id: Optional[str] = None,
    sample_status: Optional[SampleStatus] = None,
    sample_type: Optional[SampleType] = None,
    priority: Optional[SamplePriority] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    검체 목록을 조회합니다. 기간 조건은 채취 일시(collection_date)에 적용됩니다.
    """
    filters = {
        "patient_id": patient_id,
        "status": sample_status.value if sample_status else None,
        "sample_type": sample_type.value if sample_type else None,
        "priority": priority.value if priority else None,
    }
    return await lab_crud.sample.get_filtered(
        db,
        filters=filters,
        date_range_field="collection_date",
        start_date=start_date,
        end_date=end_date,
        order_by_field="collection_date",
        skip=skip,
        limit=limit,
    )


@router.get("/samples/barcode/{barcode_id}", response_model=lab_schemas.SampleResponse, summary="바코드로 검체 조회")
async def read_sample_by_barcode(
    barcode_id: str,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lab_crud.sample.get_by_barcode(db, barcode_id=barcode_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    return db_obj


@router.get("/samples/{sample_id}", response_model=lab_schemas.SampleResponse, summary="특정 검체 조회")
async def read_sample(
    sample_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lab_crud.sample.get(db=db, id=sample_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    return db_obj


@router.get("/samples/{sample_id}/results", response_model=List[lab_schemas.LabResultResponse], summary="검체의 검사 결과 목록")
async def read_sample_results(
    sample_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    if not await lab_crud.sample.get(db=db, id=sample_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    return await lab_crud.lab_result.get_multi(db, limit=1000, sample_id=sample_id)


@router.put("/samples/{sample_id}", response_model=lab_schemas.SampleResponse, summary="검체 정보 업데이트")
async def update_sample(
    sample_id: int,
    sample_in: lab_schemas.SampleUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    db_obj = await lab_crud.sample.get(db=db, id=sample_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    return await lab_crud.sample.update(db=db, db_obj=db_obj, obj_in=sample_in)


@router.patch("/samples/{sample_id}/status", response_model=lab_schemas.SampleResponse, summary="검체 처리 상태 변경")
async def update_sample_status(
    sample_id: int,
    status_in: lab_schemas.SampleStatusUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    db_obj = await lab_crud.sample.get(db=db, id=sample_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    return await lab_crud.sample.update_status(db=db, db_obj=db_obj, new_status=status_in.status)


@router.delete("/samples/{sample_id}", status_code=status.HTTP_204_NO_CONTENT, summary="검체 삭제")
async def delete_sample(
    sample_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await lab_crud.sample.get(db=db, id=sample_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sample not found")
    await lab_crud.sample.remove(db, id=sample_id)
    return


# =============================================================================
# 2. 검사 결과 (LabResult) 라우터
# =============================================================================
@router.post("/results", response_model=lab_schemas.LabResultResponse, status_code=status.HTTP_201_CREATED, summary="검사 결과 등록 및 자동 판정")
async def create_lab_result(
    result_in: lab_schemas.LabResultCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    """
    결과를 등록하고 즉시 판정합니다.
    판정 기준이 없거나 판정할 수 없는 결과도 등록되며 `requires_review` 상태가 됩니다.
    """
    await lab_crud.lab_result.check_references(
        db, sample_id=result_in.sample_id, microorganism_id=result_in.microorganism_id, drug_id=result_in.drug_id
    )
    return await service.create_result(result_in, technician_id=current_user.id)


@router.get("/results", response_model=List[lab_schemas.LabResultResponse], summary="검사 결과 목록 조회")
async def read_lab_results(
    skip: int = 0,
    limit: int = 100,
    sample_id: Optional[int] = None,
    microorganism_id: Optional[int] = None,
    drug_id: Optional[int] = None,
    test_method: Optional[TestMethod] = None,
    interpretation: Optional[Interpretation] = None,
    validation_status: Optional[ValidationStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """기간 조건은 검사 일시(test_date)에 적용됩니다."""
    filters = {
        "sample_id": sample_id,
        "microorganism_id": microorganism_id,
        "drug_id": drug_id,
        "test_method": test_method.value if test_method else None,
        "interpretation": interpretation.value if interpretation else None,
        "validation_status": validation_status.value if validation_status else None,
    }
    return await lab_crud.lab_result.get_filtered(
        db,
        filters=filters,
        date_range_field="test_date",
        start_date=start_date,
        end_date=end_date,
        order_by_field="test_date",
        skip=skip,
        limit=limit,
    )


@router.get("/results/pending", response_model=List[lab_schemas.LabResultResponse], summary="검토 대기 결과 목록")
async def read_pending_results(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lab_crud.lab_result.get_by_validation_status(
        db, validation_status=ValidationStatus.PENDING, skip=skip, limit=limit
    )


@router.get("/results/review-queue", response_model=List[lab_schemas.LabResultResponse], summary="재검토 필요 결과 목록")
async def read_review_queue(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lab_crud.lab_result.get_by_validation_status(
        db, validation_status=ValidationStatus.REQUIRES_REVIEW, skip=skip, limit=limit
    )


@router.get("/results/statistics", response_model=lab_schemas.LabResultStatistics, summary="검사 결과 통계")
async def read_lab_result_statistics(
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lab_crud.lab_result.get_statistics(db)


@router.post("/results/revalidate", response_model=lab_schemas.RevalidationResponse, summary="미확정 결과 일괄 재판정")
async def revalidate_lab_results(
    microorganism_id: Optional[int] = None,
    drug_id: Optional[int] = None,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_reviewer_user),
):
    """조건에 맞는 PENDING/REQUIRES_REVIEW 결과를 현재 기준과 규칙으로 다시 판정합니다."""
    count = await service.revalidate_pair(microorganism_id, drug_id)
    return lab_schemas.RevalidationResponse(microorganism_id=microorganism_id, drug_id=drug_id, revalidated=count)


@router.post("/results/bulk-review", response_model=lab_schemas.BulkReviewResponse, summary="검사 결과 일괄 검토")
async def bulk_review_lab_results(
    bulk_in: lab_schemas.BulkReviewRequest,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_reviewer_user),
):
    """
    여러 결과에 같은 검토 결정을 기록합니다.
    없는 결과나 이미 확정된 결과는 `errors`에 사유와 함께 실패로 집계되고 나머지 결과는 계속 처리됩니다.
    """
    return await service.bulk_review_results(
        bulk_in.result_ids, reviewer_id=current_user.id, decision=bulk_in.decision, comments=bulk_in.comments
    )


@router.get("/results/{result_id}", response_model=lab_schemas.LabResultResponse, summary="특정 검사 결과 조회")
async def read_lab_result(
    result_id: int,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await service.get_result(result_id)


@router.put("/results/{result_id}", response_model=lab_schemas.LabResultResponse, summary="검사 결과 수정 및 재판정")
async def update_lab_result(
    result_id: int,
    result_in: lab_schemas.LabResultUpdate,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    """확정(validated/rejected)된 결과는 재개 전까지 수정할 수 없습니다 (409)."""
    lab_result = await service.get_result(result_id)
    return await service.update_result(lab_result, result_in)


@router.post("/results/{result_id}/submit", response_model=lab_schemas.LabResultResponse, summary="검사 결과 재판정")
async def resubmit_lab_result(
    result_id: int,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_technician_user),
):
    lab_result = await service.get_result(result_id)
    return await service.submit_result(lab_result)


@router.post("/results/{result_id}/review", response_model=lab_schemas.LabResultResponse, summary="검사 결과 검토")
async def review_lab_result(
    result_id: int,
    review_in: lab_schemas.LabResultReview,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_reviewer_user),
):
    """
    pending 또는 requires_review 상태의 결과만 검토할 수 있으며,
    이미 확정된 결과에 대한 검토 요청은 409 오류를 반환합니다.
    """
    lab_result = await service.get_result(result_id)
    return await service.review_result(
        lab_result,
        reviewer_id=current_user.id,
        decision=review_in.decision,
        comments=review_in.comments,
        interpretation_override=review_in.interpretation_override,
    )


@router.post("/results/{result_id}/reopen", response_model=lab_schemas.LabResultResponse, summary="확정된 검사 결과 재개")
async def reopen_lab_result(
    result_id: int,
    reopen_in: lab_schemas.LabResultReopen,
    service: LabResultValidationService = Depends(get_validation_service),
    current_user: usr_models.User = Depends(deps.get_current_reviewer_user),
):
    lab_result = await service.get_result(result_id)
    return await service.reopen_result(lab_result, reviewer_id=current_user.id, comments=reopen_in.comments)


@router.delete("/results/{result_id}", status_code=status.HTTP_204_NO_CONTENT, summary="검사 결과 삭제")
async def delete_lab_result(
    result_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await lab_crud.lab_result.get(db=db, id=result_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lab result not found")
    await lab_crud.lab_result.delete(db, id=result_id)
    return
