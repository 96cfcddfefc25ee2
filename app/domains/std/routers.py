# app/domains/std/routers.py

"""
'std' 도메인 (판정 기준 및 전문가 규칙) 관련 API 엔드포인트를 정의하는 모듈입니다.

기준/규칙의 등록, 수정, 비활성화는 관리자만 가능하며,
변경 시 해당 조합의 미확정 검사 결과 재판정을 ARQ 작업으로 요청합니다.
"""

from typing import List, Optional
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.core import dependencies as deps
from app.core.exceptions import InvalidInputError
from app.domains.usr import models as usr_models

from . import crud as std_crud
from . import rules as std_rules
from . import schemas as std_schemas
from .models import ExpertRuleType, TestMethod
from .services import InterpretationService, get_interpretation_service

router = APIRouter(
    tags=["Standards (판정 기준 및 전문가 규칙)"],
    responses={404: {"description": "Not found"}},
)


def _arq_pool(request: Request):
    return getattr(request.app.state, "redis", None)


# =============================================================================
# 1. 판정 기준 (BreakpointStandard) 라우터
# =============================================================================
@router.post("/breakpoints", response_model=std_schemas.BreakpointStandardResponse, status_code=status.HTTP_201_CREATED, summary="새 판정 기준 등록")
async def create_breakpoint_standard(
    request: Request,
    standard_in: std_schemas.BreakpointStandardCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    return await std_crud.breakpoint_standard.create(db=db, obj_in=standard_in, arq_redis_pool=_arq_pool(request))


@router.get("/breakpoints", response_model=List[std_schemas.BreakpointStandardResponse], summary="판정 기준 목록 조회")
async def read_breakpoint_standards(
    skip: int = 0,
    limit: int = 100,
    microorganism_id: Optional[int] = None,
    drug_id: Optional[int] = None,
    year: Optional[int] = None,
    method: Optional[TestMethod] = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    판정 기준 목록을 조회합니다.
    미생물과 항균제를 함께 지정하면 해당 조합의 기준을 연도 내림차순으로 반환합니다.
    """
    if microorganism_id is not None and drug_id is not None:
        return await std_crud.breakpoint_standard.get_by_microorganism_and_drug(
            db,
            microorganism_id=microorganism_id,
            drug_id=drug_id,
            year=year,
            method=method,
            active_only=not include_inactive,
        )
    filters = {
        "microorganism_id": microorganism_id,
        "drug_id": drug_id,
        "year": year,
        "method": method.value if method else None,
        "is_active": None if include_inactive else True,
    }
    return await std_crud.breakpoint_standard.get_filtered(
        db, filters=filters, order_by_field="year", skip=skip, limit=limit
    )


@router.get("/breakpoints/years", response_model=std_schemas.AvailableYearsResponse, summary="활성 기준 발행 연도 목록")
async def read_available_years(
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    years = await std_crud.breakpoint_standard.get_available_years(db)
    return std_schemas.AvailableYearsResponse(years=years)


@router.get("/breakpoints/latest", response_model=std_schemas.BreakpointStandardResponse, summary="최신 활성 판정 기준 조회")
async def read_latest_breakpoint_standard(
    microorganism_id: int,
    drug_id: int,
    method: TestMethod,
    service: InterpretationService = Depends(get_interpretation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await service.find_latest_breakpoint(microorganism_id, drug_id, method)


@router.get("/breakpoints/compare", response_model=List[std_schemas.BreakpointComparison], summary="연도별 판정 기준 비교")
async def compare_breakpoint_versions(
    microorganism_id: int,
    drug_id: int,
    method: Optional[TestMethod] = None,
    service: InterpretationService = Depends(get_interpretation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """비활성 기준을 포함한 전체 이력을 시험 방법별로 묶어 연도 간 변경 사항을 반환합니다."""
    return await service.compare_breakpoint_versions(microorganism_id, drug_id, method)


@router.post("/breakpoints/interpret", response_model=std_schemas.InterpretationResult, summary="측정값 판정")
async def interpret_measurement(
    request_in: std_schemas.InterpretationRequest,
    service: InterpretationService = Depends(get_interpretation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await service.interpret_for(
        request_in.microorganism_id,
        request_in.drug_id,
        request_in.method,
        request_in.value,
        year=request_in.year,
    )


@router.get("/breakpoints/{standard_id}", response_model=std_schemas.BreakpointStandardResponse, summary="특정 판정 기준 조회")
async def read_breakpoint_standard(
    standard_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await std_crud.breakpoint_standard.get(db=db, id=standard_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Breakpoint standard not found")
    return db_obj


@router.post("/breakpoints/{standard_id}/interpret", response_model=std_schemas.InterpretationResult, summary="특정 기준으로 측정값 판정")
async def interpret_with_standard(
    standard_id: int,
    request_in: std_schemas.InterpretationValueRequest,
    service: InterpretationService = Depends(get_interpretation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await service.interpret_with_standard(standard_id, request_in.value)


@router.put("/breakpoints/{standard_id}", response_model=std_schemas.BreakpointStandardResponse, summary="판정 기준 업데이트")
async def update_breakpoint_standard(
    request: Request,
    standard_id: int,
    standard_in: std_schemas.BreakpointStandardUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await std_crud.breakpoint_standard.get(db=db, id=standard_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Breakpoint standard not found")
    return await std_crud.breakpoint_standard.update(
        db=db, db_obj=db_obj, obj_in=standard_in, arq_redis_pool=_arq_pool(request)
    )


@router.delete("/breakpoints/{standard_id}", response_model=std_schemas.BreakpointStandardResponse, summary="판정 기준 비활성화 (Soft Delete)")
async def delete_breakpoint_standard(
    request: Request,
    standard_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    """과거 판정 결과가 참조하므로 비활성화만 하며, 비교 이력에는 계속 포함됩니다."""
    db_obj = await std_crud.breakpoint_standard.get(db=db, id=standard_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Breakpoint standard not found")
    return await std_crud.breakpoint_standard.deactivate(db=db, db_obj=db_obj, arq_redis_pool=_arq_pool(request))


# =============================================================================
# 2. 전문가 규칙 (ExpertRule) 라우터
# =============================================================================
@router.post("/expert-rules", response_model=std_schemas.ExpertRuleResponse, status_code=status.HTTP_201_CREATED, summary="새 전문가 규칙 등록")
async def create_expert_rule(
    request: Request,
    rule_in: std_schemas.ExpertRuleCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    """조건식 문법이 잘못된 경우 400 오류를 반환합니다."""
    return await std_crud.expert_rule.create(db=db, obj_in=rule_in, arq_redis_pool=_arq_pool(request))


@router.get("/expert-rules", response_model=List[std_schemas.ExpertRuleResponse], summary="전문가 규칙 목록 조회")
async def read_expert_rules(
    skip: int = 0,
    limit: int = 100,
    rule_type: Optional[ExpertRuleType] = None,
    year: Optional[int] = None,
    microorganism_id: Optional[int] = None,
    drug_id: Optional[int] = None,
    include_inactive: bool = False,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    미생물과 항균제를 함께 지정하면 해당 조합에 적용되는 활성 규칙
    (전체 적용 규칙 포함)을 우선순위 순으로 반환합니다.
    """
    if microorganism_id is not None and drug_id is not None:
        return await std_crud.expert_rule.get_by_microorganism_and_drug(
            db, microorganism_id=microorganism_id, drug_id=drug_id, year=year
        )
    filters = {
        "rule_type": rule_type.value if rule_type else None,
        "year": year,
        "microorganism_id": microorganism_id,
        "drug_id": drug_id,
        "is_active": None if include_inactive else True,
    }
    return await std_crud.expert_rule.get_filtered(
        db, filters=filters, order_by_field="priority", skip=skip, limit=limit
    )


@router.get("/expert-rules/statistics", response_model=std_schemas.ExpertRuleStatistics, summary="전문가 규칙 통계")
async def read_expert_rule_statistics(
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await std_crud.expert_rule.get_statistics(db)


@router.post("/expert-rules/evaluate", response_model=List[std_schemas.RuleEvaluationResult], summary="전문가 규칙 평가")
async def evaluate_expert_rules(
    request_in: std_schemas.RuleEvaluationRequest,
    service: InterpretationService = Depends(get_interpretation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    조합에 적용되는 활성 규칙을 우선순위 순으로 평가합니다.
    평가에 실패한 규칙은 `applied=false`와 `error`로 표시되며 나머지 규칙 평가는 계속됩니다.
    """
    return await service.evaluate_rules_for(request_in.microorganism_id, request_in.drug_id, request_in.context)


@router.post("/expert-rules/validate-result", response_model=std_schemas.ResultValidationSummary, summary="판정 결과 규칙 검증")
async def validate_result_with_rules(
    request_in: std_schemas.RuleValidationRequest,
    service: InterpretationService = Depends(get_interpretation_service),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    판정 결과에 적용되는 규칙을 평가해 오류/경고/권고로 분류합니다.
    내성 규칙이 S 판정에 적용되면 `is_valid=false`이며 `suggested_interpretation`으로 R을 제안합니다.
    """
    return await service.validate_result_for(
        request_in.microorganism_id, request_in.drug_id, request_in.interpretation.value, request_in.context
    )


@router.post("/expert-rules/validate-condition", response_model=std_schemas.ConditionValidationResponse, summary="조건식 문법 검사")
async def validate_rule_condition(
    request_in: std_schemas.ConditionValidationRequest,
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    try:
        fields = std_rules.validate_condition(request_in.condition)
    except InvalidInputError as e:
        return std_schemas.ConditionValidationResponse(valid=False, error=e.message)
    return std_schemas.ConditionValidationResponse(valid=True, fields=fields)


@router.get("/expert-rules/{rule_id}", response_model=std_schemas.ExpertRuleResponse, summary="특정 전문가 규칙 조회")
async def read_expert_rule(
    rule_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await std_crud.expert_rule.get(db=db, id=rule_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expert rule not found")
    return db_obj


@router.put("/expert-rules/{rule_id}", response_model=std_schemas.ExpertRuleResponse, summary="전문가 규칙 업데이트")
async def update_expert_rule(
    request: Request,
    rule_id: int,
    rule_in: std_schemas.ExpertRuleUpdate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await std_crud.expert_rule.get(db=db, id=rule_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expert rule not found")
    return await std_crud.expert_rule.update(db=db, db_obj=db_obj, obj_in=rule_in, arq_redis_pool=_arq_pool(request))


@router.delete("/expert-rules/{rule_id}", response_model=std_schemas.ExpertRuleResponse, summary="전문가 규칙 비활성화 (Soft Delete)")
async def delete_expert_rule(
    request: Request,
    rule_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    db_obj = await std_crud.expert_rule.get(db=db, id=rule_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expert rule not found")
    return await std_crud.expert_rule.deactivate(db=db, db_obj=db_obj, arq_redis_pool=_arq_pool(request))
