# app/domains/lab/services.py

"""
검사 결과 검증 워크플로우 모듈입니다.

상태 전이:
    (신규) --submit--> PENDING | REQUIRES_REVIEW
    PENDING, REQUIRES_REVIEW --review--> VALIDATED | REJECTED | REQUIRES_REVIEW
    VALIDATED, REJECTED --reopen--> REQUIRES_REVIEW

submit은 조합의 활성 기준과 활성 규칙을 한 번씩만 읽어 판정과 규칙 평가를 수행하고,
판정/규칙/상태/의견을 한 번의 커밋으로 저장합니다. 기준이 없거나 판정할 수 없는 결과도
등록은 항상 성공하며, REQUIRES_REVIEW 상태와 설명 의견으로 기록됩니다.

검토자가 한 번이라도 다룬 결과(reviewed_by_id 존재)를 다시 판정하면 판정과 기존 의견은 유지되고,
자동 판정과 다른 점은 의견 뒤에 덧붙으며 상태는 REQUIRES_REVIEW가 됩니다.
"""

import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core import dependencies as deps
from app.core.exceptions import IllegalTransitionError, InvalidInputError, LisError, NotFoundError
from app.domains.std import crud as std_crud
from app.domains.std.interpretation import (
    interpret,
    parse_numeric_result,
    resolve_method,
    select_latest_standard,
)
from app.domains.std.models import BreakpointStandard, ExpertRuleType
from app.domains.std.rules import evaluate_rules, select_applicable_rules, summarize_evaluations
from app.domains.std.schemas import RuleEvaluationResult

from . import crud as lab_crud
from . import models as lab_models
from . import schemas as lab_schemas
from .models import Interpretation, ValidationStatus

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = frozenset({
    ValidationStatus.VALIDATED,
    ValidationStatus.REJECTED,
    ValidationStatus.REQUIRES_REVIEW,
})

# 수정 시 null을 허용하지 않는 원시 데이터 필드
_REQUIRED_RAW_FIELDS = ("test_method", "raw_result", "test_date", "quality_control_passed")


def _now() -> datetime:
    return datetime.now(UTC)


def _append_comments(existing: Optional[str], notes: List[str]) -> Optional[str]:
    """기존 검증 의견 뒤에 새 의견을 덧붙입니다. 이미 있는 의견은 다시 붙이지 않습니다."""
    parts = existing.split("; ") if existing else []
    parts.extend(note for note in notes if note and note not in parts)
    return "; ".join(parts) or None


def build_rule_context(
    lab_result: lab_models.LabResult,
    interpretation: Interpretation,
    test_value: Optional[float],
    standard: Optional[BreakpointStandard],
) -> Dict[str, Any]:
    """전문가 규칙 조건식에서 참조할 수 있는 필드"""
    return {
        "microorganism_id": lab_result.microorganism_id,
        "drug_id": lab_result.drug_id,
        "sample_id": lab_result.sample_id,
        "test_method": lab_result.test_method,
        "raw_result": lab_result.raw_result,
        "test_value": test_value,
        "interpretation": interpretation.value,
        "quality_control_passed": lab_result.quality_control_passed,
        "instrument_id": lab_result.instrument_id,
        "year": standard.year if standard is not None else _now().year,
    }


class LabResultValidationService:
    """
    검사 결과의 자동 판정(submit), 검토(review), 재개(reopen)를 담당합니다.

    Args:
        db: 요청 또는 작업 단위의 비동기 세션
        breakpoints: 판정 기준 조회 객체 (get_by_microorganism_and_drug)
        rules: 전문가 규칙 조회 객체 (get_by_microorganism_and_drug)
        results: 검사 결과 저장소 (get, save, get_unsettled_by_microorganism_and_drug)
    """

    def __init__(self, db: AsyncSession, *, breakpoints=None, rules=None, results=None):
        self.db = db
        self.breakpoints = breakpoints or std_crud.breakpoint_standard
        self.rules = rules or std_crud.expert_rule
        self.results = results or lab_crud.lab_result

    async def get_result(self, result_id: int) -> lab_models.LabResult:
        lab_result = await self.results.get(self.db, id=result_id)
        if lab_result is None:
            raise NotFoundError("Lab result not found", details={"id": result_id})
        return lab_result

    # -------------------------------------------------------------------------
    # 자동 판정 (submit)
    # -------------------------------------------------------------------------
    def _resolve_standard(
        self, lab_result: lab_models.LabResult, standards: List[BreakpointStandard]
    ) -> Tuple[Optional[BreakpointStandard], Optional[str]]:
        try:
            method = resolve_method(lab_result.test_method)
            return select_latest_standard(standards, method=method), None
        except (NotFoundError, InvalidInputError) as e:
            return None, f"{e.message} for test method '{lab_result.test_method}'"

    def _interpret(
        self, lab_result: lab_models.LabResult, standard: Optional[BreakpointStandard], test_value: Optional[float]
    ) -> Tuple[Interpretation, Optional[str]]:
        if standard is None:
            return Interpretation.NO_INTERPRETATION, None
        if test_value is None:
            return Interpretation.NOT_TESTED, f"Raw result '{lab_result.raw_result}' is not numeric and was not interpreted"
        try:
            return Interpretation(interpret(test_value, standard).value), None
        except InvalidInputError as e:
            return Interpretation.NOT_TESTED, e.message

    async def _apply_submission(self, lab_result: lab_models.LabResult) -> None:
        """판정 결과를 lab_result에 반영합니다. 저장은 호출자가 합니다."""
        if lab_result.id is not None:
            current = ValidationStatus(lab_result.validation_status)
            if current not in lab_models.OPEN_STATUSES:
                raise IllegalTransitionError(current.value, "submit", details={"id": lab_result.id})

        # 한 번의 제출에서 기준과 규칙은 각각 한 번만 읽습니다.
        standards = await self.breakpoints.get_by_microorganism_and_drug(
            self.db, microorganism_id=lab_result.microorganism_id, drug_id=lab_result.drug_id
        )
        candidates = await self.rules.get_by_microorganism_and_drug(
            self.db, microorganism_id=lab_result.microorganism_id, drug_id=lab_result.drug_id
        )

        comments: List[str] = []
        standard, missing_reason = self._resolve_standard(lab_result, standards)
        if missing_reason:
            comments.append(missing_reason)

        test_value = parse_numeric_result(lab_result.raw_result)
        interpretation, interpret_note = self._interpret(lab_result, standard, test_value)
        if interpret_note:
            comments.append(interpret_note)

        context = build_rule_context(lab_result, interpretation, test_value, standard)
        evaluations: List[RuleEvaluationResult] = evaluate_rules(
            select_applicable_rules(candidates, lab_result.microorganism_id, lab_result.drug_id), context
        )
        applied = [e for e in evaluations if e.applied]
        comments.extend(e.message for e in applied if e.message)
        qc_rule_fired = any(e.rule_type == ExpertRuleType.QUALITY_CONTROL for e in applied)

        summary = summarize_evaluations(evaluations, interpretation.value)
        if summary.suggested_interpretation != interpretation.value:
            comments.append(f"Expert rules suggest {summary.suggested_interpretation}, confirm at review")

        # 검토자가 다룬 결과의 판정과 의견은 검토자만 바꿉니다.
        reviewed = lab_result.reviewed_by_id is not None
        if reviewed and lab_result.interpretation and lab_result.interpretation != interpretation.value:
            comments.append(
                f"Automated interpretation {interpretation.value} differs from reviewed interpretation "
                f"{lab_result.interpretation}"
            )

        needs_review = (
            reviewed
            or standard is None
            or interpretation in (Interpretation.NOT_TESTED, Interpretation.NO_INTERPRETATION)
            or qc_rule_fired
            or not summary.is_valid
        )

        if not reviewed or not lab_result.interpretation:
            lab_result.interpretation = interpretation.value
        lab_result.breakpoint_used_id = standard.id if standard is not None else None
        lab_result.expert_rule_applied = [e.rule_id for e in applied]
        lab_result.validation_status = (
            ValidationStatus.REQUIRES_REVIEW.value if needs_review else ValidationStatus.PENDING.value
        )
        if reviewed:
            lab_result.validation_comments = _append_comments(lab_result.validation_comments, comments)
        else:
            lab_result.validation_comments = "; ".join(comments) or None

        logger.info(
            "검사 결과 자동 판정: id=%s interpretation=%s status=%s rules=%s",
            lab_result.id, lab_result.interpretation, lab_result.validation_status, lab_result.expert_rule_applied,
        )

    async def submit_result(self, lab_result: lab_models.LabResult) -> lab_models.LabResult:
        """
        기준 판정과 전문가 규칙 평가를 수행하고 결과를 저장합니다.

        Raises:
            IllegalTransitionError: 결과가 VALIDATED 또는 REJECTED 상태인 경우
        """
        await self._apply_submission(lab_result)
        return await self.results.save(self.db, db_obj=lab_result)

    async def create_result(self, obj_in: lab_schemas.LabResultCreate, technician_id: int) -> lab_models.LabResult:
        """새 결과를 만들고 같은 커밋 안에서 자동 판정합니다."""
        data = obj_in.model_dump(exclude={"test_method"}, exclude_none=True)
        lab_result = lab_models.LabResult(
            **data, test_method=obj_in.test_method.value, technician_id=technician_id
        )
        return await self.submit_result(lab_result)

    async def update_result(
        self, lab_result: lab_models.LabResult, obj_in: lab_schemas.LabResultUpdate
    ) -> lab_models.LabResult:
        """
        미확정 결과의 원시 데이터를 수정하고 다시 판정합니다.

        Raises:
            IllegalTransitionError: 결과가 VALIDATED 또는 REJECTED 상태인 경우
        """
        current = ValidationStatus(lab_result.validation_status)
        if current in lab_models.TERMINAL_STATUSES:
            raise IllegalTransitionError(current.value, "update", details={"id": lab_result.id})

        update_data = obj_in.model_dump(exclude_unset=True)
        for key in _REQUIRED_RAW_FIELDS:
            if key in update_data and update_data[key] is None:
                del update_data[key]
        for key, value in update_data.items():
            setattr(lab_result, key, getattr(value, "value", value))
        return await self.submit_result(lab_result)

    async def revalidate_pair(
        self, microorganism_id: Optional[int] = None, drug_id: Optional[int] = None
    ) -> int:
        """기준 또는 규칙 변경 후, 해당 조합의 미확정 결과를 모두 다시 판정합니다. 검토자의 판정은 유지됩니다."""
        unsettled = await self.results.get_unsettled_by_microorganism_and_drug(
            self.db, microorganism_id=microorganism_id, drug_id=drug_id
        )
        for lab_result in unsettled:
            await self.submit_result(lab_result)
        return len(unsettled)

    # -------------------------------------------------------------------------
    # 검토 (review) / 재개 (reopen)
    # -------------------------------------------------------------------------
    async def review_result(
        self,
        lab_result: lab_models.LabResult,
        reviewer_id: int,
        decision: ValidationStatus,
        comments: Optional[str] = None,
        interpretation_override: Optional[Interpretation] = None,
    ) -> lab_models.LabResult:
        """
        검토 결정을 기록합니다.

        Raises:
            InvalidInputError: decision이 validated/rejected/requires_review가 아닌 경우
            IllegalTransitionError: 결과가 PENDING 또는 REQUIRES_REVIEW 상태가 아닌 경우
        """
        decision = ValidationStatus(decision)
        if decision not in REVIEW_DECISIONS:
            raise InvalidInputError(
                f"'{decision.value}' is not a review decision",
                details={"allowed": sorted(d.value for d in REVIEW_DECISIONS)},
            )
        current = ValidationStatus(lab_result.validation_status)
        if current not in lab_models.OPEN_STATUSES:
            raise IllegalTransitionError(current.value, "review", details={"id": lab_result.id})

        notes = []
        if interpretation_override is not None:
            override = Interpretation(interpretation_override)
            if override.value != lab_result.interpretation:
                notes.append(f"Interpretation overridden from {lab_result.interpretation} to {override.value}")
                lab_result.interpretation = override.value
        if comments:
            notes.append(comments)

        lab_result.reviewed_by_id = reviewer_id
        lab_result.validation_comments = _append_comments(lab_result.validation_comments, notes)
        lab_result.report_date = _now()
        lab_result.validation_status = decision.value
        return await self.results.save(self.db, db_obj=lab_result)

    async def bulk_review_results(
        self,
        result_ids: List[int],
        reviewer_id: int,
        decision: ValidationStatus = ValidationStatus.VALIDATED,
        comments: Optional[str] = None,
    ) -> lab_schemas.BulkReviewResponse:
        """
        여러 결과에 같은 검토 결정을 기록합니다.
        결과마다 따로 저장하며, 한 결과의 실패는 나머지 결과의 검토를 막지 않습니다.
        """
        response = lab_schemas.BulkReviewResponse(successful=0, failed=0)
        for result_id in result_ids:
            try:
                lab_result = await self.get_result(result_id)
                await self.review_result(lab_result, reviewer_id, decision, comments=comments)
            except LisError as e:
                response.failed += 1
                response.errors.append(f"Result {result_id}: {e.message}")
                continue
            response.successful += 1
        logger.info(
            "검사 결과 일괄 검토: reviewer=%s decision=%s successful=%d failed=%d",
            reviewer_id, ValidationStatus(decision).value, response.successful, response.failed,
        )
        return response

    async def reopen_result(self, lab_result: lab_models.LabResult, reviewer_id: int, comments: str) -> lab_models.LabResult:
        """
        종결된 결과를 REQUIRES_REVIEW로 되돌립니다.

        Raises:
            IllegalTransitionError: 결과가 VALIDATED 또는 REJECTED 상태가 아닌 경우
        """
        current = ValidationStatus(lab_result.validation_status)
        if current not in lab_models.TERMINAL_STATUSES:
            raise IllegalTransitionError(current.value, "reopen", details={"id": lab_result.id})

        lab_result.validation_status = ValidationStatus.REQUIRES_REVIEW.value
        lab_result.reviewed_by_id = reviewer_id
        lab_result.validation_comments = _append_comments(lab_result.validation_comments, [f"Reopened: {comments}"])
        lab_result.report_date = None
        return await self.results.save(self.db, db_obj=lab_result)


def get_validation_service(db: AsyncSession = Depends(deps.get_db_session)) -> LabResultValidationService:
    """FastAPI 의존성: 요청 세션에 묶인 LabResultValidationService"""
    return LabResultValidationService(db)
