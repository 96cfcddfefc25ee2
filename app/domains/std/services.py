# app/domains/std/services.py

"""
판정 기준 조회와 판정 엔진을 연결하는 서비스 모듈입니다.

순수 함수로 구성된 판정 엔진(interpretation, versions, rules)에
데이터베이스 조회(crud)를 결합하여 API와 검사 결과 검증 워크플로우에 제공합니다.
조회 객체(breakpoints, rules)는 생성자에서 교체할 수 있습니다.
"""

from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core import dependencies as deps
from app.core.exceptions import NotFoundError

from . import crud as std_crud
from . import interpretation, versions
from .rules import evaluate_rules, select_applicable_rules, summarize_evaluations
from .models import BreakpointStandard, TestMethod
from .schemas import BreakpointComparison, InterpretationResult, ResultValidationSummary, RuleEvaluationResult


class InterpretationService:

    def __init__(self, db: AsyncSession, *, breakpoints=None, rules=None):
        self.db = db
        self.breakpoints = breakpoints or std_crud.breakpoint_standard
        self.rules = rules or std_crud.expert_rule

    async def find_latest_breakpoint(
        self, microorganism_id: int, drug_id: int, method: TestMethod
    ) -> BreakpointStandard:
        """
        조합과 시험 방법에 대한 최신 활성 기준을 반환합니다.

        Raises:
            NotFoundError: 활성 기준이 없는 경우
        """
        standard = await self.breakpoints.get_latest_by_microorganism_and_drug(
            self.db, microorganism_id=microorganism_id, drug_id=drug_id, method=method
        )
        if standard is None:
            raise NotFoundError(
                "No active breakpoint standard found",
                details={"microorganism_id": microorganism_id, "drug_id": drug_id, "method": TestMethod(method).value},
            )
        return standard

    async def find_breakpoint(
        self, microorganism_id: int, drug_id: int, method: TestMethod, year: Optional[int] = None
    ) -> BreakpointStandard:
        """연도를 지정하면 해당 연도의 활성 기준을, 아니면 최신 기준을 반환합니다."""
        if year is None:
            return await self.find_latest_breakpoint(microorganism_id, drug_id, method)
        standards = await self.breakpoints.get_by_microorganism_and_drug(
            self.db, microorganism_id=microorganism_id, drug_id=drug_id, year=year
        )
        return interpretation.select_latest_standard(standards, method=method, year=year)

    async def interpret_for(
        self,
        microorganism_id: int,
        drug_id: int,
        method: TestMethod,
        value: float,
        year: Optional[int] = None,
    ) -> InterpretationResult:
        standard = await self.find_breakpoint(microorganism_id, drug_id, method, year)
        return interpretation.interpret_with_details(value, standard)

    async def interpret_with_standard(self, standard_id: int, value: float) -> InterpretationResult:
        standard = await self.breakpoints.get(self.db, id=standard_id)
        if standard is None:
            raise NotFoundError("Breakpoint standard not found", details={"id": standard_id})
        return interpretation.interpret_with_details(value, standard)

    async def compare_breakpoint_versions(
        self, microorganism_id: int, drug_id: int, method: Optional[TestMethod] = None
    ) -> List[BreakpointComparison]:
        standards = await self.breakpoints.get_historical_versions(
            self.db, microorganism_id=microorganism_id, drug_id=drug_id
        )
        return versions.compare_versions(standards, method=method)

    async def evaluate_rules_for(
        self, microorganism_id: int, drug_id: int, context: Dict[str, Any]
    ) -> List[RuleEvaluationResult]:
        candidates = await self.rules.get_by_microorganism_and_drug(
            self.db, microorganism_id=microorganism_id, drug_id=drug_id
        )
        return evaluate_rules(select_applicable_rules(candidates, microorganism_id, drug_id), context)

    async def validate_result_for(
        self, microorganism_id: int, drug_id: int, interpretation: str, context: Dict[str, Any]
    ) -> ResultValidationSummary:
        """판정을 컨텍스트에 넣고 규칙을 평가한 뒤 오류/경고/권고로 분류합니다."""
        evaluations = await self.evaluate_rules_for(
            microorganism_id, drug_id, {**context, "interpretation": interpretation}
        )
        return summarize_evaluations(evaluations, interpretation)


def get_interpretation_service(db: AsyncSession = Depends(deps.get_db_session)) -> InterpretationService:
    """FastAPI 의존성: 요청 세션에 묶인 InterpretationService"""
    return InterpretationService(db)
