# app/domains/std/schemas.py

"""
'std' 도메인 (판정 기준 및 전문가 규칙)의 Pydantic 스키마를 정의하는 모듈입니다.

CRUD 요청/응답 스키마 외에도 판정 엔진, 기준 버전 비교기, 전문가 규칙 평가기의
결과 형식을 함께 정의합니다.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field as PydanticField, model_validator

from .models import ExpertRuleType, TestMethod


class SensitivityResult(str, Enum):
    """감수성 판정 결과"""
    SUSCEPTIBLE = "S"
    INTERMEDIATE = "I"
    RESISTANT = "R"


class ConfidenceLevel(str, Enum):
    """판정 신뢰도 (측정값이 판정 경계에서 얼마나 떨어져 있는지)"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# 1. 판정 기준 (BreakpointStandard) 스키마
# =============================================================================
class BreakpointStandardBase(BaseModel):
    microorganism_id: int = PydanticField(description="미생물 ID")
    drug_id: int = PydanticField(description="항균제 ID")
    year: int = PydanticField(ge=1900, le=2100, description="기준 발행 연도")
    method: TestMethod = PydanticField(description="시험 방법")
    susceptible_min: Optional[float] = PydanticField(default=None, description="감수성(S) 최소 억제대 직경 (mm)")
    intermediate_min: Optional[float] = PydanticField(default=None, description="중간(I) 구간 하한")
    intermediate_max: Optional[float] = PydanticField(default=None, description="중간(I) 구간 상한")
    resistant_max: Optional[float] = PydanticField(default=None, description="내성(R) 최대 억제대 직경 (mm)")
    susceptible_max: Optional[float] = PydanticField(default=None, description="감수성(S) 최대 MIC (µg/mL)")
    resistant_min: Optional[float] = PydanticField(default=None, description="내성(R) 최소 MIC (µg/mL)")
    notes: Optional[str] = PydanticField(default=None, description="판정 시 참고 사항")
    source_document: Optional[str] = PydanticField(default=None, max_length=255, description="출처 문서")
    is_active: bool = PydanticField(default=True, description="활성 여부")


class BreakpointStandardCreate(BreakpointStandardBase):

    @model_validator(mode="after")
    def check_intermediate_range(self) -> "BreakpointStandardCreate":
        if (
            self.intermediate_min is not None
            and self.intermediate_max is not None
            and self.intermediate_min > self.intermediate_max
        ):
            raise ValueError("intermediate_min must not be greater than intermediate_max")
        return self


class BreakpointStandardUpdate(BaseModel):
    year: Optional[int] = PydanticField(None, ge=1900, le=2100)
    method: Optional[TestMethod] = None
    susceptible_min: Optional[float] = None
    intermediate_min: Optional[float] = None
    intermediate_max: Optional[float] = None
    resistant_max: Optional[float] = None
    susceptible_max: Optional[float] = None
    resistant_min: Optional[float] = None
    notes: Optional[str] = None
    source_document: Optional[str] = PydanticField(None, max_length=255)
    is_active: Optional[bool] = None


class BreakpointStandardResponse(BreakpointStandardBase):
    id: int = PydanticField(description="판정 기준 고유 ID")
    created_at: datetime = PydanticField(description="레코드 생성 일시")
    updated_at: datetime = PydanticField(description="레코드 마지막 업데이트 일시")

    class Config:
        from_attributes = True


# =============================================================================
# 2. 판정 (Interpretation) 스키마
# =============================================================================
class InterpretationRequest(BaseModel):
    """미생물/항균제/시험 방법으로 최신 기준을 찾아 판정하는 요청"""
    microorganism_id: int
    drug_id: int
    method: TestMethod
    value: float = PydanticField(description="측정값 (억제대 직경 mm 또는 MIC µg/mL)")
    year: Optional[int] = PydanticField(None, description="특정 연도 기준으로 판정할 경우 지정")


class InterpretationValueRequest(BaseModel):
    """특정 기준(ID)으로 판정하는 요청"""
    value: float


class InterpretationResult(BaseModel):
    """판정 결과와 판정 근거"""
    result: SensitivityResult
    confidence: ConfidenceLevel
    notes: List[str] = PydanticField(default_factory=list)
    value: float
    method: TestMethod
    breakpoint_standard_id: Optional[int] = None
    breakpoint_year: int


# =============================================================================
# 3. 기준 버전 비교 (Version Comparison) 스키마
# =============================================================================
class BreakpointChange(BaseModel):
    """연속된 두 발행 연도 사이에서 변경된 기준값 하나"""
    field: str
    old_value: Optional[float] = None
    new_value: Optional[float] = None
    from_year: int
    to_year: int
    description: str


class BreakpointComparison(BaseModel):
    """시험 방법 하나에 대한 연도별 기준 목록과 변경 이력"""
    method: TestMethod
    standards: List[BreakpointStandardResponse] = PydanticField(description="연도 내림차순")
    changes: List[BreakpointChange] = PydanticField(description="연도 오름차순")


class AvailableYearsResponse(BaseModel):
    years: List[int]


# =============================================================================
# 4. 전문가 규칙 (ExpertRule) 스키마
# =============================================================================
class ExpertRuleBase(BaseModel):
    name: str = PydanticField(max_length=200, description="규칙명")
    description: Optional[str] = PydanticField(default=None, description="규칙 설명")
    rule_type: ExpertRuleType = PydanticField(description="규칙 유형")
    microorganism_id: Optional[int] = PydanticField(default=None, description="적용 대상 미생물 ID (없으면 전체)")
    drug_id: Optional[int] = PydanticField(default=None, description="적용 대상 항균제 ID (없으면 전체)")
    condition: str = PydanticField(min_length=1, description="조건식")
    action: str = PydanticField(min_length=1, description="조치 메시지 템플릿")
    priority: int = PydanticField(default=0, description="우선순위 (클수록 먼저 평가)")
    year: int = PydanticField(ge=1900, le=2100, description="규칙 발행 연도")
    source_reference: Optional[str] = PydanticField(default=None, max_length=255)
    notes: Optional[str] = None
    is_active: bool = True


class ExpertRuleCreate(ExpertRuleBase):
    pass


class ExpertRuleUpdate(BaseModel):
    name: Optional[str] = PydanticField(None, max_length=200)
    description: Optional[str] = None
    rule_type: Optional[ExpertRuleType] = None
    microorganism_id: Optional[int] = None
    drug_id: Optional[int] = None
    condition: Optional[str] = PydanticField(None, min_length=1)
    action: Optional[str] = PydanticField(None, min_length=1)
    priority: Optional[int] = None
    year: Optional[int] = PydanticField(None, ge=1900, le=2100)
    source_reference: Optional[str] = PydanticField(None, max_length=255)
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class ExpertRuleResponse(ExpertRuleBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RuleEvaluationRequest(BaseModel):
    """미생물/항균제에 적용되는 활성 규칙을 주어진 컨텍스트로 평가하는 요청"""
    microorganism_id: int
    drug_id: int
    context: Dict[str, Any] = PydanticField(default_factory=dict, description="조건식에서 참조할 필드 값")


class RuleEvaluationResult(BaseModel):
    """규칙 하나의 평가 결과"""
    rule_id: Optional[int] = None
    rule_name: str
    rule_type: ExpertRuleType
    priority: int
    applied: bool
    message: Optional[str] = PydanticField(None, description="적용된 경우 치환된 조치 메시지")
    error: Optional[str] = PydanticField(None, description="평가 실패 사유 (실패한 규칙은 적용되지 않은 것으로 처리)")
    confidence: Optional[ConfidenceLevel] = PydanticField(None, description="적용된 경우 규칙 유형별 신뢰도")
    recommendation: Optional[str] = PydanticField(None, description="적용된 경우 규칙 유형별 후속 조치 권고")


class RuleValidationRequest(RuleEvaluationRequest):
    """판정 결과를 규칙 평가 결과로 검증하는 요청. 판정은 context의 interpretation보다 우선합니다."""
    interpretation: SensitivityResult


class ResultValidationSummary(BaseModel):
    """
    적용된 규칙을 유형별로 분류한 검증 요약.
    suggested_interpretation은 제안일 뿐이며 저장된 판정을 바꾸지 않습니다.
    """
    interpretation: str
    is_valid: bool
    errors: List[str] = PydanticField(default_factory=list, description="내성 규칙이 S 판정과 충돌하는 경우")
    warnings: List[str] = PydanticField(default_factory=list)
    recommendations: List[str] = PydanticField(default_factory=list)
    suggested_interpretation: str
    triggered_rules: List[RuleEvaluationResult] = PydanticField(default_factory=list)


class ConditionValidationRequest(BaseModel):
    condition: str


class ConditionValidationResponse(BaseModel):
    valid: bool
    fields: List[str] = PydanticField(default_factory=list, description="조건식이 참조하는 필드명")
    error: Optional[str] = None


class ExpertRuleStatistics(BaseModel):
    total: int
    active: int
    by_type: Dict[str, int]
    by_year: Dict[int, int]
