# app/domains/std/interpretation.py

"""
감수성 판정 엔진 모듈입니다.

측정값(디스크 확산법의 억제대 직경 또는 MIC)과 판정 기준(BreakpointStandard)을 받아
S/I/R 판정을 내리는 순수 함수들로 구성되며, 데이터베이스나 HTTP 계층에 의존하지 않습니다.

- 디스크 확산법: 직경이 클수록 감수성. `value >= susceptible_min` 이면 S.
- MIC 계열 방법: 농도가 낮을수록 감수성. `value <= susceptible_max` 이면 S.
- 두 경우 모두 중간 구간(`intermediate_min <= value <= intermediate_max`)에 속하면 I,
  그 외에는 R 로 판정합니다.
- 기준값이 비어 있으면(None) 해당 기준은 적용하지 않습니다. 0은 유효한 기준값입니다.
"""

import math
import re
from datetime import datetime, UTC
from typing import Any, Iterable, List, Optional

from app.core.exceptions import InvalidInputError, NotFoundError

from .models import BreakpointStandard, MIC_METHODS, TestMethod, ZONE_METHODS
from .schemas import ConfidenceLevel, InterpretationResult, SensitivityResult

# 보고 시 측정값 앞에 붙는 한정자 (예: "<=0.25", ">16", "≥ 32")
_QUALIFIER_PATTERN = re.compile(r"^\s*(<=|>=|≤|≥|<|>|=)?\s*(.+?)\s*$")

_EPOCH = datetime.min.replace(tzinfo=UTC)

INTERMEDIATE_CAUTION = (
    "Intermediate result: clinical efficacy depends on dosage and site of infection; "
    "consider an alternative agent or confirmatory testing."
)


def resolve_method(method: Any) -> TestMethod:
    """DB에서 문자열로 읽힌 시험 방법을 Enum으로 정규화합니다."""
    try:
        return TestMethod(method)
    except ValueError:
        raise InvalidInputError(f"Unknown test method '{method}'", details={"method": str(method)})


def parse_numeric_result(raw: Any) -> Optional[float]:
    """
    원시 측정값을 숫자로 변환합니다.

    숫자 또는 숫자 문자열(한정자 `<=`, `>=`, `<`, `>`, `≤`, `≥`, `=` 허용)이면 float를,
    "Positive" 같은 텍스트 결과나 NaN/무한대이면 None을 반환합니다.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        match = _QUALIFIER_PATTERN.match(str(raw))
        if not match:
            return None
        try:
            value = float(match.group(2))
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def _require_finite(raw_value: Any) -> float:
    if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
        raise InvalidInputError("Measurement value must be a number", details={"value": repr(raw_value)})
    value = float(raw_value)
    if not math.isfinite(value):
        raise InvalidInputError("Measurement value must be finite", details={"value": repr(raw_value)})
    return value


def _in_intermediate_range(value: float, standard: BreakpointStandard) -> bool:
    low, high = standard.intermediate_min, standard.intermediate_max
    return low is not None and high is not None and low <= value <= high


def interpret(raw_value: float, standard: BreakpointStandard) -> SensitivityResult:
    """
    측정값 하나를 판정 기준 하나로 판정합니다.

    Raises:
        InvalidInputError: 측정값이 유한한 숫자가 아니거나, 시험 방법이 수치 판정을 지원하지 않는 경우
    """
    value = _require_finite(raw_value)
    method = resolve_method(standard.method)

    if method in ZONE_METHODS:
        if standard.susceptible_min is not None and value >= standard.susceptible_min:
            return SensitivityResult.SUSCEPTIBLE
    elif method in MIC_METHODS:
        if standard.susceptible_max is not None and value <= standard.susceptible_max:
            return SensitivityResult.SUSCEPTIBLE
    else:
        raise InvalidInputError(
            f"Test method '{method.value}' has no numeric interpretation",
            details={"method": method.value},
        )

    if _in_intermediate_range(value, standard):
        return SensitivityResult.INTERMEDIATE
    # 어느 구간에도 속하지 않으면 보수적으로 내성 판정
    return SensitivityResult.RESISTANT


def _grade_margin(margin: float) -> ConfidenceLevel:
    if margin >= 3:
        return ConfidenceLevel.HIGH
    if margin >= 1:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _first_defined(*values: Optional[float]) -> Optional[float]:
    return next((v for v in values if v is not None), None)


def calculate_confidence(
    value: float, result: SensitivityResult, standard: BreakpointStandard
) -> ConfidenceLevel:
    """
    판정 경계로부터의 거리로 신뢰도를 계산합니다.

    - 디스크 확산법: 경계와의 차이(mm)가 3 이상이면 high, 1 이상이면 medium.
    - MIC: S는 `value / susceptible_max` 비율이 0.5 이하 high, 0.8 이하 medium,
      R은 `value / intermediate_max` 비율이 2 이상 high, 1.5 이상 medium.
    - I 판정은 항상 low 입니다.
    """
    if result == SensitivityResult.INTERMEDIATE:
        return ConfidenceLevel.LOW

    method = resolve_method(standard.method)

    if method in ZONE_METHODS:
        if result == SensitivityResult.SUSCEPTIBLE:
            return _grade_margin(value - standard.susceptible_min)
        reference = _first_defined(standard.intermediate_min, standard.susceptible_min)
        if reference is None:
            return ConfidenceLevel.MEDIUM
        return _grade_margin(reference - value)

    if method in MIC_METHODS:
        if result == SensitivityResult.SUSCEPTIBLE:
            if standard.susceptible_max <= 0:
                return ConfidenceLevel.LOW
            ratio = value / standard.susceptible_max
            if ratio <= 0.5:
                return ConfidenceLevel.HIGH
            if ratio <= 0.8:
                return ConfidenceLevel.MEDIUM
            return ConfidenceLevel.LOW
        reference = _first_defined(standard.intermediate_max, standard.susceptible_max)
        if reference is None:
            return ConfidenceLevel.MEDIUM
        if reference <= 0:
            return ConfidenceLevel.LOW
        ratio = value / reference
        if ratio >= 2:
            return ConfidenceLevel.HIGH
        if ratio >= 1.5:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    return ConfidenceLevel.MEDIUM


def build_interpretation_notes(
    value: float, result: SensitivityResult, standard: BreakpointStandard
) -> List[str]:
    notes = []
    if standard.notes:
        notes.append(standard.notes)
    if result == SensitivityResult.INTERMEDIATE:
        notes.append(INTERMEDIATE_CAUTION)

    method = resolve_method(standard.method)
    if method in ZONE_METHODS:
        notes.append(f"Zone diameter: {value:g} mm")
    else:
        notes.append(f"MIC: {value:g} µg/mL")
    notes.append(f"Interpreted with {standard.year} breakpoints")
    return notes


def interpret_with_details(raw_value: float, standard: BreakpointStandard) -> InterpretationResult:
    """판정 결과에 신뢰도와 설명 메모를 덧붙여 반환합니다."""
    result = interpret(raw_value, standard)
    value = float(raw_value)
    return InterpretationResult(
        result=result,
        confidence=calculate_confidence(value, result, standard),
        notes=build_interpretation_notes(value, result, standard),
        value=value,
        method=resolve_method(standard.method),
        breakpoint_standard_id=standard.id,
        breakpoint_year=standard.year,
    )


# =============================================================================
# 기준 선택 (Breakpoint Resolution)
# =============================================================================
def recency_key(standard: BreakpointStandard):
    return (standard.year, standard.updated_at or _EPOCH, standard.id or 0)


def select_latest_standard(
    standards: Iterable[BreakpointStandard],
    method: Optional[TestMethod] = None,
    year: Optional[int] = None,
) -> BreakpointStandard:
    """
    활성 기준 중 가장 최근 연도(동일 연도는 마지막으로 수정된 것)를 선택합니다.

    Args:
        standards: 하나의 미생물/항균제 조합에 대한 기준 목록
        method: 지정하면 해당 시험 방법의 기준만 고려
        year: 지정하면 해당 연도의 기준만 고려

    Raises:
        NotFoundError: 조건을 만족하는 활성 기준이 없는 경우
    """
    candidates = [
        s for s in standards
        if s.is_active
        and (method is None or s.method == method)
        and (year is None or s.year == year)
    ]
    if not candidates:
        details = {"method": getattr(method, "value", method), "year": year}
        raise NotFoundError("No active breakpoint standard found", details=details)
    return max(candidates, key=recency_key)
