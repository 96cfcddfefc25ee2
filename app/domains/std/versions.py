# app/domains/std/versions.py

"""
판정 기준 버전 비교 모듈입니다.

하나의 미생물/항균제 조합에 대한 기준들을 시험 방법별로 묶고,
연속된 발행 연도 사이에서 바뀐 기준값을 변경 이력으로 정리합니다.
비활성 기준도 이력의 일부이므로 비교 대상에 포함합니다.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .interpretation import resolve_method, recency_key
from .models import BreakpointStandard, TestMethod
from .schemas import BreakpointChange, BreakpointComparison, BreakpointStandardResponse

# 비교 대상 기준값 필드와 변경 설명에 사용할 이름
BREAKPOINT_FIELDS: Dict[str, str] = {
    "susceptible_min": "Susceptible minimum (zone)",
    "intermediate_min": "Intermediate minimum",
    "intermediate_max": "Intermediate maximum",
    "resistant_max": "Resistant maximum (zone)",
    "susceptible_max": "Susceptible maximum (MIC)",
    "resistant_min": "Resistant minimum (MIC)",
}


def _format(value: Optional[float]) -> str:
    return "not set" if value is None else f"{value:g}"


def _describe(field: str, old: Optional[float], new: Optional[float], from_year: int, to_year: int) -> str:
    label = BREAKPOINT_FIELDS[field]
    if old is None:
        return f"{label} introduced in {to_year}: {_format(new)}"
    if new is None:
        return f"{label} removed in {to_year} (was {_format(old)} in {from_year})"
    return f"{label} changed from {_format(old)} ({from_year}) to {_format(new)} ({to_year})"


def diff_standards(older: BreakpointStandard, newer: BreakpointStandard) -> List[BreakpointChange]:
    """두 기준 사이에서 값이 달라진 필드마다 변경 항목 하나를 만듭니다. None은 모든 숫자와 다릅니다."""
    changes = []
    for field in BREAKPOINT_FIELDS:
        old, new = getattr(older, field), getattr(newer, field)
        if old != new:
            changes.append(
                BreakpointChange(
                    field=field,
                    old_value=old,
                    new_value=new,
                    from_year=older.year,
                    to_year=newer.year,
                    description=_describe(field, old, new, older.year, newer.year),
                )
            )
    return changes


def _one_per_year(standards: Iterable[BreakpointStandard]) -> List[BreakpointStandard]:
    """같은 연도의 기준이 여러 개이면 가장 마지막에 수정된 것만 남기고 연도 오름차순으로 정렬합니다."""
    by_year: Dict[int, BreakpointStandard] = {}
    for standard in standards:
        current = by_year.get(standard.year)
        if current is None or recency_key(standard) > recency_key(current):
            by_year[standard.year] = standard
    return [by_year[year] for year in sorted(by_year)]


def compare_versions(
    standards: Iterable[BreakpointStandard],
    method: Optional[TestMethod] = None,
) -> List[BreakpointComparison]:
    """
    시험 방법별 기준 목록(연도 내림차순)과 연도 간 변경 이력(연도 오름차순)을 반환합니다.

    Args:
        standards: 하나의 미생물/항균제 조합에 대한 모든 기준 (활성/비활성 포함)
        method: 지정하면 해당 시험 방법만 비교
    """
    groups: Dict[TestMethod, List[BreakpointStandard]] = defaultdict(list)
    for standard in standards:
        standard_method = resolve_method(standard.method)
        if method is not None and standard_method != method:
            continue
        groups[standard_method].append(standard)

    comparisons = []
    for group_method in sorted(groups, key=lambda m: m.value):
        chronological = _one_per_year(groups[group_method])
        changes = []
        for older, newer in zip(chronological, chronological[1:]):
            changes.extend(diff_standards(older, newer))
        comparisons.append(
            BreakpointComparison(
                method=group_method,
                standards=[BreakpointStandardResponse.model_validate(s) for s in reversed(chronological)],
                changes=changes,
            )
        )
    return comparisons
