# tests/factories.py

"""
테스트에서 사용하는 메모리 내 저장소와 모델 팩토리입니다.

판정/검증 서비스는 조회 객체를 생성자에서 주입받으므로, 아래 저장소를 넘기면
데이터베이스 없이 워크플로우 전체를 실행할 수 있습니다.
"""

from datetime import datetime, UTC
from typing import Dict, Iterable

from app.domains.usr import models as usr_models
from app.domains.std import models as std_models
from app.domains.lab import models as lab_models


# =============================================================================
# 1. 메모리 내 조회/저장 객체 (판정 서비스 주입용)
# =============================================================================
class InMemoryBreakpoints:
    """breakpoint_standard CRUD의 조회 메서드와 같은 시그니처를 가진 메모리 저장소"""

    def __init__(self, standards: Iterable[std_models.BreakpointStandard] = ()):
        self.standards = list(standards)
        self.reads = 0

    def add(self, standard: std_models.BreakpointStandard) -> std_models.BreakpointStandard:
        if standard.id is None:
            standard.id = len(self.standards) + 1
        self.standards.append(standard)
        return standard

    async def get(self, db, id: int):
        return next((s for s in self.standards if s.id == id), None)

    async def get_by_microorganism_and_drug(
        self, db, *, microorganism_id, drug_id, year=None, method=None, active_only=True
    ):
        self.reads += 1
        found = [
            s for s in self.standards
            if s.microorganism_id == microorganism_id
            and s.drug_id == drug_id
            and (not active_only or s.is_active)
            and (year is None or s.year == year)
            and (method is None or s.method == method)
        ]
        return sorted(found, key=lambda s: s.year, reverse=True)

    async def get_latest_by_microorganism_and_drug(self, db, *, microorganism_id, drug_id, method=None):
        found = await self.get_by_microorganism_and_drug(
            db, microorganism_id=microorganism_id, drug_id=drug_id, method=method
        )
        return found[0] if found else None

    async def get_historical_versions(self, db, *, microorganism_id, drug_id):
        return await self.get_by_microorganism_and_drug(
            db, microorganism_id=microorganism_id, drug_id=drug_id, active_only=False
        )


class InMemoryRules:
    def __init__(self, rules: Iterable[std_models.ExpertRule] = ()):
        self.rules = list(rules)
        self.reads = 0

    async def get_by_microorganism_and_drug(self, db, *, microorganism_id, drug_id, year=None):
        self.reads += 1
        return [
            r for r in self.rules
            if r.is_active
            and r.microorganism_id in (None, microorganism_id)
            and r.drug_id in (None, drug_id)
        ]


class InMemoryResults:
    """lab_result CRUD의 get/save/미확정 조회를 흉내 내는 메모리 저장소"""

    def __init__(self):
        self.items: Dict[int, lab_models.LabResult] = {}
        self.saves = 0

    async def get(self, db, id: int):
        return self.items.get(id)

    async def save(self, db, *, db_obj: lab_models.LabResult) -> lab_models.LabResult:
        if db_obj.id is None:
            db_obj.id = len(self.items) + 1
        db_obj.updated_at = datetime.now(UTC)
        self.items[db_obj.id] = db_obj
        self.saves += 1
        return db_obj

    async def get_unsettled_by_microorganism_and_drug(self, db, *, microorganism_id=None, drug_id=None):
        open_values = {s.value for s in lab_models.OPEN_STATUSES}
        return [
            r for r in self.items.values()
            if r.validation_status in open_values
            and (microorganism_id is None or r.microorganism_id == microorganism_id)
            and (drug_id is None or r.drug_id == drug_id)
        ]


# =============================================================================
# 2. 모델 팩토리
# =============================================================================
def make_standard(**overrides) -> std_models.BreakpointStandard:
    """디스크 확산법 2024 기준 (S >= 21, I 16-20)을 기본값으로 하는 판정 기준"""
    data = {
        "id": None,
        "microorganism_id": 1,
        "drug_id": 1,
        "year": 2024,
        "method": std_models.TestMethod.DISK_DIFFUSION,
        "susceptible_min": 21,
        "intermediate_min": 16,
        "intermediate_max": 20,
        "resistant_max": 15,
        "is_active": True,
    }
    data.update(overrides)
    return std_models.BreakpointStandard(**data)


def make_mic_standard(**overrides) -> std_models.BreakpointStandard:
    """MIC 2024 기준 (S <= 2, I 4, R >= 8)"""
    data = {
        "method": std_models.TestMethod.BROTH_MICRODILUTION,
        "susceptible_min": None,
        "intermediate_min": 4,
        "intermediate_max": 4,
        "resistant_max": None,
        "susceptible_max": 2,
        "resistant_min": 8,
    }
    data.update(overrides)
    return make_standard(**data)


def make_rule(**overrides) -> std_models.ExpertRule:
    data = {
        "id": None,
        "name": "Test rule",
        "rule_type": std_models.ExpertRuleType.REPORTING_GUIDANCE,
        "microorganism_id": None,
        "drug_id": None,
        "condition": "true",
        "action": "Rule applied",
        "priority": 0,
        "year": 2024,
        "is_active": True,
    }
    data.update(overrides)
    return std_models.ExpertRule(**data)


def make_lab_result(**overrides) -> lab_models.LabResult:
    data = {
        "sample_id": 1,
        "microorganism_id": 1,
        "drug_id": 1,
        "test_method": std_models.TestMethod.DISK_DIFFUSION.value,
        "raw_result": "25",
        "technician_id": 7,
    }
    data.update(overrides)
    return lab_models.LabResult(**data)


def make_user(role: usr_models.UserRole, user_id: int = 1, **overrides) -> usr_models.User:
    data = {
        "id": user_id,
        "username": f"{role.name.lower()}{user_id}",
        "password_hash": "not-used",
        "email": f"{role.name.lower()}{user_id}@example.com",
        "full_name": f"{role.name.title()} User",
        "role": role,
        "is_active": True,
    }
    data.update(overrides)
    return usr_models.User(**data)


