# tests/domains/test_lab_n.py

"""
'lab' 도메인 (검체 및 감수성 검사 결과)에 대한 테스트 모듈입니다.

- LabResultValidationService: 자동 판정(submit), 검토(review), 재개(reopen), 재판정, 일괄 검토
- API 엔드포인트: 상태 전이 오류(409), 존재하지 않는 결과(404), 역할 검사(403)
- ARQ 재판정 작업
- CRUD (TEST_DATABASE_URL 필요)
"""

from contextlib import asynccontextmanager

import pytest
from httpx import AsyncClient
from fastapi import HTTPException, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.main import app as main_app
from app.core.exceptions import IllegalTransitionError, InvalidInputError, NotFoundError
from app.domains.lab import crud as lab_crud
from app.domains.lab import schemas as lab_schemas
from app.domains.lab import tasks as lab_tasks
from app.domains.lab.models import Interpretation, SampleType, ValidationStatus
from app.domains.lab.services import LabResultValidationService, build_rule_context, get_validation_service
from app.domains.std.models import ExpertRuleType, TestMethod
from app.domains.usr import models as usr_models

from tests.factories import make_lab_result, make_mic_standard, make_rule, make_standard, make_user

REVIEWER_ID = 50


@pytest.fixture
def service(lab_fakes) -> LabResultValidationService:
    return LabResultValidationService(None, **lab_fakes)


async def _submitted(service: LabResultValidationService, **overrides):
    return await service.submit_result(make_lab_result(**overrides))


# =============================================================================
# 1. 자동 판정 (submit)
# =============================================================================
@pytest.mark.asyncio
async def test_submit_without_standard_requires_review(service):
    result = await _submitted(service)

    assert result.id is not None
    assert result.interpretation == Interpretation.NO_INTERPRETATION.value
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert result.breakpoint_used_id is None
    assert "No active breakpoint standard found" in result.validation_comments


@pytest.mark.asyncio
async def test_submit_with_standard_is_pending(service, lab_fakes):
    standard = lab_fakes["breakpoints"].add(make_standard())

    result = await _submitted(service, raw_result="25")

    assert result.interpretation == "S"
    assert result.validation_status == ValidationStatus.PENDING.value
    assert result.breakpoint_used_id == standard.id
    assert result.expert_rule_applied == []
    assert result.validation_comments is None


@pytest.mark.asyncio
async def test_submit_reads_standards_and_rules_once(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    await _submitted(service)

    assert lab_fakes["breakpoints"].reads == 1
    assert lab_fakes["rules"].reads == 1
    assert lab_fakes["results"].saves == 1


@pytest.mark.asyncio
async def test_submit_parses_qualified_mic(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_mic_standard())

    result = await _submitted(service, test_method=TestMethod.BROTH_MICRODILUTION.value, raw_result="<=0.25")

    assert result.interpretation == "S"
    assert result.validation_status == ValidationStatus.PENDING.value


@pytest.mark.asyncio
async def test_submit_uses_standard_of_matching_method(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_mic_standard(year=2025))
    disk = lab_fakes["breakpoints"].add(make_standard(year=2023))

    result = await _submitted(service, raw_result="18")

    assert result.breakpoint_used_id == disk.id
    assert result.interpretation == "I"


@pytest.mark.asyncio
async def test_submit_textual_result_is_not_tested(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())

    result = await _submitted(service, raw_result="Positive")

    assert result.interpretation == Interpretation.NOT_TESTED.value
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert "'Positive' is not numeric" in result.validation_comments


@pytest.mark.asyncio
async def test_submit_molecular_method_is_not_tested(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard(method=TestMethod.MOLECULAR))

    result = await _submitted(service, test_method=TestMethod.MOLECULAR.value, raw_result="1")

    assert result.interpretation == Interpretation.NOT_TESTED.value
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value


@pytest.mark.asyncio
async def test_submit_records_applied_rules_in_priority_order(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    lab_fakes["rules"].rules.extend([
        make_rule(id=11, priority=1, condition="interpretation == 'S'", action="Report as {interpretation}"),
        make_rule(id=12, priority=9, condition="test_value >= 25", action="Large zone {test_value}"),
        make_rule(id=13, priority=5, condition="interpretation == 'R'", action="never"),
        make_rule(id=14, priority=7, condition="unknown_field == 1", action="broken"),
    ])

    result = await _submitted(service, raw_result="25")

    assert result.expert_rule_applied == [12, 11]
    assert result.validation_comments == "Large zone 25; Report as S"
    assert result.validation_status == ValidationStatus.PENDING.value


@pytest.mark.asyncio
async def test_submit_quality_control_rule_forces_review(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    lab_fakes["rules"].rules.append(
        make_rule(
            id=21,
            rule_type=ExpertRuleType.QUALITY_CONTROL,
            condition="not quality_control_passed",
            action="QC failed on instrument {instrument_id}",
        )
    )

    result = await _submitted(service, raw_result="25", quality_control_passed=False, instrument_id="VITEK-2")

    assert result.interpretation == "S"
    assert result.expert_rule_applied == [21]
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert "QC failed on instrument VITEK-2" in result.validation_comments


@pytest.mark.asyncio
async def test_submit_resistance_rule_on_susceptible_suggests_resistant(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    lab_fakes["rules"].rules.append(
        make_rule(
            id=31,
            rule_type=ExpertRuleType.INTRINSIC_RESISTANCE,
            condition="interpretation == 'S'",
            action="Intrinsically resistant to this agent",
        )
    )

    result = await _submitted(service, raw_result="25")

    assert result.interpretation == "S"
    assert result.expert_rule_applied == [31]
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert result.validation_comments == (
        "Intrinsically resistant to this agent; Expert rules suggest R, confirm at review"
    )


@pytest.mark.asyncio
async def test_create_result_assigns_technician(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    obj_in = lab_schemas.LabResultCreate(
        sample_id=1, microorganism_id=1, drug_id=1, test_method=TestMethod.DISK_DIFFUSION, raw_result="12",
    )

    result = await service.create_result(obj_in, technician_id=33)

    assert result.technician_id == 33
    assert result.test_method == "disk_diffusion"
    assert result.interpretation == "R"
    assert result.quality_control_passed is True


def test_build_rule_context_fields():
    lab_result = make_lab_result(instrument_id="X1")
    context = build_rule_context(lab_result, Interpretation.SUSCEPTIBLE, 25.0, make_standard(year=2023))

    assert context["interpretation"] == "S"
    assert context["test_value"] == 25.0
    assert context["year"] == 2023
    assert context["instrument_id"] == "X1"
    assert context["quality_control_passed"] is True


# =============================================================================
# 2. 검토 / 재개 / 수정 상태 전이
# =============================================================================
@pytest.mark.asyncio
async def test_review_validates_pending_result(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service)

    reviewed = await service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED, comments="Checked")

    assert reviewed.validation_status == ValidationStatus.VALIDATED.value
    assert reviewed.reviewed_by_id == REVIEWER_ID
    assert reviewed.report_date is not None
    assert reviewed.validation_comments == "Checked"


@pytest.mark.asyncio
async def test_review_terminal_result_is_illegal(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service)
    await service.review_result(result, REVIEWER_ID, ValidationStatus.REJECTED)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED)
    assert exc_info.value.current == "rejected"
    assert exc_info.value.attempted == "review"


@pytest.mark.asyncio
async def test_review_rejects_non_decision_status(service):
    result = await _submitted(service)
    with pytest.raises(InvalidInputError):
        await service.review_result(result, REVIEWER_ID, ValidationStatus.PENDING)


@pytest.mark.asyncio
async def test_review_interpretation_override_is_noted(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service, raw_result="21")

    reviewed = await service.review_result(
        result, REVIEWER_ID, ValidationStatus.VALIDATED,
        comments="Borderline zone", interpretation_override=Interpretation.INTERMEDIATE,
    )

    assert reviewed.interpretation == "I"
    assert reviewed.validation_comments == "Interpretation overridden from S to I; Borderline zone"


@pytest.mark.asyncio
async def test_review_appends_to_existing_comments(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    lab_fakes["rules"].rules.append(
        make_rule(id=21, rule_type=ExpertRuleType.QUALITY_CONTROL, condition="not quality_control_passed",
                  action="QC failed")
    )
    result = await _submitted(service, quality_control_passed=False)

    reviewed = await service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED, comments="QC rerun passed")

    assert reviewed.validation_comments == "QC failed; QC rerun passed"


@pytest.mark.asyncio
async def test_resubmit_keeps_reviewer_override(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service, raw_result="21")
    await service.review_result(
        result, REVIEWER_ID, ValidationStatus.REQUIRES_REVIEW,
        comments="Borderline, confirm", interpretation_override=Interpretation.INTERMEDIATE,
    )

    resubmitted = await service.submit_result(result)

    assert resubmitted.interpretation == "I"
    assert resubmitted.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert resubmitted.validation_comments == (
        "Interpretation overridden from S to I; Borderline, confirm; "
        "Automated interpretation S differs from reviewed interpretation I"
    )


@pytest.mark.asyncio
async def test_reopen_then_review_again(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service)
    await service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED)

    reopened = await service.reopen_result(result, REVIEWER_ID + 1, "Wrong organism")

    assert reopened.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert reopened.validation_comments == "Reopened: Wrong organism"
    assert reopened.report_date is None
    assert reopened.reviewed_by_id == REVIEWER_ID + 1

    rejected = await service.review_result(reopened, REVIEWER_ID, ValidationStatus.REJECTED)
    assert rejected.validation_status == ValidationStatus.REJECTED.value


@pytest.mark.asyncio
async def test_reopen_open_result_is_illegal(service):
    result = await _submitted(service)
    with pytest.raises(IllegalTransitionError):
        await service.reopen_result(result, REVIEWER_ID, "nothing to reopen")


@pytest.mark.asyncio
async def test_submit_terminal_result_is_illegal(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service)
    await service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED)

    with pytest.raises(IllegalTransitionError):
        await service.submit_result(result)


@pytest.mark.asyncio
async def test_update_reinterprets_open_result(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service, raw_result="25")

    updated = await service.update_result(result, lab_schemas.LabResultUpdate(raw_result="10"))

    assert updated.raw_result == "10"
    assert updated.interpretation == "R"


@pytest.mark.asyncio
async def test_update_ignores_explicit_null_for_required_fields(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service, raw_result="25")

    updated = await service.update_result(result, lab_schemas.LabResultUpdate(raw_result=None, comments="note"))

    assert updated.raw_result == "25"
    assert updated.comments == "note"


@pytest.mark.asyncio
async def test_update_terminal_result_is_illegal(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service)
    await service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED)

    with pytest.raises(IllegalTransitionError):
        await service.update_result(result, lab_schemas.LabResultUpdate(raw_result="10"))


@pytest.mark.asyncio
async def test_get_result_not_found(service):
    with pytest.raises(NotFoundError):
        await service.get_result(404)


# =============================================================================
# 3. 재판정
# =============================================================================
@pytest.mark.asyncio
async def test_revalidate_pair_updates_only_unsettled_results(service, lab_fakes):
    first = await _submitted(service, raw_result="25")
    second = await _submitted(service, raw_result="10")
    settled = await _submitted(service, raw_result="18")
    other_pair = await _submitted(service, drug_id=2, raw_result="25")
    await service.review_result(settled, REVIEWER_ID, ValidationStatus.VALIDATED)

    lab_fakes["breakpoints"].add(make_standard())
    count = await service.revalidate_pair(microorganism_id=1, drug_id=1)

    assert count == 2
    assert first.interpretation == "S" and first.validation_status == ValidationStatus.PENDING.value
    assert second.interpretation == "R"
    assert settled.interpretation == Interpretation.NO_INTERPRETATION.value
    assert settled.validation_status == ValidationStatus.VALIDATED.value
    assert other_pair.interpretation == Interpretation.NO_INTERPRETATION.value


@pytest.mark.asyncio
async def test_revalidate_pair_preserves_reviewed_interpretation(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(service, raw_result="21")
    await service.review_result(
        result, REVIEWER_ID, ValidationStatus.REQUIRES_REVIEW,
        comments="Borderline, confirm", interpretation_override=Interpretation.INTERMEDIATE,
    )

    assert await service.revalidate_pair(microorganism_id=1, drug_id=1) == 1
    await service.revalidate_pair(microorganism_id=1, drug_id=1)

    assert result.interpretation == "I"
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    assert result.reviewed_by_id == REVIEWER_ID
    assert result.validation_comments == (
        "Interpretation overridden from S to I; Borderline, confirm; "
        "Automated interpretation S differs from reviewed interpretation I"
    )


# =============================================================================
# 4. 일괄 검토
# =============================================================================
@pytest.mark.asyncio
async def test_bulk_review_continues_after_failures(service, lab_fakes):
    lab_fakes["breakpoints"].add(make_standard())
    first = await _submitted(service)
    settled = await _submitted(service)
    second = await _submitted(service)
    await service.review_result(settled, REVIEWER_ID, ValidationStatus.REJECTED)

    outcome = await service.bulk_review_results(
        [first.id, settled.id, 999, second.id], REVIEWER_ID, comments="Batch approved"
    )

    assert outcome.successful == 2
    assert outcome.failed == 2
    assert outcome.errors == [
        f"Result {settled.id}: Cannot review a result in status 'rejected'",
        "Result 999: Lab result not found",
    ]
    assert first.validation_status == second.validation_status == ValidationStatus.VALIDATED.value
    assert first.validation_comments == "Batch approved"
    assert settled.validation_status == ValidationStatus.REJECTED.value


@pytest.mark.asyncio
async def test_revalidate_task_uses_task_session(monkeypatch):
    calls = []

    @asynccontextmanager
    async def fake_session_context():
        yield "task-session"

    class RecordingService:
        def __init__(self, db):
            calls.append(db)

        async def revalidate_pair(self, microorganism_id, drug_id):
            calls.append((microorganism_id, drug_id))
            return 3

    monkeypatch.setattr(lab_tasks, "get_async_session_context", fake_session_context)
    monkeypatch.setattr(lab_tasks, "LabResultValidationService", RecordingService)

    outcome = await lab_tasks.revalidate_lab_results_task({}, 1, 2)

    assert outcome == {"status": "ok", "updated_count": 3}
    assert calls == ["task-session", (1, 2)]


# =============================================================================
# 5. API 엔드포인트 (서비스 의존성 오버라이드)
# =============================================================================
@pytest.fixture
def api_service(service):
    main_app.dependency_overrides[get_validation_service] = lambda: service
    return service


@pytest.mark.asyncio
async def test_api_review_validated_result_returns_conflict(client: AsyncClient, api_service, lab_fakes, override_user):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(api_service)
    await api_service.review_result(result, REVIEWER_ID, ValidationStatus.VALIDATED)
    override_user(make_user(usr_models.UserRole.MICROBIOLOGIST, user_id=REVIEWER_ID))

    response = await client.post(f"/api/v1/lab/results/{result.id}/review", json={"decision": "rejected"})

    assert response.status_code == status.HTTP_409_CONFLICT
    body = response.json()
    assert body["code"] == "ILLEGAL_TRANSITION"
    assert body["details"]["current_status"] == "validated"


@pytest.mark.asyncio
async def test_api_review_and_reopen(client: AsyncClient, api_service, lab_fakes, override_user):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(api_service, raw_result="18")
    override_user(make_user(usr_models.UserRole.MICROBIOLOGIST, user_id=REVIEWER_ID))

    reviewed = await client.post(
        f"/api/v1/lab/results/{result.id}/review",
        json={"decision": "validated", "comments": "ok", "interpretation_override": "R"},
    )
    assert reviewed.status_code == status.HTTP_200_OK
    assert reviewed.json()["interpretation"] == "R"
    assert reviewed.json()["validation_status"] == "validated"
    assert reviewed.json()["reviewed_by_id"] == REVIEWER_ID

    reopened = await client.post(f"/api/v1/lab/results/{result.id}/reopen", json={"comments": "recheck"})
    assert reopened.status_code == status.HTTP_200_OK
    assert reopened.json()["validation_status"] == "requires_review"
    assert reopened.json()["report_date"] is None


@pytest.mark.asyncio
async def test_api_unknown_result_returns_not_found(client: AsyncClient, api_service, override_user):
    override_user(make_user(usr_models.UserRole.VIEWER))

    response = await client.get("/api/v1/lab/results/999")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_api_review_requires_reviewer_role(client: AsyncClient, api_service, override_user):
    result = await _submitted(api_service)
    override_user(make_user(usr_models.UserRole.LAB_TECHNICIAN))

    response = await client.post(f"/api/v1/lab/results/{result.id}/review", json={"decision": "validated"})

    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_api_resubmit_after_new_standard(client: AsyncClient, api_service, lab_fakes, override_user):
    result = await _submitted(api_service, raw_result="25")
    assert result.validation_status == ValidationStatus.REQUIRES_REVIEW.value
    lab_fakes["breakpoints"].add(make_standard())
    override_user(make_user(usr_models.UserRole.LAB_TECHNICIAN))

    response = await client.post(f"/api/v1/lab/results/{result.id}/submit")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["interpretation"] == "S"
    assert response.json()["validation_status"] == "pending"


@pytest.mark.asyncio
async def test_api_reopen_requires_comment(client: AsyncClient, api_service, override_user):
    result = await _submitted(api_service)
    override_user(make_user(usr_models.UserRole.MICROBIOLOGIST))

    response = await client.post(f"/api/v1/lab/results/{result.id}/reopen", json={"comments": ""})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
async def test_api_bulk_review(client: AsyncClient, api_service, lab_fakes, override_user):
    lab_fakes["breakpoints"].add(make_standard())
    result = await _submitted(api_service)
    override_user(make_user(usr_models.UserRole.MICROBIOLOGIST, user_id=REVIEWER_ID))

    response = await client.post(
        "/api/v1/lab/results/bulk-review", json={"result_ids": [result.id, 404], "decision": "rejected"}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "successful": 1,
        "failed": 1,
        "errors": ["Result 404: Lab result not found"],
    }
    assert result.validation_status == ValidationStatus.REJECTED.value
    assert result.reviewed_by_id == REVIEWER_ID


@pytest.mark.asyncio
async def test_api_bulk_review_requires_reviewer_role(client: AsyncClient, api_service, override_user):
    override_user(make_user(usr_models.UserRole.LAB_TECHNICIAN))

    response = await client.post("/api/v1/lab/results/bulk-review", json={"result_ids": [1]})

    assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# 6. CRUD (TEST_DATABASE_URL 필요)
# =============================================================================
@pytest.mark.asyncio
async def test_crud_sample_duplicate_barcode(db_session: AsyncSession):
    sample_in = lab_schemas.SampleCreate(
        patient_id="P-0001", sample_type=SampleType.BLOOD, collection_date="2024-05-01T08:00:00Z",
        specimen_source="Peripheral vein", barcode_id="BC-1",
    )
    created = await lab_crud.sample.create(db_session, obj_in=sample_in)
    assert created.status == "received"

    with pytest.raises(HTTPException) as exc_info:
        await lab_crud.sample.create(db_session, obj_in=sample_in)
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_crud_check_references_missing_sample(db_session: AsyncSession):
    with pytest.raises(HTTPException) as exc_info:
        await lab_crud.lab_result.check_references(db_session, sample_id=999999, microorganism_id=1, drug_id=1)
    assert exc_info.value.status_code == 404
