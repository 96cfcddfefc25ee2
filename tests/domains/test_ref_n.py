# tests/domains/test_ref_n.py

"""
'ref' 도메인 (미생물 및 항균제 기준 정보) API에 대한 테스트 모듈입니다.
"""

import pytest
from fastapi import status
from httpx import AsyncClient

from app.domains.ref import models as ref_models
from app.domains.usr import models as usr_models

from tests.factories import make_user


def test_microorganism_full_name():
    assert ref_models.Microorganism(genus="Escherichia", species="coli").full_name == "Escherichia coli"
    assert ref_models.Microorganism(genus="Candida").full_name == "Candida"


@pytest.mark.asyncio
async def test_create_drug_requires_admin(client: AsyncClient, override_user):
    override_user(make_user(usr_models.UserRole.MICROBIOLOGIST))

    response = await client.post("/api/v1/ref/drugs", json={"name": "Ampicillin", "code": "AMP"})

    assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# 미생물/항균제 CRUD (TEST_DATABASE_URL 필요)
# =============================================================================
@pytest.mark.asyncio
async def test_microorganism_lifecycle(admin_client: AsyncClient):
    response = await admin_client.post(
        "/api/v1/ref/microorganisms",
        json={"genus": "Staphylococcus", "species": "aureus", "organism_group": "Staphylococci"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    created = response.json()
    assert created["full_name"] == "Staphylococcus aureus"

    duplicate = await admin_client.post(
        "/api/v1/ref/microorganisms",
        json={"genus": "Staphylococcus", "species": "aureus", "organism_group": "Staphylococci"},
    )
    assert duplicate.status_code == status.HTTP_400_BAD_REQUEST

    found = await admin_client.get("/api/v1/ref/microorganisms", params={"search": "aure"})
    assert [m["id"] for m in found.json()] == [created["id"]]

    deactivated = await admin_client.delete(f"/api/v1/ref/microorganisms/{created['id']}")
    assert deactivated.json()["is_active"] is False

    active = await admin_client.get("/api/v1/ref/microorganisms", params={"search": "aure"})
    assert active.json() == []
    with_inactive = await admin_client.get(
        "/api/v1/ref/microorganisms", params={"search": "aure", "include_inactive": True}
    )
    assert len(with_inactive.json()) == 1


@pytest.mark.asyncio
async def test_drug_code_is_unique(admin_client: AsyncClient):
    first = await admin_client.post("/api/v1/ref/drugs", json={"name": "Ciprofloxacin", "code": "CIP"})
    assert first.status_code == status.HTTP_201_CREATED
    assert first.json()["category"] == "antibiotic"

    second = await admin_client.post("/api/v1/ref/drugs", json={"name": "Cipro", "code": "CIP"})
    assert second.status_code == status.HTTP_400_BAD_REQUEST
    assert second.json()["detail"] == "Drug with this code already exists"
