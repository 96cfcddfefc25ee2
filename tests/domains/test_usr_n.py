# tests/domains/test_usr_n.py

"""
'usr' 도메인 (사용자 관리 및 인증) 관련 기능에 대한 테스트 모듈입니다.

- 토큰 발급/검증, 비밀번호 해싱 등 보안 유틸리티
- 역할 기반 권한 의존성
- 인증 및 사용자 관리 API (일부는 TEST_DATABASE_URL 필요)
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException, status
from httpx import AsyncClient

from app.core import dependencies as deps
from app.core import security
from app.main import app as main_app
from app.domains.usr import models as usr_models

from tests.factories import make_user


# =============================================================================
# 1. 보안 유틸리티 테스트
# =============================================================================
def test_access_token_round_trip_subject():
    token = security.create_access_token(data={"sub": "labtech"})
    assert security.decode_token_subject(token) == "labtech"


def test_refresh_token_carries_subject():
    token = security.create_refresh_token(data={"sub": "microbio"})
    assert security.decode_token_subject(token) == "microbio"


def test_tampered_token_is_rejected():
    token = security.create_access_token(data={"sub": "labtech"})
    assert security.decode_token_subject(token.rsplit(".", 1)[0] + ".invalid-signature") is None


def test_expired_token_is_rejected():
    token = security.create_access_token(data={"sub": "labtech"}, expires_delta=timedelta(minutes=-5))
    assert security.decode_token_subject(token) is None


def test_password_hash_and_verify():
    hashed = security.get_password_hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert security.verify_password("s3cret-pass", hashed)
    assert not security.verify_password("wrong-pass", hashed)


# =============================================================================
# 2. 역할 기반 권한 의존성 테스트
# =============================================================================
@pytest.mark.parametrize(
    "dependency, allowed, denied",
    [
        (security.get_current_admin_user, usr_models.UserRole.ADMIN, usr_models.UserRole.MICROBIOLOGIST),
        (security.get_current_reviewer_user, usr_models.UserRole.MICROBIOLOGIST, usr_models.UserRole.LAB_TECHNICIAN),
        (security.get_current_technician_user, usr_models.UserRole.LAB_TECHNICIAN, usr_models.UserRole.VIEWER),
    ],
)
def test_role_dependencies(dependency, allowed, denied):
    """각 역할 의존성은 기준 역할까지 허용하고 그보다 낮은 권한은 403으로 거부합니다."""
    user = make_user(allowed)
    assert dependency(current_user=user) is user
    assert dependency(current_user=make_user(usr_models.UserRole.SUPERUSER)).role == usr_models.UserRole.SUPERUSER

    with pytest.raises(HTTPException) as exc_info:
        dependency(current_user=make_user(denied))
    assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN


def test_inactive_user_is_rejected():
    with pytest.raises(HTTPException) as exc_info:
        security.get_current_active_user(current_user=make_user(usr_models.UserRole.ADMIN, is_active=False))
    assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST
    assert exc_info.value.detail == "Inactive user"


# =============================================================================
# 3. 인증 API 테스트
# =============================================================================
@pytest.mark.asyncio
async def test_read_users_me(client: AsyncClient, override_user):
    override_user(make_user(usr_models.UserRole.MICROBIOLOGIST, user_id=5))

    response = await client.get("/api/v1/usr/auth/me")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["id"] == 5
    assert body["role"] == usr_models.UserRole.MICROBIOLOGIST
    assert "password_hash" not in body


@pytest.mark.asyncio
async def test_create_user_requires_admin(client: AsyncClient, override_user):
    override_user(make_user(usr_models.UserRole.LAB_TECHNICIAN))

    response = await client.post(
        "/api/v1/usr/users",
        json={"username": "newtech", "password": "newtechpass123", "role": 80},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_login_and_refresh(client: AsyncClient, db_session, user_factory):
    async def override_get_session():
        yield db_session

    main_app.dependency_overrides[deps.get_db_session] = override_get_session
    await user_factory("refreshuser", "refreshpass123", role=usr_models.UserRole.LAB_TECHNICIAN)

    login = await client.post(
        "/api/v1/usr/auth/token", data={"username": "refreshuser", "password": "refreshpass123"}
    )
    assert login.status_code == status.HTTP_200_OK
    tokens = login.json()
    assert tokens["token_type"] == "bearer"
    assert tokens["refresh_token"]

    refreshed = await client.post("/api/v1/usr/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == status.HTTP_200_OK
    assert security.decode_token_subject(refreshed.json()["access_token"]) == "refreshuser"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, db_session, user_factory):
    async def override_get_session():
        yield db_session

    main_app.dependency_overrides[deps.get_db_session] = override_get_session
    await user_factory("wrongpass", "rightpass123", role=usr_models.UserRole.VIEWER)

    response = await client.post("/api/v1/usr/auth/token", data={"username": "wrongpass", "password": "nope12345"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["detail"] == "Incorrect username or password"


@pytest.mark.asyncio
async def test_refresh_with_invalid_token(client: AsyncClient):
    response = await client.post("/api/v1/usr/auth/refresh", json={"refresh_token": "not-a-jwt"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# 4. 사용자 관리 API 테스트 (TEST_DATABASE_URL 필요)
# =============================================================================
@pytest.mark.asyncio
async def test_admin_creates_and_lists_users(admin_client: AsyncClient):
    response = await admin_client.post(
        "/api/v1/usr/users",
        json={"username": "tech01", "email": "tech01@example.com", "password": "tech01pass123", "role": 80},
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["role"] == usr_models.UserRole.LAB_TECHNICIAN

    duplicate = await admin_client.post(
        "/api/v1/usr/users",
        json={"username": "tech01", "password": "tech01pass123"},
    )
    assert duplicate.status_code == status.HTTP_400_BAD_REQUEST

    listed = await admin_client.get("/api/v1/usr/users", params={"role": 80})
    assert [u["username"] for u in listed.json()] == ["tech01"]


@pytest.mark.asyncio
async def test_change_my_password(technician_client: AsyncClient):
    wrong = await technician_client.put(
        "/api/v1/usr/auth/me/password",
        json={"current_password": "not-my-password", "new_password": "brandnewpass123"},
    )
    assert wrong.status_code == status.HTTP_400_BAD_REQUEST

    ok = await technician_client.put(
        "/api/v1/usr/auth/me/password",
        json={"current_password": "labtechpass123", "new_password": "brandnewpass123"},
    )
    assert ok.status_code == status.HTTP_200_OK


@pytest.mark.asyncio
async def test_technician_cannot_view_other_users(technician_client: AsyncClient, user_factory):
    other = await user_factory("othertech", "othertechpass1", role=usr_models.UserRole.LAB_TECHNICIAN)

    response = await technician_client.get(f"/api/v1/usr/users/{other.id}")

    assert response.status_code == status.HTTP_403_FORBIDDEN
