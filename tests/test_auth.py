from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.auth.dependencies import get_current_user
from app.auth.security import create_access_token
from app.main import app

from tests.conftest import ACADEMIC_YEAR_ID, BRANCH_ID, TENANT_ID


@pytest.fixture()
def token_client(client: AsyncClient) -> AsyncClient:
    """Client that resolves the caller from the bearer token instead of the fixture user."""
    app.dependency_overrides.pop(get_current_user, None)
    return client


def _token(**claims) -> str:
    subject = {"user_id": str(uuid4()), "tenant_id": str(TENANT_ID), "role": "TEACHER"}
    subject.update(claims)
    return create_access_token(subject=subject)


@pytest.mark.asyncio
async def test_missing_token_is_unauthorized(token_client: AsyncClient) -> None:
    response = await token_client.get("/api/v1/timetables")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(token_client: AsyncClient) -> None:
    response = await token_client.get("/api/v1/timetables", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_token_without_tenant_is_unauthorized(token_client: AsyncClient) -> None:
    token = create_access_token(subject={"user_id": str(uuid4()), "role": "TEACHER"})

    response = await token_client.get("/api/v1/timetables", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_permissions_are_enforced(token_client: AsyncClient) -> None:
    token = _token(permissions=["timetables:read"], branch_id=str(BRANCH_ID))
    headers = {"Authorization": f"Bearer {token}"}

    allowed = await token_client.get("/api/v1/timetables", headers=headers)
    denied = await token_client.get("/api/v1/substitutions", headers=headers)

    assert allowed.status_code == 200
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_wildcard_permission_and_admin_role(token_client: AsyncClient) -> None:
    wildcard = _token(permissions=["substitutions:*"])
    admin = _token(role="SUPER_ADMIN")

    by_wildcard = await token_client.get("/api/v1/substitutions", headers={"Authorization": f"Bearer {wildcard}"})
    by_admin = await token_client.get("/api/v1/shifts", headers={"Authorization": f"Bearer {admin}"})

    assert by_wildcard.status_code == 200
    assert by_admin.status_code == 200


@pytest.mark.asyncio
async def test_my_schedule_uses_token_identity(token_client: AsyncClient, slots, teachers, make_timetable) -> None:
    await make_timetable(entries=[(3, slots.p1, teachers.alice)], publish=True)
    token = _token(user_id=str(teachers.alice_user_id))

    response = await token_client.get(
        "/api/v1/timetables/teacher/me",
        params={"academic_year_id": str(ACADEMIC_YEAR_ID)},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["teacher_id"] == str(teachers.alice)
    assert data["items"][0]["day_name"] == "Wednesday"
