from uuid import uuid4

import pytest
from httpx import AsyncClient

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.main import app

from tests.conftest import ACADEMIC_YEAR_ID, BRANCH_ID, TENANT_ID


@pytest.mark.asyncio
async def test_create_shift_and_duplicate_code(client: AsyncClient) -> None:
    body = {"branch_id": str(BRANCH_ID), "name": "Morning", "code": "MOR", "start_time": "08:00", "end_time": "13:00"}

    created = await client.post("/api/v1/shifts", json=body)
    duplicate = await client.post("/api/v1/shifts", json=body)

    assert created.status_code == 201
    assert created.json()["start_time"] == "08:00"
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "CODE_EXISTS"


@pytest.mark.asyncio
async def test_invalid_time_format_is_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/shifts",
        json={"branch_id": str(BRANCH_ID), "name": "Morning", "code": "MOR", "start_time": "8am", "end_time": "13:00"},
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_timetable_returns_not_found_code(client: AsyncClient) -> None:
    response = await client.get(f"/api/v1/timetables/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_period_slot_reports_teaching_flag(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/period-slots",
        json={
            "branch_id": str(BRANCH_ID),
            "name": "Lunch",
            "slot_type": "lunch",
            "start_time": "12:00",
            "end_time": "12:30",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["is_teaching"] is False
    assert data["duration_minutes"] == 30
    assert data["end_time"] == "12:30"


@pytest.mark.asyncio
async def test_assignment_put_accepts_explicit_null(client: AsyncClient) -> None:
    pattern = await client.post("/api/v1/day-patterns", json={"name": "Regular", "code": "REG"})
    assert pattern.status_code == 201
    pattern_id = pattern.json()["id"]

    assigned = await client.put(
        f"/api/v1/day-pattern-assignments/{BRANCH_ID}/1", json={"day_pattern_id": pattern_id}
    )
    cleared = await client.put(f"/api/v1/day-pattern-assignments/{BRANCH_ID}/1", json={"day_pattern_id": None})
    bad_day = await client.put(f"/api/v1/day-pattern-assignments/{BRANCH_ID}/7", json={})

    assert assigned.json()["day_pattern_id"] == pattern_id
    assert assigned.json()["day_name"] == "Monday"
    assert cleared.status_code == 200
    assert cleared.json()["day_pattern_id"] is None
    assert bad_day.status_code == 400
    assert bad_day.json()["detail"]["code"] == "VALIDATION_ERROR"

    deleted = await client.delete(f"/api/v1/day-patterns/{pattern_id}")
    assert deleted.status_code == 204


@pytest.mark.asyncio
async def test_publish_flow_and_teacher_conflict(client: AsyncClient, slots, teachers) -> None:
    def timetable_body(name: str) -> dict:
        return {
            "branch_id": str(BRANCH_ID),
            "section_id": str(uuid4()),
            "academic_year_id": str(ACADEMIC_YEAR_ID),
            "name": name,
        }

    entry = {"day_of_week": 0, "period_slot_id": str(slots.p1), "teacher_id": str(teachers.alice)}

    first = (await client.post("/api/v1/timetables", json=timetable_body("5A"))).json()
    assert first["status"] == "draft"
    upserted = await client.post(f"/api/v1/timetables/{first['id']}/entries", json=entry)
    assert upserted.status_code == 200
    assert upserted.json()["start_time"] == "09:00"

    published = await client.post(f"/api/v1/timetables/{first['id']}/publish")
    assert published.status_code == 200
    assert published.json()["status"] == "published"

    check = await client.get(
        "/api/v1/timetables/conflicts",
        params={"teacher_id": str(teachers.alice), "day_of_week": 0, "period_slot_id": str(slots.p1)},
    )
    assert check.json()["has_conflict"] is True

    second = (await client.post("/api/v1/timetables", json=timetable_body("5B"))).json()
    conflict = await client.post(f"/api/v1/timetables/{second['id']}/entries", json=entry)
    assert conflict.status_code == 409
    detail = conflict.json()["detail"]
    assert detail["code"] == "TEACHER_CONFLICT"
    assert detail["conflicts"][0]["timetable_id"] == first["id"]

    republish = await client.post(f"/api/v1/timetables/{first['id']}/publish")
    assert republish.status_code == 409
    assert republish.json()["detail"]["code"] == "ALREADY_PUBLISHED"

    schedule = await client.get(
        f"/api/v1/timetables/teacher/{teachers.alice}", params={"academic_year_id": str(ACADEMIC_YEAR_ID)}
    )
    assert schedule.json()["total"] == 1


@pytest.mark.asyncio
async def test_substitution_endpoints(client: AsyncClient, slots, teachers) -> None:
    created = await client.post(
        "/api/v1/substitutions",
        json={
            "branch_id": str(BRANCH_ID),
            "original_teacher_id": str(teachers.alice),
            "substitute_teacher_id": str(teachers.bob),
            "substitution_date": "2026-02-02",
            "periods": [{"period_slot_id": str(slots.p1)}],
        },
    )
    assert created.status_code == 201
    substitution_id = created.json()["id"]

    available = await client.get(
        "/api/v1/substitutions/available-teachers",
        params={"branch_id": str(BRANCH_ID), "date": "2026-02-02", "period_slot_ids": [str(slots.p1)]},
    )
    assert available.status_code == 200
    flagged = {t["teacher_id"]: t["has_conflict"] for t in available.json()["items"]}
    assert flagged[str(teachers.bob)] is True
    assert flagged[str(teachers.carol)] is False

    confirmed = await client.post(f"/api/v1/substitutions/{substitution_id}/confirm")
    assert confirmed.json()["status"] == "confirmed"

    deleted = await client.delete(f"/api/v1/substitutions/{substitution_id}")
    assert deleted.status_code == 409
    assert deleted.json()["detail"]["code"] == "NOT_PENDING"


@pytest.mark.asyncio
async def test_permission_required(client: AsyncClient) -> None:
    reader = CurrentUser(
        id=uuid4(),
        tenant_id=TENANT_ID,
        role="TEACHER",
        branch_id=BRANCH_ID,
        permissions=["timetables:read"],
    )
    app.dependency_overrides[get_current_user] = lambda: reader

    listed = await client.get("/api/v1/timetables")
    publish = await client.post(f"/api/v1/timetables/{uuid4()}/publish")
    shifts = await client.get("/api/v1/shifts")

    assert listed.status_code == 200
    assert publish.status_code == 403
    assert shifts.status_code == 403
