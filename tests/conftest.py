import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import time
from types import SimpleNamespace
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.core.models  # noqa: F401
from app.api.v1.timetables import service as timetable_service
from app.api.v1.timetables.schemas import TimetableCreate, TimetableEntryUpsert
from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.models import PeriodSlot, Staff
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"

TENANT_ID = UUID("00000000-0000-0000-0000-00000000a001")
BRANCH_ID = UUID("00000000-0000-0000-0000-00000000b001")
ACADEMIC_YEAR_ID = UUID("00000000-0000-0000-0000-00000000c001")


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test. The school schema maps to SQLite's default schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        execution_options={"schema_translate_map": {"school": None}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest.fixture()
def current_user() -> CurrentUser:
    return CurrentUser(id=uuid4(), tenant_id=TENANT_ID, role="SUPER_ADMIN", branch_id=BRANCH_ID)


@pytest.fixture()
async def client(db_session: AsyncSession, current_user: CurrentUser) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, sharing the test session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: current_user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def slots(db_session: AsyncSession) -> SimpleNamespace:
    """Three teaching periods and a break for the test branch."""
    rows = {
        "p1": PeriodSlot(name="Period 1", period_number=1, start_time=time(9, 0), end_time=time(9, 45), display_order=1),
        "p2": PeriodSlot(name="Period 2", period_number=2, start_time=time(9, 45), end_time=time(10, 30), display_order=2),
        "brk": PeriodSlot(name="Break", slot_type="break", start_time=time(10, 30), end_time=time(10, 45), display_order=3),
        "p3": PeriodSlot(name="Period 3", period_number=3, start_time=time(10, 45), end_time=time(11, 30), display_order=4),
    }
    for slot in rows.values():
        slot.tenant_id = TENANT_ID
        slot.branch_id = BRANCH_ID
        slot.duration_minutes = 45
        db_session.add(slot)
    await db_session.commit()
    return SimpleNamespace(**{key: slot.id for key, slot in rows.items()})


@pytest.fixture()
async def teachers(db_session: AsyncSession) -> SimpleNamespace:
    """Teaching staff of the test branch plus one non-teaching member."""
    rows = {
        "alice": Staff(first_name="Alice", last_name="Rao", user_id=uuid4()),
        "bob": Staff(first_name="Bob", last_name="Iyer", department_name="Science"),
        "carol": Staff(first_name="Carol"),
        "dan": Staff(first_name="Dan", staff_type="non_teaching"),
    }
    for staff in rows.values():
        staff.tenant_id = TENANT_ID
        staff.branch_id = BRANCH_ID
        db_session.add(staff)
    await db_session.commit()
    ns = SimpleNamespace(**{key: staff.id for key, staff in rows.items()})
    ns.alice_user_id = rows["alice"].user_id
    return ns


@pytest.fixture()
def make_timetable(db_session: AsyncSession):
    """Create a draft timetable, optionally with entries given as (day, slot_id, teacher_id), and publish it."""

    async def _make(section_id=None, entries=(), publish=False, name="Timetable"):
        created = await timetable_service.create_timetable(
            db_session,
            TENANT_ID,
            TimetableCreate(
                branch_id=BRANCH_ID,
                section_id=section_id or uuid4(),
                academic_year_id=ACADEMIC_YEAR_ID,
                name=name,
            ),
        )
        for day_of_week, period_slot_id, teacher_id in entries:
            await timetable_service.upsert_entry(
                db_session,
                TENANT_ID,
                created.id,
                TimetableEntryUpsert(
                    day_of_week=day_of_week,
                    period_slot_id=period_slot_id,
                    teacher_id=teacher_id,
                    subject_id=uuid4(),
                ),
            )
        if publish:
            return await timetable_service.publish_timetable(db_session, TENANT_ID, created.id)
        return created

    return _make
