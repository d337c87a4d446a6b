import asyncio
from datetime import UTC, date, datetime, time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from recording_checks.api import create_app
from recording_checks.config import Settings
from recording_checks.database import CheckDatabase
from recording_checks.models import Assignment, Event, Resource, ShiftBlock

DAY = date(2025, 7, 2)


def at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2025, 7, 2, hour, minute, second, tzinfo=UTC)


def _p(msg: str) -> None:
    # pytest captures stdout unless you run with -s
    print(msg, flush=True)


def _banner(name: str) -> None:
    _p("\n" + "=" * 88)
    _p(f"test: {name}")
    _p("=" * 88)


def make_event(**overrides) -> Event:
    fields = {
        "id": 1,
        "name": "Corporate Finance",
        "date": DAY,
        "start_time": time(9, 0),
        "end_time": time(10, 0),
        "room_name": "GH 1420",
        "event_type": "Lecture",
        "resources": [Resource(itemName="KSM-KGH-VIDEO-Recording")],
    }
    fields.update(overrides)
    return Event(**fields)


def make_block(
    block_id: int,
    start: time,
    end: time,
    assignments: dict[str, list[str]],
    day: date = DAY,
) -> ShiftBlock:
    return ShiftBlock(
        id=block_id,
        date=day,
        start_time=start,
        end_time=end,
        assignments=[
            Assignment(owner_id=owner, rooms=rooms)
            for owner, rooms in assignments.items()
        ],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def db() -> CheckDatabase:
    return CheckDatabase()


@pytest.fixture
def seeded_db(db: CheckDatabase) -> CheckDatabase:
    """
    alice covers GH 1420 all morning; bob covers GH 1310.
    Event 1 needs recording checks, event 2 does not.
    """
    db.add_event(make_event())
    db.add_event(
        make_event(
            id=2,
            name="Staff Meeting",
            room_name="GH 1310",
            resources=[Resource(itemName="KSM-KGH-AV-Handheld Microphone")],
        )
    )
    db.add_shift_block(
        make_block(
            1,
            time(8, 0),
            time(12, 0),
            {"alice-id": ["GH 1420", "GH 1110"], "bob-id": ["GH 1310"]},
        )
    )
    return db


@pytest_asyncio.fixture
async def app(settings: Settings, seeded_db: CheckDatabase):
    app = create_app(settings, seeded_db)
    yield app

    # tear down any watch sessions started by the test
    await app.state.sessions.stop_all()
    tasks = list(app.state.background_tasks)
    for t in tasks:
        t.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client
