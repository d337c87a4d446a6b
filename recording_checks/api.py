import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from recording_checks.completion import complete_check
from recording_checks.config import Settings, setup_logging
from recording_checks.database import CheckDatabase
from recording_checks.exceptions import CheckError
from recording_checks.models import Event
from recording_checks.ownership import resolve_ownership
from recording_checks.states import (
    check_timeline,
    describe_lateness,
    summarize_checks,
)
from recording_checks.sweep import run_sweep_loop, sweep_missed_checks
from recording_checks.watchdog import SessionRegistry, overdue_events

logger = logging.getLogger(__name__)

router = APIRouter()


class CompleteCheckRequest(BaseModel):
    actor_id: str


def _get_event(request: Request, event_id: int) -> Event:
    db: CheckDatabase = request.app.state.database
    event = db.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/events/overdue")
async def list_overdue_events(
    request: Request, owner_id: str | None = None
) -> dict:
    db: CheckDatabase = request.app.state.database
    settings: Settings = request.app.state.settings
    events = overdue_events(
        db, request.app.state.now_fn(), settings, owner_id=owner_id
    )
    return {"events": [e.model_dump(mode="json") for e in events]}


@router.get("/events/{event_id}/checks")
async def get_check_timeline(event_id: int, request: Request) -> dict:
    db: CheckDatabase = request.app.state.database
    settings: Settings = request.app.state.settings
    event = _get_event(request, event_id)

    timeline = check_timeline(
        event,
        db.check_records_for_event(event_id),
        request.app.state.now_fn(),
        settings,
    )
    checks = []
    for entry in timeline:
        record = entry.record
        checks.append(
            {
                "index": entry.slot.index,
                "scheduled_time": entry.slot.scheduled_time.isoformat(),
                "state": entry.state.value,
                "actionable": entry.actionable,
                "completed_time": (
                    record.completed_time.isoformat()
                    if record and record.completed_time
                    else None
                ),
                "completed_by_user_id": (
                    record.completed_by_user_id if record else None
                ),
                "lateness": describe_lateness(entry.slot, record, settings),
            }
        )

    return {
        "event_id": event_id,
        "checks": checks,
        "summary": summarize_checks(event_id, timeline).model_dump(),
    }


@router.get("/events/{event_id}/ownership")
async def get_ownership_timeline(event_id: int, request: Request) -> dict:
    db: CheckDatabase = request.app.state.database
    event = _get_event(request, event_id)

    timeline = resolve_ownership(
        event, db.shift_blocks_for_date(event.date), request.app.state.settings
    )
    return {
        "event_id": event_id,
        "ownership": [
            {
                "owner_id": entry.owner_id,
                "effective_from": entry.effective_from.isoformat(),
                "effective_to": entry.effective_to.isoformat(),
            }
            for entry in timeline
        ],
    }


@router.post("/events/{event_id}/checks/{check_index}/complete")
async def complete_event_check(
    event_id: int,
    check_index: int,
    body: CompleteCheckRequest,
    request: Request,
) -> dict:
    result = complete_check(
        request.app.state.database,
        event_id,
        check_index,
        body.actor_id,
        request.app.state.now_fn(),
        request.app.state.settings,
    )
    return {
        "status": "already_completed" if result.already_completed else "completed",
        "event_id": event_id,
        "check_index": check_index,
        "completed_time": result.record.completed_time.isoformat(),
        "completed_by_user_id": result.record.completed_by_user_id,
        "lateness": result.lateness,
    }


@router.post("/checks/sweep")
async def sweep_checks(request: Request) -> dict[str, int]:
    transitioned = sweep_missed_checks(
        request.app.state.database,
        request.app.state.now_fn(),
        request.app.state.settings,
    )
    return {"transitioned": transitioned}


@router.get("/owners/{owner_id}/notifications")
async def list_notifications(owner_id: str, request: Request) -> dict:
    db: CheckDatabase = request.app.state.database
    return {
        "owner_id": owner_id,
        "notifications": [
            n.model_dump(mode="json")
            for n in db.notifications_for_owner(owner_id)
        ],
    }


@router.post("/sessions/{owner_id}")
async def start_session(owner_id: str, request: Request) -> dict:
    registry: SessionRegistry = request.app.state.sessions
    _session, created = await registry.start(owner_id)
    return {
        "owner_id": owner_id,
        "status": "started" if created else "already_running",
    }


@router.delete("/sessions/{owner_id}")
async def stop_session(owner_id: str, request: Request) -> dict:
    registry: SessionRegistry = request.app.state.sessions
    stopped = await registry.stop(owner_id)
    return {
        "owner_id": owner_id,
        "status": "stopped" if stopped else "not_running",
    }


async def handle_check_error(_request: Request, exc: CheckError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request failed: %s", exc)
    else:
        logger.info("request rejected: %s", exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    sweep_task = asyncio.create_task(
        run_sweep_loop(
            app.state.database,
            app.state.settings,
            now_fn=lambda: app.state.now_fn(),
            sleep_fn=lambda seconds: app.state.sleep_fn(seconds),
        )
    )
    app.state.background_tasks.add(sweep_task)
    try:
        yield
    finally:
        await app.state.sessions.stop_all()
        for task in list(app.state.background_tasks):
            task.cancel()
        await asyncio.gather(
            *app.state.background_tasks, return_exceptions=True
        )
        app.state.background_tasks.clear()


def create_app(
    settings: Settings | None = None, database: CheckDatabase | None = None
) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings)

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database if database is not None else CheckDatabase()

    app.state.now_fn = lambda: datetime.now(UTC)
    app.state.sleep_fn = asyncio.sleep

    # read the clock through app.state so tests can swap it after creation
    app.state.sessions = SessionRegistry(
        app.state.database,
        settings,
        now_fn=lambda: app.state.now_fn(),
        sleep_fn=lambda seconds: app.state.sleep_fn(seconds),
    )
    app.state.background_tasks = set()

    app.add_exception_handler(CheckError, handle_check_error)
    app.include_router(router)
    return app
