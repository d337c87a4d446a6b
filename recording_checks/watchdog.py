"""
Overdue-check watchdog and notification dispatch.

Each watched owner gets a session of two tasks joined by a queue: the
watchdog polls for checks that just became actionable for that owner and
queues an alert; the dispatcher claims the check's notification sentinel and,
only if the claim wins, delivers the notification. The sentinel lives in the
check store, so duplicate suppression holds across sessions and restarts.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel

from recording_checks.config import Settings
from recording_checks.database import CheckDatabase
from recording_checks.exceptions import TransientIOError
from recording_checks.models import CheckState, Event, Notification
from recording_checks.notifier import send_native_notification
from recording_checks.ownership import is_owner_at, resolve_ownership
from recording_checks.schedule import (
    current_check_index,
    slot_at,
    slots_for_event,
)
from recording_checks.states import check_timeline, classify_check, is_actionable

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]


class CheckAlert(BaseModel):
    event_id: int
    check_index: int
    owner_id: str
    state: CheckState
    event_name: str
    room_name: str | None = None
    scheduled_time: datetime


class OverdueEvent(BaseModel):
    event_id: int
    name: str
    room_name: str | None = None
    actionable_checks: list[int]


def event_is_active(event: Event, now: datetime, settings: Settings) -> bool:
    """True from the event's start until the post-event grace runs out."""
    window = event.window(settings.tzinfo)
    if window is None:
        return False
    start, end = window
    return start <= now <= end + settings.post_event_grace


def find_due_alert(
    db: CheckDatabase,
    event: Event,
    owner_id: str,
    now: datetime,
    settings: Settings,
) -> CheckAlert | None:
    if not event.needs_recording_check or not event_is_active(
        event, now, settings
    ):
        return None

    timeline = resolve_ownership(
        event, db.shift_blocks_for_date(event.date), settings
    )
    if not is_owner_at(timeline, owner_id, now):
        return None

    slots = slots_for_event(event, settings)
    if not slots:
        return None
    index = current_check_index(
        slots[0].scheduled_time, now, settings.check_interval
    )
    slot = slot_at(slots, index)
    if slot is None:
        return None

    record = db.get_check_record(event.id, index)
    if record is not None and record.notified_at is not None:
        return None
    state = classify_check(slot, now, record, settings)
    if not is_actionable(state):
        return None

    return CheckAlert(
        event_id=event.id,
        check_index=index,
        owner_id=owner_id,
        state=state,
        event_name=event.name,
        room_name=event.room_name,
        scheduled_time=slot.scheduled_time,
    )


def overdue_events(
    db: CheckDatabase,
    now: datetime,
    settings: Settings,
    owner_id: str | None = None,
) -> list[OverdueEvent]:
    """Active recording events with at least one check still actionable."""
    result: list[OverdueEvent] = []
    for event in sorted(db.events(), key=lambda e: e.id):
        if not event.needs_recording_check or not event_is_active(
            event, now, settings
        ):
            continue
        if owner_id is not None:
            timeline = resolve_ownership(
                event, db.shift_blocks_for_date(event.date), settings
            )
            if not is_owner_at(timeline, owner_id, now):
                continue

        entries = check_timeline(
            event, db.check_records_for_event(event.id), now, settings
        )
        actionable = [e.slot.index for e in entries if e.actionable]
        if actionable:
            result.append(
                OverdueEvent(
                    event_id=event.id,
                    name=event.name,
                    room_name=event.room_name,
                    actionable_checks=actionable,
                )
            )
    return result


class OverdueWatchdog:
    def __init__(
        self,
        db: CheckDatabase,
        owner_id: str,
        queue: asyncio.Queue[CheckAlert],
        settings: Settings,
        *,
        now_fn: NowFn,
        sleep_fn: SleepFn,
    ) -> None:
        self.db = db
        self.owner_id = owner_id
        self.queue = queue
        self.settings = settings
        self.now_fn = now_fn
        self.sleep_fn = sleep_fn

    def scan(self, now: datetime) -> list[CheckAlert]:
        alerts = []
        for event in self.db.events():
            alert = find_due_alert(
                self.db, event, self.owner_id, now, self.settings
            )
            if alert is not None:
                alerts.append(alert)
        return alerts

    async def tick(self) -> int:
        alerts = self.scan(self.now_fn())
        for alert in alerts:
            await self.queue.put(alert)
        return len(alerts)

    async def run(self) -> None:
        try:
            while True:
                try:
                    await self.tick()
                except TransientIOError:
                    logger.warning(
                        "watchdog tick failed for %s, retrying next tick",
                        self.owner_id,
                        exc_info=True,
                    )
                except Exception:
                    logger.exception(
                        "unexpected watchdog error for %s, retrying next tick",
                        self.owner_id,
                    )
                await self.sleep_fn(self.settings.watchdog_tick_seconds)
        except asyncio.CancelledError:
            return


class NotificationDispatcher:
    def __init__(
        self,
        db: CheckDatabase,
        queue: asyncio.Queue[CheckAlert],
        *,
        now_fn: NowFn,
    ) -> None:
        self.db = db
        self.queue = queue
        self.now_fn = now_fn

    async def dispatch(self, alert: CheckAlert) -> bool:
        """
        Notify the alert's owner unless some session already did.
        Returns True only for the call that actually delivered.
        """
        now = self.now_fn()
        # claim the sentinel before any await so racing sessions can't both win
        claimed = self.db.create_sentinel_if_absent(
            alert.event_id, alert.check_index, alert.owner_id, now
        )
        if not claimed:
            logger.debug(
                "check %s#%s already notified, suppressing",
                alert.event_id,
                alert.check_index,
            )
            return False

        title = f"Recording Check #{alert.check_index}"
        message = (
            f"Time to check the recording for {alert.event_name} "
            f"in {alert.room_name}"
        )
        self.db.add_notification(
            Notification(
                id=uuid.uuid4().hex,
                owner_id=alert.owner_id,
                event_id=alert.event_id,
                check_index=alert.check_index,
                title=title,
                message=message,
                created_at=now,
            )
        )

        try:
            await send_native_notification(
                alert.owner_id,
                title,
                message,
                tag=f"{alert.event_id}-check-{alert.check_index}",
            )
        except Exception:
            logger.warning(
                "native notification failed for %s", alert.owner_id, exc_info=True
            )

        logger.info(
            "notified %s for check %s#%s",
            alert.owner_id,
            alert.event_id,
            alert.check_index,
        )
        return True

    async def run(self) -> None:
        try:
            while True:
                alert = await self.queue.get()
                try:
                    await self.dispatch(alert)
                except TransientIOError:
                    logger.warning(
                        "dispatch failed for check %s#%s",
                        alert.event_id,
                        alert.check_index,
                        exc_info=True,
                    )
                except Exception:
                    logger.exception(
                        "unexpected dispatch error for check %s#%s",
                        alert.event_id,
                        alert.check_index,
                    )
                finally:
                    self.queue.task_done()
        except asyncio.CancelledError:
            return


class WatchSession:
    """One owner's watchdog and dispatcher, started and stopped together."""

    def __init__(
        self,
        db: CheckDatabase,
        owner_id: str,
        settings: Settings,
        *,
        now_fn: NowFn,
        sleep_fn: SleepFn,
    ) -> None:
        self.owner_id = owner_id
        self.queue: asyncio.Queue[CheckAlert] = asyncio.Queue()
        self.watchdog = OverdueWatchdog(
            db, owner_id, self.queue, settings, now_fn=now_fn, sleep_fn=sleep_fn
        )
        self.dispatcher = NotificationDispatcher(db, self.queue, now_fn=now_fn)
        self.tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        # both halves are needed; a lone watchdog queues alerts nobody sends
        return bool(self.tasks) and all(not t.done() for t in self.tasks)

    def start(self) -> None:
        if self.running:
            return
        self.tasks = {
            asyncio.create_task(self.watchdog.run()),
            asyncio.create_task(self.dispatcher.run()),
        }
        logger.info("watch session started for %s", self.owner_id)

    async def stop(self) -> None:
        tasks = list(self.tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.tasks.clear()
        logger.info("watch session stopped for %s", self.owner_id)


class SessionRegistry:
    def __init__(
        self,
        db: CheckDatabase,
        settings: Settings,
        *,
        now_fn: NowFn,
        sleep_fn: SleepFn,
    ) -> None:
        self.db = db
        self.settings = settings
        self.now_fn = now_fn
        self.sleep_fn = sleep_fn
        self.sessions: dict[str, WatchSession] = {}

    async def start(self, owner_id: str) -> tuple[WatchSession, bool]:
        """
        Start a session for ``owner_id``; returns (session, created).
        A session with a dead task is torn down and replaced.
        """
        stale = self.sessions.get(owner_id)
        if stale is not None and stale.running:
            return stale, False

        # register the replacement before awaiting so concurrent starts see it
        session = WatchSession(
            self.db,
            owner_id,
            self.settings,
            now_fn=self.now_fn,
            sleep_fn=self.sleep_fn,
        )
        self.sessions[owner_id] = session
        session.start()
        if stale is not None:
            logger.warning("replacing dead watch session for %s", owner_id)
            await stale.stop()
        return session, True

    async def stop(self, owner_id: str) -> bool:
        session = self.sessions.pop(owner_id, None)
        if session is None:
            return False
        await session.stop()
        return True

    async def stop_all(self) -> None:
        for owner_id in list(self.sessions):
            await self.stop(owner_id)
