import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from recording_checks.config import Settings
from recording_checks.database import CheckDatabase
from recording_checks.exceptions import TransientIOError
from recording_checks.schedule import slots_for_event

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]


def sweep_missed_checks(
    db: CheckDatabase, now: datetime, settings: Settings
) -> int:
    """
    Persist ``missed`` for every elapsed, uncompleted check.

    Running it again with the same ``now`` changes nothing. Returns the
    number of records transitioned by this run.
    """
    transitioned = 0
    for event in db.events():
        if not event.needs_recording_check:
            continue
        records = db.check_records_for_event(event.id)
        for slot in slots_for_event(event, settings):
            if now - slot.scheduled_time < settings.missed_after:
                break
            record = records.get(slot.index)
            if record is not None and record.is_terminal:
                continue
            if db.mark_missed_if_open(event.id, slot.index, now):
                transitioned += 1

    if transitioned:
        logger.info("sweep marked %d checks missed", transitioned)
    return transitioned


async def run_sweep_loop(
    db: CheckDatabase,
    settings: Settings,
    *,
    now_fn: NowFn,
    sleep_fn: SleepFn,
) -> None:
    """Sweep forever; a store outage only costs one tick."""
    try:
        while True:
            try:
                sweep_missed_checks(db, now_fn(), settings)
            except TransientIOError:
                logger.warning(
                    "sweep failed, retrying next tick", exc_info=True
                )
            await sleep_fn(settings.sweep_interval_seconds)
    except asyncio.CancelledError:
        logger.debug("sweep loop stopped")
        return
