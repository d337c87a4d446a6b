from datetime import datetime, timedelta

from recording_checks.config import Settings
from recording_checks.models import CheckSlot, Event


def generate_check_slots(
    event_id: int,
    start: datetime | None,
    end: datetime | None,
    interval: timedelta,
) -> list[CheckSlot]:
    """
    Expected checks for an event window, one every ``interval`` from start.

    Only whole intervals count, so an event shorter than one interval needs
    no checks. Missing or inverted times also yield an empty list.
    """
    if start is None or end is None or end <= start or interval <= timedelta(0):
        return []

    count = (end - start) // interval
    return [
        CheckSlot(
            event_id=event_id,
            index=i + 1,
            scheduled_time=start + i * interval,
        )
        for i in range(count)
    ]


def slots_for_event(event: Event, settings: Settings) -> list[CheckSlot]:
    """Check slots for ``event``; none unless it is being recorded."""
    if not event.needs_recording_check:
        return []
    window = event.window(settings.tzinfo)
    if window is None:
        return []
    start, end = window
    return generate_check_slots(event.id, start, end, settings.check_interval)


def slot_at(slots: list[CheckSlot], index: int) -> CheckSlot | None:
    if 1 <= index <= len(slots):
        return slots[index - 1]
    return None


def current_check_index(
    start: datetime, now: datetime, interval: timedelta
) -> int:
    return (now - start) // interval + 1
