"""
Lifecycle classification for check slots.

Everything here is a pure function of a slot, the current time and the
persisted record, so the same answer comes out wherever it is computed.
"""

from datetime import datetime, timedelta

from pydantic import BaseModel

from recording_checks.config import Settings
from recording_checks.models import (
    CheckRecord,
    CheckSlot,
    CheckState,
    CheckStatus,
    CheckSummary,
    Event,
    minutes_between,
)
from recording_checks.schedule import slots_for_event

ACTIONABLE_STATES = frozenset({CheckState.DUE, CheckState.OVERDUE})


class TimelineEntry(BaseModel):
    slot: CheckSlot
    state: CheckState
    record: CheckRecord | None = None

    @property
    def actionable(self) -> bool:
        return is_actionable(self.state)


def classify_check(
    slot: CheckSlot,
    now: datetime,
    record: CheckRecord | None,
    settings: Settings,
) -> CheckState:
    # persisted terminal states win over anything the clock says
    if record is not None:
        if record.status == CheckStatus.MISSED:
            return CheckState.MISSED
        if record.completed_time is not None:
            return CheckState.COMPLETED

    elapsed = now - slot.scheduled_time
    if elapsed < timedelta(0):
        return CheckState.UPCOMING
    if elapsed < settings.grace_period:
        return CheckState.DUE
    if elapsed < settings.missed_after:
        return CheckState.OVERDUE
    return CheckState.MISSED


def is_actionable(state: CheckState) -> bool:
    return state in ACTIONABLE_STATES


def check_timeline(
    event: Event,
    records: dict[int, CheckRecord],
    now: datetime,
    settings: Settings,
) -> list[TimelineEntry]:
    """Every slot of ``event`` paired with its state; ``records`` is keyed by
    check index. Events that are not recorded have an empty timeline."""
    return [
        TimelineEntry(
            slot=slot,
            state=classify_check(slot, now, records.get(slot.index), settings),
            record=records.get(slot.index),
        )
        for slot in slots_for_event(event, settings)
    ]


def summarize_checks(
    event_id: int, timeline: list[TimelineEntry]
) -> CheckSummary:
    total = len(timeline)
    completed = sum(1 for e in timeline if e.state == CheckState.COMPLETED)
    missed = sum(1 for e in timeline if e.state == CheckState.MISSED)
    percentage = round(100.0 * completed / total, 1) if total else 100.0
    return CheckSummary(
        event_id=event_id,
        total_checks=total,
        completed_checks=completed,
        missed_checks=missed,
        pending_checks=total - completed - missed,
        completion_percentage=percentage,
        is_complete=completed >= total,
    )


def lateness_minutes(
    scheduled_time: datetime, completed_time: datetime, grace: timedelta
) -> int:
    grace_minutes = grace // timedelta(minutes=1)
    return max(0, minutes_between(completed_time, scheduled_time) - grace_minutes)


def format_lateness(minutes_late: int) -> str:
    if minutes_late <= 0:
        return "on time"
    hours, minutes = divmod(minutes_late, 60)
    if hours:
        return f"{hours}h {minutes}m late"
    return f"{minutes}m late"


def describe_lateness(
    slot: CheckSlot, record: CheckRecord | None, settings: Settings
) -> str | None:
    """Lateness label for a completed check, None while it is not completed."""
    if record is None or record.completed_time is None:
        return None
    return format_lateness(
        lateness_minutes(
            slot.scheduled_time, record.completed_time, settings.grace_period
        )
    )
