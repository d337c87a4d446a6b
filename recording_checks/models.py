"""
Domain models for recording checks.

Events and shift blocks are read-only inputs owned by the scheduling store.
Check slots and ownership entries are derived on every read; only check
records and notifications are persisted.
"""

import datetime as dt
from datetime import datetime, time, timedelta, tzinfo
from enum import StrEnum

from pydantic import BaseModel, Field

RECORDING_RESOURCE_KEYWORDS = ("panopto", "recording")


class Resource(BaseModel):
    itemName: str


class Event(BaseModel):
    id: int
    name: str = ""
    date: dt.date | None = None
    start_time: time | None = None
    end_time: time | None = None
    room_name: str | None = None
    event_type: str | None = None
    requires_check: bool | None = None  # None means derive from resources
    resources: list[Resource] = Field(default_factory=list)
    manual_owner: str | None = None

    @property
    def needs_recording_check(self) -> bool:
        if self.requires_check is not None:
            return self.requires_check
        return any(
            keyword in resource.itemName.lower()
            for resource in self.resources
            for keyword in RECORDING_RESOURCE_KEYWORDS
        )

    def window(self, tz: tzinfo) -> tuple[datetime, datetime] | None:
        """Aware [start, end) of the event, or None if the times are unusable."""
        return _window(self.date, self.start_time, self.end_time, tz)


class Assignment(BaseModel):
    owner_id: str
    rooms: list[str] = Field(default_factory=list)


class ShiftBlock(BaseModel):
    id: int
    date: dt.date | None = None
    start_time: time | None = None
    end_time: time | None = None
    assignments: list[Assignment] = Field(default_factory=list)

    def window(self, tz: tzinfo) -> tuple[datetime, datetime] | None:
        return _window(self.date, self.start_time, self.end_time, tz)


class CheckSlot(BaseModel):
    event_id: int
    index: int  # 1-based
    scheduled_time: datetime


class CheckStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"


class CheckState(StrEnum):
    UPCOMING = "upcoming"
    DUE = "due"
    OVERDUE = "overdue"
    MISSED = "missed"
    COMPLETED = "completed"


class CheckRecord(BaseModel):
    event_id: int
    check_index: int
    status: CheckStatus = CheckStatus.PENDING
    completed_time: datetime | None = None
    completed_by_user_id: str | None = None
    notified_at: datetime | None = None  # set when this row is a sentinel
    notified_user_id: str | None = None
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in (CheckStatus.COMPLETED, CheckStatus.MISSED)


class OwnershipEntry(BaseModel):
    owner_id: str
    effective_from: datetime
    effective_to: datetime


class Notification(BaseModel):
    id: str
    owner_id: str
    event_id: int
    check_index: int
    title: str
    message: str
    created_at: datetime


class CheckSummary(BaseModel):
    event_id: int
    total_checks: int
    completed_checks: int
    missed_checks: int
    pending_checks: int
    completion_percentage: float
    is_complete: bool


def _window(
    day: dt.date | None, start: time | None, end: time | None, tz: tzinfo
) -> tuple[datetime, datetime] | None:
    if day is None or start is None or end is None:
        return None
    start_at = datetime.combine(day, start, tzinfo=tz)
    end_at = datetime.combine(day, end, tzinfo=tz)
    if end_at <= start_at:
        return None
    return start_at, end_at


def minutes_between(later: datetime, earlier: datetime) -> int:
    return int((later - earlier) // timedelta(minutes=1))
