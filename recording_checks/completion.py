import logging
from datetime import datetime

from pydantic import BaseModel

from recording_checks.config import Settings
from recording_checks.database import CheckDatabase
from recording_checks.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
)
from recording_checks.models import CheckRecord, CheckSlot, CheckState, CheckStatus
from recording_checks.ownership import is_owner_at, resolve_ownership
from recording_checks.schedule import slot_at, slots_for_event
from recording_checks.states import classify_check, describe_lateness

logger = logging.getLogger(__name__)


class CompletionResult(BaseModel):
    slot: CheckSlot
    record: CheckRecord
    lateness: str
    already_completed: bool = False


def complete_check(
    db: CheckDatabase,
    event_id: int,
    check_index: int,
    actor_id: str,
    now: datetime,
    settings: Settings,
) -> CompletionResult:
    """
    Record that ``actor_id`` verified the recording for one check slot.

    Safe to retry: completing an already completed check returns the stored
    record with ``already_completed`` set, whoever completed it. Raises
    NotFoundError, AuthorizationError or ConflictError when the completion is
    not allowed; store failures propagate as TransientIOError.
    """
    event = db.get_event(event_id)
    if event is None:
        raise NotFoundError("Event not found", {"event_id": event_id})

    slot = slot_at(slots_for_event(event, settings), check_index)
    if slot is None:
        raise NotFoundError(
            "Check not found",
            {"event_id": event_id, "check_index": check_index},
        )

    timeline = resolve_ownership(
        event, db.shift_blocks_for_date(event.date), settings
    )
    if not is_owner_at(timeline, actor_id, now):
        raise AuthorizationError(
            "Only the current event owner can complete this check",
            {"event_id": event_id, "actor_id": actor_id},
        )

    record = db.get_check_record(event_id, check_index)
    if record is not None and record.status == CheckStatus.MISSED:
        raise ConflictError(
            "Check was missed and can no longer be completed",
            {"event_id": event_id, "check_index": check_index},
        )
    if record is not None and record.status == CheckStatus.COMPLETED:
        return _result(slot, record, settings, already_completed=True)

    state = classify_check(slot, now, record, settings)
    if state == CheckState.UPCOMING:
        raise ConflictError(
            "Check is not due yet",
            {"event_id": event_id, "check_index": check_index},
        )
    if state == CheckState.MISSED:
        raise ConflictError(
            "Check window has passed",
            {"event_id": event_id, "check_index": check_index},
        )

    written, stored = db.complete_check_if_open(
        event_id, check_index, actor_id, now
    )
    if not written:
        if stored.status == CheckStatus.MISSED:
            raise ConflictError(
                "Check was missed and can no longer be completed",
                {"event_id": event_id, "check_index": check_index},
            )
        logger.info(
            "check %s#%s already completed by %s",
            event_id,
            check_index,
            stored.completed_by_user_id,
        )
        return _result(slot, stored, settings, already_completed=True)

    logger.info(
        "check %s#%s completed by %s", event_id, check_index, actor_id
    )
    return _result(slot, stored, settings)


def _result(
    slot: CheckSlot,
    record: CheckRecord,
    settings: Settings,
    *,
    already_completed: bool = False,
) -> CompletionResult:
    return CompletionResult(
        slot=slot,
        record=record,
        lateness=describe_lateness(slot, record, settings) or "on time",
        already_completed=already_completed,
    )
