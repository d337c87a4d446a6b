"""
Resolve who is responsible for an event over its duration.

Ownership comes either from a manual override on the event or from the shift
blocks covering the event's room. The result is an ordered timeline; entries
for one owner never overlap, but co-owners covering the same room at the same
time get overlapping entries. Time nobody covers is simply absent from it.
"""

import logging
from datetime import datetime

from recording_checks.config import Settings
from recording_checks.models import Event, OwnershipEntry, ShiftBlock

logger = logging.getLogger(__name__)


def expand_room_name(room_name: str) -> list[str]:
    """
    Split a merged room into its base rooms.

    ``"GH 1420&30"`` covers ``"GH 1420"`` and ``"GH 1430"``: the suffix after
    ``&`` replaces the same number of trailing characters of the first room.
    A suffix at least as long as the first room is taken as a full name.
    """
    if "&" not in room_name:
        return [room_name.strip()]

    first, *suffixes = (part.strip() for part in room_name.split("&"))
    rooms = [first]
    for suffix in suffixes:
        if not suffix:
            continue
        if len(suffix) >= len(first) or " " in suffix:
            rooms.append(suffix)
        else:
            rooms.append(first[: -len(suffix)] + suffix)
    return rooms


def _covers(assigned_rooms: list[str], event_rooms: list[str]) -> bool:
    assigned = {room.strip() for room in assigned_rooms}
    return any(room in assigned for room in event_rooms)


def resolve_ownership(
    event: Event, shift_blocks: list[ShiftBlock], settings: Settings
) -> list[OwnershipEntry]:
    tz = settings.tzinfo
    window = event.window(tz)
    if window is None:
        return []

    if event.event_type in settings.excluded_event_types:
        return []

    event_start, event_end = window
    if event.manual_owner:
        return [
            OwnershipEntry(
                owner_id=event.manual_owner,
                effective_from=event_start,
                effective_to=event_end,
            )
        ]

    if not event.room_name:
        return []
    event_rooms = expand_room_name(event.room_name)

    entries: list[OwnershipEntry] = []
    for block in shift_blocks:
        if block.date != event.date:
            continue
        block_window = block.window(tz)
        if block_window is None:
            continue
        block_start, block_end = block_window
        if block_start >= event_end or block_end <= event_start:
            continue

        clipped_from = max(block_start, event_start)
        clipped_to = min(block_end, event_end)
        for assignment in block.assignments:
            if _covers(assignment.rooms, event_rooms):
                entries.append(
                    OwnershipEntry(
                        owner_id=assignment.owner_id,
                        effective_from=clipped_from,
                        effective_to=clipped_to,
                    )
                )

    timeline = _merge(entries)
    logger.debug(
        "resolved %d ownership entries for event %s", len(timeline), event.id
    )
    return timeline


def _merge(entries: list[OwnershipEntry]) -> list[OwnershipEntry]:
    """Join touching or overlapping entries that share an owner."""
    by_owner: dict[str, list[OwnershipEntry]] = {}
    for entry in sorted(entries, key=lambda e: e.effective_from):
        merged = by_owner.setdefault(entry.owner_id, [])
        if merged and entry.effective_from <= merged[-1].effective_to:
            last = merged[-1]
            if entry.effective_to > last.effective_to:
                merged[-1] = last.model_copy(
                    update={"effective_to": entry.effective_to}
                )
        else:
            merged.append(entry)

    return sorted(
        (entry for owned in by_owner.values() for entry in owned),
        key=lambda e: (e.effective_from, e.owner_id),
    )


def owners_at(timeline: list[OwnershipEntry], at: datetime) -> list[str]:
    return [
        entry.owner_id
        for entry in timeline
        if entry.effective_from <= at < entry.effective_to
    ]


def is_owner_at(
    timeline: list[OwnershipEntry], owner_id: str, at: datetime
) -> bool:
    return owner_id in owners_at(timeline, at)
