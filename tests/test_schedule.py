from datetime import UTC, datetime, time, timedelta

import pytest

from conftest import _banner, _p, at, make_event
from recording_checks.schedule import (
    current_check_index,
    generate_check_slots,
    slot_at,
    slots_for_event,
)
from recording_checks.states import check_timeline, summarize_checks

INTERVAL = timedelta(minutes=30)


@pytest.mark.parametrize("duration_minutes", [0, 29, 30, 59, 60, 61, 90, 125, 180])
def test_slot_count_and_spacing(duration_minutes: int) -> None:
    _banner(f"{duration_minutes} minute event gets floor(D/30) slots")
    start = at(9)
    slots = generate_check_slots(
        7, start, start + timedelta(minutes=duration_minutes), INTERVAL
    )
    _p(f"slots: {[(s.index, s.scheduled_time.time()) for s in slots]}")

    assert len(slots) == duration_minutes // 30
    for i, slot in enumerate(slots, start=1):
        assert slot.event_id == 7
        assert slot.index == i
        assert slot.scheduled_time == start + (i - 1) * INTERVAL


def test_missing_or_inverted_times_need_no_checks() -> None:
    _banner("malformed windows produce no slots rather than errors")
    assert generate_check_slots(1, None, at(10), INTERVAL) == []
    assert generate_check_slots(1, at(9), None, INTERVAL) == []
    assert generate_check_slots(1, at(10), at(9), INTERVAL) == []


def test_slots_for_event_uses_event_window(settings) -> None:
    event = make_event(start_time=time(13, 0), end_time=time(14, 45))
    slots = slots_for_event(event, settings)

    assert [s.scheduled_time for s in slots] == [
        datetime(2025, 7, 2, 13, 0, tzinfo=UTC),
        datetime(2025, 7, 2, 13, 30, tzinfo=UTC),
        datetime(2025, 7, 2, 14, 0, tzinfo=UTC),
    ]
    assert slots_for_event(make_event(start_time=None), settings) == []
    assert slots_for_event(make_event(date=None), settings) == []


def test_short_event_is_fully_satisfied(settings) -> None:
    _banner("event shorter than one interval has no outstanding checks")
    event = make_event(start_time=time(9, 0), end_time=time(9, 25))
    timeline = check_timeline(event, {}, at(9, 10), settings)
    summary = summarize_checks(event.id, timeline)
    _p(f"summary: {summary}")

    assert timeline == []
    assert summary.total_checks == 0
    assert summary.pending_checks == 0
    assert summary.is_complete is True


def test_slot_at_bounds(settings) -> None:
    slots = slots_for_event(make_event(), settings)
    assert slot_at(slots, 1).index == 1
    assert slot_at(slots, 2).index == 2
    assert slot_at(slots, 0) is None
    assert slot_at(slots, 3) is None


def test_current_check_index() -> None:
    start = at(9)
    assert current_check_index(start, at(9), INTERVAL) == 1
    assert current_check_index(start, at(9, 29, 59), INTERVAL) == 1
    assert current_check_index(start, at(9, 30), INTERVAL) == 2
    assert current_check_index(start, at(8, 59), INTERVAL) == 0


def test_only_recorded_events_get_slots(settings) -> None:
    assert slots_for_event(make_event(resources=[]), settings) == []
    assert slots_for_event(make_event(requires_check=False), settings) == []
    forced = make_event(resources=[], requires_check=True)
    assert len(slots_for_event(forced, settings)) == 2
