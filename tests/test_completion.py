import pytest

from conftest import _banner, _p, at, make_event
from recording_checks.completion import complete_check
from recording_checks.database import CheckDatabase
from recording_checks.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
)
from recording_checks.models import CheckStatus


def test_complete_due_check(seeded_db: CheckDatabase, settings) -> None:
    _banner("owner completes a due check")
    result = complete_check(seeded_db, 1, 1, "alice-id", at(9, 4), settings)
    _p(f"result: {result}")

    assert result.already_completed is False
    assert result.record.status == CheckStatus.COMPLETED
    assert result.record.completed_time == at(9, 4)
    assert result.record.completed_by_user_id == "alice-id"
    assert result.lateness == "on time"
    assert seeded_db.get_check_record(1, 1) == result.record


def test_complete_is_idempotent(seeded_db: CheckDatabase, settings) -> None:
    _banner("completing twice returns the same record, no second row")
    first = complete_check(seeded_db, 1, 1, "alice-id", at(9, 4), settings)
    rows_after_first = len(seeded_db)

    second = complete_check(seeded_db, 1, 1, "alice-id", at(9, 6), settings)
    _p(f"first:  {first.record}")
    _p(f"second: {second.record}")

    assert second.record == first.record
    assert second.already_completed is True
    assert len(seeded_db) == rows_after_first


def test_complete_overdue_check_reports_lateness(
    seeded_db: CheckDatabase, settings
) -> None:
    result = complete_check(seeded_db, 1, 1, "alice-id", at(9, 25), settings)
    assert result.lateness == "15m late"


def test_missed_check_cannot_be_completed(
    seeded_db: CheckDatabase, settings
) -> None:
    _banner("a swept (missed) check rejects completion")
    assert seeded_db.mark_missed_if_open(1, 1, at(9, 30))

    with pytest.raises(ConflictError):
        complete_check(seeded_db, 1, 1, "alice-id", at(9, 20), settings)

    record = seeded_db.get_check_record(1, 1)
    _p(f"record after rejected completion: {record}")
    assert record.status == CheckStatus.MISSED
    assert record.completed_time is None


def test_elapsed_check_cannot_be_completed(
    seeded_db: CheckDatabase, settings
) -> None:
    with pytest.raises(ConflictError):
        complete_check(seeded_db, 1, 1, "alice-id", at(9, 30), settings)
    assert seeded_db.get_check_record(1, 1) is None


def test_upcoming_check_cannot_be_completed(
    seeded_db: CheckDatabase, settings
) -> None:
    with pytest.raises(ConflictError):
        complete_check(seeded_db, 1, 2, "alice-id", at(9, 20), settings)


def test_non_owner_is_rejected(seeded_db: CheckDatabase, settings) -> None:
    _banner("only the resolved owner may complete")
    with pytest.raises(AuthorizationError):
        complete_check(seeded_db, 1, 1, "bob-id", at(9, 4), settings)
    assert seeded_db.get_check_record(1, 1) is None


def test_ownership_is_checked_at_completion_time(
    db: CheckDatabase, settings
) -> None:
    db.add_event(make_event(manual_owner="m-id"))
    with pytest.raises(AuthorizationError):
        # after the event window nobody owns it
        complete_check(db, 1, 2, "m-id", at(10, 1), settings)


def test_unknown_event_or_index(seeded_db: CheckDatabase, settings) -> None:
    with pytest.raises(NotFoundError):
        complete_check(seeded_db, 99, 1, "alice-id", at(9, 4), settings)
    with pytest.raises(NotFoundError):
        complete_check(seeded_db, 1, 3, "alice-id", at(9, 4), settings)
    with pytest.raises(NotFoundError):
        complete_check(seeded_db, 1, 0, "alice-id", at(9, 4), settings)


def test_completion_race_loser_sees_winner(
    seeded_db: CheckDatabase, settings, monkeypatch
) -> None:
    _banner("race: another session completes between our read and write")
    original_get = seeded_db.get_check_record
    calls = {"n": 0}

    def stale_get(event_id: int, check_index: int):
        # eve completes right after our first read returns
        calls["n"] += 1
        if calls["n"] == 1:
            seeded_db.complete_check_if_open(event_id, check_index, "eve-id", at(9, 2))
            return None
        return original_get(event_id, check_index)

    monkeypatch.setattr(seeded_db, "get_check_record", stale_get)
    result = complete_check(seeded_db, 1, 1, "alice-id", at(9, 3), settings)
    _p(f"loser result: {result}")

    assert result.already_completed is True
    assert result.record.completed_by_user_id == "eve-id"
    assert result.record.completed_time == at(9, 2)


def test_completion_over_sentinel(seeded_db: CheckDatabase, settings) -> None:
    _banner("a notified (pending) check can still be completed once")
    assert seeded_db.create_sentinel_if_absent(1, 1, "alice-id", at(9))

    result = complete_check(seeded_db, 1, 1, "alice-id", at(9, 12), settings)
    assert result.record.status == CheckStatus.COMPLETED
    assert result.record.notified_at == at(9)
    assert result.lateness == "2m late"


def test_event_without_recording_has_no_checks_to_complete(
    seeded_db: CheckDatabase, settings
) -> None:
    _banner("a microphone-only event has no check slots to complete")
    with pytest.raises(NotFoundError):
        complete_check(seeded_db, 2, 1, "bob-id", at(9, 5), settings)
    assert seeded_db.check_records_for_event(2) == {}
