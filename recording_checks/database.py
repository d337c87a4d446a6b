from datetime import date, datetime, time

from recording_checks.models import (
    CheckRecord,
    CheckStatus,
    Event,
    Notification,
    ShiftBlock,
)

Stored = Event | ShiftBlock | CheckRecord | Notification


def event_key(event_id: int) -> str:
    return f"event:{event_id}"


def shift_block_key(block_id: int) -> str:
    return f"shift_block:{block_id}"


def check_key(event_id: int, check_index: int) -> str:
    return f"check:{event_id}:{check_index}"


def notification_key(notification_id: str) -> str:
    return f"notification:{notification_id}"


class CheckDatabase:
    """
    In-memory store for events, shift blocks, check records and notifications.

    The conditional writes below read and write without awaiting in between,
    so on a single event loop each one is atomic per check key.
    """

    def __init__(self) -> None:
        self._store: dict[str, Stored] = {}

    def put(self, key: str, value: Stored) -> None:
        self._store[key] = value

    def get(self, key: str) -> Stored | None:
        return self._store.get(key)

    def all(self) -> list[Stored]:
        return list(self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def add_event(self, event: Event) -> None:
        self.put(event_key(event.id), event)

    def add_shift_block(self, block: ShiftBlock) -> None:
        self.put(shift_block_key(block.id), block)

    def get_event(self, event_id: int) -> Event | None:
        value = self.get(event_key(event_id))
        return value if isinstance(value, Event) else None

    def events(self) -> list[Event]:
        return [v for v in self.all() if isinstance(v, Event)]

    def shift_blocks_for_date(self, day: date | None) -> list[ShiftBlock]:
        return sorted(
            (
                v
                for v in self.all()
                if isinstance(v, ShiftBlock) and v.date == day
            ),
            key=lambda b: (b.start_time or time.min, b.id),
        )

    def get_check_record(
        self, event_id: int, check_index: int
    ) -> CheckRecord | None:
        value = self.get(check_key(event_id, check_index))
        return value if isinstance(value, CheckRecord) else None

    def check_records_for_event(self, event_id: int) -> dict[int, CheckRecord]:
        return {
            v.check_index: v
            for v in self.all()
            if isinstance(v, CheckRecord) and v.event_id == event_id
        }

    def complete_check_if_open(
        self,
        event_id: int,
        check_index: int,
        completed_by: str,
        completed_at: datetime,
    ) -> tuple[bool, CheckRecord]:
        """
        Atomically complete a check unless it is already terminal.
        Returns (True, new record) on success, (False, existing record) if
        another writer got there first.
        """
        key = check_key(event_id, check_index)
        existing = self.get_check_record(event_id, check_index)
        if existing is not None and existing.is_terminal:
            return False, existing

        base = existing or CheckRecord(
            event_id=event_id, check_index=check_index, updated_at=completed_at
        )
        record = base.model_copy(
            update={
                "status": CheckStatus.COMPLETED,
                "completed_time": completed_at,
                "completed_by_user_id": completed_by,
                "updated_at": completed_at,
            }
        )
        self.put(key, record)
        return True, record

    def mark_missed_if_open(
        self, event_id: int, check_index: int, now: datetime
    ) -> bool:
        """Atomically mark a check missed unless it is already terminal."""
        key = check_key(event_id, check_index)
        existing = self.get_check_record(event_id, check_index)
        if existing is not None and existing.is_terminal:
            return False

        base = existing or CheckRecord(
            event_id=event_id, check_index=check_index, updated_at=now
        )
        self.put(
            key,
            base.model_copy(
                update={
                    "status": CheckStatus.MISSED,
                    "completed_time": None,
                    "completed_by_user_id": None,
                    "updated_at": now,
                }
            ),
        )
        return True

    def create_sentinel_if_absent(
        self, event_id: int, check_index: int, owner_id: str, now: datetime
    ) -> bool:
        """
        Insert the pending record that marks a check as notified.
        Returns False if any record already exists for the key.
        """
        key = check_key(event_id, check_index)
        if self.get(key) is not None:
            return False
        self.put(
            key,
            CheckRecord(
                event_id=event_id,
                check_index=check_index,
                status=CheckStatus.PENDING,
                notified_at=now,
                notified_user_id=owner_id,
                updated_at=now,
            ),
        )
        return True

    def add_notification(self, notification: Notification) -> None:
        self.put(notification_key(notification.id), notification)

    def notifications_for_owner(self, owner_id: str) -> list[Notification]:
        return sorted(
            (
                v
                for v in self.all()
                if isinstance(v, Notification) and v.owner_id == owner_id
            ),
            key=lambda n: n.created_at,
            reverse=True,
        )
