"""
Event record stores - durable, insert-if-absent storage keyed by idempotency key.

DjangoEventRecordStore: Notification table (production)
InMemoryEventRecordStore: lock-guarded dict (tests, local tooling)
"""

import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from apps.core.logging import get_logger
from apps.notifications.exceptions import StoreError
from apps.notifications.models import Notification
from apps.notifications.schemas import ActionFailure, EventRecord, RecordStatus

logger = get_logger(__name__)


class EventRecordStore(ABC):
    """Abstract base class for event record stores."""

    @abstractmethod
    def append(self, record: EventRecord) -> tuple[EventRecord, bool]:
        """
        Insert the record unless one with the same idempotency key exists.

        Returns (stored_record, is_new). When the key is already taken the
        existing record is returned unchanged and storage is not touched.
        Exactly one of any number of concurrent callers sees is_new=True.

        Raises:
            StoreError: If storage is unavailable.
        """

    @abstractmethod
    def get(self, idempotency_key: str) -> EventRecord | None:
        """Return the record for the key, or None."""

    @abstractmethod
    def complete(
        self,
        idempotency_key: str,
        status: RecordStatus,
        failures: Iterable[ActionFailure] = (),
    ) -> EventRecord:
        """
        Record the final outcome of a dispatch and return the updated record.

        Raises:
            StoreError: If storage is unavailable or the record is missing.
        """


class InMemoryEventRecordStore(EventRecordStore):
    """Process-local store. Records are immutable, so they are shared without copying."""

    def __init__(self) -> None:
        self._records: dict[str, EventRecord] = {}
        self._lock = threading.Lock()

    def append(self, record: EventRecord) -> tuple[EventRecord, bool]:
        with self._lock:
            existing = self._records.get(record.idempotency_key)
            if existing is not None:
                return existing, False
            self._records[record.idempotency_key] = record
            return record, True

    def get(self, idempotency_key: str) -> EventRecord | None:
        with self._lock:
            return self._records.get(idempotency_key)

    def complete(
        self,
        idempotency_key: str,
        status: RecordStatus,
        failures: Iterable[ActionFailure] = (),
    ) -> EventRecord:
        with self._lock:
            existing = self._records.get(idempotency_key)
            if existing is None:
                raise StoreError(f"No record for idempotency key {idempotency_key!r}")
            updated = existing.model_copy(update={"status": status, "failures": tuple(failures)})
            self._records[idempotency_key] = updated
            return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _to_record(row: Notification) -> EventRecord:
    return EventRecord(
        idempotency_key=row.idempotency_key,
        event_type=row.event_type,
        subject_id=row.subject_id,
        payload=row.payload,
        caption=row.caption,
        status=RecordStatus(row.status),
        failures=tuple(ActionFailure.model_validate(f) for f in row.failures),
        created_at=row.occurred_at,
    )


class DjangoEventRecordStore(EventRecordStore):
    """
    Store backed by the Notification table.

    Relies on the unique constraint on idempotency_key: the insert runs in
    its own savepoint, and losing the race surfaces as IntegrityError, after
    which the first writer's row is returned.
    """

    def append(self, record: EventRecord) -> tuple[EventRecord, bool]:
        try:
            with transaction.atomic():
                row = Notification.objects.create(
                    idempotency_key=record.idempotency_key,
                    event_type=record.event_type,
                    subject_id=record.subject_id,
                    caption=record.caption,
                    payload=record.payload,
                    status=record.status.value,
                    failures=[f.model_dump(mode="json") for f in record.failures],
                    occurred_at=record.created_at,
                )
        except IntegrityError:
            existing = self.get(record.idempotency_key)
            if existing is None:
                # Constraint violation that is not a duplicate key
                raise StoreError(
                    f"Could not store record {record.idempotency_key!r}"
                ) from None
            return existing, False
        except DatabaseError as e:
            logger.error("event_record_append_failed", error=str(e))
            raise StoreError(f"Event record store unavailable: {e}") from e

        return _to_record(row), True

    def get(self, idempotency_key: str) -> EventRecord | None:
        try:
            row = Notification.objects.filter(idempotency_key=idempotency_key).first()
        except DatabaseError as e:
            logger.error("event_record_get_failed", error=str(e))
            raise StoreError(f"Event record store unavailable: {e}") from e
        return _to_record(row) if row is not None else None

    def complete(
        self,
        idempotency_key: str,
        status: RecordStatus,
        failures: Iterable[ActionFailure] = (),
    ) -> EventRecord:
        try:
            updated = Notification.objects.filter(idempotency_key=idempotency_key).update(
                status=status.value,
                failures=[f.model_dump(mode="json") for f in failures],
                updated_at=timezone.now(),
            )
        except DatabaseError as e:
            logger.error("event_record_complete_failed", error=str(e))
            raise StoreError(f"Event record store unavailable: {e}") from e

        if not updated:
            raise StoreError(f"No record for idempotency key {idempotency_key!r}")

        record = self.get(idempotency_key)
        if record is None:
            raise StoreError(f"Record {idempotency_key!r} disappeared after update")
        return record

    def list_for_subject(self, subject_id: int, limit: int = 50) -> list[EventRecord]:
        """Most recent records for a user, newest first."""
        try:
            rows = list(Notification.objects.filter(subject_id=subject_id)[:limit])
        except DatabaseError as e:
            raise StoreError(f"Event record store unavailable: {e}") from e
        return [_to_record(row) for row in rows]
