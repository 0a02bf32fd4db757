"""
Tests for event record stores.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from apps.notifications.exceptions import StoreError
from apps.notifications.models import Notification
from apps.notifications.schemas import ActionFailure, EventRecord, RecordStatus
from apps.notifications.stores import DjangoEventRecordStore, InMemoryEventRecordStore
from tests.notifications.fakes import make_event


def _record(key: str = "evt-1", **kwargs) -> EventRecord:
    return EventRecord.from_event(make_event(key=key, **kwargs), caption="You have a request.")


class TestInMemoryEventRecordStore:
    """Tests for InMemoryEventRecordStore."""

    def test_append_new_record(self) -> None:
        store = InMemoryEventRecordStore()

        record, is_new = store.append(_record())

        assert is_new is True
        assert record.status == RecordStatus.PENDING
        assert store.get("evt-1") == record

    def test_append_duplicate_returns_first_record(self) -> None:
        """A second append with the same key changes nothing."""
        store = InMemoryEventRecordStore()
        first, _ = store.append(_record(payload={"n": 1}))

        second, is_new = store.append(_record(payload={"n": 2}))

        assert is_new is False
        assert second == first
        assert second.payload == {"n": 1}
        assert len(store) == 1

    def test_concurrent_appends_have_one_winner(self) -> None:
        """Exactly one concurrent caller sees is_new=True."""
        store = InMemoryEventRecordStore()
        barrier = threading.Barrier(8)

        def append():
            barrier.wait()
            return store.append(_record())[1]

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: append(), range(8)))

        assert results.count(True) == 1
        assert len(store) == 1

    def test_complete_updates_status_and_failures(self) -> None:
        store = InMemoryEventRecordStore()
        store.append(_record())
        failure = ActionFailure(index=1, action="notify_one:notification", reason="bounced")

        record = store.complete("evt-1", RecordStatus.FAILED, [failure])

        assert record.status == RecordStatus.FAILED
        assert record.failures == (failure,)
        assert store.get("evt-1") == record

    def test_complete_unknown_key_raises(self) -> None:
        with pytest.raises(StoreError):
            InMemoryEventRecordStore().complete("missing", RecordStatus.DELIVERED)


@pytest.mark.django_db
class TestDjangoEventRecordStore:
    """Tests for DjangoEventRecordStore."""

    def test_append_creates_notification_row(self) -> None:
        store = DjangoEventRecordStore()

        record, is_new = store.append(_record(subject_id=7, payload={"engagement_id": 3}))

        assert is_new is True
        row = Notification.objects.get(idempotency_key="evt-1")
        assert row.subject_id == 7
        assert row.caption == "You have a request."
        assert row.payload == {"engagement_id": 3}
        assert row.status == Notification.Status.PENDING
        assert record.created_at == row.occurred_at

    def test_append_stores_non_json_native_payload(self) -> None:
        store = DjangoEventRecordStore()
        occurred = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

        record, _ = store.append(
            _record(payload={"tags": {"a"}, "raw": b"abc", "at": occurred})
        )

        row = Notification.objects.get(idempotency_key="evt-1")
        assert row.payload == {"tags": ["a"], "raw": "abc", "at": "2024-01-02T03:04:05Z"}
        assert record.payload == row.payload

    def test_append_duplicate_key_returns_existing_row(self) -> None:
        store = DjangoEventRecordStore()
        store.append(_record(payload={"n": 1}))

        record, is_new = store.append(_record(payload={"n": 2}))

        assert is_new is False
        assert record.payload == {"n": 1}
        assert Notification.objects.count() == 1

    def test_duplicate_append_keeps_outer_transaction_usable(self) -> None:
        """The insert runs in a savepoint, so the test transaction survives the IntegrityError."""
        store = DjangoEventRecordStore()
        store.append(_record())
        store.append(_record())

        assert Notification.objects.filter(idempotency_key="evt-1").exists()

    def test_complete_persists_failures(self) -> None:
        store = DjangoEventRecordStore()
        store.append(_record())
        failure = ActionFailure(
            index=1,
            action="notify_many:notification_calendar",
            reason="1 of 2 recipients failed",
            failed_recipient_ids=(5,),
        )

        record = store.complete("evt-1", RecordStatus.FAILED, [failure])

        assert record.status == RecordStatus.FAILED
        assert record.failures == (failure,)
        row = Notification.objects.get(idempotency_key="evt-1")
        assert row.failures[0]["failed_recipient_ids"] == [5]

    def test_complete_unknown_key_raises(self) -> None:
        with pytest.raises(StoreError):
            DjangoEventRecordStore().complete("missing", RecordStatus.DELIVERED)

    def test_database_error_becomes_store_error(self) -> None:
        store = DjangoEventRecordStore()

        with patch.object(Notification.objects, "create", side_effect=DatabaseError("down")):
            with pytest.raises(StoreError, match="unavailable"):
                store.append(_record())

    def test_list_for_subject_newest_first(self) -> None:
        store = DjangoEventRecordStore()
        older = make_event(key="a", subject_id=4).model_copy(
            update={"created_at": datetime(2026, 1, 1, tzinfo=UTC)}
        )
        newer = make_event(key="b", subject_id=4).model_copy(
            update={"created_at": datetime(2026, 2, 1, tzinfo=UTC)}
        )
        store.append(EventRecord.from_event(older))
        store.append(EventRecord.from_event(newer))
        store.append(_record(key="other", subject_id=5))

        records = store.list_for_subject(4)

        assert [r.idempotency_key for r in records] == ["b", "a"]
