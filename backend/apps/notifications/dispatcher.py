"""
Notification dispatcher - turns one business event into a durable record
plus the side effects its rule declares.

Per dispatch:

    received -> recorded -> running -> completed | partially_failed

1. Validate the event. Invalid events raise ValidationError before anything
   is written.
2. Append the record. If the idempotency key was already taken, return the
   earlier outcome unchanged: nothing is written or sent again.
3. Look up the rule. Unrouted event types complete with zero actions.
4. Run the rule's actions strictly in order. A failed action never stops
   the ones after it.
5. Store the final status and failure list. The record itself is never
   rolled back.

The dispatcher keeps no per-call state and can be shared between threads.
"""

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError, to_json

from apps.core.logging import get_logger
from apps.notifications.exceptions import ValidationError
from apps.notifications.executors import (
    DEFAULT_MAX_WORKERS,
    ActionExecutor,
    ActionOutcome,
    NotifyManyExecutor,
    NotifyOneExecutor,
    PersistExecutor,
)
from apps.notifications.rules import ActionSpec, NotifyMany, NotifyOne, Persist, RuleRegistry
from apps.notifications.schemas import ActionFailure, Event, EventRecord, RecordStatus
from apps.notifications.senders import MessageSender
from apps.notifications.stores import EventRecordStore

logger = get_logger(__name__)

EVENT_TYPE_PATTERN = re.compile(r"[a-z][A-Za-z0-9_.]*")
MAX_EVENT_TYPE_LENGTH = 100
MAX_IDEMPOTENCY_KEY_LENGTH = 255
MAX_PAYLOAD_SIZE_BYTES = 64 * 1024


class DispatchState(StrEnum):
    """Lifecycle of one dispatch."""

    RECEIVED = "received"
    RECORDED = "recorded"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially_failed"


_STATE_BY_STATUS = {
    RecordStatus.PENDING: DispatchState.RECORDED,
    RecordStatus.DELIVERED: DispatchState.COMPLETED,
    RecordStatus.FAILED: DispatchState.PARTIALLY_FAILED,
}


@dataclass(frozen=True)
class DispatchOutcome:
    """
    Aggregate result of dispatching one event.

    A partially failed dispatch is still a successful call: the record is
    stored and ``failures`` says which actions to retry out of band.
    """

    record: EventRecord
    state: DispatchState
    outcomes: tuple[ActionOutcome, ...] = ()
    replayed: bool = False

    @classmethod
    def from_record(cls, record: EventRecord, replayed: bool = True) -> "DispatchOutcome":
        """Rebuild the outcome of an earlier dispatch from its stored record."""
        return cls(record=record, state=_STATE_BY_STATUS[record.status], replayed=replayed)

    @property
    def failures(self) -> tuple[ActionFailure, ...]:
        return self.record.failures

    @property
    def succeeded(self) -> bool:
        return self.state == DispatchState.COMPLETED


def parse_event(data: dict[str, Any]) -> Event:
    """
    Build an Event from untrusted input (API body, CLI arguments).

    Raises:
        ValidationError: If required fields are missing or mistyped.
    """
    try:
        return Event.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid event: {e}") from e


def validate_event(event: Event) -> None:
    """
    Check the event's shape before anything is written.

    Raises:
        ValidationError: If the event cannot be dispatched as-is.
    """
    if not event.event_type or len(event.event_type) > MAX_EVENT_TYPE_LENGTH:
        raise ValidationError("event_type must be 1-100 characters")
    if not EVENT_TYPE_PATTERN.fullmatch(event.event_type):
        raise ValidationError(
            f"event_type {event.event_type!r} must start with a lowercase letter "
            "and contain only letters, digits, '_' or '.'"
        )
    if not event.idempotency_key.strip():
        raise ValidationError("idempotency_key is required")
    if len(event.idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(
            f"idempotency_key exceeds {MAX_IDEMPOTENCY_KEY_LENGTH} characters"
        )
    if event.subject_id <= 0:
        raise ValidationError("subject_id must be a positive integer")

    try:
        size = len(to_json(event.payload))
    except PydanticSerializationError as e:
        raise ValidationError(f"payload is not JSON-serializable: {e}") from e
    if size > MAX_PAYLOAD_SIZE_BYTES:
        raise ValidationError(
            f"payload exceeds {MAX_PAYLOAD_SIZE_BYTES} bytes. "
            "Store large data elsewhere and reference it."
        )


class Dispatcher:
    """Dispatches events through a rule registry into a record store and a sender."""

    def __init__(
        self,
        registry: RuleRegistry,
        store: EventRecordStore,
        sender: MessageSender,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.registry = registry
        self.store = store
        self._executors: dict[type, ActionExecutor] = {
            Persist: PersistExecutor(store),
            NotifyOne: NotifyOneExecutor(sender),
            NotifyMany: NotifyManyExecutor(sender, max_workers=max_workers),
        }

    def dispatch(self, event: Event) -> DispatchOutcome:
        """
        Dispatch an event.

        Returns:
            The outcome. ``replayed`` is True when the idempotency key had
            already been dispatched and nothing new happened.

        Raises:
            ValidationError: If the event is malformed. Nothing was written.
            StoreError: If the record store is unavailable. Safe to retry.
        """
        log = logger.bind(event_type=event.event_type, idempotency_key=event.idempotency_key)
        log.debug("notification_state", state=DispatchState.RECEIVED)

        validate_event(event)

        rule = self.registry.lookup(event.event_type)
        record, is_new = self.store.append(
            EventRecord.from_event(event, caption=rule.caption if rule else "")
        )

        if not is_new:
            log.info("notification_replayed", status=record.status)
            return DispatchOutcome.from_record(record)

        log.debug("notification_state", state=DispatchState.RECORDED)

        if rule is None or not rule.actions:
            if rule is None:
                log.info("notification_unrouted")
            record = self.store.complete(event.idempotency_key, RecordStatus.DELIVERED)
            return DispatchOutcome(record=record, state=DispatchState.COMPLETED)

        log.debug("notification_state", state=DispatchState.RUNNING, actions=len(rule.actions))

        outcomes = tuple(
            self._run_action(action, event, record) for action in rule.actions
        )
        failures = [
            outcome.to_failure(index)
            for index, outcome in enumerate(outcomes)
            if not outcome.succeeded
        ]

        if failures:
            record = self.store.complete(event.idempotency_key, RecordStatus.FAILED, failures)
            log.warning(
                "notification_partially_failed",
                failed_actions=[f.action for f in failures],
            )
            return DispatchOutcome(
                record=record, state=DispatchState.PARTIALLY_FAILED, outcomes=outcomes
            )

        record = self.store.complete(event.idempotency_key, RecordStatus.DELIVERED)
        log.info("notification_dispatched", actions=len(outcomes))
        return DispatchOutcome(record=record, state=DispatchState.COMPLETED, outcomes=outcomes)

    def _run_action(self, action: ActionSpec, event: Event, record: EventRecord) -> ActionOutcome:
        executor = self._executors[type(action)]
        try:
            return executor.execute(action, event, record)
        except Exception as e:
            # Unexpected errors still must not abort the remaining actions
            logger.exception(
                "notification_action_crashed",
                action=action.label,
                idempotency_key=event.idempotency_key,
            )
            return ActionOutcome.failed(action.label, f"Unexpected error: {e}")
