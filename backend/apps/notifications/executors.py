"""
Action executors - one handler per action kind.

Executors report expected failures (no recipient, send error, store error)
as a failed ActionOutcome instead of raising, so the dispatcher can carry
on with the remaining actions of the rule.
"""

import contextvars
from abc import ABC, abstractmethod
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from apps.core.logging import get_logger
from apps.notifications.exceptions import SendError, StoreError
from apps.notifications.rules import ActionSpec, NotifyMany, NotifyOne
from apps.notifications.schemas import ActionFailure, Event, EventRecord, Recipient
from apps.notifications.senders import MessageSender
from apps.notifications.stores import EventRecordStore

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class RecipientOutcome:
    """Result of sending to one recipient."""

    recipient_id: int
    succeeded: bool
    reason: str = ""


@dataclass(frozen=True)
class ActionOutcome:
    """Result of executing one action."""

    action: str
    succeeded: bool
    reason: str = ""
    recipients: tuple[RecipientOutcome, ...] = ()

    @classmethod
    def success(cls, action: str, recipients: tuple[RecipientOutcome, ...] = ()) -> "ActionOutcome":
        return cls(action=action, succeeded=True, recipients=recipients)

    @classmethod
    def failed(
        cls, action: str, reason: str, recipients: tuple[RecipientOutcome, ...] = ()
    ) -> "ActionOutcome":
        return cls(action=action, succeeded=False, reason=reason, recipients=recipients)

    def to_failure(self, index: int) -> ActionFailure:
        """Project a failed outcome onto the record's failure list."""
        return ActionFailure(
            index=index,
            action=self.action,
            reason=self.reason,
            failed_recipient_ids=tuple(r.recipient_id for r in self.recipients if not r.succeeded),
        )


class ActionExecutor(ABC):
    """Abstract base class for action executors."""

    @abstractmethod
    def execute(self, spec: ActionSpec, event: Event, record: EventRecord) -> ActionOutcome:
        """Run the action for the event."""


class PersistExecutor(ActionExecutor):
    """Makes sure the record is in the store. A no-op write when it already is."""

    def __init__(self, store: EventRecordStore):
        self.store = store

    def execute(self, spec: ActionSpec, event: Event, record: EventRecord) -> ActionOutcome:
        try:
            self.store.append(record)
        except StoreError as e:
            return ActionOutcome.failed(spec.label, str(e))
        return ActionOutcome.success(spec.label)


class _NotifyExecutor(ActionExecutor):
    """Shared template-variable handling for the notify executors."""

    def __init__(self, sender: MessageSender):
        self.sender = sender

    def build_variables(
        self, spec: NotifyOne | NotifyMany, event: Event, record: EventRecord
    ) -> Mapping[str, Any]:
        variables: dict[str, Any] = {"title": record.caption, **spec.variables}
        if spec.context_builder is not None:
            variables.update(spec.context_builder(event))
        return variables

    def send_one(
        self, recipient: Recipient, template_id: str, variables: Mapping[str, Any]
    ) -> RecipientOutcome:
        try:
            self.sender.send(recipient, template_id, variables)
        except SendError as e:
            return RecipientOutcome(recipient_id=recipient.id, succeeded=False, reason=str(e))
        return RecipientOutcome(recipient_id=recipient.id, succeeded=True)


class NotifyOneExecutor(_NotifyExecutor):
    """Send one message to the single resolved recipient."""

    def execute(self, spec: ActionSpec, event: Event, record: EventRecord) -> ActionOutcome:
        if not isinstance(spec, NotifyOne):
            raise TypeError(f"NotifyOneExecutor cannot run {spec!r}")

        recipient = spec.recipient_resolver(event)
        if recipient is None:
            return ActionOutcome.failed(spec.label, "Recipient not found")

        variables = self.build_variables(spec, event, record)
        result = self.send_one(recipient, spec.template_id, variables)
        if not result.succeeded:
            return ActionOutcome.failed(spec.label, result.reason, (result,))
        return ActionOutcome.success(spec.label, (result,))


class NotifyManyExecutor(_NotifyExecutor):
    """
    Send one message to each resolved recipient.

    Sends fan out over a bounded thread pool and are all joined before the
    outcome is built. A failed recipient never cancels its siblings.
    Recipient outcomes keep the resolver's order.
    """

    def __init__(self, sender: MessageSender, max_workers: int = DEFAULT_MAX_WORKERS):
        super().__init__(sender)
        self.max_workers = max(1, max_workers)

    def execute(self, spec: ActionSpec, event: Event, record: EventRecord) -> ActionOutcome:
        if not isinstance(spec, NotifyMany):
            raise TypeError(f"NotifyManyExecutor cannot run {spec!r}")

        recipients = list(spec.recipient_resolver(event))
        if not recipients:
            return ActionOutcome.failed(spec.label, "No recipients resolved")

        variables = self.build_variables(spec, event, record)
        results = self._fan_out(recipients, spec.template_id, variables)

        failed = [r for r in results if not r.succeeded]
        if failed:
            return ActionOutcome.failed(
                spec.label,
                f"{len(failed)} of {len(results)} recipients failed",
                tuple(results),
            )
        return ActionOutcome.success(spec.label, tuple(results))

    def _fan_out(
        self, recipients: list[Recipient], template_id: str, variables: Mapping[str, Any]
    ) -> list[RecipientOutcome]:
        workers = min(self.max_workers, len(recipients))
        results: list[RecipientOutcome] = []

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
            # Each send runs in a copy of the caller's context so bound log fields follow it
            futures = [
                (
                    recipient,
                    pool.submit(
                        contextvars.copy_context().run,
                        self.send_one,
                        recipient,
                        template_id,
                        variables,
                    ),
                )
                for recipient in recipients
            ]

            for recipient, future in futures:
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.exception("notification_recipient_crashed", recipient_id=recipient.id)
                    results.append(
                        RecipientOutcome(recipient_id=recipient.id, succeeded=False, reason=str(e))
                    )

        return results
