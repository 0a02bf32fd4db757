"""
Notification services - the dispatcher wired to Django, plus one helper per
engagement lifecycle event.

Idempotency keys are derived from the business objects, so calling a
helper twice for the same change records and emails once.
"""

from functools import lru_cache
from typing import Any

from apps.accounts.models import User
from apps.engagements.models import Engagement
from apps.notifications.dispatcher import DispatchOutcome, Dispatcher
from apps.notifications.rules import EventType, build_default_registry
from apps.notifications.schemas import Event, EventRecord
from apps.notifications.senders import DjangoMailSender
from apps.notifications.stores import DjangoEventRecordStore
from config.settings.base import settings


@lru_cache(maxsize=1)
def get_dispatcher() -> Dispatcher:
    """
    Get the process-wide dispatcher.

    Uses lru_cache so the registry is built and frozen once.
    """
    registry = build_default_registry(frontend_url=settings.FRONTEND_URL).freeze()
    return Dispatcher(
        registry=registry,
        store=DjangoEventRecordStore(),
        sender=DjangoMailSender(),
        max_workers=settings.NOTIFY_MAX_WORKERS,
    )


def build_idempotency_key(event_type: str, *parts: Any) -> str:
    """Join an event type and identifying parts, e.g. 'newEngagement:42:7'."""
    return ":".join([event_type, *(str(part) for part in parts)])


def notify(
    event_type: str,
    user: User,
    idempotency_key: str,
    data: dict[str, Any] | None = None,
) -> DispatchOutcome:
    """Dispatch an event about a user."""
    return get_dispatcher().dispatch(
        Event(
            event_type=event_type,
            idempotency_key=idempotency_key,
            subject_id=user.pk,
            payload=data or {},
        )
    )


def _engagement_data(engagement: Engagement) -> dict[str, Any]:
    return {
        "engagement_id": engagement.pk,
        "engagement_name": engagement.name,
        "project_id": engagement.project_id,
    }


def new_engagement(engagement: Engagement, user: User) -> DispatchOutcome:
    """Tell a user they have a new engagement request."""
    return notify(
        EventType.NEW_ENGAGEMENT,
        user,
        build_idempotency_key(EventType.NEW_ENGAGEMENT, engagement.pk, user.pk),
        _engagement_data(engagement),
    )


def review_engagement(engagement: Engagement, user: User) -> DispatchOutcome:
    """
    Tell a user an engagement was updated.

    Each saved revision of the engagement notifies once.
    """
    return notify(
        EventType.REVIEW_ENGAGEMENT,
        user,
        build_idempotency_key(
            EventType.REVIEW_ENGAGEMENT,
            engagement.pk,
            user.pk,
            int(engagement.updated_at.timestamp() * 1_000_000),
        ),
        _engagement_data(engagement),
    )


def cancel_engagement(engagement: Engagement, user: User) -> DispatchOutcome:
    """Tell a user an engagement was canceled."""
    return notify(
        EventType.CANCEL_ENGAGEMENT,
        user,
        build_idempotency_key(EventType.CANCEL_ENGAGEMENT, engagement.pk, user.pk),
        _engagement_data(engagement),
    )


def close_engagement(engagement: Engagement, user: User) -> DispatchOutcome:
    """Ask a user to confirm an engagement was completed."""
    return notify(
        EventType.CLOSE_ENGAGEMENT,
        user,
        build_idempotency_key(EventType.CLOSE_ENGAGEMENT, engagement.pk, user.pk),
        _engagement_data(engagement),
    )


def approve_engagement(engagement: Engagement, user: User) -> DispatchOutcome:
    """
    Record an approval for the approving user and email both parties
    the calendar links.
    """
    return notify(
        EventType.APPROVE_ENGAGEMENT,
        user,
        build_idempotency_key(EventType.APPROVE_ENGAGEMENT, engagement.pk),
        _engagement_data(engagement),
    )


def payment_subscription_success(user: User, invoice_id: str) -> DispatchOutcome:
    """Record a successful subscription payment."""
    return notify(
        EventType.PAYMENT_SUBSCRIPTION_SUCCESS,
        user,
        build_idempotency_key(EventType.PAYMENT_SUBSCRIPTION_SUCCESS, invoice_id),
        {"invoice_id": invoice_id},
    )


def list_notifications(user_id: int, limit: int = 50) -> list[EventRecord]:
    """A user's notifications, newest first."""
    return DjangoEventRecordStore().list_for_subject(user_id, limit=limit)
