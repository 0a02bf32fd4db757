"""
Recipient resolvers and template context builders used by the default rules.

Resolvers never raise for a missing user or engagement; they return None
(or an empty list) and let the executor report the action as failed.
"""

from typing import Any

from apps.accounts.models import User
from apps.engagements.models import Engagement
from apps.notifications.schemas import Event, Recipient


def recipient_for(user: User) -> Recipient:
    return Recipient(id=user.pk, email=user.email, name=user.name)


def _load_engagement(event: Event) -> Engagement | None:
    engagement_id = event.payload.get("engagement_id")
    if engagement_id is None:
        return None
    return (
        Engagement.objects.select_related("project__organization", "expert__user")
        .filter(pk=engagement_id)
        .first()
    )


def subject_user(event: Event) -> Recipient | None:
    """The active user the event is about."""
    user = User.objects.filter(pk=event.subject_id, is_active=True).first()
    return recipient_for(user) if user else None


def engagement_participants(event: Event) -> list[Recipient]:
    """
    Both sides of an engagement: the company owner and the expert.

    An explicit ``user_ids`` list in the payload takes precedence over the
    engagement lookup.
    """
    user_ids = event.payload.get("user_ids")
    if user_ids:
        users = User.objects.filter(pk__in=user_ids, is_active=True)
        by_id = {user.pk: user for user in users}
        return [recipient_for(by_id[pk]) for pk in dict.fromkeys(user_ids) if pk in by_id]

    engagement = _load_engagement(event)
    if engagement is None:
        return []

    participants: list[User] = []
    owner = engagement.project.organization.get_owner()
    if owner is not None and owner.is_active:
        participants.append(owner)
    expert_user = engagement.expert.user
    if expert_user.is_active and all(p.pk != expert_user.pk for p in participants):
        participants.append(expert_user)

    return [recipient_for(user) for user in participants]


def engagement_calendar_context(event: Event) -> dict[str, Any]:
    """Calendar links for the approval email."""
    engagement = _load_engagement(event)
    if engagement is None:
        return {"url_google": "", "url_ics": ""}
    return {
        "engagement_name": engagement.name,
        "url_google": engagement.google_calendar_link,
        "url_ics": engagement.ics_link,
    }
