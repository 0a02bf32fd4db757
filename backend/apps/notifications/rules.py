"""
Dispatch rules - which side effects an event type triggers, in which order.

A rule is an ordered tuple of action specs:

    Persist()                       store the notification record
    NotifyOne(template, resolver)   email one recipient
    NotifyMany(template, resolver)  email every resolved recipient

Rules are built once at startup into a RuleRegistry, which is then frozen.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar

from apps.notifications.exceptions import ConfigError

if TYPE_CHECKING:
    from apps.notifications.schemas import Event, Recipient

    SingleResolver = Callable[[Event], Recipient | None]
    ManyResolver = Callable[[Event], list[Recipient]]
    ContextBuilder = Callable[[Event], Mapping[str, Any]]


class EventType(StrEnum):
    """Event types with a registered default rule."""

    NEW_ENGAGEMENT = "newEngagement"
    REVIEW_ENGAGEMENT = "reviewEngagement"
    CANCEL_ENGAGEMENT = "cancelEngagement"
    CLOSE_ENGAGEMENT = "closeEngagement"
    APPROVE_ENGAGEMENT = "approveEngagement"
    PAYMENT_SUBSCRIPTION_SUCCESS = "paymentSubscriptionSuccess"
    PAYMENT_ENGAGEMENT_SUCCESS = "paymentEngagementSuccess"


def _freeze(variables: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(variables))


@dataclass(frozen=True)
class Persist:
    """Store the notification record."""

    kind: ClassVar[str] = "persist"

    @property
    def label(self) -> str:
        return self.kind


@dataclass(frozen=True)
class NotifyOne:
    """Send one templated message to the single recipient the resolver returns."""

    template_id: str
    recipient_resolver: SingleResolver
    variables: Mapping[str, Any] = field(default_factory=dict)
    context_builder: ContextBuilder | None = None

    kind: ClassVar[str] = "notify_one"

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", _freeze(self.variables))

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.template_id}"


@dataclass(frozen=True)
class NotifyMany:
    """Send one templated message to each recipient the resolver returns."""

    template_id: str
    recipient_resolver: ManyResolver
    variables: Mapping[str, Any] = field(default_factory=dict)
    context_builder: ContextBuilder | None = None

    kind: ClassVar[str] = "notify_many"

    def __post_init__(self) -> None:
        object.__setattr__(self, "variables", _freeze(self.variables))

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.template_id}"


ActionSpec = Persist | NotifyOne | NotifyMany


@dataclass(frozen=True)
class DispatchRule:
    """Ordered side effects for one event type."""

    event_type: str
    actions: tuple[ActionSpec, ...] = ()
    caption: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", tuple(self.actions))


class RuleRegistry:
    """
    Maps event types to dispatch rules by exact match.

    Registration happens at startup; freeze() then makes the registry
    read-only so it can be shared across threads.
    """

    def __init__(self, rules: list[DispatchRule] | None = None) -> None:
        self._rules: dict[str, DispatchRule] = {}
        self._frozen = False
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: DispatchRule) -> None:
        """
        Register a rule.

        Raises:
            ConfigError: If the registry is frozen, the event type is already
                registered, or an action spec is malformed.
        """
        if self._frozen:
            raise ConfigError(f"Cannot register {rule.event_type!r}: registry is frozen")
        if not rule.event_type:
            raise ConfigError("Dispatch rule needs an event type")
        if rule.event_type in self._rules:
            raise ConfigError(f"Duplicate dispatch rule for event type {rule.event_type!r}")

        for action in rule.actions:
            if not isinstance(action, Persist | NotifyOne | NotifyMany):
                raise ConfigError(
                    f"Unknown action {action!r} in rule for {rule.event_type!r}"
                )
            if isinstance(action, NotifyOne | NotifyMany):
                if not action.template_id:
                    raise ConfigError(f"{action.kind} in {rule.event_type!r} has no template")
                if not callable(action.recipient_resolver):
                    raise ConfigError(
                        f"{action.kind} in {rule.event_type!r} has no recipient resolver"
                    )

        self._rules[rule.event_type] = rule

    def lookup(self, event_type: str) -> DispatchRule | None:
        """Return the rule for the event type, or None if unrouted."""
        return self._rules.get(event_type)

    def freeze(self) -> RuleRegistry:
        """Make the registry read-only. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def event_types(self) -> list[str]:
        """All registered event types, in registration order."""
        return list(self._rules)

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._rules

    def __len__(self) -> int:
        return len(self._rules)


def build_default_registry(frontend_url: str) -> RuleRegistry:
    """
    Build the registry for the engagement lifecycle and payment events.

    Engagement emails link to the frontend login page; the approval email
    goes to both parties and carries the calendar links instead.
    """
    from apps.notifications.resolvers import (
        engagement_calendar_context,
        engagement_participants,
        subject_user,
    )

    login_url = f"{frontend_url.rstrip('/')}/login"

    def notify_subject(message: str) -> NotifyOne:
        return NotifyOne(
            template_id="notification",
            recipient_resolver=subject_user,
            variables={"message": message, "url": login_url},
        )

    return RuleRegistry(
        [
            DispatchRule(
                event_type=EventType.NEW_ENGAGEMENT,
                caption="You have an engagement request.",
                actions=(
                    Persist(),
                    notify_subject(
                        "You have an engagement request. "
                        "Please review and respond as soon as possible."
                    ),
                ),
            ),
            DispatchRule(
                event_type=EventType.REVIEW_ENGAGEMENT,
                caption="Your engagement has been updated.",
                actions=(
                    Persist(),
                    notify_subject(
                        "Your engagement has been updated. Please review as soon as possible."
                    ),
                ),
            ),
            DispatchRule(
                event_type=EventType.CANCEL_ENGAGEMENT,
                caption="Your engagement has been canceled.",
                actions=(
                    Persist(),
                    notify_subject(
                        "Your engagement has been cancelled. "
                        "Please review or reschedule as needed."
                    ),
                ),
            ),
            DispatchRule(
                event_type=EventType.CLOSE_ENGAGEMENT,
                caption="Was your engagement completed?",
                actions=(
                    Persist(),
                    notify_subject(
                        "Was your engagement completed? Please confirm as soon as possible."
                    ),
                ),
            ),
            DispatchRule(
                event_type=EventType.APPROVE_ENGAGEMENT,
                caption="Engagement was approved",
                actions=(
                    Persist(),
                    NotifyMany(
                        template_id="notification_calendar",
                        recipient_resolver=engagement_participants,
                        variables={"message": "Engagement was approved."},
                        context_builder=engagement_calendar_context,
                    ),
                ),
            ),
            DispatchRule(
                event_type=EventType.PAYMENT_SUBSCRIPTION_SUCCESS,
                caption="Your subscription payment was succeeded.",
                actions=(Persist(),),
            ),
            DispatchRule(
                event_type=EventType.PAYMENT_ENGAGEMENT_SUCCESS,
                caption="Your payment for the engagement was successful.",
                actions=(Persist(),),
            ),
        ]
    )
