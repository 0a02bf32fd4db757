"""
Notification schemas - Pydantic models for events, records and API responses.
"""

import copy
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ninja import Schema
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticSerializationError, to_jsonable_python


def json_payload(value: dict[str, Any]) -> dict[str, Any]:
    """A JSON-native copy of a payload, or a plain deep copy if it has no JSON form."""
    try:
        return to_jsonable_python(value)
    except PydanticSerializationError:
        # Left as-is for validate_event to reject
        return copy.deepcopy(value)


class RecordStatus(StrEnum):
    """Delivery status of a persisted event record."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True)
class Recipient:
    """Someone a message can be sent to."""

    id: int
    email: str
    name: str = ""


class Event(BaseModel):
    """
    A business event to dispatch.

    Immutable once constructed. The payload is copied on the way in as
    JSON-native values (sets become lists, datetimes become ISO strings),
    so what is validated is exactly what gets stored.
    """

    model_config = ConfigDict(frozen=True)

    event_type: str = Field(description="Event type, e.g. 'newEngagement'")
    idempotency_key: str = Field(description="Caller-supplied deduplication key")
    subject_id: int = Field(description="ID of the user the event is about")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event happened (UTC)",
    )

    @field_validator("payload")
    @classmethod
    def _copy_payload(cls, value: dict[str, Any]) -> dict[str, Any]:
        return json_payload(value)


class ActionFailure(BaseModel):
    """One failed action of a dispatch, stored on the record for out-of-band retry."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(description="Position of the action in its rule")
    action: str = Field(description="Action label, e.g. 'notify_one:notification'")
    reason: str = Field(description="Why the action failed")
    failed_recipient_ids: tuple[int, ...] = Field(
        default=(), description="Recipients that did not receive the message"
    )


class EventRecord(BaseModel):
    """Persisted projection of an Event plus its caption and delivery status."""

    model_config = ConfigDict(frozen=True)

    idempotency_key: str
    event_type: str
    subject_id: int
    payload: dict[str, Any] = Field(default_factory=dict)
    caption: str = ""
    status: RecordStatus = RecordStatus.PENDING
    failures: tuple[ActionFailure, ...] = ()
    created_at: datetime

    @field_validator("payload")
    @classmethod
    def _normalize_payload(cls, value: dict[str, Any]) -> dict[str, Any]:
        return json_payload(value)

    @classmethod
    def from_event(cls, event: Event, caption: str = "") -> "EventRecord":
        """Build the pending record for a freshly received event."""
        return cls(
            idempotency_key=event.idempotency_key,
            event_type=event.event_type,
            subject_id=event.subject_id,
            payload=event.payload,
            caption=caption,
            created_at=event.created_at,
        )


class NotificationListParams(Schema):
    """Query parameters for the notification list."""

    limit: int = Field(default=50, ge=1, le=100)


class NotificationResponse(Schema):
    """A notification as shown to its user."""

    idempotency_key: str
    event_type: str
    caption: str
    status: str
    data: dict[str, Any]
    created_at: str  # ISO timestamp


class NotificationListResponse(Schema):
    """Notifications for one user, newest first."""

    notifications: list[NotificationResponse]
