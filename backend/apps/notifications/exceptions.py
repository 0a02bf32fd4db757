"""Notification dispatch exceptions."""


class NotificationError(Exception):
    """Base exception for notification dispatch errors."""

    pass


class ValidationError(NotificationError):
    """Event is malformed. Nothing was recorded; fix the event before resending."""

    pass


class StoreError(NotificationError):
    """The event record store is unavailable. Safe to retry with the same key."""

    pass


class SendError(NotificationError):
    """A message could not be delivered to one recipient."""

    def __init__(self, message: str, recipient_id: int | None = None):
        super().__init__(message)
        self.recipient_id = recipient_id


class ConfigError(NotificationError):
    """Dispatch rules are misconfigured. Raised at startup only."""

    pass
