"""
Notification models - the durable event record store.
"""

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class Notification(models.Model):
    """
    One dispatched event, as shown to its subject user.

    Rows are inserted once per idempotency key; the unique constraint is
    what makes concurrent dispatch of the same key safe. After the rule's
    actions run, the row carries the final status and any failed actions.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DELIVERED = "delivered", "Delivered"
        FAILED = "failed", "Failed"

    id = models.BigAutoField(primary_key=True)

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Caller-supplied deduplication key",
    )
    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type, e.g. 'newEngagement'",
    )
    subject_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="ID of the user the notification belongs to",
    )
    caption = models.CharField(max_length=255, blank=True)
    payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    failures = models.JSONField(
        default=list,
        blank=True,
        help_text="Failed actions: [{'index': 1, 'action': '...', 'reason': '...'}]",
    )

    occurred_at = models.DateTimeField(help_text="When the event happened")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-occurred_at"]
        indexes = [
            models.Index(fields=["subject_id", "occurred_at"], name="notification_subject_time_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} ({self.status})"
