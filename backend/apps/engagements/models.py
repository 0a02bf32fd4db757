"""
Engagements models - projects, experts and the engagements between them.
"""

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models

from apps.core.models import CompanyScopedModel, TimestampedModel


class Project(CompanyScopedModel):
    """A company project that experts are engaged on."""

    name = models.CharField(max_length=255)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name


class Expert(TimestampedModel):
    """Expert profile of a user who can be engaged on projects."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="expert",
    )
    name = models.CharField(max_length=255)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Engagement(TimestampedModel):
    """An expert engaged on a project at an agreed rate."""

    class Status(models.TextChoices):
        REQUESTED = "requested", "Requested"
        APPROVED = "approved", "Approved"
        CLOSED = "closed", "Closed"
        CANCELED = "canceled", "Canceled"

    project = models.ForeignKey(
        Project,
        on_delete=models.CASCADE,
        related_name="engagements",
    )
    expert = models.ForeignKey(
        Expert,
        on_delete=models.CASCADE,
        related_name="engagements",
    )
    name = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.REQUESTED,
        db_index=True,
    )
    last_rate = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0"),
        help_text="Most recently agreed rate, in major currency units",
    )

    # Calendar links sent with the approval email
    google_calendar_link = models.URLField(max_length=1024, blank=True)
    ics_link = models.URLField(max_length=1024, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.name} ({self.status})"

    @property
    def amount_minor_units(self) -> int:
        """The agreed rate in minor currency units (cents)."""
        return int((self.last_rate * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
