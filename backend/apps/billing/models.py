"""
Billing models - subscription plans and users' Stripe subscriptions.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models


class SubscriptionPlan(models.Model):
    """A plan users can subscribe to, backed by a Stripe price."""

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    staff_amount = models.PositiveIntegerField(
        default=1,
        help_text="Number of staff seats included in the plan",
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0"),
        help_text="Price per billing period, in major currency units",
    )
    stripe_price_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe price ID, e.g. 'price_xxx'",
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["price"]

    def __str__(self) -> str:
        return self.title


class Subscription(models.Model):
    """
    A user's Stripe subscription.

    Source of truth is Stripe - synced via webhooks.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        PAST_DUE = "past_due", "Past Due"
        CANCELED = "canceled", "Canceled"
        INCOMPLETE = "incomplete", "Incomplete"
        INCOMPLETE_EXPIRED = "incomplete_expired", "Incomplete Expired"
        TRIALING = "trialing", "Trialing"
        UNPAID = "unpaid", "Unpaid"
        PAUSED = "paused", "Paused"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        SubscriptionPlan,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subscriptions",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe subscription ID, e.g. 'sub_xxx'",
    )
    stripe_price_id = models.CharField(
        max_length=255,
        help_text="Stripe price ID, e.g. 'price_xxx'",
    )
    status = models.CharField(
        max_length=50,
        choices=Status.choices,
        default=Status.INCOMPLETE,
        db_index=True,
        help_text="Subscription status from Stripe",
    )
    cancel_at_period_end = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.user.email} - {self.status}"

    @property
    def is_active(self) -> bool:
        """Check if subscription is in a usable state."""
        return self.status in (self.Status.ACTIVE, self.Status.TRIALING)
