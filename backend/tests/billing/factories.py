"""
Factories for billing app models.

Used in tests to create test data.
"""

from decimal import Decimal

import factory
from factory.django import DjangoModelFactory

from apps.billing.models import Subscription, SubscriptionPlan
from tests.accounts.factories import UserFactory


class SubscriptionPlanFactory(DjangoModelFactory):
    """Factory for SubscriptionPlan model."""

    class Meta:
        model = SubscriptionPlan

    title = factory.Sequence(lambda n: f"Plan {n}")
    description = "Monthly plan"
    staff_amount = 5
    price = Decimal("49.00")
    stripe_price_id = factory.Sequence(lambda n: f"price_test_{n}")


class SubscriptionFactory(DjangoModelFactory):
    """Factory for Subscription model."""

    class Meta:
        model = Subscription

    user = factory.SubFactory(UserFactory, stripe_customer_id=factory.Sequence(lambda n: f"cus_test_{n}"))
    plan = factory.SubFactory(SubscriptionPlanFactory)
    stripe_subscription_id = factory.Sequence(lambda n: f"sub_test_{n}")
    stripe_price_id = factory.SelfAttribute("plan.stripe_price_id")
    status = Subscription.Status.ACTIVE
    cancel_at_period_end = False
