"""
Billing services - charges, payment read models and subscription sync.

All Stripe API calls go through a PaymentProvider for testability.
External calls must NOT be inside database transactions.
"""

import logging
from datetime import UTC, datetime
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from apps.accounts.models import User
from apps.billing.exceptions import PaymentError, PaymentErrorKind
from apps.billing.fees import compute_fee
from apps.billing.models import Subscription, SubscriptionPlan
from apps.billing.providers import PaymentProvider, StripePaymentProvider
from apps.billing.schemas import (
    ChargeOptions,
    ChargeReceipt,
    ChargeRequest,
    PaymentHistoryItem,
    PaymentMethod,
    SubscriptionPlanResponse,
)
from apps.engagements.models import Engagement
from apps.notifications.dispatcher import Dispatcher
from apps.notifications.exceptions import NotificationError
from apps.notifications.rules import EventType
from apps.notifications.schemas import Event
from apps.notifications.services import get_dispatcher, payment_subscription_success
from config.settings.base import settings

logger = logging.getLogger(__name__)

NO_TRANSFER_SUFFIX = " (w/o transfer)"


@lru_cache(maxsize=1)
def get_payment_provider() -> PaymentProvider:
    """Get the process-wide payment provider."""
    return StripePaymentProvider()


def _load_user(user_id: int, role: str) -> User:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise PaymentError(PaymentErrorKind.DECLINED, f"{role} {user_id} not found") from None


def _select_payment_method(methods: list[PaymentMethod]) -> PaymentMethod | None:
    """The default payment method, else the first one listed."""
    for method in methods:
        if method.is_default:
            return method
    return methods[0] if methods else None


def create_charge(
    request: ChargeRequest,
    provider: PaymentProvider | None = None,
    dispatcher: Dispatcher | None = None,
) -> ChargeReceipt:
    """
    Charge the payer and tell them the payment went through.

    The fee is computed once and used for both the application fee and the
    ``fee`` metadata entry. When the payee has no payout account the money
    stays on the platform: no transfer, no application fee, and the
    description says so.

    On success ``paymentEngagementSuccess`` is dispatched with the key
    ``charge:<payment id>``. A notification failure after the charge is
    logged, never raised, since the money has already moved.

    Raises:
        PaymentError: If the charge failed. Nothing was dispatched.
    """
    provider = provider or get_payment_provider()
    dispatcher = dispatcher or get_dispatcher()

    payer = _load_user(request.payer_id, "Payer")
    payee = _load_user(request.payee_id, "Payee")

    if not payer.stripe_customer_id:
        raise PaymentError(PaymentErrorKind.DECLINED, f"Payer {payer.pk} has no billing account")

    method = _select_payment_method(provider.list_payment_methods(payer.stripe_customer_id))
    if method is None:
        raise PaymentError(PaymentErrorKind.DECLINED, f"Payer {payer.pk} has no payment method")

    fee = compute_fee(request.amount, request.fee_percent)

    metadata = MappingProxyType(
        {
            **request.metadata,
            "sender_id": payer.pk,
            "sender_email": payer.email,
            "receiver_id": payee.pk,
            "receiver_email": payee.email,
            "fee": fee,
        }
    )

    if payee.has_payout_account:
        options = ChargeOptions(
            description=request.description,
            metadata=metadata,
            fee_amount=fee,
            transfer_destination=payee.stripe_account_id,
            idempotency_key=request.idempotency_key,
        )
    else:
        logger.warning("Payee %s has no payout account, charging without transfer", payee.pk)
        options = ChargeOptions(
            description=request.description + NO_TRANSFER_SUFFIX,
            metadata=metadata,
            idempotency_key=request.idempotency_key,
        )

    receipt = provider.charge(payer.stripe_customer_id, method.id, request.amount, options)

    try:
        dispatcher.dispatch(
            Event(
                event_type=EventType.PAYMENT_ENGAGEMENT_SUCCESS,
                idempotency_key=f"charge:{receipt.payment_id}",
                subject_id=payer.pk,
                payload={
                    **dict(metadata),
                    "payment_id": receipt.payment_id,
                    "amount": receipt.amount,
                },
            )
        )
    except NotificationError:
        logger.exception("Failed to record payment notification for %s", receipt.payment_id)

    return receipt


def create_engagement_charge(
    engagement_id: int,
    provider: PaymentProvider | None = None,
    dispatcher: Dispatcher | None = None,
) -> ChargeReceipt | None:
    """
    Charge the company owner for an engagement and pay the expert.

    Returns None without charging when no platform fee is configured.

    Raises:
        Engagement.DoesNotExist: If the engagement does not exist.
        PaymentError: If the charge failed.
    """
    if settings.FEE_PERCENT is None:
        logger.info("FEE_PERCENT not configured, skipping charge for engagement %s", engagement_id)
        return None

    engagement = Engagement.objects.select_related(
        "project__organization", "expert__user"
    ).get(pk=engagement_id)
    project = engagement.project
    expert = engagement.expert

    payer = project.organization.get_owner()
    if payer is None:
        raise PaymentError(
            PaymentErrorKind.DECLINED,
            f"Organization {project.organization_id} has no owner to charge",
        )

    request = ChargeRequest(
        payer_id=payer.pk,
        payee_id=expert.user_id,
        amount=engagement.amount_minor_units,
        fee_percent=settings.FEE_PERCENT,
        description=(
            f"Payment to {expert.name} for the project {project.name} "
            f"engagement {engagement.name}"
        ),
        metadata={
            "engagement_id": engagement.pk,
            "engagement_name": engagement.name,
            "project_id": project.pk,
            "project_name": project.name,
        },
        idempotency_key=f"engagement-charge:{engagement.pk}:{int(engagement.updated_at.timestamp())}",
    )
    return create_charge(request, provider=provider, dispatcher=dispatcher)


def get_payment_methods(user: User, provider: PaymentProvider | None = None) -> list[PaymentMethod]:
    """A user's saved cards. Users without a billing account have none."""
    if not user.stripe_customer_id:
        return []
    provider = provider or get_payment_provider()
    return provider.list_payment_methods(user.stripe_customer_id)


def _plan_response(plan: SubscriptionPlan) -> SubscriptionPlanResponse:
    return SubscriptionPlanResponse(
        id=plan.pk,
        title=plan.title,
        description=plan.description,
        staff_amount=plan.staff_amount,
        price=str(plan.price),
    )


def get_payments_history(
    user: User, provider: PaymentProvider | None = None
) -> list[PaymentHistoryItem]:
    """
    A user's invoices, newest first, each with the plan it was billed for.

    Invoices are matched to plans through the local Subscription synced from
    Stripe webhooks. Invoices for unknown subscriptions have no plan.
    """
    if not user.stripe_customer_id:
        return []
    provider = provider or get_payment_provider()
    invoices = provider.list_invoices(user.stripe_customer_id)

    subscription_ids = {inv.subscription_id for inv in invoices if inv.subscription_id}
    plans = {
        sub.stripe_subscription_id: sub.plan
        for sub in Subscription.objects.filter(
            stripe_subscription_id__in=subscription_ids
        ).select_related("plan")
    }

    history = []
    for invoice in invoices:
        plan = plans.get(invoice.subscription_id)
        history.append(
            PaymentHistoryItem(
                created=datetime.fromtimestamp(invoice.created, tz=UTC).isoformat(),
                number=invoice.number,
                paid=invoice.paid,
                total=invoice.total,
                invoice_pdf=invoice.invoice_pdf,
                subscription=_plan_response(plan) if plan else None,
            )
        )
    return history


def _price_id(stripe_subscription: dict[str, Any]) -> str:
    items = stripe_subscription.get("items", {}).get("data", [])
    return items[0]["price"]["id"] if items else ""


def handle_subscription_created(stripe_subscription: dict[str, Any]) -> Subscription | None:
    """
    Handle customer.subscription.created webhook.

    Creates or updates the local Subscription for the customer's user.
    """
    customer_id = stripe_subscription.get("customer")
    user = User.objects.filter(stripe_customer_id=customer_id).first() if customer_id else None
    if user is None:
        logger.warning("No user for Stripe customer %s", customer_id)
        return None

    price_id = _price_id(stripe_subscription)
    subscription, _ = Subscription.objects.update_or_create(
        stripe_subscription_id=stripe_subscription["id"],
        defaults={
            "user": user,
            "plan": SubscriptionPlan.objects.filter(stripe_price_id=price_id).first(),
            "stripe_price_id": price_id,
            "status": stripe_subscription["status"],
            "cancel_at_period_end": stripe_subscription.get("cancel_at_period_end", False),
        },
    )

    logger.info("Created/updated subscription %s for user %s", subscription.pk, user.pk)
    return subscription


def handle_subscription_updated(stripe_subscription: dict[str, Any]) -> Subscription | None:
    """
    Handle customer.subscription.updated webhook.

    Updates local Subscription record.
    """
    try:
        subscription = Subscription.objects.get(stripe_subscription_id=stripe_subscription["id"])
    except Subscription.DoesNotExist:
        # Might be a new subscription - try to create
        return handle_subscription_created(stripe_subscription)

    price_id = _price_id(stripe_subscription) or subscription.stripe_price_id
    if price_id != subscription.stripe_price_id:
        subscription.plan = SubscriptionPlan.objects.filter(stripe_price_id=price_id).first()
    subscription.stripe_price_id = price_id
    subscription.status = stripe_subscription["status"]
    subscription.cancel_at_period_end = stripe_subscription.get("cancel_at_period_end", False)
    subscription.save()

    logger.info("Updated subscription %s", subscription.stripe_subscription_id)
    return subscription


def handle_subscription_deleted(stripe_subscription: dict[str, Any]) -> None:
    """
    Handle customer.subscription.deleted webhook.

    Marks subscription as canceled.
    """
    updated = Subscription.objects.filter(
        stripe_subscription_id=stripe_subscription["id"]
    ).update(status=Subscription.Status.CANCELED, updated_at=datetime.now(tz=UTC))

    if updated:
        logger.info("Marked subscription %s as canceled", stripe_subscription["id"])


def handle_invoice_paid(invoice: dict[str, Any]) -> None:
    """
    Handle invoice.paid webhook.

    Subscription invoices notify the subscriber. Stripe redelivers webhooks,
    so the notification is keyed by invoice ID.
    """
    # Newer API versions nest the subscription under invoice.parent
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    subscription_id = invoice.get("subscription") or details.get("subscription")
    if not subscription_id:
        return

    user = User.objects.filter(stripe_customer_id=invoice.get("customer")).first()
    if user is None:
        logger.warning("No user for Stripe customer %s", invoice.get("customer"))
        return

    payment_subscription_success(user, invoice["id"])
