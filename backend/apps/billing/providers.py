"""
Payment providers.

The charge orchestrator talks to a PaymentProvider so it can be tested
without Stripe. StripePaymentProvider is the production implementation.
"""

import logging
from abc import ABC, abstractmethod

import stripe

from apps.billing.exceptions import PaymentError, PaymentErrorKind
from apps.billing.schemas import ChargeOptions, ChargeReceipt, InvoiceSummary, PaymentMethod
from apps.billing.stripe_client import get_currency, get_stripe

logger = logging.getLogger(__name__)

# PaymentIntent statuses that mean the money is on its way
SUCCEEDED_STATUSES = frozenset({"succeeded", "processing"})
ACTION_REQUIRED_STATUSES = frozenset({"requires_action", "requires_confirmation"})
DECLINED_STATUSES = frozenset({"requires_payment_method"})


class PaymentProvider(ABC):
    """Abstract payment provider."""

    @abstractmethod
    def charge(
        self,
        customer_id: str,
        payment_method_id: str,
        amount: int,
        options: ChargeOptions,
    ) -> ChargeReceipt:
        """
        Charge a saved payment method.

        Raises:
            PaymentError: If the charge did not succeed.
        """

    @abstractmethod
    def list_payment_methods(self, customer_id: str) -> list[PaymentMethod]:
        """List a customer's saved cards, flagging the default one."""

    @abstractmethod
    def list_invoices(self, customer_id: str, limit: int = 100) -> list[InvoiceSummary]:
        """List a customer's invoices, newest first."""


def _kind_for_status(status: str) -> PaymentErrorKind | None:
    if status in SUCCEEDED_STATUSES:
        return None
    if status in ACTION_REQUIRED_STATUSES:
        return PaymentErrorKind.ACTION_REQUIRED
    if status in DECLINED_STATUSES:
        return PaymentErrorKind.DECLINED
    return PaymentErrorKind.PROVIDER_FAILURE


def _error_from_stripe(error: stripe.StripeError) -> PaymentError:
    if isinstance(error, stripe.CardError):
        if error.code == "authentication_required":
            kind = PaymentErrorKind.ACTION_REQUIRED
        else:
            kind = PaymentErrorKind.DECLINED
    else:
        kind = PaymentErrorKind.PROVIDER_FAILURE

    payment_id = None
    intent = getattr(error.error, "payment_intent", None) if error.error else None
    if intent is not None:
        payment_id = intent.get("id")

    return PaymentError(kind, error.user_message or str(error), payment_id=payment_id)


def _subscription_id(invoice) -> str | None:
    # Newer API versions nest the subscription under invoice.parent
    subscription = getattr(invoice, "subscription", None)
    if subscription:
        return subscription if isinstance(subscription, str) else subscription.id

    parent = getattr(invoice, "parent", None)
    details = getattr(parent, "subscription_details", None) if parent else None
    subscription = getattr(details, "subscription", None) if details else None
    if subscription:
        return subscription if isinstance(subscription, str) else subscription.id
    return None


class StripePaymentProvider(PaymentProvider):
    """Charges and reads payment data through the Stripe API."""

    def charge(
        self,
        customer_id: str,
        payment_method_id: str,
        amount: int,
        options: ChargeOptions,
    ) -> ChargeReceipt:
        stripe_api = get_stripe()

        params: dict = {
            "amount": amount,
            "currency": get_currency(),
            "customer": customer_id,
            "payment_method": payment_method_id,
            "confirm": True,
            "off_session": True,
            "description": options.description,
            "metadata": {key: str(value) for key, value in options.metadata.items()},
        }
        if options.transfer_destination:
            params["transfer_data"] = {"destination": options.transfer_destination}
            if options.fee_amount is not None:
                params["application_fee_amount"] = options.fee_amount
        if options.idempotency_key:
            params["idempotency_key"] = options.idempotency_key

        try:
            intent = stripe_api.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            logger.warning("Charge for customer %s failed: %s", customer_id, e)
            raise _error_from_stripe(e) from e

        kind = _kind_for_status(intent.status)
        if kind is not None:
            logger.warning(
                "PaymentIntent %s for customer %s ended in status %s",
                intent.id,
                customer_id,
                intent.status,
            )
            raise PaymentError(
                kind,
                f"Payment {intent.id} is {intent.status}",
                payment_id=intent.id,
            )

        logger.info("Charged customer %s: %s (%d)", customer_id, intent.id, amount)
        return ChargeReceipt(
            payment_id=intent.id,
            amount=amount,
            status=intent.status,
            description=options.description,
            fee_amount=params.get("application_fee_amount"),
            transfer_destination=options.transfer_destination,
            metadata=options.metadata,
        )

    def list_payment_methods(self, customer_id: str) -> list[PaymentMethod]:
        stripe_api = get_stripe()

        try:
            customer = stripe_api.Customer.retrieve(customer_id)
            methods = stripe_api.Customer.list_payment_methods(customer_id, type="card")
        except stripe.StripeError as e:
            logger.error("Failed to list payment methods for %s: %s", customer_id, e)
            raise PaymentError(PaymentErrorKind.PROVIDER_FAILURE, str(e)) from e

        invoice_settings = getattr(customer, "invoice_settings", None)
        default_id = getattr(invoice_settings, "default_payment_method", None)
        if default_id is not None and not isinstance(default_id, str):
            default_id = default_id.id

        return [
            PaymentMethod(
                id=method.id,
                brand=method.card.brand,
                exp_month=method.card.exp_month,
                exp_year=method.card.exp_year,
                last4=method.card.last4,
                is_default=method.id == default_id,
            )
            for method in methods.data
        ]

    def list_invoices(self, customer_id: str, limit: int = 100) -> list[InvoiceSummary]:
        stripe_api = get_stripe()

        try:
            invoices = stripe_api.Invoice.list(customer=customer_id, limit=min(limit, 100))
        except stripe.StripeError as e:
            logger.error("Failed to list invoices for %s: %s", customer_id, e)
            raise PaymentError(PaymentErrorKind.PROVIDER_FAILURE, str(e)) from e

        return [
            InvoiceSummary(
                id=invoice.id,
                created=invoice.created,
                number=invoice.number,
                paid=invoice.status == "paid",
                total=invoice.total,
                invoice_pdf=invoice.invoice_pdf,
                subscription_id=_subscription_id(invoice),
            )
            for invoice in invoices.data
        ]
