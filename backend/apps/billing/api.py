"""
Billing API endpoints.

Read-only views of a user's Stripe payment methods and payment history.
Routes are unauthenticated and take the user ID from the path. Mount the
router behind the deployment's auth before exposing it publicly.
"""

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from apps.accounts.models import User
from apps.billing.exceptions import PaymentError
from apps.billing.schemas import (
    PaymentHistoryResponse,
    PaymentMethodListResponse,
    PaymentMethodResponse,
)
from apps.billing.services import get_payment_methods, get_payments_history
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse

logger = get_logger(__name__)

router = Router(tags=["billing"])


def _get_user(user_id: int) -> User:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        raise HttpError(404, "User not found") from None


@router.get(
    "/users/{user_id}/payment-methods",
    response={200: PaymentMethodListResponse, 404: ErrorResponse, 502: ErrorResponse},
    operation_id="listPaymentMethods",
    summary="List a user's payment methods",
)
def list_payment_methods(request: HttpRequest, user_id: int) -> PaymentMethodListResponse:
    """
    List the user's saved cards. The default card is flagged.
    """
    user = _get_user(user_id)

    try:
        methods = get_payment_methods(user)
    except PaymentError:
        logger.exception("payment_method_list_failed", user_id=user_id)
        raise HttpError(502, "Failed to retrieve payment methods")

    return PaymentMethodListResponse(
        payment_methods=[
            PaymentMethodResponse(
                payment_method_id=method.id,
                is_default=method.is_default,
                brand=method.brand,
                exp_month=method.exp_month,
                exp_year=method.exp_year,
                last4=method.last4,
            )
            for method in methods
        ]
    )


@router.get(
    "/users/{user_id}/payments",
    response={200: PaymentHistoryResponse, 404: ErrorResponse, 502: ErrorResponse},
    operation_id="listPayments",
    summary="List a user's payment history",
)
def list_payments(request: HttpRequest, user_id: int) -> PaymentHistoryResponse:
    """
    List the user's invoices, newest first.

    Subscription invoices include the plan they were billed for.
    """
    user = _get_user(user_id)

    try:
        payments = get_payments_history(user)
    except PaymentError:
        logger.exception("payment_history_failed", user_id=user_id)
        raise HttpError(502, "Failed to retrieve invoices")

    return PaymentHistoryResponse(payments=payments)
