"""Billing exceptions."""

from enum import StrEnum


class PaymentErrorKind(StrEnum):
    """Why a charge did not go through."""

    # The payer must complete an extra step (e.g. 3-D Secure)
    ACTION_REQUIRED = "action_required"
    # The payment method was refused or is missing
    DECLINED = "declined"
    # The payment provider failed or answered unexpectedly
    PROVIDER_FAILURE = "provider_failure"


class PaymentError(Exception):
    """A charge failed. Nothing was recorded for it."""

    def __init__(
        self,
        kind: PaymentErrorKind,
        message: str,
        payment_id: str | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.payment_id = payment_id

    def __repr__(self) -> str:
        return f"PaymentError(kind={self.kind.value!r}, message={str(self)!r})"
