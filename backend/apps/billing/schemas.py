"""
Billing schemas - charge requests, provider results, and API responses.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ninja import Schema
from pydantic import BaseModel, ConfigDict, Field


class ChargeRequest(BaseModel):
    """A request to charge a payer on behalf of a payee."""

    model_config = ConfigDict(frozen=True)

    payer_id: int
    payee_id: int
    amount: int = Field(ge=0, description="Amount in minor units (cents)")
    fee_percent: float = Field(ge=0, le=100)
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str | None = None


@dataclass(frozen=True)
class ChargeOptions:
    """What the provider needs to know about a charge besides who pays how much."""

    description: str
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    fee_amount: int | None = None
    transfer_destination: str | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class ChargeReceipt:
    """A charge the provider accepted."""

    payment_id: str
    amount: int
    status: str
    description: str
    fee_amount: int | None = None
    transfer_destination: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class PaymentMethod:
    """A saved card."""

    id: str
    brand: str
    exp_month: int
    exp_year: int
    last4: str
    is_default: bool = False


@dataclass(frozen=True)
class InvoiceSummary:
    """One invoice from the provider, reduced to what payment history shows."""

    id: str
    created: int
    number: str | None
    paid: bool
    total: int
    invoice_pdf: str | None
    subscription_id: str | None = None


# API responses


class PaymentMethodResponse(Schema):
    """A saved payment method."""

    payment_method_id: str
    is_default: bool
    brand: str
    exp_month: int
    exp_year: int
    last4: str


class PaymentMethodListResponse(Schema):
    payment_methods: list[PaymentMethodResponse]


class SubscriptionPlanResponse(Schema):
    """The plan an invoice was billed for."""

    id: int
    title: str
    description: str
    staff_amount: int
    price: str  # Decimal as string, major units


class PaymentHistoryItem(Schema):
    """One entry of a user's payment history."""

    created: str  # ISO timestamp
    number: str | None
    paid: bool
    total: int  # Amount in cents
    invoice_pdf: str | None  # URL to download PDF
    subscription: SubscriptionPlanResponse | None


class PaymentHistoryResponse(Schema):
    payments: list[PaymentHistoryItem]
