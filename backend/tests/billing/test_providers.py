"""
Tests for StripePaymentProvider.

All Stripe API calls are mocked to isolate tests from external dependencies.
"""

from types import MappingProxyType, SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from apps.billing.exceptions import PaymentError, PaymentErrorKind
from apps.billing.providers import StripePaymentProvider
from apps.billing.schemas import ChargeOptions


def _options(**kwargs) -> ChargeOptions:
    defaults = {
        "description": "Payment to Ada for the project Apollo engagement Kickoff",
        "metadata": MappingProxyType({"engagement_id": 3, "fee": 1500}),
    }
    return ChargeOptions(**{**defaults, **kwargs})


@patch("apps.billing.providers.get_stripe")
class TestCharge:
    """Tests for StripePaymentProvider.charge."""

    def test_charge_with_transfer(self, mock_get_stripe) -> None:
        """Should send the fee and transfer destination with the intent."""
        mock_stripe = mock_get_stripe.return_value
        mock_stripe.PaymentIntent.create.return_value = SimpleNamespace(
            id="pi_123", status="succeeded"
        )

        receipt = StripePaymentProvider().charge(
            "cus_1",
            "pm_1",
            10000,
            _options(fee_amount=1500, transfer_destination="acct_1", idempotency_key="k1"),
        )

        kwargs = mock_stripe.PaymentIntent.create.call_args.kwargs
        assert kwargs["amount"] == 10000
        assert kwargs["currency"] == "usd"
        assert kwargs["customer"] == "cus_1"
        assert kwargs["payment_method"] == "pm_1"
        assert kwargs["confirm"] is True
        assert kwargs["off_session"] is True
        assert kwargs["application_fee_amount"] == 1500
        assert kwargs["transfer_data"] == {"destination": "acct_1"}
        assert kwargs["metadata"] == {"engagement_id": "3", "fee": "1500"}
        assert kwargs["idempotency_key"] == "k1"

        assert receipt.payment_id == "pi_123"
        assert receipt.fee_amount == 1500
        assert receipt.transfer_destination == "acct_1"

    def test_charge_without_transfer_has_no_fee(self, mock_get_stripe) -> None:
        mock_stripe = mock_get_stripe.return_value
        mock_stripe.PaymentIntent.create.return_value = SimpleNamespace(
            id="pi_123", status="processing"
        )

        receipt = StripePaymentProvider().charge("cus_1", "pm_1", 10000, _options(fee_amount=1500))

        kwargs = mock_stripe.PaymentIntent.create.call_args.kwargs
        assert "application_fee_amount" not in kwargs
        assert "transfer_data" not in kwargs
        assert "idempotency_key" not in kwargs
        assert receipt.fee_amount is None

    @pytest.mark.parametrize(
        "status,kind",
        [
            ("requires_action", PaymentErrorKind.ACTION_REQUIRED),
            ("requires_confirmation", PaymentErrorKind.ACTION_REQUIRED),
            ("requires_payment_method", PaymentErrorKind.DECLINED),
            ("canceled", PaymentErrorKind.PROVIDER_FAILURE),
        ],
    )
    def test_unsuccessful_status_raises(self, mock_get_stripe, status, kind) -> None:
        mock_get_stripe.return_value.PaymentIntent.create.return_value = SimpleNamespace(
            id="pi_123", status=status
        )

        with pytest.raises(PaymentError) as exc_info:
            StripePaymentProvider().charge("cus_1", "pm_1", 100, _options())

        assert exc_info.value.kind == kind
        assert exc_info.value.payment_id == "pi_123"

    def test_card_declined(self, mock_get_stripe) -> None:
        mock_get_stripe.return_value.PaymentIntent.create.side_effect = stripe.CardError(
            "Your card was declined.", None, "card_declined"
        )

        with pytest.raises(PaymentError) as exc_info:
            StripePaymentProvider().charge("cus_1", "pm_1", 100, _options())

        assert exc_info.value.kind == PaymentErrorKind.DECLINED
        assert "declined" in str(exc_info.value)

    def test_authentication_required(self, mock_get_stripe) -> None:
        mock_get_stripe.return_value.PaymentIntent.create.side_effect = stripe.CardError(
            "This payment requires authentication.", None, "authentication_required"
        )

        with pytest.raises(PaymentError) as exc_info:
            StripePaymentProvider().charge("cus_1", "pm_1", 100, _options())

        assert exc_info.value.kind == PaymentErrorKind.ACTION_REQUIRED

    def test_api_error_is_provider_failure(self, mock_get_stripe) -> None:
        mock_get_stripe.return_value.PaymentIntent.create.side_effect = (
            stripe.APIConnectionError("Network down")
        )

        with pytest.raises(PaymentError) as exc_info:
            StripePaymentProvider().charge("cus_1", "pm_1", 100, _options())

        assert exc_info.value.kind == PaymentErrorKind.PROVIDER_FAILURE


def _card(pm_id: str, last4: str = "4242") -> SimpleNamespace:
    return SimpleNamespace(
        id=pm_id,
        card=SimpleNamespace(brand="visa", exp_month=12, exp_year=2030, last4=last4),
    )


@patch("apps.billing.providers.get_stripe")
class TestListPaymentMethods:
    """Tests for StripePaymentProvider.list_payment_methods."""

    def test_flags_default_method(self, mock_get_stripe) -> None:
        mock_stripe = mock_get_stripe.return_value
        mock_stripe.Customer.retrieve.return_value = SimpleNamespace(
            invoice_settings=SimpleNamespace(default_payment_method="pm_2")
        )
        mock_stripe.Customer.list_payment_methods.return_value = SimpleNamespace(
            data=[_card("pm_1", "1111"), _card("pm_2", "2222")]
        )

        methods = StripePaymentProvider().list_payment_methods("cus_1")

        mock_stripe.Customer.list_payment_methods.assert_called_once_with("cus_1", type="card")
        assert [(m.id, m.is_default) for m in methods] == [("pm_1", False), ("pm_2", True)]
        assert methods[1].last4 == "2222"
        assert methods[1].brand == "visa"

    def test_no_default(self, mock_get_stripe) -> None:
        mock_stripe = mock_get_stripe.return_value
        mock_stripe.Customer.retrieve.return_value = SimpleNamespace(
            invoice_settings=SimpleNamespace(default_payment_method=None)
        )
        mock_stripe.Customer.list_payment_methods.return_value = SimpleNamespace(
            data=[_card("pm_1")]
        )

        methods = StripePaymentProvider().list_payment_methods("cus_1")

        assert methods[0].is_default is False

    def test_stripe_error(self, mock_get_stripe) -> None:
        mock_get_stripe.return_value.Customer.retrieve.side_effect = stripe.APIConnectionError(
            "Network down"
        )

        with pytest.raises(PaymentError) as exc_info:
            StripePaymentProvider().list_payment_methods("cus_1")

        assert exc_info.value.kind == PaymentErrorKind.PROVIDER_FAILURE


@patch("apps.billing.providers.get_stripe")
class TestListInvoices:
    """Tests for StripePaymentProvider.list_invoices."""

    def test_maps_invoices(self, mock_get_stripe) -> None:
        mock_stripe = mock_get_stripe.return_value
        mock_stripe.Invoice.list.return_value = SimpleNamespace(
            data=[
                SimpleNamespace(
                    id="in_1",
                    created=1_700_000_000,
                    number="A-001",
                    status="paid",
                    total=4900,
                    invoice_pdf="https://stripe/in_1.pdf",
                    subscription="sub_1",
                ),
                SimpleNamespace(
                    id="in_2",
                    created=1_700_000_100,
                    number=None,
                    status="open",
                    total=1000,
                    invoice_pdf=None,
                    parent=SimpleNamespace(
                        subscription_details=SimpleNamespace(subscription="sub_2")
                    ),
                ),
                SimpleNamespace(
                    id="in_3",
                    created=1_700_000_200,
                    number="A-003",
                    status="paid",
                    total=500,
                    invoice_pdf=None,
                    parent=None,
                ),
            ]
        )

        invoices = StripePaymentProvider().list_invoices("cus_1", limit=500)

        mock_stripe.Invoice.list.assert_called_once_with(customer="cus_1", limit=100)
        assert [(i.id, i.paid, i.subscription_id) for i in invoices] == [
            ("in_1", True, "sub_1"),
            ("in_2", False, "sub_2"),
            ("in_3", True, None),
        ]
        assert invoices[0].total == 4900

    def test_stripe_error(self, mock_get_stripe) -> None:
        mock_get_stripe.return_value.Invoice.list.side_effect = stripe.APIConnectionError(
            "Network down"
        )

        with pytest.raises(PaymentError):
            StripePaymentProvider().list_invoices("cus_1")


class TestPaymentErrorRepr:
    def test_repr(self) -> None:
        error = PaymentError(PaymentErrorKind.DECLINED, "No card")
        assert repr(error) == "PaymentError(kind='declined', message='No card')"


def test_currency_comes_from_settings() -> None:
    with patch("apps.billing.stripe_client.settings", MagicMock(STRIPE_CURRENCY="EUR")):
        from apps.billing.stripe_client import get_currency

        assert get_currency() == "eur"
