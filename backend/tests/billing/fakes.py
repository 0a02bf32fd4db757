"""
In-memory payment provider for orchestration tests.
"""

from apps.billing.exceptions import PaymentError
from apps.billing.providers import PaymentProvider
from apps.billing.schemas import ChargeOptions, ChargeReceipt, InvoiceSummary, PaymentMethod


class FakePaymentProvider(PaymentProvider):
    """Records charges; optionally fails them."""

    def __init__(
        self,
        methods: list[PaymentMethod] | None = None,
        invoices: list[InvoiceSummary] | None = None,
        error: PaymentError | None = None,
    ):
        self.methods = methods if methods is not None else [
            PaymentMethod(id="pm_1", brand="visa", exp_month=12, exp_year=2030, last4="4242")
        ]
        self.invoices = invoices or []
        self.error = error
        self.charges: list[tuple[str, str, int, ChargeOptions]] = []

    def charge(
        self,
        customer_id: str,
        payment_method_id: str,
        amount: int,
        options: ChargeOptions,
    ) -> ChargeReceipt:
        if self.error is not None:
            raise self.error
        self.charges.append((customer_id, payment_method_id, amount, options))
        return ChargeReceipt(
            payment_id=f"pi_{len(self.charges)}",
            amount=amount,
            status="succeeded",
            description=options.description,
            fee_amount=options.fee_amount if options.transfer_destination else None,
            transfer_destination=options.transfer_destination,
            metadata=options.metadata,
        )

    def list_payment_methods(self, customer_id: str) -> list[PaymentMethod]:
        return list(self.methods)

    def list_invoices(self, customer_id: str, limit: int = 100) -> list[InvoiceSummary]:
        return list(self.invoices)[:limit]
