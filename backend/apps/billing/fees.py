"""
Platform fee calculation.

Fees are whole minor units, rounded half up like currency amounts
(a fee of 12.5 cents is 13 cents, not 12).
"""

from decimal import ROUND_HALF_UP, Decimal


def compute_fee(amount: int, fee_percent: float | int | Decimal) -> int:
    """
    Compute the platform fee for an amount.

    Args:
        amount: Charge amount in minor units (cents). Must be non-negative.
        fee_percent: Fee percentage between 0 and 100.

    Returns:
        The fee in minor units.

    Raises:
        ValueError: If amount or fee_percent is out of range.
    """
    if amount < 0:
        raise ValueError("amount must be non-negative")

    # str() keeps binary float noise (e.g. 14.999999...) out of the decimal
    percent = Decimal(str(fee_percent))
    if not Decimal(0) <= percent <= Decimal(100):
        raise ValueError("fee_percent must be between 0 and 100")

    fee = Decimal(amount) * percent / Decimal(100)
    return int(fee.quantize(Decimal(1), rounding=ROUND_HALF_UP))
