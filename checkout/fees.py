from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from checkout.errors import InvalidAmount

CENT = Decimal("0.01")
SERVICE_FEE_RATE = Decimal("0.05")
SERVICE_FEE_CAP = Decimal("3.00")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    service_fee: Decimal
    total: Decimal


def to_decimal(value) -> Decimal:
    """Coerce a request amount to a cent-precision Decimal."""
    if isinstance(value, bool) or value is None:
        raise InvalidAmount("Invalid amount", code="invalid_amount")
    try:
        # floats go through str() so 0.1 stays 0.1
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount("Invalid amount", code="invalid_amount") from None
    if not amount.is_finite():
        raise InvalidAmount("Invalid amount", code="invalid_amount")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(subtotal) -> Totals:
    subtotal = to_decimal(subtotal)
    if subtotal <= 0:
        raise InvalidAmount("Subtotal must be greater than zero", code="invalid_amount")

    fee = (subtotal * SERVICE_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    fee = min(fee, SERVICE_FEE_CAP)
    return Totals(subtotal=subtotal, service_fee=fee, total=subtotal + fee)


def to_minor_units(amount: Decimal) -> int:
    return int((amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(CENT)
