from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from errors import ValidationError

CENT = Decimal("0.01")

AmountLike = Union[Decimal, int, float, str]


def to_cents(value: AmountLike, *, field: str = "amount") -> int:
    """Convert an external amount to integer cents, rounding half away from zero."""
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError("Invalid amount", field=field) from exc
    if not amount.is_finite():
        raise ValidationError("Invalid amount", field=field)
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValidationError("Amount must be positive", field=field)
    return cents


def quantize_amount(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def cents_to_amount(cents: int) -> float:
    return float(quantize_amount(cents))


def format_amount(cents: int) -> str:
    return f"{quantize_amount(cents):.2f}"
