"""
shared/utils/fees.py
Platform fee split for booking amounts.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Optional, Union

from config.settings import settings
from shared.utils.errors import ValidationError

CENTS = Decimal("0.01")

Number = Union[Decimal, int, float, str]


class FeeSplit(NamedTuple):
    platform_fee: Decimal
    tutor_earning: Decimal


def to_money(value: Number) -> Decimal:
    """Coerce to Decimal rounded half-up to cents. Floats go through str()."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_fee(amount: Number, fee_percentage: Optional[Number] = None) -> FeeSplit:
    """
    Split a gross amount into (platform_fee, tutor_earning).

    platform_fee is amount * pct / 100 rounded to cents and tutor_earning is
    the remainder, so the two always add back up to the amount.
    """
    gross = to_money(amount)
    if gross <= 0:
        raise ValidationError.for_field("amount", "Amount must be greater than zero")

    pct = Decimal(str(settings.PLATFORM_FEE_PERCENTAGE if fee_percentage is None else fee_percentage))
    if pct < 0 or pct > 100:
        raise ValidationError.for_field("fee_percentage", "Fee percentage must be between 0 and 100")

    platform_fee = (gross * pct / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
    return FeeSplit(platform_fee=platform_fee, tutor_earning=gross - platform_fee)


def session_price(hourly_rate: Number, duration_minutes: int) -> Decimal:
    """Price of a session: hourly rate pro-rated by minutes."""
    return to_money(Decimal(str(hourly_rate)) * duration_minutes / 60)


def format_currency(amount: Number, currency: Optional[str] = None) -> str:
    return f"{currency or settings.DEFAULT_CURRENCY} {to_money(amount):.2f}"
