# backend/pos_admin/domain/money.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Any


class MoneyError(ValueError):
    """Raised when money/percentage parsing or formatting fails."""


MAX_AMOUNT_CENTS = 10_000_000_00  # $10,000,000.00 safety bound

PERCENT_MIN = Decimal("0")
PERCENT_MAX = Decimal("100")
_PERCENT_QUANTUM = Decimal("0.01")
_CENT = Decimal("1")


@dataclass(frozen=True)
class Money:
    """
    Simple money value object using integer cents.
    No floats anywhere.
    """
    cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not isinstance(self.cents, int) or isinstance(self.cents, bool):
            raise MoneyError("Money.cents must be an int")
        if not isinstance(self.currency, str) or not self.currency.strip():
            raise MoneyError("Money.currency must be a non-empty string")

    @property
    def dollars(self) -> Decimal:
        return Decimal(self.cents) / Decimal(100)

    def format(self, symbol: str = "$") -> str:
        """
        Format cents as a string like "$12.34".
        """
        sign = "-" if self.cents < 0 else ""
        abs_cents = abs(self.cents)
        dollars = abs_cents // 100
        cents = abs_cents % 100
        return f"{sign}{symbol}{dollars}.{cents:02d}"


def cents_to_str(cents: int, *, symbol: str = "$") -> str:
    """
    Convert integer cents to a display string like "$12.34".
    """
    if not isinstance(cents, int):
        raise MoneyError("cents must be an int")
    return Money(cents=cents).format(symbol=symbol)


def cents_to_decimal(cents: int) -> Decimal:
    """
    Integer cents -> Decimal with exactly 2 fractional digits (1234 -> 12.34).
    """
    return (Decimal(cents) / Decimal(100)).quantize(_PERCENT_QUANTUM)


def decimal_to_cents(
    value: Any,
    *,
    rounding=ROUND_HALF_UP,
    max_abs_cents: int = MAX_AMOUNT_CENTS,
) -> int:
    """
    Convert a decimal-like value to cents with explicit rounding.

    Examples:
      "12.34" -> 1234
      "12.345" -> 1235 (half-up)
      12.5 -> 1250
    """
    d = _to_decimal(value)
    if d is None or not d.is_finite():
        raise MoneyError(f"invalid decimal value: {value!r}")

    scaled = d * Decimal(100)
    if abs(scaled) > max_abs_cents:
        raise MoneyError("amount exceeds safety limit")

    cents = int(scaled.quantize(_CENT, rounding=rounding))
    if abs(cents) > max_abs_cents:
        raise MoneyError("amount exceeds safety limit")

    return cents


def coerce_amount_to_cents(value: Any) -> int:
    """
    Lenient counterpart of decimal_to_cents for user-typed amounts.

    Never raises. Whatever comes in is clamped to the nearest valid amount:
      None / "" / "abc" / NaN -> 0
      negative               -> 0
      +inf or too large      -> MAX_AMOUNT_CENTS
    """
    d = _to_decimal(value)
    if d is None or d.is_nan():
        return 0
    if d.is_infinite():
        return MAX_AMOUNT_CENTS if d > 0 else 0

    scaled = d * Decimal(100)
    if scaled <= 0:
        return 0
    if scaled >= MAX_AMOUNT_CENTS:
        return MAX_AMOUNT_CENTS
    return int(scaled.quantize(_CENT, rounding=ROUND_HALF_UP))


def coerce_percentage(value: Any) -> Decimal:
    """
    Clamp a discount rate into [0, 100] with 2 fractional digits, truncated
    so a rate just under 100 never becomes a full discount.

    Never raises: non-numeric input and NaN become 0, -inf becomes 0,
    +inf becomes 100.
    """
    d = _to_decimal(value)
    if d is None or d.is_nan():
        return PERCENT_MIN.quantize(_PERCENT_QUANTUM)
    if d < PERCENT_MIN:
        d = PERCENT_MIN
    elif d > PERCENT_MAX:
        d = PERCENT_MAX
    return d.quantize(_PERCENT_QUANTUM, rounding=ROUND_DOWN)


def apply_discount(cents: int, percent: Decimal) -> int:
    """
    Amount actually charged for `cents` of coverage at `percent` discount,
    rounded half-up to whole cents.

      apply_discount(5000, Decimal("10")) -> 4500
      apply_discount(5000, Decimal("100")) -> 0
    """
    if cents <= 0:
        return 0
    charged = Decimal(cents) * (PERCENT_MAX - percent) / PERCENT_MAX
    return max(0, int(charged.quantize(_CENT, rounding=ROUND_HALF_UP)))


def coverage_of(amount_cents: int, percent: Decimal) -> Decimal:
    """
    Pre-discount cents accounted for by a charged amount:
    amount / (1 - percent/100).

    A 100% discount covers nothing; callers keep the amount at 0 there, so
    this returns 0 instead of dividing by zero.
    """
    if percent >= PERCENT_MAX or amount_cents <= 0:
        return Decimal(0)
    return Decimal(amount_cents) * PERCENT_MAX / (PERCENT_MAX - percent)


def round_cents(value: Decimal) -> int:
    """Decimal cents -> int cents, half-up."""
    return int(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def safe_sum_cents(*values: int) -> int:
    """
    Sum cents with type checks (no floats).
    """
    total = 0
    for v in values:
        if not isinstance(v, int):
            raise MoneyError("all values must be int cents")
        total += v
    return total


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # repr-based so 0.1 stays 0.1 instead of its binary expansion
        return Decimal(repr(value))
    if isinstance(value, str):
        s = value.strip()
        if s.count(",") == 1 and "." not in s:
            s = s.replace(",", ".")  # decimal comma
        if not s:
            return None
        try:
            return Decimal(s)
        except (InvalidOperation, ValueError):
            return None
    return None
