# backend/pos_admin/domain/allocation.py
"""
Payment allocation for a sale.

Given a subtotal and an ordered list of payment methods, each with its own
discount, work out how much is charged through every method. All math is in
integer cents; "coverage" is the pre-discount slice of the subtotal an entry
accounts for (amount / (1 - discount/100)).

Everything here is pure: functions take a snapshot of entries and return a
new tuple. They never raise on user data (out-of-range values are clamped);
only programming errors (bad index, unknown strategy) raise AllocationError.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Dict, List, Sequence, Tuple

from pos_admin.domain.models import AllocationEntry
from pos_admin.domain.money import (
    PERCENT_MAX,
    apply_discount,
    cents_to_str,
    coerce_percentage,
    coverage_of,
    round_cents,
    safe_sum_cents,
)

logger = logging.getLogger(__name__)


class AllocationError(ValueError):
    """Raised when the engine is called with impossible arguments."""


# A strategy splits a target (cents of coverage) across entries given their
# discounts. It returns one coverage share per discount, in the same order,
# and the shares sum to the target.
Strategy = Callable[[Sequence[Decimal], int], List[int]]


def ordered_sequential_shares(discounts: Sequence[Decimal], target_cents: int) -> List[int]:
    """
    Walk the entries in order; each one but the last takes an equal split of
    whatever is still uncovered, and the last takes the rest.

      share_i = ceil(remaining / (n - i))

    Rounding up puts leftover cents on the earliest entries, the same way a
    penny-perfect equal split hands the remainder to the first entries.
    """
    n = len(discounts)
    if n == 0:
        return []

    shares: List[int] = []
    remaining = max(0, target_cents)
    for i in range(n - 1):
        share = -(-remaining // (n - i))
        shares.append(share)
        remaining -= share
    shares.append(max(0, remaining))
    return shares


def proportional_shares(discounts: Sequence[Decimal], target_cents: int) -> List[int]:
    """
    Split coverage in proportion to each entry's weight 100 / (100 - d).

    Since amount = coverage * (100 - d) / 100, this charges every method
    (roughly) the same amount. A 100% method weighs 0. If every weight is 0
    the target is split equally.

    Cents left over after flooring go to the largest fractional parts,
    ties resolved by list order.
    """
    n = len(discounts)
    if n == 0:
        return []

    target = max(0, target_cents)
    weights = [
        Decimal(0) if d >= PERCENT_MAX else PERCENT_MAX / (PERCENT_MAX - d)
        for d in discounts
    ]
    total_weight = sum(weights, Decimal(0))
    if total_weight == 0:
        weights = [Decimal(1)] * n
        total_weight = Decimal(n)

    raw = [Decimal(target) * w / total_weight for w in weights]
    shares = [int(r) for r in raw]  # floor, raw is never negative
    leftover = target - sum(shares)

    by_fraction = sorted(range(n), key=lambda i: (-(raw[i] - shares[i]), i))
    for i in by_fraction[:leftover]:
        shares[i] += 1

    return shares


ALLOCATION_STRATEGIES: Dict[str, Strategy] = {
    "ordered": ordered_sequential_shares,
    "proportional": proportional_shares,
}

DEFAULT_STRATEGY = "ordered"


def get_strategy(name: str) -> Strategy:
    try:
        return ALLOCATION_STRATEGIES[name]
    except KeyError:
        raise AllocationError(
            f"unknown allocation strategy: {name!r} "
            f"(expected one of {', '.join(sorted(ALLOCATION_STRATEGIES))})"
        ) from None


def _normalized(entries: Sequence[AllocationEntry]) -> Tuple[AllocationEntry, ...]:
    # Clamp discounts before any arithmetic touches them.
    out = []
    for e in entries:
        d = coerce_percentage(e.discount_percent)
        out.append(e if d == e.discount_percent else replace(e, discount_percent=d))
    return tuple(out)


def _charge(entries: Sequence[AllocationEntry], shares: Sequence[int]) -> List[AllocationEntry]:
    return [
        replace(e, amount_cents=apply_discount(share, e.discount_percent))
        for e, share in zip(entries, shares, strict=True)
    ]


def distribute_across_all(
    entries: Sequence[AllocationEntry],
    subtotal_cents: int,
    *,
    strategy: str = DEFAULT_STRATEGY,
) -> Tuple[AllocationEntry, ...]:
    """
    Reset every amount from the subtotal and the current discounts.

    Used whenever the structure changes: line items, entries added or
    removed, a discount edited, a method swapped. Idempotent for unchanged
    inputs. An empty list is returned unchanged.
    """
    split = get_strategy(strategy)
    entries = _normalized(entries)
    if not entries:
        return entries

    target = max(0, subtotal_cents)
    shares = split([e.discount_percent for e in entries], target)
    result = tuple(_charge(entries, shares))

    logger.debug(
        "distribute strategy=%s entries=%d subtotal=%d amounts=%s",
        strategy, len(result), target, [e.amount_cents for e in result],
    )
    return result


def redistribute_after_manual_edit(
    entries: Sequence[AllocationEntry],
    subtotal_cents: int,
    index: int,
    new_amount_cents: int,
    *,
    strategy: str = DEFAULT_STRATEGY,
) -> Tuple[AllocationEntry, ...]:
    """
    Pin entry `index` to the amount the user typed and spread whatever
    coverage is left over the other entries, in their original order.

    new_amount_cents is taken as a parameter, never read back from the
    entries, so the caller can commit and recompute in one step.

    The pinned amount is clamped to >= 0, and to 0 when its method has a
    100% discount (such an amount would cover an infinite share).
    """
    split = get_strategy(strategy)
    entries = _normalized(entries)
    if not entries:
        return entries
    if not 0 <= index < len(entries):
        raise AllocationError(f"entry index {index} out of range for {len(entries)} entries")

    target = max(0, subtotal_cents)
    pinned = entries[index]
    amount = max(0, new_amount_cents)
    if pinned.discount_percent >= PERCENT_MAX and amount > 0:
        logger.debug("entry %d has a 100%% discount; clamping typed amount %d to 0", index, amount)
        amount = 0
    pinned = replace(pinned, amount_cents=amount)

    remaining = max(0, round_cents(Decimal(target) - coverage_of(amount, pinned.discount_percent)))

    others = [e for i, e in enumerate(entries) if i != index]
    if remaining == 0:
        charged = [replace(e, amount_cents=0) for e in others]
    else:
        charged = _charge(others, split([e.discount_percent for e in others], remaining))

    charged.insert(index, pinned)
    result = tuple(charged)

    logger.debug(
        "redistribute strategy=%s index=%d pinned=%d remaining=%d amounts=%s",
        strategy, index, amount, remaining, [e.amount_cents for e in result],
    )
    return result


def total_coverage(entries: Sequence[AllocationEntry]) -> Decimal:
    """Sum of pre-discount coverage, in (fractional) cents."""
    return sum((coverage_of(e.amount_cents, e.discount_percent) for e in entries), Decimal(0))


def final_total(entries: Sequence[AllocationEntry]) -> int:
    """What is actually collected: max(0, sum of charged amounts)."""
    return max(0, safe_sum_cents(*(e.amount_cents for e in entries)))


def total_discount(entries: Sequence[AllocationEntry]) -> int:
    """Cents given away through per-method discounts (coverage - charged)."""
    return max(0, round_cents(total_coverage(entries)) - final_total(entries))


def coverage_tolerance_cents(entries: Sequence[AllocationEntry]) -> int:
    """
    Largest coverage drift whole-cent rounding can explain.

    Rounding a charged amount by half a cent moves its coverage by
    0.5 / (1 - d/100) cents, so each entry allows at least 1 cent and more
    for steep discounts.
    """
    tolerance = 0
    for e in entries:
        d = coerce_percentage(e.discount_percent)
        if d >= PERCENT_MAX:
            tolerance += 1
            continue
        tolerance += max(1, math.ceil(Decimal(50) / (PERCENT_MAX - d)))
    return tolerance


@dataclass(frozen=True)
class ValidationResult:
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {"ok": self.ok, "errors": list(self.errors), "warnings": list(self.warnings)}


def validate(entries: Sequence[AllocationEntry], subtotal_cents: int) -> ValidationResult:
    """
    Check an allocation before it is submitted.

    Hard errors: no entry has a payment method, a discount outside [0, 100],
    a negative amount, or a positive amount on a 100% discount.
    Warning only: total coverage drifting from the subtotal by more than
    rounding explains.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not any(e.method_id is not None for e in entries):
        errors.append("at least one payment method must be selected")

    for i, e in enumerate(entries):
        d = e.discount_percent
        if not d.is_finite() or d < 0 or d > PERCENT_MAX:
            errors.append(f"entry {i}: discount must be between 0 and 100")
        if e.amount_cents < 0:
            errors.append(f"entry {i}: amount must be >= 0")
        if d.is_finite() and d >= PERCENT_MAX and e.amount_cents > 0:
            errors.append(f"entry {i}: a method with a 100% discount cannot be charged")

    if not errors and entries:
        drift = abs(total_coverage(entries) - Decimal(max(0, subtotal_cents)))
        tolerance = coverage_tolerance_cents(entries)
        if drift > tolerance:
            warnings.append(
                f"payments cover {cents_to_str(round_cents(total_coverage(entries)))} of "
                f"{cents_to_str(max(0, subtotal_cents))} "
                f"(off by {cents_to_str(round_cents(drift))}, tolerance {cents_to_str(tolerance)})"
            )

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))
