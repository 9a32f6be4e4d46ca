# backend/pos_admin/services/sale_form.py
"""
Event routing for an open sale form.

The form owns one AllocationState. Every user event is turned into exactly
one engine call and the resulting entries replace the old ones in one step:

  line items changed       -> distribute_across_all (new subtotal)
  entry added / removed    -> distribute_across_all
  discount edited          -> distribute_across_all
  method selected/swapped  -> adopt catalog discount, distribute_across_all
  amount typed             -> redistribute_after_manual_edit

Typed amounts can also be handled in two phases (begin_amount_edit /
commit_amount_edit) for UIs that show the keystroke before recomputing. The
pending value is handed to the engine explicitly, never re-read from state.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional, Sequence, Tuple

from pos_admin.domain.allocation import (
    DEFAULT_STRATEGY,
    ValidationResult,
    distribute_across_all,
    final_total,
    get_strategy,
    redistribute_after_manual_edit,
    total_discount,
    validate,
)
from pos_admin.domain.models import (
    AllocationEntry,
    AllocationState,
    LineItem,
    PaymentMethodCatalog,
    PersistedPayment,
    SaleSubmission,
    subtotal_cents,
)
from pos_admin.domain.money import coerce_amount_to_cents, coerce_percentage

logger = logging.getLogger(__name__)


class FormError(ValueError):
    """Raised when a form event or submission is rejected."""


class FormState(str, enum.Enum):
    SETTLED = "settled"
    EDITING = "editing"


@dataclass(frozen=True)
class PendingEdit:
    index: int
    amount_cents: int


class SaleAllocationForm:
    def __init__(
        self,
        catalog: PaymentMethodCatalog,
        *,
        line_items: Iterable[LineItem] = (),
        entries: Sequence[AllocationEntry] = (),
        strategy: str = DEFAULT_STRATEGY,
    ):
        get_strategy(strategy)  # fail fast on a bad name
        self.strategy = strategy
        self._catalog = catalog
        self._line_items: Tuple[LineItem, ...] = tuple(line_items)
        self._state = AllocationState(
            subtotal_cents=subtotal_cents(self._line_items),
            entries=tuple(entries) or (AllocationEntry(),),
        )
        self._status = FormState.SETTLED
        self._pending: Optional[PendingEdit] = None

    @classmethod
    def new(cls, catalog: PaymentMethodCatalog, *, strategy: str = DEFAULT_STRATEGY) -> "SaleAllocationForm":
        """Blank sale: no items, one unset payment entry at 0% / 0."""
        return cls(catalog, strategy=strategy)

    @classmethod
    def from_persisted(
        cls,
        payments: Iterable[PersistedPayment],
        line_items: Iterable[LineItem],
        catalog: PaymentMethodCatalog,
        *,
        strategy: str = DEFAULT_STRATEGY,
    ) -> "SaleAllocationForm":
        """
        Edit flow: one entry per stored payment, amounts kept as stored until
        the first event recomputes them.
        """
        entries = [
            AllocationEntry(
                method_id=p.payment_method_id,
                discount_percent=coerce_percentage(p.discount_percent),
                amount_cents=max(0, p.amount_cents),
            )
            for p in payments
        ]
        return cls(catalog, line_items=line_items, entries=entries, strategy=strategy)

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> AllocationState:
        return self._state

    @property
    def entries(self) -> Tuple[AllocationEntry, ...]:
        return self._state.entries

    @property
    def subtotal_cents(self) -> int:
        return self._state.subtotal_cents

    @property
    def line_items(self) -> Tuple[LineItem, ...]:
        return self._line_items

    @property
    def status(self) -> FormState:
        return self._status

    @property
    def pending(self) -> Optional[PendingEdit]:
        return self._pending

    @property
    def final_total_cents(self) -> int:
        return final_total(self._state.entries)

    @property
    def total_discount_cents(self) -> int:
        return total_discount(self._state.entries)

    def validate(self) -> ValidationResult:
        return validate(self._state.entries, self._state.subtotal_cents)

    # ------------------------------------------------------------------
    # events
    # ------------------------------------------------------------------

    def set_line_items(self, items: Iterable[LineItem]) -> None:
        items = tuple(items)
        subtotal = subtotal_cents(items)
        self._line_items = items
        self._distribute(self._state.entries, subtotal)

    def add_entry(self, method_id: Optional[int] = None) -> None:
        entry = AllocationEntry()
        if method_id is not None:
            entry = self._with_method(entry, method_id)
        self._distribute(self._state.entries + (entry,))

    def remove_entry(self, index: int) -> None:
        self._check_index(index)
        if len(self._state.entries) == 1:
            raise FormError("a sale needs at least one payment entry")
        entries = self._state.entries[:index] + self._state.entries[index + 1:]
        self._distribute(entries)

    def set_discount(self, index: int, percent: Any) -> None:
        self._check_index(index)
        entries = list(self._state.entries)
        entries[index] = replace(entries[index], discount_percent=coerce_percentage(percent))
        self._distribute(entries)

    def select_method(self, index: int, method_id: Optional[int]) -> None:
        self._check_index(index)
        entries = list(self._state.entries)
        entries[index] = self._with_method(entries[index], method_id)
        self._distribute(entries)

    def set_amount(self, index: int, value: Any) -> None:
        """Typed amount, committed and recomputed in one step."""
        self._check_index(index)
        self._redistribute(index, coerce_amount_to_cents(value))

    def begin_amount_edit(self, index: int, value: Any) -> None:
        """
        Show the keystroke without recomputing the other entries yet.
        Coverage may be inconsistent until commit_amount_edit().
        """
        self._check_index(index)
        cents = coerce_amount_to_cents(value)
        entries = list(self._state.entries)
        entries[index] = replace(entries[index], amount_cents=cents)
        self._state = AllocationState(subtotal_cents=self._state.subtotal_cents, entries=tuple(entries))
        self._pending = PendingEdit(index=index, amount_cents=cents)
        self._status = FormState.EDITING

    def commit_amount_edit(self) -> None:
        pending = self._pending
        if pending is None:
            return
        self._redistribute(pending.index, pending.amount_cents)

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------

    def build_submission(self, description: Optional[str] = None) -> SaleSubmission:
        """
        Flatten the form into what persistence needs. Entries without a
        payment method are dropped; coverage drift is logged, not fatal.
        """
        self.commit_amount_edit()

        items = [it for it in self._line_items if it.is_selected]
        if not items:
            raise FormError("select at least one product")

        result = self.validate()
        if not result.ok:
            raise FormError("; ".join(result.errors))
        for warning in result.warnings:
            logger.warning("sale allocation drift: %s", warning)

        payments = [e for e in self._state.entries if e.method_id is not None]
        return SaleSubmission(
            items=items,
            payments=payments,
            total_price_cents=final_total(payments),
            description=(description or "").strip() or None,
        )

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or not 0 <= index < len(self._state.entries):
            raise FormError(f"no payment entry at index {index}")

    def _with_method(self, entry: AllocationEntry, method_id: Optional[int]) -> AllocationEntry:
        if method_id is None:
            return replace(entry, method_id=None, discount_percent=coerce_percentage(0))

        info = self._catalog.get_payment_method(method_id)
        if info is None or not info.is_active:
            logger.warning("payment method %s is unknown or inactive; leaving entry unset", method_id)
            return replace(entry, method_id=None, discount_percent=coerce_percentage(0))

        return replace(entry, method_id=info.id, discount_percent=info.discount_percent)

    def _distribute(self, entries: Sequence[AllocationEntry], subtotal: Optional[int] = None) -> None:
        if subtotal is None:
            subtotal = self._state.subtotal_cents
        self._commit(distribute_across_all(entries, subtotal, strategy=self.strategy), subtotal)

    def _redistribute(self, index: int, amount_cents: int) -> None:
        subtotal = self._state.subtotal_cents
        entries = redistribute_after_manual_edit(
            self._state.entries, subtotal, index, amount_cents, strategy=self.strategy
        )
        self._commit(entries, subtotal)

    def _commit(self, entries: Sequence[AllocationEntry], subtotal: int) -> None:
        self._state = AllocationState(subtotal_cents=subtotal, entries=tuple(entries))
        self._pending = None
        self._status = FormState.SETTLED
