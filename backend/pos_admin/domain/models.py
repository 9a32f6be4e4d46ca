# backend/pos_admin/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Protocol, Tuple

from pos_admin.domain.money import (
    MAX_AMOUNT_CENTS,
    coerce_amount_to_cents,
    coerce_percentage,
    cents_to_decimal,
)


class ModelValidationError(ValueError):
    """Raised when request/response models fail basic validation."""


def _check_optional_id(value: Any, label: str) -> None:
    if value is None:
        return
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ModelValidationError(f"{label} must be a positive int or None")


@dataclass(frozen=True)
class LineItem:
    """
    A sale line: quantity units of a product at a snapshot unit price.
    unit_price_cents is integer cents.
    """
    product_id: Optional[int]
    quantity: int
    unit_price_cents: int

    def __post_init__(self) -> None:
        _check_optional_id(self.product_id, "LineItem.product_id")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool) or self.quantity < 0:
            raise ModelValidationError("LineItem.quantity must be an int >= 0")
        if not isinstance(self.unit_price_cents, int) or self.unit_price_cents < 0:
            raise ModelValidationError("LineItem.unit_price_cents must be an int >= 0")

    @property
    def is_selected(self) -> bool:
        return self.product_id is not None and self.quantity > 0

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def subtotal_cents(items: Iterable[LineItem]) -> int:
    """
    Sum of quantity * unit price over the selected lines.

    Lines without a product, or with quantity 0, are placeholders the user
    has not filled in yet and contribute nothing. A subtotal past the money
    safety bound is rejected, never truncated.
    """
    total = sum(it.total_cents for it in items if it.is_selected)
    if total > MAX_AMOUNT_CENTS:
        raise ModelValidationError("sale subtotal exceeds safety limit")
    return total


@dataclass(frozen=True)
class PaymentMethodInfo:
    """Catalog view of a payment method."""
    id: int
    name: str
    discount_percent: Decimal = Decimal("0.00")
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.id is None:
            raise ModelValidationError("PaymentMethodInfo.id is required")
        _check_optional_id(self.id, "PaymentMethodInfo.id")
        if not isinstance(self.name, str) or not self.name.strip():
            raise ModelValidationError("PaymentMethodInfo.name must be a non-empty string")
        object.__setattr__(self, "discount_percent", coerce_percentage(self.discount_percent))


class PaymentMethodCatalog(Protocol):
    def get_payment_method(self, method_id: int) -> Optional[PaymentMethodInfo]:
        ...


@dataclass(frozen=True)
class AllocationEntry:
    """
    One payment method's share of a sale.

    amount_cents is what the customer is actually charged through the method
    (after its discount). method_id is None until the user picks a method.
    Range checks live in allocation.validate(); construction only checks types.
    """
    method_id: Optional[int] = None
    discount_percent: Decimal = Decimal("0.00")
    amount_cents: int = 0

    def __post_init__(self) -> None:
        _check_optional_id(self.method_id, "AllocationEntry.method_id")
        if not isinstance(self.discount_percent, Decimal):
            raise ModelValidationError("AllocationEntry.discount_percent must be a Decimal")
        if not isinstance(self.amount_cents, int) or isinstance(self.amount_cents, bool):
            raise ModelValidationError("AllocationEntry.amount_cents must be an int")

    @classmethod
    def from_raw(cls, method_id: Optional[int] = None, discount: Any = 0, amount: Any = 0) -> "AllocationEntry":
        """
        Build an entry from user/wire values, clamping discount into [0, 100]
        and amount (in currency units) to >= 0.
        """
        return cls(
            method_id=method_id,
            discount_percent=coerce_percentage(discount),
            amount_cents=coerce_amount_to_cents(amount),
        )

    def to_dict(self) -> dict:
        return {
            "payment_method_id": self.method_id,
            "discount_percent": float(self.discount_percent),
            "amount": float(cents_to_decimal(self.amount_cents)),
        }


@dataclass(frozen=True)
class AllocationState:
    """
    Snapshot owned by an open sale form: subtotal plus the ordered entries.
    Order matters to the allocation strategies and is preserved across edits.
    """
    subtotal_cents: int = 0
    entries: Tuple[AllocationEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.subtotal_cents, int) or self.subtotal_cents < 0:
            raise ModelValidationError("AllocationState.subtotal_cents must be an int >= 0")
        if not isinstance(self.entries, tuple):
            object.__setattr__(self, "entries", tuple(self.entries))


@dataclass(frozen=True)
class PersistedPayment:
    """A payment row as stored for an existing sale."""
    payment_method_id: int
    amount_cents: int
    discount_percent: Decimal
    payment_method_name: str = ""


@dataclass(frozen=True)
class SaleSubmission:
    """
    Flattened form output handed to persistence on create/update.

    payments keep the on-screen order; total_price_cents is the amount
    actually collected (sum of charged amounts).
    """
    items: List[LineItem]
    payments: List[AllocationEntry]
    total_price_cents: int
    description: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.items:
            raise ModelValidationError("a sale needs at least one line item")
        if not self.payments:
            raise ModelValidationError("a sale needs at least one payment method")
        for p in self.payments:
            if p.method_id is None:
                raise ModelValidationError("every submitted payment needs a payment method")
        if not isinstance(self.total_price_cents, int) or self.total_price_cents < 0:
            raise ModelValidationError("total_price_cents must be an int >= 0")

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "total_price": float(cents_to_decimal(self.total_price_cents)),
            "sale_items": [
                {
                    "product_id": it.product_id,
                    "quantity": it.quantity,
                    "price": float(cents_to_decimal(it.unit_price_cents)),
                }
                for it in self.items
            ],
            "payment_methods": [p.to_dict() for p in self.payments],
        }
