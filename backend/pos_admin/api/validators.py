from __future__ import annotations

from typing import Any, List, Optional

from pos_admin.domain.allocation import ALLOCATION_STRATEGIES
from pos_admin.domain.models import AllocationEntry, LineItem, ModelValidationError, subtotal_cents
from pos_admin.domain.money import MoneyError, decimal_to_cents


class ApiValidationError(ValueError):
    """Raised when request payload validation fails."""


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float, str)) and not isinstance(value, bool)


def parse_optional_id(value: object, label: str) -> Optional[int]:
    """
    Ids from the UI: null or 0 means "not selected yet".
    """
    if value is None or value == 0:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ApiValidationError(f"{label} must be a positive integer or null.")
    return value


def parse_money(value: object, label: str) -> int:
    """Currency units -> cents. Negative values clamp to 0."""
    if not _is_number(value):
        raise ApiValidationError(f"'{label}' must be a number.")
    try:
        cents = decimal_to_cents(value)
    except MoneyError as e:
        raise ApiValidationError(f"'{label}' is not a valid amount.") from e
    return max(0, cents)


def parse_line_items(raw_items: object, *, require_price: bool = True) -> list[LineItem]:
    if not isinstance(raw_items, list):
        raise ApiValidationError("'items' must be a list.")

    parsed: list[LineItem] = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ApiValidationError(f"Item at index {idx} must be an object.")

        product_id = parse_optional_id(raw.get("product_id"), f"Item at index {idx} 'product_id'")
        quantity = raw.get("quantity", 0)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
            raise ApiValidationError(f"Item at index {idx} must include 'quantity' as int >= 0.")

        unit_price_cents = 0
        if require_price:
            if "unit_price" not in raw:
                raise ApiValidationError(f"Item at index {idx} must include 'unit_price'.")
            unit_price_cents = parse_money(raw["unit_price"], f"items[{idx}].unit_price")

        parsed.append(LineItem(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents))

    return parsed


def parse_subtotal(data: dict) -> int:
    """
    Either an explicit 'subtotal' or 'items' to sum. An explicit subtotal
    wins when both are sent.
    """
    if "subtotal" in data:
        return parse_money(data["subtotal"], "subtotal")
    if "items" in data:
        try:
            return subtotal_cents(parse_line_items(data["items"]))
        except ModelValidationError as e:
            raise ApiValidationError(f"'items' {e}.") from e
    raise ApiValidationError("Request must include 'subtotal' or 'items'.")


def parse_entries(raw_entries: object, *, allow_empty: bool = True) -> list[AllocationEntry]:
    """
    Payment entries as the form sends them. Discounts and amounts outside
    their domain are clamped rather than rejected.
    """
    if not isinstance(raw_entries, list):
        raise ApiValidationError("'entries' must be a list.")
    if not raw_entries and not allow_empty:
        raise ApiValidationError("At least one payment method is required.")

    entries: list[AllocationEntry] = []
    for idx, raw in enumerate(raw_entries):
        if not isinstance(raw, dict):
            raise ApiValidationError(f"Entry at index {idx} must be an object.")

        method_id = parse_optional_id(raw.get("payment_method_id"), f"Entry at index {idx} 'payment_method_id'")
        discount = raw.get("discount_percent", raw.get("discount", 0))
        amount = raw.get("amount", 0)
        entries.append(AllocationEntry.from_raw(method_id=method_id, discount=discount, amount=amount))

    return entries


def parse_index(value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ApiValidationError("'index' must be an int >= 0.")
    return value


def parse_strategy(data: dict, default: str) -> str:
    name = data.get("strategy", default)
    if not isinstance(name, str) or name not in ALLOCATION_STRATEGIES:
        raise ApiValidationError(
            f"'strategy' must be one of: {', '.join(sorted(ALLOCATION_STRATEGIES))}."
        )
    return name


def parse_description(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ApiValidationError("'description' must be a string.")
    return value.strip() or None


def parse_sale_items(raw_items: object) -> List[LineItem]:
    """
    Sale lines carry product and quantity only; prices are snapshotted from
    the catalog on the server.
    """
    return parse_line_items(raw_items, require_price=False)
