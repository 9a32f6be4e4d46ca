from __future__ import annotations

import logging
from typing import Sequence

from flask import Blueprint, current_app, jsonify, request

from pos_admin.api.validators import (
    ApiValidationError,
    parse_description,
    parse_entries,
    parse_index,
    parse_sale_items,
    parse_strategy,
    parse_subtotal,
)
from pos_admin.db.repository import PosRepository
from pos_admin.domain.allocation import (
    AllocationError,
    DEFAULT_STRATEGY,
    distribute_across_all,
    final_total,
    redistribute_after_manual_edit,
    total_discount,
    validate,
)
from pos_admin.domain.models import AllocationEntry, LineItem, ModelValidationError, PaymentMethodInfo
from pos_admin.domain.money import cents_to_decimal, coerce_amount_to_cents
from pos_admin.services.sale_form import FormError, SaleAllocationForm

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _json_error(message: str, *, status: int = 400, code: str = "bad_request"):
    return jsonify({"error": {"code": code, "message": message}}), status


def _repo() -> PosRepository:
    return PosRepository(current_app.config.get("DATABASE_URL", ""))


def _default_strategy() -> str:
    return current_app.config.get("ALLOCATION_STRATEGY", DEFAULT_STRATEGY)


def _money(cents: int) -> float:
    return float(cents_to_decimal(cents))


def _allocation_payload(entries: Sequence[AllocationEntry], subtotal_cents: int) -> dict:
    result = validate(entries, subtotal_cents)
    return {
        "subtotal": _money(subtotal_cents),
        "entries": [e.to_dict() for e in entries],
        "final_total": _money(final_total(entries)),
        "total_discount": _money(total_discount(entries)),
        "warnings": list(result.warnings),
    }


def _payment_method_json(pm: PaymentMethodInfo) -> dict:
    return {
        "id": pm.id,
        "name": pm.name,
        "discount": float(pm.discount_percent),
        "is_active": pm.is_active,
    }


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok"}), 200


# ----------------------------------------------------------------------
# allocation engine
# ----------------------------------------------------------------------

@api_bp.post("/allocations/distribute")
def distribute_endpoint():
    """
    JSON body:
      - subtotal: number | items: [{product_id, quantity, unit_price}]
      - entries: [{payment_method_id, discount, amount}]
      - strategy: "ordered" | "proportional" (optional)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("Request body must be a JSON object.", status=400)

    try:
        subtotal = parse_subtotal(data)
        entries = parse_entries(data.get("entries", []))
        strategy = parse_strategy(data, _default_strategy())
    except ApiValidationError as e:
        return _json_error(str(e), status=400)

    result = distribute_across_all(entries, subtotal, strategy=strategy)
    return jsonify(_allocation_payload(result, subtotal)), 200


@api_bp.post("/allocations/redistribute")
def redistribute_endpoint():
    """
    Same body as /distribute plus:
      - index: position of the entry the user typed into
      - amount: the typed amount (clamped to >= 0, junk reads as 0)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("Request body must be a JSON object.", status=400)

    try:
        subtotal = parse_subtotal(data)
        entries = parse_entries(data.get("entries", []))
        strategy = parse_strategy(data, _default_strategy())
        index = parse_index(data.get("index"))
        amount = coerce_amount_to_cents(data.get("amount"))
    except ApiValidationError as e:
        return _json_error(str(e), status=400)

    try:
        result = redistribute_after_manual_edit(entries, subtotal, index, amount, strategy=strategy)
    except AllocationError as e:
        return _json_error(str(e), status=422, code="allocation_failed")

    return jsonify(_allocation_payload(result, subtotal)), 200


@api_bp.post("/allocations/validate")
def validate_endpoint():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error("Request body must be a JSON object.", status=400)

    try:
        subtotal = parse_subtotal(data)
        entries = parse_entries(data.get("entries", []))
    except ApiValidationError as e:
        return _json_error(str(e), status=400)

    return jsonify(validate(entries, subtotal).to_dict()), 200


# ----------------------------------------------------------------------
# payment method catalog
# ----------------------------------------------------------------------

@api_bp.get("/payment-methods")
def list_payment_methods_endpoint():
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    active_only = request.args.get("is_active", "true").lower() != "false"
    try:
        methods = repo.list_payment_methods(active_only=active_only)
    except Exception:
        logger.exception("failed to load payment methods")
        return _json_error("Failed to load payment methods.", status=500, code="db_error")

    return jsonify({"payment_methods": [_payment_method_json(pm) for pm in methods]}), 200


@api_bp.get("/payment-methods/<int:method_id>")
def get_payment_method_endpoint(method_id: int):
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        method = repo.get_payment_method(method_id)
    except Exception:
        logger.exception("failed to load payment method %s", method_id)
        return _json_error("Failed to load payment method.", status=500, code="db_error")

    if method is None:
        return _json_error("Payment method not found.", status=404, code="not_found")
    return jsonify(_payment_method_json(method)), 200


# ----------------------------------------------------------------------
# sales
# ----------------------------------------------------------------------

def _build_submission(repo: PosRepository, data: object):
    """
    Turn a create/update body into a SaleSubmission, pricing lines from the
    product catalog. Returns (submission, None) or (None, error_response).
    """
    if not isinstance(data, dict):
        return None, _json_error("Request body must be a JSON object.", status=400)

    try:
        description = parse_description(data.get("description"))
        requested = parse_sale_items(data.get("sale_items", []))
        entries = parse_entries(data.get("payment_methods", []), allow_empty=False)
    except ApiValidationError as e:
        return None, _json_error(str(e), status=400)

    selected = [it for it in requested if it.is_selected]
    products = repo.get_products_by_ids(product_ids=[it.product_id for it in selected])
    priced: list[LineItem] = []
    for it in selected:
        product = products.get(it.product_id)
        if product is None:
            return None, _json_error(f"Unknown product id: {it.product_id}", status=400)
        priced.append(
            LineItem(product_id=it.product_id, quantity=it.quantity, unit_price_cents=product.current_price_cents)
        )

    try:
        form = SaleAllocationForm(repo, line_items=priced, entries=entries, strategy=_default_strategy())
    except ModelValidationError as e:
        return None, _json_error(str(e), status=400)

    try:
        submission = form.build_submission(description)
    except FormError as e:
        return None, _json_error(str(e), status=422, code="invalid_sale")

    return submission, None


@api_bp.post("/sales")
def create_sale_endpoint():
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        submission, error = _build_submission(repo, request.get_json(silent=True))
        if error is not None:
            return error
        sale_id = repo.create_sale(submission=submission)
    except Exception:
        logger.exception("failed to create sale")
        return _json_error("Failed to persist sale.", status=500, code="db_error")

    logger.info("created sale %s total=%d cents", sale_id, submission.total_price_cents)
    return jsonify({"id": sale_id, **submission.to_dict()}), 201


@api_bp.put("/sales/<int:sale_id>")
def update_sale_endpoint(sale_id: int):
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        submission, error = _build_submission(repo, request.get_json(silent=True))
        if error is not None:
            return error
        updated = repo.update_sale(sale_id=sale_id, submission=submission)
    except Exception:
        logger.exception("failed to update sale %s", sale_id)
        return _json_error("Failed to persist sale.", status=500, code="db_error")

    if not updated:
        return _json_error("Sale not found.", status=404, code="not_found")

    logger.info("updated sale %s total=%d cents", sale_id, submission.total_price_cents)
    return jsonify({"id": sale_id, **submission.to_dict()}), 200


@api_bp.get("/sales/<int:sale_id>")
def get_sale_endpoint(sale_id: int):
    repo = _repo()
    if not repo.enabled:
        return _json_error("Database is not configured.", status=503, code="db_unavailable")

    try:
        sale = repo.get_sale(sale_id=sale_id)
    except Exception:
        logger.exception("failed to load sale %s", sale_id)
        return _json_error("Failed to load sale.", status=500, code="db_error")

    if sale is None:
        return _json_error("Sale not found.", status=404, code="not_found")

    form = SaleAllocationForm.from_persisted(sale.payments, sale.items, repo, strategy=_default_strategy())
    names = {p.payment_method_id: p.payment_method_name for p in sale.payments}

    return jsonify(
        {
            "id": sale.id,
            "description": sale.description,
            "time": sale.created_at,
            "total_price": _money(sale.total_price_cents),
            "items": [
                {"product_id": it.product_id, "quantity": it.quantity, "price": _money(it.unit_price_cents)}
                for it in sale.items
            ],
            "payment_methods": [
                {**e.to_dict(), "payment_method_name": names.get(e.method_id, "")}
                for e in form.entries
            ],
            "allocation": _allocation_payload(form.entries, form.subtotal_cents),
        }
    ), 200
