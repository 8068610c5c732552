# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/gymoffice/routes/sales.py
"""Point-of-sale routes. A sale is created and its stock posted in one request."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..errors import ServiceError, error_response
from ..validation import coerce_int, parse_document_lines, ValidationError
from ..decorators import require_auth, resolve_branch_id
from ..pagination import page_args, paginated
from gymoffice.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/inventory/sales")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date or datetime")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Body:
        items: [{item_id, quantity, unit_price_cents?}] (required)
        customer_id: int (optional)
        payment_method: Cash | Credit Card | Debit Card | Online (default Cash)
        branch_id: int (optional, defaults to the caller's branch)

    409 insufficient_stock lists every short line in details.items; nothing is written.
    """
    data = request.get_json(silent=True) or {}

    try:
        lines = parse_document_lines(data.get("items"), require_price=False)
        customer_id = None
        if data.get("customer_id") is not None:
            customer_id = coerce_int("customer_id", data["customer_id"])

        sale = sales_service.create_sale(
            branch_id=resolve_branch_id(data.get("branch_id")),
            lines=lines,
            processed_by_user_id=g.current_user.id,
            customer_id=customer_id,
            payment_method=data.get("payment_method") or "Cash",
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """Query params: start_date, end_date (ISO-8601, inclusive), branch_id, page, page_size."""
    try:
        page, page_size = page_args()
        result = sales_service.list_sales(
            branch_id=request.args.get("branch_id", type=int),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            page=page,
            page_size=page_size,
        )
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)
