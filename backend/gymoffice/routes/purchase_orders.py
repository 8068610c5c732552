# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

# backend/gymoffice/routes/purchase_orders.py
"""
Purchase order routes.

Creating an order never touches stock. PATCH .../status with
{"status": "delivered"} posts the ordered quantities, once; repeating the
request returns the delivered order unchanged.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import purchase_order_service
from ..errors import ServiceError, error_response
from ..validation import coerce_int, parse_document_lines, ValidationError
from ..decorators import require_auth
from ..pagination import page_args, paginated
from gymoffice.time_utils import parse_iso_datetime


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/inventory/purchase-orders")


@purchase_orders_bp.post("")
@require_auth
def create_purchase_order_route():
    """
    Body:
        supplier_id: int (required)
        items: [{item_id, quantity, unit_price_cents}] (required, non-empty)
        branch_id: int (optional, defaults to the supplier's branch)
        expected_delivery_date: ISO-8601 (optional)
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("supplier_id") is None:
            raise ValidationError("supplier_id is required")
        supplier_id = coerce_int("supplier_id", data["supplier_id"])
        lines = parse_document_lines(data.get("items"), require_price=True)

        branch_id = None
        if data.get("branch_id") is not None:
            branch_id = coerce_int("branch_id", data["branch_id"])

        expected = None
        if data.get("expected_delivery_date"):
            try:
                expected = parse_iso_datetime(data["expected_delivery_date"])
            except (TypeError, ValueError):
                raise ValidationError("expected_delivery_date must be an ISO-8601 datetime")

        order = purchase_order_service.create_purchase_order(
            supplier_id=supplier_id,
            lines=lines,
            branch_id=branch_id,
            expected_delivery_date=expected,
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"purchase_order": order.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders_route():
    try:
        page, page_size = page_args()
        result = purchase_order_service.list_purchase_orders(
            status=request.args.get("status"),
            branch_id=request.args.get("branch_id", type=int),
            supplier_id=request.args.get("supplier_id", type=int),
            page=page,
            page_size=page_size,
        )
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)


@purchase_orders_bp.get("/<int:order_id>")
@require_auth
def get_purchase_order_route(order_id: int):
    try:
        order = purchase_order_service.get_purchase_order(order_id)
        return jsonify({"purchase_order": order.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@purchase_orders_bp.patch("/<int:order_id>/status")
@require_auth
def transition_purchase_order_route(order_id: int):
    data = request.get_json(silent=True) or {}

    try:
        status = data.get("status")
        if not status:
            raise ValidationError("status is required")

        order = purchase_order_service.transition_purchase_order_status(
            order_id,
            status,
            actor_user_id=g.current_user.id,
        )
        return jsonify({"purchase_order": order.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase order status")
        return jsonify({"error": "Internal server error"}), 500
