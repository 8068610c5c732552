# Overview: Flask API routes for inventory items, adjustments and stock movements.

# backend/gymoffice/routes/inventory.py
"""
Inventory item routes.

STOCK: quantity is only writable on create (opening balance). After that it
moves through adjustments, purchase order deliveries and sales; PATCH
rejects it.

BRANCH: fixed at creation. PATCH rejects branch_id so purchase orders and
sales never post stock across branches.

SECURITY: All routes require authentication.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import InventoryItem
from ..services import inventory_service
from ..errors import ServiceError, error_response
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_item,
    coerce_int,
    ITEM_CATEGORIES,
    ValidationError,
)
from ..decorators import require_auth, resolve_branch_id
from ..pagination import page_args, paginated, flag_arg

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "branch_id", "supplier_id", "sku", "name", "description",
        "category", "quantity", "unit_price_cents", "reorder_level",
    },
    required_on_create={"sku", "name", "category", "unit_price_cents"},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "supplier_id", "sku", "name", "description",
        "category", "unit_price_cents", "reorder_level",
    },
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/items")
@require_auth
def create_item_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_CREATE_POLICY, partial=False)
        enforce_rules_item(patch)
        patch["branch_id"] = resolve_branch_id(patch.get("branch_id"))

        item = inventory_service.create_item(created_by_user_id=g.current_user.id, **patch)
        return jsonify({"item": item.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items")
@require_auth
def list_items_route():
    """
    Query params:
    - category: one of ITEM_CATEGORIES
    - low_stock: 'true' keeps items at or below their reorder level
    - branch_id, page, page_size
    """
    try:
        category = request.args.get("category")
        if category and category not in ITEM_CATEGORIES:
            raise ValidationError(f"category must be one of: {', '.join(ITEM_CATEGORIES)}")
        branch_id = request.args.get("branch_id", type=int)
        page, page_size = page_args()

        result = inventory_service.list_items(
            branch_id=branch_id,
            category=category,
            low_stock_only=flag_arg("low_stock"),
            page=page,
            page_size=page_size,
        )
        return jsonify(paginated(result)), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory items")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        item = inventory_service.get_item(item_id)
        return jsonify({"item": item.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@inventory_bp.patch("/items/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        if "quantity" in payload:
            raise ValidationError("quantity can only be changed through adjustments, deliveries or sales")
        patch = validate_payload(model=InventoryItem, payload=payload, policy=ITEM_UPDATE_POLICY, partial=True)
        enforce_rules_item(patch)

        item = inventory_service.update_item(item_id, patch)
        return jsonify({"item": item.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/items/<int:item_id>")
@require_auth
def delete_item_route(item_id: int):
    try:
        inventory_service.delete_item(item_id)
        return jsonify({"ok": True}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/items/<int:item_id>/adjustments")
@require_auth
def create_adjustment_route(item_id: int):
    """
    Body: {adjustment_type: increase|decrease, quantity: int >= 1, reason, notes?}
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("quantity") is None:
            raise ValidationError("quantity is required")

        adjustment = inventory_service.record_adjustment(
            item_id,
            adjustment_type=data.get("adjustment_type"),
            quantity=coerce_int("quantity", data["quantity"]),
            reason=data.get("reason"),
            adjusted_by_user_id=g.current_user.id,
            notes=data.get("notes"),
        )
        item = inventory_service.get_item(item_id)
        return jsonify({"adjustment": adjustment.to_dict(), "item": item.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record inventory adjustment")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items/<int:item_id>/adjustments")
@require_auth
def list_adjustments_route(item_id: int):
    try:
        page, page_size = page_args()
        result = inventory_service.list_adjustments(item_id, page=page, page_size=page_size)
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)


@inventory_bp.get("/items/<int:item_id>/movements")
@require_auth
def list_movements_route(item_id: int):
    try:
        page, page_size = page_args()
        result = inventory_service.list_movements(item_id, page=page, page_size=page_size)
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)
