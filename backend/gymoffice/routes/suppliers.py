# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models import Supplier
from ..services import supplier_service
from ..errors import ServiceError, error_response
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_supplier
from ..decorators import require_auth, resolve_branch_id
from ..pagination import page_args, paginated, flag_arg

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"branch_id", "name", "contact_person", "email", "phone", "address"},
    required_on_create={"name", "email", "phone"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/inventory/suppliers")


@suppliers_bp.post("")
@require_auth
def create_supplier_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        enforce_rules_supplier(patch)
        patch["branch_id"] = resolve_branch_id(patch.get("branch_id"))

        supplier = supplier_service.create_supplier(**patch)
        return jsonify({"supplier": supplier.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    """Active suppliers sorted by name; ?include_inactive=true lists all."""
    try:
        page, page_size = page_args()
        result = supplier_service.list_suppliers(
            include_inactive=flag_arg("include_inactive"),
            page=page,
            page_size=page_size,
        )
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)
