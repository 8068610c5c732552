# Overview: Flask API routes for subscription plans and user subscriptions.

# backend/gymoffice/routes/subscriptions.py
"""
Subscription routes.

Plan reads are public (the front desk shows them before sign-up); every
other route requires authentication.
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import SubscriptionPlan
from ..services import plan_service, subscription_service
from ..errors import ServiceError, error_response
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_plan,
    coerce_int,
    ValidationError,
)
from ..decorators import require_auth
from ..pagination import page_args, paginated, flag_arg

PLAN_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "price_cents", "duration_days",
        "features", "plan_type", "max_members", "is_active",
    },
    required_on_create={"name", "price_cents", "duration_days"},
)

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


def _optional_int(data: dict, key: str, default=None):
    if data.get(key) is None:
        return default
    return coerce_int(key, data[key])


# Plans

@subscriptions_bp.post("/plans")
@require_auth
def create_plan_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=SubscriptionPlan, payload=payload, policy=PLAN_POLICY, partial=False)
        enforce_rules_plan(patch)

        plan = plan_service.create_plan(patch)
        return jsonify({"plan": plan.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create subscription plan")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.get("/plans")
def list_plans_route():
    """Cheapest first. ?active_only=true hides plans closed to new members."""
    try:
        page, page_size = page_args()
        result = plan_service.list_plans(active_only=flag_arg("active_only"), page=page, page_size=page_size)
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)


@subscriptions_bp.get("/plans/<int:plan_id>")
def get_plan_route(plan_id: int):
    try:
        plan = plan_service.get_plan(plan_id)
        return jsonify({"plan": plan.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@subscriptions_bp.patch("/plans/<int:plan_id>")
@require_auth
def update_plan_route(plan_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=SubscriptionPlan, payload=payload, policy=PLAN_POLICY, partial=True)
        enforce_rules_plan(patch)

        plan = plan_service.update_plan(plan_id, patch)
        return jsonify({"plan": plan.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update subscription plan")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.delete("/plans/<int:plan_id>")
@require_auth
def delete_plan_route(plan_id: int):
    try:
        plan_service.delete_plan(plan_id)
        return jsonify({"ok": True}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete subscription plan")
        return jsonify({"error": "Internal server error"}), 500


# User subscriptions

@subscriptions_bp.post("/user-subscriptions")
@require_auth
def subscribe_route():
    """
    Body: {user_id, plan_id, discount_cents?, payment_method?}
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("user_id") is None or data.get("plan_id") is None:
            raise ValidationError("user_id and plan_id are required")

        sub = subscription_service.subscribe(
            coerce_int("user_id", data["user_id"]),
            coerce_int("plan_id", data["plan_id"]),
            discount_cents=_optional_int(data, "discount_cents", 0),
            payment_method=data.get("payment_method"),
        )
        return jsonify({"subscription": sub.to_dict()}), 201

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to subscribe user")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.get("/user-subscriptions")
@require_auth
def list_user_subscriptions_route():
    """
    Query params:
    - status: active | expired | cancelled | pending
    - expired: 'true' lists stored-active rows whose end_date has passed
    - user_id, page, page_size
    """
    try:
        page, page_size = page_args()
        result = subscription_service.list_user_subscriptions(
            status=request.args.get("status"),
            expired_only=flag_arg("expired"),
            user_id=request.args.get("user_id", type=int),
            page=page,
            page_size=page_size,
        )
        return jsonify(paginated(result)), 200
    except ServiceError as e:
        return error_response(e)


@subscriptions_bp.get("/users/<int:user_id>/active")
@require_auth
def get_active_subscription_route(user_id: int):
    try:
        sub = subscription_service.get_active_subscription(user_id)
        return jsonify({"subscription": sub.to_dict()}), 200
    except ServiceError as e:
        return error_response(e)


@subscriptions_bp.patch("/user-subscriptions/<int:subscription_id>/renew")
@require_auth
def renew_route(subscription_id: int):
    data = request.get_json(silent=True) or {}

    try:
        sub = subscription_service.renew(
            subscription_id,
            discount_cents=_optional_int(data, "discount_cents", 0),
            payment_method=data.get("payment_method"),
        )
        return jsonify({"subscription": sub.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to renew subscription")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.patch("/user-subscriptions/<int:subscription_id>/cancel")
@require_auth
def cancel_route(subscription_id: int):
    data = request.get_json(silent=True) or {}

    try:
        sub = subscription_service.cancel(subscription_id, reason=data.get("reason"))
        return jsonify({"subscription": sub.to_dict()}), 200

    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel subscription")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.post("/expire")
@require_auth
def expire_route():
    try:
        expired_ids = subscription_service.expire_lapsed_subscriptions()
        return jsonify({"expired_count": len(expired_ids), "expired_ids": expired_ids}), 200
    except ServiceError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to expire lapsed subscriptions")
        return jsonify({"error": "Internal server error"}), 500


@subscriptions_bp.get("/stats")
@require_auth
def stats_route():
    try:
        return jsonify({"stats": subscription_service.get_stats()}), 200
    except ServiceError as e:
        return error_response(e)
