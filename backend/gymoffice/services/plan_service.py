# Overview: Service-layer operations for subscription plans; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import SubscriptionPlan, UserSubscription
from ..errors import ConflictError, NotFoundError
from gymoffice.time_utils import utcnow
from .concurrency import run_in_transaction


def _name_conflict(exc) -> ConflictError:
    return ConflictError("Subscription plan with this name already exists")


def get_plan(plan_id: int) -> SubscriptionPlan:
    plan = db.session.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFoundError(f"Subscription plan {plan_id} not found")
    return plan


def create_plan(data: dict) -> SubscriptionPlan:
    """
    Create a plan from an already validated payload (see validation.validate_payload).

    Raises:
        ConflictError: plan name already in use
    """
    def _op():
        if db.session.query(SubscriptionPlan.id).filter_by(name=data["name"]).first():
            raise ConflictError("Subscription plan with this name already exists")

        plan = SubscriptionPlan(**data)
        if plan.features is None:
            plan.features = []
        db.session.add(plan)
        db.session.flush()
        return plan

    return run_in_transaction(_op, integrity_error=_name_conflict)


def update_plan(plan_id: int, patch: dict) -> SubscriptionPlan:
    """
    Apply a validated patch. Price and duration changes only affect future
    subscribe/renew calls; existing subscriptions keep what they paid.
    """
    def _op():
        plan = get_plan(plan_id)
        if "name" in patch and patch["name"] != plan.name:
            taken = db.session.query(SubscriptionPlan.id).filter(
                SubscriptionPlan.name == patch["name"],
                SubscriptionPlan.id != plan.id,
            ).first()
            if taken:
                raise ConflictError("Subscription plan with this name already exists")

        for key, value in patch.items():
            setattr(plan, key, value)
        db.session.flush()
        return plan

    return run_in_transaction(_op, integrity_error=_name_conflict)


def list_plans(*, active_only: bool = False, page: int = 1, page_size: int = 10):
    """Plans cheapest first."""
    q = SubscriptionPlan.query
    if active_only:
        q = q.filter(SubscriptionPlan.is_active.is_(True))
    q = q.order_by(SubscriptionPlan.price_cents.asc(), SubscriptionPlan.id.asc())
    return q.paginate(page=page, per_page=page_size, error_out=False)


def delete_plan(plan_id: int, *, now: datetime | None = None) -> None:
    """
    Delete a plan no subscription has ever referenced.

    Plans with subscription history are never removed or silently changed
    here; retire them with update_plan(plan_id, {"is_active": False}).

    Raises:
        ConflictError: at least one subscription on the plan is effectively
            active, or past subscriptions still reference it
    """
    now = now or utcnow()

    def _op():
        plan = get_plan(plan_id)
        active = db.session.query(UserSubscription.id).filter(
            UserSubscription.plan_id == plan.id,
            UserSubscription.effectively_active(now),
        ).count()
        if active:
            raise ConflictError(
                "Cannot delete subscription plan with active users",
                details={"active_subscriptions": active},
            )

        history = db.session.query(UserSubscription.id).filter_by(plan_id=plan.id).count()
        if history:
            raise ConflictError(
                "Subscription plan has past subscriptions; set is_active=false to retire it instead",
                details={"subscriptions": history},
            )

        db.session.delete(plan)

    run_in_transaction(_op)
    current_app.logger.info("Subscription plan %s deleted", plan_id)
