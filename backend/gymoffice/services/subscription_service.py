# Overview: Service-layer operations for user subscriptions; encapsulates the subscription lifecycle.

"""
Subscription Lifecycle Service

STATES:
- pending: created but not yet paid/started
- active: running; at most one per user (partial unique index)
- expired: end_date passed and the sweep (or a new subscribe) stored it
- cancelled: ended early by staff

TRANSITIONS:
- subscribe: new row, active
- renew: any state -> active, dates recomputed from the plan's current duration
- cancel: active|pending -> cancelled
- expire sweep: active with end_date < now -> expired

LAZY EXPIRY:
Reads never rewrite status. A stored 'active' row whose end_date is in the
past is reported as expired and does not count as the user's active
subscription. Writes that need the slot (subscribe/renew) store the
transition themselves, in their own transaction.

BACK-REFERENCE:
users.current_subscription_id always mirrors the user's active row. Every
function here that changes a status writes it in the same transaction.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func, update

from ..extensions import db
from ..models import SubscriptionPlan, User, UserSubscription
from ..models.subscriptions import SUBSCRIPTION_STATUSES
from ..errors import (
    AlreadySubscribedError,
    ConflictError,
    InvalidTransitionError,
    NoActiveSubscriptionError,
    NotFoundError,
    PlanInactiveError,
    ValidationError,
)
from gymoffice.time_utils import compute_end_date, start_of_month, utcnow
from .concurrency import constraint_name, run_in_transaction


CANCELLABLE_STATUSES = {"active", "pending"}


def _one_active_conflict(exc):
    text = constraint_name(exc)
    if "uq_user_subscriptions_one_active" in text or "user_subscriptions.user_id" in text:
        return AlreadySubscribedError("User already has an active subscription")
    return ConflictError("Subscription conflicts with existing data")


def _validate_discount(discount_cents) -> int:
    if discount_cents is None:
        return 0
    if isinstance(discount_cents, bool) or not isinstance(discount_cents, int) or discount_cents < 0:
        raise ValidationError("discount_cents must be an integer >= 0")
    return discount_cents


def _amount_due(plan: SubscriptionPlan, discount_cents: int) -> int:
    return max(0, plan.price_cents - discount_cents)


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_subscription(subscription_id: int) -> UserSubscription:
    sub = db.session.get(UserSubscription, subscription_id)
    if sub is None:
        raise NotFoundError(f"User subscription {subscription_id} not found")
    return sub


def _expire_row(sub_id: int, user_id: int, now: datetime) -> bool:
    """
    Store active -> expired for one lapsed row. Conditional on the row still
    being active and lapsed, so concurrent sweeps expire it exactly once.
    """
    result = db.session.execute(
        update(UserSubscription)
        .where(
            UserSubscription.id == sub_id,
            UserSubscription.lapsed(now),
        )
        .values(status="expired", expired_at=now, version_id=UserSubscription.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    db.session.execute(
        update(User)
        .where(User.id == user_id, User.current_subscription_id == sub_id)
        .values(current_subscription_id=None)
        .execution_options(synchronize_session=False)
    )
    return True


def _claim_active_slot(user_id: int, now: datetime, *, exclude_id: int | None = None) -> None:
    """
    Make room for a new active row for ``user_id``.

    Raises AlreadySubscribedError if another row is effectively active; a
    lapsed-but-active row is expired first so the partial unique index lets
    the new active row in.
    """
    q = db.session.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.status == "active",
    )
    if exclude_id is not None:
        q = q.filter(UserSubscription.id != exclude_id)

    for existing in q.all():
        if existing.is_effectively_active(now):
            raise AlreadySubscribedError(
                "User already has an active subscription",
                details={"subscription_id": existing.id, "end_date": existing.end_date.isoformat()},
            )
        _expire_row(existing.id, user_id, now)


def subscribe(
    user_id: int,
    plan_id: int,
    *,
    discount_cents: int = 0,
    payment_method: str | None = None,
    now: datetime | None = None,
) -> UserSubscription:
    """
    Start a new active subscription for ``user_id`` on ``plan_id``.

    Raises:
        NotFoundError: user or plan does not exist
        PlanInactiveError: plan is not open for new subscriptions
        AlreadySubscribedError: user already has an effectively active subscription
        ValidationError: negative discount
    """
    discount_cents = _validate_discount(discount_cents)
    now = now or utcnow()

    def _op():
        user = _get_user(user_id)
        plan = db.session.get(SubscriptionPlan, plan_id)
        if plan is None:
            raise NotFoundError(f"Subscription plan {plan_id} not found")
        if not plan.is_active:
            raise PlanInactiveError(f"Subscription plan {plan.name} is not active")

        _claim_active_slot(user.id, now)

        sub = UserSubscription(
            user_id=user.id,
            plan_id=plan.id,
            start_date=now,
            end_date=compute_end_date(now, plan.duration_days),
            status="active",
            payment_method=payment_method,
            amount_paid_cents=_amount_due(plan, discount_cents),
            discount_cents=discount_cents,
            renewal_count=0,
            created_at=now,
        )
        db.session.add(sub)
        db.session.flush()

        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(current_subscription_id=sub.id)
            .execution_options(synchronize_session=False)
        )
        return sub

    sub = run_in_transaction(_op, integrity_error=_one_active_conflict)
    current_app.logger.info("User %s subscribed to plan %s (subscription %s)", user_id, plan_id, sub.id)
    return sub


def renew(
    subscription_id: int,
    *,
    discount_cents: int = 0,
    payment_method: str | None = None,
    now: datetime | None = None,
) -> UserSubscription:
    """
    Restart a subscription from ``now`` using the plan's CURRENT price and
    duration. Allowed from any status, and for plans no longer on sale.

    Raises:
        NotFoundError: subscription does not exist
        AlreadySubscribedError: the user has a different effectively active subscription
        ConflictError: the subscription was modified concurrently
    """
    discount_cents = _validate_discount(discount_cents)
    now = now or utcnow()

    def _op():
        sub = get_subscription(subscription_id)
        plan = sub.plan

        _claim_active_slot(sub.user_id, now, exclude_id=sub.id)

        sub.start_date = now
        sub.end_date = compute_end_date(now, plan.duration_days)
        sub.status = "active"
        sub.amount_paid_cents = _amount_due(plan, discount_cents)
        sub.discount_cents = discount_cents
        sub.renewal_count = (sub.renewal_count or 0) + 1
        sub.cancellation_reason = None
        sub.cancelled_at = None
        sub.expired_at = None
        if payment_method is not None:
            sub.payment_method = payment_method
        db.session.flush()

        db.session.execute(
            update(User)
            .where(User.id == sub.user_id)
            .values(current_subscription_id=sub.id)
            .execution_options(synchronize_session=False)
        )
        return sub

    sub = run_in_transaction(_op, integrity_error=_one_active_conflict)
    current_app.logger.info("Subscription %s renewed (renewal #%s)", sub.id, sub.renewal_count)
    return sub


def cancel(subscription_id: int, *, reason: str | None = None, now: datetime | None = None) -> UserSubscription:
    """
    Cancel an active or pending subscription.

    Raises:
        NotFoundError: subscription does not exist
        InvalidTransitionError: subscription is already expired or cancelled
    """
    now = now or utcnow()

    def _op():
        sub = get_subscription(subscription_id)
        if sub.status not in CANCELLABLE_STATUSES:
            raise InvalidTransitionError(f"Cannot cancel a subscription that is {sub.status}")

        sub.status = "cancelled"
        sub.cancellation_reason = reason
        sub.cancelled_at = now
        db.session.flush()

        db.session.execute(
            update(User)
            .where(User.id == sub.user_id, User.current_subscription_id == sub.id)
            .values(current_subscription_id=None)
            .execution_options(synchronize_session=False)
        )
        return sub

    sub = run_in_transaction(_op)
    current_app.logger.info("Subscription %s cancelled", sub.id)
    return sub


def get_active_subscription(user_id: int, *, now: datetime | None = None) -> UserSubscription:
    """
    The user's effectively active subscription (status active and not lapsed).

    Raises:
        NotFoundError: user does not exist
        NoActiveSubscriptionError: nothing active, or the active row has lapsed
    """
    now = now or utcnow()
    _get_user(user_id)

    sub = db.session.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.effectively_active(now),
    ).first()
    if sub is None:
        raise NoActiveSubscriptionError("No active subscription found for this user")
    return sub


def list_user_subscriptions(
    *,
    status: str | None = None,
    expired_only: bool = False,
    user_id: int | None = None,
    page: int = 1,
    page_size: int = 10,
    now: datetime | None = None,
):
    """
    Newest first. ``expired_only`` returns rows still stored as active whose
    end_date has passed, i.e. what the next sweep will expire.
    """
    if status and status not in SUBSCRIPTION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SUBSCRIPTION_STATUSES)}")
    now = now or utcnow()

    q = UserSubscription.query
    if user_id is not None:
        q = q.filter(UserSubscription.user_id == user_id)
    if expired_only:
        q = q.filter(UserSubscription.lapsed(now))
    elif status:
        q = q.filter(UserSubscription.status == status)

    q = q.order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
    return q.paginate(page=page, per_page=page_size, error_out=False)


def expire_lapsed_subscriptions(*, now: datetime | None = None) -> list[int]:
    """
    Store active -> expired for every lapsed row and clear back-references.
    Returns the ids this call expired. Safe to run from several processes at
    once: each row is claimed by a conditional UPDATE.
    """
    now = now or utcnow()

    def _op():
        candidates = db.session.query(UserSubscription.id, UserSubscription.user_id).filter(
            UserSubscription.lapsed(now),
        ).order_by(UserSubscription.id.asc()).all()

        return [sub_id for sub_id, user_id in candidates if _expire_row(sub_id, user_id, now)]

    expired = run_in_transaction(_op)
    current_app.logger.info("Expiry sweep stored %d expired subscription(s)", len(expired))
    return expired


def get_stats(*, now: datetime | None = None) -> dict:
    """Counts by effective status and this calendar month's revenue."""
    now = now or utcnow()
    lapsed = UserSubscription.lapsed(now)

    row = db.session.query(
        func.coalesce(func.sum(case(
            (UserSubscription.effectively_active(now), 1),
            else_=0,
        )), 0),
        func.coalesce(func.sum(case((UserSubscription.status == "expired", 1), else_=0)), 0),
        func.coalesce(func.sum(case((lapsed, 1), else_=0)), 0),
        func.coalesce(func.sum(case((UserSubscription.status == "cancelled", 1), else_=0)), 0),
        func.coalesce(func.sum(case((UserSubscription.status == "pending", 1), else_=0)), 0),
    ).one()
    active, stored_expired, awaiting_expiry, cancelled, pending = (int(v) for v in row)

    revenue = db.session.query(
        func.coalesce(func.sum(UserSubscription.amount_paid_cents), 0)
    ).filter(UserSubscription.created_at >= start_of_month(now)).scalar()

    return {
        "total_active": active,
        "total_expired": stored_expired + awaiting_expiry,
        "total_cancelled": cancelled,
        "total_pending": pending,
        "awaiting_expiry": awaiting_expiry,
        "monthly_revenue_cents": int(revenue or 0),
    }
