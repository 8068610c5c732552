from __future__ import annotations

from ..extensions import db
from gymoffice.time_utils import to_utc_z, utcnow


SUBSCRIPTION_STATUSES = ("active", "expired", "cancelled", "pending")


class SubscriptionPlan(db.Model):
    """
    Membership plan offered to members (e.g. Gold monthly).

    is_active controls availability for NEW subscriptions only; existing
    subscribers can still renew.
    """
    __tablename__ = "subscription_plans"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="ck_plans_price_nonneg"),
        db.CheckConstraint("duration_days > 0", name="ck_plans_duration_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    duration_days = db.Column(db.Integer, nullable=False)
    features = db.Column(db.JSON, nullable=False, default=list)
    plan_type = db.Column(db.String(16), nullable=False, default="Monthly")
    max_members = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SubscriptionPlan id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "duration_days": self.duration_days,
            "features": list(self.features or []),
            "plan_type": self.plan_type,
            "max_members": self.max_members,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UserSubscription(db.Model):
    """
    A user's subscription to a plan.

    STATES: pending -> active -> {expired, cancelled}; renewal reactivates
    from any state.

    AT MOST ONE ACTIVE PER USER: enforced by the partial unique index
    uq_user_subscriptions_one_active, not by a find-then-insert check.

    EXPIRY: a row with status='active' and end_date < now is logically
    expired. Reads treat it as such without rewriting it; the sweep in
    subscription_service.expire_lapsed_subscriptions stores the transition.
    """
    __tablename__ = "user_subscriptions"
    __table_args__ = (
        db.Index(
            "uq_user_subscriptions_one_active",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_user_subscriptions_status_end", "status", "end_date"),
        db.CheckConstraint("amount_paid_cents >= 0", name="ck_user_subs_amount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("subscription_plans.id"), nullable=False, index=True)

    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    payment_method = db.Column(db.String(32), nullable=True)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    renewal_count = db.Column(db.Integer, nullable=False, default=0)

    cancellation_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    expired_at = db.Column(db.DateTime, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("subscriptions", lazy=True))
    plan = db.relationship("SubscriptionPlan", backref=db.backref("subscriptions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def is_effectively_active(self, now) -> bool:
        return self.status == "active" and self.end_date >= now

    @classmethod
    def effectively_active(cls, now):
        """SQL form of is_effectively_active, for filters and aggregates."""
        return (cls.status == "active") & (cls.end_date >= now)

    @classmethod
    def lapsed(cls, now):
        """Stored as active but past end_date: logically expired, not yet swept."""
        return (cls.status == "active") & (cls.end_date < now)

    def __repr__(self) -> str:
        return f"<UserSubscription id={self.id} user_id={self.user_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "plan_id": self.plan_id,
            "plan": self.plan.to_dict() if self.plan else None,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "status": self.status,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "discount_cents": self.discount_cents,
            "renewal_count": self.renewal_count,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "expired_at": to_utc_z(self.expired_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
