from __future__ import annotations

from ..extensions import db
from gymoffice.time_utils import to_utc_z, utcnow


USER_ROLES = ("member", "staff", "admin")


class User(db.Model):
    """
    Gym member or staff account.

    current_subscription_id is a materialized back-reference to the user's
    active UserSubscription. It is only written by subscription_service, in the
    same transaction as the status change it mirrors.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    username = db.Column(db.String(64), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="member", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    current_subscription_id = db.Column(
        db.Integer,
        db.ForeignKey("user_subscriptions.id", use_alter=True, name="fk_users_current_subscription"),
        nullable=True,
    )

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))
    current_subscription = db.relationship(
        "UserSubscription",
        foreign_keys=[current_subscription_id],
        post_update=True,
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "is_active": self.is_active,
            "current_subscription_id": self.current_subscription_id,
            "created_at": to_utc_z(self.created_at),
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "username": self.username, "full_name": self.full_name, "email": self.email}


class SessionToken(db.Model):
    """
    Bearer token issued to a user. Only the SHA-256 hash is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))
