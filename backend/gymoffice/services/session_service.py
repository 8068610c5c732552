# Overview: Service-layer operations for bearer tokens; resolves the request principal.

"""
Session Token Service

The back office does not log users in itself; an operator issues a token
out-of-band (``flask users token``) and clients send it as
``Authorization: Bearer <token>``. This module only turns that token into
an active User.

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute expiry from SESSION_TTL_HOURS
- Revocable
"""

import secrets
import hashlib
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..errors import NotFoundError
from gymoffice.time_utils import utcnow


def generate_token() -> str:
    """Return a 64-character hex token. The plaintext is never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(user_id: int, *, ttl_hours: int | None = None) -> str:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    if ttl_hours is None:
        ttl_hours = current_app.config.get("SESSION_TTL_HOURS", 24)

    token = generate_token()
    now = utcnow()
    db.session.add(SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        expires_at=now + timedelta(hours=ttl_hours),
    ))
    db.session.commit()
    return token


def validate_session(token: str) -> User | None:
    """
    Return the active user owning ``token``, or None if the token is unknown,
    expired, revoked, or belongs to a deactivated user.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.revoked_at is not None:
        return None
    if session.expires_at < utcnow():
        return None

    user = session.user
    if user is None or not user.is_active:
        return None
    return user


def revoke_token(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.revoked_at is not None:
        return False
    session.revoked_at = utcnow()
    db.session.commit()
    return True
