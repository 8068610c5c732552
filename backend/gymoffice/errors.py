# Overview: Error taxonomy shared by services and routes.

"""
Every service failure is one of the classes below. Each carries a stable
``kind`` for API clients, the HTTP status routes answer with, and optional
structured ``details`` (e.g. which sale lines were short on stock).

Routes never invent status codes for these; they call ``error_response(exc)``.
"""

from __future__ import annotations

from flask import jsonify


class ServiceError(Exception):
    """Base class for expected, client-visible failures."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """400-level input problem. Nothing was written."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(ServiceError):
    kind = "not_found"
    status_code = 404


class ConflictError(ServiceError):
    """409-level business rule conflict (duplicate SKU, concurrent edit, ...)."""

    kind = "conflict"
    status_code = 409


class InsufficientStockError(ServiceError):
    kind = "insufficient_stock"
    status_code = 409


class InvalidTransitionError(ServiceError):
    kind = "invalid_transition"
    status_code = 400


class PlanInactiveError(ValidationError):
    kind = "plan_inactive"


class AlreadySubscribedError(ConflictError):
    kind = "already_subscribed"


class NoActiveSubscriptionError(NotFoundError):
    kind = "no_active_subscription"


class StorageError(ServiceError):
    """The database failed for a reason unrelated to the request. Callers decide on retry."""

    kind = "storage_error"
    status_code = 503


def error_response(exc: ServiceError):
    return jsonify(exc.to_dict()), exc.status_code
