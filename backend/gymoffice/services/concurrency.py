# Overview: Service-layer operations for concurrency; encapsulates transaction boundaries.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConflictError, ServiceError, StorageError


def run_in_transaction(func, *, integrity_error=None):
    """
    Run ``func`` as one all-or-nothing unit of work and commit it.

    Any exception rolls the whole session back, so no partial writes survive
    a failed operation. Nothing is retried here:

    - ServiceError subclasses propagate unchanged.
    - StaleDataError (optimistic version check) becomes ConflictError.
    - IntegrityError becomes ``integrity_error(exc)`` when given, else ConflictError.
    - Any other SQLAlchemy failure becomes StorageError.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except ServiceError:
        db.session.rollback()
        raise
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified by another request; reload and try again") from exc
    except IntegrityError as exc:
        db.session.rollback()
        if integrity_error is not None:
            raise integrity_error(exc) from exc
        raise ConflictError("Request conflicts with existing data") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Database operation failed") from exc


def constraint_name(exc: IntegrityError) -> str:
    """Best-effort text of the violated constraint, for mapping to a friendly message."""
    return str(getattr(exc, "orig", exc)).lower()
