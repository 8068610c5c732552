# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(ValidationError):
    """Raised when a document number is requested without a branch or type."""
    pass


def next_document_number(
    *,
    branch_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next document number for a branch/type.

    Runs inside the caller's transaction: the number is only consumed if the
    caller commits. The increment is a single UPDATE, so two requests cannot
    read the same value.
    """
    if not branch_id:
        raise DocumentSequenceError("branch_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First document of this type for the branch. A concurrent first
        # insert loses on the unique constraint and falls back to UPDATE.
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2))
            return f"{prefix}-{branch_id:03d}-{1:0{pad}d}"
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_id, document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{branch_id:03d}-{current - 1:0{pad}d}"
