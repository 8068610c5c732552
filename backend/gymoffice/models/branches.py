from __future__ import annotations

from ..extensions import db
from gymoffice.time_utils import to_utc_z, utcnow


class Branch(db.Model):
    """
    A gym branch. Inventory, suppliers, purchase orders and sales are branch-scoped.
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-branch document sequences.

    WHY: Prevent race conditions when generating purchase order numbers
    and sale transaction ids.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "document_type", name="uq_doc_sequences_branch_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("document_sequences", lazy=True))
