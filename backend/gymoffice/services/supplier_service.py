# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are the counterparty of every purchase order. Names and emails
are unique across the system; emails are stored lower-cased.
"""

from ..extensions import db
from ..models import Branch, Supplier
from ..errors import ConflictError, NotFoundError, ValidationError
from .concurrency import constraint_name, run_in_transaction


def _supplier_conflict(exc) -> ConflictError:
    text = constraint_name(exc)
    if "email" in text:
        return ConflictError("Supplier with this email already exists")
    return ConflictError("Supplier with this name already exists")


def create_supplier(
    *,
    branch_id: int,
    name: str,
    email: str,
    phone: str,
    contact_person: str | None = None,
    address: str | None = None,
) -> Supplier:
    """
    Create a new supplier.

    Raises:
        NotFoundError: branch does not exist
        ConflictError: name or email already used by another supplier
    """
    def _op():
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError(f"Branch {branch_id} not found")

        existing = db.session.query(Supplier).filter(
            (Supplier.name == name) | (Supplier.email == email)
        ).first()
        if existing:
            if existing.email == email:
                raise ConflictError("Supplier with this email already exists")
            raise ConflictError("Supplier with this name already exists")

        supplier = Supplier(
            branch_id=branch_id,
            name=name,
            email=email,
            phone=phone,
            contact_person=contact_person,
            address=address,
            status="active",
        )
        db.session.add(supplier)
        db.session.flush()
        return supplier

    return run_in_transaction(_op, integrity_error=_supplier_conflict)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def validate_supplier_for_order(supplier_id: int) -> Supplier:
    """Suppliers must exist and be active to receive new purchase orders."""
    supplier = get_supplier(supplier_id)
    if supplier.status != "active":
        raise ValidationError("Supplier is not active")
    return supplier


def list_suppliers(*, include_inactive: bool = False, page: int = 1, page_size: int = 10):
    q = Supplier.query
    if not include_inactive:
        q = q.filter(Supplier.status == "active")
    q = q.order_by(Supplier.name.asc())
    return q.paginate(page=page, per_page=page_size, error_out=False)
