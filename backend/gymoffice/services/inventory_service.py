# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

# backend/gymoffice/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import select, update

from ..extensions import db
from ..models import (
    Branch,
    InventoryItem,
    InventoryAdjustment,
    PurchaseOrderLine,
    SaleLine,
    StockMovement,
    Supplier,
)
from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from gymoffice.time_utils import utcnow
from .concurrency import constraint_name, run_in_transaction
"""
Inventory Ledger Invariants (authoritative)

- InventoryItem.quantity is the stored on-hand count and is never negative
  (CHECK constraint plus conditional writes).
- Only ledger operations change quantity: purchase order delivery (RECEIVE),
  sale creation (SALE) and manual adjustments (ADJUST). Item create/update
  never touches it after the opening balance.
- Every ledger operation is one UPDATE ... SET quantity = quantity + :delta
  guarded by WHERE quantity >= :needed for decrements. Two concurrent sales
  can never both pass the guard and over-decrement.
- Every ledger operation appends a StockMovement in the same DB transaction.
"""


ADJUSTMENT_TYPES = ("increase", "decrease")
ADJUSTMENT_REASONS = (
    "Stock Count Correction",
    "Damaged Goods",
    "Expired Goods",
    "Lost/Stolen",
    "Other",
)


def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def _ensure_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError(f"Branch {branch_id} not found")
    return branch


def _ensure_supplier(supplier_id: int | None) -> Supplier | None:
    if supplier_id is None:
        return None
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def _sku_conflict(exc) -> ConflictError:
    if "sku" in constraint_name(exc):
        return ConflictError("Item with this SKU already exists")
    return ConflictError("Item conflicts with existing data")


def apply_stock_delta(
    item_id: int,
    delta: int,
    *,
    branch_id: int,
    movement_type: str,
    reference_type: str,
    reference_id: int,
    actor_user_id: int | None = None,
    note: str | None = None,
    occurred_at: datetime | None = None,
) -> int:
    """
    Change an item's quantity by ``delta`` and journal it. Returns the new quantity.

    Must run inside the caller's transaction (see run_in_transaction): if a
    later line of the same document fails, this write is rolled back with it.

    Raises:
        InsufficientStockError: a decrement would take quantity below zero
        NotFoundError: the item does not exist
    """
    if delta == 0:
        raise ValidationError("quantity delta must be non-zero")

    stmt = update(InventoryItem).where(InventoryItem.id == item_id)
    if delta < 0:
        stmt = stmt.where(InventoryItem.quantity >= -delta)
    stmt = stmt.values(
        quantity=InventoryItem.quantity + delta,
        version_id=InventoryItem.version_id + 1,
    ).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    if result.rowcount != 1:
        on_hand = db.session.execute(
            select(InventoryItem.quantity).where(InventoryItem.id == item_id)
        ).scalar_one_or_none()
        if on_hand is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        raise InsufficientStockError(
            "Insufficient stock",
            details={"items": [{"item_id": item_id, "requested_quantity": -delta, "on_hand": on_hand}]},
        )

    quantity_after = db.session.execute(
        select(InventoryItem.quantity).where(InventoryItem.id == item_id)
    ).scalar_one()

    db.session.add(StockMovement(
        item_id=item_id,
        branch_id=branch_id,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        quantity_delta=delta,
        quantity_after=quantity_after,
        actor_user_id=actor_user_id,
        note=note,
        occurred_at=occurred_at or utcnow(),
    ))
    return quantity_after


def create_item(
    *,
    branch_id: int,
    sku: str,
    name: str,
    category: str,
    unit_price_cents: int,
    quantity: int = 0,
    reorder_level: int | None = None,
    description: str | None = None,
    supplier_id: int | None = None,
    created_by_user_id: int | None = None,
) -> InventoryItem:
    """
    Create an inventory item with an optional opening quantity.

    Raises:
        NotFoundError: branch or supplier does not exist
        ConflictError: SKU already in use
    """
    def _op():
        _ensure_branch(branch_id)
        _ensure_supplier(supplier_id)

        if db.session.query(InventoryItem.id).filter_by(sku=sku).first():
            raise ConflictError("Item with this SKU already exists")

        item = InventoryItem(
            branch_id=branch_id,
            supplier_id=supplier_id,
            sku=sku,
            name=name,
            description=description,
            category=category,
            quantity=quantity or 0,
            unit_price_cents=unit_price_cents,
            reorder_level=10 if reorder_level is None else reorder_level,
        )
        db.session.add(item)
        db.session.flush()

        if item.quantity:
            db.session.add(StockMovement(
                item_id=item.id,
                branch_id=branch_id,
                movement_type="RECEIVE",
                reference_type="opening_balance",
                reference_id=item.id,
                quantity_delta=item.quantity,
                quantity_after=item.quantity,
                actor_user_id=created_by_user_id,
                note="Opening balance",
            ))
        return item

    return run_in_transaction(_op, integrity_error=_sku_conflict)


def _has_history(item_id: int) -> bool:
    return bool(
        db.session.query(PurchaseOrderLine.id).filter_by(item_id=item_id).first()
        or db.session.query(SaleLine.id).filter_by(item_id=item_id).first()
        or db.session.query(InventoryAdjustment.id).filter_by(item_id=item_id).first()
    )


def update_item(item_id: int, patch: dict) -> InventoryItem:
    """
    Update catalogue fields. ``quantity`` is not accepted: stock only moves
    through ledger operations.

    Raises:
        ConflictError: SKU taken, or branch_id changed on an item that already
            appears on a purchase order, sale or adjustment
    """
    if "quantity" in patch:
        raise ValidationError("quantity can only be changed through adjustments, deliveries or sales")

    def _op():
        item = get_item(item_id)

        if "sku" in patch and patch["sku"] != item.sku:
            taken = db.session.query(InventoryItem.id).filter(
                InventoryItem.sku == patch["sku"],
                InventoryItem.id != item.id,
            ).first()
            if taken:
                raise ConflictError("Item with this SKU already exists")
        if "supplier_id" in patch:
            _ensure_supplier(patch["supplier_id"])
        if "branch_id" in patch and patch["branch_id"] != item.branch_id:
            _ensure_branch(patch["branch_id"])
            if _has_history(item.id):
                raise ConflictError("Item has purchase order, sale or adjustment history and cannot change branch")
            db.session.query(StockMovement).filter_by(item_id=item.id).update(
                {"branch_id": patch["branch_id"]}, synchronize_session=False
            )

        for key, value in patch.items():
            setattr(item, key, value)
        db.session.flush()
        return item

    return run_in_transaction(_op, integrity_error=_sku_conflict)


def delete_item(item_id: int) -> None:
    """
    Delete an item that has no document history.

    Raises:
        ConflictError: item appears on a purchase order, sale or adjustment
    """
    def _op():
        item = get_item(item_id)
        if _has_history(item.id):
            raise ConflictError("Item has purchase order, sale or adjustment history and cannot be deleted")

        db.session.query(StockMovement).filter_by(item_id=item_id).delete(synchronize_session=False)
        db.session.delete(item)

    run_in_transaction(_op)


def list_items(
    *,
    branch_id: int | None = None,
    category: str | None = None,
    low_stock_only: bool = False,
    page: int = 1,
    page_size: int = 10,
):
    """Items newest first. low_stock_only keeps items at or below their reorder level."""
    q = InventoryItem.query
    if branch_id is not None:
        q = q.filter(InventoryItem.branch_id == branch_id)
    if category:
        q = q.filter(InventoryItem.category == category)
    if low_stock_only:
        q = q.filter(InventoryItem.quantity <= InventoryItem.reorder_level)

    q = q.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
    return q.paginate(page=page, per_page=page_size, error_out=False)


def record_adjustment(
    item_id: int,
    *,
    adjustment_type: str,
    quantity: int,
    reason: str,
    adjusted_by_user_id: int,
    notes: str | None = None,
    now: datetime | None = None,
) -> InventoryAdjustment:
    """
    Manually correct an item's stock.

    Raises:
        ValidationError: unknown type/reason or quantity < 1
        InsufficientStockError: a decrease would take stock below zero
    """
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}")
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(f"reason must be one of: {', '.join(ADJUSTMENT_REASONS)}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be an integer >= 1")

    now = now or utcnow()
    delta = quantity if adjustment_type == "increase" else -quantity

    def _op():
        item = get_item(item_id)

        adjustment = InventoryAdjustment(
            item_id=item.id,
            branch_id=item.branch_id,
            adjusted_by_user_id=adjusted_by_user_id,
            adjustment_type=adjustment_type,
            quantity_changed=quantity,
            reason=reason,
            notes=notes,
            quantity_before=0,
            quantity_after=0,
            created_at=now,
        )
        db.session.add(adjustment)
        db.session.flush()

        quantity_after = apply_stock_delta(
            item.id,
            delta,
            branch_id=item.branch_id,
            movement_type="ADJUST",
            reference_type="inventory_adjustment",
            reference_id=adjustment.id,
            actor_user_id=adjusted_by_user_id,
            note=reason,
            occurred_at=now,
        )
        adjustment.quantity_before = quantity_after - delta
        adjustment.quantity_after = quantity_after
        return adjustment

    adjustment = run_in_transaction(_op)
    current_app.logger.info(
        "Inventory adjustment %s on item %s: %s %s (%s)",
        adjustment.id, item_id, adjustment_type, quantity, reason,
    )
    return adjustment


def list_adjustments(item_id: int, *, page: int = 1, page_size: int = 10):
    get_item(item_id)
    q = InventoryAdjustment.query.filter_by(item_id=item_id).order_by(
        InventoryAdjustment.created_at.desc(), InventoryAdjustment.id.desc()
    )
    return q.paginate(page=page, per_page=page_size, error_out=False)


def list_movements(item_id: int, *, page: int = 1, page_size: int = 10):
    get_item(item_id)
    q = StockMovement.query.filter_by(item_id=item_id).order_by(
        StockMovement.occurred_at.desc(), StockMovement.id.desc()
    )
    return q.paginate(page=page, per_page=page_size, error_out=False)
