# Overview: Service-layer operations for purchase orders; encapsulates business logic.

"""
Purchase Order Service

LIFECYCLE:
1. pending: Created, nothing received
2. confirmed: Supplier accepted
3. shipped: On its way
4. delivered: Received; stock incremented once per line item
5. cancelled: Abandoned before delivery

Transitions only move forward (steps may be skipped). 'cancelled' is
reachable from any open state. 'delivered' and 'cancelled' are terminal.

IDEMPOTENT DELIVERY:
The status write is UPDATE ... WHERE status = <status we read>. Only the
request whose write matched posts stock; a duplicate or concurrent
'delivered' request finds the order already delivered and returns it
unchanged. The stock journal's unique key (RECEIVE, purchase_order, id,
item) backs this up at the database level.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Branch, InventoryItem, PurchaseOrder, PurchaseOrderLine
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from gymoffice.time_utils import utcnow
from .concurrency import run_in_transaction
from .document_service import next_document_number
from .inventory_service import apply_stock_delta
from .supplier_service import validate_supplier_for_order


STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_SHIPPED = "shipped"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

PO_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_SHIPPED, STATUS_DELIVERED, STATUS_CANCELLED)
TERMINAL_STATUSES = {STATUS_DELIVERED, STATUS_CANCELLED}
_FORWARD_RANK = {STATUS_PENDING: 0, STATUS_CONFIRMED: 1, STATUS_SHIPPED: 2, STATUS_DELIVERED: 3}


def check_transition(current: str, target: str) -> None:
    """
    Raise InvalidTransitionError unless ``current -> target`` is allowed.
    Same-status "transitions" are handled by the caller as no-ops.
    """
    if target not in PO_STATUSES:
        raise InvalidTransitionError(
            f"Invalid status '{target}'. Must be one of: {', '.join(PO_STATUSES)}"
        )
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(f"Purchase order is already {current}")
    if target == STATUS_CANCELLED:
        return
    if _FORWARD_RANK[target] <= _FORWARD_RANK[current]:
        raise InvalidTransitionError(f"Cannot move purchase order from {current} back to {target}")


def _quantities_by_item(lines) -> "OrderedDict[int, int]":
    totals: OrderedDict[int, int] = OrderedDict()
    for line in lines:
        totals[line.item_id] = totals.get(line.item_id, 0) + line.quantity
    return totals


def get_purchase_order(order_id: int) -> PurchaseOrder:
    order = db.session.get(PurchaseOrder, order_id)
    if order is None:
        raise NotFoundError(f"Purchase order {order_id} not found")
    return order


def create_purchase_order(
    *,
    supplier_id: int,
    lines: list[dict],
    branch_id: int | None = None,
    expected_delivery_date: datetime | None = None,
    created_by_user_id: int | None = None,
    now: datetime | None = None,
) -> PurchaseOrder:
    """
    Create a pending purchase order. Stock is untouched until delivery.

    Args:
        supplier_id: Active supplier the order is placed with
        lines: [{item_id, quantity (>= 1), unit_price_cents}]
        branch_id: Receiving branch (defaults to the supplier's branch)

    Raises:
        ValidationError: empty lines, inactive supplier, item from another branch
        NotFoundError: supplier or item does not exist
    """
    if not lines:
        raise ValidationError("Purchase order requires at least one line")
    for line in lines:
        if line["quantity"] < 1:
            raise ValidationError("Line quantity must be >= 1")
        if line.get("unit_price_cents") is None:
            raise ValidationError("Line unit_price_cents is required")

    now = now or utcnow()

    def _op():
        supplier = validate_supplier_for_order(supplier_id)
        target_branch_id = branch_id or supplier.branch_id
        if db.session.get(Branch, target_branch_id) is None:
            raise NotFoundError(f"Branch {target_branch_id} not found")

        order_lines = []
        total = 0
        for line in lines:
            item = db.session.get(InventoryItem, line["item_id"])
            if item is None:
                raise NotFoundError(f"Inventory item {line['item_id']} not found")
            if item.branch_id != target_branch_id:
                raise ValidationError(f"Inventory item {item.id} does not belong to branch {target_branch_id}")

            line_total = line["quantity"] * line["unit_price_cents"]
            total += line_total
            order_lines.append(PurchaseOrderLine(
                item_id=item.id,
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                line_total_cents=line_total,
            ))

        order = PurchaseOrder(
            branch_id=target_branch_id,
            supplier_id=supplier.id,
            order_number=next_document_number(
                branch_id=target_branch_id,
                document_type="PURCHASE_ORDER",
                prefix="PO",
            ),
            status=STATUS_PENDING,
            total_amount_cents=total,
            order_date=now,
            expected_delivery_date=expected_delivery_date,
            created_by_user_id=created_by_user_id,
            created_at=now,
            lines=order_lines,
        )
        db.session.add(order)
        db.session.flush()
        return order

    return run_in_transaction(_op)


def transition_purchase_order_status(
    order_id: int,
    new_status: str,
    *,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> PurchaseOrder:
    """
    Move a purchase order to ``new_status``.

    Entering 'delivered' increments every ordered item's quantity by its
    ordered amount, exactly once per order. Requesting the status the order
    already has is a no-op.

    Raises:
        InvalidTransitionError: unknown status, backward move, or order is terminal
        NotFoundError: order does not exist
        ConflictError: order changed to a different status concurrently
    """
    if new_status not in PO_STATUSES:
        raise InvalidTransitionError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(PO_STATUSES)}"
        )
    now = now or utcnow()

    def _op():
        order = get_purchase_order(order_id)
        previous = order.status
        if previous == new_status:
            return order, False

        check_transition(previous, new_status)

        values = {"status": new_status, "version_id": PurchaseOrder.version_id + 1}
        if new_status == STATUS_DELIVERED:
            values["delivered_at"] = now
        elif new_status == STATUS_CANCELLED:
            values["cancelled_at"] = now

        result = db.session.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == order.id, PurchaseOrder.status == previous)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Lost the race: somebody else moved the order first.
            db.session.refresh(order)
            if order.status == new_status:
                return order, False
            raise ConflictError(
                f"Purchase order changed to {order.status} while processing; reload and try again"
            )

        if new_status == STATUS_DELIVERED:
            for item_id, quantity in _quantities_by_item(order.lines).items():
                apply_stock_delta(
                    item_id,
                    quantity,
                    branch_id=order.branch_id,
                    movement_type="RECEIVE",
                    reference_type="purchase_order",
                    reference_id=order.id,
                    actor_user_id=actor_user_id,
                    note=f"Purchase order {order.order_number} delivered",
                    occurred_at=now,
                )
        return order, True

    order, changed = run_in_transaction(_op)
    if changed:
        current_app.logger.info("Purchase order %s moved to %s", order_id, new_status)
    return order


def list_purchase_orders(
    *,
    status: str | None = None,
    branch_id: int | None = None,
    supplier_id: int | None = None,
    page: int = 1,
    page_size: int = 10,
):
    if status and status not in PO_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PO_STATUSES)}")

    q = PurchaseOrder.query
    if status:
        q = q.filter(PurchaseOrder.status == status)
    if branch_id is not None:
        q = q.filter(PurchaseOrder.branch_id == branch_id)
    if supplier_id is not None:
        q = q.filter(PurchaseOrder.supplier_id == supplier_id)

    q = q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    return q.paginate(page=page, per_page=page_size, error_out=False)
