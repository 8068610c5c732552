"""
Sales Service - point-of-sale transactions against branch stock

WHY: A sale and its stock decrements are one unit. Either the sale row,
its lines and every decrement commit together, or nothing does.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Branch, InventoryItem, Sale, SaleLine, User
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from gymoffice.time_utils import utcnow
from .concurrency import run_in_transaction
from .document_service import next_document_number
from .inventory_service import apply_stock_delta


PAYMENT_METHODS = ("Cash", "Credit Card", "Debit Card", "Online")


def _validate_on_hand(items: dict[int, InventoryItem], lines: list[dict]) -> None:
    """Check every line before mutating anything; report all short items at once."""
    item_totals: dict[int, int] = {}
    for line in lines:
        item_totals[line["item_id"]] = item_totals.get(line["item_id"], 0) + line["quantity"]

    insufficient = []
    for item_id, qty in item_totals.items():
        on_hand = items[item_id].quantity
        if on_hand < qty:
            insufficient.append({
                "item_id": item_id,
                "name": items[item_id].name,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        names = ", ".join(entry["name"] for entry in insufficient)
        raise InsufficientStockError(
            f"Insufficient stock for {names}",
            details={"items": insufficient},
        )


def create_sale(
    *,
    branch_id: int,
    lines: list[dict],
    processed_by_user_id: int,
    customer_id: int | None = None,
    payment_method: str = "Cash",
    now: datetime | None = None,
) -> Sale:
    """
    Record a sale and decrement stock for every line.

    Args:
        lines: [{item_id, quantity (>= 1), unit_price_cents (optional, defaults to list price)}]

    Raises:
        ValidationError: empty lines, unknown payment method, item from another branch
        NotFoundError: branch, customer or item does not exist
        InsufficientStockError: any line asks for more than is on hand (no mutation)
    """
    if not lines:
        raise ValidationError("Sale requires at least one line")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    for line in lines:
        if line["quantity"] < 1:
            raise ValidationError("Line quantity must be >= 1")

    now = now or utcnow()

    def _op():
        if db.session.get(Branch, branch_id) is None:
            raise NotFoundError(f"Branch {branch_id} not found")
        if customer_id is not None and db.session.get(User, customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        items: dict[int, InventoryItem] = {}
        for line in lines:
            item = items.get(line["item_id"]) or db.session.get(InventoryItem, line["item_id"])
            if item is None:
                raise NotFoundError(f"Inventory item not found: {line['item_id']}")
            if item.branch_id != branch_id:
                raise ValidationError(f"Inventory item {item.id} does not belong to branch {branch_id}")
            items[item.id] = item

        _validate_on_hand(items, lines)

        sale_lines = []
        total = 0
        for line in lines:
            unit_price = line.get("unit_price_cents")
            if unit_price is None:
                unit_price = items[line["item_id"]].unit_price_cents
            line_total = line["quantity"] * unit_price
            total += line_total
            sale_lines.append(SaleLine(
                item_id=line["item_id"],
                quantity=line["quantity"],
                unit_price_cents=unit_price,
                line_total_cents=line_total,
            ))

        sale = Sale(
            branch_id=branch_id,
            transaction_id=next_document_number(branch_id=branch_id, document_type="SALE", prefix="TXN"),
            customer_id=customer_id,
            processed_by_user_id=processed_by_user_id,
            total_amount_cents=total,
            payment_method=payment_method,
            created_at=now,
            lines=sale_lines,
        )
        db.session.add(sale)
        db.session.flush()

        # The guard in apply_stock_delta re-checks stock at write time; a
        # concurrent sale that got there first makes this raise and roll back.
        item_totals: dict[int, int] = {}
        for line in lines:
            item_totals[line["item_id"]] = item_totals.get(line["item_id"], 0) + line["quantity"]
        for item_id, qty in item_totals.items():
            apply_stock_delta(
                item_id,
                -qty,
                branch_id=branch_id,
                movement_type="SALE",
                reference_type="sale",
                reference_id=sale.id,
                actor_user_id=processed_by_user_id,
                note=f"Sale {sale.transaction_id}",
                occurred_at=now,
            )
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info("Sale %s recorded: %s cents", sale.transaction_id, sale.total_amount_cents)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(
    *,
    branch_id: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    page_size: int = 10,
):
    """Sales newest first; the date range is inclusive on both ends."""
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")

    q = Sale.query
    if branch_id is not None:
        q = q.filter(Sale.branch_id == branch_id)
    if start_date is not None:
        q = q.filter(Sale.created_at >= start_date)
    if end_date is not None:
        q = q.filter(Sale.created_at <= end_date)

    q = q.order_by(Sale.created_at.desc(), Sale.id.desc())
    return q.paginate(page=page, per_page=page_size, error_out=False)
