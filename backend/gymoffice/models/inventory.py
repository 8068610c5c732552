from __future__ import annotations

from ..extensions import db
from gymoffice.time_utils import to_utc_z, utcnow


class InventoryItem(db.Model):
    """
    Stock-keeping item sold or used at a branch (supplements, apparel, equipment...).

    QUANTITY OWNERSHIP:
    quantity is mutated only by the ledger operations in inventory_service
    (purchase order delivery, sale, adjustment). Every mutation is a single
    conditional UPDATE that also bumps version_id, so ORM writes from a stale
    read fail with StaleDataError instead of overwriting stock.

    SKU is globally unique and stored upper-cased.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_inventory_items_price_nonneg"),
        db.CheckConstraint("reorder_level >= 0", name="ck_inventory_items_reorder_nonneg"),
        db.Index("ix_inventory_items_branch_category", "branch_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(32), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("inventory_items", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} sku={self.sku!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "reorder_level": self.reorder_level,
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False, unique=True)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    phone = db.Column(db.String(64), nullable=False)
    address = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    branch = db.relationship("Branch", backref=db.backref("suppliers", lazy=True))

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

class PurchaseOrder(db.Model):
    """
    Order placed with a supplier.

    LIFECYCLE (forward only, cancellation from any open state):
        pending -> confirmed -> shipped -> delivered
        pending | confirmed | shipped -> cancelled

    Entering 'delivered' posts one RECEIVE stock movement per item. The
    status write is a compare-and-swap on the previous status, so a
    duplicate delivery request cannot post stock twice.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_branch_status", "branch_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    # Human-readable order number (e.g., "PO-001-0042")
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    order_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    expected_delivery_date = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("purchase_orders", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.id",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.order_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier.to_dict() if self.supplier else None,
            "order_number": self.order_number,
            "status": self.status,
            "items": [line.to_dict() for line in self.lines],
            "total_amount_cents": self.total_amount_cents,
            "order_date": to_utc_z(self.order_date),
            "expected_delivery_date": to_utc_z(self.expected_delivery_date),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PurchaseOrderLine(db.Model):
    """Ordered quantity of one item. Owned by its purchase order."""
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_po_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")
    item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


# =============================================================================
# SALES
# =============================================================================

class Sale(db.Model):
    """
    Point-of-sale transaction. Created only when every line is in stock;
    stock is decremented in the same database transaction.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_created", "branch_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Human-readable transaction id (e.g., "TXN-001-0042")
    transaction_id = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="Cash")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    branch = db.relationship("Branch", backref=db.backref("sales", lazy=True))
    customer = db.relationship("User", foreign_keys=[customer_id])
    processed_by = db.relationship("User", foreign_keys=[processed_by_user_id])
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "transaction_id": self.transaction_id,
            "customer_id": self.customer_id,
            "processed_by_user_id": self.processed_by_user_id,
            "items": [line.to_dict() for line in self.lines],
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Individual line items on a sale. Owned by the sale."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")
    item = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


# =============================================================================
# ADJUSTMENTS & STOCK JOURNAL
# =============================================================================

class InventoryAdjustment(db.Model):
    """Manual stock correction (count correction, damage, loss...)."""
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.CheckConstraint("quantity_changed >= 1", name="ck_adjustments_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    adjusted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    adjustment_type = db.Column(db.String(16), nullable=False)
    quantity_changed = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(64), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    quantity_before = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    item = db.relationship("InventoryItem", backref=db.backref("adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "branch_id": self.branch_id,
            "adjusted_by_user_id": self.adjusted_by_user_id,
            "adjustment_type": self.adjustment_type,
            "quantity_changed": self.quantity_changed,
            "reason": self.reason,
            "notes": self.notes,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of every change to InventoryItem.quantity.

    The unique key (movement_type, reference_type, reference_id, item_id)
    means one document can move a given item at most once: a purchase order
    is received once, a sale is decremented once.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint(
            "movement_type", "reference_type", "reference_id", "item_id",
            name="uq_stock_movements_reference_item",
        ),
        db.Index("ix_stock_movements_item_occurred", "item_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # RECEIVE, SALE, ADJUST
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)

    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "branch_id": self.branch_id,
            "movement_type": self.movement_type,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
