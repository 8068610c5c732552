"""
Purchase order lifecycle tests.

Verifies:
- Creating an order never touches stock
- Delivery posts stock exactly once, even when requested twice
- Transitions only move forward; delivered/cancelled are terminal
- Document numbers are allocated per branch and type
"""

import pytest

from gymoffice.errors import InvalidTransitionError, NotFoundError, ValidationError
from gymoffice.models import InventoryItem, StockMovement
from gymoffice.services import purchase_order_service as po_service
from gymoffice.services.document_service import next_document_number
from gymoffice.services.purchase_order_service import check_transition


@pytest.fixture
def order(db_session, supplier, item, second_item, staff):
    return po_service.create_purchase_order(
        supplier_id=supplier.id,
        lines=[
            {"item_id": item.id, "quantity": 10, "unit_price_cents": 12},
            {"item_id": second_item.id, "quantity": 4, "unit_price_cents": 300},
        ],
        created_by_user_id=staff.id,
    )


class TestCreatePurchaseOrder:

    def test_creates_pending_order_without_stock_change(self, db_session, order, item, second_item):
        assert order.status == "pending"
        assert order.total_amount_cents == 10 * 12 + 4 * 300
        assert order.order_number == f"PO-{order.branch_id:03d}-0001"
        assert len(order.lines) == 2
        assert db_session.get(InventoryItem, item.id).quantity == 5
        assert db_session.get(InventoryItem, second_item.id).quantity == 3

    def test_order_numbers_increase_per_branch(self, db_session, order, supplier, item):
        second = po_service.create_purchase_order(
            supplier_id=supplier.id, lines=[{"item_id": item.id, "quantity": 1, "unit_price_cents": 1}],
        )
        assert second.order_number == f"PO-{order.branch_id:03d}-0002"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"branch_id": None, "document_type": "PURCHASE_ORDER"},
            {"branch_id": 1, "document_type": ""},
        ],
    )
    def test_document_number_needs_branch_and_type(self, db_session, kwargs):
        with pytest.raises(ValidationError) as exc:
            next_document_number(prefix="PO", **kwargs)
        assert exc.value.kind == "validation_error"
        assert exc.value.status_code == 400

    def test_empty_lines_rejected(self, db_session, supplier):
        with pytest.raises(ValidationError):
            po_service.create_purchase_order(supplier_id=supplier.id, lines=[])

    def test_inactive_supplier_rejected(self, db_session, supplier, item):
        supplier.status = "inactive"
        db_session.commit()
        with pytest.raises(ValidationError):
            po_service.create_purchase_order(
                supplier_id=supplier.id, lines=[{"item_id": item.id, "quantity": 1, "unit_price_cents": 1}],
            )

    def test_unknown_item_not_found(self, db_session, supplier):
        with pytest.raises(NotFoundError):
            po_service.create_purchase_order(
                supplier_id=supplier.id, lines=[{"item_id": 4242, "quantity": 1, "unit_price_cents": 1}],
            )

    def test_item_from_other_branch_rejected(self, db_session, supplier, other_branch):
        from gymoffice.services import inventory_service
        foreign = inventory_service.create_item(
            branch_id=other_branch.id, sku="UT-WATER", name="Water", category="Beverages", unit_price_cents=100,
        )
        with pytest.raises(ValidationError):
            po_service.create_purchase_order(
                supplier_id=supplier.id, lines=[{"item_id": foreign.id, "quantity": 1, "unit_price_cents": 1}],
            )


class TestDelivery:

    def test_delivery_increments_each_item(self, db_session, order, item, second_item):
        delivered = po_service.transition_purchase_order_status(order.id, "delivered")
        assert delivered.status == "delivered"
        assert delivered.delivered_at is not None
        assert db_session.get(InventoryItem, item.id).quantity == 15
        assert db_session.get(InventoryItem, second_item.id).quantity == 7

    def test_duplicate_delivery_increments_once(self, db_session, order, item):
        po_service.transition_purchase_order_status(order.id, "delivered")
        again = po_service.transition_purchase_order_status(order.id, "delivered")

        assert again.status == "delivered"
        assert db_session.get(InventoryItem, item.id).quantity == 15
        receipts = db_session.query(StockMovement).filter_by(
            reference_type="purchase_order", reference_id=order.id, item_id=item.id
        ).count()
        assert receipts == 1

    def test_delivery_after_intermediate_steps(self, db_session, order, item):
        po_service.transition_purchase_order_status(order.id, "confirmed")
        po_service.transition_purchase_order_status(order.id, "shipped")
        po_service.transition_purchase_order_status(order.id, "delivered")
        assert db_session.get(InventoryItem, item.id).quantity == 15

    def test_lines_for_same_item_are_summed(self, db_session, supplier, item):
        order = po_service.create_purchase_order(
            supplier_id=supplier.id,
            lines=[
                {"item_id": item.id, "quantity": 2, "unit_price_cents": 10},
                {"item_id": item.id, "quantity": 3, "unit_price_cents": 10},
            ],
        )
        po_service.transition_purchase_order_status(order.id, "delivered")
        assert db_session.get(InventoryItem, item.id).quantity == 10


class TestTransitions:

    def test_backward_move_rejected(self, db_session, order):
        po_service.transition_purchase_order_status(order.id, "shipped")
        with pytest.raises(InvalidTransitionError):
            po_service.transition_purchase_order_status(order.id, "confirmed")

    def test_unknown_status_rejected(self, db_session, order):
        with pytest.raises(InvalidTransitionError):
            po_service.transition_purchase_order_status(order.id, "lost")

    def test_cancelled_is_terminal_and_posts_nothing(self, db_session, order, item):
        cancelled = po_service.transition_purchase_order_status(order.id, "cancelled")
        assert cancelled.cancelled_at is not None
        with pytest.raises(InvalidTransitionError):
            po_service.transition_purchase_order_status(order.id, "delivered")
        assert db_session.get(InventoryItem, item.id).quantity == 5

    def test_delivered_cannot_be_cancelled(self, db_session, order):
        po_service.transition_purchase_order_status(order.id, "delivered")
        with pytest.raises(InvalidTransitionError):
            po_service.transition_purchase_order_status(order.id, "cancelled")

    def test_missing_order_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            po_service.transition_purchase_order_status(999, "confirmed")

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "confirmed"),
            ("pending", "delivered"),
            ("confirmed", "shipped"),
            ("shipped", "cancelled"),
        ],
    )
    def test_allowed_transitions(self, current, target):
        check_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("confirmed", "pending"),
            ("delivered", "shipped"),
            ("cancelled", "pending"),
        ],
    )
    def test_disallowed_transitions(self, current, target):
        with pytest.raises(InvalidTransitionError):
            check_transition(current, target)

    def test_list_filters_by_status(self, db_session, order, supplier, item):
        other = po_service.create_purchase_order(
            supplier_id=supplier.id, lines=[{"item_id": item.id, "quantity": 1, "unit_price_cents": 1}],
        )
        po_service.transition_purchase_order_status(other.id, "confirmed")

        page = po_service.list_purchase_orders(status="confirmed")
        assert [o.id for o in page.items] == [other.id]
        with pytest.raises(ValidationError):
            po_service.list_purchase_orders(status="lost")
