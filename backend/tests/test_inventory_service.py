"""
Inventory ledger tests: item catalogue, manual adjustments and the stock journal.

Verifies:
- Opening balances are journalled
- quantity is never writable outside ledger operations
- Decreases cannot take stock below zero, and fail without side effects
- Items with document history cannot be deleted
"""

import pytest

from gymoffice.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from gymoffice.models import InventoryAdjustment, InventoryItem, StockMovement
from gymoffice.services import inventory_service


# =============================================================================
# CATALOGUE
# =============================================================================


class TestItemCatalogue:

    def test_create_item_journals_opening_balance(self, db_session, item):
        movements = db_session.query(StockMovement).filter_by(item_id=item.id).all()
        assert len(movements) == 1
        assert movements[0].movement_type == "RECEIVE"
        assert movements[0].reference_type == "opening_balance"
        assert movements[0].quantity_delta == 5
        assert movements[0].quantity_after == 5

    def test_create_item_without_stock_has_no_movement(self, db_session, branch):
        created = inventory_service.create_item(
            branch_id=branch.id, sku="TOWEL", name="Gym Towel", category="Apparel", unit_price_cents=500,
        )
        assert created.quantity == 0
        assert created.reorder_level == 10
        assert db_session.query(StockMovement).filter_by(item_id=created.id).count() == 0

    def test_duplicate_sku_conflicts(self, db_session, branch, item):
        with pytest.raises(ConflictError):
            inventory_service.create_item(
                branch_id=branch.id, sku="WHEY-1KG", name="Another", category="Supplements", unit_price_cents=1,
            )

    def test_unknown_branch_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.create_item(
                branch_id=999, sku="X", name="X", category="Apparel", unit_price_cents=1,
            )

    def test_update_rejects_quantity(self, db_session, item):
        with pytest.raises(ValidationError):
            inventory_service.update_item(item.id, {"quantity": 50})
        assert db_session.get(InventoryItem, item.id).quantity == 5

    def test_update_changes_catalogue_fields(self, db_session, item):
        updated = inventory_service.update_item(item.id, {"name": "Whey 1kg Vanilla", "reorder_level": 3})
        assert updated.name == "Whey 1kg Vanilla"
        assert updated.reorder_level == 3
        assert updated.quantity == 5

    def test_update_to_taken_sku_conflicts(self, db_session, item, second_item):
        with pytest.raises(ConflictError):
            inventory_service.update_item(second_item.id, {"sku": "WHEY-1KG"})

    def test_item_on_open_purchase_order_cannot_change_branch(
        self, db_session, item, supplier, other_branch, staff
    ):
        from gymoffice.services import purchase_order_service

        order = purchase_order_service.create_purchase_order(
            supplier_id=supplier.id,
            lines=[{"item_id": item.id, "quantity": 4, "unit_price_cents": 10}],
            created_by_user_id=staff.id,
        )
        with pytest.raises(ConflictError):
            inventory_service.update_item(item.id, {"branch_id": other_branch.id})

        purchase_order_service.transition_purchase_order_status(order.id, "delivered")
        moved = db_session.get(InventoryItem, item.id)
        receipt = db_session.query(StockMovement).filter_by(
            reference_type="purchase_order", reference_id=order.id,
        ).one()
        assert moved.branch_id == order.branch_id
        assert receipt.branch_id == moved.branch_id
        assert moved.quantity == 9

    def test_item_without_history_moves_with_its_journal(self, db_session, item, other_branch):
        updated = inventory_service.update_item(item.id, {"branch_id": other_branch.id})
        assert updated.branch_id == other_branch.id
        opening = db_session.query(StockMovement).filter_by(item_id=item.id).one()
        assert opening.branch_id == other_branch.id

    def test_delete_item_without_history(self, db_session, branch):
        created = inventory_service.create_item(
            branch_id=branch.id, sku="BAND", name="Resistance Band", category="Equipment",
            unit_price_cents=900, quantity=4,
        )
        inventory_service.delete_item(created.id)
        assert db_session.get(InventoryItem, created.id) is None
        assert db_session.query(StockMovement).filter_by(item_id=created.id).count() == 0

    def test_delete_item_with_adjustment_history_conflicts(self, db_session, item, staff):
        inventory_service.record_adjustment(
            item.id, adjustment_type="increase", quantity=1, reason="Other", adjusted_by_user_id=staff.id,
        )
        with pytest.raises(ConflictError):
            inventory_service.delete_item(item.id)
        assert db_session.get(InventoryItem, item.id) is not None

    def test_list_low_stock_only(self, db_session, item, second_item):
        # item: 5 <= 10 (low); second_item: 3 > 2 (not low)
        page = inventory_service.list_items(low_stock_only=True)
        assert [i.sku for i in page.items] == ["WHEY-1KG"]
        assert page.total == 1

    def test_list_by_category(self, db_session, item, second_item):
        page = inventory_service.list_items(category="Accessories")
        assert [i.sku for i in page.items] == ["SHAKER-700"]


# =============================================================================
# ADJUSTMENTS
# =============================================================================


class TestAdjustments:

    def test_increase_adds_stock(self, db_session, item, staff):
        adjustment = inventory_service.record_adjustment(
            item.id, adjustment_type="increase", quantity=7,
            reason="Stock Count Correction", adjusted_by_user_id=staff.id,
        )
        assert adjustment.quantity_before == 5
        assert adjustment.quantity_after == 12
        assert db_session.get(InventoryItem, item.id).quantity == 12

    def test_decrease_to_zero_is_allowed(self, db_session, item, staff):
        inventory_service.record_adjustment(
            item.id, adjustment_type="decrease", quantity=5, reason="Damaged Goods", adjusted_by_user_id=staff.id,
        )
        assert db_session.get(InventoryItem, item.id).quantity == 0

    def test_decrease_below_zero_fails_without_side_effects(self, db_session, item, staff):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.record_adjustment(
                item.id, adjustment_type="decrease", quantity=6, reason="Lost/Stolen", adjusted_by_user_id=staff.id,
            )
        assert exc.value.details["items"][0]["on_hand"] == 5
        assert db_session.get(InventoryItem, item.id).quantity == 5
        assert db_session.query(InventoryAdjustment).count() == 0
        assert db_session.query(StockMovement).filter_by(movement_type="ADJUST").count() == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"adjustment_type": "grow", "quantity": 1, "reason": "Other"},
            {"adjustment_type": "increase", "quantity": 0, "reason": "Other"},
            {"adjustment_type": "increase", "quantity": 1, "reason": "Because"},
        ],
    )
    def test_invalid_adjustment_is_rejected(self, db_session, item, staff, kwargs):
        with pytest.raises(ValidationError):
            inventory_service.record_adjustment(item.id, adjusted_by_user_id=staff.id, **kwargs)

    def test_adjustment_is_journalled(self, db_session, item, staff):
        adjustment = inventory_service.record_adjustment(
            item.id, adjustment_type="decrease", quantity=2, reason="Expired Goods", adjusted_by_user_id=staff.id,
        )
        movement = db_session.query(StockMovement).filter_by(
            movement_type="ADJUST", reference_id=adjustment.id
        ).one()
        assert movement.quantity_delta == -2
        assert movement.quantity_after == 3

        page = inventory_service.list_movements(item.id)
        assert page.total == 2
        assert inventory_service.list_adjustments(item.id).total == 1
