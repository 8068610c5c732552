"""
Point-of-sale tests.

Verifies:
- A sale that exactly empties stock succeeds; the next one is rejected
- Every line is checked before anything is written
- Rejected sales leave no sale row, no journal entry and no stock change
"""

from datetime import datetime

import pytest

from gymoffice.errors import InsufficientStockError, NotFoundError, ValidationError
from gymoffice.models import InventoryItem, Sale, StockMovement
from gymoffice.services import sales_service


class TestCreateSale:

    def test_sale_empties_stock_then_rejects(self, db_session, branch, staff, item):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            lines=[{"item_id": item.id, "quantity": 5, "unit_price_cents": 20}],
            processed_by_user_id=staff.id,
        )
        assert sale.total_amount_cents == 100
        assert sale.transaction_id == f"TXN-{branch.id:03d}-0001"
        assert db_session.get(InventoryItem, item.id).quantity == 0

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                branch_id=branch.id,
                lines=[{"item_id": item.id, "quantity": 1, "unit_price_cents": 20}],
                processed_by_user_id=staff.id,
            )
        assert db_session.get(InventoryItem, item.id).quantity == 0
        assert db_session.query(Sale).count() == 1

    def test_unit_price_defaults_to_list_price(self, db_session, branch, staff, second_item):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            lines=[{"item_id": second_item.id, "quantity": 2}],
            processed_by_user_id=staff.id,
        )
        assert sale.total_amount_cents == 1600
        assert sale.lines[0].unit_price_cents == 800

    def test_short_line_rejects_whole_sale(self, db_session, branch, staff, item, second_item):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                branch_id=branch.id,
                lines=[
                    {"item_id": item.id, "quantity": 2},
                    {"item_id": second_item.id, "quantity": 4},
                ],
                processed_by_user_id=staff.id,
            )

        short = exc.value.details["items"]
        assert [entry["item_id"] for entry in short] == [second_item.id]
        assert short[0]["on_hand"] == 3
        assert db_session.get(InventoryItem, item.id).quantity == 5
        assert db_session.get(InventoryItem, second_item.id).quantity == 3
        assert db_session.query(Sale).count() == 0
        assert db_session.query(StockMovement).filter_by(movement_type="SALE").count() == 0

    def test_every_short_line_is_reported(self, db_session, branch, staff, item, second_item):
        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                branch_id=branch.id,
                lines=[
                    {"item_id": item.id, "quantity": 6},
                    {"item_id": second_item.id, "quantity": 4},
                ],
                processed_by_user_id=staff.id,
            )
        assert {entry["item_id"] for entry in exc.value.details["items"]} == {item.id, second_item.id}

    def test_repeated_item_lines_are_checked_together(self, db_session, branch, staff, item):
        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                branch_id=branch.id,
                lines=[
                    {"item_id": item.id, "quantity": 3},
                    {"item_id": item.id, "quantity": 3},
                ],
                processed_by_user_id=staff.id,
            )
        assert db_session.get(InventoryItem, item.id).quantity == 5

    def test_sale_is_journalled(self, db_session, branch, staff, item, member):
        sale = sales_service.create_sale(
            branch_id=branch.id,
            lines=[{"item_id": item.id, "quantity": 2}],
            processed_by_user_id=staff.id,
            customer_id=member.id,
            payment_method="Credit Card",
        )
        movement = db_session.query(StockMovement).filter_by(movement_type="SALE", reference_id=sale.id).one()
        assert movement.quantity_delta == -2
        assert movement.quantity_after == 3
        assert sale.customer_id == member.id

    def test_unknown_payment_method_rejected(self, db_session, branch, staff, item):
        with pytest.raises(ValidationError):
            sales_service.create_sale(
                branch_id=branch.id,
                lines=[{"item_id": item.id, "quantity": 1}],
                processed_by_user_id=staff.id,
                payment_method="IOU",
            )

    def test_unknown_customer_not_found(self, db_session, branch, staff, item):
        with pytest.raises(NotFoundError):
            sales_service.create_sale(
                branch_id=branch.id,
                lines=[{"item_id": item.id, "quantity": 1}],
                processed_by_user_id=staff.id,
                customer_id=9999,
            )
        assert db_session.get(InventoryItem, item.id).quantity == 5

    def test_empty_sale_rejected(self, db_session, branch, staff):
        with pytest.raises(ValidationError):
            sales_service.create_sale(branch_id=branch.id, lines=[], processed_by_user_id=staff.id)


class TestListSales:

    def test_date_range_is_inclusive(self, db_session, branch, staff, second_item):
        first = sales_service.create_sale(
            branch_id=branch.id, lines=[{"item_id": second_item.id, "quantity": 1}],
            processed_by_user_id=staff.id, now=datetime(2026, 3, 1, 9, 0),
        )
        sales_service.create_sale(
            branch_id=branch.id, lines=[{"item_id": second_item.id, "quantity": 1}],
            processed_by_user_id=staff.id, now=datetime(2026, 3, 5, 9, 0),
        )

        page = sales_service.list_sales(start_date=datetime(2026, 3, 1, 9, 0), end_date=datetime(2026, 3, 2))
        assert [s.id for s in page.items] == [first.id]

    def test_inverted_range_rejected(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(start_date=datetime(2026, 3, 5), end_date=datetime(2026, 3, 1))
