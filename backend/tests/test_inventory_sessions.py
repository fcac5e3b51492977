# Overview: Pytest coverage for physical inventory sessions and reconciliation.

"""
Inventory Session Tests

Verifies that completing a session brings the ledger to the counted
quantities, that completion is all-or-nothing, and that a completed
session is terminal.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.models import InventoryItem, InventorySession, StockMovement
from app.services import inventory_session_service
from app.validation import InvalidOperationError, NotFoundError, ValidationError
from conftest import record, stock


SESSION_DATE = date(2026, 6, 30)


@pytest.fixture
def open_session(db_session, parish, warehouse_a):
    return inventory_session_service.create_session(
        parish_id=parish.id, warehouse_id=warehouse_a.id, date=SESSION_DATE, actor_id=3
    )


def adjustments(db_session, session_id):
    return (
        db_session.query(StockMovement)
        .filter_by(document_type="inventory_adjustment", document_number=str(session_id))
        .all()
    )


class TestSessionSetup:

    def test_create_session(self, open_session, warehouse_a):
        assert open_session.status == "open"
        assert open_session.warehouse_id == warehouse_a.id
        assert open_session.date == SESSION_DATE
        assert open_session.created_by_user_id == 3

    def test_warehouse_must_belong_to_parish(self, db_session, other_parish, warehouse_a):
        with pytest.raises(InvalidOperationError, match="does not belong"):
            inventory_session_service.create_session(
                parish_id=other_parish.id, warehouse_id=warehouse_a.id, date=SESSION_DATE
            )

    def test_date_required(self, db_session, parish):
        with pytest.raises(ValidationError):
            inventory_session_service.create_session(parish_id=parish.id, date=None)

    def test_load_book_inventory(
        self, db_session, parish, warehouse_a, warehouse_b, product, other_product, open_session
    ):
        record(parish, warehouse_a, product, "in", "10")
        record(parish, warehouse_a, other_product, "in", "2")
        record(parish, warehouse_a, other_product, "out", "2")  # zero stock, not loaded
        record(parish, warehouse_b, other_product, "in", "9")   # other warehouse

        items = inventory_session_service.load_book_inventory(open_session.id)

        assert [(i.product_id, i.book_quantity) for i in items] == [(product.id, Decimal("10.000"))]
        assert items[0].unit == "pcs"

        # Loading again does not duplicate
        assert inventory_session_service.load_book_inventory(open_session.id) == []
        assert db_session.query(InventoryItem).filter_by(session_id=open_session.id).count() == 1

    def test_add_item_defaults_book_to_ledger(self, db_session, parish, warehouse_a, product, open_session):
        record(parish, warehouse_a, product, "in", "4")

        item = inventory_session_service.add_item(
            session_id=open_session.id, item_type="product", product_id=product.id
        )
        assert item.book_quantity == Decimal("4.000")

        with pytest.raises(InvalidOperationError, match="already on this session"):
            inventory_session_service.add_item(
                session_id=open_session.id, item_type="product", product_id=product.id
            )

    def test_add_item_rejects_untracked_product(self, db_session, service_product, open_session):
        with pytest.raises(InvalidOperationError, match="does not track stock"):
            inventory_session_service.add_item(
                session_id=open_session.id, item_type="product", product_id=service_product.id
            )

    def test_record_count_validates_quantity(self, db_session, product, open_session):
        item = inventory_session_service.add_item(
            session_id=open_session.id, item_type="product", product_id=product.id, book_quantity="1"
        )

        with pytest.raises(ValidationError):
            inventory_session_service.record_count(item_id=item.id, physical_quantity="-2")
        with pytest.raises(ValidationError):
            inventory_session_service.record_count(item_id=item.id, physical_quantity=None)

        updated = inventory_session_service.record_count(item_id=item.id, physical_quantity="0.5")
        assert updated.physical_quantity == Decimal("0.500")

    def test_delete_open_session(self, db_session, product, open_session):
        inventory_session_service.add_item(
            session_id=open_session.id, item_type="product", product_id=product.id, book_quantity="1"
        )
        session_id = open_session.id

        inventory_session_service.delete_session(session_id)

        assert db_session.get(InventorySession, session_id) is None
        assert db_session.query(InventoryItem).filter_by(session_id=session_id).count() == 0


class TestCompletion:

    def _count(self, session, product, book, physical):
        return inventory_session_service.add_item(
            session_id=session.id,
            item_type="product",
            product_id=product.id,
            book_quantity=book,
            physical_quantity=physical,
        )

    def test_shortage_converges_to_physical(self, db_session, parish, warehouse_a, product, open_session):
        record(parish, warehouse_a, product, "in", "10")
        self._count(open_session, product, "10", "7")

        result = inventory_session_service.complete_session(open_session.id, actor_id=5)

        assert result["adjustments_created"] == 1
        [movement] = adjustments(db_session, open_session.id)
        assert movement.type == "out"
        assert movement.quantity == Decimal("3.000")
        assert movement.movement_date == SESSION_DATE
        assert movement.document_date == SESSION_DATE
        assert movement.notes == "Inventory adjustment: -3.000"
        assert stock(warehouse_a, product) == Decimal("7")

        session = result["session"]
        assert session.status == "completed"
        assert session.completed_by_user_id == 5
        assert session.completed_at is not None
        assert session.adjustments_created == 1

    def test_matching_count_emits_nothing(self, db_session, parish, warehouse_a, product, open_session):
        record(parish, warehouse_a, product, "in", "5")
        self._count(open_session, product, "5", "5")

        result = inventory_session_service.complete_session(open_session.id)

        assert result["adjustments_created"] == 0
        assert adjustments(db_session, open_session.id) == []
        assert result["session"].status == "completed"

    def test_surplus_emits_in(self, db_session, parish, warehouse_a, product, open_session):
        record(parish, warehouse_a, product, "in", "5")
        self._count(open_session, product, "5", "8.25")

        inventory_session_service.complete_session(open_session.id)

        [movement] = adjustments(db_session, open_session.id)
        assert movement.type == "in"
        assert movement.quantity == Decimal("3.250")
        assert stock(warehouse_a, product) == Decimal("8.25")

    def test_missing_counts_treated_as_zero(self, db_session, parish, warehouse_a, product, open_session):
        record(parish, warehouse_a, product, "in", "2")
        self._count(open_session, product, "2", None)

        inventory_session_service.complete_session(open_session.id)

        assert stock(warehouse_a, product) == Decimal("0")

    def test_differences_below_epsilon_ignored(
        self, app, db_session, parish, warehouse_a, product, open_session, monkeypatch
    ):
        monkeypatch.setitem(app.config, "INVENTORY_EPSILON", Decimal("0.01"))
        record(parish, warehouse_a, product, "in", "5")
        self._count(open_session, product, "5", "5.005")

        result = inventory_session_service.complete_session(open_session.id)

        assert result["adjustments_created"] == 0

    def test_fixed_assets_not_reconciled(self, db_session, parish, warehouse_a, product, open_session):
        inventory_session_service.add_item(
            session_id=open_session.id,
            item_type="fixed_asset",
            fixed_asset_id=77,
            book_quantity="1",
            physical_quantity="0",
        )

        result = inventory_session_service.complete_session(open_session.id)

        assert result["adjustments_created"] == 0

    def test_shortage_beyond_ledger_stock_is_posted(
        self, db_session, parish, warehouse_a, product, open_session
    ):
        # Book figure taken earlier; stock has since left through another path
        record(parish, warehouse_a, product, "in", "10")
        self._count(open_session, product, "10", "4")
        record(parish, warehouse_a, product, "out", "8")

        result = inventory_session_service.complete_session(open_session.id)

        assert result["adjustments_created"] == 1
        assert adjustments(db_session, open_session.id)[0].quantity == Decimal("6.000")
        assert stock(warehouse_a, product) == Decimal("-4")

    def test_second_completion_fails_without_duplicates(
        self, db_session, parish, warehouse_a, product, open_session
    ):
        record(parish, warehouse_a, product, "in", "10")
        self._count(open_session, product, "10", "7")
        inventory_session_service.complete_session(open_session.id)

        with pytest.raises(InvalidOperationError, match="already completed"):
            inventory_session_service.complete_session(open_session.id)

        assert len(adjustments(db_session, open_session.id)) == 1
        assert stock(warehouse_a, product) == Decimal("7")

    def test_completed_session_is_frozen(self, db_session, parish, warehouse_a, product, open_session):
        item = self._count(open_session, product, "1", "1")
        inventory_session_service.complete_session(open_session.id)

        with pytest.raises(InvalidOperationError):
            inventory_session_service.record_count(item_id=item.id, physical_quantity="2")
        with pytest.raises(InvalidOperationError):
            inventory_session_service.add_item(
                session_id=open_session.id, item_type="fixed_asset", fixed_asset_id=1
            )
        with pytest.raises(InvalidOperationError, match="Cannot delete completed"):
            inventory_session_service.delete_session(open_session.id)

    def test_missing_session(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_session_service.complete_session(4242)

    def test_session_without_warehouse(self, db_session, parish):
        session = inventory_session_service.create_session(parish_id=parish.id, date=SESSION_DATE)

        with pytest.raises(ValidationError, match="no warehouse"):
            inventory_session_service.complete_session(session.id)

    def test_failure_partway_leaves_session_open(
        self, db_session, parish, warehouse_a, product, other_product, open_session, monkeypatch
    ):
        record(parish, warehouse_a, product, "in", "10")
        record(parish, warehouse_a, other_product, "in", "10")
        self._count(open_session, product, "10", "7")
        self._count(open_session, other_product, "10", "12")

        real_append = inventory_session_service.append_movement
        calls = []

        def failing_append(**kwargs):
            calls.append(kwargs)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return real_append(**kwargs)

        monkeypatch.setattr(inventory_session_service, "append_movement", failing_append)

        with pytest.raises(RuntimeError):
            inventory_session_service.complete_session(open_session.id)

        session = db_session.get(InventorySession, open_session.id)
        assert session.status == "open"
        assert adjustments(db_session, open_session.id) == []
        assert stock(warehouse_a, product) == Decimal("10")

        # Safe to retry once the fault is gone
        monkeypatch.setattr(inventory_session_service, "append_movement", real_append)
        result = inventory_session_service.complete_session(open_session.id)
        assert result["adjustments_created"] == 2
        assert stock(warehouse_a, other_product) == Decimal("12")

    def test_summary_includes_deltas(self, db_session, product, open_session):
        self._count(open_session, product, "10", "7")

        summary = inventory_session_service.get_session_summary(open_session.id)

        assert summary["status"] == "open"
        assert summary["items"][0]["delta"] == "-3.000"
