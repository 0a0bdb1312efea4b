# Overview: Pytest coverage for the physical stock count workflow.

from decimal import Decimal

import pytest

from stockengine.errors import IncompleteCountError, InvalidStateError, NotFoundError, ValidationError
from stockengine.models import InventoryTransaction, StockCountItem
from stockengine.services import adjustment_service, count_service, inventory_service, ledger_service
from stockengine.time_utils import utcnow

from conftest import stock_up


def _on_hand(tenant, location, product):
    return inventory_service.get_stock_level(tenant.id, product.id, location.id)["quantity_on_hand"]


def _line(count, product):
    return next(i for i in count.items if i.product_id == product.id)


@pytest.fixture
def counted_store(db_session, tenant, location, product, second_product):
    """Two products on hand at the main store (10 and 4 units)."""
    adjustment_service.receive_purchase_order_line(
        tenant_id=tenant.id, product_id=product.id, location_id=location.id,
        quantity=10, unit_cost="2.00", purchase_order_id=1,
    )
    stock_up(tenant, location, second_product, 4)


class TestInitiateCount:

    def test_full_count_snapshots_items(self, db_session, tenant, location, product, second_product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        assert count.status == count_service.COUNT_STATUS_PENDING
        assert count.count_number == f"SC-{utcnow().year}-00001"
        snapshot = {i.product_id: i.snapshot_quantity for i in count.items}
        assert snapshot == {product.id: Decimal("10"), second_product.id: Decimal("4")}
        assert _line(count, product).unit_cost_at_snapshot == Decimal("2")

    def test_full_count_skips_untracked(self, db_session, tenant, location, product, second_product, counted_store):
        second_product.is_stock_tracked = False
        db_session.commit()
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        assert [i.product_id for i in count.items] == [product.id]

    def test_partial_count_zero_for_new_item(self, db_session, tenant, location, product):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL",
            user_id=1, product_ids=[product.id, product.id],
        )
        assert len(count.items) == 1
        assert count.items[0].snapshot_quantity == Decimal("0")

    def test_snapshot_is_on_hand_not_available(self, db_session, tenant, location, product, counted_store):
        inventory_service.allocate(tenant_id=tenant.id, product_id=product.id, location_id=location.id, quantity=3)
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL",
            user_id=1, product_ids=[product.id],
        )
        assert count.items[0].snapshot_quantity == Decimal("10")

    def test_invalid_requests(self, db_session, tenant, location, product):
        with pytest.raises(ValidationError):
            count_service.initiate_count(tenant_id=tenant.id, location_id=location.id, count_type="CYCLE", user_id=1)
        with pytest.raises(ValidationError):
            count_service.initiate_count(
                tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[]
            )
        # Nothing stocked yet
        with pytest.raises(ValidationError):
            count_service.initiate_count(tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1)

    def test_count_numbers_increase(self, db_session, tenant, location, product):
        first = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        second = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        assert first.count_number.endswith("-00001")
        assert second.count_number.endswith("-00002")


class TestCountWorkflow:

    def test_approved_variance_posts_to_ledger(self, db_session, tenant, location, product, second_product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        a, b = _line(count, product), _line(count, second_product)

        count = count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=2,
            items=[{"item_id": a.id, "counted_quantity": 8}, {"item_id": b.id, "counted_quantity": 6}],
        )
        assert count.status == count_service.COUNT_STATUS_COUNTING
        assert _line(count, product).variance == Decimal("-2")
        # Entering counts has no inventory effect
        assert _on_hand(tenant, location, product) == Decimal("10")

        count = count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=3,
            items=[{"item_id": a.id, "action": "APPROVED"}, {"item_id": b.id, "action": "REJECTED", "notes": "recount"}],
        )
        assert count.status == count_service.COUNT_STATUS_REVIEWED

        count = count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=3)
        assert count.status == count_service.COUNT_STATUS_COMPLETED
        assert _on_hand(tenant, location, product) == Decimal("8")
        # Rejected line never reaches the ledger
        assert _on_hand(tenant, location, second_product) == Decimal("4")

        reconciles = db_session.query(InventoryTransaction).filter_by(transaction_type="COUNT_RECONCILE").all()
        assert len(reconciles) == 1
        assert reconciles[0].quantity_change == Decimal("-2")
        assert _line(count, product).inventory_transaction_id == reconciles[0].id
        assert ledger_service.sum_quantity(tenant.id, product.id, location.id) == Decimal("8")

    def test_zero_variance_writes_nothing(self, db_session, tenant, location, product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        item_id = count.items[0].id
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "counted_quantity": 10}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "action": "APPROVED"}],
        )
        count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)
        assert db_session.query(InventoryTransaction).filter_by(transaction_type="COUNT_RECONCILE").count() == 0

    def test_variance_against_snapshot_not_current(self, db_session, tenant, location, product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        item_id = count.items[0].id
        # Sale after the snapshot is taken
        adjustment_service.record_sale(
            tenant_id=tenant.id, product_id=product.id, location_id=location.id, quantity=1, order_id=1
        )
        count = count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "counted_quantity": 7}],
        )
        assert count.items[0].variance == Decimal("-3")

    def test_post_requires_all_lines_reviewed(self, db_session, tenant, location, product, second_product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        a = _line(count, product)
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "counted_quantity": 9}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "action": "APPROVED"}],
        )
        with pytest.raises(IncompleteCountError):
            count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)
        assert _on_hand(tenant, location, product) == Decimal("10")

    def test_late_line_counted_after_review(self, db_session, tenant, location, product, second_product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        a, b = _line(count, product), _line(count, second_product)
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "counted_quantity": 9}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "action": "APPROVED"}],
        )

        count = count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": b.id, "counted_quantity": 6}],
        )
        assert count.status == count_service.COUNT_STATUS_REVIEWED

        # Approved lines stay locked
        with pytest.raises(InvalidStateError):
            count_service.enter_counts(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": a.id, "counted_quantity": 1}],
            )

        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": b.id, "action": "APPROVED"}],
        )
        count = count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)
        assert count.status == count_service.COUNT_STATUS_COMPLETED
        assert _on_hand(tenant, location, product) == Decimal("9")
        assert _on_hand(tenant, location, second_product) == Decimal("6")

    def test_review_uncounted_line_rejected(self, db_session, tenant, location, product, second_product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        a, b = _line(count, product), _line(count, second_product)
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "counted_quantity": 9}],
        )
        with pytest.raises(InvalidStateError):
            count_service.review_count(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": b.id, "action": "APPROVED"}],
            )

    def test_invalid_entries(self, db_session, tenant, location, product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        with pytest.raises(ValidationError):
            count_service.enter_counts(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": count.items[0].id, "counted_quantity": -1}],
            )
        with pytest.raises(ValidationError):
            count_service.enter_counts(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": 9999, "counted_quantity": 1}],
            )
        with pytest.raises(ValidationError):
            count_service.review_count(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": count.items[0].id, "action": "MAYBE"}],
            )

    def test_review_before_counting_rejected(self, db_session, tenant, location, product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        with pytest.raises(InvalidStateError):
            count_service.review_count(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": count.items[0].id, "action": "APPROVED"}],
            )

    def test_completed_count_is_final(self, db_session, tenant, location, product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        item_id = count.items[0].id
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "counted_quantity": 12}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "action": "APPROVED"}],
        )
        count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)

        with pytest.raises(InvalidStateError):
            count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)
        with pytest.raises(InvalidStateError):
            count_service.cancel_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)
        with pytest.raises(InvalidStateError):
            count_service.enter_counts(
                tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
                items=[{"item_id": item_id, "counted_quantity": 1}],
            )
        assert _on_hand(tenant, location, product) == Decimal("12")

    def test_cancel_leaves_ledger_untouched(self, db_session, tenant, location, product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": count.items[0].id, "counted_quantity": 1}],
        )
        count = count_service.cancel_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1, reason="aborted")
        assert count.status == count_service.COUNT_STATUS_CANCELLED
        assert count.cancellation_reason == "aborted"
        assert _on_hand(tenant, location, product) == Decimal("10")


class TestCountQueries:

    def test_summary(self, db_session, tenant, location, product, second_product, counted_store):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        a, b = _line(count, product), _line(count, second_product)
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "counted_quantity": 7}, {"item_id": b.id, "counted_quantity": 5}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": a.id, "action": "APPROVED"}, {"item_id": b.id, "action": "REJECTED"}],
        )

        summary = count_service.get_count_summary(tenant.id, count.id)
        assert summary["total_items"] == 2
        assert summary["counted_items"] == 2
        assert summary["approved_items"] == 1
        assert summary["rejected_items"] == 1
        assert summary["total_variance_units"] == "-3"
        assert summary["total_variance_value"] == "-6"

    def test_list_and_get(self, db_session, tenant, location, product):
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        assert [c.id for c in count_service.list_counts(tenant.id, status="PENDING")] == [count.id]
        assert count_service.list_counts(tenant.id, status="COMPLETED") == []
        assert count_service.get_count(tenant.id, count.id).id == count.id
        with pytest.raises(NotFoundError):
            count_service.get_count(tenant.id, 9999)
        assert db_session.query(StockCountItem).count() == 1


class TestCountScenario:

    def test_full_count_overage_posts_single_reconcile(self, db_session, tenant, location, product):
        stock_up(tenant, location, product, 10)
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="FULL", user_id=1
        )
        item_id = count.items[0].id
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "counted_quantity": 12}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "action": "APPROVED"}],
        )
        count_service.post_count(tenant_id=tenant.id, stock_count_id=count.id, user_id=1)

        rows = db_session.query(InventoryTransaction).filter_by(transaction_type="COUNT_RECONCILE").all()
        assert [(r.quantity_change, r.related_document_type, r.related_document_id) for r in rows] == [
            (Decimal("2"), "STOCK_COUNT", count.id)
        ]
        assert _on_hand(tenant, location, product) == Decimal("12")
