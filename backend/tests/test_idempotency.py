# Overview: Pytest coverage for idempotent replays of posting operations.

from decimal import Decimal

import pytest

from stockengine.errors import ValidationError
from stockengine.models import IdempotencyRecord, InventoryAdjustment, InventoryTransaction
from stockengine.services import adjustment_service, count_service, idempotency_service, inventory_service, transfer_service

from conftest import stock_up


def _adjust(tenant, location, product, key, quantity=5):
    return adjustment_service.post_adjustment(
        tenant_id=tenant.id,
        location_id=location.id,
        user_id=1,
        items=[{"product_id": product.id, "quantity_change": quantity}],
        idempotency_key=key,
    )


class TestIdempotentAdjustments:

    def test_replay_returns_original(self, db_session, tenant, location, product):
        first = _adjust(tenant, location, product, "adj-1")
        again = _adjust(tenant, location, product, "adj-1")

        assert again.id == first.id
        assert db_session.query(InventoryAdjustment).count() == 1
        assert db_session.query(InventoryTransaction).count() == 1
        level = inventory_service.get_stock_level(tenant.id, product.id, location.id)
        assert level["quantity_on_hand"] == Decimal("5")

    def test_key_stored_on_ledger_row(self, db_session, tenant, location, product):
        _adjust(tenant, location, product, "adj-2")
        assert db_session.query(InventoryTransaction).one().idempotency_key == "adj-2"

    def test_no_key_means_no_dedup(self, db_session, tenant, location, product):
        _adjust(tenant, location, product, None)
        _adjust(tenant, location, product, "  ")
        assert db_session.query(InventoryAdjustment).count() == 2
        assert db_session.query(IdempotencyRecord).count() == 0

    def test_failed_call_does_not_burn_key(self, db_session, tenant, location, product):
        with pytest.raises(ValidationError):
            adjustment_service.post_adjustment(
                tenant_id=tenant.id, location_id=location.id, user_id=1,
                items=[{"product_id": 9999, "quantity_change": 1}],
                idempotency_key="adj-3",
            )
        adjustment = _adjust(tenant, location, product, "adj-3")
        assert adjustment.document_number == "ADJ-000001"

    def test_keys_are_tenant_scoped(self, db_session, tenant, location, product,
                                    other_tenant, other_location, other_product):
        mine = _adjust(tenant, location, product, "shared")
        theirs = _adjust(other_tenant, other_location, other_product, "shared")
        assert mine.id != theirs.id

    def test_key_bound_to_operation(self, db_session, tenant, location, product):
        _adjust(tenant, location, product, "adj-4")
        with pytest.raises(ValidationError):
            idempotency_service.find_replay(tenant.id, "adj-4", "transfer.receive")

    def test_overlong_key_rejected(self, db_session, tenant, location, product):
        with pytest.raises(ValidationError):
            _adjust(tenant, location, product, "k" * 200)


class TestIdempotentReceiptsAndCounts:

    def test_transfer_receive_replay(self, db_session, tenant, location, warehouse, product):
        stock_up(tenant, location, product, 10)
        transfer = transfer_service.create_transfer(
            tenant_id=tenant.id, source_location_id=location.id, destination_location_id=warehouse.id,
            user_id=1, items=[{"product_id": product.id, "quantity": 6}],
        )
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

        for _ in range(2):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": product.id, "quantity": 3}],
                idempotency_key="rcv-1",
            )

        level = inventory_service.get_stock_level(tenant.id, product.id, warehouse.id)
        assert level["quantity_on_hand"] == Decimal("3")
        assert transfer_service.get_transfer(tenant.id, transfer.id).status == "PARTIALLY_RECEIVED"

    def test_count_post_replay(self, db_session, tenant, location, product):
        stock_up(tenant, location, product, 10)
        count = count_service.initiate_count(
            tenant_id=tenant.id, location_id=location.id, count_type="PARTIAL", user_id=1, product_ids=[product.id]
        )
        item_id = count.items[0].id
        count_service.enter_counts(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "counted_quantity": 9}],
        )
        count_service.review_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1,
            items=[{"item_id": item_id, "action": "APPROVED"}],
        )
        first = count_service.post_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1, idempotency_key="post-1"
        )
        again = count_service.post_count(
            tenant_id=tenant.id, stock_count_id=count.id, user_id=1, idempotency_key="post-1"
        )
        assert again.id == first.id
        assert inventory_service.get_stock_level(tenant.id, product.id, location.id)["quantity_on_hand"] == Decimal("9")
