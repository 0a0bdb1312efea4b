# Overview: Pytest coverage for the inter-location transfer lifecycle.

from decimal import Decimal

import pytest

from stockengine.errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from stockengine.models import AuditEvent, InventoryTransaction, UnitOfMeasure
from stockengine.services import inventory_service, ledger_service, settings_service, transfer_service
from stockengine.services.ledger_service import RelatedDocument

from conftest import stock_up


def _level(tenant, location, product):
    return inventory_service.get_stock_level(tenant.id, product.id, location.id)


@pytest.fixture
def stocked(db_session, tenant, location, product):
    """Main store holds 100 units at an average cost of 2.00."""
    from stockengine.services import adjustment_service

    adjustment_service.receive_purchase_order_line(
        tenant_id=tenant.id, product_id=product.id, location_id=location.id,
        quantity=100, unit_cost="2.00", purchase_order_id=1,
    )


def _create(tenant, location, warehouse, product, quantity=10, uom_id=None):
    return transfer_service.create_transfer(
        tenant_id=tenant.id,
        source_location_id=location.id,
        destination_location_id=warehouse.id,
        user_id=1,
        items=[{"product_id": product.id, "quantity": quantity, "uom_id": uom_id}],
        tracking_number="TRK-1",
    )


class TestCreateTransfer:

    def test_create_is_draft_with_number(self, db_session, tenant, location, warehouse, product):
        transfer = _create(tenant, location, warehouse, product)
        assert transfer.status == transfer_service.TRANSFER_STATUS_DRAFT
        assert transfer.document_number == "T-000001"
        assert len(transfer.items) == 1
        # Nothing moves while DRAFT
        assert db_session.query(InventoryTransaction).count() == 0

    def test_same_location_rejected(self, db_session, tenant, location, product):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                tenant_id=tenant.id, source_location_id=location.id, destination_location_id=location.id,
                user_id=1, items=[{"product_id": product.id, "quantity": 1}],
            )

    def test_duplicate_product_rejected(self, db_session, tenant, location, warehouse, product):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                tenant_id=tenant.id, source_location_id=location.id, destination_location_id=warehouse.id,
                user_id=1, items=[{"product_id": product.id, "quantity": 1}, {"product_id": product.id, "quantity": 2}],
            )

    def test_empty_and_non_positive_rejected(self, db_session, tenant, location, warehouse, product):
        with pytest.raises(ValidationError):
            transfer_service.create_transfer(
                tenant_id=tenant.id, source_location_id=location.id, destination_location_id=warehouse.id,
                user_id=1, items=[],
            )
        with pytest.raises(ValidationError):
            _create(tenant, location, warehouse, product, quantity=0)

    def test_long_notes_kept_on_header_and_cut_in_audit(self, db_session, tenant, location, warehouse, product):
        notes = "handle with care; " * 20
        transfer = transfer_service.create_transfer(
            tenant_id=tenant.id, source_location_id=location.id, destination_location_id=warehouse.id,
            user_id=1, items=[{"product_id": product.id, "quantity": 1}], notes=notes,
        )
        assert transfer.notes == notes
        event = db_session.query(AuditEvent).filter_by(event_type="transfer.created").one()
        assert event.note == notes[:255]

    def test_unknown_uom_rejected(self, db_session, tenant, location, warehouse, product):
        with pytest.raises(NotFoundError):
            _create(tenant, location, warehouse, product, uom_id=9999)


class TestShipAndReceive:

    def test_full_lifecycle(self, db_session, tenant, location, warehouse, product, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=10)

        transfer = transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=2)
        assert transfer.status == transfer_service.TRANSFER_STATUS_SHIPPED
        assert _level(tenant, location, product)["quantity_on_hand"] == Decimal("90")
        assert _level(tenant, warehouse, product)["quantity_incoming"] == Decimal("10")
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("0")

        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=3,
            items=[{"product_id": product.id, "quantity": 10}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_COMPLETED
        dest = _level(tenant, warehouse, product)
        assert dest["quantity_on_hand"] == Decimal("10")
        assert dest["quantity_incoming"] == Decimal("0")
        # Source average cost travels with the stock
        assert dest["average_cost"] == Decimal("2.0000")

        rows = ledger_service.list_by_related_document(tenant.id, RelatedDocument("TRANSFER", transfer.id))
        assert [(r.transaction_type, r.quantity_change) for r in rows] == [
            ("TRANSFER_OUT", Decimal("-10")),
            ("TRANSFER_IN", Decimal("10")),
        ]

    def test_partial_receipts(self, db_session, tenant, location, warehouse, product, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=10)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 4}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_PARTIALLY_RECEIVED
        assert _level(tenant, warehouse, product)["quantity_incoming"] == Decimal("6")

        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 6}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_COMPLETED
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("10")

    def test_over_receipt_rejected(self, db_session, tenant, location, warehouse, product, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=5)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": product.id, "quantity": 6}],
            )
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("0")

    def test_receive_unknown_product_rejected(self, db_session, tenant, location, warehouse, product,
                                              second_product, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=5)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": second_product.id, "quantity": 1}],
            )

    def test_receive_draft_rejected(self, db_session, tenant, location, warehouse, product):
        transfer = _create(tenant, location, warehouse, product)
        with pytest.raises(InvalidStateError):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": product.id, "quantity": 1}],
            )

    def test_ship_twice_rejected(self, db_session, tenant, location, warehouse, product, stocked):
        transfer = _create(tenant, location, warehouse, product)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        with pytest.raises(InvalidStateError):
            transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

    def test_ship_blocked_by_negative_policy(self, db_session, tenant, location, warehouse, product):
        settings_service.update_inventory_settings(tenant.id, allow_negative_stock=False)
        stock_up(tenant, location, product, 3)
        transfer = _create(tenant, location, warehouse, product, quantity=5)
        with pytest.raises(InsufficientStockError):
            transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

        db_session.expire_all()
        assert transfer_service.get_transfer(tenant.id, transfer.id).status == "DRAFT"
        assert _level(tenant, warehouse, product)["quantity_incoming"] == Decimal("0")


class TestUnitConversion:

    def test_case_quantities_convert_to_base(self, db_session, tenant, location, warehouse, product, case_uom, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=2, uom_id=case_uom.id)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        assert _level(tenant, location, product)["quantity_on_hand"] == Decimal("80")

        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 1}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_PARTIALLY_RECEIVED
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("10")

        # Without uom_id the line's own unit applies, so 2 cases is 20 base units
        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": product.id, "quantity": 2}],
            )

        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 1, "uom_id": case_uom.id}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_COMPLETED
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("20")

    def test_receive_with_a_different_unit_of_the_same_product(
        self, db_session, tenant, location, warehouse, product, case_uom, stocked
    ):
        pack = UnitOfMeasure(
            tenant_id=tenant.id, product_id=product.id, code="PACK", name="Pack of 5",
            conversion_factor=Decimal("5"),
        )
        db_session.add(pack)
        db_session.commit()

        transfer = _create(tenant, location, warehouse, product, quantity=2, uom_id=case_uom.id)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

        # 3 packs = 15 base units of the 20 shipped
        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 3, "uom_id": pack.id}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_PARTIALLY_RECEIVED
        assert transfer.items[0].quantity_received_base == Decimal("15")
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("15")

        # A full case no longer fits in the 5 outstanding
        with pytest.raises(ValidationError):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": product.id, "quantity": 1, "uom_id": case_uom.id}],
            )

        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 1, "uom_id": pack.id}],
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_COMPLETED
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("20")
        assert _level(tenant, location, product)["quantity_on_hand"] == Decimal("80")

    def test_unit_of_another_product_rejected_on_create(
        self, db_session, tenant, location, warehouse, second_product, case_uom
    ):
        with pytest.raises(ValidationError, match="different product") as excinfo:
            _create(tenant, location, warehouse, second_product, quantity=1, uom_id=case_uom.id)
        assert not isinstance(excinfo.value, NotFoundError)
        assert transfer_service.list_transfers(tenant.id) == []

    def test_unit_of_another_product_rejected_on_receive(
        self, db_session, tenant, location, warehouse, product, second_product, stocked
    ):
        crate = UnitOfMeasure(
            tenant_id=tenant.id, product_id=second_product.id, code="CRATE", name="Crate of 12",
            conversion_factor=Decimal("12"),
        )
        db_session.add(crate)
        db_session.commit()

        transfer = _create(tenant, location, warehouse, product, quantity=20)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

        with pytest.raises(ValidationError, match="different product"):
            transfer_service.receive_transfer(
                tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
                items=[{"product_id": product.id, "quantity": 1, "uom_id": crate.id}],
            )
        db_session.expire_all()
        assert transfer_service.get_transfer(tenant.id, transfer.id).status == "SHIPPED"
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("0")

    def test_summary_totals(self, db_session, tenant, location, warehouse, product, case_uom, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=3, uom_id=case_uom.id)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 1}],
        )
        summary = transfer_service.get_transfer_summary(tenant.id, transfer.id)
        assert summary["total_requested_base"] == "30"
        assert summary["total_shipped_base"] == "30"
        assert summary["total_received_base"] == "10"
        assert summary["total_outstanding_base"] == "20"
        assert summary["transfer"]["status"] == "PARTIALLY_RECEIVED"


class TestCancelTransfer:

    def test_cancel_draft(self, db_session, tenant, location, warehouse, product):
        transfer = _create(tenant, location, warehouse, product)
        transfer = transfer_service.cancel_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1, reason="not needed"
        )
        assert transfer.status == transfer_service.TRANSFER_STATUS_CANCELLED
        assert transfer.cancellation_reason == "not needed"
        assert db_session.query(InventoryTransaction).count() == 0

    def test_cancel_shipped_reverses_stock(self, db_session, tenant, location, warehouse, product, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=10)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        transfer_service.cancel_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

        assert _level(tenant, location, product)["quantity_on_hand"] == Decimal("100")
        assert _level(tenant, warehouse, product)["quantity_incoming"] == Decimal("0")
        types = [r.transaction_type for r in ledger_service.list_by_related_document(
            tenant.id, RelatedDocument("TRANSFER", transfer.id)
        )]
        assert types == ["TRANSFER_OUT", "TRANSFER_OUT_REVERSAL"]

    def test_cancel_after_receipt_rejected(self, db_session, tenant, location, warehouse, product, stocked):
        transfer = _create(tenant, location, warehouse, product, quantity=10)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 1}],
        )
        with pytest.raises(InvalidStateError):
            transfer_service.cancel_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)

    def test_cancel_twice_rejected(self, db_session, tenant, location, warehouse, product):
        transfer = _create(tenant, location, warehouse, product)
        transfer_service.cancel_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        with pytest.raises(InvalidStateError):
            transfer_service.cancel_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)


class TestTransferQueries:

    def test_list_filters(self, db_session, tenant, location, warehouse, product, stocked):
        draft = _create(tenant, location, warehouse, product)
        shipped = _create(tenant, location, warehouse, product)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=shipped.id, user_id=1)

        assert [t.id for t in transfer_service.list_transfers(tenant.id)] == [shipped.id, draft.id]
        assert [t.id for t in transfer_service.list_transfers(tenant.id, status="DRAFT")] == [draft.id]
        assert len(transfer_service.list_transfers(tenant.id, location_id=warehouse.id)) == 2

    def test_get_missing(self, db_session, tenant):
        with pytest.raises(NotFoundError):
            transfer_service.get_transfer(tenant.id, 9999)


class TestTransferConservation:

    def test_one_case_moves_ten_units(self, db_session, tenant, location, warehouse, product, case_uom):
        stock_up(tenant, location, product, 100)
        transfer = _create(tenant, location, warehouse, product, quantity=1, uom_id=case_uom.id)
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 1}],
        )

        assert _level(tenant, location, product)["quantity_on_hand"] == Decimal("90")
        assert _level(tenant, warehouse, product)["quantity_on_hand"] == Decimal("10")

    def test_source_and_destination_net_effects_cancel(self, db_session, tenant, location, warehouse,
                                                       product, second_product, stocked):
        stock_up(tenant, location, second_product, 20)
        transfer = transfer_service.create_transfer(
            tenant_id=tenant.id, source_location_id=location.id, destination_location_id=warehouse.id,
            user_id=1, items=[
                {"product_id": product.id, "quantity": 7},
                {"product_id": second_product.id, "quantity": "2.5"},
            ],
        )
        transfer_service.ship_transfer(tenant_id=tenant.id, transfer_id=transfer.id, user_id=1)
        transfer = transfer_service.receive_transfer(
            tenant_id=tenant.id, transfer_id=transfer.id, user_id=1,
            items=[{"product_id": product.id, "quantity": 7}, {"product_id": second_product.id, "quantity": "2.5"}],
        )
        assert transfer.status == "COMPLETED"

        rows = ledger_service.list_by_related_document(tenant.id, RelatedDocument("TRANSFER", transfer.id))
        source_net = sum((r.quantity_change for r in rows if r.location_id == location.id), Decimal("0"))
        dest_net = sum((r.quantity_change for r in rows if r.location_id == warehouse.id), Decimal("0"))
        assert source_net == -dest_net == Decimal("-9.5")
        for line in transfer.items:
            assert line.quantity_received_base == line.quantity_requested_base
