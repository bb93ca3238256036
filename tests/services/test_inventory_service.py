"""
Inventory-creation workflow: gate, allocate, insert, audit.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from gem_kernel.domain.dtos import RETRY_MESSAGE, InventoryItemInput
from gem_kernel.exceptions import DuplicateIdentifierError
from gem_kernel.models.activity_log import ActionType
from gem_kernel.models.inventory import InventoryItem
from gem_kernel.selectors.activity_selector import ActivitySelector
from gem_kernel.services import inventory_service
from gem_kernel.services.permission_gate import UNAUTHORIZED_MESSAGE
from gem_kernel.services.sequence_service import SequenceService
from gem_kernel.services.sku_service import SkuService


def _item(**overrides) -> InventoryItemInput:
    data = dict(
        item_name="Ceylon Blue Sapphire",
        category="Loose Gemstones",
        category_code="LG",
        gemstone_code="SAP",
        color_code="RED",
        weight_value=Decimal("5.25"),
        weight_unit="cts",
        purchase_rate_per_carat=Decimal("1000"),
        selling_rate_per_carat=Decimal("1500"),
    )
    data.update(overrides)
    return InventoryItemInput(**data)


def _items(session_factory) -> list[InventoryItem]:
    with session_factory() as s:
        return s.execute(select(InventoryItem)).scalars().all()


class TestCreateItem:

    def test_creates_item_with_sku(self, kernel, sales_context, session_factory):
        result = kernel.inventory.create_item(sales_context, _item())

        assert result.success is True
        assert result.message is None
        assert result.identifier == "KGLGSAPRED52500001"
        [item] = _items(session_factory)
        assert str(item.id) == result.entity_id
        assert item.sku == result.identifier
        assert item.created_by_id == sales_context.user_id
        assert item.status == "IN_STOCK"

    def test_per_carat_prices_and_ratti(self, kernel, admin_context, session_factory):
        kernel.inventory.create_item(admin_context, _item())

        [item] = _items(session_factory)
        assert item.cost_price == Decimal("5250")
        assert item.selling_price == Decimal("7875")
        assert item.weight_ratti == Decimal("5.72")

    def test_flat_prices(self, kernel, admin_context, session_factory):
        kernel.inventory.create_item(
            admin_context,
            _item(pricing_mode="FLAT", flat_purchase_cost=Decimal("300"), flat_selling_price=Decimal("450")),
        )

        [item] = _items(session_factory)
        assert item.pricing_mode == "FLAT"
        assert item.cost_price == Decimal("300")
        assert item.selling_price == Decimal("450")

    def test_missing_color_gets_placeholder(self, kernel, admin_context):
        result = kernel.inventory.create_item(admin_context, _item(color_code=None, weight_value=Decimal("0.5")))
        assert result.identifier == "KGLGSAPXX05000001"

    def test_sequential_creates(self, kernel, admin_context):
        skus = [kernel.inventory.create_item(admin_context, _item()).identifier for _ in range(3)]
        assert [s[-5:] for s in skus] == ["00001", "00002", "00003"]

    def test_create_is_audited(self, kernel, sales_context, session_factory):
        result = kernel.inventory.create_item(sales_context, _item())

        with session_factory() as s:
            [entry] = ActivitySelector(s).list_for_entity("Inventory", result.entity_id)
        assert entry.action_type == ActionType.CREATE
        assert entry.entity_identifier == result.identifier
        assert entry.user_id == sales_context.user_id


class TestDenied:

    def test_viewer_denied_without_side_effects(self, kernel, viewer_context, session_factory):
        result = kernel.inventory.create_item(viewer_context, _item())

        assert result.success is False
        assert result.message == UNAUTHORIZED_MESSAGE
        assert result.identifier is None
        assert _items(session_factory) == []
        with session_factory() as s:
            assert SequenceService(s).current_value(SequenceService.SKU) is None
            assert len(ActivitySelector(s).list_denials()) == 1

    def test_accounts_cannot_create_inventory(self, kernel, accounts_context):
        assert kernel.inventory.create_item(accounts_context, _item()).message == UNAUTHORIZED_MESSAGE

    def test_unauthenticated_denied(self, kernel):
        assert kernel.inventory.create_item(None, _item()).success is False


class TestFailures:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"category_code": ""},
            {"gemstone_code": "--"},
            {"weight_value": Decimal("-1")},
            {"weight_unit": "kg"},
            {"pricing_mode": "AUCTION"},
            {"weight_value": "1e30"},
            {"weight_value": None},
            {"purchase_rate_per_carat": "abc"},
            {"selling_rate_per_carat": Decimal("-5")},
            {"pricing_mode": "FLAT", "flat_selling_price": "x"},
            {"pricing_mode": "FLAT", "flat_purchase_cost": "NaN"},
            {"item_name": None},
            {"item_name": "   "},
            {"category": ""},
        ],
    )
    def test_bad_input_is_a_message_not_a_crash(self, kernel, admin_context, session_factory, overrides):
        result = kernel.inventory.create_item(admin_context, _item(**overrides))

        assert result.success is False
        assert result.message not in (None, RETRY_MESSAGE, UNAUTHORIZED_MESSAGE)
        assert _items(session_factory) == []
        with session_factory() as s:
            assert SequenceService(s).current_value(SequenceService.SKU) is None

    def test_missing_name_is_not_retried(self, kernel, admin_context, captured_logs):
        result = kernel.inventory.create_item(admin_context, _item(item_name=None))

        assert result.message == "Invalid item_name None: required"
        assert not any(r["message"] == "transaction_retry" for r in captured_logs())

    def test_integrity_error_other_than_sku_propagates(
        self, kernel, admin_context, session_factory, captured_logs, monkeypatch
    ):
        # Let a NOT NULL violation reach the database.
        monkeypatch.setattr(
            inventory_service, "validate_item", lambda data: (Decimal("0"), Decimal("0"))
        )

        with pytest.raises(IntegrityError):
            kernel.inventory.create_item(admin_context, _item(item_name=None))

        assert not any(r["message"] == "transaction_retry" for r in captured_logs())
        assert _items(session_factory) == []

    def test_persistent_collision_returns_retry_message(
        self, kernel, admin_context, session_factory, monkeypatch
    ):
        def always_duplicate(self, *args, **kwargs):
            raise DuplicateIdentifierError("InventoryItem", "KGLGSAPRED52500001")

        monkeypatch.setattr(SkuService, "allocate_and_format_sku", always_duplicate)

        result = kernel.inventory.create_item(admin_context, _item())

        assert result.success is False
        assert result.message == RETRY_MESSAGE
        assert _items(session_factory) == []

    def test_stale_counter_collision_is_retried(self, kernel, admin_context, session_factory):
        kernel.inventory.create_item(admin_context, _item())
        with session_factory() as s:
            # Counter behind the issued SKUs.
            SequenceService(s).reset(SequenceService.SKU, 0)
            s.commit()

        result = kernel.inventory.create_item(admin_context, _item())

        # Every attempt rolls the counter back to 0 and recomputes 00001.
        assert result.success is False
        assert result.message == RETRY_MESSAGE
        assert len(_items(session_factory)) == 1
