"""Tests for pricing config: pure calculations plus the admin-editable row."""
from unittest.mock import patch

import pytest

from contact_ledger.core.errors import InvalidAmount
from contact_ledger.models import UnlockMode
from contact_ledger.services.pricing.settings_service import (
    PricingConfig,
    PricingSettingsService,
    get_pricing_defaults,
)


def _config(**overrides):
    data = {
        "cost_normal": 15,
        "cost_exclusive": 50,
        "max_slots": 4,
        "guarantee_percent": 30,
        "guarantee_window_days": 7,
    }
    data.update(overrides)
    return PricingConfig(**data)


class TestPricingConfig:
    def test_price_by_mode(self):
        config = _config()
        assert config.price(UnlockMode.NORMAL) == 15
        assert config.price(UnlockMode.EXCLUSIVE) == 50

    @pytest.mark.parametrize(
        "percent,cost,expected",
        [(30, 50, 15), (30, 15, 4), (0, 50, 0), (100, 50, 50), (33, 10, 3)],
    )
    def test_guarantee_amount_rounds_down(self, percent, cost, expected):
        assert _config(guarantee_percent=percent).guarantee_amount(cost) == expected

    def test_config_is_frozen(self):
        config = _config()
        with pytest.raises(Exception):
            config.cost_normal = 1

    @patch("contact_ledger.services.pricing.settings_service.settings")
    def test_defaults_come_from_settings(self, mock_settings):
        mock_settings.cost_normal = 20
        mock_settings.cost_exclusive = 60
        mock_settings.max_slots = 3
        mock_settings.guarantee_percent = 25
        mock_settings.guarantee_window_days = 5
        assert get_pricing_defaults() == {
            "cost_normal": 20,
            "cost_exclusive": 60,
            "max_slots": 3,
            "guarantee_percent": 25,
            "guarantee_window_days": 5,
        }


class TestPricingSettingsService:
    def test_current_without_row_uses_defaults(self, db):
        assert PricingSettingsService(db).current() == PricingConfig(**get_pricing_defaults())
        db.rollback()

    def test_update_changes_unlock_price(self, db, make_account, make_request):
        from contact_ledger.services.allocations.service import AllocationService

        data = PricingSettingsService(db).update({"cost_normal": 20, "max_slots": 2}, admin_id="admin-1")
        assert data["cost_normal"] == 20
        assert data["updated_by"] == "admin-1"

        request_id = make_request()
        allocation = AllocationService(db).unlock(make_account(balance=100), request_id, "normal")
        assert allocation.cost == 20
        assert AllocationService(db).slots(request_id)["max_slots"] == 2

    def test_max_slots_is_snapshotted_per_request(self, db, make_request):
        from contact_ledger.services.allocations.service import AllocationService

        request_id = make_request()
        PricingSettingsService(db).update({"max_slots": 6})
        assert AllocationService(db).slots(request_id)["max_slots"] == 4

    @pytest.mark.parametrize(
        "field,value",
        [("guarantee_percent", 150), ("cost_normal", 0), ("max_slots", -1), ("cost_exclusive", "50")],
    )
    def test_update_rejects_invalid_values(self, db, field, value):
        svc = PricingSettingsService(db)
        with pytest.raises(InvalidAmount):
            svc.update({"cost_normal": 99, field: value})
        assert svc.as_dict()["cost_normal"] == get_pricing_defaults()["cost_normal"]
