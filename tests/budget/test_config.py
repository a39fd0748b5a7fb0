"""
Tests for budgeting configuration.
"""

from decimal import Decimal

import pytest

from controller_modules.budget.config import BudgetConfig


class TestBudgetConfig:

    def test_defaults(self):
        config = BudgetConfig.with_defaults()
        assert config.allowed_windows == (3, 6, 12)
        assert config.default_window == 12
        assert config.max_workers == 4
        assert config.places == Decimal("0.01")

    def test_from_dict_converts_windows(self):
        config = BudgetConfig.from_dict({
            "allowed_windows": [6, 3],
            "default_window": 6,
            "money_places": 0,
        })
        assert config.allowed_windows == (3, 6)
        assert config.places == Decimal("1")

    def test_thresholds(self):
        config = BudgetConfig(warning_threshold="2.5", critical_threshold=10)
        thresholds = config.thresholds()
        assert thresholds.warning == Decimal("2.5")
        assert thresholds.critical == Decimal("10")

    @pytest.mark.parametrize("kwargs", [
        {"allowed_windows": ()},
        {"allowed_windows": (0, 12)},
        {"default_window": 5},
        {"reference_window": 0},
        {"max_workers": 0},
        {"money_places": -1},
        {"warning_threshold": Decimal("20")},
        {"warning_threshold": Decimal("-1")},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            BudgetConfig(**kwargs)
