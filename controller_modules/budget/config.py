"""
Budgeting Configuration Schema.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from controller_engines.variance import VarianceThresholds
from controller_kernel.domain.budget import FIXED_WINDOWS
from controller_kernel.logging_config import get_logger

logger = get_logger("modules.budget.config")


@dataclass
class BudgetConfig:
    """Configuration schema for the budgeting module."""

    # Trailing window used when a fixed rule does not name one
    default_window: int = 12
    allowed_windows: tuple[int, ...] = field(default_factory=lambda: FIXED_WINDOWS)

    # Months of actuals summed for a variable rule's reference line
    reference_window: int = 12

    # Concurrent historical lookups during generation
    max_workers: int = 4

    # Decimal places of generated budget values
    money_places: int = 2

    # Variance bands, in percent
    warning_threshold: Decimal = Decimal("5")
    critical_threshold: Decimal = Decimal("15")

    def __post_init__(self):
        self.allowed_windows = tuple(sorted(set(self.allowed_windows)))
        if not self.allowed_windows or any(w <= 0 for w in self.allowed_windows):
            raise ValueError("allowed_windows must hold positive month counts")
        if self.default_window not in self.allowed_windows:
            raise ValueError(
                f"default_window {self.default_window} is not one of {self.allowed_windows}"
            )
        if self.reference_window <= 0:
            raise ValueError("reference_window must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.money_places < 0:
            raise ValueError("money_places cannot be negative")
        self.warning_threshold = Decimal(str(self.warning_threshold))
        self.critical_threshold = Decimal(str(self.critical_threshold))
        if self.warning_threshold < 0 or self.critical_threshold < self.warning_threshold:
            raise ValueError("thresholds must satisfy 0 <= warning <= critical")
        logger.info("budget_config_initialized", extra={
            "default_window": self.default_window,
            "allowed_windows": list(self.allowed_windows),
            "max_workers": self.max_workers,
        })

    @property
    def places(self) -> Decimal:
        return Decimal(1).scaleb(-self.money_places)

    def thresholds(self) -> VarianceThresholds:
        return VarianceThresholds(
            warning=self.warning_threshold,
            critical=self.critical_threshold,
        )

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary."""
        logger.info(
            "budget_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        values = dict(data)
        if "allowed_windows" in values:
            values["allowed_windows"] = tuple(values["allowed_windows"])
        return cls(**values)
