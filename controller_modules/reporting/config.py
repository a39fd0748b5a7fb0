"""
Reporting Configuration Schema.

Controls the consolidated label, display precision and whether analytical
breakdown nodes are kept under data lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from controller_engines.accumulator import CONSOLIDATED
from controller_kernel.logging_config import get_logger

logger = get_logger("modules.reporting.config")


@dataclass
class ReportingConfig:
    """
    Configuration schema for the reporting module.
    """

    # Entity name shown on reports
    entity_name: str = "Company"

    # Company filter value that means "all companies"
    consolidated_label: str = CONSOLIDATED

    # Rounding precision for rendered values
    display_precision: int = 2

    # Keep analytical accounts as child nodes of data lines
    include_analytical_breakdown: bool = True

    # Drop data lines whose every value is zero from rendered output
    hide_zero_lines: bool = False

    def __post_init__(self):
        if self.display_precision < 0:
            raise ValueError("display_precision cannot be negative")
        if not self.consolidated_label:
            raise ValueError("consolidated_label cannot be empty")

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("reporting_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary."""
        logger.info(
            "reporting_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
