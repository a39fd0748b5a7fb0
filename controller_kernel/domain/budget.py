"""
Budget domain objects -- assumptions, mappings, rules and projections.

Responsibility:
    Immutable inputs and outputs of the budget engines:

    * ``BudgetAssumption`` / ``BudgetAssumptionValue`` -- business drivers
      (e.g. projected unit sales) entered per store/department/month.
    * ``BudgetMapping`` -- how a driver becomes a budgeted amount on a
      statement line or operational indicator.
    * ``AuxiliaryPremise`` -- secondary parameters (average unit price,
      margin) consumed by formula-mode mappings.
    * ``BudgetRule`` with the tagged parameter variants ``FixedRule``,
      ``VariableRule`` and ``ManualRule``; ``UNCLASSIFIED`` is the state of
      an account without an active rule.
    * ``GeneratedBudgetEntry`` -- one projected month for one account.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Fixed-rule windows are positive; the rule book narrows them further
      to the configured set.
    - Percentages and multipliers are Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Union

from controller_kernel.domain.values import ZERO
from controller_kernel.exceptions import InvalidRuleError

FIXED_WINDOWS: tuple[int, ...] = (3, 6, 12)


# ---------------------------------------------------------------------------
# Assumptions and mappings
# ---------------------------------------------------------------------------


class ValueKind(str, Enum):
    NUMBER = "number"
    PERCENTAGE = "percentage"
    CURRENCY = "currency"


class TargetKind(str, Enum):
    STATEMENT_LINE = "statement_line"
    OPERATIONAL_INDICATOR = "operational_indicator"


class CalculationMode(str, Enum):
    """
    How an assumption value becomes a budgeted amount.

    DIRECT      value x multiplier
    PERCENTAGE  value x multiplier / 100
    FORMULA     value x auxiliary unit price, when the hint asks for it
    """

    DIRECT = "direct"
    PERCENTAGE = "percentage"
    FORMULA = "formula"


class PremiseKind(str, Enum):
    UNIT_PRICE = "unit_price"
    MARGIN = "margin"
    RATE = "rate"
    INDEX = "index"
    OTHER = "other"


@dataclass(frozen=True)
class BudgetAssumption:
    """
    A named business driver.

    ``source_target_id`` marks assumptions whose values are fed from a
    statement target (for example generated projections); it adds a
    target -> assumption edge to the mapping dependency graph.
    """

    id: str
    name: str
    value_kind: ValueKind = ValueKind.NUMBER
    source_target_id: str | None = None


@dataclass(frozen=True)
class BudgetAssumptionValue:
    assumption_id: str
    year: int
    month: int
    value: Decimal
    store: str | None = None
    department: str | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {self.month}")

    @property
    def key(self) -> tuple:
        return (self.assumption_id, self.store, self.department, self.year, self.month)


@dataclass(frozen=True)
class BudgetMapping:
    id: str
    assumption_id: str
    target_id: str
    target_kind: TargetKind = TargetKind.STATEMENT_LINE
    calculation_mode: CalculationMode = CalculationMode.DIRECT
    multiplier: Decimal = Decimal("1")
    department_scope: str | None = None
    formula_hint: str | None = None


@dataclass(frozen=True)
class AuxiliaryPremise:
    """Secondary parameter for formula mappings; ``month=None`` covers the year."""

    id: str
    name: str
    kind: PremiseKind
    target_id: str
    year: int
    value: Decimal
    month: int | None = None
    company: str | None = None
    department: str | None = None


# ---------------------------------------------------------------------------
# Budget rules
# ---------------------------------------------------------------------------


class Classification(str, Enum):
    UNCLASSIFIED = "unclassified"
    FIXED = "fixed"
    VARIABLE = "variable"
    MANUAL = "manual"


@dataclass(frozen=True)
class Unclassified:
    """State of an account that has no active rule."""

    classification = Classification.UNCLASSIFIED


@dataclass(frozen=True)
class FixedRule:
    """Projection = trailing average of |actuals| x (1 + correction/100)."""

    window_months: int = 12
    correction_percent: Decimal = ZERO
    correction_index: str | None = None

    classification = Classification.FIXED


@dataclass(frozen=True)
class VariableRule:
    """Projection = trailing-12-month reference line x percent / 100."""

    reference_line_id: str
    reference_percent: Decimal | None = None
    reference_label: str | None = None

    classification = Classification.VARIABLE


@dataclass(frozen=True)
class ManualRule:
    """Projection left at zero for hand entry."""

    classification = Classification.MANUAL


RuleParameters = Union[FixedRule, VariableRule, ManualRule]

UNCLASSIFIED = Unclassified()


@dataclass(frozen=True)
class BudgetRule:
    """
    Classification of one account for budget generation.

    Guarantees:
        - ``parameters`` is one of the three rule variants.
        - Fixed windows are positive.
    """

    id: str
    target_account_ref: str
    parameters: RuleParameters
    target_label: str | None = None
    active: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.parameters, (FixedRule, VariableRule, ManualRule)):
            raise InvalidRuleError(
                self.id, f"unknown rule variant {type(self.parameters).__name__}"
            )
        if isinstance(self.parameters, FixedRule) and self.parameters.window_months <= 0:
            raise InvalidRuleError(
                self.id, f"window must be positive, got {self.parameters.window_months}"
            )

    @property
    def classification(self) -> Classification:
        return self.parameters.classification


@dataclass(frozen=True)
class GeneratedBudgetEntry:
    """One projected month for one classified account."""

    rule_id: str
    target_account_ref: str
    classification: Classification
    year: int
    month: int
    computed_value: Decimal
    note: str
    target_label: str | None = None
    breakdown: dict[str, str] = field(default_factory=dict, compare=True)

    @property
    def period(self) -> tuple[int, int]:
        return (self.year, self.month)
