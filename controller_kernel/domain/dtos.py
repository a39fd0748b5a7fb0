"""
DTOs -- Statement configuration and transactional source records.

Responsibility:
    Defines the immutable data structures consumed by the statement engines:
    ``StatementLineDefinition`` (configuration), the five transactional
    source records (ledger, accounting adjustment, cash adjustment,
    management transfer, operational indicator), the balance-sheet inputs
    (``MonthlyBalance``, ``AccountMapping``) and chart-of-accounts records
    used for analytical breakdown and coverage checks.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Loaded by ``controller_config.loader`` or built by callers; never
    persisted by the engines.

Invariants enforced:
    - Month is always 1..12 and amounts are always ``Decimal``.
    - ``rollup_weight`` is exactly +1 or -1.
    - Operational lines must name an indicator; data lines must name an
      account.

Failure modes:
    - ValueError on out-of-range month, weight or missing binding.
    - TypeError when a float amount is passed.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


def _check_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    if year < 1:
        raise ValueError(f"year must be positive, got {year}")


def _check_amount(name: str, value: Decimal) -> None:
    if not isinstance(value, Decimal):
        raise TypeError(f"{name} must be Decimal, got {type(value).__name__}")


class LineKind(str, Enum):
    """
    Kind of statement line.

    Contract:
        DATA lines aggregate ledger entries for a bound account. HEADER and
        TOTAL lines roll up their children. OPERATIONAL lines display a
        non-financial indicator and never aggregate children.
    """

    DATA = "data"
    HEADER = "header"
    TOTAL = "total"
    OPERATIONAL = "operational"


class EntryNature(str, Enum):
    """Debit/credit nature of a ledger entry."""

    DEBIT = "debit"
    CREDIT = "credit"


class TransferDirection(str, Enum):
    """Side of a management transfer."""

    ORIGIN = "origin"
    DESTINATION = "destination"


@dataclass(frozen=True)
class StatementLineDefinition:
    """
    One configured line of a statement template.

    Contract:
        ``sign`` is presentation polarity only. ``rollup_weight`` is the
        factor applied to this line's values when its parent rolls up.

    Guarantees:
        - ``rollup_weight`` in {+1, -1}.
        - DATA lines carry ``source_account_ref``.
        - OPERATIONAL lines carry ``operational_indicator_ref``.
    """

    id: str
    label: str
    kind: LineKind
    order: int
    parent_id: str | None = None
    sign: int = 1
    rollup_weight: int = 1
    source_account_ref: str | None = None
    operational_indicator_ref: str | None = None
    template_id: str | None = None

    def __post_init__(self) -> None:
        if self.rollup_weight not in (1, -1):
            raise ValueError(
                f"rollup_weight must be +1 or -1, got {self.rollup_weight} "
                f"on line {self.id}"
            )
        if self.sign not in (1, -1):
            raise ValueError(f"sign must be +1 or -1, got {self.sign} on line {self.id}")
        if self.kind == LineKind.DATA and not self.source_account_ref:
            raise ValueError(f"Data line {self.id} must bind a source_account_ref")
        if self.kind == LineKind.OPERATIONAL and not self.operational_indicator_ref:
            raise ValueError(
                f"Operational line {self.id} must bind an operational_indicator_ref"
            )

    @property
    def is_rollup(self) -> bool:
        return self.kind in (LineKind.HEADER, LineKind.TOTAL)


@dataclass(frozen=True)
class LedgerEntry:
    """Posted accounting entry, read-only input."""

    account_ref: str
    company_ref: str
    year: int
    month: int
    amount: Decimal
    nature: EntryNature
    cost_center_ref: str | None = None

    def __post_init__(self) -> None:
        _check_period(self.year, self.month)
        _check_amount("amount", self.amount)

    @property
    def signed_amount(self) -> Decimal:
        """Credit-positive value: debits are negated."""
        return -self.amount if self.nature == EntryNature.DEBIT else self.amount


@dataclass(frozen=True)
class AdjustmentEntry:
    """Accounting adjustment targeted at a statement line."""

    company_ref: str
    target_account_label: str
    year: int
    month: int
    amount: Decimal
    target_line_id: str | None = None
    department_ref: str | None = None

    def __post_init__(self) -> None:
        _check_period(self.year, self.month)
        _check_amount("amount", self.amount)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount


@dataclass(frozen=True)
class CashAdjustmentEntry:
    """Cash-basis adjustment targeted at a statement line."""

    company_ref: str
    target_account_label: str
    year: int
    month: int
    amount: Decimal
    target_line_id: str | None = None
    department_ref: str | None = None

    def __post_init__(self) -> None:
        _check_period(self.year, self.month)
        _check_amount("amount", self.amount)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount


@dataclass(frozen=True)
class TransferEntry:
    """
    Management reclassification between statement lines.

    When ``direction`` is set it fixes the sign: the origin side is
    debited (negative) and the destination side credited (positive).
    Without a direction the amount is taken as already signed.
    """

    company_ref: str
    target_account_label: str
    year: int
    month: int
    amount: Decimal
    direction: TransferDirection | None = None
    target_line_id: str | None = None
    department_ref: str | None = None

    def __post_init__(self) -> None:
        _check_period(self.year, self.month)
        _check_amount("amount", self.amount)

    @property
    def signed_amount(self) -> Decimal:
        if self.direction == TransferDirection.ORIGIN:
            return -abs(self.amount)
        if self.direction == TransferDirection.DESTINATION:
            return abs(self.amount)
        return self.amount


@dataclass(frozen=True)
class OperationalIndicatorValue:
    """Non-financial metric (headcount, units sold) for one period."""

    indicator_ref: str
    company_ref: str
    year: int
    month: int
    value: Decimal
    department_ref: str | None = None

    def __post_init__(self) -> None:
        _check_period(self.year, self.month)
        _check_amount("value", self.value)


@dataclass(frozen=True)
class MonthlyBalance:
    """Closing balance of a ledger account for one month."""

    company_ref: str
    account_ref: str
    year: int
    month: int
    value: Decimal

    def __post_init__(self) -> None:
        _check_period(self.year, self.month)
        _check_amount("value", self.value)


@dataclass(frozen=True)
class AccountMapping:
    """
    Row of the account-mapping table.

    Routes a ledger account to a statement account, the reference a data
    line binds through ``source_account_ref``.
    """

    ledger_account_ref: str
    statement_account_ref: str
    cost_center_ref: str | None = None


@dataclass(frozen=True)
class AnalyticalAccount:
    """Analytical account grouped under a data line's bound account."""

    id: str
    name: str
    group_ref: str


@dataclass(frozen=True)
class ChartAccount:
    """Entry of the company's chart of accounts."""

    id: str
    name: str
    is_analytical: bool = True
