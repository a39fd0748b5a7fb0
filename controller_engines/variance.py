"""
controller_engines.variance -- Actual vs budget alerts for the controller dashboard.

Responsibility:
    Compare one month's actuals per (account, department) with the budget,
    the previous month, the same month of the previous year and an
    optional benchmark; grade each line as critical / warning / ok and
    summarize the portfolio.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``controller_modules.reporting.service``.

Invariants enforced:
    - Variation % = (real - base) / |base| x 100, and 0 when base is 0.
    - Expense and cost accounts alert when over budget; every other
      account alerts when under budget.
    - Trend is "up" / "down" beyond +/-3 % against the previous month.
    - Alerts are sorted critical -> warning -> ok, then by |variation vs
      budget| descending, then by key.
    - Account categories are explicit input; names are never inspected.

Failure modes:
    - ValueError when the warning threshold exceeds the critical one.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from controller_engines.tracer import traced_engine
from controller_kernel.domain.values import ZERO, quantize_money
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.variance")

HUNDRED = Decimal("100")
TREND_BAND = Decimal("3")
GENERAL_DEPARTMENT = "GENERAL"
TOP_ALERTS = 5


class AccountCategory(str, Enum):
    REVENUE = "revenue"
    MARGIN = "margin"
    EXPENSE = "expense"
    COST = "cost"
    OTHER = "other"

    @property
    def alerts_when_over(self) -> bool:
        return self in (AccountCategory.EXPENSE, AccountCategory.COST)


class AlertStatus(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    OK = "ok"


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


_STATUS_ORDER = {AlertStatus.CRITICAL: 0, AlertStatus.WARNING: 1, AlertStatus.OK: 2}


@dataclass(frozen=True)
class VarianceThresholds:
    warning: Decimal = Decimal("5")
    critical: Decimal = Decimal("15")

    def __post_init__(self) -> None:
        if self.warning < 0 or self.critical < 0:
            raise ValueError("variance thresholds cannot be negative")
        if self.warning > self.critical:
            raise ValueError("warning threshold cannot exceed critical threshold")


@dataclass(frozen=True)
class Observation:
    """Actual value of one account/department/company for one month."""

    account_ref: str
    company_ref: str
    value: Decimal
    department: str | None = None


@dataclass(frozen=True)
class VarianceAlert:
    account_ref: str
    department: str
    category: AccountCategory
    status: AlertStatus
    trend: Trend
    real_value: Decimal
    budget_value: Decimal
    previous_month_value: Decimal
    same_month_last_year_value: Decimal
    variation_vs_budget: Decimal
    variation_vs_previous_month: Decimal
    variation_vs_same_month_last_year: Decimal
    benchmark_value: Decimal | None = None
    variation_vs_benchmark: Decimal | None = None
    company_breakdown: tuple[tuple[str, Decimal], ...] = ()

    @property
    def key(self) -> str:
        return f"{self.account_ref}|{self.department}"


@dataclass(frozen=True)
class VarianceSummary:
    critical_count: int
    warning_count: int
    ok_count: int
    total_accounts: int
    overall_health: AlertStatus
    revenue_vs_budget: Decimal
    margin_vs_budget: Decimal
    expenses_vs_budget: Decimal


@dataclass(frozen=True)
class VarianceAnalysis:
    alerts: tuple[VarianceAlert, ...]
    summary: VarianceSummary

    @property
    def top_critical(self) -> tuple[VarianceAlert, ...]:
        return tuple(a for a in self.alerts if a.status == AlertStatus.CRITICAL)[:TOP_ALERTS]

    @property
    def top_warning(self) -> tuple[VarianceAlert, ...]:
        return tuple(a for a in self.alerts if a.status == AlertStatus.WARNING)[:TOP_ALERTS]


def variation_percent(real: Decimal, base: Decimal) -> Decimal:
    """(real - base) / |base| x 100, rounded to cents; 0 when base is 0."""
    if base == 0:
        return ZERO
    return quantize_money((real - base) / abs(base) * HUNDRED)


def _group(observations: Iterable[Observation]) -> dict[tuple[str, str], Decimal]:
    grouped: dict[tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
    for obs in observations:
        grouped[(obs.account_ref, obs.department or GENERAL_DEPARTMENT)] += obs.value
    return grouped


def _grade(category: AccountCategory, variation: Decimal, thresholds: VarianceThresholds) -> AlertStatus:
    deviation = variation if category.alerts_when_over else -variation
    if deviation > thresholds.critical:
        return AlertStatus.CRITICAL
    if deviation > thresholds.warning:
        return AlertStatus.WARNING
    return AlertStatus.OK


def _mean_variation(alerts: list[VarianceAlert], categories: tuple[AccountCategory, ...]) -> Decimal:
    selected = [a.variation_vs_budget for a in alerts if a.category in categories]
    if not selected:
        return ZERO
    return quantize_money(sum(selected, ZERO) / len(selected))


@traced_engine("variance", "1.0", fingerprint_fields=("thresholds",))
def analyze_variances(
    current: Iterable[Observation],
    previous_month: Iterable[Observation],
    same_month_last_year: Iterable[Observation],
    budget: Mapping[str, Decimal],
    categories: Mapping[str, AccountCategory],
    thresholds: VarianceThresholds = VarianceThresholds(),
    benchmarks: Mapping[str, Decimal] | None = None,
) -> VarianceAnalysis:
    """
    Build one alert per (account, department) present in ``current``.

    Args:
        current: Actuals of the analysed month.
        previous_month: Actuals of the month before.
        same_month_last_year: Actuals of the same month one year earlier.
        budget: Budgeted value per account for the analysed month.
        categories: Category per account; missing accounts are OTHER.
        thresholds: Warning / critical percentage bands.
        benchmarks: Optional external reference value per account.
    """
    current = tuple(current)
    grouped_current = _group(current)
    grouped_previous = _group(previous_month)
    grouped_last_year = _group(same_month_last_year)

    breakdown: dict[tuple[str, str], dict[str, Decimal]] = defaultdict(dict)
    for obs in current:
        key = (obs.account_ref, obs.department or GENERAL_DEPARTMENT)
        companies = breakdown[key]
        companies[obs.company_ref] = companies.get(obs.company_ref, ZERO) + obs.value

    alerts: list[VarianceAlert] = []
    for (account_ref, department), real in grouped_current.items():
        category = categories.get(account_ref, AccountCategory.OTHER)
        budget_value = budget.get(account_ref, ZERO)
        previous = grouped_previous.get((account_ref, department), ZERO)
        last_year = grouped_last_year.get((account_ref, department), ZERO)
        benchmark = (benchmarks or {}).get(account_ref)

        vs_budget = variation_percent(real, budget_value)
        vs_previous = variation_percent(real, previous)
        if vs_previous > TREND_BAND:
            trend = Trend.UP
        elif vs_previous < -TREND_BAND:
            trend = Trend.DOWN
        else:
            trend = Trend.STABLE

        alerts.append(VarianceAlert(
            account_ref=account_ref,
            department=department,
            category=category,
            status=_grade(category, vs_budget, thresholds),
            trend=trend,
            real_value=real,
            budget_value=budget_value,
            previous_month_value=previous,
            same_month_last_year_value=last_year,
            variation_vs_budget=vs_budget,
            variation_vs_previous_month=vs_previous,
            variation_vs_same_month_last_year=variation_percent(real, last_year),
            benchmark_value=benchmark,
            variation_vs_benchmark=(
                variation_percent(real, benchmark) if benchmark else None
            ),
            company_breakdown=tuple(sorted(breakdown[(account_ref, department)].items())),
        ))

    alerts.sort(key=lambda a: (_STATUS_ORDER[a.status], -abs(a.variation_vs_budget), a.key))

    critical = sum(1 for a in alerts if a.status == AlertStatus.CRITICAL)
    warning = sum(1 for a in alerts if a.status == AlertStatus.WARNING)
    if critical > 0:
        health = AlertStatus.CRITICAL
    elif warning > 3:
        health = AlertStatus.WARNING
    else:
        health = AlertStatus.OK

    summary = VarianceSummary(
        critical_count=critical,
        warning_count=warning,
        ok_count=len(alerts) - critical - warning,
        total_accounts=len(alerts),
        overall_health=health,
        revenue_vs_budget=_mean_variation(alerts, (AccountCategory.REVENUE,)),
        margin_vs_budget=_mean_variation(alerts, (AccountCategory.MARGIN,)),
        expenses_vs_budget=_mean_variation(alerts, (AccountCategory.EXPENSE,)),
    )
    logger.info("variance_analysis_completed", extra={
        "alert_count": len(alerts),
        "critical_count": critical,
        "warning_count": warning,
        "overall_health": health.value,
    })
    return VarianceAnalysis(alerts=tuple(alerts), summary=summary)
