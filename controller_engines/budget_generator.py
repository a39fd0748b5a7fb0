"""
controller_engines.budget_generator -- Twelve-month projections from classified accounts.

Responsibility:
    For every active rule in a ``BudgetRuleBook`` produce one
    ``GeneratedBudgetEntry`` per month of the target year:

    * Fixed     mean(|monthly actual|) over the trailing window, months with
                data only, x (1 + correction / 100).
    * Variable  trailing-12-month total of the reference line x percent / 100.
    * Manual    zero, left for hand entry.

Architecture position:
    Engines -- calculation layer.  Historical lookups go through the
    ``HistorySource`` / ``ReferenceSource`` ports; the in-memory adapters
    below cover balances and statement trees already loaded by the caller.

Invariants enforced:
    - Each distinct lookup key (account + window, or reference line) is
      fetched exactly once per run, on a thread pool.
    - A failed lookup degrades only the rules that depend on it: their
      value is zero and a ``DataGapWarning`` is attached.
    - Cancellation raises ``GenerationCancelledError``; no partial result
      is ever returned.
    - Values are rounded half-up to cents.  Output is sorted by account,
      year and month, so identical inputs give identical output.

Failure modes:
    - ``GenerationCancelledError`` when the token is set before completion.
    - ``InvalidRuleError`` if a rule carries an unknown variant.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Collection, Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from controller_engines.accumulator import ALL, ScopeFilter
from controller_engines.budget_rules import BudgetRuleBook
from controller_engines.statement_tree import (
    StatementSources,
    build_statement_tree,
    find_node,
    sum_actual,
)
from controller_engines.tracer import traced_engine
from controller_kernel.domain.budget import (
    BudgetAssumptionValue,
    BudgetRule,
    FixedRule,
    GeneratedBudgetEntry,
    ManualRule,
    VariableRule,
)
from controller_kernel.domain.dtos import (
    AccountMapping,
    MonthlyBalance,
    StatementLineDefinition,
)
from controller_kernel.domain.periods import Period, trailing_periods
from controller_kernel.domain.values import CENT, ZERO, quantize_money
from controller_kernel.exceptions import (
    ControllershipWarning,
    DataGapWarning,
    GenerationCancelledError,
    InvalidRuleError,
)
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.budget_generator")

HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------


class HistorySource(Protocol):
    def monthly_amounts(
        self, account_ref: str, periods: tuple[Period, ...]
    ) -> Sequence[Decimal]:
        """Monthly actuals of ``account_ref`` for the periods that have data."""
        ...


class ReferenceSource(Protocol):
    def trailing_total(self, line_id: str, periods: tuple[Period, ...]) -> Decimal:
        """Sum of the line's actual value over ``periods``."""
        ...


class CancellationToken:
    """Cooperative cancellation flag shared between caller and generator."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# In-memory adapters
# ---------------------------------------------------------------------------


class BalanceHistorySource:
    """
    History from monthly balances routed through the account-mapping table.

    A statement account with mapped ledger accounts sums their balances;
    an unmapped reference is looked up as a ledger account directly.
    """

    def __init__(
        self,
        balances: Iterable[MonthlyBalance],
        account_mappings: Iterable[AccountMapping] = (),
        companies: Collection[str] | None = None,
    ):
        self._ledger_accounts: dict[str, set[str]] = defaultdict(set)
        for mapping in account_mappings:
            self._ledger_accounts[mapping.statement_account_ref].add(mapping.ledger_account_ref)
        self._by_account: dict[str, dict[Period, Decimal]] = defaultdict(dict)
        for balance in balances:
            if companies and balance.company_ref not in companies:
                continue
            bucket = self._by_account[balance.account_ref]
            period = (balance.year, balance.month)
            bucket[period] = bucket.get(period, ZERO) + balance.value

    def monthly_amounts(
        self, account_ref: str, periods: tuple[Period, ...]
    ) -> Sequence[Decimal]:
        ledger_accounts = self._ledger_accounts.get(account_ref) or {account_ref}
        amounts: list[Decimal] = []
        for period in periods:
            values = [
                self._by_account[account][period]
                for account in sorted(ledger_accounts)
                if period in self._by_account.get(account, {})
            ]
            if values:
                amounts.append(sum(values, ZERO))
        return amounts


class StatementReferenceSource:
    """Reference totals taken from a statement tree built over the window."""

    def __init__(
        self,
        definitions: Sequence[StatementLineDefinition],
        sources: StatementSources,
        scope: ScopeFilter = ALL,
    ):
        self._definitions = tuple(definitions)
        self._sources = sources
        self._scope = scope

    def trailing_total(self, line_id: str, periods: tuple[Period, ...]) -> Decimal:
        years = sorted({year for year, _ in periods})
        result = build_statement_tree(self._definitions, self._sources, years, self._scope)
        node = find_node(result.forest, line_id)
        if node is None:
            raise KeyError(f"Reference line not found: {line_id}")
        return sum_actual(node, periods)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationResult:
    entries: tuple[GeneratedBudgetEntry, ...]
    diagnostics: tuple[ControllershipWarning, ...] = ()
    lookups: int = 0


@dataclass(frozen=True)
class _Lookup:
    value: object = None
    error: str | None = None


def _history_key(account_ref: str, window: int) -> tuple[str, str, int]:
    return ("history", account_ref, window)


def _reference_key(line_id: str) -> tuple[str, str, int]:
    return ("reference", line_id, 0)


def _fmt(value: Decimal) -> str:
    return f"{quantize_money(value):,}"


class BudgetGenerator:
    """
    Generates projections for every rule in a rule book.

    Contract:
        ``generate`` is idempotent for identical rules and source data.
        Changing one rule changes only that rule's twelve entries.

    Guarantees:
        - At most ``max_workers`` lookups run concurrently.
        - Each lookup key is fetched once per ``generate`` call.
    """

    def __init__(
        self,
        history: HistorySource,
        reference: ReferenceSource,
        max_workers: int = 4,
        reference_window: int = 12,
        places: Decimal = CENT,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._history = history
        self._reference = reference
        self._max_workers = max_workers
        self._reference_window = reference_window
        self._places = places

    @traced_engine("budget_generator", "1.0", fingerprint_fields=("year",))
    def generate(
        self,
        rules: BudgetRuleBook | Iterable[BudgetRule],
        year: int,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationResult:
        """
        Project every active rule onto months 1..12 of ``year``.

        Raises:
            GenerationCancelledError: If ``cancel_token`` is set before
                generation completes.
        """
        book = rules if isinstance(rules, BudgetRuleBook) else BudgetRuleBook(rules)
        token = cancel_token or CancellationToken()
        start: Period = (year, 1)

        logger.info("budget_generation_started", extra={
            "year": year,
            "rule_count": len(book),
        })

        lookups = self._prefetch(book.rules, start, token)

        entries: list[GeneratedBudgetEntry] = []
        diagnostics: list[ControllershipWarning] = []
        for rule in book.rules:
            if token.cancelled:
                raise GenerationCancelledError(len(lookups))
            rule_entries, rule_warnings = self._project(rule, year, lookups)
            entries.extend(rule_entries)
            diagnostics.extend(rule_warnings)

        if token.cancelled:
            raise GenerationCancelledError(len(lookups))

        entries.sort(key=lambda e: (e.target_account_ref, e.year, e.month))
        logger.info("budget_generation_completed", extra={
            "year": year,
            "entry_count": len(entries),
            "lookup_count": len(lookups),
            "diagnostic_count": len(diagnostics),
        })
        return GenerationResult(
            entries=tuple(entries),
            diagnostics=tuple(diagnostics),
            lookups=len(lookups),
        )

    # -- lookups -----------------------------------------------------------

    def _prefetch(
        self,
        rules: Sequence[BudgetRule],
        start: Period,
        token: CancellationToken,
    ) -> dict[tuple, _Lookup]:
        keys: dict[tuple, tuple] = {}
        for rule in rules:
            params = rule.parameters
            if isinstance(params, FixedRule):
                key = _history_key(rule.target_account_ref, params.window_months)
                keys.setdefault(key, trailing_periods(start, params.window_months))
            elif isinstance(params, VariableRule) and params.reference_line_id:
                key = _reference_key(params.reference_line_id)
                keys.setdefault(key, trailing_periods(start, self._reference_window))

        if token.cancelled:
            raise GenerationCancelledError(0)

        results: dict[tuple, _Lookup] = {}
        if not keys:
            return results

        executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="budget-lookup"
        )
        try:
            pending: dict[Future, tuple] = {
                executor.submit(self._fetch, key, periods): key
                for key, periods in sorted(keys.items())
            }
            while pending:
                done, _ = wait(pending, timeout=0.05, return_when=FIRST_COMPLETED)
                if token.cancelled:
                    for future in pending:
                        future.cancel()
                    logger.warning("budget_generation_cancelled", extra={
                        "completed_lookups": len(results),
                        "pending_lookups": len(pending),
                    })
                    raise GenerationCancelledError(len(results))
                for future in done:
                    key = pending.pop(future)
                    results[key] = future.result()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return results

    def _fetch(self, key: tuple, periods: tuple[Period, ...]) -> _Lookup:
        kind, ref, _ = key
        try:
            if kind == "history":
                return _Lookup(value=tuple(self._history.monthly_amounts(ref, periods)))
            return _Lookup(value=self._reference.trailing_total(ref, periods))
        except Exception as exc:
            logger.warning("budget_lookup_failed", extra={
                "lookup_kind": kind,
                "ref": ref,
                "error": str(exc),
            })
            return _Lookup(error=f"{type(exc).__name__}: {exc}")

    # -- projection --------------------------------------------------------

    def _project(
        self,
        rule: BudgetRule,
        year: int,
        lookups: dict[tuple, _Lookup],
    ) -> tuple[list[GeneratedBudgetEntry], list[ControllershipWarning]]:
        params = rule.parameters
        warnings: list[ControllershipWarning] = []

        if isinstance(params, FixedRule):
            lookup = lookups[_history_key(rule.target_account_ref, params.window_months)]
            if lookup.error is not None:
                warnings.append(DataGapWarning(
                    rule.target_account_ref, f"history lookup failed ({lookup.error})"
                ))
            amounts = lookup.value or ()
            average = (
                sum((abs(a) for a in amounts), ZERO) / len(amounts) if amounts else ZERO
            )
            correction = params.correction_percent
            if average > 0:
                value = quantize_money(average * (1 + correction / HUNDRED), self._places)
                note = f"Average {params.window_months}m ({_fmt(average)}) + {correction}%"
            else:
                value = ZERO
                note = "No history available"
                if lookup.error is None:
                    warnings.append(DataGapWarning(
                        rule.target_account_ref,
                        f"no history in the trailing {params.window_months} months",
                    ))
            breakdown = {
                "historical_average": str(quantize_money(average, self._places)),
                "correction_percent": str(correction),
                "window_months": str(params.window_months),
                "months_with_data": str(len(amounts)),
            }
            if params.correction_index:
                breakdown["correction_index"] = params.correction_index

        elif isinstance(params, VariableRule):
            reference = ZERO
            if params.reference_line_id:
                lookup = lookups[_reference_key(params.reference_line_id)]
                if lookup.error is not None:
                    warnings.append(DataGapWarning(
                        rule.target_account_ref, f"reference lookup failed ({lookup.error})"
                    ))
                else:
                    reference = lookup.value
            percent = params.reference_percent
            base_label = params.reference_label or params.reference_line_id or "Base"
            if percent is None or percent <= 0:
                value = ZERO
                note = "Percentage not set"
            elif reference > 0:
                value = quantize_money(reference * percent / HUNDRED, self._places)
                note = f"{percent}% of {base_label} ({_fmt(reference)})"
            else:
                value = ZERO
                note = f"{percent}% of {base_label} (no data)"
                warnings.append(DataGapWarning(
                    rule.target_account_ref, "reference line has no positive total"
                ))
            breakdown = {
                "reference_value": str(quantize_money(reference, self._places)),
                "reference_percent": str(percent if percent is not None else ZERO),
            }

        elif isinstance(params, ManualRule):
            value = ZERO
            note = "Manual entry"
            breakdown = {}

        else:
            raise InvalidRuleError(rule.id, f"unknown rule variant {type(params).__name__}")

        entries = [
            GeneratedBudgetEntry(
                rule_id=rule.id,
                target_account_ref=rule.target_account_ref,
                target_label=rule.target_label,
                classification=rule.classification,
                year=year,
                month=month,
                computed_value=value,
                note=note,
                breakdown=dict(breakdown),
            )
            for month in range(1, 13)
        ]
        return entries, warnings


def as_assumption_values(
    entries: Iterable[GeneratedBudgetEntry],
    assumption_id: str,
    target_account_ref: str | None = None,
    store: str | None = None,
    department: str | None = None,
) -> tuple[BudgetAssumptionValue, ...]:
    """
    Turn generated projections into assumption values, one per month.

    Entries of several accounts are summed per month unless
    ``target_account_ref`` narrows them to one account.
    """
    totals: dict[Period, Decimal] = {}
    for entry in entries:
        if target_account_ref is not None and entry.target_account_ref != target_account_ref:
            continue
        totals[entry.period] = totals.get(entry.period, ZERO) + entry.computed_value
    return tuple(
        BudgetAssumptionValue(
            assumption_id=assumption_id,
            year=year,
            month=month,
            value=value,
            store=store,
            department=department,
        )
        for (year, month), value in sorted(totals.items())
    )
