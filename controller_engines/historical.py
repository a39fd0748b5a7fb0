"""
controller_engines.historical -- Prior-year actuals as the "historical" budget component.

Responsibility:
    Route prior-year monthly ledger balances through the account-mapping
    table onto statement accounts and carry each one into the same month of
    the target year.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Output feeds ``budget_overlay.build_budget_data``.

Invariants enforced:
    - Only balances of ``target_year - 1`` are used.
    - Month is preserved; year is shifted to ``target_year``.
    - Several ledger accounts mapped to one line accumulate.
    - Balances of unmapped accounts are ignored.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from decimal import Decimal

from controller_engines.tracer import traced_engine
from controller_kernel.domain.dtos import AccountMapping, MonthlyBalance
from controller_kernel.domain.periods import Period
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.historical")


@dataclass(frozen=True)
class HistoricalOverlay:
    """Historical component per statement account and target-year period."""

    historical: dict[str, dict[Period, Decimal]]
    target_year: int
    ignored_balances: int = 0

    def value(self, account_ref: str, period: Period) -> Decimal:
        return self.historical.get(account_ref, {}).get(period, Decimal("0"))


def reverse_index(account_mappings: Sequence[AccountMapping]) -> dict[str, frozenset[str]]:
    """Statement account -> set of ledger accounts mapped onto it."""
    index: dict[str, set[str]] = defaultdict(set)
    for mapping in account_mappings:
        index[mapping.statement_account_ref].add(mapping.ledger_account_ref)
    return {ref: frozenset(accounts) for ref, accounts in index.items()}


@traced_engine("historical", "1.0", fingerprint_fields=("target_year", "companies"))
def inject_historical(
    account_mappings: Sequence[AccountMapping],
    prior_year_balances: Sequence[MonthlyBalance],
    target_year: int,
    companies: Collection[str] | None = None,
) -> HistoricalOverlay:
    """
    Add every prior-year balance to the same month of ``target_year``.

    Args:
        account_mappings: Ledger account -> statement account table.
        prior_year_balances: Monthly balances; rows of other years are skipped.
        target_year: Budget year receiving the historical component.
        companies: Optional company allow-list.  ``None`` or empty admits all.
    """
    statements_by_account: dict[str, list[str]] = defaultdict(list)
    for statement_ref, accounts in sorted(reverse_index(account_mappings).items()):
        for account in accounts:
            statements_by_account[account].append(statement_ref)

    source_year = target_year - 1
    historical: dict[str, dict[Period, Decimal]] = defaultdict(dict)
    ignored = 0
    for balance in prior_year_balances:
        if balance.year != source_year:
            continue
        if companies and balance.company_ref not in companies:
            continue
        targets = statements_by_account.get(balance.account_ref)
        if not targets:
            ignored += 1
            continue
        period = (target_year, balance.month)
        for statement_ref in targets:
            bucket = historical[statement_ref]
            bucket[period] = bucket.get(period, Decimal("0")) + balance.value

    logger.info("historical_injected", extra={
        "target_year": target_year,
        "account_count": len(historical),
        "ignored_balances": ignored,
    })
    return HistoricalOverlay(
        historical={ref: dict(sorted(values.items())) for ref, values in sorted(historical.items())},
        target_year=target_year,
        ignored_balances=ignored,
    )
