"""
controller_engines.mapping_coverage -- Analytical accounts missing from the mapping table.

Responsibility:
    List analytical chart accounts that no ``AccountMapping`` routes to a
    statement line, split into balance-sheet (first digit 1 or 2) and
    result accounts.  Synthetic accounts never receive postings and are
    skipped.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from controller_engines.tracer import traced_engine
from controller_kernel.domain.dtos import AccountMapping, ChartAccount
from controller_kernel.exceptions import DataGapWarning
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.mapping_coverage")

BALANCE_SHEET_PREFIXES: tuple[str, ...] = ("1", "2")


class CoverageScope(str, Enum):
    ALL = "all"
    RESULT = "result"
    BALANCE = "balance"


def is_balance_sheet_account(account_id: str) -> bool:
    return account_id[:1] in BALANCE_SHEET_PREFIXES


@dataclass(frozen=True)
class CoverageReport:
    unmapped: tuple[ChartAccount, ...]
    diagnostics: tuple[DataGapWarning, ...]

    @property
    def count(self) -> int:
        return len(self.unmapped)

    @property
    def has_unmapped(self) -> bool:
        return bool(self.unmapped)


@traced_engine("mapping_coverage", "1.0", fingerprint_fields=("scope",))
def find_unmapped_accounts(
    chart: Iterable[ChartAccount],
    mappings: Iterable[AccountMapping],
    scope: CoverageScope = CoverageScope.ALL,
) -> CoverageReport:
    mapped = {mapping.ledger_account_ref for mapping in mappings}
    unmapped = []
    for account in sorted(chart, key=lambda a: a.id):
        if not account.is_analytical or account.id in mapped:
            continue
        balance = is_balance_sheet_account(account.id)
        if scope == CoverageScope.BALANCE and not balance:
            continue
        if scope == CoverageScope.RESULT and balance:
            continue
        unmapped.append(account)

    diagnostics = tuple(
        DataGapWarning(account.id, "analytical account not mapped to any statement line")
        for account in unmapped
    )
    if unmapped:
        logger.warning("unmapped_accounts_found", extra={
            "scope": scope.value,
            "count": len(unmapped),
        })
    return CoverageReport(unmapped=tuple(unmapped), diagnostics=diagnostics)
