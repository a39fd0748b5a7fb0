"""
Budgeting Module Service (``controller_modules.budget.service``).

Responsibility
--------------
Orchestrates budgeting operations -- assembling the budget overlay from
premises, historical and manual components, generating rule-based
projections, and applying accepted projections to storage -- by
delegating all calculation to ``controller_engines``.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``BudgetService`` is the public
entry point for budgeting operations.  Constructor: ``session`` +
``clock`` + ``config``.  The session is only needed by the persistence
methods.  ``apply_generated_to_database`` and
``load_applied_from_database`` run the persistence methods inside
``session_scope`` of the process-wide engine set up with
``init_engine_from_url``.

Invariants enforced
-------------------
* Each persistence method owns the transaction boundary (``commit`` on
  success, ``rollback`` on failure or exception).
* Applying a projection for an already applied (account, year, month)
  updates that row; it never creates a second one.
* All monetary amounts use ``Decimal`` -- NEVER ``float``.

Failure modes
-------------
* Invalid mapping graph or duplicate assumption values  ->
  ``ConfigurationError`` subclasses from the engines, nothing computed.
* Cancelled generation  -> ``GenerationCancelledError``; nothing applied.
* Unexpected database exception  -> session rolled back, exception
  re-raised.
* Persistence method called without a session  -> ``RuntimeError``.

Audit relevance
---------------
Structured log events emitted at operation start and commit/rollback for
every public method, carrying year, entry counts and the acting user.
Applied rows record ``created_by`` / ``updated_by`` and the generating rule.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Collection, Iterable, Mapping, Sequence
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from controller_engines.accumulator import ALL, ScopeFilter
from controller_engines.assumption_mapper import resolve_assumptions
from controller_engines.budget_generator import (
    BudgetGenerator,
    CancellationToken,
    GenerationResult,
    HistorySource,
    ReferenceSource,
)
from controller_engines.budget_overlay import BudgetDataByPeriod, build_budget_data
from controller_engines.budget_rules import BudgetRuleBook
from controller_engines.historical import inject_historical
from controller_kernel.db.engine import session_scope
from controller_kernel.domain.budget import (
    AuxiliaryPremise,
    BudgetAssumption,
    BudgetAssumptionValue,
    BudgetMapping,
    BudgetRule,
    GeneratedBudgetEntry,
)
from controller_kernel.domain.clock import Clock, SystemClock
from controller_kernel.domain.dtos import AccountMapping, MonthlyBalance
from controller_kernel.domain.periods import Period
from controller_kernel.logging_config import LogContext, get_logger
from controller_modules.budget.config import BudgetConfig
from controller_modules.budget.orm import GeneratedBudgetEntryModel

logger = get_logger("modules.budget.service")


class BudgetService:
    """
    Orchestrates budget assembly, generation and application.

    Contract
    --------
    * ``assemble_budget`` and ``generate`` are pure with respect to
      storage and return engine DTOs.
    * ``apply_generated`` persists projections and returns the number of
      rows written.

    Guarantees
    ----------
    * Session is committed only when every projection was written;
      otherwise rolled back.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT load statement definitions or ledger records.
    * Does NOT decide which projections to accept.
    """

    def __init__(
        self,
        session: Session | None = None,
        clock: Clock | None = None,
        config: BudgetConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or BudgetConfig.with_defaults()

    @property
    def config(self) -> BudgetConfig:
        return self._config

    def _require_session(self) -> Session:
        if self._session is None:
            raise RuntimeError("BudgetService was created without a session")
        return self._session

    # =========================================================================
    # Overlay assembly
    # =========================================================================

    def assemble_budget(
        self,
        target_ids: Iterable[str],
        year: int,
        mappings: Sequence[BudgetMapping] = (),
        assumption_values: Sequence[BudgetAssumptionValue] = (),
        account_mappings: Sequence[AccountMapping] = (),
        prior_year_balances: Sequence[MonthlyBalance] = (),
        auxiliary_premises: Sequence[AuxiliaryPremise] = (),
        assumptions: Sequence[BudgetAssumption] = (),
        scope: ScopeFilter = ALL,
        companies: Collection[str] | None = None,
        manual: Mapping[str, Mapping[Period, Decimal]] | None = None,
        imported: Mapping[str, Mapping[Period, Decimal]] | None = None,
    ) -> BudgetDataByPeriod:
        """
        Combine premises, historical, manual and imported components.

        Premises come from the assumption mappings, historical values from
        the previous year's balances.  ``companies`` defaults to the store
        selected by ``scope`` so both components share one store filter.
        Diagnostics of every step are carried on the returned structure.
        """
        if companies is None and not scope.is_consolidated:
            companies = frozenset({scope.company})
        logger.info("budget_assembly_started", extra={
            "year": year,
            "mapping_count": len(mappings),
            "balance_count": len(prior_year_balances),
        })
        premises = resolve_assumptions(
            mappings,
            assumption_values,
            year,
            scope,
            auxiliary_premises=auxiliary_premises,
            assumptions=assumptions,
        )
        historical = inject_historical(
            account_mappings, prior_year_balances, year, companies,
        )
        data = build_budget_data(
            target_ids,
            year,
            premises=premises,
            historical=historical,
            manual=manual,
            imported=imported,
        )
        data = dataclasses.replace(
            data, diagnostics=premises.diagnostics + data.diagnostics,
        )
        logger.info("budget_assembly_completed", extra={
            "year": year,
            "target_count": len(data.data),
            "diagnostic_count": len(data.diagnostics),
        })
        return data

    # =========================================================================
    # Generation
    # =========================================================================

    def rule_book(self, rules: Iterable[BudgetRule]) -> BudgetRuleBook:
        """Validate rules against the configured windows."""
        return BudgetRuleBook(rules, allowed_windows=self._config.allowed_windows)

    def generate(
        self,
        rules: BudgetRuleBook | Iterable[BudgetRule],
        year: int,
        history: HistorySource,
        reference: ReferenceSource,
        cancel_token: CancellationToken | None = None,
    ) -> GenerationResult:
        """Project every classified rule onto the twelve months of ``year``."""
        book = rules if isinstance(rules, BudgetRuleBook) else self.rule_book(rules)
        generator = BudgetGenerator(
            history,
            reference,
            max_workers=self._config.max_workers,
            reference_window=self._config.reference_window,
            places=self._config.places,
        )
        with LogContext.bind(budget_year=year):
            return generator.generate(book, year, cancel_token)

    # =========================================================================
    # Persistence
    # =========================================================================

    def apply_generated(
        self,
        entries: Iterable[GeneratedBudgetEntry],
        actor: str,
    ) -> int:
        """
        Upsert projections keyed by (target account, year, month).

        Returns:
            Number of rows inserted or updated.
        """
        session = self._require_session()
        entries = tuple(entries)
        now = self._clock.now()
        logger.info("budget_apply_started", extra={
            "entry_count": len(entries),
            "actor": actor,
        })
        inserted = updated = 0
        try:
            for entry in entries:
                existing = session.execute(
                    select(GeneratedBudgetEntryModel).where(
                        GeneratedBudgetEntryModel.target_account_ref == entry.target_account_ref,
                        GeneratedBudgetEntryModel.year == entry.year,
                        GeneratedBudgetEntryModel.month == entry.month,
                    )
                ).scalar_one_or_none()
                if existing is None:
                    session.add(GeneratedBudgetEntryModel.from_dto(
                        entry, created_by=actor, generated_at=now,
                    ))
                    inserted += 1
                    continue
                existing.rule_id = entry.rule_id
                existing.target_label = entry.target_label
                existing.classification = entry.classification.value
                existing.computed_value = entry.computed_value
                existing.note = entry.note
                existing.breakdown = dict(entry.breakdown)
                existing.generated_at = now
                existing.updated_by = actor
                updated += 1
            session.commit()
        except Exception:
            session.rollback()
            logger.error("budget_apply_rolled_back", extra={
                "entry_count": len(entries),
                "actor": actor,
            })
            raise

        logger.info("budget_apply_committed", extra={
            "inserted": inserted,
            "updated": updated,
            "actor": actor,
        })
        return inserted + updated

    def load_applied(
        self,
        year: int,
        target_account_ref: str | None = None,
    ) -> tuple[GeneratedBudgetEntry, ...]:
        """Applied projections of ``year``, ordered by account and month."""
        session = self._require_session()
        query = select(GeneratedBudgetEntryModel).where(
            GeneratedBudgetEntryModel.year == year,
        )
        if target_account_ref is not None:
            query = query.where(
                GeneratedBudgetEntryModel.target_account_ref == target_account_ref,
            )
        query = query.order_by(
            GeneratedBudgetEntryModel.target_account_ref,
            GeneratedBudgetEntryModel.month,
        )
        rows = session.execute(query).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def applied_as_imported(
        self, year: int,
    ) -> dict[str, dict[Period, Decimal]]:
        """Applied projections shaped as the ``imported`` budget component."""
        imported: dict[str, dict[Period, Decimal]] = {}
        for entry in self.load_applied(year):
            imported.setdefault(entry.target_account_ref, {})[entry.period] = entry.computed_value
        return imported


# =============================================================================
# Process-wide engine entry points
# =============================================================================


def apply_generated_to_database(
    entries: Iterable[GeneratedBudgetEntry],
    actor: str,
    clock: Clock | None = None,
    config: BudgetConfig | None = None,
) -> int:
    """
    Apply projections in a fresh ``session_scope``.

    Requires ``init_engine_from_url`` (and ``create_tables`` on a new
    database) to have been called.
    """
    with session_scope() as session:
        return BudgetService(session, clock, config).apply_generated(entries, actor)


def load_applied_from_database(
    year: int,
    target_account_ref: str | None = None,
) -> tuple[GeneratedBudgetEntry, ...]:
    with session_scope() as session:
        return BudgetService(session).load_applied(year, target_account_ref)
