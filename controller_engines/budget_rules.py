"""
controller_engines.budget_rules -- Per-account budget classification state.

Responsibility:
    Hold the active ``BudgetRule`` of every account and enforce the legal
    classification transitions:

        Unclassified --classify--> Fixed | Variable | Manual
        Fixed | Variable | Manual --declassify--> Unclassified
        Fixed --update--> Fixed (new window / correction), likewise for
        Variable and Manual.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by ``budget_generator`` and by ``BudgetService``.

Invariants enforced:
    - At most one active rule per target account (``DuplicateRuleError``).
    - Fixed windows belong to the allowed set, {3, 6, 12} by default
      (``InvalidRuleError``).
    - The book is immutable: every transition returns a new book.

Failure modes:
    - ``RuleTransitionError`` when classifying an already classified
      account, updating an unclassified one, or changing the variant
      through ``update``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from controller_kernel.domain.budget import (
    FIXED_WINDOWS,
    UNCLASSIFIED,
    BudgetRule,
    Classification,
    FixedRule,
    Unclassified,
)
from controller_kernel.exceptions import (
    DuplicateRuleError,
    InvalidRuleError,
    RuleTransitionError,
)
from controller_kernel.logging_config import get_logger

logger = get_logger("engines.budget_rules")


class BudgetRuleBook:
    """
    Immutable set of active budget rules keyed by target account.

    Contract:
        Inactive rules passed to the constructor are ignored.  All mutating
        operations return a new ``BudgetRuleBook``.

    Guarantees:
        - ``rules`` is ordered by target account.
        - ``state_of`` returns the rule or ``UNCLASSIFIED``.
    """

    def __init__(
        self,
        rules: Iterable[BudgetRule] = (),
        allowed_windows: tuple[int, ...] = FIXED_WINDOWS,
    ):
        self._allowed_windows = tuple(allowed_windows)
        by_target: dict[str, BudgetRule] = {}
        for rule in rules:
            if not rule.active:
                continue
            self._check_window(rule)
            existing = by_target.get(rule.target_account_ref)
            if existing is not None:
                raise DuplicateRuleError(
                    rule.target_account_ref, tuple(sorted((existing.id, rule.id)))
                )
            by_target[rule.target_account_ref] = rule
        self._rules: Mapping[str, BudgetRule] = MappingProxyType(
            dict(sorted(by_target.items()))
        )

    def _check_window(self, rule: BudgetRule) -> None:
        params = rule.parameters
        if isinstance(params, FixedRule) and params.window_months not in self._allowed_windows:
            raise InvalidRuleError(
                rule.id,
                f"window {params.window_months} not in {self._allowed_windows}",
            )

    def _with(self, rules: Mapping[str, BudgetRule]) -> BudgetRuleBook:
        return BudgetRuleBook(rules.values(), self._allowed_windows)

    @property
    def rules(self) -> tuple[BudgetRule, ...]:
        return tuple(self._rules.values())

    @property
    def allowed_windows(self) -> tuple[int, ...]:
        return self._allowed_windows

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, target_account_ref: object) -> bool:
        return target_account_ref in self._rules

    def state_of(self, target_account_ref: str) -> BudgetRule | Unclassified:
        return self._rules.get(target_account_ref, UNCLASSIFIED)

    def classification_of(self, target_account_ref: str) -> Classification:
        return self.state_of(target_account_ref).classification

    def classify(self, rule: BudgetRule) -> BudgetRuleBook:
        """Attach a rule to an unclassified account."""
        current = self.state_of(rule.target_account_ref)
        if not isinstance(current, Unclassified):
            raise RuleTransitionError(
                rule.target_account_ref,
                current.classification.value,
                rule.classification.value,
            )
        rules = dict(self._rules)
        rules[rule.target_account_ref] = rule
        book = self._with(rules)
        logger.info("budget_rule_classified", extra={
            "target_account_ref": rule.target_account_ref,
            "classification": rule.classification.value,
            "rule_id": rule.id,
        })
        return book

    def declassify(self, target_account_ref: str) -> BudgetRuleBook:
        """Return an account to Unclassified.  No-op when already unclassified."""
        if target_account_ref not in self._rules:
            return self
        rules = dict(self._rules)
        removed = rules.pop(target_account_ref)
        logger.info("budget_rule_declassified", extra={
            "target_account_ref": target_account_ref,
            "previous_classification": removed.classification.value,
        })
        return self._with(rules)

    def update(self, rule: BudgetRule) -> BudgetRuleBook:
        """Change parameters of a rule without changing its classification."""
        current = self.state_of(rule.target_account_ref)
        if current.classification != rule.classification:
            raise RuleTransitionError(
                rule.target_account_ref,
                current.classification.value,
                rule.classification.value,
            )
        rules = dict(self._rules)
        rules[rule.target_account_ref] = rule
        return self._with(rules)

    def pending(self, accounts: Iterable[str]) -> tuple[str, ...]:
        """Accounts from ``accounts`` that have no active rule, sorted."""
        return tuple(sorted({a for a in accounts if a not in self._rules}))
