"""
Typed Exception Hierarchy for the Controller Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All errors inherit from ControllershipError:

    ControllershipError (base)
    |
    +-- ConfigurationError            (fatal, raised before any computation)
    |   +-- StatementCycleError
    |   +-- OrphanParentError
    |   +-- DuplicateSiblingOrderError
    |   +-- DuplicateLineError
    |   +-- MappingCycleError
    |   +-- DuplicateRuleError
    |   +-- DuplicateAssumptionValueError
    |   +-- InvalidRuleError
    |
    +-- RuleTransitionError           (illegal classification transition)
    |
    +-- GenerationCancelledError      (caller cancelled budget generation)

Non-fatal conditions are NOT raised. They are modelled as warning objects
that the engines instantiate, log, and attach to their results:

    ControllershipWarning (UserWarning)
    |
    +-- DataGapWarning                (unmapped account, missing history,
    |                                  zero reference base, unresolved label)
    +-- CalculationFallback           (formula mapping downgraded to direct)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------
Configuration   | STATEMENT_CYCLE             | Parent chain loops back on itself
                | ORPHAN_PARENT               | parent_id names no definition
                | DUPLICATE_SIBLING_ORDER     | Two siblings share an order
                | DUPLICATE_LINE              | Two definitions share an id
                | MAPPING_CYCLE               | Assumption/target graph loops
                | DUPLICATE_RULE              | >1 active rule for one target
                | DUPLICATE_ASSUMPTION_VALUE  | Repeated assumption value key
                | INVALID_RULE                | Rule parameters out of range
----------------|-----------------------------|-----------------------------------
Rules           | RULE_TRANSITION             | classify() on a classified target
----------------|-----------------------------|-----------------------------------
Generation      | GENERATION_CANCELLED        | Cancellation token was set
----------------|-----------------------------|-----------------------------------
Warnings        | DATA_GAP                    | Missing data, zero contribution
                | CALCULATION_FALLBACK        | Formula computed as direct

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        result = build_statement_tree(definitions, sources, periods)
    except StatementCycleError as e:
        report(code=e.code, chain=e.chain)

    for warning in result.diagnostics:
        if isinstance(warning, DataGapWarning):
            flag_for_review(warning.subject, warning.reason)
"""


class ControllershipError(Exception):
    """
    Base exception for all controllership errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CONTROLLERSHIP_ERROR"


# Configuration errors


class ConfigurationError(ControllershipError):
    """Base exception for invalid statement, mapping or rule configuration."""

    code: str = "CONFIGURATION_ERROR"


class StatementCycleError(ConfigurationError):
    """A statement line's parent chain never terminates."""

    code: str = "STATEMENT_CYCLE"

    def __init__(self, chain: tuple[str, ...]):
        self.chain = chain
        super().__init__(
            f"Statement line hierarchy contains a cycle: {' -> '.join(chain)}"
        )


class OrphanParentError(ConfigurationError):
    """A statement line references a parent that does not exist."""

    code: str = "ORPHAN_PARENT"

    def __init__(self, line_id: str, parent_id: str):
        self.line_id = line_id
        self.parent_id = parent_id
        super().__init__(
            f"Statement line {line_id} references unknown parent {parent_id}"
        )


class DuplicateSiblingOrderError(ConfigurationError):
    """Two lines under the same parent share an order value."""

    code: str = "DUPLICATE_SIBLING_ORDER"

    def __init__(self, parent_id: str | None, order: int, line_ids: tuple[str, ...]):
        self.parent_id = parent_id
        self.order = order
        self.line_ids = line_ids
        super().__init__(
            f"Lines {', '.join(line_ids)} share order {order} "
            f"under parent {parent_id or '<root>'}"
        )


class DuplicateLineError(ConfigurationError):
    """Two statement line definitions share an id."""

    code: str = "DUPLICATE_LINE"

    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__(f"Duplicate statement line id: {line_id}")


class MappingCycleError(ConfigurationError):
    """Assumption mappings form a dependency cycle."""

    code: str = "MAPPING_CYCLE"

    def __init__(self, nodes: tuple[str, ...]):
        self.nodes = nodes
        super().__init__(
            f"Budget mappings form a cycle through: {', '.join(nodes)}"
        )


class DuplicateRuleError(ConfigurationError):
    """More than one active budget rule targets the same account."""

    code: str = "DUPLICATE_RULE"

    def __init__(self, target_account_ref: str, rule_ids: tuple[str, ...]):
        self.target_account_ref = target_account_ref
        self.rule_ids = rule_ids
        super().__init__(
            f"Account {target_account_ref} has more than one active rule: "
            f"{', '.join(rule_ids)}"
        )


class DuplicateAssumptionValueError(ConfigurationError):
    """Two assumption values share (assumption, store, department, year, month)."""

    code: str = "DUPLICATE_ASSUMPTION_VALUE"

    def __init__(self, key: tuple):
        self.key = key
        super().__init__(f"Duplicate assumption value for key {key}")


class InvalidRuleError(ConfigurationError):
    """A budget rule carries parameters outside the accepted domain."""

    code: str = "INVALID_RULE"

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Invalid budget rule {rule_id}: {reason}")


# Rule lifecycle errors


class RuleTransitionError(ControllershipError):
    """A classification change is not legal from the target's current state."""

    code: str = "RULE_TRANSITION"

    def __init__(self, target_account_ref: str, current: str, requested: str):
        self.target_account_ref = target_account_ref
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move account {target_account_ref} from {current} "
            f"to {requested}"
        )


# Generation errors


class GenerationCancelledError(ControllershipError):
    """Budget generation was cancelled by the caller."""

    code: str = "GENERATION_CANCELLED"

    def __init__(self, completed_keys: int = 0):
        self.completed_keys = completed_keys
        super().__init__(
            f"Budget generation cancelled after {completed_keys} lookups"
        )


# Diagnostics (never raised by the engines)


class ControllershipWarning(UserWarning):
    """
    Base class for non-fatal diagnostics attached to engine results.

    Carries a machine-readable `code` plus structured fields, mirroring the
    error classes so diagnostics serialize the same way.
    """

    code: str = "CONTROLLERSHIP_WARNING"

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return vars(self) == vars(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.args))

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": str(self)}
        payload.update({k: v for k, v in vars(self).items() if not k.startswith("_")})
        return payload


class DataGapWarning(ControllershipWarning):
    """Input data is missing; the affected value contributes zero."""

    code: str = "DATA_GAP"

    def __init__(self, subject: str, reason: str):
        self.subject = subject
        self.reason = reason
        super().__init__(f"{subject}: {reason}")


class CalculationFallback(ControllershipWarning):
    """A formula mapping had no auxiliary premise and was computed as direct."""

    code: str = "CALCULATION_FALLBACK"

    def __init__(self, mapping_id: str, target_id: str, period: tuple[int, int]):
        self.mapping_id = mapping_id
        self.target_id = target_id
        self.period = period
        super().__init__(
            f"Mapping {mapping_id} fell back to direct computation for "
            f"{target_id} in {period[0]}-{period[1]:02d}"
        )
