"""
Values -- Decimal helpers and the per-period value components.

Responsibility:
    Define the two value bundles every statement node carries per period:
    ``PeriodValues`` (actual plus the three adjustment kinds) and
    ``BudgetComponents`` (premises, historical, manual, imported).

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic. ``to_decimal`` refuses floats so binary
      rounding noise can never enter a statement.
    - ``PeriodValues.effective`` and ``BudgetComponents.total`` are derived,
      never stored, so they cannot drift from their components.
"""

from dataclasses import dataclass, fields, replace
from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Decimal | int | str | None) -> Decimal:
    """Convert int/str/Decimal to Decimal. None becomes zero.

    Raises:
        TypeError: If given a float.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError(
            f"Monetary values must not be float, got {value!r}; pass a str or Decimal"
        )
    return Decimal(str(value))


def quantize_money(value: Decimal, places: Decimal = CENT) -> Decimal:
    """Round half-up to ``places`` (cents by default)."""
    return value.quantize(places, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PeriodValues:
    """Actual and adjustment components of one node for one period."""

    actual: Decimal = ZERO
    accounting_adjustment: Decimal = ZERO
    cash_adjustment: Decimal = ZERO
    management_transfer: Decimal = ZERO

    @property
    def effective(self) -> Decimal:
        return (
            self.actual
            + self.accounting_adjustment
            + self.cash_adjustment
            + self.management_transfer
        )

    def add(self, component: str, amount: Decimal) -> "PeriodValues":
        return replace(self, **{component: getattr(self, component) + amount})

    def combine(self, other: "PeriodValues", weight: int = 1) -> "PeriodValues":
        return PeriodValues(
            *(
                getattr(self, f.name) + getattr(other, f.name) * weight
                for f in fields(self)
            )
        )

    def to_dict(self) -> dict[str, str]:
        payload = {f.name: str(getattr(self, f.name)) for f in fields(self)}
        payload["effective"] = str(self.effective)
        return payload


PERIOD_COMPONENTS: tuple[str, ...] = tuple(f.name for f in fields(PeriodValues))


@dataclass(frozen=True)
class BudgetComponents:
    """Budgeted value of one target for one period, split by origin."""

    premises: Decimal = ZERO
    historical: Decimal = ZERO
    manual: Decimal = ZERO
    imported: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.premises + self.historical + self.manual + self.imported

    def combine(self, other: "BudgetComponents", weight: int = 1) -> "BudgetComponents":
        return BudgetComponents(
            *(
                getattr(self, f.name) + getattr(other, f.name) * weight
                for f in fields(self)
            )
        )

    def to_dict(self) -> dict[str, str]:
        payload = {f.name: str(getattr(self, f.name)) for f in fields(self)}
        payload["total"] = str(self.total)
        return payload


BUDGET_ORIGINS: tuple[str, ...] = tuple(f.name for f in fields(BudgetComponents))
