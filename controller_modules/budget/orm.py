"""
SQLAlchemy ORM persistence models for the Budget module.

Responsibility
--------------
Persist applied budget projections: the monthly values generated from
classification rules once a controller accepts them.  Rules, assumptions
and the budget overlay itself are computed DTOs and are not persisted here.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``BudgetService`` for
persistence.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String(50) for readability and portability.
* One applied value per (target account, year, month); applying again
  updates the row in place.

Audit relevance
---------------
* ``created_by`` / ``updated_by`` record who applied each projection.
* ``rule_id`` and ``note`` keep the rule and the calculation behind the
  stored value.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from controller_kernel.db.base import TrackedBase


class GeneratedBudgetEntryModel(TrackedBase):
    """
    An applied monthly budget projection.

    Maps to the ``GeneratedBudgetEntry`` DTO in
    ``controller_kernel.domain.budget``.

    Guarantees:
        - One row per (target_account_ref, year, month).
        - ``computed_value`` uses Decimal (Numeric(38,9)).
    """

    __tablename__ = "budget_generated_entries"

    __table_args__ = (
        UniqueConstraint(
            "target_account_ref", "year", "month",
            name="uq_budget_generated_account_period",
        ),
        Index("idx_budget_generated_year", "year"),
        Index("idx_budget_generated_rule", "rule_id"),
    )

    rule_id: Mapped[str] = mapped_column(String(100), nullable=False)
    target_account_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    target_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    classification: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int]
    month: Mapped[int]
    computed_value: Mapped[Decimal]
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    breakdown: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_dto(self):
        from controller_kernel.domain.budget import Classification, GeneratedBudgetEntry

        return GeneratedBudgetEntry(
            rule_id=self.rule_id,
            target_account_ref=self.target_account_ref,
            classification=Classification(self.classification),
            year=self.year,
            month=self.month,
            computed_value=Decimal(str(self.computed_value)),
            note=self.note,
            target_label=self.target_label,
            breakdown=dict(self.breakdown or {}),
        )

    @classmethod
    def from_dto(
        cls, dto, created_by: str, generated_at: datetime,
    ) -> "GeneratedBudgetEntryModel":
        return cls(
            rule_id=dto.rule_id,
            target_account_ref=dto.target_account_ref,
            target_label=dto.target_label,
            classification=dto.classification.value,
            year=dto.year,
            month=dto.month,
            computed_value=dto.computed_value,
            note=dto.note,
            breakdown=dict(dto.breakdown),
            generated_at=generated_at,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return (
            f"<GeneratedBudgetEntryModel {self.target_account_ref} "
            f"{self.year}-{self.month:02d} [{self.classification}]>"
        )
