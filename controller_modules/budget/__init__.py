"""
Budget Module (``controller_modules.budget``).

Responsibility
--------------
Budget overlay assembly (premises, historical, manual and imported
components), rule-based projection of classified accounts, and
persistence of accepted projections.

Architecture position
---------------------
**Modules layer** -- glue over ``controller_engines`` plus the ORM model
for applied projections.

Failure modes
-------------
* Configuration errors from the engines propagate unchanged.
* Database failures roll back the whole apply and re-raise.
"""

from controller_modules.budget.config import BudgetConfig
from controller_modules.budget.orm import GeneratedBudgetEntryModel
from controller_modules.budget.service import BudgetService

__all__ = [
    "BudgetConfig",
    "BudgetService",
    "GeneratedBudgetEntryModel",
]
