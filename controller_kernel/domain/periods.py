"""
Periods -- (year, month) keys used by every statement and budget structure.

Responsibility:
    Normalize month designations at the ingestion boundary and build the
    period grids (years x 12 months) and trailing windows the engines
    iterate over.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - A Period is always ``(year, month)`` with ``1 <= month <= 12``.
    - Grids and windows are returned in chronological order, so anything
      iterated from them is deterministic.
"""

from collections.abc import Iterable

Period = tuple[int, int]

MONTH_NAMES: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_MONTH_LOOKUP: dict[str, int] = {}
for _index, _name in enumerate(MONTH_NAMES, start=1):
    _MONTH_LOOKUP[_name.casefold()] = _index
    _MONTH_LOOKUP[_name[:3].casefold()] = _index


def normalize_month(value: int | str) -> int:
    """Return the month number for an int, numeric string or English month name.

    Raises:
        ValueError: If the value does not designate a month.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid month: {value!r}")
    if isinstance(value, int):
        month = value
    else:
        text = str(value).strip()
        if text.isdigit():
            month = int(text)
        else:
            found = _MONTH_LOOKUP.get(text.casefold())
            if found is None:
                raise ValueError(f"Invalid month: {value!r}")
            month = found
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {value!r}")
    return month


def month_name(month: int) -> str:
    return MONTH_NAMES[month - 1]


def period_grid(
    years: Iterable[int],
    months: Iterable[int | str] | None = None,
) -> tuple[Period, ...]:
    """Full cross product of the given years and months, sorted.

    ``months`` of ``None`` selects 1..12; entries go through ``normalize_month``.
    """
    selected = range(1, 13) if months is None else sorted({normalize_month(m) for m in months})
    return tuple(
        (year, month) for year in sorted(set(years)) for month in selected
    )


def year_periods(year: int) -> tuple[Period, ...]:
    return tuple((year, month) for month in range(1, 13))


def shift_months(period: Period, delta: int) -> Period:
    """Move a period by ``delta`` months (negative moves backwards)."""
    index = period[0] * 12 + (period[1] - 1) + delta
    return (index // 12, index % 12 + 1)


def trailing_periods(before: Period, count: int) -> tuple[Period, ...]:
    """The ``count`` periods strictly before ``before``, oldest first."""
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    return tuple(shift_months(before, -offset) for offset in range(count, 0, -1))


def format_period(period: Period) -> str:
    return f"{period[0]}-{period[1]:02d}"
