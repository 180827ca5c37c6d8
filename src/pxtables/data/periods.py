"""Period-code canonicalization and time-dimension detection.

PxWeb providers encode time coordinates in several shapes (``2024``,
``2024Q1``/``2024K1``, ``2024M03``, ``2024-03``, ``2024-03-01``). Every shape is
mapped to the first calendar day of its period so rows from different
frequencies sort and upsert on a single ``date`` key.
"""

import re
from collections.abc import Callable, Sequence

from ..errors import NoTimeDimension
from .models import Frequency, TableMetadata, Variable

# Substrings of a variable code that mark it as the time dimension.
TIME_TOKENS: tuple[str, ...] = (
    "year",
    "time",
    "quarter",
    "month",
    "vuosi",
    "aika",
    "kuukausi",
    "neljännes",
)

_LEADING_YEAR = re.compile(r"^\d{4}")

PeriodRule = tuple[re.Pattern[str], Callable[[re.Match[str]], str], Frequency | None]


def _quarter_start(match: re.Match[str]) -> str:
    month = (int(match.group(2)) - 1) * 3 + 1
    return f"{match.group(1)}-{month:02d}-01"


def _month_start(match: re.Match[str]) -> str:
    return f"{match.group(1)}-{match.group(2)}-01"


def _unchanged(match: re.Match[str]) -> str:
    return match.group(0)


def _year_start(match: re.Match[str]) -> str:
    return f"{match.group(1)}-01-01"


# Tested in order; the first matching pattern wins. A ``None`` frequency keeps
# whatever the caller supplied.
PERIOD_RULES: tuple[PeriodRule, ...] = (
    (re.compile(r"^(\d{4})[QK]([1-4])$"), _quarter_start, Frequency.QUARTERLY),
    (re.compile(r"^(\d{4})M(0[1-9]|1[0-2])$"), _month_start, Frequency.MONTHLY),
    (re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$"), _month_start, Frequency.MONTHLY),
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), _unchanged, None),
    (re.compile(r"^(\d{4})$"), _year_start, Frequency.ANNUAL),
)


def normalize(
    raw_key: str,
    default_frequency: Frequency = Frequency.UNKNOWN,
) -> tuple[str, Frequency]:
    """Map a provider period code to an ISO day and its detected frequency.

    Unrecognized keys are returned unchanged with ``Frequency.UNKNOWN`` so a
    single odd period never aborts a table.
    """
    key = str(raw_key).strip()
    for pattern, render, frequency in PERIOD_RULES:
        match = pattern.match(key)
        if match:
            return render(match), frequency or default_frequency
    return key, Frequency.UNKNOWN


def _looks_like_time(variable: Variable) -> bool:
    code = variable.code.lower()
    if any(token in code for token in TIME_TOKENS):
        return True
    return bool(variable.values) and bool(_LEADING_YEAR.match(variable.values[0]))


def infer_time_index(variables: Sequence[Variable]) -> int | None:
    """Return the position of the time variable, or ``None`` when undetermined.

    A provider ``time`` flag always wins; heuristics apply only when no
    variable carries it.
    """
    for index, variable in enumerate(variables):
        if variable.is_time:
            return index
    for index, variable in enumerate(variables):
        if _looks_like_time(variable):
            return index
    return None


def resolve_time_index(metadata: TableMetadata) -> int:
    """Return the time variable's position or raise :class:`NoTimeDimension`."""
    index = infer_time_index(metadata.variables)
    if index is None:
        raise NoTimeDimension(
            f"Table {metadata.title!r} has no time variable among {', '.join(metadata.codes)}."
        )
    return index


def detect_frequency(metadata: TableMetadata) -> Frequency:
    """Detect the table's frequency from the first period of its time variable."""
    index = infer_time_index(metadata.variables)
    if index is None:
        return Frequency.UNKNOWN
    values = metadata.variables[index].values
    if not values:
        return Frequency.UNKNOWN
    return normalize(values[0])[1]


__all__ = [
    "PERIOD_RULES",
    "TIME_TOKENS",
    "detect_frequency",
    "infer_time_index",
    "normalize",
    "resolve_time_index",
]
