"""Default PxWeb query construction from table metadata."""

from collections.abc import Collection, Iterable, Mapping, Sequence

import structlog
from attrs import define, field

from .models import Query, Selection, TableMetadata, Variable
from .periods import infer_time_index

logger = structlog.get_logger(__name__)

# Labels that mark an aggregate category. Matched case-insensitively against
# the whole label. Callers pass their own set to support further locales.
TOTAL_MARKERS: frozenset[str] = frozenset({"total", "yhteensä", "sss"})


def _freeze_overrides(overrides: Mapping[str, Iterable[str]] | None) -> dict[str, tuple[str, ...]]:
    return {code: tuple(values) for code, values in (overrides or {}).items()}


@define(slots=True, frozen=True)
class QueryFilters:
    """Caller-supplied narrowing of the default selection."""

    periods: tuple[str, ...] | None = field(
        default=None, converter=lambda value: None if value is None else tuple(value)
    )
    overrides: dict[str, tuple[str, ...]] = field(factory=dict, converter=_freeze_overrides)


def _intersect(requested: Iterable[str], variable: Variable) -> tuple[str, ...]:
    """Keep requested values known to the variable, in metadata order."""
    wanted = set(requested)
    return tuple(value for value in variable.values if value in wanted)


def _default_values(variable: Variable, total_markers: Collection[str]) -> tuple[str, ...]:
    """Pick the aggregate category when one exists, otherwise the first value."""
    markers = {marker.lower() for marker in total_markers}
    for value, label in zip(variable.values, variable.value_labels):
        if label.strip().lower() in markers:
            return (value,)
    return variable.values[:1]


def _time_values(
    variable: Variable,
    filters: QueryFilters,
    max_periods: int | None,
) -> tuple[str, ...]:
    if filters.periods is not None:
        return _intersect(filters.periods, variable)
    if variable.code in filters.overrides:
        return _intersect(filters.overrides[variable.code], variable)
    if max_periods is not None:
        # PxWeb lists periods chronologically, so the tail is the most recent.
        return variable.values[-max_periods:]
    return variable.values


def build_query(
    metadata: TableMetadata,
    filters: QueryFilters | None = None,
    *,
    max_periods: int | None = None,
    total_markers: Collection[str] = TOTAL_MARKERS,
    response_format: str = "json",
) -> Query:
    """Build a selection that avoids expanding every dimension by default.

    The time variable gets every period (or the filtered/most recent ones).
    Overridden variables get the overlap of the override with known values and
    are omitted when nothing overlaps, which PxWeb reads as "everything".
    Remaining variables get their total category or their first value.
    """
    if max_periods is not None and max_periods < 1:
        raise ValueError(f"max_periods must be a positive integer, got {max_periods}.")
    filters = filters or QueryFilters()
    time_index = infer_time_index(metadata.variables)

    selections: list[Selection] = []
    for index, variable in enumerate(metadata.variables):
        if index == time_index:
            values = _time_values(variable, filters, max_periods)
        elif variable.code in filters.overrides:
            values = _intersect(filters.overrides[variable.code], variable)
        else:
            values = _default_values(variable, total_markers)
        if not values:
            logger.debug("query.variable_omitted", table=metadata.title, variable=variable.code)
            continue
        selections.append(Selection(code=variable.code, values=values))

    unknown = sorted(set(filters.overrides) - set(metadata.codes))
    if unknown:
        logger.debug("query.unknown_overrides", table=metadata.title, variables=unknown)
    return Query(selections=selections, response_format=response_format)


def parse_override(text: str) -> tuple[str, tuple[str, ...]]:
    """Parse ``CODE=value1,value2`` into a variable code and its values."""
    code, sep, raw_values = text.partition("=")
    if not sep or not code.strip():
        raise ValueError(f"Expected CODE=value[,value...], got {text!r}.")
    values = tuple(value.strip() for value in raw_values.split(",") if value.strip())
    return code.strip(), values


def merge_overrides(pairs: Sequence[tuple[str, Sequence[str]]]) -> dict[str, tuple[str, ...]]:
    """Combine repeated ``CODE=...`` overrides, preserving first-seen order."""
    merged: dict[str, list[str]] = {}
    for code, values in pairs:
        bucket = merged.setdefault(code, [])
        bucket.extend(value for value in values if value not in bucket)
    return {code: tuple(values) for code, values in merged.items()}


__all__ = [
    "TOTAL_MARKERS",
    "QueryFilters",
    "build_query",
    "merge_overrides",
    "parse_override",
]
