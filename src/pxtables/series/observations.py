"""Assemble canonical rows into date-keyed observations for a single series."""

from collections.abc import Iterable

from ..data.models import CanonicalRow, Observation


def to_observations(
    rows: Iterable[CanonicalRow],
    series_id: str,
    *,
    keep_missing: bool = False,
) -> list[Observation]:
    """Drop dimensions and keep one observation per date, first row winning.

    Missing values are skipped unless ``keep_missing`` is set.
    """
    by_date: dict[str, Observation] = {}
    for row in rows:
        if row.date in by_date:
            continue
        if row.value is None and not keep_missing:
            continue
        by_date[row.date] = Observation(series_id=series_id, date=row.date, value=row.value)
    return [by_date[date] for date in sorted(by_date)]


__all__ = ["to_observations"]
