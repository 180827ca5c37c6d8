"""Group selected canonical rows into chartable series."""

from collections.abc import Collection, Iterable

from attrs import define, field

from ..data.models import CanonicalRow, join_key
from ..data.query import TOTAL_MARKERS

LABEL_SEPARATOR = ", "
FALLBACK_LABEL = "Series"


@define(slots=True)
class ChartSeries:
    """Points of one dimension combination, ordered by date."""

    key: str
    label: str
    points: list[tuple[str, float]] = field(factory=list)

    @property
    def dates(self) -> list[str]:
        return [date for date, _ in self.points]

    @property
    def values(self) -> list[float]:
        return [value for _, value in self.points]


def series_key(row: CanonicalRow) -> str:
    """Coded dimension values ordered by variable code; stable across input order."""
    return join_key(row.dimensions[code] for code in sorted(row.dimensions))


def series_label(row: CanonicalRow, total_markers: Collection[str] = TOTAL_MARKERS) -> str:
    """Join the informative dimension labels, skipping blanks and totals."""
    markers = {marker.lower() for marker in total_markers}
    parts = [
        label
        for label in row.dimension_labels.values()
        if label and label.strip().lower() not in markers
    ]
    return LABEL_SEPARATOR.join(parts) or FALLBACK_LABEL


def group_for_chart(
    rows: Iterable[CanonicalRow],
    selected_ids: Collection[str],
    *,
    total_markers: Collection[str] = TOTAL_MARKERS,
) -> dict[str, ChartSeries]:
    """Group selected rows by dimension combination.

    Null values are left out rather than zero-filled. The result is ordered by
    series key and each series by date, so input order never matters.
    """
    wanted = set(selected_ids)
    grouped: dict[str, ChartSeries] = {}
    for row in rows:
        if row.id not in wanted:
            continue
        key = series_key(row)
        series = grouped.get(key)
        if series is None:
            series = grouped[key] = ChartSeries(key=key, label=series_label(row, total_markers))
        if row.value is not None:
            series.points.append((row.date, row.value))
    for series in grouped.values():
        series.points.sort(key=lambda point: point[0])
    return {key: grouped[key] for key in sorted(grouped)}


__all__ = ["ChartSeries", "group_for_chart", "series_key", "series_label"]
