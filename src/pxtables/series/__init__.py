"""Table, chart and observation views over canonical rows."""

from .chart import ChartSeries, group_for_chart, series_key, series_label
from .export import format_value, to_csv
from .observations import to_observations
from .table import ColumnDef, Table, transform, unique_dimension_values

__all__ = [
    "ChartSeries",
    "ColumnDef",
    "Table",
    "format_value",
    "group_for_chart",
    "series_key",
    "series_label",
    "to_csv",
    "to_observations",
    "transform",
    "unique_dimension_values",
]
