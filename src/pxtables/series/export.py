"""CSV export of normalized tables."""

import csv
import io
from collections.abc import Iterable
from decimal import Decimal

from .table import VALUE_COLUMN_LABEL, Table

DEFAULT_TIME_LABEL = "Time"


def format_value(value: float | None) -> str:
    """Render a value as a plain decimal string; ``None`` becomes an empty cell."""
    if value is None:
        return ""
    if value.is_integer():
        return str(int(value))
    # repr gives the shortest round-tripping digits; Decimal drops the exponent.
    return format(Decimal(repr(value)), "f")


def to_csv(table: Table, selected_ids: Iterable[str] | None = None) -> str:
    """Serialize selected rows (all rows by default) with human-readable cells."""
    rows = table.select(selected_ids)
    if not rows:
        return ""
    dimension_columns = table.dimension_columns
    time_column = table.time_column

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(
        [
            *(column.label for column in dimension_columns),
            time_column.label if time_column else DEFAULT_TIME_LABEL,
            VALUE_COLUMN_LABEL,
        ]
    )
    for row in rows:
        writer.writerow(
            [
                *(
                    row.dimension_labels.get(column.code) or row.dimensions.get(column.code, "")
                    for column in dimension_columns
                ),
                row.date_label or row.period,
                format_value(row.value),
            ]
        )
    return buffer.getvalue()


__all__ = ["format_value", "to_csv"]
