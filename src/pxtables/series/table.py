"""Normalized table view of canonical rows for filtering and pivoting."""

from collections.abc import Iterable, Sequence
from typing import Literal

from attrs import define, field

from ..data.models import CanonicalRow, TableMetadata
from ..data.periods import infer_time_index

ColumnType = Literal["dimension", "time", "value"]

VALUE_COLUMN_LABEL = "Value"


@define(slots=True, frozen=True)
class ColumnDef:
    """Column descriptor: one per variable plus the trailing value column."""

    id: str
    code: str
    label: str
    type: ColumnType


@define(slots=True)
class Table:
    """Columns, rows and descriptive metadata of a flattened PxWeb table."""

    columns: list[ColumnDef] = field(factory=list)
    rows: list[CanonicalRow] = field(factory=list)
    title: str = ""
    updated: str | None = None
    source: str | None = None
    unit: str | None = None
    time_variable: str | None = None

    @property
    def dimension_columns(self) -> list[ColumnDef]:
        return [column for column in self.columns if column.type == "dimension"]

    @property
    def time_column(self) -> ColumnDef | None:
        return next((column for column in self.columns if column.type == "time"), None)

    def select(self, selected_ids: Iterable[str] | None) -> list[CanonicalRow]:
        """Return rows whose id is selected, or every row when ``selected_ids`` is None."""
        if selected_ids is None:
            return list(self.rows)
        wanted = set(selected_ids)
        return [row for row in self.rows if row.id in wanted]

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation of the table."""
        return {
            "title": self.title,
            "updated": self.updated,
            "source": self.source,
            "unit": self.unit,
            "time_variable": self.time_variable,
            "columns": [
                {"id": c.id, "code": c.code, "label": c.label, "type": c.type}
                for c in self.columns
            ],
            "rows": [
                {
                    "id": row.id,
                    "dimensions": dict(row.dimensions),
                    "dimension_labels": dict(row.dimension_labels),
                    "date": row.date,
                    "date_label": row.date_label,
                    "period": row.period,
                    "frequency": row.frequency.value,
                    "value": row.value,
                }
                for row in self.rows
            ],
        }


def transform(
    rows: Sequence[CanonicalRow],
    metadata: TableMetadata,
    *,
    unit: str | None = None,
) -> Table:
    """Wrap canonical rows with column definitions derived from ``metadata``."""
    time_index = infer_time_index(metadata.variables)
    columns = [
        ColumnDef(
            id=variable.code,
            code=variable.code,
            label=variable.label,
            type="time" if index == time_index else "dimension",
        )
        for index, variable in enumerate(metadata.variables)
    ]
    columns.append(ColumnDef(id="value", code="value", label=VALUE_COLUMN_LABEL, type="value"))
    return Table(
        columns=columns,
        rows=list(rows),
        title=metadata.title,
        updated=metadata.updated,
        source=metadata.source,
        unit=unit,
        time_variable=metadata.variables[time_index].code if time_index is not None else None,
    )


def unique_dimension_values(rows: Iterable[CanonicalRow], code: str) -> list[tuple[str, str]]:
    """Distinct ``(value, label)`` pairs of one dimension, in first-seen order."""
    seen: dict[str, str] = {}
    for row in rows:
        value = row.dimensions.get(code)
        if value and value not in seen:
            seen[value] = row.dimension_labels.get(code) or value
    return list(seen.items())


__all__ = ["ColumnDef", "Table", "VALUE_COLUMN_LABEL", "transform", "unique_dimension_values"]
