"""Domain models for PxWeb table metadata, provider payloads, and canonical rows."""

from collections import Counter
from collections.abc import Iterable, Sequence
from enum import Enum
from math import prod
from typing import Any

import marshmallow as ma
from attrs import define, field

from ..errors import MalformedMetadata, MalformedResponse


class Frequency(str, Enum):
    """Sampling frequency detected from a period code."""

    ANNUAL = "A"
    QUARTERLY = "Q"
    MONTHLY = "M"
    UNKNOWN = "unknown"


def _strip(value: object) -> str:
    """Trim surrounding whitespace from a field."""
    return str(value).strip()


def _str_tuple(values: Iterable[object]) -> tuple[str, ...]:
    """Freeze a sequence of coded values as stripped strings."""
    return tuple(_strip(value) for value in values)


def _int_tuple(values: Iterable[object]) -> tuple[int, ...]:
    return tuple(int(value) for value in values)


@define(slots=True, frozen=True)
class Variable:
    """A single dimension of a statistical table with its coded values."""

    code: str = field(converter=_strip)
    label: str = field(converter=_strip)
    values: tuple[str, ...] = field(converter=_str_tuple)
    value_labels: tuple[str, ...] = field(converter=_str_tuple)
    is_time: bool = field(default=False, converter=bool)
    elimination: bool = field(default=False, converter=bool)

    def __attrs_post_init__(self) -> None:
        """Reject value/label misalignment and duplicate codes."""
        if len(self.values) != len(self.value_labels):
            raise MalformedMetadata(
                f"Variable {self.code!r} has {len(self.values)} values "
                f"but {len(self.value_labels)} value labels."
            )
        if len(set(self.values)) != len(self.values):
            duplicates = sorted(value for value, count in Counter(self.values).items() if count > 1)
            raise MalformedMetadata(
                f"Variable {self.code!r} repeats coded values: {', '.join(duplicates)}."
            )

    def label_map(self) -> dict[str, str]:
        """Return the coded value to human label lookup."""
        return dict(zip(self.values, self.value_labels))


class VariableSchema(ma.Schema):
    """Marshmallow schema for PxWeb ``variables`` entries."""

    class Meta:
        unknown = ma.EXCLUDE

    code = ma.fields.Str(required=True)
    label = ma.fields.Str(data_key="text", load_default="")
    values = ma.fields.List(ma.fields.Str(), load_default=list)
    value_labels = ma.fields.List(
        ma.fields.Str(), data_key="valueTexts", load_default=None, allow_none=True
    )
    is_time = ma.fields.Bool(data_key="time", load_default=False)
    elimination = ma.fields.Bool(load_default=False)

    @ma.post_load
    def make_variable(self, data: dict[str, Any], **kwargs: object) -> Variable:
        """Instantiate :class:`Variable`, labelling unlabelled values by their code."""
        if data.get("value_labels") is None:
            data["value_labels"] = list(data["values"])
        data["label"] = data.get("label") or data["code"]
        return Variable(**data)


@define(slots=True, frozen=True)
class TableMetadata:
    """Metadata describing a PxWeb table and its ordered variables."""

    title: str = field(converter=_strip)
    variables: tuple[Variable, ...] = field(converter=tuple)
    source: str | None = None
    updated: str | None = None

    def __attrs_post_init__(self) -> None:
        """Enforce unique variable codes and at most one flagged time variable."""
        codes = [variable.code for variable in self.variables]
        if len(set(codes)) != len(codes):
            raise MalformedMetadata(f"Table {self.title!r} repeats variable codes: {codes}.")
        flagged = [variable.code for variable in self.variables if variable.is_time]
        if len(flagged) > 1:
            raise MalformedMetadata(
                f"Table {self.title!r} flags several time variables: {', '.join(flagged)}."
            )

    @property
    def codes(self) -> tuple[str, ...]:
        """Variable codes in declaration order."""
        return tuple(variable.code for variable in self.variables)

    def variable(self, code: str) -> Variable:
        """Return the variable with ``code`` or raise ``KeyError``."""
        for variable in self.variables:
            if variable.code == code:
                return variable
        raise KeyError(code)

    def select(self, codes: Sequence[str]) -> "TableMetadata":
        """Project the metadata onto ``codes`` in the given order."""
        known = {variable.code: variable for variable in self.variables}
        missing = [code for code in codes if code not in known]
        if missing:
            raise MalformedMetadata(
                f"Table {self.title!r} has no variables named {', '.join(missing)}."
            )
        return TableMetadata(
            title=self.title,
            variables=[known[code] for code in codes],
            source=self.source,
            updated=self.updated,
        )


class TableMetadataSchema(ma.Schema):
    """Marshmallow schema for a PxWeb table metadata document."""

    class Meta:
        unknown = ma.EXCLUDE

    title = ma.fields.Str(load_default="")
    variables = ma.fields.List(ma.fields.Nested(VariableSchema), load_default=list)
    source = ma.fields.Str(load_default=None, allow_none=True)
    updated = ma.fields.Str(load_default=None, allow_none=True)

    @ma.post_load
    def make_metadata(self, data: dict[str, Any], **kwargs: object) -> TableMetadata:
        """Instantiate :class:`TableMetadata` from validated payloads."""
        return TableMetadata(**data)


@define(slots=True, frozen=True)
class RawDataRow:
    """One cell of a sparse PxWeb response: a coordinate key and raw values."""

    key: tuple[str, ...] = field(converter=_str_tuple)
    values: tuple[Any, ...] = field(converter=tuple, factory=tuple)

    @property
    def raw_value(self) -> Any:
        """The first raw value, which is the only one the engine consumes."""
        return self.values[0] if self.values else None


class RawDataRowSchema(ma.Schema):
    """Marshmallow schema for entries of the PxWeb ``data`` array."""

    class Meta:
        unknown = ma.EXCLUDE

    key = ma.fields.List(ma.fields.Str(), required=True)
    values = ma.fields.List(ma.fields.Raw(allow_none=True), load_default=list)

    @ma.post_load
    def make_row(self, data: dict[str, Any], **kwargs: object) -> RawDataRow:
        return RawDataRow(key=data["key"], values=data["values"])


@define(slots=True, frozen=True)
class Column:
    """Column descriptor of a PxWeb JSON response (``d``, ``t`` or ``c``)."""

    code: str
    text: str = ""
    type: str = "d"


class ColumnSchema(ma.Schema):
    class Meta:
        unknown = ma.EXCLUDE

    code = ma.fields.Str(required=True)
    text = ma.fields.Str(load_default="")
    type = ma.fields.Str(load_default="d")

    @ma.post_load
    def make_column(self, data: dict[str, Any], **kwargs: object) -> Column:
        return Column(**data)


@define(slots=True, frozen=True)
class SparseResponse:
    """PxWeb ``json`` response: one row per non-empty cell."""

    rows: tuple[RawDataRow, ...] = field(converter=tuple, factory=tuple)
    columns: tuple[Column, ...] = field(converter=tuple, factory=tuple)
    comments: tuple[Any, ...] = field(converter=tuple, factory=tuple)

    def key_codes(self) -> tuple[str, ...] | None:
        """Variable codes addressed by each row key, when the response declares them."""
        if not self.columns:
            return None
        return tuple(column.code for column in self.columns if column.type in {"d", "t"})

    def unit(self) -> str | None:
        """Text of the first content column, which PxWeb uses for the unit."""
        for column in self.columns:
            if column.type == "c":
                return column.text or None
        return None


class SparseResponseSchema(ma.Schema):
    """Marshmallow schema for PxWeb ``json`` data responses."""

    class Meta:
        unknown = ma.EXCLUDE

    columns = ma.fields.List(ma.fields.Nested(ColumnSchema), load_default=list)
    comments = ma.fields.List(ma.fields.Raw(), load_default=list)
    data = ma.fields.List(ma.fields.Nested(RawDataRowSchema), required=True)

    @ma.post_load
    def make_response(self, data: dict[str, Any], **kwargs: object) -> SparseResponse:
        return SparseResponse(rows=data["data"], columns=data["columns"], comments=data["comments"])


@define(slots=True, frozen=True)
class DenseDimension:
    """A JSON-stat2 dimension with its categories in positional order."""

    code: str
    label: str
    codes: tuple[str, ...] = field(converter=_str_tuple)
    labels: tuple[str, ...] = field(converter=_str_tuple)

    def to_variable(self, *, is_time: bool = False, fallback_label: str = "") -> Variable:
        """Describe this dimension as a :class:`Variable`."""
        return Variable(
            code=self.code,
            label=self.label or fallback_label or self.code,
            values=self.codes,
            value_labels=self.labels,
            is_time=is_time,
        )


@define(slots=True, frozen=True)
class DenseResponse:
    """JSON-stat2 dataset: a dense value buffer over the cartesian product of dimensions."""

    dim_order: tuple[str, ...] = field(converter=_str_tuple)
    sizes: tuple[int, ...] = field(converter=_int_tuple)
    values: tuple[Any, ...] = field(converter=tuple)
    dimensions: tuple[DenseDimension, ...] = field(converter=tuple, factory=tuple)
    label: str = ""
    source: str | None = None
    updated: str | None = None
    time_dimension: str | None = None

    def to_metadata(self, base: TableMetadata | None = None) -> TableMetadata:
        """Build metadata for exactly the returned subset of the table.

        The time flag is taken from ``base`` when it flags a variable, otherwise
        from the JSON-stat2 ``role.time`` declaration.
        """
        by_code = {dimension.code: dimension for dimension in self.dimensions}
        missing = [code for code in self.dim_order if code not in by_code]
        if missing:
            raise MalformedMetadata(
                f"Dataset declares dimensions without categories: {', '.join(missing)}."
            )
        base_vars = {variable.code: variable for variable in base.variables} if base else {}
        time_code = next(
            (variable.code for variable in base_vars.values() if variable.is_time),
            self.time_dimension,
        )
        variables = [
            by_code[code].to_variable(
                is_time=code == time_code,
                fallback_label=base_vars[code].label if code in base_vars else "",
            )
            for code in self.dim_order
        ]
        return TableMetadata(
            title=self.label or (base.title if base else ""),
            variables=variables,
            source=self.source or (base.source if base else None),
            updated=self.updated or (base.updated if base else None),
        )


def _position(raw: Any, what: str) -> int:
    """Coerce a JSON-stat2 position to an integer or reject the payload."""
    if isinstance(raw, bool):
        raise MalformedResponse(f"Invalid {what} {raw!r}.")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedResponse(f"Invalid {what} {raw!r}.") from exc


def _category_codes(category: dict[str, Any]) -> list[str]:
    """Return category codes ordered by their JSON-stat2 position."""
    index = category.get("index")
    if isinstance(index, dict):
        positions = {code: _position(pos, "category position") for code, pos in index.items()}
        return sorted(positions, key=positions.__getitem__)
    if isinstance(index, list):
        return [str(code) for code in index]
    # A single-category dimension may omit the index entirely.
    return list(category.get("label") or {})


def _expand_values(raw: Any, sizes: Sequence[int]) -> list[Any]:
    """Expand an index-keyed JSON-stat2 value object into a dense list."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        dense: list[Any] = [None] * prod(sizes)
        for position, value in raw.items():
            offset = _position(position, "value index")
            if not 0 <= offset < len(dense):
                raise MalformedResponse(f"Value index {offset} outside dataset of {len(dense)}.")
            dense[offset] = value
        return dense
    raise MalformedResponse(f"Unsupported JSON-stat2 value container {type(raw).__name__}.")


class CategorySchema(ma.Schema):
    class Meta:
        unknown = ma.EXCLUDE

    index = ma.fields.Raw(load_default=None, allow_none=True)
    label = ma.fields.Dict(keys=ma.fields.Str(), values=ma.fields.Str(), load_default=dict)


class DimensionSchema(ma.Schema):
    class Meta:
        unknown = ma.EXCLUDE

    label = ma.fields.Str(load_default="")
    category = ma.fields.Nested(CategorySchema, required=True)


class DenseResponseSchema(ma.Schema):
    """Marshmallow schema for JSON-stat2 ``dataset`` documents."""

    class Meta:
        unknown = ma.EXCLUDE

    id = ma.fields.List(ma.fields.Str(), required=True)
    size = ma.fields.List(ma.fields.Int(), required=True)
    value = ma.fields.Raw(required=True)
    dimension = ma.fields.Dict(
        keys=ma.fields.Str(), values=ma.fields.Nested(DimensionSchema), required=True
    )
    role = ma.fields.Dict(
        keys=ma.fields.Str(), values=ma.fields.List(ma.fields.Str()), load_default=dict
    )
    label = ma.fields.Str(load_default="", allow_none=True)
    source = ma.fields.Str(load_default=None, allow_none=True)
    updated = ma.fields.Str(load_default=None, allow_none=True)

    @ma.post_load
    def make_response(self, data: dict[str, Any], **kwargs: object) -> DenseResponse:
        """Instantiate :class:`DenseResponse` with categories in positional order."""
        dimensions = []
        for code, dimension in data["dimension"].items():
            category = dimension["category"]
            codes = _category_codes(category)
            labels = [category["label"].get(value, value) for value in codes]
            dimensions.append(
                DenseDimension(code=code, label=dimension["label"], codes=codes, labels=labels)
            )
        time_roles = data["role"].get("time") or []
        return DenseResponse(
            dim_order=data["id"],
            sizes=data["size"],
            values=_expand_values(data["value"], data["size"]),
            dimensions=dimensions,
            label=data.get("label") or "",
            source=data.get("source"),
            updated=data.get("updated"),
            time_dimension=time_roles[0] if time_roles else None,
        )


KEY_SEPARATOR = "|"


def join_key(parts: Iterable[str]) -> str:
    """Join coded values with ``|``, backslash-escaping separators inside values."""
    return KEY_SEPARATOR.join(
        part.replace("\\", "\\\\").replace(KEY_SEPARATOR, "\\" + KEY_SEPARATOR) for part in parts
    )


@define(slots=True, frozen=True)
class CanonicalRow:
    """A normalized observation: one distinct (dimensions, date) combination."""

    id: str
    dimensions: dict[str, str]
    dimension_labels: dict[str, str]
    date: str
    date_label: str
    period: str
    frequency: Frequency
    value: float | None


@define(slots=True, frozen=True)
class Selection:
    """Values requested for one variable in a PxWeb query."""

    code: str
    values: tuple[str, ...] = field(converter=_str_tuple)
    filter: str = "item"

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "selection": {"filter": self.filter, "values": list(self.values)}}


@define(slots=True, frozen=True)
class Query:
    """An ordered PxWeb selection plus the requested response format."""

    selections: tuple[Selection, ...] = field(converter=tuple, factory=tuple)
    response_format: str = "json"

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(selection.code for selection in self.selections)

    def values_for(self, code: str) -> tuple[str, ...] | None:
        """Return the selected values for ``code``, or ``None`` when it is omitted."""
        for selection in self.selections:
            if selection.code == code:
                return selection.values
        return None

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON body expected by a PxWeb POST request."""
        return {
            "query": [selection.to_payload() for selection in self.selections],
            "response": {"format": self.response_format},
        }


@define(slots=True, frozen=True)
class TableNode:
    """An entry of the PxWeb navigation tree: a folder or a table."""

    id: str
    text: str
    type: str
    path: tuple[str, ...] = field(converter=_str_tuple)
    updated: str | None = None

    @property
    def is_table(self) -> bool:
        return self.type == "table"


class TableNodeSchema(ma.Schema):
    """Marshmallow schema for PxWeb navigation listings."""

    class Meta:
        unknown = ma.EXCLUDE

    id = ma.fields.Str(required=True)
    text = ma.fields.Str(load_default="")
    type = ma.fields.Str(load_default="l")
    updated = ma.fields.Str(load_default=None, allow_none=True)

    @ma.post_load
    def make_node(self, data: dict[str, Any], **kwargs: object) -> TableNode:
        """Map PxWeb node types (``t`` table, ``l`` level) onto :class:`TableNode`."""
        return TableNode(
            id=data["id"],
            text=data["text"] or data["id"],
            type="table" if data["type"] == "t" else "folder",
            path=(data["id"],),
            updated=data["updated"],
        )


@define(slots=True, frozen=True)
class Observation:
    """A date-keyed value destined for the observation store."""

    series_id: str = field(converter=_strip)
    date: str = field(converter=_strip)
    value: float | None = None


@define(slots=True, frozen=True, kw_only=True)
class SeriesRecord:
    """Series metadata row written alongside its observations."""

    series_id: str = field(converter=_strip)
    provider_id: str = field(converter=_strip)
    title: str = field(converter=_strip)
    source: str = "STATFIN"
    description: str | None = None
    freq: str | None = None
    unit: str | None = None
    geo: str | None = None


__all__ = [
    "CanonicalRow",
    "Column",
    "DenseDimension",
    "DenseResponse",
    "DenseResponseSchema",
    "Frequency",
    "KEY_SEPARATOR",
    "Observation",
    "Query",
    "RawDataRow",
    "Selection",
    "SeriesRecord",
    "SparseResponse",
    "SparseResponseSchema",
    "TableMetadata",
    "TableMetadataSchema",
    "TableNode",
    "TableNodeSchema",
    "Variable",
    "VariableSchema",
    "join_key",
]
