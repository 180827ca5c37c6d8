"""Flatten PxWeb sparse rows and JSON-stat2 dense buffers into canonical rows.

Both flatteners reconstruct a coordinate key aligned with the metadata's
variables and hand it to :class:`RowAssembler`, which owns labelling, period
normalization, value parsing and deduplication.
"""

import math
from collections.abc import Iterable, Iterator, Sequence
from math import prod
from typing import Any

from attrs import define, field

from ..errors import MalformedMetadata, ShapeMismatch
from .models import (
    CanonicalRow,
    DenseResponse,
    RawDataRow,
    SparseResponse,
    TableMetadata,
    join_key,
)
from .periods import normalize, resolve_time_index

MISSING_SENTINELS: frozenset[str] = frozenset({"..", ".", ""})


def parse_value(raw: Any) -> float | None:
    """Parse a raw cell permissively; missing or unparseable cells become ``None``."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        text = str(raw).strip()
        if text in MISSING_SENTINELS:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


@define(slots=True)
class RowAssembler:
    """Turn metadata-aligned coordinate keys into deduplicated canonical rows.

    When several keys normalize to the same dimensions and date, the first one
    wins and later ones are discarded.
    """

    metadata: TableMetadata
    time_index: int = field(init=False)
    _lookups: list[dict[str, str]] = field(init=False, repr=False)
    _seen: set[tuple[tuple[tuple[str, str], ...], str]] = field(
        init=False, factory=set, repr=False
    )
    _rows: list[CanonicalRow] = field(init=False, factory=list, repr=False)

    def __attrs_post_init__(self) -> None:
        self.time_index = resolve_time_index(self.metadata)
        self._lookups = [variable.label_map() for variable in self.metadata.variables]

    def add(self, key: Sequence[str], raw_value: Any) -> CanonicalRow | None:
        """Append the row for ``key``; return ``None`` when it duplicates an earlier one."""
        variables = self.metadata.variables
        if len(key) != len(variables):
            raise ShapeMismatch(
                f"Row key {list(key)} has {len(key)} coordinates; "
                f"table {self.metadata.title!r} has {len(variables)} variables."
            )
        dimensions: dict[str, str] = {}
        labels: dict[str, str] = {}
        for index, (variable, code) in enumerate(zip(variables, key)):
            if index == self.time_index:
                continue
            dimensions[variable.code] = code
            labels[variable.code] = self._lookups[index].get(code, code)

        period = key[self.time_index]
        date, frequency = normalize(period)
        dedup_key = (tuple(dimensions.items()), date)
        if dedup_key in self._seen:
            return None
        self._seen.add(dedup_key)

        row = CanonicalRow(
            id=join_key([*dimensions.values(), date]),
            dimensions=dimensions,
            dimension_labels=labels,
            date=date,
            date_label=self._lookups[self.time_index].get(period, period),
            period=period,
            frequency=frequency,
            value=parse_value(raw_value),
        )
        self._rows.append(row)
        return row

    @property
    def rows(self) -> list[CanonicalRow]:
        return list(self._rows)


def flatten_sparse(
    rows: Iterable[RawDataRow],
    metadata: TableMetadata,
    *,
    key_codes: Sequence[str] | None = None,
) -> list[CanonicalRow]:
    """Flatten PxWeb ``data`` rows into canonical rows.

    ``key_codes`` names the variable behind each key position when the
    response omits eliminated variables; the metadata is projected onto them.
    """
    if key_codes is not None and tuple(key_codes) != metadata.codes:
        metadata = metadata.select(key_codes)
    assembler = RowAssembler(metadata)
    for row in rows:
        assembler.add(row.key, row.raw_value)
    return assembler.rows


def compute_strides(sizes: Sequence[int]) -> tuple[int, ...]:
    """Row-major strides: ``stride[d] = product(sizes[d + 1:])``."""
    strides = [1] * len(sizes)
    for dim in range(len(sizes) - 2, -1, -1):
        strides[dim] = strides[dim + 1] * sizes[dim + 1]
    return tuple(strides)


def unravel_offset(offset: int, strides: Sequence[int]) -> tuple[int, ...]:
    """Recover per-dimension indices for a linear offset."""
    indices = []
    remaining = offset
    for stride in strides:
        index, remaining = divmod(remaining, stride)
        indices.append(index)
    return tuple(indices)


def _dense_keys(
    count: int,
    dim_order: Sequence[str],
    sizes: Sequence[int],
    metadata: TableMetadata,
) -> Iterator[list[str]]:
    """Yield metadata-aligned coordinate keys for each offset of a dense buffer."""
    positions = {code: index for index, code in enumerate(metadata.codes)}
    unknown = [code for code in dim_order if code not in positions]
    if unknown:
        raise MalformedMetadata(
            f"Dimension order names variables missing from {metadata.title!r}: "
            f"{', '.join(unknown)}."
        )
    uncovered = [code for code in metadata.codes if code not in dim_order]
    if uncovered:
        raise MalformedMetadata(
            f"Dimension order {list(dim_order)} leaves out variables: {', '.join(uncovered)}."
        )
    codes_by_dim = [metadata.variables[positions[code]].values for code in dim_order]
    for code, size, values in zip(dim_order, sizes, codes_by_dim):
        if size != len(values):
            raise ShapeMismatch(
                f"Dimension {code!r} declares size {size} but has {len(values)} values."
            )

    strides = compute_strides(sizes)
    targets = [positions[code] for code in dim_order]
    for offset in range(count):
        key = [""] * len(targets)
        for dim, index in enumerate(unravel_offset(offset, strides)):
            key[targets[dim]] = codes_by_dim[dim][index]
        yield key


def flatten_dense(
    values: Sequence[Any],
    dim_order: Sequence[str],
    sizes: Sequence[int],
    metadata: TableMetadata,
) -> list[CanonicalRow]:
    """Flatten a JSON-stat2 value buffer using stride arithmetic."""
    if len(dim_order) != len(sizes):
        raise ShapeMismatch(
            f"{len(dim_order)} dimensions declared but {len(sizes)} sizes given."
        )
    expected = prod(sizes)
    if expected != len(values):
        raise ShapeMismatch(
            f"Dimension sizes {list(sizes)} describe {expected} cells "
            f"but {len(values)} values were supplied."
        )
    assembler = RowAssembler(metadata)
    for key, raw_value in zip(_dense_keys(len(values), dim_order, sizes, metadata), values):
        assembler.add(key, raw_value)
    return assembler.rows


def flatten_response(
    response: SparseResponse | DenseResponse,
    metadata: TableMetadata | None = None,
) -> list[CanonicalRow]:
    """Flatten either provider response variant.

    Dense responses describe their own (possibly filtered) categories, so they
    are flattened against metadata derived from the response itself.
    """
    if isinstance(response, DenseResponse):
        subset = response.to_metadata(base=metadata)
        return flatten_dense(response.values, response.dim_order, response.sizes, subset)
    if metadata is None:
        raise MalformedMetadata("Sparse responses need table metadata to be flattened.")
    return flatten_sparse(response.rows, metadata, key_codes=response.key_codes())


__all__ = [
    "MISSING_SENTINELS",
    "RowAssembler",
    "compute_strides",
    "flatten_dense",
    "flatten_response",
    "flatten_sparse",
    "parse_value",
    "unravel_offset",
]
