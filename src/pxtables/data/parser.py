"""Validate raw PxWeb JSON payloads into typed models at the boundary."""

from collections.abc import Mapping, Sequence
from typing import Any

import marshmallow as ma
from attrs import evolve

from ..errors import MalformedMetadata, MalformedResponse
from .models import (
    DenseResponse,
    DenseResponseSchema,
    SparseResponse,
    SparseResponseSchema,
    TableMetadata,
    TableMetadataSchema,
    TableNode,
    TableNodeSchema,
)

_METADATA_SCHEMA = TableMetadataSchema()
_SPARSE_SCHEMA = SparseResponseSchema()
_DENSE_SCHEMA = DenseResponseSchema()
_NODE_SCHEMA = TableNodeSchema(many=True)


def _describe(exc: ma.ValidationError) -> str:
    messages = sorted(exc.normalized_messages().items(), key=lambda item: str(item[0]))
    return "; ".join(f"{key}: {value}" for key, value in messages)


def parse_metadata(payload: Mapping[str, Any], *, title: str | None = None) -> TableMetadata:
    """Parse a PxWeb table metadata document.

    ``title`` fills in for providers that leave the document untitled.
    """
    try:
        metadata = _METADATA_SCHEMA.load(payload)
    except ma.ValidationError as exc:
        raise MalformedMetadata(f"Invalid table metadata: {_describe(exc)}") from exc
    if title and not metadata.title:
        metadata = evolve(metadata, title=title)
    return metadata


def parse_sparse_response(payload: Mapping[str, Any]) -> SparseResponse:
    """Parse a PxWeb ``json`` response (``columns``/``comments``/``data``)."""
    try:
        return _SPARSE_SCHEMA.load(payload)
    except ma.ValidationError as exc:
        raise MalformedResponse(f"Invalid PxWeb data response: {_describe(exc)}") from exc


def parse_dense_response(payload: Mapping[str, Any]) -> DenseResponse:
    """Parse a JSON-stat2 dataset response."""
    try:
        return _DENSE_SCHEMA.load(payload)
    except ma.ValidationError as exc:
        raise MalformedResponse(f"Invalid JSON-stat2 dataset: {_describe(exc)}") from exc


def is_dense_payload(payload: Mapping[str, Any]) -> bool:
    """Return True for JSON-stat2 documents."""
    return payload.get("class") == "dataset" or {"id", "size", "value"} <= payload.keys()


def parse_response(payload: Mapping[str, Any]) -> SparseResponse | DenseResponse:
    """Detect the payload encoding and parse it into the matching variant."""
    if not isinstance(payload, Mapping):
        raise MalformedResponse(f"Expected a JSON object, got {type(payload).__name__}.")
    if is_dense_payload(payload):
        return parse_dense_response(payload)
    if "data" in payload:
        return parse_sparse_response(payload)
    raise MalformedResponse(
        f"Unrecognized data response with keys: {', '.join(sorted(payload)) or 'none'}."
    )


def parse_nodes(payload: Sequence[Mapping[str, Any]], parent: Sequence[str] = ()) -> list[TableNode]:
    """Parse a navigation listing, prefixing each node path with ``parent``."""
    try:
        nodes = _NODE_SCHEMA.load(payload)
    except ma.ValidationError as exc:
        raise MalformedResponse(f"Invalid navigation listing: {_describe(exc)}") from exc
    return [evolve(node, path=(*parent, node.id)) for node in nodes]


__all__ = [
    "is_dense_payload",
    "parse_dense_response",
    "parse_metadata",
    "parse_nodes",
    "parse_response",
    "parse_sparse_response",
]
