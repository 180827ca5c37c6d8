"""Typed failures raised while turning PxWeb payloads into canonical rows."""


class PxTablesError(ValueError):
    """Base class for fatal, per-table processing errors."""


class MalformedMetadata(PxTablesError):
    """Table metadata is structurally invalid."""


class NoTimeDimension(PxTablesError):
    """No variable is flagged or can be inferred as the time dimension."""


class ShapeMismatch(PxTablesError):
    """Value buffer or row key does not line up with the declared dimensions."""


class MalformedResponse(PxTablesError):
    """A provider payload failed validation at the boundary."""


__all__ = [
    "PxTablesError",
    "MalformedMetadata",
    "NoTimeDimension",
    "ShapeMismatch",
    "MalformedResponse",
]
