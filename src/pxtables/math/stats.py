"""Summary statistics for chart series."""

from collections.abc import Iterable
from dataclasses import asdict, dataclass

import numpy as np


@dataclass(frozen=True)
class StatSummary:
    """Descriptive statistics over the non-missing values of a series."""

    count: int
    mean: float
    median: float
    min: float
    max: float
    std: float

    def to_dict(self) -> dict[str, float | int]:
        return asdict(self)


EMPTY_SUMMARY = StatSummary(count=0, mean=0.0, median=0.0, min=0.0, max=0.0, std=0.0)


def _valid_values(values: Iterable[float | None]) -> np.ndarray:
    """Drop missing entries and return the rest as a float array."""
    arr = np.asarray([np.nan if value is None else value for value in values], dtype=float)
    return arr[np.isfinite(arr)]


def summarize(values: Iterable[float | None]) -> StatSummary:
    """Compute count, mean, median, range and sample standard deviation.

    Missing values are ignored; an empty input yields :data:`EMPTY_SUMMARY`.
    """
    arr = _valid_values(values)
    if arr.size == 0:
        return EMPTY_SUMMARY
    return StatSummary(
        count=int(arr.size),
        mean=float(arr.mean()),
        median=float(np.median(arr)),
        min=float(arr.min()),
        max=float(arr.max()),
        std=float(arr.std(ddof=1)) if arr.size > 1 else 0.0,
    )


def percent_change(values: Iterable[float | None], periods: int = 1) -> list[float | None]:
    """Percent change against the value ``periods`` steps earlier.

    Positions without a usable base (missing, zero, or before the first
    ``periods`` entries) are ``None``.
    """
    if periods < 1:
        raise ValueError("periods must be a positive integer.")
    series = list(values)
    changes: list[float | None] = [None] * len(series)
    for index in range(periods, len(series)):
        current, base = series[index], series[index - periods]
        if current is None or base is None or base == 0:
            continue
        changes[index] = (current / base - 1.0) * 100.0
    return changes
