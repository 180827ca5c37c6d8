"""Statistical helpers for chart series."""

from .stats import EMPTY_SUMMARY, StatSummary, percent_change, summarize

__all__ = ["EMPTY_SUMMARY", "StatSummary", "percent_change", "summarize"]
