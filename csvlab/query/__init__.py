"""Scan queries over stored rows."""

from .filter import QueryResult, ScanFilterEngine, count_matches

__all__ = [
    "QueryResult",
    "ScanFilterEngine",
    "count_matches",
]
