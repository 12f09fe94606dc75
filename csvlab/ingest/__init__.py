"""Streaming import of delimited files."""

from .pipeline import IngestPipeline, IngestResult

__all__ = [
    "IngestPipeline",
    "IngestResult",
]
