"""Incremental public trade history sync into a time-partitioned store."""

__version__ = "0.1.0"
