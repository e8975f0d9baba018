"""Indexer package: the record store behind the grounding service."""

from .sqlite_store import SQLiteStore, build_match_query

__all__ = ['SQLiteStore', 'build_match_query']
