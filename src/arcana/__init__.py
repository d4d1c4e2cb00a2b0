"""Arcana — parse, preserve and merge project specification and memory documents."""

from arcana.document import emit, merge, parse
from arcana.session import EditSession, ImportResult

__all__ = ["EditSession", "ImportResult", "emit", "merge", "parse"]
