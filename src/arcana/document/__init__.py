"""Markdown document engine.

text -> segmenter -> registry -> field parsers -> ParsedDocument -> merge -> text

The emitter renders canonical markdown when there is no original text to
merge into.
"""

from arcana.document.emitter import EmitOptions, emit
from arcana.document.merge import merge
from arcana.document.parser import ParsedDocument, ParseResult, parse

__all__ = ["EmitOptions", "ParseResult", "ParsedDocument", "emit", "merge", "parse"]
