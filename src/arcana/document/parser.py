"""Document Parser — segment, classify, parse each section, preserve the rest.

A single bad section never aborts the parse: a classification miss goes to
the ledger silently, a parser exception is logged and goes to the ledger,
and anything that escapes the section loop preserves the whole text as one
``FULL_DOCUMENT`` entry with all-empty data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from arcana.document.fields import absorb
from arcana.document.grammar import is_title_suffix
from arcana.document.ledger import PARSE_ERROR, UNCLASSIFIED, PreservationLedger
from arcana.document.registry import SectionSchema, classify
from arcana.document.segmenter import Section, Segmentation, segment
from arcana.models import DIALECTS, DocumentData, empty_data, set_name

logger = logging.getLogger(__name__)

DEFAULT_SUFFIXES = {
    "spec": "Project Technical Specification",
    "memory": "Memory Document",
}


@dataclass
class ParseStats:
    total_sections: int = 0
    unparsed_sections: int = 0
    dialect: str = "spec"
    dropped_entries: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSections": self.total_sections,
            "unparsedSections": self.unparsed_sections,
            "dialect": self.dialect,
            "droppedEntries": self.dropped_entries,
        }


@dataclass
class ParsedDocument:
    """Typed data plus everything needed to reconstruct what was not modelled."""

    data: DocumentData
    original_text: str
    ledger: PreservationLedger = field(default_factory=PreservationLedger)
    stats: ParseStats = field(default_factory=ParseStats)
    metadata: dict[str, Any] = field(default_factory=dict)
    recognized: list[Section] = field(default_factory=list)

    @property
    def dialect(self) -> str:
        return self.stats.dialect


@dataclass
class ParseResult:
    success: bool
    document: ParsedDocument | None = None
    error: str = ""

    @property
    def data(self) -> DocumentData | None:
        return self.document.data if self.document else None


def detect_dialect(seg: Segmentation, default: str = "spec") -> str:
    """Frontmatter key, then title suffix, then a vote of section titles, then ``default``."""
    declared = str(seg.metadata.get("dialect") or seg.metadata.get("type") or "").strip().lower()
    if declared in DIALECTS:
        return declared
    suffix = seg.title_suffix.lower()
    if "memory" in suffix:
        return "memory"
    if "specification" in suffix:
        return "spec"
    votes = {
        dialect: sum(1 for section in seg.sections if classify(section.title, dialect))
        for dialect in DIALECTS
    }
    if votes["spec"] != votes["memory"]:
        return max(votes, key=votes.get)
    return default


def title_name(seg: Segmentation, suffixes: Iterable[str] = ()) -> str:
    """The project name from the title; a bare suffix such as ``# Memory Document`` has none."""
    if not seg.title_suffix and is_title_suffix(seg.name, suffixes):
        return ""
    return seg.name


def parse_section(
    section: Section, schema: SectionSchema, data: DocumentData, dropped: list[str]
) -> None:
    """Run one Field Parser and fold its result into ``data``; raises on parser failure."""
    value = schema.parse(section.body, dropped)
    target = getattr(data, schema.slot)
    if isinstance(target, list):
        target.extend(value)
    else:
        absorb(target, value)


def _parse(
    text: str, dialect: str | None, default_dialect: str, suffixes: tuple[str, ...]
) -> ParsedDocument:
    seg = segment(text, suffixes)
    dialect = dialect or detect_dialect(seg, default_dialect)
    data = empty_data(dialect)
    set_name(data, title_name(seg, suffixes))
    doc = ParsedDocument(
        data=data,
        original_text=text,
        metadata=seg.metadata,
        stats=ParseStats(total_sections=len(seg.sections), dialect=dialect),
    )
    for section in seg.sections:
        schema = classify(section.title, dialect)
        if schema is None:
            doc.ledger.preserve(section, UNCLASSIFIED)
            continue
        dropped: list[str] = []
        try:
            parse_section(section, schema, data, dropped)
        except Exception as e:
            logger.warning("Could not parse section %r, preserving it verbatim: %s", section.title, e)
            doc.ledger.preserve(section, PARSE_ERROR)
            continue
        doc.recognized.append(section)
        if dropped:
            logger.debug(
                "Section %r: dropped %d placeholder entries %r", section.title, len(dropped), dropped
            )
            doc.stats.dropped_entries += len(dropped)
    doc.stats.unparsed_sections = len(doc.ledger)
    return doc


def parse_document(
    text: str,
    dialect: str | None = None,
    default_dialect: str = "spec",
    suffixes: Iterable[str] = (),
) -> ParsedDocument:
    """Parse ``text``; never raises for string input.

    ``suffixes`` are extra title suffixes (configured ones) to split off the
    project name.
    """
    try:
        return _parse(text, dialect, default_dialect, tuple(suffixes))
    except Exception:
        logger.exception("Document parse failed, preserving the full text")
        fallback = dialect if dialect in DIALECTS else default_dialect
        doc = ParsedDocument(
            data=empty_data(fallback),
            original_text=text,
            stats=ParseStats(total_sections=1, unparsed_sections=1, dialect=fallback),
        )
        doc.ledger.preserve_document(text)
        return doc


def parse(
    text: Any,
    dialect: str | None = None,
    default_dialect: str = "spec",
    suffixes: Iterable[str] = (),
) -> ParseResult:
    """Parse document text into a ``ParseResult``.

    Non-string input is an input error; the empty string is a valid, empty
    document.
    """
    if not isinstance(text, str):
        return ParseResult(success=False, error=f"Expected document text, got {type(text).__name__}")
    for wanted in (dialect, default_dialect):
        if wanted is not None and wanted not in DIALECTS:
            return ParseResult(success=False, error=f"Unknown dialect: {wanted!r}")
    return ParseResult(success=True, document=parse_document(text, dialect, default_dialect, suffixes))
