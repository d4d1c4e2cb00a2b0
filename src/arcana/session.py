"""Edit session — import a document, keep its text, export edits back into it.

The session owns the current structured data and the text it was imported
from. Exports are lazy: each ``export`` re-runs the merge engine against the
stored text, so no parse tree outlives the import.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Literal

from arcana.config import ArcanaConfig
from arcana.document.emitter import emit
from arcana.document.merge import merge
from arcana.document.parser import ParsedDocument, parse
from arcana.models import (
    DocumentData,
    MemoryDocumentData,
    Record,
    SpecDocumentData,
    empty_data,
)

logger = logging.getLogger(__name__)

ImportMode = Literal["replace", "merge"]

_MARKDOWN_SUFFIXES = {".md", ".markdown"}
_LABELS = {"spec": "specification", "memory": "memory"}


@dataclass
class ImportResult:
    success: bool
    message: str
    details: dict[str, int] = field(default_factory=dict)


def import_details(data: DocumentData) -> dict[str, int]:
    """Counts of recognised items, shown to the user after an import."""
    if isinstance(data, MemoryDocumentData):
        return {
            "decisions": len(data.decision_log),
            "glossaryTerms": len(data.glossary),
            "meetings": len(data.meeting_notes),
            "lessons": len(data.lessons_learned),
            "onboarding": len(data.onboarding_notes),
            "actionItems": sum(len(m.action_items) for m in data.meeting_notes),
            "onboardingTasks": sum(len(n.onboarding_tasks) for n in data.onboarding_notes),
        }
    if not isinstance(data, SpecDocumentData):
        raise TypeError(f"Expected spec or memory document data, got {type(data).__name__}")
    return {
        "userStories": len(data.functional_requirements.user_stories),
        "features": len(data.functional_requirements.features),
        "acceptanceCriteria": len(data.functional_requirements.acceptance_criteria),
        "technologies": len(data.technical_requirements.technologies),
        "dependencies": len(data.technical_requirements.dependencies),
        "endpoints": len(data.apis.endpoints),
        "phases": len(data.roadmap.phases),
        "milestones": len(data.roadmap.milestones),
    }


def merge_into(existing: Record, imported: Record) -> None:
    """Collections are concatenated; scalars are taken from ``imported`` when it has them."""
    for f in fields(existing):
        current = getattr(existing, f.name)
        incoming = getattr(imported, f.name)
        if isinstance(current, list):
            current.extend(incoming)
        elif isinstance(current, Record):
            merge_into(current, incoming)
        elif incoming:
            setattr(existing, f.name, incoming)


class EditSession:
    """One document being edited: its current data and the text it came from."""

    def __init__(self, dialect: str = "spec", config: ArcanaConfig | None = None) -> None:
        self.config = config or ArcanaConfig()
        self.dialect = dialect
        self.data: DocumentData = empty_data(dialect)
        self.original_text: str | None = None
        self.last_document: ParsedDocument | None = None

    def load(self, text: Any, mode: ImportMode = "replace") -> ImportResult:
        """Import ``text``; ``mode="merge"`` folds it into the current data instead of replacing it."""
        if mode not in ("replace", "merge"):
            raise ValueError(f"Unknown import mode: {mode!r}")
        result = parse(
            text,
            self.dialect,
            self.config.parser.default_dialect,
            self.config.emitter.title_suffixes,
        )
        if not result.success:
            return ImportResult(
                success=False, message=result.error or "Failed to parse the markdown document"
            )

        doc = result.document
        if mode == "merge":
            merge_into(self.data, doc.data)
        else:
            self.data = doc.data
        self.original_text = text
        self.last_document = doc

        details = import_details(doc.data)
        details["preservedSections"] = len(doc.ledger)
        logger.info(
            "Imported %s document (%s): %d sections, %d preserved verbatim",
            self.dialect, mode, doc.stats.total_sections, len(doc.ledger),
        )
        return ImportResult(
            success=True,
            message=f"Successfully imported {_LABELS[self.dialect]} document!",
            details=details,
        )

    def load_file(self, path: Path, mode: ImportMode = "replace") -> ImportResult:
        if path.suffix.lower() not in _MARKDOWN_SUFFIXES:
            return ImportResult(success=False, message="Please select a valid Markdown (.md) file")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ImportResult(success=False, message=f"Error reading file: {e}")
        return self.load(text, mode)

    def export(self) -> str:
        """Current data as markdown: merged into the imported text when there is one."""
        options = self.config.emitter.options(self.dialect)
        if self.original_text:
            return merge(self.original_text, self.data, self.dialect, options)
        try:
            return emit(self.data, self.dialect, options)
        except Exception:
            logger.exception("Export failed")
            return ""

    def reset(self) -> None:
        self.data = empty_data(self.dialect)
        self.original_text = None
        self.last_document = None
