"""Schema Registry — which parser and which data slot a section title maps to."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from arcana.document import fields as f
from arcana.document.grammar import normalize_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionSchema:
    """One recognised section kind.

    ``slot`` is the attribute on the dialect's document data; ``heading`` is
    the canonical ``## `` text the emitter writes.
    """

    kind: str
    dialect: str
    pattern: re.Pattern[str]
    slot: str
    heading: str
    parse: Callable[[Sequence[str], list[str]], Any]

    def matches(self, normalized: str) -> bool:
        return bool(self.pattern.search(normalized))


def _schema(kind, dialect, pattern, slot, heading, parse) -> SectionSchema:
    return SectionSchema(kind, dialect, re.compile(pattern), slot, heading, parse)


# Canonical (emission) order per dialect.
SPEC_SECTIONS = (
    _schema("overview", "spec", r"overview", "project_overview",
            "📋 Project Overview", f.parse_project_overview),
    _schema("functional", "spec", r"functional requirements|user requirements",
            "functional_requirements", "🎯 Functional Requirements",
            f.parse_functional_requirements),
    _schema("technical", "spec", r"technical requirements|system requirements",
            "technical_requirements", "⚙️ Technical Requirements",
            f.parse_technical_requirements),
    _schema("apis", "spec", r"\bapis?\b|endpoints", "apis", "🔌 API Documentation",
            f.parse_apis),
    _schema("non_functional", "spec", r"non ?functional|quality attributes",
            "non_functional_requirements", "📊 Non-Functional Requirements",
            f.parse_non_functional_requirements),
    _schema("roadmap", "spec", r"roadmap|timeline|milestones", "roadmap", "🗓️ Roadmap",
            f.parse_roadmap),
)

MEMORY_SECTIONS = (
    _schema("project_info", "memory", r"project info(?:rmation)?", "project_info",
            "📋 Project Information", f.parse_project_info),
    _schema("decisions", "memory", r"decision log|decisions", "decision_log",
            "📝 Decision Log", f.parse_decision_log),
    _schema("glossary", "memory", r"glossary|definitions", "glossary", "📚 Glossary",
            f.parse_glossary),
    _schema("meetings", "memory", r"meeting notes|meetings", "meeting_notes",
            "🤝 Meeting Notes", f.parse_meeting_notes),
    _schema("lessons", "memory", r"lessons learned|lessons", "lessons_learned",
            "💡 Lessons Learned", f.parse_lessons_learned),
    _schema("onboarding", "memory", r"onboarding", "onboarding_notes",
            "🚀 Onboarding Notes", f.parse_onboarding_notes),
)

# "Non-Functional Requirements" also contains "functional requirements", and
# "overview" is the loosest predicate, so both are settled first/last.
_SPEC_MATCH_ORDER = ("non_functional", "functional", "technical", "apis", "roadmap", "overview")

_BY_DIALECT = {
    "spec": tuple(
        next(s for s in SPEC_SECTIONS if s.kind == kind) for kind in _SPEC_MATCH_ORDER
    ),
    "memory": MEMORY_SECTIONS,
}


def sections_for(dialect: str) -> tuple[SectionSchema, ...]:
    """Recognised sections of ``dialect`` in canonical order."""
    return MEMORY_SECTIONS if dialect == "memory" else SPEC_SECTIONS


def classify(title: str, dialect: str) -> SectionSchema | None:
    """Map a raw ``## `` title onto its section schema, or None when unrecognised."""
    normalized = normalize_title(title)
    for schema in _BY_DIALECT.get(dialect, ()):
        if schema.matches(normalized):
            logger.debug("Section %r classified as %s", title, schema.kind)
            return schema
    logger.debug("Section %r is not a %s section", title, dialect)
    return None
