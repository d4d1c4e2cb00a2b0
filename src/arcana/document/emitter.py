"""Markdown Emitter — canonical markdown from a document-data tree.

Used for fresh exports and as the merge engine's regeneration fallback.
Output parses back to the same data: every non-empty field is written with
the exact micro-format the field parsers read, and empty fields or sections
are left out entirely.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import frontmatter

from arcana.document import fields as f
from arcana.document.grammar import (
    ACTIONS,
    CHECKLIST,
    CSV,
    LIST,
    MULTILINE,
    RESOURCES,
    TEXT,
    FieldSpec,
    escape_prose,
    render_action_item,
    render_label,
    render_resource,
    render_task,
)
from arcana.document.parser import DEFAULT_SUFFIXES
from arcana.document.registry import sections_for
from arcana.models import (
    HTTP_METHODS,
    DocumentData,
    MemoryDocumentData,
    SpecDocumentData,
    coerce_choice,
    dialect_of,
    is_empty,
)


@dataclass(frozen=True)
class EmitOptions:
    title_suffix: str | None = None
    frontmatter: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)


# ── Fields and entries ───────────────────────────────────────


def render_item(kind: str) -> Callable[[Any], str]:
    if kind == CHECKLIST:
        return render_task
    if kind == ACTIONS:
        return render_action_item
    if kind == RESOURCES:
        return render_resource
    return lambda item: f"- {item}"


def render_field(spec: FieldSpec, value: Any, label: str | None = None) -> list[str]:
    """Lines for one labelled field; ``label`` overrides the canonical label text."""
    label = label or spec.label
    if spec.kind == CSV:
        return [render_label(label, ", ".join(value))]
    if spec.kind in (LIST, CHECKLIST, ACTIONS, RESOURCES):
        return [render_label(label), *map(render_item(spec.kind), value)]
    text = str(value).strip("\n")
    if spec.kind == TEXT:
        first, *rest = [line.strip() for line in text.split("\n") if line.strip()] or [""]
        return [render_label(label, first), *map(escape_prose, rest)]
    if spec.kind == MULTILINE and "\n" in text:
        if spec.fenced:
            return [render_label(label), "```", *text.split("\n"), "```"]
        return [render_label(label), *text.split("\n")]
    return [render_label(label, text.strip())]


def entry_heading(schema: f.EntrySchema, record: Any) -> str:
    return "#" * schema.level + " " + schema.write_heading(record)


def render_entry(schema: f.EntrySchema, record: Any) -> list[str]:
    """Heading, a blank line, then one label line (or block) per non-empty field."""
    body: list[str] = []
    for spec in schema.fields:
        if spec.attr in schema.heading_attrs:
            continue
        value = getattr(record, spec.attr)
        if not is_empty(value):
            body.extend(render_field(spec, value))
    head = entry_heading(schema, record)
    return [head, "", *body] if body else [head]


def render_entries(schema: f.EntrySchema, records: Iterable[Any]) -> list[str]:
    """Entries without a key are skipped; they would not survive a parse."""
    return join_blocks(
        render_entry(schema, record) for record in records if str(getattr(record, schema.key)).strip()
    )


def render_flat(schema: f.FlatSchema, record: Any, attrs: Sequence[str] | None = None) -> list[str]:
    lines: list[str] = []
    for spec in schema.fields:
        if attrs is not None and spec.attr not in attrs:
            continue
        value = getattr(record, spec.attr)
        if not is_empty(value):
            lines.extend(render_field(spec, value))
    return lines


def render_list_block(title: str, items: Sequence[str]) -> list[str]:
    if not items:
        return []
    return [f"### {title}", "", *(f"- {item}" for item in items)]


def join_blocks(blocks: Iterable[Sequence[str]]) -> list[str]:
    """Join non-empty blocks with one blank line between them."""
    out: list[str] = []
    for block in blocks:
        if not block:
            continue
        if out:
            out.append("")
        out.extend(block)
    return out


# ── Sections ─────────────────────────────────────────────────


def _overview(data: SpecDocumentData) -> list[str]:
    return render_flat(f.OVERVIEW, data.project_overview)


def _functional(data: SpecDocumentData) -> list[str]:
    req = data.functional_requirements
    features = render_entries(f.FEATURE, req.features)
    return join_blocks(
        [
            render_list_block("User Stories", req.user_stories),
            ["### Features", "", *features] if features else [],
            render_list_block("Acceptance Criteria", req.acceptance_criteria),
        ]
    )


def _technical(data: SpecDocumentData) -> list[str]:
    req = data.technical_requirements
    return join_blocks(
        [
            render_flat(f.TECHNICAL, req, ("architecture", "infrastructure")),
            render_list_block("Technologies", req.technologies),
            render_list_block("Dependencies", req.dependencies),
        ]
    )


def _normalized_endpoint(endpoint: Any) -> Any:
    return replace(endpoint, method=coerce_choice(endpoint.method, HTTP_METHODS, "GET"))


def _apis(data: SpecDocumentData) -> list[str]:
    apis = data.apis
    endpoints = render_entries(f.ENDPOINT, map(_normalized_endpoint, apis.endpoints))
    return join_blocks(
        [
            render_flat(f.API_SETTINGS, apis),
            ["### Endpoints", "", *endpoints] if endpoints else [],
        ]
    )


def _non_functional(data: SpecDocumentData) -> list[str]:
    return render_flat(f.NON_FUNCTIONAL, data.non_functional_requirements)


def _roadmap(data: SpecDocumentData) -> list[str]:
    return join_blocks(
        [
            render_entries(f.PHASE, data.roadmap.phases),
            render_entries(f.MILESTONE, data.roadmap.milestones),
        ]
    )


def _project_info(data: MemoryDocumentData) -> list[str]:
    return render_flat(f.PROJECT_INFO, data.project_info)


def render_glossary_entry(entry: Any) -> list[str]:
    return render_field(f.GLOSSARY_DEFINITION, entry.definition, label=entry.term.strip())


def _glossary(data: MemoryDocumentData) -> list[str]:
    groups: dict[str, list[str]] = {}
    for entry in data.glossary:
        if entry.term.strip() and entry.definition.strip():
            groups.setdefault(entry.category.strip(), []).extend(render_glossary_entry(entry))
    blocks = [groups.pop("", [])]
    blocks.extend([f"### {category}", "", *lines] for category, lines in groups.items())
    return join_blocks(blocks)


SECTION_RENDERERS: dict[str, Callable[[Any], list[str]]] = {
    "overview": _overview,
    "functional": _functional,
    "technical": _technical,
    "apis": _apis,
    "non_functional": _non_functional,
    "roadmap": _roadmap,
    "project_info": _project_info,
    "decisions": lambda data: render_entries(f.DECISION, data.decision_log),
    "glossary": _glossary,
    "meetings": lambda data: render_entries(f.MEETING, data.meeting_notes),
    "lessons": lambda data: render_entries(f.LESSON, data.lessons_learned),
    "onboarding": lambda data: render_entries(f.ONBOARDING, data.onboarding_notes),
}


def render_section(kind: str, data: DocumentData) -> list[str]:
    """Body lines (no ``## `` heading) for one section kind; empty when there is nothing to say."""
    return SECTION_RENDERERS[kind](data)


def render_title(name: str, suffix: str) -> str:
    name = name.strip()
    if not name:
        return f"# {suffix}"
    return f"# {name} - {suffix}" if suffix else f"# {name}"


def emit(data: DocumentData, dialect: str | None = None, options: EmitOptions | None = None) -> str:
    """Render ``data`` as a complete document in canonical section order."""
    actual = dialect_of(data)
    if dialect is not None and dialect != actual:
        raise ValueError(f"Data is {actual!r}, cannot emit it as {dialect!r}")
    options = options or EmitOptions()
    suffix = options.title_suffix if options.title_suffix is not None else DEFAULT_SUFFIXES[actual]

    lines = [render_title(data.name, suffix)]
    for schema in sections_for(actual):
        body = render_section(schema.kind, data)
        if body:
            lines += ["", f"## {schema.heading}", "", *body]
    text = "\n".join(lines) + "\n"

    if options.frontmatter:
        metadata = {"dialect": actual, **options.metadata}
        post = frontmatter.Post(text, **metadata)
        text = frontmatter.dumps(post).rstrip("\n") + "\n"
    return text
