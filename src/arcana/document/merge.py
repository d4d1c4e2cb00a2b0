"""Reconstruction / Merge Engine — write edited data back into the original text.

The original text is re-segmented on every call. Unrecognised sections are
copied through untouched; inside recognised ones only the label lines, list
items and entries that correspond to non-empty edited values are touched:

- a changed scalar rewrites its own label line (or the prose paragraph it was
  read from), keeping the label as written
- list fields only gain the items they do not already have
- entries are matched by natural key; matched ones are merged field by field,
  new ones are appended in canonical form
- empty edited values never erase text

Any exception falls back to a fresh ``emit`` of the edited data, and if that
fails too the original text is returned unchanged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import Any

from arcana.document import fields as f
from arcana.document.emitter import (
    EmitOptions,
    emit,
    render_entry,
    render_field,
    render_item,
    render_section,
    render_title,
)
from arcana.document.grammar import (
    ACTIONS,
    BOLD_TERM_RE,
    CHECKLIST,
    CHOICE,
    CSV,
    LIST_KINDS,
    RESOURCES,
    Block,
    FieldSpec,
    escape_prose,
    is_placeholder,
    is_rule,
    item_text,
    match_label,
    normalize_title,
    parse_action_item,
    parse_resource,
    parse_task,
    read_label,
    render_label,
    replace_title_name,
    scan_fields,
    split_blocks,
    split_list,
    unescape_prose,
)
from arcana.document.ledger import PreservationLedger
from arcana.document.parser import DEFAULT_SUFFIXES, title_name
from arcana.document.registry import SectionSchema, classify, sections_for
from arcana.document.segmenter import segment
from arcana.models import HTTP_METHODS, DocumentData, coerce_choice, dialect_of, is_empty

logger = logging.getLogger(__name__)

_INDENT_RE = re.compile(r"^\s*")
_HEADING_PREFIX_RE = re.compile(r"^\s*#+[ \t]+")


# ── Line surgery ─────────────────────────────────────────────


def indent_of(line: str) -> str:
    return _INDENT_RE.match(line).group(0)


def content_end(body: Sequence[str]) -> int:
    """Index after the last line that is neither blank nor a horizontal rule."""
    end = len(body)
    while end > 0 and (not body[end - 1].strip() or is_rule(body[end - 1])):
        end -= 1
    return end


def append_lines(body: list[str], new: Sequence[str]) -> None:
    """Add a paragraph after the body's content, before its trailing blanks and rules."""
    index = content_end(body)
    chunk = ["", *new]
    if index == len(body):
        chunk.append("")
    body[index:index] = chunk


def flatten(blocks: Sequence[Block]) -> list[str]:
    return [line for block in blocks for line in block.lines()]


def append_block(blocks: list[Block], lines: Sequence[str]) -> None:
    """Append a headed block after the last one, moving trailing blanks and rules after it."""
    last = blocks[-1]
    index = content_end(last.body)
    tail = last.body[index:]
    del last.body[index:]
    last.body.append("")
    blocks.append(Block(lines[0], [*lines[1:], *tail]))


def set_field(
    body: list[str],
    spec: FieldSpec,
    value: Any,
    specs: Sequence[FieldSpec],
    prose_attr: str | None = None,
) -> bool:
    """Rewrite the field in place: its label line(s), or the prose it was read from."""
    scan = scan_fields(body, specs)
    if spec.attr in scan.spans:
        start, end = scan.spans[spec.attr]
        found = match_label(body[start], spec.labels)
        lines = render_field(spec, value, label=found.written if found else None)
        body[start:end] = [indent_of(body[start]) + lines[0], *lines[1:]]
        return True
    if prose_attr == spec.attr and scan.prose:
        start, end = scan.prose[0]
        lines = [line.strip() for line in str(value).split("\n") if line.strip()]
        body[start:end] = [escape_prose(line) for line in lines]
        return True
    return False


def append_field(body: list[str], spec: FieldSpec, value: Any, specs: Sequence[FieldSpec]) -> None:
    """Add a new label line after the last labelled field, or as a new paragraph."""
    scan = scan_fields(body, specs)
    lines = render_field(spec, value)
    if scan.spans:
        index = max(end for _, end in scan.spans.values())
        body[index:index] = lines
    else:
        append_lines(body, lines)


def add_items(body: list[str], spec: FieldSpec, items: Sequence[Any], specs: Sequence[FieldSpec]) -> bool:
    """Append ``items`` to the labelled list field in ``body``; False when it is absent."""
    scan = scan_fields(body, specs)
    if spec.attr not in scan.spans:
        return False
    start, end = scan.spans[spec.attr]
    if spec.kind == CSV:
        found = match_label(body[start], spec.labels)
        kept = [item for item in split_list(found.value) if not is_placeholder(item)]
        merged = kept + [item for item in items if item not in kept]
        body[start] = indent_of(body[start]) + render_label(found.written, ", ".join(merged))
        return True
    indent = indent_of(body[end - 1]) if end - 1 > start else ""
    body[end:end] = [indent + render_item(spec.kind)(item) for item in items]
    return True


def append_list_items(body: list[str], items: Sequence[str]) -> None:
    """Add ``- item`` lines after the last list line of a plain list block."""
    positions = [i for i, line in enumerate(body) if item_text(line) is not None]
    lines = [f"- {item}" for item in items]
    if not positions:
        append_lines(body, lines)
        return
    last = positions[-1]
    body[last + 1 : last + 1] = [indent_of(body[last]) + line for line in lines]


_ITEM_READERS: dict[str, Callable[[str], Any]] = {
    CHECKLIST: parse_task,
    ACTIONS: parse_action_item,
    RESOURCES: parse_resource,
}


def item_key(item: Any) -> str:
    if isinstance(item, str):
        return item.strip()
    for attr in ("task", "description", "title"):
        if hasattr(item, attr):
            return str(getattr(item, attr)).strip()
    return str(item).strip()


def update_items(body: list[str], spec: FieldSpec, items: Sequence[Any], specs: Sequence[FieldSpec]) -> None:
    """Re-render existing checklist, action or resource lines whose edited item differs."""
    scan = scan_fields(body, specs)
    if spec.attr not in scan.spans:
        return
    wanted: dict[str, Any] = {}
    for item in items:
        wanted.setdefault(item_key(item), item)
    start, end = scan.spans[spec.attr]
    read = _ITEM_READERS[spec.kind]
    render = render_item(spec.kind)
    for index in range(start + 1, end):
        current = read(body[index])
        if current is None:
            continue
        edited = wanted.get(item_key(current))
        if edited is not None and edited != current:
            body[index] = indent_of(body[index]) + render(edited)


# ── Entries ──────────────────────────────────────────────────


def merge_entry(block: Block, schema: f.EntrySchema, record: Any) -> None:
    """Merge one edited record into the entry block it was matched to."""
    current, scan = schema.read(block.lines())
    if current is None:
        return
    labelled = set(scan.spans)

    written = schema.read_heading(block.title.strip())
    heading_values = {attr: written.get(attr, "") for attr in schema.heading_attrs}
    wanted = dict(heading_values)
    for attr in schema.heading_attrs:
        value = str(getattr(record, attr)).strip()
        if value and attr not in labelled:
            wanted[attr] = value
    if wanted != heading_values:
        prefix = _HEADING_PREFIX_RE.match(block.heading).group(0)
        block.heading = prefix + schema.write_heading(replace(current, **wanted))

    for spec in schema.fields:
        value = getattr(record, spec.attr)
        if is_empty(value):
            continue
        if spec.attr in schema.heading_attrs and spec.attr not in labelled:
            continue
        existing = getattr(current, spec.attr)
        if spec.kind in LIST_KINDS:
            if spec.kind in _ITEM_READERS:
                update_items(block.body, spec, value, schema.fields)
            have = {item_key(item) for item in existing}
            fresh = [item for item in value if item_key(item) not in have]
            if fresh and not add_items(block.body, spec, fresh, schema.fields):
                append_field(block.body, spec, fresh, schema.fields)
            continue
        if spec.kind == CHOICE:
            value = coerce_choice(value, spec.choices, spec.default)
        if value == existing:
            continue
        if not set_field(block.body, spec, value, schema.fields, schema.prose_attr):
            append_field(block.body, spec, value, schema.fields)


def merge_collection(
    candidates: Sequence[Block],
    schema: f.EntrySchema,
    records: Sequence[Any],
    first: bool,
    known: set[str] = frozenset(),
) -> list[Any]:
    """Merge records into matching entry blocks; return the records that still need appending.

    Matching is by natural key against the first block carrying it. ``known``
    holds keys of entries the section has in forms that have no block
    (legacy list lines); those are neither merged nor appended again.
    """
    index: dict[str, Block] = {}
    for block in candidates:
        found, _ = schema.read(block.lines())
        if found is not None:
            index.setdefault(schema.identify(found), block)
    handled: set[str] = set()
    fresh = []
    for record in records:
        if not str(getattr(record, schema.key)).strip():
            continue
        key = schema.identify(record)
        if key in handled:
            logger.debug("Skipping duplicate %s %r", schema.name, key)
            continue
        handled.add(key)
        block = index.get(key)
        if block is not None:
            merge_entry(block, schema, record)
        elif first and key not in known:
            fresh.append(record)
    return fresh


# ── Sections ─────────────────────────────────────────────────


def merge_flat(body: list[str], schema: f.FlatSchema, record: Any, first: bool) -> list[str]:
    blocks = split_blocks(body, 3)
    current = schema.record(**f.read_flat(body, schema))
    for spec in schema.fields:
        value = getattr(record, spec.attr)
        if is_empty(value):
            continue
        subsection = next(
            (b for b in blocks[1:] if schema.subsection_attr(b.title) == spec.attr), None
        )
        if spec.kind in LIST_KINDS or spec.kind == CSV:
            have = getattr(current, spec.attr)
            fresh = [item for item in dict.fromkeys(value) if item not in have]
            if not fresh:
                continue
            if any(add_items(b.body, spec, fresh, schema.fields) for b in blocks):
                continue
            if subsection is not None:
                append_list_items(subsection.body, fresh)
            elif first and spec.kind == CSV:
                append_field(blocks[0].body, spec, list(value), schema.fields)
            elif first:
                append_block(blocks, [f"### {spec.label}", "", *(f"- {item}" for item in fresh)])
            continue
        if value == getattr(current, spec.attr):
            continue
        if any(set_field(b.body, spec, value, schema.fields) for b in blocks):
            continue
        if subsection is not None and set_field(
            subsection.body, spec, value, schema.fields, prose_attr=spec.attr
        ):
            continue
        if schema.prose_attr == spec.attr and set_field(
            blocks[0].body, spec, value, schema.fields, prose_attr=spec.attr
        ):
            continue
        if first:
            append_field(blocks[0].body, spec, value, schema.fields)
    return flatten(blocks)


def _merge_overview(body, data, first):
    return merge_flat(body, f.OVERVIEW, data.project_overview, first)


def _merge_functional(body, data, first):
    req = data.functional_requirements
    body = merge_flat(body, f.FUNCTIONAL, req, first)
    known = {f.FEATURE.identify(x) for x in f.parse_functional_requirements(body, []).features}
    blocks = split_blocks(body, 3)
    group = next((b for b in blocks[1:] if "feature" in normalize_title(b.title)), None)
    if group is None:
        fresh = merge_collection([], f.FEATURE, req.features, first, known)
        if fresh:
            append_block(blocks, ["### Features", "", *_render_all(f.FEATURE, fresh)])
        return flatten(blocks)
    sub = split_blocks(group.body, 4)
    for record in merge_collection(sub[1:], f.FEATURE, req.features, first, known):
        append_block(sub, render_entry(f.FEATURE, record))
    group.body = flatten(sub)
    return flatten(blocks)


def _render_all(schema: f.EntrySchema, records: Sequence[Any]) -> list[str]:
    lines: list[str] = []
    for record in records:
        if lines:
            lines.append("")
        lines.extend(render_entry(schema, record))
    return lines


def _merge_technical(body, data, first):
    return merge_flat(body, f.TECHNICAL, data.technical_requirements, first)


def _merge_apis(body, data, first):
    apis = data.apis
    body = merge_flat(body, f.API_SETTINGS, apis, first)
    endpoints = [
        replace(e, method=coerce_choice(e.method, HTTP_METHODS, "GET")) for e in apis.endpoints
    ]
    blocks = split_blocks(body, 3)
    groups = [(block, split_blocks(block.body, 4)) for block in blocks]
    candidates = [entry for _, sub in groups for entry in sub[1:]]
    fresh = merge_collection(candidates, f.ENDPOINT, endpoints, first)

    sink = next((g for g in groups[1:] if "endpoint" in normalize_title(g[0].title)), None)
    if sink is None and len(groups[0][1]) > 1:
        sink = groups[0]
    if sink is not None:
        for record in fresh:
            append_block(sink[1], render_entry(f.ENDPOINT, record))
        fresh = []
    for block, sub in groups:
        block.body = flatten(sub)
    if fresh:
        append_block(blocks, ["### Endpoints", "", *_render_all(f.ENDPOINT, fresh)])
    return flatten(blocks)


def _merge_non_functional(body, data, first):
    return merge_flat(body, f.NON_FUNCTIONAL, data.non_functional_requirements, first)


def _merge_roadmap(body, data, first):
    roadmap = data.roadmap
    current = f.parse_roadmap(body, [])
    blocks = split_blocks(body, 3)
    candidates: dict[str, list[Block]] = {"phase": [], "milestone": []}
    groups = []
    for block in blocks[1:]:
        kind, grouped = f.roadmap_kind(block.title)
        if grouped:
            sub = split_blocks(block.body, 4)
            groups.append((block, sub))
            candidates[kind].extend(sub[1:])
        else:
            candidates[kind].append(block)

    fresh_phases = merge_collection(
        candidates["phase"], f.PHASE, roadmap.phases, first,
        {f.PHASE.identify(p) for p in current.phases},
    )
    fresh_milestones = merge_collection(
        candidates["milestone"], f.MILESTONE, roadmap.milestones, first,
        {f.MILESTONE.identify(m) for m in current.milestones},
    )
    for block, sub in groups:
        block.body = flatten(sub)
    for record in fresh_phases:
        append_block(blocks, render_entry(f.PHASE, record))
    for record in fresh_milestones:
        append_block(blocks, render_entry(f.MILESTONE, record))
    return flatten(blocks)


def _merge_project_info(body, data, first):
    return merge_flat(body, f.PROJECT_INFO, data.project_info, first)


def _entry_merger(schema: f.EntrySchema, slot: str):
    def merge_entries(body, data, first):
        blocks = split_blocks(body, 3)
        for record in merge_collection(blocks[1:], schema, getattr(data, slot), first):
            append_block(blocks, render_entry(schema, record))
        return flatten(blocks)

    return merge_entries


def _glossary_locations(blocks: Sequence[Block]) -> dict[str, tuple[Block, int, bool]]:
    """First location of each term: ``(block, line index, labelled)``."""
    found: dict[str, tuple[Block, int, bool]] = {}
    for block in blocks:
        for index, line in enumerate(block.body):
            label = read_label(line)
            if label is not None:
                found.setdefault(label[1].strip(), (block, index, True))
                continue
            bold = BOLD_TERM_RE.match(line.strip())
            if bold is not None:
                found.setdefault(bold.group("term").strip(), (block, index, False))
    return found


def _insert_term(block: Block, lines: Sequence[str]) -> None:
    last = None
    for index, line in enumerate(block.body):
        if read_label(line) is not None:
            last = index
    if last is None:
        append_lines(block.body, lines)
        return
    end = f.glossary_term_end(block.body, last)
    block.body[end:end] = list(lines)


def _merge_glossary(body, data, first):
    blocks = split_blocks(body, 3)
    locations = _glossary_locations(blocks)
    handled: set[str] = set()
    pending = []
    for entry in data.glossary:
        term, definition = entry.term.strip(), entry.definition.strip()
        if not term or not definition or term in handled:
            continue
        handled.add(term)
        location = locations.get(term)
        if location is None:
            if first:
                pending.append(entry)
            continue
        block, index, labelled = location
        if not labelled:
            continue
        end = f.glossary_term_end(block.body, index)
        _, written, value = read_label(block.body[index])
        continuation = [unescape_prose(line.strip()) for line in block.body[index + 1 : end]]
        existing = "\n".join(part for part in [value, *continuation] if part)
        if existing == definition:
            continue
        lines = render_field(f.GLOSSARY_DEFINITION, definition, label=written)
        block.body[index:end] = [indent_of(block.body[index]) + lines[0], *lines[1:]]
        locations = _glossary_locations(blocks)

    for entry in pending:
        lines = render_field(f.GLOSSARY_DEFINITION, entry.definition.strip(), label=entry.term.strip())
        category = entry.category.strip()
        if not category:
            _insert_term(blocks[0], lines)
            continue
        target = next(
            (b for b in blocks[1:] if normalize_title(b.title) == normalize_title(category)), None
        )
        if target is None:
            append_block(blocks, [f"### {category}", "", *lines])
        else:
            _insert_term(target, lines)
    return flatten(blocks)


SECTION_MERGERS: dict[str, Callable[[list[str], DocumentData, bool], list[str]]] = {
    "overview": _merge_overview,
    "functional": _merge_functional,
    "technical": _merge_technical,
    "apis": _merge_apis,
    "non_functional": _merge_non_functional,
    "roadmap": _merge_roadmap,
    "project_info": _merge_project_info,
    "decisions": _entry_merger(f.DECISION, "decision_log"),
    "glossary": _merge_glossary,
    "meetings": _entry_merger(f.MEETING, "meeting_notes"),
    "lessons": _entry_merger(f.LESSON, "lessons_learned"),
    "onboarding": _entry_merger(f.ONBOARDING, "onboarding_notes"),
}


def merge_section(schema: SectionSchema, body: list[str], data: DocumentData, first: bool) -> list[str]:
    """Body lines of one recognised section with ``data`` written into them.

    Only the first section of a kind may gain new fields, subsections and
    entries; later duplicates are edited in place only.
    """
    return SECTION_MERGERS[schema.kind](list(body), data, first)


# ── Document ─────────────────────────────────────────────────


def _append_section(out: list[str], lines: Sequence[str]) -> list[str]:
    trailing = 0
    while trailing < len(out) and not out[len(out) - 1 - trailing].strip():
        trailing += 1
    core = out[: len(out) - trailing]
    return [*core, *([""] if core else []), *lines, *([""] if trailing else [])]


def _merge(text: str, edited: DocumentData, dialect: str, options: EmitOptions) -> str:
    suffixes = () if options.title_suffix is None else (options.title_suffix,)
    seg = segment(text, suffixes)
    lines = list(seg.lines)
    name = edited.name.strip()
    current_name = title_name(seg, suffixes)
    if name and seg.title_index is not None and name != current_name:
        if current_name:
            lines[seg.title_index] = replace_title_name(lines[seg.title_index], name, suffixes)
        else:
            lines[seg.title_index] = render_title(name, seg.name + seg.title_suffix)

    out = lines[: seg.preamble_end]
    ledger = PreservationLedger()
    seen: set[str] = set()
    for section in seg.sections:
        original = lines[section.start_line : section.end_line]
        schema = classify(section.title, dialect)
        if schema is None:
            ledger.preserve(section)
            out.extend(original)
            continue
        first = schema.kind not in seen
        seen.add(schema.kind)
        out.append(original[0])
        out.extend(merge_section(schema, original[1:], edited, first))

    for schema in sections_for(dialect):
        if schema.kind in seen:
            continue
        body = render_section(schema.kind, edited)
        if body:
            out = _append_section(out, [f"## {schema.heading}", "", *body])

    if seg.title_index is None and name:
        suffix = options.title_suffix if options.title_suffix is not None else DEFAULT_SUFFIXES[dialect]
        at = seg.frontmatter_end
        out[at:at] = [render_title(name, suffix), ""]

    if ledger:
        logger.debug("Kept %d sections verbatim: %s", len(ledger), ledger.titles)
    return "\n".join(out)


def merge(
    original_text: str,
    edited: DocumentData,
    dialect: str | None = None,
    options: EmitOptions | None = None,
) -> str:
    """Write ``edited`` into ``original_text``; never raises."""
    dialect = dialect or dialect_of(edited)
    options = options or EmitOptions()
    try:
        if not original_text.strip():
            return emit(edited, dialect, options)
        return _merge(original_text, edited, dialect, options)
    except Exception as e:
        logger.warning("Merge failed, regenerating the document: %s", e)
    try:
        return emit(edited, dialect, options)
    except Exception:
        logger.exception("Regeneration failed, returning the original text")
        return original_text
