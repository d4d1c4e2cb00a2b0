"""Field Parsers — turn the raw lines of one known section into typed records.

Every parser here is a pure function ``(body, dropped) -> value``: ``body``
is the section's lines without its ``## `` heading, ``dropped`` collects the
headings of entries thrown away for lack of a primary key. The orchestrator
in ``parser.py`` folds the returned value into the document tree.

Two table-driven shapes cover almost everything:

- flat sections (``FlatSchema``: labels plus optional ``### <Field>`` subsections)
- repeated entries (``EntrySchema``: a heading reader, a field table and the
  name of the attribute that receives unlabelled prose)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, fields
from typing import Any

from arcana.document.grammar import (
    ACTIONS,
    BOLD_TERM_RE,
    CHECKLIST,
    CHOICE,
    CSV,
    LINE,
    LIST,
    LIST_KINDS,
    MULTILINE,
    RESOURCES,
    TEXT,
    Block,
    FieldScan,
    FieldSpec,
    LineCursor,
    field_end,
    heading,
    is_placeholder,
    is_prose,
    item_text,
    normalize_title,
    read_label,
    scan_fields,
    split_blocks,
    split_list,
    unescape_prose,
)
from arcana.models import (
    DECISION_STATUSES,
    FEATURE_STATUSES,
    HTTP_METHODS,
    LESSON_IMPACTS,
    ONBOARDING_STATUSES,
    PRIORITIES,
    APIEndpoint,
    APIs,
    DecisionEntry,
    Feature,
    FunctionalRequirements,
    GlossaryEntry,
    LessonEntry,
    MeetingNote,
    Milestone,
    NonFunctionalRequirements,
    OnboardingNote,
    ProjectInfo,
    ProjectOverview,
    Record,
    Roadmap,
    RoadmapPhase,
    TechnicalRequirements,
)

logger = logging.getLogger(__name__)

Dropped = list[str]


# ── Repeated entries ─────────────────────────────────────────


@dataclass(frozen=True)
class EntrySchema:
    """How one kind of ``###``/``####`` record is read and written."""

    name: str
    record: type[Record]
    key: str
    level: int
    fields: tuple[FieldSpec, ...]
    read_heading: Callable[[str], dict[str, str]]
    write_heading: Callable[[Any], str]
    heading_attrs: tuple[str, ...] = ()
    prose_attr: str | None = None
    finalize: Callable[[Any], None] | None = None
    identity: Callable[[Any], str] | None = None

    def identify(self, record: Any) -> str:
        if self.identity is not None:
            return self.identity(record)
        return str(getattr(record, self.key)).strip()

    def field(self, attr: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.attr == attr:
                return spec
        return None

    def read(self, lines: Sequence[str]) -> tuple[Any | None, FieldScan]:
        """Read a block whose first line is the entry heading."""
        builder = EntryBuilder(self)
        found = heading(lines[0]) if lines else None
        if found is not None:
            builder.feed_heading(found[1])
        scan = builder.feed_body(lines[1:])
        return builder.build(), scan


class EntryBuilder:
    """Accumulates one entry; ``build`` refuses it unless the key is real."""

    def __init__(self, schema: EntrySchema) -> None:
        self.schema = schema
        self.values: dict[str, Any] = {}

    def feed_heading(self, text: str) -> None:
        self.values.update(self.schema.read_heading(text.strip()))

    def feed_body(self, body: Sequence[str]) -> FieldScan:
        scan = scan_fields(body, self.schema.fields)
        self.values.update(scan.values)
        attr = self.schema.prose_attr
        if attr and attr not in scan.values and scan.prose:
            self.values[attr] = scan.prose_text()
        return scan

    @property
    def key(self) -> str:
        return str(self.values.get(self.schema.key, "")).strip()

    def build(self) -> Any | None:
        key = self.key
        if not key or is_placeholder(key):
            return None
        record = self.schema.record(**self.values)
        if self.schema.finalize is not None:
            self.schema.finalize(record)
        return record


def read_entries(lines: Sequence[str], schema: EntrySchema, dropped: Dropped) -> list[Any]:
    """Read every entry headed at ``schema.level`` in ``lines``, skipping the rest."""
    records = []
    cursor = LineCursor(lines)
    while not cursor.done:
        found = cursor.heading()
        if found is None or found[0] != schema.level:
            cursor.advance()
            continue
        block = cursor.take_block(schema.level)
        record, _ = schema.read(block)
        if record is None:
            dropped.append(found[1])
            logger.debug("Dropped %s entry without a key: %r", schema.name, found[1])
        else:
            records.append(record)
    return records


def _split_last(text: str) -> tuple[str, str]:
    head, sep, tail = text.rpartition(" - ")
    return (head.strip(), tail.strip()) if sep else (text.strip(), "")


def _split_first(text: str) -> tuple[str, str]:
    head, sep, tail = text.partition(" - ")
    return (head.strip(), tail.strip()) if sep else (text.strip(), "")


def _joined(*parts: str) -> str:
    return " - ".join(part for part in parts if part)


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def _onboarding_id(note: OnboardingNote) -> None:
    if not note.id:
        note.id = slugify(note.new_hire_name)


ENDPOINT_HEADING_RE = re.compile(r"^`?(?P<method>[A-Za-z]+)`?\s+`?(?P<path>[^`]+?)`?$")
PREFIXED_RE = re.compile(r"^(?P<kind>Phase|Milestone)\s*:\s*(?P<name>.+)$", re.IGNORECASE)


def _endpoint_heading(text: str) -> dict[str, str]:
    match = ENDPOINT_HEADING_RE.match(text)
    if match and match.group("method").upper() in HTTP_METHODS:
        return {"method": match.group("method").upper(), "path": match.group("path").strip()}
    return {"path": text.strip("` ")}


def _unprefixed(text: str) -> str:
    match = PREFIXED_RE.match(text)
    return match.group("name").strip() if match else text.strip()


FEATURE = EntrySchema(
    name="feature",
    record=Feature,
    key="name",
    level=4,
    fields=(
        FieldSpec("id", ("ID",), LINE),
        FieldSpec("description", ("Description",)),
        FieldSpec("priority", ("Priority",), CHOICE, PRIORITIES, "Medium"),
        FieldSpec("status", ("Status",), CHOICE, FEATURE_STATUSES, "Planned"),
    ),
    read_heading=lambda text: {"name": text},
    write_heading=lambda f: f.name,
    heading_attrs=("name",),
    prose_attr="description",
)

ENDPOINT = EntrySchema(
    name="endpoint",
    record=APIEndpoint,
    key="path",
    level=4,
    fields=(
        FieldSpec("description", ("Description",)),
        FieldSpec("parameters", ("Parameters",), CSV),
        FieldSpec("response", ("Response",), MULTILINE, fenced=True),
    ),
    read_heading=_endpoint_heading,
    write_heading=lambda e: f"`{e.method}` {e.path}",
    heading_attrs=("method", "path"),
    prose_attr="description",
    identity=lambda e: f"{e.method.strip().upper()} {e.path.strip()}",
)

PHASE_FIELDS = (
    FieldSpec("description", ("Description",)),
    FieldSpec("duration", ("Duration",), LINE),
    FieldSpec("deliverables", ("Deliverables",), LIST),
)

MILESTONE_FIELDS = (
    FieldSpec("date", ("Date", "Target Date"), LINE),
    FieldSpec("description", ("Description",)),
    FieldSpec("dependencies", ("Dependencies",), CSV),
)


def _phase_schema(level: int) -> EntrySchema:
    return EntrySchema(
        name="phase",
        record=RoadmapPhase,
        key="name",
        level=level,
        fields=PHASE_FIELDS,
        read_heading=lambda text: {"name": _unprefixed(text)},
        write_heading=lambda p: f"Phase: {p.name}",
        heading_attrs=("name",),
        prose_attr="description",
    )


def _milestone_schema(level: int) -> EntrySchema:
    return EntrySchema(
        name="milestone",
        record=Milestone,
        key="name",
        level=level,
        fields=MILESTONE_FIELDS,
        read_heading=lambda text: {"name": _unprefixed(text)},
        write_heading=lambda m: f"Milestone: {m.name}",
        heading_attrs=("name",),
        prose_attr="description",
    )


PHASE = _phase_schema(3)
MILESTONE = _milestone_schema(3)
GROUPED_PHASE = _phase_schema(4)
GROUPED_MILESTONE = _milestone_schema(4)

DECISION = EntrySchema(
    name="decision",
    record=DecisionEntry,
    key="title",
    level=3,
    fields=(
        FieldSpec("date", ("Date",), LINE),
        FieldSpec("status", ("Status",), CHOICE, DECISION_STATUSES, "decided"),
        FieldSpec("description", ("Description",)),
        FieldSpec("rationale", ("Rationale",)),
        FieldSpec("impact", ("Impact",)),
        FieldSpec("stakeholders", ("Stakeholders",), CSV),
        FieldSpec("alternatives", ("Alternatives", "Alternatives Considered"), CSV),
    ),
    read_heading=lambda text: {"title": text},
    write_heading=lambda d: d.title,
    heading_attrs=("title",),
    prose_attr="description",
)

MEETING = EntrySchema(
    name="meeting",
    record=MeetingNote,
    key="title",
    level=3,
    fields=(
        FieldSpec("date", ("Date",), LINE),
        FieldSpec("attendees", ("Attendees",), CSV),
        FieldSpec("agenda", ("Agenda",), LIST),
        FieldSpec("notes", ("Notes",), MULTILINE),
        FieldSpec("action_items", ("Action Items",), ACTIONS),
    ),
    read_heading=lambda text: dict(zip(("title", "date"), _split_last(text))),
    write_heading=lambda m: _joined(m.title, m.date),
    heading_attrs=("title", "date"),
    prose_attr="notes",
)

LESSON = EntrySchema(
    name="lesson",
    record=LessonEntry,
    key="title",
    level=3,
    fields=(
        FieldSpec("date", ("Date",), LINE),
        FieldSpec("category", ("Category",), LINE),
        FieldSpec("impact", ("Impact",), CHOICE, LESSON_IMPACTS, "medium"),
        FieldSpec("situation", ("Situation",)),
        FieldSpec("lesson", ("Lesson", "Lesson Learned")),
        FieldSpec("application", ("Application", "How to Apply")),
    ),
    read_heading=lambda text: {"title": text},
    write_heading=lambda l: l.title,
    heading_attrs=("title",),
    prose_attr="lesson",
)

ONBOARDING = EntrySchema(
    name="onboarding note",
    record=OnboardingNote,
    key="new_hire_name",
    level=3,
    fields=(
        FieldSpec("id", ("ID",), LINE),
        FieldSpec("status", ("Status",), CHOICE, ONBOARDING_STATUSES, "in-progress"),
        FieldSpec("department", ("Department",), LINE),
        FieldSpec("start_date", ("Start Date",), LINE),
        FieldSpec("mentor", ("Mentor",), LINE),
        FieldSpec("completion_date", ("Completion Date",), LINE),
        FieldSpec("onboarding_tasks", ("Onboarding Tasks", "Tasks"), CHECKLIST),
        FieldSpec("resources", ("Resources",), RESOURCES),
        FieldSpec("feedback", ("Feedback",)),
        FieldSpec("notes", ("Notes",), MULTILINE),
    ),
    read_heading=lambda text: dict(zip(("new_hire_name", "role"), _split_first(text))),
    write_heading=lambda n: _joined(n.new_hire_name, n.role),
    heading_attrs=("new_hire_name", "role"),
    prose_attr="notes",
    finalize=_onboarding_id,
)


# ── Flat sections ────────────────────────────────────────────


@dataclass(frozen=True)
class FlatSchema:
    """Labelled fields of a flat section plus the ``### <Field>`` subsections that may carry them."""

    record: type[Record]
    fields: tuple[FieldSpec, ...]
    subsections: tuple[tuple[str, tuple[str, ...]], ...] = ()
    prose_attr: str | None = None

    def field(self, attr: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.attr == attr:
                return spec
        return None

    def subsection_attr(self, title: str) -> str | None:
        text = normalize_title(title)
        for attr, keywords in self.subsections:
            if any(keyword in text for keyword in keywords):
                return attr
        return None


OVERVIEW = FlatSchema(
    record=ProjectOverview,
    fields=(
        FieldSpec("description", ("Description", "Summary")),
        FieldSpec("purpose", ("Purpose",)),
        FieldSpec("timeline", ("Timeline",)),
        FieldSpec("stakeholders", ("Stakeholders",), CSV),
    ),
    subsections=(("purpose", ("purpose",)), ("stakeholders", ("stakeholder",))),
    prose_attr="description",
)

FUNCTIONAL = FlatSchema(
    record=FunctionalRequirements,
    fields=(
        FieldSpec("user_stories", ("User Stories",), LIST),
        FieldSpec("acceptance_criteria", ("Acceptance Criteria",), LIST),
    ),
    subsections=(
        ("user_stories", ("stories", "story")),
        ("acceptance_criteria", ("acceptance", "criteria")),
    ),
)

TECHNICAL = FlatSchema(
    record=TechnicalRequirements,
    fields=(
        FieldSpec("architecture", ("Architecture",)),
        FieldSpec("infrastructure", ("Infrastructure",)),
        FieldSpec("technologies", ("Technologies", "Tech Stack"), LIST),
        FieldSpec("dependencies", ("Dependencies",), LIST),
    ),
    subsections=(
        ("technologies", ("technolog", "tech stack")),
        ("dependencies", ("dependenc",)),
        ("architecture", ("architecture",)),
        ("infrastructure", ("infrastructure",)),
    ),
)

API_SETTINGS = FlatSchema(
    record=APIs,
    fields=(
        FieldSpec("authentication", ("Authentication",)),
        FieldSpec("rate_limit", ("Rate Limit", "Rate Limiting")),
    ),
    subsections=(("authentication", ("authentication",)), ("rate_limit", ("rate limit",))),
)

NON_FUNCTIONAL = FlatSchema(
    record=NonFunctionalRequirements,
    fields=(
        FieldSpec("performance", ("Performance",)),
        FieldSpec("security", ("Security",)),
        FieldSpec("scalability", ("Scalability",)),
        FieldSpec("availability", ("Availability",)),
    ),
    subsections=(
        ("performance", ("performance",)),
        ("security", ("security",)),
        ("scalability", ("scalability",)),
        ("availability", ("availability", "reliability")),
    ),
)

PROJECT_INFO = FlatSchema(
    record=ProjectInfo,
    fields=(
        FieldSpec("description", ("Description",)),
        FieldSpec("team", ("Team", "Team Members"), CSV),
    ),
    subsections=(("team", ("team",)),),
    prose_attr="description",
)


def fold_value(values: dict[str, Any], attr: str, value: Any) -> None:
    """Lists accumulate; scalars keep the first non-empty value."""
    if isinstance(value, list):
        values.setdefault(attr, []).extend(value)
    elif value and not values.get(attr):
        values[attr] = value


def list_items(lines: Sequence[str]) -> list[str]:
    items = []
    for line in lines:
        text = item_text(line)
        if text and not is_placeholder(text):
            items.append(text)
    return items


def read_flat(body: Sequence[str], schema: FlatSchema) -> dict[str, Any]:
    """Read labels anywhere in the section, then ``### <Field>`` subsections, then lead prose."""
    values: dict[str, Any] = {}
    lead_prose = ""
    for block in split_blocks(body, 3):
        scan = scan_fields(block.body, schema.fields)
        for attr, value in scan.values.items():
            if isinstance(value, list):
                value = [v for v in value if not (isinstance(v, str) and is_placeholder(v))]
            elif isinstance(value, str) and is_placeholder(value):
                continue
            fold_value(values, attr, value)
        if block.heading is None:
            if scan.prose:
                lead_prose = scan.prose_text()
            continue
        attr = schema.subsection_attr(block.title)
        if attr is None or attr in scan.values:
            continue
        spec = schema.field(attr)
        if spec.kind in LIST_KINDS or spec.kind == CSV:
            fold_value(values, attr, list_items(block.body))
        elif scan.prose:
            fold_value(values, attr, scan.prose_text())
    if schema.prose_attr and lead_prose:
        fold_value(values, schema.prose_attr, lead_prose)
    return values


# ── Section parsers ──────────────────────────────────────────


LEGACY_FEATURE_RE = re.compile(r"^[-*+]\s+\*\*(?P<name>[^*]+?):\*\*\s*(?P<description>.*)$")
LEGACY_PHASE_RE = re.compile(
    r"^\*\*(?P<name>[^*]+?):\*\*\s*(?P<description>.*?)"
    r"(?:\s*\(Duration:\s*(?P<duration>[^()]*?)\s*\))?$"
)
LEGACY_MILESTONE_RE = re.compile(
    r"^\*\*(?P<name>[^*]+?):\*\*\s*(?P<description>.*?)"
    r"(?:\s*\(Date:\s*(?P<date>[^,()]*?)\s*(?:,\s*Dependencies:\s*(?P<deps>[^()]*?))?\s*\))?$"
)


def parse_project_overview(body: Sequence[str], dropped: Dropped) -> ProjectOverview:
    return ProjectOverview(**read_flat(body, OVERVIEW))


def read_features(lines: Sequence[str], dropped: Dropped) -> list[Feature]:
    """``#### <Name>`` entries, plus legacy ``- **Name:** description`` lines before them."""
    features = []
    lead = split_blocks(lines, 4)[0]
    for line in lead.body:
        match = LEGACY_FEATURE_RE.match(line.strip())
        if match and not is_placeholder(match.group("name")):
            features.append(
                Feature(name=match.group("name").strip(), description=match.group("description"))
            )
    features.extend(read_entries(lines, FEATURE, dropped))
    return features


def parse_functional_requirements(
    body: Sequence[str], dropped: Dropped
) -> FunctionalRequirements:
    result = FunctionalRequirements(**read_flat(body, FUNCTIONAL))
    for block in split_blocks(body, 3):
        if block.heading is not None and "feature" in normalize_title(block.title):
            result.features.extend(read_features(block.body, dropped))
    for number, feature in enumerate(result.features, start=1):
        if not feature.id:
            feature.id = f"feat-{number}"
    return result


def parse_technical_requirements(
    body: Sequence[str], dropped: Dropped
) -> TechnicalRequirements:
    return TechnicalRequirements(**read_flat(body, TECHNICAL))


def endpoint_blocks(body: Sequence[str]) -> list[Block]:
    """Every ``####`` block in the section, whichever ``###`` group holds it."""
    found = []
    for group in split_blocks(body, 3):
        found.extend(b for b in split_blocks(group.body, 4) if b.heading is not None)
    return found


def parse_apis(body: Sequence[str], dropped: Dropped) -> APIs:
    result = APIs(**read_flat(body, API_SETTINGS))
    for block in endpoint_blocks(body):
        record, _ = ENDPOINT.read(block.lines())
        if record is None:
            dropped.append(block.title)
        else:
            result.endpoints.append(record)
    return result


def parse_non_functional_requirements(
    body: Sequence[str], dropped: Dropped
) -> NonFunctionalRequirements:
    return NonFunctionalRequirements(**read_flat(body, NON_FUNCTIONAL))


def roadmap_kind(title: str) -> tuple[str, bool]:
    """Classify a roadmap ``###`` block: ``(kind, grouped)``.

    ``Phase: X``/``Milestone: X`` are single entries; ``Phases``/``Milestones``
    groups hold ``####`` entries or legacy bold lines; anything else is read
    as a phase named after its heading.
    """
    match = PREFIXED_RE.match(title)
    if match:
        return match.group("kind").lower(), False
    text = normalize_title(title)
    if text.endswith("milestones"):
        return "milestone", True
    if text.endswith("phases"):
        return "phase", True
    return ("milestone" if "milestone" in text else "phase"), False


def _legacy_phases(lines: Sequence[str]) -> list[RoadmapPhase]:
    phases: list[RoadmapPhase] = []
    for line in lines:
        text = line.strip()
        match = LEGACY_PHASE_RE.match(text)
        if match:
            phases.append(
                RoadmapPhase(
                    name=match.group("name").strip(),
                    description=match.group("description").strip(),
                    duration=(match.group("duration") or "").strip(),
                )
            )
        elif phases and item_text(text):
            phases[-1].deliverables.append(item_text(text))
    return phases


def _legacy_milestones(lines: Sequence[str]) -> list[Milestone]:
    milestones = []
    for line in lines:
        match = LEGACY_MILESTONE_RE.match(line.strip())
        if match:
            milestones.append(
                Milestone(
                    name=match.group("name").strip(),
                    description=match.group("description").strip(),
                    date=(match.group("date") or "").strip(),
                    dependencies=split_list(match.group("deps") or ""),
                )
            )
    return milestones


def parse_roadmap(body: Sequence[str], dropped: Dropped) -> Roadmap:
    result = Roadmap()
    for block in split_blocks(body, 3):
        if block.heading is None:
            continue
        kind, grouped = roadmap_kind(block.title)
        target = result.milestones if kind == "milestone" else result.phases
        if grouped:
            lead = split_blocks(block.body, 4)[0].body
            if kind == "milestone":
                target.extend(_legacy_milestones(lead))
                target.extend(read_entries(block.body, GROUPED_MILESTONE, dropped))
            else:
                target.extend(_legacy_phases(lead))
                target.extend(read_entries(block.body, GROUPED_PHASE, dropped))
            continue
        record, _ = (MILESTONE if kind == "milestone" else PHASE).read(block.lines())
        if record is None:
            dropped.append(block.title)
        else:
            target.append(record)
    return result


def parse_project_info(body: Sequence[str], dropped: Dropped) -> ProjectInfo:
    return ProjectInfo(**read_flat(body, PROJECT_INFO))


def parse_decision_log(body: Sequence[str], dropped: Dropped) -> list[DecisionEntry]:
    return read_entries(body, DECISION, dropped)


GLOSSARY_DEFINITION = FieldSpec("definition", ("Definition",), TEXT)


def glossary_term_end(lines: Sequence[str], index: int) -> int:
    """One past the last continuation line of the definition labelled at ``index``."""
    return field_end(lines, index, GLOSSARY_DEFINITION, ())


def parse_glossary(body: Sequence[str], dropped: Dropped) -> list[GlossaryEntry]:
    entries = []
    category = ""
    cursor = LineCursor(body)
    while not cursor.done:
        found = cursor.heading()
        if found is not None:
            category = "" if is_placeholder(found[1]) else found[1].strip()
            cursor.advance()
            continue
        index = cursor.index
        text = cursor.advance().strip()
        label = read_label(text)
        if label is not None:
            _, written, value = label
            end = glossary_term_end(body, index)
            continuation = [unescape_prose(line.strip()) for line in body[index + 1 : end]]
            definition = "\n".join(part for part in [value, *continuation] if part)
            cursor.index = end
        else:
            bold = BOLD_TERM_RE.match(text)
            if bold is None:
                continue
            written = bold.group("term")
            definition = ""
            while not cursor.done and not cursor.peek():
                cursor.advance()
            if not cursor.done and is_prose(cursor.peek()):
                definition = cursor.advance().strip()
        term = written.strip()
        if not term or is_placeholder(term):
            dropped.append(term)
            continue
        if definition:
            entries.append(GlossaryEntry(term=term, definition=definition, category=category))
    return entries


def parse_meeting_notes(body: Sequence[str], dropped: Dropped) -> list[MeetingNote]:
    return read_entries(body, MEETING, dropped)


def parse_lessons_learned(body: Sequence[str], dropped: Dropped) -> list[LessonEntry]:
    return read_entries(body, LESSON, dropped)


def parse_onboarding_notes(body: Sequence[str], dropped: Dropped) -> list[OnboardingNote]:
    return read_entries(body, ONBOARDING, dropped)


def absorb(target: Any, value: Any) -> None:
    """Fold a parsed sub-record into the document's one: lists extend, empty scalars fill."""
    for f in fields(target):
        incoming = getattr(value, f.name)
        if isinstance(incoming, list):
            getattr(target, f.name).extend(incoming)
        elif incoming and not getattr(target, f.name):
            setattr(target, f.name, incoming)

