"""Line-level grammar shared by the field parsers, the emitter and the merge engine.

The documents are human-edited prose, so this is a set of line predicates
rather than a formal grammar. The one rule that must never drift between
reading and writing is label matching: ``match_label`` is the only place that
decides whether a line is ``**<Label>:** <value>``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from arcana.models import (
    ACTION_STATUSES,
    ActionItem,
    OnboardingResource,
    OnboardingTask,
    coerce_choice,
)

HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)\s*$")
TITLE_RE = re.compile(r"^(?P<lead>\s*#[ \t]+)(?P<text>.*?)(?P<trail>\s*)$")
TITLE_SEPARATOR_RE = re.compile(r"\s+-\s+")
LABEL_RE = re.compile(r"^\*\*(?P<label>[^*]+?):\*\*(?P<value>.*)$")
BOLD_TERM_RE = re.compile(r"^\*\*(?P<term>[^*:]+)\*\*$")
LIST_ITEM_RE = re.compile(r"^[-*+][ \t]+(?P<text>.*?)\s*$")
CHECKBOX_RE = re.compile(r"^[-*+][ \t]+\[(?P<mark>[ xX~])\][ \t]*(?P<text>.*?)\s*$")
ACTION_CLAUSE_RE = re.compile(
    r"^(?P<description>.*?)\s*\((?P<assignee>[^()]*?)\s*-\s*Due:\s*(?P<due>[^()]*?)\s*\)$"
)
RESOURCE_RE = re.compile(r"^[-*+][ \t]+📚[ \t]*(?P<body>.+?)(?:\s*\((?P<type>[^()]*)\))?\s*$")
LINK_RE = re.compile(r"^\[(?P<title>[^\]]*)\]\((?P<url>[^)]*)\)$")
RULE_RE = re.compile(r"^(?:-{3,}|\*{3,}|_{3,})$")
FENCE_RE = re.compile(r"^(?:```|~~~)")
DECORATION_RE = re.compile(r"^[^\w(\[]+")
PLACEHOLDER_RE = re.compile(
    r"^(?:_.*_|\*[^*].*\*|\[.*\]|no\s+\w+(?:\s+\w+)?\s+(?:yet|recorded|documented)\b.*"
    r"|new team member\b.*)$",
    re.IGNORECASE,
)

# Title suffixes the two dialects write after ``# <Name> - ``.
DIALECT_SUFFIXES = frozenset({
    "project technical specification",
    "project specification",
    "technical specification",
    "memory document",
    "project memory document",
})

CHECK_MARKS = {"x": "complete", "X": "complete", "~": "in-progress", " ": "open"}
STATUS_MARKS = {"complete": "x", "in-progress": "~", "open": " "}

# Field kinds
TEXT = "text"
LINE = "line"
CSV = "csv"
CHOICE = "choice"
MULTILINE = "multiline"
LIST = "list"
CHECKLIST = "checklist"
ACTIONS = "actions"
RESOURCES = "resources"
LIST_KINDS = frozenset({LIST, CHECKLIST, ACTIONS, RESOURCES})


# ── Title and heading helpers ────────────────────────────────


def normalize_title(title: str) -> str:
    """Drop emoji and punctuation, lowercase, collapse whitespace."""
    return " ".join(re.sub(r"[^\w\s]", "", title).lower().split())


def heading(line: str) -> tuple[int, str] | None:
    """Return ``(level, text)`` for a markdown ATX heading line."""
    match = HEADING_RE.match(line.strip())
    if not match:
        return None
    return len(match.group(1)), match.group(2)


def is_title_suffix(text: str, extra: Iterable[str] = ()) -> bool:
    """True for a dialect suffix, or one of ``extra`` (configured suffixes)."""
    folded = " ".join(text.lower().split())
    if not folded:
        return False
    return folded in DIALECT_SUFFIXES or any(folded == " ".join(s.lower().split()) for s in extra)


def _suffix_start(text: str, suffixes: Iterable[str]) -> int:
    """Offset of the `` - <Suffix>`` clause in title text, or ``len(text)``."""
    suffixes = tuple(suffixes)
    for match in TITLE_SEPARATOR_RE.finditer(text):
        if is_title_suffix(text[match.end() :], suffixes):
            return match.start()
    return len(text)


def split_title(line: str, suffixes: Iterable[str] = ()) -> tuple[str, str] | None:
    """Split a ``# <Name> - <Suffix>`` line into name and verbatim suffix.

    Only a known dialect suffix (or one of ``suffixes``) is split off, so
    ``# Acme - Core Platform`` is all name.
    """
    stripped = line.strip()
    if not stripped.startswith("# "):
        return None
    match = TITLE_RE.match(line.rstrip("\r\n"))
    if not match:
        return None
    text = match.group("text")
    start = _suffix_start(text, suffixes)
    return text[:start].strip(), text[start:]


def replace_title_name(line: str, name: str, suffixes: Iterable[str] = ()) -> str:
    """Substitute the name in a title line, keeping any ``- <Suffix>`` clause."""
    match = TITLE_RE.match(line)
    if not match:
        return line
    begin = match.start("text")
    end = begin + _suffix_start(match.group("text"), suffixes)
    return line[:begin] + name + line[end:]


def is_placeholder(text: str) -> bool:
    return bool(PLACEHOLDER_RE.match(text.strip()))


def is_rule(text: str) -> bool:
    return bool(RULE_RE.match(text.strip()))


def fence_mask(lines: Sequence[str]) -> list[bool]:
    """Mark lines that sit inside (or delimit) fenced code blocks."""
    mask: list[bool] = []
    inside = False
    for line in lines:
        if FENCE_RE.match(line.strip()):
            mask.append(True)
            inside = not inside
        else:
            mask.append(inside)
    return mask


# ── Labels ───────────────────────────────────────────────────


@dataclass(frozen=True)
class LabelMatch:
    """A ``**<Label>:** <value>`` line matched against a wanted label."""

    label: str
    written: str
    value: str


def read_label(line: str) -> tuple[str, str, str] | None:
    """Return ``(clean_label, written_label, value)`` for any label line."""
    match = LABEL_RE.match(line.strip())
    if not match:
        return None
    written = match.group("label")
    clean = DECORATION_RE.sub("", written).strip()
    return clean, written, match.group("value").strip()


def label_matches(clean: str, label: str) -> bool:
    """Prefix rule: exact label, optionally followed by a parenthetical note."""
    return clean == label or clean.startswith(label + " (")


def match_label(line: str, labels: Iterable[str]) -> LabelMatch | None:
    found = read_label(line)
    if found is None:
        return None
    clean, written, value = found
    for label in labels:
        if label_matches(clean, label):
            return LabelMatch(label=label, written=written, value=value)
    return None


def render_label(label: str, value: str = "") -> str:
    return f"**{label}:** {value}" if value else f"**{label}:**"


def split_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


# ── List micro-formats ───────────────────────────────────────


def list_text(line: str) -> str | None:
    match = LIST_ITEM_RE.match(line.strip())
    return match.group("text") if match else None


def parse_checkbox(line: str) -> tuple[str, str] | None:
    """Return ``(status, text)`` for ``- [x] text`` style lines."""
    match = CHECKBOX_RE.match(line.strip())
    if not match:
        return None
    return CHECK_MARKS[match.group("mark")], match.group("text")


def item_text(line: str) -> str | None:
    """Text of a plain or checkbox list item, without the marker."""
    checked = parse_checkbox(line)
    if checked is not None:
        return checked[1]
    return list_text(line)


def parse_action_item(line: str) -> ActionItem | None:
    """Parse ``- [x] <description> (<assignee> - Due: <date>)``; the clause is optional."""
    checked = parse_checkbox(line)
    if checked is not None:
        status, text = checked
    else:
        text = list_text(line)
        if text is None:
            return None
        status = "open"
    assignee = due = ""
    clause = ACTION_CLAUSE_RE.match(text)
    if clause:
        text = clause.group("description")
        assignee = clause.group("assignee").strip()
        due = clause.group("due").strip()
    text = text.strip()
    if not text:
        return None
    return ActionItem(
        description=text,
        assignee=assignee,
        due_date=due,
        status=coerce_choice(status, ACTION_STATUSES, "open"),
    )


def render_action_item(item: ActionItem) -> str:
    mark = STATUS_MARKS.get(item.status, " ")
    line = f"- [{mark}] {item.description}"
    if item.assignee or item.due_date:
        line += f" ({item.assignee} - Due: {item.due_date})"
    return line.rstrip()


def parse_task(line: str) -> OnboardingTask | None:
    checked = parse_checkbox(line)
    if checked is not None:
        status, text = checked
        completed = status == "complete"
    else:
        text = list_text(line) or ""
        completed = False
    if not text:
        return None
    return OnboardingTask(task=text, completed=completed)


def render_task(task: OnboardingTask) -> str:
    return f"- [{'x' if task.completed else ' '}] {task.task}"


def parse_resource(line: str) -> OnboardingResource | None:
    match = RESOURCE_RE.match(line.strip())
    if not match:
        return None
    body = match.group("body").strip()
    url = ""
    link = LINK_RE.match(body)
    if link:
        body, url = link.group("title").strip(), link.group("url").strip()
    return OnboardingResource(title=body, url=url, type=(match.group("type") or "").strip())


def render_resource(resource: OnboardingResource) -> str:
    body = f"[{resource.title}]({resource.url})" if resource.url else resource.title
    if resource.type or resource.url:
        return f"- 📚 {body} ({resource.type})"
    return f"- 📚 {body}"


# ── Cursor ───────────────────────────────────────────────────


class LineCursor:
    """Explicit scan position over a list of raw lines.

    Each reader consumes what it understands and leaves ``index`` on the
    first line it did not consume. Headings inside fenced code never count
    as boundaries.
    """

    def __init__(self, lines: Sequence[str], start: int = 0) -> None:
        self.lines = lines
        self.index = start
        self._fenced = fence_mask(lines)

    @property
    def done(self) -> bool:
        return self.index >= len(self.lines)

    def peek(self) -> str:
        return self.lines[self.index].strip()

    def advance(self) -> str:
        line = self.lines[self.index]
        self.index += 1
        return line

    def heading(self) -> tuple[int, str] | None:
        if self.done or self._fenced[self.index]:
            return None
        return heading(self.lines[self.index])

    def at_boundary(self, level: int) -> bool:
        found = self.heading()
        return found is not None and found[0] <= level

    def take_block(self, level: int) -> list[str]:
        """Consume the current line and everything up to the next heading of ``level`` or above."""
        start = self.index
        self.index += 1
        while not self.done and not self.at_boundary(level):
            self.index += 1
        return list(self.lines[start : self.index])


@dataclass
class Block:
    """A heading line and the raw lines under it. ``heading`` is None for the lead block."""

    heading: str | None
    body: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        if self.heading is None:
            return ""
        found = heading(self.heading)
        return found[1] if found else ""

    def lines(self) -> list[str]:
        return ([self.heading] if self.heading is not None else []) + self.body


def split_blocks(lines: Sequence[str], level: int) -> list[Block]:
    """Split lines into a lead block plus one block per heading of exactly ``level``.

    Deeper headings stay inside their block; shallower headings also start a
    block so nothing spills across them.
    """
    cursor = LineCursor(lines)
    blocks = [Block(None)]
    while not cursor.done:
        if cursor.at_boundary(level):
            block = cursor.take_block(level)
            blocks.append(Block(block[0], block[1:]))
        else:
            blocks[0].body.append(cursor.advance())
    return blocks


# ── Field tables ─────────────────────────────────────────────


@dataclass(frozen=True)
class FieldSpec:
    """One labelled field: which labels name it and how its value is shaped."""

    attr: str
    labels: tuple[str, ...]
    kind: str = TEXT
    choices: tuple[str, ...] = ()
    default: str = ""
    fenced: bool = False

    @property
    def label(self) -> str:
        return self.labels[0]


@dataclass
class FieldScan:
    """Values found by ``scan_fields`` plus the line span each came from."""

    values: dict[str, Any] = field(default_factory=dict)
    spans: dict[str, tuple[int, int]] = field(default_factory=dict)
    prose: list[tuple[int, int]] = field(default_factory=list)
    lines: Sequence[str] = ()

    def prose_text(self, index: int = 0) -> str:
        start, end = self.prose[index]
        return "\n".join(unescape_prose(line.strip()) for line in self.lines[start:end])


def match_field(line: str, specs: Sequence[FieldSpec]) -> tuple[FieldSpec, LabelMatch] | None:
    for spec in specs:
        found = match_label(line, spec.labels)
        if found is not None:
            return spec, found
    return None


def is_prose(text: str) -> bool:
    if not text or is_rule(text) or is_placeholder(text):
        return False
    if heading(text) or LABEL_RE.match(text) or list_text(text) is not None:
        return False
    return not text.startswith(("|", ">", "<!--", "```", "~~~", "**"))


def escape_prose(text: str) -> str:
    """Backslash-escape a value line that would otherwise end a prose run."""
    if not text or is_prose(text):
        return text
    return "\\" + text


def unescape_prose(text: str) -> str:
    if text.startswith("\\") and text[1:] and not is_prose(text[1:]):
        return text[1:]
    return text


def _is_list_line(text: str) -> bool:
    return list_text(text) is not None


def field_end(lines: Sequence[str], index: int, spec: FieldSpec, specs: Sequence[FieldSpec]) -> int:
    """Index one past the last line belonging to the field labelled at ``index``."""
    n = len(lines)
    if spec.kind in (LINE, CSV, CHOICE):
        return index + 1
    if spec.kind == TEXT:
        end = index + 1
        while end < n and is_prose(lines[end].strip()):
            end += 1
        return end
    if spec.kind == MULTILINE:
        mask = fence_mask(lines)
        end = index + 1
        while end < n:
            text = lines[end].strip()
            if not mask[end] and (heading(text) or is_rule(text) or match_field(text, specs)):
                break
            end += 1
        while end > index + 1 and not lines[end - 1].strip():
            end -= 1
        return end
    end = last = index + 1
    while end < n:
        text = lines[end].strip()
        if not text:
            end += 1
            continue
        if not _is_list_line(text):
            break
        end += 1
        last = end
    return last


def decode_field(spec: FieldSpec, inline: str, continuation: Sequence[str]) -> Any:
    if spec.kind == CSV:
        return split_list(inline)
    if spec.kind == CHOICE:
        return coerce_choice(inline, spec.choices, spec.default)
    if spec.kind == LINE:
        return inline
    if spec.kind == TEXT:
        lines = [unescape_prose(line.strip()) for line in continuation]
        parts = ([inline] if inline else []) + lines
        return "\n".join(parts)
    if spec.kind == MULTILINE:
        parts = ([inline] if inline else []) + [line.rstrip() for line in continuation]
        while parts and not parts[0].strip():
            parts.pop(0)
        if len(parts) >= 2 and FENCE_RE.match(parts[0].strip()) and parts[-1].strip() in (
            "```",
            "~~~",
        ):
            parts = parts[1:-1]
        return "\n".join(parts)
    items: list[Any] = []
    if spec.kind == LIST:
        items.extend(split_list(inline))
        for line in continuation:
            text = item_text(line)
            if text and not is_placeholder(text):
                items.append(text)
    elif spec.kind == CHECKLIST:
        items.extend(filter(None, (parse_task(line) for line in continuation)))
    elif spec.kind == ACTIONS:
        items.extend(filter(None, (parse_action_item(line) for line in continuation)))
    elif spec.kind == RESOURCES:
        items.extend(filter(None, (parse_resource(line) for line in continuation)))
    return items


def scan_fields(lines: Sequence[str], specs: Sequence[FieldSpec]) -> FieldScan:
    """Collect labelled fields (first occurrence wins) and unlabelled prose paragraphs.

    Sub-headings are stepped over; callers that care about them split the
    lines into blocks first.
    """
    scan = FieldScan(lines=lines)
    mask = fence_mask(lines)
    index = 0
    while index < len(lines):
        text = lines[index].strip()
        if not text or mask[index] or heading(text):
            index += 1
            continue
        hit = match_field(text, specs)
        if hit is not None:
            spec, found = hit
            end = field_end(lines, index, spec, specs)
            if spec.attr not in scan.spans:
                scan.values[spec.attr] = decode_field(spec, found.value, lines[index + 1 : end])
                scan.spans[spec.attr] = (index, end)
            index = end
            continue
        if is_prose(text):
            end = index + 1
            while end < len(lines) and is_prose(lines[end].strip()):
                end += 1
            scan.prose.append((index, end))
            index = end
            continue
        index += 1
    return scan
