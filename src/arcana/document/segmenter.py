"""Section Segmenter — split document text into top-level ``## `` sections."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import frontmatter

from arcana.document.grammar import fence_mask, split_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Section:
    """A ``## `` heading and everything up to the next one.

    ``start_line`` is the heading's index; ``end_line`` is exclusive.
    ``raw_content`` is the exact text of those lines, heading included.
    """

    title: str
    raw_content: str
    start_line: int
    end_line: int

    @property
    def lines(self) -> list[str]:
        return self.raw_content.split("\n")

    @property
    def body(self) -> list[str]:
        return self.lines[1:]


@dataclass
class Segmentation:
    """Result of one linear scan over a document."""

    lines: list[str]
    sections: list[Section] = field(default_factory=list)
    title_index: int | None = None
    name: str = ""
    title_suffix: str = ""
    frontmatter_end: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def preamble_end(self) -> int:
        return self.sections[0].start_line if self.sections else len(self.lines)


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only so joining with ``\\n`` reproduces the text byte for byte."""
    return text.split("\n")


def frontmatter_span(lines: list[str]) -> int:
    """Number of leading lines taken by a ``---`` YAML frontmatter block (0 if none)."""
    if not lines or lines[0].strip() != "---":
        return 0
    for index in range(1, len(lines)):
        if lines[index].strip() in ("---", "..."):
            return index + 1
    return 0


def read_metadata(lines: list[str], end: int) -> dict[str, Any]:
    if not end:
        return {}
    try:
        post = frontmatter.loads("\n".join(lines[:end]) + "\n")
        return dict(post.metadata)
    except Exception as e:
        logger.debug("Ignoring unreadable frontmatter: %s", e)
        return {}


def segment(text: str, suffixes: Iterable[str] = ()) -> Segmentation:
    """Single pass: each ``## `` line closes the previous section and opens a new one.

    ``### `` headings are left inside their section. The first ``# `` line
    outside frontmatter and code fences is the document title; ``suffixes``
    are title suffixes to recognise besides the dialect ones.
    """
    suffixes = tuple(suffixes)
    lines = split_lines(text)
    result = Segmentation(lines=lines)
    result.frontmatter_end = frontmatter_span(lines)
    result.metadata = read_metadata(lines, result.frontmatter_end)
    fenced = fence_mask(lines)

    starts: list[int] = []
    for index in range(result.frontmatter_end, len(lines)):
        if fenced[index]:
            continue
        stripped = lines[index].strip()
        if stripped.startswith("## "):
            starts.append(index)
        elif result.title_index is None and stripped.startswith("# "):
            parts = split_title(lines[index], suffixes)
            if parts is not None:
                result.title_index = index
                result.name, result.title_suffix = parts

    for position, start in enumerate(starts):
        end = starts[position + 1] if position + 1 < len(starts) else len(lines)
        result.sections.append(
            Section(
                title=lines[start].strip()[3:].strip(),
                raw_content="\n".join(lines[start:end]),
                start_line=start,
                end_line=end,
            )
        )
    return result
