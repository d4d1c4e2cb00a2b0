"""Preservation Ledger — raw text the parser did not model, keyed by section title."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from arcana.document.segmenter import Section

FULL_DOCUMENT = "FULL_DOCUMENT"

UNCLASSIFIED = "unclassified"
PARSE_ERROR = "parse-error"
FAILURE = "failure"


@dataclass(frozen=True)
class LedgerEntry:
    title: str
    raw_text: str
    start_line: int
    end_line: int
    reason: str = UNCLASSIFIED


class PreservationLedger:
    """Ordered store of preserved sections.

    Titles may repeat (two ``## Notes`` sections are both kept); lookups by
    title return the first one, matching the merge engine's first-match rule.
    """

    def __init__(self) -> None:
        self._entries: list[LedgerEntry] = []

    def preserve(self, section: Section, reason: str = UNCLASSIFIED) -> LedgerEntry:
        entry = LedgerEntry(
            title=section.title,
            raw_text=section.raw_content,
            start_line=section.start_line,
            end_line=section.end_line,
            reason=reason,
        )
        self._entries.append(entry)
        return entry

    def preserve_document(self, text: str) -> LedgerEntry:
        """Keep the whole text as a single ``FULL_DOCUMENT`` entry."""
        entry = LedgerEntry(
            title=FULL_DOCUMENT,
            raw_text=text,
            start_line=0,
            end_line=len(text.split("\n")),
            reason=FAILURE,
        )
        self._entries.append(entry)
        return entry

    def get(self, title: str) -> str | None:
        for entry in self._entries:
            if entry.title == title:
                return entry.raw_text
        return None

    @property
    def titles(self) -> list[str]:
        return [entry.title for entry in self._entries]

    @property
    def ranges(self) -> list[tuple[int, int]]:
        return [(entry.start_line, entry.end_line) for entry in self._entries]

    def to_dict(self) -> dict[str, str]:
        """Title to raw text; the first entry wins when titles repeat."""
        out: dict[str, str] = {}
        for entry in self._entries:
            out.setdefault(entry.title, entry.raw_text)
        return out

    def __contains__(self, title: object) -> bool:
        return any(entry.title == title for entry in self._entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
