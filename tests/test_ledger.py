"""Tests for the preservation ledger."""

from arcana.document.ledger import FULL_DOCUMENT, PARSE_ERROR, UNCLASSIFIED, PreservationLedger
from arcana.document.segmenter import Section


def _section(title: str, start: int) -> Section:
    return Section(title=title, raw_content=f"## {title}\nbody {start}", start_line=start, end_line=start + 2)


class TestPreservationLedger:
    def test_preserve_keeps_raw_text_and_range(self):
        ledger = PreservationLedger()
        entry = ledger.preserve(_section("Notes", 4))
        assert entry.reason == UNCLASSIFIED
        assert ledger.get("Notes") == "## Notes\nbody 4"
        assert ledger.ranges == [(4, 6)]
        assert "Notes" in ledger
        assert len(ledger) == 1

    def test_duplicate_titles_first_wins(self):
        ledger = PreservationLedger()
        ledger.preserve(_section("Notes", 0))
        ledger.preserve(_section("Notes", 2), PARSE_ERROR)
        assert len(ledger) == 2
        assert ledger.titles == ["Notes", "Notes"]
        assert ledger.get("Notes") == "## Notes\nbody 0"
        assert ledger.to_dict() == {"Notes": "## Notes\nbody 0"}
        assert [e.reason for e in ledger] == [UNCLASSIFIED, PARSE_ERROR]

    def test_preserve_document(self):
        ledger = PreservationLedger()
        ledger.preserve_document("a\nb\nc")
        assert ledger.get(FULL_DOCUMENT) == "a\nb\nc"
        assert ledger.ranges == [(0, 3)]

    def test_missing(self):
        ledger = PreservationLedger()
        assert ledger.get("Nope") is None
        assert "Nope" not in ledger
        assert not ledger
