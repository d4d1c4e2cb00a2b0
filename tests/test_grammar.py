"""Tests for the line grammar shared by parsers, emitter and merge."""

import pytest

from arcana.document.grammar import (
    CSV,
    LIST,
    MULTILINE,
    TEXT,
    FieldSpec,
    LineCursor,
    escape_prose,
    is_placeholder,
    match_label,
    normalize_title,
    parse_action_item,
    parse_resource,
    parse_task,
    render_action_item,
    render_resource,
    replace_title_name,
    scan_fields,
    split_blocks,
    split_title,
    unescape_prose,
)
from arcana.models import ActionItem, OnboardingResource


class TestTitles:
    def test_normalize_drops_emoji_and_punctuation(self):
        assert normalize_title("📋 Project Overview") == "project overview"
        assert normalize_title("⚙️  Non-Functional  Requirements!") == "nonfunctional requirements"

    def test_split_title_with_suffix(self):
        assert split_title("# Acme - Memory Document") == ("Acme", " - Memory Document")

    def test_split_title_without_suffix(self):
        assert split_title("# Acme") == ("Acme", "")

    def test_split_title_rejects_subheadings(self):
        assert split_title("## Acme") is None

    def test_replace_title_name_keeps_suffix_verbatim(self):
        line = "# Acme  -  Project Technical Specification"
        assert replace_title_name(line, "Globex") == "# Globex  -  Project Technical Specification"

    def test_dash_without_known_suffix_is_part_of_the_name(self):
        assert split_title("# Acme - Core Platform") == ("Acme - Core Platform", "")
        assert replace_title_name("# Acme - Core Platform", "Globex") == "# Globex"

    def test_only_the_trailing_suffix_is_split_off(self):
        line = "# Acme - Core - Project Technical Specification"
        assert split_title(line) == ("Acme - Core", " - Project Technical Specification")
        assert replace_title_name(line, "Globex") == "# Globex - Project Technical Specification"

    def test_configured_suffix(self):
        assert split_title("# Acme - Design Doc", ["Design Doc"]) == ("Acme", " - Design Doc")
        line = "# Acme - design  doc"
        assert replace_title_name(line, "Globex", ["Design Doc"]) == "# Globex - design  doc"


class TestLabels:
    def test_exact_label(self):
        found = match_label("**Description:** A thing", ["Description"])
        assert found.label == "Description"
        assert found.value == "A thing"

    def test_decorated_label(self):
        found = match_label("**🎯 Purpose:** Why", ["Purpose"])
        assert found.written == "🎯 Purpose"
        assert found.value == "Why"

    def test_parenthetical_suffix(self):
        found = match_label("**Onboarding Tasks (2/3 completed):**", ["Onboarding Tasks"])
        assert found is not None
        assert found.value == ""

    def test_case_sensitive(self):
        assert match_label("**description:** x", ["Description"]) is None

    def test_prefix_must_be_whole_label(self):
        assert match_label("**Descriptions:** x", ["Description"]) is None


class TestPlaceholders:
    @pytest.mark.parametrize(
        "text",
        [
            "_No decisions recorded yet_",
            "*New team member guidance and setup instructions will be documented here.*",
            "[To be updated as team members are identified]",
            "No meeting notes yet",
        ],
    )
    def test_placeholders(self, text):
        assert is_placeholder(text)

    def test_real_text(self):
        assert not is_placeholder("Use PostgreSQL")


class TestListFormats:
    def test_action_item_with_clause(self):
        item = parse_action_item("- [x] Ship docs (Alice - Due: 2024-01-01)")
        assert item == ActionItem(
            description="Ship docs", assignee="Alice", due_date="2024-01-01", status="complete"
        )

    def test_action_item_without_clause(self):
        item = parse_action_item("- [ ] Draft outline")
        assert item == ActionItem(description="Draft outline", assignee="", due_date="", status="open")

    def test_action_item_in_progress_mark(self):
        assert parse_action_item("- [~] Review").status == "in-progress"

    def test_action_item_render_round_trip(self):
        item = ActionItem(description="Ship", assignee="Bo", due_date="2024-02-02", status="in-progress")
        assert render_action_item(item) == "- [~] Ship (Bo - Due: 2024-02-02)"
        assert parse_action_item(render_action_item(item)) == item

    def test_task(self):
        assert parse_task("- [X] Laptop").completed is True
        assert parse_task("- [ ] Badge").completed is False

    def test_resource_with_link(self):
        resource = parse_resource("- 📚 [Handbook](https://example.com/h) (doc)")
        assert resource == OnboardingResource(title="Handbook", url="https://example.com/h", type="doc")

    def test_resource_plain(self):
        assert parse_resource("- 📚 Wiki (site)") == OnboardingResource(title="Wiki", type="site")

    def test_resource_link_without_type_round_trips(self):
        resource = OnboardingResource(title="Guide", url="https://example.com")
        assert parse_resource(render_resource(resource)) == resource


class TestCursor:
    def test_take_block_stops_at_same_level(self):
        lines = ["### A", "x", "#### A.1", "y", "### B", "z"]
        cursor = LineCursor(lines)
        assert cursor.take_block(3) == ["### A", "x", "#### A.1", "y"]
        assert cursor.index == 4

    def test_fenced_headings_are_not_boundaries(self):
        lines = ["### A", "```", "### not a heading", "```", "### B"]
        cursor = LineCursor(lines)
        assert cursor.take_block(3) == lines[:4]

    def test_split_blocks(self):
        blocks = split_blocks(["intro", "### One", "a", "### Two", "b"], 3)
        assert [b.heading for b in blocks] == [None, "### One", "### Two"]
        assert blocks[0].body == ["intro"]
        assert blocks[2].title == "Two"


class TestScanFields:
    SPECS = (
        FieldSpec("description", ("Description",), TEXT),
        FieldSpec("tags", ("Tags",), CSV),
        FieldSpec("steps", ("Steps",), LIST),
        FieldSpec("notes", ("Notes",), MULTILINE),
    )

    def test_first_occurrence_wins(self):
        scan = scan_fields(["**Description:** one", "**Description:** two"], self.SPECS)
        assert scan.values["description"] == "one"

    def test_text_continuation(self):
        scan = scan_fields(["**Description:** first", "second line", "", "prose"], self.SPECS)
        assert scan.values["description"] == "first\nsecond line"
        assert scan.spans["description"] == (0, 2)
        assert scan.prose_text() == "prose"

    def test_text_continuation_unescapes_markup_lines(self):
        lines = ["**Description:** first", "\\- not a list", "\\> not a quote", "**Tags:** x"]
        scan = scan_fields(lines, self.SPECS)
        assert scan.values["description"] == "first\n- not a list\n> not a quote"
        assert scan.values["tags"] == ["x"]

    def test_list_and_csv(self):
        lines = ["**Tags:** a, b", "**Steps:**", "- one", "", "- two", "after"]
        scan = scan_fields(lines, self.SPECS)
        assert scan.values["tags"] == ["a", "b"]
        assert scan.values["steps"] == ["one", "two"]

    def test_multiline_stops_at_next_label(self):
        lines = ["**Notes:**", "line one", "", "- bullet", "**Tags:** x"]
        scan = scan_fields(lines, self.SPECS)
        assert scan.values["notes"] == "line one\n\n- bullet"
        assert scan.values["tags"] == ["x"]

    def test_multiline_unwraps_fence(self):
        lines = ["**Notes:**", "```", "**Tags:** inside", "```"]
        scan = scan_fields(lines, self.SPECS)
        assert scan.values["notes"] == "**Tags:** inside"
        assert "tags" not in scan.values


class TestProseEscapes:
    @pytest.mark.parametrize("text", ["- item", "> quote", "**bold**", "## heading", "---", "| cell"])
    def test_markup_lines_are_escaped(self, text):
        assert escape_prose(text) == "\\" + text
        assert unescape_prose(escape_prose(text)) == text

    def test_prose_is_left_alone(self):
        assert escape_prose("plain words") == "plain words"
        assert unescape_prose("plain words") == "plain words"

    def test_backslash_before_prose_is_kept(self):
        assert unescape_prose("\\plain") == "\\plain"
