"""Tests for the section segmenter."""

from arcana.document.segmenter import segment

DOC = """# Acme - Project Technical Specification

Intro paragraph.

## 📋 Project Overview
**Description:** Thing

### Details
more

## Notes
free text
"""


class TestSegment:
    def test_sections_and_title(self):
        seg = segment(DOC)
        assert [s.title for s in seg.sections] == ["📋 Project Overview", "Notes"]
        assert seg.name == "Acme"
        assert seg.title_suffix == " - Project Technical Specification"
        assert seg.title_index == 0

    def test_subheadings_stay_inside(self):
        seg = segment(DOC)
        overview = seg.sections[0]
        assert "### Details" in overview.raw_content
        assert overview.lines[0] == "## 📋 Project Overview"

    def test_ranges_cover_the_tail(self):
        seg = segment(DOC)
        lines = DOC.split("\n")
        assert seg.sections[0].start_line == 4
        assert seg.sections[0].end_line == seg.sections[1].start_line
        assert seg.sections[-1].end_line == len(lines)
        assert seg.preamble_end == 4

    def test_raw_content_is_exact(self):
        seg = segment(DOC)
        rebuilt = "\n".join(DOC.split("\n")[: seg.preamble_end])
        rebuilt += "\n" + "\n".join(s.raw_content for s in seg.sections)
        assert rebuilt == DOC

    def test_no_sections(self):
        seg = segment("# Only a title\n\nsome text\n")
        assert seg.sections == []
        assert seg.name == "Only a title"

    def test_empty(self):
        seg = segment("")
        assert seg.sections == []
        assert seg.title_index is None

    def test_headings_in_code_fences_ignored(self):
        text = "## Real\n```\n## Fake\n# Fake title\n```\n"
        seg = segment(text)
        assert [s.title for s in seg.sections] == ["Real"]
        assert seg.title_index is None

    def test_frontmatter(self):
        text = "---\ndialect: memory\nowner: ops\n---\n# Acme\n\n## Glossary\n"
        seg = segment(text)
        assert seg.frontmatter_end == 4
        assert seg.metadata == {"dialect": "memory", "owner": "ops"}
        assert seg.title_index == 4
        assert seg.name == "Acme"

    def test_bad_frontmatter_is_ignored(self):
        seg = segment("---\n: [unclosed\n---\n# Acme\n")
        assert seg.metadata == {}
        assert seg.name == "Acme"
