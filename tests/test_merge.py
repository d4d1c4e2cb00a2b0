"""Tests for the merge engine: in-place edits, preservation and fallbacks."""

import importlib

import pytest

from arcana.document.emitter import EmitOptions, emit
from arcana.document.merge import merge
from arcana.document.parser import parse, parse_document
from arcana.models import (
    APIEndpoint,
    APIs,
    DecisionEntry,
    Feature,
    FunctionalRequirements,
    GlossaryEntry,
    LessonEntry,
    MeetingNote,
    MemoryDocumentData,
    Milestone,
    ProjectInfo,
    ProjectOverview,
    Roadmap,
    RoadmapPhase,
    SpecDocumentData,
    TechnicalRequirements,
)

merge_mod = importlib.import_module("arcana.document.merge")

ORIGINAL = """# Acme - Memory Document

Intro kept as is.

## 📋 Project Information
**🏷️ Description:** Rocket company
**Team:** Alice, Bob

## Random Notes
Remember to water the plants.
**Description:** not ours

## 📝 Decision Log

### Use PostgreSQL
**Date:** 2024-01-10
**Status:** pending
**Description:** Primary datastore

---

## 📚 Glossary
**API:** Application Programming Interface
"""


@pytest.fixture
def edited():
    return parse(ORIGINAL).data


@pytest.fixture
def spec_data():
    return SpecDocumentData(
        project_overview=ProjectOverview(name="Rocket", description="Reusable", stakeholders=["Alice"]),
        functional_requirements=FunctionalRequirements(
            user_stories=["Log in"],
            features=[Feature(id="feat-1", name="Login", description="Email")],
        ),
        technical_requirements=TechnicalRequirements(technologies=["Python"]),
        apis=APIs(
            endpoints=[APIEndpoint(path="/users", method="GET", response="a\nb")],
            authentication="Token",
        ),
        roadmap=Roadmap(
            phases=[RoadmapPhase(name="Foundation", deliverables=["Repo"])],
            milestones=[Milestone(name="Beta", date="2024-06-01")],
        ),
    )


class TestPreservation:
    def test_unchanged_data_reproduces_the_text(self, edited):
        assert merge(ORIGINAL, edited) == ORIGINAL

    def test_empty_edits_never_erase(self):
        assert merge(ORIGINAL, MemoryDocumentData()) == ORIGINAL

    def test_unclassified_section_survives_any_edit(self, edited):
        raw = parse_document(ORIGINAL).ledger.get("Random Notes")
        edited.project_info.description = "Changed"
        edited.glossary = []
        assert raw in merge(ORIGINAL, edited)

    def test_emitted_text_is_a_fixed_point(self, spec_data):
        text = emit(spec_data)
        assert merge(text, spec_data) == text

    def test_memory_agenda_is_a_fixed_point(self):
        data = MemoryDocumentData(
            project_info=ProjectInfo(name="Acme"),
            meeting_notes=[MeetingNote(title="Kickoff", date="2024-02-01", agenda=["Scope", "Budget"])],
        )
        text = emit(data)
        assert merge(text, data) == text

    def test_repeated_merges_do_not_grow_lists(self, spec_data):
        text = emit(spec_data)
        for _ in range(3):
            text = merge(text, parse(text).data)
        assert parse(text).data.roadmap.phases[0].deliverables == ["Repo"]
        assert text == emit(spec_data)


class TestInPlaceEdits:
    def test_memory_edits(self, edited):
        edited.project_info.name = "Acme Corp"
        edited.project_info.description = "Launch company"
        edited.project_info.team.append("Carol")
        edited.decision_log[0].status = "revisit"
        edited.decision_log.append(DecisionEntry(title="Adopt Kafka", description="Event bus"))
        edited.glossary.append(GlossaryEntry(term="SLA", definition="Service level agreement"))

        merged = merge(ORIGINAL, edited)

        assert merged.startswith("# Acme Corp - Memory Document\n\nIntro kept as is.\n")
        assert "**🏷️ Description:** Launch company\n" in merged
        assert "**Team:** Alice, Bob, Carol\n" in merged
        assert "**Status:** revisit\n" in merged
        assert (
            "**Description:** Primary datastore\n\n"
            "### Adopt Kafka\n\n**Status:** decided\n**Description:** Event bus\n\n---\n"
        ) in merged
        assert (
            "**API:** Application Programming Interface\n**SLA:** Service level agreement\n"
        ) in merged
        assert "## Random Notes\nRemember to water the plants.\n**Description:** not ours\n" in merged
        assert parse(merged).data == edited

    def test_prose_description_is_rewritten_in_place(self):
        text = "# Rocket\n\n## Overview\nAcme builds rockets.\n\n**Purpose:** Orbit\n"
        data = parse(text).data
        data.project_overview.description = "Acme builds boosters."
        assert merge(text, data) == "# Rocket\n\n## Overview\nAcme builds boosters.\n\n**Purpose:** Orbit\n"

    def test_spec_lists_and_entries_are_appended(self, spec_data):
        text = emit(spec_data)
        spec_data.technical_requirements.technologies.append("Redis")
        spec_data.apis.endpoints.append(APIEndpoint(path="/users", method="post", description="Create"))
        spec_data.roadmap.milestones.append(Milestone(name="GA", date="2024-09-01"))

        merged = merge(text, spec_data)

        assert "- Python\n- Redis\n" in merged
        assert "```\n\n#### `POST` /users\n\n**Description:** Create\n\n## 🗓️ Roadmap" in merged
        data = parse(merged).data
        assert data.technical_requirements.technologies == ["Python", "Redis"]
        assert [(e.method, e.path) for e in data.apis.endpoints] == [("GET", "/users"), ("POST", "/users")]
        assert [m.name for m in data.roadmap.milestones] == ["Beta", "GA"]
        assert merged.startswith(text.split("## ⚙️")[0])


class TestStructure:
    def test_dashed_title_is_renamed_whole(self):
        text = "# Acme - Core Platform\n\n## Overview\n**Purpose:** Orbit\n"
        data = parse(text).data
        assert data.project_overview.name == "Acme - Core Platform"
        data.project_overview.name = "Globex"
        assert merge(text, data) == "# Globex\n\n## Overview\n**Purpose:** Orbit\n"

    def test_configured_suffix_is_kept_on_rename(self):
        text = "# Acme - Design Doc\n\n## Overview\n**Purpose:** Orbit\n"
        data = parse(text, "spec", suffixes=["Design Doc"]).data
        data.project_overview.name = "Globex"
        merged = merge(text, data, "spec", EmitOptions(title_suffix="Design Doc"))
        assert merged == text.replace("Acme", "Globex")

    def test_edited_text_lines_that_look_like_markup(self, edited):
        edited.decision_log[0].description = "Primary datastore\n- with replicas"
        merged = merge(ORIGINAL, edited)
        assert "**Description:** Primary datastore\n\\- with replicas\n" in merged
        assert parse(merged).data == edited

    def test_suffix_only_title_gains_the_name(self):
        text = "# Memory Document\n\n## Glossary\n**API:** x\n"
        data = parse(text).data
        data.project_info.name = "Acme"
        assert merge(text, data).startswith("# Acme - Memory Document\n")

    def test_missing_title_is_inserted(self):
        text = "## Glossary\n**API:** x\n"
        data = MemoryDocumentData()
        data.project_info.name = "Acme"
        assert merge(text, data, "memory") == "# Acme - Memory Document\n\n## Glossary\n**API:** x\n"

    def test_missing_section_is_appended(self):
        text = "# Acme - Memory Document\n\n## 📚 Glossary\n**API:** x\n"
        data = parse(text).data
        data.lessons_learned.append(LessonEntry(title="Small PRs", lesson="Review faster"))
        assert merge(text, data) == (
            "# Acme - Memory Document\n\n## 📚 Glossary\n**API:** x\n\n"
            "## 💡 Lessons Learned\n\n### Small PRs\n\n**Impact:** medium\n**Lesson:** Review faster\n"
        )

    def test_empty_original_is_emitted(self, spec_data):
        assert merge("", spec_data) == emit(spec_data)


class TestFallbacks:
    def test_section_failure_regenerates_the_document(self, edited, monkeypatch):
        def boom(body, data, first):
            raise RuntimeError("glossary merge failed")

        monkeypatch.setitem(merge_mod.SECTION_MERGERS, "glossary", boom)
        edited.glossary[0].definition = "Changed"
        merged = merge(ORIGINAL, edited)
        assert merged == emit(edited)
        assert "**API:** Changed\n" in merged

    def test_merge_failure_regenerates(self, edited, monkeypatch):
        def broken(*args):
            raise RuntimeError("merge failed")

        monkeypatch.setattr(merge_mod, "_merge", broken)
        assert merge(ORIGINAL, edited) == emit(edited)

    def test_regeneration_failure_echoes_original(self, edited, monkeypatch):
        def broken(*args):
            raise RuntimeError("failed")

        monkeypatch.setattr(merge_mod, "_merge", broken)
        monkeypatch.setattr(merge_mod, "emit", broken)
        assert merge(ORIGINAL, edited) == ORIGINAL
