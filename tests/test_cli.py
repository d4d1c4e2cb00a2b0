"""Tests for the command line entry point."""

import json
from pathlib import Path

import pytest

from arcana.__main__ import main

DOC = """# Acme - Memory Document

## Glossary
**API:** Application Programming Interface

## Scratchpad
keep me
"""


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in ["ARCANA_DIALECT", "ARCANA_SPEC_SUFFIX", "ARCANA_MEMORY_SUFFIX", "ARCANA_FRONTMATTER"]:
        monkeypatch.delenv(key, raising=False)
    (tmp_path / "doc.md").write_text(DOC, encoding="utf-8")
    return tmp_path


class TestCli:
    def test_parse(self, workdir, capsys):
        main(["parse", str(workdir / "doc.md")])
        out = json.loads(capsys.readouterr().out)
        assert out["success"] is True
        assert out["data"]["projectInfo"]["name"] == "Acme"
        assert out["data"]["glossary"] == [
            {"term": "API", "definition": "Application Programming Interface", "category": ""}
        ]
        assert out["stats"]["dialect"] == "memory"
        assert out["stats"]["unparsedSections"] == 1
        assert out["preserved"] == {"Scratchpad": "## Scratchpad\nkeep me\n"}

    def test_parse_then_emit(self, workdir, capsys):
        main(["parse", str(workdir / "doc.md")])
        (workdir / "data.json").write_text(capsys.readouterr().out, encoding="utf-8")
        main(["emit", str(workdir / "data.json"), "--dialect", "memory", "-o", str(workdir / "out.md")])
        text = (workdir / "out.md").read_text(encoding="utf-8")
        assert text == "# Acme - Memory Document\n\n## 📚 Glossary\n\n**API:** Application Programming Interface\n"

    def test_merge_unchanged_data(self, workdir, capsys):
        main(["parse", str(workdir / "doc.md")])
        payload = json.loads(capsys.readouterr().out)
        payload["data"]["glossary"].append({"term": "SLA", "definition": "Service level agreement"})
        (workdir / "data.json").write_text(json.dumps(payload), encoding="utf-8")
        main(["merge", str(workdir / "doc.md"), str(workdir / "data.json")])
        merged = capsys.readouterr().out
        assert merged == DOC.replace(
            "Interface\n", "Interface\n**SLA:** Service level agreement\n"
        )

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 1

    def test_bad_json(self, workdir, capsys):
        (workdir / "data.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(SystemExit) as exc:
            main(["emit", str(workdir / "data.json")])
        assert exc.value.code == 1
        assert "is not valid JSON" in capsys.readouterr().err

    def test_missing_file(self, workdir, capsys):
        with pytest.raises(SystemExit):
            main(["parse", str(workdir / "nope.md")])
        assert "cannot read" in capsys.readouterr().err
