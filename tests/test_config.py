"""Tests for configuration loading."""

import pytest
from pathlib import Path

from arcana.config import load_config

ENV_KEYS = [
    "ARCANA_DIALECT",
    "ARCANA_SPEC_SUFFIX",
    "ARCANA_MEMORY_SUFFIX",
    "ARCANA_FRONTMATTER",
    "ARCANA_LOG_LEVEL",
]


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return tmp_path


class TestConfig:
    def test_defaults(self, clean_env):
        config = load_config()
        assert config.parser.default_dialect == "spec"
        assert config.emitter.spec_title_suffix == "Project Technical Specification"
        assert config.emitter.memory_title_suffix == "Memory Document"
        assert config.emitter.frontmatter is False
        assert config.log_level == "INFO"

    def test_env_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("ARCANA_DIALECT", "MEMORY")
        monkeypatch.setenv("ARCANA_FRONTMATTER", "yes")
        monkeypatch.setenv("ARCANA_LOG_LEVEL", "DEBUG")

        config = load_config()
        assert config.parser.default_dialect == "memory"
        assert config.emitter.frontmatter is True
        assert config.log_level == "DEBUG"

    def test_toml_file(self, clean_env):
        toml_path = clean_env / "custom.toml"
        toml_path.write_text("""
log_level = "WARNING"

[parser]
default_dialect = "memory"

[emitter]
memory_title_suffix = "Team Memory"
frontmatter = true
""")
        config = load_config(toml_path)
        assert config.parser.default_dialect == "memory"
        assert config.emitter.memory_title_suffix == "Team Memory"
        assert config.emitter.frontmatter is True
        assert config.log_level == "WARNING"

    def test_toml_in_cwd_is_found(self, clean_env):
        (clean_env / "arcana.toml").write_text('[emitter]\nspec_title_suffix = "Design Doc"\n')
        config = load_config()
        assert config.emitter.spec_title_suffix == "Design Doc"

    def test_env_overrides_toml(self, clean_env, monkeypatch):
        monkeypatch.setenv("ARCANA_SPEC_SUFFIX", "From Env")

        toml_path = clean_env / "arcana.toml"
        toml_path.write_text("""
[emitter]
spec_title_suffix = "From File"
""")
        config = load_config(toml_path)
        assert config.emitter.spec_title_suffix == "From Env"  # env wins

    def test_emit_options(self, clean_env):
        config = load_config()
        assert config.emitter.options("memory").title_suffix == "Memory Document"
        assert config.emitter.options("spec").title_suffix == "Project Technical Specification"

    def test_title_suffixes(self, clean_env, monkeypatch):
        monkeypatch.setenv("ARCANA_MEMORY_SUFFIX", "Team Memory")
        config = load_config()
        assert config.emitter.title_suffixes == ("Project Technical Specification", "Team Memory")
