"""Configuration loading from environment variables and arcana.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from arcana.document.emitter import EmitOptions

_CONFIG_FILENAME = "arcana.toml"
_DEFAULT_SPEC_SUFFIX = "Project Technical Specification"
_DEFAULT_MEMORY_SUFFIX = "Memory Document"

_TRUE = {"1", "true", "yes", "on"}


def _flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE


@dataclass
class ParserConfig:
    """Parser configuration."""

    default_dialect: str = "spec"


@dataclass
class EmitterConfig:
    """Emitter configuration: title suffixes and frontmatter on fresh exports."""

    spec_title_suffix: str = _DEFAULT_SPEC_SUFFIX
    memory_title_suffix: str = _DEFAULT_MEMORY_SUFFIX
    frontmatter: bool = False

    @property
    def title_suffixes(self) -> tuple[str, ...]:
        return (self.spec_title_suffix, self.memory_title_suffix)

    def options(self, dialect: str) -> EmitOptions:
        suffix = self.memory_title_suffix if dialect == "memory" else self.spec_title_suffix
        return EmitOptions(title_suffix=suffix, frontmatter=self.frontmatter)


@dataclass
class ArcanaConfig:
    """Top-level Arcana configuration."""

    parser: ParserConfig = field(default_factory=ParserConfig)
    emitter: EmitterConfig = field(default_factory=EmitterConfig)
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> ArcanaConfig:
    """Load configuration from environment variables and optional arcana.toml.

    Priority: environment variables > arcana.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.arcana/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".arcana" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    parser_data = file_data.get("parser", {})
    emitter_data = file_data.get("emitter", {})

    config = ArcanaConfig(
        parser=ParserConfig(
            default_dialect=os.getenv(
                "ARCANA_DIALECT", parser_data.get("default_dialect", "spec")
            ).lower(),
        ),
        emitter=EmitterConfig(
            spec_title_suffix=os.getenv(
                "ARCANA_SPEC_SUFFIX", emitter_data.get("spec_title_suffix", _DEFAULT_SPEC_SUFFIX)
            ),
            memory_title_suffix=os.getenv(
                "ARCANA_MEMORY_SUFFIX",
                emitter_data.get("memory_title_suffix", _DEFAULT_MEMORY_SUFFIX),
            ),
            frontmatter=_flag(
                os.getenv("ARCANA_FRONTMATTER", emitter_data.get("frontmatter", False))
            ),
        ),
        log_level=os.getenv("ARCANA_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
