"""Pipeline configuration.

Every external resource is a named field of :class:`PipelineConfig`; nothing is
read from hard-coded paths or ad hoc environment variables at run time. The
config file is TOML::

    [resources]
    dictionary = "resources/terms.bsv"
    abbreviations = "resources/abbreviations.txt"
    pos_lexicon = "resources/lexicon.tsv"
    negation_triggers = "resources/triggers.tsv"

    [pipeline]
    section_patterns = ['^[A-Z][A-Z ]+:']
    split_on_newlines = false
    workers = 4

The file is located, first match wins, via:
  1. the path given explicitly (``--config``);
  2. the ``CLINSPAN_CONFIG`` environment variable;
  3. ``clinspan.toml`` in the current working directory.

Relative resource paths resolve against the directory holding the file.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from clinspan.errors import ConfigurationError

CONFIG_ENV_VAR = "CLINSPAN_CONFIG"
DEFAULT_CONFIG_NAME = "clinspan.toml"


class PipelineConfig(BaseModel):
    """Startup configuration for the annotation pipeline."""

    model_config = {"frozen": True, "extra": "forbid"}

    dictionary_path: Path = Field(description="BSV term dictionary (required).")
    abbreviations_path: Path | None = Field(default=None, description="One abbreviation per line.")
    pos_lexicon_path: Path | None = Field(default=None, description="word<TAB>TAG lexicon.")
    negation_triggers_path: Path | None = Field(default=None, description="negated|uncertain<TAB>phrase lines.")
    section_patterns: tuple[str, ...] = Field(default=(), description="Regexes for section header lines.")
    split_on_newlines: bool = False
    workers: int = Field(default=1, ge=1)

    @field_validator("dictionary_path", "abbreviations_path", "pos_lexicon_path", "negation_triggers_path")
    @classmethod
    def _must_exist(cls, value: Path | None) -> Path | None:
        if value is not None and not value.is_file():
            raise ValueError(f"resource file not found: {value}")
        return value

    def resource_paths(self) -> dict[str, Path]:
        paths = {
            "dictionary": self.dictionary_path,
            "abbreviations": self.abbreviations_path,
            "pos_lexicon": self.pos_lexicon_path,
            "negation_triggers": self.negation_triggers_path,
        }
        return {k: v for k, v in paths.items() if v is not None}


def find_config_file(explicit: Path | str | None = None) -> Path | None:
    """Return the first existing config file candidate, or None."""
    if explicit is not None:
        path = Path(explicit)
        if not path.is_file():
            raise ConfigurationError(f"config file not found: {path}")
        return path
    if os.environ.get(CONFIG_ENV_VAR):
        path = Path(os.environ[CONFIG_ENV_VAR])
        if not path.is_file():
            raise ConfigurationError(f"{CONFIG_ENV_VAR} points to a missing file: {path}")
        return path
    candidate = Path.cwd() / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def _resolve(base: Path, value: Any) -> Any:
    if isinstance(value, str) and value:
        path = Path(value).expanduser()
        return path if path.is_absolute() else base / path
    return value


def load_config(path: Path | str | None = None, **overrides: Any) -> PipelineConfig:
    """Build a PipelineConfig from the config file and explicit overrides.

    ``overrides`` use the field names of PipelineConfig; ``None`` values are
    ignored so unset command-line flags do not mask file settings.

    Raises:
        ConfigurationError: If the file is unreadable, a required resource is
            missing, or a value is invalid.
    """
    values: dict[str, Any] = {}
    config_file = find_config_file(path)
    if config_file is not None:
        try:
            with open(config_file, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(f"cannot read config {config_file}: {e}") from e
        base = config_file.resolve().parent
        resources = data.get("resources", {})
        pipeline = data.get("pipeline", {})
        if not isinstance(resources, dict) or not isinstance(pipeline, dict):
            raise ConfigurationError(f"{config_file}: [resources] and [pipeline] must be tables")
        for key, value in resources.items():
            values[f"{key}_path"] = _resolve(base, value)
        values.update(pipeline)

    values.update({k: v for k, v in overrides.items() if v is not None})
    if values.get("dictionary_path") is None:
        raise ConfigurationError("no dictionary configured; set [resources] dictionary or pass --dictionary")
    try:
        return PipelineConfig(**values)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
