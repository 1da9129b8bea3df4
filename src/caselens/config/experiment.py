"""Experiment configuration loaded from YAML."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from caselens.errors import ConfigurationError

TEXT_PLACEHOLDER = "<<TEXT>>"

_BRACED_VAR = re.compile(r"\$\{([^}]+)\}")
_BARE_VAR = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ExperimentSection(_Section):
    name: str = Field(min_length=1)
    author: Optional[str] = None


class ModelSection(_Section):
    name: str = Field(min_length=1)
    provider: Optional[str] = None
    temperature: float = Field(ge=0.0, le=2.0)
    api_url: Optional[str] = None


class PromptSection(_Section):
    version: str = Field(min_length=1)
    system_prompt: Optional[str] = None
    system_prompt_file: Optional[str] = None
    user_template: Optional[str] = None
    user_template_file: Optional[str] = None

    @model_validator(mode="after")
    def _require_prompt_text(self) -> "PromptSection":
        if not (self.system_prompt or self.system_prompt_file):
            raise ValueError("Either prompt.system_prompt or prompt.system_prompt_file is required")
        if not (self.user_template or self.user_template_file):
            raise ValueError("Either prompt.user_template or prompt.user_template_file is required")
        return self


class DataSection(_Section):
    file: str = Field(min_length=1)


class RunSection(_Section):
    seed: int = 123
    max_items: Optional[int] = Field(default=None, gt=0)
    save_csv_json: bool = True


class ExperimentConfig(_Section):
    experiment: ExperimentSection
    model: ModelSection
    prompt: PromptSection
    data: DataSection
    run: RunSection = Field(default_factory=RunSection)
    config_path: Optional[str] = None

    @field_validator("run", mode="before")
    @classmethod
    def _run_defaults(cls, value: Any) -> Any:
        return {} if value is None else value

    def snapshot(self) -> dict:
        """Plain dict of the resolved configuration, stored with the run."""
        return self.model_dump(mode="json")


def expand_env_vars(text: str) -> str:
    """Replace ${VAR} and $VAR with environment values (unset -> empty)."""
    text = _BRACED_VAR.sub(lambda m: os.environ.get(m.group(1), ""), text)
    return _BARE_VAR.sub(lambda m: os.environ.get(m.group(1), ""), text)


def _expand_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _expand_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_recursive(v) for v in obj]
    if isinstance(obj, str):
        return expand_env_vars(obj)
    return obj


def _resolve_path(raw: str, base_dir: Path) -> Path | None:
    candidate = Path(raw)
    if candidate.exists():
        return candidate.resolve()
    relative = base_dir / raw
    if relative.exists():
        return relative.resolve()
    return None


def _read_prompt_file(raw: str, base_dir: Path, field: str) -> str:
    path = _resolve_path(raw, base_dir)
    if path is None:
        raise ConfigurationError(f"{field} not found: {raw}")
    return path.read_text(encoding="utf-8")


def load_experiment_config(config_path: str | Path) -> ExperimentConfig:
    """
    Load, validate and resolve an experiment YAML file.

    Prompt files are read here and their text replaces the file reference,
    and the data file is turned into an absolute path. Everything that goes
    wrong surfaces as ConfigurationError.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    missing = [s for s in ("experiment", "model", "prompt", "data") if s not in data]
    if missing:
        raise ConfigurationError(f"Missing required config sections: {', '.join(missing)}")

    data = _expand_recursive(data)
    data["config_path"] = str(path)

    try:
        config = ExperimentConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}:\n{e}") from e

    base_dir = path.resolve().parent
    prompt = config.prompt
    if prompt.system_prompt_file:
        prompt.system_prompt = _read_prompt_file(prompt.system_prompt_file, base_dir, "system_prompt_file")
    if prompt.user_template_file:
        prompt.user_template = _read_prompt_file(prompt.user_template_file, base_dir, "user_template_file")

    data_path = _resolve_path(config.data.file, base_dir)
    if data_path is None:
        raise ConfigurationError(f"data.file not found: {config.data.file}")
    config.data.file = str(data_path)

    return config


def substitute_template(template: str, text: str) -> str:
    return template.replace(TEXT_PLACEHOLDER, text)
