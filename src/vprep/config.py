"""YAML configuration for the staging and patching pipeline."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .features import KNOWN_FEATURES, PageSize, select_page_size
from .tools.signals import DEFAULT_TEMPLATE
from .tools.staging import DEFAULT_HIDDEN_PREFIX, DEFAULT_OUTPUT_NAME

DEFAULT_CONFIG_NAME = "vprep.yaml"
OUTPUT_DIR_ENV = "VPREP_OUTPUT_DIR"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "paths": {
        "source": "c_src",
        "patches": "patches",
        "output": "build/vendor",
    },
    "staging": {
        "hidden_prefix": DEFAULT_HIDDEN_PREFIX,
        "unique_output": False,
        "output_name": DEFAULT_OUTPUT_NAME,
    },
    "signals": {
        "enabled": True,
        "template": DEFAULT_TEMPLATE,
        "depfile": None,
    },
    "build": {
        "features": [PageSize.P8K.value],
    },
}


class SectionModel(BaseModel):
    """Base model rejecting unknown keys."""

    model_config = ConfigDict(extra="forbid")


class PathsConfig(SectionModel):
    source: Path
    output: Path
    patches: Optional[Path] = None


class StagingConfig(SectionModel):
    hidden_prefix: str = DEFAULT_HIDDEN_PREFIX
    unique_output: bool = False
    output_name: str = DEFAULT_OUTPUT_NAME

    @field_validator("output_name")
    @classmethod
    def _plain_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned or "/" in cleaned or cleaned in {".", ".."}:
            raise ValueError("output_name must be a single path component")
        return cleaned


class SignalsConfig(SectionModel):
    enabled: bool = True
    template: str = DEFAULT_TEMPLATE
    depfile: Optional[Path] = None

    @field_validator("template")
    @classmethod
    def _has_placeholder(cls, value: str) -> str:
        if "{path}" not in value:
            raise ValueError("template must contain a '{path}' placeholder")
        return value


class BuildConfig(SectionModel):
    features: List[str] = Field(default_factory=list)

    @field_validator("features")
    @classmethod
    def _known_features(cls, value: List[str]) -> List[str]:
        cleaned = [item.strip().lower() for item in value if item.strip()]
        unknown = sorted(set(cleaned) - KNOWN_FEATURES)
        if unknown:
            raise ValueError(f"unknown build feature(s): {', '.join(unknown)}")
        return cleaned


class PipelineConfig(SectionModel):
    """Validated pipeline configuration with absolute paths."""

    paths: PathsConfig
    staging: StagingConfig = Field(default_factory=StagingConfig)
    signals: SignalsConfig = Field(default_factory=SignalsConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)

    def page_size(self) -> PageSize | None:
        """Return the selected page size, or ``None`` when no features are configured."""
        if not self.build.features:
            return None
        return select_page_size(self.build.features)


def _resolve(base: Path, value: Path | None) -> Path | None:
    if value is None:
        return None
    candidate = value.expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return candidate.resolve()


def config_from_mapping(
    data: Mapping[str, Any],
    *,
    base_dir: Path | str = ".",
    env: Mapping[str, str] | None = None,
) -> PipelineConfig:
    """Validate ``data`` and resolve relative paths against ``base_dir``."""
    try:
        config = PipelineConfig.model_validate(dict(data))
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration: {error}", details={"errors": error.errors()}) from error

    base = Path(base_dir).resolve()
    environ = os.environ if env is None else env
    override = environ.get(OUTPUT_DIR_ENV)
    output = Path(override.strip()) if override and override.strip() else config.paths.output

    config.paths.source = _resolve(base, config.paths.source)
    config.paths.output = _resolve(base, output)
    config.paths.patches = _resolve(base, config.paths.patches)
    config.signals.depfile = _resolve(base, config.signals.depfile)
    return config


def load_config(config_path: Path | str, *, env: Mapping[str, str] | None = None) -> PipelineConfig:
    """Load YAML configuration from disk into a :class:`PipelineConfig`."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", details={"path": path.as_posix()})
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}") from error
    except OSError as error:
        raise ConfigError(f"Unable to read config {path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")
    return config_from_mapping(data, base_dir=path.resolve().parent, env=env)


def write_default_config(config_path: Path | str) -> Path:
    """Persist the default configuration template with stable formatting."""
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(DEFAULT_CONFIG_TEMPLATE, handle, sort_keys=False)
    return path


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "OUTPUT_DIR_ENV",
    "BuildConfig",
    "PathsConfig",
    "PipelineConfig",
    "SignalsConfig",
    "StagingConfig",
    "config_from_mapping",
    "load_config",
    "write_default_config",
]
