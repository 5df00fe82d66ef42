"""Pipeline settings loaded from YAML defaults plus an optional user file."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from scverify.errors import ConfigError

logger = logging.getLogger(__name__)

_DEFAULTS_PATH = Path(__file__).resolve().parent / "defaults.yaml"
CONFIG_ENV = "SCVERIFY_CONFIG"
STAGING_ENV = "SCVERIFY_STAGING_DIR"


class AnalyzerConfig(BaseModel):
    command: List[str] = Field(min_length=1)
    timeout: float = Field(default=300.0, gt=0)

    @field_validator("command")
    @classmethod
    def _requires_placeholders(cls, value: List[str]) -> List[str]:
        joined = " ".join(value)
        for placeholder in ("{source}", "{output}"):
            if placeholder not in joined:
                raise ValueError(f"analyzer command must contain {placeholder}")
        return value


class JudgeConfig(BaseModel):
    """Everything the judge client needs, credentials included."""

    model: str = "gpt-4o-mini"
    seed: int = 1
    max_tokens: int = Field(default=1000, gt=0)
    max_attempts: int = Field(default=4, ge=1)
    backoff: Literal["descending", "ascending"] = "descending"
    backoff_base: float = Field(default=1.0, ge=0)
    request_timeout: float = Field(default=60.0, gt=0)
    max_workers: int = Field(default=1, ge=1)
    base_url: Optional[str] = None
    api_key: Optional[SecretStr] = None


class StagingConfig(BaseModel):
    root: Optional[Path] = None


class Settings(BaseModel):
    analyzer: AnalyzerConfig
    judge: JudgeConfig = Field(default_factory=JudgeConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Merge the user file (argument or $SCVERIFY_CONFIG) over the defaults."""

    data = _read_yaml(_DEFAULTS_PATH)
    user_path = path or os.environ.get(CONFIG_ENV)
    if user_path:
        user_path = Path(user_path)
        if not user_path.exists():
            raise ConfigError(f"Config file missing: {user_path}")
        data = _merge(data, _read_yaml(user_path))
        logger.debug("Loaded settings override from %s", user_path)

    staging_override = os.environ.get(STAGING_ENV)
    if staging_override:
        data.setdefault("staging", {})["root"] = staging_override

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


__all__ = [
    "AnalyzerConfig",
    "JudgeConfig",
    "Settings",
    "StagingConfig",
    "load_settings",
]
