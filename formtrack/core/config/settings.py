"""formtrack configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `FT_`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from formtrack.core.trackers.online_tracker import TrackerConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class FormTrackSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `FT_` env overrides."""

    # Optional ONNX model for the tracker CLI; `--model` takes precedence.
    model_path: str | None = None

    tracker_template_factor: float = 2.0
    tracker_template_size: int = 112
    tracker_search_factor: float = 4.5
    tracker_search_size: int = 224
    # Promote the best-scoring template every N frames.
    tracker_update_interval: int = 10
    tracker_max_score_decay: float = 1.0
    tracker_min_confidence_threshold: float = 0.5
    tracker_max_consecutive_failures: int = 5
    tracker_clip_margin: float = 10.0

    # Rep counting: prominence threshold (normalized units) and Gaussian sigma.
    rep_threshold: float = Field(0.2, description="minimum rep prominence in [0, 1]")
    rep_smoothing: float = 2.0
    # Percentile (as a fraction) used to classify stable frames when estimating trims.
    trim_threshold: float = 0.75

    log_level: str = Field("INFO", description="DEBUG|INFO|WARNING|ERROR|CRITICAL")

    model_config = SettingsConfigDict(env_prefix="FT_", validate_assignment=True)

    @field_validator("tracker_template_factor", "tracker_search_factor")
    @classmethod
    def _validate_factor(cls, v: float) -> float:
        if float(v) <= 0:
            raise ValueError("crop factors must be > 0")
        return float(v)

    @field_validator("tracker_template_size", "tracker_search_size")
    @classmethod
    def _validate_size(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("crop sizes must be >= 1")
        return int(v)

    @field_validator("tracker_update_interval")
    @classmethod
    def _validate_update_interval(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("tracker_update_interval must be >= 1")
        return int(v)

    @field_validator("tracker_max_score_decay")
    @classmethod
    def _validate_max_score_decay(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("tracker_max_score_decay must be in (0, 1]")
        return float(v)

    @field_validator("tracker_min_confidence_threshold")
    @classmethod
    def _validate_min_confidence(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("tracker_min_confidence_threshold must be in [0, 1]")
        return float(v)

    @field_validator("tracker_max_consecutive_failures")
    @classmethod
    def _validate_max_failures(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("tracker_max_consecutive_failures must be >= 1")
        return int(v)

    @field_validator("tracker_clip_margin")
    @classmethod
    def _validate_clip_margin(cls, v: float) -> float:
        if float(v) < 0:
            raise ValueError("tracker_clip_margin must be >= 0")
        return float(v)

    @field_validator("rep_threshold", "trim_threshold")
    @classmethod
    def _validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("thresholds must be in [0, 1]")
        return float(v)

    @field_validator("rep_smoothing")
    @classmethod
    def _validate_rep_smoothing(cls, v: float) -> float:
        if float(v) < 0:
            raise ValueError("rep_smoothing must be >= 0")
        return float(v)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError("log_level must be DEBUG|INFO|WARNING|ERROR|CRITICAL")
        return level


def settings_to_dict(settings: FormTrackSettings) -> dict[str, Any]:
    return cast(dict[str, Any], settings.model_dump())


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/formtrack.config.yml)."""

    return Path(os.getenv("FT_CONFIG", "config/formtrack.config.yml"))


def load_settings() -> FormTrackSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = FormTrackSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in env_settings.model_fields_set
    }

    merged = {**data, **env_overrides}
    return FormTrackSettings(**merged)


def tracker_config_from_settings(settings: FormTrackSettings) -> TrackerConfig:
    return TrackerConfig(
        template_factor=settings.tracker_template_factor,
        template_size=settings.tracker_template_size,
        search_factor=settings.tracker_search_factor,
        search_size=settings.tracker_search_size,
        update_interval=settings.tracker_update_interval,
        max_score_decay=settings.tracker_max_score_decay,
        min_confidence_threshold=settings.tracker_min_confidence_threshold,
        max_consecutive_failures=settings.tracker_max_consecutive_failures,
        clip_margin=settings.tracker_clip_margin,
    )


def configure_logging(level: str) -> None:
    """Configure root logging for the command-line tools."""

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
