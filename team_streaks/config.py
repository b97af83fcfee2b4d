"""Configuration system for team-streaks.

All Pydantic models are defined here with sensible defaults so an empty
YAML mapping is a valid configuration.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


# ═══════════════════════════════════════════════════════════════
#  Storage
# ═══════════════════════════════════════════════════════════════

class StoreConfig(BaseModel):
    backend: Literal["sqlite", "memory"] = "sqlite"
    path: str = "team_streaks.db"


class CacheConfig(BaseModel):
    enabled: bool = True
    path: str = "team_streaks_cache.json"


# ═══════════════════════════════════════════════════════════════
#  Periods, Streaks & Trophies
# ═══════════════════════════════════════════════════════════════

class PeriodsConfig(BaseModel):
    """Calendar used to derive week and month keys."""
    timezone: str = "America/Chicago"
    first_weekday: str = Field(default="monday", description="Weekday name that starts a week")
    minimum_days_in_first_week: int = Field(default=4, ge=1, le=7)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        name = value.strip()
        if name.upper() == "UTC":
            return "UTC"
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {value!r}") from e
        return name

    @field_validator("first_weekday")
    @classmethod
    def _known_weekday(cls, value: str) -> str:
        name = value.strip().lower()
        if name not in WEEKDAYS:
            raise ValueError(f"first_weekday must be one of {', '.join(WEEKDAYS)}")
        return name

    @property
    def first_weekday_index(self) -> int:
        """0 = Monday … 6 = Sunday."""
        return WEEKDAYS.index(self.first_weekday)


class RetryConfig(BaseModel):
    max_retries: int = Field(default=6, ge=0, description="Conflict retries after the first attempt")
    base_delay_seconds: float = Field(default=0.1, ge=0)


class TrophyConfig(BaseModel):
    milestones: list[int] = Field(default=[1, 3, 7, 14, 30])
    weekly_prefix: str = "w"
    monthly_prefix: str = "m"
    first_label: str = Field(default="first", description="Badge suffix used for milestone 1")


# ═══════════════════════════════════════════════════════════════
#  Fetch Coordinator
# ═══════════════════════════════════════════════════════════════

class CoordinatorConfig(BaseModel):
    debounce_seconds: float = Field(default=0.35, ge=0)
    propagate_errors: bool = True
    preview_limit: int = 8


# ═══════════════════════════════════════════════════════════════
#  Status endpoint
# ═══════════════════════════════════════════════════════════════

class StatusConfig(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 28290


# ═══════════════════════════════════════════════════════════════
#  Top-Level Config
# ═══════════════════════════════════════════════════════════════

class SyncConfig(BaseModel):
    """Full team-streaks config."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    periods: PeriodsConfig = Field(default_factory=PeriodsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    trophies: TrophyConfig = Field(default_factory=TrophyConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    status: StatusConfig = Field(default_factory=StatusConfig)
    members: list[str] = Field(default_factory=lambda: ["D.J.", "Ron", "Deanna", "Dimitri"])


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def load_config(config_path: str) -> SyncConfig:
    """Load and validate YAML config file into SyncConfig."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a YAML mapping at the top level.")

    raw = _expand_env_vars(raw)
    return SyncConfig(**raw)
