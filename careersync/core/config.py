"""Configuration models and YAML loader for the career sync client."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class CacheConfig(BaseModel):
    """Durable local cache location and key namespace."""

    path: str = "data/local_cache.db"
    namespace: str = "carrerx"

    @field_validator("namespace")
    @classmethod
    def namespace_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "namespace must not be empty"
            raise ValueError(msg)
        return v.strip()


class RemoteConfig(BaseModel):
    """Remote record store (SQLite realization) location."""

    path: str = "data/remote.db"


class ActivityConfig(BaseModel):
    """Activity log bounds."""

    max_entries: int = Field(default=20, ge=1, le=500)


class MeetingConfig(BaseModel):
    """Interview meeting link generation."""

    link_prefix: str = "https://meet.jit.si/CarrerX"

    @field_validator("link_prefix")
    @classmethod
    def prefix_not_empty(cls, v: str) -> str:
        v = v.strip().rstrip("-")
        if not v:
            msg = "link_prefix must not be empty"
            raise ValueError(msg)
        return v


class MatchScoreConfig(BaseModel):
    """Fallback match-score range used when no resume analysis is active."""

    min_score: int = Field(default=70, ge=0, le=100)
    max_score: int = Field(default=98, ge=0, le=100)

    @model_validator(mode="after")
    def range_ordered(self) -> "MatchScoreConfig":
        if self.min_score > self.max_score:
            msg = f"min_score ({self.min_score}) must not exceed max_score ({self.max_score})"
            raise ValueError(msg)
        return self


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)
    meeting: MeetingConfig = Field(default_factory=MeetingConfig)
    match_score: MatchScoreConfig = Field(default_factory=MatchScoreConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
