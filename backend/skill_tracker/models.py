"""Domain models shared by the tracker core, the store and the HTTP layer."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

SkillLevel = Literal["beginner", "novice", "intermediate", "advanced", "expert"]

LEVEL_ORDER: Tuple[SkillLevel, ...] = ("beginner", "novice", "intermediate", "advanced", "expert")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def order_levels(levels: List[str]) -> List[SkillLevel]:
    """Deduplicate levels and return them in progression order."""
    seen = set(levels)
    return [level for level in LEVEL_ORDER if level in seen]


class DiaryEntry(BaseModel):
    id: str
    text: str
    date: datetime = Field(default_factory=_now)
    hours: float = Field(default=0.0, ge=0.0)


class ProgressUpdate(BaseModel):
    id: str
    skill_id: str
    progress: int = Field(ge=0, le=100)
    created_at: datetime = Field(default_factory=_now)
    notes: Optional[str] = None


class Skill(BaseModel):
    """Aggregate root: a skill plus its diary and progress history."""

    id: str
    user_id: str
    name: str
    description: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    current_level: SkillLevel = "beginner"
    completed_levels: List[SkillLevel] = Field(default_factory=list)
    streak: int = Field(default=0, ge=0)
    total_hours: float = Field(default=0.0, ge=0.0)
    entries: List[DiaryEntry] = Field(default_factory=list)
    progress_updates: List[ProgressUpdate] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_now)
    created_at: datetime = Field(default_factory=_now)

    @field_validator("completed_levels")
    @classmethod
    def _dedupe_completed_levels(cls, value: List[str]) -> List[SkillLevel]:
        return order_levels(value)


class SkillSummary(BaseModel):
    """Column subset returned by the minimal listing query."""

    id: str
    name: str
    progress: int = Field(default=0, ge=0, le=100)
    current_level: SkillLevel = "beginner"
    streak: int = Field(default=0, ge=0)
    total_hours: float = Field(default=0.0, ge=0.0)
    last_updated: datetime = Field(default_factory=_now)
    created_at: datetime = Field(default_factory=_now)


__all__ = [
    "DiaryEntry",
    "LEVEL_ORDER",
    "ProgressUpdate",
    "Skill",
    "SkillLevel",
    "SkillSummary",
    "ensure_utc",
    "order_levels",
]
