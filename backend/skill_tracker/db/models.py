"""ORM models backing the skill tracker persistence layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SkillModel(TimestampMixin, Base):
    __tablename__ = "skills"
    __table_args__ = (
        Index("ix_skills_user_created", "user_id", "created_at"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_skills_progress_range"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_level: Mapped[str] = mapped_column(String(32), default="beginner", nullable=False)
    completed_levels: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_hours: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    entries: Mapped[list["SkillEntryModel"]] = relationship(
        back_populates="skill",
        cascade="all, delete-orphan",
        order_by="SkillEntryModel.created_at",
    )
    progress_updates: Mapped[list["ProgressUpdateModel"]] = relationship(
        back_populates="skill",
        cascade="all, delete-orphan",
        order_by="ProgressUpdateModel.created_at",
    )


class SkillEntryModel(Base):
    __tablename__ = "skill_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    skill_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("skills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    hours: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    skill: Mapped[SkillModel] = relationship(back_populates="entries")


class ProgressUpdateModel(Base):
    __tablename__ = "progress_updates"
    __table_args__ = (CheckConstraint("progress >= 0 AND progress <= 100", name="ck_progress_updates_range"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    skill_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("skills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    skill: Mapped[SkillModel] = relationship(back_populates="progress_updates")


__all__ = ["ProgressUpdateModel", "SkillEntryModel", "SkillModel"]
