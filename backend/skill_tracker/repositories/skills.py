"""Database-backed skill repository."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..db.models import ProgressUpdateModel, SkillEntryModel, SkillModel
from ..errors import SkillNotFoundError
from ..models import DiaryEntry, ProgressUpdate, Skill, SkillSummary, ensure_utc, order_levels

SKILL_UPDATABLE_FIELDS = {
    "name",
    "description",
    "progress",
    "current_level",
    "completed_levels",
    "streak",
    "total_hours",
    "last_updated",
}
ENTRY_UPDATABLE_FIELDS = {"content", "hours"}
SKILL_ORDER_COLUMNS = {"created_at", "last_updated", "name", "progress"}


class SkillRepository:
    """Session-scoped CRUD over skills, diary entries and progress updates.

    Detail writes take an optional ``aggregates`` mapping that is applied to the
    parent skill in the same session, so the detail row and the recomputed
    totals commit together.
    """

    def create_skill(self, session: Session, user_id: str, fields: Dict[str, Any]) -> Skill:
        model = SkillModel(
            user_id=user_id,
            name=fields["name"],
            description=fields.get("description") or "",
            progress=fields.get("progress", 0),
            current_level=fields.get("current_level", "beginner"),
            completed_levels=order_levels(list(fields.get("completed_levels") or [])),
            streak=fields.get("streak", 0),
            total_hours=fields.get("total_hours", 0.0),
        )
        session.add(model)
        session.flush()
        return self._to_domain(model, include_progress=True)

    def get_skill(self, session: Session, skill_id: str) -> Optional[Skill]:
        stmt = (
            select(SkillModel)
            .where(SkillModel.id == skill_id)
            .options(selectinload(SkillModel.entries), selectinload(SkillModel.progress_updates))
        )
        model = session.execute(stmt).scalar_one_or_none()
        if model is None:
            return None
        return self._to_domain(model, include_progress=True)

    def update_skill(self, session: Session, skill_id: str, fields: Dict[str, Any]) -> Skill:
        model = self._require_skill(session, skill_id)
        self._apply_aggregates(model, fields)
        session.flush()
        return self._to_domain(model, include_progress=True)

    def delete_skill(self, session: Session, skill_id: str) -> bool:
        model = session.get(SkillModel, skill_id)
        if model is None:
            return False
        session.delete(model)
        session.flush()
        return True

    def list_skills(
        self,
        session: Session,
        user_id: str,
        page: int = 0,
        limit: int = 20,
        order_by: str = "created_at",
        ascending: bool = False,
    ) -> List[Skill]:
        if order_by not in SKILL_ORDER_COLUMNS:
            raise ValueError(f"Cannot order skills by {order_by!r}")
        column = getattr(SkillModel, order_by)
        stmt = (
            select(SkillModel)
            .where(SkillModel.user_id == user_id)
            .order_by(column.asc() if ascending else column.desc(), SkillModel.id)
            .offset(page * limit)
            .limit(limit)
            .options(selectinload(SkillModel.entries))
        )
        models = session.execute(stmt).scalars().all()
        return [self._to_domain(model, include_progress=False) for model in models]

    def list_skills_minimal(self, session: Session, user_id: str) -> List[SkillSummary]:
        stmt = (
            select(SkillModel)
            .where(SkillModel.user_id == user_id)
            .order_by(SkillModel.last_updated.desc(), SkillModel.id)
        )
        return [
            SkillSummary(
                id=model.id,
                name=model.name,
                progress=model.progress,
                current_level=model.current_level,  # type: ignore[arg-type]
                streak=model.streak,
                total_hours=float(model.total_hours or 0),
                last_updated=ensure_utc(model.last_updated),
                created_at=ensure_utc(model.created_at),
            )
            for model in session.execute(stmt).scalars().all()
        ]

    def create_entry(
        self,
        session: Session,
        skill_id: str,
        content: str,
        hours: float,
        aggregates: Optional[Dict[str, Any]] = None,
    ) -> DiaryEntry:
        skill = self._require_skill(session, skill_id)
        model = SkillEntryModel(skill_id=skill_id, content=content, hours=hours)
        session.add(model)
        session.flush()
        if aggregates is not None:
            self._apply_aggregates(skill, {"last_updated": model.created_at, **aggregates})
        return self._entry_to_domain(model)

    def update_entry(
        self,
        session: Session,
        entry_id: str,
        fields: Dict[str, Any],
        aggregates: Optional[Dict[str, Any]] = None,
    ) -> DiaryEntry:
        model = session.get(SkillEntryModel, entry_id)
        if model is None:
            raise SkillNotFoundError(f"Diary entry {entry_id} does not exist.")
        for key, value in fields.items():
            if key in ENTRY_UPDATABLE_FIELDS and value is not None:
                setattr(model, key, value)
        if aggregates is not None:
            self._apply_aggregates(model.skill, aggregates)
        session.flush()
        return self._entry_to_domain(model)

    def delete_entry(
        self, session: Session, entry_id: str, aggregates: Optional[Dict[str, Any]] = None
    ) -> bool:
        model = session.get(SkillEntryModel, entry_id)
        if model is None:
            return False
        if aggregates is not None:
            self._apply_aggregates(model.skill, aggregates)
        session.delete(model)
        session.flush()
        return True

    def list_entries(self, session: Session, skill_id: str, page: int = 0, limit: int = 50) -> List[DiaryEntry]:
        stmt = (
            select(SkillEntryModel)
            .where(SkillEntryModel.skill_id == skill_id)
            .order_by(SkillEntryModel.created_at.desc(), SkillEntryModel.id)
            .offset(page * limit)
            .limit(limit)
        )
        return [self._entry_to_domain(model) for model in session.execute(stmt).scalars().all()]

    def create_progress_update(
        self,
        session: Session,
        skill_id: str,
        progress: int,
        notes: Optional[str],
        aggregates: Optional[Dict[str, Any]] = None,
    ) -> ProgressUpdate:
        skill = self._require_skill(session, skill_id)
        model = ProgressUpdateModel(skill_id=skill_id, progress=progress, notes=notes)
        session.add(model)
        session.flush()
        if aggregates is not None:
            self._apply_aggregates(skill, {"last_updated": model.created_at, **aggregates})
        return self._progress_to_domain(model)

    def list_progress_updates(self, session: Session, skill_id: str) -> List[ProgressUpdate]:
        stmt = (
            select(ProgressUpdateModel)
            .where(ProgressUpdateModel.skill_id == skill_id)
            .order_by(ProgressUpdateModel.created_at.asc(), ProgressUpdateModel.id)
        )
        return [self._progress_to_domain(model) for model in session.execute(stmt).scalars().all()]

    @staticmethod
    def _apply_aggregates(model: SkillModel, fields: Dict[str, Any]) -> None:
        for key, value in fields.items():
            if key not in SKILL_UPDATABLE_FIELDS:
                continue
            if key == "completed_levels":
                value = order_levels(list(value))
            setattr(model, key, value)
        if "last_updated" not in fields:
            model.last_updated = datetime.now(timezone.utc)

    def _require_skill(self, session: Session, skill_id: str) -> SkillModel:
        model = session.get(SkillModel, skill_id)
        if model is None:
            raise SkillNotFoundError(f"Skill {skill_id} does not exist.")
        return model

    @staticmethod
    def _entry_to_domain(model: SkillEntryModel) -> DiaryEntry:
        return DiaryEntry(
            id=model.id,
            text=model.content,
            date=ensure_utc(model.created_at),
            hours=float(model.hours or 0),
        )

    @staticmethod
    def _progress_to_domain(model: ProgressUpdateModel) -> ProgressUpdate:
        return ProgressUpdate(
            id=model.id,
            skill_id=model.skill_id,
            progress=model.progress,
            created_at=ensure_utc(model.created_at),
            notes=model.notes,
        )

    def _to_domain(self, model: SkillModel, *, include_progress: bool) -> Skill:
        progress_updates = (
            [self._progress_to_domain(update) for update in model.progress_updates] if include_progress else []
        )
        return Skill(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            description=model.description or "",
            progress=model.progress,
            current_level=model.current_level,  # type: ignore[arg-type]
            completed_levels=list(model.completed_levels or []),  # type: ignore[arg-type]
            streak=model.streak,
            total_hours=float(model.total_hours or 0),
            entries=[self._entry_to_domain(entry) for entry in model.entries],
            progress_updates=progress_updates,
            last_updated=ensure_utc(model.last_updated),
            created_at=ensure_utc(model.created_at),
        )


skills = SkillRepository()

__all__ = ["SkillRepository", "skills"]
