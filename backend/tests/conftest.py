from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

import pytest

from skill_tracker.config import Settings
from skill_tracker.errors import PersistenceError, SkillNotFoundError
from skill_tracker.models import DiaryEntry, ProgressUpdate, Skill, SkillSummary
from skill_tracker.skill_service import SkillService
from skill_tracker.telemetry import clear_listeners

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeSkillStore:
    """In-memory stand-in for the remote store with failure and latency knobs."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now
        self.rows: Dict[str, Skill] = {}
        self.calls: List[str] = []
        self.fail_on: Set[str] = set()
        self.delay = 0.0

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.delay:
            await asyncio.sleep(self.delay)
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} unavailable")

    def _require(self, skill_id: str) -> Skill:
        skill = self.rows.get(skill_id)
        if skill is None:
            raise SkillNotFoundError(f"Skill {skill_id} does not exist.")
        return skill

    def _apply(self, skill_id: str, aggregates: Optional[Dict[str, Any]]) -> None:
        if aggregates is not None:
            skill = self._require(skill_id)
            self.rows[skill_id] = skill.model_copy(update={"last_updated": self.now, **aggregates})

    def _owner_of(self, entry_id: str) -> Skill:
        for skill in self.rows.values():
            if any(entry.id == entry_id for entry in skill.entries):
                return skill
        raise SkillNotFoundError(f"Diary entry {entry_id} does not exist.")

    async def create_skill(self, user_id: str, fields: Dict[str, Any]) -> Skill:
        await self._enter("create_skill")
        skill = Skill(id=uuid4().hex, user_id=user_id, created_at=self.now, last_updated=self.now, **fields)
        self.rows[skill.id] = skill
        return skill.model_copy(deep=True)

    async def update_skill(self, skill_id: str, fields: Dict[str, Any]) -> Skill:
        await self._enter("update_skill")
        skill = self._require(skill_id)
        updated = skill.model_copy(update={"last_updated": self.now, **fields})
        self.rows[skill_id] = updated
        return updated.model_copy(deep=True)

    async def delete_skill(self, skill_id: str) -> None:
        await self._enter("delete_skill")
        self.rows.pop(skill_id, None)

    async def get_skill(self, skill_id: str) -> Optional[Skill]:
        await self._enter("get_skill")
        skill = self.rows.get(skill_id)
        return skill.model_copy(deep=True) if skill else None

    async def list_skills(self, user_id: str, page: int = 0, limit: int = 20) -> List[Skill]:
        await self._enter("list_skills")
        owned = sorted(
            (skill for skill in self.rows.values() if skill.user_id == user_id),
            key=lambda skill: skill.created_at,
            reverse=True,
        )
        window = owned[page * limit : (page + 1) * limit]
        return [skill.model_copy(update={"progress_updates": []}, deep=True) for skill in window]

    async def list_skills_minimal(self, user_id: str) -> List[SkillSummary]:
        await self._enter("list_skills_minimal")
        return [
            SkillSummary(
                id=skill.id,
                name=skill.name,
                progress=skill.progress,
                current_level=skill.current_level,
                streak=skill.streak,
                total_hours=skill.total_hours,
                last_updated=skill.last_updated,
                created_at=skill.created_at,
            )
            for skill in sorted(self.rows.values(), key=lambda skill: skill.last_updated, reverse=True)
            if skill.user_id == user_id
        ]

    async def create_entry(
        self, skill_id: str, content: str, hours: float, aggregates: Optional[Dict[str, Any]] = None
    ) -> DiaryEntry:
        await self._enter("create_entry")
        skill = self._require(skill_id)
        entry = DiaryEntry(id=uuid4().hex, text=content, date=self.now, hours=hours)
        skill.entries.append(entry)
        self._apply(skill_id, aggregates)
        return entry.model_copy()

    async def update_entry(
        self, entry_id: str, fields: Dict[str, Any], aggregates: Optional[Dict[str, Any]] = None
    ) -> DiaryEntry:
        await self._enter("update_entry")
        skill = self._owner_of(entry_id)
        for index, entry in enumerate(skill.entries):
            if entry.id == entry_id:
                changes: Dict[str, Any] = {}
                if "content" in fields:
                    changes["text"] = fields["content"]
                if "hours" in fields:
                    changes["hours"] = fields["hours"]
                skill.entries[index] = entry.model_copy(update=changes)
                self._apply(skill.id, aggregates)
                return skill.entries[index].model_copy()
        raise SkillNotFoundError(entry_id)

    async def delete_entry(self, entry_id: str, aggregates: Optional[Dict[str, Any]] = None) -> None:
        await self._enter("delete_entry")
        skill = self._owner_of(entry_id)
        skill.entries[:] = [entry for entry in skill.entries if entry.id != entry_id]
        self._apply(skill.id, aggregates)

    async def list_entries(self, skill_id: str, page: int = 0, limit: int = 50) -> List[DiaryEntry]:
        await self._enter("list_entries")
        entries = sorted(self._require(skill_id).entries, key=lambda entry: entry.date, reverse=True)
        return [entry.model_copy() for entry in entries[page * limit : (page + 1) * limit]]

    async def create_progress_update(
        self,
        skill_id: str,
        progress: int,
        notes: Optional[str],
        aggregates: Optional[Dict[str, Any]] = None,
    ) -> ProgressUpdate:
        await self._enter("create_progress_update")
        skill = self._require(skill_id)
        update = ProgressUpdate(id=uuid4().hex, skill_id=skill_id, progress=progress, created_at=self.now, notes=notes)
        skill.progress_updates.append(update)
        self._apply(skill_id, aggregates)
        return update.model_copy()

    async def list_progress_updates(self, skill_id: str) -> List[ProgressUpdate]:
        await self._enter("list_progress_updates")
        skill = self.rows.get(skill_id)
        return [update.model_copy() for update in skill.progress_updates] if skill else []


@pytest.fixture()
def store() -> FakeSkillStore:
    return FakeSkillStore()


@pytest.fixture()
def settings() -> Settings:
    return Settings(SKILL_TRACKER_REMOTE_TIMEOUT=2.0, SKILL_TRACKER_PAGE_SIZE=20)  # type: ignore[call-arg]


@pytest.fixture()
def service(store: FakeSkillStore, settings: Settings) -> SkillService:
    return SkillService(store, "u1", settings=settings, clock=lambda: store.now)


@pytest.fixture(autouse=True)
def _reset_telemetry():
    clear_listeners()
    yield
    clear_listeners()
