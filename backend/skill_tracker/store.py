"""Persistence collaborator used by the skill service.

``SkillStore`` is the narrow asynchronous interface the write and read paths
depend on. Detail writes carry the recomputed skill aggregates so an
implementation can persist both atomically. ``DatabaseSkillStore`` implements
it over the SQL repository in one session per call; the synchronous session
work runs in a worker thread so the event loop only ever awaits.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db.session import get_session_factory, session_scope
from .errors import PersistenceError
from .models import DiaryEntry, ProgressUpdate, Skill, SkillSummary
from .repositories.skills import SkillRepository, skills as default_repository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SkillStore(Protocol):
    async def create_skill(self, user_id: str, fields: Dict[str, Any]) -> Skill: ...

    async def update_skill(self, skill_id: str, fields: Dict[str, Any]) -> Skill: ...

    async def delete_skill(self, skill_id: str) -> None: ...

    async def get_skill(self, skill_id: str) -> Optional[Skill]: ...

    async def list_skills(self, user_id: str, page: int = 0, limit: int = 20) -> List[Skill]: ...

    async def list_skills_minimal(self, user_id: str) -> List[SkillSummary]: ...

    async def create_entry(
        self, skill_id: str, content: str, hours: float, aggregates: Optional[Dict[str, Any]] = None
    ) -> DiaryEntry: ...

    async def update_entry(
        self, entry_id: str, fields: Dict[str, Any], aggregates: Optional[Dict[str, Any]] = None
    ) -> DiaryEntry: ...

    async def delete_entry(self, entry_id: str, aggregates: Optional[Dict[str, Any]] = None) -> None: ...

    async def list_entries(self, skill_id: str, page: int = 0, limit: int = 50) -> List[DiaryEntry]: ...

    async def create_progress_update(
        self,
        skill_id: str,
        progress: int,
        notes: Optional[str],
        aggregates: Optional[Dict[str, Any]] = None,
    ) -> ProgressUpdate: ...

    async def list_progress_updates(self, skill_id: str) -> List[ProgressUpdate]: ...


class DatabaseSkillStore:
    """``SkillStore`` backed by the SQL schema in :mod:`skill_tracker.db`."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker[Session]] = None,
        repository: Optional[SkillRepository] = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or default_repository

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        def _in_session() -> T:
            factory = self._session_factory or get_session_factory()
            with session_scope(factory) as session:
                return work(session)

        try:
            return await asyncio.to_thread(_in_session)
        except SQLAlchemyError as exc:
            logger.warning("Database error during %s: %s", operation, exc)
            raise PersistenceError(f"{operation} failed: {exc}") from exc

    async def create_skill(self, user_id: str, fields: Dict[str, Any]) -> Skill:
        return await self._run("create_skill", lambda s: self._repository.create_skill(s, user_id, fields))

    async def update_skill(self, skill_id: str, fields: Dict[str, Any]) -> Skill:
        return await self._run("update_skill", lambda s: self._repository.update_skill(s, skill_id, fields))

    async def delete_skill(self, skill_id: str) -> None:
        await self._run("delete_skill", lambda s: self._repository.delete_skill(s, skill_id))

    async def get_skill(self, skill_id: str) -> Optional[Skill]:
        return await self._run("get_skill", lambda s: self._repository.get_skill(s, skill_id))

    async def list_skills(self, user_id: str, page: int = 0, limit: int = 20) -> List[Skill]:
        return await self._run("list_skills", lambda s: self._repository.list_skills(s, user_id, page, limit))

    async def list_skills_minimal(self, user_id: str) -> List[SkillSummary]:
        return await self._run("list_skills_minimal", lambda s: self._repository.list_skills_minimal(s, user_id))

    async def create_entry(
        self, skill_id: str, content: str, hours: float, aggregates: Optional[Dict[str, Any]] = None
    ) -> DiaryEntry:
        return await self._run(
            "create_entry", lambda s: self._repository.create_entry(s, skill_id, content, hours, aggregates)
        )

    async def update_entry(
        self, entry_id: str, fields: Dict[str, Any], aggregates: Optional[Dict[str, Any]] = None
    ) -> DiaryEntry:
        return await self._run(
            "update_entry", lambda s: self._repository.update_entry(s, entry_id, fields, aggregates)
        )

    async def delete_entry(self, entry_id: str, aggregates: Optional[Dict[str, Any]] = None) -> None:
        await self._run("delete_entry", lambda s: self._repository.delete_entry(s, entry_id, aggregates))

    async def list_entries(self, skill_id: str, page: int = 0, limit: int = 50) -> List[DiaryEntry]:
        return await self._run("list_entries", lambda s: self._repository.list_entries(s, skill_id, page, limit))

    async def create_progress_update(
        self,
        skill_id: str,
        progress: int,
        notes: Optional[str],
        aggregates: Optional[Dict[str, Any]] = None,
    ) -> ProgressUpdate:
        return await self._run(
            "create_progress_update",
            lambda s: self._repository.create_progress_update(s, skill_id, progress, notes, aggregates),
        )

    async def list_progress_updates(self, skill_id: str) -> List[ProgressUpdate]:
        return await self._run(
            "list_progress_updates", lambda s: self._repository.list_progress_updates(s, skill_id)
        )


__all__ = ["DatabaseSkillStore", "SkillStore"]
