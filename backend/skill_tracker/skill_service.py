"""Skill read and write paths: cached reads, serialized mutations, derived state.

Every mutation reads the in-memory snapshot, recomputes streak, level and hour
totals, hands the detail row and the new totals to the store in one call,
invalidates the affected cache keys and then republishes the local skill.
Mutations on one skill are serialized by a per-skill lock; the snapshot is read
inside the lock so two rapid writes can not both start from the same stale
state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from .activity import ActivityDay, get_activity_data
from .cache import QueryCache
from .config import Settings, get_settings
from .errors import PersistenceError, RemoteTimeoutError, SkillTrackerError, SkillValidationError
from .metrics import QueryMetrics
from .models import DiaryEntry, ProgressUpdate, Skill, SkillSummary, ensure_utc
from .progression import LevelTransition, evaluate, merge_completed_levels, progress_notes
from .store import SkillStore
from .streaks import calculate_skill_streak, calculate_user_streak
from .telemetry import emit_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

EDITABLE_SKILL_FIELDS = {"name", "description"}
# Largest value the Numeric(5, 2) hours column holds.
MAX_ENTRY_HOURS = 999.99


@dataclass(frozen=True)
class ProgressOutcome:
    skill: Skill
    transition: Optional[LevelTransition]


def _clone(value: Any) -> Any:
    if isinstance(value, list):
        return [_clone(item) for item in value]
    if hasattr(value, "model_copy"):
        return value.model_copy(deep=True)
    return value


def _entry_hours(hours: Optional[float]) -> float:
    if hours is None or hours < 0 or hours > MAX_ENTRY_HOURS:
        raise SkillValidationError(f"Hours must be between 0 and {MAX_ENTRY_HOURS}.")
    return round(float(hours), 2)


def _total_hours(entries: List[DiaryEntry]) -> float:
    return round(sum(entry.hours or 0.0 for entry in entries), 2)


def _latest_activity(skill: Skill) -> datetime:
    stamps = [entry.date for entry in skill.entries] + [update.created_at for update in skill.progress_updates]
    if not stamps:
        return skill.last_updated
    return max(ensure_utc(stamp) for stamp in stamps)


class SkillService:
    """Client-side state container for one user's skills."""

    def __init__(
        self,
        store: SkillStore,
        user_id: str,
        cache: Optional[QueryCache] = None,
        metrics: Optional[QueryMetrics] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._user_id = user_id
        self._cache = cache if cache is not None else QueryCache(default_ttl=self._settings.cache_default_ttl)
        self._metrics = metrics if metrics is not None else QueryMetrics()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._skills: List[Skill] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        self._inflight: Dict[str, asyncio.Task[Any]] = {}
        self._write_versions: Dict[str, int] = {}
        self._cache_generation = 0
        self._page = 0
        self.has_more = True

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def skills(self) -> List[Skill]:
        return list(self._skills)

    def find_skill(self, skill_id: str) -> Optional[Skill]:
        for skill in self._skills:
            if skill.id == skill_id:
                return skill
        return None

    def _today(self) -> date:
        return ensure_utc(self._clock()).date()

    def _lock_for(self, skill_id: str) -> asyncio.Lock:
        lock = self._locks.get(skill_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[skill_id] = lock
        return lock

    def _replace_local(self, updated: Skill) -> None:
        self._skills = [updated if skill.id == updated.id else skill for skill in self._skills]

    # -- remote calls -----------------------------------------------------

    async def _remote(self, query_name: str, call: Callable[[], Awaitable[T]]) -> T:
        timeout = self._settings.remote_timeout
        started = perf_counter()
        try:
            if timeout > 0:
                result = await asyncio.wait_for(call(), timeout=timeout)
            else:
                result = await call()
        except asyncio.TimeoutError as exc:
            self._metrics.track(f"{query_name}_error", (perf_counter() - started) * 1000)
            raise RemoteTimeoutError(f"{query_name} timed out after {timeout}s") from exc
        except SkillTrackerError:
            self._metrics.track(f"{query_name}_error", (perf_counter() - started) * 1000)
            raise
        except Exception as exc:  # noqa: BLE001
            self._metrics.track(f"{query_name}_error", (perf_counter() - started) * 1000)
            raise PersistenceError(f"{query_name} failed: {exc}") from exc
        self._metrics.track(query_name, (perf_counter() - started) * 1000)
        return result

    async def _cached(
        self,
        query_name: str,
        cache_key: str,
        ttl: float,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s (%s)", query_name, cache_key)
            return _clone(cached)

        task = self._inflight.get(cache_key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_store(query_name, cache_key, ttl, call))
            self._inflight[cache_key] = task
            task.add_done_callback(lambda done, key=cache_key: self._forget_inflight(key, done))
        return _clone(await asyncio.shield(task))

    async def _fetch_and_store(
        self,
        query_name: str,
        cache_key: str,
        ttl: float,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        generation = self._cache_generation
        result = await self._remote(query_name, call)
        # An invalidation while the fetch was in flight means the result may be stale.
        if result is not None and generation == self._cache_generation:
            self._cache.set(cache_key, result, ttl)
        return result

    def _forget_inflight(self, cache_key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(cache_key) is task:
            del self._inflight[cache_key]

    # -- cache management -------------------------------------------------

    def _invalidate(self, *patterns: str) -> None:
        self._cache_generation += 1
        for pattern in patterns:
            self._cache.invalidate(pattern)
            for key in [key for key in self._inflight if pattern in key]:
                del self._inflight[key]

    def invalidate_user_cache(self, user_id: Optional[str] = None) -> None:
        user = user_id or self._user_id
        self._invalidate(f"skills_{user}", f"skills_minimal_{user}")

    def invalidate_skill_cache(self, skill_id: str) -> None:
        self._invalidate(f"skill_{skill_id}", f"entries_{skill_id}", f"progress_{skill_id}")

    def _mark_written(self, skill_id: str) -> None:
        self._write_versions[skill_id] = self._write_versions.get(skill_id, 0) + 1

    def _invalidate_for_skill(self, skill_id: str) -> None:
        self._mark_written(skill_id)
        self.invalidate_skill_cache(skill_id)
        self.invalidate_user_cache()

    def clear_cache(self) -> None:
        self._cache_generation += 1
        self._inflight.clear()
        self._cache.clear()

    def get_performance_metrics(self) -> Dict[str, Any]:
        return {"cache": self._cache.stats(), "queries": self._metrics.snapshot()}

    # -- read paths -------------------------------------------------------

    async def get_skills_paginated(self, page: int = 0, limit: int = 20) -> List[Skill]:
        return await self._cached(
            "get_skills_paginated",
            f"skills_{self._user_id}_{page}_{limit}",
            self._settings.cache_paginated_ttl,
            lambda: self._store.list_skills(self._user_id, page, limit),
        )

    async def get_skills_minimal(self) -> List[SkillSummary]:
        return await self._cached(
            "get_skills_minimal",
            f"skills_minimal_{self._user_id}",
            self._settings.cache_minimal_ttl,
            lambda: self._store.list_skills_minimal(self._user_id),
        )

    async def get_skill(self, skill_id: str) -> Optional[Skill]:
        return await self._cached(
            "get_skill",
            f"skill_{skill_id}",
            self._settings.cache_detail_ttl,
            lambda: self._store.get_skill(skill_id),
        )

    async def get_skill_entries_paginated(self, skill_id: str, page: int = 0, limit: int = 50) -> List[DiaryEntry]:
        return await self._cached(
            "get_skill_entries_paginated",
            f"entries_{skill_id}_{page}_{limit}",
            self._settings.cache_entries_ttl,
            lambda: self._store.list_entries(skill_id, page, limit),
        )

    async def get_progress_updates(self, skill_id: str) -> List[ProgressUpdate]:
        return await self._cached(
            "get_progress_updates",
            f"progress_{skill_id}",
            self._settings.cache_progress_ttl,
            lambda: self._store.list_progress_updates(skill_id),
        )

    async def _hydrate(self, skill: Skill) -> Skill:
        progress_updates = await self.get_progress_updates(skill.id)
        hydrated = skill.model_copy(update={"progress_updates": progress_updates})
        return hydrated.model_copy(
            update={
                "streak": calculate_skill_streak(hydrated.entries, progress_updates, today=self._today()),
                "last_updated": _latest_activity(hydrated),
            }
        )

    async def _load_page(self, page: int) -> List[Skill]:
        limit = self._settings.page_size
        records = await self.get_skills_paginated(page, limit)
        loaded = list(await asyncio.gather(*(self._hydrate(record) for record in records)))
        self._page = page
        self.has_more = len(loaded) == limit
        return loaded

    def _written_since(self, versions: Dict[str, int]) -> Set[str]:
        return {skill_id for skill_id, version in self._write_versions.items() if versions.get(skill_id) != version}

    async def refresh_skills(self) -> List[Skill]:
        """Reload the first page into local state, replacing what was there.

        Skills written while the page loads keep their local copy, and skills
        deleted in that window stay deleted.
        """
        versions = dict(self._write_versions)
        loaded = await self._load_page(0)
        written = self._written_since(versions)
        if not written:
            self._skills = loaded
            return self.skills

        loaded_ids = {skill.id for skill in loaded}
        merged = [skill for skill in self._skills if skill.id in written and skill.id not in loaded_ids]
        for skill in loaded:
            if skill.id not in written:
                merged.append(skill)
                continue
            local = self.find_skill(skill.id)
            if local is not None:
                merged.append(local)
        self._skills = merged
        return self.skills

    async def load_more_skills(self) -> List[Skill]:
        if not self.has_more:
            return []
        versions = dict(self._write_versions)
        loaded = await self._load_page(self._page + 1)
        written = self._written_since(versions)
        loaded = [skill for skill in loaded if skill.id not in written]
        known = {skill.id for skill in self._skills}
        fresh = [skill for skill in loaded if skill.id not in known]
        self._skills = self._skills + fresh
        return fresh

    def user_streak(self) -> int:
        return calculate_user_streak(self._skills, today=self._today())

    def activity_data(self, days: int = 7) -> List[ActivityDay]:
        return get_activity_data(self._skills, days=days, today=self._today())

    # -- write paths ------------------------------------------------------

    async def add_skill(self, name: str, description: str = "") -> Skill:
        cleaned = (name or "").strip()
        if not cleaned:
            raise SkillValidationError("Skill name is required.")
        fields = {
            "name": cleaned,
            "description": (description or "").strip(),
            "progress": 0,
            "current_level": "beginner",
            "completed_levels": [],
            "streak": 0,
            "total_hours": 0.0,
        }
        created = await self._remote("create_skill", lambda: self._store.create_skill(self._user_id, fields))
        self.invalidate_user_cache()
        self._mark_written(created.id)
        self._skills = [created] + [skill for skill in self._skills if skill.id != created.id]
        emit_event("skill_created", user_id=self._user_id, skill_id=created.id)
        return created

    async def update_skill(self, skill_id: str, **fields: Any) -> Optional[Skill]:
        unknown = set(fields) - EDITABLE_SKILL_FIELDS
        if unknown:
            raise SkillValidationError(f"Fields cannot be edited directly: {', '.join(sorted(unknown))}")
        if "name" in fields:
            fields["name"] = (fields["name"] or "").strip()
            if not fields["name"]:
                raise SkillValidationError("Skill name is required.")

        async with self._lock_for(skill_id):
            current = self.find_skill(skill_id)
            if current is None:
                logger.info("Ignoring update for unknown skill %s", skill_id)
                return None
            stored = await self._remote("update_skill", lambda: self._store.update_skill(skill_id, fields))
            self._invalidate_for_skill(skill_id)
            updated = current.model_copy(update={**fields, "last_updated": stored.last_updated})
            self._replace_local(updated)
            return updated

    async def delete_skill(self, skill_id: str) -> bool:
        async with self._lock_for(skill_id):
            if self.find_skill(skill_id) is None:
                return False
            await self._remote("delete_skill", lambda: self._store.delete_skill(skill_id))
            self._invalidate_for_skill(skill_id)
            self._skills = [skill for skill in self._skills if skill.id != skill_id]
        self._locks.pop(skill_id, None)
        emit_event("skill_deleted", user_id=self._user_id, skill_id=skill_id)
        return True

    async def _persist(
        self,
        skill_id: str,
        operation: str,
        query_name: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one write for ``skill_id`` and drop the cache keys it touches."""
        try:
            return await self._remote(query_name, call)
        except SkillTrackerError as exc:
            logger.error("Write failed for skill %s during %s: %s", skill_id, operation, exc)
            emit_event("skill_write_failed", skill_id=skill_id, operation=operation, error=str(exc))
            raise
        finally:
            # A timed-out call may still commit in the background.
            self._invalidate_for_skill(skill_id)

    async def add_entry(self, skill_id: str, text: str, hours: float = 0.0) -> Optional[Skill]:
        content = (text or "").strip()
        if not content:
            raise SkillValidationError("Diary entry text is required.")
        hours = _entry_hours(hours)

        async with self._lock_for(skill_id):
            current = self.find_skill(skill_id)
            if current is None:
                logger.info("Ignoring diary entry for unknown skill %s", skill_id)
                return None

            pending = DiaryEntry(id="pending", text=content, date=self._clock(), hours=hours)
            total_hours = _total_hours(current.entries + [pending])
            streak = calculate_skill_streak(
                current.entries + [pending], current.progress_updates, today=self._today()
            )
            entry = await self._persist(
                skill_id,
                "add_entry",
                "create_skill_entry",
                lambda: self._store.create_entry(
                    skill_id, content, hours, {"total_hours": total_hours, "streak": streak}
                ),
            )
            updated = current.model_copy(
                update={
                    "entries": current.entries + [entry],
                    "total_hours": total_hours,
                    "streak": streak,
                    "last_updated": entry.date,
                }
            )
            self._replace_local(updated)

        emit_event("skill_entry_added", skill_id=skill_id, entry_id=entry.id, hours=hours, streak=streak)
        return updated

    async def update_entry(
        self,
        skill_id: str,
        entry_id: str,
        text: Optional[str] = None,
        hours: Optional[float] = None,
    ) -> Optional[Skill]:
        changes: Dict[str, Any] = {}
        if text is not None:
            if not text.strip():
                raise SkillValidationError("Diary entry text is required.")
            changes["content"] = text.strip()
        if hours is not None:
            changes["hours"] = _entry_hours(hours)
        if not changes:
            raise SkillValidationError("Nothing to update on the diary entry.")

        async with self._lock_for(skill_id):
            current = self.find_skill(skill_id)
            if current is None or not any(entry.id == entry_id for entry in current.entries):
                return None

            local_changes = {"text": changes["content"]} if "content" in changes else {}
            if "hours" in changes:
                local_changes["hours"] = changes["hours"]
            entries = [
                entry.model_copy(update=local_changes) if entry.id == entry_id else entry
                for entry in current.entries
            ]
            total_hours = _total_hours(entries)
            streak = calculate_skill_streak(entries, current.progress_updates, today=self._today())
            edited = await self._persist(
                skill_id,
                "update_entry",
                "update_skill_entry",
                lambda: self._store.update_entry(
                    entry_id, changes, {"total_hours": total_hours, "streak": streak}
                ),
            )
            updated = current.model_copy(
                update={
                    "entries": [edited if entry.id == entry_id else entry for entry in entries],
                    "total_hours": total_hours,
                    "streak": streak,
                    "last_updated": self._clock(),
                }
            )
            self._replace_local(updated)
            return updated

    async def delete_entry(self, skill_id: str, entry_id: str) -> Optional[Skill]:
        async with self._lock_for(skill_id):
            current = self.find_skill(skill_id)
            if current is None or not any(entry.id == entry_id for entry in current.entries):
                return None

            entries = [entry for entry in current.entries if entry.id != entry_id]
            total_hours = _total_hours(entries)
            streak = calculate_skill_streak(entries, current.progress_updates, today=self._today())
            await self._persist(
                skill_id,
                "delete_entry",
                "delete_skill_entry",
                lambda: self._store.delete_entry(entry_id, {"total_hours": total_hours, "streak": streak}),
            )
            updated = current.model_copy(
                update={
                    "entries": entries,
                    "total_hours": total_hours,
                    "streak": streak,
                    "last_updated": self._clock(),
                }
            )
            self._replace_local(updated)
            return updated

    async def add_progress_update(self, skill_id: str, value: int) -> Optional[ProgressOutcome]:
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
            raise SkillValidationError("Progress must be an integer between 0 and 100.")

        async with self._lock_for(skill_id):
            current = self.find_skill(skill_id)
            if current is None:
                logger.info("Ignoring progress update for unknown skill %s", skill_id)
                return None

            transition = evaluate(current.current_level, value)
            notes = progress_notes(value, transition)
            if transition is None:
                progress, level, completed = value, current.current_level, list(current.completed_levels)
            else:
                progress = 0 if transition.progress_reset else value
                level = transition.new_level
                completed = merge_completed_levels(current.completed_levels, transition.completed_level)

            pending = ProgressUpdate(id="pending", skill_id=skill_id, progress=value, created_at=self._clock())
            streak = calculate_skill_streak(
                current.entries, current.progress_updates + [pending], today=self._today()
            )
            update = await self._persist(
                skill_id,
                "add_progress_update",
                "create_progress_update",
                lambda: self._store.create_progress_update(
                    skill_id,
                    value,
                    notes,
                    {
                        "progress": progress,
                        "current_level": level,
                        "completed_levels": completed,
                        "streak": streak,
                    },
                ),
            )
            updated = current.model_copy(
                update={
                    "progress": progress,
                    "current_level": level,
                    "completed_levels": completed,
                    "progress_updates": current.progress_updates + [update],
                    "streak": streak,
                    "last_updated": update.created_at,
                }
            )
            self._replace_local(updated)

        emit_event("skill_progress_recorded", skill_id=skill_id, progress=value, streak=streak)
        if transition is not None:
            emit_event(
                "skill_level_completed",
                skill_id=skill_id,
                completed_level=transition.completed_level,
                new_level=transition.new_level,
            )
        return ProgressOutcome(skill=updated, transition=transition)


__all__ = ["MAX_ENTRY_HOURS", "ProgressOutcome", "SkillService"]
