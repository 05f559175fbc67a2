"""Normalise diary entries and progress updates into dated activity events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Literal, Optional, Set

from .models import DiaryEntry, ProgressUpdate, Skill, ensure_utc

ActivityKind = Literal["entry", "progress_update"]


@dataclass(frozen=True)
class ActivityEvent:
    day: date
    source_kind: ActivityKind


@dataclass
class ActivityDay:
    day: date
    entries: int = 0
    hours: float = 0.0
    progress_updates: int = 0


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def activity_day(value: datetime | date) -> date:
    """Return the UTC calendar day an activity timestamp falls on."""
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    return value


def skill_activity(
    entries: Iterable[DiaryEntry],
    progress_updates: Iterable[ProgressUpdate],
) -> List[ActivityEvent]:
    events = [ActivityEvent(day=activity_day(entry.date), source_kind="entry") for entry in entries]
    events.extend(
        ActivityEvent(day=activity_day(update.created_at), source_kind="progress_update")
        for update in progress_updates
    )
    return events


def user_activity(skills: Iterable[Skill]) -> List[ActivityEvent]:
    events: List[ActivityEvent] = []
    for skill in skills:
        events.extend(skill_activity(skill.entries, skill.progress_updates))
    return events


def activity_days(events: Iterable[ActivityEvent]) -> Set[date]:
    return {event.day for event in events}


def get_activity_data(
    skills: Iterable[Skill],
    days: int = 7,
    today: Optional[date] = None,
) -> List[ActivityDay]:
    """Summarise activity for the last ``days`` days, most recent first.

    Activity outside the window is ignored. Days with no activity are still
    present with zero counts so callers can render a contiguous chart.
    """
    anchor = today or today_utc()
    window: Dict[date, ActivityDay] = {}
    for offset in range(days):
        day = anchor - timedelta(days=offset)
        window[day] = ActivityDay(day=day)

    for skill in skills:
        for entry in skill.entries:
            bucket = window.get(activity_day(entry.date))
            if bucket is not None:
                bucket.entries += 1
                bucket.hours += entry.hours or 0.0
        for update in skill.progress_updates:
            bucket = window.get(activity_day(update.created_at))
            if bucket is not None:
                bucket.progress_updates += 1

    return sorted(window.values(), key=lambda bucket: bucket.day, reverse=True)


__all__ = [
    "ActivityDay",
    "ActivityEvent",
    "activity_day",
    "activity_days",
    "get_activity_data",
    "skill_activity",
    "today_utc",
    "user_activity",
]
