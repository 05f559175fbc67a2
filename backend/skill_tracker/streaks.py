"""Consecutive-day streak calculation for skills and users."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional

from .activity import ActivityEvent, activity_days, skill_activity, today_utc, user_activity
from .models import DiaryEntry, ProgressUpdate, Skill

ONE_DAY = timedelta(days=1)


def streak_from_events(events: Iterable[ActivityEvent], today: Optional[date] = None) -> int:
    """Count consecutive activity days ending today or yesterday.

    Several events on one day count once. The walk stops at the first gap,
    so older activity before a gap never extends the streak.
    """
    days = sorted(activity_days(events), reverse=True)
    if not days:
        return 0

    anchor = today or today_utc()
    if days[0] not in (anchor, anchor - ONE_DAY):
        return 0

    streak = 1
    previous = days[0]
    for day in days[1:]:
        if previous - day != ONE_DAY:
            break
        streak += 1
        previous = day
    return streak


def calculate_skill_streak(
    entries: Iterable[DiaryEntry],
    progress_updates: Iterable[ProgressUpdate],
    today: Optional[date] = None,
) -> int:
    return streak_from_events(skill_activity(entries, progress_updates), today=today)


def calculate_user_streak(skills: Iterable[Skill], today: Optional[date] = None) -> int:
    """Same walk as :func:`calculate_skill_streak` over every skill's activity."""
    return streak_from_events(user_activity(skills), today=today)


__all__ = ["calculate_skill_streak", "calculate_user_streak", "streak_from_events"]
