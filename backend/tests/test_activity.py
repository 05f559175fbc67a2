from __future__ import annotations

from datetime import date, datetime, timezone

from skill_tracker.activity import activity_days, get_activity_data, skill_activity
from skill_tracker.models import DiaryEntry, ProgressUpdate, Skill


def _skill() -> Skill:
    return Skill(
        id="s1",
        user_id="u1",
        name="Piano",
        entries=[
            DiaryEntry(id="e1", text="Scales", date=datetime(2026, 10, 19, 8, tzinfo=timezone.utc), hours=1.5),
            DiaryEntry(id="e2", text="Etude", date=datetime(2026, 10, 19, 18, tzinfo=timezone.utc), hours=0.5),
            DiaryEntry(id="e3", text="Old", date=datetime(2026, 9, 1, 8, tzinfo=timezone.utc), hours=3),
        ],
        progress_updates=[
            ProgressUpdate(id="p1", skill_id="s1", progress=20, created_at=datetime(2026, 10, 17, tzinfo=timezone.utc)),
        ],
    )


def test_events_carry_source_kind_and_collapse_by_day() -> None:
    skill = _skill()
    events = skill_activity(skill.entries, skill.progress_updates)

    assert [event.source_kind for event in events] == ["entry", "entry", "entry", "progress_update"]
    assert activity_days(events) == {date(2026, 10, 19), date(2026, 9, 1), date(2026, 10, 17)}


def test_activity_data_buckets_last_days() -> None:
    days = get_activity_data([_skill()], days=3, today=date(2026, 10, 19))

    assert [bucket.day for bucket in days] == [date(2026, 10, 19), date(2026, 10, 18), date(2026, 10, 17)]
    assert days[0].entries == 2
    assert days[0].hours == 2.0
    assert days[1].entries == 0
    assert days[2].progress_updates == 1
