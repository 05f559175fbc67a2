"""Write-path and read-path behaviour of the skill service against a fake store."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import List

import pytest

from conftest import FakeSkillStore
from skill_tracker.config import Settings
from skill_tracker.errors import PersistenceError, RemoteTimeoutError, SkillValidationError
from skill_tracker.skill_service import SkillService
from skill_tracker.telemetry import TelemetryEvent, register_listener


def _collect_events() -> List[TelemetryEvent]:
    events: List[TelemetryEvent] = []
    register_listener(events.append)
    return events


async def test_add_skill_requires_a_name(service: SkillService, store: FakeSkillStore) -> None:
    with pytest.raises(SkillValidationError):
        await service.add_skill("   ")
    assert store.calls == []
    assert service.skills == []


async def test_add_skill_starts_with_zeroed_aggregates(service: SkillService) -> None:
    first = await service.add_skill("Guitar", "Fingerstyle")
    second = await service.add_skill("Spanish")

    assert first.progress == 0
    assert first.streak == 0
    assert first.total_hours == 0
    assert first.current_level == "beginner"
    assert first.completed_levels == []
    assert [skill.id for skill in service.skills] == [second.id, first.id]


async def test_add_skill_failure_leaves_local_state(service: SkillService, store: FakeSkillStore) -> None:
    store.fail_on.add("create_skill")
    with pytest.raises(PersistenceError):
        await service.add_skill("Guitar")
    assert service.skills == []


async def test_entries_accumulate_hours(service: SkillService) -> None:
    skill = await service.add_skill("Guitar")
    for hours in (1, 2, 1):
        await service.add_entry(skill.id, "practice", hours)

    local = service.find_skill(skill.id)
    assert local is not None
    assert local.total_hours == 4
    assert len(local.entries) == 3

    fetched = await service.get_skill(skill.id)
    assert fetched is not None
    assert fetched.total_hours == 4


async def test_entry_for_unknown_skill_is_a_no_op(service: SkillService, store: FakeSkillStore) -> None:
    assert await service.add_entry("missing", "practice", 1) is None
    assert store.calls == []


async def test_entry_validation(service: SkillService) -> None:
    skill = await service.add_skill("Guitar")
    with pytest.raises(SkillValidationError):
        await service.add_entry(skill.id, "", 1)
    with pytest.raises(SkillValidationError):
        await service.add_entry(skill.id, "practice", -1)


async def test_entry_recomputes_streak(service: SkillService, store: FakeSkillStore) -> None:
    today = store.now
    skill = await service.add_skill("Guitar")

    for days_ago in (2, 1, 0):
        store.now = today - timedelta(days=days_ago)
        updated = await service.add_entry(skill.id, "practice", 1)

    assert updated is not None
    assert updated.streak == 3
    assert store.rows[skill.id].streak == 3


async def test_failed_entry_write_changes_nothing(service: SkillService, store: FakeSkillStore) -> None:
    events = _collect_events()
    skill = await service.add_skill("Guitar")
    store.fail_on.add("create_entry")

    with pytest.raises(PersistenceError):
        await service.add_entry(skill.id, "practice", 2)

    local = service.find_skill(skill.id)
    assert local is not None
    assert local.entries == []
    assert local.total_hours == 0
    assert store.rows[skill.id].entries == []
    assert store.rows[skill.id].total_hours == 0
    assert [event.payload["operation"] for event in events if event.name == "skill_write_failed"] == ["add_entry"]


async def test_entry_and_totals_are_one_store_call(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    store.calls.clear()

    await service.add_entry(skill.id, "practice", 1)
    await service.add_progress_update(skill.id, 40)

    assert store.calls == ["create_entry", "create_progress_update"]
    assert store.rows[skill.id].total_hours == 1
    assert store.rows[skill.id].progress == 40


async def test_concurrent_entries_do_not_lose_updates(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    store.delay = 0.01

    await asyncio.gather(
        service.add_entry(skill.id, "morning", 1),
        service.add_entry(skill.id, "evening", 2),
    )

    local = service.find_skill(skill.id)
    assert local is not None
    assert local.total_hours == 3
    assert len(local.entries) == 2
    assert store.rows[skill.id].total_hours == 3


async def test_progress_below_threshold_records_value(service: SkillService) -> None:
    skill = await service.add_skill("Guitar")
    outcome = await service.add_progress_update(skill.id, 45)

    assert outcome is not None
    assert outcome.transition is None
    assert outcome.skill.progress == 45
    assert outcome.skill.current_level == "beginner"
    assert outcome.skill.streak == 1
    assert outcome.skill.progress_updates[-1].notes == "Progress updated to 45%"


async def test_level_completion_advances_and_resets(service: SkillService, store: FakeSkillStore) -> None:
    events = _collect_events()
    skill = await service.add_skill("Guitar")
    await service.add_progress_update(skill.id, 100)
    await service.add_progress_update(skill.id, 100)
    assert service.find_skill(skill.id).current_level == "intermediate"  # type: ignore[union-attr]

    outcome = await service.add_progress_update(skill.id, 100)

    assert outcome is not None
    assert outcome.transition is not None
    assert outcome.skill.current_level == "advanced"
    assert outcome.skill.progress == 0
    assert outcome.skill.completed_levels == ["beginner", "novice", "intermediate"]
    assert "intermediate" in (outcome.skill.progress_updates[-1].notes or "")

    row = store.rows[skill.id]
    assert row.current_level == "advanced"
    assert row.progress == 0
    assert row.completed_levels.count("intermediate") == 1

    again = await service.add_progress_update(skill.id, 100)
    assert again is not None
    assert again.skill.current_level == "expert"
    assert again.skill.completed_levels.count("intermediate") == 1

    completed = [event for event in events if event.name == "skill_level_completed"]
    assert [event.payload["new_level"] for event in completed] == ["novice", "intermediate", "advanced", "expert"]


async def test_expert_at_full_progress_stays_at_100(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    for _ in range(4):
        await service.add_progress_update(skill.id, 100)

    outcome = await service.add_progress_update(skill.id, 100)

    assert outcome is not None
    assert outcome.transition is None
    assert outcome.skill.current_level == "expert"
    assert outcome.skill.progress == 100
    assert store.rows[skill.id].progress == 100


async def test_progress_validation(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    calls = len(store.calls)
    for bad in (-1, 101):
        with pytest.raises(SkillValidationError):
            await service.add_progress_update(skill.id, bad)
    assert len(store.calls) == calls
    assert await service.add_progress_update("missing", 10) is None


async def test_update_skill_merges_editable_fields(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    await service.add_entry(skill.id, "practice", 1)

    updated = await service.update_skill(skill.id, name="Classical Guitar")

    assert updated is not None
    assert updated.name == "Classical Guitar"
    assert len(updated.entries) == 1
    assert store.rows[skill.id].name == "Classical Guitar"

    with pytest.raises(SkillValidationError):
        await service.update_skill(skill.id, total_hours=99)
    with pytest.raises(SkillValidationError):
        await service.update_skill(skill.id, name=" ")
    assert await service.update_skill("missing", name="x") is None


async def test_delete_skill(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    await service.get_skills_paginated(0, 20)
    await service.get_skill(skill.id)

    assert await service.delete_skill(skill.id) is True
    assert service.skills == []
    assert skill.id not in store.rows
    assert service.get_performance_metrics()["cache"]["size"] == 0

    calls = len(store.calls)
    assert await service.delete_skill(skill.id) is False
    assert len(store.calls) == calls


async def test_edit_and_remove_entry_recompute_totals(service: SkillService) -> None:
    skill = await service.add_skill("Guitar")
    await service.add_entry(skill.id, "scales", 1)
    updated = await service.add_entry(skill.id, "chords", 2)
    assert updated is not None
    entry_id = updated.entries[0].id

    edited = await service.update_entry(skill.id, entry_id, hours=3)
    assert edited is not None
    assert edited.total_hours == 5
    assert edited.entries[0].hours == 3

    removed = await service.delete_entry(skill.id, entry_id)
    assert removed is not None
    assert removed.total_hours == 2
    assert len(removed.entries) == 1
    assert await service.delete_entry(skill.id, "missing") is None


async def test_paginated_reads_are_cached_until_a_write(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")

    await service.get_skills_paginated(0, 20)
    await service.get_skills_paginated(0, 20)
    assert store.calls.count("list_skills") == 1

    await service.add_entry(skill.id, "practice", 1)
    page = await service.get_skills_paginated(0, 20)

    assert store.calls.count("list_skills") == 2
    assert page[0].total_hours == 1


async def test_cached_values_are_not_shared_with_callers(service: SkillService) -> None:
    skill = await service.add_skill("Guitar")
    first = await service.get_skill(skill.id)
    assert first is not None
    first.name = "mutated"

    second = await service.get_skill(skill.id)
    assert second is not None
    assert second.name == "Guitar"


async def test_concurrent_identical_reads_share_one_fetch(service: SkillService, store: FakeSkillStore) -> None:
    await service.add_skill("Guitar")
    store.delay = 0.02

    results = await asyncio.gather(*(service.get_skills_minimal() for _ in range(3)))

    assert store.calls.count("list_skills_minimal") == 1
    assert all(len(result) == 1 for result in results)


async def test_invalidation_during_fetch_skips_caching(service: SkillService, store: FakeSkillStore) -> None:
    await service.add_skill("Guitar")
    store.delay = 0.05

    pending = asyncio.ensure_future(service.get_skills_paginated(0, 20))
    await asyncio.sleep(0.01)
    service.invalidate_user_cache()
    await pending

    assert service.get_performance_metrics()["cache"]["size"] == 0


async def test_remote_timeout(store: FakeSkillStore) -> None:
    settings = Settings(SKILL_TRACKER_REMOTE_TIMEOUT=0.01)  # type: ignore[call-arg]
    service = SkillService(store, "u1", settings=settings, clock=lambda: store.now)
    store.delay = 0.2

    with pytest.raises(RemoteTimeoutError):
        await service.add_skill("Guitar")

    queries = service.get_performance_metrics()["queries"]
    assert queries["create_skill_error"]["count"] == 1


async def test_refresh_hydrates_progress_and_streak(service: SkillService, store: FakeSkillStore) -> None:
    today = store.now
    skill = await service.add_skill("Guitar")
    store.now = today - timedelta(days=1)
    await service.add_entry(skill.id, "practice", 1)
    store.now = today
    await service.add_progress_update(skill.id, 30)

    fresh = SkillService(store, "u1", clock=lambda: store.now)
    loaded = await fresh.refresh_skills()

    assert len(loaded) == 1
    assert loaded[0].streak == 2
    assert len(loaded[0].progress_updates) == 1
    assert loaded[0].last_updated == today
    assert fresh.has_more is False
    assert fresh.user_streak() == 2
    assert await fresh.load_more_skills() == []


async def test_load_more_appends_next_page(store: FakeSkillStore) -> None:
    settings = Settings(SKILL_TRACKER_PAGE_SIZE=2)  # type: ignore[call-arg]
    writer = SkillService(store, "u1", settings=settings, clock=lambda: store.now)
    for index in range(3):
        store.now = store.now + timedelta(minutes=1)
        await writer.add_skill(f"Skill {index}")

    reader = SkillService(store, "u1", settings=settings, clock=lambda: store.now)
    first = await reader.refresh_skills()
    assert [skill.name for skill in first] == ["Skill 2", "Skill 1"]
    assert reader.has_more is True

    more = await reader.load_more_skills()
    assert [skill.name for skill in more] == ["Skill 0"]
    assert reader.has_more is False
    assert len(reader.skills) == 3


async def test_performance_metrics_and_clear_cache(service: SkillService) -> None:
    skill = await service.add_skill("Guitar")
    await service.get_skill(skill.id)
    await service.get_skill(skill.id)

    metrics = service.get_performance_metrics()
    assert metrics["cache"]["keys"] == [f"skill_{skill.id}"]
    assert metrics["cache"]["hits"] == 1
    assert metrics["queries"]["get_skill"]["count"] == 1
    assert metrics["queries"]["create_skill"]["avg_ms"] >= 0

    service.clear_cache()
    assert service.get_performance_metrics()["cache"]["size"] == 0


async def test_write_during_refresh_keeps_local_copy(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    store.delay = 0.02

    refresh = asyncio.ensure_future(service.refresh_skills())
    await asyncio.sleep(0.01)
    await service.add_entry(skill.id, "scales", 1)
    await refresh

    local = service.find_skill(skill.id)
    assert local is not None
    assert [entry.text for entry in local.entries] == ["scales"]
    assert local.total_hours == 1

    await service.add_entry(skill.id, "chords", 1)
    row = store.rows[skill.id]
    assert row.total_hours == sum(entry.hours for entry in row.entries) == 2


async def test_delete_during_refresh_is_not_resurrected(service: SkillService, store: FakeSkillStore) -> None:
    kept = await service.add_skill("Guitar")
    doomed = await service.add_skill("Spanish")
    store.delay = 0.02

    refresh = asyncio.ensure_future(service.refresh_skills())
    await asyncio.sleep(0.01)
    await service.delete_skill(doomed.id)
    await refresh

    assert [skill.id for skill in service.skills] == [kept.id]


async def test_hours_are_rounded_and_bounded(service: SkillService, store: FakeSkillStore) -> None:
    skill = await service.add_skill("Guitar")
    for _ in range(3):
        updated = await service.add_entry(skill.id, "practice", 0.333)

    assert updated is not None
    assert [entry.hours for entry in updated.entries] == [0.33, 0.33, 0.33]
    assert updated.total_hours == 0.99
    assert store.rows[skill.id].total_hours == 0.99

    calls = len(store.calls)
    with pytest.raises(SkillValidationError):
        await service.add_entry(skill.id, "marathon", 1000)
    with pytest.raises(SkillValidationError):
        await service.update_entry(skill.id, updated.entries[0].id, hours=1000)
    assert len(store.calls) == calls
