"""Mastery level state machine: beginner -> novice -> intermediate -> advanced -> expert."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .errors import SkillValidationError
from .models import LEVEL_ORDER, SkillLevel, order_levels

COMPLETION_THRESHOLD = 100


@dataclass(frozen=True)
class LevelTransition:
    completed_level: SkillLevel
    new_level: SkillLevel
    progress_reset: bool
    message: str


def next_level(current_level: str) -> Optional[SkillLevel]:
    """Return the level after ``current_level``, or ``None`` at the terminal level."""
    try:
        index = LEVEL_ORDER.index(current_level)  # type: ignore[arg-type]
    except ValueError as exc:
        raise SkillValidationError(f"Unknown skill level: {current_level!r}") from exc
    if index == len(LEVEL_ORDER) - 1:
        return None
    return LEVEL_ORDER[index + 1]


def evaluate(current_level: SkillLevel, reported_progress: int) -> Optional[LevelTransition]:
    if reported_progress < COMPLETION_THRESHOLD:
        return None
    following = next_level(current_level)
    if following is None:
        return None
    return LevelTransition(
        completed_level=current_level,
        new_level=following,
        progress_reset=True,
        message=f"Level up! You completed {current_level} and advanced to {following}.",
    )


def apply_level_progression(current_level: SkillLevel, reported_progress: int) -> Tuple[SkillLevel, int]:
    """Return the ``(level, progress)`` pair a skill should hold after a report."""
    transition = evaluate(current_level, reported_progress)
    if transition is None:
        return current_level, reported_progress
    return transition.new_level, 0 if transition.progress_reset else reported_progress


def merge_completed_levels(completed: Iterable[str], level: SkillLevel) -> List[SkillLevel]:
    # Idempotent: a level already present is not added twice.
    return order_levels([*completed, level])


def progress_notes(reported_progress: int, transition: Optional[LevelTransition]) -> str:
    notes = f"Progress updated to {reported_progress}%"
    if transition is not None:
        notes = f"{notes}. {transition.message}"
    return notes


__all__ = [
    "COMPLETION_THRESHOLD",
    "LevelTransition",
    "apply_level_progression",
    "evaluate",
    "merge_completed_levels",
    "next_level",
    "progress_notes",
]
