"""Process-wide skill service used by the HTTP layer."""

from __future__ import annotations

from typing import Optional

from .config import get_settings
from .skill_service import SkillService
from .store import DatabaseSkillStore

_service: Optional[SkillService] = None


def get_skill_service() -> SkillService:
    global _service
    if _service is None:
        settings = get_settings()
        _service = SkillService(DatabaseSkillStore(), settings.user_id, settings=settings)
    return _service


def reset_skill_service() -> None:
    global _service
    _service = None


__all__ = ["get_skill_service", "reset_skill_service"]
