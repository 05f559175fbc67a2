"""Repository layer for SQL persistence."""

from .skills import SkillRepository, skills

__all__ = ["SkillRepository", "skills"]
