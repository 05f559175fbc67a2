"""Skill tracker backend: cached skill reads, streaks and level progression."""

__version__ = "0.1.0"
