"""Exception types raised by the skill tracking core."""

from __future__ import annotations


class SkillTrackerError(Exception):
    """Base class for every error raised by this package."""


class SkillValidationError(SkillTrackerError, ValueError):
    """Malformed input rejected before any remote call is made."""


class PersistenceError(SkillTrackerError):
    """A call to the persistence collaborator failed."""


class SkillNotFoundError(PersistenceError):
    """The persistence collaborator has no record for the requested id."""


class RemoteTimeoutError(PersistenceError):
    """A persistence call did not complete within the configured timeout."""


__all__ = [
    "PersistenceError",
    "RemoteTimeoutError",
    "SkillNotFoundError",
    "SkillTrackerError",
    "SkillValidationError",
]
