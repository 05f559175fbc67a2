"""REST endpoints that expose the skill service to the app UI."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from .activity import ActivityDay
from .errors import PersistenceError, RemoteTimeoutError, SkillNotFoundError, SkillValidationError
from .models import DiaryEntry, Skill, SkillSummary
from .service_registry import get_skill_service
from .skill_service import MAX_ENTRY_HOURS, SkillService

router = APIRouter(prefix="/api", tags=["skills"])
logger = logging.getLogger(__name__)


class CreateSkillRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)


class UpdateSkillRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class EntryRequest(BaseModel):
    text: str = Field(..., min_length=1)
    hours: float = Field(default=0.0, ge=0.0, le=MAX_ENTRY_HOURS)


class EntryUpdateRequest(BaseModel):
    text: Optional[str] = Field(default=None, min_length=1)
    hours: Optional[float] = Field(default=None, ge=0.0, le=MAX_ENTRY_HOURS)


class ProgressRequest(BaseModel):
    progress: int = Field(..., ge=0, le=100)


class ProgressResponse(BaseModel):
    skill: Skill
    level_up: bool = False
    message: Optional[str] = None


class StreakResponse(BaseModel):
    streak: int


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, SkillValidationError):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    if isinstance(exc, SkillNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, RemoteTimeoutError):
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(exc)) from exc
    logger.exception("Skill persistence failed")
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


def _missing(skill_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Skill {skill_id} is not loaded.")


@router.get("/skills", response_model=List[Skill])
async def list_skills(
    refresh: bool = Query(default=False),
    service: SkillService = Depends(get_skill_service),
) -> List[Skill]:
    try:
        if refresh or not service.skills:
            return await service.refresh_skills()
    except PersistenceError as exc:
        _raise_http(exc)
    return service.skills


@router.get("/skills/page", response_model=List[Skill])
async def list_skills_page(
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    service: SkillService = Depends(get_skill_service),
) -> List[Skill]:
    try:
        return await service.get_skills_paginated(page, limit)
    except PersistenceError as exc:
        _raise_http(exc)


@router.get("/skills/minimal", response_model=List[SkillSummary])
async def list_skills_minimal(service: SkillService = Depends(get_skill_service)) -> List[SkillSummary]:
    try:
        return await service.get_skills_minimal()
    except PersistenceError as exc:
        _raise_http(exc)


@router.post("/skills", response_model=Skill, status_code=status.HTTP_201_CREATED)
async def create_skill(
    payload: CreateSkillRequest,
    service: SkillService = Depends(get_skill_service),
) -> Skill:
    try:
        return await service.add_skill(payload.name, payload.description)
    except (SkillValidationError, PersistenceError) as exc:
        _raise_http(exc)


@router.get("/skills/{skill_id}", response_model=Skill)
async def get_skill(skill_id: str, service: SkillService = Depends(get_skill_service)) -> Skill:
    try:
        skill = await service.get_skill(skill_id)
    except PersistenceError as exc:
        _raise_http(exc)
    if skill is None:
        raise _missing(skill_id)
    return skill


@router.patch("/skills/{skill_id}", response_model=Skill)
async def update_skill(
    skill_id: str,
    payload: UpdateSkillRequest,
    service: SkillService = Depends(get_skill_service),
) -> Skill:
    fields = payload.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="No fields to update.")
    try:
        updated = await service.update_skill(skill_id, **fields)
    except (SkillValidationError, PersistenceError) as exc:
        _raise_http(exc)
    if updated is None:
        raise _missing(skill_id)
    return updated


@router.delete("/skills/{skill_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_skill(skill_id: str, service: SkillService = Depends(get_skill_service)) -> None:
    try:
        await service.delete_skill(skill_id)
    except PersistenceError as exc:
        _raise_http(exc)


@router.get("/skills/{skill_id}/entries", response_model=List[DiaryEntry])
async def list_entries(
    skill_id: str,
    page: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    service: SkillService = Depends(get_skill_service),
) -> List[DiaryEntry]:
    try:
        return await service.get_skill_entries_paginated(skill_id, page, limit)
    except PersistenceError as exc:
        _raise_http(exc)


@router.post("/skills/{skill_id}/entries", response_model=Skill, status_code=status.HTTP_201_CREATED)
async def add_entry(
    skill_id: str,
    payload: EntryRequest,
    service: SkillService = Depends(get_skill_service),
) -> Skill:
    try:
        updated = await service.add_entry(skill_id, payload.text, payload.hours)
    except (SkillValidationError, PersistenceError) as exc:
        _raise_http(exc)
    if updated is None:
        raise _missing(skill_id)
    return updated


@router.patch("/skills/{skill_id}/entries/{entry_id}", response_model=Skill)
async def update_entry(
    skill_id: str,
    entry_id: str,
    payload: EntryUpdateRequest,
    service: SkillService = Depends(get_skill_service),
) -> Skill:
    try:
        updated = await service.update_entry(skill_id, entry_id, text=payload.text, hours=payload.hours)
    except (SkillValidationError, PersistenceError) as exc:
        _raise_http(exc)
    if updated is None:
        raise _missing(skill_id)
    return updated


@router.delete("/skills/{skill_id}/entries/{entry_id}", response_model=Skill)
async def delete_entry(
    skill_id: str,
    entry_id: str,
    service: SkillService = Depends(get_skill_service),
) -> Skill:
    try:
        updated = await service.delete_entry(skill_id, entry_id)
    except PersistenceError as exc:
        _raise_http(exc)
    if updated is None:
        raise _missing(skill_id)
    return updated


@router.post("/skills/{skill_id}/progress", response_model=ProgressResponse)
async def add_progress(
    skill_id: str,
    payload: ProgressRequest,
    service: SkillService = Depends(get_skill_service),
) -> ProgressResponse:
    try:
        outcome = await service.add_progress_update(skill_id, payload.progress)
    except (SkillValidationError, PersistenceError) as exc:
        _raise_http(exc)
    if outcome is None:
        raise _missing(skill_id)
    transition = outcome.transition
    return ProgressResponse(
        skill=outcome.skill,
        level_up=transition is not None,
        message=transition.message if transition else None,
    )


@router.get("/streak", response_model=StreakResponse)
async def user_streak(service: SkillService = Depends(get_skill_service)) -> StreakResponse:
    return StreakResponse(streak=service.user_streak())


@router.get("/activity")
async def activity(
    days: int = Query(default=7, ge=1, le=90),
    service: SkillService = Depends(get_skill_service),
) -> List[Dict[str, Any]]:
    return [_activity_payload(day) for day in service.activity_data(days)]


def _activity_payload(day: ActivityDay) -> Dict[str, Any]:
    return {
        "date": day.day.isoformat(),
        "entries": day.entries,
        "hours": round(day.hours, 2),
        "progress_updates": day.progress_updates,
    }


@router.get("/metrics")
async def performance_metrics(service: SkillService = Depends(get_skill_service)) -> Dict[str, Any]:
    return service.get_performance_metrics()


@router.delete("/cache", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(service: SkillService = Depends(get_skill_service)) -> None:
    service.clear_cache()
