"""Retrospective status transitions, per-retrospective summary and Try suggestions"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from kpta.core.deps import get_coaching_service
from kpta.core.exceptions import NotFoundError, StorageError
from kpta.database import get_db
from kpta.models.api import (
    RetrospectiveStatusResponse,
    RetrospectiveSummaryResponse,
    TrySuggestionResponse,
    TrySuggestionsResponse,
)
from kpta.repositories.retrospective import RetrospectiveRepository
from kpta.services.coaching_service import CoachingService

router = APIRouter()

STORAGE_UNAVAILABLE = "Unable to access your retrospectives. Please try again later."


@router.post("/{retrospective_id}/complete", response_model=RetrospectiveStatusResponse)
async def complete_retrospective(
    retrospective_id: str,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Mark a retrospective as completed"""
    retro_repo = RetrospectiveRepository()
    try:
        retro = await retro_repo.mark_completed(db, retrospective_id, user_id)
        if not retro:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Retrospective not found")
        completed_count = await retro_repo.count_completed(db, user_id)
    except StorageError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)

    return RetrospectiveStatusResponse(id=retro.id, status=retro.status, completed_count=completed_count)


@router.delete("/{retrospective_id}")
async def delete_retrospective(
    retrospective_id: str,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db)
):
    """Delete a retrospective and all of its items"""
    retro_repo = RetrospectiveRepository()
    try:
        deleted = await retro_repo.delete_retrospective(db, retrospective_id, user_id)
    except StorageError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Retrospective not found")
    return {"message": "Retrospective deleted successfully"}


@router.post("/{retrospective_id}/summary", response_model=RetrospectiveSummaryResponse)
async def summarize_retrospective(
    retrospective_id: str,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    coaching_service: CoachingService = Depends(get_coaching_service)
):
    """AI summary of a single retrospective"""
    try:
        summary = await coaching_service.summarize_retrospective(db, user_id, retrospective_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Retrospective not found")
    except StorageError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)

    return RetrospectiveSummaryResponse(retrospective_id=retrospective_id, **summary.model_dump())


@router.post("/{retrospective_id}/suggestions", response_model=TrySuggestionsResponse)
async def suggest_tries(
    retrospective_id: str,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    coaching_service: CoachingService = Depends(get_coaching_service)
):
    """Try ideas for a retrospective's problems"""
    try:
        suggestions = await coaching_service.suggest_tries(db, user_id, retrospective_id)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Retrospective not found")
    except StorageError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=STORAGE_UNAVAILABLE)

    return TrySuggestionsResponse(
        retrospective_id=retrospective_id,
        suggestions=[TrySuggestionResponse(**s.model_dump()) for s in suggestions],
    )
