"""Action generation from Try items"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from kpta.agents.models import ActionSuggestion
from kpta.core.deps import get_coaching_service
from kpta.core.exceptions import NotFoundError, StorageError
from kpta.database import get_db
from kpta.models.api import (
    SuggestActionsRequest, SuggestActionsResponse, SuggestedAction,
    AcceptActionsRequest, ActionResponse,
)
from kpta.services.coaching_service import CoachingService

router = APIRouter()


@router.post("/suggest", response_model=SuggestActionsResponse)
async def suggest_actions(
    request: SuggestActionsRequest,
    coaching_service: CoachingService = Depends(get_coaching_service)
):
    """Suggest concrete actions (with relative deadlines) for a Try item"""
    suggestions = await coaching_service.suggest_actions(request.try_text, request.problems)
    return SuggestActionsResponse(actions=[SuggestedAction(**s.model_dump()) for s in suggestions])


@router.post("/accept", response_model=List[ActionResponse])
async def accept_actions(
    request: AcceptActionsRequest,
    db: AsyncSession = Depends(get_db),
    coaching_service: CoachingService = Depends(get_coaching_service)
):
    """Save accepted suggestions as action items due relative to now"""
    suggestions = [ActionSuggestion(**a.model_dump()) for a in request.actions]
    try:
        actions = await coaching_service.accept_actions(
            db,
            user_id=request.user_id,
            retrospective_id=request.retrospective_id,
            suggestions=suggestions,
            try_id=request.try_id,
        )
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Retrospective not found")
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to save your actions. Please try again later."
        )

    return [
        ActionResponse(
            id=action.id,
            text=action.text,
            is_completed=action.is_completed,
            due_date=action.due_date,
            order_index=action.order_index,
            retrospective_id=action.retrospective_id,
            try_id=action.try_id,
        )
        for action in actions
    ]
