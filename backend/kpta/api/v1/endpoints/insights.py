"""Insight snapshot endpoint"""
from typing import Union
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from kpta.core.deps import get_insights_service
from kpta.core.exceptions import StorageError
from kpta.database import get_db
from kpta.models.api import InsightsRequest, InsightsResponse, NotEnoughDataResponse
from kpta.services.insights_service import InsightsService

router = APIRouter()


@router.post("", response_model=Union[InsightsResponse, NotEnoughDataResponse])
@router.post("/", response_model=Union[InsightsResponse, NotEnoughDataResponse], include_in_schema=False)
async def get_insights(
    request: InsightsRequest,
    db: AsyncSession = Depends(get_db),
    insights_service: InsightsService = Depends(get_insights_service)
):
    """Current insight snapshot for a user, served from cache while still valid"""
    try:
        return await insights_service.get_insights(db, request.user_id, request.limit)
    except StorageError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to access your retrospectives. Please try again later."
        )
