from fastapi import APIRouter

from kpta.api.v1.endpoints import insights, retrospectives, actions

api_router = APIRouter()

api_router.include_router(insights.router, prefix="/insights", tags=["insights"])
api_router.include_router(retrospectives.router, prefix="/retrospectives", tags=["retrospectives"])
api_router.include_router(actions.router, prefix="/actions", tags=["actions"])
