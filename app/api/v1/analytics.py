"""
Analytics API endpoints.

Provides:
- GET /api/v1/analytics/dashboard: Dashboard summary (cached 5 min)
- GET /api/v1/analytics/user: Full user analytics (cached 10 min)

``page``/``limit`` paginate the embedded due-soon subtasks; ``limit`` is
capped at 50.
"""

import uuid

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_analytics_service
from app.core.models import DueSoonQuery
from app.middleware.auth_middleware import get_current_user_id
from app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def _due_soon_query(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
) -> DueSoonQuery:
    return DueSoonQuery(page=page, limit=limit)


@router.get("/dashboard", summary="Dashboard analytics")
async def dashboard(
    query: DueSoonQuery = Depends(_due_soon_query),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return await service.dashboard(user_id, query)


@router.get("/user", summary="Full user analytics")
async def user_analytics(
    query: DueSoonQuery = Depends(_due_soon_query),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return await service.user_analytics(user_id, query)
