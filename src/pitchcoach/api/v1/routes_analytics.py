from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from src.pitchcoach.domain.models.analytics import SessionStats
from src.pitchcoach.domain.models.user import User
from src.pitchcoach.security import get_api_key, get_current_user
from src.pitchcoach.services.analytics.service import analytics_service
from src.pitchcoach.tenancy import tenant_dependency

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
    dependencies=[Depends(get_api_key), Depends(tenant_dependency)],
)


@router.get("/sessions", response_model=SessionStats)
async def session_stats(
    user_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
) -> SessionStats:
    # Stats are tenant-scoped by the repository; trainees only get their own.
    if not current_user.role.sees_whole_organization:
        user_id = str(current_user.id)
    return analytics_service.compute_session_stats(user_id=user_id)
