from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import AuthUser, get_optional_user, get_session, get_session_id_provider
from app.api.schemas.booking import ActivityRequest, ActivityResponse
from app.core.config import settings
from app.services.activity_service import CookieSessionIdProvider, track_activity

router = APIRouter(prefix="/activity", tags=["activity"])


@router.post("", response_model=ActivityResponse)
async def log_activity(
    body: ActivityRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    session_ids: CookieSessionIdProvider = Depends(get_session_id_provider),
    current_user: AuthUser | None = Depends(get_optional_user),
) -> ActivityResponse:
    entry = await track_activity(
        session,
        session_ids,
        activity_type=body.activity_type,
        path=body.path,
        user_id=current_user.id if current_user else None,
    )
    if session_ids.created:
        response.set_cookie(
            session_ids.cookie_name,
            entry.session_id,
            max_age=settings.session_cookie_max_age_days * 24 * 60 * 60,
            httponly=True,
            samesite="lax",
            secure=settings.env == "production",
        )
    return ActivityResponse(session_id=entry.session_id)
