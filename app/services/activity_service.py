import logging
from typing import Protocol
from uuid import uuid4

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.activity import ActivityLog

logger = logging.getLogger(__name__)

MAX_PATH_LENGTH = 2048


class SessionIdProvider(Protocol):
    def get_or_create(self) -> str: ...


class CookieSessionIdProvider:
    """Anonymous session id carried in a cookie; minted on first use."""

    def __init__(self, request: Request, cookie_name: str | None = None) -> None:
        self._request = request
        self._cookie_name = cookie_name or settings.session_cookie_name
        self._session_id: str | None = None
        self.created = False

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def get_or_create(self) -> str:
        if self._session_id is None:
            existing = self._request.cookies.get(self._cookie_name)
            if existing:
                self._session_id = existing
            else:
                self._session_id = str(uuid4())
                self.created = True
        return self._session_id


async def track_activity(
    session: AsyncSession,
    session_ids: SessionIdProvider,
    activity_type: str,
    path: str | None = None,
    user_id: str | None = None,
) -> ActivityLog:
    entry = ActivityLog(
        session_id=session_ids.get_or_create(),
        user_id=user_id,
        activity_type=activity_type,
        path=path[:MAX_PATH_LENGTH] if path else None,
    )
    session.add(entry)
    await session.flush()
    logger.debug("Tracked %s for session %s", activity_type, entry.session_id)
    return entry
