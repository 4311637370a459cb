from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.db import get_session
from app.core.security import decode_access_token
from app.services.activity_service import CookieSessionIdProvider
from app.services.payment_gateway import PaymentGateway, get_payment_gateway

__all__ = [
    "AuthUser",
    "get_current_user",
    "get_optional_user",
    "get_session",
    "get_session_id_provider",
    "payment_gateway",
]

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None = None
    full_name: str | None = None


def _user_from_claims(claims: dict) -> AuthUser:
    metadata = claims.get("user_metadata") or {}
    return AuthUser(
        id=str(claims["sub"]),
        email=claims.get("email"),
        full_name=metadata.get("full_name") or metadata.get("name"),
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthUser:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    claims = decode_access_token(credentials.credentials)
    if not claims:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _user_from_claims(claims)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> AuthUser | None:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    claims = decode_access_token(credentials.credentials)
    return _user_from_claims(claims) if claims else None


def payment_gateway() -> PaymentGateway | None:
    return get_payment_gateway()


def get_session_id_provider(request: Request) -> CookieSessionIdProvider:
    return CookieSessionIdProvider(request)
