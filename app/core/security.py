from jose import JWTError, jwt

from app.core.config import settings


def decode_access_token(token: str) -> dict | None:
    """Claims of a Supabase access token, or None if it is invalid, expired or has no subject."""
    try:
        payload = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload
