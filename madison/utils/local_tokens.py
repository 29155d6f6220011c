"""JWT helpers for operator sessions."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from madison.config.settings import settings


def create_local_token(user_id: str, email: str, organization_id: Optional[str] = None) -> str:
    """Create a signed access token for an operator.

    Args:
        user_id: User ID to encode in the token
        email: User email, used for super-admin checks
        organization_id: Default organization for the session, if known
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": now + timedelta(seconds=settings.LOCAL_AUTH_TOKEN_EXP_SECONDS),
        "iat": now,
    }
    if organization_id:
        payload["org"] = organization_id
    return jwt.encode(payload, settings.LOCAL_AUTH_SECRET, algorithm="HS256")


def decode_local_token(token: str) -> dict:
    """Decode and verify a token.

    Raises:
        ValueError: If the token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.LOCAL_AUTH_SECRET, algorithms=["HS256"])
    except JWTError as exc:
        raise ValueError(f"Invalid token: {exc}") from exc
