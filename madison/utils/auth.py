"""Authentication dependencies."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from madison.utils.local_tokens import decode_local_token

security_scheme = HTTPBearer(
    scheme_name="Bearer",
    description="Bearer token authentication",
    auto_error=False,
)


@dataclass
class CurrentUser:
    user_id: str
    email: str
    organization_id: Optional[str] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_auth_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_scheme),
) -> str:
    """Extract the Bearer token from the Authorization header.

    Raises:
        HTTPException: If the header or token is missing
    """
    if not credentials:
        raise _unauthorized("Missing or invalid authorization header")
    token = credentials.credentials.strip()
    if not token:
        raise _unauthorized("Missing authentication token")
    return token


async def verify_token(token: str = Depends(get_auth_token)) -> CurrentUser:
    """Decode the token into the calling operator.

    Raises:
        HTTPException: If the token is invalid, expired or incomplete
    """
    try:
        payload = decode_local_token(token)
    except ValueError as exc:
        raise _unauthorized(str(exc)) from exc

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise _unauthorized("Invalid token payload")
    return CurrentUser(user_id=str(user_id), email=str(email), organization_id=payload.get("org"))


RequireAuth = Depends(verify_token)
