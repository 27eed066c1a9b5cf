"""
Security utilities for API authentication.

Sessions are Bearer access tokens issued at register/login. Every protected
route resolves the token to a stored user, so role changes (promotion) take
effect without re-issuing tokens.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from lugha.api.deps import get_store
from lugha.services.jwt_service import jwt_service
from lugha.services.store import ChatStore


@dataclass
class UserContext:
    """
    The authenticated caller.

    Attributes:
        user_id: Stored user id
        username: Login name
        role: "user" or "admin"
    """

    user_id: int
    username: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract Bearer token from Authorization header."""
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def user_id_from_token(token: str | None) -> int | None:
    """User id carried by a valid access token, else None."""
    if not token:
        return None
    payload = jwt_service.verify_access_token(token)
    return int(payload["sub"]) if payload else None


async def get_current_user(
    authorization: str | None = Header(None),
    store: ChatStore = Depends(get_store),
) -> UserContext:
    """
    Resolve the Bearer token to the current user.

    Raises:
        HTTPException: 401 if the token is missing, invalid, expired, or its
            user no longer exists.
    """
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = user_id_from_token(token)
    user = await store.get_user(user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired access token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return UserContext(user_id=user.id, username=user.username, role=user.role)


async def require_admin_user(
    user_ctx: UserContext = Depends(get_current_user),
) -> UserContext:
    """
    Dependency that requires an admin user.

    Raises:
        HTTPException: 403 if not admin.
    """
    if not user_ctx.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user_ctx
