"""
JWT token service for session authentication.

Creates and validates the access tokens used as HTTP sessions and for
authenticated WebSocket connections.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from lugha.core.config import settings


class JWTService:
    """Service for creating and validating access tokens."""

    TOKEN_TYPE_ACCESS = "access"

    @staticmethod
    def create_access_token(
        user_id: int,
        username: str,
        role: str = "user",
        additional_claims: dict[str, Any] | None = None,
    ) -> str:
        """
        Create an access token.

        Args:
            user_id: Stored user id (encoded as the string subject).
            username: User's login name.
            role: "user" or "admin".
            additional_claims: Optional additional claims to include.

        Returns:
            Encoded JWT access token.
        """
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "username": username,
            "role": role,
            "type": JWTService.TOKEN_TYPE_ACCESS,
            "exp": now + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
            "iat": now,
        }
        if additional_claims:
            payload.update(additional_claims)

        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> dict[str, Any] | None:
        """
        Verify and decode a JWT token.

        Returns:
            Decoded payload if valid, None if invalid or expired.
        """
        try:
            return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        except JWTError:
            return None

    @staticmethod
    def verify_access_token(token: str) -> dict[str, Any] | None:
        """Decoded payload of a valid access token with an integer subject, else None."""
        payload = JWTService.verify_token(token)
        if not payload or payload.get("type") != JWTService.TOKEN_TYPE_ACCESS:
            return None
        try:
            int(payload.get("sub", ""))
        except (TypeError, ValueError):
            return None
        return payload

    @staticmethod
    def get_token_expiry_seconds() -> int:
        """Get the access token expiry time in seconds."""
        return settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60


# Global instance
jwt_service = JWTService()
