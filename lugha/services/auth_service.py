"""
Authentication service for user account management.

Handles:
- Registration with username/password (ADMIN_USERNAMES become admins)
- Login returning a session access token
- Profile updates and admin promotion
"""

import logging

import bcrypt
from fastapi import HTTPException, status

from lugha.core.config import settings
from lugha.schemas.auth import LoginRequest, ProfileUpdate, RegisterRequest, TokenResponse
from lugha.schemas.chat import NewUser, User
from lugha.services.jwt_service import jwt_service
from lugha.services.store import ChatStore, DuplicateRecordError

logger = logging.getLogger("lugha.auth")


class AuthService:
    """User authentication against the shared ChatStore."""

    def __init__(self, store: ChatStore):
        self.store = store

    # =========================================================================
    # Password Hashing
    # =========================================================================

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False

    # =========================================================================
    # Tokens
    # =========================================================================

    @staticmethod
    def issue_token(user: User) -> TokenResponse:
        return TokenResponse(
            access_token=jwt_service.create_access_token(user.id, user.username, role=user.role),
            expires_in=jwt_service.get_token_expiry_seconds(),
            user=user,
        )

    # =========================================================================
    # Registration / Login
    # =========================================================================

    async def register(self, request: RegisterRequest) -> TokenResponse:
        """
        Register a new user account.

        Raises:
            HTTPException: 400 if the username is taken.
        """
        if await self.store.get_user_by_username(request.username):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")

        role = "admin" if request.username in settings.ADMIN_USERNAMES else "user"
        try:
            user = await self.store.create_user(
                NewUser(
                    username=request.username,
                    password_hash=self.hash_password(request.password),
                    email=request.email,
                    first_name=request.first_name,
                    last_name=request.last_name,
                    preferred_language=request.preferred_language,
                    role=role,
                )
            )
        except DuplicateRecordError as e:
            # Lost a race with a concurrent registration
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists") from e

        logger.info("Registered user %s (id=%s, role=%s)", user.username, user.id, user.role)
        return self.issue_token(user)

    async def login(self, request: LoginRequest) -> TokenResponse:
        """
        Authenticate with username and password.

        Raises:
            HTTPException: 401 if credentials are invalid.
        """
        user = await self.store.get_user_by_username(request.username)
        if not user or not self.verify_password(request.password, user.password_hash):
            logger.info("Failed login for %s", request.username)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

        return self.issue_token(user)

    # =========================================================================
    # Profile
    # =========================================================================

    async def update_profile(self, user_id: int, update: ProfileUpdate) -> User:
        user = await self.store.update_user(user_id, **update.model_dump(exclude_unset=True))
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user

    async def promote(self, user_id: int) -> User:
        """Grant the admin role. Raises 404 for unknown users."""
        user = await self.store.update_user(user_id, role="admin")
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        logger.info("Promoted user %s to admin", user_id)
        return user
