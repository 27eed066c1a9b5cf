"""
Authentication API endpoints.

Registration, login and the current user's profile.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from lugha.api.deps import get_auth_service, get_store
from lugha.core.security import UserContext, get_current_user
from lugha.schemas.auth import LoginRequest, ProfileUpdate, RegisterRequest, TokenResponse
from lugha.schemas.chat import User
from lugha.services.auth_service import AuthService
from lugha.services.store import ChatStore

router = APIRouter()


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Create an account and return a session token.

    **Request Body:**
    ```json
    {"username": "wanjiru", "password": "secret1", "preferredLanguage": "kik"}
    ```

    Usernames listed in ADMIN_USERNAMES are created with the admin role.
    """
    return await auth_service.register(request)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Exchange username and password for a session token."""
    return await auth_service.login(request)


@router.get("/user", response_model=User)
async def get_user(
    user_ctx: UserContext = Depends(get_current_user),
    store: ChatStore = Depends(get_store),
) -> User:
    """Current user's profile. The password hash is never returned."""
    user = await store.get_user(user_ctx.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.patch("/user", response_model=User)
async def update_user(
    update: ProfileUpdate,
    user_ctx: UserContext = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    return await auth_service.update_profile(user_ctx.user_id, update)
