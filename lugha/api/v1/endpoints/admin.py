"""
Admin API endpoints.

API-key rotation, language catalogue management and user promotion.
Every route requires the admin role (403 otherwise).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status

from lugha.api.deps import get_auth_service, get_store
from lugha.core.security import UserContext, require_admin_user
from lugha.schemas.chat import (
    ApiKey,
    ApiKeyUpsert,
    Language,
    LanguageCreate,
    LanguageUpdate,
    NewApiKey,
    NewLanguage,
    PromoteUserRequest,
    User,
)
from lugha.services.auth_service import AuthService
from lugha.services.store import ChatStore, DuplicateRecordError

logger = logging.getLogger("lugha.admin")

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_user)])


# =============================================================================
# API keys
# =============================================================================


@router.get("/api-keys", response_model=list[ApiKey])
async def list_api_keys(store: ChatStore = Depends(get_store)) -> list[ApiKey]:
    return await store.get_api_keys()


@router.post("/api-keys", response_model=ApiKey)
async def upsert_api_key(
    request: ApiKeyUpsert,
    response: Response,
    store: ChatStore = Depends(get_store),
    admin: UserContext = Depends(require_admin_user),
) -> ApiKey:
    """
    Create or replace the key for a provider.

    Returns 201 when a new key was created, 200 when an existing one was
    updated. Omitting isActive keeps the current flag (new keys are active).
    """
    existing = next((k for k in await store.get_api_keys() if k.provider == request.provider), None)
    if existing is not None:
        updated = await store.update_api_key(existing.id, key_value=request.key_value, is_active=request.is_active)
        if updated is not None:
            logger.info("Admin %s rotated the %s API key", admin.user_id, request.provider)
            return updated

    api_key = await store.create_api_key(
        NewApiKey(
            provider=request.provider,
            key_value=request.key_value,
            is_active=True if request.is_active is None else request.is_active,
        )
    )
    logger.info("Admin %s added a %s API key", admin.user_id, request.provider)
    response.status_code = status.HTTP_201_CREATED
    return api_key


@router.delete("/api-keys/{api_key_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api_key(
    api_key_id: int = Path(..., gt=0),
    store: ChatStore = Depends(get_store),
) -> Response:
    if not await store.delete_api_key(api_key_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Languages
# =============================================================================


@router.get("/languages", response_model=list[Language])
async def list_languages(store: ChatStore = Depends(get_store)) -> list[Language]:
    return await store.get_languages()


@router.post("/languages", response_model=Language, status_code=status.HTTP_201_CREATED)
async def create_language(
    request: LanguageCreate,
    store: ChatStore = Depends(get_store),
) -> Language:
    try:
        return await store.create_language(NewLanguage(**request.model_dump()))
    except DuplicateRecordError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Language already exists") from e


@router.put("/languages/{language_id}", response_model=Language)
async def update_language(
    request: LanguageUpdate,
    language_id: int = Path(..., gt=0),
    store: ChatStore = Depends(get_store),
) -> Language:
    try:
        language = await store.update_language(language_id, **request.model_dump(exclude_unset=True))
    except DuplicateRecordError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Language already exists") from e
    if language is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Language not found")
    return language


# =============================================================================
# Users
# =============================================================================


@router.post("/promote-user", response_model=User)
async def promote_user(
    request: PromoteUserRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """Grant the admin role to a user. The password hash is never returned."""
    return await auth_service.promote(request.user_id)
