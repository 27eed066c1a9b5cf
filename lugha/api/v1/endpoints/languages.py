"""
Language catalogue and language tools.

GET /languages is public. Translation and insights require a session and
always answer (the AI service degrades instead of failing).
"""

from fastapi import APIRouter, Depends

from lugha.api.deps import get_ai_service, get_store
from lugha.core.security import UserContext, get_current_user
from lugha.schemas.chat import (
    InsightsRequest,
    Language,
    LanguageInsights,
    TranslateRequest,
    TranslateResponse,
)
from lugha.services.ai_service import AIResponseService
from lugha.services.store import ChatStore

router = APIRouter()


@router.get("/languages", response_model=list[Language])
async def list_languages(store: ChatStore = Depends(get_store)) -> list[Language]:
    """All stored languages, active and inactive."""
    return await store.get_languages()


@router.post("/translate", response_model=TranslateResponse)
async def translate(
    request: TranslateRequest,
    user_ctx: UserContext = Depends(get_current_user),
    ai_service: AIResponseService = Depends(get_ai_service),
) -> TranslateResponse:
    translation = await ai_service.translate(request.text, request.source_language, request.target_language)
    return TranslateResponse(translation=translation)


@router.post("/insights", response_model=LanguageInsights)
async def language_insights(
    request: InsightsRequest,
    user_ctx: UserContext = Depends(get_current_user),
    ai_service: AIResponseService = Depends(get_ai_service),
) -> LanguageInsights:
    """Cultural context, key phrases and pronunciation for a text."""
    return await ai_service.get_language_insights(request.text, request.language)
