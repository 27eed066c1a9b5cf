"""
Tests for the AI response service degrade contract.

Covers:
1. Deterministic fallbacks (greeting / translation / culture / default)
2. Upstream errors, timeouts and empty replies degrade to fallbacks
3. API key resolution from settings or the store
4. Translation and insights placeholders
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from lugha.core.config import settings
from lugha.schemas.chat import NewApiKey
from lugha.services.ai_service import (
    APOLOGY_RESPONSE,
    CULTURE_NOTES,
    DEFAULT_CULTURE_NOTE,
    DEFAULT_GREETING,
    DEFAULT_PHRASEBOOK,
    DEFAULT_RESPONSE,
    GREETINGS,
    INSIGHTS_UNAVAILABLE,
    PHRASEBOOKS,
    TRANSLATION_ERROR,
    AIResponseService,
    fallback_response,
    language_name,
)


def completion(text: str | None):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def fake_client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    client.close = AsyncMock()
    return client


class TestFallbacks:
    def test_greeting_per_language(self):
        assert fallback_response("Hello", "mas") == GREETINGS["mas"]
        assert fallback_response("hello there", "swa") == GREETINGS["swa"]
        assert fallback_response("Greetings", "luo") == DEFAULT_GREETING

    def test_translation_request(self):
        assert fallback_response("How do you say water?", "kik") == PHRASEBOOKS["kik"]
        assert fallback_response("Please translate", "kam") == DEFAULT_PHRASEBOOK

    def test_culture_question(self):
        assert fallback_response("Tell me about Maasai tradition", "mas") == CULTURE_NOTES["mas"]
        assert fallback_response("customs?", "luo") == DEFAULT_CULTURE_NOTE

    def test_default(self):
        assert fallback_response("What can you do?", "swa") == DEFAULT_RESPONSE

    def test_greeting_checked_first(self):
        # "hi" matches as a substring of "this"
        assert fallback_response("translate this", "mas") == GREETINGS["mas"]

    def test_language_name(self):
        assert language_name("mas") == "Maasai"
        assert language_name("eng") == "English"
        assert language_name("zzz") == "English"


class TestGenerateResponse:
    @pytest.mark.asyncio
    async def test_no_key_uses_fallback(self, store):
        service = AIResponseService(store)

        assert await service.generate_response("Hello", "mas") == GREETINGS["mas"]

    @pytest.mark.asyncio
    async def test_upstream_reply_returned(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        create = AsyncMock(return_value=completion("  Sopa! Kaa eeta?  "))
        service = AIResponseService(store, client_factory=lambda key: fake_client(create))

        assert await service.generate_response("Hello", "mas") == "Sopa! Kaa eeta?"
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == settings.AI_MODEL
        assert "Maasai" in kwargs["messages"][0]["content"]
        assert kwargs["messages"][1] == {"role": "user", "content": "Hello"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("language", ["mas", "swa", "kik", "luo", "kam", "eng"])
    @pytest.mark.parametrize("message", ["Hello", "translate water", "culture", "anything", ""])
    async def test_unreachable_upstream_never_raises(self, store, monkeypatch, language, message):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        create = AsyncMock(side_effect=ConnectionError("unreachable"))
        service = AIResponseService(store, client_factory=lambda key: fake_client(create))

        reply = await service.generate_response(message, language)

        assert reply
        assert reply == fallback_response(message, language)

    @pytest.mark.asyncio
    async def test_timeout_degrades(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")

        async def slow(**kwargs):
            await asyncio.sleep(5)

        service = AIResponseService(store, client_factory=lambda key: fake_client(AsyncMock(side_effect=slow)), timeout=0.01)

        assert await service.generate_response("Hello", "swa") == GREETINGS["swa"]

    @pytest.mark.asyncio
    async def test_empty_reply_degrades(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        create = AsyncMock(return_value=completion(None))
        service = AIResponseService(store, client_factory=lambda key: fake_client(create))

        assert await service.generate_response("Hi", "kik") == GREETINGS["kik"]

    @pytest.mark.asyncio
    async def test_stored_key_used_when_setting_missing(self, store):
        await store.create_api_key(NewApiKey(provider=settings.AI_PROVIDER, key_value="stored-key"))
        factory = MagicMock(return_value=fake_client(AsyncMock(return_value=completion("Habari!"))))
        service = AIResponseService(store, client_factory=factory)

        assert await service.generate_response("Hello", "swa") == "Habari!"
        factory.assert_called_once_with("stored-key")

    @pytest.mark.asyncio
    async def test_inactive_stored_key_ignored(self, store):
        await store.create_api_key(NewApiKey(provider=settings.AI_PROVIDER, key_value="old", is_active=False))
        factory = MagicMock()
        service = AIResponseService(store, client_factory=factory)

        assert await service.generate_response("Hello", "mas") == GREETINGS["mas"]
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_key_lookup_failure_returns_apology(self):
        store = MagicMock()
        store.get_api_key_by_provider = AsyncMock(side_effect=RuntimeError("db down"))
        service = AIResponseService(store)

        assert await service.generate_response("Hello", "mas") == APOLOGY_RESPONSE

    @pytest.mark.asyncio
    async def test_close_releases_clients(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        client = fake_client(AsyncMock(return_value=completion("ok")))
        service = AIResponseService(store, client_factory=lambda key: client)
        await service.generate_response("Hello", "mas")

        await service.close()

        client.close.assert_awaited_once()


class TestTranslateAndInsights:
    @pytest.mark.asyncio
    async def test_translate_without_key(self, store):
        service = AIResponseService(store)

        assert await service.translate("water", "eng", "swa") == TRANSLATION_ERROR

    @pytest.mark.asyncio
    async def test_translate_upstream_error(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        create = AsyncMock(side_effect=RuntimeError("quota"))
        service = AIResponseService(store, client_factory=lambda key: fake_client(create))

        assert await service.translate("water", "eng", "swa") == TRANSLATION_ERROR

    @pytest.mark.asyncio
    async def test_translate_success(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        create = AsyncMock(return_value=completion("maji"))
        service = AIResponseService(store, client_factory=lambda key: fake_client(create))

        assert await service.translate("water", "eng", "swa") == "maji"
        assert "from English to Kiswahili" in create.await_args.kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_insights_parse_fenced_json(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        raw = '```json\n{"culturalContext": "Greeting elders", "keyPhrases": ["Sopa"], "pronunciation": "SO-pa"}\n```'
        service = AIResponseService(store, client_factory=lambda key: fake_client(AsyncMock(return_value=completion(raw))))

        insights = await service.get_language_insights("Sopa", "mas")

        assert insights.cultural_context == "Greeting elders"
        assert insights.key_phrases == ["Sopa"]
        assert insights.pronunciation == "SO-pa"

    @pytest.mark.asyncio
    async def test_insights_unparseable(self, store, monkeypatch):
        monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-key")
        service = AIResponseService(store, client_factory=lambda key: fake_client(AsyncMock(return_value=completion("no json"))))

        assert await service.get_language_insights("Sopa", "mas") == INSIGHTS_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_insights_without_key(self, store):
        service = AIResponseService(store)

        assert await service.get_language_insights("Sopa", "mas") == INSIGHTS_UNAVAILABLE
