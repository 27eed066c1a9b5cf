"""
AI response service.

Generates assistant replies, translations and language insights through the
Gemini OpenAI-compatible endpoint. Every public method returns a usable value:
upstream failures, timeouts and missing credentials degrade to deterministic,
language-aware canned text instead of raising.
"""

import asyncio
import json
import logging
import re
from collections.abc import Callable

from openai import AsyncOpenAI

from lugha.core.config import settings
from lugha.schemas.chat import LanguageInsights
from lugha.services.store import ChatStore

logger = logging.getLogger("lugha.ai")

LANGUAGE_NAMES = {
    "mas": "Maasai",
    "swa": "Kiswahili",
    "kik": "Kikuyu",
    "luo": "Luo",
    "kam": "Kamba",
}

APOLOGY_RESPONSE = "I'm sorry, I'm having trouble processing your request right now. Please try again later."
TRANSLATION_ERROR = "[Translation error: Could not translate text. Please try again later.]"
INSIGHTS_UNAVAILABLE = LanguageInsights(
    cultural_context="Cultural context information not available at the moment.",
    key_phrases=[],
    pronunciation="Pronunciation guide not available at the moment.",
)

GREETING_WORDS = ("hello", "hi", "greetings")
TRANSLATION_WORDS = ("translate", "how do you say")
CULTURE_WORDS = ("culture", "tradition", "custom")

GREETINGS = {
    "mas": "Sopa! (Hello in Maasai) How can I assist you today with Maasai language?",
    "swa": "Habari! (Hello in Kiswahili) How can I assist you today with Kiswahili language?",
    "kik": "Nĩatia! (Hello in Kikuyu) How can I assist you today with Kikuyu language?",
}
DEFAULT_GREETING = "Hello! How can I assist you today?"

PHRASEBOOKS = {
    "mas": (
        "In Maasai, common phrases include:\n"
        "- Sopa - Hello\n- Kaa eeta? - How are you?\n- Epa - Good\n- Ashe - Thank you\n\n"
        "Would you like to learn more specific Maasai phrases?"
    ),
    "swa": (
        "In Kiswahili, common phrases include:\n"
        "- Habari - Hello\n- Habari yako? - How are you?\n- Nzuri - Good\n- Asante - Thank you\n\n"
        "Would you like to learn more specific Kiswahili phrases?"
    ),
    "kik": (
        "In Kikuyu, common phrases include:\n"
        "- Nĩatia - Hello\n- Ūhoro waku? - How are you?\n- Nĩ mwega - Good\n- Nĩ ngatho - Thank you\n\n"
        "Would you like to learn more specific Kikuyu phrases?"
    ),
}
DEFAULT_PHRASEBOOK = (
    "I can help you translate between various Kenyan languages. "
    "Please specify which language you'd like to translate to or from."
)

CULTURE_NOTES = {
    "mas": (
        "Maasai culture is rich in traditions. The Maasai are known for their distinctive customs, dress, "
        "and social organization. They are semi-nomadic people located primarily in Kenya and Tanzania. "
        "Their traditional lifestyle centers around their cattle, which are their primary source of food "
        "and measure of wealth. Would you like to know more about specific aspects of Maasai culture?"
    ),
    "swa": (
        "Swahili culture blends African, Arab, Persian, and Indian influences. It developed along the East "
        "African coast, with traditions centered around community, respect for elders, and hospitality. "
        "Would you like to know more about specific aspects of Swahili culture?"
    ),
}
DEFAULT_CULTURE_NOTE = (
    "Kenya has over 40 ethnic groups, each with its own unique culture and traditions. "
    "Is there a specific Kenyan culture you'd like to learn more about?"
)

DEFAULT_RESPONSE = (
    "I'm here to help you learn about Kenyan languages, particularly Maasai, Kiswahili, and others. "
    "You can ask me to translate phrases, teach you about cultural contexts, or provide language "
    "learning resources. What would you like to know?"
)

_CODE_FENCE = re.compile(r"```(?:json)?")


def language_name(code: str) -> str:
    """Display name for a language code; unknown codes are answered in English."""
    return LANGUAGE_NAMES.get(code, "English")


def fallback_response(message: str, language: str) -> str:
    """
    Canned reply used when the upstream model is unavailable.

    Detection is plain substring matching on the lowercased message, checked in
    order: greeting, translation request, culture question, then a default.
    """
    text = message.lower()

    if any(word in text for word in GREETING_WORDS):
        return GREETINGS.get(language, DEFAULT_GREETING)
    if any(word in text for word in TRANSLATION_WORDS):
        return PHRASEBOOKS.get(language, DEFAULT_PHRASEBOOK)
    if any(word in text for word in CULTURE_WORDS):
        return CULTURE_NOTES.get(language, DEFAULT_CULTURE_NOTE)
    return DEFAULT_RESPONSE


def _response_prompt(language: str) -> str:
    name = language_name(language)
    if name == "English":
        reply_in = "English"
    else:
        reply_in = f"English, followed by a translation in {name}"
    return (
        f"You are a culturally aware and helpful assistant that specializes in {name} language and culture. "
        f"Respond in {reply_in}. If the user writes in {name} rather than English, first translate their "
        "message to English, then answer in both languages. Keep the answer culturally appropriate and "
        "educational, teaching the language naturally. Mark key terms or phrases with asterisks "
        "(*like this*)."
    )


class AIResponseService:
    """
    Language-aware text generation with a degrade contract.

    The API key comes from GEMINI_API_KEY, or else from the store's active
    ApiKey for AI_PROVIDER, so admins can rotate it at runtime.
    """

    def __init__(
        self,
        store: ChatStore,
        client_factory: Callable[[str], AsyncOpenAI] | None = None,
        timeout: float | None = None,
    ):
        self.store = store
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT_SECONDS
        self._client_factory = client_factory or self._default_client
        self._clients: dict[str, AsyncOpenAI] = {}

    def _default_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=settings.AI_BASE_URL, timeout=self.timeout, max_retries=1)

    def _client(self, api_key: str) -> AsyncOpenAI:
        if api_key not in self._clients:
            self._clients[api_key] = self._client_factory(api_key)
        return self._clients[api_key]

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()

    async def _resolve_api_key(self) -> str | None:
        if settings.GEMINI_API_KEY:
            return settings.GEMINI_API_KEY
        api_key = await self.store.get_api_key_by_provider(settings.AI_PROVIDER)
        return api_key.key_value if api_key else None

    async def _complete(self, api_key: str, system_prompt: str, user_prompt: str) -> str:
        client = self._client(api_key)
        response = await asyncio.wait_for(
            client.chat.completions.create(
                model=settings.AI_MODEL,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            ),
            timeout=self.timeout,
        )
        return (response.choices[0].message.content or "").strip()

    async def generate_response(self, message: str, language: str) -> str:
        """
        Reply to a user message in the context of a language.

        Returns:
            A non-empty string. Never raises.
        """
        try:
            api_key = await self._resolve_api_key()
        except Exception:
            logger.exception("Error generating AI response")
            return APOLOGY_RESPONSE

        if not api_key:
            logger.warning("No API key found for %s. Using fallback responses.", settings.AI_PROVIDER)
            return fallback_response(message, language)

        try:
            reply = await self._complete(api_key, _response_prompt(language), message)
        except Exception as e:
            logger.error("AI upstream error (%s): %s", type(e).__name__, e)
            return fallback_response(message, language)

        if not reply:
            logger.warning("AI upstream returned an empty reply, using fallback")
            return fallback_response(message, language)
        return reply

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        """Translate text between two language codes; degrades to a fixed placeholder."""
        source, target = language_name(source_language), language_name(target_language)
        prompt = (
            f"Translate the following text from {source} to {target}, preserving cultural context "
            "and nuance. Provide only the translated text without quotes or explanations."
        )
        try:
            api_key = await self._resolve_api_key()
            if not api_key:
                logger.warning("No API key found for %s. Translation unavailable.", settings.AI_PROVIDER)
                return TRANSLATION_ERROR
            translation = await self._complete(api_key, prompt, text)
        except Exception as e:
            logger.error("Translation failed (%s): %s", type(e).__name__, e)
            return TRANSLATION_ERROR
        return translation or TRANSLATION_ERROR

    async def get_language_insights(self, text: str, language: str) -> LanguageInsights:
        """Cultural context, key phrases and a pronunciation guide for a text."""
        prompt = (
            f"Analyze the following text in {language_name(language)} and reply with JSON only, shaped as "
            '{"culturalContext": str, "keyPhrases": [str], "pronunciation": str}.'
        )
        try:
            api_key = await self._resolve_api_key()
            if not api_key:
                return INSIGHTS_UNAVAILABLE
            raw = await self._complete(api_key, prompt, text)
        except Exception as e:
            logger.error("Language insights failed (%s): %s", type(e).__name__, e)
            return INSIGHTS_UNAVAILABLE

        try:
            data = json.loads(_CODE_FENCE.sub("", raw).strip())
        except ValueError:
            logger.warning("Could not parse language insights response")
            return INSIGHTS_UNAVAILABLE
        if not isinstance(data, dict):
            return INSIGHTS_UNAVAILABLE

        key_phrases = data.get("keyPhrases")
        return LanguageInsights(
            cultural_context=str(data.get("culturalContext") or "Not available"),
            key_phrases=[str(p) for p in key_phrases] if isinstance(key_phrases, list) else [],
            pronunciation=str(data.get("pronunciation") or "Not available"),
        )
