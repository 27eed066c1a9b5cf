"""
Async HTTP client for the Lugha Chat API.

Wraps an httpx.AsyncClient, keeps the session token after login/register
and returns the same pydantic records the server serves. Error responses
surface as httpx.HTTPStatusError.
"""

from pathlib import Path
from typing import Any

import httpx

from lugha.schemas.auth import TokenResponse
from lugha.schemas.chat import (
    ApiKey,
    Conversation,
    ConversationWithMessages,
    FileUpload,
    Language,
    LanguageInsights,
    User,
)


class LughaClient:
    """
    Typed client for the HTTP API.

    Args:
        base_url: Server root, e.g. "http://localhost:8000".
        api_prefix: Route prefix of the API.
        transport: Optional httpx transport (tests use ASGITransport).
    """

    def __init__(
        self,
        base_url: str,
        api_prefix: str = "/api",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token: str | None = None
        self.user: User | None = None
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}{api_prefix}",
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "LughaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self) -> dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._http.request(method, path, headers=self._headers(), **kwargs)
        response.raise_for_status()
        return response

    def _remember(self, response: httpx.Response) -> TokenResponse:
        token = TokenResponse.model_validate(response.json())
        self.access_token = token.access_token
        self.user = token.user
        return token

    # =========================================================================
    # Auth
    # =========================================================================

    async def register(self, username: str, password: str, **profile: Any) -> TokenResponse:
        """Register and keep the returned session token."""
        response = await self._request("POST", "/register", json={"username": username, "password": password, **profile})
        return self._remember(response)

    async def login(self, username: str, password: str) -> TokenResponse:
        """Login and keep the returned session token."""
        response = await self._request("POST", "/login", json={"username": username, "password": password})
        return self._remember(response)

    async def get_user(self) -> User:
        response = await self._request("GET", "/user")
        return User.model_validate(response.json())

    async def update_user(self, **changes: Any) -> User:
        response = await self._request("PATCH", "/user", json=changes)
        return User.model_validate(response.json())

    # =========================================================================
    # Conversations
    # =========================================================================

    async def list_conversations(self) -> list[Conversation]:
        response = await self._request("GET", "/conversations")
        return [Conversation.model_validate(item) for item in response.json()]

    async def create_conversation(self, title: str, language: str) -> Conversation:
        response = await self._request("POST", "/conversations", json={"title": title, "language": language})
        return Conversation.model_validate(response.json())

    async def get_conversation(self, conversation_id: int) -> ConversationWithMessages:
        response = await self._request("GET", f"/conversations/{conversation_id}")
        return ConversationWithMessages.model_validate(response.json())

    async def update_conversation(self, conversation_id: int, **changes: Any) -> Conversation:
        response = await self._request("PUT", f"/conversations/{conversation_id}", json=changes)
        return Conversation.model_validate(response.json())

    async def delete_conversation(self, conversation_id: int) -> None:
        await self._request("DELETE", f"/conversations/{conversation_id}")

    # =========================================================================
    # Languages and tools
    # =========================================================================

    async def list_languages(self) -> list[Language]:
        response = await self._request("GET", "/languages")
        return [Language.model_validate(item) for item in response.json()]

    async def translate(self, text: str, source_language: str, target_language: str) -> str:
        response = await self._request(
            "POST",
            "/translate",
            json={"text": text, "sourceLanguage": source_language, "targetLanguage": target_language},
        )
        return response.json()["translation"]

    async def language_insights(self, text: str, language: str) -> LanguageInsights:
        response = await self._request("POST", "/insights", json={"text": text, "language": language})
        return LanguageInsights.model_validate(response.json())

    async def upload(self, path: str | Path, content_type: str) -> FileUpload:
        path = Path(path)
        with path.open("rb") as f:
            response = await self._request("POST", "/upload", files={"file": (path.name, f, content_type)})
        return FileUpload.model_validate(response.json())

    # =========================================================================
    # Admin
    # =========================================================================

    async def list_api_keys(self) -> list[ApiKey]:
        response = await self._request("GET", "/admin/api-keys")
        return [ApiKey.model_validate(item) for item in response.json()]

    async def upsert_api_key(self, provider: str, key_value: str, is_active: bool | None = None) -> ApiKey:
        body: dict[str, Any] = {"provider": provider, "keyValue": key_value}
        if is_active is not None:
            body["isActive"] = is_active
        response = await self._request("POST", "/admin/api-keys", json=body)
        return ApiKey.model_validate(response.json())

    async def delete_api_key(self, api_key_id: int) -> None:
        await self._request("DELETE", f"/admin/api-keys/{api_key_id}")

    async def create_language(self, name: str, code: str, region: str | None = None, is_active: bool = True) -> Language:
        response = await self._request(
            "POST",
            "/admin/languages",
            json={"name": name, "code": code, "region": region, "isActive": is_active},
        )
        return Language.model_validate(response.json())

    async def update_language(self, language_id: int, **changes: Any) -> Language:
        response = await self._request("PUT", f"/admin/languages/{language_id}", json=changes)
        return Language.model_validate(response.json())

    async def promote_user(self, user_id: int) -> User:
        response = await self._request("POST", "/admin/promote-user", json={"userId": user_id})
        return User.model_validate(response.json())
