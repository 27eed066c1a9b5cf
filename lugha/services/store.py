"""
Conversation store: the repository interface every other component depends on.

Two backends implement it:
- MemoryStore (this module): dict-per-entity guarded by one asyncio.Lock
- SqlStore (lugha.services.database): SQLAlchemy async engine

Each operation is independently atomic. No caller holds store exclusivity
across its own awaits.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from lugha.schemas.chat import (
    DEFAULT_LANGUAGES,
    ApiKey,
    Conversation,
    Language,
    Message,
    NewApiKey,
    NewConversation,
    NewLanguage,
    NewMessage,
    NewUser,
    User,
)

logger = logging.getLogger("lugha.store")


class StoreError(Exception):
    """Base error for storage failures."""


class ConversationNotFoundError(StoreError):
    def __init__(self, conversation_id: int):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class DuplicateRecordError(StoreError):
    """A unique field (username, language code or name) is already taken."""


def utcnow() -> datetime:
    return datetime.now(UTC)


class ChatStore(ABC):
    """Repository interface for users, conversations, messages, API keys and languages."""

    @property
    def is_available(self) -> bool:
        return True

    async def connect(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    # Users
    @abstractmethod
    async def get_user(self, user_id: int) -> User | None: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def create_user(self, data: NewUser) -> User: ...

    @abstractmethod
    async def update_user(self, user_id: int, **changes: Any) -> User | None: ...

    # Conversations
    @abstractmethod
    async def get_conversation(self, conversation_id: int) -> Conversation | None: ...

    @abstractmethod
    async def get_conversations_by_user_id(self, user_id: int) -> list[Conversation]:
        """Owner's conversations, most recently updated first."""

    @abstractmethod
    async def create_conversation(self, data: NewConversation) -> Conversation: ...

    @abstractmethod
    async def update_conversation(self, conversation_id: int, **changes: Any) -> Conversation | None: ...

    @abstractmethod
    async def delete_conversation(self, conversation_id: int) -> bool:
        """Delete a conversation and its messages."""

    # Messages
    @abstractmethod
    async def get_message(self, message_id: int) -> Message | None: ...

    @abstractmethod
    async def get_messages_by_conversation_id(self, conversation_id: int) -> list[Message]:
        """Messages ordered ascending by creation time (ties by id)."""

    @abstractmethod
    async def create_message(self, data: NewMessage) -> Message:
        """
        Store a message and bump its conversation's updated_at.

        Raises:
            ConversationNotFoundError: the conversation does not exist.
        """

    # API keys
    @abstractmethod
    async def get_api_keys(self) -> list[ApiKey]: ...

    @abstractmethod
    async def get_api_key_by_provider(self, provider: str) -> ApiKey | None:
        """The active key for a provider, if any."""

    @abstractmethod
    async def create_api_key(self, data: NewApiKey) -> ApiKey: ...

    @abstractmethod
    async def update_api_key(self, api_key_id: int, **changes: Any) -> ApiKey | None: ...

    @abstractmethod
    async def delete_api_key(self, api_key_id: int) -> bool: ...

    # Languages
    @abstractmethod
    async def get_languages(self) -> list[Language]: ...

    @abstractmethod
    async def get_language_by_code(self, code: str) -> Language | None: ...

    @abstractmethod
    async def create_language(self, data: NewLanguage) -> Language: ...

    @abstractmethod
    async def update_language(self, language_id: int, **changes: Any) -> Language | None: ...


def _drop_unset(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in changes.items() if v is not None}


class MemoryStore(ChatStore):
    """
    In-process store backed by dicts.

    One asyncio.Lock serializes mutations and reads so that id allocation and
    the message/conversation pair update in create_message are atomic.
    Records are pydantic models and are replaced, never mutated in place.
    """

    def __init__(self, seed_languages: bool = True):
        self._lock = asyncio.Lock()
        self._users: dict[int, User] = {}
        self._conversations: dict[int, Conversation] = {}
        self._messages: dict[int, Message] = {}
        self._api_keys: dict[int, ApiKey] = {}
        self._languages: dict[int, Language] = {}
        self._next_id = {"users": 1, "conversations": 1, "messages": 1, "api_keys": 1, "languages": 1}

        if seed_languages:
            for language in DEFAULT_LANGUAGES:
                self._insert_language(language)

    def _allocate(self, entity: str) -> int:
        next_id = self._next_id[entity]
        self._next_id[entity] = next_id + 1
        return next_id

    def _insert_language(self, data: NewLanguage) -> Language:
        for existing in self._languages.values():
            if existing.code == data.code or existing.name == data.name:
                raise DuplicateRecordError(f"Language {data.code} already exists")
        language = Language(id=self._allocate("languages"), **data.model_dump())
        self._languages[language.id] = language
        return language

    # Users

    async def get_user(self, user_id: int) -> User | None:
        async with self._lock:
            return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        async with self._lock:
            return next((u for u in self._users.values() if u.username == username), None)

    async def create_user(self, data: NewUser) -> User:
        async with self._lock:
            if any(u.username == data.username for u in self._users.values()):
                raise DuplicateRecordError(f"Username {data.username} already exists")
            user = User(id=self._allocate("users"), created_at=utcnow(), **data.model_dump())
            self._users[user.id] = user
            return user

    async def update_user(self, user_id: int, **changes: Any) -> User | None:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = user.model_copy(update=_drop_unset(changes))
            self._users[user_id] = updated
            return updated

    # Conversations

    async def get_conversation(self, conversation_id: int) -> Conversation | None:
        async with self._lock:
            return self._conversations.get(conversation_id)

    async def get_conversations_by_user_id(self, user_id: int) -> list[Conversation]:
        async with self._lock:
            owned = [c for c in self._conversations.values() if c.user_id == user_id]
        return sorted(owned, key=lambda c: (c.updated_at, c.id), reverse=True)

    async def create_conversation(self, data: NewConversation) -> Conversation:
        async with self._lock:
            now = utcnow()
            conversation = Conversation(
                id=self._allocate("conversations"),
                created_at=now,
                updated_at=now,
                **data.model_dump(),
            )
            self._conversations[conversation.id] = conversation
            return conversation

    async def update_conversation(self, conversation_id: int, **changes: Any) -> Conversation | None:
        async with self._lock:
            return self._touch_conversation(conversation_id, **changes)

    def _touch_conversation(self, conversation_id: int, **changes: Any) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return None
        changes = _drop_unset(changes)
        changes.setdefault("updated_at", utcnow())
        updated = conversation.model_copy(update=changes)
        self._conversations[conversation_id] = updated
        return updated

    async def delete_conversation(self, conversation_id: int) -> bool:
        async with self._lock:
            if self._conversations.pop(conversation_id, None) is None:
                return False
            for message_id in [m.id for m in self._messages.values() if m.conversation_id == conversation_id]:
                del self._messages[message_id]
            return True

    # Messages

    async def get_message(self, message_id: int) -> Message | None:
        async with self._lock:
            return self._messages.get(message_id)

    async def get_messages_by_conversation_id(self, conversation_id: int) -> list[Message]:
        async with self._lock:
            messages = [m for m in self._messages.values() if m.conversation_id == conversation_id]
        return sorted(messages, key=lambda m: (m.created_at, m.id))

    async def create_message(self, data: NewMessage) -> Message:
        async with self._lock:
            if data.conversation_id not in self._conversations:
                raise ConversationNotFoundError(data.conversation_id)
            # Never earlier than the conversation's latest turn, even if the clock steps back
            now = utcnow()
            latest = max(
                (m.created_at for m in self._messages.values() if m.conversation_id == data.conversation_id),
                default=None,
            )
            if latest is not None and latest > now:
                now = latest
            message = Message(id=self._allocate("messages"), created_at=now, **data.model_dump())
            self._messages[message.id] = message
            self._touch_conversation(data.conversation_id, updated_at=now)
            return message

    # API keys

    async def get_api_keys(self) -> list[ApiKey]:
        async with self._lock:
            return list(self._api_keys.values())

    async def get_api_key_by_provider(self, provider: str) -> ApiKey | None:
        async with self._lock:
            return next((k for k in self._api_keys.values() if k.provider == provider and k.is_active), None)

    async def create_api_key(self, data: NewApiKey) -> ApiKey:
        async with self._lock:
            now = utcnow()
            api_key = ApiKey(id=self._allocate("api_keys"), created_at=now, updated_at=now, **data.model_dump())
            self._api_keys[api_key.id] = api_key
            return api_key

    async def update_api_key(self, api_key_id: int, **changes: Any) -> ApiKey | None:
        async with self._lock:
            api_key = self._api_keys.get(api_key_id)
            if api_key is None:
                return None
            updated = api_key.model_copy(update={**_drop_unset(changes), "updated_at": utcnow()})
            self._api_keys[api_key_id] = updated
            return updated

    async def delete_api_key(self, api_key_id: int) -> bool:
        async with self._lock:
            return self._api_keys.pop(api_key_id, None) is not None

    # Languages

    async def get_languages(self) -> list[Language]:
        async with self._lock:
            return sorted(self._languages.values(), key=lambda lang: lang.id)

    async def get_language_by_code(self, code: str) -> Language | None:
        async with self._lock:
            return next((lang for lang in self._languages.values() if lang.code == code), None)

    async def create_language(self, data: NewLanguage) -> Language:
        async with self._lock:
            return self._insert_language(data)

    async def update_language(self, language_id: int, **changes: Any) -> Language | None:
        async with self._lock:
            language = self._languages.get(language_id)
            if language is None:
                return None
            changes = _drop_unset(changes)
            code = changes.get("code")
            if code and any(lang.code == code and lang.id != language_id for lang in self._languages.values()):
                raise DuplicateRecordError(f"Language {code} already exists")
            name = changes.get("name")
            if name and any(lang.name == name and lang.id != language_id for lang in self._languages.values()):
                raise DuplicateRecordError(f"Language {name} already exists")
            updated = language.model_copy(update=changes)
            self._languages[language_id] = updated
            return updated
