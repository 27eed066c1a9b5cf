"""
Pydantic schemas for the chat domain.

Stored records (User, Conversation, Message, Language, ApiKey) and the HTTP
request/response bodies built on them. Field names are snake_case in Python
and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from lugha.core.config import settings

Role = Literal["user", "admin"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def to_wire(self) -> dict:
        """JSON-ready dict using wire (camelCase) names."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Stored records
# =============================================================================


class User(CamelModel):
    id: int
    username: str
    password_hash: str = Field("", exclude=True)
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    avatar: str = ""
    role: Role = "user"
    preferred_language: str = "english"
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Conversation(CamelModel):
    id: int
    user_id: int
    title: str
    language: str
    created_at: datetime
    updated_at: datetime


class Message(CamelModel):
    """
    A single chat turn. Immutable once stored.

    `is_user_message` distinguishes the human turn from the assistant reply.
    """

    id: int
    conversation_id: int
    content: str
    translation: str | None = None
    is_user_message: bool
    created_at: datetime
    file_url: str | None = None
    audio_url: str | None = None


class Language(CamelModel):
    id: int
    name: str
    code: str
    is_active: bool = True
    region: str | None = None


class ApiKey(CamelModel):
    id: int
    provider: str
    key_value: str
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Inserts (what the store receives)
# =============================================================================


class NewUser(CamelModel):
    username: str
    password_hash: str
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: Role = "user"
    preferred_language: str = "english"


class NewConversation(CamelModel):
    user_id: int
    title: str
    language: str


class NewMessage(CamelModel):
    conversation_id: int
    content: str
    translation: str | None = None
    is_user_message: bool = True
    file_url: str | None = None
    audio_url: str | None = None


class NewLanguage(CamelModel):
    name: str
    code: str
    is_active: bool = True
    region: str | None = None


class NewApiKey(CamelModel):
    provider: str
    key_value: str
    is_active: bool = True


DEFAULT_LANGUAGES: list[NewLanguage] = [
    NewLanguage(name="Maasai", code="mas", region="Kenya"),
    NewLanguage(name="Kiswahili", code="swa", region="Kenya"),
    NewLanguage(name="Kikuyu", code="kik", region="Kenya"),
    NewLanguage(name="Luo", code="luo", region="Kenya"),
    NewLanguage(name="Kamba", code="kam", region="Kenya"),
    NewLanguage(name="English", code="eng", region="Global"),
]


# =============================================================================
# HTTP bodies
# =============================================================================


class ConversationCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=settings.MAX_TITLE_LENGTH)
    language: str = Field(..., min_length=1, max_length=20)


class ConversationUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=settings.MAX_TITLE_LENGTH)
    language: str | None = Field(None, min_length=1, max_length=20)


class ConversationWithMessages(CamelModel):
    conversation: Conversation
    messages: list[Message]


class LanguageCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    is_active: bool = True
    region: str | None = None


class LanguageUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    code: str | None = Field(None, min_length=1, max_length=20)
    is_active: bool | None = None
    region: str | None = None


class ApiKeyUpsert(CamelModel):
    provider: str = Field(..., min_length=1, max_length=50)
    key_value: str = Field(..., min_length=1)
    is_active: bool | None = None

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return v.strip().lower()


class PromoteUserRequest(CamelModel):
    user_id: int = Field(..., gt=0)


class FileUpload(CamelModel):
    file_url: str
    filename: str
    size: int


class LanguageInsights(CamelModel):
    cultural_context: str
    key_phrases: list[str] = []
    pronunciation: str


class TranslateRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=settings.MAX_MESSAGE_LENGTH)
    source_language: str = Field(..., min_length=1, max_length=20)
    target_language: str = Field(..., min_length=1, max_length=20)


class TranslateResponse(CamelModel):
    translation: str


class InsightsRequest(CamelModel):
    text: str = Field(..., min_length=1, max_length=settings.MAX_MESSAGE_LENGTH)
    language: str = Field(..., min_length=1, max_length=20)
