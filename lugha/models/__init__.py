"""Database models for chat persistence."""

from lugha.models.records import (
    ApiKeyRecord,
    Base,
    ConversationRecord,
    LanguageRecord,
    MessageRecord,
    UserRecord,
)

__all__ = ["ApiKeyRecord", "Base", "ConversationRecord", "LanguageRecord", "MessageRecord", "UserRecord"]
