"""
SQL-backed conversation store.

Durable ChatStore implementation on an SQLAlchemy async engine (PostgreSQL via
asyncpg, SQLite via aiosqlite). Used when DATABASE_URL is configured.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from lugha.core.config import settings
from lugha.models import ApiKeyRecord, Base, ConversationRecord, LanguageRecord, MessageRecord, UserRecord
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
from lugha.services.store import (
    ChatStore,
    ConversationNotFoundError,
    DuplicateRecordError,
    MemoryStore,
    StoreError,
    utcnow,
)

logger = logging.getLogger("lugha.database")


class SqlStore(ChatStore):
    """
    Async SQL store.

    Features:
    - Async connection pooling
    - Automatic table creation and language seeding
    - One session and transaction per operation
    - SQLAlchemy errors surface as StoreError
    """

    def __init__(self, url: str | None = None):
        self.url = url or settings.DATABASE_URL
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None
        self._connected = False

    @property
    def is_available(self) -> bool:
        """Check if database is configured and connected."""
        return self._connected and self.engine is not None

    async def connect(self) -> bool:
        """
        Establish connection, create tables and seed default languages.

        Returns:
            True if connection successful, False otherwise.
        """
        if not self.url:
            logger.warning("DATABASE_URL not configured - SQL store disabled")
            return False

        engine_kwargs: dict[str, Any] = {"echo": False}
        if not self.url.startswith("sqlite"):
            engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

        try:
            self.engine = create_async_engine(self.url, **engine_kwargs)
            self.session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._connected = True
            await self._seed_languages()
            logger.info("Connected to database: %s", settings.sanitize_url(self.url))
            return True
        except Exception as e:
            logger.error("Failed to connect to database: %s", e)
            if self.engine is not None:
                await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            self._connected = False
            return False

    async def close(self) -> None:
        """Close database connection pool."""
        if self.engine:
            await self.engine.dispose()
            self._connected = False
            logger.info("Database connection closed")

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        if not self.is_available or self.session_factory is None:
            raise StoreError("Database not connected")
        try:
            async with self.session_factory() as session:
                yield session
        except IntegrityError as e:
            logger.warning("Database constraint violation during %s: %s", operation, e.orig)
            raise DuplicateRecordError(f"{operation} violates a unique constraint") from e
        except SQLAlchemyError as e:
            logger.error("Database %s error: %s", operation, e)
            raise StoreError(f"Database {operation} failed") from e

    async def _seed_languages(self) -> None:
        async with self._session("seed languages") as session:
            count = await session.scalar(select(func.count()).select_from(LanguageRecord))
            if count:
                return
            session.add_all(LanguageRecord(**language.model_dump()) for language in DEFAULT_LANGUAGES)
            await session.commit()
            logger.info("Seeded %d default languages", len(DEFAULT_LANGUAGES))

    async def _update(self, operation: str, record_type: type, record_id: int, changes: dict[str, Any]):
        async with self._session(operation) as session:
            record = await session.get(record_type, record_id)
            if record is None:
                return None
            for field, value in changes.items():
                if value is not None:
                    setattr(record, field, value)
            await session.commit()
            await session.refresh(record)
            return record

    # Users

    async def get_user(self, user_id: int) -> User | None:
        async with self._session("get user") as session:
            record = await session.get(UserRecord, user_id)
            return User.model_validate(record) if record else None

    async def get_user_by_username(self, username: str) -> User | None:
        async with self._session("get user") as session:
            record = await session.scalar(select(UserRecord).where(UserRecord.username == username))
            return User.model_validate(record) if record else None

    async def create_user(self, data: NewUser) -> User:
        async with self._session("create user") as session:
            record = UserRecord(**data.model_dump(), created_at=utcnow())
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return User.model_validate(record)

    async def update_user(self, user_id: int, **changes: Any) -> User | None:
        record = await self._update("update user", UserRecord, user_id, changes)
        return User.model_validate(record) if record else None

    # Conversations

    async def get_conversation(self, conversation_id: int) -> Conversation | None:
        async with self._session("get conversation") as session:
            record = await session.get(ConversationRecord, conversation_id)
            return Conversation.model_validate(record) if record else None

    async def get_conversations_by_user_id(self, user_id: int) -> list[Conversation]:
        async with self._session("list conversations") as session:
            result = await session.scalars(
                select(ConversationRecord)
                .where(ConversationRecord.user_id == user_id)
                .order_by(ConversationRecord.updated_at.desc(), ConversationRecord.id.desc())
            )
            return [Conversation.model_validate(record) for record in result]

    async def create_conversation(self, data: NewConversation) -> Conversation:
        async with self._session("create conversation") as session:
            now = utcnow()
            record = ConversationRecord(**data.model_dump(), created_at=now, updated_at=now)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Conversation.model_validate(record)

    async def update_conversation(self, conversation_id: int, **changes: Any) -> Conversation | None:
        changes.setdefault("updated_at", utcnow())
        record = await self._update("update conversation", ConversationRecord, conversation_id, changes)
        return Conversation.model_validate(record) if record else None

    async def delete_conversation(self, conversation_id: int) -> bool:
        async with self._session("delete conversation") as session:
            record = await session.get(ConversationRecord, conversation_id)
            if record is None:
                return False
            await session.execute(delete(MessageRecord).where(MessageRecord.conversation_id == conversation_id))
            await session.delete(record)
            await session.commit()
            return True

    # Messages

    async def get_message(self, message_id: int) -> Message | None:
        async with self._session("get message") as session:
            record = await session.get(MessageRecord, message_id)
            return Message.model_validate(record) if record else None

    async def get_messages_by_conversation_id(self, conversation_id: int) -> list[Message]:
        async with self._session("list messages") as session:
            result = await session.scalars(
                select(MessageRecord)
                .where(MessageRecord.conversation_id == conversation_id)
                .order_by(MessageRecord.created_at, MessageRecord.id)
            )
            return [Message.model_validate(record) for record in result]

    async def create_message(self, data: NewMessage) -> Message:
        async with self._session("create message") as session:
            conversation = await session.get(ConversationRecord, data.conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(data.conversation_id)

            now = utcnow()
            latest = await session.scalar(
                select(MessageRecord.created_at)
                .where(MessageRecord.conversation_id == data.conversation_id)
                .order_by(MessageRecord.created_at.desc())
                .limit(1)
            )
            if latest is not None and latest > now:
                now = latest
            record = MessageRecord(**data.model_dump(), created_at=now)
            session.add(record)
            conversation.updated_at = now
            await session.commit()
            await session.refresh(record)
            return Message.model_validate(record)

    # API keys

    async def get_api_keys(self) -> list[ApiKey]:
        async with self._session("list api keys") as session:
            result = await session.scalars(select(ApiKeyRecord).order_by(ApiKeyRecord.id))
            return [ApiKey.model_validate(record) for record in result]

    async def get_api_key_by_provider(self, provider: str) -> ApiKey | None:
        async with self._session("get api key") as session:
            record = await session.scalar(
                select(ApiKeyRecord)
                .where(ApiKeyRecord.provider == provider, ApiKeyRecord.is_active.is_(True))
                .order_by(ApiKeyRecord.id)
                .limit(1)
            )
            return ApiKey.model_validate(record) if record else None

    async def create_api_key(self, data: NewApiKey) -> ApiKey:
        async with self._session("create api key") as session:
            now = utcnow()
            record = ApiKeyRecord(**data.model_dump(), created_at=now, updated_at=now)
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return ApiKey.model_validate(record)

    async def update_api_key(self, api_key_id: int, **changes: Any) -> ApiKey | None:
        changes["updated_at"] = utcnow()
        record = await self._update("update api key", ApiKeyRecord, api_key_id, changes)
        return ApiKey.model_validate(record) if record else None

    async def delete_api_key(self, api_key_id: int) -> bool:
        async with self._session("delete api key") as session:
            record = await session.get(ApiKeyRecord, api_key_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
            return True

    # Languages

    async def get_languages(self) -> list[Language]:
        async with self._session("list languages") as session:
            result = await session.scalars(select(LanguageRecord).order_by(LanguageRecord.id))
            return [Language.model_validate(record) for record in result]

    async def get_language_by_code(self, code: str) -> Language | None:
        async with self._session("get language") as session:
            record = await session.scalar(select(LanguageRecord).where(LanguageRecord.code == code))
            return Language.model_validate(record) if record else None

    async def create_language(self, data: NewLanguage) -> Language:
        async with self._session("create language") as session:
            record = LanguageRecord(**data.model_dump())
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return Language.model_validate(record)

    async def update_language(self, language_id: int, **changes: Any) -> Language | None:
        record = await self._update("update language", LanguageRecord, language_id, changes)
        return Language.model_validate(record) if record else None


def build_store() -> ChatStore:
    """SqlStore when DATABASE_URL is configured, otherwise the in-memory store."""
    if settings.DATABASE_URL:
        return SqlStore(settings.DATABASE_URL)

    logger.info("DATABASE_URL not configured - using in-memory store")
    return MemoryStore()
