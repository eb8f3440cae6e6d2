"""
MessageLog: durable, conversation-scoped, time-ordered message storage.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from sqlalchemy import delete, event, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..config.settings import AppSettings
from ..core.models import ChatMessage, ConversationRecord, Sender
from .encryption import EncryptionError, EncryptionManager
from .models import Base, Conversation, Message, utc_now

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The durable store is unreachable or failed an operation."""

    pass


class NotFoundError(StorageError):
    """Referenced conversation does not exist."""

    pass


class ConflictError(StorageError):
    """Conversation with the requested identifier already exists."""

    pass


def to_async_url(database_url: str) -> str:
    """Map a sync SQLAlchemy URL onto its async driver."""
    url = make_url(database_url)
    if url.drivername == "sqlite":
        url = url.set(drivername="sqlite+aiosqlite")
    return url.render_as_string(hide_password=False)


class MessageLog:
    """Append-only message storage keyed by conversation."""

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        encryption_manager: EncryptionManager | None = None,
    ):
        self.database_url = database_url
        self.encryption_manager = encryption_manager

        self._ensure_sqlite_directory(database_url)

        self.async_engine = create_async_engine(to_async_url(database_url), echo=echo)
        if self.async_engine.dialect.name == "sqlite":
            event.listen(
                self.async_engine.sync_engine, "connect", _enable_sqlite_foreign_keys
            )

        self.AsyncSessionLocal = async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "MessageLog":
        encryption_manager = None
        if settings.database.encryption_enabled:
            encryption_manager = EncryptionManager(settings.database_encryption_key)
        return cls(
            settings.database.url,
            echo=settings.database.echo,
            encryption_manager=encryption_manager,
        )

    def _ensure_sqlite_directory(self, database_url: str) -> None:
        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session, translating driver failures into StorageError."""
        try:
            async with self.AsyncSessionLocal() as session:
                yield session
        except StorageError:
            raise
        except (SQLAlchemyError, OSError, EncryptionError) as e:
            logger.error(f"Message log {operation} failed: {e}")
            raise StorageError(f"Message log {operation} failed: {e}") from e

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        try:
            async with self.async_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Message log initialization failed: {e}") from e
        logger.debug(f"Message log initialized at {make_url(self.database_url)!r}")

    async def create_conversation(
        self, conversation_id: str | None = None
    ) -> ConversationRecord:
        """
        Create a conversation, with the given identifier or a generated one.

        Raises:
            ConflictError: If the identifier is already taken
            StorageError: On any other store failure
        """
        conversation = Conversation(
            id=conversation_id or str(uuid4()), created_at=utc_now()
        )
        async with self._session("create_conversation") as session:
            session.add(conversation)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(
                    f"Conversation {conversation.id} already exists"
                ) from e

        return ConversationRecord(id=conversation.id, created_at=conversation.created_at)

    async def conversation_exists(self, conversation_id: str) -> bool:
        async with self._session("conversation_exists") as session:
            result = await session.execute(
                select(func.count())
                .select_from(Conversation)
                .where(Conversation.id == conversation_id)
            )
            return result.scalar_one() > 0

    async def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        async with self._session("get_conversation") as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is None:
                return None
            return ConversationRecord(
                id=conversation.id, created_at=conversation.created_at
            )

    async def append_message(
        self, conversation_id: str, sender: Sender | str, text: str
    ) -> ChatMessage:
        """
        Append a message to an existing conversation.

        Raises:
            NotFoundError: If the conversation does not exist
            StorageError: On any other store failure
        """
        sender = Sender(sender)
        content, key_id = text, None
        if self.encryption_manager is not None:
            content, key_id = self.encryption_manager.encrypt(text)

        async with self._session("append_message") as session:
            if await session.get(Conversation, conversation_id) is None:
                raise NotFoundError(f"Conversation {conversation_id} not found")

            message = Message(
                conversation_id=conversation_id,
                sender=sender.value,
                content=content,
                encryption_key_id=key_id,
                created_at=utc_now(),
            )
            session.add(message)
            await session.commit()

            return ChatMessage(
                id=message.id,
                sender=sender,
                text=text,
                created_at=message.created_at,
            )

    async def list_messages(
        self, conversation_id: str, limit: int | None = None
    ) -> list[ChatMessage]:
        """
        List a conversation's messages in ascending creation order.

        Args:
            conversation_id: Conversation to read
            limit: If given, only the most recent ``limit`` messages

        Returns:
            Messages ordered oldest to newest; empty for unknown conversations
        """
        async with self._session("list_messages") as session:
            if limit is None:
                stmt = (
                    select(Message)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(Message.created_at.asc(), Message.id.asc())
                )
                rows = list((await session.execute(stmt)).scalars().all())
            else:
                stmt = (
                    select(Message)
                    .where(Message.conversation_id == conversation_id)
                    .order_by(Message.created_at.desc(), Message.id.desc())
                    .limit(limit)
                )
                rows = list(reversed((await session.execute(stmt)).scalars().all()))

            return [self._to_chat_message(row) for row in rows]

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages. Returns False if unknown."""
        async with self._session("delete_conversation") as session:
            await session.execute(
                delete(Message).where(Message.conversation_id == conversation_id)
            )
            result = await session.execute(
                delete(Conversation).where(Conversation.id == conversation_id)
            )
            await session.commit()
            return result.rowcount > 0

    def _to_chat_message(self, row: Message) -> ChatMessage:
        text = row.content
        if row.encryption_key_id:
            if self.encryption_manager is None:
                raise EncryptionError(
                    f"Message {row.id} is encrypted but no encryption key is configured"
                )
            text = self.encryption_manager.decrypt(row.content, row.encryption_key_id)

        return ChatMessage(
            id=row.id,
            sender=Sender(row.sender),
            text=text,
            created_at=row.created_at,
        )

    async def close(self) -> None:
        """Close database connections."""
        await self.async_engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
