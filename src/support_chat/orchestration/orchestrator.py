"""
ConversationOrchestrator: cache-aside history reads and the chat write path.

The orchestrator owns no connections itself. The message log, the history
cache and the completion service are process-scoped handles created by the
caller (see ``build_orchestrator``) and released through ``aclose``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, nullcontext

from ..cache.session_cache import SessionCache
from ..clients import create_client_from_settings
from ..config.settings import AppSettings, get_settings
from ..core.models import ContextTurn, HistoryPayload, Sender
from ..database.store import MessageLog, StorageError
from ..utils.sanitization import ValidationError, validate_message, validate_session_id
from .completion import CompletionService
from .session_manager import SessionRegistry
from .types import ChatResult, HistoryResult, SessionResolution

logger = logging.getLogger(__name__)


class KeyedLock:
    """Per-key asyncio locks; a key's lock is dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ConversationOrchestrator:
    """
    Coordinates the message log, history cache and completion service.

    Cache discipline is delete-on-write: the write path never stores history
    in the cache, it only invalidates, and the next read repopulates it.
    """

    def __init__(
        self,
        message_log: MessageLog,
        cache: SessionCache,
        completion: CompletionService,
        settings: AppSettings | None = None,
    ):
        self.message_log = message_log
        self.cache = cache
        self.completion = completion
        self.settings = settings or get_settings()
        self.registry = SessionRegistry(message_log)

        self._session_locks = KeyedLock()

        logger.debug("ConversationOrchestrator initialized")

    @property
    def context_window(self) -> int:
        return self.settings.chat.context_window

    async def get_history(self, session_id: str) -> HistoryResult:
        """
        Return a conversation's ordered history, cache first.

        Raises:
            ValidationError: If the session id is missing or malformed
            StorageError: If the message log cannot be read
        """
        session_id = validate_session_id(session_id)
        if session_id is None:
            raise ValidationError("Session id is required")

        lookup = await self.cache.get(session_id)
        if lookup.hit:
            logger.info(f"Cache hit for session {session_id}")
            return HistoryResult(messages=lookup.history.messages, source="cache")

        logger.info(f"Cache {lookup.status.value} for session {session_id}, reading store")
        messages = await self.message_log.list_messages(session_id)

        cached = False
        # Empty histories are not cached: the first message is likely imminent
        if messages:
            cached = await self.cache.put(
                session_id,
                HistoryPayload(messages=messages),
                ttl=self.settings.cache.ttl_seconds,
            )

        return HistoryResult(messages=messages, source="store", cached=cached)

    async def post_message(self, message: object, session_id: object = None) -> ChatResult:
        """
        Handle one customer message and return the assistant reply.

        Raises:
            ValidationError: Bad input; nothing was persisted
            StorageError: The user message or the reply could not be persisted
        """
        text = validate_message(message, self.settings.chat.max_message_length)
        requested_id = validate_session_id(session_id)

        resolution = await self.registry.resolve(requested_id)

        lock = (
            self._session_locks.hold(resolution.conversation_id)
            if self.settings.chat.serialize_session_writes
            else nullcontext()
        )
        async with lock:
            return await self._run_turn(text, resolution)

    async def _run_turn(self, text: str, resolution: SessionResolution) -> ChatResult:
        conversation_id = resolution.conversation_id
        invalidations: list[bool] = []

        # The user message must be durable before any reply is generated
        await self.message_log.append_message(conversation_id, Sender.USER, text)
        invalidations.append(await self.cache.invalidate(conversation_id))

        context = await self._load_context(conversation_id, text)
        generation = await self.completion.generate(context, text)
        if generation.degraded:
            logger.warning(
                f"Using fallback reply for session {conversation_id}: {generation.error}"
            )

        await self.message_log.append_message(
            conversation_id, Sender.ASSISTANT, generation.text
        )
        invalidations.append(await self.cache.invalidate(conversation_id))

        logger.info(
            f"Handled message for session {conversation_id} "
            f"(session={resolution.outcome.value}, reply={generation.status.value})"
        )
        return ChatResult(
            reply=generation.text,
            session_id=conversation_id,
            generation=generation,
            session=resolution,
            cache_invalidations=invalidations,
        )

    async def _load_context(self, conversation_id: str, text: str) -> list[ContextTurn]:
        """Most recent messages, oldest first, as model context."""
        try:
            recent = await self.message_log.list_messages(
                conversation_id, limit=self.context_window
            )
        except StorageError as e:
            # The user message is already stored; answer without history
            logger.warning(f"Context read failed for {conversation_id}: {e}")
            return [ContextTurn(role=Sender.USER, text=text)]
        return [ContextTurn.from_message(m) for m in recent]

    async def initialize(self) -> None:
        await self.message_log.initialize()

    async def aclose(self) -> None:
        """Release the message log, cache and completion client."""
        await self.completion.aclose()
        await self.cache.close()
        await self.message_log.close()


def build_orchestrator(settings: AppSettings | None = None) -> ConversationOrchestrator:
    """
    Create an orchestrator with handles built from settings.

    The caller owns the lifecycle: ``await orchestrator.initialize()`` before
    use and ``await orchestrator.aclose()`` at shutdown.
    """
    settings = settings or get_settings()

    client = None
    if settings.gemini_api_key:
        client = create_client_from_settings(settings)
    else:
        logger.warning("GEMINI_API_KEY not set, every reply will be the fallback text")

    return ConversationOrchestrator(
        message_log=MessageLog.from_settings(settings),
        cache=SessionCache.from_settings(settings),
        completion=CompletionService.from_settings(settings, client),
        settings=settings,
    )
