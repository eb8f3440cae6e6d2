"""
Session identity management.

Resolution is resolve-or-create: a missing identifier starts a new session,
a known identifier is reused, and an unknown identifier is re-created as-is
so clients that kept an id whose server-side record was purged carry on.
Session ids are not credentials; accepting an unknown id grants nothing.
"""

import logging
from uuid import uuid4

from ..database.store import ConflictError, MessageLog
from ..utils.sanitization import SESSION_ID_PATTERN
from .types import SessionOutcome, SessionResolution

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """
    Generate a new session identifier.

    Format: UUID4 string, e.g. a1b2c3d4-e5f6-4890-abcd-ef1234567890
    """
    return str(uuid4())


def is_valid_session_id(session_id: str | None) -> bool:
    """Check that a session id is usable as a storage and cache key."""
    if not session_id:
        return False
    return bool(SESSION_ID_PATTERN.match(session_id))


class SessionRegistry:
    """Maps session identifiers to conversations in the message log."""

    def __init__(self, message_log: MessageLog):
        self.message_log = message_log

    async def resolve(self, session_id: str | None) -> SessionResolution:
        """
        Resolve an optional client-supplied session identifier.

        Returns:
            SessionResolution naming the conversation and the branch taken

        Raises:
            StorageError: If the message log fails
        """
        if not session_id:
            return await self.create_session()

        if await self.message_log.conversation_exists(session_id):
            logger.info(f"Continuing session {session_id}")
            return SessionResolution(session_id, SessionOutcome.REUSED)

        return await self.recreate_session(session_id)

    async def create_session(self) -> SessionResolution:
        """Start a new conversation with a generated identifier."""
        conversation = await self.message_log.create_conversation(generate_session_id())
        logger.info(f"Started new session {conversation.id}")
        return SessionResolution(conversation.id, SessionOutcome.CREATED)

    async def recreate_session(self, session_id: str) -> SessionResolution:
        """Create a conversation under exactly the supplied identifier."""
        try:
            await self.message_log.create_conversation(session_id)
        except ConflictError:
            # A concurrent request created it between our check and insert
            logger.info(f"Session {session_id} created concurrently, reusing it")
            return SessionResolution(session_id, SessionOutcome.REUSED)

        logger.info(f"Re-created missing session {session_id}")
        return SessionResolution(session_id, SessionOutcome.RECREATED)
