"""
Conversation orchestration module.

This module provides the ConversationOrchestrator class and the session,
completion and result types it coordinates.
"""

from .completion import CompletionService
from .orchestrator import ConversationOrchestrator, build_orchestrator
from .session_manager import SessionRegistry, generate_session_id
from .types import (
    ChatResult,
    GenerationOutcome,
    HistoryResult,
    OutcomeStatus,
    SessionOutcome,
    SessionResolution,
)

__all__ = [
    "ConversationOrchestrator",
    "build_orchestrator",
    "CompletionService",
    "SessionRegistry",
    "generate_session_id",
    "ChatResult",
    "GenerationOutcome",
    "HistoryResult",
    "OutcomeStatus",
    "SessionOutcome",
    "SessionResolution",
]
