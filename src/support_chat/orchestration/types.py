"""
Type definitions for conversation orchestration.

Degradation is carried in these result types rather than in logs: a caller
can tell a real model reply from the fallback text, and a cache hit from a
store read, without inspecting side channels.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..core.models import ChatMessage


class OutcomeStatus(str, Enum):
    """How a value was produced."""

    OK = "ok"
    """Real value from the intended source"""

    DEGRADED = "degraded"
    """Fallback value substituted after a failure"""

    FAILED = "failed"
    """No usable value; the operation raised"""


class SessionOutcome(str, Enum):
    """Which branch of session resolution was taken."""

    CREATED = "created"
    REUSED = "reused"
    RECREATED = "recreated"


@dataclass(frozen=True)
class SessionResolution:
    """Result of resolving an optional client session identifier."""

    conversation_id: str
    """Identifier of the conversation the request will write to"""

    outcome: SessionOutcome
    """Branch taken: new session, existing session or self-healed session"""

    @property
    def is_new(self) -> bool:
        return self.outcome is not SessionOutcome.REUSED


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of a guarded completion call. ``text`` is never empty."""

    text: str
    """Reply text: model output, or the fallback reply"""

    status: OutcomeStatus
    """OK for a real reply, DEGRADED for the fallback"""

    error: str | None = None
    """Description of the absorbed failure when degraded"""

    @property
    def degraded(self) -> bool:
        return self.status is OutcomeStatus.DEGRADED


@dataclass(frozen=True)
class HistoryResult:
    """Ordered history for one conversation."""

    messages: list[ChatMessage]
    """Messages oldest to newest"""

    source: str
    """Where the history came from: "cache" or "store" """

    cached: bool = False
    """Whether this read repopulated the cache"""


@dataclass(frozen=True)
class ChatResult:
    """Result of handling one user message."""

    reply: str
    """Assistant reply text (real or fallback)"""

    session_id: str
    """Conversation identifier the client should keep using"""

    generation: GenerationOutcome
    """Completion outcome, including degradation status"""

    session: SessionResolution
    """How the session was resolved"""

    cache_invalidations: list[bool] = field(default_factory=list)
    """Success of each cache invalidation performed, in order"""
