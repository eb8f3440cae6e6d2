"""
Core Pydantic models for Support Chat.

These models are the boundary types shared by the message log, the history
cache, the orchestrator and the HTTP layer. Cached history and HTTP payloads
use the camelCase aliases (``createdAt``, ``sessionId``).
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Sender(str, Enum):
    """Author of a persisted chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A persisted, immutable message within one conversation."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., description="Store-assigned message identifier")
    sender: Sender = Field(..., description="Message author")
    text: str = Field(..., description="Message text")
    created_at: datetime = Field(..., alias="createdAt", description="Creation time")

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v):
        # SQLite drops tzinfo on round trip; timestamps are always stored as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class ContextTurn(BaseModel):
    """One turn of model context, derived from a ChatMessage."""
    model_config = ConfigDict(frozen=True)

    role: Sender = Field(..., description="Turn role (user or assistant)")
    text: str = Field(..., description="Turn text")

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ContextTurn":
        return cls(role=message.sender, text=message.text)


class ConversationRecord(BaseModel):
    """A conversation (chat session) known to the message log."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Conversation identifier")
    created_at: datetime = Field(..., alias="createdAt", description="Creation time")


class HistoryPayload(BaseModel):
    """Ordered conversation history, as cached and as returned over HTTP."""
    messages: list[ChatMessage] = Field(default_factory=list)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "HistoryPayload":
        return cls.model_validate_json(raw)


class PromptMessage(BaseModel):
    """Standardized message format for completion requests."""
    role: str = Field(..., description="Message role (user, assistant)")
    content: str = Field(..., description="Message content")

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        valid_roles = {"user", "assistant"}
        if v not in valid_roles:
            raise ValueError(f"Role must be one of {valid_roles}")
        return v

    @field_validator("content")
    @classmethod
    def validate_content(cls, v):
        if not v or not v.strip():
            raise ValueError("Message content cannot be empty")
        return v


class TokenUsage(BaseModel):
    """Token usage information reported by the provider."""
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class ModelRequest(BaseModel):
    """Standardized request format for completion providers."""
    model: str = Field(..., description="Model identifier")
    messages: list[PromptMessage] = Field(..., min_length=1, description="Prompt messages")
    system_prompt: str | None = Field(None, description="System instruction")
    max_tokens: int | None = Field(None, ge=1, le=32000, description="Maximum tokens to generate")
    temperature: float | None = Field(None, ge=0.0, le=2.0, description="Sampling temperature")


class ModelResponse(BaseModel):
    """Standardized completion response."""
    content: str = Field(..., description="Generated content")
    model: str = Field(..., description="Model used for generation")
    provider: str = Field(..., description="Model provider")
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str | None = Field(None, description="Provider finish reason")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
