"""
Guarded completion calls.

``CompletionService.generate`` never raises for provider problems: timeouts,
quota errors, transport failures and malformed or empty output are logged and
replaced by the configured fallback reply. Cancellation of the surrounding
task still propagates.
"""

import asyncio
import logging
import re

from ..clients.base import BaseClient
from ..config.settings import DEFAULT_FALLBACK_REPLY, AppSettings
from ..core.models import ContextTurn, ModelRequest, PromptMessage, Sender
from ..utils.template_loader import load_system_template
from .types import GenerationOutcome, OutcomeStatus

logger = logging.getLogger(__name__)

SYSTEM_TEMPLATE = "support_agent"

_SPEAKER_LABELS = {Sender.USER: "Customer", Sender.ASSISTANT: "Support Bot"}

_THINK_TAG_PATTERN = re.compile(
    r"<(think|thinking|thought|reasoning)>.*?(</\1>|$)", flags=re.DOTALL | re.IGNORECASE
)


def filter_think_tags(text: str) -> str:
    """Remove reasoning tags some models emit ahead of the answer."""
    if not text:
        return ""
    filtered = _THINK_TAG_PATTERN.sub("", text)
    filtered = re.sub(r"\n\s*\n\s*\n+", "\n\n", filtered)
    return filtered.strip()


def format_transcript(history: list[ContextTurn]) -> str:
    """Render context turns as ``Speaker: text`` lines."""
    return "\n".join(f"{_SPEAKER_LABELS[turn.role]}: {turn.text}" for turn in history)


class CompletionService:
    """Builds support prompts and calls the completion client with a fallback."""

    def __init__(
        self,
        client: BaseClient | None,
        model: str,
        fallback_reply: str = DEFAULT_FALLBACK_REPLY,
        timeout: float = 30.0,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_prompt: str | None = None,
    ):
        """
        Args:
            client: Completion client; None means every call degrades
            model: Model identifier passed to the client
            fallback_reply: Text returned when generation fails
            timeout: Upper bound in seconds for one generation, retries included
            temperature: Optional sampling temperature
            max_tokens: Optional output token limit
            system_prompt: Persona text; loaded from the prompt template if None
        """
        self.client = client
        self.model = model
        self.fallback_reply = fallback_reply
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._system_prompt = system_prompt

    @classmethod
    def from_settings(
        cls, settings: AppSettings, client: BaseClient | None
    ) -> "CompletionService":
        return cls(
            client,
            model=settings.completion.model,
            fallback_reply=settings.chat.fallback_reply,
            timeout=settings.completion.timeout,
            temperature=settings.completion.temperature,
            max_tokens=settings.completion.max_output_tokens,
        )

    @property
    def system_prompt(self) -> str:
        if self._system_prompt is None:
            self._system_prompt = load_system_template(SYSTEM_TEMPLATE)
        return self._system_prompt

    def build_request(self, history: list[ContextTurn], new_message: str) -> ModelRequest:
        """Assemble the model request for a new customer message."""
        prompt = (
            "CONVERSATION HISTORY:\n"
            f"{format_transcript(history) or '(none)'}\n\n"
            "CUSTOMER'S NEW MESSAGE:\n"
            f"{new_message}\n\n"
            "YOUR RESPONSE:"
        )
        return ModelRequest(
            model=self.model,
            messages=[PromptMessage(role="user", content=prompt)],
            system_prompt=self.system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def generate(
        self, history: list[ContextTurn], new_message: str
    ) -> GenerationOutcome:
        """
        Generate a reply, degrading to the fallback text on any failure.

        Args:
            history: Context window, oldest to newest
            new_message: The customer's latest message

        Returns:
            GenerationOutcome with status OK or DEGRADED
        """
        if self.client is None:
            logger.error("No completion client configured, using fallback reply")
            return self._degraded("completion client not configured")

        try:
            request = self.build_request(history, new_message)
            response = await asyncio.wait_for(
                self.client.complete(request), timeout=self.timeout
            )
            text = filter_think_tags(response.content)
        except asyncio.TimeoutError:
            logger.error(f"Completion timed out after {self.timeout}s")
            return self._degraded(f"timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"Completion service error: {e}")
            return self._degraded(str(e) or type(e).__name__)

        if not text:
            logger.error("Completion returned no text after filtering")
            return self._degraded("empty completion")

        logger.debug(f"Generated reply ({len(text)} chars)")
        return GenerationOutcome(text=text, status=OutcomeStatus.OK)

    async def generate_text(self, history: list[ContextTurn], new_message: str) -> str:
        """Like ``generate`` but returns only the reply text."""
        return (await self.generate(history, new_message)).text

    def _degraded(self, error: str) -> GenerationOutcome:
        return GenerationOutcome(
            text=self.fallback_reply, status=OutcomeStatus.DEGRADED, error=error
        )

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
