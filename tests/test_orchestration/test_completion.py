"""
Tests for the guarded completion service.
"""

import asyncio

import pytest

from support_chat.clients.base import AuthenticationError, RateLimitError
from support_chat.config.settings import DEFAULT_FALLBACK_REPLY, AppSettings
from support_chat.core.models import ContextTurn, Sender
from support_chat.orchestration.completion import (
    CompletionService,
    filter_think_tags,
    format_transcript,
)
from support_chat.orchestration.types import OutcomeStatus


@pytest.fixture
def history():
    return [
        ContextTurn(role=Sender.USER, text="Hi"),
        ContextTurn(role=Sender.ASSISTANT, text="Hello! How can I help?"),
        ContextTurn(role=Sender.USER, text="What is your return policy?"),
    ]


class TestHelpers:
    def test_format_transcript(self, history):
        assert format_transcript(history) == (
            "Customer: Hi\n"
            "Support Bot: Hello! How can I help?\n"
            "Customer: What is your return policy?"
        )

    def test_format_empty_transcript(self):
        assert format_transcript([]) == ""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("<think>pondering</think>Answer", "Answer"),
            ("<THINKING>\nsteps\n</THINKING>\n\nAnswer", "Answer"),
            ("Plain answer", "Plain answer"),
            ("<reasoning>never closed", ""),
            ("", ""),
        ],
    )
    def test_filter_think_tags(self, raw, expected):
        assert filter_think_tags(raw) == expected


class TestBuildRequest:
    def test_prompt_layout(self, completion_service, history):
        request = completion_service.build_request(history, "What is your return policy?")

        assert request.system_prompt == "You are a test support agent."
        assert len(request.messages) == 1
        prompt = request.messages[0].content
        assert prompt.startswith("CONVERSATION HISTORY:\nCustomer: Hi\n")
        assert "CUSTOMER'S NEW MESSAGE:\nWhat is your return policy?" in prompt
        assert prompt.endswith("YOUR RESPONSE:")

    def test_empty_history_marker(self, completion_service):
        request = completion_service.build_request([], "Hello")
        assert "CONVERSATION HISTORY:\n(none)\n" in request.messages[0].content

    def test_system_prompt_loaded_from_template(self):
        service = CompletionService(None, model="gemini-2.5-flash")
        assert "Spur" in service.system_prompt


class TestGenerate:
    @pytest.mark.asyncio
    async def test_success(self, completion_service, scripted_client, history):
        scripted_client.reply = "<think>check policy</think>Returns are accepted within 30 days."

        outcome = await completion_service.generate(history, "Returns?")

        assert outcome.status is OutcomeStatus.OK
        assert outcome.text == "Returns are accepted within 30 days."
        assert outcome.error is None
        assert scripted_client.requests[0].model == "gemini-2.5-flash"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            RateLimitError("Quota exceeded", "gemini"),
            AuthenticationError("Bad key", "gemini"),
            RuntimeError("socket closed"),
        ],
    )
    async def test_errors_degrade_to_fallback(
        self, completion_service, scripted_client, history, error
    ):
        scripted_client.error = error

        outcome = await completion_service.generate(history, "Returns?")

        assert outcome.degraded
        assert outcome.text == DEFAULT_FALLBACK_REPLY
        assert outcome.error

    @pytest.mark.asyncio
    async def test_empty_reply_degrades(self, completion_service, scripted_client, history):
        scripted_client.reply = "<think>only thinking</think>"

        outcome = await completion_service.generate(history, "Returns?")

        assert outcome.degraded
        assert outcome.error == "empty completion"

    @pytest.mark.asyncio
    async def test_missing_client_degrades(self, history):
        service = CompletionService(
            None, model="gemini-2.5-flash", fallback_reply="Try again later."
        )

        outcome = await service.generate(history, "Returns?")

        assert outcome.degraded
        assert outcome.text == "Try again later."

    @pytest.mark.asyncio
    @pytest.mark.real_sleep
    async def test_timeout_degrades(self, completion_service, scripted_client, history):
        scripted_client.delay = 5.0

        outcome = await completion_service.generate(history, "Returns?")

        assert outcome.degraded
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, completion_service, scripted_client, history):
        scripted_client.error = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await completion_service.generate(history, "Returns?")

    @pytest.mark.asyncio
    async def test_generate_text(self, completion_service, history):
        assert await completion_service.generate_text(history, "Hi") == "Happy to help!"

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self, completion_service, scripted_client):
        await completion_service.aclose()
        assert scripted_client.closed is True


class TestFromSettings:
    def test_from_settings(self):
        settings = AppSettings(
            chat={"fallback_reply": "Sorry!"},
            completion={"timeout": 12.0, "temperature": 0.2, "max_output_tokens": 300},
        )

        service = CompletionService.from_settings(settings, None)

        assert service.fallback_reply == "Sorry!"
        assert service.timeout == 12.0
        assert service.temperature == 0.2
        assert service.max_tokens == 300
