"""
Tests for session resolution.
"""

from unittest.mock import AsyncMock, patch

import pytest

from support_chat.database.store import ConflictError
from support_chat.orchestration.session_manager import (
    SessionRegistry,
    generate_session_id,
    is_valid_session_id,
)
from support_chat.orchestration.types import SessionOutcome


class TestSessionIds:
    def test_generated_ids_are_unique_and_valid(self):
        ids = {generate_session_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(is_valid_session_id(i) for i in ids)

    @pytest.mark.parametrize(
        "session_id,valid",
        [
            ("a1b2c3d4-e5f6-4890-abcd-ef1234567890", True),
            ("customer:42.web_chat", True),
            ("x" * 128, True),
            ("x" * 129, False),
            ("", False),
            (None, False),
            ("has space", False),
            ("slash/inside", False),
            ("newline\n", False),
        ],
    )
    def test_is_valid_session_id(self, session_id, valid):
        assert is_valid_session_id(session_id) is valid


class TestSessionRegistry:
    @pytest.fixture
    def registry(self, message_log):
        return SessionRegistry(message_log)

    @pytest.mark.asyncio
    async def test_no_id_creates_session(self, registry, message_log):
        resolution = await registry.resolve(None)

        assert resolution.outcome is SessionOutcome.CREATED
        assert resolution.is_new
        assert await message_log.conversation_exists(resolution.conversation_id)

    @pytest.mark.asyncio
    async def test_known_id_reused(self, registry, message_log):
        await message_log.create_conversation("known")

        resolution = await registry.resolve("known")

        assert resolution.conversation_id == "known"
        assert resolution.outcome is SessionOutcome.REUSED
        assert not resolution.is_new

    @pytest.mark.asyncio
    async def test_unknown_id_recreated_verbatim(self, registry, message_log):
        resolution = await registry.resolve("purged-session-7")

        assert resolution.conversation_id == "purged-session-7"
        assert resolution.outcome is SessionOutcome.RECREATED
        assert await message_log.conversation_exists("purged-session-7")

    @pytest.mark.asyncio
    async def test_resolution_is_idempotent(self, registry):
        first = await registry.resolve("stable-id")
        second = await registry.resolve("stable-id")

        assert first.conversation_id == second.conversation_id == "stable-id"
        assert first.outcome is SessionOutcome.RECREATED
        assert second.outcome is SessionOutcome.REUSED

    @pytest.mark.asyncio
    async def test_concurrent_creation_treated_as_reuse(self, registry, message_log):
        with patch.object(
            message_log,
            "create_conversation",
            AsyncMock(side_effect=ConflictError("exists")),
        ):
            resolution = await registry.resolve("raced")

        assert resolution.conversation_id == "raced"
        assert resolution.outcome is SessionOutcome.REUSED
