"""
Shared test fixtures and configuration for Support Chat tests.

Provides environment isolation, an in-memory stand-in for the Redis client,
a scripted completion client and a fully wired orchestrator backed by a
temporary SQLite database.
"""

import asyncio
import logging
import os
import warnings

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError

from support_chat.cache.session_cache import SessionCache
from support_chat.clients.base import BaseClient, RetryableError
from support_chat.config.settings import AppSettings, config_manager
from support_chat.core.models import ModelRequest, ModelResponse
from support_chat.database.store import MessageLog
from support_chat.orchestration.completion import CompletionService
from support_chat.orchestration.orchestrator import ConversationOrchestrator
from support_chat.utils.template_loader import clear_template_cache

warnings.filterwarnings("ignore", category=DeprecationWarning)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("support_chat").setLevel(logging.WARNING)


@pytest.fixture(autouse=True, scope="function")
def isolated_environment(tmp_path):
    """
    Isolate environment variables for each test to prevent test pollution.

    Settings-related variables are removed and the working directory moves to
    a temp path so no local .env file is picked up.
    """
    prefixes = (
        "GEMINI_",
        "DATABASE",
        "CACHE__",
        "CHAT__",
        "COMPLETION__",
        "SERVER__",
        "LOG_LEVEL",
        "ENVIRONMENT",
        "APP_",
        "SUPPORT_CHAT_",
    )
    original_env = {k: v for k, v in os.environ.items() if k.startswith(prefixes)}
    for key in original_env:
        del os.environ[key]

    original_cwd = os.getcwd()
    os.chdir(tmp_path)

    yield

    os.chdir(original_cwd)
    for key in [k for k in os.environ if k.startswith(prefixes)]:
        del os.environ[key]
    os.environ.update(original_env)


@pytest.fixture(autouse=True, scope="function")
def reset_global_state():
    """Reset cached configuration and templates between tests."""
    config_manager.reset()
    clear_template_cache()
    yield
    config_manager.reset()
    clear_template_cache()


class FakeRedis:
    """
    Minimal async stand-in for ``redis.asyncio.Redis``.

    Records every call in ``operations`` and can be switched into a failing
    mode that raises the same connection error redis-py raises.
    """

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.operations: list[tuple[str, str]] = []
        self.fail = False
        self.closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key):
        self.operations.append(("get", key))
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.operations.append(("set", key))
        self._check()
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        self.operations.append(("delete", key))
        self._check()
        existed = key in self.store
        self.store.pop(key, None)
        self.ttls.pop(key, None)
        return int(existed)

    async def ping(self):
        self._check()
        return True

    async def aclose(self):
        self.closed = True


class ScriptedClient(BaseClient):
    """Completion client returning canned replies or raising canned errors."""

    def __init__(self, reply: str = "Happy to help!", **kwargs):
        super().__init__("scripted", api_key="test", **kwargs)
        self.reply = reply
        self.error: Exception | None = None
        self.delay: float = 0.0
        self.requests: list[ModelRequest] = []
        self.on_complete = None
        self.closed = False

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if self.on_complete is not None:
            await self.on_complete(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ModelResponse(content=self.reply, model=request.model, provider="scripted")

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def test_settings(tmp_path) -> AppSettings:
    """Settings with a temporary SQLite database and fast timeouts."""
    return AppSettings(
        environment="test",
        log_level="ERROR",
        database={"url": f"sqlite:///{tmp_path / 'data' / 'test.db'}"},
        completion={"timeout": 0.5, "max_retries": 0},
    )


@pytest_asyncio.fixture
async def message_log(test_settings):
    log = MessageLog.from_settings(test_settings)
    await log.initialize()
    yield log
    await log.close()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def session_cache(fake_redis, test_settings) -> SessionCache:
    return SessionCache(
        fake_redis,
        ttl_seconds=test_settings.cache.ttl_seconds,
        key_prefix=test_settings.cache.key_prefix,
    )


@pytest.fixture
def scripted_client() -> ScriptedClient:
    return ScriptedClient()


@pytest.fixture
def completion_service(scripted_client, test_settings) -> CompletionService:
    return CompletionService(
        scripted_client,
        model=test_settings.completion.model,
        fallback_reply=test_settings.chat.fallback_reply,
        timeout=test_settings.completion.timeout,
        system_prompt="You are a test support agent.",
    )


@pytest.fixture
def orchestrator(message_log, session_cache, completion_service, test_settings):
    return ConversationOrchestrator(
        message_log=message_log,
        cache=session_cache,
        completion=completion_service,
        settings=test_settings,
    )


@pytest.fixture(autouse=True, scope="function")
def mock_asyncio_sleep(request):
    """
    Make asyncio.sleep return immediately so retry backoff adds no delay.

    Tests marked ``real_sleep`` keep the real implementation (timeouts).
    """
    if request.node.get_closest_marker("real_sleep"):
        yield None
        return

    from unittest.mock import AsyncMock, patch

    with patch("support_chat.clients.base.asyncio.sleep", new_callable=AsyncMock) as m:
        yield m


def pytest_configure(config):
    config.addinivalue_line("markers", "real_sleep: do not patch asyncio.sleep")
