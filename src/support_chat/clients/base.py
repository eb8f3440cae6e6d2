"""
Abstract base client interface for completion providers.

This module defines the standard interface that all provider clients must
implement. Clients raise ``ClientError`` subclasses; turning those into a
user-safe reply is the job of ``orchestration.completion``.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Any

from ..core.models import ModelRequest, ModelResponse

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """Base exception for client errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        model: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.provider = provider
        self.model = model
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [f"{self.provider}: {self.message}"]
        if self.model:
            parts.append(f"Model: {self.model}")
        return " | ".join(parts)


class AuthenticationError(ClientError):
    """Authentication failed with provider."""

    pass


class RateLimitError(ClientError):
    """Rate limit or quota exceeded."""

    def __init__(
        self, message: str, provider: str, retry_after: int | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, provider, **kwargs)
        self.retry_after = retry_after


class ModelNotFoundError(ClientError):
    """Requested model not found or unavailable."""

    pass


class RetryableError(ClientError):
    """Error that can be retried."""

    pass


class BaseClient(ABC):
    """
    Abstract base client for all completion providers.
    """

    def __init__(
        self, provider_name: str, api_key: str | None = None, **kwargs: Any
    ) -> None:
        self.provider_name = provider_name
        self.api_key = api_key

        self.timeout = kwargs.get("timeout", 30.0)
        self.max_retries = kwargs.get("max_retries", 2)
        self.base_delay = kwargs.get("base_delay", 1.0)
        self.max_delay = kwargs.get("max_delay", 20.0)

        logger.info(f"Initialized {self.provider_name} client")

    @abstractmethod
    async def complete(self, request: ModelRequest) -> ModelResponse:
        """
        Execute a completion.

        Args:
            request: Standardized model request

        Returns:
            Standardized model response

        Raises:
            ClientError: Provider-specific errors
        """
        pass

    async def retry_with_backoff(
        self, operation: Any, *args: Any, **kwargs: Any
    ) -> Any:
        """
        Execute operation with exponential backoff retry logic.

        Only ``RetryableError`` is retried; other client errors propagate
        immediately.
        """
        last_exception: RetryableError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                return await operation(*args, **kwargs)
            except RetryableError as e:
                last_exception = e
                if attempt == self.max_retries:
                    break

                delay = min(self.base_delay * (2**attempt), self.max_delay)
                actual_delay = delay + random.uniform(0, delay * 0.1)

                logger.warning(
                    f"Attempt {attempt + 1} failed for {self.provider_name}: {e}. "
                    f"Retrying in {actual_delay:.2f}s"
                )
                await asyncio.sleep(actual_delay)

        if last_exception is not None:
            raise last_exception
        raise ClientError(
            "Operation failed without retryable errors", self.provider_name
        )

    async def aclose(self) -> None:
        """Release provider resources."""
        pass

    async def __aenter__(self) -> "BaseClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider='{self.provider_name}')"
