"""
Completion provider clients.

This package provides a unified interface to completion providers through
the BaseClient abstraction.
"""

from ..config.settings import AppSettings
from .base import (
    AuthenticationError,
    BaseClient,
    ClientError,
    ModelNotFoundError,
    RateLimitError,
    RetryableError,
)
from .gemini import GeminiClient

__all__ = [
    "BaseClient",
    "ClientError",
    "AuthenticationError",
    "RateLimitError",
    "ModelNotFoundError",
    "RetryableError",
    "GeminiClient",
    "create_client",
    "create_client_from_settings",
    "get_supported_providers",
]


def create_client(provider: str, **kwargs) -> BaseClient:
    """
    Create a client for the specified provider.

    Args:
        provider: Provider name (e.g., "gemini")
        **kwargs: Provider-specific configuration

    Returns:
        Configured client instance

    Raises:
        ValueError: If provider is not supported or misconfigured

    Example:
        >>> client = create_client("gemini", api_key="AIza...")
        >>> response = await client.complete(request)
    """
    provider = provider.lower().strip()

    if provider == "gemini":
        api_key = kwargs.pop("api_key", None)
        if not api_key:
            raise ValueError("Gemini API key is required but not provided")
        return GeminiClient(api_key=api_key, **kwargs)
    else:
        raise ValueError(f"Unsupported provider: {provider}")


def create_client_from_settings(settings: AppSettings) -> BaseClient:
    """Create the configured completion client."""
    config = settings.completion
    return create_client(
        config.provider,
        api_key=settings.gemini_api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )


def get_supported_providers() -> list[str]:
    """Get list of supported provider names."""
    return ["gemini"]
