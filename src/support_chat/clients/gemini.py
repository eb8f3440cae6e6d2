"""
Gemini client implementation.

Concrete BaseClient for Google's Generative Language REST API
(``models/{model}:generateContent``), spoken directly over httpx.
"""

import logging
from typing import Any

import httpx

from ..core.models import ModelRequest, ModelResponse, TokenUsage
from .base import (
    AuthenticationError,
    BaseClient,
    ClientError,
    ModelNotFoundError,
    RateLimitError,
    RetryableError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Our roles -> Gemini content roles
_ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiClient(BaseClient):
    """
    Gemini client implementing the BaseClient interface.
    """

    def __init__(
        self, api_key: str, base_url: str = DEFAULT_BASE_URL, **kwargs: Any
    ) -> None:
        super().__init__("gemini", api_key, **kwargs)

        if not api_key:
            raise ValueError("Gemini API key is required")

        self._http_client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "x-goog-api-key": api_key,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(self.timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    async def complete(self, request: ModelRequest) -> ModelResponse:
        """
        Execute a completion via the generateContent endpoint.

        Raises:
            ClientError: API, transport or response-shape errors
        """
        payload = self._prepare_request(request)

        try:
            response = await self.retry_with_backoff(
                self._make_completion_request, request.model, payload
            )
            return self._parse_response(response, request)
        except ClientError:
            raise
        except Exception as e:
            logger.error(f"Gemini completion failed: {e}")
            raise ClientError(
                f"Unexpected error during completion: {e}",
                provider=self.provider_name,
                model=request.model,
                details={"error_type": type(e).__name__},
            ) from e

    def _prepare_request(self, request: ModelRequest) -> dict[str, Any]:
        """Build the generateContent body from a standardized request."""
        gemini_request: dict[str, Any] = {
            "contents": [
                {"role": _ROLE_MAP[msg.role], "parts": [{"text": msg.content}]}
                for msg in request.messages
            ]
        }

        if request.system_prompt:
            gemini_request["systemInstruction"] = {
                "parts": [{"text": request.system_prompt}]
            }

        generation_config: dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if generation_config:
            gemini_request["generationConfig"] = generation_config

        return gemini_request

    async def _make_completion_request(
        self, model: str, request_data: dict[str, Any]
    ) -> httpx.Response:
        """Make the actual HTTP request to Gemini."""
        try:
            response = await self._http_client.post(
                f"/models/{model}:generateContent", json=request_data
            )
        except httpx.TimeoutException as e:
            raise RetryableError(
                f"Request timed out: {e}", provider=self.provider_name, model=model
            ) from e
        except httpx.TransportError as e:
            raise RetryableError(
                f"Transport error: {e}", provider=self.provider_name, model=model
            ) from e

        if response.status_code != 200:
            self._handle_http_error(response, model)

        return response

    def _handle_http_error(self, response: httpx.Response, model: str) -> None:
        """Map Gemini HTTP errors onto the client exception hierarchy."""
        try:
            error_info = response.json().get("error", {})
            error_message = error_info.get("message", f"HTTP {response.status_code}")
            error_status = error_info.get("status")
        except Exception:
            error_message = f"HTTP {response.status_code}: {response.text[:200]}"
            error_status = None

        details = {"status_code": response.status_code, "status": error_status}

        if response.status_code in (401, 403) or (
            response.status_code == 400 and "API key" in error_message
        ):
            raise AuthenticationError(
                f"Authentication failed: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        elif response.status_code == 404:
            raise ModelNotFoundError(
                f"Model not found: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        elif response.status_code == 429:
            retry_after = None
            if "retry-after" in response.headers:
                try:
                    retry_after = int(response.headers["retry-after"])
                except ValueError:
                    pass
            raise RateLimitError(
                f"Quota or rate limit exceeded: {error_message}",
                provider=self.provider_name,
                retry_after=retry_after,
                model=model,
                details=details,
            )
        elif response.status_code in (408, 500, 502, 503, 504):
            raise RetryableError(
                f"Service temporarily unavailable: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )
        else:
            raise ClientError(
                f"API error: {error_message}",
                provider=self.provider_name,
                model=model,
                details=details,
            )

    def _parse_response(
        self, response: httpx.Response, request: ModelRequest
    ) -> ModelResponse:
        """Parse a generateContent response into standardized format."""
        try:
            data = response.json()
        except ValueError as e:
            raise ClientError(
                f"Malformed response body: {e}",
                provider=self.provider_name,
                model=request.model,
            ) from e

        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise ClientError(
                f"No candidates in response (block reason: {block_reason})",
                provider=self.provider_name,
                model=request.model,
                details={"block_reason": block_reason},
            )

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts)
        if not content.strip():
            raise ClientError(
                "Empty completion text",
                provider=self.provider_name,
                model=request.model,
                details={"finish_reason": candidate.get("finishReason")},
            )

        usage_data = data.get("usageMetadata") or {}
        usage = TokenUsage(
            input_tokens=usage_data.get("promptTokenCount", 0),
            output_tokens=usage_data.get("candidatesTokenCount", 0),
            total_tokens=usage_data.get("totalTokenCount", 0),
        )

        return ModelResponse(
            content=content,
            model=request.model,
            provider=self.provider_name,
            usage=usage,
            finish_reason=candidate.get("finishReason"),
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._http_client.aclose()
