"""Anthropic Messages API generation capability."""

from __future__ import annotations

import os
from typing import Any, Optional

import httpx

from ..core.exceptions import CapabilityError
from ..utils.logger import get_logger
from .base import GenerationCapability

logger = get_logger(__name__)

DEFAULT_API_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 16384
API_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"


class AnthropicAPICapability(GenerationCapability):
    """Generates via ``POST /v1/messages`` using httpx."""

    name = "anthropic-api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: Optional[float] = 600.0,
        base_url: str = API_BASE_URL,
    ):
        """Initialize API capability.

        Args:
            api_key: API key; falls back to ANTHROPIC_API_KEY.
            model: Model identifier.
            max_tokens: Maximum tokens in the completion.
            timeout: HTTP request timeout in seconds.
            base_url: API base URL.
        """
        super().__init__(model or DEFAULT_API_MODEL)
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self._client: Optional[httpx.AsyncClient] = None

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": API_VERSION,
                    "content-type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            raise CapabilityError("ANTHROPIC_API_KEY is not set", capability=self.name)

        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }

        client = await self._get_client()
        try:
            response = await client.post("/v1/messages", json=payload)
        except httpx.HTTPError as e:
            raise CapabilityError(f"request to Anthropic API failed: {e}", capability=self.name) from e

        if response.status_code != 200:
            raise CapabilityError(
                f"Anthropic API returned {response.status_code}: {response.text[:500]}",
                capability=self.name,
                details={"status_code": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise CapabilityError(f"Anthropic API returned invalid JSON: {e}", capability=self.name) from e

        text = "".join(
            block.get("text", "")
            for block in body.get("content", [])
            if block.get("type") == "text"
        )
        if not text:
            raise CapabilityError("Anthropic API returned no text content", capability=self.name)

        usage = body.get("usage") or {}
        logger.debug(
            f"Anthropic API usage: {usage.get('input_tokens', 0)} in, {usage.get('output_tokens', 0)} out"
        )
        return text
