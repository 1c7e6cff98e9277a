"""
OpenRouter Base Client
======================

Shared async HTTP client for the OpenRouter chat completions API.
Used by the reasoning generate function when LLM_MODE=openrouter.
"""

import hashlib
import httpx
import logging
from typing import Optional, Dict, List
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def safe_log_content(content: str, max_chars: int = 120) -> str:
    """
    Create a safe log representation of content.

    Args:
        content: Content to log
        max_chars: Maximum characters to show

    Returns:
        Safe log string with length and hash
    """
    if not content:
        return "(empty)"

    content_hash = hashlib.sha256(content.encode()).hexdigest()[:12]
    preview = content[:max_chars].replace('\n', ' ')

    return f"len={len(content)} hash={content_hash} preview='{preview}...'"


@dataclass
class LLMCallResult:
    """Result from an LLM API call"""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    raw_response: Optional[Dict] = None
    success: bool = True
    error: Optional[str] = None


class OpenRouterBaseClient:
    """
    Async client for OpenRouter chat completions.

    Never raises on transport or API errors; failures come back as
    LLMCallResult(success=False).
    """

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: int = 60,
        base_url: Optional[str] = None,
        app_name: str = "Detective Core Case Linkage"
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.app_name = app_name
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def call(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> LLMCallResult:
        """
        Make an API call to OpenRouter.

        Args:
            messages: List of message dicts with role and content
            temperature: Sampling temperature
            max_tokens: Maximum response tokens

        Returns:
            LLMCallResult with content or error
        """
        if not self.api_key:
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error="API key not configured"
            )

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.app_name
        }

        try:
            client = await self._get_client()
            response = await client.post(self.completions_url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()

            try:
                content = data["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                logger.error(f"OpenRouter response missing content: {e}")
                return LLMCallResult(
                    content="",
                    model=self.model,
                    success=False,
                    error=f"Response missing content: {e}",
                    raw_response=data
                )

            usage = data.get("usage") or {}

            return LLMCallResult(
                content=content or "",
                model=self.model,
                input_tokens=usage.get("prompt_tokens", 0),
                output_tokens=usage.get("completion_tokens", 0),
                raw_response=data,
                success=True
            )

        except httpx.HTTPStatusError as e:
            logger.error(f"OpenRouter API error: {e.response.status_code}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenRouter request failed: {e}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error=str(e) or type(e).__name__
            )
