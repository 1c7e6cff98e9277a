"""
Ollama Client
=============

Async client for a local Ollama server (Llama models).

The system prompt is prepended to the user prompt for /api/generate.
Like the OpenRouter client, failures are returned as LLMCallResult(success=False).
"""

import httpx
import logging
from typing import Optional

from .openrouter_base import LLMCallResult

logger = logging.getLogger(__name__)


class OllamaClient:
    """Local Llama inference through Ollama's HTTP API"""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2",
        timeout: int = 60,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMCallResult:
        payload = {
            "model": self.model,
            "prompt": f"{system_prompt}\n\n{prompt}" if system_prompt else prompt,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        try:
            client = await self._get_client()
            response = await client.post(f"{self.base_url}/api/generate", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama API error: {e.response.status_code}")
            return LLMCallResult(
                content="",
                model=self.model,
                success=False,
                error=f"HTTP {e.response.status_code}: {e.response.text[:200]}",
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Ollama request failed: {e}")
            return LLMCallResult(content="", model=self.model, success=False, error=str(e) or type(e).__name__)

        return LLMCallResult(
            content=data.get("response") or "",
            model=self.model,
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            raw_response=data,
            success=True,
        )

    async def check_availability(self) -> bool:
        """True when the Ollama server answers /api/tags"""
        try:
            client = await self._get_client()
            response = await client.get(f"{self.base_url}/api/tags")
            return response.status_code == 200
        except httpx.HTTPError:
            return False
