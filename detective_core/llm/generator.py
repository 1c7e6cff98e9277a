"""
Generate Function Adapter
=========================

Builds the generate(prompt, system_prompt) coroutine consumed by the
reasoning engine from the configured LLM backend.

LLM clients return LLMCallResult; this adapter turns an unsuccessful
result into GenerationError, which the engine absorbs per stage.
"""

import logging
from typing import Optional

from ..config import Settings, get_settings
from ..exceptions import GenerationError
from ..schemas import LLMMode
from .ollama import OllamaClient
from .openrouter_base import OpenRouterBaseClient, LLMCallResult

logger = logging.getLogger(__name__)


def _unwrap(result: LLMCallResult) -> str:
    if not result.success:
        raise GenerationError(f"{result.model}: {result.error}")
    return result.content


def build_generate_fn(settings: Optional[Settings] = None):
    """
    Create a generate coroutine for the configured LLM mode.

    Returns:
        async generate(prompt, system_prompt=None) -> str, or None when LLM_MODE=none
    """
    settings = settings or get_settings()

    if settings.llm_mode == LLMMode.OPENROUTER:
        client = OpenRouterBaseClient(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            timeout=settings.llm_timeout,
            base_url=settings.openrouter_base_url,
        )

        async def generate(prompt: str, system_prompt: Optional[str] = None) -> str:
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            result = await client.call(
                messages,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
            )
            return _unwrap(result)

        logger.info(f"Generate function: OpenRouter model={settings.openrouter_model}")
        return generate

    if settings.llm_mode == LLMMode.OLLAMA:
        client = OllamaClient(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            timeout=settings.llm_timeout,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

        async def generate(prompt: str, system_prompt: Optional[str] = None) -> str:
            return _unwrap(await client.generate(prompt, system_prompt))

        logger.info(f"Generate function: Ollama model={settings.ollama_model}")
        return generate

    logger.info("Generate function: none (LLM_MODE=none)")
    return None
