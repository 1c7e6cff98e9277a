"""
LLM Module
==========

Text-generation backends for the reasoning pipeline.

Backends:
- OpenRouter (hosted models, chat completions)
- Ollama (local Llama models, /api/generate)

Environment Variables:
- LLM_MODE: none|openrouter|ollama
- OPENROUTER_API_KEY / OPENROUTER_MODEL
- OLLAMA_BASE_URL / OLLAMA_MODEL

Usage:
    from detective_core.llm import build_generate_fn

    generate = build_generate_fn()
    if generate:
        text = await generate(prompt, system_prompt)
"""

from .openrouter_base import OpenRouterBaseClient, LLMCallResult, safe_log_content
from .ollama import OllamaClient
from .generator import build_generate_fn

__all__ = [
    "OpenRouterBaseClient",
    "LLMCallResult",
    "safe_log_content",
    "OllamaClient",
    "build_generate_fn",
]
