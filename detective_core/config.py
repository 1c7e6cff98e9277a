"""
Configuration for Case Linkage Core
===================================

Environment variables:
- LLM_MODE: none|openrouter|ollama (default: none)
- OPENROUTER_API_KEY: API key for OpenRouter
- OPENROUTER_MODEL: Model to use (default: meta-llama/llama-3.1-70b-instruct)
- OLLAMA_BASE_URL: Local Ollama server (default: http://localhost:11434)
- OLLAMA_MODEL: Local model name (default: llama3.2)
- SIMILARITY_MIN_SCORE: Minimum composite similarity for a match (default: 0.35)
- REASONING_STAGE_TIMEOUT: Seconds allowed per reasoning stage (default: 60)
- REASONING_CACHE_SIZE: Number of reasoning chains kept in memory (default: 50)
- DATABASE_URL: Outcome store database (default: sqlite:///./outcomes.db)
"""

from typing import Dict, List, Optional
from pydantic_settings import BaseSettings
from functools import lru_cache

from .schemas import LLMMode


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # LLM Configuration
    llm_mode: LLMMode = LLMMode.NONE

    # OpenRouter
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = "meta-llama/llama-3.1-70b-instruct"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    # Ollama (local inference)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"

    llm_temperature: float = 0.7
    llm_max_tokens: int = 2000

    # Timeouts (seconds)
    llm_timeout: int = 60

    # Similarity weights
    narrative_weight: float = 0.30
    evidence_weight: float = 0.25
    keyword_weight: float = 0.25
    jurisdiction_weight: float = 0.20
    temporal_weight: float = 0.15
    similarity_min_score: float = 0.35
    max_corpus_size: int = 5000

    # Reasoning pipeline
    reasoning_enabled: bool = True
    reasoning_require_validation: bool = True
    reasoning_self_reflection: bool = True
    reasoning_self_correction: bool = True
    reasoning_stage_timeout: float = 60.0
    reasoning_cache_size: int = 50

    # Outcome store: memory | sql
    outcome_store: str = "memory"
    database_url: str = "sqlite:///./outcomes.db"

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    def similarity_weights(self) -> Dict[str, float]:
        """Factor weights keyed by factor name"""
        return {
            "narrative": self.narrative_weight,
            "evidence_type": self.evidence_weight,
            "keyword": self.keyword_weight,
            "jurisdiction": self.jurisdiction_weight,
            "temporal": self.temporal_weight,
        }

    def validate_llm_config(self) -> List[str]:
        """Validate LLM configuration, return list of warnings"""
        warnings = []

        if self.llm_mode == LLMMode.OPENROUTER:
            if not self.openrouter_api_key:
                warnings.append("LLM_MODE=openrouter but OPENROUTER_API_KEY not set")

        elif self.llm_mode == LLMMode.OLLAMA:
            if not self.ollama_base_url:
                warnings.append("LLM_MODE=ollama but OLLAMA_BASE_URL is empty")

        if self.reasoning_enabled and self.llm_mode == LLMMode.NONE:
            warnings.append("REASONING_ENABLED=true but LLM_MODE=none (reasoning chains will be skipped)")

        if any(w < 0 for w in self.similarity_weights().values()):
            warnings.append("Negative similarity weight configured")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Convenience function
def get_llm_mode() -> LLMMode:
    """Get current LLM mode"""
    return get_settings().llm_mode
