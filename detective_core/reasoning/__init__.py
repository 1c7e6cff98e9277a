"""
Reasoning Module
================

Multi-stage chain-of-thought pipeline and the per-case chain store.

Usage:
    from detective_core.reasoning import ReasoningEngine, LRUChainStore

    store = LRUChainStore(max_entries=50)
    chain = await ReasoningEngine().reason_through_case(case, corpus, generate)
    store.set(case.id, chain)
"""

from .cache import ChainStore, LRUChainStore
from .engine import GenerateFn, ReasoningEngine, overall_confidence, score_quality
from .parsing import ParseResult, ParsedStep, parse_reflection, parse_steps

__all__ = [
    "ChainStore",
    "LRUChainStore",
    "GenerateFn",
    "ReasoningEngine",
    "overall_confidence",
    "score_quality",
    "ParseResult",
    "ParsedStep",
    "parse_reflection",
    "parse_steps",
]
