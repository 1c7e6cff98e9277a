"""
Reasoning Chain Store
=====================

Bounded per-case store for computed reasoning chains.

LRUChainStore evicts the least recently used entry once more than
max_entries chains are held. Reads count as use.
"""

import logging
import threading
from collections import OrderedDict
from typing import List, Optional, Protocol

from ..schemas import ReasoningChain

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


class ChainStore(Protocol):
    """Storage contract for reasoning chains keyed by case id"""

    def get(self, case_id: str) -> Optional[ReasoningChain]:
        ...

    def set(self, case_id: str, chain: ReasoningChain) -> None:
        ...

    def evict(self, case_id: str) -> bool:
        ...

    def clear(self) -> None:
        ...


class LRUChainStore:
    """Thread-safe in-memory LRU store."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ReasoningChain]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, case_id: str) -> Optional[ReasoningChain]:
        with self._lock:
            chain = self._entries.get(case_id)
            if chain is not None:
                self._entries.move_to_end(case_id)
            return chain

    def set(self, case_id: str, chain: ReasoningChain) -> None:
        with self._lock:
            self._entries[case_id] = chain
            self._entries.move_to_end(case_id)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted reasoning chain for case {evicted}")

    def evict(self, case_id: str) -> bool:
        with self._lock:
            return self._entries.pop(case_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        """Case ids from least to most recently used"""
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, case_id: str) -> bool:
        with self._lock:
            return case_id in self._entries
