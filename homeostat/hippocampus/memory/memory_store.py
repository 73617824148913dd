# memory_store.py
# Homeostat - long-term memory collaborator
#
# The kernel never depends on how memories are kept. It only needs:
#   - store_memory(entry)      fire-and-forget, scheduled as a background task
#   - semantic_search(query)   a few related entries for the generator prompt
#   - recall_recent(n)         the newest entries
#
# InMemoryStore is the default: a bounded list with word-overlap search.
# Swap in a vector DB by implementing the same three coroutines.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence


_WORD = re.compile(r"[a-z0-9']+")


@dataclass(frozen=True)
class MemoryEntry:
    text: str
    kind: str = "speech"          # "speech" / "user" / "goal" / "dream"
    timestamp: int = 0
    tags: Sequence[str] = ()
    meta: Dict[str, float] = field(default_factory=dict)


class MemoryStore(Protocol):
    async def store_memory(self, entry: MemoryEntry) -> None:
        ...

    async def semantic_search(self, query: str, limit: int = 5) -> List[MemoryEntry]:
        ...

    async def recall_recent(self, n: int = 5) -> List[MemoryEntry]:
        ...


def _words(text: str) -> set:
    return {w for w in _WORD.findall(text.lower()) if len(w) > 2}


class InMemoryStore:
    def __init__(self, capacity: int = 500):
        self.capacity = capacity
        self.entries: List[MemoryEntry] = []

    async def store_memory(self, entry: MemoryEntry) -> None:
        self.entries.append(entry)
        if len(self.entries) > self.capacity:
            del self.entries[: len(self.entries) - self.capacity]

    async def semantic_search(self, query: str, limit: int = 5) -> List[MemoryEntry]:
        query_words = _words(query)
        if not query_words:
            return []

        scored = []
        for index, entry in enumerate(self.entries):
            overlap = len(query_words & _words(entry.text))
            if overlap:
                # ties go to the newer entry
                scored.append((overlap, index, entry))
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [entry for _, _, entry in scored[:limit]]

    async def recall_recent(self, n: int = 5) -> List[MemoryEntry]:
        if n <= 0:
            return []
        return list(reversed(self.entries[-n:]))
