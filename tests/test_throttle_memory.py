import asyncio

from homeostat.hippocampus.memory.memory_store import InMemoryStore, MemoryEntry
from homeostat.orchestrator.throttle import DedupeSet, RateLimiter


def test_rate_limiter_window():
    limiter = RateLimiter(max_ops=2, window_ms=1000)
    assert limiter.allow(0)
    assert limiter.allow(10)
    assert not limiter.allow(20)
    assert limiter.allow(1001)
    assert not limiter.allow(1002)

    limiter.reset()
    assert limiter.allow(1002)
    assert limiter.allow(1003)
    assert not limiter.allow(1004)


def test_dedupe_normalizes_topics():
    dedupe = DedupeSet()
    assert dedupe.begin("Ask about  Tides")
    assert not dedupe.begin("ask about tides")
    assert "ASK ABOUT TIDES" in dedupe

    dedupe.abandon("ask about tides")
    assert "ask about tides" not in dedupe
    assert dedupe.begin("ask about tides")

    dedupe.finish("ask about tides")
    assert not dedupe.begin("Ask about tides")

    dedupe.reset()
    assert dedupe.begin("Ask about tides")


def test_memory_search_and_recall():
    store = InMemoryStore(capacity=3)

    async def scenario():
        for i, text in enumerate(["the moon and the tides", "volcanoes under the sea",
                                  "tides on a windy day", "a quiet morning"]):
            await store.store_memory(MemoryEntry(text, timestamp=i))
        return (
            await store.semantic_search("why do tides move?"),
            await store.semantic_search("a b"),
            await store.recall_recent(2),
            await store.recall_recent(0),
        )

    found, nothing, recent, none = asyncio.run(scenario())

    # capacity dropped the oldest entry
    assert [e.text for e in store.entries][0] == "volcanoes under the sea"
    assert [e.text for e in found] == ["tides on a windy day"]
    assert nothing == []
    assert [e.timestamp for e in recent] == [3, 2]
    assert none == []
