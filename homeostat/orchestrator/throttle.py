# throttle.py
# Homeostat - per-session throttles for autonomous work
#
# RateLimiter: sliding one-minute window of autonomous operations.
# DedupeSet:   topics that are in flight or already handled this session.
#
# Both live on the orchestrator context (one per session), never at
# module level, and take "now" from the caller so tests control time.

from __future__ import annotations

from collections import deque
from typing import Deque, Set


class RateLimiter:
    def __init__(self, max_ops: int, window_ms: int = 60_000):
        self.max_ops = max_ops
        self.window_ms = window_ms
        self._stamps: Deque[int] = deque()

    def _prune(self, now: int) -> None:
        cutoff = now - self.window_ms
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()

    def allow(self, now: int) -> bool:
        """Consume one slot if one is free."""
        self._prune(now)
        if len(self._stamps) >= self.max_ops:
            return False
        self._stamps.append(now)
        return True

    def reset(self) -> None:
        self._stamps.clear()


class DedupeSet:
    def __init__(self):
        self._in_flight: Set[str] = set()
        self._done: Set[str] = set()

    @staticmethod
    def _key(topic: str) -> str:
        return " ".join(topic.lower().split())

    def begin(self, topic: str) -> bool:
        """False when the topic is already running or finished."""
        key = self._key(topic)
        if key in self._in_flight or key in self._done:
            return False
        self._in_flight.add(key)
        return True

    def finish(self, topic: str) -> None:
        key = self._key(topic)
        self._in_flight.discard(key)
        self._done.add(key)

    def abandon(self, topic: str) -> None:
        """Release an in-flight topic without marking it done (failed work may retry)."""
        self._in_flight.discard(self._key(topic))

    def __contains__(self, topic: str) -> bool:
        key = self._key(topic)
        return key in self._in_flight or key in self._done

    def reset(self) -> None:
        self._in_flight.clear()
        self._done.clear()
