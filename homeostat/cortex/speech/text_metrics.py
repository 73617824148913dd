# text_metrics.py
# Homeostat - cheap text heuristics used by the speech gate
#
# No NLP dependencies on purpose: word sets, substring checks, counts.

from __future__ import annotations

import re
from typing import Iterable, Sequence

from homeostat.kernel.bounds import clamp01


POETIC_WORDS = (
    "void", "silence", "quantum", "cosmic", "loom", "crucible",
    "firmware", "aether", "nebula", "fractal", "resonance", "shimmer",
)

SELF_WORDS = frozenset({
    "i", "me", "my", "myself", "mine", "i'm", "i've", "i'll",
    "consciousness", "identity", "model", "ai", "system", "processing",
    "internal", "purpose", "goal", "learning", "evolving", "growing",
})

SELF_PATTERNS = (
    "as a language model",
    "as an ai",
    "i will do my best",
    "i'll do my best",
)

PRAISE_PATTERNS = (
    "your transparency",
    "your words",
    "means a lot to me",
    "invaluable to me",
    "resonate deeply with me",
)

_SENTENCE_SPLIT = re.compile(r"[.!?]")
_NON_WORD = re.compile(r"[^a-z0-9\s]")
_NON_WORD_KEEP_APOSTROPHE = re.compile(r"[^a-z']")


def _tokens(text: str) -> set:
    return set(_NON_WORD.sub("", text.lower()).split())


def shorten_to_sentences(text: str, max_sentences: int) -> str:
    """
    Keep the first max_sentences sentences.
    A trailing period survives only if the original ended with one.
    """
    parts = [p.strip() for p in _SENTENCE_SPLIT.split(text)]
    parts = [p for p in parts if p]
    selected = parts[:max(0, max_sentences)]
    suffix = "." if selected and text.strip().endswith(".") else ""
    return ". ".join(selected) + suffix


def compute_novelty(current: str, previous: Iterable[str]) -> float:
    """
    1 - highest overlap with any previous utterance.
    Overlap = shared words / size of the smaller word set.
    """
    previous = list(previous)
    if not previous:
        return 1.0

    current_tokens = _tokens(current)
    if not current_tokens:
        return 1.0

    max_similarity = 0.0
    for prev in previous:
        prev_tokens = _tokens(prev)
        if not prev_tokens:
            continue
        common = len(current_tokens & prev_tokens)
        similarity = common / min(len(current_tokens), len(prev_tokens))
        max_similarity = max(max_similarity, similarity)

    return clamp01(1.0 - max_similarity)


def estimate_social_cost(text: str, meta_about_self_streak: int = 0) -> float:
    lower = text.lower()
    cost = 0.0
    if any(p in lower for p in SELF_PATTERNS):
        cost += 0.3
    if any(p in lower for p in PRAISE_PATTERNS):
        cost += 0.2
    if meta_about_self_streak >= 2:
        cost += 0.2
    return clamp01(cost)


def self_focus_ratio(text: str) -> float:
    """Share of tokens that talk about the agent itself."""
    tokens = text.lower().split()
    if not tokens:
        return 0.0
    count = sum(1 for t in tokens if _NON_WORD_KEEP_APOSTROPHE.sub("", t) in SELF_WORDS)
    return count / len(tokens)


def poetic_score(text: str) -> int:
    lower = text.lower()
    return sum(1 for word in POETIC_WORDS if word in lower)


def is_repetition(text: str, history: Sequence[str], prefix: int = 20, min_length: int = 10) -> bool:
    """True when the opening of text and a past entry contain each other."""
    head = text[:prefix]
    for old in history:
        if len(old) < min_length:
            continue
        if head in old or old[:prefix] in text:
            return True
    return False
