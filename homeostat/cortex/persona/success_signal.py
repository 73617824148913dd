# success_signal.py
# Homeostat - turn conversation outcomes into trait signals
#
# Positive feedback reinforces whatever the last reply was doing.
# Being ignored over and over argues against talking so much.

from __future__ import annotations

from typing import Optional

from homeostat.cortex.persona.trait_drift import TraitSignal


POSITIVE_PATTERNS = (
    "thanks", "thank you", "great", "perfect", "exactly",
    "correct", "good", "awesome", "nice",
)

IGNORED_STREAK = 3


def _relevant_dimension(last_response: str) -> Optional[str]:
    lower = last_response.lower()
    # long, structured answer
    if len(last_response) > 300 and ("##" in last_response or "1." in last_response):
        return "conscientiousness"
    if any(w in lower for w in ("imagine", "dream", "create")):
        return "verbosity"
    if "?" in last_response:
        return "curiosity"
    return None


def detect_success(user_text: str, last_response: str, now: int) -> Optional[TraitSignal]:
    """Signal reinforcing the last reply when the user reacts positively."""
    if not last_response:
        return None
    lower = user_text.lower()
    if not any(p in lower for p in POSITIVE_PATTERNS):
        return None
    dimension = _relevant_dimension(last_response)
    if dimension is None:
        return None
    return TraitSignal(dimension=dimension, direction="increase", is_success=True, timestamp=now)


def detect_ignored(consecutive_without_response: int, now: int) -> Optional[TraitSignal]:
    if consecutive_without_response < IGNORED_STREAK:
        return None
    return TraitSignal(
        dimension="verbosity",
        direction="increase",
        is_success=False,
        timestamp=now,
        strength=0.5,
    )
