# trait_drift.py
# Homeostat - Trait Drift (slow personality evolution)
#
# Personality changes SLOWLY, from consistent evidence only:
#   - signals older than the window are ignored
#   - each dimension moves toward a vote-weighted target
#   - step size = base_rate * confidence * dopamine factor
#   - the result never leaves the [0.3, 0.7] safety band
#
# The signal log is a plain value owned by the caller (the orchestrator
# session). Nothing here keeps state between calls.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from homeostat.config import TraitDriftConfig, DEFAULT_CONFIG
from homeostat.errors import SnapshotCorruptedError
from homeostat.kernel.bounds import as_number, clamp, clamp01
from homeostat.kernel.state import ChemicalVector, TraitVector


logger = logging.getLogger(__name__)

DAY_MS = 86_400_000


# ---------------------------------------------------------
# Signals
# ---------------------------------------------------------

@dataclass(frozen=True)
class TraitSignal:
    dimension: str
    direction: str            # "increase" / "decrease"
    is_success: bool
    timestamp: int            # ms
    strength: float = 1.0

    @property
    def day(self) -> int:
        return self.timestamp // DAY_MS


@dataclass(frozen=True)
class SignalLog:
    signals: Tuple[TraitSignal, ...] = ()

    def add(self, signal: TraitSignal, config: Optional[TraitDriftConfig] = None) -> "SignalLog":
        """New log with the signal appended and expired entries dropped."""
        cfg = config or DEFAULT_CONFIG.traits
        if signal.dimension not in TraitVector.dimensions():
            logger.warning("Ignoring trait signal for unknown dimension '%s'", signal.dimension)
            return self
        if signal.direction not in ("increase", "decrease"):
            logger.warning("Ignoring trait signal with direction '%s'", signal.direction)
            return self
        cutoff = signal.timestamp - cfg.retention_days * DAY_MS
        kept = tuple(s for s in self.signals if s.timestamp >= cutoff)
        return SignalLog(kept + (signal,))

    def within(self, now: int, days: int) -> Tuple[TraitSignal, ...]:
        cutoff = now - days * DAY_MS
        return tuple(s for s in self.signals if s.timestamp >= cutoff)

    def __len__(self) -> int:
        return len(self.signals)

    # ---- Serialization helpers -------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signals": [
                {
                    "dimension": s.dimension,
                    "direction": s.direction,
                    "is_success": s.is_success,
                    "timestamp": s.timestamp,
                    "strength": s.strength,
                }
                for s in self.signals
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalLog":
        raw = data.get("signals", []) if isinstance(data, dict) else None
        if not isinstance(raw, (list, tuple)):
            raise SnapshotCorruptedError("signal log is malformed")
        signals: List[TraitSignal] = []
        for item in raw:
            if not isinstance(item, dict):
                raise SnapshotCorruptedError("trait signal is not an object")
            timestamp = as_number(item.get("timestamp"))
            strength = as_number(item.get("strength", 1.0))
            if timestamp is None or strength is None or not isinstance(item.get("is_success"), bool):
                raise SnapshotCorruptedError("trait signal fields are malformed")
            signals.append(TraitSignal(
                dimension=str(item.get("dimension")),
                direction=str(item.get("direction")),
                is_success=item["is_success"],
                timestamp=int(timestamp),
                strength=strength,
            ))
        return cls(tuple(signals))


# ---------------------------------------------------------
# Evidence
# ---------------------------------------------------------

@dataclass(frozen=True)
class DimensionEvidence:
    dimension: str
    target: float
    confidence: float
    count: int
    unique_days: int


def _vote_target(signal: TraitSignal, cfg: TraitDriftConfig) -> float:
    # success confirms the direction, failure argues for the opposite one
    wants_up = (signal.direction == "increase") == signal.is_success
    return cfg.upper_bound if wants_up else cfg.lower_bound


def confidence(unique_days: int, count: int, config: Optional[TraitDriftConfig] = None) -> float:
    cfg = config or DEFAULT_CONFIG.traits
    norm = math.sqrt(cfg.window_days) * math.log(cfg.max_signal_count + 1)
    return clamp01(math.sqrt(unique_days) * math.log(count + 1) / norm)


def collect_evidence(
    signal_log: SignalLog,
    now: int,
    config: Optional[TraitDriftConfig] = None,
) -> Dict[str, DimensionEvidence]:
    cfg = config or DEFAULT_CONFIG.traits
    grouped: Dict[str, List[TraitSignal]] = {}
    for s in signal_log.within(now, cfg.window_days):
        grouped.setdefault(s.dimension, []).append(s)

    evidence: Dict[str, DimensionEvidence] = {}
    for dimension, signals in grouped.items():
        weights = [clamp01(s.strength) for s in signals]
        total = sum(weights)
        if total <= 0:
            continue
        target = sum(w * _vote_target(s, cfg) for w, s in zip(weights, signals)) / total
        unique_days = len({s.day for s in signals})
        evidence[dimension] = DimensionEvidence(
            dimension=dimension,
            target=target,
            confidence=confidence(unique_days, len(signals), cfg),
            count=len(signals),
            unique_days=unique_days,
        )
    return evidence


# ---------------------------------------------------------
# Homeostasis
# ---------------------------------------------------------

def dopamine_factor(chemistry: ChemicalVector) -> float:
    """0.5 when the reward channel is empty, 1.0 when it is full."""
    return 0.5 + 0.5 * clamp01(chemistry.dopamine / 100.0)


def apply_homeostasis(
    traits: TraitVector,
    signal_log: SignalLog,
    chemistry: ChemicalVector,
    now: int,
    config: Optional[TraitDriftConfig] = None,
) -> TraitVector:
    """Pure: same inputs, same traits. Call during sleep or on a slow timer."""
    cfg = config or DEFAULT_CONFIG.traits
    factor = dopamine_factor(chemistry)
    changes: Dict[str, float] = {}

    for dimension, ev in collect_evidence(signal_log, now, cfg).items():
        if dimension not in TraitVector.dimensions():
            continue
        alpha = cfg.base_rate * ev.confidence * factor
        current = getattr(traits, dimension)
        updated = current * (1.0 - alpha) + ev.target * alpha
        changes[dimension] = clamp(updated, cfg.lower_bound, cfg.upper_bound)

    if changes:
        logger.debug("Trait drift: %s", {k: round(v, 4) for k, v in changes.items()})
    return replace(traits, **changes).clamped()
