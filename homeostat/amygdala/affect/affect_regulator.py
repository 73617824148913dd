# affect_regulator.py
# Homeostat - Affect Regulator (fear, curiosity, frustration, satisfaction)
#
# Bounded emotional vector with slow homeostatic cooling.
# Stimuli are additive; every result is clamped to [0, 1].

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from homeostat.config import AffectConfig, DampingConfig, DEFAULT_CONFIG
from homeostat.kernel.bounds import clamp
from homeostat.kernel.state import AffectVector, MoodDamping


@dataclass(frozen=True)
class AffectDeltas:
    fear: float = 0.0
    curiosity: float = 0.0
    frustration: float = 0.0
    satisfaction: float = 0.0


# ---------------------------------------------------------
# Stimuli
# ---------------------------------------------------------

def apply_stimulus(
    state: AffectVector,
    deltas: AffectDeltas,
    surprise: bool = False,
    config: Optional[AffectConfig] = None,
) -> AffectVector:
    cfg = config or DEFAULT_CONFIG.affect
    fear = state.fear
    curiosity = state.curiosity

    if surprise:
        fear += cfg.surprise_fear
        curiosity += cfg.surprise_curiosity

    return AffectVector(
        fear=fear + deltas.fear,
        curiosity=curiosity + deltas.curiosity,
        frustration=state.frustration + deltas.frustration,
        satisfaction=state.satisfaction + deltas.satisfaction,
    ).clamped()


def decay(state: AffectVector, config: Optional[AffectConfig] = None) -> AffectVector:
    """Pull every field a small step toward its resting value."""
    cfg = config or DEFAULT_CONFIG.affect
    f = cfg.homeostasis_factor

    def pull(value: float, target: float) -> float:
        return target + (value - target) * f

    return AffectVector(
        fear=pull(state.fear, cfg.fear_target),
        curiosity=pull(state.curiosity, cfg.curiosity_target),
        frustration=pull(state.frustration, cfg.frustration_target),
        satisfaction=pull(state.satisfaction, cfg.satisfaction_target),
    ).clamped()


def apply_speech_response(state: AffectVector, config: Optional[AffectConfig] = None) -> AffectVector:
    # speaking releases curiosity pressure
    cfg = config or DEFAULT_CONFIG.affect
    return replace(
        state,
        satisfaction=state.satisfaction + cfg.speech_satisfaction_gain,
        curiosity=state.curiosity - cfg.speech_curiosity_cost,
    ).clamped()


def apply_poetic_cost(
    state: AffectVector,
    score: float,
    config: Optional[AffectConfig] = None,
) -> AffectVector:
    """Soft tax on ornate language: never blocks, only nudges."""
    if score <= 0:
        return state
    cfg = config or DEFAULT_CONFIG.affect
    return replace(
        state,
        satisfaction=state.satisfaction - cfg.poetic_satisfaction_cost * score,
        frustration=state.frustration + cfg.poetic_frustration_gain * score,
    ).clamped()


# ---------------------------------------------------------
# Damped mood shifts
# ---------------------------------------------------------

def damp_mood_shift(
    damping: MoodDamping,
    fear_delta: float,
    curiosity_delta: float,
    now_ms: int,
    config: Optional[DampingConfig] = None,
) -> Tuple[float, float, MoodDamping]:
    """
    Biological damping for externally suggested mood shifts.

    - EMA smoothing against the previous smoothed shift
    - refractory: shifts arriving soon after the last one are scaled by
      1 - exp(-3 * dt / refractory)
    - habituation: repeated shifts inside the refractory window lose
      strength as 1 / (1 + rate * consecutive)
    - final per-field clamp to +/- max_delta

    Returns (fear, curiosity, new damping memory).
    """
    cfg = config or DEFAULT_CONFIG.damping
    a = cfg.ema_alpha

    smoothed_fear = a * fear_delta + (1 - a) * damping.smoothed_fear
    smoothed_curiosity = a * curiosity_delta + (1 - a) * damping.smoothed_curiosity

    refractory = 1.0
    consecutive = 0
    if damping.last_shift_at is not None:
        dt = max(0, now_ms - damping.last_shift_at)
        if dt < cfg.refractory_ms:
            refractory = 1.0 - math.exp(-3.0 * dt / cfg.refractory_ms)
            consecutive = damping.consecutive_shifts + 1

    habituation = 1.0 / (1.0 + cfg.habituation_rate * consecutive)
    scale = refractory * habituation

    fear = clamp(smoothed_fear * scale, -cfg.max_delta, cfg.max_delta)
    curiosity = clamp(smoothed_curiosity * scale, -cfg.max_delta, cfg.max_delta)

    memory = MoodDamping(
        last_shift_at=now_ms,
        smoothed_fear=smoothed_fear,
        smoothed_curiosity=smoothed_curiosity,
        consecutive_shifts=consecutive,
    )
    return fear, curiosity, memory
