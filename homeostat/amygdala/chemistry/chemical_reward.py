# chemical_reward.py
# Homeostat - Chemical Reward Model (dopamine, serotonin, norepinephrine)
#
# Per update, in this order:
#   1) boredom decay     - talking into silence with stale content costs dopamine
#   2) RPE decay         - no external reward for a while costs dopamine
#   3) homeostasis       - asymmetric pull to baseline (3x faster from above)
#   4) activity boosts   - social / creative / repetitive / idle
# The result is always re-clamped to [0, 100].

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from homeostat.config import ChemistryConfig, DEFAULT_CONFIG
from homeostat.kernel.bounds import clamp, clamp01, clamp100
from homeostat.kernel.state import AffectVector, ChemicalVector, TraitVector


class Activity(str, Enum):
    IDLE = "IDLE"
    SOCIAL = "SOCIAL"
    CREATIVE = "CREATIVE"
    REPETITIVE = "REPETITIVE"


@dataclass(frozen=True)
class ChemistryContext:
    energy: float
    activity: Activity = Activity.IDLE
    traits: TraitVector = TraitVector()
    user_is_silent: bool = False
    novelty: Optional[float] = None
    consecutive_agent_speeches: int = 0
    ticks_since_reward: int = 0


# ---------------------------------------------------------
# Building blocks
# ---------------------------------------------------------

def homeostasis(value: float, target: float, rate: float, above_multiplier: float = 1.0) -> float:
    """Move value a fraction of the way to target, faster when above it."""
    if value > target:
        rate = rate * above_multiplier
    return clamp100(value + (target - value) * min(1.0, rate))


def boredom_penalty(ctx: ChemistryContext, config: Optional[ChemistryConfig] = None) -> float:
    cfg = config or DEFAULT_CONFIG.chemistry
    if not ctx.user_is_silent or ctx.consecutive_agent_speeches < cfg.boredom_min_speeches:
        return 0.0
    novelty = 1.0 if ctx.novelty is None else ctx.novelty
    if novelty < 0.2:
        return cfg.boredom_penalty_very_low_novelty
    if novelty < 0.4:
        return cfg.boredom_penalty_low_novelty
    return cfg.boredom_penalty


def rpe_penalty(ticks_since_reward: int, config: Optional[ChemistryConfig] = None) -> float:
    cfg = config or DEFAULT_CONFIG.chemistry
    if ticks_since_reward <= cfg.rpe_decay_start_ticks:
        return 0.0
    return min(cfg.rpe_max_decay_per_tick, float(ticks_since_reward - cfg.rpe_decay_start_ticks))


def _lower_towards_floor(value: float, penalty: float, floor: float) -> float:
    # penalties never push below the floor, and never lift a value already under it
    if penalty <= 0 or value <= floor:
        return value
    return max(floor, value - penalty)


# ---------------------------------------------------------
# Main update
# ---------------------------------------------------------

def update(
    prev: ChemicalVector,
    ctx: ChemistryContext,
    config: Optional[ChemistryConfig] = None,
) -> ChemicalVector:
    cfg = config or DEFAULT_CONFIG.chemistry
    dopamine = prev.dopamine
    serotonin = prev.serotonin
    norepinephrine = prev.norepinephrine

    # 1) boredom
    dopamine = _lower_towards_floor(dopamine, boredom_penalty(ctx, cfg), cfg.boredom_floor)

    # 2) reward prediction error
    dopamine = _lower_towards_floor(dopamine, rpe_penalty(ctx.ticks_since_reward, cfg), cfg.rpe_floor)

    # 3) asymmetric homeostasis
    m = cfg.above_baseline_multiplier
    dopamine = homeostasis(dopamine, cfg.dopamine_baseline, cfg.homeostasis_rate, m)
    serotonin = homeostasis(serotonin, cfg.serotonin_baseline, cfg.homeostasis_rate, m)
    norepinephrine = homeostasis(norepinephrine, cfg.norepinephrine_baseline, cfg.homeostasis_rate, m)

    # 4) activity
    f = clamp(ctx.energy / 50.0, 0.5, 1.5)
    has_audience = not ctx.user_is_silent

    if ctx.activity == Activity.SOCIAL:
        if has_audience:
            dopamine += 2.0 * f
            serotonin += 1.5 * f
    elif ctx.activity == Activity.CREATIVE:
        norepinephrine += 2.0 * f
        if has_audience:
            dopamine += 3.0 * f
    elif ctx.activity == Activity.REPETITIVE:
        discount = 1.0 - 0.5 * clamp01(ctx.traits.conscientiousness)
        serotonin += 0.5 * f * discount
    else:
        serotonin += 0.2

    return ChemicalVector(
        dopamine=dopamine,
        serotonin=serotonin,
        norepinephrine=norepinephrine,
    ).clamped()


def apply_delta(prev: ChemicalVector, dopamine: float = 0.0, serotonin: float = 0.0,
                norepinephrine: float = 0.0) -> ChemicalVector:
    return ChemicalVector(
        dopamine=prev.dopamine + dopamine,
        serotonin=prev.serotonin + serotonin,
        norepinephrine=prev.norepinephrine + norepinephrine,
    ).clamped()


def is_flow(chemistry: ChemicalVector, config: Optional[ChemistryConfig] = None) -> bool:
    cfg = config or DEFAULT_CONFIG.chemistry
    return chemistry.dopamine > cfg.flow_dopamine


# ---------------------------------------------------------
# Derived signals
# ---------------------------------------------------------

def dialog_threshold_ms(
    chemistry: ChemicalVector,
    affect: AffectVector,
    config: Optional[ChemistryConfig] = None,
) -> int:
    """
    How long the user may stay quiet before counting as silent.
    A rewarded, satisfied agent waits longer.
    """
    cfg = config or DEFAULT_CONFIG.chemistry
    raw = cfg.dialog_base_ms * (1.0 + chemistry.dopamine / 200.0 + affect.satisfaction / 5.0)
    return int(clamp(raw, cfg.dialog_min_ms, cfg.dialog_max_ms))


def is_user_silent(now_ms: int, last_user_interaction_at: int, threshold_ms: int) -> bool:
    return (now_ms - last_user_interaction_at) > threshold_ms


def voice_pressure(
    base: float,
    chemistry: ChemicalVector,
    consecutive_speeches: int,
    chemistry_enabled: bool = True,
    config: Optional[ChemistryConfig] = None,
) -> float:
    """
    Dopamine above baseline makes the agent a bit more talkative,
    each unanswered utterance makes it a bit less.
    """
    if not chemistry_enabled:
        return base
    cfg = config or DEFAULT_CONFIG.chemistry
    bias = cfg.voice_bias_scale * (
        1.0 - math.exp(-(chemistry.dopamine - cfg.dopamine_baseline) / cfg.voice_bias_width)
    )
    biased = min(1.0, base + max(0.0, bias))
    return max(cfg.voice_floor, biased - cfg.voice_habituation * consecutive_speeches)
