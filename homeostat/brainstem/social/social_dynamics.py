# social_dynamics.py
# Homeostat - Social Dynamics (soft pressure against over-talking)
#
# social_cost     - rises with every unanswered utterance, halves on reply
# autonomy_budget - spent by speaking, refilled by replies and time
# user_presence   - linear decay over a silence window
#
# The tick decay is the only place presence and passive recovery happen.

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from homeostat.config import SocialConfig, DEFAULT_CONFIG
from homeostat.kernel.bounds import clamp01
from homeostat.kernel.state import SocialDynamics


def update(
    state: SocialDynamics,
    agent_spoke: bool = False,
    user_responded: bool = False,
    config: Optional[SocialConfig] = None,
) -> SocialDynamics:
    """
    Event-driven update. When both flags are set the agent utterance is
    counted first and the reply then relieves it.
    """
    cfg = config or DEFAULT_CONFIG.social
    cost = state.social_cost
    budget = state.autonomy_budget
    presence = state.user_presence_score
    consecutive = state.consecutive_without_response

    if agent_spoke:
        consecutive += 1
        cost += cfg.cost_per_speech * consecutive
        budget -= cfg.budget_per_speech

    if user_responded:
        consecutive = 0
        cost *= cfg.user_response_relief
        presence = 1.0
        budget += cfg.user_response_budget_boost

    return SocialDynamics(
        social_cost=cost,
        autonomy_budget=budget,
        user_presence_score=presence,
        consecutive_without_response=consecutive,
    ).clamped()


def decay(
    state: SocialDynamics,
    silence_ms: float,
    config: Optional[SocialConfig] = None,
) -> SocialDynamics:
    """Passive per-tick recovery, driven by time since the last user message."""
    cfg = config or DEFAULT_CONFIG.social
    baseline = cfg.baseline_cost

    presence = clamp01(1.0 - max(0.0, silence_ms) / cfg.presence_decay_time_ms)
    rate = cfg.decay_rate_user_present if presence > 0.5 else cfg.decay_rate_user_absent
    cost = baseline + (state.social_cost - baseline) * rate

    return replace(
        state,
        social_cost=cost,
        autonomy_budget=state.autonomy_budget + cfg.budget_regen_per_tick,
        user_presence_score=presence,
    ).clamped()


def can_speak(state: SocialDynamics, config: Optional[SocialConfig] = None) -> bool:
    cfg = config or DEFAULT_CONFIG.social
    return state.autonomy_budget >= cfg.min_budget_to_speak
