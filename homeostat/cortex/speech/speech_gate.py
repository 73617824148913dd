# speech_gate.py
# Homeostat - Speech Gate (Volition -> Expression Policy)
#
# One pipeline, two stages, evaluated in order. Either stage may veto.
#
#   Stage A - Volition: "is there a reason to speak at all right now?"
#             sleep, empty content, repetition, refractory window,
#             pressure vs. threshold (poetic penalty, silence bonus)
#   Stage B - Expression policy: "how much of it should be said?"
#             temperament-weighted score, dopamine breaker, silence
#             breaker, energy clipping, narcissism accounting
#
# Contract between the stages:
#   - Stage A owns timing and pressure. Stage B never looks at clocks.
#   - Stage B owns length and tone. Stage A never shortens text.
#   - Direct replies (USER_REPLY) only pass the empty-content check of
#     Stage A; the user asked, so pressure and refractory do not apply.
#   - The social budget check runs before Stage A for autonomous speech.
#
# All randomness comes from the injected random.Random so decisions are
# reproducible with a seed.

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from homeostat.amygdala.chemistry import chemical_reward
from homeostat.brainstem.social import social_dynamics
from homeostat.config import ExpressionConfig, VolitionConfig, KernelConfig, DEFAULT_CONFIG
from homeostat.cortex.speech import text_metrics
from homeostat.kernel.bounds import clamp01
from homeostat.kernel.state import (
    AffectVector,
    ChemicalVector,
    DriveState,
    MetabolicState,
    TraitVector,
)


logger = logging.getLogger(__name__)


class ExpressionContext(str, Enum):
    AUTONOMOUS = "AUTONOMOUS"          # free-running volition
    GOAL_EXECUTED = "GOAL_EXECUTED"    # speaking to advance an active goal
    USER_REPLY = "USER_REPLY"          # answering the user

    @property
    def is_autonomous(self) -> bool:
        return self != ExpressionContext.USER_REPLY


# ----------------------------------------------------------------------
# Stage A - Volition
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class VolitionDecision:
    should_speak: bool
    reason: str
    pressure: float = 0.0
    threshold: float = 0.0


def should_initiate_thought(silence_s: float, min_silence_s: float = 2.0) -> bool:
    return silence_s > min_silence_s


def silence_bonus(silence_s: float, config: Optional[VolitionConfig] = None) -> float:
    cfg = config or DEFAULT_CONFIG.volition
    return min(cfg.silence_bonus_max, max(0.0, silence_s) / cfg.silence_bonus_full_seconds)


def evaluate_volition(
    content: str,
    pressure: float,
    silence_s: float,
    affect: AffectVector,
    history: Sequence[str],
    last_speak_at: int,
    now: int,
    poetic_mode: bool = False,
    is_sleeping: bool = False,
    config: Optional[VolitionConfig] = None,
) -> VolitionDecision:
    cfg = config or DEFAULT_CONFIG.volition

    if is_sleeping:
        return VolitionDecision(False, "SLEEPING")

    text = (content or "").strip()
    if not text:
        return VolitionDecision(False, "NO_CONTENT")

    if text_metrics.is_repetition(text, history, cfg.repetition_prefix, cfg.repetition_min_length):
        return VolitionDecision(False, "REPETITION")

    if now - last_speak_at < cfg.refractory_ms:
        return VolitionDecision(False, "REFRACTORY")

    threshold = cfg.base_threshold
    if affect.fear > cfg.fear_threshold:
        threshold += cfg.fear_penalty

    if not poetic_mode:
        score = text_metrics.poetic_score(text)
        if score:
            pressure = max(0.0, pressure - cfg.poetic_penalty * score)

    total = pressure + silence_bonus(silence_s, cfg)
    if total > threshold:
        return VolitionDecision(True, "PRESSURE", total, threshold)
    return VolitionDecision(False, "LOW_PRESSURE", total, threshold)


# ----------------------------------------------------------------------
# Stage B - Expression policy
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ExpressionInput:
    text: str
    goal_alignment: float
    novelty: float
    social_cost: float
    context: ExpressionContext = ExpressionContext.USER_REPLY
    user_is_silent: bool = False
    consecutive_speeches: int = 0


@dataclass(frozen=True)
class ExpressionDecision:
    say: bool
    text: str
    novelty: float
    social_cost: float
    base_score: float
    threshold: float
    reason: str = "SCORE"


def narcissism_penalty(text: str, config: Optional[ExpressionConfig] = None) -> float:
    cfg = config or DEFAULT_CONFIG.expression
    ratio = text_metrics.self_focus_ratio(text)
    if ratio <= cfg.narcissism_threshold:
        return 0.0
    return min(cfg.narcissism_max_penalty, (ratio - cfg.narcissism_threshold) * 2.0)


def decide_expression(
    inp: ExpressionInput,
    traits: TraitVector,
    metabolic: MetabolicState,
    chemistry: ChemicalVector,
    shadow_mode: bool = False,
    rng: Optional[random.Random] = None,
    config: Optional[ExpressionConfig] = None,
) -> ExpressionDecision:
    """
    Final say/shorten/mute decision.

    The narcissism penalty only changes the *reported* social cost and
    novelty; the decision itself uses the costs that came in, and the
    reported values feed the next cycle's dynamics.
    """
    cfg = config or DEFAULT_CONFIG.expression
    rng = rng or random.Random()

    goal = clamp01(inp.goal_alignment)
    novelty = clamp01(inp.novelty)
    cost = clamp01(inp.social_cost)
    dopamine = chemistry.dopamine
    energy = metabolic.energy
    shorten = text_metrics.shorten_to_sentences

    w_goal = 0.4 + 0.4 * clamp01(traits.conscientiousness)
    w_novelty = 0.2 + 0.5 * clamp01(traits.curiosity)
    w_social = 0.1 + 0.5 * clamp01(traits.social_awareness)
    base_score = w_goal * goal + w_novelty * novelty - w_social * cost

    base_threshold = cfg.shadow_threshold if shadow_mode else cfg.base_threshold
    threshold = base_threshold + 0.2 * (1.0 - energy / 100.0) - 0.1 * clamp01(traits.arousal)

    say = base_score > threshold
    reason = "SCORE" if say else "BELOW_THRESHOLD"
    text = inp.text

    def mute(why: str) -> None:
        nonlocal say, reason
        if say:
            reason = why
        say = False

    # dopamine breaker: autonomous narration stays short, stale loops get muted
    if inp.context.is_autonomous and not shadow_mode:
        text = shorten(text, 2)
        if novelty < 0.8:
            text = shorten(text, 1)
        if novelty < 0.6 and goal < 0.8 and rng.random() > 0.3:
            mute("LOW_NOVELTY")
        if novelty < 0.4:
            mute("LOW_NOVELTY")
        if dopamine >= cfg.saturated_dopamine and novelty < cfg.dopamine_breaker_novelty:
            if rng.random() < 0.8 - goal * 0.5:
                mute("DOPAMINE_BREAKER")
                logger.info("Dopamine breaker: dopamine=%.0f novelty=%.2f", dopamine, novelty)

    # silence breaker: saturated reward talking into silence
    talking_to_silence = inp.context.is_autonomous or (
        inp.context == ExpressionContext.USER_REPLY and inp.user_is_silent
    )
    if talking_to_silence and not shadow_mode:
        if dopamine >= cfg.saturated_dopamine and novelty < cfg.dopamine_breaker_novelty:
            text = shorten(text, 2)
            if novelty < 0.3:
                text = shorten(text, 1)
            if novelty < cfg.silence_breaker_mute_novelty:
                mute("SILENCE_BREAKER")
                logger.info("Silence breaker: dopamine=%.0f novelty=%.2f", dopamine, novelty)

    # energy clipping
    if not shadow_mode:
        if energy < 40:
            text = shorten(text, max(1, int(energy // 30)))
        if energy < 30:
            if goal < 0.7:
                mute("LOW_ENERGY")
            else:
                text = shorten(text, 1)
        if energy < 20:
            text = shorten(text, 1)

    if shadow_mode and novelty < 0.2 and cost > 0.6:
        text = shorten(text, 1)

    if not shadow_mode and say and novelty < 0.3 and traits.social_awareness > 0.5:
        text = shorten(text, 1)

    if not shadow_mode and energy < 20 and traits.conscientiousness > 0.5:
        if base_score < threshold + 0.1:
            mute("LOW_ENERGY")
        else:
            text = shorten(text, 1)

    if shadow_mode:
        say = True
        reason = "SHADOW"

    reported_cost = cost
    reported_novelty = novelty
    if inp.context.is_autonomous:
        penalty = narcissism_penalty(inp.text, cfg)
        if penalty > 0:
            # self-talk on an unanswered streak costs more
            streak_cost = text_metrics.estimate_social_cost(inp.text, inp.consecutive_speeches)
            reported_cost = clamp01(max(cost, streak_cost) + penalty)
            reported_novelty = clamp01(novelty - penalty * 0.5)
            logger.debug("Self-focused phrasing, social cost +%.2f", penalty)

    return ExpressionDecision(
        say=say,
        text=text,
        novelty=reported_novelty,
        social_cost=reported_cost,
        base_score=base_score,
        threshold=threshold,
        reason=reason,
    )


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SpeechCandidate:
    text: str
    internal_thought: str = ""
    pressure: float = 0.5
    goal_alignment: float = 0.5


@dataclass(frozen=True)
class GateDecision:
    say: bool
    text: str
    stage: str                      # "SOCIAL", "VOLITION" or "EXPRESSION"
    reason: str
    novelty: float = 1.0
    social_cost: float = 0.0
    volition: Optional[VolitionDecision] = None
    expression: Optional[ExpressionDecision] = None


class SpeechGate:
    """
    Volition and ExpressionPolicy as a single gate.

    Usage:

        gate = SpeechGate(rng=random.Random(7))
        decision = gate.evaluate(candidate, state, now, ExpressionContext.AUTONOMOUS)
        if decision.say:
            ... dispatch AGENT_SPOKE with decision.text
    """

    def __init__(self, config: Optional[KernelConfig] = None, rng: Optional[random.Random] = None,
                 shadow_mode: bool = False):
        self.config = config or DEFAULT_CONFIG
        self.rng = rng or random.Random()
        self.shadow_mode = shadow_mode

    def user_is_silent(self, state: DriveState, now: int) -> bool:
        threshold = chemical_reward.dialog_threshold_ms(state.chemistry, state.affect, self.config.chemistry)
        return chemical_reward.is_user_silent(now, state.last_user_contact, threshold)

    def evaluate(
        self,
        candidate: SpeechCandidate,
        state: DriveState,
        now: int,
        context: ExpressionContext,
        history_window: int = 5,
    ) -> GateDecision:
        cfg = self.config
        text = (candidate.text or "").strip()
        history = state.thought_history[-history_window:]
        novelty = text_metrics.compute_novelty(text, history)
        social_cost = clamp01(max(text_metrics.estimate_social_cost(text), state.social.social_cost))

        # social budget
        if context.is_autonomous and not social_dynamics.can_speak(state.social, cfg.social):
            return GateDecision(False, text, "SOCIAL", "BUDGET_EXHAUSTED", novelty, social_cost)

        # Stage A
        if context.is_autonomous:
            pressure = chemical_reward.voice_pressure(
                candidate.pressure,
                state.chemistry,
                state.consecutive_agent_speeches,
                state.chemistry_enabled,
                cfg.chemistry,
            )
            silence_s = max(0, now - state.silence_start) / 1000.0
            volition = evaluate_volition(
                content=text,
                pressure=pressure,
                silence_s=silence_s,
                affect=state.affect,
                history=history,
                last_speak_at=state.last_speak_at,
                now=now,
                poetic_mode=state.poetic_mode,
                is_sleeping=state.metabolic.is_sleeping,
                config=cfg.volition,
            )
        elif text:
            volition = VolitionDecision(True, "DIRECT_REPLY", candidate.pressure, 0.0)
        else:
            volition = VolitionDecision(False, "NO_CONTENT")

        if not volition.should_speak:
            return GateDecision(False, text, "VOLITION", volition.reason, novelty, social_cost, volition=volition)

        # Stage B
        expression = decide_expression(
            ExpressionInput(
                text=text,
                goal_alignment=candidate.goal_alignment,
                novelty=novelty,
                social_cost=social_cost,
                context=context,
                user_is_silent=self.user_is_silent(state, now),
                consecutive_speeches=state.consecutive_agent_speeches,
            ),
            traits=state.traits,
            metabolic=state.metabolic,
            chemistry=state.chemistry,
            shadow_mode=self.shadow_mode,
            rng=self.rng,
            config=cfg.expression,
        )
        return GateDecision(
            say=expression.say,
            text=expression.text,
            stage="EXPRESSION",
            reason=expression.reason,
            novelty=expression.novelty,
            social_cost=expression.social_cost,
            volition=volition,
            expression=expression,
        )
