# goal_formation.py
# Homeostat - Goal Formation
#
# Decides when the agent gives itself something to do during silence.
# At most one goal is proposed per call; curiosity goals go through a
# three-layer refractory check so the agent cannot loop on itself:
#
#   1) the last curiosity goal is newer than the last user message
#   2) the new description is a near copy of a recent curiosity goal
#   3) too many curiosity goals in a short burst window

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from homeostat.config import GoalConfig, DEFAULT_CONFIG
from homeostat.kernel.state import (
    AffectVector,
    ChemicalVector,
    ConversationTurn,
    Goal,
    GoalState,
    MetabolicState,
)


logger = logging.getLogger(__name__)

FALLBACK_TOPIC = "the last conversation topic"
EMPATHY_DESCRIPTION = "Check how the user is feeling and refer back to the earlier conversation."


@dataclass(frozen=True)
class GoalContext:
    now: int
    last_user_interaction_at: int
    metabolic: MetabolicState
    chemistry: ChemicalVector
    affect: AffectVector
    conversation: Sequence[ConversationTurn] = ()


# ---------------------------------------------------------
# Text helpers
# ---------------------------------------------------------

def text_similarity(a: str, b: str) -> float:
    """Jaccard similarity over words longer than three characters."""
    words_a = {w for w in a.lower().split() if len(w) > 3}
    words_b = {w for w in b.lower().split() if len(w) > 3}
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def extract_topic(text: str) -> Optional[str]:
    normalized = re.sub(r"[^a-z0-9\s]", " ", text.strip().lower())
    words = normalized.split()
    if not words:
        return None
    return " ".join(words[:6])


def last_topic(conversation: Sequence[ConversationTurn]) -> Optional[str]:
    for turn in reversed(conversation):
        if turn.role != "user" or not turn.text:
            continue
        topic = extract_topic(turn.text)
        if topic:
            return topic
    return None


# ---------------------------------------------------------
# Gate
# ---------------------------------------------------------

def recent_goal_count(goal_state: GoalState, now: int, config: Optional[GoalConfig] = None) -> int:
    cfg = config or DEFAULT_CONFIG.goals
    cutoff = now - cfg.timestamp_window_ms
    return sum(1 for t in goal_state.goals_formed_timestamps if t >= cutoff)


def should_consider_goal(ctx: GoalContext, goal_state: GoalState, config: Optional[GoalConfig] = None) -> bool:
    cfg = config or DEFAULT_CONFIG.goals
    if not cfg.enabled or goal_state.active_goal is not None:
        return False

    silence_ms = ctx.now - ctx.last_user_interaction_at
    enough_silence = silence_ms > cfg.min_silence_ms
    enough_energy = ctx.metabolic.energy > cfg.min_energy
    not_overwhelmed = ctx.affect.frustration < cfg.max_frustration and ctx.affect.fear < cfg.max_fear
    under_limit = recent_goal_count(goal_state, ctx.now, cfg) < cfg.max_per_hour

    return enough_silence and enough_energy and not_overwhelmed and under_limit


def _describe(source: str, ctx: GoalContext, cfg: GoalConfig) -> str:
    if source == "empathy":
        return EMPATHY_DESCRIPTION
    topic = last_topic(ctx.conversation) or FALLBACK_TOPIC
    if ctx.chemistry.dopamine > cfg.research_dopamine:
        # high reward channel => redirect toward action
        return f"Do deep research or search for new information about {topic}."
    return f"Ask the user more about {topic}."


def is_refractory(
    description: str,
    ctx: GoalContext,
    goal_state: GoalState,
    config: Optional[GoalConfig] = None,
) -> Optional[str]:
    """Returns the blocking reason for a curiosity goal, or None."""
    cfg = config or DEFAULT_CONFIG.goals
    recent = sorted(
        (g for g in goal_state.last_goals if g.source == "curiosity"),
        key=lambda g: g.created_at,
        reverse=True,
    )[: cfg.ring_size]

    if recent:
        newest = recent[0]
        if newest.created_at >= ctx.last_user_interaction_at:
            if ctx.now - newest.created_at < cfg.refractory_silence_ms:
                return "USER_SILENT_SINCE_LAST_GOAL"

    for prev in recent:
        similarity = text_similarity(description, prev.description)
        if similarity > cfg.similarity_threshold and ctx.now - prev.created_at < cfg.similarity_cooldown_ms:
            return "SIMILAR_GOAL"

    burst_start = ctx.now - cfg.burst_window_ms
    if sum(1 for g in recent if g.created_at > burst_start) >= cfg.burst_limit:
        return "GOAL_BURST"

    return None


# ---------------------------------------------------------
# Main entry
# ---------------------------------------------------------

def form_goal(ctx: GoalContext, goal_state: GoalState, config: Optional[GoalConfig] = None) -> Optional[Goal]:
    cfg = config or DEFAULT_CONFIG.goals
    if not should_consider_goal(ctx, goal_state, cfg):
        return None

    elevated = ctx.affect.fear > cfg.empathy_trigger or ctx.affect.frustration > cfg.empathy_trigger
    source = "empathy" if elevated else "curiosity"
    description = _describe(source, ctx, cfg)

    if source == "curiosity":
        reason = is_refractory(description, ctx, goal_state, cfg)
        if reason:
            logger.info("Goal formation blocked (%s): %s", reason, description)
            return None

    return Goal(
        id=f"goal-{ctx.now}",
        description=description,
        priority=cfg.empathy_priority if source == "empathy" else cfg.curiosity_priority,
        progress=0.0,
        source=source,
        created_at=ctx.now,
    )


def record_formed(goal_state: GoalState, goal: Goal, config: Optional[GoalConfig] = None) -> GoalState:
    """Make goal active and remember it for the refractory checks."""
    cfg = config or DEFAULT_CONFIG.goals
    cutoff = goal.created_at - cfg.timestamp_window_ms
    stamps = tuple(t for t in goal_state.goals_formed_timestamps if t >= cutoff) + (goal.created_at,)
    return replace(
        goal_state,
        active_goal=goal,
        last_goals=((goal,) + goal_state.last_goals)[: cfg.ring_size],
        goals_formed_timestamps=stamps,
        last_goal_formed_at=goal.created_at,
    )
