from dataclasses import replace

import pytest

from homeostat.cortex.goals import goal_formation
from homeostat.cortex.goals.goal_formation import GoalContext
from homeostat.kernel.state import (
    AffectVector,
    ChemicalVector,
    ConversationTurn,
    Goal,
    GoalState,
    MetabolicState,
)


T0 = 1_000_000_000


def make_ctx(now, last_user=T0, **overrides):
    values = dict(
        now=now,
        last_user_interaction_at=last_user,
        metabolic=MetabolicState(energy=80.0),
        chemistry=ChemicalVector(),
        affect=AffectVector(fear=0.1, frustration=0.0),
        conversation=(ConversationTurn("user", "Tell me about deep sea volcanoes!"),),
    )
    values.update(overrides)
    return GoalContext(**values)


def test_no_goal_without_enough_silence():
    assert goal_formation.form_goal(make_ctx(T0 + 30_000), GoalState()) is None


def test_curiosity_goal_uses_last_topic():
    goal = goal_formation.form_goal(make_ctx(T0 + 61_000), GoalState())
    assert goal is not None
    assert goal.source == "curiosity"
    assert goal.priority == pytest.approx(0.6)
    assert goal.description == "Ask the user more about tell me about deep sea volcanoes."


def test_high_dopamine_redirects_to_research():
    goal = goal_formation.form_goal(make_ctx(T0 + 61_000, chemistry=ChemicalVector(dopamine=80.0)), GoalState())
    assert goal.description.startswith("Do deep research or search for new information about")


def test_elevated_fear_forms_empathy_goal():
    goal = goal_formation.form_goal(make_ctx(T0 + 61_000, affect=AffectVector(fear=0.7)), GoalState())
    assert goal.source == "empathy"
    assert goal.priority == pytest.approx(0.9)
    assert goal.description == goal_formation.EMPATHY_DESCRIPTION


def test_fallback_topic_without_user_turns():
    goal = goal_formation.form_goal(make_ctx(T0 + 61_000, conversation=()), GoalState())
    assert goal_formation.FALLBACK_TOPIC in goal.description


@pytest.mark.parametrize("overrides", [
    {"metabolic": MetabolicState(energy=20.0)},
    {"affect": AffectVector(frustration=0.9)},
    {"affect": AffectVector(fear=0.95)},
])
def test_gate_conditions_block(overrides):
    assert goal_formation.form_goal(make_ctx(T0 + 61_000, **overrides), GoalState()) is None


def test_active_goal_blocks_new_one():
    active = Goal(id="g", description="something", created_at=T0)
    assert goal_formation.form_goal(make_ctx(T0 + 61_000), GoalState(active_goal=active)) is None


def test_hourly_limit():
    stamps = tuple(T0 + i for i in range(5))
    assert goal_formation.form_goal(make_ctx(T0 + 61_000), GoalState(goals_formed_timestamps=stamps)) is None


def test_refractory_is_idempotent_while_user_stays_silent():
    now = T0 + 61_000
    first = goal_formation.form_goal(make_ctx(now), GoalState())
    assert first is not None

    state = goal_formation.record_formed(GoalState(), first)
    assert state.active_goal == first
    state = replace(state, active_goal=None)

    # same silence, a bit later: blocked
    assert goal_formation.form_goal(make_ctx(now + 5_000), state) is None
    reason = goal_formation.is_refractory(first.description, make_ctx(now + 5_000), state)
    assert reason == "USER_SILENT_SINCE_LAST_GOAL"

    # after two more minutes of silence only the similarity check still applies
    lapsed = goal_formation.is_refractory(first.description, make_ctx(now + 121_000), state)
    assert lapsed == "SIMILAR_GOAL"
    assert goal_formation.is_refractory("Ask how their garden is doing", make_ctx(now + 121_000), state) is None


def test_similar_goal_blocked_after_user_spoke_again():
    now = T0 + 61_000
    first = goal_formation.form_goal(make_ctx(now), GoalState())
    state = replace(goal_formation.record_formed(GoalState(), first), active_goal=None)

    later_user = now + 1_000
    ctx = make_ctx(later_user + 61_000, last_user=later_user)
    assert goal_formation.is_refractory(first.description, ctx, state) == "SIMILAR_GOAL"


def test_record_formed_keeps_ring_of_three():
    state = GoalState()
    for i in range(5):
        state = goal_formation.record_formed(state, Goal(id=str(i), description=f"goal {i}", created_at=T0 + i))
    assert [g.id for g in state.last_goals] == ["4", "3", "2"]
    assert state.last_goal_formed_at == T0 + 4
    assert len(state.goals_formed_timestamps) == 5


def test_text_similarity():
    assert goal_formation.text_similarity("deep ocean volcanoes", "deep ocean volcanoes") == 1.0
    assert goal_formation.text_similarity("alpha beta gamma", "delta epsilon") == 0.0
