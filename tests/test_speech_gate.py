import random
from dataclasses import replace

import pytest

from homeostat.cortex.speech import speech_gate, text_metrics
from homeostat.cortex.speech.speech_gate import (
    ExpressionContext,
    ExpressionInput,
    SpeechCandidate,
    SpeechGate,
)
from homeostat.kernel.state import (
    AffectVector,
    ChemicalVector,
    GoalState,
    MetabolicState,
    SocialDynamics,
    TraitVector,
)


class FixedRng:
    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


NOW = 5_000_000
TRAITS = TraitVector()
AWAKE = MetabolicState(energy=100.0)
BASELINE = ChemicalVector()


def volition(content="A new idea about tides.", pressure=0.4, silence_s=0.0, **kwargs):
    values = dict(
        content=content,
        pressure=pressure,
        silence_s=silence_s,
        affect=AffectVector(fear=0.1),
        history=(),
        last_speak_at=0,
        now=NOW,
    )
    values.update(kwargs)
    return speech_gate.evaluate_volition(**values)


# ----------------------------------------------------------------------
# Stage A
# ----------------------------------------------------------------------

def test_volition_vetoes():
    assert volition(is_sleeping=True).reason == "SLEEPING"
    assert volition(content="   ").reason == "NO_CONTENT"
    assert volition(history=("A new idea about tides, again.",)).reason == "REPETITION"
    assert volition(last_speak_at=NOW - 1000).reason == "REFRACTORY"


def test_silence_bonus_lifts_pressure_over_threshold():
    assert volition(pressure=0.4, silence_s=0.0).reason == "LOW_PRESSURE"
    decision = volition(pressure=0.4, silence_s=30.0)
    assert decision.should_speak
    assert decision.pressure == pytest.approx(0.7)


def test_silence_bonus_caps():
    assert speech_gate.silence_bonus(6.0) == pytest.approx(0.1)
    assert speech_gate.silence_bonus(600.0) == pytest.approx(0.3)


def test_fear_raises_threshold():
    decision = volition(pressure=0.6, affect=AffectVector(fear=0.9))
    assert decision.reason == "LOW_PRESSURE"
    assert decision.threshold == pytest.approx(0.7)


def test_poetic_words_cost_pressure_unless_poetic_mode():
    text = "The void hums and the silence listens."
    assert volition(content=text, pressure=0.6).reason == "LOW_PRESSURE"
    assert volition(content=text, pressure=0.6, poetic_mode=True).reason == "PRESSURE"


def test_should_initiate_thought():
    assert not speech_gate.should_initiate_thought(1.0)
    assert speech_gate.should_initiate_thought(2.5)


# ----------------------------------------------------------------------
# Stage B
# ----------------------------------------------------------------------

def expression(inp, rng=None, energy=100.0, dopamine=55.0, shadow=False):
    return speech_gate.decide_expression(
        inp,
        traits=TRAITS,
        metabolic=MetabolicState(energy=energy),
        chemistry=ChemicalVector(dopamine=dopamine),
        shadow_mode=shadow,
        rng=rng or FixedRng(0.1),
    )


def test_direct_reply_passes_untouched():
    text = "Sure. Here is how. It takes three steps."
    out = expression(ExpressionInput(text, goal_alignment=1.0, novelty=1.0, social_cost=0.05))
    assert out.say
    assert out.reason == "SCORE"
    assert out.text == text
    assert out.base_score == pytest.approx(0.68 + 0.45 - 0.4 * 0.05)


def test_autonomous_narration_is_shortened():
    inp = ExpressionInput("First one. Second one. Third one.", goal_alignment=0.5, novelty=0.7,
                          social_cost=0.05, context=ExpressionContext.AUTONOMOUS)
    out = expression(inp)
    assert out.say
    assert out.text == "First one."


def test_stale_autonomous_content_is_muted():
    inp = ExpressionInput("Same old thing.", goal_alignment=0.5, novelty=0.3,
                          social_cost=0.05, context=ExpressionContext.AUTONOMOUS)
    out = expression(inp, rng=FixedRng(0.9))
    assert not out.say
    assert out.reason == "LOW_NOVELTY"


def test_dopamine_breaker():
    inp = ExpressionInput("Still thinking about it.", goal_alignment=0.5, novelty=0.45,
                          social_cost=0.05, context=ExpressionContext.AUTONOMOUS)
    out = expression(inp, dopamine=96.0, rng=FixedRng(0.1))
    assert not out.say
    assert out.reason == "DOPAMINE_BREAKER"


def test_silence_breaker_on_reply_to_silent_user():
    inp = ExpressionInput("Yes, as I said.", goal_alignment=1.0, novelty=0.1, social_cost=0.05,
                          context=ExpressionContext.USER_REPLY, user_is_silent=True)
    out = expression(inp, dopamine=96.0)
    assert not out.say
    assert out.reason == "SILENCE_BREAKER"


def test_low_energy_mutes_unimportant_speech():
    inp = ExpressionInput("Here is a thought. And another.", goal_alignment=0.5, novelty=1.0, social_cost=0.05)
    out = expression(inp, energy=25.0)
    assert not out.say
    assert out.reason == "LOW_ENERGY"


def test_shadow_mode_always_speaks():
    inp = ExpressionInput("Meh.", goal_alignment=0.0, novelty=0.0, social_cost=1.0)
    out = expression(inp, shadow=True)
    assert out.say
    assert out.reason == "SHADOW"


def test_narcissism_only_changes_reported_values():
    text = "I think my consciousness is evolving and I am learning."
    assert text_metrics.self_focus_ratio(text) == pytest.approx(0.6)

    inp = ExpressionInput(text, goal_alignment=0.9, novelty=1.0, social_cost=0.1,
                          context=ExpressionContext.AUTONOMOUS)
    out = expression(inp)
    assert out.say
    assert out.social_cost == pytest.approx(0.6)
    assert out.novelty == pytest.approx(0.75)
    assert out.base_score == pytest.approx(0.68 * 0.9 + 0.45 * 1.0 - 0.4 * 0.1)

    streak = expression(replace(inp, consecutive_speeches=2))
    assert streak.social_cost == pytest.approx(0.2 + 0.5)
    assert streak.say == out.say
    assert streak.base_score == out.base_score


def test_seeded_rng_makes_decisions_reproducible():
    inp = ExpressionInput("Maybe. Perhaps.", goal_alignment=0.5, novelty=0.5, social_cost=0.05,
                          context=ExpressionContext.AUTONOMOUS)
    first = [expression(inp, rng=r, dopamine=96.0).say for r in [random.Random(7)] * 20]
    second = [expression(inp, rng=r, dopamine=96.0).say for r in [random.Random(7)] * 20]
    assert first == second


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------

def test_gate_budget_check_runs_first(awake_autonomous_state):
    state = replace(awake_autonomous_state, social=SocialDynamics(autonomy_budget=0.1))
    decision = SpeechGate(rng=FixedRng(0.1)).evaluate(
        SpeechCandidate("Hello there."), state, NOW, ExpressionContext.AUTONOMOUS
    )
    assert not decision.say
    assert decision.stage == "SOCIAL"


def test_gate_refractory_for_autonomous(awake_autonomous_state, now_ms):
    state = replace(awake_autonomous_state, last_speak_at=now_ms - 500)
    decision = SpeechGate(rng=FixedRng(0.1)).evaluate(
        SpeechCandidate("Hello there.", pressure=1.0), state, now_ms, ExpressionContext.AUTONOMOUS
    )
    assert decision.stage == "VOLITION"
    assert decision.reason == "REFRACTORY"


def test_gate_direct_reply_skips_pressure(fresh_state, now_ms):
    gate = SpeechGate(rng=FixedRng(0.1))
    decision = gate.evaluate(SpeechCandidate("Happy to help.", pressure=0.0, goal_alignment=1.0),
                             fresh_state, now_ms, ExpressionContext.USER_REPLY)
    assert decision.say
    assert decision.stage == "EXPRESSION"
    assert decision.volition.reason == "DIRECT_REPLY"

    empty = gate.evaluate(SpeechCandidate(""), fresh_state, now_ms, ExpressionContext.USER_REPLY)
    assert not empty.say
    assert empty.reason == "NO_CONTENT"


def test_gate_social_cost_uses_state_floor(fresh_state, now_ms):
    state = replace(fresh_state, social=SocialDynamics(social_cost=0.5))
    decision = SpeechGate(rng=FixedRng(0.1)).evaluate(
        SpeechCandidate("Happy to help.", goal_alignment=1.0), state, now_ms, ExpressionContext.USER_REPLY
    )
    assert decision.social_cost == pytest.approx(0.5)


def test_user_silence_is_measured_from_the_last_user_turn(fresh_state, now_ms):
    # the agent spoke just now, the user has been quiet for ten minutes
    state = replace(fresh_state, goal_state=GoalState(), last_user_interaction_at=now_ms - 600_000,
                    silence_start=now_ms)
    assert state.last_user_contact == now_ms - 600_000
    assert SpeechGate().user_is_silent(state, now_ms)

    recent = replace(state, goal_state=GoalState(last_user_interaction_at=now_ms - 1_000))
    assert recent.last_user_contact == now_ms - 1_000
    assert not SpeechGate().user_is_silent(recent, now_ms)
