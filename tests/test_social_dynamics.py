import pytest

from homeostat.brainstem.social import social_dynamics
from homeostat.kernel.state import SocialDynamics


def test_cost_rises_with_each_unanswered_utterance_and_halves_on_reply():
    s = SocialDynamics()
    assert s.social_cost == pytest.approx(0.05)

    s = social_dynamics.update(s, agent_spoke=True)
    assert s.social_cost == pytest.approx(0.20)

    s = social_dynamics.update(s, agent_spoke=True)
    assert s.social_cost == pytest.approx(0.50)
    assert s.consecutive_without_response == 2

    s = social_dynamics.update(s, user_responded=True)
    assert s.social_cost == pytest.approx(0.25)
    assert s.consecutive_without_response == 0
    assert s.user_presence_score == 1.0


def test_idle_tick_strictly_lowers_elevated_cost():
    s = SocialDynamics(social_cost=0.25, user_presence_score=1.0)
    after = social_dynamics.decay(s, silence_ms=60_000)

    assert after.user_presence_score == pytest.approx(0.9)
    # presence > 0.5 => fast recovery (0.95)
    assert after.social_cost == pytest.approx(0.05 + 0.2 * 0.95)
    assert after.social_cost < s.social_cost


def test_budget_spend_clamp_and_refill():
    s = SocialDynamics()
    s = social_dynamics.update(s, agent_spoke=True)
    assert s.autonomy_budget == pytest.approx(0.8)

    for _ in range(10):
        s = social_dynamics.update(s, agent_spoke=True)
    assert s.autonomy_budget == 0.0
    assert s.social_cost == 1.0
    assert not social_dynamics.can_speak(s)

    half = SocialDynamics(autonomy_budget=0.5)
    assert social_dynamics.update(half, user_responded=True).autonomy_budget == pytest.approx(0.8)


def test_presence_halfway_through_silence_window():
    after = social_dynamics.decay(SocialDynamics(), silence_ms=300_000)
    assert after.user_presence_score == pytest.approx(0.5)
    # exactly 0.5 is not "present" => slow decay rate
    expected = 0.05 + (0.05 - 0.05) * 0.99
    assert after.social_cost == pytest.approx(expected)


def test_presence_reaches_zero_and_never_goes_negative():
    after = social_dynamics.decay(SocialDynamics(), silence_ms=10_000_000)
    assert after.user_presence_score == 0.0


def test_both_flags_count_speech_then_relief():
    s = social_dynamics.update(SocialDynamics(), agent_spoke=True, user_responded=True)
    assert s.social_cost == pytest.approx(0.10)
    assert s.consecutive_without_response == 0


def test_cost_never_drops_below_baseline():
    s = SocialDynamics()
    for _ in range(5):
        s = social_dynamics.update(s, user_responded=True)
    assert s.social_cost == pytest.approx(0.05)
