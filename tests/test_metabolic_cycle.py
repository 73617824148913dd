import pytest

from homeostat.brainstem.clock import adaptive_clock
from homeostat.brainstem.clock.adaptive_clock import ClockMode
from homeostat.brainstem.metabolic import metabolic_cycle
from homeostat.kernel.state import MetabolicState


def test_exhaustion_falls_asleep_and_regenerates_in_same_step():
    result = metabolic_cycle.step(MetabolicState(energy=19.0))
    assert result.should_sleep
    assert result.state.is_sleeping
    assert result.state.energy == pytest.approx(26.0)
    assert result.tick_hint_ms == 4000


def test_wakes_at_threshold():
    result = metabolic_cycle.step(MetabolicState(energy=90.0, is_sleeping=True))
    assert result.state.energy == pytest.approx(97.0)
    assert not result.state.is_sleeping
    assert result.should_wake
    assert result.tick_hint_ms == 2000


def test_hysteresis_keeps_current_mode_in_between():
    awake = metabolic_cycle.step(MetabolicState(energy=50.0))
    assert not awake.state.is_sleeping
    assert awake.state.energy == pytest.approx(49.9)
    assert not awake.should_sleep

    asleep = metabolic_cycle.step(MetabolicState(energy=50.0, is_sleeping=True))
    assert asleep.state.is_sleeping
    assert asleep.state.energy == pytest.approx(57.0)
    assert not asleep.should_wake


def test_energy_caps_at_100_while_sleeping():
    result = metabolic_cycle.step(MetabolicState(energy=99.0, is_sleeping=True))
    assert result.state.energy == 100.0


def test_action_cost_drains_and_clamps():
    result = metabolic_cycle.step(MetabolicState(energy=25.0), action_cost=30.0)
    assert result.state.energy == 0.0


def test_force_helpers():
    soma = MetabolicState(energy=60.0)
    assert metabolic_cycle.force_sleep(soma).is_sleeping
    assert not metabolic_cycle.force_wake(metabolic_cycle.force_sleep(soma)).is_sleeping
    assert metabolic_cycle.apply_cognitive_load(soma, 500).cognitive_load == 100.0


@pytest.mark.parametrize("mode, expected", [
    (ClockMode.AWAKE, 3000),
    (ClockMode.ASLEEP, 4000),
    (ClockMode.WAKE_TRANSITION, 2000),
])
def test_clock_base_intervals(mode, expected):
    assert adaptive_clock.next_interval(mode) == expected


def test_clock_is_clamped_by_dilation():
    assert adaptive_clock.next_interval(ClockMode.AWAKE, time_dilation=0.01) == 1000
    assert adaptive_clock.next_interval(ClockMode.ASLEEP, time_dilation=100) == 15000


def test_mode_for():
    assert adaptive_clock.mode_for(False, True) == ClockMode.WAKE_TRANSITION
    assert adaptive_clock.mode_for(True, False) == ClockMode.ASLEEP
    assert adaptive_clock.mode_for(False, False) == ClockMode.AWAKE
