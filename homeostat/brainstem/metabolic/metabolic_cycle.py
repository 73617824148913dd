# metabolic_cycle.py
# Homeostat - Metabolic Cycle (energy, fatigue, sleep/wake)
#
# Pure functions: soma state in, new soma state out.
# Hysteresis: sleep below 20, wake at 95 or above. Anything in between
# keeps the current mode.

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from homeostat.config import MetabolicConfig, ClockConfig, DEFAULT_CONFIG
from homeostat.kernel.bounds import clamp100
from homeostat.kernel.state import MetabolicState


@dataclass(frozen=True)
class MetabolicResult:
    state: MetabolicState
    should_sleep: bool = False
    should_wake: bool = False
    tick_hint_ms: int = 3000


def step(
    soma: MetabolicState,
    action_cost: float = 0.0,
    config: Optional[MetabolicConfig] = None,
    clock: Optional[ClockConfig] = None,
) -> MetabolicResult:
    """
    Advance the body by one tick.

    Exhaustion is detected and acted on in the same step: an awake body
    under the sleep threshold falls asleep and starts regenerating now,
    not on the next tick.
    """
    cfg = config or DEFAULT_CONFIG.metabolic
    clk = clock or DEFAULT_CONFIG.clock

    energy = soma.energy
    is_sleeping = soma.is_sleeping
    should_sleep = False
    should_wake = False
    tick_hint = clk.awake_tick_ms

    if energy < cfg.sleep_trigger_energy and not is_sleeping:
        should_sleep = True
        is_sleeping = True

    if is_sleeping:
        tick_hint = clk.sleep_tick_ms
        energy = min(100.0, energy + cfg.sleep_regen_rate)

        if energy >= cfg.wake_trigger_energy:
            should_wake = True
            is_sleeping = False
            tick_hint = clk.wake_transition_tick_ms
    else:
        energy = max(0.0, energy - cfg.awake_drain_rate - max(0.0, action_cost))

    return MetabolicResult(
        state=replace(soma, energy=clamp100(energy), is_sleeping=is_sleeping),
        should_sleep=should_sleep,
        should_wake=should_wake,
        tick_hint_ms=tick_hint,
    )


def apply_energy_cost(soma: MetabolicState, cost: float) -> MetabolicState:
    return replace(soma, energy=clamp100(soma.energy - cost))


def apply_cognitive_load(soma: MetabolicState, load: float) -> MetabolicState:
    return replace(soma, cognitive_load=clamp100(soma.cognitive_load + load))


def force_sleep(soma: MetabolicState) -> MetabolicState:
    return replace(soma, is_sleeping=True)


def force_wake(soma: MetabolicState) -> MetabolicState:
    return replace(soma, is_sleeping=False)
