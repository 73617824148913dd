# adaptive_clock.py
# Homeostat - Adaptive Clock
#
# Computes how long the orchestrator waits before the next cycle.
# The body decides the base interval (awake / asleep / waking up),
# an optional time dilation stretches or compresses it, and the result
# is always clamped to the global [min, max] window.

from __future__ import annotations

from enum import Enum
from typing import Optional

from homeostat.config import ClockConfig, DEFAULT_CONFIG


class ClockMode(str, Enum):
    AWAKE = "AWAKE"
    ASLEEP = "ASLEEP"
    WAKE_TRANSITION = "WAKE_TRANSITION"


def base_interval(mode: ClockMode, config: Optional[ClockConfig] = None) -> int:
    cfg = config or DEFAULT_CONFIG.clock
    if mode == ClockMode.ASLEEP:
        return cfg.sleep_tick_ms
    if mode == ClockMode.WAKE_TRANSITION:
        return cfg.wake_transition_tick_ms
    return cfg.awake_tick_ms


def next_interval(
    mode: ClockMode,
    time_dilation: float = 1.0,
    config: Optional[ClockConfig] = None,
) -> int:
    """
    time_dilation < 1.0 => faster cycles, > 1.0 => slower cycles.
    """
    cfg = config or DEFAULT_CONFIG.clock
    dilated = base_interval(mode, cfg) * max(0.0, time_dilation)
    return int(max(cfg.min_tick_ms, min(cfg.max_tick_ms, dilated)))


def mode_for(is_sleeping: bool, should_wake: bool) -> ClockMode:
    if should_wake:
        return ClockMode.WAKE_TRANSITION
    if is_sleeping:
        return ClockMode.ASLEEP
    return ClockMode.AWAKE
