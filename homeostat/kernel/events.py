# events.py
# Homeostat - kernel events and outputs
#
# Event  -> consumed by the reducer (one at a time)
# Output -> produced by the reducer, executed by the orchestrator

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Union


class EventType(str, Enum):
    TICK = "TICK"
    USER_INPUT = "USER_INPUT"
    AGENT_SPOKE = "AGENT_SPOKE"
    TOOL_RESULT = "TOOL_RESULT"
    SLEEP_START = "SLEEP_START"
    SLEEP_END = "SLEEP_END"
    MOOD_SHIFT = "MOOD_SHIFT"
    NEURO_UPDATE = "NEURO_UPDATE"
    TOGGLE_AUTONOMY = "TOGGLE_AUTONOMY"
    TOGGLE_CHEMISTRY = "TOGGLE_CHEMISTRY"
    TOGGLE_STYLE = "TOGGLE_STYLE"
    GOAL_FORMED = "GOAL_FORMED"
    GOAL_COMPLETED = "GOAL_COMPLETED"
    THOUGHT_GENERATED = "THOUGHT_GENERATED"
    HYDRATE = "HYDRATE"
    STATE_OVERRIDE = "STATE_OVERRIDE"
    RESET = "RESET"
    SOCIAL_DYNAMICS_UPDATE = "SOCIAL_DYNAMICS_UPDATE"


class OutputType(str, Enum):
    LOG = "LOG"
    PUBLISH = "PUBLISH"
    SCHEDULE_NEXT_TICK = "SCHEDULE_NEXT_TICK"
    TRIGGER_CONSOLIDATION = "TRIGGER_CONSOLIDATION"
    TRIGGER_WAKE = "TRIGGER_WAKE"
    MAYBE_REM_CYCLE = "MAYBE_REM_CYCLE"
    MAYBE_DREAM_CONSOLIDATION = "MAYBE_DREAM_CONSOLIDATION"


@dataclass(frozen=True)
class Event:
    type: Union[EventType, str]
    timestamp: int
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Output:
    type: OutputType
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReducerResult:
    next_state: Any          # DriveState; Any keeps this module import-free
    outputs: Tuple[Output, ...] = ()


# ----------------------------------------------------------------------
# Output builders
# ----------------------------------------------------------------------

def log(message: str, **fields: Any) -> Output:
    payload: Dict[str, Any] = {"message": message}
    payload.update(fields)
    return Output(OutputType.LOG, payload)


def publish(source: str, kind: str, payload: Dict[str, Any], priority: float = 0.5) -> Output:
    return Output(OutputType.PUBLISH, {
        "source": source,
        "type": kind,
        "payload": payload,
        "priority": priority,
    })


def schedule_tick(delay_ms: int) -> Output:
    return Output(OutputType.SCHEDULE_NEXT_TICK, {"delay_ms": delay_ms})
