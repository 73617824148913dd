# reducer.py
# Homeostat - the decision kernel
#
#   reduce(state, event) -> ReducerResult(next_state, outputs)
#
# Pure and deterministic: no clocks (time comes from event.timestamp),
# no randomness (probabilistic effects are returned as MAYBE_* outputs),
# no I/O (effects are returned as outputs for the orchestrator to run).
#
# Unknown event types and malformed events are no-ops: the same state
# object comes back with empty or log-only outputs.

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional

from homeostat.config import KernelConfig, DEFAULT_CONFIG
from homeostat.kernel import handlers
from homeostat.kernel.bounds import as_number
from homeostat.kernel.events import Event, EventType, ReducerResult, log
from homeostat.kernel.state import DriveState


Handler = Callable[[DriveState, Event, Mapping[str, Any], KernelConfig], ReducerResult]

HANDLERS: Dict[EventType, Handler] = {
    EventType.TICK: handlers.handle_tick,
    EventType.USER_INPUT: handlers.handle_user_input,
    EventType.AGENT_SPOKE: handlers.handle_agent_spoke,
    EventType.TOOL_RESULT: handlers.handle_tool_result,
    EventType.SLEEP_START: handlers.handle_sleep_start,
    EventType.SLEEP_END: handlers.handle_sleep_end,
    EventType.MOOD_SHIFT: handlers.handle_mood_shift,
    EventType.NEURO_UPDATE: handlers.handle_neuro_update,
    EventType.TOGGLE_AUTONOMY: handlers.handle_toggle_autonomy,
    EventType.TOGGLE_CHEMISTRY: handlers.handle_toggle_chemistry,
    EventType.TOGGLE_STYLE: handlers.handle_toggle_style,
    EventType.GOAL_FORMED: handlers.handle_goal_formed,
    EventType.GOAL_COMPLETED: handlers.handle_goal_completed,
    EventType.THOUGHT_GENERATED: handlers.handle_thought_generated,
    EventType.HYDRATE: handlers.handle_hydrate,
    EventType.STATE_OVERRIDE: handlers.handle_state_override,
    EventType.RESET: handlers.handle_reset,
    EventType.SOCIAL_DYNAMICS_UPDATE: handlers.handle_social_dynamics_update,
}


def _event_type(raw: Any) -> Optional[EventType]:
    if isinstance(raw, EventType):
        return raw
    if isinstance(raw, str):
        try:
            return EventType(raw)
        except ValueError:
            return None
    return None


def reduce(state: DriveState, event: Event, config: Optional[KernelConfig] = None) -> ReducerResult:
    cfg = config or DEFAULT_CONFIG

    event_type = _event_type(getattr(event, "type", None))
    if event_type is None:
        return ReducerResult(state, (log("Unknown event ignored", event_type=str(getattr(event, "type", None))),))

    timestamp = as_number(getattr(event, "timestamp", None))
    if timestamp is None:
        return ReducerResult(state, (log(f"{event_type.value} ignored: timestamp is not a number"),))

    payload = getattr(event, "payload", None)
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        return ReducerResult(state, (log(f"{event_type.value} ignored: payload is not an object"),))

    if not isinstance(event, Event) or event.timestamp != int(timestamp) or event.type != event_type:
        event = Event(event_type, int(timestamp), payload)

    return HANDLERS[event_type](state, event, payload, cfg)
