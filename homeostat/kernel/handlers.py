# handlers.py
# Homeostat - event handlers
#
# One pure function per event type: (state, event, config) -> ReducerResult.
# Handlers orchestrate calls into the leaf subsystems and describe side
# effects as Outputs. They never raise for bad payloads; a payload that is
# missing required fields (or has the wrong types) returns the state
# unchanged with at most a log output.

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from homeostat.amygdala.affect import affect_regulator
from homeostat.amygdala.affect.affect_regulator import AffectDeltas
from homeostat.amygdala.chemistry import chemical_reward
from homeostat.amygdala.chemistry.chemical_reward import Activity, ChemistryContext
from homeostat.brainstem.clock import adaptive_clock
from homeostat.brainstem.metabolic import metabolic_cycle
from homeostat.brainstem.social import social_dynamics
from homeostat.config import KernelConfig
from homeostat.cortex.goals import goal_formation
from homeostat.cortex.speech import text_metrics
from homeostat.errors import SnapshotCorruptedError
from homeostat.kernel.bounds import as_number, clamp01
from homeostat.kernel.events import (
    Event,
    Output,
    OutputType,
    ReducerResult,
    log,
    publish,
    schedule_tick,
)
from homeostat.kernel.state import (
    BASELINE_CHEMISTRY,
    GOAL_SOURCES,
    MAX_CONVERSATION,
    MAX_THOUGHT_HISTORY,
    ConversationTurn,
    DriveState,
    Goal,
    create_initial_state,
    merge_snapshot,
    push_bounded,
)


# Publish sources / kinds
SOMA = "SOMA"
LIMBIC = "LIMBIC"
NEUROCHEM = "NEUROCHEM"
CORTEX = "CORTEX_FLOW"
SOCIAL = "SOCIAL"

SYSTEM_ALERT = "SYSTEM_ALERT"
STATE_UPDATE = "STATE_UPDATE"
THOUGHT_CANDIDATE = "THOUGHT_CANDIDATE"

_OVERRIDE_TARGETS = {
    "affect": "affect",
    "limbic": "affect",
    "metabolic": "metabolic",
    "soma": "metabolic",
    "chemistry": "chemistry",
    "neuro": "chemistry",
}


def _unchanged(state: DriveState, reason: Optional[str] = None) -> ReducerResult:
    if reason is None:
        return ReducerResult(state, ())
    return ReducerResult(state, (log(reason),))


def _optional_bool(payload: Mapping[str, Any], key: str):
    """(ok, value). ok is False when the key exists with a non-bool value."""
    if key not in payload or payload[key] is None:
        return True, None
    value = payload[key]
    if not isinstance(value, bool):
        return False, None
    return True, value


def _user_is_silent(state: DriveState, now: int, config: KernelConfig) -> bool:
    threshold = chemical_reward.dialog_threshold_ms(state.chemistry, state.affect, config.chemistry)
    return chemical_reward.is_user_silent(now, state.last_user_contact, threshold)


# ----------------------------------------------------------------------
# Tick
# ----------------------------------------------------------------------

def handle_tick(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    if not state.autonomous_mode:
        return _unchanged(state)

    now = event.timestamp
    outputs: List[Output] = []

    silence_ms = max(0, now - state.last_user_interaction_at)
    social = social_dynamics.decay(state.social, silence_ms, config.social)
    result = metabolic_cycle.step(state.metabolic, 0.0, config.metabolic, config.clock)
    affect = affect_regulator.decay(state.affect, config.affect)
    consolidated = state.has_consolidated_this_sleep

    if result.should_sleep:
        consolidated = False
        outputs.append(publish(SOMA, SYSTEM_ALERT, {"msg": "ENERGY CRITICAL. FORCING SLEEP MODE."}, 1.0))

    if result.should_wake:
        consolidated = False
        outputs.append(publish(SOMA, SYSTEM_ALERT, {"msg": "ENERGY RESTORED. WAKING UP."}, 0.5))
        outputs.append(Output(OutputType.TRIGGER_WAKE, {"energy": result.state.energy}))
    elif result.state.is_sleeping:
        outputs.append(publish(SOMA, STATE_UPDATE, {
            "status": "REGENERATING",
            "energy": result.state.energy,
            "is_sleeping": True,
        }, 0.1))
        outputs.append(Output(OutputType.MAYBE_REM_CYCLE, {
            "probability": config.orchestrator.rem_probability,
            "energy": round(result.state.energy),
        }))
        if not consolidated:
            outputs.append(Output(OutputType.MAYBE_DREAM_CONSOLIDATION, {
                "probability": config.orchestrator.consolidation_probability,
            }))

    mode = adaptive_clock.mode_for(result.state.is_sleeping, result.should_wake)
    outputs.append(schedule_tick(adaptive_clock.next_interval(mode, config=config.clock)))

    next_state = replace(
        state,
        social=social,
        metabolic=result.state,
        affect=affect,
        has_consolidated_this_sleep=consolidated,
        ticks_since_last_reward=state.ticks_since_last_reward + 1,
    )
    return ReducerResult(next_state, tuple(outputs))


# ----------------------------------------------------------------------
# Conversation
# ----------------------------------------------------------------------

def handle_user_input(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    text = payload.get("text")
    if text is not None and not isinstance(text, str):
        return _unchanged(state, "USER_INPUT ignored: text is not a string")
    style = payload.get("detected_style")
    if style is not None and not isinstance(style, str):
        return _unchanged(state, "USER_INPUT ignored: detected_style is not a string")

    now = event.timestamp
    metabolic = state.metabolic
    if metabolic.is_sleeping:
        metabolic = metabolic_cycle.force_wake(metabolic)

    poetic = state.poetic_mode
    if style and style.upper() == "POETIC":
        poetic = True
    elif style and style.upper() == "SIMPLE":
        poetic = False

    conversation = state.conversation
    if text:
        conversation = push_bounded(conversation, ConversationTurn("user", text), MAX_CONVERSATION)

    next_state = replace(
        state,
        consecutive_agent_speeches=0,
        ticks_since_last_reward=0,
        last_user_interaction_at=now,
        silence_start=now,
        goal_state=replace(state.goal_state, last_user_interaction_at=now),
        social=social_dynamics.update(state.social, user_responded=True, config=config.social),
        metabolic=metabolic,
        poetic_mode=poetic,
        conversation=conversation,
    )
    return ReducerResult(next_state, ())


def handle_agent_spoke(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        return _unchanged(state, "AGENT_SPOKE ignored: missing text")
    pressure = as_number(payload.get("voice_pressure", 1.0))
    novelty = payload.get("novelty")
    novelty = None if novelty is None else as_number(novelty)

    now = event.timestamp
    next_state = replace(
        state,
        consecutive_agent_speeches=state.consecutive_agent_speeches + 1,
        last_speak_at=now,
        silence_start=now,
        thought_history=push_bounded(state.thought_history, text, MAX_THOUGHT_HISTORY),
        conversation=push_bounded(state.conversation, ConversationTurn("assistant", text), MAX_CONVERSATION),
        social=social_dynamics.update(state.social, agent_spoke=True, config=config.social),
        affect=affect_regulator.apply_speech_response(state.affect, config.affect),
        last_speech_novelty=state.last_speech_novelty if novelty is None else clamp01(novelty),
    )

    outputs = (
        publish(CORTEX, THOUGHT_CANDIDATE, {
            "speech_content": text,
            "voice_pressure": 1.0 if pressure is None else pressure,
            "status": "SPOKEN",
        }, 0.8),
        log("SPEECH", context="SPEECH", energy=next_state.metabolic.energy,
            social_cost=next_state.social.social_cost),
    )
    return ReducerResult(next_state, outputs)


def handle_thought_generated(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    thought = payload.get("thought")
    if not isinstance(thought, str) or not thought.strip():
        return _unchanged(state, "THOUGHT_GENERATED ignored: missing thought")

    if payload.get("kind") == "diagnostic":
        # visible to the user, kept out of the repetition history
        conversation = push_bounded(state.conversation, ConversationTurn("assistant", thought, "thought"),
                                    MAX_CONVERSATION)
        return ReducerResult(replace(state, conversation=conversation), (log(thought, context="DIAGNOSTIC"),))

    affect = state.affect
    if not state.poetic_mode:
        affect = affect_regulator.apply_poetic_cost(affect, text_metrics.poetic_score(thought), config.affect)

    next_state = replace(
        state,
        affect=affect,
        thought_history=push_bounded(state.thought_history, thought, MAX_THOUGHT_HISTORY),
    )
    return ReducerResult(next_state, ())


def handle_tool_result(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    next_state = replace(state, ticks_since_last_reward=0)
    return ReducerResult(next_state, (log("TOOL_REWARD: tool result received, resetting ticks_since_last_reward",
                                          tool=payload.get("tool")),))


# ----------------------------------------------------------------------
# Sleep
# ----------------------------------------------------------------------

def handle_sleep_start(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    next_state = replace(
        state,
        metabolic=metabolic_cycle.force_sleep(state.metabolic),
        chemistry=BASELINE_CHEMISTRY,
        has_consolidated_this_sleep=True,
    )
    outputs = (
        publish(SOMA, SYSTEM_ALERT, {
            "event": "SLEEP_START",
            "energy": state.metabolic.energy,
            "message": "Agent entering sleep mode",
        }, 0.9),
        Output(OutputType.TRIGGER_CONSOLIDATION, {"reason": "SLEEP_START"}),
    )
    return ReducerResult(next_state, outputs)


def handle_sleep_end(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    next_state = replace(
        state,
        metabolic=metabolic_cycle.force_wake(state.metabolic),
        has_consolidated_this_sleep=False,
    )
    outputs = (
        publish(SOMA, SYSTEM_ALERT, {
            "event": "SLEEP_END",
            "energy": state.metabolic.energy,
            "message": "Agent is waking up",
        }, 0.9),
        Output(OutputType.TRIGGER_WAKE, {"energy": state.metabolic.energy}),
    )
    return ReducerResult(next_state, outputs)


# ----------------------------------------------------------------------
# Affect / chemistry
# ----------------------------------------------------------------------

def handle_mood_shift(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    if "fear_delta" not in payload and "curiosity_delta" not in payload:
        return _unchanged(state, "MOOD_SHIFT ignored: no deltas")
    fear = as_number(payload.get("fear_delta", 0.0))
    curiosity = as_number(payload.get("curiosity_delta", 0.0))
    if fear is None or curiosity is None:
        return _unchanged(state, "MOOD_SHIFT ignored: deltas are not numbers")

    fear, curiosity, damping = affect_regulator.damp_mood_shift(
        state.damping, fear, curiosity, event.timestamp, config.damping
    )
    affect = affect_regulator.apply_stimulus(
        state.affect,
        AffectDeltas(fear=fear, curiosity=curiosity),
        surprise=payload.get("surprise") is True,
        config=config.affect,
    )
    return ReducerResult(replace(state, affect=affect, damping=damping), ())


def handle_neuro_update(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    delta = payload.get("delta")
    activity = payload.get("activity")
    if delta is None and activity is None:
        return _unchanged(state, "NEURO_UPDATE ignored: no delta or activity")

    chemistry = state.chemistry
    outputs: List[Output] = []

    if delta is not None:
        if not isinstance(delta, Mapping):
            return _unchanged(state, "NEURO_UPDATE ignored: delta is not an object")
        amounts: Dict[str, float] = {}
        for key in ("dopamine", "serotonin", "norepinephrine"):
            if key in delta:
                number = as_number(delta[key])
                if number is None:
                    return _unchanged(state, f"NEURO_UPDATE ignored: {key} is not a number")
                amounts[key] = number
        chemistry = chemical_reward.apply_delta(chemistry, **amounts)
        if payload.get("reason"):
            outputs.append(log(f"NEURO_UPDATE: {payload['reason']}", delta=amounts))

    if activity is not None:
        try:
            kind = Activity(activity)
        except ValueError:
            return _unchanged(state, f"NEURO_UPDATE ignored: unknown activity {activity!r}")
        if state.chemistry_enabled:
            novelty = payload.get("novelty", state.last_speech_novelty)
            novelty = None if novelty is None else as_number(novelty)
            ctx = ChemistryContext(
                energy=state.metabolic.energy,
                activity=kind,
                traits=state.traits,
                user_is_silent=_user_is_silent(state, event.timestamp, config),
                novelty=novelty,
                consecutive_agent_speeches=state.consecutive_agent_speeches,
                ticks_since_reward=state.ticks_since_last_reward,
            )
            chemistry = chemical_reward.update(chemistry, ctx, config.chemistry)

    was_flow = chemical_reward.is_flow(state.chemistry, config.chemistry)
    is_flow = chemical_reward.is_flow(chemistry, config.chemistry)
    if was_flow != is_flow:
        outputs.append(publish(NEUROCHEM, SYSTEM_ALERT, {
            "event": "CHEM_FLOW_ON" if is_flow else "CHEM_FLOW_OFF",
            "dopamine": chemistry.dopamine,
            "activity": activity,
        }, 0.6))

    return ReducerResult(replace(state, chemistry=chemistry), tuple(outputs))


# ----------------------------------------------------------------------
# Toggles
# ----------------------------------------------------------------------

def handle_toggle_autonomy(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    ok, enabled = _optional_bool(payload, "enabled")
    if not ok:
        return _unchanged(state, "TOGGLE_AUTONOMY ignored: enabled is not a boolean")
    value = (not state.autonomous_mode) if enabled is None else enabled

    outputs: List[Output] = [log(f"Autonomous mode {'ON' if value else 'OFF'}")]
    if value and not state.autonomous_mode:
        outputs.append(schedule_tick(adaptive_clock.next_interval(adaptive_clock.ClockMode.AWAKE, config=config.clock)))
    return ReducerResult(replace(state, autonomous_mode=value), tuple(outputs))


def handle_toggle_chemistry(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    ok, enabled = _optional_bool(payload, "enabled")
    if not ok:
        return _unchanged(state, "TOGGLE_CHEMISTRY ignored: enabled is not a boolean")
    value = (not state.chemistry_enabled) if enabled is None else enabled
    return ReducerResult(replace(state, chemistry_enabled=value), (log(f"Chemistry {'ON' if value else 'OFF'}"),))


def handle_toggle_style(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    ok, enabled = _optional_bool(payload, "enabled")
    if not ok:
        return _unchanged(state, "TOGGLE_STYLE ignored: enabled is not a boolean")
    value = (not state.poetic_mode) if enabled is None else enabled
    return ReducerResult(replace(state, poetic_mode=value), (log(f"Poetic mode {'ON' if value else 'OFF'}"),))


# ----------------------------------------------------------------------
# Goals
# ----------------------------------------------------------------------

def _goal_from_payload(raw: Any, now: int) -> Optional[Goal]:
    if isinstance(raw, str):
        raw = {"description": raw}
    if not isinstance(raw, Mapping):
        return None
    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        return None
    source = raw.get("source", "user")
    if source not in GOAL_SOURCES:
        return None
    priority = as_number(raw.get("priority", 0.5))
    if priority is None:
        return None
    created_at = as_number(raw.get("created_at", now))
    created_at = now if created_at is None else int(created_at)
    return Goal(
        id=str(raw.get("id") or f"goal-{created_at}"),
        description=description.strip(),
        priority=clamp01(priority),
        progress=0.0,
        source=source,
        created_at=created_at,
    )


def handle_goal_formed(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    goal = _goal_from_payload(payload.get("goal"), event.timestamp)
    if goal is None:
        return _unchanged(state, "GOAL_FORMED ignored: missing or malformed goal")

    goal_state = goal_formation.record_formed(state.goal_state, goal, config.goals)
    outputs = (
        log(f"GOAL_FORMED: {goal.description}", goal_id=goal.id, source=goal.source, priority=goal.priority),
        publish(CORTEX, SYSTEM_ALERT, {"event": "GOAL_FORMED", "goal": goal.description, "source": goal.source}, 0.6),
    )
    return ReducerResult(replace(state, goal_state=goal_state), outputs)


def handle_goal_completed(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    active = state.goal_state.active_goal
    if active is None:
        return _unchanged(state, "GOAL_COMPLETED ignored: no active goal")
    outcome = payload.get("outcome", "achieved")
    if outcome not in ("achieved", "abandoned"):
        return _unchanged(state, f"GOAL_COMPLETED ignored: unknown outcome {outcome!r}")

    # only an achieved goal counts as external reward
    next_state = replace(
        state,
        goal_state=replace(state.goal_state, active_goal=None),
        ticks_since_last_reward=0 if outcome == "achieved" else state.ticks_since_last_reward,
    )
    return ReducerResult(next_state, (log(f"GOAL_COMPLETED ({outcome}): {active.description}",
                                          goal_id=active.id),))


# ----------------------------------------------------------------------
# State management
# ----------------------------------------------------------------------

def handle_hydrate(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    snapshot = payload.get("state")
    if not isinstance(snapshot, Mapping):
        return _unchanged(state, "HYDRATE ignored: missing state")
    try:
        next_state = merge_snapshot(state, dict(snapshot))
    except SnapshotCorruptedError as e:
        return _unchanged(state, f"HYDRATE ignored: {e}")
    return ReducerResult(next_state, (log("HYDRATE: state restored"),))


def handle_state_override(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    raw_target = payload.get("target")
    target = _OVERRIDE_TARGETS.get(raw_target) if isinstance(raw_target, str) else None
    key = payload.get("key")
    if target is None or not isinstance(key, str) or "value" not in payload:
        return _unchanged(state, "STATE_OVERRIDE ignored: needs target, key and value")
    current = getattr(state, target)
    if key not in current.__dataclass_fields__:
        return _unchanged(state, f"STATE_OVERRIDE ignored: unknown field {target}.{key}")
    try:
        next_state = merge_snapshot(state, {target: {key: payload["value"]}})
    except SnapshotCorruptedError as e:
        return _unchanged(state, f"STATE_OVERRIDE ignored: {e}")
    return ReducerResult(next_state, (log(f"STATE_OVERRIDE: {target}.{key}", value=payload["value"]),))


def handle_reset(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    next_state = create_initial_state(event.timestamp, traits=state.traits)
    return ReducerResult(next_state, (log("RESET: baseline restored, traits kept"),))


def handle_social_dynamics_update(state: DriveState, event: Event, payload: Mapping[str, Any], config: KernelConfig) -> ReducerResult:
    ok_spoke, agent_spoke = _optional_bool(payload, "agent_spoke")
    ok_resp, user_responded = _optional_bool(payload, "user_responded")
    if not (ok_spoke and ok_resp) or not (agent_spoke or user_responded):
        return _unchanged(state, "SOCIAL_DYNAMICS_UPDATE ignored: nothing to apply")

    social = social_dynamics.update(
        state.social,
        agent_spoke=bool(agent_spoke),
        user_responded=bool(user_responded),
        config=config.social,
    )
    if social == state.social:
        return _unchanged(state)

    outputs = (publish(SOCIAL, STATE_UPDATE, {
        "social_cost": social.social_cost,
        "autonomy_budget": social.autonomy_budget,
        "user_presence_score": social.user_presence_score,
        "consecutive_without_response": social.consecutive_without_response,
    }, 0.3),)
    return ReducerResult(replace(state, social=social), outputs)
