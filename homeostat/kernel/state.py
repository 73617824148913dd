# state.py
# Homeostat - DriveState
#
# Immutable snapshot of everything the kernel knows about itself.
# Only the reducer produces new DriveStates; every other component
# reads a snapshot and hands back new values or events.
#
# All sub-vectors are frozen dataclasses so a snapshot can be passed
# into async code by value and compared with == in tests.

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, Optional, Tuple

from homeostat.errors import SnapshotCorruptedError
from homeostat.kernel.bounds import clamp, clamp01, clamp100, as_number


MAX_THOUGHT_HISTORY = 20
MAX_CONVERSATION = 50

SOCIAL_COST_BASELINE = 0.05
TRAIT_MIN = 0.3
TRAIT_MAX = 0.7

GOAL_SOURCES = ("curiosity", "empathy", "survival", "user")


# ----------------------------------------------------------------------
# Vectors
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class AffectVector:
    fear: float = 0.1
    curiosity: float = 0.8
    frustration: float = 0.0
    satisfaction: float = 0.5

    def clamped(self) -> "AffectVector":
        return AffectVector(
            fear=clamp01(self.fear),
            curiosity=clamp01(self.curiosity),
            frustration=clamp01(self.frustration),
            satisfaction=clamp01(self.satisfaction),
        )


@dataclass(frozen=True)
class MetabolicState:
    energy: float = 100.0
    cognitive_load: float = 10.0
    is_sleeping: bool = False

    def clamped(self) -> "MetabolicState":
        return MetabolicState(
            energy=clamp100(self.energy),
            cognitive_load=clamp100(self.cognitive_load),
            is_sleeping=bool(self.is_sleeping),
        )


@dataclass(frozen=True)
class ChemicalVector:
    dopamine: float = 55.0
    serotonin: float = 60.0
    norepinephrine: float = 50.0

    def clamped(self) -> "ChemicalVector":
        return ChemicalVector(
            dopamine=clamp100(self.dopamine),
            serotonin=clamp100(self.serotonin),
            norepinephrine=clamp100(self.norepinephrine),
        )


BASELINE_CHEMISTRY = ChemicalVector()


@dataclass(frozen=True)
class SocialDynamics:
    social_cost: float = SOCIAL_COST_BASELINE
    autonomy_budget: float = 1.0
    user_presence_score: float = 0.5
    consecutive_without_response: int = 0

    def clamped(self) -> "SocialDynamics":
        return SocialDynamics(
            social_cost=clamp(self.social_cost, SOCIAL_COST_BASELINE, 1.0),
            autonomy_budget=clamp01(self.autonomy_budget),
            user_presence_score=clamp01(self.user_presence_score),
            consecutive_without_response=max(0, int(self.consecutive_without_response)),
        )


@dataclass(frozen=True)
class TraitVector:
    """Five slow behavioral sliders, always inside the [0.3, 0.7] band."""

    verbosity: float = 0.4
    arousal: float = 0.3
    conscientiousness: float = 0.7
    social_awareness: float = 0.6
    curiosity: float = 0.5

    def clamped(self) -> "TraitVector":
        return TraitVector(**{
            f.name: clamp(getattr(self, f.name), TRAIT_MIN, TRAIT_MAX)
            for f in fields(self)
        })

    @staticmethod
    def dimensions() -> Tuple[str, ...]:
        return tuple(f.name for f in fields(TraitVector))


# ----------------------------------------------------------------------
# Goals
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Goal:
    id: str
    description: str
    priority: float = 0.5
    progress: float = 0.0
    source: str = "user"
    created_at: int = 0


@dataclass(frozen=True)
class GoalState:
    active_goal: Optional[Goal] = None
    last_goals: Tuple[Goal, ...] = ()               # newest first
    goals_formed_timestamps: Tuple[int, ...] = ()
    last_user_interaction_at: int = 0
    last_goal_formed_at: Optional[int] = None


# ----------------------------------------------------------------------
# Misc
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class MoodDamping:
    """Memory for the biological damping applied to mood shifts."""

    last_shift_at: Optional[int] = None
    smoothed_fear: float = 0.0
    smoothed_curiosity: float = 0.0
    consecutive_shifts: int = 0


@dataclass(frozen=True)
class ConversationTurn:
    role: str           # "user" / "assistant"
    text: str
    kind: str = "speech"


@dataclass(frozen=True)
class DriveState:
    affect: AffectVector = field(default_factory=AffectVector)
    metabolic: MetabolicState = field(default_factory=MetabolicState)
    chemistry: ChemicalVector = field(default_factory=ChemicalVector)
    social: SocialDynamics = field(default_factory=SocialDynamics)
    traits: TraitVector = field(default_factory=TraitVector)
    goal_state: GoalState = field(default_factory=GoalState)
    damping: MoodDamping = field(default_factory=MoodDamping)

    consecutive_agent_speeches: int = 0
    ticks_since_last_reward: int = 0
    thought_history: Tuple[str, ...] = ()
    conversation: Tuple[ConversationTurn, ...] = ()
    last_speech_novelty: Optional[float] = None

    autonomous_mode: bool = False
    chemistry_enabled: bool = True
    poetic_mode: bool = False
    has_consolidated_this_sleep: bool = False

    last_speak_at: int = 0
    silence_start: int = 0
    last_user_interaction_at: int = 0

    @property
    def last_user_contact(self) -> int:
        """When the user last spoke, as seen by silence checks."""
        return self.goal_state.last_user_interaction_at or self.last_user_interaction_at

    # ---- Serialization helpers -------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dict; tuples become lists."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriveState":
        """
        Strict restore of a full snapshot.
        Anything that cannot be coerced raises SnapshotCorruptedError.
        """
        if not isinstance(data, dict):
            raise SnapshotCorruptedError("snapshot root is not an object")
        return merge_snapshot(cls(), data)


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------

def create_initial_state(now_ms: int, traits: Optional[TraitVector] = None) -> DriveState:
    """
    Fresh baseline state for a new session (or a Reset).
    Traits are passed through so identity survives resets.
    """
    return DriveState(
        traits=(traits or TraitVector()).clamped(),
        goal_state=GoalState(last_user_interaction_at=now_ms),
        silence_start=now_ms,
        last_user_interaction_at=now_ms,
    )


def push_bounded(items: Tuple, item, limit: int) -> Tuple:
    """Append and drop the oldest entries beyond limit."""
    merged = items + (item,)
    if len(merged) > limit:
        merged = merged[-limit:]
    return merged


# ----------------------------------------------------------------------
# Snapshot merging (Hydrate)
# ----------------------------------------------------------------------

_VECTOR_FIELDS = {
    "affect": AffectVector,
    "metabolic": MetabolicState,
    "chemistry": ChemicalVector,
    "social": SocialDynamics,
    "traits": TraitVector,
}

_INT_FIELDS = (
    "consecutive_agent_speeches",
    "ticks_since_last_reward",
    "last_speak_at",
    "silence_start",
    "last_user_interaction_at",
)

_BOOL_FIELDS = (
    "autonomous_mode",
    "chemistry_enabled",
    "poetic_mode",
    "has_consolidated_this_sleep",
)


def _merge_vector(current, data: Any, name: str):
    if not isinstance(data, dict):
        raise SnapshotCorruptedError(f"'{name}' is not an object")
    changes = {}
    for f in fields(current):
        if f.name not in data:
            continue
        raw = data[f.name]
        if isinstance(getattr(current, f.name), bool):
            if not isinstance(raw, bool):
                raise SnapshotCorruptedError(f"'{name}.{f.name}' is not a boolean")
            changes[f.name] = raw
            continue
        number = as_number(raw)
        if number is None:
            raise SnapshotCorruptedError(f"'{name}.{f.name}' is not a number")
        changes[f.name] = int(number) if isinstance(getattr(current, f.name), int) else number
    return replace(current, **changes).clamped()


def _goal_from_dict(data: Any) -> Goal:
    if not isinstance(data, dict) or not isinstance(data.get("description"), str):
        raise SnapshotCorruptedError("goal entry is malformed")
    source = data.get("source", "user")
    if source not in GOAL_SOURCES:
        raise SnapshotCorruptedError(f"unknown goal source '{source}'")
    priority = as_number(data.get("priority", 0.5))
    progress = as_number(data.get("progress", 0.0))
    created_at = as_number(data.get("created_at", 0))
    if priority is None or progress is None or created_at is None:
        raise SnapshotCorruptedError("goal numbers are malformed")
    return Goal(
        id=str(data.get("id", f"goal-{int(created_at)}")),
        description=data["description"],
        priority=clamp01(priority),
        progress=clamp01(progress),
        source=source,
        created_at=int(created_at),
    )


def _merge_goal_state(current: GoalState, data: Any) -> GoalState:
    if not isinstance(data, dict):
        raise SnapshotCorruptedError("'goal_state' is not an object")
    changes: Dict[str, Any] = {}
    if "active_goal" in data:
        raw = data["active_goal"]
        changes["active_goal"] = None if raw is None else _goal_from_dict(raw)
    if "last_goals" in data:
        if not isinstance(data["last_goals"], (list, tuple)):
            raise SnapshotCorruptedError("'goal_state.last_goals' is not a list")
        changes["last_goals"] = tuple(_goal_from_dict(g) for g in data["last_goals"])
    if "goals_formed_timestamps" in data:
        stamps = data["goals_formed_timestamps"]
        if not isinstance(stamps, (list, tuple)) or any(as_number(s) is None for s in stamps):
            raise SnapshotCorruptedError("'goal_state.goals_formed_timestamps' is malformed")
        changes["goals_formed_timestamps"] = tuple(int(s) for s in stamps)
    for key in ("last_user_interaction_at", "last_goal_formed_at"):
        if key in data:
            raw = data[key]
            if raw is None and key == "last_goal_formed_at":
                changes[key] = None
                continue
            number = as_number(raw)
            if number is None:
                raise SnapshotCorruptedError(f"'goal_state.{key}' is not a number")
            changes[key] = int(number)
    return replace(current, **changes)


def _merge_damping(current: MoodDamping, data: Any) -> MoodDamping:
    if not isinstance(data, dict):
        raise SnapshotCorruptedError("'damping' is not an object")
    changes: Dict[str, Any] = {}
    for key in ("last_shift_at", "smoothed_fear", "smoothed_curiosity", "consecutive_shifts"):
        if key not in data:
            continue
        raw = data[key]
        if raw is None and key == "last_shift_at":
            changes[key] = None
            continue
        number = as_number(raw)
        if number is None:
            raise SnapshotCorruptedError(f"'damping.{key}' is not a number")
        if key in ("last_shift_at", "consecutive_shifts"):
            changes[key] = max(0, int(number))
        else:
            changes[key] = number
    return replace(current, **changes)


def merge_snapshot(state: DriveState, data: Dict[str, Any]) -> DriveState:
    """
    Deep-merge a (possibly partial) persisted snapshot into state.
    Sub-vectors are merged field by field and clamped.
    """
    changes: Dict[str, Any] = {}

    for key, _cls in _VECTOR_FIELDS.items():
        if key in data:
            changes[key] = _merge_vector(getattr(state, key), data[key], key)

    if "goal_state" in data:
        changes["goal_state"] = _merge_goal_state(state.goal_state, data["goal_state"])

    if "damping" in data:
        changes["damping"] = _merge_damping(state.damping, data["damping"])

    for key in _INT_FIELDS:
        if key in data:
            number = as_number(data[key])
            if number is None:
                raise SnapshotCorruptedError(f"'{key}' is not a number")
            changes[key] = max(0, int(number))

    for key in _BOOL_FIELDS:
        if key in data:
            if not isinstance(data[key], bool):
                raise SnapshotCorruptedError(f"'{key}' is not a boolean")
            changes[key] = data[key]

    if "thought_history" in data:
        history = data["thought_history"]
        if not isinstance(history, (list, tuple)) or not all(isinstance(t, str) for t in history):
            raise SnapshotCorruptedError("'thought_history' is malformed")
        changes["thought_history"] = tuple(history[-MAX_THOUGHT_HISTORY:])

    if "conversation" in data:
        turns = data["conversation"]
        if not isinstance(turns, (list, tuple)):
            raise SnapshotCorruptedError("'conversation' is not a list")
        parsed = []
        for turn in turns:
            if not isinstance(turn, dict) or not isinstance(turn.get("text"), str):
                raise SnapshotCorruptedError("conversation turn is malformed")
            parsed.append(ConversationTurn(
                role=str(turn.get("role", "user")),
                text=turn["text"],
                kind=str(turn.get("kind", "speech")),
            ))
        changes["conversation"] = tuple(parsed[-MAX_CONVERSATION:])

    if "last_speech_novelty" in data:
        raw = data["last_speech_novelty"]
        number = None if raw is None else as_number(raw)
        if raw is not None and number is None:
            raise SnapshotCorruptedError("'last_speech_novelty' is not a number")
        changes["last_speech_novelty"] = None if number is None else clamp01(number)

    return replace(state, **changes)
