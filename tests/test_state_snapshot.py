import json
from dataclasses import replace

import pytest

from homeostat.cortex.persona.trait_drift import SignalLog, TraitSignal
from homeostat.errors import SnapshotCorruptedError
from homeostat.hippocampus.state.snapshot_store import SnapshotStore
from homeostat.kernel.state import (
    AffectVector,
    ConversationTurn,
    DriveState,
    Goal,
    GoalState,
    MoodDamping,
    TraitVector,
    merge_snapshot,
    push_bounded,
)


def busy_state(base):
    goal = Goal(id="g1", description="Ask about tides", priority=0.6, source="curiosity", created_at=5)
    return replace(
        base,
        affect=AffectVector(fear=0.3, curiosity=0.6),
        traits=TraitVector(verbosity=0.55),
        goal_state=GoalState(active_goal=goal, last_goals=(goal,), goals_formed_timestamps=(5,),
                             last_goal_formed_at=5),
        thought_history=("one", "two"),
        conversation=(ConversationTurn("user", "hi"), ConversationTurn("assistant", "hello")),
        last_speech_novelty=0.4,
        autonomous_mode=True,
        damping=MoodDamping(last_shift_at=5, smoothed_fear=0.2, smoothed_curiosity=-0.05, consecutive_shifts=2),
    )


def test_state_survives_dict_round_trip(fresh_state):
    state = busy_state(fresh_state)
    restored = DriveState.from_dict(json.loads(json.dumps(state.to_dict())))
    assert restored == state


@pytest.mark.parametrize("data", [
    [],
    {"affect": 3},
    {"traits": {"verbosity": "high"}},
    {"autonomous_mode": "on"},
    {"goal_state": {"active_goal": {"description": "x", "source": "mars"}}},
    {"thought_history": ["ok", 5]},
    {"conversation": [{"role": "user"}]},
    {"metabolic": {"is_sleeping": 1}},
    {"damping": []},
    {"damping": {"smoothed_fear": "calm"}},
    {"traits": {"verbosity": 10 ** 400}},
])
def test_corrupted_snapshot_raises(data):
    with pytest.raises(SnapshotCorruptedError):
        DriveState.from_dict(data)


def test_merge_clamps_out_of_range_values(fresh_state):
    s = merge_snapshot(fresh_state, {
        "traits": {"arousal": 0.0, "curiosity": 2.0},
        "social": {"social_cost": 0.0},
        "ticks_since_last_reward": -4,
    })
    assert s.traits.arousal == 0.3
    assert s.traits.curiosity == 0.7
    assert s.social.social_cost == 0.05
    assert s.ticks_since_last_reward == 0


def test_merge_restores_and_resets_damping(fresh_state):
    shifted = merge_snapshot(fresh_state, {"damping": {"last_shift_at": 9, "consecutive_shifts": 3.0}})
    assert shifted.damping == MoodDamping(last_shift_at=9, consecutive_shifts=3)
    assert isinstance(shifted.damping.consecutive_shifts, int)

    cleared = merge_snapshot(shifted, {"damping": {"last_shift_at": None}})
    assert cleared.damping == MoodDamping(consecutive_shifts=3)


def test_push_bounded():
    assert push_bounded((1, 2, 3), 4, 3) == (2, 3, 4)
    assert push_bounded((), "a", 3) == ("a",)


# ----------------------------------------------------------------------
# SnapshotStore
# ----------------------------------------------------------------------

def test_missing_file_loads_as_none(tmp_path):
    assert SnapshotStore(str(tmp_path / "none.json")).load() is None


def test_save_and_load(tmp_path, fresh_state):
    store = SnapshotStore(str(tmp_path / "nested" / "drive_state.json"))
    log = SignalLog().add(TraitSignal("curiosity", "increase", True, fresh_state.last_user_interaction_at))
    state = busy_state(fresh_state)

    store.save(state, log)
    assert store.exists()
    assert not (tmp_path / "nested" / "drive_state.json.tmp").exists()

    snapshot = store.load()
    assert snapshot.state == state
    assert snapshot.signal_log == log

    data = json.loads((tmp_path / "nested" / "drive_state.json").read_text(encoding="utf-8"))
    assert data["version"] == 1


def test_unreadable_file_raises(tmp_path):
    path = tmp_path / "drive_state.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SnapshotCorruptedError):
        SnapshotStore(str(path)).load()

    path.write_text(json.dumps({"version": 1}), encoding="utf-8")
    with pytest.raises(SnapshotCorruptedError):
        SnapshotStore(str(path)).load()

    path.write_text(json.dumps({"state": {"metabolic": {"energy": "full"}}}), encoding="utf-8")
    with pytest.raises(SnapshotCorruptedError):
        SnapshotStore(str(path)).load()
