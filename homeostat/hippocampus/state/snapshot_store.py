# snapshot_store.py
# Homeostat - JSON persistence for the DriveState (and the trait signal log)
#
# File layout:
#   {"version": 1, "state": {...DriveState.to_dict()...}, "signal_log": {"signals": [...]}}
#
# A missing file is a normal first launch (load returns None).
# A file that exists but cannot be read back raises SnapshotCorruptedError;
# the orchestrator treats that as fatal instead of silently starting over.

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from homeostat.cortex.persona.trait_drift import SignalLog
from homeostat.errors import SnapshotCorruptedError
from homeostat.kernel.state import DriveState


logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
DEFAULT_PATH = os.path.join("data", "drive_state.json")


@dataclass(frozen=True)
class Snapshot:
    state: DriveState
    signal_log: SignalLog = SignalLog()


class SnapshotStore:
    def __init__(self, path: str = DEFAULT_PATH):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> Optional[Snapshot]:
        """Load the snapshot from disk, or None if there is none yet."""
        if not self.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotCorruptedError(f"cannot read snapshot {self.path}: {e}") from e

        if not isinstance(data, dict) or "state" not in data:
            raise SnapshotCorruptedError(f"snapshot {self.path} has no state")

        state = DriveState.from_dict(data["state"])
        signal_log = SignalLog.from_dict(data.get("signal_log") or {"signals": []})
        logger.info("Loaded snapshot from %s (%d trait signals)", self.path, len(signal_log))
        return Snapshot(state=state, signal_log=signal_log)

    def save(self, state: DriveState, signal_log: Optional[SignalLog] = None) -> None:
        """Write atomically: temp file first, then replace."""
        payload = {
            "version": SNAPSHOT_VERSION,
            "state": state.to_dict(),
            "signal_log": (signal_log or SignalLog()).to_dict(),
        }
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug("Saved snapshot to %s", self.path)
