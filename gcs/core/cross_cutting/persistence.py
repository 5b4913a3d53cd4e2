"""
Sequencer persistence.
The operator configuration of the sequencer, saved as a plain JSON document
so a restarted ground station can pick up where it left off.

Only configuration is stored. The roster and any task buckets are rebuilt
from live traffic.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Literal, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

log = logging.getLogger(__name__)


class SnapshotError(Exception):
    """Raised when a snapshot file cannot be read or does not validate."""
    pass


class SequencerSnapshot(BaseModel):
    """
    {missionType, range, options, activeVehicleMapping, requireConfirmation}
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mission_type: Literal["land", "underwater"] = Field(default="land", alias="missionType")
    mission_range: Tuple[int, int] = Field(default=(0, 0), alias="range")
    options: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
    active_vehicle_mapping: Dict[str, Dict[int, str]] = Field(
        default_factory=dict, alias="activeVehicleMapping"
    )
    require_confirmation: bool = Field(default=True, alias="requireConfirmation")

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def save_snapshot(snapshot: SequencerSnapshot, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(snapshot.to_document(), f, indent=2)
    log.info(f"[Persistence] Saved sequencer snapshot to {path}")
    return path


def load_snapshot(path: Union[str, Path]) -> SequencerSnapshot:
    """
    Raises:
        SnapshotError: If the file is missing, not JSON, or not a snapshot.
    """
    path = Path(path)
    try:
        with open(path, "r") as f:
            document = json.load(f)
    except FileNotFoundError:
        raise SnapshotError(f"Snapshot file not found: {path}")
    except json.JSONDecodeError as e:
        raise SnapshotError(f"Invalid JSON in snapshot {path}: {e}")

    try:
        snapshot = SequencerSnapshot.model_validate(document)
    except ValidationError as e:
        raise SnapshotError(f"Invalid snapshot {path}: {e}")
    log.info(f"[Persistence] Loaded sequencer snapshot from {path}")
    return snapshot
