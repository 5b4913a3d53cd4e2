"""
Component 2: Mission Information & Options
Operator-entered payloads for each mission type, the per-mission option
toggles, and the mission layouts for each vehicle domain.
"""

import copy
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .task import ISR_SEARCH, VTOL_SEARCH, PAYLOAD_DROP, UGV_RESCUE, UUV_RESCUE

# Missions share their identifiers with the job type they mainly need.
MISSION_NAMES = (ISR_SEARCH, VTOL_SEARCH, PAYLOAD_DROP, UGV_RESCUE, UUV_RESCUE)

MISSION_TITLES: Dict[str, str] = {
    ISR_SEARCH: "ISR Search",
    VTOL_SEARCH: "VTOL Search",
    PAYLOAD_DROP: "Payload Drop",
    UGV_RESCUE: "UGV Rescue",
    UUV_RESCUE: "UUV Rescue",
}

LAND = "land"
UNDERWATER = "underwater"

LAYOUTS: Dict[str, List[str]] = {
    LAND: [ISR_SEARCH, VTOL_SEARCH, PAYLOAD_DROP, UGV_RESCUE],
    UNDERWATER: [ISR_SEARCH, VTOL_SEARCH, PAYLOAD_DROP, UUV_RESCUE],
}

NO_TAKEOFF = "noTakeoff"
NO_LAND = "noLand"

# Missions that accept options, and the options each one accepts.
SUPPORTED_OPTIONS: Dict[str, List[str]] = {
    ISR_SEARCH: [NO_TAKEOFF, NO_LAND],
    PAYLOAD_DROP: [NO_TAKEOFF, NO_LAND],
}


class MissionOptionError(ValueError):
    """Raised when an option is set on a mission that does not support it."""
    pass


class MissionInformation(BaseModel):
    """
    Parameter payload for one mission, as entered by the operator.

    Payloads arrive camelCase ({"missionName": ..., "parameters": {...}}).
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mission_name: str = Field(alias="missionName")
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "MissionInformation":
        return cls.model_validate(copy.deepcopy(payload))

    def merged(self, completion_parameters: Dict[str, Any]) -> "MissionInformation":
        """
        Returns a copy with the previous mission's completion parameters
        laid over this mission's parameters. Completion values win.
        """
        parameters = copy.deepcopy(self.parameters)
        parameters.update(copy.deepcopy(completion_parameters))
        return MissionInformation(mission_name=self.mission_name, parameters=parameters)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def default_options() -> Dict[str, Dict[str, bool]]:
    """All supported options, switched off."""
    return {
        mission_name: {option: False for option in options}
        for mission_name, options in SUPPORTED_OPTIONS.items()
    }


class MissionOptions:
    """Boolean toggles scoped per mission name."""

    def __init__(self, values: Optional[Dict[str, Dict[str, bool]]] = None):
        self._values = default_options()
        for mission_name, options in (values or {}).items():
            for option, value in options.items():
                self.set(mission_name, option, value)

    def set(self, mission_name: str, option: str, value: bool) -> None:
        if mission_name not in SUPPORTED_OPTIONS:
            raise MissionOptionError(f"Mission '{mission_name}' has no options")
        if option not in SUPPORTED_OPTIONS[mission_name]:
            raise MissionOptionError(
                f"Unknown option '{option}' for mission '{mission_name}'. "
                f"Supported: {SUPPORTED_OPTIONS[mission_name]}"
            )
        self._values[mission_name][option] = bool(value)

    def for_mission(self, mission_name: str) -> Dict[str, bool]:
        """Options for one mission (empty for missions without options)."""
        return dict(self._values.get(mission_name, {}))

    def to_dict(self) -> Dict[str, Dict[str, bool]]:
        return copy.deepcopy(self._values)

    def reset(self) -> None:
        self._values = default_options()

    def __eq__(self, other) -> bool:
        if not isinstance(other, MissionOptions):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"MissionOptions({self._values})"
