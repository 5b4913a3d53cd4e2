"""
Mission Registry
Maps mission names to their MissionDefinition implementations.

These functions act as a simple registry, mapping the mission name used in
layouts, options and assignments to a concrete mission type.
"""

from typing import Dict, Optional, Type

from .base import MissionDefinition
from .isr_search import ISRSearch
from .vtol_search import VTOLSearch
from .payload_drop import PayloadDrop
from .ugv_rescue import UGVRescue
from .uuv_rescue import UUVRescue
from ..g1_mission_definition.assignment import VehicleAssignment
from ..g1_mission_definition.information import MissionInformation
from ..g4_platform_interface.vehicle_state import VehicleRoster

MISSION_REGISTRY: Dict[str, Type[MissionDefinition]] = {
    cls.mission_name: cls
    for cls in (ISRSearch, VTOLSearch, PayloadDrop, UGVRescue, UUVRescue)
}


def get_mission_class(mission_name: str) -> Type[MissionDefinition]:
    """
    Looks up the mission type for a mission name.

    Raises:
        KeyError: If no mission type is registered under the name.
    """
    try:
        return MISSION_REGISTRY[mission_name]
    except KeyError:
        raise KeyError(
            f"Unknown mission '{mission_name}'. Known missions: {list(MISSION_REGISTRY)}"
        ) from None


def create_mission(mission_name: str,
                   vehicles: VehicleRoster,
                   information: Optional[MissionInformation],
                   assignment: VehicleAssignment,
                   options: Optional[Dict[str, bool]] = None) -> MissionDefinition:
    """Instantiates the mission definition registered under mission_name."""
    mission_cls = get_mission_class(mission_name)
    return mission_cls(vehicles, information, assignment, options)


__all__ = [
    "MISSION_REGISTRY",
    "MissionDefinition",
    "ISRSearch",
    "VTOLSearch",
    "PayloadDrop",
    "UGVRescue",
    "UUVRescue",
    "get_mission_class",
    "create_mission",
]
