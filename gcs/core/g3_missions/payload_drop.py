"""
Payload Drop
Fixed-wing run that releases a payload along a two-waypoint approach. The
drop point reported by the aircraft becomes the retrieval point for the
ground or underwater rescue that follows.
"""

from typing import Any, Dict

from .base import MissionDefinition, flight_schema, push_with_flight_legs
from .targets import consolidate_target_location
from ..g1_mission_definition.parser import WAYPOINTS
from ..g1_mission_definition.task import PAYLOAD_DROP, Task, TaskBucket

PAYLOAD_DROP_PARAMETERS = {
    "type": "object",
    "required": ["waypoints"],
    "properties": {
        "waypoints": dict(WAYPOINTS, minItems=2, maxItems=2),
    },
}


class PayloadDrop(MissionDefinition):
    mission_name = PAYLOAD_DROP
    job_types = frozenset({PAYLOAD_DROP})

    def information_schema(self) -> Dict[str, Any]:
        return flight_schema({"payloadDrop": PAYLOAD_DROP_PARAMETERS}, ["payloadDrop"], self.options)

    def build_tasks(self, parameters: Dict[str, Any]) -> TaskBucket:
        return push_with_flight_legs(
            TaskBucket(),
            PAYLOAD_DROP,
            [Task("payloadDrop", parameters["payloadDrop"])],
            parameters,
            self.options,
        )

    def generate_completion_parameters(self) -> Dict[str, Any]:
        location = consolidate_target_location(self.results_for("payloadDrop"))
        if location is None:
            return {}
        return {"retrieveTarget": location}
