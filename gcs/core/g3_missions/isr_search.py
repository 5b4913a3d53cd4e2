"""
ISR Search
Fixed-wing intelligence, surveillance and reconnaissance sweep over a set of
waypoints. Reports any target the sweep finds to the next mission.
"""

from typing import Any, Dict

from .base import MissionDefinition, flight_schema, push_with_flight_legs
from .targets import consolidate_target_location
from ..g1_mission_definition.parser import WAYPOINTS
from ..g1_mission_definition.task import ISR_SEARCH, Task, TaskBucket

ISR_SEARCH_PARAMETERS = {
    "type": "object",
    "required": ["altitude", "waypoints"],
    "properties": {
        "altitude": {"type": "number", "exclusiveMinimum": 0},
        "waypoints": WAYPOINTS,
    },
}


class ISRSearch(MissionDefinition):
    mission_name = ISR_SEARCH
    job_types = frozenset({ISR_SEARCH})

    def information_schema(self) -> Dict[str, Any]:
        return flight_schema({"isrSearch": ISR_SEARCH_PARAMETERS}, ["isrSearch"], self.options)

    def build_tasks(self, parameters: Dict[str, Any]) -> TaskBucket:
        return push_with_flight_legs(
            TaskBucket(),
            ISR_SEARCH,
            [Task("isrSearch", parameters["isrSearch"])],
            parameters,
            self.options,
        )

    def generate_completion_parameters(self) -> Dict[str, Any]:
        location = consolidate_target_location(self.results_for("isrSearch"))
        if location is None:
            return {}
        return {"targetLocation": location}
