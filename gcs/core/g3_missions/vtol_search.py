"""
VTOL Search
Quick scan of a search area, followed by a detailed search around the target
location when one is known (entered by the operator or handed over by the
ISR search).
"""

from typing import Any, Dict

from .base import MissionDefinition
from .targets import consolidate_target_location
from ..g1_mission_definition.parser import POINT, WAYPOINTS, build_schema
from ..g1_mission_definition.task import VTOL_SEARCH, Task, TaskBucket

QUICK_SCAN_PARAMETERS = {
    "type": "object",
    "required": ["waypoints"],
    "properties": {"waypoints": WAYPOINTS},
}


class VTOLSearch(MissionDefinition):
    mission_name = VTOL_SEARCH
    job_types = frozenset({VTOL_SEARCH})

    def information_schema(self) -> Dict[str, Any]:
        return build_schema(
            {"quickScan": QUICK_SCAN_PARAMETERS, "targetLocation": POINT},
            ["quickScan"],
        )

    def build_tasks(self, parameters: Dict[str, Any]) -> TaskBucket:
        tasks = TaskBucket()
        tasks.push(VTOL_SEARCH, Task("quickScan", parameters["quickScan"]))

        target = parameters.get("targetLocation")
        if target is not None:
            tasks.push(VTOL_SEARCH, Task("detailedSearch", target))
        return tasks

    def generate_completion_parameters(self) -> Dict[str, Any]:
        # Detailed search results are closer looks, so they take priority.
        location = consolidate_target_location(self.results_for("detailedSearch"))
        if location is None:
            location = consolidate_target_location(self.results_for("quickScan"))
        if location is None:
            return {}
        return {"targetLocation": location}
