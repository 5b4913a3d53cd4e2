"""
UUV Rescue
Underwater vehicle retrieves the target from the drop point.
"""

from typing import Any, Dict

from .base import MissionDefinition
from ..g1_mission_definition.parser import POINT, build_schema
from ..g1_mission_definition.task import UUV_RESCUE, Task, TaskBucket


class UUVRescue(MissionDefinition):
    mission_name = UUV_RESCUE
    job_types = frozenset({UUV_RESCUE})

    def information_schema(self) -> Dict[str, Any]:
        return build_schema({"retrieveTarget": POINT}, ["retrieveTarget"])

    def build_tasks(self, parameters: Dict[str, Any]) -> TaskBucket:
        tasks = TaskBucket()
        tasks.push(UUV_RESCUE, Task("retrieveTarget", parameters["retrieveTarget"]))
        return tasks
