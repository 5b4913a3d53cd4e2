"""
UGV Rescue
Ground vehicle drives to the target, retrieves it, and delivers it.
"""

from typing import Any, Dict

from .base import MissionDefinition
from ..g1_mission_definition.parser import POINT, build_schema
from ..g1_mission_definition.task import UGV_RESCUE, Task, TaskBucket


class UGVRescue(MissionDefinition):
    mission_name = UGV_RESCUE
    job_types = frozenset({UGV_RESCUE})

    def information_schema(self) -> Dict[str, Any]:
        return build_schema(
            {"retrieveTarget": POINT, "deliverTarget": POINT},
            ["retrieveTarget", "deliverTarget"],
        )

    def build_tasks(self, parameters: Dict[str, Any]) -> TaskBucket:
        tasks = TaskBucket()
        tasks.push(UGV_RESCUE, Task("retrieveTarget", parameters["retrieveTarget"]))
        tasks.push(UGV_RESCUE, Task("deliverTarget", parameters["deliverTarget"]))
        return tasks
