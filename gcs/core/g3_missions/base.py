"""
Mission Definition Interface
A mission definition turns operator parameters and vehicle assignments into
a TaskBucket, and hands completion parameters on to the next mission.

Each mission type is one flat implementation of this interface, selected by
mission name through the registry in this package.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional

from ..g1_mission_definition.assignment import VehicleAssignment
from ..g1_mission_definition.information import MissionInformation, NO_LAND, NO_TAKEOFF
from ..g1_mission_definition.parser import LAND, TAKEOFF, MissionParseError, build_schema, information_errors
from ..g1_mission_definition.task import Task, TaskBucket, TaskResult
from ..g4_platform_interface.vehicle_state import VehicleRoster

log = logging.getLogger(__name__)


class MissionDefinition(ABC):
    """
    Abstract interface for all mission types.

    Subclasses set mission_name and job_types, and implement
    information_schema() and build_tasks().
    """

    mission_name: str = ""
    job_types: FrozenSet[str] = frozenset()

    def __init__(self,
                 vehicles: VehicleRoster,
                 information: Optional[MissionInformation],
                 assignment: VehicleAssignment,
                 options: Optional[Dict[str, bool]] = None):
        self.vehicles = vehicles
        self.information = information
        self.assignment = assignment
        self.options: Dict[str, bool] = dict(options or {})
        self.results: List[TaskResult] = []

    # --- Requirements ---

    def required_job_types(self) -> FrozenSet[str]:
        """Job types that must be present in the assignment before starting."""
        return self.job_types

    def missing_job_types(self) -> List[str]:
        return sorted(self.job_types - self.assignment.job_types())

    @property
    def parameters(self) -> Dict[str, Any]:
        if self.information is None:
            return {}
        return self.information.parameters

    @abstractmethod
    def information_schema(self) -> Dict[str, Any]:
        """JSON schema the mission parameters must satisfy."""
        pass

    def information_errors(self) -> List[str]:
        """Reasons the information is incomplete. Empty when complete."""
        if self.information is None:
            return [f"No mission information for {self.mission_name}"]
        if self.information.mission_name != self.mission_name:
            return [
                f"Information is for '{self.information.mission_name}', "
                f"expected '{self.mission_name}'"
            ]
        return information_errors(self.parameters, self.information_schema())

    def validate(self) -> None:
        """
        Raises:
            MissionParseError: Listing every problem with the information.
        """
        errors = self.information_errors()
        if errors:
            raise MissionParseError(f"{self.mission_name}: " + "; ".join(errors))

    # --- Task generation ---

    def generate_tasks(self) -> Optional[TaskBucket]:
        """
        Builds the TaskBucket for this mission.

        Returns None if the mission information is incomplete.
        """
        errors = self.information_errors()
        if errors:
            log.debug(f"[{self.mission_name}] Incomplete information: {errors}")
            return None
        return self.build_tasks(copy.deepcopy(self.parameters))

    @abstractmethod
    def build_tasks(self, parameters: Dict[str, Any]) -> TaskBucket:
        """Fixed task template for this mission type. Parameters are validated."""
        pass

    # --- Completion ---

    def record_result(self, result: TaskResult) -> None:
        """Collects a successful task result reported by a vehicle."""
        self.results.append(result)

    def results_for(self, task_type: str) -> List[Dict[str, Any]]:
        return [r.parameters for r in self.results if r.task.task_type == task_type]

    def generate_completion_parameters(self) -> Dict[str, Any]:
        """Named parameters handed to the next mission. Empty by default."""
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(assignment={self.assignment.to_dict()})"


# --- Takeoff / land legs shared by the fixed-wing missions ---

def flight_schema(properties: Dict[str, Any],
                  required: List[str],
                  options: Dict[str, bool]) -> Dict[str, Any]:
    """
    Adds the takeoff and land parameters to a schema unless the options
    switch those legs off.
    """
    properties = dict(properties)
    required = list(required)
    if not options.get(NO_TAKEOFF):
        properties["takeoff"] = TAKEOFF
        required.insert(0, "takeoff")
    if not options.get(NO_LAND):
        properties["land"] = LAND
        required.append("land")
    return build_schema(properties, required)


def push_with_flight_legs(tasks: TaskBucket,
                          job_type: str,
                          core_tasks: List[Task],
                          parameters: Dict[str, Any],
                          options: Dict[str, bool]) -> TaskBucket:
    """Pushes takeoff, the core tasks, then land, honouring noTakeoff/noLand."""
    if not options.get(NO_TAKEOFF):
        tasks.push(job_type, Task("takeoff", parameters["takeoff"]))
    for task in core_tasks:
        tasks.push(job_type, task)
    if not options.get(NO_LAND):
        tasks.push(job_type, Task("land", parameters["land"]))
    return tasks
