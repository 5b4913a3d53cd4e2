"""
Component 1: Task & TaskBucket
Defines the unit of mission work and the capability-keyed container that
groups generated tasks by the job type required to perform them.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple

# Job types a vehicle may hold. A mission declares which of these it needs.
ISR_SEARCH = "isrSearch"
VTOL_SEARCH = "vtolSearch"
PAYLOAD_DROP = "payloadDrop"
UGV_RESCUE = "ugvRescue"
UUV_RESCUE = "uuvRescue"

JOB_TYPES = (ISR_SEARCH, VTOL_SEARCH, PAYLOAD_DROP, UGV_RESCUE, UUV_RESCUE)


@dataclass(frozen=True)
class Task:
    """
    One atomic unit of mission work, e.g. "retrieveTarget" with the
    coordinates of the target to retrieve.
    """
    task_type: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # Tasks never share parameter dicts with the caller.
        object.__setattr__(self, "parameters", copy.deepcopy(dict(self.parameters)))

    def to_dict(self) -> Dict[str, Any]:
        """Returns a detached copy in the wire layout ({"taskType": ..., **params})."""
        return {"taskType": self.task_type, **copy.deepcopy(self.parameters)}


@dataclass(frozen=True)
class TaskResult:
    """Outcome of a task as reported back by the vehicle that ran it."""
    task_id: str
    vehicle_id: int
    task: Task
    success: bool = True
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "parameters", copy.deepcopy(dict(self.parameters)))


class TaskBucket:
    """
    Ordered multimap from job type to the tasks filed under it.

    Keys replay in first-insertion order and each key's tasks replay in
    push order. Pushing to an existing key only appends.
    """

    def __init__(self):
        self._tasks: Dict[str, List[Task]] = {}

    def push(self, job_type: str, task: Task) -> None:
        self._tasks.setdefault(job_type, []).append(task)

    def entries(self) -> Iterator[Tuple[str, List[Task]]]:
        """Yields (job_type, tasks) pairs. Each call starts a fresh pass."""
        for job_type, tasks in self._tasks.items():
            yield job_type, list(tasks)

    def is_empty(self) -> bool:
        return not self._tasks

    def job_types(self) -> List[str]:
        return list(self._tasks)

    def tasks_for(self, job_type: str) -> List[Task]:
        return list(self._tasks.get(job_type, []))

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            job_type: [task.to_dict() for task in tasks]
            for job_type, tasks in self._tasks.items()
        }

    def __iter__(self) -> Iterator[Tuple[str, List[Task]]]:
        return self.entries()

    def __len__(self) -> int:
        return sum(len(tasks) for tasks in self._tasks.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, TaskBucket):
            return NotImplemented
        return list(self.entries()) == list(other.entries())

    def __repr__(self) -> str:
        summary = ", ".join(f"{k}: {len(v)}" for k, v in self._tasks.items())
        return f"TaskBucket({summary})"
