"""
Component 6: Dispatch Plan
Routes the tasks of the active mission to concrete vehicles and hands them
out one at a time per vehicle.

A task filed under a job type goes to a vehicle that is assigned that job
type for the mission, holds it in the roster, and is connected. Tasks with
no such vehicle stay unassigned until one appears. Nothing is dropped.
"""

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Deque, Dict, Iterator, List, Optional, Set

from ..g1_mission_definition.assignment import VehicleAssignment
from ..g1_mission_definition.task import Task, TaskBucket
from ..g4_platform_interface.vehicle_state import VehicleRoster

log = logging.getLogger(__name__)


class TaskStatus(Enum):
    UNASSIGNED = auto()
    QUEUED = auto()
    DISPATCHED = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass
class TaskRecord:
    task_id: str
    job_type: str
    task: Task
    vehicle_id: Optional[int] = None
    status: TaskStatus = TaskStatus.UNASSIGNED


@dataclass(frozen=True)
class DispatchedTask:
    """Read-only view of a task handed to a vehicle."""
    task_id: str
    vehicle_id: int
    mission_name: str
    job_type: str
    task: Task

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "vehicleId": self.vehicle_id,
            "missionName": self.mission_name,
            "jobType": self.job_type,
            "task": self.task.to_dict(),
        }


class TaskRouter:
    """Answers which vehicles may take tasks of a job type right now."""

    def __init__(self, assignment: VehicleAssignment, roster: VehicleRoster):
        self.assignment = assignment
        self.roster = roster

    def qualifies(self, vehicle_id: int, job_type: str) -> bool:
        return (
            self.assignment.job_type_of(vehicle_id) == job_type
            and self.roster.qualifies(vehicle_id, job_type)
        )

    def candidates(self, job_type: str) -> List[int]:
        """Qualified vehicles for the job type, in vehicle-id order."""
        return [v for v in self.assignment.vehicles_for(job_type) if self.roster.qualifies(v, job_type)]

    def connectivity_lost(self, job_type: str) -> bool:
        """
        True if vehicles are assigned the job type but none of them is
        connected. No assigned vehicle at all is a routing failure instead.
        """
        assigned = self.assignment.vehicles_for(job_type)
        return bool(assigned) and not any(self.roster.is_connected(v) for v in assigned)


class DispatchPlan:
    """
    Per-mission routing table.

    Tasks are numbered in bucket order. Each vehicle works through its own
    FIFO queue and holds at most one dispatched task at a time.
    """

    def __init__(self, mission_name: str, bucket: TaskBucket, router: TaskRouter, id_prefix: str = ""):
        self.mission_name = mission_name
        self.router = router
        self.records: Dict[str, TaskRecord] = {}
        self._queues: Dict[int, Deque[str]] = {}
        self._in_flight: Dict[int, str] = {}

        prefix = id_prefix or mission_name
        for job_type, tasks in bucket.entries():
            for task in tasks:
                task_id = f"{prefix}:{len(self.records)}"
                self.records[task_id] = TaskRecord(task_id=task_id, job_type=job_type, task=task)

        self.route()

    # --- Routing ---

    def _load(self, vehicle_id: int) -> int:
        queued = len(self._queues.get(vehicle_id, ()))
        return queued + (1 if vehicle_id in self._in_flight else 0)

    def route(self) -> List[TaskRecord]:
        """
        Assigns every unassigned task it can, in task order.

        The first candidate without work wins. When every candidate is busy
        the least-loaded one takes the task; ties go to the lowest id, which
        cycles through the candidates round-robin.

        Returns:
            The tasks that are still unassigned.
        """
        for record in self.records.values():
            if record.status != TaskStatus.UNASSIGNED:
                continue
            candidates = self.router.candidates(record.job_type)
            if not candidates:
                continue
            vehicle_id = min(candidates, key=lambda v: (self._load(v), v))
            record.vehicle_id = vehicle_id
            record.status = TaskStatus.QUEUED
            self._queues.setdefault(vehicle_id, deque()).append(record.task_id)
            log.debug(f"[DispatchPlan] {record.task_id} ({record.task.task_type}) -> vehicle {vehicle_id}")
        return self.unassigned()

    def release_unqualified(self) -> List[TaskRecord]:
        """
        Takes work back from vehicles that no longer qualify for it
        (disconnected, reassigned, or lost the capability). Released tasks,
        including one in flight, become unassigned again.
        """
        released = []
        for record in self.records.values():
            if record.status not in (TaskStatus.QUEUED, TaskStatus.DISPATCHED):
                continue
            if self.router.qualifies(record.vehicle_id, record.job_type):
                continue
            vehicle_id = record.vehicle_id
            queue = self._queues.get(vehicle_id)
            if queue and record.task_id in queue:
                queue.remove(record.task_id)
            if self._in_flight.get(vehicle_id) == record.task_id:
                del self._in_flight[vehicle_id]
            record.vehicle_id = None
            record.status = TaskStatus.UNASSIGNED
            released.append(record)
            log.info(f"[DispatchPlan] Released {record.task_id} from vehicle {vehicle_id}")
        return released

    # --- Dispatch ---

    def next_dispatches(self) -> Iterator[DispatchedTask]:
        """
        Hands the head of each idle vehicle's queue out, in vehicle-id order.
        """
        for vehicle_id in sorted(self._queues):
            if vehicle_id in self._in_flight:
                continue
            queue = self._queues[vehicle_id]
            if not queue:
                continue
            task_id = queue.popleft()
            record = self.records[task_id]
            record.status = TaskStatus.DISPATCHED
            self._in_flight[vehicle_id] = task_id
            yield DispatchedTask(
                task_id=task_id,
                vehicle_id=vehicle_id,
                mission_name=self.mission_name,
                job_type=record.job_type,
                task=record.task,
            )

    def complete(self, vehicle_id: int, task_id: str, success: bool = True) -> Optional[TaskRecord]:
        """
        Marks a dispatched task finished.

        Returns:
            The record, or None if the task is not in flight on that vehicle
            (unknown id, a previous run, or a task since rerouted).
        """
        record = self.records.get(task_id)
        if record is None or record.status != TaskStatus.DISPATCHED:
            return None
        if record.vehicle_id != vehicle_id or self._in_flight.get(vehicle_id) != task_id:
            return None

        del self._in_flight[vehicle_id]
        record.status = TaskStatus.COMPLETED if success else TaskStatus.FAILED
        return record

    # --- Queries ---

    def unassigned(self) -> List[TaskRecord]:
        return [r for r in self.records.values() if r.status == TaskStatus.UNASSIGNED]

    def outstanding_job_types(self) -> List[str]:
        """Job types that still have unfinished tasks, in task order."""
        job_types: List[str] = []
        for record in self.records.values():
            if record.status != TaskStatus.COMPLETED and record.job_type not in job_types:
                job_types.append(record.job_type)
        return job_types

    def in_flight(self) -> Dict[int, str]:
        return dict(self._in_flight)

    def vehicles(self) -> Set[int]:
        return {r.vehicle_id for r in self.records.values()
                if r.status in (TaskStatus.QUEUED, TaskStatus.DISPATCHED)}

    def is_complete(self) -> bool:
        return all(r.status == TaskStatus.COMPLETED for r in self.records.values())

    def __len__(self) -> int:
        return len(self.records)
