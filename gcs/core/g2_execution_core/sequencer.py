"""
Component 7: Mission Sequencer
Orchestrates a contiguous range of missions from the selected layout.

The sequencer owns the operator configuration (mission type, range, options,
per-mission vehicle assignments and information), builds the active mission,
routes its tasks to vehicles, and advances through the range as missions
complete. It is the single writer of RunState; everything reaches it through
plain synchronous calls, serialised by the control loop.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from ..cross_cutting.persistence import SequencerSnapshot
from ..g1_mission_definition.assignment import VehicleAssignment
from ..g1_mission_definition.information import (
    LAND,
    LAYOUTS,
    MISSION_NAMES,
    MISSION_TITLES,
    MissionInformation,
    MissionOptions,
)
from ..g1_mission_definition.task import JOB_TYPES, TaskResult
from ..g3_missions import MissionDefinition, create_mission, get_mission_class
from ..g4_platform_interface.vehicle_state import Vehicle, VehicleRoster
from .dispatch import DispatchedTask, DispatchPlan, TaskRouter
from .run_state import ACTIVE_STATES, RunState, RunStateEnum, StateChangeListener
from .state_machine import InvalidTransitionError

log = logging.getLogger(__name__)

DispatchListener = Callable[[int, DispatchedTask], None]
BlockingListener = Callable[[str], None]
CompletionListener = Callable[[TaskResult], None]


class SequencerError(Exception):
    """Raised when configuration is changed outside the ready state."""
    pass


class MissionSequencer:
    """
    Runs missions[start..end] of the selected layout, one at a time.

    Missions either auto-advance or wait in NEXT for confirm_next(),
    depending on require_confirmation.
    """

    def __init__(self,
                 mission_type: str = LAND,
                 require_confirmation: bool = True,
                 roster: Optional[VehicleRoster] = None):
        if mission_type not in LAYOUTS:
            raise ValueError(f"Unknown mission type '{mission_type}'. Known: {list(LAYOUTS)}")

        self.roster = roster if roster is not None else VehicleRoster()
        self.roster.add_listener(self._on_vehicle_changed)

        # Operator configuration
        self.mission_type = mission_type
        self.start_index = 0
        self.end_index = 0
        self.require_confirmation = bool(require_confirmation)
        self.options = MissionOptions()
        self.assignments: Dict[str, VehicleAssignment] = {
            name: VehicleAssignment() for name in MISSION_NAMES
        }
        self.information: Dict[str, MissionInformation] = {}

        self.run_state = RunState()
        self._dispatch_listeners: List[DispatchListener] = []
        self._blocking_listeners: List[BlockingListener] = []
        self._completion_listeners: List[CompletionListener] = []

        # Run scoped
        self._run_id = 0
        self._sequence: List[str] = []
        self._position = 0
        self._carried: Dict[str, Dict[str, Any]] = {}
        self._unroutable: Set[str] = set()
        self.active_mission: Optional[MissionDefinition] = None
        self.active_plan: Optional[DispatchPlan] = None

        log.info(f"[Sequencer] Initialized ({mission_type} layout)")

    # --- Listeners ---

    def add_status_listener(self, listener: StateChangeListener):
        self.run_state.add_listener(listener)

    def add_dispatch_listener(self, listener: DispatchListener):
        if listener not in self._dispatch_listeners:
            self._dispatch_listeners.append(listener)

    def add_blocking_listener(self, listener: BlockingListener):
        if listener not in self._blocking_listeners:
            self._blocking_listeners.append(listener)

    def add_completion_listener(self, listener: CompletionListener):
        if listener not in self._completion_listeners:
            self._completion_listeners.append(listener)

    def _notify_dispatch(self, dispatched: DispatchedTask):
        for listener in list(self._dispatch_listeners):
            try:
                listener(dispatched.vehicle_id, dispatched)
            except Exception as e:
                log.error(f"[Sequencer] Error in dispatch listener {listener}: {e}")

    def _notify_completion(self, result: TaskResult):
        for listener in list(self._completion_listeners):
            try:
                listener(result)
            except Exception as e:
                log.error(f"[Sequencer] Error in completion listener {listener}: {e}")

    def _report_blocking(self, reason: str):
        log.warning(f"[Sequencer] Blocked: {reason}")
        for listener in list(self._blocking_listeners):
            try:
                listener(reason)
            except Exception as e:
                log.error(f"[Sequencer] Error in blocking listener {listener}: {e}")

    # --- Queries ---

    @property
    def state(self) -> RunStateEnum:
        return self.run_state.current

    @property
    def layout(self) -> List[str]:
        return list(LAYOUTS[self.mission_type])

    @property
    def mission_sequence(self) -> List[str]:
        """Mission names in the selected range, in run order."""
        return self.layout[self.start_index:self.end_index + 1]

    @property
    def active_mission_name(self) -> Optional[str]:
        return self.active_mission.mission_name if self.active_mission else None

    @property
    def upcoming_mission_name(self) -> Optional[str]:
        """The mission waiting for confirmation while in NEXT."""
        if self.state != RunStateEnum.NEXT:
            return None
        return self._sequence[self._position]

    def describe(self) -> Dict[str, Any]:
        return {
            "status": self.state.value,
            "missionType": self.mission_type,
            "range": [self.start_index, self.end_index],
            "activeMission": self.active_mission_name,
            "upcomingMission": self.upcoming_mission_name,
            "requireConfirmation": self.require_confirmation,
        }

    # --- Operator configuration ---

    def _require_ready(self, action: str):
        if self.state != RunStateEnum.READY:
            raise SequencerError(f"Cannot {action} while {self.state}")

    @staticmethod
    def _check_range(mission_type: str, start: int, end: int) -> Tuple[int, int]:
        start, end = int(start), int(end)
        size = len(LAYOUTS[mission_type])
        if not 0 <= start <= end < size:
            raise ValueError(
                f"Invalid range [{start}, {end}] for the {mission_type} layout "
                f"({size} missions)"
            )
        return start, end

    def select_mission_type(self, mission_type: str):
        self._require_ready("change mission type")
        if mission_type not in LAYOUTS:
            raise ValueError(f"Unknown mission type '{mission_type}'. Known: {list(LAYOUTS)}")
        self.mission_type = mission_type
        log.info(f"[Sequencer] Mission type: {mission_type} -> {self.layout}")

    def set_range(self, start: int, end: int):
        """Selects missions[start..end] (inclusive) of the current layout."""
        self._require_ready("change range")
        self.start_index, self.end_index = self._check_range(self.mission_type, start, end)
        log.info(f"[Sequencer] Range: {self.mission_sequence}")

    def set_option(self, mission_name: str, option: str, value: bool):
        """
        Raises:
            MissionOptionError: If the mission does not support the option.
        """
        self._require_ready("change options")
        self.options.set(mission_name, option, value)
        log.info(f"[Sequencer] Option {mission_name}.{option} = {bool(value)}")

    def set_require_confirmation(self, value: bool):
        self.require_confirmation = bool(value)
        log.info(f"[Sequencer] Require confirmation: {self.require_confirmation}")

    def assign_vehicle(self, mission_name: str, vehicle_id: int, job_type: str):
        """
        Assigns a vehicle a job type for one mission. Takes effect
        immediately if that mission is running.
        """
        get_mission_class(mission_name)
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown job type '{job_type}'. Known: {list(JOB_TYPES)}")
        self.assignments[mission_name].assign(vehicle_id, job_type)
        log.info(f"[Sequencer] {mission_name}: vehicle {vehicle_id} assigned {job_type}")
        if mission_name == self.active_mission_name:
            self._refresh_routing()

    def unassign_vehicle(self, mission_name: str, vehicle_id: int):
        get_mission_class(mission_name)
        self.assignments[mission_name].unassign(vehicle_id)
        log.info(f"[Sequencer] {mission_name}: vehicle {vehicle_id} unassigned")
        if mission_name == self.active_mission_name:
            self._refresh_routing()

    def set_mission_information(self,
                                mission_name: str,
                                information: Union[MissionInformation, Dict[str, Any]]):
        """
        Stores the operator's information for a mission. Accepts a
        MissionInformation, a {"missionName", "parameters"} payload, or a
        bare parameters dict.
        """
        get_mission_class(mission_name)
        if isinstance(information, dict):
            if "missionName" in information or "mission_name" in information:
                information = MissionInformation.from_payload(information)
            else:
                information = MissionInformation(mission_name=mission_name, parameters=information)
        if information.mission_name != mission_name:
            raise ValueError(
                f"Information is for '{information.mission_name}', not '{mission_name}'"
            )
        self.information[mission_name] = information
        log.info(f"[Sequencer] Information set for {mission_name}")

    def update_vehicles(self, *vehicles: Union[Vehicle, Dict[str, Any]]) -> int:
        """Feeds vehicle snapshots into the roster. Returns how many changed."""
        changed = 0
        for vehicle in vehicles:
            if not isinstance(vehicle, Vehicle):
                vehicle = Vehicle.model_validate(vehicle)
            if self.roster.update(vehicle):
                changed += 1
        return changed

    def mark_vehicle_disconnected(self, vehicle_id: int) -> bool:
        return self.roster.set_status(vehicle_id, "disconnected")

    def reset(self):
        """Clears assignments, options and information."""
        self._require_ready("reset")
        for assignment in self.assignments.values():
            assignment.clear()
        self.options.reset()
        self.information.clear()
        log.info("[Sequencer] Configuration reset")

    # --- Mission preparation ---

    def _effective_information(self, mission_name: str) -> Optional[MissionInformation]:
        information = self.information.get(mission_name)
        carried = self._carried.get(mission_name)
        if not carried:
            return information
        if information is None:
            return MissionInformation(mission_name=mission_name, parameters=carried)
        return information.merged(carried)

    def _build_mission(self, mission_name: str) -> MissionDefinition:
        return create_mission(
            mission_name,
            self.roster,
            self._effective_information(mission_name),
            self.assignments[mission_name],
            self.options.for_mission(mission_name),
        )

    def _prepare(self, mission_name: str) -> Tuple[MissionDefinition, Optional[DispatchPlan], List[str]]:
        """
        Builds the mission and its dispatch plan.

        Returns:
            (mission, plan, reasons). reasons is empty when the mission can
            start; plan is None when no tasks could be generated.
        """
        title = MISSION_TITLES[mission_name]
        mission = self._build_mission(mission_name)

        missing = mission.missing_job_types()
        reasons = [f"{title}: no vehicle assigned to job type '{j}'" for j in missing]
        reasons += [f"{title}: {e}" for e in mission.information_errors()]
        if reasons:
            return mission, None, reasons

        bucket = mission.generate_tasks()
        if bucket is None or bucket.is_empty():
            return mission, None, [f"{title}: generated no tasks"]

        router = TaskRouter(self.assignments[mission_name], self.roster)
        plan = DispatchPlan(mission_name, bucket, router, id_prefix=f"r{self._run_id}/{mission_name}")
        for job_type in self._pending_job_types(plan):
            if router.connectivity_lost(job_type):
                reasons.append(f"{title}: every vehicle assigned to job type '{job_type}' is disconnected")
            else:
                reasons.append(f"{title}: no connected vehicle can perform job type '{job_type}'")
        return mission, plan, reasons

    @staticmethod
    def _pending_job_types(plan: DispatchPlan) -> List[str]:
        job_types: List[str] = []
        for record in plan.unassigned():
            if record.job_type not in job_types:
                job_types.append(record.job_type)
        return job_types

    def readiness(self) -> List[str]:
        """Reasons the first mission in range cannot start. Empty when ready."""
        _, _, reasons = self._prepare(self.mission_sequence[0])
        return reasons

    def _activate(self, mission: MissionDefinition, plan: DispatchPlan):
        self.active_mission = mission
        self.active_plan = plan
        self._unroutable = set()
        log.info(
            f"[Sequencer] Starting {MISSION_TITLES[mission.mission_name]} "
            f"({self._position + 1}/{len(self._sequence)}, {len(plan)} tasks)"
        )
        self.run_state.transition(RunStateEnum.RUNNING)
        self._dispatch()

    def _clear_run(self):
        self.active_mission = None
        self.active_plan = None
        self._sequence = []
        self._position = 0
        self._carried = {}
        self._unroutable = set()

    # --- Run control ---

    def start(self) -> bool:
        """
        Starts the first mission in range.

        Returns:
            True if the run started. False if the first mission is not ready;
            the reasons go to the blocking listeners and the state stays READY.

        Raises:
            InvalidTransitionError: If not in READY.
        """
        if self.state != RunStateEnum.READY:
            raise InvalidTransitionError(self.state, RunStateEnum.RUNNING, "start")

        self._run_id += 1
        sequence = self.mission_sequence
        mission, plan, reasons = self._prepare(sequence[0])
        if reasons:
            for reason in reasons:
                self._report_blocking(reason)
            return False

        self._sequence = sequence
        self._position = 0
        self._carried = {}
        self._activate(mission, plan)
        return True

    def pause(self):
        """Halts dispatch of new tasks. Tasks already on vehicles carry on."""
        if self.state != RunStateEnum.RUNNING:
            raise InvalidTransitionError(self.state, RunStateEnum.PAUSED, "pause")
        self.run_state.transition(RunStateEnum.PAUSED)

    def resume(self):
        if self.state != RunStateEnum.PAUSED:
            raise InvalidTransitionError(self.state, RunStateEnum.RUNNING, "resume")
        self.run_state.transition(RunStateEnum.RUNNING)
        if self.active_plan is not None and self.active_plan.is_complete():
            self._complete_mission()
        else:
            self._dispatch()

    def confirm_next(self) -> bool:
        """
        Begins the mission waiting in NEXT.

        Returns:
            False if it is still not ready (the state stays NEXT).
        """
        if self.state != RunStateEnum.NEXT:
            raise InvalidTransitionError(self.state, RunStateEnum.RUNNING, "confirm_next")
        return self._advance()

    def stop(self):
        """Abandons the run from any state. In READY this does nothing."""
        if self.state == RunStateEnum.READY:
            log.info("[Sequencer] Stop requested while ready; nothing to stop")
            return
        log.info(f"[Sequencer] Stopping run (was {self.state}, mission {self.active_mission_name})")
        self._clear_run()
        self.run_state.transition(RunStateEnum.READY)

    def _advance(self) -> bool:
        mission_name = self._sequence[self._position]
        mission, plan, reasons = self._prepare(mission_name)
        if reasons:
            for reason in reasons:
                self._report_blocking(reason)
            self.run_state.transition(RunStateEnum.NEXT)
            return False
        self._activate(mission, plan)
        return True

    def _complete_mission(self):
        mission = self.active_mission
        completion = mission.generate_completion_parameters()
        self.active_mission = None
        self.active_plan = None
        log.info(f"[Sequencer] {MISSION_TITLES[mission.mission_name]} complete: {completion}")

        if self._position + 1 >= len(self._sequence):
            log.info("[Sequencer] Mission sequence complete")
            self._clear_run()
            self.run_state.transition(RunStateEnum.READY)
            return

        self._position += 1
        next_name = self._sequence[self._position]
        if completion:
            self._carried[next_name] = completion

        if self.require_confirmation:
            log.info(f"[Sequencer] Waiting for confirmation to start {MISSION_TITLES[next_name]}")
            self.run_state.transition(RunStateEnum.NEXT)
        else:
            self._advance()

    # --- Vehicle traffic ---

    def report_task_complete(self,
                             vehicle_id: int,
                             task_id: str,
                             success: bool = True,
                             result_parameters: Optional[Dict[str, Any]] = None) -> bool:
        """
        Records a vehicle's report that it finished a task.

        Reports for tasks that are not in flight on that vehicle (late
        reports from a stopped run, or tasks since rerouted) are ignored.
        A failed task puts the run in ERROR.

        Returns:
            True if the report was applied.
        """
        vehicle_id = int(vehicle_id)
        plan = self.active_plan
        if plan is None or self.state not in ACTIVE_STATES:
            log.warning(f"[Sequencer] Ignoring completion of {task_id} from vehicle {vehicle_id}: no active mission")
            return False

        record = plan.complete(vehicle_id, task_id, success)
        if record is None:
            log.warning(f"[Sequencer] Ignoring completion of unknown task {task_id} from vehicle {vehicle_id}")
            return False

        result = TaskResult(
            task_id=task_id,
            vehicle_id=vehicle_id,
            task=record.task,
            success=bool(success),
            parameters=result_parameters or {},
        )
        self._notify_completion(result)

        if not success:
            self._report_blocking(
                f"{MISSION_TITLES[plan.mission_name]}: vehicle {vehicle_id} failed task "
                f"'{record.task.task_type}' ({task_id})"
            )
            self.run_state.transition(RunStateEnum.ERROR)
            return True

        self.active_mission.record_result(result)
        log.info(f"[Sequencer] Vehicle {vehicle_id} completed {task_id} ({record.task.task_type})")

        if self.state == RunStateEnum.RUNNING:
            if plan.is_complete():
                self._complete_mission()
            else:
                self._dispatch()
        return True

    def _on_vehicle_changed(self, vehicle: Vehicle):
        self._refresh_routing()

    def _dispatch(self):
        if self.state != RunStateEnum.RUNNING or self.active_plan is None:
            return
        for dispatched in list(self.active_plan.next_dispatches()):
            log.info(
                f"[Sequencer] Dispatch {dispatched.task_id} ({dispatched.task.task_type}) "
                f"-> vehicle {dispatched.vehicle_id}"
            )
            self._notify_dispatch(dispatched)

    def _refresh_routing(self):
        """
        Re-evaluates routing of the active mission after an assignment or
        roster change, and moves in or out of DISCONNECTED.
        """
        plan = self.active_plan
        if plan is None or self.state not in ACTIVE_STATES:
            return

        plan.release_unqualified()
        plan.route()

        title = MISSION_TITLES[plan.mission_name]
        pending = self._pending_job_types(plan)
        lost = [j for j in pending if plan.router.connectivity_lost(j)]
        unroutable = [j for j in pending if j not in lost]

        for job_type in unroutable:
            if job_type not in self._unroutable:
                self._report_blocking(f"{title}: no connected vehicle can perform job type '{job_type}'")
        self._unroutable = set(unroutable)

        if lost and self.state in (RunStateEnum.RUNNING, RunStateEnum.PAUSED):
            for job_type in lost:
                self._report_blocking(f"{title}: lost connection to every vehicle assigned to job type '{job_type}'")
            self.run_state.transition(RunStateEnum.DISCONNECTED)
        elif not lost and self.state == RunStateEnum.DISCONNECTED:
            # DISCONNECTED is only entered from RUNNING or PAUSED
            resume_state = self.run_state.previous
            log.info(f"[Sequencer] Connectivity restored, returning to {resume_state}")
            self.run_state.transition(resume_state)

        self._dispatch()

    # --- Persistence ---

    def snapshot(self) -> SequencerSnapshot:
        return SequencerSnapshot(
            mission_type=self.mission_type,
            mission_range=(self.start_index, self.end_index),
            options=self.options.to_dict(),
            active_vehicle_mapping={
                name: assignment.to_dict()
                for name, assignment in self.assignments.items()
                if len(assignment)
            },
            require_confirmation=self.require_confirmation,
        )

    def restore(self, snapshot: Union[SequencerSnapshot, Dict[str, Any]]):
        """
        Restores operator configuration saved by snapshot(). Everything is
        validated before anything changes.
        """
        self._require_ready("restore")
        if not isinstance(snapshot, SequencerSnapshot):
            snapshot = SequencerSnapshot.model_validate(snapshot)

        start, end = self._check_range(snapshot.mission_type, *snapshot.mission_range)
        options = MissionOptions(snapshot.options)
        assignments = {name: VehicleAssignment() for name in MISSION_NAMES}
        for mission_name, mapping in snapshot.active_vehicle_mapping.items():
            get_mission_class(mission_name)
            for vehicle_id, job_type in mapping.items():
                if job_type not in JOB_TYPES:
                    raise ValueError(f"Unknown job type '{job_type}' for vehicle {vehicle_id}")
                assignments[mission_name].assign(vehicle_id, job_type)

        self.mission_type = snapshot.mission_type
        self.start_index, self.end_index = start, end
        self.options = options
        self.assignments = assignments
        self.require_confirmation = snapshot.require_confirmation
        log.info(f"[Sequencer] Restored configuration: {self.mission_type} {self.mission_sequence}")

    def __str__(self) -> str:
        return f"MissionSequencer({self.state}, active={self.active_mission_name})"
