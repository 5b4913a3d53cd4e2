"""
Mission sequencer: run state machine, dispatch, advancing through a range,
connectivity handling and persisted configuration.
"""
import json

import pytest

from gcs.core.g1_mission_definition.information import MissionOptionError
from gcs.core.g2_execution_core.run_state import RunStateEnum
from gcs.core.g2_execution_core.sequencer import MissionSequencer, SequencerError
from gcs.core.g2_execution_core.state_machine import InvalidTransitionError
from gcs.core.g4_platform_interface.vehicle_state import Vehicle

READY = RunStateEnum.READY
RUNNING = RunStateEnum.RUNNING
PAUSED = RunStateEnum.PAUSED
NEXT = RunStateEnum.NEXT
DISCONNECTED = RunStateEnum.DISCONNECTED
ERROR = RunStateEnum.ERROR

TARGET = {"lat": 50.5, "lng": -5.5}


class Recorder:
    """Collects everything the sequencer reports outward."""

    def __init__(self, sequencer):
        self.dispatched = []
        self.blocked = []
        self.statuses = []
        self.completions = []
        sequencer.add_dispatch_listener(lambda vehicle_id, task: self.dispatched.append(task))
        sequencer.add_blocking_listener(self.blocked.append)
        sequencer.add_status_listener(self.statuses.append)
        sequencer.add_completion_listener(self.completions.append)


@pytest.fixture
def sequencer(fleet, information):
    """Every mission has information and one assigned, connected vehicle."""
    seq = MissionSequencer()
    seq.update_vehicles(*fleet)
    for vehicle in fleet:
        job_type = vehicle.job_types[0]
        seq.assign_vehicle(job_type, vehicle.vehicle_id, job_type)
        seq.set_mission_information(job_type, information[job_type])
    return seq


def finish_active_mission(seq, results=None):
    """Completes in-flight tasks until the active mission changes."""
    results = results or {}
    plan = seq.active_plan
    while seq.active_plan is plan and seq.state == RUNNING:
        in_flight = plan.in_flight()
        assert in_flight, "mission stalled with nothing in flight"
        vehicle_id, task_id = sorted(in_flight.items())[0]
        task_type = plan.records[task_id].task.task_type
        assert seq.report_task_complete(vehicle_id, task_id, True, results.get(task_type, {}))


# ============================================================
# Advancing through a range
# ============================================================

def test_confirmation_waits_in_next_and_hands_completion_on(sequencer):
    """
    Land layout, range [0, 1], confirmation required: ISR search finishes,
    the run waits in NEXT, and confirm_next starts the VTOL search with the
    ISR target merged into its parameters.
    """
    rec = Recorder(sequencer)
    sequencer.set_range(0, 1)

    assert sequencer.start() is True
    assert sequencer.state == RUNNING
    assert sequencer.active_mission_name == "isrSearch"
    assert [(d.vehicle_id, d.task.task_type) for d in rec.dispatched] == [(1, "takeoff")]

    finish_active_mission(sequencer, {"isrSearch": TARGET})
    assert sequencer.state == NEXT
    assert sequencer.active_mission is None
    assert sequencer.upcoming_mission_name == "vtolSearch"

    assert sequencer.confirm_next() is True
    assert sequencer.state == RUNNING
    assert sequencer.active_mission_name == "vtolSearch"
    assert sequencer.active_mission.parameters["targetLocation"] == TARGET
    assert [r.task.task_type for r in sequencer.active_plan.records.values()] == \
        ["quickScan", "detailedSearch"]
    assert (rec.dispatched[-1].vehicle_id, rec.dispatched[-1].task.task_type) == (2, "quickScan")
    assert "targetLocation" not in sequencer.information["vtolSearch"].parameters

    finish_active_mission(sequencer)
    assert sequencer.state == READY
    assert sequencer.active_mission is None
    assert rec.statuses == [RUNNING, NEXT, RUNNING, READY]


def test_malformed_target_report_still_advances(sequencer):
    """A non-numeric target report is dropped; the finished mission still hands over."""
    rec = Recorder(sequencer)
    sequencer.set_range(0, 1)
    sequencer.start()

    finish_active_mission(sequencer, {"isrSearch": {"lat": 50.1, "lng": -5.2, "confidence": None}})
    assert sequencer.state == NEXT
    assert sequencer.active_mission is None
    assert sequencer.active_plan is None
    assert sequencer.upcoming_mission_name == "vtolSearch"

    assert sequencer.confirm_next() is True
    assert "targetLocation" not in sequencer.active_mission.parameters
    assert rec.statuses == [RUNNING, NEXT, RUNNING]


def test_auto_advance_without_confirmation(sequencer):
    rec = Recorder(sequencer)
    sequencer.set_require_confirmation(False)
    sequencer.set_range(0, 1)

    sequencer.start()
    finish_active_mission(sequencer, {"isrSearch": TARGET})

    assert sequencer.state == RUNNING
    assert sequencer.active_mission_name == "vtolSearch"
    assert NEXT not in rec.statuses
    assert rec.dispatched[-1].task.task_type == "quickScan"


def test_payload_drop_point_becomes_rescue_target(sequencer):
    """Payload drop hands its drop point to the UGV rescue as retrieveTarget."""
    sequencer.set_require_confirmation(False)
    sequencer.set_range(2, 3)
    drop_point = {"lat": 50.25, "lng": -5.35}

    sequencer.start()
    finish_active_mission(sequencer, {"payloadDrop": drop_point})

    assert sequencer.active_mission_name == "ugvRescue"
    retrieve = sequencer.active_plan.records[sequencer.active_plan.in_flight()[4]]
    assert retrieve.task.task_type == "retrieveTarget"
    assert retrieve.task.parameters == drop_point


def test_unready_next_mission_parks_in_next(sequencer):
    """Even without confirmation, a mission that cannot start waits in NEXT."""
    rec = Recorder(sequencer)
    sequencer.set_require_confirmation(False)
    sequencer.set_range(0, 1)
    sequencer.unassign_vehicle("vtolSearch", 2)

    sequencer.start()
    finish_active_mission(sequencer)

    assert sequencer.state == NEXT
    assert any("vtolSearch" in reason for reason in rec.blocked)

    assert sequencer.confirm_next() is False
    assert sequencer.state == NEXT

    sequencer.assign_vehicle("vtolSearch", 2, "vtolSearch")
    assert sequencer.confirm_next() is True
    assert sequencer.active_mission_name == "vtolSearch"


def test_missing_rescue_vehicle_blocks_start(information):
    """UGV rescue with no ugvRescue vehicle: blocked, stays READY."""
    seq = MissionSequencer()
    rec = Recorder(seq)
    seq.set_range(3, 3)
    seq.set_mission_information("ugvRescue", information["ugvRescue"])

    assert seq.readiness() == ["UGV Rescue: no vehicle assigned to job type 'ugvRescue'"]
    assert seq.start() is False
    assert seq.state == READY
    assert seq.active_mission is None
    assert rec.blocked == ["UGV Rescue: no vehicle assigned to job type 'ugvRescue'"]
    assert rec.dispatched == []


def test_assigned_but_offline_vehicle_blocks_start(information):
    seq = MissionSequencer()
    rec = Recorder(seq)
    seq.set_range(3, 3)
    seq.set_mission_information("ugvRescue", information["ugvRescue"])
    seq.assign_vehicle("ugvRescue", 4, "ugvRescue")

    assert seq.start() is False
    assert seq.state == READY
    assert "disconnected" in rec.blocked[0]

    seq.update_vehicles({"vehicleId": 4, "jobTypes": ["ugvRescue"]})
    assert seq.readiness() == []
    assert seq.start() is True


def test_missing_information_blocks_start(sequencer):
    rec = Recorder(sequencer)
    sequencer.information.pop("isrSearch")

    assert sequencer.start() is False
    assert sequencer.state == READY
    assert rec.blocked == ["ISR Search: No mission information for isrSearch"]


def test_sequence_ends_in_ready(sequencer):
    sequencer.select_mission_type("underwater")
    sequencer.set_range(3, 3)
    sequencer.start()
    assert sequencer.active_mission_name == "uuvRescue"

    finish_active_mission(sequencer)
    assert sequencer.state == READY
    assert sequencer.active_plan is None


# ============================================================
# Pause / resume
# ============================================================

def test_pause_halts_new_dispatch(sequencer):
    rec = Recorder(sequencer)
    sequencer.start()
    sequencer.pause()
    (takeoff,) = rec.dispatched

    assert sequencer.report_task_complete(1, takeoff.task_id) is True
    assert len(rec.dispatched) == 1

    sequencer.resume()
    assert sequencer.state == RUNNING
    assert rec.dispatched[-1].task.task_type == "isrSearch"


def test_mission_finished_while_paused_completes_on_resume(sequencer):
    sequencer.select_mission_type("underwater")
    sequencer.set_range(3, 3)
    rec = Recorder(sequencer)
    sequencer.start()
    sequencer.pause()

    sequencer.report_task_complete(5, rec.dispatched[0].task_id)
    assert sequencer.state == PAUSED

    sequencer.resume()
    assert sequencer.state == READY


# ============================================================
# Rejected transitions
# ============================================================

def test_pause_from_ready_is_rejected(sequencer):
    with pytest.raises(InvalidTransitionError):
        sequencer.pause()
    with pytest.raises(InvalidTransitionError):
        sequencer.resume()
    with pytest.raises(InvalidTransitionError):
        sequencer.confirm_next()
    assert sequencer.state == READY


def test_confirm_next_from_running_is_rejected(sequencer):
    sequencer.set_range(0, 1)
    sequencer.start()
    with pytest.raises(InvalidTransitionError):
        sequencer.confirm_next()
    with pytest.raises(InvalidTransitionError):
        sequencer.start()
    with pytest.raises(InvalidTransitionError):
        sequencer.resume()
    assert sequencer.state == RUNNING
    assert sequencer.active_mission_name == "isrSearch"


# ============================================================
# Stop
# ============================================================

def _to_running(seq):
    seq.start()


def _to_paused(seq):
    seq.start()
    seq.pause()


def _to_next(seq):
    seq.set_range(0, 1)
    seq.start()
    finish_active_mission(seq)


def _to_disconnected(seq):
    seq.start()
    seq.mark_vehicle_disconnected(1)


def _to_error(seq):
    seq.start()
    task_id = next(iter(seq.active_plan.in_flight().values()))
    seq.report_task_complete(1, task_id, success=False)


@pytest.mark.parametrize("setup, expected", [
    (lambda seq: None, READY),
    (_to_running, RUNNING),
    (_to_paused, PAUSED),
    (_to_next, NEXT),
    (_to_disconnected, DISCONNECTED),
    (_to_error, ERROR),
])
def test_stop_from_any_state_lands_in_ready(sequencer, setup, expected):
    setup(sequencer)
    assert sequencer.state == expected

    sequencer.stop()
    assert sequencer.state == READY
    assert sequencer.active_mission is None
    assert sequencer.active_plan is None


def test_late_completions_are_ignored(sequencer):
    rec = Recorder(sequencer)
    sequencer.start()
    stale = rec.dispatched[0]
    sequencer.stop()

    assert sequencer.report_task_complete(1, stale.task_id) is False
    assert sequencer.state == READY

    sequencer.start()
    fresh = rec.dispatched[-1]
    assert fresh.task_id != stale.task_id
    assert sequencer.report_task_complete(1, stale.task_id) is False
    assert sequencer.report_task_complete(1, fresh.task_id) is True
    assert [c.task_id for c in rec.completions] == [fresh.task_id]


# ============================================================
# Failures
# ============================================================

def test_failed_task_puts_run_in_error(sequencer):
    rec = Recorder(sequencer)
    sequencer.start()
    task = rec.dispatched[0]

    assert sequencer.report_task_complete(1, task.task_id, success=False) is True
    assert sequencer.state == ERROR
    assert "failed task 'takeoff'" in rec.blocked[-1]
    assert rec.completions[-1].success is False

    with pytest.raises(InvalidTransitionError):
        sequencer.resume()
    with pytest.raises(InvalidTransitionError):
        sequencer.pause()


# ============================================================
# Connectivity
# ============================================================

def test_losing_every_vehicle_of_a_job_type_disconnects_then_recovers(sequencer):
    rec = Recorder(sequencer)
    sequencer.start()
    assert len(rec.dispatched) == 1

    sequencer.update_vehicles(Vehicle(vehicleId=1, jobTypes=["isrSearch"], status="disconnected"))
    assert sequencer.state == DISCONNECTED
    assert any("lost connection" in reason for reason in rec.blocked)
    assert sequencer.active_mission_name == "isrSearch"

    sequencer.update_vehicles(Vehicle(vehicleId=1, jobTypes=["isrSearch"]))
    assert sequencer.state == RUNNING
    assert len(rec.dispatched) == 2
    assert rec.dispatched[-1].task.task_type == "takeoff"


def test_disconnect_while_paused_recovers_to_paused(sequencer):
    sequencer.start()
    sequencer.pause()

    sequencer.mark_vehicle_disconnected(1)
    assert sequencer.state == DISCONNECTED

    sequencer.update_vehicles(Vehicle(vehicleId=1, jobTypes=["isrSearch"], status="running"))
    assert sequencer.state == PAUSED
    assert [(f, t) for _, f, t in sequencer.run_state.history] == [
        (READY, RUNNING), (RUNNING, PAUSED), (PAUSED, DISCONNECTED), (DISCONNECTED, PAUSED),
    ]
    assert sequencer.run_state.previous == DISCONNECTED


def test_other_vehicles_do_not_affect_active_mission(sequencer):
    sequencer.start()
    sequencer.mark_vehicle_disconnected(4)
    assert sequencer.state == RUNNING


def test_reassignment_moves_work_to_new_vehicle(sequencer):
    rec = Recorder(sequencer)
    sequencer.update_vehicles(Vehicle(vehicleId=6, jobTypes=["isrSearch"]))
    sequencer.start()
    assert rec.dispatched[-1].vehicle_id == 1

    sequencer.assign_vehicle("isrSearch", 6, "isrSearch")
    sequencer.unassign_vehicle("isrSearch", 1)

    assert sequencer.state == RUNNING
    assert (rec.dispatched[-1].vehicle_id, rec.dispatched[-1].task.task_type) == (6, "takeoff")
    assert sequencer.report_task_complete(1, rec.dispatched[0].task_id) is False


def test_unassigning_last_vehicle_reports_routing_failure(sequencer):
    rec = Recorder(sequencer)
    sequencer.start()
    sequencer.unassign_vehicle("isrSearch", 1)

    assert sequencer.state == RUNNING
    assert rec.blocked == ["ISR Search: no connected vehicle can perform job type 'isrSearch'"]

    sequencer.assign_vehicle("isrSearch", 1, "isrSearch")
    assert rec.dispatched[-1].vehicle_id == 1


# ============================================================
# Configuration
# ============================================================

def test_configuration_is_frozen_outside_ready(sequencer, information):
    sequencer.start()
    with pytest.raises(SequencerError):
        sequencer.set_range(0, 1)
    with pytest.raises(SequencerError):
        sequencer.select_mission_type("underwater")
    with pytest.raises(SequencerError):
        sequencer.set_option("isrSearch", "noLand", True)
    with pytest.raises(SequencerError):
        sequencer.reset()

    sequencer.set_mission_information("vtolSearch", information["vtolSearch"])


def test_configuration_validation(sequencer):
    with pytest.raises(ValueError):
        sequencer.set_range(2, 1)
    with pytest.raises(ValueError):
        sequencer.set_range(0, 4)
    with pytest.raises(ValueError):
        sequencer.select_mission_type("airborne")
    with pytest.raises(MissionOptionError):
        sequencer.set_option("vtolSearch", "noTakeoff", True)
    with pytest.raises(ValueError):
        sequencer.assign_vehicle("isrSearch", 9, "submarine")
    with pytest.raises(KeyError):
        sequencer.assign_vehicle("airDrop", 9, "isrSearch")
    with pytest.raises(ValueError):
        sequencer.set_mission_information("uuvRescue", {"missionName": "ugvRescue", "parameters": {}})


def test_options_reach_the_mission(sequencer):
    rec = Recorder(sequencer)
    sequencer.set_option("isrSearch", "noTakeoff", True)
    sequencer.start()
    assert rec.dispatched[0].task.task_type == "isrSearch"


def test_reset_clears_configuration(sequencer):
    sequencer.set_option("isrSearch", "noLand", True)
    sequencer.reset()

    assert sequencer.information == {}
    assert all(len(a) == 0 for a in sequencer.assignments.values())
    assert sequencer.options.for_mission("isrSearch") == {"noTakeoff": False, "noLand": False}
    assert len(sequencer.roster) == 5


# ============================================================
# Persistence
# ============================================================

def test_snapshot_round_trip(sequencer):
    sequencer.select_mission_type("underwater")
    sequencer.set_range(1, 3)
    sequencer.set_option("payloadDrop", "noLand", True)
    sequencer.set_require_confirmation(False)

    snapshot = sequencer.snapshot()
    document = json.loads(json.dumps(snapshot.to_document()))
    assert document["missionType"] == "underwater"
    assert document["range"] == [1, 3]
    assert document["requireConfirmation"] is False

    restored = MissionSequencer()
    restored.restore(document)
    assert restored.snapshot() == snapshot
    assert restored.assignments["uuvRescue"].to_dict() == {5: "uuvRescue"}
    assert restored.mission_sequence == ["vtolSearch", "payloadDrop", "uuvRescue"]


def test_restore_only_in_ready(sequencer):
    snapshot = sequencer.snapshot()
    sequencer.start()
    with pytest.raises(SequencerError):
        sequencer.restore(snapshot)


def test_restore_validates_before_changing_anything(sequencer):
    before = sequencer.snapshot()
    bad = before.to_document()
    bad["range"] = [0, 9]

    with pytest.raises(ValueError):
        sequencer.restore(bad)
    assert sequencer.snapshot() == before
