"""
Mission definitions: task templates, completion parameters, target
consolidation and the mission registry.
"""
import pytest

from gcs.core.g1_mission_definition.assignment import VehicleAssignment
from gcs.core.g1_mission_definition.information import MissionInformation
from gcs.core.g1_mission_definition.parser import MissionParseError
from gcs.core.g1_mission_definition.task import Task, TaskResult
from gcs.core.g3_missions import (
    MISSION_REGISTRY,
    ISRSearch,
    PayloadDrop,
    UGVRescue,
    UUVRescue,
    VTOLSearch,
    create_mission,
    get_mission_class,
)
from gcs.core.g3_missions.targets import TargetRegistry, consolidate_target_location
from gcs.core.g4_platform_interface.vehicle_state import VehicleRoster


def make(mission_name, information, options=None, assignment=None):
    return create_mission(
        mission_name,
        VehicleRoster(),
        information.get(mission_name),
        assignment or VehicleAssignment(),
        options,
    )


def task_types(bucket, job_type):
    return [t.task_type for t in bucket.tasks_for(job_type)]


# ============================================================
# Registry
# ============================================================

def test_registry_covers_every_mission():
    assert set(MISSION_REGISTRY) == {"isrSearch", "vtolSearch", "payloadDrop", "ugvRescue", "uuvRescue"}
    assert get_mission_class("ugvRescue") is UGVRescue


def test_registry_rejects_unknown_mission():
    with pytest.raises(KeyError):
        get_mission_class("airDrop")


# ============================================================
# Task generation
# ============================================================

def test_ugv_rescue_yields_retrieve_then_deliver(information, parameters):
    """UGVRescue files exactly two tasks with the sub-parameters verbatim."""
    bucket = make("ugvRescue", information).generate_tasks()

    assert bucket.job_types() == ["ugvRescue"]
    assert bucket.tasks_for("ugvRescue") == [
        Task("retrieveTarget", parameters["ugvRescue"]["retrieveTarget"]),
        Task("deliverTarget", parameters["ugvRescue"]["deliverTarget"]),
    ]


def test_uuv_rescue_retrieves_only(information):
    bucket = make("uuvRescue", information).generate_tasks()
    assert task_types(bucket, "uuvRescue") == ["retrieveTarget"]


def test_isr_search_flies_takeoff_search_land(information):
    bucket = make("isrSearch", information).generate_tasks()
    assert task_types(bucket, "isrSearch") == ["takeoff", "isrSearch", "land"]


def test_options_drop_takeoff_and_land(information, parameters):
    """noTakeoff/noLand remove the legs and stop requiring their parameters."""
    del parameters["isrSearch"]["takeoff"]
    del parameters["isrSearch"]["land"]
    info = {"isrSearch": MissionInformation(mission_name="isrSearch", parameters=parameters["isrSearch"])}

    assert make("isrSearch", info).generate_tasks() is None

    mission = make("isrSearch", info, options={"noTakeoff": True, "noLand": True})
    assert mission.information_errors() == []
    assert task_types(mission.generate_tasks(), "isrSearch") == ["isrSearch"]


def test_payload_drop_needs_two_waypoints(information, parameters):
    assert task_types(make("payloadDrop", information).generate_tasks(), "payloadDrop") == \
        ["takeoff", "payloadDrop", "land"]

    parameters["payloadDrop"]["payloadDrop"]["waypoints"] = parameters["payloadDrop"]["payloadDrop"]["waypoints"][:1]
    info = {"payloadDrop": MissionInformation(mission_name="payloadDrop", parameters=parameters["payloadDrop"])}
    assert make("payloadDrop", info).generate_tasks() is None


def test_vtol_search_adds_detailed_search_for_known_target(information, parameters):
    assert task_types(make("vtolSearch", information).generate_tasks(), "vtolSearch") == ["quickScan"]

    parameters["vtolSearch"]["targetLocation"] = {"lat": 50.3, "lng": -5.4}
    info = {"vtolSearch": MissionInformation(mission_name="vtolSearch", parameters=parameters["vtolSearch"])}
    bucket = make("vtolSearch", info).generate_tasks()

    assert task_types(bucket, "vtolSearch") == ["quickScan", "detailedSearch"]
    assert bucket.tasks_for("vtolSearch")[1].parameters == {"lat": 50.3, "lng": -5.4}


def test_generate_tasks_is_pure(information):
    """Repeated calls give equal buckets and never touch the information."""
    mission = make("isrSearch", information)
    before = information["isrSearch"].model_dump()

    first = mission.generate_tasks()
    second = mission.generate_tasks()
    assert first == second

    first.tasks_for("isrSearch")[1].parameters["altitude"] = -1
    assert information["isrSearch"].model_dump() == before
    assert mission.generate_tasks() == second


def test_incomplete_information_yields_none():
    mission = create_mission("ugvRescue", VehicleRoster(), None, VehicleAssignment())
    assert mission.generate_tasks() is None
    assert mission.information_errors()


def test_validate_raises_with_every_problem(parameters):
    del parameters["ugvRescue"]["deliverTarget"]
    info = {"ugvRescue": MissionInformation(mission_name="ugvRescue", parameters=parameters["ugvRescue"])}
    with pytest.raises(MissionParseError, match="deliverTarget"):
        make("ugvRescue", info).validate()


def test_information_for_another_mission_is_rejected(information):
    mission = create_mission("uuvRescue", VehicleRoster(), information["ugvRescue"], VehicleAssignment())
    assert mission.generate_tasks() is None


def test_missing_job_types_follow_assignment(information):
    mission = make("ugvRescue", information)
    assert mission.required_job_types() == frozenset({"ugvRescue"})
    assert mission.missing_job_types() == ["ugvRescue"]

    assigned = make("ugvRescue", information, assignment=VehicleAssignment({4: "ugvRescue"}))
    assert assigned.missing_job_types() == []


# ============================================================
# Completion parameters
# ============================================================

def _result(task_type, params, vehicle_id=1):
    return TaskResult(task_id=f"t-{task_type}", vehicle_id=vehicle_id, task=Task(task_type), parameters=params)


def test_isr_search_hands_target_location_on(information):
    mission = make("isrSearch", information)
    assert mission.generate_completion_parameters() == {}

    mission.record_result(_result("takeoff", {}))
    mission.record_result(_result("isrSearch", {"lat": 50.5, "lng": -5.5}))
    assert mission.generate_completion_parameters() == {"targetLocation": {"lat": 50.5, "lng": -5.5}}


def test_vtol_search_prefers_detailed_search_results(information):
    mission = make("vtolSearch", information)
    mission.record_result(_result("quickScan", {"lat": 50.0, "lng": -5.0}))
    assert mission.generate_completion_parameters() == {"targetLocation": {"lat": 50.0, "lng": -5.0}}

    mission.record_result(_result("detailedSearch", {"lat": 50.2, "lng": -5.2}))
    assert mission.generate_completion_parameters() == {"targetLocation": {"lat": 50.2, "lng": -5.2}}


def test_payload_drop_hands_retrieve_target_on(information):
    mission = make("payloadDrop", information)
    mission.record_result(_result("payloadDrop", {"lat": 50.4, "lng": -5.1}))
    assert mission.generate_completion_parameters() == {"retrieveTarget": {"lat": 50.4, "lng": -5.1}}


def test_rescue_missions_hand_nothing_on(information):
    for cls, name in ((UGVRescue, "ugvRescue"), (UUVRescue, "uuvRescue")):
        mission = make(name, information)
        assert isinstance(mission, cls)
        assert mission.generate_completion_parameters() == {}


def test_mission_classes_declare_their_job_type():
    for cls in (ISRSearch, VTOLSearch, PayloadDrop, UGVRescue, UUVRescue):
        assert cls.job_types == frozenset({cls.mission_name})


# ============================================================
# Target consolidation
# ============================================================

def test_target_registry_folds_nearby_reports():
    registry = TargetRegistry(association_radius_m=30.0)
    first = registry.update(50.0, -5.0, 1.0)
    second = registry.update(50.0001, -5.0, 1.0)   # ~11 m north
    far = registry.update(50.1, -5.0, 1.0)

    assert first == second
    assert far != first
    best = registry.get_best_target()
    assert best.id == first
    assert best.reports == 2
    assert best.position[0] == pytest.approx(50.00005)


def test_consolidation_skips_results_without_position():
    assert consolidate_target_location([{}, {"lat": 1.0}]) is None

    location = consolidate_target_location([
        {"lat": 50.0, "lng": -5.0, "confidence": 0.9},
        {"note": "nothing here"},
        {"lat": 51.0, "lng": -5.0, "confidence": 0.2},
    ])
    assert location == {"lat": 50.0, "lng": -5.0}


@pytest.mark.parametrize("report", [
    {"lat": 51.0, "lng": -5.0, "confidence": None},
    {"lat": "n/a", "lng": -5.0},
    {"lat": 51.0, "lng": float("nan")},
    {"lat": True, "lng": -5.0},
    ["lat", "lng"],
])
def test_consolidation_skips_non_numeric_reports(report):
    assert consolidate_target_location([report]) is None
    assert consolidate_target_location([report, {"lat": 50.0, "lng": -5.0}]) == {"lat": 50.0, "lng": -5.0}


def test_completion_parameters_ignore_malformed_reports(information):
    mission = make("payloadDrop", information)
    mission.record_result(_result("payloadDrop", {"lat": "50.4", "lng": -5.1}))
    assert mission.generate_completion_parameters() == {}
