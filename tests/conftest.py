import copy

import pytest

from gcs.core.g1_mission_definition.information import MissionInformation
from gcs.core.g4_platform_interface.vehicle_state import Vehicle

POINT_A = {"lat": 50.10, "lng": -5.20}
POINT_B = {"lat": 50.11, "lng": -5.21}

TAKEOFF = {
    "lat": 50.0, "lng": -5.0, "alt": 100.0,
    "loiter": {"lat": 50.0, "lng": -5.0, "alt": 120.0, "radius": 80.0, "direction": 1},
}
LAND = {"waypoints": [{"lat": 50.0, "lng": -5.0, "alt": 30.0}, {"lat": 50.0, "lng": -5.01}]}

PARAMETERS = {
    "isrSearch": {
        "takeoff": TAKEOFF,
        "isrSearch": {"altitude": 150.0, "waypoints": [POINT_A, POINT_B]},
        "land": LAND,
    },
    "vtolSearch": {
        "quickScan": {"waypoints": [POINT_A]},
    },
    "payloadDrop": {
        "takeoff": TAKEOFF,
        "payloadDrop": {"waypoints": [POINT_A, POINT_B]},
        "land": LAND,
    },
    "ugvRescue": {
        "retrieveTarget": {"lat": 50.2, "lng": -5.3},
        "deliverTarget": {"lat": 50.0, "lng": -5.0},
    },
    "uuvRescue": {
        "retrieveTarget": {"lat": 50.2, "lng": -5.3},
    },
}


@pytest.fixture
def parameters():
    """Complete parameters for every mission, freshly copied per test."""
    return copy.deepcopy(PARAMETERS)


@pytest.fixture
def information(parameters):
    """Complete MissionInformation for every mission."""
    return {
        name: MissionInformation(mission_name=name, parameters=params)
        for name, params in parameters.items()
    }


@pytest.fixture
def fleet():
    """One vehicle per job type, ids in layout order."""
    return [
        Vehicle(vehicleId=1, jobTypes=["isrSearch"]),
        Vehicle(vehicleId=2, jobTypes=["vtolSearch"]),
        Vehicle(vehicleId=3, jobTypes=["payloadDrop"]),
        Vehicle(vehicleId=4, jobTypes=["ugvRescue"]),
        Vehicle(vehicleId=5, jobTypes=["uuvRescue"]),
    ]
