"""
Component 10: Vehicle Roster
Latest known snapshot of every vehicle reporting to the ground station.

The roster tracks the "physical reality" of the fleet: which vehicles exist,
which job types they can perform, and whether they are connected. This is
critically separate from the RunState (G2), which tracks the logical progress
of the mission sequence.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)

VEHICLE_STATUSES = ("ready", "error", "disconnected", "waiting", "running", "paused")


class Vehicle(BaseModel):
    """
    Snapshot of one vehicle as reported by telemetry.

    Payloads arrive camelCase ({"vehicleId": 1, "jobTypes": [...], ...}).
    """
    model_config = ConfigDict(populate_by_name=True)

    vehicle_id: int = Field(alias="vehicleId")
    job_types: List[str] = Field(default_factory=list, alias="jobTypes")
    status: str = "ready"
    lat: float = 0.0
    lng: float = 0.0
    alt: Optional[float] = None
    battery: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    heading: Optional[float] = None

    @property
    def connected(self) -> bool:
        return self.status != "disconnected"

    def can_perform(self, job_type: str) -> bool:
        return job_type in self.job_types


# Type alias for a listener: Callable[[Vehicle], None]
VehicleChangeListener = Callable[[Vehicle], None]


class VehicleRoster:
    """
    Holds the latest Vehicle snapshot per vehicle id and notifies
    listeners when a snapshot changes.
    """

    def __init__(self, vehicles: Iterable[Vehicle] = ()):
        self._vehicles: Dict[int, Vehicle] = {}
        self._listeners: Set[VehicleChangeListener] = set()
        for vehicle in vehicles:
            self._vehicles[vehicle.vehicle_id] = vehicle

    def add_listener(self, listener: VehicleChangeListener):
        """Register a callback for vehicle updates."""
        self._listeners.add(listener)

    def _notify_listeners(self, vehicle: Vehicle):
        for listener in self._listeners:
            try:
                listener(vehicle)
            except Exception as e:
                log.error(f"[VehicleRoster] Error in listener {listener}: {e}")

    def update(self, vehicle: Vehicle) -> bool:
        """
        Stores a new snapshot. Returns True if anything changed.
        """
        previous = self._vehicles.get(vehicle.vehicle_id)
        if previous == vehicle:
            return False

        self._vehicles[vehicle.vehicle_id] = vehicle
        if previous is None:
            log.info(f"[VehicleRoster] New vehicle: {vehicle.vehicle_id} (jobs: {vehicle.job_types})")
        elif previous.status != vehicle.status:
            log.info(f"[VehicleRoster] Vehicle {vehicle.vehicle_id}: {previous.status} -> {vehicle.status}")
        self._notify_listeners(vehicle)
        return True

    def set_status(self, vehicle_id: int, status: str) -> bool:
        """
        Changes only the status of a known vehicle (e.g. after a last-will
        message). Unknown vehicles are ignored.
        """
        if status not in VEHICLE_STATUSES:
            raise ValueError(f"Unknown vehicle status '{status}'")
        vehicle = self.get(vehicle_id)
        if vehicle is None:
            log.warning(f"[VehicleRoster] Status for unknown vehicle {vehicle_id} ignored")
            return False
        return self.update(vehicle.model_copy(update={"status": status}))

    def get(self, vehicle_id: int) -> Optional[Vehicle]:
        return self._vehicles.get(int(vehicle_id))

    def is_connected(self, vehicle_id: int) -> bool:
        vehicle = self.get(vehicle_id)
        return vehicle is not None and vehicle.connected

    def qualifies(self, vehicle_id: int, job_type: str) -> bool:
        """True if the vehicle is connected and holds the job type."""
        vehicle = self.get(vehicle_id)
        return vehicle is not None and vehicle.connected and vehicle.can_perform(job_type)

    def vehicles(self) -> List[Vehicle]:
        return [self._vehicles[v] for v in sorted(self._vehicles)]

    def __contains__(self, vehicle_id) -> bool:
        return int(vehicle_id) in self._vehicles

    def __len__(self) -> int:
        return len(self._vehicles)

    def __str__(self) -> str:
        online = sum(1 for v in self._vehicles.values() if v.connected)
        return f"VehicleRoster({online}/{len(self._vehicles)} connected)"
