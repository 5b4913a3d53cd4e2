"""
Component 3: Vehicle Assignment
Per-mission mapping from vehicle identity to the job type the operator has
assigned it.
"""

from typing import Dict, List, Optional, Set

VehicleId = int


class VehicleAssignment:
    """
    Maps vehicle_id -> job type for a single mission.

    Created empty when a mission is selected and filled in as the operator
    assigns vehicles.
    """

    def __init__(self, mapping: Optional[Dict[VehicleId, str]] = None):
        self._mapping: Dict[VehicleId, str] = {}
        for vehicle_id, job_type in (mapping or {}).items():
            self.assign(vehicle_id, job_type)

    def assign(self, vehicle_id: VehicleId, job_type: str) -> None:
        self._mapping[int(vehicle_id)] = job_type

    def unassign(self, vehicle_id: VehicleId) -> None:
        self._mapping.pop(int(vehicle_id), None)

    def job_type_of(self, vehicle_id: VehicleId) -> Optional[str]:
        return self._mapping.get(int(vehicle_id))

    def vehicles_for(self, job_type: str) -> List[VehicleId]:
        """Vehicles assigned the job type, in vehicle-id order."""
        return sorted(v for v, j in self._mapping.items() if j == job_type)

    def job_types(self) -> Set[str]:
        return set(self._mapping.values())

    def clear(self) -> None:
        self._mapping.clear()

    def to_dict(self) -> Dict[VehicleId, str]:
        return dict(sorted(self._mapping.items()))

    def __contains__(self, vehicle_id) -> bool:
        return int(vehicle_id) in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __eq__(self, other) -> bool:
        if not isinstance(other, VehicleAssignment):
            return NotImplemented
        return self._mapping == other._mapping

    def __repr__(self) -> str:
        return f"VehicleAssignment({self.to_dict()})"
