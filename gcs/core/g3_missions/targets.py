"""
Target Consolidation
Collapses the target positions reported by search vehicles into a single
location to hand to the next mission.
"""

import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, Iterable, Optional

import numpy as np

log = logging.getLogger(__name__)

# Metres per degree of latitude (spherical earth).
METERS_PER_DEGREE = 111_320.0


@dataclass
class TargetCluster:
    id: str
    position: np.ndarray       # [lat, lng]
    confidence: float          # best confidence seen
    weight: float              # sum of confidences folded in
    reports: int = 1


def _distance_m(a: np.ndarray, b: np.ndarray) -> float:
    """Equirectangular distance in metres between two [lat, lng] points."""
    mean_lat = np.radians((a[0] + b[0]) / 2.0)
    d = (a - b) * METERS_PER_DEGREE
    d[1] *= np.cos(mean_lat)
    return float(np.linalg.norm(d))


class TargetRegistry:
    """
    Associates reported target positions into clusters.

    A report within association_radius_m of an existing cluster is folded
    into it as a confidence-weighted mean; otherwise it starts a new cluster.
    """

    def __init__(self, association_radius_m: float = 30.0):
        self.association_radius_m = association_radius_m
        self.clusters: Dict[str, TargetCluster] = {}
        self.next_id = 1

    def update(self, lat: float, lng: float, confidence: float = 1.0) -> str:
        pos = np.array([lat, lng], dtype=float)
        confidence = max(float(confidence), 1e-6)

        best_id, best_dist = None, self.association_radius_m
        for cid, cluster in self.clusters.items():
            dist = _distance_m(cluster.position, pos)
            if dist < best_dist:
                best_id, best_dist = cid, dist

        if best_id:
            c = self.clusters[best_id]
            total = c.weight + confidence
            c.position = (c.position * c.weight + pos * confidence) / total
            c.weight = total
            c.confidence = max(c.confidence, confidence)
            c.reports += 1
            return best_id

        cid = f"T{self.next_id}"
        self.next_id += 1
        self.clusters[cid] = TargetCluster(
            id=cid, position=pos, confidence=confidence, weight=confidence
        )
        return cid

    def get_best_target(self) -> Optional[TargetCluster]:
        """The cluster with the most accumulated evidence (first seen wins ties)."""
        if not self.clusters:
            return None
        return max(self.clusters.values(), key=lambda c: (c.weight, -int(c.id[1:])))


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def consolidate_target_location(results: Iterable[Dict[str, Any]],
                                association_radius_m: float = 30.0) -> Optional[Dict[str, float]]:
    """
    Builds {"lat", "lng"} from result parameters that carry a position.

    Results without both lat and lng are skipped, as are results whose
    lat, lng or confidence is not a finite number. Returns None when no
    result carries a usable position.
    """
    registry = TargetRegistry(association_radius_m)
    for result in results:
        if not isinstance(result, dict) or "lat" not in result or "lng" not in result:
            continue
        values = (result["lat"], result["lng"], result.get("confidence", 1.0))
        if not all(_is_number(v) for v in values):
            log.warning(f"[Targets] Skipping report with non-numeric position or confidence: {values}")
            continue
        registry.update(*values)

    best = registry.get_best_target()
    if best is None:
        return None
    return {"lat": float(best.position[0]), "lng": float(best.position[1])}
