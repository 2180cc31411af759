"""
proximity.py — Risk tier for a live position relative to approved zones.

═══════════════════════════════════════════════════════════════════════════
TIER RULES
═══════════════════════════════════════════════════════════════════════════

    d = haversine distance to the nearest zone with coordinates

    Condition                              Tier
    ───────────────────────────────────    ───────
    d < danger radius and severity high    DANGER
    d < danger radius                      WARNING
    danger radius ≤ d < warning radius     WARNING
    d ≥ warning radius                     SAFE
    no zone has coordinates                SAFE  (no nearest zone, no distance)

    Default radii: danger 0.5 km, warning 2 km.

When two zones are equally near, the more severe one is reported.
The classifier holds no state beyond its radii and is safe to share.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from backend.app.spatial.radius_utils import Coordinate, format_distance, haversine
from backend.app.zones.models import Severity, Zone

DEFAULT_DANGER_RADIUS_KM = 0.5
DEFAULT_WARNING_RADIUS_KM = 2.0

_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class RiskTier(str, Enum):
    SAFE    = "safe"
    WARNING = "warning"
    DANGER  = "danger"


@dataclass(frozen=True)
class ProximityResult:
    tier: RiskTier
    nearest_zone: Optional[Zone] = None
    distance_km: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        zone = self.nearest_zone
        return {
            "tier": self.tier.value,
            "nearest_zone": zone.to_dict() if zone else None,
            "distance_km": round(self.distance_km, 4) if self.distance_km is not None else None,
            "distance_display": (
                format_distance(self.distance_km) if self.distance_km is not None else None
            ),
        }


class ProximityClassifier:
    """
    Usage:
        classifier = ProximityClassifier()
        result = classifier.evaluate(Coordinate(19.0769, 83.7603), approved_zones)
        result.tier  # RiskTier.DANGER
    """

    def __init__(
        self,
        danger_radius_km: float = DEFAULT_DANGER_RADIUS_KM,
        warning_radius_km: float = DEFAULT_WARNING_RADIUS_KM,
    ):
        if danger_radius_km <= 0 or warning_radius_km <= 0:
            raise ValueError("Radii must be positive")
        if danger_radius_km > warning_radius_km:
            raise ValueError("Danger radius must not exceed warning radius")
        self.danger_radius_km = danger_radius_km
        self.warning_radius_km = warning_radius_km

    def classify(self, distance_km: float, severity: Severity) -> RiskTier:
        if distance_km < self.danger_radius_km:
            return RiskTier.DANGER if severity == Severity.HIGH else RiskTier.WARNING
        if distance_km < self.warning_radius_km:
            return RiskTier.WARNING
        return RiskTier.SAFE

    def evaluate(self, point: Coordinate, zones: Iterable[Zone]) -> ProximityResult:
        nearest: Optional[Zone] = None
        nearest_km: Optional[float] = None

        for zone in zones:
            if zone.coordinates is None:
                continue
            d = haversine(point, zone.coordinates)
            if (
                nearest_km is None
                or d < nearest_km
                or (d == nearest_km and _SEVERITY_RANK[zone.severity] > _SEVERITY_RANK[nearest.severity])
            ):
                nearest, nearest_km = zone, d

        if nearest is None:
            return ProximityResult(tier=RiskTier.SAFE)
        return ProximityResult(
            tier=self.classify(nearest_km, nearest.severity),
            nearest_zone=nearest,
            distance_km=nearest_km,
        )

