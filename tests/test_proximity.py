"""
test_proximity.py — Haversine distance and risk tier classification.

Run with:
    pytest tests/test_proximity.py -v
"""

from __future__ import annotations

import math

import pytest

from backend.app.spatial.proximity import ProximityClassifier, RiskTier
from backend.app.spatial.radius_utils import Coordinate, format_distance, haversine
from backend.app.zones.models import Severity, UserRef, Zone, ZoneStatus

# Rayagada (19.0769°N, 83.7603°E)
ORIGIN = Coordinate(19.0769, 83.7603)

# One degree of latitude on a 6371 km sphere
KM_PER_DEG_LAT = 2 * math.pi * 6371.0 / 360

DEFAULTS = ProximityClassifier()


def _north_of(origin: Coordinate, km: float) -> Coordinate:
    return Coordinate(origin.lat + km / KM_PER_DEG_LAT, origin.lng)


def _make_zone(coordinates, severity: Severity = Severity.HIGH, title: str = "Zone") -> Zone:
    return Zone(
        title=title,
        description="test",
        location="somewhere",
        severity=severity,
        reported_by=UserRef(id="u1"),
        status=ZoneStatus.APPROVED,
        coordinates=coordinates,
    )


class TestHaversine:

    def test_same_point(self):
        assert haversine(ORIGIN, ORIGIN) == 0.0

    def test_chennai_bangalore(self):
        d = haversine(Coordinate(13.0827, 80.2707), Coordinate(12.9716, 77.5946))
        assert d == pytest.approx(290.2, abs=0.5)

    def test_symmetric(self):
        a, b = Coordinate(10, 20), Coordinate(-5, 100)
        assert haversine(a, b) == pytest.approx(haversine(b, a))

    def test_one_degree_latitude(self):
        assert haversine(Coordinate(0, 0), Coordinate(1, 0)) == pytest.approx(KM_PER_DEG_LAT)

    def test_antipodal(self):
        assert haversine(Coordinate(0, 0), Coordinate(0, 180)) == pytest.approx(math.pi * 6371.0)

    @pytest.mark.parametrize("lat, lng", [(91, 0), (-90.5, 0), (0, 181), (0, -180.1)])
    def test_out_of_range(self, lat, lng):
        with pytest.raises(ValueError):
            Coordinate(lat, lng)


class TestFormatDistance:

    def test_metres(self):
        assert format_distance(0.45) == "450 m"

    def test_kilometres(self):
        assert format_distance(3.7266) == "3.73 km"

    def test_zero(self):
        assert format_distance(0.0) == "0 m"


class TestEvaluate:

    def test_same_point_high_is_danger(self):
        result = DEFAULTS.evaluate(ORIGIN, [_make_zone(ORIGIN, Severity.HIGH)])
        assert result.tier == RiskTier.DANGER
        assert result.distance_km == pytest.approx(0.0, abs=1e-9)

    def test_empty_is_safe(self):
        result = DEFAULTS.evaluate(ORIGIN, [])
        assert result.tier == RiskTier.SAFE
        assert result.nearest_zone is None
        assert result.distance_km is None

    def test_zones_without_coordinates_are_ignored(self):
        result = DEFAULTS.evaluate(ORIGIN, [_make_zone(None), _make_zone(None)])
        assert result.tier == RiskTier.SAFE
        assert result.nearest_zone is None

    @pytest.mark.parametrize("severity", [Severity.LOW, Severity.MEDIUM])
    def test_close_non_high_is_warning(self, severity):
        result = DEFAULTS.evaluate(ORIGIN, [_make_zone(_north_of(ORIGIN, 0.2), severity)])
        assert result.tier == RiskTier.WARNING

    @pytest.mark.parametrize("km", [0.6, 1.0, 1.9])
    def test_warning_ring(self, km):
        result = DEFAULTS.evaluate(ORIGIN, [_make_zone(_north_of(ORIGIN, km), Severity.HIGH)])
        assert result.tier == RiskTier.WARNING

    @pytest.mark.parametrize("km", [2.1, 10.0, 500.0])
    def test_far_is_safe(self, km):
        result = DEFAULTS.evaluate(ORIGIN, [_make_zone(_north_of(ORIGIN, km), Severity.HIGH)])
        assert result.tier == RiskTier.SAFE
        assert result.nearest_zone is not None
        assert result.distance_km == pytest.approx(km, rel=1e-3)

    def test_nearest_zone_decides(self):
        near_low = _make_zone(_north_of(ORIGIN, 0.3), Severity.LOW, "near")
        far_high = _make_zone(_north_of(ORIGIN, 1.5), Severity.HIGH, "far")
        result = DEFAULTS.evaluate(ORIGIN, [far_high, near_low])
        assert result.nearest_zone.title == "near"
        assert result.tier == RiskTier.WARNING

    def test_tie_prefers_more_severe(self):
        spot = _north_of(ORIGIN, 0.1)
        result = DEFAULTS.evaluate(ORIGIN, [
            _make_zone(spot, Severity.LOW, "low"),
            _make_zone(spot, Severity.HIGH, "high"),
        ])
        assert result.nearest_zone.title == "high"
        assert result.tier == RiskTier.DANGER

    def test_accepts_generator(self):
        zones = (z for z in [_make_zone(ORIGIN)])
        assert DEFAULTS.evaluate(ORIGIN, zones).tier == RiskTier.DANGER

    def test_to_dict(self):
        data = DEFAULTS.evaluate(ORIGIN, [_make_zone(_north_of(ORIGIN, 0.45), Severity.MEDIUM)]).to_dict()
        assert data["tier"] == "warning"
        assert data["distance_display"] == "450 m"
        assert data["nearest_zone"]["severity"] == "medium"

    def test_to_dict_empty(self):
        assert DEFAULTS.evaluate(ORIGIN, []).to_dict() == {
            "tier": "safe",
            "nearest_zone": None,
            "distance_km": None,
            "distance_display": None,
        }


class TestCustomRadii:

    def test_wider_danger_radius(self):
        classifier = ProximityClassifier(danger_radius_km=1.0, warning_radius_km=5.0)
        zone = _make_zone(_north_of(ORIGIN, 0.8), Severity.HIGH)
        assert classifier.evaluate(ORIGIN, [zone]).tier == RiskTier.DANGER

    def test_classify_boundaries(self):
        classifier = ProximityClassifier()
        assert classifier.classify(0.5, Severity.HIGH) == RiskTier.WARNING
        assert classifier.classify(0.4999, Severity.HIGH) == RiskTier.DANGER
        assert classifier.classify(2.0, Severity.HIGH) == RiskTier.SAFE

    @pytest.mark.parametrize("danger, warning", [(0, 2), (1, -1), (3, 2)])
    def test_invalid_radii(self, danger, warning):
        with pytest.raises(ValueError):
            ProximityClassifier(danger, warning)
