"""
Geodesy for smooth client animation between upstream polls.

Two pure operations, both free of I/O and shared state:

1. Dead reckoning: extrapolate an aircraft's last reported position along
   its track for the time elapsed since the snapshot was fetched.
2. Great-circle sampling: produce an ordered polyline between two points
   on the sphere so the map animates along a physically plausible curve.

Positions are (longitude, latitude) tuples in degrees, matching GeoJSON
coordinate order used by the map layer. The Earth is modeled as a sphere
of mean radius; at feed timescales (seconds to minutes) the ellipsoidal
error is well below the upstream position noise.
"""

import math
from typing import List, Sequence

import numpy as np

from flightfeed.models.flight_state import FlightState, Point

EARTH_RADIUS_KM = 6371.0088

MS_PER_HOUR = 3_600_000
MPS_TO_KMH = 3.6

# Below this central angle two points are treated as identical
_COINCIDENT_RADIANS = 1e-12
# Within this of pi the great circle through two points is not unique
_ANTIPODAL_RADIANS = 1e-9


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate great-circle distance between two points in kilometers.

    Uses the Haversine formula for accuracy over short to medium distances.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def normalize_longitude(longitude: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    return (longitude + 540.0) % 360.0 - 180.0


def destination_point(
    longitude: float,
    latitude: float,
    bearing_deg: float,
    distance_km: float,
) -> Point:
    """
    Project a point along an initial bearing for a distance on the sphere.

    Standard spherical destination formula; bearing is clockwise from true north.
    """
    phi1 = math.radians(latitude)
    lambda1 = math.radians(longitude)
    theta = math.radians(bearing_deg)
    delta = distance_km / EARTH_RADIUS_KM

    sin_phi2 = (
        math.sin(phi1) * math.cos(delta) +
        math.cos(phi1) * math.sin(delta) * math.cos(theta)
    )
    phi2 = math.asin(max(-1.0, min(1.0, sin_phi2)))
    lambda2 = lambda1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi1),
        math.cos(delta) - math.sin(phi1) * math.sin(phi2),
    )

    return (normalize_longitude(math.degrees(lambda2)), math.degrees(phi2))


def predict_position(flight: FlightState, elapsed_ms: float) -> Point:
    """
    Dead-reckon a flight's position after elapsed_ms.

    Grounded aircraft and aircraft without speed or heading are returned
    at their last known position unchanged.
    """
    if flight.is_stationary or elapsed_ms <= 0:
        return flight.position

    velocity_kmh = flight.velocity * MPS_TO_KMH
    distance_km = velocity_kmh * (elapsed_ms / MS_PER_HOUR)

    return destination_point(
        flight.longitude,
        flight.latitude,
        flight.true_track,
        distance_km,
    )


def segments_for_elapsed(
    elapsed_ms: float,
    ms_per_segment: int = 100,
    max_segments: int = 300,
) -> int:
    """Scale trajectory resolution with snapshot staleness, capped."""
    if elapsed_ms <= 0:
        return 0
    return min(max_segments, int(elapsed_ms // ms_per_segment))


def _to_unit_vector(point: Sequence[float]) -> np.ndarray:
    lng, lat = np.radians(point[0]), np.radians(point[1])
    return np.array([
        np.cos(lat) * np.cos(lng),
        np.cos(lat) * np.sin(lng),
        np.sin(lat),
    ])


def build_trajectory(start: Sequence[float], end: Sequence[float], segments: int) -> List[Point]:
    """
    Sample segments + 1 points along the great circle from start to end.

    Interpolates spherically between the two unit vectors (slerp), so
    consecutive points are equally spaced along the arc. The first and last
    points are exactly start and end. With segments < 1, or coincident
    endpoints, the result is the single point [start].

    Raises ValueError for antipodal endpoints, where no unique great
    circle exists.
    """
    start = (float(start[0]), float(start[1]))
    end = (float(end[0]), float(end[1]))

    if segments < 1 or start == end:
        return [start]

    v1 = _to_unit_vector(start)
    v2 = _to_unit_vector(end)
    # atan2 keeps the central angle accurate near 0 and near pi
    omega = float(np.arctan2(np.linalg.norm(np.cross(v1, v2)), np.dot(v1, v2)))

    if omega < _COINCIDENT_RADIANS:
        return [start]
    if math.pi - omega < _ANTIPODAL_RADIANS:
        raise ValueError(f'Great circle between antipodal points {start} and {end} is undefined')

    t = np.linspace(0.0, 1.0, segments + 1)
    sin_omega = math.sin(omega)
    weights_start = np.sin((1.0 - t) * omega) / sin_omega
    weights_end = np.sin(t * omega) / sin_omega
    vectors = weights_start[:, None] * v1 + weights_end[:, None] * v2

    latitudes = np.degrees(np.arcsin(np.clip(vectors[:, 2], -1.0, 1.0)))
    longitudes = np.degrees(np.arctan2(vectors[:, 1], vectors[:, 0]))

    points = list(zip(longitudes.tolist(), latitudes.tolist()))
    # Pin endpoints to the inputs to remove round-trip float drift
    points[0] = start
    points[-1] = end
    return points
