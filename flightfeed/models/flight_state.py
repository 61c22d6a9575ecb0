"""
FlightState - one observed aircraft at a point in time.

Parsed from the OpenSky state vector array format:
0: icao24          - ICAO24 hex address
1: callsign        - Callsign (8 chars max)
2: origin_country  - Country of registration
3: time_position   - Unix timestamp of last position update
4: last_contact    - Unix timestamp of last message
5: longitude       - WGS84 longitude
6: latitude        - WGS84 latitude
7: baro_altitude   - Barometric altitude (meters)
8: on_ground       - Boolean
9: velocity        - Ground speed (m/s)
10: true_track     - Track angle (degrees, 0=north)
11: vertical_rate  - Vertical rate (m/s)
12: sensors        - Sensor IDs (array)
13: geo_altitude   - Geometric altitude (meters)
14: squawk         - Transponder code
15: spi            - Special position indicator
16: position_source - 0=ADS-B, 1=ASTERIX, 2=MLAT, 3=FLARM

Records are immutable once parsed. Predicted position and trajectory are
computed per response and passed to to_dict(), never stored on the record.
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, List, Optional, Sequence, Tuple

STATE_VECTOR_LENGTH = 17

Point = Tuple[float, float]  # (longitude, latitude)


class PositionSource(IntEnum):
    """Origin of the reported position."""
    ADSB = 0
    ASTERIX = 1
    MLAT = 2
    FLARM = 3


def _coerce_float(value: Any) -> Optional[float]:
    """Convert a raw upstream value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _coerce_int(value: Any) -> Optional[int]:
    """Whole-second timestamps arrive as ints; accept finite floats too."""
    result = _coerce_float(value)
    return int(result) if result is not None else None


def _coerce_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None

def _position_source(value: Any) -> int:
    """Known PositionSource code, or ADS-B when absent or unrecognized."""
    if isinstance(value, bool) or not isinstance(value, int):
        return PositionSource.ADSB.value
    try:
        return PositionSource(value).value
    except ValueError:
        return PositionSource.ADSB.value


def is_valid_position(longitude: Any, latitude: Any) -> bool:
    """
    Check that a raw coordinate pair can be plotted.

    Rejects missing, non-numeric, NaN, and out-of-range values, and treats
    an exact zero on either axis as the "no fix" sentinel some receivers emit.
    """
    lng = _coerce_float(longitude)
    lat = _coerce_float(latitude)
    if lng is None or lat is None:
        return False
    if lng == 0 or lat == 0:
        return False
    return abs(lng) <= 180 and abs(lat) <= 90


@dataclass(frozen=True)
class FlightState:
    """Normalized state vector with a guaranteed valid position."""
    icao24: str
    callsign: str
    origin_country: str
    time_position: Optional[int]
    last_contact: Optional[int]
    longitude: float
    latitude: float
    baro_altitude: Optional[float]
    on_ground: bool
    velocity: float
    true_track: float
    vertical_rate: float
    sensors: Optional[Tuple[int, ...]]
    geo_altitude: Optional[float]
    squawk: Optional[str]
    spi: bool
    position_source: int

    @classmethod
    def from_array(cls, arr: Sequence[Any]) -> Optional['FlightState']:
        """
        Parse an OpenSky state vector array into a FlightState.

        Returns None if the array is malformed, has no transponder id,
        or fails the position validity check.
        """
        if not isinstance(arr, (list, tuple)) or len(arr) < STATE_VECTOR_LENGTH:
            return None

        icao24 = arr[0]
        if not icao24 or not isinstance(icao24, str):
            return None

        if not is_valid_position(arr[5], arr[6]):
            return None

        sensors = None
        if isinstance(arr[12], (list, tuple)):
            sensors = tuple(s for s in arr[12] if isinstance(s, int) and not isinstance(s, bool))

        return cls(
            icao24=icao24.strip().lower(),
            callsign=_coerce_str(arr[1]) or 'N/A',
            origin_country=_coerce_str(arr[2]) or 'Unknown',
            time_position=_coerce_int(arr[3]),
            last_contact=_coerce_int(arr[4]),
            longitude=_coerce_float(arr[5]),
            latitude=_coerce_float(arr[6]),
            baro_altitude=_coerce_float(arr[7]),
            on_ground=arr[8] is True,
            velocity=_coerce_float(arr[9]) or 0.0,
            true_track=_coerce_float(arr[10]) or 0.0,
            vertical_rate=_coerce_float(arr[11]) or 0.0,
            sensors=sensors,
            geo_altitude=_coerce_float(arr[13]),
            squawk=_coerce_str(arr[14]),
            spi=arr[15] is True,
            position_source=_position_source(arr[16]),
        )

    @property
    def position(self) -> Point:
        return (self.longitude, self.latitude)

    @property
    def is_stationary(self) -> bool:
        """Grounded, or missing the speed/heading needed for dead reckoning."""
        return self.on_ground or not self.velocity or not self.true_track

    def to_dict(
        self,
        predicted_position: Optional[Point] = None,
        trajectory: Optional[Iterable[Point]] = None,
    ) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        result = {
            'icao24': self.icao24,
            'callsign': self.callsign,
            'origin_country': self.origin_country,
            'time_position': self.time_position,
            'last_contact': self.last_contact,
            'longitude': self.longitude,
            'latitude': self.latitude,
            'baro_altitude': self.baro_altitude,
            'on_ground': self.on_ground,
            'velocity': self.velocity,
            'true_track': self.true_track,
            'vertical_rate': self.vertical_rate,
            'sensors': list(self.sensors) if self.sensors is not None else None,
            'geo_altitude': self.geo_altitude,
            'squawk': self.squawk,
            'spi': self.spi,
            'position_source': self.position_source,
        }

        if predicted_position is not None:
            result['predicted_position'] = {
                'longitude': predicted_position[0],
                'latitude': predicted_position[1],
            }

        if trajectory is not None:
            result['trajectory'] = [[lng, lat] for lng, lat in trajectory]

        return result


def parse_states(rows: Iterable[Any]) -> List[FlightState]:
    """Parse raw state rows, dropping any that fail validation."""
    flights = []
    for row in rows:
        flight = FlightState.from_array(row)
        if flight is not None:
            flights.append(flight)
    return flights
