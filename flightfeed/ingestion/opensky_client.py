"""
OpenSky Network spatial-state client.

Handles communication with the OpenSky REST API, including:
- Bounding box queries built from a center point and a radius in degrees
- Advisory request-credit estimates (logged, never enforced locally)
- Bearer token headers from a TokenSource, with a single anonymous retry on 401
- Normalization of the raw tabular response into FlightState records

Every outcome is returned as a FetchResult tagged with a FetchStatus, so
callers dispatch on the tag instead of catching transport exceptions.
The upstream service is the rate-limit authority; this client never
sleeps or throttles.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import requests

from flightfeed.config import config
from flightfeed.ingestion.token_manager import TokenSource, anonymous_headers
from flightfeed.models.flight_state import FlightState, parse_states

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """
    Geographic bounding box for API queries.

    OpenSky expects: lamin, lomin, lamax, lomax
    (latitude min, longitude min, latitude max, longitude max)
    """
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_center_radius(
        cls,
        center_lat: float,
        center_lon: float,
        radius: float,
    ) -> 'BoundingBox':
        """Square box extending `radius` degrees on each side of the center."""
        return cls(
            lat_min=center_lat - radius,
            lat_max=center_lat + radius,
            lon_min=center_lon - radius,
            lon_max=center_lon + radius,
        )

    @property
    def area_degrees(self) -> float:
        return (self.lat_max - self.lat_min) * (self.lon_max - self.lon_min)

    def to_params(self) -> dict:
        """Convert to OpenSky API query parameters."""
        return {
            'lamin': self.lat_min,
            'lomin': self.lon_min,
            'lamax': self.lat_max,
            'lomax': self.lon_max,
        }


def estimate_credit_cost(area_degrees: float) -> int:
    """
    OpenSky credit cost of a bounding-box query by area in square degrees.

    Thresholds follow the published pricing: up to 25 -> 1 credit,
    up to 100 -> 2, up to 400 -> 3, anything larger (or global) -> 4.
    """
    if area_degrees <= 25:
        return 1
    if area_degrees <= 100:
        return 2
    if area_degrees <= 400:
        return 3
    return 4


class FetchStatus(str, Enum):
    """Outcome of one upstream query."""
    OK = 'ok'
    NO_DATA = 'no_data'  # valid response with zero usable rows
    RATE_LIMITED = 'rate_limited'
    AUTH_ERROR = 'auth_error'
    TRANSIENT_ERROR = 'transient_error'  # network, timeout, 5xx, malformed payload


@dataclass(frozen=True)
class FetchResult:
    """Tagged result of a spatial fetch."""
    status: FetchStatus
    flights: Tuple[FlightState, ...] = ()
    authenticated: bool = False
    error: Optional[str] = None
    cause: Optional[BaseException] = None
    api_time: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.status in (FetchStatus.OK, FetchStatus.NO_DATA)

    @classmethod
    def success(
        cls,
        flights: Sequence[FlightState],
        authenticated: bool,
        api_time: Optional[int] = None,
    ) -> 'FetchResult':
        return cls(
            status=FetchStatus.OK if flights else FetchStatus.NO_DATA,
            flights=tuple(flights),
            authenticated=authenticated,
            api_time=api_time,
        )

    @classmethod
    def failure(
        cls,
        status: FetchStatus,
        error: str,
        authenticated: bool,
        cause: Optional[BaseException] = None,
    ) -> 'FetchResult':
        return cls(status=status, authenticated=authenticated, error=error, cause=cause)


class MalformedPayloadError(ValueError):
    """Upstream returned JSON that is not a states document."""


def parse_states_payload(data: Any) -> Tuple[Optional[int], list]:
    """
    Extract (api_time, flights) from a /states/all response body.

    A null or absent `states` field means no aircraft in the box. Rows
    that fail validation are dropped; a body that is not a states
    document at all raises MalformedPayloadError.
    """
    if not isinstance(data, dict):
        raise MalformedPayloadError(f'Expected JSON object, got {type(data).__name__}')

    states_raw = data.get('states')
    if states_raw is None:
        return data.get('time'), []
    if not isinstance(states_raw, list):
        raise MalformedPayloadError(f'Expected states array, got {type(states_raw).__name__}')

    flights = parse_states(states_raw)
    dropped = len(states_raw) - len(flights)
    if dropped:
        logger.debug(f'Dropped {dropped} state vectors with invalid shape or position')

    return data.get('time'), flights


class SpatialFetcher:
    """
    Client for the OpenSky /states/all endpoint.

    Issues exactly one request per call, plus at most one anonymous retry
    when an authenticated request is rejected with 401.
    """

    def __init__(
        self,
        token_source: TokenSource,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.token_source = token_source
        self.base_url = base_url or config.opensky.base_url
        self.session = session or requests.Session()
        self.timeout = timeout or config.opensky.timeout_seconds

        # Statistics
        self._request_count = 0
        self._credits_estimated = 0

    @classmethod
    def from_config(
        cls,
        token_source: TokenSource,
        session: Optional[requests.Session] = None,
    ) -> 'SpatialFetcher':
        """Create fetcher from application configuration."""
        return cls(
            token_source=token_source,
            base_url=config.opensky.base_url,
            session=session,
            timeout=config.opensky.timeout_seconds,
        )

    def fetch(self, bbox: BoundingBox) -> FetchResult:
        """Fetch all state vectors inside a bounding box."""
        area = bbox.area_degrees
        credit_cost = estimate_credit_cost(area)
        self._credits_estimated += credit_cost
        logger.info(f'Fetching OpenSky states: area {area:.2f} sq deg, estimated credit cost {credit_cost}')

        return self._query(bbox.to_params())

    def fetch_by_icao24(self, icao24: str) -> FetchResult:
        """Fetch the current state of a single aircraft."""
        return self._query({'icao24': icao24.strip().lower()})

    def _get(self, params: dict, headers: Dict[str, str]) -> requests.Response:
        self._request_count += 1
        return self.session.get(
            f'{self.base_url}/states/all',
            params=params,
            headers=headers,
            timeout=self.timeout,
        )

    def _query(self, params: dict) -> FetchResult:
        headers = self.token_source.get_auth_headers()
        authenticated = 'Authorization' in headers

        logger.debug(f'Fetching states: params={params} authenticated={authenticated}')

        try:
            response = self._get(params, headers)
        except requests.exceptions.Timeout as e:
            logger.error('OpenSky API timeout')
            return FetchResult.failure(FetchStatus.TRANSIENT_ERROR, 'OpenSky API timeout', authenticated, e)
        except requests.exceptions.RequestException as e:
            logger.error(f'OpenSky request failed: {e}')
            return FetchResult.failure(FetchStatus.TRANSIENT_ERROR, f'OpenSky request failed: {e}', authenticated, e)

        if response.status_code == 429:
            logger.warning('OpenSky rate limit exceeded')
            return FetchResult.failure(FetchStatus.RATE_LIMITED, 'OpenSky API rate limit reached', authenticated)

        if response.status_code == 401:
            if not authenticated:
                logger.error('OpenSky rejected anonymous request with 401')
                return FetchResult.failure(FetchStatus.AUTH_ERROR, 'OpenSky API authentication failed', False)

            logger.warning('OpenSky API authentication failed, retrying anonymously')
            self.token_source.invalidate()
            authenticated = False

            try:
                response = self._get(params, anonymous_headers())
            except requests.exceptions.RequestException as e:
                logger.error(f'Anonymous retry failed: {e}')
                return FetchResult.failure(FetchStatus.AUTH_ERROR, f'Anonymous retry failed: {e}', False, e)

            if response.status_code == 429:
                logger.warning('OpenSky rate limit exceeded on anonymous retry')
                return FetchResult.failure(FetchStatus.RATE_LIMITED, 'OpenSky API rate limit reached', False)
            if not response.ok:
                logger.error(f'Anonymous retry failed: {response.status_code}')
                return FetchResult.failure(
                    FetchStatus.AUTH_ERROR,
                    f'OpenSky API authentication failed (anonymous retry: {response.status_code})',
                    False,
                )

        if not response.ok:
            logger.error(f'OpenSky API error: {response.status_code}')
            return FetchResult.failure(
                FetchStatus.TRANSIENT_ERROR,
                f'API Error: {response.status_code}',
                authenticated,
            )

        try:
            api_time, flights = parse_states_payload(response.json())
        except ValueError as e:
            # Covers both undecodable JSON and MalformedPayloadError
            logger.error(f'Malformed OpenSky payload: {e}')
            return FetchResult.failure(
                FetchStatus.TRANSIENT_ERROR,
                'Malformed response from OpenSky API',
                authenticated,
                e,
            )

        logger.info(f'Received {len(flights)} valid state vectors from OpenSky')
        return FetchResult.success(flights, authenticated, api_time)

    @property
    def stats(self) -> dict:
        """Get fetcher statistics."""
        return {
            'requests': self._request_count,
            'estimated_credits': self._credits_estimated,
        }
