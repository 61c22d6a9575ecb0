"""
Flight feed orchestration.

Serves the live map from a region cache, polling OpenSky only when the
cached snapshot for a region has gone stale. Each request runs through
an explicit state machine:

    cache fresh            -> predict forward from snapshot, return
    cache stale / missing  -> fetch
    fetch ok / no data     -> store snapshot, return identity trajectories
    fetch rate limited     -> serve stale snapshot if any, else empty + error
    fetch auth error       -> (anonymous retry already spent by the fetcher)
                              serve stale snapshot if any, else empty + error
    fetch transient error  -> serve stale snapshot if any, else empty + error

There is exactly one upstream call per cache miss, never a retry loop.
Failures never raise out of get_flights(); the response carries `cached`,
`authenticated`, and `error` so clients can tell a degraded answer from
a live one.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from flightfeed.cache import RegionCache, RegionCacheEntry, region_key
from flightfeed.config import config
from flightfeed.geo import build_trajectory, predict_position, segments_for_elapsed
from flightfeed.ingestion.opensky_client import BoundingBox, FetchResult, FetchStatus, SpatialFetcher
from flightfeed.ingestion.reference_db import AirlineLookup
from flightfeed.ingestion.token_manager import TokenManager, TokenSource
from flightfeed.models.flight_state import FlightState, Point

logger = logging.getLogger(__name__)

RATE_LIMITED_STALE_MESSAGE = 'Rate limit reached - showing cached data'
RATE_LIMITED_EMPTY_MESSAGE = 'OpenSky API rate limit reached. Please wait before trying again.'


class FlightLookupError(Exception):
    """Upstream failure while looking up a single aircraft."""

    def __init__(self, result: FetchResult):
        super().__init__(result.error or result.status.value)
        self.result = result


@dataclass
class FeedResponse:
    """Body of GET /api/flights."""
    flights: List[dict]
    cached: bool
    timestamp: int  # epoch ms of the snapshot the flights came from
    authenticated: bool
    error: Optional[str] = None
    elapsed: Optional[int] = None  # ms between snapshot and response

    def to_dict(self) -> dict:
        result = {
            'flights': self.flights,
            'cached': self.cached,
            'timestamp': self.timestamp,
            'authenticated': self.authenticated,
        }
        if self.elapsed is not None:
            result['elapsed'] = self.elapsed
        if self.error is not None:
            result['error'] = self.error
        return result


def _identity(flight: FlightState) -> dict:
    """Serialize a flight with predicted == observed and a one-point trajectory."""
    return flight.to_dict(
        predicted_position=flight.position,
        trajectory=build_trajectory(flight.position, flight.position, 0),
    )


class FlightFeedService:
    """
    Per-request orchestration over the token source, fetcher, and cache.

    Holds no per-request state, so one instance serves all request threads.
    """

    def __init__(
        self,
        fetcher: SpatialFetcher,
        cache: RegionCache,
        token_source: TokenSource,
        airline_lookup: Optional[AirlineLookup] = None,
        clock: Callable[[], float] = time.time,
        default_radius: Optional[float] = None,
        max_trajectory_segments: Optional[int] = None,
        ms_per_segment: Optional[int] = None,
        detail_trajectory_points: Optional[int] = None,
        enrich_limit: Optional[int] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.token_source = token_source
        self.airline_lookup = airline_lookup
        self._clock = clock

        self.default_radius = default_radius or config.feed.default_radius
        self.max_trajectory_segments = max_trajectory_segments or config.feed.max_trajectory_segments
        self.ms_per_segment = ms_per_segment or config.feed.ms_per_segment
        self.detail_trajectory_points = detail_trajectory_points or config.feed.detail_trajectory_points
        self.enrich_limit = config.feed.enrich_limit if enrich_limit is None else enrich_limit

        self._transitions = {
            FetchStatus.OK: self._on_fetched,
            FetchStatus.NO_DATA: self._on_fetched,
            FetchStatus.RATE_LIMITED: self._on_rate_limited,
            FetchStatus.AUTH_ERROR: self._on_auth_error,
            FetchStatus.TRANSIENT_ERROR: self._on_transient_error,
        }

        # Statistics
        self._fallbacks = 0

    @classmethod
    def from_config(cls) -> 'FlightFeedService':
        """Wire the production collaborators from application configuration."""
        token_manager = TokenManager.from_config()
        return cls(
            fetcher=SpatialFetcher.from_config(token_manager),
            cache=RegionCache(),
            token_source=token_manager,
            airline_lookup=AirlineLookup(),
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # -------------------------------------------------------------------------
    # Region feed
    # -------------------------------------------------------------------------

    def get_flights(self, lat: float, lng: float, radius: Optional[float] = None) -> FeedResponse:
        """Flights around (lat, lng) with predicted positions and trajectories."""
        if radius is None:
            radius = self.default_radius

        key = region_key(lat, lng, radius)
        now = self._now_ms()
        authenticated = self.token_source.is_authenticated

        logger.debug(f'Flight feed request for {key}')

        entry = self.cache.get_fresh(key, authenticated, now)
        if entry is not None:
            return self._predict_from(entry, now, authenticated)

        result = self.fetcher.fetch(BoundingBox.from_center_radius(lat, lng, radius))
        return self._transitions[result.status](key, result, now)

    def _predict_from(self, entry: RegionCacheEntry, now: int, authenticated: bool) -> FeedResponse:
        """Dead-reckon every flight in a fresh snapshot to the current time."""
        elapsed = entry.age_ms(now)
        segments = segments_for_elapsed(elapsed, self.ms_per_segment, self.max_trajectory_segments)

        flights = []
        for flight in entry.flights:
            predicted = predict_position(flight, elapsed)
            flights.append(flight.to_dict(
                predicted_position=predicted,
                # A moved flight always gets at least start and predicted points
                trajectory=build_trajectory(flight.position, predicted, max(segments, 1)),
            ))

        return FeedResponse(
            flights=flights,
            cached=True,
            timestamp=entry.timestamp,
            authenticated=authenticated,
            elapsed=elapsed,
        )

    def _on_fetched(self, key: str, result: FetchResult, now: int) -> FeedResponse:
        if result.status is FetchStatus.NO_DATA:
            logger.debug(f'No aircraft in range for {key}')

        self.cache.put(key, result.flights, now)

        return FeedResponse(
            flights=[_identity(flight) for flight in result.flights],
            cached=False,
            timestamp=now,
            authenticated=result.authenticated,
        )

    def _on_rate_limited(self, key: str, result: FetchResult, now: int) -> FeedResponse:
        return self._fallback(key, result, now, RATE_LIMITED_STALE_MESSAGE, RATE_LIMITED_EMPTY_MESSAGE)

    def _on_auth_error(self, key: str, result: FetchResult, now: int) -> FeedResponse:
        return self._fallback(key, result, now, result.error, result.error)

    def _on_transient_error(self, key: str, result: FetchResult, now: int) -> FeedResponse:
        return self._fallback(key, result, now, result.error, result.error)

    def _fallback(
        self,
        key: str,
        result: FetchResult,
        now: int,
        stale_message: Optional[str],
        empty_message: Optional[str],
    ) -> FeedResponse:
        """Serve the last good snapshot for a region, or an explicit empty answer."""
        self._fallbacks += 1
        entry = self.cache.get(key)

        if entry is not None:
            logger.warning(f'Serving stale snapshot for {key} after {result.status.value}')
            return FeedResponse(
                flights=[_identity(flight) for flight in entry.flights],
                cached=True,
                timestamp=entry.timestamp,
                authenticated=result.authenticated,
                error=stale_message or 'Failed to fetch flight data',
                elapsed=entry.age_ms(now),
            )

        logger.warning(f'No snapshot to fall back on for {key} after {result.status.value}')
        return FeedResponse(
            flights=[],
            cached=False,
            timestamp=now,
            authenticated=result.authenticated,
            error=empty_message or 'Failed to fetch flight data',
        )

    # -------------------------------------------------------------------------
    # Single aircraft
    # -------------------------------------------------------------------------

    def get_flight(self, icao24: str, destination: Optional[Point] = None) -> Optional[dict]:
        """
        Current state of one aircraft, enriched with airline data.

        With a destination (lng, lat), includes a great-circle trajectory
        from the current position to it. Returns None if the aircraft is
        not being tracked; raises FlightLookupError on upstream failure.
        """
        result = self.fetcher.fetch_by_icao24(icao24)
        if not result.is_success:
            raise FlightLookupError(result)

        if not result.flights:
            return None

        flight = result.flights[0]

        trajectory = None
        if destination is not None:
            trajectory = build_trajectory(
                flight.position,
                destination,
                self.detail_trajectory_points - 1,
            )

        data = flight.to_dict(predicted_position=flight.position, trajectory=trajectory)
        if self.airline_lookup is not None:
            data = self._enrich_one(data)
        return data

    # -------------------------------------------------------------------------
    # Enrichment
    # -------------------------------------------------------------------------

    def enrich_flights(self, flights: Iterable[dict]) -> List[dict]:
        """Annotate the first enrich_limit flights with airline data."""
        flights = list(flights)
        if self.airline_lookup is None:
            return flights

        head = [self._enrich_one(f) for f in flights[:self.enrich_limit]]
        return head + flights[self.enrich_limit:]

    def _enrich_one(self, flight: dict) -> dict:
        if not isinstance(flight, dict):
            return flight
        try:
            return self.airline_lookup.enrich(flight)
        except SQLAlchemyError as e:
            logger.error(f'Error enriching flight {flight.get("icao24")}: {e}')
            return flight

    @property
    def stats(self) -> dict:
        """Get feed statistics."""
        return {
            'cache': self.cache.stats,
            'fetcher': self.fetcher.stats,
            'fallbacks': self._fallbacks,
            'authenticated': self.token_source.is_authenticated,
        }
