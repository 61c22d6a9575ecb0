import pytest

from flightfeed.cache import RegionCache
from flightfeed.geo import haversine_distance
from flightfeed.ingestion import AirlineLookup, SpatialFetcher, TokenManager
from flightfeed.services import FlightFeedService, FlightLookupError
from flightfeed.services.flight_feed import RATE_LIMITED_EMPTY_MESSAGE, RATE_LIMITED_STALE_MESSAGE

from fakes import FakeResponse, state_row, states_payload


@pytest.fixture
def feed(session, clock, token_source):
    return _service(session, clock, token_source)


def _service(session, clock, token_source, airline_lookup=None, **kwargs):
    fetcher = SpatialFetcher(
        token_source=token_source,
        base_url='https://opensky.example.test/api',
        session=session,
        timeout=5,
    )
    cache = RegionCache(
        ttl_authenticated_seconds=20,
        ttl_anonymous_seconds=30,
        max_entries=100,
        clock=clock,
    )
    return FlightFeedService(
        fetcher=fetcher,
        cache=cache,
        token_source=token_source,
        airline_lookup=airline_lookup,
        clock=clock,
        default_radius=2,
        **kwargs,
    )


def _ok(*rows):
    return FakeResponse(200, states_payload(*(rows or (state_row(),))))


def test_miss_fetches_and_returns_identity(feed, session, clock):
    session.queue_get(_ok())

    response = feed.get_flights(40.0, -74.0, 2).to_dict()

    assert response['cached'] is False
    assert response['authenticated'] is False
    assert response['timestamp'] == int(clock.now * 1000)
    assert 'error' not in response

    flight = response['flights'][0]
    assert flight['predicted_position'] == {'longitude': -74.0, 'latitude': 40.0}
    assert flight['trajectory'] == [[-74.0, 40.0]]
    assert len(session.get_calls) == 1


def test_fresh_hit_predicts_forward(feed, session, clock):
    session.queue_get(_ok())
    first = feed.get_flights(40.0, -74.0, 2)

    clock.advance(10)
    response = feed.get_flights(40.0, -74.0, 2).to_dict()

    assert len(session.get_calls) == 1
    assert response['cached'] is True
    assert response['timestamp'] == first.timestamp
    assert response['elapsed'] == 10_000

    flight = response['flights'][0]
    predicted = flight['predicted_position']
    moved = haversine_distance(40.0, -74.0, predicted['latitude'], predicted['longitude'])
    assert moved == pytest.approx(2.5, rel=1e-6)
    assert predicted['longitude'] > -74.0

    trajectory = flight['trajectory']
    assert len(trajectory) == 101
    assert trajectory[0] == [-74.0, 40.0]
    assert trajectory[-1] == [predicted['longitude'], predicted['latitude']]


def test_trajectory_length_is_capped(feed, session, clock):
    session.queue_get(_ok())
    feed.get_flights(40.0, -74.0, 2)

    clock.advance(29.5)
    flight = feed.get_flights(40.0, -74.0, 2).flights[0]

    assert len(flight['trajectory']) == 296

    feed.max_trajectory_segments = 50
    flight = feed.get_flights(40.0, -74.0, 2).flights[0]
    assert len(flight['trajectory']) == 51


def test_grounded_flight_stays_put(feed, session, clock):
    session.queue_get(_ok(state_row(on_ground=True)))
    feed.get_flights(40.0, -74.0, 2)

    clock.advance(10)
    flight = feed.get_flights(40.0, -74.0, 2).flights[0]

    assert flight['predicted_position'] == {'longitude': -74.0, 'latitude': 40.0}


def test_nearby_requests_share_one_fetch(feed, session):
    session.queue_get(_ok())

    feed.get_flights(40.001, -74.001, 2)
    response = feed.get_flights(40.004, -73.996, 2)

    assert response.cached is True
    assert len(session.get_calls) == 1


def test_different_radius_fetches_again(feed, session):
    session.queue_get(_ok(), _ok())

    feed.get_flights(40.0, -74.0, 2)
    feed.get_flights(40.0, -74.0, 3)

    assert len(session.get_calls) == 2


def test_default_radius(feed, session):
    session.queue_get(_ok())

    feed.get_flights(40.0, -74.0)

    assert session.get_calls[0]['params'] == {'lamin': 38.0, 'lomin': -76.0, 'lamax': 42.0, 'lomax': -72.0}


def test_authenticated_entries_expire_sooner(session, clock, token_source):
    token_source.authenticated = True
    feed = _service(session, clock, token_source)
    session.queue_get(_ok(), _ok())

    assert feed.get_flights(40.0, -74.0, 2).authenticated is True
    clock.advance(25)
    response = feed.get_flights(40.0, -74.0, 2)

    assert response.cached is False
    assert len(session.get_calls) == 2


def test_anonymous_entries_live_longer(feed, session, clock):
    session.queue_get(_ok())

    feed.get_flights(40.0, -74.0, 2)
    clock.advance(25)
    response = feed.get_flights(40.0, -74.0, 2)

    assert response.cached is True
    assert len(session.get_calls) == 1


def test_no_data_is_cached(feed, session, clock):
    session.queue_get(FakeResponse(200, {'time': 1, 'states': None}))

    first = feed.get_flights(40.0, -74.0, 2)
    clock.advance(5)
    second = feed.get_flights(40.0, -74.0, 2)

    assert first.flights == [] and first.error is None
    assert second.cached is True
    assert len(session.get_calls) == 1


def test_rate_limited_serves_stale_snapshot(feed, session, clock):
    session.queue_get(_ok(), FakeResponse(429))
    first = feed.get_flights(40.0, -74.0, 2)

    clock.advance(31)
    response = feed.get_flights(40.0, -74.0, 2).to_dict()

    assert len(session.get_calls) == 2
    assert response['cached'] is True
    assert response['error'] == RATE_LIMITED_STALE_MESSAGE
    assert response['timestamp'] == first.timestamp
    assert response['elapsed'] == 31_000
    flight = response['flights'][0]
    assert flight['predicted_position'] == {'longitude': -74.0, 'latitude': 40.0}
    assert flight['trajectory'] == [[-74.0, 40.0]]


def test_rate_limited_without_snapshot(feed, session, clock):
    session.queue_get(FakeResponse(429))

    response = feed.get_flights(40.0, -74.0, 2).to_dict()

    assert response['flights'] == []
    assert response['cached'] is False
    assert response['error'] == RATE_LIMITED_EMPTY_MESSAGE
    assert response['timestamp'] == int(clock.now * 1000)


def test_transient_error_serves_stale_snapshot(feed, session, clock):
    session.queue_get(_ok(), FakeResponse(503))
    feed.get_flights(40.0, -74.0, 2)

    clock.advance(60)
    response = feed.get_flights(40.0, -74.0, 2)

    assert response.cached is True
    assert response.error == 'API Error: 503'
    assert len(response.flights) == 1


def test_auth_error_without_snapshot(session, clock, token_source):
    token_source.authenticated = True
    feed = _service(session, clock, token_source)
    session.queue_get(FakeResponse(401), FakeResponse(401))

    response = feed.get_flights(40.0, -74.0, 2)

    assert response.flights == []
    assert response.authenticated is False
    assert response.error.startswith('OpenSky API authentication failed')
    assert feed.stats['fallbacks'] == 1


def test_failed_fetch_does_not_overwrite_snapshot(feed, session, clock):
    session.queue_get(_ok(), FakeResponse(503), FakeResponse(503))
    first = feed.get_flights(40.0, -74.0, 2)

    clock.advance(40)
    feed.get_flights(40.0, -74.0, 2)
    clock.advance(40)
    response = feed.get_flights(40.0, -74.0, 2)

    assert response.timestamp == first.timestamp
    assert response.elapsed == 80_000


def test_get_flight_with_destination(session, clock, token_source, reference_db):
    feed = _service(session, clock, token_source, airline_lookup=AirlineLookup())
    session.queue_get(_ok())

    flight = feed.get_flight('ABC123', destination=(-0.4543, 51.47))

    assert session.get_calls[0]['params'] == {'icao24': 'abc123'}
    assert flight['airline'] == 'United Airlines'
    assert flight['airline_iata'] == 'UA'
    assert len(flight['trajectory']) == 100
    assert flight['trajectory'][0] == [-74.0, 40.0]
    assert flight['trajectory'][-1] == [-0.4543, 51.47]


def test_get_flight_without_destination(feed, session):
    session.queue_get(_ok())

    flight = feed.get_flight('abc123')

    assert 'trajectory' not in flight
    assert 'airline' not in flight


def test_get_flight_not_tracked(feed, session):
    session.queue_get(FakeResponse(200, {'time': 1, 'states': None}))
    assert feed.get_flight('abc123') is None


def test_get_flight_upstream_failure(feed, session):
    session.queue_get(FakeResponse(503))

    with pytest.raises(FlightLookupError) as exc_info:
        feed.get_flight('abc123')

    assert exc_info.value.result.error == 'API Error: 503'


def test_enrich_flights_limit(session, clock, token_source, reference_db):
    feed = _service(session, clock, token_source, airline_lookup=AirlineLookup(), enrich_limit=2)
    flights = [
        {'icao24': 'a', 'callsign': 'UAL1'},
        {'icao24': 'b', 'callsign': 'DAL22'},
        {'icao24': 'c', 'callsign': 'BAW333'},
    ]

    enriched = feed.enrich_flights(flights)

    assert enriched[0]['airline'] == 'United Airlines'
    assert enriched[1]['airline'] == 'Delta Air Lines'
    assert 'airline' not in enriched[2]
    assert len(enriched) == 3


def test_enrich_flights_passes_unknown_through(session, clock, token_source, reference_db):
    feed = _service(session, clock, token_source, airline_lookup=AirlineLookup())
    flights = [{'icao24': 'a', 'callsign': 'N12345'}, {'icao24': 'b', 'callsign': 'ZZZ123'}, 'junk']

    assert feed.enrich_flights(flights) == flights


def test_fresh_hit_under_one_segment_still_reaches_prediction(feed, session, clock):
    session.queue_get(_ok())
    feed.get_flights(40.0, -74.0, 2)

    clock.advance(0.05)
    flight = feed.get_flights(40.0, -74.0, 2).flights[0]

    predicted = flight['predicted_position']
    assert predicted['longitude'] > -74.0
    assert len(flight['trajectory']) == 2
    assert flight['trajectory'][0] == [-74.0, 40.0]
    assert flight['trajectory'][-1] == [predicted['longitude'], predicted['latitude']]


def test_bad_token_response_degrades_to_anonymous_feed(session, clock):
    token_manager = TokenManager(
        client_id='client',
        client_secret='secret',
        auth_url='https://auth.example.test/token',
        session=session,
        clock=clock,
        timeout=5,
    )
    session.queue_post(FakeResponse(200, {'access_token': 'tok-1', 'expires_in': 'soon'}))
    session.queue_get(_ok())
    feed = _service(session, clock, token_manager)

    response = feed.get_flights(40.0, -74.0, 2)

    assert response.authenticated is False
    assert response.error is None
    assert len(response.flights) == 1
    assert 'Authorization' not in session.get_calls[0]['headers']


def test_enrich_flights_skips_malformed_entries(session, clock, token_source, reference_db):
    feed = _service(session, clock, token_source, airline_lookup=AirlineLookup())
    flights = [
        {'icao24': 'a', 'callsign': 123},
        {'icao24': 'b', 'callsign': None},
        {'icao24': 'c', 'callsign': ['UAL1']},
        {'icao24': 'd', 'callsign': 'UAL1'},
    ]

    enriched = feed.enrich_flights(flights)

    assert enriched[:3] == flights[:3]
    assert enriched[3]['airline'] == 'United Airlines'
