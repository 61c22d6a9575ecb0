"""
Flight feed API endpoints.

Provides endpoints for:
- GET /api/flights - Flights around a point with predicted positions
- POST /api/flights - Single aircraft details, optionally with a route trajectory
- POST /api/flights/enrich - Annotate client-held flights with airline data
- GET /api/flights/airports - Airports for the map layer
"""

import logging
from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from flightfeed.ingestion.reference_db import query_airports
from flightfeed.services.flight_feed import FlightFeedService, FlightLookupError

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/flights')

MAX_AIRPORT_LIMIT = 10000


def _feed() -> FlightFeedService:
    return current_app.config['FLIGHT_FEED']


def _float_arg(name: str, default: Optional[float]) -> Optional[float]:
    """Read a float query parameter; raises ValueError on junk."""
    value = request.args.get(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f'{name} must be a number') from None


def _coordinate(value, low: float, high: float, label: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValueError(f'{label} must be a number') from None
    if not (low <= value <= high):
        raise ValueError(f'{label} must be between {low:g} and {high:g}')
    return value


@flights_bp.route('', methods=['GET'])
def list_flights():
    """
    List flights around a point.

    Query parameters:
    - lat: float, center latitude (default 0)
    - lng: float, center longitude (default 0)
    - radius: float, half-width of the query box in degrees (default 2)

    Always answers 200 once parameters validate. Degraded answers set
    `cached`, `authenticated`, and `error` instead of failing.
    """
    feed = _feed()

    try:
        lat = _coordinate(_float_arg('lat', 0.0), -90, 90, 'lat')
        lng = _coordinate(_float_arg('lng', 0.0), -180, 180, 'lng')
        radius = _float_arg('radius', feed.default_radius)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    if not 0 < radius <= 90:
        return jsonify({'error': 'radius must be between 0 and 90 degrees'}), 400

    response = feed.get_flights(lat, lng, radius)
    return jsonify(response.to_dict())


@flights_bp.route('', methods=['POST'])
def get_flight_details():
    """
    Get current details for a single aircraft.

    Body: {"icao24": str, "destination": {"lat": float, "lng": float}}

    With a destination, the flight includes a great-circle trajectory
    from its current position to the destination.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    icao24 = data.get('icao24')
    if not icao24 or not isinstance(icao24, str):
        return jsonify({'error': 'ICAO24 identifier required'}), 400

    destination = None
    raw_destination = data.get('destination')
    if raw_destination is not None:
        if not isinstance(raw_destination, dict):
            return jsonify({'error': 'destination must be an object with lat and lng'}), 400
        try:
            destination = (
                _coordinate(raw_destination.get('lng'), -180, 180, 'destination.lng'),
                _coordinate(raw_destination.get('lat'), -90, 90, 'destination.lat'),
            )
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    try:
        flight = _feed().get_flight(icao24, destination)
    except FlightLookupError as e:
        logger.error(f'Error fetching flight details for {icao24}: {e}')
        return jsonify({'error': 'Failed to fetch flight details'}), 502
    except ValueError as e:
        # Antipodal destination: no unique great circle
        return jsonify({'error': str(e)}), 400

    if flight is None:
        return jsonify({'error': 'Flight not found'}), 404

    return jsonify({'flight': flight})


@flights_bp.route('/enrich', methods=['POST'])
def enrich_flights():
    """
    Annotate flights with airline name and codes.

    Body: {"flights": [...]} as returned by GET /api/flights.
    Only the first batch is looked up; the rest pass through unchanged.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    flights = data.get('flights')

    if not isinstance(flights, list):
        return jsonify({'error': 'Flights array required'}), 400

    return jsonify({'flights': _feed().enrich_flights(flights)})


@flights_bp.route('/airports', methods=['GET'])
def list_airports():
    """
    List airports from the reference store.

    Query parameters:
    - limit: int, max results (default 1000)
    - country: string, exact country match
    - type: string, airport type(s), comma-separated (large, medium, ...)
    """
    try:
        limit = min(int(request.args.get('limit', 1000)), MAX_AIRPORT_LIMIT)
    except ValueError:
        return jsonify({'error': 'limit must be an integer'}), 400

    country = request.args.get('country') or None
    airport_type = request.args.get('type')
    types = airport_type.split(',') if airport_type else None

    try:
        result = query_airports(limit=max(limit, 0), country=country, types=types)
    except SQLAlchemyError as e:
        logger.error(f'Error fetching airports: {e}')
        return jsonify({'error': 'Failed to fetch airports'}), 500

    return jsonify(result)
