"""
Models for FlightFeed.

FlightState is an in-memory domain record that is never persisted.
Airline and Airport are SQLAlchemy reference tables used for enrichment.
"""

from flightfeed.models.base import Base, engine, SessionLocal, init_db, get_session
from flightfeed.models.flight_state import FlightState, PositionSource, is_valid_position, parse_states
from flightfeed.models.reference import Airline, Airport, AirportType, LEGACY_AIRPORT_TYPES

__all__ = [
    'Base',
    'engine',
    'SessionLocal',
    'init_db',
    'get_session',
    'FlightState',
    'PositionSource',
    'is_valid_position',
    'parse_states',
    'Airline',
    'Airport',
    'AirportType',
    'LEGACY_AIRPORT_TYPES',
]
