"""
Data ingestion module for FlightFeed.

Handles the OpenSky token lifecycle, bounding-box state queries, and
loading of airline/airport reference data.
"""

from flightfeed.ingestion.token_manager import TokenManager, TokenSource, OAuthToken
from flightfeed.ingestion.opensky_client import (
    BoundingBox,
    FetchResult,
    FetchStatus,
    SpatialFetcher,
    estimate_credit_cost,
)
from flightfeed.ingestion.reference_db import AirlineInfo, AirlineLookup

__all__ = [
    'TokenManager',
    'TokenSource',
    'OAuthToken',
    'BoundingBox',
    'FetchResult',
    'FetchStatus',
    'SpatialFetcher',
    'estimate_credit_cost',
    'AirlineInfo',
    'AirlineLookup',
]
