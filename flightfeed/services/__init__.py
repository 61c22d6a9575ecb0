"""
Feed orchestration services.

Combines the token source, spatial fetcher, region cache, and geodesy
into per-request answers with graceful degradation on upstream failure.
"""

from flightfeed.services.flight_feed import FeedResponse, FlightFeedService, FlightLookupError

__all__ = ['FeedResponse', 'FlightFeedService', 'FlightLookupError']
