"""
API module for FlightFeed.

Provides REST endpoints for:
- The live flight feed and single-aircraft details
- Airline enrichment and airport listings
- System status
"""

from flightfeed.api.flights import flights_bp
from flightfeed.api.metrics import metrics_bp

__all__ = ['flights_bp', 'metrics_bp']
