"""
FlightFeed Backend Package.

Live flight tracking feed built with Flask, requests, SQLAlchemy, and NumPy.

Modules:
    api/         REST endpoints for the flight feed, enrichment, and status
    models/      FlightState domain model and airline/airport reference tables
    ingestion/   OpenSky token lifecycle, spatial queries, reference data loaders
    services/    Feed orchestration (cache, prediction, fallback)
    cache.py     Thread-safe region cache with auth-aware freshness
    geo.py       Dead reckoning and great-circle trajectory sampling
    config.py    Centralized configuration from environment variables
"""

__version__ = '1.0.0'
