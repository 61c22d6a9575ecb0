"""
Metrics and status API endpoints.

Provides endpoints for:
- GET /api/metrics/status - Feed health, cache and token state, configuration
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from flightfeed.config import config
from flightfeed.models.base import SessionLocal

logger = logging.getLogger(__name__)

metrics_bp = Blueprint('metrics', __name__, url_prefix='/api/metrics')


@metrics_bp.route('/status', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Region cache statistics
    - Upstream request and credit estimates
    - Token state (credentials configured, currently authenticated)
    - Reference database connectivity
    - Configuration info
    """
    start_time = time.perf_counter()

    feed = current_app.config['FLIGHT_FEED']
    token_source = feed.token_source

    db_ok = True
    try:
        with SessionLocal() as session:
            session.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        db_ok = False
        logger.error(f'Database health check failed: {e}')

    token_stats = getattr(token_source, 'stats', {'authenticated': token_source.is_authenticated})

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if db_ok else 'degraded',
        'feed': feed.stats,
        'token': token_stats,
        'database': {
            'connected': db_ok,
            'type': 'sqlite' if config.database.is_sqlite else 'postgresql',
        },
        'config': {
            'default_radius': feed.default_radius,
            'ttl_authenticated_seconds': config.cache.ttl_authenticated_seconds,
            'ttl_anonymous_seconds': config.cache.ttl_anonymous_seconds,
            'max_entries': config.cache.max_entries,
            'opensky_credentials': config.opensky.has_credentials,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })
