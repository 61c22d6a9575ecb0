"""
FlightFeed Flask Application.

Main entry point for the web application. Initializes:
- Reference database schema
- Flight feed service (token manager, fetcher, region cache)
- API routes

Usage:
    python -m flightfeed.app

Or with gunicorn:
    gunicorn 'flightfeed.app:create_app()'
"""

import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from flightfeed.config import config
from flightfeed.models import init_db
from flightfeed.api import flights_bp, metrics_bp
from flightfeed.services import FlightFeedService

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(feed: Optional[FlightFeedService] = None) -> Flask:
    """
    Application factory for Flask.

    Args:
        feed: Flight feed service to serve from. Built from configuration
              if None; tests pass one wired to fakes.

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = config.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    logger.info('Initializing reference database...')
    init_db()

    if feed is None:
        feed = FlightFeedService.from_config()
    app.config['FLIGHT_FEED'] = feed

    # Register API blueprints
    app.register_blueprint(flights_bp)
    app.register_blueprint(metrics_bp)

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting FlightFeed on http://localhost:{port}')
    logger.info(f'Feed: http://localhost:{port}/api/flights?lat=40.0&lng=-74.0&radius=2')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        threaded=True,
    )


if __name__ == '__main__':
    run_development_server()
