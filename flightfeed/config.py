"""
Configuration management for FlightFeed.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class OpenSkyConfig:
    """OpenSky API configuration."""
    client_id: Optional[str] = os.getenv('OPENSKY_CLIENT_ID') or None
    client_secret: Optional[str] = os.getenv('OPENSKY_CLIENT_SECRET') or None
    base_url: str = os.getenv('OPENSKY_BASE_URL', 'https://opensky-network.org/api')
    auth_url: str = os.getenv(
        'OPENSKY_AUTH_URL',
        'https://auth.opensky-network.org/auth/realms/opensky-network/protocol/openid-connect/token',
    )
    timeout_seconds: float = float(os.getenv('OPENSKY_TIMEOUT_SECONDS', '15'))

    # Refresh the bearer token this long before the upstream expiry
    token_safety_margin_seconds: int = 60

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class CacheConfig:
    """Region cache settings."""
    # Authenticated clients get a finer upstream resolution, so refresh sooner
    ttl_authenticated_seconds: int = int(os.getenv('CACHE_TTL_AUTHENTICATED_SECONDS', '20'))
    ttl_anonymous_seconds: int = int(os.getenv('CACHE_TTL_ANONYMOUS_SECONDS', '30'))
    max_entries: int = int(os.getenv('CACHE_MAX_ENTRIES', '100'))
    key_precision: int = 2  # Decimal places for lat/lng in region keys


@dataclass(frozen=True)
class FeedConfig:
    """Feed response shaping."""
    default_radius: float = float(os.getenv('DEFAULT_RADIUS_DEGREES', '2'))
    max_trajectory_segments: int = 300
    ms_per_segment: int = 100  # One trajectory point per 100ms of staleness
    detail_trajectory_points: int = 100
    enrich_limit: int = 20


@dataclass(frozen=True)
class DatabaseConfig:
    """Reference database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///flightfeed.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    opensky: OpenSkyConfig
    cache: CacheConfig
    feed: FeedConfig
    database: DatabaseConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        opensky=OpenSkyConfig(),
        cache=CacheConfig(),
        feed=FeedConfig(),
        database=DatabaseConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
