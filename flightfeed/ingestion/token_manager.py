"""
OAuth2 client-credentials token lifecycle for the OpenSky API.

OpenSky issues short-lived bearer tokens from its Keycloak realm. One
token is cached per process and shared by every request thread until
shortly before it expires. Without credentials, or when the exchange
fails, callers fall back to anonymous access (no Authorization header).

The manager never retries an exchange itself; retry policy belongs to
the caller. A 401 from the states endpoint should be reported through
invalidate() so the next caller re-acquires.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

import requests

from flightfeed.config import config

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 1800


class TokenSource(Protocol):
    """What the fetcher and feed service need from a token provider."""

    @property
    def is_authenticated(self) -> bool:
        ...

    def get_auth_headers(self) -> Dict[str, str]:
        ...

    def invalidate(self) -> None:
        ...


@dataclass(frozen=True)
class OAuthToken:
    """Cached bearer token."""
    token: str
    expires_at: float  # epoch seconds, already reduced by the safety margin

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


def anonymous_headers() -> Dict[str, str]:
    return {'Accept': 'application/json'}


class TokenManager:
    """
    Process-wide cache for the OpenSky bearer token.

    Concurrent callers that observe an expired token coalesce on a lock:
    the first performs the exchange, the rest re-check and reuse its
    result instead of issuing their own requests.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        auth_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        timeout: Optional[float] = None,
        safety_margin_seconds: Optional[int] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.auth_url = auth_url or config.opensky.auth_url
        self.session = session or requests.Session()
        self.timeout = timeout or config.opensky.timeout_seconds
        self.safety_margin_seconds = (
            config.opensky.token_safety_margin_seconds
            if safety_margin_seconds is None else safety_margin_seconds
        )
        self._clock = clock

        self._token: Optional[OAuthToken] = None
        self._refresh_lock = threading.Lock()
        # Finished exchange attempts, successful or not
        self._attempts = 0

        # Statistics
        self._exchanges = 0
        self._failures = 0

        if self.has_credentials:
            logger.info('OpenSky token manager initialized with client credentials')
        else:
            logger.warning('OpenSky client credentials not configured, using anonymous access (lower rate limits)')

    @classmethod
    def from_config(cls, session: Optional[requests.Session] = None) -> 'TokenManager':
        """Create manager from application configuration."""
        return cls(
            client_id=config.opensky.client_id,
            client_secret=config.opensky.client_secret,
            auth_url=config.opensky.auth_url,
            session=session,
            timeout=config.opensky.timeout_seconds,
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def is_authenticated(self) -> bool:
        """Whether a valid token is currently held."""
        token = self._token
        return token is not None and token.is_valid(self._clock())

    def get_token(self) -> Optional[str]:
        """
        Return a valid bearer token, acquiring one if needed.

        Returns None when running anonymously or the exchange failed.
        Callers that queued behind an exchange take its outcome, success
        or failure, instead of starting another one.
        """
        token = self._token
        if token is not None and token.is_valid(self._clock()):
            return token.token

        if not self.has_credentials:
            return None

        attempts_seen = self._attempts
        with self._refresh_lock:
            # Another thread may have refreshed while we waited
            token = self._token
            if token is not None and token.is_valid(self._clock()):
                return token.token

            # An exchange finished while we waited and still left no token
            if self._attempts != attempts_seen:
                return None

            self._token = self._exchange()
            self._attempts += 1
            return self._token.token if self._token else None

    def get_auth_headers(self) -> Dict[str, str]:
        """Headers for an OpenSky request, authenticated when possible."""
        headers = anonymous_headers()

        token = self.get_token()
        if token:
            headers['Authorization'] = f'Bearer {token}'
            logger.debug('Using authenticated OpenSky access')
        else:
            logger.debug('Using anonymous OpenSky access (rate limited)')

        return headers

    def invalidate(self) -> None:
        """Drop the cached token, e.g. after the API rejected it with 401."""
        if self._token is not None:
            logger.warning('Clearing OpenSky token after authentication failure')
        self._token = None

    def _exchange(self) -> Optional[OAuthToken]:
        """Perform one client-credentials exchange. Never raises."""
        logger.info('Requesting new OAuth2 token from OpenSky')
        self._exchanges += 1

        try:
            response = self.session.post(
                self.auth_url,
                data={
                    'grant_type': 'client_credentials',
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                },
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            self._failures += 1
            logger.error(f'OpenSky token exchange failed: {e.response.status_code}')
            return None
        except (requests.exceptions.RequestException, ValueError) as e:
            self._failures += 1
            logger.error(f'OpenSky token request failed: {e}')
            return None

        access_token = data.get('access_token') if isinstance(data, dict) else None
        if not access_token:
            self._failures += 1
            logger.error('OpenSky token response missing access_token')
            return None

        try:
            expires_in = float(data.get('expires_in') or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = None
        if expires_in is None or not math.isfinite(expires_in):
            self._failures += 1
            logger.error(f'OpenSky token response has invalid expires_in: {data.get("expires_in")!r}')
            return None

        logger.info(f'Obtained OpenSky token, expires in {expires_in:g}s')

        return OAuthToken(
            token=access_token,
            expires_at=self._clock() + expires_in - self.safety_margin_seconds,
        )

    @property
    def stats(self) -> dict:
        """Get token manager statistics."""
        token = self._token
        return {
            'credentials_configured': self.has_credentials,
            'authenticated': self.is_authenticated,
            'expires_at': token.expires_at if token else None,
            'exchanges': self._exchanges,
            'failures': self._failures,
        }
