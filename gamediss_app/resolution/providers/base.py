"""
================================================================================
GameDiss - Base Source Fetcher
================================================================================
Abstract base class for per-field data sources (reviews, tags, player
counts, store details, ownership).

Every fetcher is independently:
  - rate limited (one RateLimiter per fetcher)
  - timed out (per-call timeout)
  - retried once with backoff on transient network errors
  - cached per catalog id with single-flight loads

fetch() never raises for source failures; it returns a FetchOutcome that
carries either the value or an ErrorKind.
================================================================================
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

import httpx

from ..cache import SingleFlightCache
from ..errors import SourceError, SourceParseError, SourceTimeout, SourceUnavailable
from ..models import FetchOutcome


logger = logging.getLogger(__name__)

T = TypeVar('T')

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# Steam age gate and mature content cookies
STEAM_COOKIE_HEADER = "birthtime=946684800; lastagecheckage=1-January-2000; mature_content=1"


class RateLimiter:
    """
    Minimum-interval rate limiter for one upstream.

      - Steam store pages: 60/min (conservative)
      - Steam Web API:     100/min
      - SteamSpy:          60/min (documented 1/sec)
    """

    def __init__(self, requests_per_minute: int):
        """
        Args:
            requests_per_minute: Maximum requests allowed per minute
        """
        self.requests_per_minute = requests_per_minute
        self.min_interval = 60.0 / requests_per_minute
        self.last_request = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self):
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            time_since_last = now - self.last_request

            if time_since_last < self.min_interval:
                wait_time = self.min_interval - time_since_last
                logger.debug(f"Rate limit: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)

            self.last_request = time.monotonic()


class BaseSourceFetcher(ABC, Generic[T]):
    """
    Base class for one field's data source.

    Subclasses set `field` and implement _fetch(), which raises a
    SourceError subclass on failure and returns a typed payload on success.
    """

    # Field name this fetcher populates
    field: str = "base"
    name: str = "Base Source"

    # Rate limiting (requests per minute)
    rate_limit: int = 60

    # Per-call timeout (seconds)
    timeout: float = 5.0

    # One retry on transient errors
    max_retries: int = 1
    retry_delay: float = 0.5

    # Cache TTL for successful values (seconds)
    cache_ttl: float = 300.0
    cache_size: int = 5000

    accept: str = "application/json"

    # Floor for a single HTTP attempt (seconds)
    min_attempt_timeout: float = 0.5

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            client: Shared HTTP client (one is created lazily if omitted)
            clock: Time source for fetched_at and cache expiry
        """
        self.rate_limiter = RateLimiter(self.rate_limit)
        self._client = client
        self._owns_client = client is None
        self._clock = clock
        self.cache: SingleFlightCache[str, FetchOutcome[T]] = SingleFlightCache(
            name=f"source:{self.field}",
            ttl=self.cache_ttl,
            max_size=self.cache_size,
            clock=clock,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={
                    'User-Agent': USER_AGENT,
                    'Accept-Language': 'en-US,en;q=0.5',
                },
            )
            self._owns_client = True
        return self._client

    async def close(self):
        """Close HTTP client if this fetcher created it."""
        self.cache.cancel_pending()
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    @property
    def attempt_timeout(self) -> float:
        """
        HTTP timeout for one attempt.

        The whole call (every attempt plus backoff) must fit in `timeout`,
        otherwise the outer deadline cancels the call before a retry runs.
        """
        attempts = self.max_retries + 1
        backoff = sum(self.retry_delay * (2 ** n) for n in range(self.max_retries))
        floor = min(self.min_attempt_timeout, self.timeout / attempts)
        return max((self.timeout - backoff) / attempts, floor)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def fetch(self, app_id: str) -> FetchOutcome[T]:
        """
        Fetch this field for a catalog id.

        Returns:
            FetchOutcome with value, or with error kind on failure
        """
        try:
            return await self.cache.get_or_load(app_id, lambda: self._load(app_id))
        except SourceError as e:
            logger.warning(f"{self.field}: fetch failed for {app_id} ({e.kind.value}): {e}")
            return FetchOutcome(error=e.kind, fetched_at=self._clock())

    async def _load(self, app_id: str) -> FetchOutcome[T]:
        try:
            value = await asyncio.wait_for(self._fetch(app_id), self.timeout)
        except asyncio.TimeoutError as e:
            raise SourceTimeout(
                f"{self.field}: no response within {self.timeout:.1f}s", source=self.field
            ) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise SourceParseError(f"{self.field}: malformed payload ({e})",
                                   source=self.field) from e
        return FetchOutcome(value=value, fetched_at=self._clock())

    # =========================================================================
    # HTTP
    # =========================================================================

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make a rate-limited HTTP request, retrying once on transient errors.

        Transient: connection errors, 429 and 5xx responses.

        Raises:
            SourceTimeout: On HTTP timeout after retries
            SourceUnavailable: On any other HTTP failure
        """
        client = await self._get_client()
        headers = {'Accept': self.accept}
        headers.update(kwargs.pop('headers', {}))

        attempts = self.max_retries + 1
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                await self.rate_limiter.acquire()
                response = await client.request(method, url, headers=headers,
                                                timeout=self.attempt_timeout, **kwargs)
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if (status == 429 or status >= 500) and not last_attempt:
                    wait_time = self.retry_delay * (2 ** attempt)
                    logger.warning(f"{self.field}: HTTP {status}, retry "
                                   f"{attempt + 1}/{self.max_retries} in {wait_time}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise SourceUnavailable(f"{self.field}: HTTP {status} from {url}",
                                        source=self.field) from e

            except httpx.TimeoutException as e:
                if not last_attempt:
                    logger.warning(f"{self.field}: timeout, retry {attempt + 1}/{self.max_retries}")
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                    continue
                raise SourceTimeout(f"{self.field}: timed out ({e})", source=self.field) from e

            except httpx.RequestError as e:
                if not last_attempt:
                    logger.warning(f"{self.field}: request error ({e}), "
                                   f"retry {attempt + 1}/{self.max_retries}")
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                    continue
                raise SourceUnavailable(f"{self.field}: {e}", source=self.field) from e

        raise SourceUnavailable(f"{self.field}: max retries exceeded", source=self.field)

    async def _get_json(self, url: str, **kwargs) -> Dict[str, Any]:
        response = await self._request("GET", url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise SourceParseError(f"{self.field}: invalid JSON from {url}",
                                   source=self.field) from e
        if not isinstance(data, dict):
            raise SourceParseError(f"{self.field}: unexpected JSON payload from {url}",
                                   source=self.field)
        return data

    # =========================================================================
    # ABSTRACT METHODS
    # =========================================================================

    @abstractmethod
    async def _fetch(self, app_id: str) -> T:
        """
        Fetch and parse this field for one catalog id.

        Raises:
            SourceError: SourceTimeout / SourceUnavailable / SourceParseError
        """

    def __repr__(self):
        return f"<{self.__class__.__name__}(field='{self.field}', rate_limit={self.rate_limit}/min)>"
