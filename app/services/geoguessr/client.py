"""
GeoGuessr API client (the rating source).

Endpoints used:
- /api/v4/ranked-system/progress/{id}  current rating and division
- /api/v3/users/{id}                   profile metadata
- /api/v4/game-history/{id}            recent ranked duels
- /api/v3/search/user                  username search

The ranked-system endpoints need a logged-in session; the value of the
``_ncfa`` cookie comes from GEOGUESSR_COOKIE. When it expires every call
returns 401 and the circuit breaker opens.

Every failure (transport, HTTP status, open circuit, undecodable body) is
raised as UpstreamUnavailableError.
"""
from typing import Any, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from app.core import metrics
from app.core.config import settings
from app.core.exceptions import UpstreamUnavailableError
from app.core.logging import get_logger
from app.services.core.circuit_breaker import CircuitBreaker, CircuitBreakerError, geoguessr_breaker
from app.services.geoguessr.normalizer import (
    GameHistorySummary,
    PlayerProfile,
    normalize_profile,
    summarize_game_history,
)

logger = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


def _is_retryable(exc: BaseException) -> bool:
    """Retry transport errors, 429 and 5xx. Auth and not-found answers are final."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class GeoGuessrClient:
    """
    Async GeoGuessr API client.

    Retries use tenacity (exponential backoff); the whole client shares one
    pybreaker circuit breaker so a dead session cookie stops hammering the API.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        cookie: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_backoff: float = 1.0,
        breaker: CircuitBreaker = geoguessr_breaker,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: GeoGuessr origin (defaults to settings)
            cookie: ``_ncfa`` session cookie value (defaults to settings)
            timeout: Transport timeout in seconds
            retry_attempts: Total attempts per request, including the first
            retry_backoff: Multiplier for the exponential backoff (0 disables waiting)
            breaker: Circuit breaker guarding the calls
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url or settings.GEOGUESSR_BASE_URL).rstrip("/")
        self.cookie = cookie if cookie is not None else settings.GEOGUESSR_COOKIE
        self.timeout = timeout or settings.GEOGUESSR_TIMEOUT_SECONDS
        self.retry_attempts = max(1, retry_attempts or settings.GEOGUESSR_RETRY_ATTEMPTS)
        self.retry_backoff = retry_backoff
        self.breaker = breaker
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if self.cookie:
            headers["Cookie"] = f"_ncfa={self.cookie}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=2, max_connections=4),
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, endpoint: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET ``path`` and decode the JSON body.

        Args:
            endpoint: Short name for metrics and logs (e.g. "progress")
            path: Path relative to the base URL
            params: Query parameters

        Raises:
            UpstreamUnavailableError: On any failure
        """
        client = await self._get_client()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, min=0, max=10 * self.retry_backoff),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    with self.breaker.calling():
                        response = await client.get(path, params=params)
                        response.raise_for_status()
        except CircuitBreakerError as e:
            metrics.record_geoguessr_request(endpoint, "circuit_open")
            raise UpstreamUnavailableError(
                f"GeoGuessr circuit open, skipping {endpoint}", endpoint=endpoint
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            metrics.record_geoguessr_request(endpoint, "http_error")
            if status in (401, 403):
                logger.error(f"GeoGuessr rejected the session cookie ({status}) on {endpoint}")
            raise UpstreamUnavailableError(
                f"GeoGuessr {endpoint} returned {status}", endpoint=endpoint, status_code=status
            ) from e
        except httpx.HTTPError as e:
            metrics.record_geoguessr_request(endpoint, "transport_error")
            raise UpstreamUnavailableError(
                f"GeoGuessr {endpoint} request failed: {e.__class__.__name__}: {e}", endpoint=endpoint
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            metrics.record_geoguessr_request(endpoint, "bad_payload")
            raise UpstreamUnavailableError(
                f"GeoGuessr {endpoint} returned a non-JSON body", endpoint=endpoint
            ) from e

        metrics.record_geoguessr_request(endpoint, "success")
        return data

    # ========================================================================
    # Rating source capability
    # ========================================================================

    async def fetch_rating(self, external_id: str) -> Dict[str, Any]:
        """
        Raw ranked-system progress payload for a player.

        Normalize it with ``normalize_rating``; the payload shape is not
        guaranteed.
        """
        data = await self._get_json("progress", f"/api/v4/ranked-system/progress/{external_id}")
        return data if isinstance(data, dict) else {}

    async def fetch_profile(self, external_id: str) -> PlayerProfile:
        """Profile metadata (nick, avatar, country, XP, level)."""
        data = await self._get_json("profile", f"/api/v3/users/{external_id}")
        return normalize_profile(data)

    async def fetch_recent_games(self, external_id: str) -> GameHistorySummary:
        """Win/loss and peak rating over the most recent ranked duels."""
        data = await self._get_json(
            "game_history",
            f"/api/v4/game-history/{external_id}",
            params={"gameMode": "Duels"},
        )
        return summarize_game_history(data, external_id)

    async def search_users(self, query: str) -> List[Dict[str, Any]]:
        """
        Search GeoGuessr users by name.

        The endpoint has answered with a bare list, ``{"items": [...]}`` and
        ``{"users": [...]}``; all three are accepted.
        """
        data = await self._get_json("search", "/api/v3/search/user", params={"query": query})
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return data.get("items") or data.get("users") or []
        return []


# Global client instance
_geoguessr_client: Optional[GeoGuessrClient] = None


def get_geoguessr_client() -> GeoGuessrClient:
    """Get or create the GeoGuessrClient singleton."""
    global _geoguessr_client
    if _geoguessr_client is None:
        _geoguessr_client = GeoGuessrClient()
    return _geoguessr_client


async def close_geoguessr_client() -> None:
    """Close the singleton's HTTP connections (application shutdown)."""
    global _geoguessr_client
    if _geoguessr_client is not None:
        await _geoguessr_client.close()
        _geoguessr_client = None
