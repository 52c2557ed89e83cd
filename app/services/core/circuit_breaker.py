"""
Circuit breaker for GeoGuessr API calls.

Uses the pybreaker library. When the cookie expires or GeoGuessr is down,
every tracked player would otherwise burn its retries; once the breaker opens
the tracking cycle fails fast until the reset timeout elapses.

Circuit Breaker States:
- closed: Requests pass through normally
- open: Requests fail immediately (after fail_max consecutive failures)
- half-open: One request allowed to test if the service has recovered
"""
import httpx
from pybreaker import CircuitBreaker, CircuitBreakerError, CircuitBreakerListener

from app.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FAIL_MAX = 5  # Consecutive failures before opening
DEFAULT_RESET_TIMEOUT = 120  # Seconds before a half-open probe


class _LoggingListener(CircuitBreakerListener):
    """Log breaker state transitions."""

    def state_change(self, cb, old_state, new_state):
        old_name = old_state.name if old_state else None
        logger.warning(f"Circuit breaker '{cb.name}' changed state: {old_name} -> {new_state.name}")


def is_missing_account(exc: BaseException) -> bool:
    """A 404 means the account is gone or renamed, not that GeoGuessr is down."""
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 404


def create_breaker(
    name: str,
    fail_max: int = DEFAULT_FAIL_MAX,
    reset_timeout: int = DEFAULT_RESET_TIMEOUT,
) -> CircuitBreaker:
    """Breaker that logs transitions and ignores missing-account answers."""
    return CircuitBreaker(
        fail_max=fail_max,
        reset_timeout=reset_timeout,
        exclude=[is_missing_account],
        name=name,
        listeners=[_LoggingListener()],
    )


geoguessr_breaker = create_breaker("geoguessr_api")


def get_breaker_state(breaker: CircuitBreaker = geoguessr_breaker) -> str:
    """Current state name: 'closed', 'open' or 'half-open'."""
    return breaker.current_state


def reset_breaker(breaker: CircuitBreaker = geoguessr_breaker) -> None:
    """
    Manually close a breaker.

    Only do this when you know the upstream has recovered (e.g. after
    rotating the session cookie).
    """
    breaker.close()
    logger.warning(f"Circuit breaker '{breaker.name}' manually reset to CLOSED state")


__all__ = [
    "geoguessr_breaker",
    "create_breaker",
    "is_missing_account",
    "get_breaker_state",
    "reset_breaker",
    "CircuitBreaker",
    "CircuitBreakerError",
]
