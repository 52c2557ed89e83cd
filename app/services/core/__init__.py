"""
Cross-cutting service helpers.

- circuit_breaker: pybreaker breaker guarding every GeoGuessr call
"""
from app.services.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    create_breaker,
    geoguessr_breaker,
    get_breaker_state,
    reset_breaker,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerError",
    "create_breaker",
    "geoguessr_breaker",
    "get_breaker_state",
    "reset_breaker",
]
