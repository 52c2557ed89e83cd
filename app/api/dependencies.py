"""
Shared FastAPI dependencies.

Tests override these with ``app.dependency_overrides``.
"""
from typing import Callable

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.services.geoguessr.client import GeoGuessrClient, get_geoguessr_client


def get_rating_source() -> GeoGuessrClient:
    """The GeoGuessr client used as rating source."""
    return get_geoguessr_client()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that outlives the request (background cycles)."""
    return SessionLocal
