"""Shared pytest fixtures for geo-rating-tracker tests."""
import os
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Generator, Iterable, Optional
from unittest.mock import AsyncMock, Mock

# Test settings must be in place before app.core.config is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TRACKER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

NOW = datetime(2026, 3, 15, 12, 0, 0)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    from app.models import Base

    # StaticPool keeps one connection so every session sees the same
    # in-memory database (TestClient requests included)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


# =============================================================================
# DATA HELPERS
# =============================================================================

def create_player(
    db: Session,
    rating: int = 1000,
    division: str = "gold_i",
    is_tracked: bool = False,
    last_viewed_at: Optional[datetime] = None,
    updated_at: Optional[datetime] = None,
    username: Optional[str] = None,
    external_id: Optional[str] = None,
    seed_snapshot: bool = True,
    commit: bool = True,
):
    """Insert a player (and its seed snapshot) the way registration would."""
    from app.models import Player, RatingSnapshot

    external_id = external_id or uuid.uuid4().hex[:24]
    player = Player(
        external_id=external_id,
        username=username or f"player_{external_id[:6]}",
        current_rating=rating,
        division=division,
        is_tracked=is_tracked,
        last_viewed_at=last_viewed_at,
        updated_at=updated_at,
        created_at=NOW - timedelta(days=30),
    )
    db.add(player)
    db.flush()

    if seed_snapshot:
        db.add(RatingSnapshot(
            player_id=player.id,
            rating=rating,
            division=division,
            recorded_at=NOW - timedelta(days=30),
        ))

    if commit:
        db.commit()
    return player


def create_players(db: Session, count: int, **kwargs) -> list:
    """Insert ``count`` players sharing ``kwargs``, committed once."""
    players = [create_player(db, commit=False, seed_snapshot=False, **kwargs) for _ in range(count)]
    db.commit()
    return players


def make_rating_source(
    ratings: Optional[Dict[str, dict]] = None,
    failing: Iterable[str] = (),
):
    """
    Rating source double.

    Args:
        ratings: external_id -> progress payload (missing ids get ``{}``)
        failing: external ids whose fetch_rating raises UpstreamUnavailableError
    """
    from app.core.exceptions import UpstreamUnavailableError
    from app.services.geoguessr.normalizer import GameHistorySummary, PlayerProfile

    ratings = dict(ratings or {})
    failing = set(failing)

    async def fetch_rating(external_id: str) -> dict:
        if external_id in failing:
            raise UpstreamUnavailableError("GeoGuessr progress request failed: ReadTimeout", endpoint="progress")
        return ratings.get(external_id, {})

    source = Mock()
    source.ratings = ratings
    source.fetch_rating = AsyncMock(side_effect=fetch_rating)
    source.fetch_profile = AsyncMock(return_value=PlayerProfile())
    source.fetch_recent_games = AsyncMock(return_value=GameHistorySummary())
    source.search_users = AsyncMock(return_value=[])
    return source


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested pauses."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def rating_source():
    return make_rating_source()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture(scope="function")
def test_client(db_session, rating_source):
    """
    Create FastAPI TestClient over the test database and rating source double.

    Note: We don't use context manager (with TestClient) so the lifespan
    (init_db, scheduler) does not run against the real settings.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/v1/players")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from app.main import app
    from app.api.dependencies import get_rating_source, get_session_factory
    from app.core.database import get_db

    test_db_session = db_session

    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rating_source] = lambda: rating_source
    app.dependency_overrides[get_session_factory] = lambda: (lambda: test_db_session)

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
