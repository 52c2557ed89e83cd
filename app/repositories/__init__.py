"""
Repository layer for data access.

Usage:
    from app.repositories import PlayerRepository
    from app.core.database import SessionLocal

    db = SessionLocal()
    player_repo = PlayerRepository(db)
    player = player_repo.find_by_external_id("5b51062a4010740f7cd91dd5")
    db.close()
"""

from app.repositories.base import BaseRepository
from app.repositories.player_repository import PlayerRepository, PlayerRatingRow
from app.repositories.snapshot_repository import RatingSnapshotRepository

__all__ = [
    "BaseRepository",
    "PlayerRepository",
    "PlayerRatingRow",
    "RatingSnapshotRepository",
]
