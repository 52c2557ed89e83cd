"""
Rating snapshot repository.

Snapshots are append-only: this repository never updates or deletes rows.
"""
from datetime import datetime
from typing import List

from app.models import RatingSnapshot
from app.repositories.base import BaseRepository


class RatingSnapshotRepository(BaseRepository[RatingSnapshot]):
    """Data access for a player's rating history."""

    def __init__(self, db):
        super().__init__(RatingSnapshot, db)

    def append(self, player_id: str, rating: int, division: str, recorded_at: datetime) -> RatingSnapshot:
        """Add one snapshot to the session (not committed)."""
        return self.create(
            player_id=player_id,
            rating=rating,
            division=division,
            recorded_at=recorded_at,
        )

    def history_for(self, player_id: str) -> List[RatingSnapshot]:
        """All snapshots of a player, oldest first."""
        return (
            self.query()
            .filter(RatingSnapshot.player_id == player_id)
            .order_by(RatingSnapshot.recorded_at.asc(), RatingSnapshot.id)
            .all()
        )
