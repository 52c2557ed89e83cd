"""
Player repository.

Holds the queries behind the tracking rotation: top-N by rating, tracked
counts outside a set of ids, and the least-recently-viewed eviction
candidate.

Usage:
    repo = PlayerRepository(db)
    top_ids = repo.top_rated_ids(300)
    victim = repo.oldest_viewed_tracked_excluding(top_ids)
"""
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy import update

from app.models import Player
from app.repositories.base import BaseRepository


class PlayerRatingRow(NamedTuple):
    """Lightweight projection used when rebalancing the whole tracked set."""
    id: str
    current_rating: int
    updated_at: Optional[datetime]
    is_tracked: bool


class PlayerRepository(BaseRepository[Player]):
    """Data access for players."""

    def __init__(self, db):
        super().__init__(Player, db)

    # ========================================================================
    # Lookups
    # ========================================================================

    def find_by_external_id(self, external_id: str) -> Optional[Player]:
        """Find a player by GeoGuessr user id."""
        return self.where_first(Player.external_id == external_id)

    def find_by_external_ids(self, external_ids: Iterable[str]) -> List[Player]:
        """Find every stored player among the given GeoGuessr user ids."""
        external_ids = list(external_ids)
        if not external_ids:
            return []
        return self.where(Player.external_id.in_(external_ids))

    def list_players(self, tracked: Optional[bool] = None) -> List[Player]:
        """All players, newest first, optionally filtered by tracking state."""
        query = self.query()
        if tracked is not None:
            query = query.filter(Player.is_tracked.is_(tracked))
        return query.order_by(Player.created_at.desc()).all()

    def find_tracked(self) -> List[Player]:
        """Players polled by the periodic job, best rated first."""
        return (
            self.query()
            .filter(Player.is_tracked.is_(True))
            .order_by(Player.current_rating.desc(), Player.id)
            .all()
        )

    # ========================================================================
    # Tracking rotation
    # ========================================================================

    def top_rated_ids(self, limit: int) -> List[str]:
        """
        Ids of the ``limit`` best rated players.

        Equal ratings are ordered by id so membership at the cut-off is stable
        between calls.
        """
        rows = (
            self.db.query(Player.id)
            .order_by(Player.current_rating.desc(), Player.id)
            .limit(limit)
            .all()
        )
        return [row.id for row in rows]

    def count_tracked(self) -> int:
        return self.count(Player.is_tracked.is_(True))

    def count_tracked_excluding(self, excluded_ids: Iterable[str]) -> int:
        """Tracked players whose id is not in ``excluded_ids``."""
        return self.count(
            Player.is_tracked.is_(True),
            Player.id.notin_(list(excluded_ids)),
        )

    def oldest_viewed_tracked_excluding(self, excluded_ids: Iterable[str]) -> Optional[Player]:
        """
        The tracked player outside ``excluded_ids`` viewed longest ago.

        Never-viewed players (NULL last_viewed_at) come first on every backend.
        """
        return (
            self.query()
            .filter(
                Player.is_tracked.is_(True),
                Player.id.notin_(list(excluded_ids)),
            )
            .order_by(
                Player.last_viewed_at.isnot(None),
                Player.last_viewed_at.asc(),
                Player.id,
            )
            .first()
        )

    def rating_rows(self) -> List[PlayerRatingRow]:
        """(id, rating, updated_at, is_tracked) for every player in one read."""
        rows = self.db.query(
            Player.id, Player.current_rating, Player.updated_at, Player.is_tracked
        ).all()
        return [PlayerRatingRow(*row) for row in rows]

    def set_tracked(self, player_ids: Iterable[str], tracked: bool) -> int:
        """Flip ``is_tracked`` for the given ids. Returns the number of rows touched."""
        player_ids = list(player_ids)
        if not player_ids:
            return 0
        result = self.db.execute(
            update(Player)
            .where(Player.id.in_(player_ids))
            .values(is_tracked=tracked)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def mark_viewed(self, player: Player, viewed_at: datetime) -> None:
        player.last_viewed_at = viewed_at
