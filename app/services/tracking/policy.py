"""
Tracking policy: which players the periodic job polls.

Two tiers share the ``is_tracked`` flag:

- Top tier: the TRACKING_TOP_N best rated players. Always tracked; never
  evicted by the rotation.
- Rotation: players outside the top tier that someone looked at. Holds at
  most TRACKING_ROTATION_CAPACITY players; admitting one into a full
  rotation untracks the rotation member viewed longest ago (never-viewed
  members first).

Tier membership is derived from ratings at the time of the check, nothing is
stored per tier.
"""
from dataclasses import dataclass
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import metrics
from app.core.config import settings
from app.core.exceptions import StoreUnavailableError
from app.core.logging import get_logger
from app.models import Player
from app.repositories import PlayerRatingRow, PlayerRepository

logger = get_logger(__name__)

TIER_TOP = "top"
TIER_ROTATION = "rotation"


@dataclass
class TrackingDecision:
    """What ensure_tracked did for one player."""
    player_id: str
    admitted: bool
    tier: Optional[str] = None
    evicted_player_id: Optional[str] = None
    eviction_skipped: bool = False


@dataclass
class RebalanceResult:
    """Target tracked set computed by a rebalance and the flips applied."""
    top_tier: int
    rotation: int
    newly_tracked: int
    untracked: int
    rotation_from_activity: int
    rotation_from_rating: int
    dry_run: bool = False

    @property
    def tracked_total(self) -> int:
        return self.top_tier + self.rotation

    def to_dict(self) -> dict:
        return {
            'top_tier': self.top_tier,
            'rotation': self.rotation,
            'tracked_total': self.tracked_total,
            'newly_tracked': self.newly_tracked,
            'untracked': self.untracked,
            'rotation_from_activity': self.rotation_from_activity,
            'rotation_from_rating': self.rotation_from_rating,
            'dry_run': self.dry_run,
        }


@dataclass
class TierSizes:
    top_tier: int
    rotation: int

    @property
    def tracked_total(self) -> int:
        return self.top_tier + self.rotation


class TrackingPolicy:
    """
    Decides and applies tracking membership.

    Args:
        db: SQLAlchemy session
        top_n: Size of the always-tracked top tier (defaults to settings)
        rotation_capacity: Maximum rotation size (defaults to settings)
    """

    def __init__(
        self,
        db: Session,
        top_n: Optional[int] = None,
        rotation_capacity: Optional[int] = None,
    ):
        self.db = db
        self.players = PlayerRepository(db)
        self.top_n = settings.TRACKING_TOP_N if top_n is None else top_n
        self.rotation_capacity = (
            settings.TRACKING_ROTATION_CAPACITY if rotation_capacity is None else rotation_capacity
        )

    def top_tier_ids(self) -> List[str]:
        """Ids currently in the top tier, best rated first."""
        return self.players.top_rated_ids(self.top_n)

    def tier_sizes(self) -> TierSizes:
        """Tracked players per tier."""
        top_ids = self.top_tier_ids()
        rotation = self.players.count_tracked_excluding(top_ids)
        total = self.players.count_tracked()
        return TierSizes(top_tier=total - rotation, rotation=rotation)

    def ensure_tracked(self, player: Player) -> TrackingDecision:
        """
        Track ``player``, evicting from the rotation if it is full.

        Reads behind the eviction decision are best effort: if they fail the
        player is still tracked and the rotation may run one over capacity
        until the next eviction or rebalance.

        Raises:
            StoreUnavailableError: If the tracking write itself failed
        """
        player_id = player.id
        if player.is_tracked:
            return TrackingDecision(player_id=player_id, admitted=False)

        top_ids: Optional[List[str]]
        try:
            top_ids = self.top_tier_ids()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Top tier lookup failed, tracking {player_id} without eviction: {e}")
            metrics.record_eviction_read_skipped()
            top_ids = None

        if top_ids is not None and player_id in top_ids:
            self._commit_tracking(player, victim=None)
            metrics.record_admission(TIER_TOP)
            logger.info(f"Tracking {player.username} (top tier)")
            return TrackingDecision(player_id=player_id, admitted=True, tier=TIER_TOP)

        victim = None
        skipped = top_ids is None
        if top_ids is not None:
            try:
                if self.players.count_tracked_excluding(top_ids) >= self.rotation_capacity:
                    victim = self.players.oldest_viewed_tracked_excluding(top_ids)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(f"Rotation lookup failed, tracking {player_id} without eviction: {e}")
                metrics.record_eviction_read_skipped()
                skipped = True
                victim = None

        victim_id = victim.id if victim is not None else None
        self._commit_tracking(player, victim=victim)

        metrics.record_admission(TIER_ROTATION)
        if victim_id:
            metrics.record_eviction()
            logger.info(f"Tracking {player.username} (rotation), evicted {victim_id}")
        else:
            logger.info(f"Tracking {player.username} (rotation)")

        return TrackingDecision(
            player_id=player_id,
            admitted=True,
            tier=TIER_ROTATION,
            evicted_player_id=victim_id,
            eviction_skipped=skipped,
        )

    def _commit_tracking(self, player: Player, victim: Optional[Player]) -> None:
        """Untrack ``victim`` and track ``player`` in one commit."""
        try:
            if victim is not None:
                victim.is_tracked = False
            player.is_tracked = True
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update tracking for {player.id}: {e}")
            raise StoreUnavailableError(f"Could not track player {player.id}") from e

    # ========================================================================
    # Rebalance
    # ========================================================================

    def compute_target(self, rows: List[PlayerRatingRow]):
        """
        Target tracked set for the given rows.

        The top tier is the top_n by rating (ties by id). The rotation is the
        most recently updated players outside it; when fewer than
        rotation_capacity have ever been updated, the rest is filled with the
        next best rated.

        Returns:
            (top_ids, activity_ids, rating_fill_ids) as sets
        """
        by_rating = sorted(rows, key=lambda r: (-(r.current_rating or 0), r.id))
        top = by_rating[:self.top_n]
        rest = by_rating[self.top_n:]

        active = sorted((r for r in rest if r.updated_at is not None), key=lambda r: r.id)
        active.sort(key=lambda r: r.updated_at, reverse=True)
        activity_ids = [r.id for r in active[:self.rotation_capacity]]

        chosen: Set[str] = set(activity_ids)
        fill_ids = []
        for row in rest:
            if len(chosen) + len(fill_ids) >= self.rotation_capacity:
                break
            if row.id not in chosen:
                fill_ids.append(row.id)

        return {r.id for r in top}, set(activity_ids), set(fill_ids)

    def rebalance(self, dry_run: bool = False) -> RebalanceResult:
        """
        Recompute the tracked set from scratch.

        Reads every player once, computes the target in memory and flips only
        the players whose state differs. Readers never see a moment where
        nobody is tracked.

        Raises:
            StoreUnavailableError: If the read or the write failed
        """
        try:
            rows = self.players.rating_rows()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreUnavailableError("Could not read players for rebalance") from e

        top_ids, activity_ids, fill_ids = self.compute_target(rows)
        target = top_ids | activity_ids | fill_ids

        to_track = [r.id for r in rows if r.id in target and not r.is_tracked]
        to_untrack = [r.id for r in rows if r.id not in target and r.is_tracked]

        result = RebalanceResult(
            top_tier=len(top_ids),
            rotation=len(activity_ids) + len(fill_ids),
            newly_tracked=len(to_track),
            untracked=len(to_untrack),
            rotation_from_activity=len(activity_ids),
            rotation_from_rating=len(fill_ids),
            dry_run=dry_run,
        )

        if dry_run:
            logger.info(f"Rebalance dry run: {result.to_dict()}")
            return result

        try:
            self.players.set_tracked(to_track, True)
            self.players.set_tracked(to_untrack, False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Rebalance write failed: {e}")
            raise StoreUnavailableError("Could not apply rebalance") from e

        metrics.update_tracked_gauges(result.top_tier, result.rotation)
        logger.info(
            f"Rebalanced tracking: {result.top_tier} top tier + {result.rotation} rotation "
            f"(+{result.newly_tracked} / -{result.untracked})"
        )
        return result
