"""
Player detail: the on-demand sync path.

Viewing a player marks it viewed; viewing an untracked player additionally
syncs its rating right away and admits it into the tracked set. Upstream
failures degrade silently to the stored values.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PlayerNotFoundError
from app.core.logging import get_logger
from app.models import Player, RatingSnapshot
from app.repositories import PlayerRepository, RatingSnapshotRepository
from app.services.geoguessr.normalizer import GameHistorySummary, PlayerProfile
from app.services.tracking.policy import TrackingDecision, TrackingPolicy
from app.services.tracking.stats import RatingStats, compute_stats
from app.services.tracking.sync_engine import RatingSource, SyncEngine, SyncResult
from app.utils.timezone import utcnow

logger = get_logger(__name__)


class InFlightGuard:
    """Per-key asyncio locks, dropped once nobody holds or waits on them."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every request handled in this process
_on_demand_guard = InFlightGuard()


@dataclass
class PlayerDetail:
    player: Player
    history: List[RatingSnapshot]
    stats: RatingStats
    just_tracked: bool = False
    sync_result: Optional[SyncResult] = None
    tracking: Optional[TrackingDecision] = None
    profile: Optional[PlayerProfile] = None
    game_stats: Optional[GameHistorySummary] = None
    upstream_errors: List[str] = field(default_factory=list)


class PlayerDetailService:
    """
    Builds the player detail view.

    Args:
        db: SQLAlchemy session
        source: Rating source; profile and recent games are only requested
            when ``include_upstream`` is set
        policy: Tracking policy (defaults to one over ``db``)
        clock: Returns "now" as naive UTC
        guard: Per-player in-flight guard (defaults to the process-wide one)
    """

    def __init__(
        self,
        db: Session,
        source: RatingSource,
        policy: Optional[TrackingPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
        guard: Optional[InFlightGuard] = None,
    ):
        self.db = db
        self.source = source
        self.players = PlayerRepository(db)
        self.snapshots = RatingSnapshotRepository(db)
        self.policy = policy or TrackingPolicy(db)
        self.engine = SyncEngine(db, source, clock=clock)
        self._clock = clock
        self._guard = guard if guard is not None else _on_demand_guard

    def _mark_viewed(self, player: Player, now: datetime) -> None:
        try:
            self.players.mark_viewed(player, now)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Could not record view of {player.id}: {e}")

    async def get_or_sync_player_detail(self, player_id: str, include_upstream: bool = False) -> PlayerDetail:
        """
        Current state, history and derived stats of a player.

        Raises:
            PlayerNotFoundError: Unknown player id
            StoreUnavailableError: The sync or tracking write failed
        """
        player = self.players.find_by_id(player_id)
        if player is None:
            raise PlayerNotFoundError(player_id)

        now = self._clock()
        self._mark_viewed(player, now)

        sync_result = None
        decision = None
        if not player.is_tracked:
            async with self._guard.hold(player.id):
                # A concurrent request may have tracked it while we waited
                self.db.refresh(player)
                if not player.is_tracked:
                    logger.info(f"On-demand sync for untracked player {player.username}")
                    sync_result = await self.engine.sync_one(player)
                    decision = self.policy.ensure_tracked(player)

        history = self.snapshots.history_for(player.id)
        detail = PlayerDetail(
            player=player,
            history=history,
            stats=compute_stats(history, player.current_rating, now),
            just_tracked=bool(decision and decision.admitted),
            sync_result=sync_result,
            tracking=decision,
        )

        if include_upstream:
            await self._attach_upstream(detail)
        return detail

    async def _attach_upstream(self, detail: PlayerDetail) -> None:
        """Best-effort profile and recent-games stats."""
        external_id = detail.player.external_id
        try:
            detail.profile = await self.source.fetch_profile(external_id)
        except Exception as e:
            logger.warning(f"Profile fetch failed for {external_id}: {e}")
            detail.upstream_errors.append(f"profile: {e}")

        try:
            detail.game_stats = await self.source.fetch_recent_games(external_id)
        except Exception as e:
            logger.warning(f"Game history fetch failed for {external_id}: {e}")
            detail.upstream_errors.append(f"game_history: {e}")
