"""Rating sync engine.

Fetches a player's current rating from the rating source and persists it
with change detection: a player row is only updated, and a snapshot only
appended, when (rating, division) differs from what is stored. The history
table therefore grows by one row per observable change, not per poll.

Error policy:
- Rating source failures never escape: sync_one returns a SyncResult with
  ``error`` set and leaves the stored player untouched.
- A failed write (player update + snapshot append, one commit) is rolled back
  and raised as StoreUnavailableError so nobody sees a player whose current
  rating disagrees with its latest snapshot.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import metrics
from app.core.config import settings
from app.core.exceptions import StoreUnavailableError
from app.core.logging import get_logger
from app.models import Player
from app.repositories import RatingSnapshotRepository
from app.services.geoguessr.normalizer import normalize_rating
from app.services.tracking.paced_worker import PacedWorker, Sleep
from app.utils.timezone import utcnow

logger = get_logger(__name__)


class RatingSource(Protocol):
    """Anything that can fetch a raw progress payload for a GeoGuessr user id."""

    async def fetch_rating(self, external_id: str) -> Dict[str, Any]:
        ...


@dataclass
class SyncResult:
    """Outcome of syncing one player."""
    player_id: str
    changed: bool
    rating: Optional[int] = None
    division: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchSummary:
    """Tallies of a sync batch."""
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    errored: int = 0
    duration_ms: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'updated': self.updated,
            'unchanged': self.unchanged,
            'errored': self.errored,
            'duration_ms': self.duration_ms,
            'errors': self.errors,
        }


class SyncEngine:
    """
    Syncs player ratings from a RatingSource into the store.

    Args:
        db: SQLAlchemy session
        source: Rating source (GeoGuessrClient in production)
        clock: Returns "now" as naive UTC; injectable for tests
        sleep: Sleep used between batch calls; injectable for tests
    """

    def __init__(
        self,
        db: Session,
        source: RatingSource,
        clock: Callable[[], datetime] = utcnow,
        sleep: Optional[Sleep] = None,
    ):
        self.db = db
        self.source = source
        self.snapshots = RatingSnapshotRepository(db)
        self._clock = clock
        self._sleep = sleep

    async def sync_one(self, player: Player) -> SyncResult:
        """
        Fetch and persist one player's rating.

        Returns:
            SyncResult with ``changed`` True when a new snapshot was written

        Raises:
            StoreUnavailableError: If the write failed (rolled back)
        """
        try:
            payload = await self.source.fetch_rating(player.external_id)
        except Exception as e:
            logger.warning(f"Rating fetch failed for {player.username} ({player.external_id}): {e}")
            metrics.record_sync_result("errored")
            return SyncResult(player_id=player.id, changed=False, error=str(e) or e.__class__.__name__)

        reading = normalize_rating(payload)

        if reading.rating == player.current_rating and reading.division == player.division:
            metrics.record_sync_result("unchanged")
            logger.debug(f"{player.username}: unchanged at {reading.rating} ({reading.division})")
            return SyncResult(
                player_id=player.id,
                changed=False,
                rating=reading.rating,
                division=reading.division,
            )

        now = self._clock()
        previous = player.current_rating
        try:
            player.current_rating = reading.rating
            player.division = reading.division
            player.updated_at = now
            self.snapshots.append(player.id, reading.rating, reading.division, now)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            metrics.record_sync_result("errored")
            logger.error(f"Failed to store rating for {player.external_id}: {e}")
            raise StoreUnavailableError(f"Could not store rating for player {player.id}") from e

        metrics.record_sync_result("updated")
        logger.info(f"✅ {player.username}: {previous} -> {reading.rating} ({reading.division})")
        return SyncResult(
            player_id=player.id,
            changed=True,
            rating=reading.rating,
            division=reading.division,
        )

    async def sync_batch(
        self,
        players: Iterable[Player],
        delay_seconds: Optional[float] = None,
    ) -> BatchSummary:
        """
        Sync players strictly one after another with a pause between calls.

        One player's failure (upstream or store) is counted and the batch moves
        on to the next player.

        Args:
            players: Players to sync, in order
            delay_seconds: Pause between upstream calls (defaults to settings)
        """
        if delay_seconds is None:
            delay_seconds = settings.TRACKER_REQUEST_DELAY_SECONDS

        players = list(players)
        summary = BatchSummary(total=len(players))
        started = time.monotonic()

        async def handle(player: Player) -> SyncResult:
            # Capture identity first; a rollback expires the instance
            player_id, username = player.id, player.username
            try:
                result = await self.sync_one(player)
            except Exception as e:
                logger.error(f"❌ Error processing {username}: {e}")
                result = SyncResult(player_id=player_id, changed=False, error=str(e))

            if result.error:
                summary.errored += 1
                summary.errors.append({'player_id': player_id, 'error': result.error})
            elif result.changed:
                summary.updated += 1
            else:
                summary.unchanged += 1
            return result

        worker = PacedWorker(delay_seconds, sleep=self._sleep)
        await worker.run(players, handle)

        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Sync batch complete: {summary.updated} updated, {summary.unchanged} unchanged, "
            f"{summary.errored} errored of {summary.total} ({summary.duration_ms}ms)"
        )
        return summary
