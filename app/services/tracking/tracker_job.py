"""
Periodic tracking cycle.

Polls every tracked player once, one request at a time. Only one cycle runs
per process: a firing that finds the previous cycle still running is
skipped.
"""
import asyncio
import uuid
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import metrics
from app.core.database import SessionLocal
from app.core.logging import clear_correlation_id, get_logger, set_correlation_id
from app.repositories import PlayerRepository
from app.services.geoguessr.client import get_geoguessr_client
from app.services.tracking.paced_worker import Sleep
from app.services.tracking.policy import TrackingPolicy
from app.services.tracking.sync_engine import BatchSummary, RatingSource, SyncEngine

logger = get_logger(__name__)

_cycle_lock = asyncio.Lock()


def is_cycle_running() -> bool:
    return _cycle_lock.locked()


async def run_tracking_cycle(
    db: Session,
    source: RatingSource,
    delay_seconds: Optional[float] = None,
    include_untracked: bool = False,
    sleep: Optional[Sleep] = None,
) -> BatchSummary:
    """
    Sync every tracked player (or every player) once.

    Args:
        db: SQLAlchemy session
        source: Rating source
        delay_seconds: Pause between players (defaults to settings)
        include_untracked: Sync all stored players, not just tracked ones
        sleep: Sleep function for the pause (tests pass a no-op)
    """
    players_repo = PlayerRepository(db)
    players = players_repo.list_players() if include_untracked else players_repo.find_tracked()

    if not players:
        logger.info("⚠️ No tracked players found")
        return BatchSummary()

    logger.info(f"🔄 Tracking cycle starting: {len(players)} players")
    engine = SyncEngine(db, source, sleep=sleep)
    with metrics.tracking_cycle_duration_seconds.time():
        summary = await engine.sync_batch(players, delay_seconds)

    try:
        sizes = TrackingPolicy(db).tier_sizes()
        metrics.update_tracked_gauges(sizes.top_tier, sizes.rotation)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Could not refresh tracked-player gauges: {e}")

    return summary


async def run_guarded_cycle(
    source: Optional[RatingSource] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    **kwargs,
) -> Optional[BatchSummary]:
    """
    Run one tracking cycle in a fresh session unless one is already running.

    Used by the scheduler and the manual trigger endpoint. Failures are logged,
    never raised.

    Returns:
        The batch summary, or None if skipped or failed
    """
    if _cycle_lock.locked():
        logger.warning("Tracking cycle still running, skipping this run")
        return None

    async with _cycle_lock:
        token = set_correlation_id(f"tracker-{uuid.uuid4().hex[:8]}")
        db = None
        try:
            db = session_factory()
            summary = await run_tracking_cycle(db, source or get_geoguessr_client(), **kwargs)
            logger.info(
                f"✅ Tracking cycle: {summary.updated} updated, {summary.unchanged} unchanged, "
                f"{summary.errored} errored ({summary.duration_ms}ms)"
            )
            return summary
        except Exception as e:
            logger.error(f"❌ Tracking cycle failed: {e}")
            return None
        finally:
            if db is not None:
                db.close()
            clear_correlation_id(token)
