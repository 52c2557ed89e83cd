"""Tracking API routes.

Provides endpoints for:
- Tracking status (tier sizes, scheduler, circuit breaker)
- Rebalancing the tracked set
- Triggering a tracking cycle
"""
from typing import Callable, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.dependencies import get_rating_source, get_session_factory
from app.core.database import get_db
from app.core.logging import get_logger
from app.core.rate_limit import GENERAL_LIMIT, limiter
from app.core.scheduler import get_scheduler
from app.services.core.circuit_breaker import get_breaker_state
from app.services.tracking import TrackingPolicy, is_cycle_running, run_guarded_cycle

logger = get_logger(__name__)

router = APIRouter(prefix="/tracking", tags=["tracking"])


def get_policy(db: Session = Depends(get_db)) -> TrackingPolicy:
    """Dependency to get tracking policy instance."""
    return TrackingPolicy(db)


@router.get("/status")
@limiter.limit(GENERAL_LIMIT)
async def get_tracking_status(
    request: Request,
    policy: TrackingPolicy = Depends(get_policy)
) -> Dict:
    """
    Tracking overview.

    Returns:
    - Tracked players per tier and the configured tier sizes
    - Scheduler state and next run
    - GeoGuessr circuit breaker state
    """
    sizes = policy.tier_sizes()
    scheduler = get_scheduler()

    return {
        'tracked': {
            'top_tier': sizes.top_tier,
            'rotation': sizes.rotation,
            'total': sizes.tracked_total,
        },
        'limits': {
            'top_n': policy.top_n,
            'rotation_capacity': policy.rotation_capacity,
        },
        'scheduler': scheduler.status() if scheduler else {'running': False, 'jobs': []},
        'cycle_running': is_cycle_running(),
        'geoguessr_circuit': get_breaker_state(),
    }


@router.post("/rebalance")
@limiter.limit("5/minute")
async def rebalance_tracking(
    request: Request,
    dry_run: bool = Query(False, description="Compute the target set without writing"),
    policy: TrackingPolicy = Depends(get_policy)
) -> Dict:
    """
    Recompute the tracked set: top players by rating plus the most recently
    updated players outside them.
    """
    result = policy.rebalance(dry_run=dry_run)
    return {
        'message': 'Rebalance computed' if dry_run else 'Tracking rebalanced',
        'results': result.to_dict()
    }


@router.post("/run", status_code=202)
@limiter.limit("5/minute")
async def trigger_tracking_cycle(
    request: Request,
    background_tasks: BackgroundTasks,
    source=Depends(get_rating_source),
    session_factory: Callable[[], Session] = Depends(get_session_factory)
) -> Dict:
    """
    Run one tracking cycle in the background.

    Does nothing if a cycle is already running.
    """
    if is_cycle_running():
        return {'started': False, 'message': 'Tracking cycle already running'}

    background_tasks.add_task(run_guarded_cycle, source=source, session_factory=session_factory)
    logger.info("Manual tracking cycle queued")
    return {'started': True, 'message': 'Tracking cycle started'}
