"""
Tracking rotation and rating sync.

- policy: which players are tracked (top tier + rotation) and rebalancing
- sync_engine: per-player sync with change detection, paced batches
- paced_worker: single-worker queue with a fixed pause between tasks
- player_detail: the on-demand sync behind the player page
- registry: registering and searching players
- tracker_job: the periodic tracking cycle
"""
from app.services.tracking.paced_worker import PacedWorker
from app.services.tracking.sync_engine import BatchSummary, RatingSource, SyncEngine, SyncResult
from app.services.tracking.policy import (
    TIER_ROTATION,
    TIER_TOP,
    RebalanceResult,
    TierSizes,
    TrackingDecision,
    TrackingPolicy,
)
from app.services.tracking.stats import RatingStats, compute_stats, peak_rating, seven_day_change
from app.services.tracking.player_detail import InFlightGuard, PlayerDetail, PlayerDetailService
from app.services.tracking.registry import PlayerRegistry, RegistrationResult
from app.services.tracking.tracker_job import is_cycle_running, run_guarded_cycle, run_tracking_cycle

__all__ = [
    "PacedWorker",
    "BatchSummary",
    "RatingSource",
    "SyncEngine",
    "SyncResult",
    "TIER_ROTATION",
    "TIER_TOP",
    "RebalanceResult",
    "TierSizes",
    "TrackingDecision",
    "TrackingPolicy",
    "RatingStats",
    "compute_stats",
    "peak_rating",
    "seven_day_change",
    "InFlightGuard",
    "PlayerDetail",
    "PlayerDetailService",
    "PlayerRegistry",
    "RegistrationResult",
    "is_cycle_running",
    "run_guarded_cycle",
    "run_tracking_cycle",
]
