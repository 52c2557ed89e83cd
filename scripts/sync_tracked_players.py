#!/usr/bin/env python3
"""
Manual rating sync.

Runs one tracking cycle now, outside the scheduler.

Usage:
    python scripts/sync_tracked_players.py             # Tracked players, configured delay
    python scripts/sync_tracked_players.py --delay 5   # 5 seconds between players
    python scripts/sync_tracked_players.py --all       # Every stored player
    python scripts/sync_tracked_players.py --reset-breaker  # After rotating GEOGUESSR_COOKIE
"""
import sys
import asyncio
import argparse
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.core.logging import configure_logging
from app.services.core.circuit_breaker import get_breaker_state, reset_breaker
from app.services.geoguessr.client import close_geoguessr_client, get_geoguessr_client
from app.services.tracking.tracker_job import run_tracking_cycle


async def sync_players(delay: float, include_untracked: bool, reset: bool = False) -> int:
    """
    Sync players once.

    Args:
        delay: Seconds between players
        include_untracked: Sync every stored player, not only tracked ones
        reset: Close the GeoGuessr circuit breaker before syncing
    """
    scope = "all players" if include_untracked else "tracked players"
    print(f"🔄 Syncing {scope} ({delay}s between players)...")

    init_db()
    if reset:
        reset_breaker()
    db = SessionLocal()
    try:
        summary = await run_tracking_cycle(
            db,
            get_geoguessr_client(),
            delay_seconds=delay,
            include_untracked=include_untracked,
        )

        print(f"✅ Sync complete:")
        print(f"   Updated: {summary.updated}")
        print(f"   Unchanged: {summary.unchanged}")
        print(f"   Errors: {summary.errored}")
        print(f"   Total: {summary.total}")
        print(f"   Circuit: {get_breaker_state()}")
        for failure in summary.errors[:10]:
            print(f"   ❌ {failure['player_id']}: {failure['error']}")
        return 0 if not summary.errored else 1

    finally:
        db.close()
        await close_geoguessr_client()


def main():
    parser = argparse.ArgumentParser(description='Sync player ratings from GeoGuessr')
    parser.add_argument(
        '--delay',
        type=float,
        default=settings.TRACKER_REQUEST_DELAY_SECONDS,
        help='Seconds between players (default: TRACKER_REQUEST_DELAY_SECONDS)'
    )
    parser.add_argument('--all', action='store_true', help='Sync every stored player')
    parser.add_argument('--reset-breaker', action='store_true', help='Close the circuit breaker first')
    args = parser.parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_output=False)
    return asyncio.run(sync_players(args.delay, args.all, args.reset_breaker))


if __name__ == "__main__":
    sys.exit(main())
