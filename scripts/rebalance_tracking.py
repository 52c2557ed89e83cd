#!/usr/bin/env python3
"""
Rebalance the tracked player set.

Tracks the top players by rating plus the most recently updated players
outside them, and untracks everyone else.

Usage:
    python scripts/rebalance_tracking.py --dry-run   # Show what would change
    python scripts/rebalance_tracking.py             # Apply
"""
import sys
import argparse
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.database import SessionLocal, init_db
from app.core.exceptions import StoreUnavailableError
from app.services.tracking.policy import TrackingPolicy


def rebalance(dry_run: bool, top_n: int = None, rotation: int = None) -> int:
    """Run the rebalance and print the resulting tier sizes."""
    init_db()
    db = SessionLocal()
    try:
        policy = TrackingPolicy(db, top_n=top_n, rotation_capacity=rotation)
        print(f"🔄 Rebalancing: top {policy.top_n} by rating + {policy.rotation_capacity} rotation"
              f"{' (dry run)' if dry_run else ''}...")

        result = policy.rebalance(dry_run=dry_run)

        print(f"✅ Target tracked set: {result.tracked_total} players")
        print(f"   Top tier: {result.top_tier}")
        print(f"   Rotation: {result.rotation} "
              f"({result.rotation_from_activity} recently updated, {result.rotation_from_rating} by rating)")
        print(f"   Newly tracked: {result.newly_tracked}")
        print(f"   Untracked: {result.untracked}")
        if dry_run:
            print("   Nothing written (dry run)")
        return 0

    except StoreUnavailableError as e:
        print(f"❌ Rebalance failed: {e}")
        return 1

    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description='Rebalance the tracked player set')
    parser.add_argument('--dry-run', action='store_true', help='Compute the target set without writing')
    parser.add_argument('--top-n', type=int, default=None, help='Override TRACKING_TOP_N')
    parser.add_argument('--rotation', type=int, default=None, help='Override TRACKING_ROTATION_CAPACITY')
    args = parser.parse_args()

    return rebalance(args.dry_run, top_n=args.top_n, rotation=args.rotation)


if __name__ == "__main__":
    sys.exit(main())
