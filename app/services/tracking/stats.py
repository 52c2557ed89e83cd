"""
Derived rating statistics for the player detail view.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from app.models import RatingSnapshot

SEVEN_DAYS = timedelta(days=7)


@dataclass
class RatingStats:
    peak_rating: int
    seven_day_change: Optional[int]
    snapshot_count: int


def peak_rating(history: Sequence[RatingSnapshot], current_rating: int) -> int:
    """Highest recorded rating; the current rating when there is no history."""
    if not history:
        return current_rating or 0
    return max(s.rating for s in history)


def seven_day_change(history: Sequence[RatingSnapshot], now: datetime) -> Optional[int]:
    """
    Latest rating minus the last rating recorded at least seven days ago.

    ``history`` must be ordered oldest first. Returns None unless there is at
    least one snapshot on each side of ``now - 7 days``.
    """
    cutoff = now - SEVEN_DAYS
    old = [s for s in history if s.recorded_at <= cutoff]
    recent = [s for s in history if s.recorded_at > cutoff]
    if not old or not recent:
        return None
    return recent[-1].rating - old[-1].rating


def compute_stats(history: Sequence[RatingSnapshot], current_rating: int, now: datetime) -> RatingStats:
    return RatingStats(
        peak_rating=peak_rating(history, current_rating),
        seven_day_change=seven_day_change(history, now),
        snapshot_count=len(history),
    )
