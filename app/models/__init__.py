"""
Models for the rating tracker.

Usage:
    from app.models import Player, RatingSnapshot

    tracked = db.query(Player).filter(Player.is_tracked.is_(True)).all()
"""
from app.models.models import Base, Player, RatingSnapshot

__all__ = [
    "Base",
    "Player",
    "RatingSnapshot",
]
