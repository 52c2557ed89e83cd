"""
Database models for the GeoGuessr rating tracker.

players        one row per upstream account, carries the latest rating and
               the tracking flags used by the rotation policy
rating_history append-only snapshots; a row is written only when a
               player's (rating, division) changes. Ordered by
               (recorded_at, id), id being the insertion sequence
"""
import uuid

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Boolean, Index
from sqlalchemy.orm import relationship, declarative_base

from app.utils.timezone import utcnow

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Player(Base):
    """A GeoGuessr player known to the tracker."""
    __tablename__ = "players"

    id = Column(String(36), primary_key=True, default=_new_id)
    external_id = Column(String(64), unique=True, nullable=False, index=True)  # GeoGuessr user id
    username = Column(String(255), nullable=False, index=True)
    current_rating = Column(Integer, nullable=False, default=0, index=True)
    division = Column(String(50), nullable=False, default="unranked")  # normalized, e.g. "master_ii"
    is_tracked = Column(Boolean, nullable=False, default=False, index=True)
    last_viewed_at = Column(DateTime, nullable=True, index=True)  # rotation eviction key
    updated_at = Column(DateTime, nullable=True, index=True)  # last rating change
    created_at = Column(DateTime, nullable=False, default=utcnow)

    snapshots = relationship(
        "RatingSnapshot",
        back_populates="player",
        order_by="[RatingSnapshot.recorded_at, RatingSnapshot.id]",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Player {self.username} {self.current_rating} ({self.division}) tracked={self.is_tracked}>"


class RatingSnapshot(Base):
    """One (rating, division) observation in a player's history."""
    __tablename__ = "rating_history"

    id = Column(Integer, primary_key=True, autoincrement=True)  # insertion order, breaks recorded_at ties
    player_id = Column(String(36), ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    division = Column(String(50), nullable=False)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)

    player = relationship("Player", back_populates="snapshots")

    __table_args__ = (
        Index("ix_rating_history_player_recorded", "player_id", "recorded_at"),
    )
