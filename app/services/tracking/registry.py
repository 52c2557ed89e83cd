"""
Player registry: adding GeoGuessr accounts and searching for them.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PlayerAlreadyExistsError, StoreUnavailableError
from app.core.logging import get_logger
from app.models import Player
from app.repositories import PlayerRepository, RatingSnapshotRepository
from app.services.geoguessr.normalizer import (
    AVATAR_URL_PREFIX,
    RatingReading,
    UNRANKED,
    format_division,
    normalize_rating,
)
from app.services.tracking.policy import TrackingDecision, TrackingPolicy
from app.utils.timezone import utcnow

logger = get_logger(__name__)


@dataclass
class RegistrationResult:
    player: Player
    created: bool
    tracking: Optional[TrackingDecision] = None


class PlayerRegistry:
    """
    Adds players to the store and looks them up upstream.

    Args:
        db: SQLAlchemy session
        source: GeoGuessr client (needs fetch_rating, fetch_profile, search_users)
        policy: Tracking policy used to admit new players
    """

    def __init__(self, db: Session, source, policy: Optional[TrackingPolicy] = None):
        self.db = db
        self.source = source
        self.players = PlayerRepository(db)
        self.snapshots = RatingSnapshotRepository(db)
        self.policy = policy or TrackingPolicy(db)

    async def register(self, external_id: str, username: str) -> RegistrationResult:
        """
        Add a GeoGuessr account with a seed snapshot and start tracking it.

        Profile and rating lookups are best effort: the given username and
        rating 0 / "unranked" are used when they fail.

        Raises:
            PlayerAlreadyExistsError: A concurrent insert won the unique external id
            StoreUnavailableError: The insert failed
        """
        existing = self.players.find_by_external_id(external_id)
        if existing is not None:
            logger.info(f"Player {existing.username} ({external_id}) already registered")
            return RegistrationResult(player=existing, created=False)

        display_name = username
        try:
            profile = await self.source.fetch_profile(external_id)
            display_name = profile.display_name or username
        except Exception as e:
            logger.warning(f"⚠️ Could not fetch profile for {external_id}, using provided username: {e}")

        reading = RatingReading(rating=0, division=UNRANKED)
        synced = False
        try:
            reading = normalize_rating(await self.source.fetch_rating(external_id))
            synced = True
        except Exception as e:
            logger.warning(f"⚠️ Could not fetch rating for {external_id}, using defaults: {e}")

        now = utcnow()
        try:
            player = self.players.create(
                external_id=external_id,
                username=display_name,
                current_rating=reading.rating,
                division=reading.division,
                is_tracked=False,
                updated_at=now if synced else None,
                created_at=now,
            )
            self.players.flush()
            self.snapshots.append(player.id, reading.rating, reading.division, now)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise PlayerAlreadyExistsError(external_id) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to register {external_id}: {e}")
            raise StoreUnavailableError(f"Could not register player {external_id}") from e

        decision = self.policy.ensure_tracked(player)
        logger.info(f"✅ Registered {display_name} ({external_id}) at {reading.rating} ({reading.division})")
        return RegistrationResult(player=player, created=True, tracking=decision)

    async def search(self, username: str) -> List[Dict[str, Any]]:
        """
        Exact (case-insensitive) username matches on GeoGuessr, with local state.

        Results are sorted by stored rating, then XP, both descending; accounts
        not in the store sort after stored ones.

        Raises:
            UpstreamUnavailableError: The search call failed
        """
        wanted = username.strip().lower()
        users = await self.source.search_users(username.strip())

        matches = [
            u for u in users
            if isinstance(u, dict)
            and u.get("id")
            and (u.get("name") or u.get("nick") or "").lower() == wanted
        ]
        if not matches:
            return []

        stored = {p.external_id: p for p in self.players.find_by_external_ids(u["id"] for u in matches)}

        results = []
        for user in matches:
            player = stored.get(user["id"])
            image = user.get("imageUrl")
            results.append({
                'external_id': user["id"],
                'username': user.get("name") or user.get("nick"),
                'country_code': user.get("countryCode"),
                'xp': user.get("xp") or 0,
                'account_created': user.get("created") or user.get("createdAt"),
                'avatar_url': f"{AVATAR_URL_PREFIX}{image}" if image else None,
                'in_database': player is not None,
                'is_tracked': bool(player and player.is_tracked),
                'player': {
                    'id': player.id,
                    'current_rating': player.current_rating,
                    'division': player.division,
                    'formatted_division': format_division(player.division),
                } if player else None,
            })

        results.sort(
            key=lambda r: (
                r['player']['current_rating'] if r['player'] else -1,
                r['xp'],
            ),
            reverse=True,
        )
        return results
