"""Player API routes.

Provides endpoints for:
- Listing stored players
- Searching GeoGuessr by username
- Registering a player
- Player detail with rating history (syncs untracked players on demand)
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.dependencies import get_rating_source
from app.core.database import get_db
from app.core.exceptions import PlayerNotFoundError
from app.core.logging import get_logger
from app.core.rate_limit import GENERAL_LIMIT, UPSTREAM_LIMIT, limiter
from app.models import Player
from app.repositories import PlayerRepository
from app.services.geoguessr.normalizer import format_division
from app.services.tracking import PlayerDetail, PlayerDetailService, PlayerRegistry
from app.utils.timezone import isoformat_utc

logger = get_logger(__name__)

router = APIRouter(prefix="/players", tags=["players"])


class RegisterPlayerRequest(BaseModel):
    external_id: str = Field(..., min_length=1, max_length=64, description="GeoGuessr user id")
    username: str = Field(..., min_length=1, max_length=255)


def player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        'id': player.id,
        'external_id': player.external_id,
        'username': player.username,
        'current_rating': player.current_rating,
        'division': player.division,
        'formatted_division': format_division(player.division),
        'is_tracked': player.is_tracked,
        'last_viewed_at': isoformat_utc(player.last_viewed_at),
        'updated_at': isoformat_utc(player.updated_at),
        'created_at': isoformat_utc(player.created_at),
    }


def detail_to_dict(detail: PlayerDetail) -> Dict[str, Any]:
    player = detail.player
    payload: Dict[str, Any] = {
        'player': player_to_dict(player),
        'history': [
            {
                'rating': s.rating,
                'division': s.division,
                'formatted_division': format_division(s.division),
                'recorded_at': isoformat_utc(s.recorded_at),
            }
            for s in detail.history
        ],
        'stats': {
            'current_rating': player.current_rating,
            'peak_rating': detail.stats.peak_rating,
            'seven_day_change': detail.stats.seven_day_change,
            'snapshot_count': detail.stats.snapshot_count,
        },
        'just_tracked': detail.just_tracked,
    }

    if detail.sync_result is not None:
        payload['sync'] = {
            'changed': detail.sync_result.changed,
            'error': detail.sync_result.error,
        }
    if detail.profile is not None:
        profile = detail.profile
        payload['profile'] = {
            'display_name': profile.display_name,
            'created_at': profile.created_at,
            'avatar_url': profile.avatar_url,
            'country_code': profile.country_code,
            'verified': profile.verified,
            'xp': profile.xp,
            'level': profile.level,
        }
    if detail.game_stats is not None:
        games = detail.game_stats
        payload['game_stats'] = {
            'total_games': games.total_games,
            'wins': games.wins,
            'losses': games.losses,
            'win_rate': games.win_rate,
            'max_rating': games.max_rating,
            'games_by_mode': games.games_by_mode,
            'recent_games': games.recent_games,
        }
    return payload


@router.get("")
@limiter.limit(GENERAL_LIMIT)
async def list_players(
    request: Request,
    tracked: Optional[bool] = Query(None, description="Only tracked (true) or untracked (false) players"),
    db: Session = Depends(get_db)
) -> Dict:
    """All stored players, newest first."""
    players = PlayerRepository(db).list_players(tracked=tracked)
    return {
        'count': len(players),
        'players': [player_to_dict(p) for p in players]
    }


@router.get("/search")
@limiter.limit(UPSTREAM_LIMIT)
async def search_players(
    request: Request,
    username: str = Query(..., min_length=1, description="Exact GeoGuessr username"),
    db: Session = Depends(get_db),
    source=Depends(get_rating_source)
) -> Dict:
    """
    Search GeoGuessr for a username.

    Only exact (case-insensitive) matches are returned, annotated with
    whether each account is already stored and tracked.
    """
    results = await PlayerRegistry(db, source).search(username)
    if not results:
        raise HTTPException(status_code=404, detail="Player not found on GeoGuessr")

    return {
        'count': len(results),
        'results': results
    }


@router.post("")
@limiter.limit(UPSTREAM_LIMIT)
async def register_player(
    request: Request,
    body: RegisterPlayerRequest,
    db: Session = Depends(get_db),
    source=Depends(get_rating_source)
) -> Dict:
    """
    Register a GeoGuessr account and start tracking it.

    Returns the stored player when the account is already registered.
    """
    result = await PlayerRegistry(db, source).register(body.external_id, body.username)
    return {
        'player': player_to_dict(result.player),
        'created': result.created,
        'already_registered': not result.created,
        'evicted_player_id': result.tracking.evicted_player_id if result.tracking else None,
    }


@router.get("/{player_id}")
@limiter.limit(GENERAL_LIMIT)
async def get_player(
    request: Request,
    player_id: str,
    db: Session = Depends(get_db)
) -> Dict:
    """Stored state of one player (no sync)."""
    player = PlayerRepository(db).find_by_id(player_id)
    if player is None:
        raise PlayerNotFoundError(player_id)
    return player_to_dict(player)


@router.get("/{player_id}/history")
@limiter.limit(UPSTREAM_LIMIT)
async def get_player_history(
    request: Request,
    player_id: str,
    include_upstream: bool = Query(False, description="Also fetch profile and recent games from GeoGuessr"),
    db: Session = Depends(get_db),
    source=Depends(get_rating_source)
) -> Dict:
    """
    Player detail: rating history, peak and 7-day change.

    Viewing a player that is not tracked syncs it right away and adds it to
    the tracked set.
    """
    detail = await PlayerDetailService(db, source).get_or_sync_player_detail(
        player_id, include_upstream=include_upstream
    )
    return detail_to_dict(detail)
