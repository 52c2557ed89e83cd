"""Normalization of GeoGuessr API payloads.

The ranked-system endpoints have shipped several field names for the same
value over time. Everything that reads an upstream payload goes through this
module so a schema change touches one place.

Rating precedence:   rating -> divisionNumber -> 0
Division precedence: divisionName -> tier -> division -> "unranked"
                     (division may be a string or a {"type"/"name": ...} dict)

Divisions are stored normalized: trimmed, lowercase, whitespace and hyphens
collapsed to "_" ("Gold II" -> "gold_ii", "Master_I" -> "master_i").
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

UNRANKED = "unranked"

AVATAR_URL_PREFIX = "https://www.geoguessr.com/images/resize:auto:192:192/gravity:ce/plain/"

ROMAN_TO_ARABIC = {
    'i': '1',
    'ii': '2',
    'iii': '3',
    'iv': '4',
    'v': '5',
}


@dataclass(frozen=True)
class RatingReading:
    """Canonical (rating, division) pair read from the progress endpoint."""
    rating: int
    division: str


@dataclass
class PlayerProfile:
    """Profile metadata shown on the player page."""
    display_name: Optional[str] = None
    created_at: Optional[str] = None
    avatar_url: Optional[str] = None
    country_code: Optional[str] = None
    verified: bool = False
    xp: int = 0
    level: int = 0


@dataclass
class GameHistorySummary:
    """Aggregates over the most recent ranked duels of one player."""
    total_games: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    max_rating: Optional[int] = None
    games_by_mode: Dict[str, int] = field(default_factory=dict)
    recent_games: List[Dict[str, Any]] = field(default_factory=list)


def _as_int(value: Any) -> Optional[int]:
    """int(value) for real numbers and numeric strings, else None. Booleans are not ratings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return None
    return None


def normalize_division(value: Any) -> str:
    """
    Normalize a division/tier value to its stored form.

    Examples:
        >>> normalize_division("Gold_II")
        'gold_ii'
        >>> normalize_division("Master  I")
        'master_i'
        >>> normalize_division({"type": "Champion"})
        'champion'
        >>> normalize_division(None)
        'unranked'
    """
    if isinstance(value, dict):
        value = value.get("type") or value.get("name")
    if not isinstance(value, str) or not value.strip():
        return UNRANKED
    return re.sub(r"[\s\-]+", "_", value.strip().lower())


def normalize_rating(payload: Optional[Dict[str, Any]]) -> RatingReading:
    """
    Read a canonical RatingReading from a progress payload.

    Missing or malformed fields fall back to rating 0 / "unranked"; this
    never raises on shape problems.

    Examples:
        >>> normalize_rating({"rating": 1200, "divisionName": "Gold_II"})
        RatingReading(rating=1200, division='gold_ii')
        >>> normalize_rating({"divisionNumber": 3, "tier": "Silver"})
        RatingReading(rating=3, division='silver')
        >>> normalize_rating({})
        RatingReading(rating=0, division='unranked')
    """
    payload = payload if isinstance(payload, dict) else {}

    rating = None
    for key in ("rating", "divisionNumber"):
        rating = _as_int(payload.get(key))
        if rating:
            break

    division_raw = None
    for key in ("divisionName", "tier", "division"):
        candidate = payload.get(key)
        if candidate:
            division_raw = candidate
            break

    return RatingReading(rating=rating or 0, division=normalize_division(division_raw))


def format_division(division: Optional[str]) -> str:
    """
    Display form of a stored division.

    Examples:
        >>> format_division("master_ii")
        'Master 2'
        >>> format_division("champion")
        'Champion'
        >>> format_division(None)
        'Unranked'
    """
    if not division:
        return "Unranked"

    parts = [p for p in re.split(r"[_\s\-]+", str(division).lower().strip()) if p]
    if not parts:
        return "Unranked"

    rank = parts[0].capitalize()
    if len(parts) < 2:
        return rank
    return f"{rank} {ROMAN_TO_ARABIC.get(parts[1], parts[1])}"


def avatar_url(payload: Dict[str, Any]) -> Optional[str]:
    """Full avatar URL from whichever image path the profile carries."""
    pin = payload.get("pin")
    avatar = payload.get("avatar")
    path = (
        (pin.get("url") if isinstance(pin, dict) else None)
        or (avatar.get("fullBodyPath") if isinstance(avatar, dict) else None)
        or payload.get("imageUrl")
    )
    if not path:
        return payload.get("avatarUrl")
    return f"{AVATAR_URL_PREFIX}{path}"


def normalize_profile(payload: Optional[Dict[str, Any]]) -> PlayerProfile:
    """Build a PlayerProfile from a /users/{id} payload."""
    payload = payload if isinstance(payload, dict) else {}
    progress = payload.get("progress") if isinstance(payload.get("progress"), dict) else {}

    return PlayerProfile(
        display_name=payload.get("nick") or payload.get("name"),
        created_at=payload.get("created") or payload.get("createdAt"),
        avatar_url=avatar_url(payload),
        country_code=payload.get("countryCode"),
        verified=bool(payload.get("isVerified", False)),
        xp=_as_int(progress.get("xp")) or 0,
        level=_as_int(progress.get("level")) or 0,
    )


def summarize_game_history(payload: Any, external_id: str, recent_limit: int = 10) -> GameHistorySummary:
    """
    Aggregate a /game-history payload for one player.

    Entries look like ``{"gameMode": ..., "duel": {"winnerId": ...,
    "teams": [{"players": [{"playerId": ..., "rankedSystemRating": ...}]}],
    "rounds": [{"startTime": ...}]}}``. Entries without a duel are skipped.
    """
    if isinstance(payload, dict):
        entries = payload.get("entries") or []
    elif isinstance(payload, list):
        entries = payload
    else:
        entries = []

    summary = GameHistorySummary()

    for entry in entries:
        duel = entry.get("duel") if isinstance(entry, dict) else None
        if not isinstance(duel, dict):
            continue

        won = duel.get("winnerId") == external_id
        summary.total_games += 1
        if won:
            summary.wins += 1
        else:
            summary.losses += 1

        mode = entry.get("gameMode") or "Duels"
        summary.games_by_mode[mode] = summary.games_by_mode.get(mode, 0) + 1

        rating = None
        for team in duel.get("teams") or []:
            for player in team.get("players") or []:
                if player.get("playerId") == external_id:
                    rating = _as_int(player.get("rankedSystemRating"))
        if rating is not None:
            summary.max_rating = rating if summary.max_rating is None else max(summary.max_rating, rating)

        if len(summary.recent_games) < recent_limit:
            rounds = duel.get("rounds") or [{}]
            summary.recent_games.append({
                "game_id": entry.get("gameId") or duel.get("gameId"),
                "mode": mode,
                "won": won,
                "rating": rating,
                "started_at": rounds[0].get("startTime") if isinstance(rounds[0], dict) else None,
            })

    if summary.total_games:
        summary.win_rate = round(summary.wins / summary.total_games, 4)

    return summary
