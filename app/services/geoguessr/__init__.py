"""
GeoGuessr rating source.

- client: async HTTP client for the ranked-system, profile, game-history and
  search endpoints
- normalizer: turns upstream payloads into RatingReading / PlayerProfile /
  GameHistorySummary and formats divisions for display
"""
from app.services.geoguessr.client import GeoGuessrClient, get_geoguessr_client, close_geoguessr_client
from app.services.geoguessr.normalizer import (
    RatingReading,
    PlayerProfile,
    GameHistorySummary,
    normalize_rating,
    normalize_division,
    normalize_profile,
    summarize_game_history,
    format_division,
)

__all__ = [
    "GeoGuessrClient",
    "get_geoguessr_client",
    "close_geoguessr_client",
    "RatingReading",
    "PlayerProfile",
    "GameHistorySummary",
    "normalize_rating",
    "normalize_division",
    "normalize_profile",
    "summarize_game_history",
    "format_division",
]
