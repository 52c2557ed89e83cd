"""
Error taxonomy for the rating tracker.

- UpstreamUnavailableError: a GeoGuessr call failed, timed out, was refused
  (expired cookie) or returned something that is not JSON. Non-fatal for
  syncing; the player keeps its stored values.
- PlayerNotFoundError: the requested player is not in the store (HTTP 404).
- StoreUnavailableError: a critical write to the database failed and was
  rolled back (HTTP 503).
- PlayerAlreadyExistsError: a concurrent registration won the unique
  external_id race (HTTP 409).

Upstream payloads with missing fields are not errors: they are defaulted by
app.services.geoguessr.normalizer.
"""
from typing import Optional


class TrackerError(Exception):
    """Base class for all rating tracker errors."""


class UpstreamUnavailableError(TrackerError):
    """The rating source could not deliver a response."""

    def __init__(self, message: str, endpoint: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class PlayerNotFoundError(TrackerError):
    """No player with the given identifier exists."""

    def __init__(self, player_id: str):
        super().__init__(f"Player not found: {player_id}")
        self.player_id = player_id


class StoreUnavailableError(TrackerError):
    """A write to the player store failed."""


class PlayerAlreadyExistsError(TrackerError):
    """A player with this external id already exists."""

    def __init__(self, external_id: str):
        super().__init__(f"Player already registered: {external_id}")
        self.external_id = external_id
