"""
HTTP endpoint integration tests for geo-rating-tracker.

These tests verify that FastAPI endpoints:
- Return correct HTTP status codes
- Map tracker errors to the right responses
- Hand the rating source and database through dependencies

Uses FastAPI TestClient for in-memory HTTP testing against the test
database and the rating source double from conftest.
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import create_player

from app.core.exceptions import UpstreamUnavailableError
from app.core.middleware import CORRELATION_HEADER
from app.models import Player


# =============================================================================
# SERVICE ENDPOINTS
# =============================================================================

class TestServiceEndpoints:

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert data["endpoints"]["players"] == "/api/v1/players"

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_correlation_id_is_echoed(self, test_client):
        response = test_client.get("/health", headers={CORRELATION_HEADER: "req-abc123"})

        assert response.headers[CORRELATION_HEADER] == "req-abc123"

    def test_correlation_id_is_generated(self, test_client):
        response = test_client.get("/health")

        assert response.headers.get(CORRELATION_HEADER)


# =============================================================================
# PLAYER ENDPOINTS
# =============================================================================

class TestListPlayers:

    def test_lists_all_players(self, test_client, db_session):
        create_player(db_session, is_tracked=True)
        create_player(db_session)

        response = test_client.get("/api/v1/players")

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_tracked_filter(self, test_client, db_session):
        tracked = create_player(db_session, is_tracked=True)
        create_player(db_session)

        response = test_client.get("/api/v1/players", params={"tracked": "true"})

        data = response.json()
        assert data["count"] == 1
        assert data["players"][0]["id"] == tracked.id
        assert data["players"][0]["formatted_division"] == "Gold 1"


class TestSearchPlayers:

    def test_no_exact_match_is_404(self, test_client, rating_source):
        rating_source.search_users.return_value = [{"id": "x1", "name": "someone"}]

        response = test_client.get("/api/v1/players/search", params={"username": "nobody"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Player not found on GeoGuessr"

    def test_exact_match(self, test_client, rating_source):
        rating_source.search_users.return_value = [{"id": "x1", "name": "Kodiak", "xp": 10}]

        response = test_client.get("/api/v1/players/search", params={"username": "kodiak"})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["external_id"] == "x1"
        assert data["results"][0]["in_database"] is False

    def test_upstream_failure_is_502(self, test_client, rating_source):
        rating_source.search_users.side_effect = UpstreamUnavailableError("search returned 500")

        response = test_client.get("/api/v1/players/search", params={"username": "kodiak"})

        assert response.status_code == 502
        assert response.json()["error"] == "GeoGuessr unavailable"

    def test_username_is_required(self, test_client):
        response = test_client.get("/api/v1/players/search")

        assert response.status_code == 422


class TestRegisterPlayer:

    def test_registers_and_tracks(self, test_client, db_session, rating_source):
        rating_source.ratings["ext-new"] = {"rating": 1333, "divisionName": "Gold II"}

        response = test_client.post(
            "/api/v1/players", json={"external_id": "ext-new", "username": "newcomer"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["created"] is True
        assert data["already_registered"] is False
        assert data["player"]["current_rating"] == 1333
        assert data["player"]["is_tracked"] is True
        assert db_session.query(Player).filter(Player.external_id == "ext-new").count() == 1

    def test_already_registered(self, test_client, db_session):
        existing = create_player(db_session, external_id="ext-old")

        response = test_client.post(
            "/api/v1/players", json={"external_id": "ext-old", "username": "whoever"}
        )

        data = response.json()
        assert data["created"] is False
        assert data["already_registered"] is True
        assert data["player"]["id"] == existing.id

    def test_missing_fields_are_rejected(self, test_client):
        response = test_client.post("/api/v1/players", json={"username": "no id"})

        assert response.status_code == 422


class TestPlayerDetail:

    def test_unknown_player_is_404(self, test_client):
        response = test_client.get("/api/v1/players/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "Player not found"

    def test_get_player_does_not_sync(self, test_client, db_session, rating_source):
        player = create_player(db_session, rating=1500)

        response = test_client.get(f"/api/v1/players/{player.id}")

        assert response.status_code == 200
        assert response.json()["current_rating"] == 1500
        rating_source.fetch_rating.assert_not_awaited()

    def test_history_of_unknown_player_is_404(self, test_client):
        response = test_client.get("/api/v1/players/does-not-exist/history")

        assert response.status_code == 404

    def test_history_syncs_untracked_player(self, test_client, db_session, rating_source):
        player = create_player(db_session, rating=1000)
        rating_source.ratings[player.external_id] = {"rating": 1080, "divisionName": "Gold I"}

        response = test_client.get(f"/api/v1/players/{player.id}/history")

        assert response.status_code == 200
        data = response.json()
        assert data["just_tracked"] is True
        assert data["sync"] == {"changed": True, "error": None}
        assert data["player"]["is_tracked"] is True
        assert [h["rating"] for h in data["history"]] == [1000, 1080]
        assert data["stats"]["peak_rating"] == 1080
        assert "profile" not in data

    def test_history_of_tracked_player(self, test_client, db_session, rating_source):
        player = create_player(db_session, rating=1200, is_tracked=True)

        response = test_client.get(f"/api/v1/players/{player.id}/history")

        data = response.json()
        assert data["just_tracked"] is False
        assert "sync" not in data
        assert data["player"]["last_viewed_at"] is not None
        rating_source.fetch_rating.assert_not_awaited()

    def test_history_with_upstream_extras(self, test_client, db_session):
        player = create_player(db_session, rating=1200, is_tracked=True)

        response = test_client.get(
            f"/api/v1/players/{player.id}/history", params={"include_upstream": "true"}
        )

        data = response.json()
        assert "profile" in data
        assert data["game_stats"]["total_games"] == 0


# =============================================================================
# TRACKING ENDPOINTS
# =============================================================================

class TestTrackingEndpoints:

    def test_status(self, test_client, db_session):
        create_player(db_session, rating=2000, is_tracked=True)

        response = test_client.get("/api/v1/tracking/status")

        assert response.status_code == 200
        data = response.json()
        assert data["tracked"] == {"top_tier": 1, "rotation": 0, "total": 1}
        assert data["scheduler"]["running"] is False
        assert data["cycle_running"] is False
        assert data["geoguessr_circuit"] == "closed"

    def test_rebalance_dry_run_does_not_write(self, test_client, db_session):
        player = create_player(db_session, rating=1500)

        response = test_client.post("/api/v1/tracking/rebalance", params={"dry_run": "true"})

        assert response.status_code == 200
        data = response.json()
        assert data["results"]["dry_run"] is True
        assert data["results"]["newly_tracked"] == 1
        db_session.refresh(player)
        assert player.is_tracked is False

    def test_rebalance_tracks_top_players(self, test_client, db_session):
        player = create_player(db_session, rating=1500)

        response = test_client.post("/api/v1/tracking/rebalance")

        assert response.json()["message"] == "Tracking rebalanced"
        db_session.refresh(player)
        assert player.is_tracked is True

    def test_run_cycle_in_background(self, test_client, db_session, rating_source):
        player = create_player(db_session, rating=1000, is_tracked=True)
        external_id = player.external_id
        rating_source.ratings[external_id] = {"rating": 1044, "divisionName": "Gold I"}

        response = test_client.post("/api/v1/tracking/run")

        assert response.status_code == 202
        assert response.json()["started"] is True
        polled = [call.args[0] for call in rating_source.fetch_rating.await_args_list]
        assert polled == [external_id]
