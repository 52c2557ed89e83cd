"""Tests for PlayerRegistry (registration and username search)."""
import sys
from pathlib import Path

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import create_player, make_rating_source

from app.core.exceptions import PlayerAlreadyExistsError, UpstreamUnavailableError
from app.models import Player, RatingSnapshot
from app.services.geoguessr.normalizer import PlayerProfile
from app.services.tracking.policy import TrackingPolicy
from app.services.tracking.registry import PlayerRegistry


def make_registry(db: Session, source, top_n: int = 300, rotation_capacity: int = 200) -> PlayerRegistry:
    return PlayerRegistry(db, source, policy=TrackingPolicy(db, top_n=top_n, rotation_capacity=rotation_capacity))


class TestRegister:

    @pytest.mark.asyncio
    async def test_new_player_gets_seed_snapshot_and_is_tracked(self, db_session: Session):
        source = make_rating_source({"ext1": {"rating": 1420, "divisionName": "Gold I"}})
        source.fetch_profile.return_value = PlayerProfile(display_name="MrTwister")

        result = await make_registry(db_session, source).register("ext1", "mrtwister")

        assert result.created is True
        player = result.player
        assert player.username == "MrTwister"
        assert (player.current_rating, player.division) == (1420, "gold_i")
        assert player.is_tracked is True
        snapshots = db_session.query(RatingSnapshot).filter(RatingSnapshot.player_id == player.id).all()
        assert [(s.rating, s.division) for s in snapshots] == [(1420, "gold_i")]

    @pytest.mark.asyncio
    async def test_existing_player_is_returned(self, db_session: Session):
        existing = create_player(db_session, external_id="ext1", rating=1000)
        source = make_rating_source()

        result = await make_registry(db_session, source).register("ext1", "whoever")

        assert result.created is False
        assert result.player.id == existing.id
        source.fetch_rating.assert_not_awaited()
        assert db_session.query(Player).count() == 1

    @pytest.mark.asyncio
    async def test_upstream_failures_fall_back_to_defaults(self, db_session: Session):
        source = make_rating_source(failing=["ext2"])
        source.fetch_profile.side_effect = UpstreamUnavailableError("profile returned 404")

        result = await make_registry(db_session, source).register("ext2", "GivenName")

        player = result.player
        assert player.username == "GivenName"
        assert (player.current_rating, player.division) == (0, "unranked")
        assert player.updated_at is None

    @pytest.mark.asyncio
    async def test_registration_respects_rotation_capacity(self, db_session: Session):
        create_player(db_session, rating=3000, is_tracked=True)
        occupant = create_player(db_session, rating=500, is_tracked=True)
        source = make_rating_source({"ext3": {"rating": 800}})

        result = await make_registry(db_session, source, top_n=1, rotation_capacity=1).register("ext3", "new")

        assert result.player.is_tracked is True
        assert result.tracking.evicted_player_id == occupant.id

    @pytest.mark.asyncio
    async def test_concurrent_insert_is_reported(self, db_session: Session, monkeypatch):
        source = make_rating_source()
        registry = make_registry(db_session, source)

        def lost_race():
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: players.external_id"))

        monkeypatch.setattr(db_session, "commit", lost_race)

        with pytest.raises(PlayerAlreadyExistsError):
            await registry.register("ext4", "racer")


class TestSearch:

    @pytest.mark.asyncio
    async def test_only_exact_matches_enriched_and_sorted(self, db_session: Session):
        stored = create_player(db_session, external_id="a1", rating=1700, is_tracked=True)
        source = make_rating_source()
        source.search_users.return_value = [
            {"id": "b2", "name": "Zi8gzag", "xp": 900, "imageUrl": "pin/b2.png"},
            {"id": "a1", "nick": "zi8gzag", "xp": 100},
            {"id": "c3", "name": "zi8gzag_fan", "xp": 5000},
            {"id": "d4", "name": "ZI8GZAG", "xp": 50000},
            {"name": "zi8gzag"},
        ]

        results = await make_registry(db_session, source).search("zi8gzag")

        assert [r['external_id'] for r in results] == ["a1", "d4", "b2"]
        top = results[0]
        assert top['in_database'] is True
        assert top['is_tracked'] is True
        assert top['player']['id'] == stored.id
        assert top['player']['formatted_division'] == "Gold 1"
        assert results[2]['avatar_url'].endswith("pin/b2.png")
        assert results[1]['player'] is None

    @pytest.mark.asyncio
    async def test_no_matches(self, db_session: Session):
        source = make_rating_source()
        source.search_users.return_value = [{"id": "x", "name": "someone else"}]

        assert await make_registry(db_session, source).search("nobody") == []

    @pytest.mark.asyncio
    async def test_search_failure_propagates(self, db_session: Session):
        source = make_rating_source()
        source.search_users.side_effect = UpstreamUnavailableError("search returned 500")

        with pytest.raises(UpstreamUnavailableError):
            await make_registry(db_session, source).search("anyone")
