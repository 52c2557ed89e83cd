"""Tests for SyncEngine.

Test Strategy:
1. sync_one() writes only when (rating, division) changed
2. Upstream failures become SyncResult.error and leave the row untouched
3. Store failures roll back both the player update and the snapshot
4. sync_batch() is sequential, paced, and survives per-player failures
"""
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import NOW, RecordingSleep, create_player, make_rating_source

from app.core.exceptions import StoreUnavailableError
from app.models import Player, RatingSnapshot
from app.services.tracking.sync_engine import SyncEngine


def snapshot_count(db: Session, player: Player) -> int:
    return db.query(RatingSnapshot).filter(RatingSnapshot.player_id == player.id).count()


def fixed_clock():
    return NOW


class TestSyncOne:
    """sync_one() change detection and error policy."""

    @pytest.mark.asyncio
    async def test_changed_rating_updates_player_and_appends_snapshot(self, db_session: Session):
        """Should update the row and add exactly one snapshot."""
        player = create_player(db_session, rating=1200, division="gold_ii")
        source = make_rating_source({player.external_id: {"rating": 1260, "divisionName": "Gold_I"}})

        result = await SyncEngine(db_session, source, clock=fixed_clock).sync_one(player)

        assert result.changed is True
        assert result.error is None
        assert (result.rating, result.division) == (1260, "gold_i")

        db_session.refresh(player)
        assert player.current_rating == 1260
        assert player.division == "gold_i"
        assert player.updated_at == NOW
        assert snapshot_count(db_session, player) == 2

        latest = (
            db_session.query(RatingSnapshot)
            .filter(RatingSnapshot.player_id == player.id)
            .order_by(RatingSnapshot.recorded_at.desc())
            .first()
        )
        assert (latest.rating, latest.division, latest.recorded_at) == (1260, "gold_i", NOW)

    @pytest.mark.asyncio
    async def test_same_values_twice_keeps_seed_snapshot_only(self, db_session: Session):
        """Two syncs returning stored values write nothing."""
        earlier = NOW - timedelta(hours=3)
        player = create_player(db_session, rating=1500, division="master_ii", updated_at=earlier)
        source = make_rating_source({player.external_id: {"rating": 1500, "divisionName": "master_ii"}})
        engine = SyncEngine(db_session, source, clock=fixed_clock)

        first = await engine.sync_one(player)
        second = await engine.sync_one(player)

        assert first.changed is False
        assert second.changed is False
        assert snapshot_count(db_session, player) == 1
        db_session.refresh(player)
        assert player.updated_at == earlier

    @pytest.mark.asyncio
    async def test_division_case_difference_is_not_a_change(self, db_session: Session):
        """{rating:1200, divisionName:"Gold_II"} matches stored gold_ii."""
        player = create_player(db_session, rating=1200, division="gold_ii")
        source = make_rating_source({player.external_id: {"rating": 1200, "divisionName": "Gold_II"}})

        result = await SyncEngine(db_session, source).sync_one(player)

        assert result.changed is False
        assert result.error is None
        assert snapshot_count(db_session, player) == 1

    @pytest.mark.asyncio
    async def test_division_only_change_is_recorded(self, db_session: Session):
        """Same rating, new division still counts as a change."""
        player = create_player(db_session, rating=1200, division="gold_ii")
        source = make_rating_source({player.external_id: {"rating": 1200, "divisionName": "Gold I"}})

        result = await SyncEngine(db_session, source).sync_one(player)

        assert result.changed is True
        assert snapshot_count(db_session, player) == 2

    @pytest.mark.asyncio
    async def test_missing_fields_default_to_zero_unranked(self, db_session: Session):
        """Schema drift degrades to rating 0 / unranked instead of failing."""
        player = create_player(db_session, rating=900, division="silver_i")
        source = make_rating_source({player.external_id: {"somethingElse": True}})

        result = await SyncEngine(db_session, source).sync_one(player)

        assert result.changed is True
        db_session.refresh(player)
        assert (player.current_rating, player.division) == (0, "unranked")

    @pytest.mark.asyncio
    async def test_upstream_failure_returns_error_and_leaves_row(self, db_session: Session):
        """A failing fetch yields changed=False with an error, row untouched."""
        player = create_player(db_session, rating=1337, division="gold_iii")
        source = make_rating_source(failing=[player.external_id])

        result = await SyncEngine(db_session, source).sync_one(player)

        assert result.changed is False
        assert result.error
        db_session.refresh(player)
        assert (player.current_rating, player.division, player.updated_at) == (1337, "gold_iii", None)
        assert snapshot_count(db_session, player) == 1

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back_and_raises(self, db_session: Session, monkeypatch):
        """Neither the player update nor the snapshot survives a failed commit."""
        player = create_player(db_session, rating=1000, division="gold_i")
        source = make_rating_source({player.external_id: {"rating": 1100, "divisionName": "gold_i"}})

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db_session, "commit", failing_commit)

        with pytest.raises(StoreUnavailableError):
            await SyncEngine(db_session, source).sync_one(player)

        monkeypatch.undo()
        db_session.refresh(player)
        assert player.current_rating == 1000
        assert snapshot_count(db_session, player) == 1


class TestSyncBatch:
    """sync_batch() pacing and failure isolation."""

    @pytest.mark.asyncio
    async def test_batch_tallies_outcomes(self, db_session: Session):
        """Updated, unchanged and errored players are counted separately."""
        changed = create_player(db_session, rating=1000, division="gold_i")
        same = create_player(db_session, rating=1500, division="master_i")
        broken = create_player(db_session, rating=800, division="silver_i")
        source = make_rating_source(
            {
                changed.external_id: {"rating": 1020, "divisionName": "gold_i"},
                same.external_id: {"rating": 1500, "divisionName": "Master I"},
            },
            failing=[broken.external_id],
        )
        sleep = RecordingSleep()

        summary = await SyncEngine(db_session, source, sleep=sleep).sync_batch(
            [changed, same, broken], delay_seconds=2.0
        )

        assert summary.total == 3
        assert summary.updated == 1
        assert summary.unchanged == 1
        assert summary.errored == 1
        assert summary.errors[0]['player_id'] == broken.id

    @pytest.mark.asyncio
    async def test_batch_sleeps_between_players_only(self, db_session: Session):
        """Three players means two pauses, in call order."""
        players = [create_player(db_session) for _ in range(3)]
        source = make_rating_source()
        sleep = RecordingSleep()

        await SyncEngine(db_session, source, sleep=sleep).sync_batch(players, delay_seconds=2.0)

        assert sleep.calls == [2.0, 2.0]
        called = [call.args[0] for call in source.fetch_rating.await_args_list]
        assert called == [p.external_id for p in players]

    @pytest.mark.asyncio
    async def test_batch_continues_after_store_failure(self, db_session: Session, monkeypatch):
        """A failed write for one player does not stop the next one."""
        first = create_player(db_session, rating=1000)
        second = create_player(db_session, rating=1000)
        source = make_rating_source({
            first.external_id: {"rating": 1100, "divisionName": "gold_i"},
            second.external_id: {"rating": 1200, "divisionName": "gold_i"},
        })

        real_commit = db_session.commit
        commits = {'count': 0}

        def flaky_commit():
            commits['count'] += 1
            if commits['count'] == 1:
                raise OperationalError("COMMIT", {}, Exception("connection reset"))
            real_commit()

        monkeypatch.setattr(db_session, "commit", flaky_commit)

        summary = await SyncEngine(db_session, source, sleep=RecordingSleep()).sync_batch(
            [first, second], delay_seconds=0
        )

        assert summary.errored == 1
        assert summary.updated == 1
        db_session.refresh(second)
        assert second.current_rating == 1200

    @pytest.mark.asyncio
    async def test_empty_batch(self, db_session: Session):
        summary = await SyncEngine(db_session, make_rating_source()).sync_batch([], delay_seconds=2.0)

        assert summary.total == 0
        assert summary.updated == summary.unchanged == summary.errored == 0
