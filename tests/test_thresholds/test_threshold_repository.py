"""Tests for ThresholdRepository with mocked Database."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from src.thresholds.repository import ThresholdRepository, _row_to_threshold


@pytest.fixture
def mock_db():
    return AsyncMock()


@pytest.fixture
def repo(mock_db):
    return ThresholdRepository(mock_db)


def _make_db_row(**overrides):
    row = {
        "metric": "traffic",
        "warn": 70.0,
        "critical": 90.0,
        "updated_at": datetime(2026, 3, 1, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


class TestRowToThreshold:
    def test_basic_conversion(self):
        t = _row_to_threshold(_make_db_row(warn=70, critical=90))
        assert t.metric == "traffic"
        assert t.warn == 70.0
        assert isinstance(t.warn, float)


class TestCreateTable:
    @pytest.mark.asyncio
    async def test_ddl_enforces_ordering(self, repo, mock_db):
        await repo.create_table()
        sql = mock_db.execute.call_args[0][0]
        assert "CREATE TABLE IF NOT EXISTS thresholds" in sql
        assert "CHECK (warn < critical)" in sql


class TestSeedDefaults:
    @pytest.mark.asyncio
    async def test_seeds_each_metric_without_overwriting(self, repo, mock_db):
        await repo.seed_defaults({"traffic": (70.0, 90.0), "power": (80.0, 95.0)})
        assert mock_db.execute.call_count == 2
        sql = mock_db.execute.call_args_list[0][0][0]
        assert "ON CONFLICT (metric) DO NOTHING" in sql

    @pytest.mark.asyncio
    async def test_invalid_default_rejected(self, repo, mock_db):
        with pytest.raises(ValueError):
            await repo.seed_defaults({"traffic": (90.0, 70.0)})
        mock_db.execute.assert_not_called()


class TestGetAll:
    @pytest.mark.asyncio
    async def test_ordered_by_metric(self, repo, mock_db):
        mock_db.fetch.return_value = [
            _make_db_row(metric="air_quality", warn=100.0, critical=200.0),
            _make_db_row(metric="traffic"),
        ]
        result = await repo.get_all()
        assert [t.metric for t in result] == ["air_quality", "traffic"]
        assert "ORDER BY metric" in mock_db.fetch.call_args[0][0]

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, repo, mock_db):
        mock_db.fetchrow.return_value = None
        assert await repo.get("waste") is None


class TestUpsert:
    @pytest.mark.asyncio
    async def test_upsert_returns_stored_row(self, repo, mock_db):
        mock_db.fetchrow.return_value = _make_db_row(warn=60.0, critical=85.0)
        t = await repo.upsert("traffic", 60, 85)
        assert (t.warn, t.critical) == (60.0, 85.0)
        args = mock_db.fetchrow.call_args[0]
        assert "ON CONFLICT (metric) DO UPDATE" in args[0]
        assert args[1:] == ("traffic", 60.0, 85.0)

    @pytest.mark.asyncio
    async def test_rejected_update_writes_nothing(self, repo, mock_db):
        with pytest.raises(ValueError, match="warn must be < critical"):
            await repo.upsert("traffic", 90, 90)
        mock_db.fetchrow.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_metric_writes_nothing(self, repo, mock_db):
        with pytest.raises(ValueError, match="Unknown metric"):
            await repo.upsert("noise", 1, 2)
        mock_db.fetchrow.assert_not_called()
