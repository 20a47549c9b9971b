"""Tests for metric samplers."""

from unittest.mock import AsyncMock

import pytest

from src.breaches.sampler import StaticSampler, TimeseriesSampler


class TestTimeseriesSampler:
    @pytest.mark.asyncio
    async def test_latest_reading(self):
        db = AsyncMock()
        db.fetchval.return_value = 88
        value = await TimeseriesSampler(db).sample("traffic")
        assert value == 88.0
        sql, metric = db.fetchval.call_args[0]
        assert "ORDER BY ts DESC LIMIT 1" in sql
        assert metric == "traffic"

    @pytest.mark.asyncio
    async def test_no_reading(self):
        db = AsyncMock()
        db.fetchval.return_value = None
        assert await TimeseriesSampler(db).sample("power") is None

    @pytest.mark.asyncio
    async def test_max_age_filters_stale_readings(self):
        db = AsyncMock()
        db.fetchval.return_value = None
        value = await TimeseriesSampler(db, max_age_seconds=300).sample("traffic")
        assert value is None
        sql, metric, max_age = db.fetchval.call_args[0]
        assert "ts >= NOW() - make_interval(secs => $2)" in sql
        assert metric == "traffic"
        assert max_age == 300.0

    @pytest.mark.asyncio
    async def test_zero_max_age_disables_filter(self):
        db = AsyncMock()
        db.fetchval.return_value = 12
        assert await TimeseriesSampler(db, max_age_seconds=0).sample("waste") == 12.0
        args = db.fetchval.call_args[0]
        assert len(args) == 2
        assert "make_interval" not in args[0]


class TestStaticSampler:
    @pytest.mark.asyncio
    async def test_set_and_clear(self):
        sampler = StaticSampler({"waste": 80.0})
        assert await sampler.sample("waste") == 80.0
        sampler.set("waste", None)
        assert await sampler.sample("waste") is None
        sampler.set("power", 12.5)
        assert await sampler.sample("power") == 12.5
