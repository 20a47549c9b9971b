"""Tests for the city-alerts CLI commands."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from src.breaches.evaluator import EvaluationReport
from src.breaches.sampler import StaticSampler, TimeseriesSampler
from src.cli import _parse_samples, main


@pytest.fixture
def runner():
    return CliRunner()


def _mock_db(healthy: bool = True):
    db = AsyncMock()
    db.connect = AsyncMock()
    db.close = AsyncMock()
    db.health_check = AsyncMock(return_value=healthy)
    return db


# ── init-db ──────────────────────────────────────────────


class TestInitDb:
    def test_creates_and_seeds(self, runner):
        mock_db = _mock_db()
        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.storage.schema.create_all_tables", new_callable=AsyncMock) as mock_create:
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code == 0
        assert "Database initialized successfully" in result.output
        mock_create.assert_awaited_once_with(mock_db, seed=True)
        mock_db.close.assert_awaited_once()

    def test_no_seed(self, runner):
        mock_db = _mock_db()
        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.storage.schema.create_all_tables", new_callable=AsyncMock) as mock_create:
            result = runner.invoke(main, ["init-db", "--no-seed"])

        assert result.exit_code == 0
        mock_create.assert_awaited_once_with(mock_db, seed=False)

    def test_closes_db_on_failure(self, runner):
        mock_db = _mock_db()
        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.storage.schema.create_all_tables",
                   new_callable=AsyncMock, side_effect=RuntimeError("permission denied")):
            result = runner.invoke(main, ["init-db"])

        assert result.exit_code != 0
        mock_db.close.assert_awaited_once()


# ── evaluate ─────────────────────────────────────────────


class TestParseSamples:
    def test_parses_pairs(self):
        assert _parse_samples(("traffic=95", "power=0.5")) == {"traffic": 95.0, "power": 0.5}

    def test_empty(self):
        assert _parse_samples(()) == {}


class TestEvaluate:
    def _report(self):
        return EvaluationReport(
            evaluated_at=datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc),
            suppressed=2,
        )

    def test_single_pass_prints_report(self, runner):
        mock_db = _mock_db()
        mock_evaluator = MagicMock()
        mock_evaluator.evaluate = AsyncMock(return_value=self._report())

        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.breaches.evaluator.BreachEvaluator", return_value=mock_evaluator) as MockEval:
            result = runner.invoke(main, ["evaluate", "--no-notify"])

        assert result.exit_code == 0, result.output
        assert '"suppressed": 2' in result.output
        assert '"evaluated_at": "2026-03-10T08:00:00+00:00"' in result.output
        kwargs = MockEval.call_args.kwargs
        assert isinstance(kwargs["sampler"], TimeseriesSampler)
        assert kwargs["dispatcher"] is None
        mock_db.close.assert_awaited_once()

    def test_configured_sample_max_age(self, runner, monkeypatch):
        monkeypatch.setenv("BREACHES_SAMPLE_MAX_AGE_SECONDS", "120")
        mock_db = _mock_db()
        mock_db.fetchval.return_value = 50
        mock_evaluator = MagicMock()
        mock_evaluator.evaluate = AsyncMock(return_value=self._report())

        with patch("src.storage.database.Database", return_value=mock_db), \
             patch("src.breaches.evaluator.BreachEvaluator", return_value=mock_evaluator) as MockEval:
            result = runner.invoke(main, ["evaluate", "--no-notify"])

        assert result.exit_code == 0, result.output
        sampler = MockEval.call_args.kwargs["sampler"]
        assert asyncio.run(sampler.sample("traffic")) == 50.0
        _, metric, max_age = mock_db.fetchval.call_args[0]
        assert (metric, max_age) == ("traffic", 120.0)

    def test_static_samples(self, runner):
        mock_evaluator = MagicMock()
        mock_evaluator.evaluate = AsyncMock(return_value=self._report())

        with patch("src.storage.database.Database", return_value=_mock_db()), \
             patch("src.breaches.evaluator.BreachEvaluator", return_value=mock_evaluator) as MockEval:
            result = runner.invoke(
                main, ["evaluate", "--no-notify", "--sample", "traffic=95", "--sample", "waste=10"],
            )

        assert result.exit_code == 0, result.output
        sampler = MockEval.call_args.kwargs["sampler"]
        assert isinstance(sampler, StaticSampler)
        assert asyncio.run(sampler.sample("traffic")) == 95.0
        assert asyncio.run(sampler.sample("air_quality")) is None

    @pytest.mark.parametrize(
        "sample,message",
        [
            ("traffic", "expected METRIC=VALUE"),
            ("noise=3", "unknown metric"),
            ("traffic=high", "is not a number"),
        ],
    )
    def test_bad_sample_rejected(self, runner, sample, message):
        with patch("src.storage.database.Database") as MockDb:
            result = runner.invoke(main, ["evaluate", "--sample", sample])

        assert result.exit_code == 2
        assert message in result.output
        MockDb.assert_not_called()


# ── health ───────────────────────────────────────────────


class TestHealthCommand:
    def test_healthy(self, runner):
        with patch("src.storage.database.Database", return_value=_mock_db(healthy=True)):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 0
        assert "postgres: True" in result.output
        assert "All core services healthy!" in result.output

    def test_database_down(self, runner):
        with patch("src.storage.database.Database", return_value=_mock_db(healthy=False)):
            result = runner.invoke(main, ["health"])

        assert result.exit_code == 1
        assert "Some services unhealthy!" in result.output
