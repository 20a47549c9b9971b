"""Tests for BreachEvaluator: dedup window, isolation, locking and notification."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.breaches.config import BreachConfig
from src.breaches.evaluator import BreachEvaluator
from src.breaches.repository import BreachRepository
from src.breaches.sampler import StaticSampler
from src.breaches.schemas import Breach
from src.thresholds.repository import ThresholdRepository
from src.thresholds.schemas import Threshold

T0 = datetime(2026, 3, 10, 8, 0, 0, tzinfo=timezone.utc)


class InMemoryBreachRepo:
    """Breach store honouring the (metric, severity, window) dedup contract."""

    def __init__(self) -> None:
        self.rows: list[Breach] = []

    async def create_unless_recent(self, breach: Breach, since: datetime) -> Breach | None:
        for row in self.rows:
            if (
                row.metric == breach.metric
                and row.severity == breach.severity
                and row.created_at >= since
            ):
                return None
        breach.id = len(self.rows) + 1
        self.rows.append(breach)
        return breach


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _thresholds() -> list[Threshold]:
    return [
        Threshold(metric="traffic", warn=70.0, critical=90.0),
        Threshold(metric="air_quality", warn=100.0, critical=200.0),
        Threshold(metric="waste", warn=75.0, critical=90.0),
        Threshold(metric="power", warn=80.0, critical=95.0),
    ]


@pytest.fixture
def threshold_repo():
    repo = AsyncMock(spec=ThresholdRepository)
    repo.get_all.return_value = _thresholds()
    return repo


@pytest.fixture
def breach_repo():
    return InMemoryBreachRepo()


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def sampler():
    return StaticSampler({"traffic": 95.0, "air_quality": 50.0, "waste": 10.0, "power": 40.0})


@pytest.fixture
def evaluator(threshold_repo, breach_repo, sampler, clock):
    return BreachEvaluator(
        threshold_repo=threshold_repo,
        breach_repo=breach_repo,
        sampler=sampler,
        config=BreachConfig(),
        clock=clock,
    )


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_records_breach_with_message(self, evaluator, breach_repo):
        report = await evaluator.evaluate()
        assert not report.skipped
        assert len(report.created) == 1
        breach = report.created[0]
        assert (breach.metric, breach.severity) == ("traffic", "critical")
        assert breach.created_at == T0
        assert "value=95" in breach.message
        assert "warn=70" in breach.message and "critical=90" in breach.message
        assert len(breach_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_normal_values_record_nothing(self, evaluator, sampler, breach_repo):
        sampler.set("traffic", 20.0)
        report = await evaluator.evaluate()
        assert report.created == []
        assert breach_repo.rows == []

    @pytest.mark.asyncio
    async def test_missing_sample_skips_metric(self, evaluator, sampler, breach_repo):
        sampler.set("traffic", None)
        report = await evaluator.evaluate()
        assert report.created == []
        assert report.failed_metrics == []

    @pytest.mark.asyncio
    async def test_missing_threshold_skips_metric(self, evaluator, threshold_repo, breach_repo):
        threshold_repo.get_all.return_value = [
            t for t in _thresholds() if t.metric != "traffic"
        ]
        report = await evaluator.evaluate()
        assert report.created == []

    @pytest.mark.asyncio
    async def test_threshold_load_failure_aborts_tick(self, evaluator, threshold_repo, breach_repo):
        threshold_repo.get_all.side_effect = ConnectionError("db down")
        report = await evaluator.evaluate()
        assert report.created == []
        assert breach_repo.rows == []
        assert evaluator.last_tick_at is None


class TestDedupWindow:
    @pytest.mark.asyncio
    async def test_repeat_inside_window_suppressed(self, evaluator, clock, breach_repo):
        await evaluator.evaluate()
        for _ in range(19):  # 19 more ticks, 15 s apart: 4m45s total
            clock.advance(seconds=15)
            report = await evaluator.evaluate()
            assert report.created == []
        assert len(breach_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_refires_after_window(self, evaluator, clock, breach_repo):
        await evaluator.evaluate()
        clock.advance(minutes=5, seconds=1)
        report = await evaluator.evaluate()
        assert len(report.created) == 1
        assert len(breach_repo.rows) == 2

    @pytest.mark.asyncio
    async def test_warn_and_critical_coexist(self, evaluator, sampler, clock, breach_repo):
        sampler.set("traffic", 75.0)
        await evaluator.evaluate()
        clock.advance(seconds=15)
        sampler.set("traffic", 95.0)
        report = await evaluator.evaluate()
        assert [b.severity for b in report.created] == ["critical"]
        assert {b.severity for b in breach_repo.rows} == {"warn", "critical"}

    @pytest.mark.asyncio
    async def test_suppressed_count_reported(self, evaluator, clock):
        await evaluator.evaluate()
        clock.advance(seconds=15)
        report = await evaluator.evaluate()
        assert report.suppressed == 1


class TestIsolation:
    @pytest.mark.asyncio
    async def test_one_metric_failure_does_not_stop_others(
        self, threshold_repo, breach_repo, clock,
    ):
        sampler = MagicMock()

        async def sample(metric):
            if metric == "air_quality":
                raise RuntimeError("sensor offline")
            return {"traffic": 95.0, "power": 99.0, "waste": 0.0}[metric]

        sampler.sample = sample
        evaluator = BreachEvaluator(threshold_repo, breach_repo, sampler, clock=clock)

        report = await evaluator.evaluate()
        assert report.failed_metrics == ["air_quality"]
        assert {b.metric for b in report.created} == {"traffic", "power"}


class TestSkipIfBusy:
    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, threshold_repo, breach_repo, clock):
        gate = asyncio.Event()
        sampler = MagicMock()

        async def slow_sample(metric):
            await gate.wait()
            return None

        sampler.sample = slow_sample
        evaluator = BreachEvaluator(threshold_repo, breach_repo, sampler, clock=clock)

        first = asyncio.create_task(evaluator.evaluate())
        await asyncio.sleep(0)
        second = await evaluator.evaluate()
        gate.set()
        first_report = await first

        assert second.skipped
        assert not first_report.skipped


class TestDistributedLock:
    @pytest.mark.asyncio
    async def test_held_elsewhere_skips_tick(self, threshold_repo, breach_repo, sampler, clock):
        redis_client = AsyncMock()
        redis_client.set.return_value = None
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler, redis_client=redis_client, clock=clock,
        )
        report = await evaluator.evaluate()
        assert report.skipped
        assert breach_repo.rows == []
        threshold_repo.get_all.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_acquired_and_released(self, threshold_repo, breach_repo, sampler, clock):
        redis_client = AsyncMock()
        redis_client.set.return_value = True
        config = BreachConfig()
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler,
            config=config, redis_client=redis_client, clock=clock,
        )
        report = await evaluator.evaluate()
        assert len(report.created) == 1

        set_kwargs = redis_client.set.call_args.kwargs
        assert set_kwargs["nx"] is True
        assert set_kwargs["ex"] == config.lock_ttl_seconds
        token = redis_client.set.call_args[0][1]
        redis_client.eval.assert_awaited_once()
        assert redis_client.eval.call_args[0][2:] == (config.lock_key, token)

    @pytest.mark.asyncio
    async def test_redis_error_degrades_to_local_lock(
        self, threshold_repo, breach_repo, sampler, clock,
    ):
        redis_client = AsyncMock()
        redis_client.set.side_effect = ConnectionError("redis down")
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler, redis_client=redis_client, clock=clock,
        )
        report = await evaluator.evaluate()
        assert len(report.created) == 1
        redis_client.eval.assert_not_called()


class TestNotification:
    @pytest.mark.asyncio
    async def test_new_breach_dispatches_push(self, threshold_repo, breach_repo, sampler, clock):
        dispatcher = AsyncMock()
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler, dispatcher=dispatcher, clock=clock,
        )
        report = await evaluator.evaluate()

        dispatcher.dispatch.assert_awaited_once()
        request = dispatcher.dispatch.call_args[0][0]
        assert request.channel == "webpush"
        assert request.source == "breach"
        assert request.severity == "critical"
        assert request.related_entity_id == report.created[0].id
        assert request.body == report.created[0].message

    @pytest.mark.asyncio
    async def test_suppressed_breach_not_notified(
        self, threshold_repo, breach_repo, sampler, clock,
    ):
        dispatcher = AsyncMock()
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler, dispatcher=dispatcher, clock=clock,
        )
        await evaluator.evaluate()
        clock.advance(seconds=15)
        await evaluator.evaluate()
        assert dispatcher.dispatch.await_count == 1

    @pytest.mark.asyncio
    async def test_dispatch_failure_keeps_breach(self, threshold_repo, breach_repo, sampler, clock):
        dispatcher = AsyncMock()
        dispatcher.dispatch.side_effect = RuntimeError("push service down")
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler, dispatcher=dispatcher, clock=clock,
        )
        report = await evaluator.evaluate()
        assert len(report.created) == 1
        assert len(breach_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_notifications_can_be_disabled(self, threshold_repo, breach_repo, sampler, clock):
        dispatcher = AsyncMock()
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler,
            config=BreachConfig(notify_on_breach=False),
            dispatcher=dispatcher, clock=clock,
        )
        await evaluator.evaluate()
        dispatcher.dispatch.assert_not_called()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, threshold_repo, breach_repo, sampler, clock):
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler,
            config=BreachConfig(eval_interval_seconds=1.0), clock=clock,
        )
        evaluator.start()
        assert evaluator.is_running
        await asyncio.sleep(0.05)
        await evaluator.stop()

        assert not evaluator.is_running
        assert len(breach_repo.rows) == 1

    @pytest.mark.asyncio
    async def test_loop_survives_tick_errors(self, breach_repo, sampler, clock):
        threshold_repo = AsyncMock(spec=ThresholdRepository)
        threshold_repo.get_all.side_effect = RuntimeError("boom")
        evaluator = BreachEvaluator(
            threshold_repo, breach_repo, sampler,
            config=BreachConfig(eval_interval_seconds=1.0), clock=clock,
        )
        task = evaluator.start()
        await asyncio.sleep(0.05)
        assert not task.done()
        await evaluator.stop()

    @pytest.mark.asyncio
    async def test_real_repository_type_accepted(self, threshold_repo, sampler, clock):
        repo = AsyncMock(spec=BreachRepository)
        repo.create_unless_recent.return_value = None
        evaluator = BreachEvaluator(threshold_repo, repo, sampler, clock=clock)
        report = await evaluator.evaluate()
        assert report.suppressed == 1
        since = repo.create_unless_recent.call_args[0][1]
        assert since == T0 - timedelta(minutes=5)
