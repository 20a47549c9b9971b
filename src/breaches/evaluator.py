"""Periodic breach evaluator.

Samples every metric, classifies each sample against the current
thresholds and records new breaches, suppressing repeats of the same
(metric, severity) inside the dedup window. Newly recorded breaches can
be announced through the notification dispatcher; delivery problems never
affect persistence.

Ticks never overlap: a tick that starts while another is running in this
process is skipped. With Redis available, a ``SET NX EX`` lock extends
this across API worker processes.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from src.breaches.classify import check_threshold
from src.breaches.config import BreachConfig
from src.breaches.repository import BreachRepository
from src.breaches.sampler import MetricSampler
from src.breaches.schemas import Breach
from src.notifications.schemas import (
    BREACH_NOTIFICATION_SEVERITY,
    NotificationRequest,
)
from src.observability.metrics import get_metrics
from src.thresholds.repository import ThresholdRepository
from src.thresholds.schemas import VALID_METRICS

logger = logging.getLogger(__name__)

# Deletes the lock only if this process still holds it
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EvaluationReport:
    """Result of one evaluator tick."""

    evaluated_at: datetime | None = None
    created: list[Breach] = field(default_factory=list)
    suppressed: int = 0
    skipped: bool = False
    failed_metrics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluated_at": self.evaluated_at.isoformat() if self.evaluated_at else None,
            "created": [b.to_dict() for b in self.created],
            "suppressed": self.suppressed,
            "skipped": self.skipped,
            "failed_metrics": self.failed_metrics,
        }


class BreachEvaluator:
    """Evaluates all metrics against their thresholds, once per tick.

    Usage:
        evaluator = BreachEvaluator(threshold_repo, breach_repo, sampler)
        report = await evaluator.evaluate()

        evaluator.start()     # periodic background task
        await evaluator.stop()
    """

    def __init__(
        self,
        threshold_repo: ThresholdRepository,
        breach_repo: BreachRepository,
        sampler: MetricSampler,
        config: BreachConfig | None = None,
        dispatcher: Any | None = None,
        redis_client: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._thresholds = threshold_repo
        self._breaches = breach_repo
        self._sampler = sampler
        self._config = config or BreachConfig()
        self._dispatcher = dispatcher
        self._redis = redis_client
        self._clock = clock or _utcnow

        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None
        self._running = False
        self._last_tick_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        """True while the periodic loop is active."""
        return self._running

    @property
    def last_tick_at(self) -> datetime | None:
        return self._last_tick_at

    async def evaluate(self) -> EvaluationReport:
        """Run one evaluation pass.

        Returns:
            EvaluationReport; ``skipped`` is set when another pass held the lock.
        """
        if self._lock.locked():
            logger.info("Evaluation already in progress, skipping tick")
            get_metrics().record_tick("skipped")
            return EvaluationReport(skipped=True)

        async with self._lock:
            token = await self._acquire_distributed_lock()
            if token is False:
                logger.info("Evaluation held by another worker, skipping tick")
                get_metrics().record_tick("skipped")
                return EvaluationReport(skipped=True)
            try:
                return await self._evaluate_once()
            finally:
                await self._release_distributed_lock(token)

    async def _evaluate_once(self) -> EvaluationReport:
        metrics = get_metrics()
        start = time.perf_counter()
        now = self._clock()
        report = EvaluationReport(evaluated_at=now)
        since = now - timedelta(minutes=self._config.dedup_window_minutes)

        try:
            thresholds = {t.metric: t for t in await self._thresholds.get_all()}
        except Exception as e:
            logger.error("Failed to load thresholds, aborting tick: %s", e)
            metrics.record_tick("failed", time.perf_counter() - start)
            return report

        for metric in sorted(VALID_METRICS):
            try:
                breach = await self._evaluate_metric(metric, thresholds, now, since, report)
            except Exception as e:
                logger.error("Evaluation of %s failed: %s", metric, e)
                metrics.record_metric_error(metric)
                report.failed_metrics.append(metric)
                continue
            if breach is not None:
                report.created.append(breach)

        for breach in report.created:
            await self._notify(breach)

        self._last_tick_at = now
        metrics.record_tick("completed", time.perf_counter() - start)
        if report.created:
            logger.info(
                "Evaluation recorded %d breach(es), suppressed %d",
                len(report.created), report.suppressed,
            )
        return report

    async def _evaluate_metric(
        self,
        metric: str,
        thresholds: dict[str, Any],
        now: datetime,
        since: datetime,
        report: EvaluationReport,
    ) -> Breach | None:
        threshold = thresholds.get(metric)
        if threshold is None:
            logger.debug("No threshold for %s, skipping", metric)
            return None

        value = await self._sampler.sample(metric)
        if value is None:
            logger.debug("No sample for %s, skipping", metric)
            return None

        candidate = check_threshold(metric, value, threshold, now)
        if candidate is None:
            return None

        stored = await self._breaches.create_unless_recent(candidate, since)
        get_metrics().record_breach(metric, candidate.severity, created=stored is not None)
        if stored is None:
            report.suppressed += 1
            logger.debug(
                "Suppressed %s %s breach inside dedup window",
                metric, candidate.severity,
            )
            return None

        logger.warning("Breach recorded: %s", stored.message)
        return stored

    async def _notify(self, breach: Breach) -> None:
        """Announce a new breach via push. Failures are logged only."""
        if self._dispatcher is None or not self._config.notify_on_breach:
            return

        request = NotificationRequest(
            title=f"{breach.metric.replace('_', ' ').title()} {breach.severity}",
            body=breach.message,
            channel="webpush",
            severity=BREACH_NOTIFICATION_SEVERITY[breach.severity],
            source="breach",
            related_entity_id=breach.id,
            tag=f"breach-{breach.metric}-{breach.severity}",
        )
        try:
            await self._dispatcher.dispatch(request)
        except Exception as e:
            logger.warning("Notification for breach %s failed: %s", breach.id, e)

    async def _acquire_distributed_lock(self) -> str | bool | None:
        """Take the cross-process lock.

        Returns:
            The lock token, False if another worker holds it, or None when
            Redis is absent or unreachable (in-process locking only).
        """
        if self._redis is None:
            return None

        token = uuid.uuid4().hex
        try:
            acquired = await self._redis.set(
                self._config.lock_key, token,
                nx=True, ex=self._config.lock_ttl_seconds,
            )
        except Exception as e:
            logger.warning("Redis lock unavailable, using in-process lock only: %s", e)
            return None
        return token if acquired else False

    async def _release_distributed_lock(self, token: str | bool | None) -> None:
        if self._redis is None or not isinstance(token, str):
            return
        try:
            await self._redis.eval(_RELEASE_LOCK_SCRIPT, 1, self._config.lock_key, token)
        except Exception as e:
            logger.warning("Failed to release evaluator lock: %s", e)

    def start(self) -> asyncio.Task:
        """Launch the periodic loop as a background task."""
        if self._task is not None and not self._task.done():
            return self._task
        self._running = True
        get_metrics().set_evaluator_running(True)
        self._task = asyncio.create_task(self.run_forever(), name="breach-evaluator")
        logger.info(
            "Breach evaluator started (interval %.0fs)",
            self._config.eval_interval_seconds,
        )
        return self._task

    async def stop(self) -> None:
        """Stop the periodic loop and wait for the current tick to end."""
        self._running = False
        get_metrics().set_evaluator_running(False)
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Breach evaluator stopped")

    async def run_forever(self) -> None:
        """Evaluate every ``eval_interval_seconds`` until stopped."""
        self._running = True
        interval = self._config.eval_interval_seconds
        while self._running:
            started = time.monotonic()
            try:
                await self.evaluate()
            except Exception as e:
                logger.error("Evaluator tick failed: %s", e)
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, interval - elapsed))
