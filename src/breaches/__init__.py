"""Breach detection: classification, the append-only breach log and the evaluator.

Components:
- Breach: Dataclass mapping to the breaches table
- BreachConfig: Pydantic settings (interval, dedup window, lock)
- BreachRepository: Insert, dedup-guarded insert, listing and acknowledgement
- classify_severity / check_threshold: Stateless classification
- MetricSampler: Source of current metric values
- BreachEvaluator: Periodic, non-overlapping evaluation task
"""

from src.breaches.classify import check_threshold, classify_severity, format_breach_message
from src.breaches.config import BreachConfig
from src.breaches.evaluator import BreachEvaluator, EvaluationReport
from src.breaches.repository import BreachRepository
from src.breaches.sampler import MetricSampler, StaticSampler, TimeseriesSampler
from src.breaches.schemas import VALID_SEVERITIES, Breach, Severity

__all__ = [
    "Breach",
    "BreachConfig",
    "BreachEvaluator",
    "BreachRepository",
    "EvaluationReport",
    "MetricSampler",
    "Severity",
    "StaticSampler",
    "TimeseriesSampler",
    "VALID_SEVERITIES",
    "check_threshold",
    "classify_severity",
    "format_breach_message",
]
