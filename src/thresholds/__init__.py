"""Threshold store: per-metric warn/critical levels read by the breach evaluator.

Components:
- Threshold: Dataclass mapping to the thresholds table
- ThresholdConfig: Pydantic settings for bootstrap defaults
- ThresholdRepository: Read and upsert operations
- VALID_METRICS / validate_threshold: Runtime validation
"""

from src.thresholds.config import ThresholdConfig
from src.thresholds.repository import ThresholdRepository
from src.thresholds.schemas import VALID_METRICS, Metric, Threshold, validate_threshold

__all__ = [
    "Metric",
    "Threshold",
    "ThresholdConfig",
    "ThresholdRepository",
    "VALID_METRICS",
    "validate_threshold",
]
