"""Create every table the service owns, in dependency order.

All statements are idempotent (``CREATE ... IF NOT EXISTS``, seed rows
``ON CONFLICT DO NOTHING``), so bootstrap can run on every start.
"""

import logging

from src.breaches.repository import BreachRepository
from src.breaches.sampler import TimeseriesSampler
from src.notifications.repository import (
    NotificationRepository,
    OperatorDirectory,
    SubscriptionRepository,
)
from src.storage.database import Database
from src.thresholds.config import ThresholdConfig
from src.thresholds.repository import ThresholdRepository

logger = logging.getLogger(__name__)


async def create_all_tables(
    database: Database,
    seed: bool = True,
    threshold_config: ThresholdConfig | None = None,
) -> None:
    """Create tables and, optionally, seed default thresholds.

    Args:
        database: Connected database.
        seed: Insert default thresholds for metrics without a row.
        threshold_config: Source of the default levels.
    """
    await OperatorDirectory(database).create_table()

    thresholds = ThresholdRepository(database)
    await thresholds.create_table()
    if seed:
        config = threshold_config or ThresholdConfig()
        await thresholds.seed_defaults(config.defaults())

    await BreachRepository(database).create_table()
    await TimeseriesSampler(database).create_table()
    await NotificationRepository(database).create_table()
    await SubscriptionRepository(database).create_table()

    logger.info("Database schema ready")
