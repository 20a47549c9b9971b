"""Shared fixtures for API tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.api.app import create_app
from src.api.auth import verify_api_key
from src.api.dependencies import (
    get_breach_repository,
    get_dispatcher,
    get_evaluator,
    get_notification_repository,
    get_operator_directory,
    get_push_channel,
    get_subscription_repository,
    get_threshold_repository,
)
from src.breaches.evaluator import BreachEvaluator
from src.breaches.repository import BreachRepository
from src.breaches.schemas import Breach
from src.notifications.channels import WebPushChannel
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.repository import (
    NotificationRepository,
    OperatorDirectory,
    SubscriptionRepository,
)
from src.thresholds.repository import ThresholdRepository


def _make_breach(
    breach_id: int = 17,
    metric: str = "traffic",
    severity: str = "critical",
    value: float = 95.0,
    **kwargs,
) -> Breach:
    """Helper to create a Breach with sensible defaults."""
    return Breach(
        id=breach_id,
        metric=metric,
        value=value,
        severity=severity,
        message=kwargs.pop(
            "message", f"{metric.upper()} {severity.upper()}: value={value:g}, thresholds warn=70, critical=90"
        ),
        created_at=kwargs.pop(
            "created_at", datetime(2026, 3, 10, 8, 0, 0, tzinfo=timezone.utc)
        ),
        **kwargs,
    )


@pytest.fixture
def mock_threshold_repo():
    repo = AsyncMock(spec=ThresholdRepository)
    repo.get_all.return_value = []
    return repo


@pytest.fixture
def mock_breach_repo():
    repo = AsyncMock(spec=BreachRepository)
    repo.list_recent.return_value = []
    repo.get_by_id.return_value = None
    repo.acknowledge.return_value = None
    return repo


@pytest.fixture
def mock_evaluator():
    return AsyncMock(spec=BreachEvaluator)


@pytest.fixture
def mock_dispatcher():
    return AsyncMock(spec=NotificationDispatcher)


@pytest.fixture
def mock_notification_repo():
    repo = AsyncMock(spec=NotificationRepository)
    repo.list_recent.return_value = []
    repo.get_by_id.return_value = None
    return repo


@pytest.fixture
def mock_subscription_repo():
    repo = AsyncMock(spec=SubscriptionRepository)
    repo.list_all.return_value = []
    return repo


@pytest.fixture
def mock_operator_directory():
    directory = AsyncMock(spec=OperatorDirectory)
    directory.get_contact.return_value = None
    return directory


@pytest.fixture
def push_channel(test_settings):
    return WebPushChannel(test_settings)


@pytest.fixture
def client(
    mock_threshold_repo,
    mock_breach_repo,
    mock_evaluator,
    mock_dispatcher,
    mock_notification_repo,
    mock_subscription_repo,
    mock_operator_directory,
    push_channel,
):
    """FastAPI TestClient with dependency overrides."""
    app = create_app()

    app.dependency_overrides[verify_api_key] = lambda: "test-key"
    app.dependency_overrides[get_threshold_repository] = lambda: mock_threshold_repo
    app.dependency_overrides[get_breach_repository] = lambda: mock_breach_repo
    app.dependency_overrides[get_evaluator] = lambda: mock_evaluator
    app.dependency_overrides[get_dispatcher] = lambda: mock_dispatcher
    app.dependency_overrides[get_notification_repository] = lambda: mock_notification_repo
    app.dependency_overrides[get_subscription_repository] = lambda: mock_subscription_repo
    app.dependency_overrides[get_operator_directory] = lambda: mock_operator_directory
    app.dependency_overrides[get_push_channel] = lambda: push_channel

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
