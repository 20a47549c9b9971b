"""
FastAPI service for thresholds, breaches and notifications.

Provides:
- /thresholds - Per-metric warn/critical levels
- /breaches - Breach log, acknowledgement and on-demand evaluation
- /notifications - Web push, email and SMS delivery, push subscriptions
- /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
