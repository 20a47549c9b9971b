"""Tests for provider configuration checks and subsystem configs."""

import pytest

from src.breaches.config import BreachConfig
from src.config.settings import Settings
from src.notifications.config import NotificationConfig


class TestProviderConfigured:
    def test_all_configured(self, test_settings):
        assert test_settings.webpush_configured
        assert test_settings.email_configured
        assert test_settings.sms_configured

    def test_none_configured(self, unconfigured_settings):
        assert not unconfigured_settings.webpush_configured
        assert not unconfigured_settings.email_configured
        assert not unconfigured_settings.sms_configured

    def test_webpush_needs_both_keys(self):
        settings = Settings(vapid_public_key="BPub", vapid_private_key=None)
        assert not settings.webpush_configured

    def test_sms_needs_sender(self, test_settings):
        settings = test_settings.model_copy(update={"twilio_from_number": None})
        assert not settings.sms_configured


class TestEnvOverrides:
    def test_breach_config_prefix(self, monkeypatch):
        monkeypatch.setenv("BREACHES_DEDUP_WINDOW_MINUTES", "2")
        assert BreachConfig().dedup_window_minutes == 2

    def test_notification_config_prefix(self, monkeypatch):
        monkeypatch.setenv("NOTIFICATIONS_SEND_TIMEOUT_SECONDS", "2.5")
        assert NotificationConfig().send_timeout_seconds == 2.5

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError):
            Settings(request_timeout_seconds=-1)


class TestThresholdDefaults:
    def test_seed_defaults_cover_every_metric(self):
        from src.thresholds.schemas import VALID_METRICS
        from src.thresholds.config import ThresholdConfig

        defaults = ThresholdConfig().defaults()
        assert set(defaults) == VALID_METRICS
        assert all(warn < critical for warn, critical in defaults.values())

    def test_inverted_default_rejected(self, monkeypatch):
        from src.thresholds.config import ThresholdConfig

        monkeypatch.setenv("THRESHOLDS_POWER_WARN", "99")
        with pytest.raises(ValueError, match="power"):
            ThresholdConfig()
