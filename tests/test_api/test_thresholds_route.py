"""Tests for threshold REST endpoints."""

from datetime import datetime, timezone

from src.thresholds.schemas import Threshold

UPDATED = datetime(2026, 3, 1, tzinfo=timezone.utc)


class TestListThresholds:
    def test_returns_thresholds(self, client, mock_threshold_repo):
        mock_threshold_repo.get_all.return_value = [
            Threshold(metric="air_quality", warn=100.0, critical=200.0, updated_at=UPDATED),
            Threshold(metric="traffic", warn=70.0, critical=90.0, updated_at=UPDATED),
        ]
        resp = client.get("/thresholds")
        assert resp.status_code == 200
        data = resp.json()["thresholds"]
        assert [t["metric"] for t in data] == ["air_quality", "traffic"]
        assert data[1]["warn"] == 70.0
        assert data[1]["critical"] == 90.0

    def test_repo_error_returns_500(self, client, mock_threshold_repo):
        mock_threshold_repo.get_all.side_effect = RuntimeError("db down")
        resp = client.get("/thresholds")
        assert resp.status_code == 500


class TestUpdateThreshold:
    def test_update_success(self, client, mock_threshold_repo):
        mock_threshold_repo.upsert.return_value = Threshold(
            metric="traffic", warn=60.0, critical=85.0, updated_at=UPDATED,
        )
        resp = client.put("/thresholds/traffic", json={"warn": 60, "critical": 85})
        assert resp.status_code == 200
        assert resp.json()["threshold"]["warn"] == 60.0
        mock_threshold_repo.upsert.assert_awaited_once_with("traffic", 60.0, 85.0)

    def test_metric_name_is_case_insensitive(self, client, mock_threshold_repo):
        mock_threshold_repo.upsert.return_value = Threshold(
            metric="traffic", warn=60.0, critical=85.0, updated_at=UPDATED,
        )
        resp = client.put("/thresholds/TRAFFIC", json={"warn": 60, "critical": 85})
        assert resp.status_code == 200
        assert resp.json()["threshold"]["metric"] == "traffic"
        mock_threshold_repo.upsert.assert_awaited_once_with("traffic", 60.0, 85.0)

    def test_inverted_levels_return_422(self, client, mock_threshold_repo):
        mock_threshold_repo.upsert.side_effect = ValueError(
            "warn must be < critical (got warn=90, critical=90)"
        )
        resp = client.put("/thresholds/traffic", json={"warn": 90, "critical": 90})
        assert resp.status_code == 422
        assert "warn must be < critical" in resp.json()["detail"]

    def test_unknown_metric_returns_422(self, client, mock_threshold_repo):
        mock_threshold_repo.upsert.side_effect = ValueError("Unknown metric 'noise'")
        resp = client.put("/thresholds/noise", json={"warn": 1, "critical": 2})
        assert resp.status_code == 422

    def test_missing_field_returns_422(self, client, mock_threshold_repo):
        resp = client.put("/thresholds/traffic", json={"warn": 60})
        assert resp.status_code == 422
        mock_threshold_repo.upsert.assert_not_called()
