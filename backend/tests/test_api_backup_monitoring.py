"""Tests for the cron trigger and backup monitoring admin endpoints."""
from datetime import timedelta

import pytest

from fleetstatus.config import settings
from fleetstatus.utils.clock import utcnow

from conftest import MB

CRON_SECRET = "cron-test-secret"


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", CRON_SECRET)
    return CRON_SECRET


@pytest.fixture
def cron_headers(cron_secret):
    return {"Authorization": f"Bearer {cron_secret}"}


class TestCronTrigger:
    async def test_rejects_missing_token(self, client, cron_secret, backup_config, fake_dispatcher):
        response = await client.get("/api/cron/backup-check")
        assert response.status_code == 401

    async def test_rejects_wrong_token(self, client, cron_secret, backup_config, make_server, fake_dispatcher):
        await make_server("S1")
        response = await client.get("/api/cron/backup-check", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert fake_dispatcher.calls == []

    async def test_rejects_everything_without_secret(self, client, monkeypatch, backup_config):
        monkeypatch.setattr(settings, "cron_secret", None)
        response = await client.get("/api/cron/backup-check", headers={"Authorization": "Bearer "})
        assert response.status_code == 401

    async def test_runs_check(self, client, cron_headers, backup_config, make_server, make_backup, fake_dispatcher):
        s1 = await make_server("S1")
        await make_backup(s1, hours_ago=48, now=utcnow())

        response = await client.get("/api/cron/backup-check", headers=cron_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["servers_overdue"] == 1
        assert body["data"]["overdue_servers"][0]["name"] == "S1"
        assert body["data"]["overdue_servers"][0]["hours_since_backup"] == 48
        assert len(fake_dispatcher.calls) == 1

    async def test_disabled_returns_skipped(self, client, cron_headers, backup_config, db_session, fake_dispatcher):
        backup_config.is_enabled = False
        await db_session.commit()

        response = await client.get("/api/cron/backup-check", headers=cron_headers)

        assert response.status_code == 200
        assert response.json()["skipped"] is True

    async def test_missing_config_is_500(self, client, cron_headers, fake_dispatcher):
        response = await client.get("/api/cron/backup-check", headers=cron_headers)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Backup monitoring check failed"
        assert "Configuration not found" in body["details"]

    async def test_event_read_failure_is_500(self, client, cron_headers, viewer_headers, backup_config, make_server, drop_table, fake_dispatcher):
        await make_server("S1")
        await drop_table("server_events")

        response = await client.get("/api/cron/backup-check", headers=cron_headers)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Backup monitoring check failed"
        assert body["details"].startswith("Failed to fetch backup events:")
        assert fake_dispatcher.calls == []

        results = await client.get("/api/admin/backup-monitoring/results", headers=viewer_headers)
        assert results.json()["results"] == []


class TestManualTrigger:
    async def test_requires_admin(self, client, editor_headers, backup_config, fake_dispatcher):
        response = await client.post("/api/admin/backup-monitoring/test", headers=editor_headers)
        assert response.status_code == 403

    async def test_requires_session(self, client, backup_config):
        response = await client.post("/api/admin/backup-monitoring/test")
        assert response.status_code == 401

    async def test_unknown_session_is_rejected(self, client, users, backup_config):
        response = await client.post(
            "/api/admin/backup-monitoring/test", headers={"X-Session-Token": "forged"}
        )
        assert response.status_code == 401

    async def test_admin_can_run_check(self, client, admin_headers, backup_config, db_session, fake_dispatcher):
        backup_config.email_recipients = []
        await db_session.commit()

        response = await client.post("/api/admin/backup-monitoring/test", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["warning"] is True
        assert body["message"] == "No email recipients configured"

    async def test_session_cookie_is_accepted(self, client, users, backup_config, fake_dispatcher):
        client.cookies.set("session_token", "admin-session-token")
        response = await client.post("/api/admin/backup-monitoring/test")
        assert response.status_code == 200


class TestConfigEndpoints:
    async def test_get_config(self, client, admin_headers, backup_config):
        response = await client.get("/api/admin/backup-monitoring", headers=admin_headers)

        assert response.status_code == 200
        config = response.json()["config"]
        assert config["is_enabled"] is True
        assert config["threshold_hours"] == 24
        assert config["email_recipients"] == ["ops@example.com"]

    async def test_get_config_missing_is_500(self, client, admin_headers):
        response = await client.get("/api/admin/backup-monitoring", headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to fetch configuration"

    async def test_get_config_read_failure_is_500(self, client, admin_headers, drop_table):
        await drop_table("backup_monitoring_config")

        response = await client.get("/api/admin/backup-monitoring", headers=admin_headers)

        assert response.status_code == 500
        assert response.json()["details"].startswith("Failed to fetch configuration:")

    async def test_update_config(self, client, admin_headers, backup_config):
        response = await client.put(
            "/api/admin/backup-monitoring",
            headers=admin_headers,
            json={
                "is_enabled": False,
                "threshold_hours": 48,
                "email_recipients": [" a@example.com ", ""],
                "alert_on_never_backed_up": True,
            },
        )

        assert response.status_code == 200
        config = response.json()["config"]
        assert config["is_enabled"] is False
        assert config["threshold_hours"] == 48
        assert config["email_recipients"] == ["a@example.com"]
        assert config["alert_on_never_backed_up"] is True

    @pytest.mark.parametrize("payload", [
        {"is_enabled": True, "threshold_hours": 0},
        {"is_enabled": True, "threshold_hours": 169},
        {"is_enabled": True, "email_recipients": ["not-an-email"]},
        {"threshold_hours": 24},
    ])
    async def test_update_config_validation(self, client, admin_headers, backup_config, payload):
        response = await client.put("/api/admin/backup-monitoring", headers=admin_headers, json=payload)
        assert response.status_code == 422

    async def test_update_requires_admin(self, client, viewer_headers, backup_config):
        response = await client.put(
            "/api/admin/backup-monitoring", headers=viewer_headers, json={"is_enabled": True}
        )
        assert response.status_code == 403

    async def test_update_missing_config_is_404(self, client, admin_headers):
        response = await client.put(
            "/api/admin/backup-monitoring", headers=admin_headers, json={"is_enabled": True}
        )
        assert response.status_code == 404


class TestResultsAndHealth:
    async def test_results_newest_first(self, client, viewer_headers, cron_headers, backup_config, make_server, make_backup, fake_dispatcher):
        s1 = await make_server("S1")
        await make_backup(s1, hours_ago=30, now=utcnow())

        for _ in range(2):
            await client.get("/api/cron/backup-check", headers=cron_headers)

        response = await client.get("/api/admin/backup-monitoring/results", headers=viewer_headers)

        assert response.status_code == 200
        results = response.json()["results"]
        assert len(results) == 2
        assert results[0]["id"] > results[1]["id"]
        assert results[0]["overdue_server_ids"] == [s1.id]
        assert results[0]["notification_recipients"] == ["ops@example.com"]

    async def test_health_reports_missing_settings(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", "x")
        monkeypatch.setattr(settings, "smtp_host", None)
        monkeypatch.setattr(settings, "alert_email_from", "alerts@example.com")

        response = await client.get("/api/admin/backup-monitoring/health", headers=admin_headers)

        body = response.json()
        assert body["healthy"] is False
        assert body["missing_variables"] == ["SMTP_HOST"]
        assert body["check_running"] is False


class TestSuppression:
    async def test_suppress_event(self, client, admin_headers, make_server, make_backup):
        s1 = await make_server("S1")
        event = await make_backup(s1, hours_ago=1, size=100)

        response = await client.post(
            "/api/admin/backup-alerts/suppress",
            headers=admin_headers,
            json={"event_id": event.id, "suppressed": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Alerts suppressed for Sales.fmp12"

        listing = await client.get("/api/admin/backup-alerts/suppress", headers=admin_headers)
        events = listing.json()["events"]
        assert events[0]["backup_file_size_alert_suppressed"] is True
        assert events[0]["server"]["name"] == "S1"

    async def test_suppress_requires_event_id(self, client, admin_headers):
        response = await client.post(
            "/api/admin/backup-alerts/suppress", headers=admin_headers, json={"suppressed": True}
        )
        assert response.status_code == 400

    async def test_suppress_unknown_event(self, client, admin_headers):
        response = await client.post(
            "/api/admin/backup-alerts/suppress",
            headers=admin_headers,
            json={"event_id": 999, "suppressed": True},
        )
        assert response.status_code == 404

    async def test_small_file_listing(self, client, admin_headers, make_server, make_backup):
        s1 = await make_server("S1")
        small = await make_backup(s1, hours_ago=1, size=10)
        await make_backup(s1, hours_ago=2, size=5 * MB)
        await make_backup(s1, hours_ago=3, size=10, database="notes.txt")

        response = await client.get("/api/admin/backup-alerts/suppress", headers=admin_headers)

        body = response.json()
        assert [e["id"] for e in body["events"]] == [small.id]
        assert body["threshold_mb"] == 1.0

    async def test_suppressed_small_file_is_not_alerted(self, client, admin_headers, cron_headers, backup_config, make_server, make_backup, fake_dispatcher):
        s1 = await make_server("S1")
        event = await make_backup(s1, hours_ago=1, size=100, now=utcnow())
        await client.post(
            "/api/admin/backup-alerts/suppress",
            headers=admin_headers,
            json={"event_id": event.id, "suppressed": True},
        )

        response = await client.get("/api/cron/backup-check", headers=cron_headers)

        assert response.json()["data"]["servers_small_file"] == 0
        assert fake_dispatcher.calls == []


async def test_overview(client, viewer_headers, backup_config, make_server):
    await make_server("S1")
    await make_server("S2", excluded=True, reason="retired", review_date=utcnow().date() + timedelta(days=30))

    response = await client.get("/api/status/overview", headers=viewer_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total_servers"] == 2
    assert body["servers_up"] == 2
    assert body["servers_excluded_from_backup_monitoring"] == 1
    assert body["backup_monitoring_enabled"] is True
    assert body["last_check_run"] is None
