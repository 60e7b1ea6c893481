"""Tests for subscriber matching, status page helpers, and IncidentNotifier."""
from datetime import datetime

import pytest
from sqlalchemy import select

from fleetstatus.exceptions import IncidentAlreadyNotified
from fleetstatus.models import Incident, IncidentUpdate, NotificationHistory, Subscriber, SubscriberSubscription
from fleetstatus.services.incident_notifier import (
    IncidentNotifier,
    build_incident_subject,
    build_incident_text,
    eligible_subscribers,
    subscription_matches,
)
from fleetstatus.services.status_page import overall_status, public_updates, uptime_percentage

from conftest import FakeSender


def incident(incident_type="outage", affected_servers=(), affected_hosts=(), **kwargs):
    values = dict(
        id=1,
        title="API outage",
        description="Requests are failing",
        incident_type=incident_type,
        severity="critical",
        status="investigating",
        affected_servers=list(affected_servers),
        affected_hosts=list(affected_hosts),
        started_at=datetime(2026, 3, 10, 8, 0),
    )
    values.update(kwargs)
    return Incident(**values)


def subscription(subscription_type="all_servers", server_id=None, host_id=None, notify_on=("down", "degraded")):
    return SubscriberSubscription(
        subscription_type=subscription_type,
        server_id=server_id,
        host_id=host_id,
        notify_on_status=list(notify_on),
    )


class TestSubscriptionMatching:
    def test_all_servers_matches_any_outage(self):
        assert subscription_matches(subscription(), incident())

    def test_incident_type_must_be_wanted(self):
        assert not subscription_matches(subscription(), incident(incident_type="maintenance"))
        assert subscription_matches(
            subscription(notify_on=["maintenance"]), incident(incident_type="maintenance")
        )

    def test_unknown_incident_type_counts_as_down(self):
        assert subscription_matches(subscription(notify_on=["down"]), incident(incident_type="resolved"))

    def test_server_subscription_needs_affected_server(self):
        sub = subscription("server", server_id=7)
        assert subscription_matches(sub, incident(affected_servers=[3, 7]))
        assert not subscription_matches(sub, incident(affected_servers=[3]))

    def test_host_subscription_needs_affected_host(self):
        sub = subscription("host", host_id=2)
        assert subscription_matches(sub, incident(affected_hosts=[2]))
        assert not subscription_matches(sub, incident(affected_hosts=[]))

    def test_only_active_subscribers_are_eligible(self):
        active = Subscriber(email="a@example.com", is_verified=True, subscriptions=[subscription()])
        unverified = Subscriber(email="b@example.com", is_verified=False, subscriptions=[subscription()])
        gone = Subscriber(
            email="c@example.com",
            is_verified=True,
            unsubscribed_at=datetime(2026, 1, 1),
            subscriptions=[subscription()],
        )
        no_subscriptions = Subscriber(email="d@example.com", is_verified=True, subscriptions=[])

        result = eligible_subscribers([active, unverified, gone, no_subscriptions], incident())

        assert result == [active]


class TestStatusPageHelpers:
    @pytest.mark.parametrize("counts,expected", [
        ({"up": 3}, "operational"),
        ({"up": 3, "down": 1, "degraded": 1}, "outage"),
        ({"up": 3, "degraded": 1}, "degraded"),
        ({"up": 1, "maintenance": 2}, "operational"),
        ({"maintenance": 2}, "maintenance"),
        ({}, "operational"),
    ])
    def test_overall_status(self, counts, expected):
        assert overall_status(counts) == expected

    def test_uptime_without_events_is_full(self):
        assert uptime_percentage([]) == 100.0

    def test_uptime_counts_down_changes(self):
        assert uptime_percentage(["up", "down", "up", "degraded"]) == 75.0

    def test_public_updates_drop_opening_entry(self):
        start = datetime(2026, 3, 10, 8, 0)
        first = IncidentUpdate(id=1, message="opened", update_type="investigating", created_at=start)
        second = IncidentUpdate(id=2, message="found it", update_type="update", created_at=start.replace(minute=5))
        third = IncidentUpdate(id=3, message="fixed", update_type="resolved", created_at=start.replace(minute=9))

        assert public_updates([third, first, second]) == [third, second]
        assert public_updates([first]) == []


def test_incident_email_content():
    item = incident(severity="critical", status="identified")

    assert build_incident_subject(item).endswith("API outage")
    text = build_incident_text(item, "http://status.example.com/unsub")
    assert "Status: Identified" in text
    assert "Severity: CRITICAL" in text
    assert "Unsubscribe: http://status.example.com/unsub" in text


class TestNotify:
    async def test_emails_each_eligible_subscriber(self, db_session, make_incident, make_subscriber, make_server):
        server = await make_server("db-1")
        other = await make_server("db-2")
        await make_subscriber("all@example.com")
        await make_subscriber("db1@example.com", subscription_type="server", server=server)
        await make_subscriber("db2@example.com", subscription_type="server", server=other)
        await make_subscriber("pending@example.com", verified=False)
        item = await make_incident(affected_servers=[server.id])
        sender = FakeSender()

        summary = await IncidentNotifier(sender=sender).notify(db_session, item)

        assert summary.sent == 2
        assert summary.failed == 0
        assert sorted(m["recipients"][0] for m in sender.sent) == ["all@example.com", "db1@example.com"]
        assert "unsub-all@example.com" in next(
            m["text"] for m in sender.sent if m["recipients"] == ["all@example.com"]
        )
        assert item.notified_at is not None

    async def test_logs_failures_in_history(self, db_session, make_incident, make_subscriber):
        await make_subscriber("ok@example.com")
        await make_subscriber("bad@example.com")
        item = await make_incident()
        sender = FakeSender(failing=["bad@example.com"])

        summary = await IncidentNotifier(sender=sender).notify(db_session, item)

        assert summary.sent == 1
        assert summary.failed == 1
        assert summary.errors == ["bad@example.com: Recipients refused"]
        rows = (await db_session.execute(
            select(NotificationHistory).order_by(NotificationHistory.recipient_email)
        )).scalars().all()
        assert [(r.recipient_email, r.status) for r in rows] == [
            ("bad@example.com", "failed"),
            ("ok@example.com", "sent"),
        ]
        assert rows[0].error_message == "Recipients refused"

    async def test_no_eligible_subscribers_still_marks_notified(self, db_session, make_incident):
        item = await make_incident()

        summary = await IncidentNotifier(sender=FakeSender()).notify(db_session, item)

        assert summary.sent == 0
        assert item.notified_at is not None

    async def test_refuses_second_notification(self, db_session, make_incident, make_subscriber):
        await make_subscriber("all@example.com")
        item = await make_incident(notified_at=datetime(2026, 3, 10, 9, 0))
        sender = FakeSender()

        with pytest.raises(IncidentAlreadyNotified):
            await IncidentNotifier(sender=sender).notify(db_session, item)
        assert sender.sent == []
