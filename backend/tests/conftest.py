"""Shared fixtures: in-memory database, API client, users, and fake alert dispatcher."""
import asyncio
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fleetstatus.auth import hash_token
from fleetstatus.database import Base, get_db
from fleetstatus.main import app as fastapi_app
from fleetstatus.models import (
    BackupMonitoringConfig,
    Host,
    Incident,
    IncidentUpdate,
    Profile,
    Server,
    ServerEvent,
    Subscriber,
    SubscriberSubscription,
)
from fleetstatus.services.backup_check import backup_check_service
from fleetstatus.services.email_sender import SendResult
from fleetstatus.services.incident_notifier import incident_notifier

# Fixed clock for evaluator tests
NOW = datetime(2026, 3, 10, 12, 0, 0)
MB = 1024 * 1024

ADMIN_TOKEN = "admin-session-token"
EDITOR_TOKEN = "editor-session-token"
VIEWER_TOKEN = "viewer-session-token"


class FakeDispatcher:
    """Records send() calls instead of emailing."""

    def __init__(self, result=None, exc=None, delay=0.0):
        self.result = result or SendResult(True)
        self.exc = exc
        self.delay = delay
        self.calls = []

    async def send(self, recipients, overdue_servers, threshold_hours, servers_due_for_review=None, timeout=None):
        self.calls.append({
            "recipients": list(recipients),
            "overdue_servers": list(overdue_servers),
            "threshold_hours": threshold_hours,
            "servers_due_for_review": list(servers_due_for_review or []),
            "timeout": timeout,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


class FakeSender:
    """Records send_email() calls. Addresses in `failing` get a failed result."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def send_email(self, config, recipients, subject, text_body, html_body=None):
        self.sent.append({
            "recipients": list(recipients),
            "subject": subject,
            "text": text_body,
            "html": html_body,
        })
        if self.failing.intersection(recipients):
            return SendResult(False, "Recipients refused")
        return SendResult(True)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def drop_table(engine):
    """Drop a table so reads against it fail with a real database error."""
    async def _drop(name):
        async with engine.begin() as conn:
            await conn.execute(text(f"DROP TABLE {name}"))
    return _drop


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def backup_config(db_session):
    """Enabled configuration with one recipient and a 24 hour threshold."""
    config = BackupMonitoringConfig(
        is_enabled=True,
        threshold_hours=24,
        email_recipients=["ops@example.com"],
        alert_on_never_backed_up=False,
    )
    db_session.add(config)
    await db_session.commit()
    return config


@pytest.fixture
def make_server(db_session):
    async def _make(name, host=None, excluded=False, reason=None, review_date=None, ip_address=None):
        server = Server(
            name=name,
            host_id=host.id if host else None,
            ip_address=ip_address,
            backup_monitoring_excluded=excluded,
            backup_monitoring_disabled_reason=reason,
            backup_monitoring_review_date=review_date,
        )
        db_session.add(server)
        await db_session.commit()
        return server
    return _make


@pytest.fixture
def make_host(db_session):
    async def _make(name):
        host = Host(name=name)
        db_session.add(host)
        await db_session.commit()
        return host
    return _make


@pytest.fixture
def make_backup(db_session):
    async def _make(
        server,
        hours_ago,
        database="Sales.fmp12",
        size=5 * MB,
        event_type="backup",
        suppressed=False,
        now=NOW,
    ):
        event = ServerEvent(
            server_id=server.id,
            event_type=event_type,
            event_source="backup_system",
            backup_database=database,
            backup_file_size=size,
            backup_file_size_alert_suppressed=suppressed,
            created_at=now - timedelta(hours=hours_ago),
        )
        db_session.add(event)
        await db_session.commit()
        return event
    return _make


@pytest_asyncio.fixture
async def users(db_session):
    for email, role, token in (
        ("admin@example.com", "admin", ADMIN_TOKEN),
        ("editor@example.com", "editor", EDITOR_TOKEN),
        ("viewer@example.com", "viewer", VIEWER_TOKEN),
    ):
        db_session.add(Profile(email=email, role=role, session_token_hash=hash_token(token)))
    await db_session.commit()


@pytest.fixture
def admin_headers(users):
    return {"X-Session-Token": ADMIN_TOKEN}


@pytest.fixture
def editor_headers(users):
    return {"X-Session-Token": EDITOR_TOKEN}


@pytest.fixture
def viewer_headers(users):
    return {"X-Session-Token": VIEWER_TOKEN}


@pytest.fixture
def fake_dispatcher(monkeypatch):
    """Swap the global check service's dispatcher for a recorder."""
    dispatcher = FakeDispatcher()
    monkeypatch.setattr(backup_check_service, "dispatcher", dispatcher)
    return dispatcher


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def fake_sender(monkeypatch):
    """Swap the incident notifier's email sender for a recorder."""
    sender = FakeSender()
    monkeypatch.setattr(incident_notifier, "sender", sender)
    return sender


@pytest.fixture
def make_subscriber(db_session):
    async def _make(
        email,
        verified=True,
        unsubscribed=False,
        subscription_type="all_servers",
        server=None,
        host=None,
        notify_on=("down", "degraded"),
    ):
        subscriber = Subscriber(
            name=email.split("@")[0],
            email=email,
            is_verified=verified,
            verification_token=f"verify-{email}",
            unsubscribe_token=f"unsub-{email}",
            unsubscribed_at=datetime(2026, 1, 1) if unsubscribed else None,
        )
        subscriber.subscriptions.append(SubscriberSubscription(
            subscription_type=subscription_type,
            server_id=server.id if server else None,
            host_id=host.id if host else None,
            notify_on_status=list(notify_on),
        ))
        db_session.add(subscriber)
        await db_session.commit()
        return subscriber
    return _make


@pytest.fixture
def make_incident(db_session):
    async def _make(
        title="Database outage",
        incident_type="outage",
        severity="major",
        status="investigating",
        affected_servers=(),
        affected_hosts=(),
        started_at=None,
        resolved_at=None,
        notified_at=None,
        updates=(),
    ):
        started_at = started_at or datetime(2026, 3, 10, 8, 0, 0)
        incident = Incident(
            title=title,
            description=f"{title} description",
            incident_type=incident_type,
            severity=severity,
            status=status,
            affected_servers=list(affected_servers),
            affected_hosts=list(affected_hosts),
            started_at=started_at,
            resolved_at=resolved_at,
            notified_at=notified_at,
        )
        for minutes, message in enumerate(updates):
            incident.updates.append(IncidentUpdate(
                message=message,
                update_type="update",
                created_at=started_at + timedelta(minutes=minutes),
            ))
        db_session.add(incident)
        await db_session.commit()
        return incident
    return _make
