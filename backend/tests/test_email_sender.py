"""Tests for SMTP delivery in EmailSenderService."""
import smtplib

import pytest

from fleetstatus.services import email_sender
from fleetstatus.services.email_sender import EmailConfig, EmailSenderService


class FakeSMTP:
    """Stands in for smtplib.SMTP and records what was sent."""

    instances = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in = None
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, username, password):
        self.logged_in = (username, password)

    def sendmail(self, from_addr, to_addrs, msg):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with
        self.sent.append((from_addr, to_addrs, msg))


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(email_sender.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def config(**overrides):
    values = dict(
        host="smtp.example.com",
        port=587,
        username="mailer",
        password="secret",
        use_tls=True,
        from_address="alerts@example.com",
        from_name="Server Monitor",
    )
    values.update(overrides)
    return EmailConfig(**values)


async def test_sends_multipart_message():
    result = await EmailSenderService().send_email(
        config(), ["ops@example.com", "dev@example.com"], "Subject", "plain body", "<p>html body</p>"
    )

    assert result.success
    smtp = FakeSMTP.instances[0]
    assert smtp.started_tls
    assert smtp.logged_in == ("mailer", "secret")
    from_addr, to_addrs, msg = smtp.sent[0]
    assert from_addr == "alerts@example.com"
    assert to_addrs == ["ops@example.com", "dev@example.com"]
    assert "multipart/alternative" in msg
    assert "Server Monitor <alerts@example.com>" in msg


async def test_skips_tls_and_login_when_not_configured():
    result = await EmailSenderService().send_email(
        config(use_tls=False, username="", password=""), ["ops@example.com"], "Subject", "body"
    )

    assert result.success
    smtp = FakeSMTP.instances[0]
    assert not smtp.started_tls
    assert smtp.logged_in is None


async def test_missing_host_is_an_error():
    result = await EmailSenderService().send_email(config(host=""), ["ops@example.com"], "S", "b")

    assert not result.success
    assert result.error == "SMTP host is not configured"
    assert FakeSMTP.instances == []


async def test_blank_recipients_are_an_error():
    result = await EmailSenderService().send_email(config(), ["", "  "], "S", "b")

    assert not result.success
    assert result.error == "No email recipients provided"


async def test_smtp_errors_are_returned():
    FakeSMTP.fail_with = smtplib.SMTPRecipientsRefused({"ops@example.com": (550, b"nope")})

    result = await EmailSenderService().send_email(config(), ["ops@example.com"], "S", "b")

    assert not result.success
    assert result.error.startswith("Recipients refused")


async def test_network_errors_are_returned():
    FakeSMTP.fail_with = ConnectionRefusedError("refused")

    result = await EmailSenderService().send_email(config(), ["ops@example.com"], "S", "b")

    assert not result.success
    assert result.error.startswith("Could not reach SMTP server")


async def test_socket_timeout_comes_from_config():
    await EmailSenderService().send_email(config(timeout=4.0), ["ops@example.com"], "S", "b")

    assert FakeSMTP.instances[0].timeout == 4.0
