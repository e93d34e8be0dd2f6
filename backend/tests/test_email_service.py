"""Outbound email: console backend, SMTP delivery and failure reporting."""

import smtplib

import pytest

from youfin.services import email_service


class FakeSMTP:
    sent = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.logged_in = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.logged_in = user

    def send_message(self, msg):
        if FakeSMTP.fail_with:
            raise FakeSMTP.fail_with
        FakeSMTP.sent.append(msg)


@pytest.fixture
def smtp(app, monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setitem(app.config, "MAIL_BACKEND", "smtp")
    monkeypatch.setitem(app.config, "SMTP_HOST", "smtp.youfin.test")
    return FakeSMTP


def test_console_backend_logs_only(app):
    result = email_service.send_verification_email("ana@youfin.test", "abc")
    assert result["success"] is True
    assert result["accepted"] == ["ana@youfin.test"]


def test_smtp_delivery(smtp):
    result = email_service.send_reset_password_email("ana@youfin.test", "tok123")
    assert result == {"success": True, "accepted": ["ana@youfin.test"]}

    [msg] = smtp.sent
    assert msg["To"] == "ana@youfin.test"
    assert msg["Subject"] == "YouFin - Reset Your Password"
    assert "/reset-password/tok123" in msg.get_body(("plain",)).get_content()


def test_smtp_failure_is_reported(smtp):
    smtp.fail_with = smtplib.SMTPRecipientsRefused({"ana@youfin.test": (550, b"no such user")})
    result = email_service.send_notification_email("ana@youfin.test", "Hi", "Hello there")
    assert result["success"] is False
    assert result["error"] is True


def test_missing_smtp_host(app, monkeypatch):
    monkeypatch.setitem(app.config, "MAIL_BACKEND", "smtp")
    monkeypatch.setitem(app.config, "SMTP_HOST", None)
    result = email_service.send_email("ana@youfin.test", "Hi", "Hello")
    assert result == {"success": False, "error": True, "message": "Email is not configured"}
