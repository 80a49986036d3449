import smtplib

import pytest

from app.config import Settings
from app.services import mail as mail_module
from app.services.mail import MailService

pytestmark = pytest.mark.asyncio


def _settings(**overrides) -> Settings:
    base = dict(
        DATABASE_URL="sqlite+aiosqlite://",
        SMTP_HOST="smtp.example.test",
        SMTP_USER="mailer",
        SMTP_PASSWORD="secret",
        SMTP_FROM_EMAIL="no-reply@example.test",
    )
    base.update(overrides)
    return Settings(**base)


class _FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host, port):
        self.host, self.port = host, port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        if _FakeSMTP.fail:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    def sendmail(self, from_addr, to_addrs, msg):
        _FakeSMTP.sent.append((from_addr, to_addrs, msg))


@pytest.fixture(autouse=True)
def _fake_smtp(monkeypatch):
    _FakeSMTP.sent = []
    _FakeSMTP.fail = False
    monkeypatch.setattr(mail_module.smtplib, "SMTP", _FakeSMTP)
    yield


async def test_disabled_without_credentials():
    svc = MailService(_settings(SMTP_HOST=None))
    assert svc.enabled is False
    assert await svc.send(to="a@x.com", subject="s", body="b") is False
    assert _FakeSMTP.sent == []


async def test_send_delivers_plain_text_mail():
    svc = MailService(_settings())
    assert svc.enabled

    ok = await svc.send(to="a@x.com", subject="Hello", body="Body text")

    assert ok is True
    from_addr, to_addrs, raw = _FakeSMTP.sent[0]
    assert from_addr == "no-reply@example.test"
    assert to_addrs == ["a@x.com"]
    assert "Subject: Hello" in raw


async def test_transport_failure_is_reported_not_raised():
    _FakeSMTP.fail = True
    svc = MailService(_settings())

    assert await svc.send(to="a@x.com", subject="s", body="b") is False
