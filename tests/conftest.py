import os

# IMPORTANT: settings are read at import time by app modules
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PUBLIC_API_URL", "https://api.example.test")

from datetime import timedelta
from typing import List, Tuple
from urllib.parse import parse_qs, urlsplit

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models import Base
from app.repos import users as users_repo
from app.services.email_lifecycle import EmailConfig, EmailService


CODE_TIMEOUT = timedelta(minutes=30)


class RecordingMailer:
    """Mail double: remembers every message, optionally reports failure."""

    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: List[Tuple[str, str, str]] = []

    async def send(self, *, to: str, subject: str, body: str) -> bool:
        self.sent.append((to, subject, body))
        return self.succeed


# One in-memory database per test; StaticPool keeps every session on the
# same connection so the schema is visible to all of them.
@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def email_config() -> EmailConfig:
    return EmailConfig(public_api_url="https://api.example.test", code_timeout=CODE_TIMEOUT, code_length=12)


@pytest.fixture
def svc(db, mailer, email_config) -> EmailService:
    return EmailService(db, mailer=mailer, config=email_config)


# ---------- helpers ----------
async def mk_user(db, email: str, name: str = "User") -> int:
    u = await users_repo.create_with_primary_email(db, name=name, email=email)
    await db.commit()
    return u.id


def code_from_mail(body: str) -> str:
    link = next(line for line in body.splitlines() if "/user/email/activate?" in line)
    return parse_qs(urlsplit(link).query)["code"][0]
