from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, ForeignKey, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Base & naming ----------
class Base(DeclarativeBase):
    # Keep index/constraint names stable for cleaner migrations
    metadata = sa.MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


# ---------- USERS ----------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)

    is_admin: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    status: Mapped[str] = mapped_column(
        sa.Text,
        nullable=False,
        default="active",
        server_default=sa.text("'active'"),
    )  # 'active' | 'disabled'

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        CheckConstraint("status in ('active','disabled')", name="users_status"),
    )


# ---------- EMAILS ----------
class Email(Base):
    __tablename__ = "emails"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    # stored exactly as given; uniqueness is case-sensitive
    email: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(sa.Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    is_verified: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    is_primary: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        Index("ix_emails_user_id", "user_id"),
        # one primary per user
        Index(
            "uq_emails_one_primary",
            "user_id",
            unique=True,
            postgresql_where=sa.text("is_primary"),
            sqlite_where=sa.text("is_primary = 1"),
        ),
    )


# ---------- SECURE CODES ----------
CODE_VERIFY_EMAIL = "verify_email"
CODE_RESET_PASSWORD = "reset_password"


class SecureCode(Base):
    """One-time code; `code` holds the hash, never the plaintext."""
    __tablename__ = "secure_codes"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(sa.Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # address the code was issued for; NULL for codes not tied to an email (reset_password)
    email_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, ForeignKey("emails.id", ondelete="CASCADE"), nullable=True
    )
    type: Mapped[str] = mapped_column(sa.Text, nullable=False)
    code: Mapped[str] = mapped_column(sa.Text, nullable=False)

    # validity is derived from created_at + configured timeout; no expiry column
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=sa.text("CURRENT_TIMESTAMP")
    )

    __table_args__ = (
        CheckConstraint("type in ('verify_email','reset_password')", name="secure_codes_type"),
        Index("ix_secure_codes_user_type_created", "user_id", "type", "created_at"),
    )
