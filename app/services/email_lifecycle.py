# app/services/email_lifecycle.py
from __future__ import annotations
import enum
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Protocol, Tuple
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..models import CODE_VERIFY_EMAIL, Email, SecureCode
from ..observability.metrics import (
    CODE_VERIFY, CODES_SENT, EMAILS_ADDED, EMAILS_DELETED, EMAILS_PROMOTED, MAIL_FAILED,
)
from ..repos import emails as emails_repo
from ..repos import secure_codes as codes_repo
from .codes import get_random_code, verify_code

logger = logging.getLogger(__name__)


class EmailError(Exception):
    """User-facing failure; `message` is safe to show to the caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmailExists(EmailError): ...
class NotFound(EmailError): ...
class Forbidden(EmailError): ...
class InvalidState(EmailError): ...


class VerifyResult(str, enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"

    @property
    def ok(self) -> bool:
        return self is VerifyResult.OK


class Mailer(Protocol):
    async def send(self, *, to: str, subject: str, body: str) -> bool: ...


@dataclass(frozen=True)
class EmailConfig:
    public_api_url: str
    code_timeout: timedelta
    code_length: int = 32

    @classmethod
    def from_settings(cls, s: Settings) -> "EmailConfig":
        return cls(
            public_api_url=s.PUBLIC_API_URL,
            code_timeout=timedelta(minutes=s.EMAIL_CODE_TIMEOUT_MINUTES),
            code_length=s.EMAIL_CODE_LENGTH,
        )

    def activation_link(self, code: str, address: str) -> str:
        query = urlencode({"code": code, "email": address})
        return f"{self.public_api_url.rstrip('/')}/user/email/activate?{query}"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    # some drivers (sqlite) hand back naive timestamps
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class EmailService:
    """Lifecycle of a user's email addresses: add, activate, promote, delete.

    Every mutation commits before its notification goes out, so a mail
    failure can never undo or fail the operation itself.
    """

    def __init__(self, db: AsyncSession, *, mailer: Mailer, config: EmailConfig) -> None:
        self.db = db
        self.mailer = mailer
        self.config = config

    @asynccontextmanager
    async def _store(self, op: str):
        try:
            yield
        except SQLAlchemyError:
            logger.exception("email service, %s, store error", op)
            await self.db.rollback()
            raise

    async def _notify(self, event: str, *, to: str, subject: str, body: str) -> bool:
        # best effort: the change is already committed
        try:
            sent = await self.mailer.send(to=to, subject=subject, body=body)
        except Exception:
            logger.exception("email service, %s, mailer raised sending to %s", event, to)
            sent = False
        if not sent:
            MAIL_FAILED.labels(event=event).inc()
            logger.warning("email service, %s, notification to %s was not sent", event, to)
        return sent

    # ---------- verified flag ----------
    async def set_verified(self, address: str) -> None:
        async with self._store("set verified"):
            email = await emails_repo.get_by_address(self.db, address)
            if email is None:
                raise NotFound("Email address not found.")
            email.is_verified = True
            await emails_repo.update_email(self.db, email)
            await self.db.commit()

    async def get_verified(self, address: str) -> bool:
        try:
            email = await emails_repo.get_by_address(self.db, address)
        except SQLAlchemyError as exc:
            logger.error("email service, get verified, error getting email by address: %s", exc)
            await self.db.rollback()
            return False
        return bool(email and email.is_verified)

    # ---------- add ----------
    async def add_email(self, *, address: str, user_id: int) -> Email:
        async with self._store("add email"):
            if await emails_repo.get_by_address(self.db, address) is not None:
                raise EmailExists("Email already exists.")

            try:
                email = await emails_repo.add(
                    self.db, Email(email=address, user_id=user_id, is_verified=False, is_primary=False)
                )
                await self.db.commit()
            except IntegrityError:
                # lost a race with a concurrent insert of the same address
                await self.db.rollback()
                if await emails_repo.get_by_address(self.db, address) is not None:
                    raise EmailExists("Email already exists.")
                raise

            primary = await emails_repo.get_primary_by_user_id(self.db, user_id)

        EMAILS_ADDED.inc()
        if primary is not None:
            await self._notify(
                "email_added",
                to=primary.email,
                subject="New Email Added To Your Account",
                body=(
                    f"A new alternative email address, {address}, was added to your account.\n\n"
                    "If you believe this to be a mistake please contact support."
                ),
            )
        return email

    # ---------- activation codes ----------
    async def send_activation_code(self, address: str) -> None:
        async with self._store("send activation code"):
            email = await emails_repo.get_by_address(self.db, address)
            if email is None:
                raise NotFound("Email address not found.")
            if email.is_verified:
                raise InvalidState("Email already activated.")

            code, hashed = get_random_code(self.config.code_length)
            await codes_repo.add(
                self.db, user_id=email.user_id, email_id=email.id, type=CODE_VERIFY_EMAIL, hashed_code=hashed
            )
            await self.db.commit()

        CODES_SENT.inc()
        expires_at = _now_utc() + self.config.code_timeout
        await self._notify(
            "activation_code",
            to=address,
            subject="Email Verification Required",
            body=(
                "Click on the link below to activate your email:\n"
                f"{self.config.activation_link(code, address)}\n\n"
                f"The link will expire at: {expires_at.isoformat()}."
            ),
        )

    async def _check_code(
        self, user_id: int, code: str, *, email_id: Optional[int] = None
    ) -> Tuple[VerifyResult, Optional[SecureCode]]:
        # reads only; the caller owns the transaction
        secure_code = await codes_repo.get_latest_for_user_by_type(self.db, user_id, CODE_VERIFY_EMAIL)
        if secure_code is None:
            return VerifyResult.NOT_FOUND, None
        if email_id is not None and secure_code.email_id != email_id:
            return VerifyResult.MISMATCH, secure_code
        if not verify_code(secure_code.code, code):
            return VerifyResult.MISMATCH, secure_code
        if _now_utc() - _as_utc(secure_code.created_at) > self.config.code_timeout:
            return VerifyResult.EXPIRED, secure_code
        return VerifyResult.OK, secure_code

    def _record_verify(self, result: VerifyResult, user_id: int) -> None:
        CODE_VERIFY.labels(result=result.value).inc()
        if not result.ok:
            logger.info("email service, verify activation code, user %s: %s", user_id, result.value)

    async def verify_activation_code(self, user_id: int, code: str) -> VerifyResult:
        """Check `code` against the user's latest email code and consume it on success.

        Does not mark any address verified; see `activate_email`.
        """
        async with self._store("verify activation code"):
            result, secure_code = await self._check_code(user_id, code)
            if result.ok:
                await codes_repo.delete(self.db, secure_code.id)
                await self.db.commit()

        self._record_verify(result, user_id)
        return result

    async def activate_email(self, *, address: str, code: str) -> VerifyResult:
        """Verify `code` for `address` and mark the address verified on success.

        The code must have been issued for this address. Consuming the code and
        setting the flag share one commit, so a failed write leaves the code usable.
        """
        async with self._store("activate email"):
            email = await emails_repo.get_by_address(self.db, address)
            if email is None:
                return VerifyResult.NOT_FOUND
            if email.is_verified:
                raise InvalidState("Email already activated.")

            result, secure_code = await self._check_code(email.user_id, code, email_id=email.id)
            if result.ok:
                await codes_repo.delete(self.db, secure_code.id)
                email.is_verified = True
                await emails_repo.update_email(self.db, email)
                await self.db.commit()

        self._record_verify(result, email.user_id)
        return result

    # ---------- promote / delete ----------
    async def promote_email(self, *, address: str, user_id: int) -> None:
        async with self._store("promote email"):
            target = await emails_repo.get_by_address(self.db, address)
            if target is None:
                raise NotFound("Email address not found.")
            if target.user_id != user_id:
                raise Forbidden("You can only promote email address owned by you.")
            if not target.is_verified:
                raise InvalidState("You can only promote an email address after it has been validated.")
            if target.is_primary:
                raise InvalidState("Email address is already the primary email.")

            # read the old primary first; it receives the notification
            old_primary = await emails_repo.get_primary_by_user_id(self.db, user_id)
            old_address: Optional[str] = old_primary.email if old_primary is not None else None

            await emails_repo.promote(self.db, target.id, target.user_id)
            await self.db.commit()

        EMAILS_PROMOTED.inc()
        if old_address is None:
            logger.warning("email service, promote email, user %s had no primary email", user_id)
            return
        await self._notify(
            "email_promoted",
            to=old_address,
            subject="A New Primary Email Has Been Set",
            body=(
                f"A new primary email address, {address}, has been set on your account.\n\n"
                "If you believe this to be a mistake please contact support."
            ),
        )

    async def delete_email(self, *, address: str, user_id: int) -> None:
        async with self._store("delete email"):
            target = await emails_repo.get_by_address(self.db, address)
            if target is None:
                raise NotFound("Email address not found.")
            if target.user_id != user_id:
                raise Forbidden("You can only delete email address owned by you.")
            if target.is_primary:
                raise InvalidState("You can't delete the primary email address from an account.")

            await emails_repo.delete(self.db, target.id)
            await self.db.commit()

            primary = await emails_repo.get_primary_by_user_id(self.db, user_id)

        EMAILS_DELETED.inc()
        if primary is None:
            logger.warning("email service, delete email, user %s has no primary email to notify", user_id)
            return
        await self._notify(
            "email_deleted",
            to=primary.email,
            subject="Alternative Email Delete From Account",
            body=(
                f"An alternative email, {address}, has been deleted from your account.\n\n"
                "If you believe this to be a mistake please contact support."
            ),
        )

    # ---------- queries ----------
    async def get_emails_by_user_id(self, user_id: int) -> List[Email]:
        async with self._store("get emails by user id"):
            return await emails_repo.get_by_user_id(self.db, user_id)
