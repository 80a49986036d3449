from __future__ import annotations

import asyncio
import logging
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class MailService:
    """Thin SMTP sender with an async-friendly send.

    Delivery is best effort: `send` reports failure through its return value
    and never raises for transport problems.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        self._host = settings.SMTP_HOST
        self._port = settings.SMTP_PORT
        self._user = settings.SMTP_USER
        self._password = settings.SMTP_PASSWORD
        self._from_name = settings.SMTP_FROM_NAME
        self._from_email = settings.SMTP_FROM_EMAIL

        missing = [
            key
            for key, value in [
                ("SMTP_HOST", self._host),
                ("SMTP_USER", self._user),
                ("SMTP_PASSWORD", self._password),
            ]
            if not value
        ]
        if missing:
            logger.info("SMTP mail disabled; missing settings: %s", ", ".join(missing))

    @property
    def enabled(self) -> bool:
        return bool(self._host and self._user and self._password)

    def _build(self, to: str, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = formataddr((self._from_name, self._from_email))
        msg["To"] = to
        return msg

    def _deliver(self, to: str, msg: MIMEText) -> None:
        with smtplib.SMTP(self._host, int(self._port)) as s:
            s.starttls()
            s.login(self._user, self._password)
            s.sendmail(self._from_email, [to], msg.as_string())

    async def send(self, *, to: str, subject: str, body: str) -> bool:
        if not self.enabled:
            logger.debug("Mail to %s skipped because SMTP is not configured.", to)
            return False

        msg = self._build(to, subject, body)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, to, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP send to %s failed: %s", to, exc)
            return False
        logger.info("Mail sent to %s: %s", to, subject)
        return True


mail_service = MailService()
