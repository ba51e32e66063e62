from __future__ import annotations

import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

from shared.errors import NotificationError
from shared.logging import get_logger
from shared.settings import Settings

log = get_logger(__name__)


class Notifier(ABC):
    """
    Sends an alert email to the configured recipient.

    ``send`` never raises: a missing recipient or a failing transport is
    logged and the caller carries on. It returns True only when a message
    was actually handed to a mail server.
    """

    def __init__(self, recipient: Optional[str]):
        self.recipient = recipient

    def send(self, subject: str, body: str) -> bool:
        if not self.recipient:
            log.warning("alert_email_to_not_set", extra={"subject": subject, "body": body})
            return False
        return self._dispatch(subject, body)

    @abstractmethod
    def _dispatch(self, subject: str, body: str) -> bool:
        """Deliver one message; must not raise."""


class LogNotifier(Notifier):
    """Used when no SMTP host is configured: alerts only reach the log."""

    def _dispatch(self, subject: str, body: str) -> bool:
        log.info("email_alert_simulated", extra={"subject": subject, "body": body, "to": self.recipient})
        return False


class EmailNotifier(Notifier):
    def __init__(
        self,
        recipient: Optional[str],
        *,
        host: str,
        port: int = 587,
        secure: bool = False,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: float = 10.0,
    ):
        super().__init__(recipient)
        self.host = host
        self.port = port
        self.secure = secure
        self.user = user
        self.password = password
        self.sender = sender or user or f"maintenance-monitor@{host}"
        self.timeout = timeout

    def _build_message(self, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = self.recipient
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        smtp_cls = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        try:
            with smtp_cls(self.host, self.port, timeout=self.timeout) as server:
                if not self.secure:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls()
                        server.ehlo()
                if self.user:
                    server.login(self.user, self.password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(str(e)) from e

    def _dispatch(self, subject: str, body: str) -> bool:
        try:
            self._deliver(self._build_message(subject, body))
        except NotificationError as e:
            log.error("alert_email_failed", extra={"subject": subject, "error": e.message})
            return False
        log.info("alert_email_sent", extra={"subject": subject, "to": self.recipient})
        return True


def build_notifier(settings: Settings) -> Notifier:
    if not settings.SMTP_HOST:
        log.warning("smtp_not_configured_alerts_logged_only")
        return LogNotifier(settings.ALERT_EMAIL_TO)
    return EmailNotifier(
        settings.ALERT_EMAIL_TO,
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        secure=settings.SMTP_SECURE,
        user=settings.SMTP_USER,
        password=settings.SMTP_PASS,
        sender=settings.ALERT_EMAIL_FROM,
        timeout=settings.SMTP_TIMEOUT_SECONDS,
    )
