from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

log = logging.getLogger(__name__)


class AlertDeliveryError(RuntimeError):
    """An alert could not be handed to the mail transport."""


@dataclass(frozen=True, slots=True)
class Alert:
    """One outgoing email: an operator notification, or a queued member email when `html`."""
    to: str
    subject: str
    body: str
    html: bool = False      # body is an HTML document (queued member emails)


class AlertGateway(Protocol):
    """Anything that can deliver an `Alert`. `send` may raise; callers decide what that means."""
    def send(self, alert: Alert) -> None: ...


class SmtpAlertGateway:
    """
    Alerts over SMTP (plain text, or HTML when `alert.html`).

    Every transport failure (connection, auth, refused recipient) is re-raised as
    `AlertDeliveryError` so callers only need to handle one error kind.
    """

    def __init__(self, host: str, port: int, sender: str, *, timeout: float = 30.0) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.timeout = timeout

    def _build(self, alert: Alert) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = alert.to
        msg["Subject"] = alert.subject
        if alert.html:
            msg.set_content(alert.body, subtype="html")
        else:
            msg.set_content(alert.body)
        return msg

    def send(self, alert: Alert) -> None:
        msg = self._build(alert)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise AlertDeliveryError(f"could not send alert {alert.subject!r} to {alert.to}: {e}") from e
        log.info("alert sent to %s: %s", alert.to, alert.subject)


class LogAlertGateway:
    """Writes alerts to the log instead of sending them (dry runs, local development)."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or log
        self.sent: list[Alert] = []

    def send(self, alert: Alert) -> None:
        self.sent.append(alert)
        self.logger.warning("ALERT to=%s subject=%s\n%s", alert.to, alert.subject, alert.body)
