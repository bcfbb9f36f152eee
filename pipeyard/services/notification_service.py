"""
Notification Service
Outbox for workflow notifications and the best-effort dispatcher that drains it
"""
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from pipeyard.core.config import settings
from pipeyard.core.exceptions import IntegrationError
from pipeyard.core.logging import get_logger
from pipeyard.models.notification import NotificationQueue

logger = get_logger("notifications")

# Notification types
REQUEST_SUBMITTED = "storage_request_submitted"
REQUEST_APPROVED = "storage_request_approved"
REQUEST_REJECTED = "storage_request_rejected"
REQUEST_COMPLETED = "storage_request_completed"
LOAD_BOOKED = "trucking_load_booked"
LOAD_APPROVED = "trucking_load_approved"
LOAD_CANCELLED = "trucking_load_cancelled"
INBOUND_LOAD_COMPLETED = "inbound_load_completed"
OUTBOUND_LOAD_COMPLETED = "outbound_load_completed"
MANIFEST_CORRECTION_REQUESTED = "manifest_correction_requested"

SUBJECTS = {
    REQUEST_SUBMITTED: "New storage request {reference_id}",
    REQUEST_APPROVED: "Storage request {reference_id} approved",
    REQUEST_REJECTED: "Storage request {reference_id} rejected",
    REQUEST_COMPLETED: "Storage request {reference_id} complete",
    LOAD_BOOKED: "Load #{sequence_number} booked for {reference_id}",
    LOAD_APPROVED: "Load #{sequence_number} approved for {reference_id}",
    LOAD_CANCELLED: "Load #{sequence_number} cancelled for {reference_id}",
    INBOUND_LOAD_COMPLETED: "Load #{sequence_number} received for {reference_id}",
    OUTBOUND_LOAD_COMPLETED: "Load #{sequence_number} picked up for {reference_id}",
    MANIFEST_CORRECTION_REQUESTED: "Manifest correction needed for load #{sequence_number} of {reference_id}",
}


class NotificationService:
    """Writes outbox rows inside the caller's unit of work"""

    def __init__(self, db: Session):
        self.db = db

    def enqueue(self, notification_type: str, payload: Dict[str, Any]) -> NotificationQueue:
        entry = NotificationQueue(notification_type=notification_type, payload=payload)
        self.db.add(entry)
        self.db.flush()
        return entry


class EmailSender:
    """SMTP delivery"""

    def __init__(self, host: str, port: int, user: Optional[str] = None,
                 password: Optional[str] = None, sender: str = settings.SMTP_FROM):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def send(self, recipients: List[str], subject: str, body: str):
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=settings.NOTIFICATION_TIMEOUT_SECONDS) as server:
                server.starttls()
                if self.user:
                    server.login(self.user, self.password or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise IntegrationError(f"SMTP delivery failed: {e}", channel="email", host=self.host)


class SlackNotifier:
    """Slack incoming-webhook delivery"""

    def __init__(self, webhook_url: str, client: Optional[httpx.Client] = None):
        self.webhook_url = webhook_url
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.NOTIFICATION_TIMEOUT_SECONDS, connect=5.0)
        )

    def send(self, text: str):
        try:
            r = self._client.post(self.webhook_url, json={"text": text})
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise IntegrationError(f"Slack webhook failed: {e}", channel="slack")

    def close(self):
        self._client.close()


def format_message(notification_type: str, payload: Dict[str, Any]):
    """Plain-text subject and body for a queued notification"""
    template = SUBJECTS.get(notification_type, notification_type.replace("_", " ").capitalize())
    try:
        subject = template.format(**payload)
    except KeyError:
        subject = notification_type.replace("_", " ").capitalize()

    lines = [subject, ""]
    for key in sorted(payload):
        if key == "recipient_email":
            continue
        value = payload[key]
        if isinstance(value, list):
            value = "; ".join(str(v) for v in value)
        lines.append(f"{key.replace('_', ' ')}: {value}")
    return subject, "\n".join(lines)


class NotificationDispatcher:
    """
    Delivers pending outbox rows after the workflow transaction committed

    Delivery failures are recorded on the row (attempts, last_error) and
    never propagate: a mail or Slack outage cannot undo a committed yard
    change. Rows that reach NOTIFICATION_MAX_ATTEMPTS are left for manual
    follow-up.
    """

    def __init__(self, db: Session, email_sender: Optional[EmailSender] = None,
                 slack_notifier: Optional[SlackNotifier] = None):
        self.db = db
        self.email_sender = email_sender
        self.slack_notifier = slack_notifier

    @classmethod
    def from_settings(cls, db: Session) -> "NotificationDispatcher":
        email_sender = None
        if settings.SMTP_HOST:
            email_sender = EmailSender(
                settings.SMTP_HOST, settings.SMTP_PORT, settings.SMTP_USER, settings.SMTP_PASSWORD
            )
        slack_notifier = SlackNotifier(settings.SLACK_WEBHOOK_URL) if settings.SLACK_WEBHOOK_URL else None
        return cls(db, email_sender=email_sender, slack_notifier=slack_notifier)

    def close(self):
        if self.slack_notifier:
            self.slack_notifier.close()

    def __enter__(self) -> "NotificationDispatcher":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def pending(self, limit: int = 50) -> List[NotificationQueue]:
        return (
            self.db.query(NotificationQueue)
            .filter(
                NotificationQueue.processed.is_(False),
                NotificationQueue.attempts < settings.NOTIFICATION_MAX_ATTEMPTS,
            )
            .order_by(NotificationQueue.id)
            .limit(limit)
            .all()
        )

    def process_queue(self, limit: int = 50) -> Dict[str, int]:
        """Attempt delivery of up to ``limit`` pending notifications"""
        summary = {"processed": 0, "failed": 0}
        try:
            entries = self.pending(limit)
        except Exception as e:
            logger.error(f"Could not read notification queue: {e}")
            self.db.rollback()
            return summary

        for entry in entries:
            try:
                self._deliver(entry)
                entry.processed = True
                entry.processed_at = datetime.now(timezone.utc)
                entry.last_error = None
                summary["processed"] += 1
            except Exception as e:
                entry.last_error = str(e)[:1000]
                summary["failed"] += 1
                logger.warning(
                    f"Notification {entry.id} ({entry.notification_type}) failed "
                    f"on attempt {entry.attempts + 1}: {e}"
                )
            entry.attempts += 1

            try:
                self.db.commit()
            except Exception as e:
                logger.error(f"Could not record delivery state of notification {entry.id}: {e}")
                self.db.rollback()

        return summary

    def _deliver(self, entry: NotificationQueue):
        payload = entry.payload or {}
        subject, body = format_message(entry.notification_type, payload)

        if self.email_sender:
            recipients = [r for r in (payload.get("recipient_email"), settings.ADMIN_NOTIFICATION_EMAIL) if r]
            if recipients:
                self.email_sender.send(recipients, subject, body)

        if self.slack_notifier:
            self.slack_notifier.send(body)

        if not self.email_sender and not self.slack_notifier:
            logger.debug(f"No notification channel configured; dropping {entry.notification_type}")
