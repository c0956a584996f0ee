"""
Notification service for staff email.
Every notification is written to the outbox table first and then sent
through SMTP when email is enabled; the row records the outcome.
"""
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Optional, Dict, Any

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.enums import NotificationStatus
from ..models.models import Notification, User
from .clock import Clock, utc_now


log = structlog.get_logger(__name__)


def wants_task_notifications(user: Optional[User]) -> bool:
    """Unset preference counts as opted in."""
    if user is None or not user.is_active:
        return False
    return user.task_notifications is not False


def email_enabled() -> bool:
    return bool(settings.enable_email and settings.smtp_host and settings.mail_from)


def send_email(to_email: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    msg["To"] = to_email
    msg.set_content(body)
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as s:
        if settings.smtp_tls:
            s.starttls()
        if settings.smtp_username and settings.smtp_password:
            s.login(settings.smtp_username, settings.smtp_password)
        s.send_message(msg)


def deliver(notification: Notification, to_email: Optional[str], subject: str, body: str, *, clock: Clock = utc_now) -> Notification:
    """Send an outbox row by email and record the outcome on it."""
    if not to_email or not email_enabled():
        notification.status = NotificationStatus.SKIPPED
        return notification
    try:
        send_email(to_email, subject, body)
    except Exception as e:
        log.warning(
            "notification_email_failed",
            template_key=notification.template_key,
            user_id=notification.user_id,
            error=str(e),
        )
        notification.status = NotificationStatus.FAILED
        notification.error_message = str(e)
        return notification
    notification.status = NotificationStatus.SENT
    notification.sent_at = clock()
    return notification


def notify_customer(
    db: Session,
    *,
    email: Optional[str],
    template_key: str,
    subject: str,
    body: str,
    payload: Optional[Dict[str, Any]] = None,
    clock: Clock = utc_now,
) -> Notification:
    """Customer facing email (order arrived, ...). Recorded in the same outbox."""
    notification = Notification(
        user_id=None,
        channel="email",
        template_key=template_key,
        payload_json=dict(payload or {}, email=email),
        status=NotificationStatus.PENDING,
        created_at=clock(),
    )
    db.add(notification)
    db.flush()
    return deliver(notification, email, subject, body, clock=clock)


def _task_assignment_body(full_name: str, task_id: int, title: str, description: Optional[str], due_date: Optional[datetime]) -> str:
    lines = [
        f"Hi {full_name},",
        "",
        f"You have been assigned a new task: {title}",
    ]
    if description:
        lines.append(description)
    if due_date:
        lines.append(f"Due: {due_date.strftime('%d/%m/%Y %H:%M')}")
    if settings.public_base_url:
        lines.append(f"{settings.public_base_url}/tasks/{task_id}")
    return "\n".join(lines)


class AssignmentNotifier:
    """Tells a staff member that a task was assigned to them."""

    def notify_assignment(
        self,
        db: Session,
        *,
        user_id: int,
        email: Optional[str],
        full_name: str,
        task_id: int,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None,
    ) -> Optional[Notification]:
        raise NotImplementedError


class OutboxNotifier(AssignmentNotifier):
    def __init__(self, clock: Clock = utc_now):
        self.clock = clock

    def notify_assignment(
        self,
        db: Session,
        *,
        user_id: int,
        email: Optional[str],
        full_name: str,
        task_id: int,
        title: str,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None,
    ) -> Notification:
        payload: Dict[str, Any] = {
            "task_id": task_id,
            "title": title,
            "description": description,
            "due_date": due_date.isoformat() if due_date else None,
            "email": email,
        }
        notification = Notification(
            user_id=user_id,
            channel="email",
            template_key="task_assigned",
            payload_json=payload,
            status=NotificationStatus.PENDING,
            created_at=self.clock(),
        )
        db.add(notification)
        db.flush()

        return deliver(
            notification,
            email,
            f"New task assigned: {title}",
            _task_assignment_body(full_name, task_id, title, description, due_date),
            clock=self.clock,
        )


def get_notifier() -> AssignmentNotifier:
    return OutboxNotifier()
