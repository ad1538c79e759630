"""
Fire-and-forget reply notifications.

``NotificationDispatcher.dispatch`` schedules delivery on a background task
and returns immediately.  ``dispatch_after_commit`` holds the notification
until the request transaction commits and drops it on rollback.  Delivery looks up the recipient's email address
with its own database session (the request session may already be closed)
and hands the message to a ``MailTransport``.  Failures are logged and
dropped; nothing is retried and nothing reaches the request that triggered
the notification.
"""
import asyncio
import logging
import smtplib
from email.message import EmailMessage
from functools import partial
from typing import Protocol

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session

from blog_backend.config import Settings
from blog_backend.database import bounded
from blog_backend.models import User

logger = logging.getLogger(__name__)

REPLY_SUBJECT = "New Reply!"

# Session.info key holding notifications that wait for the transaction to commit.
AFTER_COMMIT_KEY = "notifications.after_commit"


def reply_message(recipient: str, replier: str, text: str) -> str:
    return (
        f"Dear {recipient},\n\n"
        f"{replier} replied to your post!\n"
        f"{replier} wrote:\n"
        f'"{text}"\n\n'
        "Thanks!"
    )


class MailTransport(Protocol):
    async def send_mail(self, to_address: str, subject: str, body: str) -> None: ...


class SMTPMailTransport:
    """Plain SMTP delivery; the blocking client runs in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPMailTransport | None":
        if not settings.SMTP_HOST:
            return None
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            sender=settings.MAIL_FROM,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )

    def _deliver(self, message: EmailMessage) -> None:
        client_cls = smtplib.SMTP_SSL if self.use_tls else smtplib.SMTP
        with client_cls(self.host, self.port, timeout=10) as client:
            if self.username:
                client.login(self.username, self.password or "")
            client.send_message(message)

    async def send_mail(self, to_address: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)
        await asyncio.to_thread(self._deliver, message)


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: MailTransport | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.transport = transport
        self._pending: set[asyncio.Task] = set()

    async def send(self, to_username: str, subject: str, body: str) -> bool:
        """
        Deliver one notification now.

        Returns False without error when mail is disabled or the recipient
        has no email address on file.
        """
        if self.transport is None:
            logger.debug("Mail disabled; dropping notification for %s", to_username)
            return False

        async with self.session_factory() as session:
            result = await bounded(
                session.execute(select(User.email).where(User.username == to_username))
            )
            email = result.scalar_one_or_none()

        if not email:
            logger.debug("No email on file for %s; notification skipped", to_username)
            return False

        await self.transport.send_mail(email, subject, body)
        logger.info("Notification sent to %s", to_username)
        return True

    def dispatch(self, to_username: str, subject: str, body: str) -> asyncio.Task:
        """Schedule ``send`` in the background and return without waiting."""
        task = asyncio.create_task(
            self.send(to_username, subject, body), name=f"notify:{to_username}"
        )
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    def dispatch_after_commit(
        self, db: AsyncSession, to_username: str, subject: str, body: str
    ) -> None:
        """
        Queue a ``dispatch`` on *db* that runs once its transaction commits.

        A rollback drops the queued notification, so nobody is told about a
        reply that was never saved.
        """
        db.info.setdefault(AFTER_COMMIT_KEY, []).append(
            partial(self.dispatch, to_username, subject, body)
        )

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Notification %s failed: %s", task.get_name(), exc)

    async def drain(self) -> None:
        """Wait for in-flight notifications (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


@event.listens_for(Session, "after_commit")
def _dispatch_committed(session: Session) -> None:
    for dispatch in session.info.pop(AFTER_COMMIT_KEY, []):
        dispatch()


@event.listens_for(Session, "after_rollback")
def _drop_rolled_back(session: Session) -> None:
    dropped = session.info.pop(AFTER_COMMIT_KEY, [])
    if dropped:
        logger.debug("Transaction rolled back; dropped %d notification(s)", len(dropped))
