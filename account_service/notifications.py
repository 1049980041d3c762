"""Verification email delivery over SMTP.

Delivery is fire-and-forget: callers schedule a send and move on. The mailer
logs its own successes and failures and never reports back to the caller.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from urllib.parse import quote

from .config import settings
from .logger import logger


def build_verification_link(token: str) -> str:
    """Absolute link the user follows to verify their address."""
    return f"{settings.BASE_URL.rstrip('/')}/auth/verify?token={quote(token, safe='')}"


def build_verification_message(to_address: str, display_name: str, token: str) -> EmailMessage:
    """Compose the multipart (text + HTML) verification email."""
    link = build_verification_link(token)

    message = EmailMessage()
    message["Subject"] = "Verify Your Email Address"
    message["From"] = formataddr((settings.SMTP_SENDER_NAME, settings.SMTP_SENDER_EMAIL))
    message["To"] = formataddr((display_name, to_address))

    message.set_content(
        f"Welcome, {display_name}!\n\n"
        "Thank you for registering. Please verify your email address by opening the link below:\n"
        f"{link}\n\n"
        "If you didn't register for this account, please ignore this email.\n"
    )
    safe_name = escape(display_name)
    safe_link = escape(link, quote=True)
    message.add_alternative(
        f"""\
<html>
  <body style="font-family: Arial, sans-serif;">
    <h2>Welcome, {safe_name}!</h2>
    <p>Thank you for registering. Please verify your email address by clicking the link below:</p>
    <p><a href="{safe_link}">Verify Email</a></p>
    <p>Or copy and paste this link into your browser:</p>
    <p>{safe_link}</p>
    <p>If you didn't register for this account, please ignore this email.</p>
  </body>
</html>
""",
        subtype="html",
    )
    return message


class VerificationMailer:
    """Schedules verification emails as detached background tasks.

    Tasks are tracked only so they are not garbage collected mid-flight and
    so shutdown can wait for them briefly.
    """

    def __init__(self):
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def send_verification_email(self, to_address: str, display_name: str, token: str) -> None:
        """Start delivery on the running event loop and return immediately."""
        task = asyncio.create_task(self._deliver(to_address, display_name, token))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, to_address: str, display_name: str, token: str) -> None:
        if not settings.email_enabled:
            logger.info(
                f"[email] SMTP disabled - verification link for {to_address}: "
                f"{build_verification_link(token)}"
            )
            return

        try:
            message = build_verification_message(to_address, display_name, token)
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._send, message)
            logger.info(f"[email] Verification email sent to {to_address}")
        except Exception as e:
            logger.error(f"[email] Error sending verification email to {to_address}: {e}", exc_info=True)

    @staticmethod
    def _send(message: EmailMessage) -> None:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT) as server:
            server.starttls()
            if settings.SMTP_USERNAME:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.send_message(message)

    async def drain(self, timeout: float) -> None:
        """Wait up to timeout seconds for in-flight deliveries (used on shutdown)."""
        if not self._pending:
            return
        logger.info(f"[email] Waiting for {len(self._pending)} pending email(s)")
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            logger.warning(f"[email] {len(not_done)} email(s) still pending at shutdown")


# ==================== Global Instance ====================

notifier = VerificationMailer()
