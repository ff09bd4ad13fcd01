"""Email backends used to deliver card holder notifications."""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage
from typing import List, Optional, Protocol


class EmailBackend(Protocol):
    """Minimal protocol for sending notification emails."""

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        ...


def build_message(
    recipient: str,
    subject: str,
    body_text: str,
    *,
    sender: str | None = None,
    body_html: str | None = None,
    reply_to: str | None = None,
) -> EmailMessage:
    message = EmailMessage()
    if sender:
        message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    if reply_to:
        message["Reply-To"] = reply_to
    message.set_content(body_text)
    if body_html:
        message.add_alternative(body_html, subtype="html")
    return message


class SMTPEmailBackend:
    """SMTP backend; the blocking client runs in a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender_email: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender_email = sender_email
        self._timeout = timeout_seconds

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        message = build_message(
            recipient,
            subject,
            body_text,
            sender=self._sender_email,
            body_html=body_html,
            reply_to=reply_to,
        )
        await asyncio.to_thread(self._send, message)

    def _send(self, message: EmailMessage) -> None:
        smtp = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        try:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)
        finally:
            smtp.quit()


class InMemoryEmailBackend:
    """Test backend storing outbound messages in memory."""

    def __init__(self) -> None:
        self.sent_messages: List[EmailMessage] = []

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        self.sent_messages.append(
            build_message(recipient, subject, body_text, body_html=body_html, reply_to=reply_to)
        )
