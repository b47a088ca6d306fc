"""Email backend implementations for transactional notifications."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import make_msgid
from typing import List, Mapping, Optional, Protocol


class EmailBackend(Protocol):
    """Minimal protocol for sending one transactional email."""

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        reply_to: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> str | None:
        ...


def _build_message(
    sender: str | None,
    recipient: str,
    subject: str,
    body_text: str,
    *,
    body_html: str | None,
    reply_to: str | None,
    headers: Mapping[str, str] | None,
) -> EmailMessage:
    message = EmailMessage()
    if sender:
        message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message["Message-ID"] = make_msgid(domain="localcityplaces.com")
    if reply_to:
        message["Reply-To"] = reply_to
    for name, value in (headers or {}).items():
        message[name] = value
    message.set_content(body_text)
    if body_html:
        message.add_alternative(body_html, subtype="html")
    return message


class SMTPEmailBackend:
    """SMTP delivery; the blocking client runs in a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender_email: str,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender_email = sender_email

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        reply_to: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> str | None:
        message = _build_message(
            self._sender_email,
            recipient,
            subject,
            body_text,
            body_html=body_html,
            reply_to=reply_to,
            headers=headers,
        )
        await asyncio.to_thread(self._send, message)
        return message["Message-ID"]

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=10) as smtp:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)


@dataclass
class InMemoryEmailBackend:
    """Test backend storing outbound messages in memory."""

    sent_messages: List[EmailMessage] = field(default_factory=list)

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        reply_to: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> str | None:
        message = _build_message(
            None,
            recipient,
            subject,
            body_text,
            body_html=body_html,
            reply_to=reply_to,
            headers=headers,
        )
        self.sent_messages.append(message)
        return message["Message-ID"]

    def messages_to(self, recipient: str) -> list[EmailMessage]:
        return [message for message in self.sent_messages if message["To"] == recipient]
