"""Email backend implementations for billing notifications."""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional, Protocol, Sequence

import httpx

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailBackend(Protocol):
    """Minimal protocol for sending notification emails."""

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        bcc: Sequence[str] | None = None,
    ) -> None:
        ...


def _build_message(
    sender: str | None,
    recipient: str,
    subject: str,
    body_text: str,
    body_html: str | None,
    bcc: Sequence[str] | None,
) -> EmailMessage:
    message = EmailMessage()
    if sender:
        message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    if bcc:
        message["Bcc"] = ", ".join(bcc)
    message.set_content(body_text)
    if body_html:
        message.add_alternative(body_html, subtype="html")
    return message


class SMTPEmailBackend:
    """SMTP-powered backend that sends emails via standard library."""

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
        bcc: Sequence[str] | None = None,
    ) -> None:
        """Send email asynchronously by offloading blocking call."""

        message = _build_message(self._sender_email, recipient, subject, body_text, body_html, bcc)
        await asyncio.to_thread(self._send, message)

    def _send(self, message: EmailMessage) -> None:
        smtp = smtplib.SMTP(self._host, self._port, timeout=10)
        try:
            if self._use_tls:
                smtp.starttls()
            if self._username and self._password:
                smtp.login(self._username, self._password)
            smtp.send_message(message)
        finally:
            smtp.quit()


class SendGridEmailBackend:
    """Backend posting to the SendGrid v3 mail API."""

    def __init__(
        self,
        *,
        api_key: str,
        sender_email: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._sender_email = sender_email
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        bcc: Sequence[str] | None = None,
    ) -> None:
        personalization: dict[str, object] = {"to": [{"email": recipient}]}
        if bcc:
            personalization["bcc"] = [{"email": address} for address in bcc]
        content = [{"type": "text/plain", "value": body_text}]
        if body_html:
            content.append({"type": "text/html", "value": body_html})
        payload = {
            "personalizations": [personalization],
            "from": {"email": self._sender_email},
            "subject": subject,
            "content": content,
        }

        client = self._http_client or httpx.AsyncClient(timeout=self._timeout_seconds)
        owns_client = self._http_client is None
        try:
            response = await client.post(
                SENDGRID_SEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
        finally:
            if owns_client:
                await client.aclose()


@dataclass
class InMemoryEmailBackend:
    """Test backend storing outbound messages in memory."""

    sent_messages: List[EmailMessage]

    def __init__(self) -> None:
        self.sent_messages = []

    async def send_email(
        self,
        recipient: str,
        subject: str,
        body_text: str,
        *,
        body_html: str | None = None,
        bcc: Sequence[str] | None = None,
    ) -> None:
        self.sent_messages.append(_build_message(None, recipient, subject, body_text, body_html, bcc))
