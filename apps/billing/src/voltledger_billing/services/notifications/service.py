"""High-level notification service for billing emails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Sequence

from loguru import logger

from voltledger_billing.core.settings import get_settings
from voltledger_billing.models.user import User

from .backend import EmailBackend, SendGridEmailBackend, SMTPEmailBackend
from .templates import RenderedTemplate, render_billing_new_invoice

if TYPE_CHECKING:
    from voltledger_billing.services.billing.notifications import NewInvoiceNotification


@dataclass
class NotificationEvent:
    """Representation of a notification that was sent."""

    recipient: str
    subject: str
    body_text: str
    body_html: str | None
    event_type: str
    metadata: dict[str, Any]


class NotificationService:
    """Coordinates notification delivery via pluggable backends."""

    def __init__(
        self,
        backend: Optional[EmailBackend] = None,
        *,
        bcc: Sequence[str] | None = None,
    ) -> None:
        settings = get_settings()
        self._backend = backend or self._build_default_backend()
        self._bcc = list(bcc if bcc is not None else settings.billing_notification_bcc)
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Expose events (useful for tests when using in-memory backend)."""
        return self._events

    async def send_new_invoice(self, user: User, payload: "NewInvoiceNotification") -> None:
        if self._backend is None:
            logger.warning(
                "No email backend configured; new invoice notice dropped",
                invoice_id=payload.invoice_id,
                user_id=str(user.id),
            )
            return
        if not user.email:
            return

        template = render_billing_new_invoice(payload, user.first_name or user.name)
        await self._deliver(
            user.email,
            template,
            event_type="billing_new_invoice",
            metadata=payload.as_dict(),
        )

    def _build_default_backend(self) -> Optional[EmailBackend]:
        settings = get_settings()
        if settings.sendgrid_api_key and settings.sendgrid_sender_email:
            return SendGridEmailBackend(
                api_key=settings.sendgrid_api_key,
                sender_email=settings.sendgrid_sender_email,
            )
        if not settings.smtp_host or not settings.smtp_sender_email:
            return None

        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )

    async def _deliver(
        self,
        recipient: str,
        template: RenderedTemplate,
        *,
        event_type: str,
        metadata: dict[str, Any],
    ) -> None:
        """Send using active backend and record emitted event."""
        if self._backend is None:
            return

        await self._backend.send_email(
            recipient,
            template.subject,
            template.text_body,
            body_html=template.html_body,
            bcc=self._bcc or None,
        )
        self._events.append(
            NotificationEvent(
                recipient=recipient,
                subject=template.subject,
                body_text=template.text_body,
                body_html=template.html_body,
                event_type=event_type,
                metadata=metadata,
            )
        )
