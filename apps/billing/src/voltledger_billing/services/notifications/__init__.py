"""Notification service package."""

from .backend import (
    EmailBackend,
    InMemoryEmailBackend,
    SendGridEmailBackend,
    SMTPEmailBackend,
)
from .service import NotificationEvent, NotificationService
from .templates import RenderedTemplate, render_billing_new_invoice

__all__ = [
    "EmailBackend",
    "InMemoryEmailBackend",
    "SendGridEmailBackend",
    "SMTPEmailBackend",
    "NotificationEvent",
    "NotificationService",
    "RenderedTemplate",
    "render_billing_new_invoice",
]
