"""Notification templates for billing events."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voltledger_billing.services.billing.notifications import NewInvoiceNotification


@dataclass
class RenderedTemplate:
    subject: str
    text_body: str
    html_body: str


_STATUS_LABELS = {
    "open": "is ready for payment",
    "paid": "has been paid",
}


def render_billing_new_invoice(
    payload: "NewInvoiceNotification",
    contact_name: str | None,
) -> RenderedTemplate:
    """Render the notice sent when an invoice is opened or paid."""

    reference = payload.invoice_number or payload.invoice_id
    status_label = _STATUS_LABELS.get(payload.invoice_status, f"is {payload.invoice_status}")
    subject = f"Invoice {reference} {status_label}"
    greeting = f"Hi {contact_name}," if contact_name else "Hi there,"

    text_lines = [
        greeting,
        "",
        f"Your invoice {reference} {status_label}.",
        f"Amount: {payload.invoice_amount}",
    ]
    if payload.pay_invoice_url:
        text_lines.append(f"Pay online: {payload.pay_invoice_url}")
    text_lines.extend(
        [
            f"Download: {payload.invoice_download_url}",
            f"All invoices: {payload.dashboard_invoice_url}",
            "",
            "Thanks for charging with us.",
        ]
    )
    text_body = "\n".join(text_lines)

    pay_html = (
        f'<p><a href="{html.escape(payload.pay_invoice_url)}">Pay this invoice</a></p>'
        if payload.pay_invoice_url
        else ""
    )
    html_body = f"""<html>
  <body>
    <p>{html.escape(greeting)}</p>
    <p>Your invoice <strong>{html.escape(reference)}</strong> {status_label}.</p>
    <p><strong>Amount:</strong> {html.escape(payload.invoice_amount)}</p>
    {pay_html}
    <p><a href="{html.escape(payload.invoice_download_url)}">Download the invoice</a></p>
    <p><a href="{html.escape(payload.dashboard_invoice_url)}">See all invoices</a></p>
  </body>
</html>"""

    return RenderedTemplate(subject=subject, text_body=text_body, html_body=html_body)
