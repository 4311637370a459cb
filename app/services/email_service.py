import logging
from datetime import datetime
from html import escape

import httpx

from app.core.config import settings
from app.services.slot_engine import format_duration

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str, to_name: str | None = None) -> None:
    """Send through Brevo's transactional API (blocking). Use from a background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (Brevo not configured), skipping send")
        return
    payload = {
        "sender": {"name": settings.from_name, "email": settings.from_email},
        "to": [{"email": to_email, **({"name": to_name} if to_name else {})}],
        "subject": subject,
        "htmlContent": html_body,
    }
    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(
                settings.brevo_api_url,
                json=payload,
                headers={"api-key": settings.brevo_api_key, "accept": "application/json"},
            )
        if resp.status_code >= 400:
            logger.warning("Brevo rejected email to %s: status=%s body=%s", to_email, resp.status_code, resp.text[:500])
            return
        logger.info("Email sent to %s", to_email)
    except httpx.HTTPError as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def _layout(title: str, body_html: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;background:#ffffff;border-radius:12px;">
          <tr><td style="padding:32px;">{body_html}</td></tr>
          <tr>
            <td style="padding:24px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
              <p style="margin:0;font-size:13px;color:#6b7280;">{escape(settings.site_name)} &nbsp;·&nbsp; {escape(settings.site_url)}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def build_booking_confirmation_html(
    recipient_name: str | None,
    professional_name: str | None,
    service_name: str,
    start_local: datetime,
    duration_minutes: int,
) -> str:
    date_str = start_local.strftime("%A, %B %d, %Y")
    time_str = start_local.strftime("%I:%M %p").lstrip("0")
    body = f"""
      <h1 style="margin:0 0 8px 0;font-size:22px;color:#111827;">Booking Confirmed</h1>
      <p style="margin:0 0 24px 0;color:#6b7280;">Hi {escape(recipient_name or 'there')}, your appointment is booked.</p>
      <p style="margin:0;color:#111827;"><strong>{escape(service_name)}</strong> with {escape(professional_name or 'your professional')}</p>
      <p style="margin:8px 0 0 0;color:#111827;">{date_str} at {time_str} ({format_duration(duration_minutes)})</p>
    """
    return _layout("Booking Confirmed", body)


def build_cancellation_html(
    recipient_name: str | None,
    start_local: datetime,
    charge_amount: float,
    refund_amount: float,
    reason: str | None,
    cancelled_by_professional: bool = False,
) -> str:
    when = start_local.strftime("%A, %B %d, %Y at %I:%M %p")
    if cancelled_by_professional:
        summary = f"your professional has cancelled your appointment on {when}"
    else:
        summary = f"your appointment on {when} has been cancelled"
    charge_line = ""
    if charge_amount > 0:
        charge_line = f'<p style="margin:0 0 8px 0;color:#374151;">Cancellation fee: ${charge_amount:.2f}</p>'
    reason_line = ""
    if reason:
        reason_line = f'<p style="margin:0 0 8px 0;color:#6b7280;">Reason: {escape(reason)}</p>'
    body = f"""
      <h1 style="margin:0 0 8px 0;font-size:22px;color:#111827;">Booking Cancelled</h1>
      <p style="margin:0 0 24px 0;color:#6b7280;">Hi {escape(recipient_name or 'there')}, {summary}.</p>
      {reason_line}
      {charge_line}
      <p style="margin:0;color:#374151;">Refund: ${refund_amount:.2f}</p>
    """
    return _layout("Booking Cancelled", body)


def send_booking_confirmation_email(
    to_email: str,
    recipient_name: str | None,
    professional_name: str | None,
    service_name: str,
    start_local: datetime,
    duration_minutes: int,
) -> None:
    subject = f"{settings.site_name} – Booking Confirmed"
    html = build_booking_confirmation_html(
        recipient_name, professional_name, service_name, start_local, duration_minutes
    )
    _send_email_sync(to_email, subject, html, to_name=recipient_name)


def send_cancellation_email(
    to_email: str,
    recipient_name: str | None,
    start_local: datetime,
    charge_amount: float,
    refund_amount: float,
    reason: str | None = None,
    cancelled_by_professional: bool = False,
) -> None:
    subject = f"{settings.site_name} – Booking Cancelled"
    html = build_cancellation_html(
        recipient_name, start_local, charge_amount, refund_amount, reason, cancelled_by_professional
    )
    _send_email_sync(to_email, subject, html, to_name=recipient_name)
