import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from slotwise.core.config import settings
from slotwise.services.local_time import to_local

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingSummary:
    """What the confirmation email needs to know about an appointment."""

    client_email: str
    client_name: str
    business_name: str
    service_name: str
    staff_name: str
    start_utc: datetime
    end_utc: datetime
    timezone: str


def _send_email_sync(to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except (smtplib.SMTPException, OSError) as e:
        # A lost confirmation email must not undo a committed booking
        logger.exception("Failed to send email to %s: %s", to_email, e)


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def build_booking_confirmation_html(summary: BookingSummary) -> str:
    """Build HTML body for a booking confirmation, times shown in the business timezone."""
    local_day, start_hhmm = to_local(summary.start_utc, summary.timezone)
    _, end_hhmm = to_local(summary.end_utc, summary.timezone)
    date_str = local_day.strftime("%A, %B %d, %Y")
    slot_display = f"{start_hhmm} – {end_hhmm} ({summary.timezone})"
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Booking Confirmed</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;margin:40px auto;background:#ffffff;border-radius:12px;">
    <tr>
      <td style="padding:32px;">
        <h1 style="margin:0 0 8px 0;font-size:22px;color:#111827;">Booking Confirmed</h1>
        <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">Hi {_html_escape(summary.client_name) or 'there'}, your appointment at {_html_escape(summary.business_name)} is booked.</p>
        <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{_html_escape(summary.service_name)} with {_html_escape(summary.staff_name)}</p>
        <p style="margin:8px 0 0 0;font-size:16px;color:#111827;">{date_str}</p>
        <p style="margin:4px 0 24px 0;font-size:16px;color:#111827;">{slot_display}</p>
        <p style="margin:0;font-size:14px;color:#374151;">If you need to reschedule or cancel, please contact {_html_escape(summary.business_name)}.</p>
      </td>
    </tr>
    <tr>
      <td style="padding:24px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;font-size:13px;color:#6b7280;">{settings.site_name}</td>
    </tr>
  </table>
</body>
</html>
"""


def send_booking_confirmation_email(summary: BookingSummary) -> None:
    """Compose and send a booking confirmation (call from background task)."""
    subject = f"Booking Confirmed: {summary.service_name} at {summary.business_name}"
    _send_email_sync(summary.client_email, subject, build_booking_confirmation_html(summary))
