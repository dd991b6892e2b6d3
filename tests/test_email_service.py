from datetime import UTC, datetime

from slotwise.services import email_service
from slotwise.services.email_service import BookingSummary, build_booking_confirmation_html


def summary(**overrides) -> BookingSummary:
    values = dict(
        client_email="jamie@example.com",
        client_name="Jamie <script>",
        business_name="Downtown Studio",
        service_name="Haircut",
        staff_name="Alex",
        start_utc=datetime(2030, 1, 7, 15, 0, tzinfo=UTC),
        end_utc=datetime(2030, 1, 7, 16, 0, tzinfo=UTC),
        timezone="America/New_York",
    )
    values.update(overrides)
    return BookingSummary(**values)


def test_confirmation_shows_business_local_time_and_escapes_names():
    html = build_booking_confirmation_html(summary())
    assert "10:00" in html and "11:00" in html
    assert "Monday, January 07, 2030" in html
    assert "&lt;script&gt;" in html
    assert "<script>" not in html


def test_send_is_skipped_when_smtp_not_configured(monkeypatch):
    calls = []
    monkeypatch.setattr(email_service.smtplib, "SMTP", lambda *a, **kw: calls.append(a))
    email_service.send_booking_confirmation_email(summary())
    assert calls == []
