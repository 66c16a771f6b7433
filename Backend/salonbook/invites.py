"""Calendar invites (RFC 5545) and confirmation email bodies for appointments."""

from dataclasses import dataclass
from html import escape
from datetime import datetime, timedelta, timezone
from typing import Sequence
from zoneinfo import ZoneInfo

from .models import Appointment
from .scheduling.types import format_hhmm


def format_utc_timestamp(value: datetime) -> str:
    """Format datetime as UTC timestamp for iCalendar (RFC 5545)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%dT%H%M%SZ")


def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics_event(
    uid: str,
    start_at: datetime,
    end_at: datetime,
    summary: str,
    description: str,
    location: str,
    sequence: int = 0,
) -> str:
    dtstamp = format_utc_timestamp(datetime.now(timezone.utc))
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Salonbook//Appointments//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"SEQUENCE:{sequence}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_utc_timestamp(start_at)}",
        f"DTEND:{format_utc_timestamp(end_at)}",
        f"SUMMARY:{escape_ical_text(summary)}",
        f"DESCRIPTION:{escape_ical_text(description)}",
        f"LOCATION:{escape_ical_text(location)}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


@dataclass(frozen=True)
class AppointmentInvite:
    subject: str
    html: str
    ics_filename: str
    ics_text: str


def appointment_start(appt: Appointment, timezone_name: str) -> datetime:
    return datetime.combine(appt.date, appt.start_time, tzinfo=ZoneInfo(timezone_name))


def build_appointment_invite(
    appt: Appointment,
    service_names: Sequence[str],
    stylist_name: str | None,
    business_name: str,
    timezone_name: str,
    public_api_base: str,
    rescheduled: bool = False,
) -> AppointmentInvite:
    start_at = appointment_start(appt, timezone_name)
    end_at = start_at + timedelta(minutes=appt.total_duration_minutes)
    services = ", ".join(service_names) or "Appointment"
    with_whom = stylist_name or "any available stylist"
    summary = f"{services} with {with_whom}"

    ics_text = build_ics_event(
        uid=f"{appt.id}@salonbook",
        start_at=start_at,
        end_at=end_at,
        summary=summary,
        description=f"Appointment for {appt.customer_name}",
        location=business_name,
        # Calendar clients replace the event only when SEQUENCE grows
        sequence=int(datetime.now(timezone.utc).timestamp()) if rescheduled else 0,
    )

    headline = "Your appointment has been moved." if rescheduled else "Your appointment is confirmed."
    invite_url = f"{public_api_base}/appointments/{appt.id}/invite"
    html = f"""
        <p>Hi {escape(appt.customer_name)},</p>
        <p>{headline}</p>
        <ul>
          <li><strong>Services:</strong> {escape(services)}</li>
          <li><strong>Stylist:</strong> {escape(with_whom)}</li>
          <li><strong>Date:</strong> {appt.date.isoformat()}</li>
          <li><strong>Time:</strong> {format_hhmm(appt.start_time)} - {format_hhmm(appt.end_time)}</li>
          <li><strong>Location:</strong> {escape(business_name)}</li>
        </ul>
        <p><a href="{escape(invite_url)}">Download calendar invite</a></p>
    """
    verb = "moved" if rescheduled else "confirmed"
    return AppointmentInvite(
        subject=f"Appointment {verb}: {services}",
        html=html,
        ics_filename=f"salonbook-appointment-{appt.id}.ics",
        ics_text=ics_text,
    )
