"""Google Calendar availability and booking for sales calls."""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from leadbot.errors import CalendarUnavailableError
from leadbot.storage.models import AppointmentDetails, Prospect

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

WORKDAY_START_HOUR = 9
WORKDAY_END_HOUR = 18
LUNCH_HOUR = 13
SLOT_MINUTES = 30
MIN_LEAD = timedelta(hours=2)
DAYS_AHEAD = 7
MAX_SLOTS = 5

Interval = Tuple[datetime, datetime]


def generate_slots(
    now: datetime,
    busy: Sequence[Interval],
    tz: ZoneInfo,
    days_ahead: int = DAYS_AHEAD,
    max_slots: int = MAX_SLOTS,
) -> List[Dict[str, str]]:
    """Free 30-minute slots on working days, 09:00-18:00, skipping lunch.

    Args:
        now: Current time (timezone-aware)
        busy: Busy intervals (timezone-aware)
        tz: Business timezone
        days_ahead: Days to look ahead, today included
        max_slots: Maximum slots returned

    Returns:
        [{"date": "DD/MM/YYYY", "time": "HH:MM", "iso": ...}] in chronological order
    """
    local_now = now.astimezone(tz)
    earliest = local_now + MIN_LEAD
    slots: List[Dict[str, str]] = []

    for offset in range(days_ahead + 1):
        day = (local_now + timedelta(days=offset)).date()
        if day.weekday() >= 5:
            continue

        start = datetime(day.year, day.month, day.day, WORKDAY_START_HOUR, tzinfo=tz)
        end_of_day = datetime(day.year, day.month, day.day, WORKDAY_END_HOUR, tzinfo=tz)
        while start + timedelta(minutes=SLOT_MINUTES) <= end_of_day:
            end = start + timedelta(minutes=SLOT_MINUTES)
            if (
                start.hour != LUNCH_HOUR
                and start >= earliest
                and not any(b_start < end and start < b_end for b_start, b_end in busy)
            ):
                slots.append(
                    {
                        "date": start.strftime("%d/%m/%Y"),
                        "time": start.strftime("%H:%M"),
                        "iso": start.isoformat(),
                    }
                )
                if len(slots) >= max_slots:
                    return slots
            start = end

    return slots


class GoogleCalendar:
    """Async facade over the blocking Google Calendar API client."""

    def __init__(
        self,
        service: Any,
        calendar_id: str = "primary",
        timezone: str = "America/Lima",
        timeout: float = 15.0,
        organizer_email: Optional[str] = None,
        clock: Callable[[], datetime] = None,
    ):
        """Initialize calendar.

        Args:
            service: googleapiclient Calendar v3 resource
            calendar_id: Calendar to book into
            timezone: Business timezone for slots
            timeout: Seconds allowed per API call
            organizer_email: Vendor email added as attendee
            clock: Returns the current time (tests)
        """
        self.service = service
        self.calendar_id = calendar_id
        self.tz = ZoneInfo(timezone)
        self.timeout = timeout
        self.organizer_email = organizer_email
        self.clock = clock or (lambda: datetime.now(self.tz))

    @classmethod
    def from_service_account_file(
        cls, credentials_file: Path, **kwargs
    ) -> "GoogleCalendar":
        """Build from a service account JSON key file."""
        credentials = service_account.Credentials.from_service_account_file(
            str(credentials_file), scopes=SCOPES
        )
        service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
        logger.info(f"Google Calendar client ready ({credentials_file})")
        return cls(service, **kwargs)

    async def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CalendarUnavailableError(f"{action} timed out after {self.timeout}s") from e
        except HttpError as e:
            raise CalendarUnavailableError(f"{action} failed: {e}") from e
        except (GoogleAuthError, OSError) as e:
            raise CalendarUnavailableError(f"{action} failed: {e}") from e

    async def list_available(self) -> List[Dict[str, str]]:
        """Next free slots from the calendar's busy times.

        Raises:
            CalendarUnavailableError: API error or timeout
        """
        now = self.clock()
        time_max = now + timedelta(days=DAYS_AHEAD + 1)
        body = {
            "timeMin": now.isoformat(),
            "timeMax": time_max.isoformat(),
            "timeZone": str(self.tz),
            "items": [{"id": self.calendar_id}],
        }
        result = await self._call(
            "Free/busy query",
            lambda: self.service.freebusy().query(body=body).execute(),
        )

        busy = [
            (datetime.fromisoformat(b["start"].replace("Z", "+00:00")),
             datetime.fromisoformat(b["end"].replace("Z", "+00:00")))
            for b in result.get("calendars", {}).get(self.calendar_id, {}).get("busy", [])
        ]
        slots = generate_slots(now, busy, self.tz)
        logger.info(f"Found {len(slots)} available slots ({len(busy)} busy periods)")
        return slots

    async def create_event(
        self, prospect: Prospect, slot: Dict[str, str]
    ) -> AppointmentDetails:
        """Book a 30-minute Meet call for the prospect.

        Raises:
            CalendarUnavailableError: API error or timeout
        """
        start = datetime.fromisoformat(slot["iso"])
        end = start + timedelta(minutes=SLOT_MINUTES)

        attendees = [{"email": e} for e in prospect.emails]
        if self.organizer_email:
            attendees.append({"email": self.organizer_email})

        company = f" ({prospect.company})" if prospect.company else ""
        body = {
            "summary": f"Llamada LogiFit - {prospect.display_name}{company}",
            "description": (
                f"Prospecto: {prospect.display_name}\n"
                f"Teléfono: +{prospect.phone_number}\n"
                f"Empresa: {prospect.company or '-'}\n"
                f"Flota: {prospect.fleet_size_raw or '-'}\n"
                f"Cargo: {prospect.role or '-'}\n"
                f"Fuente: {prospect.source}"
            ),
            "start": {"dateTime": start.isoformat(), "timeZone": str(self.tz)},
            "end": {"dateTime": end.isoformat(), "timeZone": str(self.tz)},
            "attendees": attendees,
            "conferenceData": {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }

        event = await self._call(
            "Event creation",
            lambda: self.service.events()
            .insert(
                calendarId=self.calendar_id,
                body=body,
                conferenceDataVersion=1,
                sendUpdates="all" if attendees else "none",
            )
            .execute(),
        )

        local_start = start.astimezone(self.tz)
        return AppointmentDetails(
            date=local_start.strftime("%d/%m/%Y"),
            time=local_start.strftime("%H:%M"),
            iso=local_start.isoformat(),
            meet_link=event.get("hangoutLink"),
            calendar_event_id=event["id"],
        )
