"""
Google Calendar Service
Mirrors appointments as calendar events and reads free/busy for availability
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from ..circuit_breaker import ExternalEventNotFoundError, IntegrationError, integration_error_from_response
from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, SchedulingSettings
from ..domain.catalog.repository import ProfessionalRepository
from ..domain.sync.ports import CalendarPort, ExternalAppointment
from ..domain.value_objects import DateRange
from ..shared.datetime_utils import utc_now
from .integration_credentials import IntegrationCredentials, IntegrationCredentialStore

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

PROVIDER = "google_calendar"


class GoogleCalendarService(CalendarPort):
    name = PROVIDER

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: IntegrationCredentialStore,
        professionals: ProfessionalRepository,
        settings: SchedulingSettings,
        client_id: Optional[str] = GOOGLE_CLIENT_ID,
        client_secret: Optional[str] = GOOGLE_CLIENT_SECRET,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.http = http
        self.credentials = credentials
        self.professionals = professionals
        self.settings = settings
        self.client_id = client_id
        self.client_secret = client_secret
        self.clock = clock

    async def is_configured(self, salon_id: str) -> bool:
        creds = await self.credentials.get(salon_id, PROVIDER)
        return creds is not None and creds.auto_sync_enabled

    # ============================================================================
    # EVENTS
    # ============================================================================

    async def create_event(self, appointment: ExternalAppointment) -> str:
        creds, access_token = await self._authorize(appointment.salon_id)
        calendar_id = self._calendar_id(creds, appointment.professional_calendar_id)

        response = await self.http.post(
            f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events",
            headers={"Authorization": f"Bearer {access_token}"},
            json=self._event_body(appointment),
        )
        event = self._check(response)
        event_id = event.get("id") if event else None
        if not event_id:
            raise IntegrationError(PROVIDER, "Event created without an id", retryable=False)

        logger.info(f"✅ Google Calendar event created: {event_id}")
        return event_id

    async def update_event(self, event_id: str, appointment: ExternalAppointment) -> None:
        creds, access_token = await self._authorize(appointment.salon_id)
        calendar_id = self._calendar_id(creds, appointment.professional_calendar_id)

        response = await self.http.put(
            f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            headers={"Authorization": f"Bearer {access_token}"},
            json=self._event_body(appointment),
        )
        self._check(response)
        logger.info(f"✅ Google Calendar event updated: {event_id}")

    async def delete_event(self, event_id: str, appointment: ExternalAppointment) -> None:
        creds, access_token = await self._authorize(appointment.salon_id)
        calendar_id = self._calendar_id(creds, appointment.professional_calendar_id)

        response = await self.http.delete(
            f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        self._check(response)
        logger.info(f"✅ Google Calendar event deleted: {event_id}")

    async def free_busy(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        creds, access_token = await self._authorize(salon_id)
        professional = await self.professionals.find_by_id(salon_id, professional_id)
        calendar_id = self._calendar_id(creds, professional.external_calendar_id if professional else None)

        response = await self.http.post(
            f"{GOOGLE_CALENDAR_API}/freeBusy",
            headers={"Authorization": f"Bearer {access_token}"},
            json={
                "timeMin": range_start.isoformat(),
                "timeMax": range_end.isoformat(),
                "items": [{"id": calendar_id}],
            },
        )
        data = self._check(response) or {}
        busy = data.get("calendars", {}).get(calendar_id, {}).get("busy", [])

        intervals = []
        for period in busy:
            try:
                intervals.append(DateRange(_parse_rfc3339(period["start"]), _parse_rfc3339(period["end"])))
            except (KeyError, ValueError) as e:
                logger.warning(f"⚠️ Ignoring malformed free/busy period {period}: {e}")
        return intervals

    # ============================================================================
    # HELPERS
    # ============================================================================

    async def _authorize(self, salon_id: str) -> tuple[IntegrationCredentials, str]:
        creds = await self.credentials.get(salon_id, PROVIDER)
        if creds is None:
            raise IntegrationError(PROVIDER, f"Not connected for salon {salon_id}", retryable=False)
        return creds, await self._valid_access_token(creds)

    async def _valid_access_token(self, creds: IntegrationCredentials) -> str:
        """Return the stored token, refreshing it when it expires within 5 minutes"""
        if creds.token_expires_at and creds.token_expires_at > self.clock() + timedelta(minutes=5):
            return creds.access_token

        if not creds.refresh_token:
            return creds.access_token

        logger.info("🔄 Google Calendar token expired, refreshing...")
        response = await self.http.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": creds.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            # invalid_grant means the user revoked access; retrying cannot help
            revoked = "invalid_grant" in response.text
            raise IntegrationError(
                PROVIDER, "Token refresh failed", status_code=response.status_code, retryable=not revoked
            )

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        if not new_access_token:
            raise IntegrationError(PROVIDER, "No access token in refresh response", retryable=False)

        expires_at = self.clock() + timedelta(seconds=tokens.get("expires_in", 3600))
        await self.credentials.save_access_token(creds.salon_id, PROVIDER, new_access_token, expires_at)
        logger.info("✅ Google Calendar token refreshed successfully")
        return new_access_token

    @staticmethod
    def _calendar_id(creds: IntegrationCredentials, professional_calendar_id: Optional[str]) -> str:
        return professional_calendar_id or creds.calendar_id or "primary"

    def _event_body(self, appointment: ExternalAppointment) -> dict[str, Any]:
        description_lines = []
        if appointment.customer_name:
            description_lines.append(f"Customer: {appointment.customer_name}")
        if appointment.customer_phone:
            description_lines.append(f"Phone: {appointment.customer_phone}")
        if appointment.professional_name:
            description_lines.append(f"Professional: {appointment.professional_name}")
        if appointment.notes:
            description_lines.append(f"\nNotes: {appointment.notes}")

        return {
            "summary": appointment.title,
            "description": "\n".join(description_lines),
            "start": {"dateTime": appointment.starts_at.isoformat(), "timeZone": self.settings.timezone},
            "end": {"dateTime": appointment.ends_at.isoformat(), "timeZone": self.settings.timezone},
            "extendedProperties": {"private": {"appointmentId": appointment.appointment_id}},
        }

    @staticmethod
    def _check(response: httpx.Response) -> Optional[dict]:
        # Google answers 410 Gone for events that were already deleted
        if response.status_code in (404, 410):
            raise ExternalEventNotFoundError(PROVIDER)
        if response.status_code >= 400:
            logger.error(f"❌ Google Calendar API error {response.status_code}: {response.text}")
            raise integration_error_from_response(PROVIDER, response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()


def _parse_rfc3339(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
