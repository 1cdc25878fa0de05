"""
Trinks Booking Service
Mirrors appointments as bookings on the Trinks salon management API
"""
import logging
from datetime import datetime
from typing import Any

import httpx

from ..circuit_breaker import ExternalEventNotFoundError, IntegrationError, integration_error_from_response
from ..config import TRINKS_API_BASE_URL, SchedulingSettings
from ..domain.sync.ports import BookingPort, ExternalAppointment
from ..domain.value_objects import DateRange
from ..shared.datetime_utils import salon_tz
from .integration_credentials import IntegrationCredentialStore

logger = logging.getLogger(__name__)

PROVIDER = "trinks"

# Local status -> Trinks status
TRINKS_STATUS = {
    "pending": "agendado",
    "confirmed": "confirmado",
    "cancelled": "cancelado",
}


class TrinksService(BookingPort):
    name = PROVIDER

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: IntegrationCredentialStore,
        settings: SchedulingSettings,
        base_url: str = TRINKS_API_BASE_URL,
    ):
        self.http = http
        self.credentials = credentials
        self.settings = settings
        self.base_url = base_url.rstrip("/")

    async def is_configured(self, salon_id: str) -> bool:
        creds = await self.credentials.get(salon_id, PROVIDER)
        return creds is not None and bool(creds.access_token)

    async def create_booking(self, appointment: ExternalAppointment) -> str:
        data = await self._request(appointment.salon_id, "POST", "/agendamentos", json=self._payload(appointment))

        # Trinks answers either the bare id or {"id": ...}
        booking_id = None
        if isinstance(data, (str, int)):
            booking_id = str(data)
        elif isinstance(data, dict) and data.get("id") is not None:
            booking_id = str(data["id"])

        if not booking_id:
            raise IntegrationError(PROVIDER, "Booking created without an id", retryable=False)

        logger.info(f"✅ Trinks booking created: {booking_id}")
        return booking_id

    async def update_booking(self, booking_id: str, appointment: ExternalAppointment) -> None:
        await self._request(
            appointment.salon_id, "PUT", f"/agendamentos/{booking_id}", json=self._payload(appointment)
        )
        logger.info(f"✅ Trinks booking updated: {booking_id}")

    async def cancel_booking(self, booking_id: str, appointment: ExternalAppointment) -> None:
        await self._request(appointment.salon_id, "DELETE", f"/agendamentos/{booking_id}")
        logger.info(f"✅ Trinks booking cancelled: {booking_id}")

    async def busy_slots(
        self, salon_id: str, professional_id: str, range_start: datetime, range_end: datetime
    ) -> list[DateRange]:
        tz = salon_tz(self.settings.timezone)
        data = await self._request(
            salon_id,
            "GET",
            "/agendamentos",
            params={
                "dataInicio": range_start.astimezone(tz).date().isoformat(),
                "dataFim": range_end.astimezone(tz).date().isoformat(),
                "profissionalId": professional_id,
            },
        )

        busy = []
        for booking in data or []:
            if booking.get("status") == "cancelado":
                continue
            if not booking.get("dataInicio") or not booking.get("dataFim"):
                continue
            try:
                start = _parse_datetime(booking["dataInicio"], tz)
                end = _parse_datetime(booking["dataFim"], tz)
                busy.append(DateRange(start, end))
            except (ValueError, TypeError) as e:
                logger.warning(f"⚠️ Ignoring malformed Trinks booking {booking.get('id')}: {e}")
        return busy

    # ============================================================================
    # HELPERS
    # ============================================================================

    async def _request(self, salon_id: str, method: str, path: str, **kwargs) -> Any:
        creds = await self.credentials.get(salon_id, PROVIDER)
        if creds is None:
            raise IntegrationError(PROVIDER, f"Not connected for salon {salon_id}", retryable=False)

        response = await self.http.request(
            method,
            f"{self.base_url}{path}",
            headers={"Authorization": f"Bearer {creds.access_token}", "Content-Type": "application/json"},
            **kwargs,
        )

        if response.status_code == 404:
            raise ExternalEventNotFoundError(PROVIDER)
        if response.status_code >= 400:
            logger.error(f"❌ Trinks API error {response.status_code} on {method} {path}: {response.text}")
            raise integration_error_from_response(PROVIDER, response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _payload(self, appointment: ExternalAppointment) -> dict[str, Any]:
        local_start = appointment.starts_at.astimezone(salon_tz(self.settings.timezone))
        return {
            "data": local_start.date().isoformat(),
            "hora": local_start.strftime("%H:%M"),
            "profissional_id": appointment.professional_id,
            "servico_id": appointment.service_id,
            "cliente_nome": appointment.customer_name or "Cliente",
            "cliente_email": appointment.customer_email or "",
            "cliente_telefone": appointment.customer_phone or "",
            "observacoes": appointment.notes or "",
            "status": TRINKS_STATUS.get(appointment.status, "agendado"),
        }


def _parse_datetime(value: str, tz) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        # Trinks reports wall-clock times of the salon
        parsed = parsed.replace(tzinfo=tz)
    return parsed

