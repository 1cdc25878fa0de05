"""
Notification Service
Sends WhatsApp/SMS messages to customers through Twilio, guarded by the
circuit breaker; retryable failures are deferred to the background worker
"""

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ..circuit_breaker import CircuitBreakerRegistry, IntegrationError, InvalidDestinationError
from ..config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER, SyncSettings
from ..domain.sync.retry import RetryJob, RetryQueue
from ..shared.datetime_utils import salon_tz

logger = logging.getLogger(__name__)

PROVIDER = "twilio"

# Twilio error codes meaning the recipient can never receive the message
# 21211: invalid 'To' number, 21614: not a mobile number, 63003: WhatsApp channel could not find recipient
INVALID_DESTINATION_CODES = {21211, 21614, 63003}


class NotificationSender(ABC):
    name: str = ""

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def send(self, to: str, body: str) -> str:
        """Send one message and return the provider message id"""


class TwilioWhatsAppSender(NotificationSender):
    name = PROVIDER

    def __init__(
        self,
        http: httpx.AsyncClient,
        account_sid: Optional[str] = TWILIO_ACCOUNT_SID,
        auth_token: Optional[str] = TWILIO_AUTH_TOKEN,
        from_number: Optional[str] = TWILIO_FROM_NUMBER,
        whatsapp: bool = True,
    ):
        self.http = http
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.whatsapp = whatsapp

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, to: str, body: str) -> str:
        destination = to if to.startswith("+") else f"+{to}"
        data = {
            "To": f"whatsapp:{destination}" if self.whatsapp else destination,
            "From": f"whatsapp:{self.from_number}" if self.whatsapp else self.from_number,
            "Body": body,
        }

        logger.info(f"🚀 Sending message to Twilio API for {destination}")
        response = await self.http.post(
            f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json",
            auth=(self.account_sid, self.auth_token),
            data=data,
        )
        logger.info(f"📡 Twilio API response status: {response.status_code}")

        if response.status_code in (200, 201):
            return response.json().get("sid", "")

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_code = error_data.get("code")
        error_message = error_data.get("message", response.text or "Unknown error")
        logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")

        if error_code in INVALID_DESTINATION_CODES:
            raise InvalidDestinationError(PROVIDER, f"[{error_code}] {error_message}", status_code=response.status_code)
        retryable = response.status_code == 429 or response.status_code >= 500
        raise IntegrationError(
            PROVIDER, f"[{error_code}] {error_message}", status_code=response.status_code, retryable=retryable
        )


@dataclass(frozen=True)
class NotificationJob(RetryJob):
    to: str
    body: str
    attempt: int

    @property
    def task_name(self) -> str:
        return "send_notification_task"

    @property
    def job_id(self) -> str:
        return f"notify:{self.to}:{hashlib.sha1(self.body.encode()).hexdigest()[:12]}:{self.attempt}"

    def task_args(self) -> tuple:
        return (self.to, self.body)

    def task_kwargs(self) -> dict:
        return {"attempt": self.attempt}


class NotificationDispatcher:
    def __init__(
        self,
        sender: NotificationSender,
        breakers: CircuitBreakerRegistry,
        retry_queue: RetryQueue,
        settings: SyncSettings,
    ):
        self.sender = sender
        self.breakers = breakers
        self.retry_queue = retry_queue
        self.settings = settings
        self._tasks: set[asyncio.Task] = set()

    def dispatch_in_background(self, to: str, body: str) -> None:
        """Send from a task in the current event loop so the caller never waits on the provider"""
        task = asyncio.create_task(self.dispatch(to, body))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def drain(self) -> None:
        """Wait for in-flight background messages (shutdown and tests)"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Background notification crashed: {error}")

    async def dispatch(self, to: str, body: str, attempt: int = 0) -> bool:
        """
        Send a message; never raises.

        Returns:
            True when the provider accepted the message
        """
        if not self.sender.is_configured():
            logger.debug(f"Notification sender '{self.sender.name}' not configured, skipping message to {to}")
            return False

        try:
            message_id = await self.breakers.get(self.sender.name).call(lambda: self.sender.send(to, body))
            logger.info(f"✅ Message sent to {to} (SID: {message_id})")
            return True
        except IntegrationError as e:
            if not e.retryable:
                logger.warning(f"⚠️ Message to {to} dropped: {e.message}")
                return False
            await self._schedule_retry(to, body, attempt)
            return False

    async def _schedule_retry(self, to: str, body: str, attempt: int) -> None:
        next_attempt = attempt + 1
        if next_attempt > self.settings.max_retries:
            logger.error(f"❌ Giving up on message to {to} after {attempt} retries")
            return
        job = NotificationJob(to, body, next_attempt)
        try:
            await self.retry_queue.schedule(job, self.settings.retry_delay(next_attempt))
        except Exception as e:
            logger.error(f"❌ Could not schedule retry {job.job_id}: {e}")


# Message templates
def appointment_confirmation_message(
    customer_name: Optional[str], service_name: str, professional_name: str, starts_at: datetime, timezone: str
) -> str:
    local = starts_at.astimezone(salon_tz(timezone))
    greeting = f"Olá {customer_name}!" if customer_name else "Olá!"
    return (
        f"{greeting} Seu agendamento de {service_name} com {professional_name} "
        f"está marcado para {local.strftime('%d/%m/%Y')} às {local.strftime('%H:%M')}."
    )


def appointment_cancellation_message(
    customer_name: Optional[str], service_name: str, starts_at: datetime, timezone: str
) -> str:
    local = starts_at.astimezone(salon_tz(timezone))
    greeting = f"Olá {customer_name}!" if customer_name else "Olá!"
    return (
        f"{greeting} Seu agendamento de {service_name} em {local.strftime('%d/%m/%Y')} "
        f"às {local.strftime('%H:%M')} foi cancelado."
    )
