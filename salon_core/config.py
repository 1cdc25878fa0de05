import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./salon_core.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Fernet key used for provider credentials at rest
# (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
INTEGRATION_ENCRYPTION_KEY = os.getenv("INTEGRATION_ENCRYPTION_KEY")

# Scheduling
SALON_TIMEZONE = os.getenv("SALON_TIMEZONE", "America/Sao_Paulo")
DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "15"))
# Step between generated slots; 0 means "use the service duration"
SLOT_STEP_MINUTES = int(os.getenv("SLOT_STEP_MINUTES", "0"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "BRL")
DEFAULT_PHONE_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "55")

# External sync
PROVIDER_CALL_TIMEOUT = float(os.getenv("PROVIDER_CALL_TIMEOUT", "5.0"))
SYNC_RETRY_DELAY_SECONDS = int(os.getenv("SYNC_RETRY_DELAY_SECONDS", "60"))
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "5"))

# Circuit breaker defaults (per provider)
BREAKER_FAILURE_THRESHOLD_PERCENTAGE = float(os.getenv("BREAKER_FAILURE_THRESHOLD_PERCENTAGE", "50"))
BREAKER_MINIMUM_CALLS = int(os.getenv("BREAKER_MINIMUM_CALLS", "5"))
BREAKER_WINDOW_SIZE = int(os.getenv("BREAKER_WINDOW_SIZE", "20"))
BREAKER_RESET_TIMEOUT = float(os.getenv("BREAKER_RESET_TIMEOUT", "30"))
BREAKER_HALF_OPEN_MAX_CALLS = int(os.getenv("BREAKER_HALF_OPEN_MAX_CALLS", "1"))

# Google Calendar OAuth Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")

# Trinks booking system
TRINKS_API_BASE_URL = os.getenv("TRINKS_API_BASE_URL", "https://api.trinks.com/v1")

# Twilio (WhatsApp / SMS notifications)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

# Redis (arq background jobs)
REDIS_URL = os.getenv("REDIS_URL")

# Salon access grants as JSON: {"user-id": ["salon-id", ...]}, "*" grants every salon
SALON_ACCESS_GRANTS = json.loads(os.getenv("SALON_ACCESS_GRANTS", "{}"))


@dataclass(frozen=True)
class SchedulingSettings:
    timezone: str = SALON_TIMEZONE
    default_slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES
    # None means "step by the service duration"
    slot_step_minutes: Optional[int] = SLOT_STEP_MINUTES or None
    # Status given to appointments created through the booking use case
    initial_status: str = os.getenv("APPOINTMENT_INITIAL_STATUS", "pending")


@dataclass(frozen=True)
class SyncSettings:
    provider_call_timeout: float = PROVIDER_CALL_TIMEOUT
    retry_delay_seconds: int = SYNC_RETRY_DELAY_SECONDS
    max_retries: int = SYNC_MAX_RETRIES

    def retry_delay(self, attempt: int) -> int:
        """Exponential backoff: delay, 2x delay, 4x delay..."""
        return self.retry_delay_seconds * (2 ** max(0, attempt - 1))
