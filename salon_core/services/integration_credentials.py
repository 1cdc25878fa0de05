"""
Integration credentials
Loads and stores per-salon provider tokens, encrypted at rest with Fernet
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from cryptography.fernet import Fernet
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models_integrations import SalonIntegration
from ..shared.crypto import decrypt_token, encrypt_token, get_cipher
from ..shared.datetime_utils import from_storage, to_utc

logger = logging.getLogger(__name__)


@dataclass
class IntegrationCredentials:
    salon_id: str
    provider: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    calendar_id: Optional[str] = None
    auto_sync_enabled: bool = True


class IntegrationCredentialStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], cipher: Optional[Fernet] = None):
        self._session_factory = session_factory
        self._cipher = cipher or get_cipher()

    async def get(self, salon_id: str, provider: str) -> Optional[IntegrationCredentials]:
        """Active credentials for the salon, decrypted; None when not connected"""
        async with self._session_factory() as session:
            row = await self._get_row(session, salon_id, provider)
            if row is None or not row.is_active:
                return None

            try:
                return IntegrationCredentials(
                    salon_id=salon_id,
                    provider=provider,
                    access_token=decrypt_token(row.access_token, self._cipher),
                    refresh_token=decrypt_token(row.refresh_token, self._cipher) if row.refresh_token else None,
                    token_expires_at=from_storage(row.token_expires_at),
                    calendar_id=row.calendar_id,
                    auto_sync_enabled=row.auto_sync_enabled,
                )
            except ValueError as e:
                logger.error(f"❌ Stored {provider} credentials for salon {salon_id} are unreadable: {e}")
                return None

    async def connect(
        self,
        salon_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[datetime] = None,
        calendar_id: Optional[str] = None,
    ) -> None:
        """Create or replace the salon's credentials for a provider"""
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._get_row(session, salon_id, provider)
                if row is None:
                    row = SalonIntegration(salon_id=salon_id, provider=provider)
                    session.add(row)

                row.access_token = encrypt_token(access_token, self._cipher)
                row.refresh_token = encrypt_token(refresh_token, self._cipher) if refresh_token else None
                row.token_expires_at = to_utc(token_expires_at) if token_expires_at else None
                row.calendar_id = calendar_id
                row.is_active = True
                row.auto_sync_enabled = True
        logger.info(f"✅ {provider} connected for salon {salon_id}")

    async def save_access_token(self, salon_id: str, provider: str, access_token: str, expires_at: datetime) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._get_row(session, salon_id, provider)
                if row is None:
                    return
                row.access_token = encrypt_token(access_token, self._cipher)
                row.token_expires_at = to_utc(expires_at)

    async def deactivate(self, salon_id: str, provider: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._get_row(session, salon_id, provider)
                if row is not None:
                    row.is_active = False
        logger.info(f"🔌 {provider} disconnected for salon {salon_id}")

    @staticmethod
    async def _get_row(session: AsyncSession, salon_id: str, provider: str) -> Optional[SalonIntegration]:
        return (
            await session.execute(
                select(SalonIntegration).where(
                    SalonIntegration.salon_id == salon_id, SalonIntegration.provider == provider
                )
            )
        ).scalar_one_or_none()
