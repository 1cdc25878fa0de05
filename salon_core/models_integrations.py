"""
Salon Integration Models
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from .database import Base


class SalonIntegration(Base):
    __tablename__ = "salon_integrations"
    __table_args__ = (UniqueConstraint("salon_id", "provider", name="uq_salon_integrations_provider"),)

    id = Column(Integer, primary_key=True, index=True)
    salon_id = Column(String(36), index=True, nullable=False)
    provider = Column(String(50), nullable=False)  # google_calendar, trinks, twilio

    # Credentials (encrypted with Fernet)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)

    # Provider specifics
    calendar_id = Column(String(500), nullable=True)  # Google: salon-wide calendar, "primary" by default
    account_email = Column(String(255), nullable=True)

    # Settings
    is_active = Column(Boolean, default=True, nullable=False)
    auto_sync_enabled = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
