import uuid

from sqlalchemy import (
    DDL,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    return str(uuid.uuid4())


class Professional(Base):
    __tablename__ = "professionals"

    id = Column(String(36), primary_key=True, default=generate_id)
    salon_id = Column(String(36), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    external_calendar_id = Column(String(500), nullable=True)  # Google Calendar id

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    services = relationship("ProfessionalService", cascade="all, delete-orphan", lazy="selectin")


class ProfessionalService(Base):
    """Which services a professional can perform"""

    __tablename__ = "professional_services"

    professional_id = Column(String(36), ForeignKey("professionals.id", ondelete="CASCADE"), primary_key=True)
    service_id = Column(String(36), ForeignKey("services.id", ondelete="CASCADE"), primary_key=True)


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    salon_id = Column(String(36), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="BRL")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_id)
    salon_id = Column(String(36), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    phones = relationship(
        "CustomerPhone",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CustomerPhone.id",
    )


class CustomerPhone(Base):
    """One row per known phone number; the primary one identifies the customer"""

    __tablename__ = "customer_phones"
    __table_args__ = (UniqueConstraint("salon_id", "phone", name="uq_customer_phones_salon_phone"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="CASCADE"), index=True, nullable=False)
    salon_id = Column(String(36), nullable=False)
    phone = Column(String(20), nullable=False)  # canonical digits, e.g. 5511987654321
    is_primary = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AvailabilityRule(Base):
    __tablename__ = "availability_rules"

    id = Column(String(36), primary_key=True, default=generate_id)
    salon_id = Column(String(36), nullable=False)
    professional_id = Column(
        String(36), ForeignKey("professionals.id", ondelete="CASCADE"), index=True, nullable=False
    )
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_break = Column(Boolean, default=False, nullable=False)


class ScheduleOverride(Base):
    __tablename__ = "schedule_overrides"
    __table_args__ = (Index("ix_schedule_overrides_professional_start", "professional_id", "starts_at"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    salon_id = Column(String(36), nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id", ondelete="CASCADE"), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_salon_professional_start", "salon_id", "professional_id", "starts_at"),
        Index("ix_appointments_salon_customer_start", "salon_id", "customer_id", "starts_at"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    salon_id = Column(String(36), nullable=False)
    professional_id = Column(String(36), ForeignKey("professionals.id"), nullable=False)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, confirmed, cancelled
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)  # optimistic concurrency

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    external_refs = relationship("AppointmentExternalRef", cascade="all, delete-orphan", lazy="selectin")


class AppointmentExternalRef(Base):
    """Event/booking id assigned to an appointment by an external provider"""

    __tablename__ = "appointment_external_refs"
    __table_args__ = (UniqueConstraint("appointment_id", "provider", name="uq_appointment_external_refs_provider"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(50), nullable=False)  # google_calendar, trinks
    external_id = Column(String(255), nullable=False)
    synced_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# No two non-cancelled appointments of one professional may overlap.
# Postgres enforces it with an exclusion constraint; other dialects rely on
# the check the repository performs inside the insert transaction.
event.listen(
    Appointment.__table__,
    "before_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        "ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap "
        "EXCLUDE USING gist (professional_id WITH =, tstzrange(starts_at, ends_at, '[)') WITH &&) "
        "WHERE (status <> 'cancelled')"
    ).execute_if(dialect="postgresql"),
)
