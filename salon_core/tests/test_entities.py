"""
Tests for the domain entities

Appointment status machine, catalog entities, customers and availability
rules.
"""

import unittest
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from salon_core.domain.appointments.entities import Appointment, AppointmentStatus
from salon_core.domain.availability.entities import AvailabilityRule, ScheduleOverride, day_of_week
from salon_core.domain.catalog.entities import Professional, Service
from salon_core.domain.customers.entities import Customer
from salon_core.domain.errors import (
    InvalidDateError,
    InvalidDateRangeError,
    InvalidStateTransitionError,
    OutOfRangeError,
    PastAppointmentError,
    RequiredFieldError,
)
from salon_core.domain.value_objects import Duration, Money, Phone

from .fakes import ANA_ID, CUT_ID, NOW, SALON_ID, local, make_appointment


class TestAppointmentCreation(unittest.TestCase):
    def test_create_sets_end_from_duration(self):
        """Test that the end time follows the service duration."""
        appointment = make_appointment(local(10), duration_minutes=45)

        self.assertEqual(appointment.ends_at, local(10, 45))
        self.assertEqual(appointment.status, AppointmentStatus.PENDING)
        self.assertEqual(appointment.version, 1)
        self.assertEqual(appointment.duration_minutes, 45)

    def test_create_in_the_past_rejected(self):
        """Test that a booking cannot start before now."""
        with self.assertRaises(PastAppointmentError):
            make_appointment(NOW - timedelta(minutes=1))

    def test_create_cancelled_rejected(self):
        """Test that a new appointment cannot start out cancelled."""
        with self.assertRaises(InvalidStateTransitionError):
            Appointment.create(
                salon_id=SALON_ID,
                professional_id=ANA_ID,
                customer_id="c",
                service_id=CUT_ID,
                starts_at=local(10),
                duration_minutes=30,
                now=NOW,
                status=AppointmentStatus.CANCELLED,
            )

    def test_naive_datetime_rejected(self):
        """Test that datetimes without an offset are rejected."""
        with self.assertRaises(InvalidDateError):
            make_appointment(datetime(2030, 1, 7, 10, 0))

    def test_end_must_follow_start(self):
        """Test that a zero-length appointment is invalid."""
        with self.assertRaises(InvalidDateRangeError):
            Appointment(
                id="a",
                salon_id=SALON_ID,
                professional_id=ANA_ID,
                customer_id="c",
                service_id=CUT_ID,
                starts_at=local(10),
                ends_at=local(10),
            )

    def test_status_string_is_coerced(self):
        appointment = Appointment("a", SALON_ID, ANA_ID, "c", CUT_ID, local(10), local(10, 30), status="confirmed")

        self.assertEqual(appointment.status, AppointmentStatus.CONFIRMED)


class TestAppointmentStatusMachine(unittest.TestCase):
    def setUp(self):
        self.appointment = make_appointment(local(10))

    def test_confirm_pending(self):
        """Test pending -> confirmed."""
        self.assertTrue(self.appointment.confirm(NOW))
        self.assertEqual(self.appointment.status, AppointmentStatus.CONFIRMED)
        self.assertFalse(self.appointment.confirm(NOW))

    def test_cancel_is_idempotent(self):
        """Test that cancelling twice only changes the status once."""
        self.assertTrue(self.appointment.cancel(NOW))
        self.assertTrue(self.appointment.is_cancelled)
        self.assertFalse(self.appointment.cancel(NOW))

    def test_confirmed_can_be_cancelled(self):
        self.appointment.confirm(NOW)

        self.assertTrue(self.appointment.cancel(NOW))

    def test_cancelled_is_terminal(self):
        """Test that a cancelled appointment cannot be confirmed again."""
        self.appointment.cancel(NOW)

        with self.assertRaises(InvalidStateTransitionError):
            self.appointment.confirm(NOW)

    def test_past_appointment_cannot_be_cancelled(self):
        """Test that an appointment that already started is immutable."""
        with self.assertRaises(PastAppointmentError):
            self.appointment.cancel(local(10, 5))

    def test_past_cancelled_appointment_still_raises(self):
        """Test that the past check wins over the idempotent no-op."""
        self.appointment.cancel(NOW)

        with self.assertRaises(PastAppointmentError):
            self.appointment.cancel(local(11))

    def test_reschedule(self):
        """Test moving an appointment to a new time."""
        later = NOW + timedelta(hours=1)
        self.appointment.reschedule(local(14), local(14, 30), later)

        self.assertEqual(self.appointment.starts_at, local(14))
        self.assertEqual(self.appointment.updated_at, later)

    def test_reschedule_to_past_rejected(self):
        with self.assertRaises(PastAppointmentError):
            self.appointment.reschedule(NOW - timedelta(hours=1), NOW, NOW)

    def test_reschedule_cancelled_rejected(self):
        """Test that a cancelled appointment cannot be rescheduled."""
        self.appointment.cancel(NOW)

        with self.assertRaises(InvalidStateTransitionError):
            self.appointment.reschedule(local(14), local(14, 30), NOW)

    def test_notes_frozen_once_started(self):
        """Test that notes cannot be rewritten after the appointment started."""
        with self.assertRaises(PastAppointmentError):
            self.appointment.update_notes("rewritten", local(11))

        self.assertIsNone(self.appointment.notes)

    def test_notes_frozen_once_cancelled(self):
        self.appointment.cancel(NOW)

        with self.assertRaises(InvalidStateTransitionError):
            self.appointment.update_notes("rewritten", NOW)

    def test_change_service_updates_end(self):
        """Test that changing service moves the end time when a duration is given."""
        self.appointment.change_service("other", NOW, duration_minutes=90)

        self.assertEqual(self.appointment.service_id, "other")
        self.assertEqual(self.appointment.ends_at, local(11, 30))

    def test_cancelled_appointments_never_overlap(self):
        """Test that cancelled appointments do not block the slot."""
        other = make_appointment(local(10, 15))

        self.assertTrue(self.appointment.overlaps(other))
        other.cancel(NOW)
        self.assertFalse(self.appointment.overlaps(other))

    def test_external_ids(self):
        """Test that recording provider ids does not touch the status."""
        self.appointment.set_external_event_id("google_calendar", "evt-1", NOW)

        self.assertEqual(self.appointment.external_event_id("google_calendar"), "evt-1")
        self.assertEqual(self.appointment.status, AppointmentStatus.PENDING)

    def test_external_id_on_cancelled_rejected_but_clearing_allowed(self):
        """Test that a cancelled appointment only accepts clearing provider ids."""
        self.appointment.set_external_event_id("trinks", "bk-1")
        self.appointment.cancel(NOW)

        with self.assertRaises(InvalidStateTransitionError):
            self.appointment.set_external_event_id("trinks", "bk-2")

        self.appointment.set_external_event_id("trinks", None)
        self.assertIsNone(self.appointment.external_event_id("trinks"))

    def test_time_queries(self):
        self.assertTrue(self.appointment.is_upcoming(NOW))
        self.assertTrue(self.appointment.is_in_progress(local(10, 10)))
        self.assertTrue(self.appointment.is_past(local(11)))
        self.assertFalse(self.appointment.can_be_modified(local(10, 10)))


class TestCatalog(unittest.TestCase):
    def test_professional_requires_name(self):
        """Test that a professional must have a name."""
        with self.assertRaises(RequiredFieldError):
            Professional("p", SALON_ID, "  ")

    def test_professional_services(self):
        professional = Professional("p", SALON_ID, "Ana", service_ids=[CUT_ID])

        self.assertTrue(professional.can_perform_service(CUT_ID))
        professional.remove_service(CUT_ID)
        self.assertFalse(professional.can_perform_service(CUT_ID))

    def test_inactive_professional_unavailable(self):
        professional = Professional("p", SALON_ID, "Ana")
        professional.deactivate()

        self.assertFalse(professional.is_available())

    def test_service_duration_and_price(self):
        """Test that integer durations are wrapped and formatting is delegated."""
        service = Service("s", SALON_ID, "Coloração", 90, Money(Decimal("180")))

        self.assertEqual(service.duration, Duration(90))
        self.assertEqual(service.format_duration(), "1h30min")
        self.assertEqual(service.format_price(), "R$ 180,00")
        self.assertTrue(service.is_bookable())

    def test_inactive_or_zero_length_service_not_bookable(self):
        """Test that only active services with a duration can be booked."""
        self.assertFalse(Service("s", SALON_ID, "Corte", Duration(30), Money.zero(), is_active=False).is_bookable())
        self.assertFalse(Service("s", SALON_ID, "Avaliação", Duration(0), Money.zero()).is_bookable())


class TestCustomer(unittest.TestCase):
    def test_add_phone_skips_known_numbers(self):
        """Test that a number already on the customer is not added twice."""
        customer = Customer("c", SALON_ID, Phone.create("11987654321"), "Maria")

        self.assertFalse(customer.add_phone(Phone.create("(11) 98765-4321")))
        self.assertTrue(customer.add_phone(Phone.create("21998765432")))
        self.assertEqual(len(customer.all_phones()), 2)
        self.assertTrue(customer.has_phone(Phone.create("21998765432")))

    def test_is_identified(self):
        self.assertFalse(Customer("c", SALON_ID, Phone.create("11987654321"), " ").is_identified())


class TestAvailabilityRules(unittest.TestCase):
    def test_day_of_week_starts_on_sunday(self):
        """Test the 0 = Sunday convention."""
        self.assertEqual(day_of_week(date(2030, 1, 6)), 0)
        self.assertEqual(day_of_week(date(2030, 1, 7)), 1)
        self.assertEqual(day_of_week(date(2030, 1, 12)), 6)

    def test_day_out_of_range(self):
        with self.assertRaises(OutOfRangeError):
            AvailabilityRule("r", ANA_ID, 7, time(9), time(17))

    def test_start_must_precede_end(self):
        """Test that a rule must have a positive length."""
        with self.assertRaises(InvalidDateRangeError):
            AvailabilityRule("r", ANA_ID, 1, time(17), time(9))

    def test_rule_applies_to_its_weekday(self):
        rule = AvailabilityRule("r", ANA_ID, 1, time(9), time(17))

        self.assertTrue(rule.applies_to(date(2030, 1, 7)))
        self.assertFalse(rule.applies_to(date(2030, 1, 8)))
        self.assertEqual(rule.day_name, "Monday")

    def test_override_must_have_length(self):
        with self.assertRaises(InvalidDateRangeError):
            ScheduleOverride("o", ANA_ID, local(10), local(10))


if __name__ == "__main__":
    unittest.main()
