"""
Tests for domain/availability/engine.py

Rules for Monday 09:00-17:00 with a 12:00-13:00 break are shared by every
test; each scenario adds the appointments, overrides or busy time it needs.
"""

import unittest
from datetime import date, time

from salon_core.domain.availability.engine import compute_slots, free_ranges, is_range_free, merge_ranges
from salon_core.domain.availability.entities import AvailabilityRule, ScheduleOverride
from salon_core.domain.errors import OutOfRangeError
from salon_core.domain.value_objects import DateRange

from .fakes import ANA_ID, BRUNO_ID, MONDAY, NOW, SP, local, make_appointment, monday_rules


def slot_times(slots):
    return [slot.start.astimezone(SP).strftime("%H:%M") for slot in slots]


class TestComputeSlots(unittest.TestCase):
    def setUp(self):
        self.rules = monday_rules(ANA_ID)

    def compute(self, **kwargs):
        options = dict(tz=SP)
        options.update(kwargs)
        return compute_slots(ANA_ID, MONDAY, options.pop("duration", 30), self.rules, **options)

    def test_break_and_appointment_are_excluded(self):
        """Test a working day with a lunch break and one booked appointment."""
        booked = make_appointment(local(10))

        slots = self.compute(appointments=[booked])

        self.assertEqual(
            slot_times(slots),
            ["09:00", "09:30", "10:30", "11:00", "11:30"]
            + ["13:00", "13:30", "14:00", "14:30", "15:00", "15:30", "16:00", "16:30"],
        )
        self.assertTrue(all(slot.available and slot.professional_id == ANA_ID for slot in slots))

    def test_no_slot_overlaps_a_blocked_interval(self):
        """Test that a sliding window never crosses a booked appointment."""
        booked = make_appointment(local(10, 15), duration_minutes=45)

        slots = self.compute(appointments=[booked], step_minutes=15)

        for slot in slots:
            self.assertFalse(slot.date_range.overlaps(booked.date_range), slot)
        self.assertIn("09:45", slot_times(slots))
        self.assertNotIn("10:00", slot_times(slots))
        self.assertIn("11:00", slot_times(slots))

    def test_step_shorter_than_duration(self):
        """Test that a finer step produces overlapping candidate slots."""
        slots = self.compute(appointments=[make_appointment(local(10))], step_minutes=15)

        self.assertEqual(slot_times(slots)[:4], ["09:00", "09:15", "09:30", "10:30"])
        # 3 before the appointment, 5 before lunch and 15 in the afternoon
        self.assertEqual(len(slots), 23)

    def test_slots_only_start_at_free_range_boundaries_plus_steps(self):
        """Test that a range starting off the hour anchors the slots at its own start."""
        booked = make_appointment(local(9), duration_minutes=50)

        slots = self.compute(appointments=[booked])

        self.assertEqual(slot_times(slots)[:3], ["09:50", "10:20", "10:50"])

    def test_override_blocks_time(self):
        """Test that a one-off override removes the slots it covers."""
        override = ScheduleOverride("o", ANA_ID, local(14), local(15), "Doctor")

        slots = self.compute(overrides=[override])

        self.assertNotIn("14:00", slot_times(slots))
        self.assertNotIn("14:30", slot_times(slots))
        self.assertIn("15:00", slot_times(slots))

    def test_external_busy_blocks_time(self):
        """Test that busy time reported by providers is honoured."""
        slots = self.compute(external_busy=[DateRange(local(9), local(10))])

        self.assertEqual(slot_times(slots)[0], "10:00")

    def test_cancelled_appointments_do_not_block(self):
        """Test that a cancelled appointment frees its slot."""
        cancelled = make_appointment(local(9))
        cancelled.cancel(NOW)

        self.assertEqual(slot_times(self.compute(appointments=[cancelled]))[0], "09:00")

    def test_other_professionals_appointments_ignored(self):
        other = make_appointment(local(9), professional_id=BRUNO_ID)

        self.assertEqual(slot_times(self.compute(appointments=[other]))[0], "09:00")

    def test_not_before_drops_started_slots(self):
        """Test that slots starting at or before the cutoff are left out."""
        slots = self.compute(not_before=local(11))

        self.assertEqual(slot_times(slots)[0], "11:30")

    def test_no_rules_for_the_weekday(self):
        """Test that a day without working hours has no slots (and is not an error)."""
        self.assertEqual(compute_slots(ANA_ID, date(2030, 1, 8), 30, self.rules, tz=SP), [])

    def test_duration_longer_than_any_free_range(self):
        self.assertEqual(self.compute(duration=300), [])

    def test_duplicate_rules_do_not_duplicate_slots(self):
        """Test that overlapping working rules are merged."""
        self.rules.append(AvailabilityRule("dup", ANA_ID, 1, time(9), time(11)))

        times = slot_times(self.compute())

        self.assertEqual(len(times), len(set(times)))
        self.assertEqual(len(times), 14)

    def test_invalid_duration_and_step(self):
        """Test that non-positive durations and steps are rejected."""
        with self.assertRaises(OutOfRangeError):
            self.compute(duration=0)
        with self.assertRaises(OutOfRangeError):
            self.compute(step_minutes=-15)

    def test_slots_are_sorted(self):
        starts = [slot.start for slot in self.compute()]

        self.assertEqual(starts, sorted(starts))


class TestFreeRanges(unittest.TestCase):
    def test_free_ranges_around_break(self):
        """Test that the break splits the working day."""
        ranges = free_ranges(ANA_ID, MONDAY, monday_rules(ANA_ID), tz=SP)

        self.assertEqual(ranges, [DateRange(local(9), local(12)), DateRange(local(13), local(17))])

    def test_merge_ranges(self):
        """Test that touching and overlapping ranges collapse into one."""
        merged = merge_ranges(
            [DateRange(local(13), local(14)), DateRange(local(9), local(10)), DateRange(local(10), local(11))]
        )

        self.assertEqual(merged, [DateRange(local(9), local(11)), DateRange(local(13), local(14))])


class TestIsRangeFree(unittest.TestCase):
    def setUp(self):
        self.rules = monday_rules(ANA_ID)

    def test_free_interval(self):
        self.assertTrue(is_range_free(ANA_ID, DateRange(local(9), local(9, 30)), self.rules, tz=SP))

    def test_interval_must_fit_in_one_free_range(self):
        """Test that an interval crossing the break is not free."""
        self.assertFalse(is_range_free(ANA_ID, DateRange(local(11, 30), local(12, 30)), self.rules, tz=SP))

    def test_interval_outside_working_hours(self):
        self.assertFalse(is_range_free(ANA_ID, DateRange(local(8), local(8, 30)), self.rules, tz=SP))
        self.assertFalse(is_range_free(ANA_ID, DateRange(local(16, 45), local(17, 15)), self.rules, tz=SP))

    def test_interval_overlapping_appointment(self):
        """Test that a booked appointment makes the interval busy."""
        booked = make_appointment(local(10))

        self.assertFalse(
            is_range_free(ANA_ID, DateRange(local(10, 15), local(10, 45)), self.rules, appointments=[booked], tz=SP)
        )
        self.assertTrue(
            is_range_free(ANA_ID, DateRange(local(10, 30), local(11)), self.rules, appointments=[booked], tz=SP)
        )


if __name__ == "__main__":
    unittest.main()
