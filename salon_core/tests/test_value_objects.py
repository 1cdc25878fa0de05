"""
Tests for domain/value_objects.py

Covers phone normalization, email validation, money arithmetic and
formatting, durations and date ranges.
"""

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from salon_core.domain.errors import (
    CurrencyMismatchError,
    InvalidDateRangeError,
    InvalidEmailError,
    InvalidPhoneError,
    NegativeValueError,
    ValidationError,
)
from salon_core.domain.value_objects import DateRange, Duration, Email, Money, Phone


class TestPhone(unittest.TestCase):
    def test_formatted_mobile_is_normalized(self):
        """Test that punctuation is dropped and the country code added."""
        phone = Phone.create("(11) 98765-4321")

        self.assertEqual(phone.value, "5511987654321")
        self.assertTrue(phone.is_mobile)
        self.assertEqual(phone.country_code, "55")

    def test_number_with_country_code_is_kept(self):
        """Test that a number already carrying the country code is not prefixed twice."""
        self.assertEqual(Phone.create("+55 11 98765-4321").value, "5511987654321")

    def test_landline(self):
        """Test that ten-digit landlines are accepted."""
        phone = Phone.create("11 3333-4444")

        self.assertEqual(phone.value, "551133334444")
        self.assertFalse(phone.is_mobile)
        self.assertEqual(phone.format(), "(11) 3333-4444")

    def test_display_format(self):
        """Test the display format of a mobile number."""
        self.assertEqual(Phone.create("11987654321").format(), "(11) 98765-4321")

    def test_same_number_in_different_formats_is_equal(self):
        """Test that equality is by canonical value."""
        self.assertEqual(Phone.create("(11) 98765-4321"), Phone.create("5511987654321"))

    def test_invalid_numbers(self):
        """Test that short numbers, bad area codes and mobiles without 9 are rejected."""
        for raw in ("123", "", "0198765432", "11887654321", "55119876543210"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidPhoneError):
                    Phone.create(raw)


class TestEmail(unittest.TestCase):
    def test_email_is_lowercased_and_trimmed(self):
        """Test that emails are stored in canonical form."""
        email = Email.create("  Ana@Example.COM ")

        self.assertEqual(email.value, "ana@example.com")
        self.assertEqual(email.domain, "example.com")

    def test_invalid_email(self):
        """Test that malformed and empty addresses are rejected."""
        for raw in ("not-an-email", "ana@", "", "   "):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidEmailError):
                    Email.create(raw)


class TestMoney(unittest.TestCase):
    def test_amount_is_rounded_half_up(self):
        """Test that amounts are quantized to cents."""
        self.assertEqual(Money(Decimal("10.005")).amount, Decimal("10.01"))

    def test_negative_amount_rejected(self):
        """Test that money can never be negative."""
        with self.assertRaises(NegativeValueError):
            Money(Decimal("-1"))

    def test_invalid_amount_rejected(self):
        """Test that non-numeric amounts raise a validation error."""
        with self.assertRaises(ValidationError):
            Money("abc")

    def test_brl_format(self):
        """Test Brazilian thousands and decimal separators."""
        self.assertEqual(Money(Decimal("1234.5")).format(), "R$ 1.234,50")
        self.assertEqual(Money.from_cents(12345).format(), "R$ 123,45")

    def test_usd_format(self):
        """Test that other currencies use the dot decimal separator."""
        self.assertEqual(Money(Decimal("1234.5"), "usd").format(), "$1,234.50")

    def test_arithmetic(self):
        """Test addition, subtraction and multiplication."""
        total = Money(Decimal("50")) + Money(Decimal("30.50"))

        self.assertEqual(total.amount, Decimal("80.50"))
        self.assertEqual((total - Money(Decimal("0.50"))).amount, Decimal("80.00"))
        self.assertEqual((Money(Decimal("50")) * 3).to_cents(), 15000)

    def test_subtraction_below_zero_rejected(self):
        """Test that subtraction cannot produce a negative amount."""
        with self.assertRaises(NegativeValueError):
            Money(Decimal("10")) - Money(Decimal("20"))

    def test_currency_mismatch(self):
        """Test that amounts in different currencies cannot be combined."""
        with self.assertRaises(CurrencyMismatchError):
            Money(Decimal("10"), "BRL") + Money(Decimal("10"), "USD")

    def test_zero(self):
        self.assertTrue(Money.zero().is_zero())


class TestDuration(unittest.TestCase):
    def test_format(self):
        """Test the compact display format."""
        self.assertEqual(Duration(90).format(), "1h30min")
        self.assertEqual(Duration(45).format(), "45min")
        self.assertEqual(Duration(120).format(), "2h")

    def test_from_hours(self):
        self.assertEqual(Duration.from_hours(1.5).minutes, 90)

    def test_negative_rejected(self):
        """Test that negative durations are rejected."""
        with self.assertRaises(NegativeValueError):
            Duration(-5)

    def test_non_integer_rejected(self):
        """Test that fractional minutes and booleans are rejected."""
        for raw in (1.5, True):
            with self.subTest(raw=raw):
                with self.assertRaises(ValidationError):
                    Duration(raw)

    def test_subtraction_below_zero_rejected(self):
        with self.assertRaises(NegativeValueError):
            Duration(30) - Duration(45)

    def test_ordering(self):
        self.assertLess(Duration(30), Duration(45))


class TestDateRange(unittest.TestCase):
    def setUp(self):
        self.base = datetime(2030, 1, 7, 13, 0, tzinfo=timezone.utc)

    def range(self, start_minutes: int, end_minutes: int) -> DateRange:
        return DateRange(self.base + timedelta(minutes=start_minutes), self.base + timedelta(minutes=end_minutes))

    def test_start_after_end_rejected(self):
        """Test that an inverted range is rejected."""
        with self.assertRaises(InvalidDateRangeError):
            self.range(30, 0)

    def test_touching_ranges_do_not_overlap(self):
        """Test that back-to-back ranges are not considered overlapping."""
        self.assertFalse(self.range(0, 30).overlaps(self.range(30, 60)))
        self.assertTrue(self.range(0, 31).overlaps(self.range(30, 60)))

    def test_contains_is_inclusive(self):
        """Test that both ends of a range are contained in it."""
        current = self.range(0, 30)

        self.assertTrue(current.contains(current.start))
        self.assertTrue(current.contains(current.end))
        self.assertFalse(current.contains(current.end + timedelta(seconds=1)))

    def test_contains_range(self):
        self.assertTrue(self.range(0, 60).contains_range(self.range(0, 30)))
        self.assertFalse(self.range(0, 60).contains_range(self.range(45, 75)))

    def test_subtract_from_middle_leaves_two_parts(self):
        """Test that removing an inner range splits the range in two."""
        parts = self.range(0, 120).subtract(self.range(30, 60))

        self.assertEqual(parts, [self.range(0, 30), self.range(60, 120)])

    def test_subtract_non_overlapping(self):
        """Test that subtracting a disjoint range changes nothing."""
        self.assertEqual(self.range(0, 30).subtract(self.range(60, 90)), [self.range(0, 30)])

    def test_subtract_covering_range(self):
        self.assertEqual(self.range(30, 60).subtract(self.range(0, 120)), [])

    def test_duration(self):
        current = self.range(0, 90)

        self.assertEqual(current.duration_minutes(), 90)
        self.assertEqual(current.duration_hours(), 1.5)
        self.assertTrue(self.range(10, 10).is_empty())


if __name__ == "__main__":
    unittest.main()
