# PATH: tests/unit/test_format_money.py
"""
Unit tests for format_money module.

A missing value must never render as zero.
"""

import unittest
from decimal import Decimal

from core.format_money import MISSING_MARKER, format_money, format_quantity, format_signed
from core.math import normalize_to_decimals


class TestFormatMoney(unittest.TestCase):
    """Tests for format_money function."""

    def test_format_string_input(self):
        """Formats string input correctly."""
        self.assertEqual(format_money("123.456"), "123.46")
        self.assertEqual(format_money("0"), "0.00")

    def test_format_decimal_input(self):
        """Formats Decimal input correctly."""
        self.assertEqual(format_money(Decimal("-1500.0000000000000000")), "-1500.00")

    def test_format_int_input(self):
        """Formats int input correctly."""
        self.assertEqual(format_money(100), "100.00")

    def test_none_is_missing_not_zero(self):
        """None renders the missing marker."""
        self.assertEqual(format_money(None), MISSING_MARKER)
        self.assertNotEqual(format_money(None), format_money(0))

    def test_invalid_is_missing(self):
        self.assertEqual(format_money("not_a_number"), MISSING_MARKER)
        self.assertEqual(format_money(True), MISSING_MARKER)

    def test_custom_missing_marker(self):
        self.assertEqual(format_money(None, missing="-"), "-")

    def test_format_custom_decimals(self):
        """Respects custom decimal places."""
        self.assertEqual(format_money("123.456", decimals=0), "123")
        self.assertEqual(format_money("5", decimals=4), "5.0000")

    def test_round_half_up(self):
        self.assertEqual(format_money("0.005"), "0.01")
        self.assertEqual(format_money("-0.005"), "-0.01")

    def test_huge_values(self):
        """u128 balances scaled by decimals keep every digit."""
        value = normalize_to_decimals(2 ** 128 - 1, 8)
        self.assertTrue(format_money(value).startswith("3402823669209384634633746074317.68"))


class TestFormatSigned(unittest.TestCase):

    def test_positive_gets_plus(self):
        self.assertEqual(format_signed(Decimal("12.5")), "+12.50")

    def test_negative(self):
        self.assertEqual(format_signed(Decimal("-1500")), "-1500.00")

    def test_zero_unsigned(self):
        self.assertEqual(format_signed(0), "0.00")

    def test_missing(self):
        self.assertEqual(format_signed(None), MISSING_MARKER)


class TestFormatQuantity(unittest.TestCase):

    def test_trailing_zeros_dropped(self):
        self.assertEqual(format_quantity(Decimal("-300.00000000")), "-300")
        self.assertEqual(format_quantity(Decimal("0.50000000")), "0.5")

    def test_no_exponent_notation(self):
        self.assertEqual(format_quantity(Decimal("1E+3")), "1000")
        self.assertEqual(format_quantity(Decimal("1E-8")), "0.00000001")

    def test_zero_and_missing(self):
        self.assertEqual(format_quantity(Decimal("0E-8")), "0")
        self.assertEqual(format_quantity(None), MISSING_MARKER)


if __name__ == "__main__":
    unittest.main()
