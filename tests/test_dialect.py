#!/usr/bin/env python3
"""
Tests for dialect header decoding in stardiff/dialect.py.
"""

import unittest

from stardiff.dialect import HEADER_FLAGS, DialectConfig, shift_guard, split_header


class TestFromHeader(unittest.TestCase):
    """Test DialectConfig.from_header."""

    def test_zero_header_disables_everything(self):
        self.assertEqual(DialectConfig.from_header(0x00), DialectConfig())
        self.assertEqual(DialectConfig.from_header(0x00).enabled(), [])

    def test_each_bit_maps_to_one_flag(self):
        for bit, name in enumerate(HEADER_FLAGS):
            with self.subTest(flag=name):
                dialect = DialectConfig.from_header(1 << bit)
                self.assertEqual(dialect.enabled(), [name])

    def test_recursion_never_enabled_from_header(self):
        """All eight bits set still leave recursion off."""
        dialect = DialectConfig.from_header(0xFF)
        self.assertFalse(dialect.allow_recursion)
        self.assertEqual(dialect, DialectConfig.all_features())

    def test_header_round_trip(self):
        dialect = DialectConfig(allow_set=True, allow_bitwise=True)
        self.assertEqual(dialect.to_header(), 0b10010)
        self.assertEqual(DialectConfig.from_header(dialect.to_header()), dialect)


class TestSplitHeader(unittest.TestCase):
    """Test split_header."""

    def test_strips_first_byte(self):
        dialect, source = split_header(b"\x01x = 1.5", DialectConfig())
        self.assertTrue(dialect.allow_float)
        self.assertEqual(source, b"x = 1.5")

    def test_empty_input_keeps_prior_dialect(self):
        prior = DialectConfig(allow_lambda=True)
        dialect, source = split_header(b"", prior)
        self.assertIs(dialect, prior)
        self.assertEqual(source, b"")

    def test_header_only_input_yields_empty_source(self):
        dialect, source = split_header(b"\x02", DialectConfig())
        self.assertTrue(dialect.allow_set)
        self.assertEqual(source, b"")


class TestShiftGuard(unittest.TestCase):
    """Test the left-shift guard."""

    def test_blocks_left_shift_when_bitwise_enabled(self):
        self.assertTrue(shift_guard(DialectConfig(allow_bitwise=True), b"x = 1 << 9"))

    def test_allows_left_shift_when_bitwise_disabled(self):
        self.assertFalse(shift_guard(DialectConfig(), b"x = 1 << 9"))

    def test_allows_other_bitwise_operators(self):
        self.assertFalse(shift_guard(DialectConfig(allow_bitwise=True), b"x = 1 >> 9 | 2"))


if __name__ == "__main__":
    unittest.main()
