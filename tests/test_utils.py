#!/usr/bin/env python3
"""
Tests for the nested Deadline in stardiff/utils.py.
"""

import unittest

from stardiff.utils import Deadline, OracleResult


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestDeadline(unittest.TestCase):
    """Test Deadline expiry, nesting and cancellation."""

    def setUp(self):
        self.clock = FakeClock()

    def test_remaining_counts_down(self):
        deadline = Deadline(5.0, clock=self.clock)
        self.assertEqual(deadline.remaining(), 5.0)
        self.clock.now += 2.0
        self.assertEqual(deadline.remaining(), 3.0)
        self.assertFalse(deadline.expired())

    def test_expires_and_never_goes_negative(self):
        deadline = Deadline(1.0, clock=self.clock)
        self.clock.now += 10.0
        self.assertTrue(deadline.expired())
        self.assertEqual(deadline.remaining(), 0.0)

    def test_child_bounded_by_own_timeout(self):
        outer = Deadline(10.0, clock=self.clock)
        inner = outer.child(5.0)
        self.assertEqual(inner.remaining(), 5.0)
        self.clock.now += 6.0
        self.assertTrue(inner.expired())
        self.assertFalse(outer.expired())
        self.assertEqual(outer.remaining(), 4.0)

    def test_child_cannot_outlive_parent(self):
        outer = Deadline(2.0, clock=self.clock)
        inner = outer.child(5.0)
        self.assertEqual(inner.remaining(), 2.0)

    def test_cancel_propagates_to_children_only(self):
        outer = Deadline(10.0, clock=self.clock)
        inner = outer.child(5.0)

        inner.cancel()
        self.assertTrue(inner.expired())
        self.assertEqual(inner.remaining(), 0.0)
        self.assertFalse(outer.expired())

        other = outer.child(5.0)
        outer.cancel()
        self.assertTrue(other.expired())
        self.assertTrue(other.cancelled())

    def test_token_is_set_on_cancel(self):
        deadline = Deadline(1.0, clock=self.clock)
        self.assertFalse(deadline.token.is_set())
        deadline.cancel()
        self.assertTrue(deadline.token.is_set())


class TestOracleResult(unittest.TestCase):
    def test_available_unless_spawn_failed(self):
        self.assertTrue(OracleResult(name="python3", accepted=True).available)
        failed = OracleResult(name="python3", accepted=False, spawn_error=FileNotFoundError())
        self.assertFalse(failed.available)


if __name__ == "__main__":
    unittest.main()
