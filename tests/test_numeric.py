"""Tests for the shared numeric policy."""
import math

from irscope.core.numeric import clamp, dot, round_half_up, safe_number


class TestSafeNumber:
    """safe_number never lets a non-finite value through."""

    def test_plain_numbers(self):
        assert safe_number(3) == 3.0
        assert safe_number(-1.5) == -1.5

    def test_numeric_strings(self):
        assert safe_number("2.5") == 2.5

    def test_non_finite_uses_fallback(self):
        assert safe_number(float("nan")) == 0.0
        assert safe_number(float("inf")) == 0.0
        assert safe_number(float("-inf"), fallback=7.0) == 7.0

    def test_garbage_uses_fallback(self):
        assert safe_number(None) == 0.0
        assert safe_number("abc") == 0.0
        assert safe_number({"x": 1}, fallback=-1.0) == -1.0

    def test_bool_is_numeric(self):
        assert safe_number(True) == 1.0

    def test_huge_int_uses_fallback(self):
        assert safe_number(10**400) == 0.0
        assert safe_number(-(10**400), fallback=2.0) == 2.0


class TestClampAndDot:
    """clamp / dot edge cases."""

    def test_clamp_bounds(self):
        assert clamp(5, 0, 1) == 1
        assert clamp(-5, 0, 1) == 0
        assert clamp(0.5, 0, 1) == 0.5

    def test_clamp_nan_maps_to_lower_bound(self):
        assert clamp(math.nan, 2, 3) == 2

    def test_dot_uses_shorter_length(self):
        assert dot([1, 2, 3], [1, 1]) == 3

    def test_dot_ignores_nan(self):
        assert dot([1, float("nan")], [2, 5]) == 2

    def test_clamp_huge_int_maps_to_lower_bound(self):
        assert clamp(10**400, 0, 1) == 0
        assert clamp("2", 0, 1) == 1


class TestRoundHalfUp:
    """Halves round toward +infinity."""

    def test_halves(self):
        assert round_half_up(84.5) == 85
        assert round_half_up(2.5) == 3
        assert round_half_up(-2.5) == -2

    def test_non_halves(self):
        assert round_half_up(84.49) == 84
        assert round_half_up(84.51) == 85
