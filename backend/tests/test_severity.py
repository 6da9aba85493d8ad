"""Tests for tread-depth severity classification."""

import math

import pytest

from inspection_report.engine.severity import (
    ALL_BANDS, ATTENTION, CRITICAL, GOOD, REGULAR, UNKNOWN, classify,
)


class TestBandBoundaries:
    @pytest.mark.parametrize("value,band", [
        (0.0, CRITICAL),
        (1.39, CRITICAL),
        (1.40, ATTENTION),
        (2.8, ATTENTION),
        (2.81, REGULAR),
        (4.5, REGULAR),
        (4.51, GOOD),
        (6.34, GOOD),
        (6.35, UNKNOWN),
    ])
    def test_boundary(self, value, band):
        assert classify(value) == band

    def test_colors(self):
        assert classify(1.0).color == "#FF0000"
        assert classify(2.0).color == "#FF9800"
        assert classify(3.0).color == "#FFD600"
        assert classify(5.0).color == "#4CAF50"
        assert classify(None).color == "#2196F3"

    def test_integers_accepted(self):
        assert classify(5) == GOOD


class TestUnknownInputs:
    def test_none(self):
        assert classify(None) == UNKNOWN

    def test_nan(self):
        assert classify(math.nan) == UNKNOWN

    def test_infinities(self):
        assert classify(math.inf) == UNKNOWN
        assert classify(-math.inf) == UNKNOWN

    def test_non_numeric_string(self):
        assert classify("abc") == UNKNOWN

    def test_bool_is_not_a_reading(self):
        assert classify(True) == UNKNOWN

    def test_never_raises_on_objects(self):
        assert classify(object()) == UNKNOWN


def test_bands_have_distinct_keys():
    keys = [b.key for b in ALL_BANDS]
    assert len(keys) == len(set(keys)) == 5
