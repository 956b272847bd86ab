"""Tests for piecewise-linear curve math and fixed-point helpers."""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from perpreserve.engine.curves import (
    Breakpoints,
    Line,
    PiecewiseCurve,
    Range,
    RangePosition,
    average_y,
    classify_range,
    evaluate,
    piecewise_average,
)
from perpreserve.engine.errors import InvalidRange, UnsupportedRange
from perpreserve.engine.fixed_point import ONE, apply_perc, mul_div, mul_div_up, to_fixed


FN1 = Line(0, 5, 10, 25)
FN2 = Line(0, 7, 10, 37)


class TestFixedPoint:
    """Integer arithmetic helpers."""

    def test_mul_div_truncates_toward_zero(self):
        """Negative results keep the magnitude of their positive mirror."""
        assert mul_div(7, 1, 2) == 3
        assert mul_div(-7, 1, 2) == -3
        assert mul_div(7, -1, 2) == -3

    def test_mul_div_up(self):
        """Rounds up on any remainder."""
        assert mul_div_up(7, 1, 2) == 4
        assert mul_div_up(8, 1, 2) == 4

    def test_apply_perc_small_negative(self):
        """Negative percentages round toward zero, not toward -inf."""
        assert apply_perc(-ONE // 100, 150) == -1
        assert apply_perc(ONE // 100, 150) == 1
        assert apply_perc(0, 150) == 0

    def test_to_fixed(self):
        """Decimal conversion is exact for short decimals."""
        assert to_fixed(0.01, 8) == ONE // 100
        assert to_fixed(1.1, 8) == 110_000_000
        assert to_fixed(1.0, 18) == 10 ** 18


class TestLine:
    """Single segment evaluation."""

    def test_flat_line_constant(self):
        """Flat segment returns y1 for every x."""
        flat = Line(3, 42, 3, 42)
        for x in (-100, 0, 3, 10 ** 12):
            assert evaluate(flat, x) == 42
            assert average_y(flat, x, x + 5) == 42

    def test_vertical_line_rejected(self):
        """A vertical non-flat line is not a function."""
        with pytest.raises(ValueError):
            Line(1, 0, 1, 5)

    def test_evaluate(self):
        """Point evaluation on a sloped line."""
        assert evaluate(FN1, 0) == 5
        assert evaluate(FN1, 10) == 25
        assert evaluate(FN1, 5) == 15

    def test_average_single_segment(self):
        """Average over a range equals the value at its midpoint."""
        assert average_y(FN1, 10, 20) == 35
        assert average_y(FN2, 40, 50) == 142

    def test_average_negative_slope_truncates(self):
        """Negative slopes truncate toward zero."""
        assert average_y(Line(0, 0, 3, -10), 0, 1) == -1


class TestRangeClassification:
    """Five-way tagging relative to the breakpoints."""

    def test_positions(self):
        """Each position is recognised."""
        bp = Breakpoints(10, 20)
        assert classify_range(bp, Range(0, 10)) is RangePosition.BELOW
        assert classify_range(bp, Range(5, 15)) is RangePosition.STRADDLE_LOWER
        assert classify_range(bp, Range(10, 20)) is RangePosition.MIDDLE
        assert classify_range(bp, Range(15, 25)) is RangePosition.STRADDLE_UPPER
        assert classify_range(bp, Range(20, 30)) is RangePosition.ABOVE

    def test_invalid_range(self):
        """lower > upper is rejected."""
        with pytest.raises(InvalidRange):
            classify_range(Breakpoints(10, 20), Range(15, 5))

    def test_unsupported_range(self):
        """A range spanning both breakpoints is rejected."""
        with pytest.raises(UnsupportedRange):
            classify_range(Breakpoints(10, 20), Range(5, 25))

    def test_between_orders_values(self):
        """Range.between accepts values in any order."""
        assert Range.between(9, 3) == Range(3, 9)


class TestPiecewiseAverage:
    """Width-weighted averages across segments."""

    def test_middle_equals_segment_average(self):
        """A range inside the middle segment averages seg2 alone."""
        bp = Breakpoints(0, 100)
        seg1 = Line(0, 1000, 1, 1000)
        seg3 = Line(0, -1000, 1, -1000)
        for lower, upper in ((10, 20), (0, 100), (33, 34)):
            assert piecewise_average(seg1, FN2, seg3, bp, Range(lower, upper)) == average_y(
                FN2, lower, upper
            )

    def test_straddle_lower(self):
        """Blend of seg1 and seg2 across the lower breakpoint."""
        bp = Breakpoints(30, 1000)
        assert piecewise_average(FN1, FN2, FN2, bp, Range(20, 40)) == 83

    def test_straddle_upper(self):
        """Blend of seg2 and seg3 across the upper breakpoint."""
        bp = Breakpoints(0, 30)
        assert piecewise_average(FN1, FN1, FN2, bp, Range(20, 40)) == 83

    def test_zero_width_range(self):
        """A point range returns the segment value at that point."""
        bp = Breakpoints(0, 100)
        assert piecewise_average(FN1, FN1, FN1, bp, Range(5, 5)) == 15

    def test_curve_object(self):
        """PiecewiseCurve dispatches point and range queries."""
        curve = PiecewiseCurve(FN1, FN2, FN1, Breakpoints(30, 1000))
        assert curve.at(10) == 25
        assert curve.at(40) == 127
        assert curve.average(Range(20, 40)) == 83
