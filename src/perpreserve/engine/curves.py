"""Piecewise-linear curve math.

Key Concepts:
- A Line is defined by two points; flat lines (y1 == y2) never divide.
- avg(f, [xl, xu]) of a linear f equals f evaluated at the midpoint.
- A three-segment curve is averaged over a range by weighting each overlapped
  segment's average by the width it covers. The two breakpoints are assumed
  close enough that a single range spans at most two adjacent segments.

Averaging over the [before, after] deviation-ratio range (instead of sampling a
single point) keeps fees continuous across the breakpoints.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from .errors import InvalidRange, UnsupportedRange
from .fixed_point import mul_div


@dataclass(frozen=True)
class Line:
    """Line through (x1, y1) and (x2, y2)."""
    x1: int
    y1: int
    x2: int
    y2: int

    def __post_init__(self):
        if self.y1 != self.y2 and self.x1 == self.x2:
            raise ValueError(f"Vertical line is not a function: {self}")

    @property
    def is_flat(self) -> bool:
        return self.y1 == self.y2


@dataclass(frozen=True)
class Range:
    """Closed interval [lower, upper]."""
    lower: int
    upper: int

    @classmethod
    def between(cls, a: int, b: int) -> "Range":
        """Range covering two values given in any order."""
        return cls(min(a, b), max(a, b))

    @property
    def width(self) -> int:
        return self.upper - self.lower


@dataclass(frozen=True)
class Breakpoints:
    """Domain boundaries: seg1 below lower, seg2 in between, seg3 above upper."""
    lower: int
    upper: int

    def __post_init__(self):
        if self.lower > self.upper:
            raise ValueError(f"Breakpoints out of order: {self.lower} > {self.upper}")


class RangePosition(Enum):
    """Position of a range relative to the two breakpoints."""
    BELOW = "below"
    STRADDLE_LOWER = "straddle_lower"
    MIDDLE = "middle"
    STRADDLE_UPPER = "straddle_upper"
    ABOVE = "above"


def evaluate(line: Line, x: int) -> int:
    """y = m*x + c, with the slope applied as a single multiply-then-divide."""
    if line.is_flat:
        return line.y1
    return line.y1 + mul_div(line.y2 - line.y1, x - line.x1, line.x2 - line.x1)


def average_y(line: Line, x_lower: int, x_upper: int) -> int:
    """Mean height of the line over [x_lower, x_upper]."""
    if line.is_flat:
        return line.y1
    # f((xl + xu) / 2) without rounding the midpoint first
    return line.y1 + mul_div(
        line.y2 - line.y1,
        x_lower + x_upper - 2 * line.x1,
        2 * (line.x2 - line.x1),
    )


def classify_range(breakpoints: Breakpoints, x_range: Range) -> RangePosition:
    """
    Tag the range's position relative to the breakpoints.

    Raises:
        InvalidRange: If lower > upper
        UnsupportedRange: If the range extends below the lower AND above the upper breakpoint
    """
    lower, upper = x_range.lower, x_range.upper
    if lower > upper:
        raise InvalidRange(f"Range lower {lower} exceeds upper {upper}")
    if lower < breakpoints.lower and upper > breakpoints.upper:
        raise UnsupportedRange(
            f"Range [{lower}, {upper}] spans both breakpoints "
            f"[{breakpoints.lower}, {breakpoints.upper}]"
        )

    if upper <= breakpoints.lower:
        return RangePosition.BELOW
    if lower < breakpoints.lower:
        return RangePosition.STRADDLE_LOWER
    if upper <= breakpoints.upper:
        return RangePosition.MIDDLE
    if lower < breakpoints.upper:
        return RangePosition.STRADDLE_UPPER
    return RangePosition.ABOVE


def _weighted_average(parts: List[Tuple[int, int]]) -> int:
    """Blend (average, width) pairs by width."""
    total_width = sum(w for _, w in parts)
    if total_width == 0:
        return parts[0][0]
    weighted = sum(avg * w for avg, w in parts)
    return mul_div(weighted, 1, total_width)


def piecewise_average(
    seg1: Line,
    seg2: Line,
    seg3: Line,
    breakpoints: Breakpoints,
    x_range: Range,
) -> int:
    """
    Width-weighted average of a three-segment curve over x_range.

    Args:
        seg1: Segment used below breakpoints.lower
        seg2: Segment used between the breakpoints
        seg3: Segment used above breakpoints.upper
        breakpoints: Segment domain boundaries
        x_range: Range to average over

    Returns:
        Average y over the range (fixed-point, same units as the segments)
    """
    position = classify_range(breakpoints, x_range)
    lower, upper = x_range.lower, x_range.upper
    b1, b2 = breakpoints.lower, breakpoints.upper

    if position is RangePosition.BELOW:
        parts = [(average_y(seg1, lower, upper), upper - lower)]
    elif position is RangePosition.STRADDLE_LOWER:
        parts = [
            (average_y(seg1, lower, b1), b1 - lower),
            (average_y(seg2, b1, upper), upper - b1),
        ]
    elif position is RangePosition.MIDDLE:
        parts = [(average_y(seg2, lower, upper), upper - lower)]
    elif position is RangePosition.STRADDLE_UPPER:
        parts = [
            (average_y(seg2, lower, b2), b2 - lower),
            (average_y(seg3, b2, upper), upper - b2),
        ]
    else:
        parts = [(average_y(seg3, lower, upper), upper - lower)]

    if len(parts) == 1:
        return parts[0][0]
    return _weighted_average(parts)


@dataclass(frozen=True)
class PiecewiseCurve:
    """Three linear segments joined at two breakpoints."""
    seg1: Line
    seg2: Line
    seg3: Line
    breakpoints: Breakpoints

    def at(self, x: int) -> int:
        """Point evaluation using the segment whose domain contains x."""
        if x <= self.breakpoints.lower:
            return evaluate(self.seg1, x)
        if x <= self.breakpoints.upper:
            return evaluate(self.seg2, x)
        return evaluate(self.seg3, x)

    def average(self, x_range: Range) -> int:
        return piecewise_average(self.seg1, self.seg2, self.seg3, self.breakpoints, x_range)
