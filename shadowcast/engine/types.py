"""Geometry value types and solver configuration.

``Point`` doubles as a 2D vector. ``Line`` is an infinite line given by an
origin and a (not necessarily unit) normal; ``LineSegment`` is a finite,
non-degenerate segment. Intersection queries return ``Intersection`` values
instead of writing to output arguments.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

# Denominators smaller than this are treated as parallel.
PARALLEL_EPSILON = 1e-12


class DegenerateGeometryError(ValueError):
    """Raised when a segment or wall would have zero length or thickness."""


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    @staticmethod
    def from_tuple(t) -> Point:
        if isinstance(t, Point):
            return t
        x, y = t
        return Point(float(x), float(y))

    def to_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def __mul__(self, scalar: float) -> Point:
        return Point(self.x * scalar, self.y * scalar)

    __rmul__ = __mul__

    def __neg__(self) -> Point:
        return Point(-self.x, -self.y)

    def dot(self, other: Point) -> float:
        return self.x * other.x + self.y * other.y

    def cross(self, other: Point) -> float:
        """z component of the 3D cross product."""
        return self.x * other.y - self.y * other.x

    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def distance_to(self, other: Point) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def normalized(self) -> Point:
        """Unit vector in the same direction.

        The zero vector is returned unchanged.
        """
        n = self.length()
        if n == 0.0:
            return self
        return Point(self.x / n, self.y / n)

    def perpendicular(self) -> Point:
        """Counter-clockwise 90 degree rotation."""
        return Point(-self.y, self.x)


@dataclass(frozen=True)
class Line:
    origin: Point
    normal: Point


@dataclass(frozen=True)
class Intersection:
    found: bool
    point: Point | None = None

    def __bool__(self) -> bool:
        return self.found


MISS = Intersection(found=False)


@dataclass(frozen=True)
class LineSegment:
    p1: Point
    p2: Point

    def __post_init__(self) -> None:
        # Accept plain (x, y) tuples; frozen so go through object.__setattr__
        object.__setattr__(self, "p1", Point.from_tuple(self.p1))
        object.__setattr__(self, "p2", Point.from_tuple(self.p2))
        if self.p1 == self.p2:
            raise DegenerateGeometryError(
                f"Zero-length segment at ({self.p1.x}, {self.p1.y})"
            )

    @staticmethod
    def from_coords(x1: float, y1: float, x2: float, y2: float) -> LineSegment:
        return LineSegment(Point(x1, y1), Point(x2, y2))

    def to_tuple(self) -> tuple[float, float, float, float]:
        return (self.p1.x, self.p1.y, self.p2.x, self.p2.y)

    def reversed(self) -> LineSegment:
        return LineSegment(self.p2, self.p1)

    @property
    def direction(self) -> Point:
        return (self.p2 - self.p1).normalized()

    @property
    def normal(self) -> Point:
        """Edge vector rotated clockwise; magnitude equals ``length``."""
        edge = self.p2 - self.p1
        return Point(edge.y, -edge.x)

    @property
    def length(self) -> float:
        return self.p1.distance_to(self.p2)

    def intersect_line(self, line: Line) -> Intersection:
        """Where this segment crosses an infinite line.

        The crossing parameter along the segment must lie in the closed
        interval [0, length], so touching at an endpoint counts as a hit.
        """
        direction = self.direction
        denom = line.normal.dot(direction)
        if abs(denom) < PARALLEL_EPSILON:
            return MISS
        x = (line.normal.dot(line.origin) - line.normal.dot(self.p1)) / denom
        if x < 0.0 or x > self.length:
            return MISS
        return Intersection(True, self.p1 + direction * x)

    def intersect_segment(self, other: LineSegment) -> Intersection:
        """Where this segment crosses ``other``.

        Both segments must cross the other's supporting line. The returned
        point is computed along ``other``. Collinear segments never
        intersect under this test.
        """
        if not self.intersect_line(Line(other.p1, other.normal)):
            return MISS
        return other.intersect_line(Line(self.p1, self.normal))


@dataclass
class VisibilityParams:
    far_reach: float = 1024.0
    corner_epsilon: float = 1e-4
    prefilter_margin: float = 0.01
    wall_thickness: float = 0.02
    light_radius: float = 1.0

    def __post_init__(self) -> None:
        if self.far_reach <= 0:
            raise ValueError(f"far_reach must be positive: {self.far_reach}")
        if self.corner_epsilon <= 0:
            raise ValueError(
                f"corner_epsilon must be positive: {self.corner_epsilon}"
            )
        if self.prefilter_margin < 0:
            raise ValueError(
                f"prefilter_margin must be >= 0: {self.prefilter_margin}"
            )
        if self.wall_thickness <= 0:
            raise ValueError(
                f"wall_thickness must be positive: {self.wall_thickness}"
            )
        if self.light_radius <= 0:
            raise ValueError(
                f"light_radius must be positive: {self.light_radius}"
            )

    @staticmethod
    def from_dict(d: dict | None) -> VisibilityParams:
        if not d:
            return VisibilityParams()
        return VisibilityParams(
            far_reach=d.get("far_reach", 1024.0),
            corner_epsilon=d.get("corner_epsilon", 1e-4),
            prefilter_margin=d.get("prefilter_margin", 0.01),
            wall_thickness=d.get("wall_thickness", 0.02),
            light_radius=d.get("light_radius", 1.0),
        )

    def to_dict(self) -> dict:
        return {
            "far_reach": self.far_reach,
            "corner_epsilon": self.corner_epsilon,
            "prefilter_margin": self.prefilter_margin,
            "wall_thickness": self.wall_thickness,
            "light_radius": self.light_radius,
        }
