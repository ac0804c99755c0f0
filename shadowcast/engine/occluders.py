"""Occluder storage: the world boundary, a base scene, and drawn walls.

A drawn wall is a thin rectangle rather than a single segment, so the solver
never has to deal with a zero-width occluder seen exactly edge-on. Each wall
contributes four segments that are added and undone together.

The store is the only state that survives between solves. Hosts read it via
``snapshot()``, which returns an immutable tuple that can be handed to the
solver (possibly on another thread) while the store keeps changing.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator

from .types import DegenerateGeometryError, LineSegment, Point

# Corners of the demo scene: a triangle and a square, both drawn as
# raw segments in the [-1, 1] world.
_DEMO_COORDS = [
    # Triangle
    (0.1, 0.1, 0.2, 0.2),
    (0.1, 0.1, 0.2, 0.0),
    (0.2, 0.2, 0.2, 0.0),
    # Square
    (-0.5, -0.5, -0.5, -0.2),
    (-0.5, -0.5, -0.2, -0.5),
    (-0.2, -0.2, -0.5, -0.2),
    (-0.2, -0.2, -0.2, -0.5),
]


def wall_segments(a, b, thickness: float) -> list[LineSegment]:
    """Four edges of a rectangle of the given thickness centred on a->b.

    The loop winds clockwise, so each edge's normal points into the wall.
    """
    if thickness <= 0:
        raise DegenerateGeometryError(
            f"Wall thickness must be positive: {thickness}"
        )
    a = Point.from_tuple(a)
    b = Point.from_tuple(b)
    offset = LineSegment(a, b).normal.normalized() * (thickness / 2.0)
    a_right, b_right = a + offset, b + offset
    a_left, b_left = a - offset, b - offset
    return [
        LineSegment(b_right, a_right),
        LineSegment(a_right, a_left),
        LineSegment(a_left, b_left),
        LineSegment(b_left, b_right),
    ]


def boundary_loop(
    half_width: float = 1.0, half_height: float = 1.0
) -> list[LineSegment]:
    """Closed rectangular world boundary centred on the origin.

    The loop winds counter-clockwise, so each edge's normal points out of
    the world.
    """
    w, h = half_width, half_height
    corners = [Point(-w, -h), Point(w, -h), Point(w, h), Point(-w, h)]
    return [LineSegment(corners[i], corners[(i + 1) % 4]) for i in range(4)]


def demo_segments() -> list[LineSegment]:
    return [LineSegment.from_coords(*c) for c in _DEMO_COORDS]


class OccluderStore:
    """Ordered occluder collection with undoable wall groups.

    ``boundary`` and ``segments`` form the base scene, which
    ``remove_last_wall`` never touches. Walls are kept as a stack of
    four-segment groups.
    """

    def __init__(
        self,
        boundary: Iterable[LineSegment] = (),
        segments: Iterable[LineSegment] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._boundary: tuple[LineSegment, ...] = tuple(boundary)
        self._base: tuple[LineSegment, ...] = tuple(segments)
        self._walls: list[tuple[LineSegment, ...]] = []

    def add_wall(
        self, a, b, thickness: float
    ) -> tuple[LineSegment, ...]:
        group = tuple(wall_segments(a, b, thickness))
        with self._lock:
            self._walls.append(group)
        return group

    def remove_last_wall(self) -> tuple[LineSegment, ...] | None:
        """Undo the most recent wall. Returns it, or None if there is none."""
        with self._lock:
            if not self._walls:
                return None
            return self._walls.pop()

    def replace(self, segments: Iterable[LineSegment]) -> None:
        """Swap the base scene for ``segments`` and drop all walls.

        The boundary is kept.
        """
        base = tuple(segments)
        with self._lock:
            self._base = base
            self._walls = []

    @property
    def wall_count(self) -> int:
        with self._lock:
            return len(self._walls)

    def snapshot(self) -> tuple[LineSegment, ...]:
        with self._lock:
            walls = [seg for group in self._walls for seg in group]
            return self._boundary + self._base + tuple(walls)

    def segments(self) -> tuple[LineSegment, ...]:
        return self.snapshot()

    def __len__(self) -> int:
        with self._lock:
            return (
                len(self._boundary)
                + len(self._base)
                + 4 * len(self._walls)
            )

    def __iter__(self) -> Iterator[LineSegment]:
        return iter(self.snapshot())
