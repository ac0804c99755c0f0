"""Visibility polygon from a single observer among opaque segments.

The polygon is built by an angular sweep. Rays are cast from the observer
past every occluder endpoint, offset a tiny distance to either side of it.
A single ray through a corner cannot tell which side of the corner is lit,
while the offset pair grazes just past it on both sides: one ray stops on the
near surface, the other continues to whatever lies behind. Each ray is
clipped at the nearest occluder it hits, and the hit points, sorted by
angle, form the polygon.

Pipeline (``compute_visibility_polygon``):

  1. generate_candidates  two offset targets per endpoint
  2. deduplicate          exact-value duplicates removed (shared corners)
  3. prefilter            endpoints hidden behind another occluder dropped
  4. sort_by_angle        angular order around the observer
  5. clip_rays            each ray stopped at its nearest occluder
  6. close_polygon        re-sort, close the fan, prepend the observer

The result is ``[O, p0, p1, ..., p(n-1), p0]``, ready to draw as a triangle
fan centred on the observer. Cost is O(candidates * segments) with no spatial
index, which is fine for scenes of tens of occluders.

Also provides helpers for hosts: a float32 vertex array for upload, explicit
fan triangles, a shapely region for area queries, and per-occluder shadow
quads for debug drawing.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import numpy as np
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon

from .lighting import segment_array
from .occluders import OccluderStore
from .types import PARALLEL_EPSILON, LineSegment, Point, VisibilityParams

# (raw endpoint, ray target)
Candidate = tuple[Point, Point]

# Hits closer than this to the observer mean the observer is touching the
# occluder.
_SELF_HIT_DISTANCE = 1e-9

_REFERENCE_AXIS = Point(1.0, 0.0)


def generate_candidates(
    observer: Point,
    segments: Iterable[LineSegment],
    epsilon: float,
) -> list[Candidate]:
    """Ray targets for every occluder endpoint.

    Each endpoint yields two targets displaced by ``epsilon`` to either side,
    perpendicular to the observer->endpoint direction. The endpoint itself
    is kept alongside each target for the prefilter. Endpoints that
    coincide with the observer have no direction and are skipped.
    """
    candidates: list[Candidate] = []
    for seg in segments:
        for endpoint in (seg.p1, seg.p2):
            to_endpoint = endpoint - observer
            if to_endpoint.length() < PARALLEL_EPSILON:
                continue
            offset = to_endpoint.perpendicular().normalized() * epsilon
            candidates.append((endpoint, endpoint - offset))
            candidates.append((endpoint, endpoint + offset))
    return candidates


def deduplicate(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Drop candidates whose target exactly equals an earlier one."""
    seen: set[Point] = set()
    result: list[Candidate] = []
    for endpoint, target in candidates:
        if target in seen:
            continue
        seen.add(target)
        result.append((endpoint, target))
    return result


def _endpoint_occluded(
    observer: Point,
    endpoint: Point,
    segments: Sequence[LineSegment],
    margin: float,
) -> bool:
    sight = LineSegment(observer, endpoint)
    limit = sight.length - margin
    for seg in segments:
        hit = sight.intersect_segment(seg)
        if not hit:
            continue
        dist = observer.distance_to(hit.point)
        if _SELF_HIT_DISTANCE <= dist < limit:
            return True
    return False


def prefilter(
    observer: Point,
    candidates: Iterable[Candidate],
    segments: Sequence[LineSegment],
    margin: float,
) -> list[Candidate]:
    """Drop candidates whose endpoint is hidden behind some occluder.

    An endpoint is hidden when the sightline to it is crossed more than
    ``margin`` before reaching it; the margin keeps segments meeting at the
    endpoint from hiding it. Occluders the observer stands on never hide
    anything here; ``clip_rays`` decides which side of them is blocked.
    """
    occluded: dict[Point, bool] = {}
    result: list[Candidate] = []
    for endpoint, target in candidates:
        if endpoint not in occluded:
            occluded[endpoint] = _endpoint_occluded(
                observer, endpoint, segments, margin
            )
        if not occluded[endpoint]:
            result.append((endpoint, target))
    return result


def angle_key(observer: Point, axis: Point = _REFERENCE_AXIS):
    """Sort key: angle of a point around ``observer`` in [0, 2*pi).

    Measured from ``axis`` (unit length) counter-clockwise. The arccosine
    gives [0, pi]; the sign of the perpendicular component picks the half
    turn.
    """

    def key(p: Point) -> float:
        d = (p - observer).normalized()
        if d.x == 0.0 and d.y == 0.0:
            return 0.0
        angle = math.acos(max(-1.0, min(1.0, d.dot(axis))))
        if axis.cross(d) < 0.0:
            angle = 2.0 * math.pi - angle
        return angle

    return key


def sort_by_angle(observer: Point, points: Iterable[Point]) -> list[Point]:
    return sorted(points, key=angle_key(observer))


def clip_rays(
    observer: Point,
    targets: Iterable[Point],
    segments: Sequence[LineSegment],
    far_reach: float,
) -> list[Point]:
    """Extend each observer->target ray to ``far_reach`` and stop it at the
    first occluder along the way.

    All rays are intersected with all segments as one (R x S) matrix, with
    ray parameter s and segment parameter u both in [0, 1].

    The observer may stand on an occluder. It is taken to be on the side
    opposite the occluder's normal (the left of p1->p2, the free side of a
    clockwise wall or a counter-clockwise boundary). Such an occluder blocks
    the rays that leave toward its normal side, except those leaving past
    the end the observer stands on. A ray blocked right at the observer
    gives no point.
    """
    origin = np.array(observer.to_tuple())
    dirs = np.array(
        [(t - observer).normalized().to_tuple() for t in targets],
        dtype=np.float64,
    ).reshape(-1, 2) * far_reach
    far = origin + dirs
    segs = segment_array(segments)
    if len(dirs) == 0 or len(segs) == 0:
        return [Point(float(x), float(y)) for x, y in far]

    p1_rel = segs[:, :2] - origin
    p2_rel = segs[:, 2:] - origin
    ex = segs[:, 2] - segs[:, 0]
    ey = segs[:, 3] - segs[:, 1]
    dx = dirs[:, 0:1]
    dy = dirs[:, 1:2]

    # cross(d, e), which is also d . normal
    denom = dx * ey - dy * ex
    valid = np.abs(denom) >= PARALLEL_EPSILON
    safe = np.where(valid, denom, 1.0)
    s = (p1_rel[:, 0] * ey - p1_rel[:, 1] * ex) / safe
    u = (p1_rel[:, 0] * dy - p1_rel[:, 1] * dx) / safe
    hit = valid & (s >= 0) & (s <= 1) & (u >= 0) & (u <= 1)

    dist = s * far_reach
    along = dx * ex + dy * ey
    at_p1 = np.hypot(p1_rel[:, 0], p1_rel[:, 1]) < _SELF_HIT_DISTANCE
    at_p2 = np.hypot(p2_rel[:, 0], p2_rel[:, 1]) < _SELF_HIT_DISTANCE
    crosses = (
        (denom > 0) & ~(at_p1 & (along < 0)) & ~(at_p2 & (along > 0))
    )
    hit &= (dist >= _SELF_HIT_DISTANCE) | crosses
    dist = np.where(hit, dist, np.inf)

    nearest = np.argmin(dist, axis=1)
    clipped: list[Point] = []
    for i, j in enumerate(nearest):
        if np.isinf(dist[i, j]):
            clipped.append(Point(float(far[i, 0]), float(far[i, 1])))
        elif dist[i, j] >= _SELF_HIT_DISTANCE:
            step = s[i, j]
            clipped.append(
                Point(
                    float(origin[0] + step * dirs[i, 0]),
                    float(origin[1] + step * dirs[i, 1]),
                )
            )
    return clipped


def close_polygon(observer: Point, points: Iterable[Point]) -> list[Point]:
    ordered = sort_by_angle(observer, points)
    if not ordered:
        return []
    return [observer, *ordered, ordered[0]]


def compute_visibility_polygon(
    observer,
    segments: Iterable[LineSegment],
    params: VisibilityParams | None = None,
) -> list[Point]:
    """Closed visibility fan around ``observer``.

    Returns ``[]`` when there are no occluders to cast rays toward; callers
    should always include a closed boundary (see ``boundary_loop``).
    """
    params = params or VisibilityParams()
    observer = Point.from_tuple(observer)
    segments = tuple(segments)

    candidates = generate_candidates(
        observer, segments, params.corner_epsilon
    )
    candidates = deduplicate(candidates)
    candidates = prefilter(
        observer, candidates, segments, params.prefilter_margin
    )
    targets = sort_by_angle(observer, [t for _, t in candidates])
    clipped = clip_rays(observer, targets, segments, params.far_reach)
    return close_polygon(observer, clipped)


def solve(
    observer,
    occluders: OccluderStore | Iterable[LineSegment],
    params: VisibilityParams | None = None,
) -> list[Point]:
    """``compute_visibility_polygon`` against a store snapshot or a list."""
    if isinstance(occluders, OccluderStore):
        occluders = occluders.snapshot()
    return compute_visibility_polygon(observer, occluders, params)


def solve_many(
    observers: Iterable,
    occluders: OccluderStore | Iterable[LineSegment],
    params: VisibilityParams | None = None,
) -> list[list[Point]]:
    """Solve several observers against one occluder snapshot."""
    if isinstance(occluders, OccluderStore):
        snapshot = occluders.snapshot()
    else:
        snapshot = tuple(occluders)
    return [
        compute_visibility_polygon(o, snapshot, params) for o in observers
    ]


# -- host helpers --


def polygon_vertex_array(polygon: Sequence[Point]) -> np.ndarray:
    """(N, 2) float32 array of the fan, in order, for a vertex buffer."""
    return np.array(
        [p.to_tuple() for p in polygon], dtype=np.float32
    ).reshape(-1, 2)


def fan_triangles(
    polygon: Sequence[Point],
) -> list[tuple[Point, Point, Point]]:
    """The fan as explicit (observer, a, b) triangles."""
    if len(polygon) < 4:
        return []
    centre = polygon[0]
    return [
        (centre, polygon[i], polygon[i + 1])
        for i in range(1, len(polygon) - 1)
    ]


def _valid_polygon(ring) -> ShapelyPolygon:
    region = ShapelyPolygon(ring)
    if not region.is_valid:
        region = region.buffer(0)
    return region


def visibility_region(polygon: Sequence[Point]) -> ShapelyPolygon:
    """Shapely polygon of the visible region.

    Built from the fan ring without the observer and the closing vertex.
    When the observer stands on an occluder it is itself a corner of the
    region, and is put back between the last and first vertex. Empty when
    fewer than three ring vertices remain.
    """
    ring = [p.to_tuple() for p in polygon[1:-1]]
    if len(ring) < 3:
        return ShapelyPolygon()
    region = _valid_polygon(ring)
    observer = polygon[0].to_tuple()
    if not region.covers(ShapelyPoint(observer)):
        region = _valid_polygon([observer, *ring])
    return region


def visible_area(polygon: Sequence[Point]) -> float:
    return visibility_region(polygon).area


def visible_fraction(
    polygon: Sequence[Point],
    half_width: float = 1.0,
    half_height: float = 1.0,
) -> float:
    """Share of the world rectangle covered by the visible region."""
    return visible_area(polygon) / (4.0 * half_width * half_height)


def shadow_quads(
    observer,
    segments: Iterable[LineSegment],
    far_reach: float,
) -> list[tuple[Point, Point, Point, Point]]:
    """Shadow volume of each occluder as a quad (p1, p2, far2, far1).

    The far edge is each endpoint pushed ``far_reach`` further along the
    observer->endpoint direction. Occluders touching the observer are
    skipped.
    """
    observer = Point.from_tuple(observer)
    quads: list[tuple[Point, Point, Point, Point]] = []
    for seg in segments:
        d1 = seg.p1 - observer
        d2 = seg.p2 - observer
        if d1.length() < PARALLEL_EPSILON or d2.length() < PARALLEL_EPSILON:
            continue
        quads.append(
            (
                seg.p1,
                seg.p2,
                seg.p2 + d2.normalized() * far_reach,
                seg.p1 + d1.normalized() * far_reach,
            )
        )
    return quads
