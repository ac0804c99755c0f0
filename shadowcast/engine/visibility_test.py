"""Tests for the visibility polygon solver."""

import math

import numpy as np
import pytest
from shapely.geometry import Point as ShapelyPoint

from shadowcast.engine.occluders import (
    OccluderStore,
    boundary_loop,
    demo_segments,
)
from shadowcast.engine.types import LineSegment, Point, VisibilityParams
from shadowcast.engine.visibility import (
    angle_key,
    clip_rays,
    close_polygon,
    compute_visibility_polygon,
    deduplicate,
    fan_triangles,
    generate_candidates,
    polygon_vertex_array,
    prefilter,
    shadow_quads,
    solve,
    solve_many,
    sort_by_angle,
    visibility_region,
    visible_area,
    visible_fraction,
)

ORIGIN = Point(0.0, 0.0)
CORNERS = [Point(1, 1), Point(-1, 1), Point(-1, -1), Point(1, -1)]


def _interior_wall():
    return LineSegment.from_coords(0.5, -0.5, 0.5, 0.5)


def _scene_b():
    return boundary_loop() + [_interior_wall()]


def _angle(observer, p):
    return math.atan2(p.y - observer.y, p.x - observer.x) % (2 * math.pi)


def _assert_angles_increasing(observer, points):
    angles = [_angle(observer, p) for p in points]
    for a, b in zip(angles, angles[1:]):
        assert b >= a - 1e-9


# -- Stage tests --


class TestGenerateCandidates:
    def test_two_per_endpoint(self):
        seg = LineSegment.from_coords(0.5, -0.5, 0.5, 0.5)
        cands = generate_candidates(ORIGIN, [seg], 1e-4)
        assert len(cands) == 4
        assert [e for e, _ in cands] == [seg.p1, seg.p1, seg.p2, seg.p2]
        targets = [t for _, t in cands]
        assert seg.p1 not in targets
        assert seg.p2 not in targets

    def test_offsets_perpendicular_to_sightline(self):
        seg = LineSegment.from_coords(0.3, 0.8, -0.6, 0.2)
        for endpoint, target in generate_candidates(ORIGIN, [seg], 1e-4):
            offset = target - endpoint
            assert offset.length() == pytest.approx(1e-4)
            assert abs(offset.dot(endpoint.normalized())) < 1e-12

    def test_offsets_on_both_sides(self):
        seg = LineSegment.from_coords(1, 0, 1, 1)
        cands = generate_candidates(ORIGIN, [seg], 1e-4)
        around_p1 = [t for e, t in cands if e == seg.p1]
        ys = sorted(t.y for t in around_p1)
        assert ys[0] < 0 < ys[1]

    def test_endpoint_at_observer_skipped(self):
        seg = LineSegment.from_coords(0, 0, 1, 0)
        cands = generate_candidates(ORIGIN, [seg], 1e-4)
        assert len(cands) == 2
        assert all(e == seg.p2 for e, _ in cands)


class TestDeduplicate:
    def test_shared_corner_merged(self):
        cands = generate_candidates(ORIGIN, boundary_loop(), 1e-4)
        assert len(cands) == 16
        assert len(deduplicate(cands)) == 8

    def test_first_occurrence_kept(self):
        a = (Point(1, 0), Point(1, 0))
        b = (Point(2, 0), Point(1, 0))
        assert deduplicate([a, b]) == [a]

    def test_near_duplicates_kept(self):
        a = (Point(1, 0), Point(1.0, 0.0))
        b = (Point(1, 0), Point(1.0 + 1e-12, 0.0))
        assert len(deduplicate([a, b])) == 2


class TestPrefilter:
    def test_hidden_corners_dropped(self):
        segs = _scene_b()
        cands = deduplicate(generate_candidates(ORIGIN, segs, 1e-4))
        kept = {e for e, _ in prefilter(ORIGIN, cands, segs, 0.01)}
        assert Point(1.0, 1.0) not in kept
        assert Point(1.0, -1.0) not in kept
        assert Point(-1.0, 1.0) in kept
        assert Point(0.5, 0.5) in kept
        assert Point(0.5, -0.5) in kept

    def test_observer_on_shared_corner(self):
        """Edges meeting under the observer hide nothing."""
        observer = Point(1.0, 1.0)
        segs = boundary_loop()
        cands = deduplicate(generate_candidates(observer, segs, 1e-4))
        assert len(cands) == 6
        assert prefilter(observer, cands, segs, 0.01) == cands

    def test_keeps_all_when_unobstructed(self):
        segs = boundary_loop()
        cands = deduplicate(generate_candidates(ORIGIN, segs, 1e-4))
        assert prefilter(ORIGIN, cands, segs, 0.01) == cands


class TestAngleKey:
    def test_quadrants(self):
        key = angle_key(ORIGIN)
        assert key(Point(1, 0)) == pytest.approx(0.0)
        assert key(Point(0, 1)) == pytest.approx(math.pi / 2)
        assert key(Point(-1, 0)) == pytest.approx(math.pi)
        assert key(Point(0, -1)) == pytest.approx(3 * math.pi / 2)

    def test_below_axis_near_full_turn(self):
        key = angle_key(ORIGIN)
        assert key(Point(1, -1e-6)) > 6.28

    def test_captures_observer(self):
        key = angle_key(Point(1.0, 1.0))
        assert key(Point(2.0, 1.0)) == pytest.approx(0.0)
        assert key(Point(1.0, 2.0)) == pytest.approx(math.pi / 2)

    def test_observer_itself(self):
        assert angle_key(ORIGIN)(ORIGIN) == 0.0

    def test_sort(self):
        pts = [Point(0, -1), Point(-1, 0), Point(1, 0), Point(0, 1)]
        assert sort_by_angle(ORIGIN, pts) == [
            Point(1, 0),
            Point(0, 1),
            Point(-1, 0),
            Point(0, -1),
        ]


class TestClipRays:
    def test_clipped_at_nearest(self):
        segs = _scene_b()
        (hit,) = clip_rays(ORIGIN, [Point(2.0, 0.0)], segs, 1024.0)
        assert hit.x == pytest.approx(0.5)
        assert hit.y == pytest.approx(0.0, abs=1e-12)

    def test_unblocked_ray_reaches_far(self):
        (hit,) = clip_rays(ORIGIN, [Point(0.0, 0.3)], [], 10.0)
        assert hit.x == pytest.approx(0.0)
        assert hit.y == pytest.approx(10.0)

    def test_touching_occluder_not_blocking(self):
        """An occluder starting at the observer does not stop rays leaving
        its free side."""
        segs = boundary_loop() + [LineSegment.from_coords(0, 0, 0, 0.5)]
        (hit,) = clip_rays(ORIGIN, [Point(-0.5, 0.0)], segs, 1024.0)
        assert hit.x == pytest.approx(-1.0)

    def test_touching_occluder_blocks_normal_side(self):
        """Rays into the normal side stop at the observer, giving no point."""
        segs = boundary_loop() + [LineSegment.from_coords(0, -0.5, 0, 0.5)]
        targets = [Point(0.5, 0.1), Point(-0.5, 0.1)]
        (hit,) = clip_rays(ORIGIN, targets, segs, 1024.0)
        assert hit.x == pytest.approx(-1.0)
        assert hit.y == pytest.approx(0.2)

    @pytest.mark.parametrize(
        "seg,passing,blocked",
        [
            # Observer on p1, passing below it
            ((0, 0, 0, 0.5), Point(0.5, -0.1), Point(0.5, 0.1)),
            # Observer on p2, passing above it
            ((0, -0.5, 0, 0), Point(0.5, 0.1), Point(0.5, -0.1)),
        ],
    )
    def test_rays_past_the_touched_end_pass(self, seg, passing, blocked):
        segs = boundary_loop() + [LineSegment.from_coords(*seg)]
        (hit,) = clip_rays(ORIGIN, [passing, blocked], segs, 1024.0)
        assert hit.x == pytest.approx(1.0)
        assert hit.y == pytest.approx(2.0 * passing.y)

    def test_no_targets(self):
        assert clip_rays(ORIGIN, [], boundary_loop(), 1024.0) == []


class TestClosePolygon:
    def test_empty(self):
        assert close_polygon(ORIGIN, []) == []

    def test_structure(self):
        pts = [Point(0, 1), Point(1, 0), Point(-1, 0)]
        poly = close_polygon(ORIGIN, pts)
        assert poly[0] == ORIGIN
        assert poly[1] == Point(1, 0)
        assert poly[-1] == poly[1]
        assert len(poly) == 5


# -- Full solver tests --


class TestComputeVisibilityPolygon:
    def test_unit_square_corners(self):
        """Scenario A: only the boundary, observer at the centre."""
        poly = compute_visibility_polygon(ORIGIN, boundary_loop())
        assert poly[0] == ORIGIN
        assert poly[-1] == poly[1]
        ring = poly[1:-1]
        # 4 corners, each with its two grazing rays
        assert len(ring) == 8

        nearest = []
        for p in ring:
            c = min(CORNERS, key=p.distance_to)
            assert p.distance_to(c) < 1e-3
            if not nearest or nearest[-1] != c:
                nearest.append(c)
        assert nearest == CORNERS
        _assert_angles_increasing(ORIGIN, ring)

    def test_interior_occluder(self):
        """Scenario B: a wall at x=0.5 shadows the right side."""
        poly = compute_visibility_polygon(ORIGIN, _scene_b())
        ring = poly[1:-1]
        for endpoint in (Point(0.5, 0.5), Point(0.5, -0.5)):
            assert any(p.distance_to(endpoint) < 1e-3 for p in ring)

        for p in ring:
            angle = math.atan2(p.y, p.x)
            if abs(angle) < math.pi / 4:
                assert p.x <= 0.5 + 1e-9
        assert Point(1.0, 1.0) not in ring
        assert Point(1.0, -1.0) not in ring
        _assert_angles_increasing(ORIGIN, ring)

    def test_observer_on_occluder_endpoint(self):
        """Scenario C: no exception, finite polygon."""
        observer = Point(0.5, 0.5)
        poly = compute_visibility_polygon(observer, _scene_b())
        assert len(poly) >= 4
        assert poly[0] == observer
        for p in poly:
            assert math.isfinite(p.x) and math.isfinite(p.y)
            assert abs(p.x) <= 1.0 + 1e-6
            assert abs(p.y) <= 1.0 + 1e-6

    def test_observer_on_wall_corner(self):
        store = OccluderStore(boundary=boundary_loop())
        group = store.add_wall((-0.4, 0.2), (0.4, 0.2), 0.02)
        poly = solve(group[0].p1, store)
        assert len(poly) >= 4
        for p in poly:
            assert math.isfinite(p.x) and math.isfinite(p.y)
            assert abs(p.x) <= 1.0 + 1e-9
            assert abs(p.y) <= 1.0 + 1e-9

    def test_observer_on_boundary_corner(self):
        observer = Point(1.0, 1.0)
        poly = compute_visibility_polygon(observer, boundary_loop())
        assert len(poly) >= 4
        assert poly[0] == observer
        assert visible_area(poly) == pytest.approx(4.0, abs=1e-2)

    @pytest.mark.parametrize(
        "observer", [Point(1.0, 0.0), Point(0.3, -1.0), Point(-1.0, 0.6)]
    )
    def test_observer_on_boundary_edge(self, observer):
        """No ray escapes through the edge the observer stands on."""
        poly = compute_visibility_polygon(observer, boundary_loop())
        assert len(poly) >= 4
        for p in poly:
            assert abs(p.x) <= 1.0 + 1e-9
            assert abs(p.y) <= 1.0 + 1e-9
        assert visible_area(poly) == pytest.approx(4.0, abs=1e-2)

    def test_observer_on_wall_face(self):
        """Standing on a wall's top face, nothing below it is lit."""
        store = OccluderStore(boundary=boundary_loop())
        store.add_wall((-0.4, 0.2), (0.4, 0.2), 0.02)
        observer = Point(0.0, 0.21)
        poly = solve(observer, store)
        assert len(poly) >= 4
        for p in poly[1:-1]:
            assert p.y >= 0.21 - 1e-9
        assert visible_area(poly) == pytest.approx(2.0 * 0.79, abs=1e-2)

    def test_idempotent(self):
        segs = boundary_loop() + demo_segments()
        observer = Point(0.31, -0.27)
        first = compute_visibility_polygon(observer, segs)
        second = compute_visibility_polygon(observer, segs)
        assert first == second

    def test_no_occluders(self):
        assert compute_visibility_polygon(ORIGIN, []) == []

    def test_tuple_observer(self):
        a = compute_visibility_polygon((0.0, 0.0), boundary_loop())
        b = compute_visibility_polygon(ORIGIN, boundary_loop())
        assert a == b

    def test_stays_inside_boundary(self):
        segs = boundary_loop() + demo_segments()
        for observer in [Point(0.0, 0.0), Point(-0.8, 0.7), Point(0.6, -0.3)]:
            poly = compute_visibility_polygon(observer, segs)
            for p in poly:
                assert abs(p.x) <= 1.0 + 1e-9
                assert abs(p.y) <= 1.0 + 1e-9

    def test_without_boundary_rays_reach_far(self):
        """With no boundary, unblocked rays end at far_reach."""
        params = VisibilityParams(far_reach=50.0)
        poly = compute_visibility_polygon(ORIGIN, [_interior_wall()], params)
        far = [p for p in poly[1:-1] if p.length() > 1.0]
        assert far
        for p in far:
            assert p.length() == pytest.approx(50.0)

    def test_walls_from_store(self):
        store = OccluderStore(boundary=boundary_loop())
        store.add_wall((0.5, -0.5), (0.5, 0.5), 0.02)
        poly = solve(ORIGIN, store)
        for p in poly[1:-1]:
            if abs(math.atan2(p.y, p.x)) < math.pi / 4 - 1e-2:
                assert p.x <= 0.5

    def test_solve_many_matches_single(self):
        segs = boundary_loop() + demo_segments()
        observers = [(0.0, 0.0), (0.4, 0.4), (-0.7, -0.1)]
        many = solve_many(observers, segs)
        assert many == [compute_visibility_polygon(o, segs) for o in observers]


# -- Host helper tests --


class TestVertexArray:
    def test_shape_and_dtype(self):
        poly = compute_visibility_polygon(ORIGIN, boundary_loop())
        arr = polygon_vertex_array(poly)
        assert arr.shape == (len(poly), 2)
        assert arr.dtype == np.float32
        assert arr[0].tolist() == [0.0, 0.0]

    def test_empty(self):
        assert polygon_vertex_array([]).shape == (0, 2)


class TestFanTriangles:
    def test_count(self):
        poly = compute_visibility_polygon(ORIGIN, boundary_loop())
        tris = fan_triangles(poly)
        assert len(tris) == len(poly) - 2
        assert all(t[0] == ORIGIN for t in tris)
        assert tris[-1][2] == poly[1]

    def test_degenerate(self):
        assert fan_triangles([]) == []


class TestVisibleArea:
    def test_full_square(self):
        poly = compute_visibility_polygon(ORIGIN, boundary_loop())
        assert visible_area(poly) == pytest.approx(4.0, abs=1e-3)
        assert visible_fraction(poly) == pytest.approx(1.0, abs=1e-3)

    def test_shadowed_wedge(self):
        """The wall hides the trapezoid 0.5 <= x <= 1, |y| <= x."""
        poly = compute_visibility_polygon(ORIGIN, _scene_b())
        assert visible_area(poly) == pytest.approx(3.25, abs=1e-2)

    def test_region_contains_observer(self):
        poly = compute_visibility_polygon(Point(-0.3, 0.2), _scene_b())
        region = visibility_region(poly)
        assert region.is_valid
        assert region.contains(ShapelyPoint(-0.3, 0.2))
        assert region.contains(ShapelyPoint(-0.9, -0.9))
        # Behind the wall as seen from the observer
        assert not region.contains(ShapelyPoint(0.9, 0.1))

    def test_empty_region(self):
        assert visibility_region([]).is_empty
        assert visible_area([]) == 0.0


class TestShadowQuads:
    def test_one_quad_per_occluder(self):
        segs = _scene_b()
        quads = shadow_quads(ORIGIN, segs, 10.0)
        assert len(quads) == len(segs)

    def test_quad_geometry(self):
        (quad,) = shadow_quads(ORIGIN, [_interior_wall()], 10.0)
        p1, p2, far2, far1 = quad
        assert p1 == Point(0.5, -0.5)
        assert p2 == Point(0.5, 0.5)
        assert far2.distance_to(p2) == pytest.approx(10.0)
        assert far1.distance_to(p1) == pytest.approx(10.0)
        # Far points continue away from the observer
        assert far2.x > p2.x and far2.y > p2.y
        assert far1.x > p1.x and far1.y < p1.y

    def test_touching_occluder_skipped(self):
        seg = LineSegment.from_coords(0, 0, 0.5, 0)
        assert shadow_quads(ORIGIN, [seg], 10.0) == []
