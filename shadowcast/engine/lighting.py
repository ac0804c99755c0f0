"""Per-point visibility and light maps.

Where ``visibility.py`` builds the lit region as a polygon, this module asks
the per-pixel question instead: is point P visible from the observer? P is
visible when the sight segment O->P crosses no occluder. Applied to every
pixel centre with a linear distance falloff this gives a light map, which is
how the demo host shades the scene.

``point_visible`` is the scalar reference. ``visibility_mask`` does the same
test for many points at once as an (N x S) NumPy matrix computation, in
chunks to bound memory.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import numpy as np

from .types import PARALLEL_EPSILON, LineSegment, Point

# Points tested per (N x S) block in visibility_mask
_CHUNK = 8192


def point_visible(
    observer, target, segments: Iterable[LineSegment]
) -> bool:
    """True if no occluder crosses the sight segment observer->target.

    Touching counts as crossing (closed intervals on both segments).
    """
    observer = Point.from_tuple(observer)
    target = Point.from_tuple(target)
    if observer == target:
        return True
    sight = LineSegment(observer, target)
    return not any(sight.intersect_segment(seg) for seg in segments)


def segment_array(segments) -> np.ndarray:
    """(S, 4) float64 array of (x1, y1, x2, y2) rows."""
    if isinstance(segments, np.ndarray):
        arr = segments.astype(np.float64)
    else:
        arr = np.array([s.to_tuple() for s in segments], dtype=np.float64)
    return arr.reshape(-1, 4)


def visibility_mask(
    observer,
    points,
    segments: Sequence[LineSegment] | np.ndarray,
) -> np.ndarray:
    """Boolean visibility of each row of ``points`` ((N, 2) array).

    ``segments`` may be a sequence of ``LineSegment`` or an (S, 4) array of
    (x1, y1, x2, y2). Parallel sightlines and zero-length segments never
    block.
    """
    ox, oy = Point.from_tuple(observer).to_tuple()
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    segs = segment_array(segments)
    visible = np.ones(len(pts), dtype=bool)
    if len(pts) == 0 or len(segs) == 0:
        return visible

    # Per-segment values (S,), independent of the target point
    seg_dx = segs[:, 2] - segs[:, 0]
    seg_dy = segs[:, 3] - segs[:, 1]
    d_x1 = segs[:, 0] - ox
    d_y1 = segs[:, 1] - oy
    num_t = d_x1 * seg_dy - d_y1 * seg_dx

    for start in range(0, len(pts), _CHUNK):
        block = pts[start : start + _CHUNK]
        # Sight vectors observer->point, t in [0, 1] spans the segment
        ray_dx = block[:, 0] - ox
        ray_dy = block[:, 1] - oy

        denom = (
            ray_dx[:, None] * seg_dy[None, :]
            - ray_dy[:, None] * seg_dx[None, :]
        )
        valid_denom = np.abs(denom) >= PARALLEL_EPSILON
        safe_denom = np.where(valid_denom, denom, 1.0)

        t = num_t[None, :] / safe_denom
        num_u = (
            d_x1[None, :] * ray_dy[:, None] - d_y1[None, :] * ray_dx[:, None]
        )
        u = num_u / safe_denom

        blocked = (
            valid_denom & (t >= 0) & (t <= 1) & (u >= 0) & (u <= 1)
        )
        visible[start : start + len(block)] = ~blocked.any(axis=1)
    return visible


def pixel_centres(
    width: int,
    height: int,
    half_width: float = 1.0,
    half_height: float = 1.0,
) -> np.ndarray:
    """World coordinates of pixel centres, (height, width, 2), row 0 on top."""
    xs = -half_width + (np.arange(width) + 0.5) * (2.0 * half_width / width)
    ys = half_height - (np.arange(height) + 0.5) * (
        2.0 * half_height / height
    )
    gx, gy = np.meshgrid(xs, ys)
    return np.stack([gx, gy], axis=-1)


def light_map(
    observer,
    segments: Sequence[LineSegment] | np.ndarray,
    width: int,
    height: int,
    radius: float = 1.0,
    half_width: float = 1.0,
    half_height: float = 1.0,
) -> np.ndarray:
    """(height, width) intensities in [0, 1] for the world rectangle.

    Intensity is ``max(0, 1 - distance / radius)`` for visible pixels and 0
    for shadowed ones.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid light map size: {width}x{height}")
    if radius <= 0:
        raise ValueError(f"radius must be positive: {radius}")
    ox, oy = Point.from_tuple(observer).to_tuple()
    centres = pixel_centres(width, height, half_width, half_height)
    flat = centres.reshape(-1, 2)
    mask = visibility_mask((ox, oy), flat, segments)
    dist = np.hypot(flat[:, 0] - ox, flat[:, 1] - oy)
    intensity = np.clip(1.0 - dist / radius, 0.0, 1.0) * mask
    return intensity.reshape(height, width)
