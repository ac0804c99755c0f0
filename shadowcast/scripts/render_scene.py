#!/usr/bin/env python3
"""Render the demo scene from one observer position to a PNG.

Usage:
    python -m shadowcast.scripts.render_scene -o scene.png
    python -m shadowcast.scripts.render_scene -o lit.png --x 0.3 --light
    python -m shadowcast.scripts.render_scene -o debug.png --shadows
"""

import argparse

from shadowcast.engine.lighting import light_map
from shadowcast.engine.occluders import (
    OccluderStore,
    boundary_loop,
    demo_segments,
)
from shadowcast.engine.types import Point, VisibilityParams
from shadowcast.engine.visibility import (
    compute_visibility_polygon,
    shadow_quads,
    visible_fraction,
)
from shadowcast.frontend.render import SceneRenderer


def render_demo(observer, size, light=False, shadows=False, params=None):
    """Render the boundary + demo scene; returns (image, polygon)."""
    params = params or VisibilityParams()
    store = OccluderStore(boundary=boundary_loop(), segments=demo_segments())
    segments = store.snapshot()
    polygon = compute_visibility_polygon(observer, segments, params)
    lm = None
    if light:
        lm = light_map(
            observer, segments, size, size, radius=params.light_radius
        )
    quads = None
    if shadows:
        quads = shadow_quads(observer, segments, params.far_reach)
    renderer = SceneRenderer(size, size)
    img = renderer.render(observer, segments, polygon, shadows=quads, light=lm)
    return img, polygon


def main():
    parser = argparse.ArgumentParser(description="Render the demo scene")
    parser.add_argument("-o", "--output", required=True, help="PNG path")
    parser.add_argument("--x", type=float, default=0.0, help="Observer x")
    parser.add_argument("--y", type=float, default=0.0, help="Observer y")
    parser.add_argument(
        "--size", type=int, default=640, help="Image size in pixels"
    )
    parser.add_argument(
        "--light", action="store_true", help="Shade with the light map"
    )
    parser.add_argument(
        "--shadows", action="store_true", help="Outline shadow quads"
    )
    args = parser.parse_args()
    if args.size <= 0:
        parser.error("--size must be positive")

    observer = Point(args.x, args.y)
    img, polygon = render_demo(observer, args.size, args.light, args.shadows)
    img.save(args.output)
    print(
        f"Wrote {args.output}: {len(polygon)} vertices, "
        f"{visible_fraction(polygon) * 100:.1f}% visible"
    )


if __name__ == "__main__":
    main()
