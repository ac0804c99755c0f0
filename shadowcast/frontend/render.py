"""Pillow rendering of a shadowcast scene.

World coordinates are centred on the origin with y pointing up; image pixels
have their origin at the top-left with y pointing down. A 640x640 image of
the default [-1, 1] world maps pixel (cx, cy) to (cx/320 - 1, 1 - cy/320).

Used by ``app.py`` for the interactive view and by
``scripts/render_scene.py`` for PNG output.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from PIL import Image, ImageDraw

from ..engine.types import LineSegment, Point
from ..engine.visibility import fan_triangles

BACKGROUND = (16, 16, 24)
LIT_FILL = (236, 226, 170)
SHADOW_OUTLINE = (120, 60, 60)
WALL_COLOR = (80, 160, 255)
OBSERVER_COLOR = (255, 64, 64)


class SceneRenderer:
    """Renders occluders and a visibility polygon to a Pillow image."""

    def __init__(
        self,
        width_px: int = 640,
        height_px: int = 640,
        half_width: float = 1.0,
        half_height: float = 1.0,
        line_scale: int = 1,
    ):
        self.width_px = width_px
        self.height_px = height_px
        self.half_width = half_width
        self.half_height = half_height
        self.line_scale = line_scale

    def _lw(self, base_width):
        return max(1, round(base_width * self.line_scale))

    def world_to_px(self, x, y):
        px = (x + self.half_width) / (2 * self.half_width) * self.width_px
        py = (self.half_height - y) / (2 * self.half_height) * self.height_px
        return px, py

    def px_to_world(self, px, py):
        x = px / self.width_px * 2 * self.half_width - self.half_width
        y = self.half_height - py / self.height_px * 2 * self.half_height
        return x, y

    def _poly_px(self, points):
        return [self.world_to_px(p.x, p.y) for p in points]

    def render(
        self,
        observer: Point,
        segments: Sequence[LineSegment],
        polygon: Sequence[Point] | None = None,
        shadows=None,
        light: np.ndarray | None = None,
    ) -> Image.Image:
        """Draw the scene.

        ``light`` is a (height, width) intensity array from
        ``lighting.light_map``; when given it replaces the polygon fill.
        ``shadows`` are quads from ``visibility.shadow_quads``.
        """
        if light is not None:
            gray = (np.clip(light, 0.0, 1.0) * 255).astype(np.uint8)
            img = Image.fromarray(gray).convert("RGB")
            if img.size != (self.width_px, self.height_px):
                img = img.resize(
                    (self.width_px, self.height_px), Image.Resampling.BILINEAR
                )
        else:
            img = Image.new("RGB", (self.width_px, self.height_px), BACKGROUND)
        draw = ImageDraw.Draw(img)

        if light is None and polygon is not None:
            for tri in fan_triangles(polygon):
                draw.polygon(self._poly_px(tri), fill=LIT_FILL)

        for quad in shadows or []:
            draw.polygon(
                self._poly_px(quad), outline=SHADOW_OUTLINE, width=self._lw(1)
            )

        for seg in segments:
            draw.line(
                [
                    self.world_to_px(seg.p1.x, seg.p1.y),
                    self.world_to_px(seg.p2.x, seg.p2.y),
                ],
                fill=WALL_COLOR,
                width=self._lw(2),
            )

        ox, oy = self.world_to_px(observer.x, observer.y)
        r = self._lw(4)
        draw.ellipse([ox - r, oy - r, ox + r, oy + r], fill=OBSERVER_COLOR)
        return img
