"""Tkinter demo host for the visibility engine.

A 640x640 view of the [-1, 1] world. The mouse position is the observer and
every change re-solves the visibility polygon from scratch:

  * mouse motion          move the observer
  * left drag             draw a wall from press point to release point
  * right click / z / BackSpace
                          undo the last wall
  * s                     toggle shadow quads (debug)
  * l                     toggle light-map shading (per-pixel, slower)
  * c                     clear walls and the demo scene
  * q / Escape            quit

The scene starts with the world boundary and the demo triangle and square.
Rendering goes through ``SceneRenderer`` to a Pillow image shown on the
canvas.
"""

import time
import tkinter as tk
from tkinter import ttk

from PIL import ImageTk

from ..engine.lighting import light_map
from ..engine.occluders import OccluderStore, boundary_loop, demo_segments
from ..engine.types import DegenerateGeometryError, Point, VisibilityParams
from ..engine.visibility import (
    compute_visibility_polygon,
    shadow_quads,
    visible_fraction,
)
from .render import SceneRenderer

VIEW_SIZE = 640

# Light maps are computed at reduced resolution and scaled up
LIGHT_MAP_SIZE = 160


class App:
    def __init__(self, params=None):
        self.params = params or VisibilityParams()
        self.root = tk.Tk()
        self.root.title("2D Visibility")
        self.root.resizable(False, False)

        self.renderer = SceneRenderer(VIEW_SIZE, VIEW_SIZE)
        self.store = OccluderStore(
            boundary=boundary_loop(), segments=demo_segments()
        )
        self.observer = Point(0.0, 0.0)

        self.show_shadows = False
        self.show_light = False
        self._drag_start = None
        self._photo = None  # prevent GC

        self.canvas = tk.Canvas(
            self.root,
            width=VIEW_SIZE,
            height=VIEW_SIZE,
            highlightthickness=0,
        )
        self.canvas.pack(side=tk.TOP)
        self.status_label = ttk.Label(self.root, text="")
        self.status_label.pack(side=tk.BOTTOM, fill=tk.X, padx=5, pady=2)

        self.canvas.bind("<Motion>", self._on_motion)
        self.canvas.bind("<ButtonPress-1>", self._on_press)
        self.canvas.bind("<B1-Motion>", self._on_motion)
        self.canvas.bind("<ButtonRelease-1>", self._on_release)
        self.canvas.bind("<Button-3>", self._on_undo)
        self.root.bind("<z>", self._on_undo)
        self.root.bind("<BackSpace>", self._on_undo)
        self.root.bind("<s>", self._on_toggle_shadows)
        self.root.bind("<l>", self._on_toggle_light)
        self.root.bind("<c>", self._on_clear)
        self.root.bind("<q>", self._on_quit)
        self.root.bind("<Escape>", self._on_quit)

        print(
            "Move the mouse to look around, drag to draw walls, "
            "right click to undo, q to quit"
        )
        self.root.after(50, self._render)

    # -- input --

    def _on_motion(self, event):
        x, y = self.renderer.px_to_world(event.x, event.y)
        self.observer = Point(x, y)
        self._render()

    def _on_press(self, event):
        self._drag_start = self.renderer.px_to_world(event.x, event.y)

    def _on_release(self, event):
        start = self._drag_start
        self._drag_start = None
        if start is None:
            return
        end = self.renderer.px_to_world(event.x, event.y)
        try:
            self.store.add_wall(start, end, self.params.wall_thickness)
        except DegenerateGeometryError:
            # A click without a drag
            return
        self._render()

    def _on_undo(self, event=None):
        if self.store.remove_last_wall() is not None:
            self._render()

    def _on_clear(self, event=None):
        self.store.replace([])
        self._render()

    def _on_toggle_shadows(self, event=None):
        self.show_shadows = not self.show_shadows
        self._render()

    def _on_toggle_light(self, event=None):
        self.show_light = not self.show_light
        self._render()

    def _on_quit(self, event=None):
        self.root.destroy()

    # -- rendering --

    def _render(self):
        segments = self.store.snapshot()

        start = time.perf_counter()
        polygon = compute_visibility_polygon(
            self.observer, segments, self.params
        )
        solve_ms = (time.perf_counter() - start) * 1000

        light = None
        if self.show_light:
            light = light_map(
                self.observer,
                segments,
                LIGHT_MAP_SIZE,
                LIGHT_MAP_SIZE,
                radius=self.params.light_radius,
            )
        shadows = None
        if self.show_shadows:
            shadows = shadow_quads(
                self.observer, segments, self.params.far_reach
            )

        img = self.renderer.render(
            self.observer, segments, polygon, shadows=shadows, light=light
        )
        self._photo = ImageTk.PhotoImage(img)
        self.canvas.delete("all")
        self.canvas.create_image(0, 0, image=self._photo, anchor="nw")

        self.status_label.config(
            text=(
                f"Walls: {self.store.wall_count}   "
                f"Vertices: {len(polygon)}   "
                f"Visible: {visible_fraction(polygon) * 100:.1f}%   "
                f"Solve: {solve_ms:.2f} ms"
            )
        )

    def run(self):
        self.root.mainloop()


def main():
    App().run()


if __name__ == "__main__":
    main()
