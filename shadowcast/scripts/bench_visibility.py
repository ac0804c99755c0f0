#!/usr/bin/env python3
"""Benchmark the visibility solver.

Usage:
    python -m shadowcast.scripts.bench_visibility        # 5 runs, 10 walls
    python -m shadowcast.scripts.bench_visibility -n 20  # 20 runs
    python -m shadowcast.scripts.bench_visibility -w 40  # 40 walls
"""

import argparse
import random
import statistics
import time

from shadowcast.engine.occluders import OccluderStore, boundary_loop
from shadowcast.engine.types import DegenerateGeometryError, VisibilityParams
from shadowcast.engine.visibility import compute_visibility_polygon


def random_store(num_walls, seed, thickness):
    """Boundary plus ``num_walls`` random walls inside [-0.9, 0.9]^2."""
    rng = random.Random(seed)
    store = OccluderStore(boundary=boundary_loop())
    while store.wall_count < num_walls:
        a = (rng.uniform(-0.9, 0.9), rng.uniform(-0.9, 0.9))
        b = (rng.uniform(-0.9, 0.9), rng.uniform(-0.9, 0.9))
        try:
            store.add_wall(a, b, thickness)
        except DegenerateGeometryError:
            continue
    return store


def main():
    parser = argparse.ArgumentParser(description="Benchmark visibility solver")
    parser.add_argument(
        "-n",
        "--iterations",
        type=int,
        default=5,
        help="Number of timed iterations (default: 5)",
    )
    parser.add_argument(
        "-w",
        "--walls",
        type=int,
        default=10,
        help="Number of random walls (default: 10)",
    )
    parser.add_argument(
        "--observers",
        type=int,
        default=50,
        help="Observer positions solved per iteration (default: 50)",
    )
    parser.add_argument(
        "--seed", type=int, default=1, help="Random seed (default: 1)"
    )
    args = parser.parse_args()
    if args.iterations < 1 or args.walls < 0 or args.observers < 1:
        parser.error("iterations and observers must be >= 1, walls >= 0")

    params = VisibilityParams()
    store = random_store(args.walls, args.seed, params.wall_thickness)
    segments = store.snapshot()
    rng = random.Random(args.seed + 1)
    observers = [
        (rng.uniform(-0.95, 0.95), rng.uniform(-0.95, 0.95))
        for _ in range(args.observers)
    ]

    print(
        f"Benchmark: {args.walls} walls ({len(segments)} segments), "
        f"{args.observers} observers, seed={args.seed}"
    )
    print(f"Iterations: {args.iterations}")
    print()

    # Warmup
    print("Warmup...", end=" ", flush=True)
    for o in observers:
        compute_visibility_polygon(o, segments, params)
    print("done")

    times_ms = []
    for i in range(args.iterations):
        start = time.perf_counter()
        for o in observers:
            compute_visibility_polygon(o, segments, params)
        elapsed_ms = (time.perf_counter() - start) * 1000
        times_ms.append(elapsed_ms)
        print(
            f"  Run {i + 1}: {elapsed_ms:.1f} ms "
            f"({elapsed_ms / len(observers):.2f} ms/solve)"
        )

    median = statistics.median(times_ms)
    mean = statistics.mean(times_ms)
    print()
    print(f"Median: {median:.1f} ms")
    print(f"Mean:   {mean:.1f} ms")
    if len(times_ms) > 1:
        stdev = statistics.stdev(times_ms)
        print(f"Stdev:  {stdev:.1f} ms")


if __name__ == "__main__":
    main()
