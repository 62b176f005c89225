#!/usr/bin/env python3
"""Quick frame-build benchmark for the Holter waveform pipeline."""
from __future__ import annotations

import argparse
import time

import numpy as np

from holterview.core.interaction import PlotInteraction
from holterview.core.render import build_frame
from holterview.core.samples import SampleSet


def synth_samples(points: int, *, start_ms: int = 1_700_000_000_000, rate_hz: float = 250.0, dropout: float = 0.02):
    rng = np.random.default_rng(7)
    t = start_ms + (np.arange(points) * (1000.0 / rate_hz)).astype(np.int64)
    phase = np.arange(points) / rate_hz
    base = 20.0 * np.sin(2 * np.pi * 1.2 * phase)[:, None]
    channels = base + rng.normal(0.0, 2.0, size=(points, 3))
    lead_on = rng.random((points, 3)) > dropout
    quality = rng.random((points, 3)) > 0.05
    return SampleSet.from_arrays(t, channels, lead_on, lead_on, quality)


def run_profile(points: int, frames: int, width: int, height: int):
    samples = synth_samples(points)
    inter = PlotInteraction(width=width, height=height)
    inter.set_samples(samples)
    results = []
    for label, step in (("static", None), ("pan", 7.0), ("zoom", "zoom")):
        inter.pan(-inter.offset_px)
        vertices = 0
        t0 = time.perf_counter()
        for i in range(frames):
            if step == "zoom":
                inter.zoom(i % 20 < 10)
            elif step is not None:
                inter.pan(step)
            frame = build_frame(
                inter.samples,
                inter.transform,
                width,
                height,
                window=inter.window,
                scale=inter.scale,
                offset_px=inter.offset_px,
            )
            vertices += frame.vertex_count
        elapsed = time.perf_counter() - t0
        results.append((label, elapsed, vertices / max(1, frames)))
    return results


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--points", type=int, default=2000)
    parser.add_argument("--frames", type=int, default=240)
    parser.add_argument("--width", type=int, default=800)
    parser.add_argument("--height", type=int, default=250)
    args = parser.parse_args()

    for label, elapsed, avg_vertices in run_profile(args.points, args.frames, args.width, args.height):
        per_frame = elapsed / max(1, args.frames)
        print(
            "{:<7} total={:0.3f}s avg={:0.2f}ms fps={:6.0f} vertices={:0.0f}".format(
                label,
                elapsed,
                per_frame * 1000.0,
                1.0 / per_frame if per_frame > 0 else float("inf"),
                avg_vertices,
            )
        )


if __name__ == "__main__":
    main()
