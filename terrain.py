"""
Destructible terrain for TankEvo.

The ground is a polyline of (x, height) samples spanning [0, width] with x
strictly increasing.  Heights are screen-space y values: larger means lower
on screen, and `world_height` is the bottom boundary of the play area.
Explosions dig craters by pushing samples down, never past the bottom.
"""

import math

import numpy as np

from config import (WORLD_WIDTH, WORLD_HEIGHT, GROUND_HEIGHT, TERRAIN_CELL,
                    TERRAIN_AMPLITUDE, TERRAIN_FREQUENCY, TERRAIN_JITTER)


class Terrain:
    """
    Height samples plus the parameters they were generated from (the
    parameters double as controller sensors).
    """

    def __init__(self, xs, ys, world_height: float = WORLD_HEIGHT,
                 amplitude: float = 0.0, frequency: float = 0.0):
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        if xs.ndim != 1 or xs.shape != ys.shape or len(xs) < 2:
            raise ValueError("terrain needs matching 1-D x/height arrays of length >= 2")
        if not np.all(np.diff(xs) > 0):
            raise ValueError("terrain x samples must be strictly increasing")
        self.xs = xs
        self.ys = np.minimum(ys, world_height)
        self.world_height = float(world_height)
        self.amplitude = float(amplitude)
        self.frequency = float(frequency)

    @classmethod
    def flat(cls, height: float, width: float = WORLD_WIDTH,
             world_height: float = WORLD_HEIGHT, cell: float = TERRAIN_CELL):
        n = max(2, int(round(width / cell)) + 1)
        xs = np.linspace(0.0, width, n)
        return cls(xs, np.full(n, float(height)), world_height)

    # ──────────────────────────────────────────────────────────────────────────

    @property
    def width(self) -> float:
        return float(self.xs[-1])

    @property
    def cell_width(self) -> float:
        return self.width / (len(self.xs) - 1)

    def __len__(self):
        return len(self.xs)

    def height_at(self, x: float) -> float:
        """
        Ground height at x by linear interpolation.  Non-finite x, or x
        outside [0, width], yields the bottom boundary.
        """
        if not math.isfinite(x) or x < 0.0 or x > self.width:
            return self.world_height
        xs, ys = self.xs, self.ys
        i = min(int(x / self.cell_width), len(xs) - 2)
        # guard against float drift in the cell estimate
        while i > 0 and x < xs[i]:
            i -= 1
        while i < len(xs) - 2 and x > xs[i + 1]:
            i += 1
        r = (x - xs[i]) / (xs[i + 1] - xs[i])
        return float(ys[i] + r * (ys[i + 1] - ys[i]))

    def crater(self, cx: float, cy: float, radius: float) -> int:
        """
        Push every sample within `radius` of (cx, cy) down by radius - d.
        Returns the number of samples moved.
        """
        d = np.hypot(self.xs - cx, self.ys - cy)
        hit = d <= radius
        if hit.any():
            self.ys[hit] = np.minimum(self.ys[hit] + (radius - d[hit]),
                                      self.world_height)
        return int(hit.sum())

    def points(self) -> list:
        """[(x, y), ...] for renderers."""
        return list(zip(self.xs.tolist(), self.ys.tolist()))

    def copy(self) -> "Terrain":
        return Terrain(self.xs.copy(), self.ys.copy(), self.world_height,
                       self.amplitude, self.frequency)


# ──────────────────────────────────────────────────────────────────────────────

def generate_terrain(amplitude: float = TERRAIN_AMPLITUDE,
                     frequency: float = TERRAIN_FREQUENCY,
                     width: float = WORLD_WIDTH,
                     seed: int = None, rng=None,
                     world_height: float = WORLD_HEIGHT,
                     ground_height: float = GROUND_HEIGHT,
                     jitter: float = TERRAIN_JITTER,
                     cell: float = TERRAIN_CELL) -> Terrain:
    """
    Sinusoidal base curve plus bounded random jitter, one sample per cell.
    Deterministic for a given seed (or generator).
    """
    if rng is None:
        rng = np.random.default_rng(seed)
    n = max(2, int(round(width / cell)) + 1)
    xs = np.linspace(0.0, width, n)
    base = world_height - ground_height
    ys = base - np.sin(np.arange(n) * frequency) * amplitude - rng.random(n) * jitter
    ys = np.clip(ys, 0.0, world_height)
    return Terrain(xs, ys, world_height, amplitude, frequency)
