import math

import numpy as np
import pytest

from config import WORLD_WIDTH, WORLD_HEIGHT, TERRAIN_CELL
from terrain import Terrain, generate_terrain


def test_generated_terrain_spans_world_with_increasing_x():
    t = generate_terrain(seed=1)
    assert len(t) == int(WORLD_WIDTH / TERRAIN_CELL) + 1
    assert t.xs[0] == 0.0
    assert t.width == WORLD_WIDTH
    assert np.all(np.diff(t.xs) > 0)


def test_generation_is_deterministic_per_seed():
    a = generate_terrain(seed=7)
    b = generate_terrain(seed=7)
    c = generate_terrain(seed=8)
    np.testing.assert_array_equal(a.ys, b.ys)
    assert not np.array_equal(a.ys, c.ys)


@pytest.mark.parametrize("amplitude", [0.0, 70.0, 5000.0])
def test_heights_stay_inside_the_world(amplitude):
    t = generate_terrain(amplitude=amplitude, seed=3)
    assert t.ys.min() >= 0.0
    assert t.ys.max() <= WORLD_HEIGHT
    assert t.amplitude == amplitude


@pytest.mark.parametrize("x", [math.nan, math.inf, -math.inf, -0.5, WORLD_WIDTH + 0.5])
def test_height_outside_terrain_is_the_bottom_boundary(x):
    t = Terrain.flat(400)
    assert t.height_at(x) == WORLD_HEIGHT


def test_height_interpolates_linearly():
    t = Terrain([0, 10, 20], [100, 200, 100])
    assert t.height_at(0) == 100
    assert t.height_at(5) == pytest.approx(150)
    assert t.height_at(10) == pytest.approx(200)
    assert t.height_at(15) == pytest.approx(150)
    assert t.height_at(20) == pytest.approx(100)


def test_non_increasing_samples_are_rejected():
    with pytest.raises(ValueError):
        Terrain([0, 10, 10], [1, 2, 3])


def test_crater_pushes_samples_down_with_distance_falloff():
    t = Terrain.flat(500)
    moved = t.crater(500, 500, 30)
    assert moved == 7                                # samples at 470..530
    assert t.height_at(500) == pytest.approx(530)
    assert t.height_at(480) == pytest.approx(510)
    assert t.height_at(530) == pytest.approx(500)
    assert t.height_at(540) == pytest.approx(500)


def test_crater_never_digs_below_the_bottom():
    t = Terrain.flat(590)
    t.crater(500, 590, 60)
    assert t.ys.max() == WORLD_HEIGHT


def test_copy_is_independent():
    t = Terrain.flat(500)
    c = t.copy()
    c.crater(500, 500, 30)
    assert t.height_at(500) == 500
