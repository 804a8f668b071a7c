import random

import numpy as np
import pytest

import tilepaint as tp


def test_hash_is_deterministic():
    assert tp.lattice_hash(3, -7, 42) == tp.lattice_hash(3, -7, 42)
    assert tp.lattice_hash(3, -7, 42) != tp.lattice_hash(3, -7, 43)


def test_hash_range():
    for x in range(-20, 20):
        for y in range(-20, 20):
            v = tp.lattice_hash(x, y, 99)
            assert 0.0 <= v < 1.0


def test_hash_avalanche():
    rng = random.Random(1)
    flips = []
    for _ in range(200):
        x, y, seed = rng.randint(-10000, 10000), rng.randint(-10000, 10000), rng.randint(0, 1000)
        base = int(tp.lattice_hash(x, y, seed) * 2**32)
        for bit in range(8):
            for args in ((x ^ (1 << bit), y, seed), (x, y ^ (1 << bit), seed), (x, y, seed ^ (1 << bit))):
                other = int(tp.lattice_hash(*args) * 2**32)
                flips.append(bin(base ^ other).count("1"))
    mean = sum(flips) / len(flips)
    assert 10 < mean < 22


def test_noise_collapses_to_hash_on_lattice():
    for x in range(-5, 6):
        for y in range(-5, 6):
            for seed in (0, 1, 12345):
                assert tp.value_noise(x, y, seed) == tp.lattice_hash(x, y, seed)
                assert tp.value_noise(float(x), float(y), seed) == tp.lattice_hash(x, y, seed)


def test_noise_is_continuous():
    a = tp.value_noise(2.5, 3.25, 7)
    b = tp.value_noise(2.5 + 1e-6, 3.25, 7)
    assert abs(a - b) < 1e-4


def test_fbm_bounded():
    rng = random.Random(5)
    for _ in range(500):
        x, y = rng.uniform(-500, 500), rng.uniform(-500, 500)
        seed = rng.randint(-1000, 1000)
        octaves = rng.randint(1, 8)
        v = tp.fbm(x, y, seed, octaves)
        assert 0.0 <= v < 1.0


def test_single_octave_fbm_is_noise():
    assert tp.fbm(1.3, 4.7, 11, octaves=1) == tp.value_noise(1.3, 4.7, 11)


def test_fbm_rejects_zero_octaves():
    with pytest.raises(ValueError):
        tp.fbm(0.5, 0.5, 1, octaves=0)
    with pytest.raises(ValueError):
        tp.fbm_grid([0.5], [0.5], 1, octaves=0)


def test_fbm_grid_matches_scalar():
    xs = np.linspace(-3.7, 5.2, 23)
    ys = np.linspace(-2.1, 4.4, 17)
    gx, gy = np.meshgrid(xs, ys)
    grid = tp.fbm_grid(gx, gy, 42, octaves=5)
    assert grid.shape == gx.shape
    for j in range(gx.shape[0]):
        for i in range(gx.shape[1]):
            assert grid[j, i] == tp.fbm(float(gx[j, i]), float(gy[j, i]), 42, 5)


def test_fbm_grid_broadcasts():
    grid = tp.fbm_grid(np.arange(4)[None, :] / 3, np.arange(3)[:, None] / 3, 9)
    assert grid.shape == (3, 4)
    assert grid[2, 1] == tp.fbm(1 / 3, 2 / 3, 9)
