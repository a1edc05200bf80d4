# test_rng.py
#
# Deterministic random source: seeding, reproducibility, bit/gaussian draws and the
# module-level default generator.

from __future__ import annotations

import math

import numpy as np
import pytest

import rng
from rng import SimRng


@pytest.fixture
def reset_default_rng():
    yield
    rng.set_seed(None)


def test_seeded_random_bits_are_reproducible():
    assert SimRng(42).random_bits(256) == SimRng(42).random_bits(256)


def test_different_seeds_differ():
    assert SimRng(1).random_bits(256) != SimRng(2).random_bits(256)


def test_random_bits_are_zero_or_one():
    bits = SimRng(5).random_bits(1000)
    assert len(bits) == 1000
    assert set(bits) == {0, 1}
    assert 400 < sum(bits) < 600


def test_random_is_in_unit_interval():
    r = SimRng(8)
    draws = [r.random() for _ in range(500)]
    assert all(0.0 <= x < 1.0 for x in draws)


def test_gaussian_moments():
    g = SimRng(3).gaussian(20000)
    assert abs(float(np.mean(g))) < 0.05
    assert abs(float(np.std(g)) - 1.0) < 0.05
    assert np.all(np.isfinite(g))


def test_gaussian_random_matches_first_gaussian_draw():
    assert SimRng(9).gaussian_random() == pytest.approx(float(SimRng(9).gaussian(1)[0]))


@pytest.mark.parametrize("seed", [None, -1, float("nan"), float("inf"), "abc"])
def test_invalid_seeds_clear_determinism(seed):
    r = SimRng(seed)
    assert r.get_seed() is None
    assert r.is_deterministic() is False


def test_seed_is_reduced_to_32_bits():
    r = SimRng(2**32 + 5)
    assert r.get_seed() == 5
    assert r.random_bits(64) == SimRng(5).random_bits(64)


def test_reseeding_restarts_the_sequence():
    r = SimRng(11)
    first = r.random_bits(32)
    r.set_seed(11)
    assert r.random_bits(32) == first


def test_zero_counts():
    r = SimRng(1)
    assert r.random_bits(0) == []
    assert r.gaussian(0).size == 0
    assert r.uniform(-3).size == 0


def test_module_level_functions_use_default_rng(reset_default_rng):
    rng.set_seed(123)
    assert rng.get_seed() == 123
    assert rng.is_deterministic()
    a = rng.random_bits(16)
    g = rng.gaussian_random()
    rng.set_seed(123)
    assert rng.random_bits(16) == a
    assert rng.gaussian_random() == g
    assert math.isfinite(rng.random())

    rng.set_seed(None)
    assert rng.is_deterministic() is False
