from __future__ import annotations

import numpy as np
import pytest

from courtcal.core import matrix
from courtcal.core.matrix import InverseCache, adjugate, as_matrix3, determinant, invert, multiply, multiply_vector


def _make_matrix(seed=42):
    rng = np.random.default_rng(seed)
    return np.eye(3) * 3.0 + rng.normal(scale=0.5, size=(3, 3))


def test_invert_matches_identity():
    M = _make_matrix()
    inv = invert(M)
    assert inv is not None
    assert np.allclose(M @ inv, np.eye(3), atol=1e-10)
    assert np.allclose(multiply(inv, M), np.eye(3), atol=1e-10)


def test_determinant_and_adjugate_agree_with_numpy():
    M = _make_matrix(7)
    assert determinant(M) == pytest.approx(np.linalg.det(M))
    assert np.allclose(adjugate(M), np.linalg.det(M) * np.linalg.inv(M))


def test_singular_matrix_has_no_inverse():
    M = np.array([[1.0, 2.0, 3.0], [2.0, 4.0, 6.0], [0.0, 1.0, 1.0]])
    assert invert(M) is None
    assert invert(np.full((3, 3), np.nan)) is None


@pytest.mark.parametrize(
    "diag, invertible",
    [
        ([1e-4, 1e-4, 1e-3], False),  # det 1e-11
        ([1e-4, 1e-4, 1e-1], True),  # det 1e-9
    ],
)
def test_near_singular_threshold(diag, invertible):
    M = np.diag(diag)
    inv = invert(M)
    if invertible:
        assert inv is not None
        assert np.allclose(inv, np.diag(1.0 / np.asarray(diag)))
    else:
        assert inv is None


def test_as_matrix3_rejects_other_shapes():
    with pytest.raises(ValueError):
        as_matrix3(np.eye(4))
    with pytest.raises(ValueError):
        as_matrix3(None)
    with pytest.raises(ValueError):
        multiply_vector(np.eye(3), [1.0, 2.0])


def test_cache_hits_and_returns_copies():
    cache = InverseCache()
    M = _make_matrix()
    a = cache.inverse(M)
    b = cache.inverse(M.copy())
    assert cache.misses == 1 and cache.hits == 1
    assert np.allclose(a, b)
    a[0, 0] = 1e9
    assert not np.allclose(cache.inverse(M), a)


def test_cache_clear_bumps_generation():
    cache = InverseCache()
    M = _make_matrix()
    cache.inverse(M)
    gen = cache.generation
    cache.clear()
    assert cache.generation == gen + 1
    assert len(cache) == 0
    cache.inverse(M)
    assert cache.misses == 2


def test_cache_modifier_and_eviction():
    cache = InverseCache(max_entries=2)
    M = _make_matrix()
    cache.inverse(M, modifier="a")
    cache.inverse(M, modifier="b")
    assert len(cache) == 2
    cache.inverse(_make_matrix(1))
    assert len(cache) == 2
    # the oldest entry ("a") was dropped
    cache.inverse(M, modifier="a")
    assert cache.hits == 0


def test_singular_results_are_cached_too():
    cache = InverseCache()
    Z = np.zeros((3, 3))
    assert cache.inverse(Z) is None
    assert cache.inverse(Z) is None
    assert cache.hits == 1


def test_module_cache_clear():
    matrix.inverse_cache.inverse(_make_matrix())
    gen = matrix.inverse_cache.generation
    matrix.clear_transform_cache()
    assert matrix.inverse_cache.generation == gen + 1
    assert len(matrix.inverse_cache) == 0
