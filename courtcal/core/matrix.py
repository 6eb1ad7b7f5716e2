from __future__ import annotations

from typing import Any, Dict, Hashable, Optional, Tuple

import numpy as np


# |det| below this is treated as singular; also the guard for the homogeneous w
SINGULAR_EPS = 1e-10


def as_matrix3(m: Any) -> np.ndarray:
    """Coerce ``m`` to a float64 (3,3) array.

    Raises ValueError for any other shape; nothing is padded or truncated.
    """
    if m is None:
        raise ValueError("expected a 3x3 matrix, got None")
    try:
        a = np.asarray(m, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValueError(f"expected a 3x3 numeric matrix: {e}") from e
    if a.shape != (3, 3):
        raise ValueError(f"expected a 3x3 matrix, got shape {a.shape}")
    return a


def multiply(a: Any, b: Any) -> np.ndarray:
    return as_matrix3(a) @ as_matrix3(b)


def multiply_vector(m: Any, v: Any) -> np.ndarray:
    """m: (3,3), v: (3,) -> (3,)"""
    vec = np.asarray(v, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"expected a 3-vector, got shape {vec.shape}")
    return as_matrix3(m) @ vec


def determinant(m: Any) -> float:
    a = as_matrix3(m)
    return float(
        a[0, 0] * (a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1])
        - a[0, 1] * (a[1, 0] * a[2, 2] - a[1, 2] * a[2, 0])
        + a[0, 2] * (a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0])
    )


def adjugate(m: Any) -> np.ndarray:
    """Transpose of the cofactor matrix."""
    a = as_matrix3(m)
    adj = np.empty((3, 3), dtype=np.float64)
    adj[0, 0] = a[1, 1] * a[2, 2] - a[1, 2] * a[2, 1]
    adj[0, 1] = a[0, 2] * a[2, 1] - a[0, 1] * a[2, 2]
    adj[0, 2] = a[0, 1] * a[1, 2] - a[0, 2] * a[1, 1]
    adj[1, 0] = a[1, 2] * a[2, 0] - a[1, 0] * a[2, 2]
    adj[1, 1] = a[0, 0] * a[2, 2] - a[0, 2] * a[2, 0]
    adj[1, 2] = a[0, 2] * a[1, 0] - a[0, 0] * a[1, 2]
    adj[2, 0] = a[1, 0] * a[2, 1] - a[1, 1] * a[2, 0]
    adj[2, 1] = a[0, 1] * a[2, 0] - a[0, 0] * a[2, 1]
    adj[2, 2] = a[0, 0] * a[1, 1] - a[0, 1] * a[1, 0]
    return adj


def invert(m: Any) -> Optional[np.ndarray]:
    """Closed-form inverse via the adjugate. Returns None when |det| < SINGULAR_EPS."""
    a = as_matrix3(m)
    det = determinant(a)
    if not np.isfinite(det) or abs(det) < SINGULAR_EPS:
        return None
    return adjugate(a) / det


class InverseCache:
    """Memoized inverses scoped to a generation token.

    Keys are structural (the matrix bytes plus an optional modifier), so two
    equal matrices share one entry. ``clear()`` drops every entry and bumps
    the generation, which is how a replaced calibration invalidates stale
    inverses.
    """

    def __init__(self, max_entries: int = 64):
        self.max_entries = int(max_entries)
        self._generation = 0
        self._entries: Dict[Tuple[int, bytes, Hashable], Optional[np.ndarray]] = {}
        self.hits = 0
        self.misses = 0

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    def inverse(self, m: Any, modifier: Hashable = None) -> Optional[np.ndarray]:
        a = as_matrix3(m)
        key = (self._generation, a.tobytes(), modifier)
        if key in self._entries:
            self.hits += 1
            inv = self._entries[key]
            return None if inv is None else inv.copy()
        self.misses += 1
        inv = invert(a)
        if len(self._entries) >= self.max_entries:
            # drop the oldest entry (dicts keep insertion order)
            self._entries.pop(next(iter(self._entries)))
        self._entries[key] = inv
        return None if inv is None else inv.copy()

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1


inverse_cache = InverseCache()


def clear_transform_cache() -> None:
    """Invalidate the module-level inverse cache (call after re-calibration)."""
    inverse_cache.clear()
