"""Statistical helpers shared by the non-expressing cell classifier."""

from __future__ import annotations

import numpy as np
from scipy.stats import poisson


def bh_fdr(pvals: np.ndarray) -> np.ndarray:
    """Benjamini-Hochberg FDR correction (pure NumPy, stable ordering)."""
    arr = np.asarray(pvals, dtype=float)
    flat = arr.ravel()
    q_flat = np.ones_like(flat, dtype=float)

    finite_mask = np.isfinite(flat)
    if np.any((flat[finite_mask] < 0.0) | (flat[finite_mask] > 1.0)):
        raise ValueError("p-values must be within [0, 1] (or NaN).")

    if np.any(finite_mask):
        p = flat[finite_mask]
        m = int(p.size)
        order = np.argsort(p, kind="mergesort")
        ranked = p[order]
        ranks = np.arange(1, m + 1, dtype=float)
        adjusted = ranked * (float(m) / ranks)
        adjusted = np.minimum.accumulate(adjusted[::-1])[::-1]
        adjusted = np.clip(adjusted, 0.0, 1.0)

        q_valid = np.empty_like(ranked)
        q_valid[order] = adjusted
        q_flat[finite_mask] = q_valid

    return q_flat.reshape(arr.shape)


def poisson_upper_tail(observed: np.ndarray, expected: np.ndarray) -> np.ndarray:
    """P(X >= observed) for X ~ Poisson(expected), elementwise."""
    obs = np.asarray(observed, dtype=float)
    lam = np.asarray(expected, dtype=float)
    if np.any(obs < 0) or np.any(lam < 0):
        raise ValueError("observed and expected counts must be non-negative.")
    lam, obs = np.broadcast_arrays(lam, obs)
    out = np.where(obs > 0, 0.0, 1.0)
    pos = lam > 0
    out[pos] = poisson.sf(obs[pos] - 1.0, lam[pos])
    return np.clip(out, 0.0, 1.0)
