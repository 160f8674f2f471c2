"""Eigendecomposition-based pseudo-inverse and condition number.

The weighted design-moment matrix ``X^T A X`` is symmetric positive
semi-definite by construction, but in practice it can be singular
(a constant-zero or duplicated feature) or badly conditioned (nearly
separated data, wildly different feature scales).  A direct solve
would either fail or amplify rounding error, so the IRLS Newton
step and all variance estimates go through
:func:`symmetric_pinv` instead.

Pseudo-inverse
--------------
With the eigendecomposition ``H = V diag(λ) Vᵀ``, the Moore–Penrose
pseudo-inverse is ``V diag(λ⁺) Vᵀ`` where

    λ⁺_i = 1 / λ_i   if λ_i > ε
           0         otherwise

and the cut-off is relative to the matrix scale:

    ε = n · max|H_ij| · machine epsilon

Eigenvalues below ε (including slightly negative ones produced by
rounding in a PSD matrix) are treated as exact zeros.

Condition number
----------------
``κ = λ_max / λ_min`` with negative ``λ_min`` clamped to zero, so a
singular or indefinite matrix reports ``κ = ∞``.

SciPy's ``eigh`` is called with its default finiteness check: a matrix
containing NaN or Inf raises ``ValueError`` instead of being handed to
LAPACK, which is known to loop indefinitely on such input on some
platforms.
"""

from __future__ import annotations

import numpy as np
import scipy.linalg


def symmetric_pinv(matrix: np.ndarray) -> tuple[np.ndarray, float]:
    """Pseudo-inverse and condition number of a symmetric PSD matrix.

    Only the lower triangle of *matrix* is read.

    Args:
        matrix: Square symmetric matrix ``(p, p)``.

    Returns:
        ``(pinv, condition_no)``: the ``(p, p)`` pseudo-inverse and the
        ratio of the largest to the smallest eigenvalue.

    Raises:
        ValueError: If *matrix* is not square or contains non-finite
            values.
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {matrix.shape}.")
    p = matrix.shape[0]
    if p == 0:
        return np.zeros((0, 0)), float("nan")

    # Eigenvalues come back in ascending order.
    eigenvalues, eigenvectors = scipy.linalg.eigh(matrix, lower=True)

    scale = float(np.max(np.abs(matrix))) if matrix.size else 0.0
    epsilon = p * scale * np.finfo(float).eps
    inv_eigenvalues = np.zeros_like(eigenvalues)
    keep = eigenvalues > epsilon
    inv_eigenvalues[keep] = 1.0 / eigenvalues[keep]

    pinv = (eigenvectors * inv_eigenvalues) @ eigenvectors.T
    return pinv, condition_number(eigenvalues)


def condition_number(eigenvalues: np.ndarray) -> float:
    """``λ_max / λ_min`` for ascending eigenvalues of a PSD matrix."""
    largest = float(eigenvalues[-1])
    smallest = max(float(eigenvalues[0]), 0.0)
    if largest <= 0.0 or smallest == 0.0:
        return float("inf")
    return largest / smallest


def sandwich(bread: np.ndarray, meat: np.ndarray) -> np.ndarray:
    """White sandwich product ``bread · meat · bread``."""
    result: np.ndarray = bread @ meat @ bread
    return result


__all__ = ["condition_number", "sandwich", "symmetric_pinv"]
