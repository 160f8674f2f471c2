"""Coefficient-level inference for finalized aggregate states.

Three packaging helpers turn the per-coefficient variances produced by
the aggregates into result objects:

* :func:`wald_result`: model-based Wald tests,

      SEⱼ = √(Vⱼⱼ),   zⱼ = cⱼ / SEⱼ,   pⱼ = 2 · (1 − Φ(|zⱼ|)),

  plus odds ratios ``exp(cⱼ)``.  ``Vⱼⱼ`` is the diagonal of the
  pseudo-inverse of ``X^T A X``.

* :func:`robust_result`: the same Wald statistics computed from the
  diagonal of the sandwich variance.  No odds ratios, since the
  coefficients were supplied rather than estimated.

* :func:`marginal_result`: average marginal effects
  ``meⱼ = cⱼ · Σ G'(xᵢ·c) / n`` with t-statistics and Student-t
  p-values on ``n − p`` degrees of freedom.  P-values are ``None`` when
  ``n ≤ p``.

A zero variance (a coefficient the pseudo-inverse projected away) gives
``inf`` or ``nan`` statistics rather than an error.  The inputs are
copied, so results never alias a state buffer.
"""

from __future__ import annotations

import numpy as np
from scipy import stats

from ._results import (
    LogisticRegressionResult,
    MarginalEffectsResult,
    RobustVarianceResult,
)
from ._state import Status


def _wald(
    coef: np.ndarray, variance_diag: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Standard errors, z-statistics and two-sided normal p-values."""
    with np.errstate(divide="ignore", invalid="ignore"):
        std_err = np.sqrt(variance_diag)
        z_stats = coef / std_err
    p_values = 2.0 * stats.norm.sf(np.abs(z_stats))
    return std_err, z_stats, p_values


def wald_result(
    *,
    variant: str,
    coef: np.ndarray,
    variance_diag: np.ndarray,
    log_likelihood: float,
    condition_no: float,
    status: Status,
    num_rows: int,
) -> LogisticRegressionResult:
    """Package a fitted model with its Wald diagnostics.

    Args:
        variant: Optimizer name.
        coef: Coefficient vector ``(p,)``.
        variance_diag: Diagonal of the inverse of ``X^T A X``.
        log_likelihood: Log-likelihood of the last pass.
        condition_no: Condition number of ``X^T A X``.
        status: Status of the source state.
        num_rows: Rows aggregated in the last pass.

    Returns:
        A :class:`LogisticRegressionResult`.
    """
    coef = np.array(coef, dtype=float)
    std_err, z_stats, p_values = _wald(coef, np.array(variance_diag, dtype=float))
    with np.errstate(over="ignore"):
        odds_ratios = np.exp(coef)
    return LogisticRegressionResult(
        variant=variant,
        coef=coef,
        log_likelihood=float(log_likelihood),
        std_err=std_err,
        z_stats=z_stats,
        p_values=p_values,
        odds_ratios=odds_ratios,
        condition_no=float(condition_no),
        status=status,
        num_rows=int(num_rows),
    )


def robust_result(
    *,
    coef: np.ndarray,
    variance_diag: np.ndarray,
    condition_no: float,
    status: Status,
    num_rows: int,
) -> RobustVarianceResult:
    """Package sandwich standard errors for fixed coefficients."""
    coef = np.array(coef, dtype=float)
    std_err, z_stats, p_values = _wald(coef, np.array(variance_diag, dtype=float))
    return RobustVarianceResult(
        coef=coef,
        std_err=std_err,
        z_stats=z_stats,
        p_values=p_values,
        condition_no=float(condition_no),
        status=status,
        num_rows=int(num_rows),
    )


def marginal_result(
    *,
    coef: np.ndarray,
    marginal_effects_per_observation: float,
    variance_diag: np.ndarray,
    status: Status,
    num_rows: int,
) -> MarginalEffectsResult:
    """Package average marginal effects with delta-method inference.

    Args:
        coef: Coefficients the effects were evaluated at.
        marginal_effects_per_observation: ``Σ G(xᵢ·c)(1 − G(xᵢ·c))``.
        variance_diag: Diagonal of the delta-method variance.
        status: Status of the source state.
        num_rows: Rows aggregated.

    Returns:
        A :class:`MarginalEffectsResult` whose ``p_values`` is ``None``
        unless ``num_rows`` exceeds the number of coefficients.
    """
    coef = np.array(coef, dtype=float)
    n = int(num_rows)
    df = n - coef.size

    marginal_effects = coef * float(marginal_effects_per_observation) / n
    with np.errstate(divide="ignore", invalid="ignore"):
        std_err = np.sqrt(np.array(variance_diag, dtype=float))
        t_stats = marginal_effects / std_err

    p_values = 2.0 * stats.t.sf(np.abs(t_stats), df) if df > 0 else None
    return MarginalEffectsResult(
        marginal_effects=marginal_effects,
        coef=coef,
        std_err=std_err,
        t_stats=t_stats,
        p_values=p_values,
        degrees_of_freedom=df,
        status=status,
        num_rows=n,
    )


__all__ = ["marginal_result", "robust_result", "wald_result"]
