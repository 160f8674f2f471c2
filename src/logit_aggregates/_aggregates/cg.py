"""Nonlinear conjugate gradient for logistic regression.

One aggregation pass evaluates, at the fixed coefficients ``c_{k-1}``,
the gradient of the log-likelihood

    g_k = Σᵢ σ(−yᵢ c·xᵢ) yᵢ xᵢ

and the weighted design-moment matrix ``X^T A X`` with
``A = diag(σ(c·xᵢ) σ(−c·xᵢ))`` (the negated Hessian).  Finalize then
picks a search direction and takes an exact Newton step along it:

    k = 0:   d_0 = g_0

    k > 0:          g_kᵀ (g_k − g_{k−1})
             β_k = -----------------------        (Hestenes–Stiefel)
                   d_{k−1}ᵀ (g_k − g_{k−1})

             d_k = g_k − β_k d_{k−1}

                             g_kᵀ d_k
    c_k = c_{k−1} + ---------------------- d_k
                     d_kᵀ (X^T A X) d_k

Powell restart: whenever the Polak–Ribière ratio
``g_kᵀ(g_k − g_{k−1}) / g_{k−1}ᵀ g_{k−1}`` is not distinguishably
positive, β is reset to zero and the method falls back to steepest
ascent for that step.  This keeps the direction from collapsing after a
poor step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from .._layout import (
    INTER,
    INTRA,
    MATRIX,
    SCALAR,
    STATUS,
    VECTOR,
    FieldSpec,
    LayoutSpec,
    PackedState,
)
from .._linalg import symmetric_pinv
from ..inference import wald_result
from ._base import BaseAggregate, accumulate_moment, log1p_exp, sigma

CG_LAYOUT = LayoutSpec(
    "cg",
    (
        FieldSpec("iteration", SCALAR, INTER),
        FieldSpec("width", SCALAR, INTER),
        FieldSpec("coef", VECTOR, INTER),
        FieldSpec("dir", VECTOR, INTER),
        FieldSpec("grad", VECTOR, INTER),
        FieldSpec("beta", SCALAR, INTER),
        FieldSpec("num_rows", SCALAR, INTRA),
        FieldSpec("grad_new", VECTOR, INTRA),
        FieldSpec("X_transp_AX", MATRIX, INTRA),
        FieldSpec("log_likelihood", SCALAR, INTRA),
        FieldSpec("status", SCALAR, STATUS),
    ),
)

_DENORM_MIN = float(np.finfo(float).smallest_subnormal)


@dataclass(frozen=True)
class ConjugateGradientAggregate(BaseAggregate):
    """Conjugate-gradient optimizer (Hestenes–Stiefel with Powell restarts)."""

    layout: ClassVar[LayoutSpec] = CG_LAYOUT

    def _accumulate(
        self, state: PackedState, y: float, x: np.ndarray, previous: Any
    ) -> None:
        xc = float(x @ state.view("coef"))
        grad_new = state.view("grad_new")
        grad_new += sigma(-y * xc) * y * x

        # σ(−t) = 1 − σ(t)
        s = sigma(xc)
        accumulate_moment(state, x, s * (1.0 - s))

        state["log_likelihood"] -= log1p_exp(-y * xc)

    def _finalize(self, state: PackedState) -> PackedState:
        if self._terminate_if_nonfinite(
            state,
            ("grad_new", "X_transp_AX"),
            "Over- or underflow in intermediate calculation.",
        ):
            return state

        grad_new = state.view("grad_new")
        grad = state.view("grad")
        direction = state.view("dir")

        if state["iteration"] == 0:
            direction[:] = grad_new
            grad[:] = grad_new
        else:
            delta = grad_new - grad
            with np.errstate(divide="ignore", invalid="ignore"):
                numerator = np.float64(grad_new @ delta)
                beta = numerator / np.float64(direction @ delta)
                polak_ribiere = numerator / np.float64(grad @ grad)
            # `not >` also catches NaN from a zero previous gradient.
            if not polak_ribiere > _DENORM_MIN:
                beta = np.float64(0.0)
            state["beta"] = float(beta)
            direction[:] = grad_new - beta * direction
            grad[:] = grad_new

        curvature = float(direction @ state.view("X_transp_AX") @ direction)
        alpha = float(grad @ direction) / curvature if curvature != 0.0 else 0.0
        coef = state.view("coef")
        coef += alpha * direction

        if self._terminate_if_nonfinite(
            state,
            ("coef",),
            "Over- or underflow in conjugate-gradient step, while updating "
            "coefficients.",
        ):
            return state

        state["iteration"] += 1
        return state

    def _result(self, state: PackedState) -> Any:
        inverse, condition_no = symmetric_pinv(state.view("X_transp_AX"))
        return wald_result(
            variant=self.name,
            coef=state.view("coef"),
            variance_diag=np.diag(inverse),
            log_likelihood=state["log_likelihood"],
            condition_no=condition_no,
            status=state.status,
            num_rows=state.num_rows,
        )


__all__ = ["CG_LAYOUT", "ConjugateGradientAggregate"]
