"""Average marginal effects of fixed logistic coefficients.

With ``G`` the logistic CDF, the marginal effect of covariate ``j`` is
the average derivative of the predicted probability,

    meⱼ = cⱼ · (1/n) Σᵢ G(xᵢ·c) (1 − G(xᵢ·c)).

Its variance follows from the delta method, linearized at the mean
covariate vector ``X̄``:

    p = G(c·X̄)
    Δ = I + (1 − 2p) · c X̄ᵀ
    V = p(1−p) · Δ (X^T A X)⁺ Δᵀ · p(1−p)

P-values use a Student-t reference with ``n − widthOfX`` degrees of
freedom and are only reported when ``n > widthOfX``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from .._layout import (
    INTER,
    INTRA,
    MATRIX,
    RESULT,
    SCALAR,
    STATUS,
    VECTOR,
    FieldSpec,
    LayoutSpec,
    PackedState,
)
from .._linalg import symmetric_pinv
from ..inference import marginal_result
from ._base import FixedCoefficientAggregate, accumulate_moment, log1p_exp, sigma

MARGINAL_LAYOUT = LayoutSpec(
    "marginal",
    (
        FieldSpec("iteration", SCALAR, INTER),
        FieldSpec("width", SCALAR, INTER),
        FieldSpec("coef", VECTOR, INTER),
        FieldSpec("num_rows", SCALAR, INTRA),
        FieldSpec("marginal_effects_per_observation", SCALAR, INTRA),
        FieldSpec("X_bar", VECTOR, INTRA),
        FieldSpec("X_transp_AX", MATRIX, INTRA),
        FieldSpec("log_likelihood", SCALAR, INTRA),
        FieldSpec("status", SCALAR, STATUS),
        FieldSpec("variance", MATRIX, RESULT),
    ),
)


@dataclass(frozen=True)
class MarginalEffectsAggregate(FixedCoefficientAggregate):
    """Average marginal effects with delta-method standard errors."""

    layout: ClassVar[LayoutSpec] = MARGINAL_LAYOUT

    def _accumulate(
        self, state: PackedState, y: float, x: np.ndarray, previous: Any
    ) -> None:
        xc = float(x @ state.view("coef"))
        s = sigma(xc)

        state["marginal_effects_per_observation"] += s * (1.0 - s)
        x_bar = state.view("X_bar")
        x_bar += x
        accumulate_moment(state, x, s * (1.0 - s))
        state["log_likelihood"] -= log1p_exp(-y * xc)

    def _finalize(self, state: PackedState) -> PackedState:
        if self._terminate_if_nonfinite(
            state,
            ("X_transp_AX", "X_bar"),
            "Over- or underflow in marginal-effects accumulation.",
        ):
            return state

        inverse, _ = symmetric_pinv(state.view("X_transp_AX"))
        n = float(state.num_rows)
        coef = state.view("coef")
        x_bar = state.view("X_bar")

        p = sigma(float(coef @ x_bar) / n)
        delta = (1.0 - 2.0 * p) * np.outer(coef, x_bar) / n
        delta[np.diag_indices_from(delta)] += 1.0

        scale = p * (1.0 - p)
        state["variance"] = scale * (delta @ inverse @ delta.T) * scale
        return state

    def _result(self, state: PackedState) -> Any:
        return marginal_result(
            coef=state.view("coef"),
            marginal_effects_per_observation=state["marginal_effects_per_observation"],
            variance_diag=np.diag(state.view("variance")),
            status=state.status,
            num_rows=state.num_rows,
        )


__all__ = ["MARGINAL_LAYOUT", "MarginalEffectsAggregate"]
