"""Iteratively reweighted least squares (Newton's method).

Each pass accumulates, at the fixed coefficients ``c``, the weighted
normal equations of the working least-squares problem:

    X^T A X  =  Σᵢ aᵢ xᵢ xᵢᵀ,          aᵢ = σ(xᵢ·c) σ(−xᵢ·c)
    X^T A z  =  Σᵢ xᵢ (aᵢ zᵢ)

with the working response

                 σ(−yᵢ xᵢ·c) yᵢ
    zᵢ = xᵢ·c + ----------------
                       aᵢ

``aᵢ zᵢ = xᵢ·c · aᵢ + σ(−yᵢ xᵢ·c) yᵢ`` is accumulated directly, so a
vanishing weight ``aᵢ`` never produces an overflowing ``zᵢ``.

Finalize solves ``c_new = (X^T A X)⁺ X^T A z`` with the eigen
pseudo-inverse.  The diagonal of that pseudo-inverse and the condition
number are the inputs of the Wald diagnostics, so they are kept in
dedicated result fields and the result step reuses them instead of
decomposing the matrix a second time.
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
from ..inference import wald_result
from ._base import BaseAggregate, accumulate_moment, log1p_exp, sigma

IRLS_LAYOUT = LayoutSpec(
    "irls",
    (
        FieldSpec("width", SCALAR, INTER),
        FieldSpec("coef", VECTOR, INTER),
        FieldSpec("num_rows", SCALAR, INTRA),
        FieldSpec("X_transp_Az", VECTOR, INTRA),
        FieldSpec("X_transp_AX", MATRIX, INTRA),
        FieldSpec("log_likelihood", SCALAR, INTRA),
        FieldSpec("status", SCALAR, STATUS),
        FieldSpec("inverse_diag", VECTOR, RESULT),
        FieldSpec("condition_no", SCALAR, RESULT),
    ),
)


@dataclass(frozen=True)
class IRLSAggregate(BaseAggregate):
    """Newton / IRLS optimizer with an eigen pseudo-inverse solve."""

    layout: ClassVar[LayoutSpec] = IRLS_LAYOUT

    def _accumulate(
        self, state: PackedState, y: float, x: np.ndarray, previous: Any
    ) -> None:
        xc = float(x @ state.view("coef"))
        s = sigma(xc)
        a = s * (1.0 - s)

        az = xc * a + sigma(-y * xc) * y
        x_transp_az = state.view("X_transp_Az")
        x_transp_az += az * x
        accumulate_moment(state, x, a)

        state["log_likelihood"] -= log1p_exp(-y * xc)

    def _finalize(self, state: PackedState) -> PackedState:
        # Non-finite input can hang LAPACK, so check before decomposing.
        if self._terminate_if_nonfinite(
            state,
            ("X_transp_AX", "X_transp_Az"),
            "Over- or underflow in intermediate calculation.",
        ):
            return state

        inverse, condition_no = symmetric_pinv(state.view("X_transp_AX"))
        state["coef"] = inverse @ state.view("X_transp_Az")

        if self._terminate_if_nonfinite(
            state,
            ("coef",),
            "Over- or underflow in Newton step, while updating coefficients.",
        ):
            return state

        state["inverse_diag"] = np.diag(inverse)
        state["condition_no"] = condition_no
        return state

    def _result(self, state: PackedState) -> Any:
        return wald_result(
            variant=self.name,
            coef=state.view("coef"),
            variance_diag=state.view("inverse_diag"),
            log_likelihood=state["log_likelihood"],
            condition_no=state["condition_no"],
            status=state.status,
            num_rows=state.num_rows,
        )


__all__ = ["IRLS_LAYOUT", "IRLSAggregate"]
