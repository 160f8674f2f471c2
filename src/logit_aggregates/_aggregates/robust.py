"""Huber–White sandwich variance for fixed logistic coefficients.

A single aggregation pass over the data at the already-fitted
coefficients ``c`` accumulates

    bread⁻¹ = X^T A X = Σᵢ aᵢ xᵢ xᵢᵀ
    meat    =           Σᵢ sᵢ sᵢᵀ,      sᵢ = σ(−yᵢ xᵢ·c) yᵢ xᵢ

and finalize forms ``V = bread · meat · bread`` (HC0).  Wald statistics
are then computed from ``diag(V)`` exactly as for the model-based
variance.
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
from .._linalg import sandwich, symmetric_pinv
from ..inference import robust_result
from ._base import FixedCoefficientAggregate, accumulate_moment, log1p_exp, sigma

ROBUST_LAYOUT = LayoutSpec(
    "robust",
    (
        FieldSpec("iteration", SCALAR, INTER),
        FieldSpec("width", SCALAR, INTER),
        FieldSpec("coef", VECTOR, INTER),
        FieldSpec("num_rows", SCALAR, INTRA),
        FieldSpec("X_transp_AX", MATRIX, INTRA),
        FieldSpec("meat", MATRIX, INTRA),
        FieldSpec("log_likelihood", SCALAR, INTRA),
        FieldSpec("status", SCALAR, STATUS),
        FieldSpec("variance", MATRIX, RESULT),
        FieldSpec("condition_no", SCALAR, RESULT),
    ),
)


@dataclass(frozen=True)
class RobustVarianceAggregate(FixedCoefficientAggregate):
    """Sandwich (HC0) variance of fixed logistic-regression coefficients."""

    layout: ClassVar[LayoutSpec] = ROBUST_LAYOUT

    def _accumulate(
        self, state: PackedState, y: float, x: np.ndarray, previous: Any
    ) -> None:
        xc = float(x @ state.view("coef"))

        score = sigma(-y * xc) * y * x
        meat = state.view("meat")
        meat += np.outer(score, score)

        s = sigma(xc)
        accumulate_moment(state, x, s * (1.0 - s))
        state["log_likelihood"] -= log1p_exp(-y * xc)

    def _finalize(self, state: PackedState) -> PackedState:
        if self._terminate_if_nonfinite(
            state,
            ("X_transp_AX", "meat"),
            "Over- or underflow in robust variance accumulation.",
        ):
            return state

        bread, condition_no = symmetric_pinv(state.view("X_transp_AX"))
        state["variance"] = sandwich(bread, state.view("meat"))
        state["condition_no"] = condition_no
        return state

    def _result(self, state: PackedState) -> Any:
        return robust_result(
            coef=state.view("coef"),
            variance_diag=np.diag(state.view("variance")),
            condition_no=state["condition_no"],
            status=state.status,
            num_rows=state.num_rows,
        )


__all__ = ["ROBUST_LAYOUT", "RobustVarianceAggregate"]
