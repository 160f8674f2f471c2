"""Incremental gradient descent (stochastic gradient ascent on the log-likelihood).

Unlike CG and IRLS, the coefficients move *inside* the transition: every
row takes one gradient step

    c ← c + η · σ(−yᵢ xᵢ·c) yᵢ xᵢ

with the step size ``η`` stored in the state.  Partitions therefore end
an iteration with different models.  Merge combines them as a convex
combination weighted by row count, which stays an invariant over any
merge tree: the merged model is always Σ (nₚ / N) cₚ over the merged
partitions ``p``.

The Hessian and log-likelihood are accumulated at the fixed coefficients
of the previous iterate (the initial coefficients on the first pass), so
the distance between two consecutive iterates compares likelihoods of
complete models rather than of a model that moved mid-scan.

Status merging is intentionally weaker than in the other variants: the
merged state only takes the right-hand status when it is ``TERMINATED``.
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
from .._state import Status
from ..inference import wald_result
from ._base import BaseAggregate, accumulate_moment, log1p_exp, sigma

IGD_LAYOUT = LayoutSpec(
    "igd",
    (
        FieldSpec("width", SCALAR, INTER),
        FieldSpec("stepsize", SCALAR, INTER),
        FieldSpec("coef", VECTOR, INTER),
        FieldSpec("num_rows", SCALAR, INTRA),
        FieldSpec("X_transp_AX", MATRIX, INTRA),
        FieldSpec("log_likelihood", SCALAR, INTRA),
        FieldSpec("status", SCALAR, STATUS),
    ),
)


@dataclass(frozen=True)
class IncrementalGradientAggregate(BaseAggregate):
    """Per-row gradient steps with row-weighted model averaging.

    Attributes:
        stepsize: Gradient step size ``η``.  Must be positive.
        initial_coef: Value every coefficient starts from on the first
            iteration.
    """

    layout: ClassVar[LayoutSpec] = IGD_LAYOUT

    stepsize: float = 0.01
    initial_coef: float = 0.1

    def __post_init__(self) -> None:
        if not self.stepsize > 0:
            raise ValueError(f"stepsize must be positive, got {self.stepsize!r}.")

    def _initialize(self, width: int, previous: Any) -> PackedState:
        state = super()._initialize(width, previous)
        state["stepsize"] = self.stepsize
        return state

    def _seed_fresh(self, state: PackedState) -> None:
        state["coef"] = self.initial_coef

    def _accumulate(
        self, state: PackedState, y: float, x: np.ndarray, previous: Any
    ) -> None:
        if previous is None:
            fixed_xc = self.initial_coef * float(np.sum(x))
        else:
            prev = self.wrap(previous)
            assert prev is not None
            fixed_xc = float(x @ prev.view("coef"))

        s = sigma(fixed_xc)
        accumulate_moment(state, x, s * (1.0 - s))
        state["log_likelihood"] -= log1p_exp(-y * fixed_xc)

        coef = state.view("coef")
        xc = float(x @ coef)
        coef += state["stepsize"] * sigma(-y * xc) * y * x

    def _combine(self, left: PackedState, right: PackedState) -> None:
        total = float(left.num_rows + right.num_rows)
        left["coef"] = (
            left.num_rows / total * left.view("coef")
            + right.num_rows / total * right.view("coef")
        )
        super()._combine(left, right)

    def _merge_status(self, left: Status, right: Status) -> Status:
        return right if right is Status.TERMINATED else left

    def _finalize(self, state: PackedState) -> PackedState:
        self._terminate_if_nonfinite(
            state,
            ("coef",),
            "Over- or underflow in incremental-gradient iteration.",
        )
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


__all__ = ["IGD_LAYOUT", "IncrementalGradientAggregate"]
