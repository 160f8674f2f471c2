"""Reference host for running aggregates over partitioned data.

The aggregates only define how one row is folded in, how partition
states combine and how a merged state becomes the next iterate.  This
module supplies the loop around them, in the shape a parallel database
executes a user-defined aggregate:

1. **Fan-out**: every partition scans its rows through ``transition``
   independently.  With ``n_jobs != 1`` partitions are scanned on a
   ``joblib.Parallel(prefer="threads")`` pool.  The per-row work is
   small NumPy kernels, so threads avoid the pickling cost of moving
   state buffers between processes.
2. **Fan-in**: partition states are combined pairwise in a balanced
   tree.  Merge is commutative and associative, so the tree shape does
   not affect the result beyond floating-point rounding.
3. **Finalize** once on the fully merged state.

Optimizers repeat this, feeding each finalized state into the next
pass, until the distance between consecutive states drops below a
tolerance, a partition reports ``TERMINATED``, or ``max_iter`` is hit.
Diagnostics (robust variance, marginal effects) run a single pass at a
given coefficient vector.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import replace
from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning as SmConvergenceWarning,
)

from ._aggregates import ITERATIVE_METHODS, LogitAggregate, resolve_aggregate
from ._context import AggregationContext
from ._layout import PackedState
from ._results import (
    LogisticRegressionResult,
    MarginalEffectsResult,
    RobustVarianceResult,
)
from ._state import Status

logger = logging.getLogger(__name__)

Partition = tuple[np.ndarray, np.ndarray]


# ------------------------------------------------------------------ #
# Partitioning
# ------------------------------------------------------------------ #


def _as_design(X: Any) -> tuple[np.ndarray, list[str] | None]:
    if isinstance(X, pd.DataFrame):
        return X.to_numpy(dtype=float), [str(c) for c in X.columns]
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(-1, 1)
    if X.ndim != 2:
        raise ValueError(f"X must be 2-D, got shape {X.shape}.")
    return X, None


def partition_rows(X: Any, y: Any, n_partitions: int = 1) -> list[Partition]:
    """Split a design matrix and labels into contiguous row partitions.

    Args:
        X: Design matrix ``(n, p)`` as an array or DataFrame.  Include
            an explicit column of ones for an intercept.
        y: Labels ``(n,)``: booleans, 0/1 or ±1.
        n_partitions: Number of partitions.  Partitions may be empty
            when it exceeds ``n``.

    Returns:
        A list of ``(X_part, y_part)`` pairs.

    Raises:
        ValueError: If the shapes disagree or *n_partitions* < 1.
    """
    if n_partitions < 1:
        raise ValueError(f"n_partitions must be >= 1, got {n_partitions}.")
    X_arr, _ = _as_design(X)
    y_arr = np.asarray(y.to_numpy() if isinstance(y, pd.Series) else y).ravel()
    if y_arr.shape[0] != X_arr.shape[0]:
        raise ValueError(
            f"X has {X_arr.shape[0]} rows but y has {y_arr.shape[0]} labels."
        )
    chunks = np.array_split(np.arange(X_arr.shape[0]), n_partitions)
    return [(X_arr[idx], y_arr[idx]) for idx in chunks]


# ------------------------------------------------------------------ #
# Driver
# ------------------------------------------------------------------ #


class AggregationDriver:
    """Run an aggregate over row partitions.

    Args:
        aggregate: An aggregate instance or a variant name accepted by
            :func:`~logit_aggregates.resolve_aggregate`.
        n_jobs: Number of threads for the transition fan-out.  ``1``
            scans partitions sequentially, ``-1`` uses all cores.
        ctx: Context to record the run into.  A fresh one is created
            when omitted.
    """

    def __init__(
        self,
        aggregate: LogitAggregate | str,
        n_jobs: int = 1,
        ctx: AggregationContext | None = None,
    ) -> None:
        if isinstance(aggregate, str):
            aggregate = resolve_aggregate(aggregate)
        self.aggregate = aggregate
        self.n_jobs = n_jobs
        self.ctx = ctx if ctx is not None else AggregationContext()
        if self.ctx.method is None:
            self.ctx.method = aggregate.name
        self.ctx.n_jobs = n_jobs

    # ---- One pass --------------------------------------------------

    def _scan(self, partition: Partition, previous: Any) -> PackedState | None:
        X_part, y_part = partition
        state: PackedState | None = None
        for label, row in zip(y_part, X_part):
            state = self.aggregate.transition(state, label, row, previous)
        return state

    def _tree_merge(self, states: list[PackedState | None]) -> PackedState | None:
        if not states:
            return None
        while len(states) > 1:
            merged = [
                self.aggregate.merge(states[i], states[i + 1])
                for i in range(0, len(states) - 1, 2)
            ]
            if len(states) % 2:
                merged.append(states[-1])
            states = merged
        return states[0]

    def run_pass(
        self, partitions: Sequence[Partition], previous: Any = None
    ) -> PackedState | None:
        """Fan out transitions, tree-merge, and finalize once.

        Args:
            partitions: ``(X_part, y_part)`` pairs, e.g. from
                :func:`partition_rows`.
            previous: Previous finalized state for the optimizers, or
                the coefficient vector for the diagnostics.

        Returns:
            The finalized state, or ``None`` if no partition saw a row.
        """
        if self.n_jobs == 1:
            states = [self._scan(p, previous) for p in partitions]
        else:
            states = Parallel(n_jobs=self.n_jobs, prefer="threads")(
                delayed(self._scan)(p, previous) for p in partitions
            )
        return self.aggregate.finalize(self._tree_merge(list(states)))

    # ---- Iteration -------------------------------------------------

    def iterate(
        self,
        partitions: Iterable[Partition],
        max_iter: int = 20,
        tolerance: float = 1e-6,
    ) -> PackedState | None:
        """Repeat passes until the aggregate's distance converges.

        Stops when the distance between consecutive finalized states is
        below *tolerance* (the state is then marked ``COMPLETED``), when
        a pass comes back ``TERMINATED`` (a ``UserWarning`` is issued),
        or after *max_iter* passes (a statsmodels ``ConvergenceWarning``
        is issued).

        Returns:
            The last finalized state, or ``None`` if there was no data.

        Raises:
            ValueError: If *max_iter* < 1.
        """
        if max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {max_iter}.")
        partitions = list(partitions)
        self.ctx.n_partitions = len(partitions)

        state: PackedState | None = None
        for iteration in range(1, max_iter + 1):
            new_state = self.run_pass(partitions, previous=state)
            if new_state is None:
                logger.debug("Pass %d aggregated no rows.", iteration)
                break

            distance = self.aggregate.distance(state, new_state)
            self.ctx.record_pass(new_state["log_likelihood"], distance)
            logger.debug(
                "%s pass %d: log-likelihood=%.6g distance=%.3g status=%s",
                self.aggregate.name,
                iteration,
                new_state["log_likelihood"],
                distance,
                new_state.status.name,
            )
            state = new_state

            if state.status is Status.TERMINATED:
                warnings.warn(
                    f"Aggregation {self.aggregate.name!r} terminated in pass "
                    f"{iteration}; the coefficients are not reliable.  See "
                    "the log for the cause.",
                    UserWarning,
                    stacklevel=2,
                )
                self.ctx.converged = False
                break
            if distance < tolerance:
                state.status = Status.COMPLETED
                self.ctx.converged = True
                break
        else:
            warnings.warn(
                f"Aggregation {self.aggregate.name!r} did not converge in "
                f"{max_iter} iterations (tolerance={tolerance:g}).",
                SmConvergenceWarning,
                stacklevel=2,
            )
            self.ctx.converged = False

        self.ctx.final_status = None if state is None else state.status
        return state


# ------------------------------------------------------------------ #
# Convenience wrappers
# ------------------------------------------------------------------ #


def _single_pass(
    method: str,
    X: Any,
    y: Any,
    coef: Any,
    n_partitions: int,
    n_jobs: int,
) -> tuple[LogitAggregate, PackedState, AggregationContext]:
    _, feature_names = _as_design(X)
    aggregate = resolve_aggregate(method)
    ctx = AggregationContext(method=method, feature_names=feature_names)
    driver = AggregationDriver(aggregate, n_jobs=n_jobs, ctx=ctx)
    partitions = partition_rows(X, y, n_partitions)
    ctx.n_partitions = len(partitions)

    state = driver.run_pass(partitions, previous=np.asarray(coef, dtype=float))
    if state is None:
        raise ValueError("No rows were aggregated.")
    ctx.record_pass(state["log_likelihood"], float("inf"))
    ctx.final_status = state.status
    return aggregate, state, ctx


def fit_logistic(
    X: Any,
    y: Any,
    method: str = "irls",
    *,
    max_iter: int = 20,
    tolerance: float = 1e-6,
    n_partitions: int = 1,
    n_jobs: int = 1,
    **params: Any,
) -> LogisticRegressionResult:
    """Fit a logistic regression with one of the distributed optimizers.

    Args:
        X: Design matrix ``(n, p)``.  No intercept is added.
        y: Labels: booleans, 0/1 or ±1.
        method: ``"irls"`` (default), ``"cg"`` or ``"igd"``.
        max_iter: Maximum number of passes over the data.
        tolerance: Convergence threshold on the change in
            log-likelihood between passes.
        n_partitions: Number of row partitions to aggregate over.
        n_jobs: Threads for the transition fan-out.
        **params: Variant parameters, e.g. ``stepsize`` for ``"igd"``.

    Returns:
        A :class:`LogisticRegressionResult` with the driver's
        :class:`AggregationContext` attached.

    Raises:
        ValueError: For an unknown or non-iterative *method*, or when
            no rows were aggregated.
    """
    if method not in ITERATIVE_METHODS:
        valid = ", ".join(sorted(ITERATIVE_METHODS))
        raise ValueError(f"Invalid method '{method}'. Choose from: {valid}.")
    _, feature_names = _as_design(X)
    aggregate = resolve_aggregate(method, **params)
    ctx = AggregationContext(method=method, feature_names=feature_names)
    driver = AggregationDriver(aggregate, n_jobs=n_jobs, ctx=ctx)

    state = driver.iterate(
        partition_rows(X, y, n_partitions), max_iter=max_iter, tolerance=tolerance
    )
    if state is None:
        raise ValueError("No rows were aggregated.")
    result: LogisticRegressionResult = aggregate.result(state)
    return replace(result, context=ctx)


def robust_variance(
    X: Any, y: Any, coef: Any, *, n_partitions: int = 1, n_jobs: int = 1
) -> RobustVarianceResult:
    """Huber–White standard errors of *coef* in a single pass.

    Raises:
        ValueError: If *coef* does not match the number of columns of
            *X*, or when no rows were aggregated.
    """
    aggregate, state, ctx = _single_pass("robust", X, y, coef, n_partitions, n_jobs)
    result: RobustVarianceResult = aggregate.result(state)
    return replace(result, context=ctx)


def marginal_effects(
    X: Any, y: Any, coef: Any, *, n_partitions: int = 1, n_jobs: int = 1
) -> MarginalEffectsResult:
    """Average marginal effects of *coef* in a single pass.

    Raises:
        ValueError: If *coef* does not match the number of columns of
            *X*, or when no rows were aggregated.
    """
    aggregate, state, ctx = _single_pass("marginal", X, y, coef, n_partitions, n_jobs)
    result: MarginalEffectsResult = aggregate.result(state)
    return replace(result, context=ctx)


__all__ = [
    "AggregationDriver",
    "fit_logistic",
    "marginal_effects",
    "partition_rows",
    "robust_variance",
]
