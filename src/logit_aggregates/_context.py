"""Aggregation context: mutable record of a driver run.

An :class:`AggregationContext` travels with an
:class:`~logit_aggregates.driver.AggregationDriver`, collecting the
per-pass history at the point where each pass is finalized.  The
convenience wrappers attach it to the returned result so that display
and debugging code can inspect convergence without re-running the
aggregation.

The context is **not** part of the serialisation API:
:meth:`~logit_aggregates._results.LogisticRegressionResult.to_dict`
skips it.

Lifecycle::

    ┌──────────────────────────────────────────────┐
    │  fit_logistic()                              │
    │  ├─ ctx = AggregationContext(method=…)       │
    │  ├─ AggregationDriver(aggregate, ctx=ctx)    │
    │  │   └─ iterate()                            │
    │  │       ├─ run_pass() → finalized state     │
    │  │       ├─ ctx.record_pass(ll, distance)    │
    │  │       └─ ctx.converged / ctx.final_status │
    │  ├─ aggregate.result(state)                  │
    │  └─ replace(result, context=ctx)             │
    └──────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._state import Status


@dataclass
class AggregationContext:
    """Mutable accumulator for driver artifacts.

    Every field defaults to ``None`` (or an empty container) so the
    context can be created empty and populated pass by pass.
    """

    # ---- Inputs --------------------------------------------------
    method: str | None = None
    """Aggregate variant name (e.g. ``"irls"``)."""

    feature_names: list[str] | None = None
    """Column names when the design matrix was a DataFrame."""

    n_partitions: int | None = None
    """Number of row partitions the data was split into."""

    n_jobs: int | None = None
    """Parallelism level of the transition fan-out."""

    # ---- Per-pass history ----------------------------------------
    log_likelihoods: list[float] = field(default_factory=list)
    """Log-likelihood accumulated in each pass."""

    distances: list[float] = field(default_factory=list)
    """Distance to the previous pass (``inf`` for the first)."""

    # ---- Outcome -------------------------------------------------
    converged: bool | None = None
    """``True`` if the distance fell below the tolerance.  ``None`` for
    single-pass diagnostics."""

    final_status: Status | None = None
    """Status of the last finalized state."""

    @property
    def iterations(self) -> int:
        """Number of completed passes."""
        return len(self.log_likelihoods)

    def record_pass(self, log_likelihood: float, distance: float) -> None:
        self.log_likelihoods.append(float(log_likelihood))
        self.distances.append(float(distance))


__all__ = ["AggregationContext"]
