"""Logistic-regression aggregate registry and protocol.

Each aggregate encapsulates one distributed algorithm over row
partitions and exposes the uniform five-step interface that a host
(such as :class:`~logit_aggregates.driver.AggregationDriver`) calls:

* **Optimizers** (``"cg"``, ``"irls"``, ``"igd"``) are iterative.  Each
  pass is seeded with the previous pass's finalized state and produces
  the next coefficient iterate.
* **Diagnostics** (``"robust"``, ``"marginal"``) run a single pass at a
  caller-supplied coefficient vector.

Adding a new aggregate
~~~~~~~~~~~~~~~~~~~~~~
1. Create a module under ``_aggregates/`` with a layout and a class
   that satisfies the :class:`LogitAggregate` protocol (subclassing
   :class:`~._base.BaseAggregate` covers most of it).
2. Register it in the :data:`_AGGREGATE_REGISTRY` mapping below.
3. ``resolve_aggregate`` and the driver will pick it up automatically.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np

from .._layout import LayoutSpec, PackedState

# ------------------------------------------------------------------ #
# Aggregate protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class LogitAggregate(Protocol):
    """Interface that every logistic-regression aggregate must satisfy.

    States may be passed either as :class:`PackedState` objects or as
    raw flat ``float64`` wire buffers; ``None`` stands for a partition
    that has not seen any row yet.
    """

    layout: LayoutSpec
    """Field layout of this variant's state buffer."""

    @property
    def name(self) -> str: ...

    def transition(
        self,
        state: PackedState | np.ndarray | None,
        label: Any,
        features: Any,
        previous: Any = None,
    ) -> PackedState:
        """Fold one row into a partition state."""
        ...

    def merge(
        self,
        left: PackedState | np.ndarray | None,
        right: PackedState | np.ndarray | None,
    ) -> PackedState | None:
        """Combine two partition states."""
        ...

    def finalize(self, state: PackedState | np.ndarray | None) -> PackedState | None:
        """Produce the end-of-pass state, or ``None`` without data."""
        ...

    def distance(
        self,
        left: PackedState | np.ndarray | None,
        right: PackedState | np.ndarray | None,
    ) -> float:
        """Convergence signal between two consecutive finalized states."""
        ...

    def result(self, state: PackedState | np.ndarray | None) -> Any:
        """Diagnostics for a finalized state, or ``None`` without data."""
        ...

    def zero_state(self, width: int) -> PackedState:
        """Merge identity for *width* features."""
        ...


# ------------------------------------------------------------------ #
# Registry
# ------------------------------------------------------------------ #

# Populated lazily so that importing the package does not import every
# variant module up front.

_AGGREGATE_REGISTRY: dict[str, type] = {}

ITERATIVE_METHODS = frozenset({"cg", "irls", "igd"})
DIAGNOSTIC_METHODS = frozenset({"robust", "marginal"})


def _ensure_registry() -> None:
    """Populate the registry on first access."""
    if _AGGREGATE_REGISTRY:
        return

    from .cg import ConjugateGradientAggregate
    from .igd import IncrementalGradientAggregate
    from .irls import IRLSAggregate
    from .marginal import MarginalEffectsAggregate
    from .robust import RobustVarianceAggregate

    _AGGREGATE_REGISTRY.update(
        {
            "cg": ConjugateGradientAggregate,
            "irls": IRLSAggregate,
            "igd": IncrementalGradientAggregate,
            "robust": RobustVarianceAggregate,
            "marginal": MarginalEffectsAggregate,
        }
    )


def resolve_aggregate(method: str, **params: Any) -> LogitAggregate:
    """Return an aggregate instance for the given method string.

    Args:
        method: One of ``"cg"``, ``"irls"``, ``"igd"``, ``"robust"``,
            ``"marginal"`` (case-insensitive).
        **params: Constructor parameters of the variant, e.g.
            ``stepsize`` for ``"igd"``.

    Raises:
        ValueError: If *method* is not recognised or a parameter is
            invalid for the variant.
    """
    _ensure_registry()
    key = method.lower() if isinstance(method, str) else method
    cls = _AGGREGATE_REGISTRY.get(key)
    if cls is None:
        valid = ", ".join(sorted(_AGGREGATE_REGISTRY))
        raise ValueError(f"Invalid method '{method}'. Choose from: {valid}.")
    try:
        aggregate: LogitAggregate = cls(**params)
    except TypeError as exc:
        raise ValueError(f"Invalid parameters for method '{method}': {exc}") from exc
    return aggregate


__all__ = [
    "DIAGNOSTIC_METHODS",
    "ITERATIVE_METHODS",
    "LogitAggregate",
    "resolve_aggregate",
]
