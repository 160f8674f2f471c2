"""Machinery shared by every logistic-regression aggregate.

All five variants follow the same state-machine shape:

    transition:  fold one row into a partition state (mutates in place)
    merge:       combine two partition states (mutates the left one)
    finalize:    turn the fully merged state into the next iterate
    distance:    |Δ log-likelihood| between consecutive iterates
    result:      diagnostics from the last finalized state

The concrete classes only implement the per-row accumulation, the
optimizer step and the result packaging, through the ``_accumulate``,
``_finalize`` and ``_result`` hooks.
Everything that must behave identically across variants lives here:

* **First-row sizing.**  ``widthOfX`` is unknown until the first row of
  an iteration arrives, so the state is allocated (or seeded from the
  previous iterate) lazily on that row.
* **Guards.**  Rows wider than :data:`MAX_WIDTH_OF_X`, rows whose width
  differs from the established one, and (with validation enabled)
  non-finite rows mark the partition ``TERMINATED``.  A ``TERMINATED``
  partition ignores every further row.
* **Identity short-circuit.**  A state with ``num_rows == 0`` is the
  merge identity.  The partner is returned as-is, except that a
  ``TERMINATED`` empty state still escalates the partner's status so a
  rejected partition is never silently dropped from the aggregation.
* **No-data contract.**  ``finalize`` / ``result`` on an empty state
  return ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

import numpy as np
from scipy.special import expit

from .._config import get_validation
from .._layout import INTRA, LayoutSpec, PackedState
from .._state import MAX_WIDTH_OF_X, IncompatibleStateError, Status

logger = logging.getLogger(__name__)


def sigma(t: float) -> float:
    """Logistic function ``1 / (1 + exp(-t))``."""
    return float(expit(t))


def log1p_exp(t: float) -> float:
    """``ln(1 + e^t)`` without overflow for large *t*."""
    return float(np.logaddexp(0.0, t))


def signed_label(label: Any) -> float:
    """Map a boolean / 0-1 / ±1 label to ``+1.0`` or ``-1.0``."""
    return 1.0 if label > 0 else -1.0


def as_row(features: Any) -> np.ndarray:
    """Coerce a feature row to a 1-D ``float64`` array."""
    x = np.asarray(features, dtype=float)
    if x.ndim != 1:
        x = x.ravel()
    return x


class BaseAggregate:
    """Template for the transition / merge / finalize protocol.

    Subclasses set :attr:`layout` and implement ``_accumulate``,
    ``_finalize`` and ``_result``.  Variants whose first row does not
    come from a previous iterate override ``_initialize``.
    """

    layout: ClassVar[LayoutSpec]

    @property
    def name(self) -> str:
        return self.layout.variant

    # ================================================================ #
    # Host helpers
    # ================================================================ #

    def zero_state(self, width: int) -> PackedState:
        """A zero-filled state, the merge identity for *width*."""
        return PackedState.allocate(self.layout, width)

    def wrap(self, buffer: PackedState | np.ndarray | None) -> PackedState | None:
        """Interpret a raw wire buffer as a state of this variant."""
        if buffer is None or isinstance(buffer, PackedState):
            return buffer
        return PackedState.from_buffer(self.layout, buffer)

    # ================================================================ #
    # Transition
    # ================================================================ #

    def transition(
        self,
        state: PackedState | np.ndarray | None,
        label: Any,
        features: Any,
        previous: Any = None,
    ) -> PackedState:
        """Fold one row into *state* and return it.

        Args:
            state: The partition's running state, or ``None`` before the
                first row.
            label: Boolean / 0-1 / ±1 class label.
            features: Feature vector of length ``widthOfX``.
            previous: The previous iteration's finalized state (or, for
                the diagnostic variants, the fixed coefficient vector).

        Returns:
            The updated state.  A ``TERMINATED`` state is returned
            unchanged.
        """
        x = as_row(features)
        state, ready = self._prepare(self.wrap(state), x, label, previous)
        if not ready:
            return state
        state.num_rows += 1
        self._accumulate(state, signed_label(label), x, previous)
        return state

    def _prepare(
        self,
        state: PackedState | None,
        x: np.ndarray,
        label: Any,
        previous: Any,
    ) -> tuple[PackedState, bool]:
        if state is not None and state.status is Status.TERMINATED:
            return state, False

        if state is None or state.num_rows == 0:
            if x.size > MAX_WIDTH_OF_X:
                logger.warning(
                    "Number of independent variables cannot be larger than "
                    "%d (got %d); terminating partition.",
                    MAX_WIDTH_OF_X,
                    x.size,
                )
                if state is None:
                    state = PackedState.allocate(self.layout, 0)
                state.status = Status.TERMINATED
                return state, False
            state = self._initialize(x.size, previous)
        elif x.size != state.width:
            logger.warning(
                "Row has %d features but the partition was sized for %d; "
                "terminating partition.",
                x.size,
                state.width,
            )
            state.status = Status.TERMINATED
            return state, False

        if get_validation() and not (
            np.all(np.isfinite(x)) and np.isfinite(float(label))
        ):
            logger.warning("Design matrix is not finite; terminating partition.")
            state.status = Status.TERMINATED
            return state, False
        return state, True

    def _initialize(self, width: int, previous: Any) -> PackedState:
        """Allocate a fresh state, or seed it from the previous iterate."""
        if previous is None:
            state = PackedState.allocate(self.layout, width)
            self._seed_fresh(state)
            return state
        prev = self.wrap(previous)
        assert prev is not None
        if prev.layout.spec != self.layout or prev.width != width:
            raise IncompatibleStateError(
                f"Internal error: previous {prev.variant!r} state has "
                f"widthOfX={prev.width} but the row has {width} features."
            )
        state = prev.copy()
        state.reset_intra()
        return state

    def _seed_fresh(self, state: PackedState) -> None:
        """Hook for variants with non-zero starting values."""

    def _accumulate(
        self, state: PackedState, y: float, x: np.ndarray, previous: Any
    ) -> None:
        raise NotImplementedError

    # ================================================================ #
    # Merge
    # ================================================================ #

    def merge(
        self,
        left: PackedState | np.ndarray | None,
        right: PackedState | np.ndarray | None,
    ) -> PackedState | None:
        """Combine two partition states.

        Mutates and returns *left* unless one side is empty, in which
        case the other side is returned.

        Raises:
            IncompatibleStateError: If the two states differ in variant,
                ``widthOfX`` or buffer size.
        """
        left = self.wrap(left)
        right = self.wrap(right)
        if left is None or left.num_rows == 0:
            return self._absorb_empty(right, left)
        if right is None or right.num_rows == 0:
            return self._absorb_empty(left, right)

        left.check_compatible(right)
        self._combine(left, right)
        return left

    def _absorb_empty(
        self, kept: PackedState | None, empty: PackedState | None
    ) -> PackedState | None:
        if kept is None:
            return empty
        if empty is not None and empty.status is Status.TERMINATED:
            kept.status = self._merge_status(kept.status, empty.status)
        return kept

    def _combine(self, left: PackedState, right: PackedState) -> None:
        for f in left.layout.with_role(INTRA):
            sl = slice(f.offset, f.offset + f.size)
            left.buffer[sl] += right.buffer[sl]
        left.status = self._merge_status(left.status, right.status)

    def _merge_status(self, left: Status, right: Status) -> Status:
        return left.escalate(right)

    # ================================================================ #
    # Finalize / distance / result
    # ================================================================ #

    def finalize(self, state: PackedState | np.ndarray | None) -> PackedState | None:
        """Produce the next iterate, or ``None`` if no rows were seen."""
        state = self.wrap(state)
        if state is None or state.num_rows == 0:
            return None
        return self._finalize(state)

    def _finalize(self, state: PackedState) -> PackedState:
        raise NotImplementedError

    def distance(
        self,
        left: PackedState | np.ndarray | None,
        right: PackedState | np.ndarray | None,
    ) -> float:
        """Absolute difference in log-likelihood between two states.

        Returns ``inf`` when either side is missing, so a host loop
        never mistakes "no previous iterate" for convergence.
        """
        left = self.wrap(left)
        right = self.wrap(right)
        if left is None or right is None:
            return float("inf")
        return abs(left["log_likelihood"] - right["log_likelihood"])

    def result(self, state: PackedState | np.ndarray | None) -> Any:
        """Diagnostics for a finalized state, or ``None`` if empty."""
        state = self.wrap(state)
        if state is None or state.num_rows == 0:
            return None
        return self._result(state)

    def _result(self, state: PackedState) -> Any:
        raise NotImplementedError

    # ================================================================ #
    # Validation
    # ================================================================ #

    def _terminate_if_nonfinite(
        self, state: PackedState, names: tuple[str, ...], message: str
    ) -> bool:
        """With validation on, mark *state* TERMINATED if a field is non-finite."""
        if get_validation() and not state.is_finite(*names):
            logger.warning("%s Input data is likely of poor numerical condition.", message)
            state.status = Status.TERMINATED
            return True
        return False


class FixedCoefficientAggregate(BaseAggregate):
    """Base for the single-pass diagnostics evaluated at given coefficients.

    The coefficient vector is passed as the fourth transition argument
    on every row and copied into the state on the first one.
    """

    def _initialize(self, width: int, previous: Any) -> PackedState:
        if previous is None:
            raise ValueError(
                f"The {self.name!r} aggregate requires a coefficient vector."
            )
        coef = np.asarray(previous, dtype=float).ravel()
        if coef.size != width:
            raise ValueError(
                f"Coefficient vector has {coef.size} entries but the row has "
                f"{width} features."
            )
        state = PackedState.allocate(self.layout, width)
        state["coef"] = coef
        return state


def accumulate_moment(state: PackedState, x: np.ndarray, a: float) -> None:
    """Rank-one update ``X_transp_AX += x xᵀ · a``."""
    hessian = state.view("X_transp_AX")
    hessian += a * np.outer(x, x)


__all__ = [
    "BaseAggregate",
    "FixedCoefficientAggregate",
    "accumulate_moment",
    "as_row",
    "log1p_exp",
    "sigma",
    "signed_label",
]
