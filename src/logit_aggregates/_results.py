"""Typed result objects for logistic-regression aggregates.

Frozen dataclasses that provide:

* **Attribute access**: ``result.coef``, ``result.status``, etc.
* **Dict-like access**: ``result["coef"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation**: ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy types converted to native Python, and ``.to_frame()``
  returns one row per coefficient as a ``pandas.DataFrame``.

Three concrete result types mirror the three kinds of aggregate:

* :class:`LogisticRegressionResult`: a fitted model with Wald
  diagnostics (CG, IRLS, IGD).
* :class:`RobustVarianceResult`: sandwich standard errors for fixed
  coefficients.
* :class:`MarginalEffectsResult`: average marginal effects with
  delta-method standard errors.

All types are frozen since a result is a snapshot of a finalized
state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
import pandas as pd

from ._state import Status

if TYPE_CHECKING:
    from ._context import AggregationContext

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy scalars/arrays to Python-native types.

    Handles nested dicts, lists, np.ndarray, np.integer, and
    np.floating so that :meth:`to_dict` returns a plain structure.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


def _default_names(n: int) -> list[str]:
    return [f"x{i}" for i in range(n)]


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``: raises ``KeyError`` on miss
    2. ``result.get(key, d)``: returns *d* on miss (default ``None``)
    3. ``"key" in result``: membership test

    ``_SERIALIZERS`` maps field names to conversion functions for
    non-primitive values (``Status`` → its name).  ``_FRAME_COLUMNS``
    lists the per-coefficient fields that :meth:`to_frame` lays out as
    columns.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "status": lambda s: s.name,
    }

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"context"})

    _FRAME_COLUMNS: ClassVar[tuple[str, ...]] = ()

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary.

        Applies per-field serializers from ``_SERIALIZERS``, then runs
        :func:`_numpy_to_python` on every value.
        """
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            val = getattr(self, f.name)
            if f.name in self._SERIALIZERS:
                val = self._SERIALIZERS[f.name](val)
            result[f.name] = _numpy_to_python(val)
        return result

    def to_frame(self, feature_names: list[str] | None = None) -> pd.DataFrame:
        """Per-coefficient table, one row per feature.

        Args:
            feature_names: Row labels.  Defaults to ``x0, x1, ...``.

        Raises:
            ValueError: If *feature_names* has the wrong length.
        """
        coef = np.asarray(getattr(self, "coef"))
        names = _default_names(coef.size) if feature_names is None else list(feature_names)
        if len(names) != coef.size:
            raise ValueError(
                f"Got {len(names)} feature names for {coef.size} coefficients."
            )
        data: dict[str, Any] = {}
        for column in self._FRAME_COLUMNS:
            values = getattr(self, column)
            data[column] = np.full(coef.size, np.nan) if values is None else values
        return pd.DataFrame(data, index=pd.Index(names, name="feature"))


# ------------------------------------------------------------------ #
# LogisticRegressionResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class LogisticRegressionResult(_DictAccessMixin):
    """Fitted coefficients with Wald diagnostics.

    Returned by ``result()`` of the ``"cg"``, ``"irls"`` and ``"igd"``
    aggregates, and by :func:`~logit_aggregates.driver.fit_logistic`.
    """

    _FRAME_COLUMNS: ClassVar[tuple[str, ...]] = (
        "coef",
        "std_err",
        "z_stats",
        "p_values",
        "odds_ratios",
    )

    # ---- Model -----------------------------------------------------
    variant: str
    """Optimizer that produced the fit (``"cg"``, ``"irls"``, ``"igd"``)."""

    coef: np.ndarray
    """Coefficient vector ``(p,)``."""

    log_likelihood: float
    """Log-likelihood accumulated in the last pass."""

    # ---- Wald statistics -------------------------------------------
    std_err: np.ndarray
    """Standard errors ``sqrt(diag((X^T A X)⁺))``."""

    z_stats: np.ndarray
    """Wald z-statistics ``coef / std_err``."""

    p_values: np.ndarray
    """Two-sided normal p-values."""

    odds_ratios: np.ndarray
    """``exp(coef)``."""

    # ---- Numerical health ------------------------------------------
    condition_no: float
    """Condition number of ``X^T A X``; ``inf`` when singular."""

    status: Status
    """Status of the state the result was taken from."""

    num_rows: int
    """Rows aggregated in the last pass."""

    # ---- Computation context (not serialised) ----------------------
    context: AggregationContext | None = field(default=None, repr=False, compare=False)
    """Iteration history from the driver.  Excluded from ``to_dict()``."""


# ------------------------------------------------------------------ #
# RobustVarianceResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class RobustVarianceResult(_DictAccessMixin):
    """Huber–White standard errors for fixed coefficients."""

    _FRAME_COLUMNS: ClassVar[tuple[str, ...]] = (
        "coef",
        "std_err",
        "z_stats",
        "p_values",
    )

    coef: np.ndarray
    """Coefficients the variance was evaluated at."""

    std_err: np.ndarray
    """Robust standard errors ``sqrt(diag(bread · meat · bread))``."""

    z_stats: np.ndarray
    """Wald z-statistics using the robust standard errors."""

    p_values: np.ndarray
    """Two-sided normal p-values."""

    condition_no: float
    """Condition number of the bread matrix's inverse ``X^T A X``."""

    status: Status
    num_rows: int

    context: AggregationContext | None = field(default=None, repr=False, compare=False)


# ------------------------------------------------------------------ #
# MarginalEffectsResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class MarginalEffectsResult(_DictAccessMixin):
    """Average marginal effects with delta-method standard errors."""

    _FRAME_COLUMNS: ClassVar[tuple[str, ...]] = (
        "marginal_effects",
        "coef",
        "std_err",
        "t_stats",
        "p_values",
    )

    marginal_effects: np.ndarray
    """Average marginal effect per covariate."""

    coef: np.ndarray
    """Coefficients the effects were evaluated at."""

    std_err: np.ndarray
    """Delta-method standard errors."""

    t_stats: np.ndarray
    """``marginal_effects / std_err``."""

    p_values: np.ndarray | None
    """Two-sided Student-t p-values, or ``None`` when ``num_rows`` does
    not exceed the number of covariates."""

    degrees_of_freedom: int
    """``num_rows - p``; not positive when p-values are unavailable."""

    status: Status
    num_rows: int

    context: AggregationContext | None = field(default=None, repr=False, compare=False)


__all__ = [
    "LogisticRegressionResult",
    "MarginalEffectsResult",
    "RobustVarianceResult",
]
