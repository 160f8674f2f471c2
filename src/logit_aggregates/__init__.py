"""logit_aggregates: distributed incremental logistic regression.

Logistic regression as a family of mergeable aggregates over row
partitions: conjugate gradient, IRLS (Newton) and incremental gradient
descent optimizers, plus single-pass Huber–White robust variance and
average marginal effects at fixed coefficients.  Every aggregate keeps
its sufficient statistics in one packed ``float64`` buffer and exposes
``transition`` / ``merge`` / ``finalize`` / ``distance`` / ``result``.

Public API:
    .. autosummary::
        fit_logistic
        robust_variance
        marginal_effects
        partition_rows
        AggregationDriver
        AggregationContext
        resolve_aggregate
        LogitAggregate
        ConjugateGradientAggregate
        IRLSAggregate
        IncrementalGradientAggregate
        RobustVarianceAggregate
        MarginalEffectsAggregate
        PackedState
        LayoutSpec
        Status
        IncompatibleStateError
        symmetric_pinv
        print_result_table
        get_validation
        set_validation
        LogisticRegressionResult
        RobustVarianceResult
        MarginalEffectsResult
"""

from ._aggregates import LogitAggregate, resolve_aggregate
from ._aggregates.cg import ConjugateGradientAggregate
from ._aggregates.igd import IncrementalGradientAggregate
from ._aggregates.irls import IRLSAggregate
from ._aggregates.marginal import MarginalEffectsAggregate
from ._aggregates.robust import RobustVarianceAggregate
from ._config import get_validation, set_validation
from ._context import AggregationContext
from ._layout import LayoutSpec, PackedState
from ._linalg import symmetric_pinv
from ._results import (
    LogisticRegressionResult,
    MarginalEffectsResult,
    RobustVarianceResult,
)
from ._state import MAX_WIDTH_OF_X, IncompatibleStateError, Status
from .display import print_result_table
from .driver import (
    AggregationDriver,
    fit_logistic,
    marginal_effects,
    partition_rows,
    robust_variance,
)

__all__ = [
    "LogisticRegressionResult",
    "MarginalEffectsResult",
    "RobustVarianceResult",
    "AggregationContext",
    "AggregationDriver",
    "fit_logistic",
    "marginal_effects",
    "partition_rows",
    "robust_variance",
    "print_result_table",
    "get_validation",
    "set_validation",
    "LogitAggregate",
    "resolve_aggregate",
    "ConjugateGradientAggregate",
    "IRLSAggregate",
    "IncrementalGradientAggregate",
    "MarginalEffectsAggregate",
    "RobustVarianceAggregate",
    "LayoutSpec",
    "PackedState",
    "MAX_WIDTH_OF_X",
    "IncompatibleStateError",
    "Status",
    "symmetric_pinv",
]
