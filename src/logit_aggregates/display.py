"""Formatted ASCII table display for aggregate results.

The tables mirror the statsmodels summary style: a top panel with the
fit metadata (variant, rows, log-likelihood, condition number, status)
and a bottom panel with one row per coefficient.  Notes at the end flag
results that should not be trusted as-is: a ``TERMINATED`` status, a
singular ``X^T A X`` or a fit that did not converge.
"""

from __future__ import annotations

import math
import textwrap
from typing import Any

import numpy as np

from ._results import (
    LogisticRegressionResult,
    MarginalEffectsResult,
    RobustVarianceResult,
)
from ._state import Status

# Above this, standard errors are dominated by rounding.
_ILL_CONDITIONED = 1e10


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _fmt_val(val: Any, spec: str = ".4f") -> str:
    """Format a number, rendering ``None`` and ``nan`` as ``'N/A'``."""
    if val is None:
        return "N/A"
    val = float(val)
    if math.isnan(val):
        return "N/A"
    if math.isinf(val):
        return "inf" if val > 0 else "-inf"
    return format(val, spec)


def _wrap(text: str, width: int = 80, indent: int = 2) -> str:
    """Word-wrap *text*, indenting continuation lines by *indent*."""
    return textwrap.fill(
        text,
        width=width,
        initial_indent="",
        subsequent_indent=" " * indent,
    )


def _columns(result: Any) -> tuple[str, list[tuple[str, np.ndarray | None]]]:
    """Model label and ``(header, values)`` pairs for the coefficient panel."""
    if isinstance(result, LogisticRegressionResult):
        return f"Logit ({result.variant})", [
            ("Coef", result.coef),
            ("Std Err", result.std_err),
            ("z", result.z_stats),
            ("P>|z|", result.p_values),
            ("Odds Ratio", result.odds_ratios),
        ]
    if isinstance(result, RobustVarianceResult):
        return "Logit (robust SE)", [
            ("Coef", result.coef),
            ("Robust SE", result.std_err),
            ("z", result.z_stats),
            ("P>|z|", result.p_values),
        ]
    if isinstance(result, MarginalEffectsResult):
        return "Logit (marginal)", [
            ("dy/dx", result.marginal_effects),
            ("Std Err", result.std_err),
            ("t", result.t_stats),
            ("P>|t|", result.p_values),
            ("Coef", result.coef),
        ]
    raise TypeError(f"Cannot display a result of type {type(result).__name__}.")


def print_result_table(
    result: LogisticRegressionResult | RobustVarianceResult | MarginalEffectsResult,
    feature_names: list[str] | None = None,
    title: str | None = None,
) -> None:
    """Print a result in a formatted ASCII table similar to statsmodels.

    Args:
        result: Any result returned by an aggregate's ``result()`` or by
            the driver wrappers.
        feature_names: Row labels.  Defaults to the DataFrame column
            names recorded in the result's context, then to
            ``x0, x1, ...``.
        title: Title for the output table.

    Raises:
        TypeError: If *result* is not one of the result types.
        ValueError: If *feature_names* has the wrong length.
    """
    model_label, columns = _columns(result)
    ctx = getattr(result, "context", None)
    n_coef = len(result.coef)
    if feature_names is None and ctx is not None:
        feature_names = ctx.feature_names
    if feature_names is None:
        feature_names = [f"x{i}" for i in range(n_coef)]
    if len(feature_names) != n_coef:
        raise ValueError(
            f"Got {len(feature_names)} feature names for {n_coef} coefficients."
        )
    if title is None:
        title = "Logistic Regression Results"

    print("=" * 80)
    for line in textwrap.wrap(title, width=78):
        print(f"{line:^80}")
    print("=" * 80)

    col1 = 40
    col2 = 38
    log_likelihood = getattr(result, "log_likelihood", None)
    if log_likelihood is None and ctx is not None and ctx.log_likelihoods:
        log_likelihood = ctx.log_likelihoods[-1]
    condition_no = getattr(result, "condition_no", None)

    rows = [
        ("Model:", model_label, "No. Observations:", str(result.num_rows)),
        ("Status:", result.status.name, "Log-Likelihood:", _fmt_val(log_likelihood)),
        ("Df Model:", str(n_coef), "Cond. No.:", _fmt_val(condition_no, ".4g")),
    ]
    if ctx is not None and ctx.converged is not None:
        rows.append(
            ("Iterations:", str(ctx.iterations), "Converged:", str(ctx.converged))
        )
    for ll, lv, rl, rv in rows:
        print(f"{ll:<16}{lv:<{col1 - 16}}{rl:>{col2 - 11}} {rv:>10}")

    print("-" * 80)

    # ── Table geometry (W = 80 chars) ─────────────────────────── #
    #   Feature (fc=20, left) | up to five 12-wide right-aligned columns
    fc = 20
    header = "".join(f"{name:>12}" for name, _ in columns)
    print(f"{'Feature':<{fc}}{header}")
    print("-" * 80)
    for i, feat in enumerate(feature_names):
        cells = "".join(
            f"{_fmt_val(None if values is None else values[i]):>12}"
            for _, values in columns
        )
        print(f"{_truncate(str(feat), fc):<{fc}}{cells}")

    # ── Notes ──────────────────────────────────────────────────── #
    notes: list[str] = []
    if result.status is Status.TERMINATED:
        notes.append(
            "The aggregation terminated on invalid input; the estimates "
            "are not reliable."
        )
    if condition_no is not None and not condition_no < _ILL_CONDITIONED:
        notes.append(
            f"The condition number is {_fmt_val(condition_no, '.3g')}.  "
            "X^T A X is singular or nearly so; coefficients along its null "
            "space are not identified."
        )
    if ctx is not None and ctx.converged is False:
        notes.append(f"The fit did not converge after {ctx.iterations} passes.")
    if isinstance(result, MarginalEffectsResult) and result.p_values is None:
        notes.append(
            "P-values are unavailable because the number of rows does not "
            "exceed the number of covariates."
        )

    if notes:
        print("-" * 80)
        print("Notes")
        print("-" * 80)
        for note in notes:
            print(_wrap(f"  [!] {note}", width=80, indent=6))
    print("=" * 80)
    print()


__all__ = ["print_result_table"]
