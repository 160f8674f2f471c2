"""Runtime configuration for the logit_aggregates package.

Controls whether the optional finiteness validation runs inside the
aggregate functions.  When enabled, every transition checks the
incoming feature vector and every finalize checks the accumulated
statistics and the updated coefficients; a non-finite value marks the
state ``TERMINATED`` instead of letting NaN/Inf flow into the next
iterate.

Resolution order (first match wins):
    1. Programmatic override via :func:`set_validation`.
    2. The ``LOGIT_AGGREGATES_VALIDATE`` environment variable.
    3. Default: validation disabled.

Examples:
    Enable validation from the shell::

        export LOGIT_AGGREGATES_VALIDATE=1

    Enable validation programmatically::

        import logit_aggregates
        logit_aggregates.set_validation(True)

    Re-enable default resolution::

        logit_aggregates.set_validation("auto")
"""

from __future__ import annotations

import os

_ENV_VAR = "LOGIT_AGGREGATES_VALIDATE"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

# Sentinel indicating "no programmatic override has been set".
_validation_override: bool | None = None


def get_validation() -> bool:
    """Return whether finiteness validation is active.

    Resolution order:
        1. Value set by :func:`set_validation` (unless ``"auto"``).
        2. ``LOGIT_AGGREGATES_VALIDATE`` environment variable.
        3. ``False``.

    Returns:
        ``True`` when aggregates should check for non-finite values.
    """
    # 1. Programmatic override
    if _validation_override is not None:
        return _validation_override

    # 2. Environment variable
    env = os.environ.get(_ENV_VAR, "").strip().lower()
    if env in _TRUTHY:
        return True
    if env in _FALSY:
        return False

    # 3. Default
    return False


def set_validation(value: bool | str) -> None:
    """Override the finiteness-validation setting.

    Args:
        value: ``True`` / ``False``, or one of the strings ``"on"``,
            ``"off"``, ``"auto"`` (case-insensitive).  ``"auto"``
            restores the default resolution order.

    Raises:
        ValueError: If *value* is not a recognised setting.
    """
    global _validation_override
    if isinstance(value, bool):
        _validation_override = value
        return
    normalised = str(value).strip().lower()
    if normalised == "auto":
        _validation_override = None
    elif normalised in _TRUTHY:
        _validation_override = True
    elif normalised in _FALSY:
        _validation_override = False
    else:
        raise ValueError(
            f"Unknown validation setting '{value}'. Use True, False, "
            f"'on', 'off', or 'auto'."
        )
