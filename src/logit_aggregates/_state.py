"""Aggregate status values and the merge-contract error.

Every accumulator state carries a :class:`Status`.  Statuses only ever
escalate: a partition that hit a fatal data condition is
``TERMINATED`` and stays that way through every merge that includes
it, so the host can stop iterating and the result consumer can refuse
to trust the coefficients.

The status is stored inside the packed float buffer as its numeric
code, but comparisons go through :meth:`Status.escalate` and
:attr:`Status.severity` rather than raw integer ordering.
"""

from __future__ import annotations

import enum

import numpy as np

# Widths are stored as unsigned 16-bit counts in the wire format.
MAX_WIDTH_OF_X: int = int(np.iinfo(np.uint16).max)


class Status(enum.Enum):
    """Lifecycle status of an accumulator state."""

    IN_PROCESS = 0
    COMPLETED = 1
    TERMINATED = 2

    @property
    def severity(self) -> int:
        """Position in the escalation order (higher is more severe)."""
        return _SEVERITY[self]

    @property
    def code(self) -> float:
        """Numeric code written into the packed buffer."""
        return float(self.value)

    @classmethod
    def from_code(cls, code: float) -> Status:
        """Decode a buffer slot back into a :class:`Status`.

        Raises:
            ValueError: If *code* is not a valid status code.
        """
        try:
            return cls(int(code))
        except (ValueError, OverflowError):
            raise ValueError(f"Invalid status code {code!r} in state buffer.") from None

    def escalate(self, other: Status) -> Status:
        """Return the more severe of *self* and *other*."""
        return other if other.severity > self.severity else self


_SEVERITY: dict[Status, int] = {
    Status.IN_PROCESS: 0,
    Status.COMPLETED: 1,
    Status.TERMINATED: 2,
}


class IncompatibleStateError(RuntimeError):
    """Two states with different widths or buffer sizes were combined.

    This is never caused by bad row data: it means the host mixed
    states from different aggregations (or different feature widths)
    in one merge tree, which is an orchestration bug.
    """


__all__ = ["MAX_WIDTH_OF_X", "IncompatibleStateError", "Status"]
