"""Packed state buffers with typed views.

Each aggregate keeps its whole state in one flat ``float64`` array so
that the host can allocate, copy, ship and merge states without knowing
anything about their structure.  Structure lives in a *layout*:

* :class:`LayoutSpec`: the width-independent description of a variant:
  an ordered list of named fields, each a scalar, a vector of length
  ``widthOfX`` or a ``widthOfX × widthOfX`` matrix, tagged with a role.
* :class:`StateLayout`: a spec bound to a concrete ``widthOfX``, with
  every field resolved to an ``(offset, size)`` slice of the buffer.
* :class:`PackedState`: a buffer plus its bound layout, exposing
  scalar reads/writes and NumPy *views* (not copies) for vectors and
  matrices, so ``state.view("X_transp_AX") += ...`` updates the buffer
  in place.

Field roles
~~~~~~~~~~~
``inter``
    Carried from one iteration to the next (coefficients, CG direction).
``intra``
    Accumulated by transition, summed by merge, zeroed when a state is
    seeded from the previous iteration.
``result``
    Written by finalize for reuse by result (e.g. the IRLS inverse-
    Hessian diagonal).  Zeroed on seeding, never summed.
``status``
    The single :class:`~logit_aggregates._state.Status` slot.

Because ``widthOfX`` must be readable before the layout can be bound,
every spec places ``width`` after scalar fields only.  Its offset is
therefore the same for every width, and :meth:`PackedState.from_buffer`
can decode a raw wire buffer in two steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

import numpy as np

from ._state import IncompatibleStateError, Status

SCALAR = "scalar"
VECTOR = "vector"
MATRIX = "matrix"

INTER = "inter"
INTRA = "intra"
RESULT = "result"
STATUS = "status"

_KINDS = frozenset({SCALAR, VECTOR, MATRIX})
_ROLES = frozenset({INTER, INTRA, RESULT, STATUS})


@dataclass(frozen=True)
class FieldSpec:
    """Width-independent description of one state field."""

    name: str
    kind: str
    role: str

    def __post_init__(self) -> None:
        if self.kind not in _KINDS:
            raise ValueError(f"Unknown field kind {self.kind!r} for {self.name!r}.")
        if self.role not in _ROLES:
            raise ValueError(f"Unknown field role {self.role!r} for {self.name!r}.")

    def size(self, width: int) -> int:
        if self.kind == SCALAR:
            return 1
        if self.kind == VECTOR:
            return width
        return width * width


@dataclass(frozen=True)
class Field:
    """A field resolved to a slice of a concrete buffer."""

    name: str
    kind: str
    role: str
    offset: int
    size: int


@dataclass(frozen=True)
class LayoutSpec:
    """Ordered field list for one aggregate variant.

    Attributes:
        variant: Short variant name (``"cg"``, ``"irls"``, ...).
        fields: Field descriptions in wire order.
    """

    variant: str
    fields: tuple[FieldSpec, ...]

    def __post_init__(self) -> None:
        names = [f.name for f in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names in layout {self.variant!r}.")
        for required in ("width", "num_rows", "status"):
            if required not in names:
                raise ValueError(
                    f"Layout {self.variant!r} is missing the {required!r} field."
                )
        for f in self.fields[: names.index("width")]:
            if f.kind != SCALAR:
                raise ValueError(
                    f"Layout {self.variant!r}: 'width' must only be preceded "
                    f"by scalar fields, found {f.kind} {f.name!r}."
                )

    @property
    def width_offset(self) -> int:
        """Buffer offset of ``widthOfX``; identical for every width."""
        return [f.name for f in self.fields].index("width")

    def size(self, width: int) -> int:
        """Total buffer length for a given ``widthOfX``."""
        return sum(f.size(width) for f in self.fields)

    def bind(self, width: int) -> StateLayout:
        """Resolve every field to an ``(offset, size)`` slice."""
        return _bind(self, int(width))


@lru_cache(maxsize=256)
def _bind(spec: LayoutSpec, width: int) -> StateLayout:
    if width < 0:
        raise ValueError(f"widthOfX must be non-negative, got {width}.")
    resolved: list[Field] = []
    offset = 0
    for f in spec.fields:
        size = f.size(width)
        resolved.append(Field(f.name, f.kind, f.role, offset, size))
        offset += size
    return StateLayout(spec=spec, width=width, fields=tuple(resolved), size=offset)


@dataclass(frozen=True)
class StateLayout:
    """A :class:`LayoutSpec` bound to a concrete ``widthOfX``."""

    spec: LayoutSpec
    width: int
    fields: tuple[Field, ...]
    size: int
    _index: dict[str, Field] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self._index.update({f.name: f for f in self.fields})

    def __getitem__(self, name: str) -> Field:
        try:
            return self._index[name]
        except KeyError:
            raise KeyError(
                f"Layout {self.spec.variant!r} has no field {name!r}."
            ) from None

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def with_role(self, role: str) -> tuple[Field, ...]:
        return tuple(f for f in self.fields if f.role == role)


class PackedState:
    """A flat ``float64`` buffer interpreted through a :class:`StateLayout`.

    Scalars are read with ``state["name"]`` (returns a Python float) and
    written with ``state["name"] = value``.  Vectors and matrices are
    returned as NumPy views into the buffer, so in-place arithmetic on
    them mutates the state.
    """

    __slots__ = ("buffer", "layout")

    def __init__(self, layout: StateLayout, buffer: np.ndarray | None = None) -> None:
        if buffer is None:
            buffer = np.zeros(layout.size, dtype=float)
        else:
            buffer = np.asarray(buffer, dtype=float)
            if buffer.ndim != 1 or buffer.size != layout.size:
                raise ValueError(
                    f"Buffer of shape {buffer.shape} does not match the "
                    f"{layout.spec.variant!r} layout for widthOfX="
                    f"{layout.width} (expected {layout.size} elements)."
                )
        self.layout = layout
        self.buffer = buffer

    # ---- Construction ----------------------------------------------

    @classmethod
    def allocate(cls, spec: LayoutSpec, width: int) -> PackedState:
        """Zero-filled state sized for *width* features."""
        state = cls(spec.bind(width))
        state["width"] = width
        return state

    @classmethod
    def from_buffer(cls, spec: LayoutSpec, buffer: np.ndarray) -> PackedState:
        """Wrap a raw wire buffer, reading ``widthOfX`` first.

        The buffer is used as-is (no copy) when it already is a
        ``float64`` array.

        Raises:
            ValueError: If the buffer is too short to hold ``widthOfX``
                or its length does not match the decoded layout.
        """
        buffer = np.asarray(buffer, dtype=float)
        if buffer.ndim != 1 or buffer.size <= spec.width_offset:
            raise ValueError(
                f"Buffer too short to decode a {spec.variant!r} state."
            )
        width = int(buffer[spec.width_offset])
        return cls(spec.bind(width), buffer)

    def copy(self) -> PackedState:
        return PackedState(self.layout, self.buffer.copy())

    # ---- Typed access ----------------------------------------------

    def view(self, name: str) -> np.ndarray:
        """Return a writable NumPy view onto field *name*."""
        f = self.layout[name]
        raw = self.buffer[f.offset : f.offset + f.size]
        if f.kind == MATRIX:
            return raw.reshape(self.layout.width, self.layout.width)
        return raw

    def __getitem__(self, name: str) -> float | np.ndarray:
        f = self.layout[name]
        if f.kind == SCALAR:
            return float(self.buffer[f.offset])
        return self.view(name)

    def __setitem__(self, name: str, value: float | np.ndarray) -> None:
        f = self.layout[name]
        if f.kind == SCALAR:
            self.buffer[f.offset] = value
        else:
            self.view(name)[...] = value

    # ---- Common fields ---------------------------------------------

    @property
    def variant(self) -> str:
        return self.layout.spec.variant

    @property
    def width(self) -> int:
        return self.layout.width

    @property
    def num_rows(self) -> int:
        return int(self["num_rows"])

    @num_rows.setter
    def num_rows(self, value: int) -> None:
        self["num_rows"] = value

    @property
    def status(self) -> Status:
        return Status.from_code(self["status"])

    @status.setter
    def status(self, value: Status) -> None:
        self["status"] = value.code

    # ---- Lifecycle helpers -----------------------------------------

    def reset_intra(self) -> None:
        """Zero intra-iteration and result fields; status → IN_PROCESS."""
        for f in self.layout.fields:
            if f.role in (INTRA, RESULT):
                self.buffer[f.offset : f.offset + f.size] = 0.0
        self.status = Status.IN_PROCESS

    def check_compatible(self, other: PackedState) -> None:
        """Raise if *other* cannot be merged into this state."""
        if (
            self.layout.spec != other.layout.spec
            or self.buffer.size != other.buffer.size
            or self.width != other.width
        ):
            raise IncompatibleStateError(
                f"Internal error: incompatible transition states "
                f"({self.variant!r} widthOfX={self.width}, "
                f"size={self.buffer.size} vs {other.variant!r} "
                f"widthOfX={other.width}, size={other.buffer.size})."
            )

    def is_finite(self, *names: str) -> bool:
        """Whether every element of the named fields is finite."""
        return all(bool(np.all(np.isfinite(self.view(n)))) for n in names)

    def __repr__(self) -> str:
        return (
            f"PackedState(variant={self.variant!r}, width={self.width}, "
            f"num_rows={self.num_rows}, status={self.status.name})"
        )


__all__ = [
    "INTER",
    "INTRA",
    "MATRIX",
    "RESULT",
    "SCALAR",
    "STATUS",
    "VECTOR",
    "Field",
    "FieldSpec",
    "LayoutSpec",
    "PackedState",
    "StateLayout",
]
