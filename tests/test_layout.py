"""Tests for packed state buffers, layouts and statuses."""

from __future__ import annotations

import numpy as np
import pytest

from logit_aggregates._aggregates.cg import CG_LAYOUT
from logit_aggregates._aggregates.igd import IGD_LAYOUT
from logit_aggregates._aggregates.irls import IRLS_LAYOUT
from logit_aggregates._aggregates.marginal import MARGINAL_LAYOUT
from logit_aggregates._aggregates.robust import ROBUST_LAYOUT
from logit_aggregates._layout import (
    INTER,
    INTRA,
    MATRIX,
    SCALAR,
    STATUS,
    VECTOR,
    FieldSpec,
    LayoutSpec,
    PackedState,
)
from logit_aggregates._state import (
    MAX_WIDTH_OF_X,
    IncompatibleStateError,
    Status,
)

# ------------------------------------------------------------------ #
# Layout sizes
# ------------------------------------------------------------------ #


class TestLayoutSizes:
    @pytest.mark.parametrize("w", [0, 1, 2, 7])
    def test_cg(self, w):
        assert CG_LAYOUT.size(w) == 6 + 4 * w + w * w

    @pytest.mark.parametrize("w", [0, 1, 2, 7])
    def test_irls(self, w):
        assert IRLS_LAYOUT.size(w) == 5 + 3 * w + w * w

    @pytest.mark.parametrize("w", [0, 1, 2, 7])
    def test_igd(self, w):
        assert IGD_LAYOUT.size(w) == 5 + w + w * w

    @pytest.mark.parametrize("w", [0, 1, 2, 7])
    def test_robust(self, w):
        assert ROBUST_LAYOUT.size(w) == 6 + w + 3 * w * w

    @pytest.mark.parametrize("w", [0, 1, 2, 7])
    def test_marginal(self, w):
        assert MARGINAL_LAYOUT.size(w) == 6 + 2 * w + 2 * w * w

    def test_width_offsets(self):
        assert CG_LAYOUT.width_offset == 1
        assert IRLS_LAYOUT.width_offset == 0
        assert IGD_LAYOUT.width_offset == 0
        assert ROBUST_LAYOUT.width_offset == 1
        assert MARGINAL_LAYOUT.width_offset == 1

    def test_bound_offsets_are_contiguous(self):
        layout = CG_LAYOUT.bind(3)
        offset = 0
        for f in layout.fields:
            assert f.offset == offset
            offset += f.size
        assert offset == layout.size

    def test_bind_is_cached(self):
        assert IRLS_LAYOUT.bind(4) is IRLS_LAYOUT.bind(4)


# ------------------------------------------------------------------ #
# Layout validation
# ------------------------------------------------------------------ #


class TestLayoutSpecValidation:
    def test_rejects_duplicate_names(self):
        with pytest.raises(ValueError, match="Duplicate"):
            LayoutSpec(
                "bad",
                (
                    FieldSpec("width", SCALAR, INTER),
                    FieldSpec("num_rows", SCALAR, INTRA),
                    FieldSpec("num_rows", SCALAR, INTRA),
                    FieldSpec("status", SCALAR, STATUS),
                ),
            )

    def test_rejects_missing_status(self):
        with pytest.raises(ValueError, match="status"):
            LayoutSpec(
                "bad",
                (
                    FieldSpec("width", SCALAR, INTER),
                    FieldSpec("num_rows", SCALAR, INTRA),
                ),
            )

    def test_rejects_vector_before_width(self):
        with pytest.raises(ValueError, match="preceded"):
            LayoutSpec(
                "bad",
                (
                    FieldSpec("coef", VECTOR, INTER),
                    FieldSpec("width", SCALAR, INTER),
                    FieldSpec("num_rows", SCALAR, INTRA),
                    FieldSpec("status", SCALAR, STATUS),
                ),
            )

    def test_rejects_unknown_kind(self):
        with pytest.raises(ValueError, match="kind"):
            FieldSpec("x", "tensor", INTRA)

    def test_rejects_unknown_role(self):
        with pytest.raises(ValueError, match="role"):
            FieldSpec("x", SCALAR, "scratch")

    def test_rejects_negative_width(self):
        with pytest.raises(ValueError, match="non-negative"):
            CG_LAYOUT.bind(-1)


# ------------------------------------------------------------------ #
# PackedState
# ------------------------------------------------------------------ #


class TestPackedState:
    def test_allocate_sets_width_and_zeros(self):
        state = PackedState.allocate(IRLS_LAYOUT, 3)
        assert state.width == 3
        assert state["width"] == 3.0
        assert state.num_rows == 0
        assert state.status is Status.IN_PROCESS
        assert state.buffer.size == IRLS_LAYOUT.size(3)
        assert not np.any(state.buffer[1:])

    def test_scalar_read_is_python_float(self):
        state = PackedState.allocate(CG_LAYOUT, 2)
        assert isinstance(state["log_likelihood"], float)

    def test_vector_view_writes_through(self):
        state = PackedState.allocate(CG_LAYOUT, 2)
        coef = state.view("coef")
        coef += [1.5, -2.0]
        f = state.layout["coef"]
        np.testing.assert_array_equal(
            state.buffer[f.offset : f.offset + f.size], [1.5, -2.0]
        )

    def test_matrix_view_shape_and_write_through(self):
        state = PackedState.allocate(IRLS_LAYOUT, 3)
        H = state.view("X_transp_AX")
        assert H.shape == (3, 3)
        H[1, 2] = 7.0
        f = state.layout["X_transp_AX"]
        assert state.buffer[f.offset + 1 * 3 + 2] == 7.0

    def test_setitem_vector(self):
        state = PackedState.allocate(IGD_LAYOUT, 2)
        state["coef"] = 0.1
        np.testing.assert_array_equal(state.view("coef"), [0.1, 0.1])

    def test_unknown_field_raises_key_error(self):
        state = PackedState.allocate(IGD_LAYOUT, 2)
        with pytest.raises(KeyError, match="no field"):
            state.view("grad")
        assert "grad" not in state.layout
        assert "coef" in state.layout

    def test_from_buffer_reads_width_and_shares_memory(self):
        state = PackedState.allocate(MARGINAL_LAYOUT, 4)
        state.view("X_bar")[:] = [1.0, 2.0, 3.0, 4.0]
        wire = state.buffer
        decoded = PackedState.from_buffer(MARGINAL_LAYOUT, wire)
        assert decoded.width == 4
        assert np.shares_memory(decoded.buffer, wire)
        np.testing.assert_array_equal(decoded.view("X_bar"), [1.0, 2.0, 3.0, 4.0])

    def test_from_buffer_rejects_wrong_length(self):
        wire = PackedState.allocate(CG_LAYOUT, 2).buffer
        with pytest.raises(ValueError, match="does not match"):
            PackedState.from_buffer(CG_LAYOUT, wire[:-1])

    def test_from_buffer_rejects_too_short(self):
        with pytest.raises(ValueError, match="too short"):
            PackedState.from_buffer(CG_LAYOUT, np.zeros(1))

    def test_copy_is_independent(self):
        state = PackedState.allocate(IRLS_LAYOUT, 2)
        clone = state.copy()
        clone.view("coef")[0] = 3.0
        assert state.view("coef")[0] == 0.0

    def test_reset_intra_keeps_inter_fields(self):
        state = PackedState.allocate(IRLS_LAYOUT, 2)
        state["coef"] = [1.0, 2.0]
        state.num_rows = 5
        state["X_transp_Az"] = [3.0, 4.0]
        state["condition_no"] = 12.0
        state.status = Status.COMPLETED
        state.reset_intra()
        np.testing.assert_array_equal(state.view("coef"), [1.0, 2.0])
        assert state.num_rows == 0
        assert not np.any(state.view("X_transp_Az"))
        assert state["condition_no"] == 0.0
        assert state.status is Status.IN_PROCESS

    def test_check_compatible_width_mismatch(self):
        a = PackedState.allocate(IRLS_LAYOUT, 2)
        b = PackedState.allocate(IRLS_LAYOUT, 3)
        with pytest.raises(IncompatibleStateError):
            a.check_compatible(b)

    def test_check_compatible_variant_mismatch(self):
        a = PackedState.allocate(IRLS_LAYOUT, 2)
        b = PackedState.allocate(IGD_LAYOUT, 2)
        with pytest.raises(IncompatibleStateError):
            a.check_compatible(b)

    def test_is_finite(self):
        state = PackedState.allocate(CG_LAYOUT, 2)
        assert state.is_finite("coef", "X_transp_AX")
        state.view("X_transp_AX")[0, 1] = np.inf
        assert not state.is_finite("coef", "X_transp_AX")

    def test_repr_mentions_variant(self):
        assert "irls" in repr(PackedState.allocate(IRLS_LAYOUT, 1))


# ------------------------------------------------------------------ #
# Status
# ------------------------------------------------------------------ #


class TestStatus:
    @pytest.mark.parametrize(
        ("left", "right", "expected"),
        [
            (Status.IN_PROCESS, Status.IN_PROCESS, Status.IN_PROCESS),
            (Status.IN_PROCESS, Status.COMPLETED, Status.COMPLETED),
            (Status.COMPLETED, Status.IN_PROCESS, Status.COMPLETED),
            (Status.COMPLETED, Status.TERMINATED, Status.TERMINATED),
            (Status.TERMINATED, Status.IN_PROCESS, Status.TERMINATED),
        ],
    )
    def test_escalate(self, left, right, expected):
        assert left.escalate(right) is expected

    def test_code_round_trip(self):
        for status in Status:
            assert Status.from_code(status.code) is status

    def test_invalid_code(self):
        with pytest.raises(ValueError, match="Invalid status code"):
            Status.from_code(9.0)

    def test_max_width(self):
        assert MAX_WIDTH_OF_X == 65535

    def test_incompatible_state_error_is_runtime_error(self):
        assert issubclass(IncompatibleStateError, RuntimeError)
