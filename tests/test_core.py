"""
Tests for core data structures: WideMatrix, LongTable, Diagnostics, errors.
"""

import numpy as np
import pandas as pd
import pytest

from exprtidy.core.diagnostics import Diagnostics
from exprtidy.core.errors import (
    DuplicateKeyConflict,
    EmptyCriteria,
    ExprTidyError,
    KeyNotFound,
    ShapeMismatch,
    TypeMismatch,
    UnknownStatistic,
)
from exprtidy.core.longtable import ENTITY, SAMPLE, VALUE, LongTable
from exprtidy.core.widematrix import WideMatrix


class TestWideMatrixConstruction:
    """Constructor validation."""

    def test_basic_properties(self, simple_matrix):
        assert simple_matrix.shape == (2, 3)
        assert simple_matrix.n_features == 2
        assert simple_matrix.n_samples == 3
        assert simple_matrix.n_missing == 1
        assert list(simple_matrix.feature_ids) == ["G1", "G2"]
        assert simple_matrix.data.dtype == np.float64

    def test_data_is_read_only_copy(self):
        """Mutating the source array must not change the matrix."""
        source = np.array([[1.0, 2.0]])
        m = WideMatrix(source, ["A"], ["S1", "S2"])
        source[0, 0] = 99.0
        assert m.data[0, 0] == 1.0
        with pytest.raises(ValueError):
            m.data[0, 0] = 5.0

    def test_integer_data_becomes_float(self):
        m = WideMatrix(np.array([[1, 2]]), ["A"], ["S1", "S2"])
        assert m.data.dtype == np.float64

    def test_duplicate_feature_ids_rejected(self):
        with pytest.raises(ShapeMismatch) as excinfo:
            WideMatrix(np.zeros((2, 1)), ["A", "A"], ["S1"])
        assert excinfo.value.keys == ["A"]

    def test_duplicate_sample_ids_rejected(self):
        with pytest.raises(ShapeMismatch, match="sample_ids must be unique"):
            WideMatrix(np.zeros((1, 2)), ["A"], ["S1", "S1"])

    def test_infinite_values_rejected(self):
        with pytest.raises(ShapeMismatch, match="infinite"):
            WideMatrix(np.array([[1.0, np.inf]]), ["A"], ["S1", "S2"])

    def test_non_numeric_rejected(self):
        with pytest.raises(TypeMismatch):
            WideMatrix(np.array([["x", "y"]]), ["A"], ["S1", "S2"])

    def test_non_numeric_is_type_error(self):
        with pytest.raises(TypeError):
            WideMatrix(np.array([["x"]]), ["A"], ["S1"])

    def test_length_mismatch(self):
        with pytest.raises(ShapeMismatch, match="feature_ids length"):
            WideMatrix(np.zeros((2, 2)), ["A"], ["S1", "S2"])

    def test_empty_matrix(self):
        m = WideMatrix(np.empty((0, 2)), [], ["S1", "S2"])
        assert m.shape == (0, 2)

    def test_from_frame(self):
        frame = pd.DataFrame({"S1": [1.0, 2.0], "S2": [3.0, 4.0]}, index=["A", "B"])
        m = WideMatrix.from_frame(frame)
        assert list(m.sample_ids) == ["S1", "S2"]
        pd.testing.assert_frame_equal(m.to_frame(), frame)


class TestWideMatrixSelection:
    """Label and mask selection."""

    def test_select_features_preserves_requested_order(self, simple_matrix):
        sub = simple_matrix.select_features(["G2", "G1"])
        assert list(sub.feature_ids) == ["G2", "G1"]
        np.testing.assert_array_equal(sub.data[1], [1.0, 2.0, 3.0])

    def test_select_features_unknown_key(self, simple_matrix):
        with pytest.raises(KeyNotFound) as excinfo:
            simple_matrix.select_features(["G1", "NOPE"])
        assert excinfo.value.keys == ["NOPE"]
        assert isinstance(excinfo.value, KeyError)

    def test_select_by_mask(self, simple_matrix):
        sub = simple_matrix.select_samples(np.array([True, False, True]))
        assert list(sub.sample_ids) == ["S1", "S3"]

    def test_mask_wrong_length(self, simple_matrix):
        with pytest.raises(ShapeMismatch, match="mask length"):
            simple_matrix.select_samples(np.array([True, False]))

    def test_selection_does_not_touch_original(self, simple_matrix):
        simple_matrix.select_features(["G1"])
        assert simple_matrix.n_features == 2


class TestWideMatrixEquality:
    """equals ignores order, identical does not."""

    def test_equals_ignores_order(self, simple_matrix):
        reordered = simple_matrix.select_features(["G2", "G1"]).select_samples(["S3", "S1", "S2"])
        assert simple_matrix.equals(reordered)
        assert simple_matrix == reordered
        assert not simple_matrix.identical(reordered)

    def test_nan_cells_compare_equal(self, simple_matrix):
        copy = simple_matrix.with_data(simple_matrix.data.copy())
        assert simple_matrix.identical(copy)

    def test_different_values_not_equal(self, simple_matrix):
        changed = simple_matrix.with_data(np.zeros((2, 3)))
        assert not simple_matrix.equals(changed)

    def test_different_keys_not_equal(self, simple_matrix):
        other = WideMatrix(simple_matrix.data, ["G1", "G3"], simple_matrix.sample_ids)
        assert not simple_matrix.equals(other)


class TestLongTable:
    """Tidy record container."""

    def test_from_records(self):
        table = LongTable.from_records([("A", "S1", 1.0), ("A", "S2", 2.0)])
        assert len(table) == 2
        assert table.records() == [("A", "S1", 1.0), ("A", "S2", 2.0)]

    def test_duplicate_keys_allowed_and_counted(self):
        table = LongTable.from_records([
            ("A", "S1", 1.0), ("A", "S1", 2.0), ("A", "S1", 3.0), ("B", "S1", 4.0),
        ])
        assert table.n_duplicate_keys == 2
        assert table.duplicate_keys() == [("A", "S1")]

    def test_missing_columns_rejected(self):
        with pytest.raises(ShapeMismatch) as excinfo:
            LongTable(pd.DataFrame({ENTITY: ["A"], SAMPLE: ["S1"]}))
        assert excinfo.value.keys == [VALUE]

    def test_key_columns_come_first(self):
        frame = pd.DataFrame({"group": ["CTRL"], VALUE: [1.0], SAMPLE: ["S1"], ENTITY: ["A"]})
        table = LongTable(frame)
        assert list(table.frame.columns) == [ENTITY, SAMPLE, VALUE, "group"]
        assert table.attribute_columns == ["group"]

    def test_frame_is_a_copy(self):
        table = LongTable.from_records([("A", "S1", 1.0)])
        frame = table.frame
        frame.loc[0, VALUE] = 100.0
        assert table.values[0] == 1.0

    def test_empty(self):
        assert len(LongTable.empty()) == 0


class TestDiagnostics:
    """Non-fatal finding accumulation."""

    def test_ambiguous_targets_sorted(self):
        diag = Diagnostics()
        diag.add_ambiguous("ENSG3", {"C", "B"})
        assert diag.ambiguous[0].targets == ("B", "C")
        assert diag.ambiguous[0].fan_out == 2

    def test_counts_accumulate(self):
        diag = Diagnostics()
        diag.count("rows_dropped", 2)
        diag.count("rows_dropped", 3)
        assert diag.counts == {"rows_dropped": 5}

    def test_extend(self):
        first = Diagnostics()
        first.add_unresolved("ENSG4")
        first.count("x", 1)
        second = Diagnostics()
        second.add_unresolved("ENSG5")
        second.count("x", 2)
        merged = first.extend(second)
        assert merged is first
        assert [u.source_id for u in first.unresolved] == ["ENSG4", "ENSG5"]
        assert first.counts["x"] == 3

    def test_to_dict(self):
        diag = Diagnostics()
        diag.add_ambiguous("ENSG3", ["B", "C"])
        report = diag.to_dict()
        assert report["n_ambiguous"] == 1
        assert report["ambiguous"][0] == {"source_id": "ENSG3", "targets": ["B", "C"], "fan_out": 2}


class TestErrors:
    """Error hierarchy and key reporting."""

    def test_builtin_compatibility(self):
        assert issubclass(KeyNotFound, KeyError)
        assert issubclass(ShapeMismatch, ValueError)
        assert issubclass(DuplicateKeyConflict, ValueError)
        assert issubclass(UnknownStatistic, KeyError)
        assert issubclass(EmptyCriteria, ExprTidyError)

    def test_message_truncates_keys(self):
        error = ShapeMismatch("bad samples", keys=[f"S{i}" for i in range(15)])
        assert len(error.keys) == 15
        assert "5 more" in str(error)
        assert "'S9'" in str(error)
        assert "'S10'" not in str(error)

    def test_key_error_message_not_quoted(self):
        assert str(KeyNotFound("unknown factor")) == "unknown factor"
