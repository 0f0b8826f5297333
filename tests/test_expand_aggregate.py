"""
Tests for identifier expansion and duplicate aggregation.
"""

import numpy as np
import pandas as pd
import pytest

from exprtidy.core.errors import ConfigurationError, ShapeMismatch, TypeMismatch
from exprtidy.core.longtable import ENTITY, SAMPLE, VALUE, LongTable
from exprtidy.core.widematrix import WideMatrix
from exprtidy.mapping.identifier_map import IdentifierMap
from exprtidy.tidy.aggregate import Reducer, aggregate
from exprtidy.tidy.expand import SOURCE, expand
from exprtidy.tidy.reshape import to_long


class TestExpand:
    """One record per (source row, target, sample)."""

    def test_one_to_many_replicates_values(self):
        matrix = WideMatrix(np.array([[1.0, 2.0]]), ["ENSG1"], ["S1", "S2"])
        idmap = IdentifierMap.build_from([("ENSG1", "B"), ("ENSG1", "A")])
        result = expand(matrix, idmap)
        assert result.table.records() == [
            ("A", "S1", 1.0), ("A", "S2", 2.0),
            ("B", "S1", 1.0), ("B", "S2", 2.0),
        ]
        assert result.ambiguous == {"ENSG1": ("A", "B")}

    def test_unresolved_rows_dropped_and_reported(self, source_matrix, idmap):
        result = expand(source_matrix, idmap)
        assert result.dropped == ["ENSG4"]
        assert result.n_dropped == 1
        assert "ENSG4" not in set(result.table.entity_ids)
        assert len(result.table) == (2 + 2) * 2

    def test_every_entity_comes_from_a_mapping(self, source_matrix, idmap):
        result = expand(source_matrix, idmap)
        allowed = set().union(*(idmap.resolve(s) for s in source_matrix.feature_ids))
        assert set(result.table.entity_ids) <= allowed

    def test_record_order(self, source_matrix, idmap):
        entities = list(pd.unique(expand(source_matrix, idmap).table.entity_ids))
        assert entities == ["A", "B", "C"]

    def test_keep_source_column(self, source_matrix, idmap):
        table = expand(source_matrix, idmap, keep_source=True).table
        assert table.attribute_columns == [SOURCE]
        frame = table.frame
        assert set(frame.loc[frame[ENTITY] == "A", SOURCE]) == {"ENSG1", "ENSG2"}

    def test_nan_copied_verbatim(self):
        matrix = WideMatrix(np.array([[np.nan, 1.0]]), ["ENSG1"], ["S1", "S2"])
        idmap = IdentifierMap.build_from([("ENSG1", "A")])
        values = expand(matrix, idmap).table.values
        assert np.isnan(values[0]) and values[1] == 1.0

    def test_nothing_resolves(self, source_matrix):
        result = expand(source_matrix, IdentifierMap({}))
        assert len(result.table) == 0
        assert result.n_dropped == 4

    def test_diagnostics(self, source_matrix, idmap):
        diag = expand(source_matrix, idmap).diagnostics
        assert diag.n_ambiguous == 1
        assert diag.n_unresolved == 1
        assert diag.counts["rows_dropped_unresolved"] == 1


class TestAggregate:
    """Group-by-key reduction into a rectangular matrix."""

    def test_mean_of_duplicates(self):
        table = LongTable.from_records([
            ("A", "S1", 1.0), ("A", "S2", 3.0),
            ("A", "S1", 2.0), ("A", "S2", 5.0),
        ])
        result = aggregate(table)
        assert list(result.feature_ids) == ["A"]
        np.testing.assert_allclose(result.data, [[1.5, 4.0]])

    def test_mean_excludes_missing(self):
        table = LongTable.from_records([
            ("A", "S1", 1.0), ("A", "S1", np.nan), ("A", "S1", 3.0),
            ("B", "S1", np.nan), ("B", "S1", np.nan),
        ])
        result = aggregate(table)
        assert result.data[0, 0] == pytest.approx(2.0)
        assert np.isnan(result.data[1, 0])

    @pytest.mark.parametrize("reducer,expected", [
        ("median", 2.0),
        ("sum", 6.0),
        ("max", 3.0),
        (Reducer.MIN, 1.0),
    ])
    def test_builtin_reducers(self, reducer, expected):
        table = LongTable.from_records([("A", "S1", 1.0), ("A", "S1", 2.0), ("A", "S1", 3.0)])
        assert aggregate(table, reducer=reducer).data[0, 0] == pytest.approx(expected)

    def test_sum_of_all_missing_is_missing(self):
        table = LongTable.from_records([("A", "S1", np.nan), ("A", "S1", np.nan)])
        assert np.isnan(aggregate(table, reducer="sum").data[0, 0])

    def test_callable_reducer(self):
        table = LongTable.from_records([("A", "S1", 1.0), ("A", "S1", 4.0)])
        result = aggregate(table, reducer=lambda values: float(np.prod(values)))
        assert result.data[0, 0] == 4.0

    def test_unknown_reducer(self):
        table = LongTable.from_records([("A", "S1", 1.0)])
        with pytest.raises(ConfigurationError, match="Unknown reducer"):
            aggregate(table, reducer="first")

    def test_rectangular_with_missing_cells(self):
        table = LongTable.from_records([("A", "S1", 1.0), ("B", "S2", 2.0)])
        result = aggregate(table)
        assert result.shape == (2, 2)
        assert np.isnan(result.data[0, 1]) and np.isnan(result.data[1, 0])

    def test_first_seen_order(self):
        table = LongTable.from_records([
            ("Z", "S2", 1.0), ("A", "S1", 2.0), ("Z", "S1", 3.0),
        ])
        result = aggregate(table)
        assert list(result.feature_ids) == ["Z", "A"]
        assert list(result.sample_ids) == ["S2", "S1"]

    def test_non_numeric_values(self):
        table = LongTable(pd.DataFrame({
            ENTITY: ["A", "A"], SAMPLE: ["S1", "S2"], VALUE: [1.0, "high"],
        }))
        with pytest.raises(TypeMismatch) as excinfo:
            aggregate(table)
        assert excinfo.value.keys == [("A", "S2", "high")]

    def test_numeric_strings_rejected(self):
        table = LongTable(pd.DataFrame({
            ENTITY: ["A", "A"], SAMPLE: ["S1", "S1"], VALUE: ["1.5", "2.5"],
        }))
        with pytest.raises(TypeMismatch) as excinfo:
            aggregate(table)
        assert excinfo.value.keys == [("A", "S1", "1.5"), ("A", "S1", "2.5")]

    def test_object_numbers_and_none_accepted(self):
        table = LongTable(pd.DataFrame({
            ENTITY: ["A", "A", "B"], SAMPLE: ["S1", "S1", "S1"], VALUE: [1, 2.0, None],
        }, dtype=object))
        result = aggregate(table)
        assert result.data[0, 0] == pytest.approx(1.5)
        assert np.isnan(result.data[1, 0])

    def test_missing_keys_rejected(self):
        table = LongTable(pd.DataFrame({ENTITY: ["A", None], SAMPLE: ["S1", "S1"], VALUE: [1.0, 2.0]}))
        with pytest.raises(ShapeMismatch, match="missing entity_id or sample_id"):
            aggregate(table)

    def test_idempotent_under_mean(self, simple_matrix):
        once = aggregate(to_long(simple_matrix))
        twice = aggregate(to_long(once))
        assert once.identical(twice)
        assert once.identical(simple_matrix)

    def test_empty_table(self):
        assert aggregate(LongTable.empty()).shape == (0, 0)

    def test_input_not_modified(self):
        table = LongTable.from_records([("A", "S1", 1), ("A", "S1", 2)])
        aggregate(table)
        assert table.records() == [("A", "S1", 1), ("A", "S1", 2)]
