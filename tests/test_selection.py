"""
Tests for factor summaries, significance criteria and factor selection.
"""

import pandas as pd
import pytest

from exprtidy.core.errors import (
    EmptyCriteria,
    InvalidCriterion,
    KeyNotFound,
    TypeMismatch,
    UnknownStatistic,
)
from exprtidy.tidy.selection import (
    Criterion,
    FactorSummary,
    SignificanceCriteria,
    extract_rows,
    select,
)


class TestFactorSummary:
    """Construction and views."""

    def test_from_wide_detects_numeric_statistics(self, plier_summary):
        assert plier_summary.statistics == ["AUC", "p-value", "FDR"]
        assert plier_summary.factors == ["1", "2", "3"]
        assert len(plier_summary) == 5

    def test_from_wide_without_label_numbers_associations(self):
        frame = pd.DataFrame({"LV": ["a", "a", "b"], "FDR": [0.1, 0.2, 0.3]})
        summary = FactorSummary.from_wide(frame, factor_col="LV")
        assert summary.frame["association"].tolist() == [0, 1, 0]

    def test_from_wide_missing_factor_column(self, plier_summary_frame):
        with pytest.raises(KeyNotFound, match="factor column"):
            FactorSummary.from_wide(plier_summary_frame, factor_col="LV")

    def test_explicit_non_numeric_statistic(self, plier_summary_frame):
        with pytest.raises(TypeMismatch):
            FactorSummary.from_wide(
                plier_summary_frame, factor_col="LV index", statistics=["pathway"]
            )

    def test_from_records_groups_by_occurrence(self):
        summary = FactorSummary.from_records([
            (3, "FDR", 0.01), (3, "AUC", 0.80),
            (3, "FDR", 0.04), (3, "AUC", 0.95),
            (1, "FDR", 0.30), (1, "AUC", 0.90),
        ])
        assert summary.factors == [3, 1]
        assert summary.statistics == ["FDR", "AUC"]
        assert summary.frame["AUC"].tolist() == [0.80, 0.95, 0.90]

    def test_from_records_empty(self):
        assert len(FactorSummary.from_records([])) == 0

    def test_to_records_row_major(self, plier_summary):
        assert plier_summary.to_records()[:3] == [
            ("1", "AUC", 0.90), ("1", "p-value", 0.001), ("1", "FDR", 0.01),
        ]

    def test_to_long(self, plier_summary):
        long = plier_summary.to_long()
        assert len(long) == 15
        assert list(long.columns) == [
            "factor_index", "association", "statistic_name", "statistic_value",
        ]

    def test_rows_for(self, plier_summary):
        assert len(plier_summary.rows_for(["3"])) == 2

    def test_add_adjusted_pvalues(self, plier_summary):
        adjusted = plier_summary.add_adjusted_pvalues(pvalue_stat="p-value", name="q")
        assert "q" in adjusted.statistics
        assert adjusted.frame["q"].tolist() == pytest.approx(
            [0.005, 0.2, 0.0375, 0.005, 0.004 * 5 / 3]
        )
        assert "q" not in plier_summary.statistics

    def test_add_adjusted_pvalues_unknown_statistic(self, plier_summary):
        with pytest.raises(UnknownStatistic):
            plier_summary.add_adjusted_pvalues(pvalue_stat="pval")


class TestCriteria:
    """Criterion parsing and validation."""

    @pytest.mark.parametrize("text,expected", [
        ("FDR<0.05", Criterion("FDR", "<", 0.05)),
        ("AUC >= 0.7", Criterion("AUC", ">=", 0.7)),
        ("p-value<=1e-3", Criterion("p-value", "<=", 0.001)),
        ("rank==1", Criterion("rank", "==", 1.0)),
    ])
    def test_parse(self, text, expected):
        assert Criterion.parse(text) == expected

    def test_unparseable(self):
        with pytest.raises(InvalidCriterion):
            Criterion.parse("FDR ~ 0.05")

    def test_non_numeric_threshold(self):
        with pytest.raises(InvalidCriterion, match="must be numeric"):
            Criterion.parse("FDR<low")

    def test_unsupported_comparator(self):
        with pytest.raises(InvalidCriterion, match="unsupported comparator"):
            Criterion("FDR", "!=", 0.05)

    def test_of_accepts_mixed_forms(self):
        criteria = SignificanceCriteria.of([
            Criterion("FDR", "<", 0.05), "AUC>0.75", ("p-value", "<", "0.01"),
        ])
        assert len(criteria) == 3
        assert str(criteria) == "FDR < 0.05 AND AUC > 0.75 AND p-value < 0.01"


class TestSelect:
    """Conjunctive selection over association rows."""

    def test_plier_style_selection(self, plier_summary):
        criteria = SignificanceCriteria.parse(["FDR<0.05", "AUC>0.75"])
        assert select(plier_summary, criteria) == ["1", "3"]

    def test_factor_passing_twice_selected_once(self):
        summary = FactorSummary.from_records([
            (3, "FDR", 0.01), (3, "AUC", 0.80),
            (3, "FDR", 0.04), (3, "AUC", 0.95),
            (1, "FDR", 0.30), (1, "AUC", 0.90),
        ])
        assert select(summary, ["FDR<0.05", "AUC>0.75"]) == [3]

    def test_all_criteria_must_hold_on_the_same_row(self):
        # LV x has low FDR on one row and high AUC on another, never both.
        summary = FactorSummary.from_wide(
            pd.DataFrame({"LV": ["x", "x"], "FDR": [0.01, 0.5], "AUC": [0.5, 0.9]}),
            factor_col="LV",
        )
        assert select(summary, ["FDR<0.05", "AUC>0.75"]) == []

    def test_missing_statistic_value_fails_criterion(self):
        summary = FactorSummary.from_wide(
            pd.DataFrame({"LV": ["x"], "FDR": [float("nan")]}), factor_col="LV"
        )
        assert select(summary, ["FDR<0.05"]) == []

    def test_empty_criteria(self, plier_summary):
        with pytest.raises(EmptyCriteria):
            select(plier_summary, [])

    def test_unknown_statistic(self, plier_summary):
        with pytest.raises(UnknownStatistic) as excinfo:
            select(plier_summary, ["padj<0.05", "FDR<0.05"])
        assert excinfo.value.keys == ["padj"]


class TestExtractRows:
    """Activity row extraction."""

    def test_order_follows_indices(self, activity):
        subset = extract_rows(activity, ["3", "1", "3"])
        assert list(subset.feature_ids) == ["3", "1"]
        assert subset.data[0].tolist() == [-1.5, 1.5]

    def test_unknown_index(self, activity):
        with pytest.raises(KeyNotFound) as excinfo:
            extract_rows(activity, ["1", "9"])
        assert excinfo.value.keys == ["9"]
