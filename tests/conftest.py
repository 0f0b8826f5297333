"""
Pytest configuration and shared fixtures.

Fixtures are small hand-written inputs whose expected outputs can be worked
out by hand in each test.
"""

import numpy as np
import pandas as pd
import pytest

from exprtidy.core.widematrix import WideMatrix
from exprtidy.mapping.identifier_map import IdentifierMap
from exprtidy.tidy.join import SampleMetadata
from exprtidy.tidy.selection import FactorSummary


@pytest.fixture
def simple_matrix():
    """2 genes x 3 samples with one missing cell."""
    return WideMatrix(
        np.array([[1.0, 2.0, 3.0], [4.0, np.nan, 6.0]]),
        feature_ids=["G1", "G2"],
        sample_ids=["S1", "S2", "S3"],
    )


@pytest.fixture
def source_matrix():
    """
    Ensembl-keyed matrix over S1, S2.

    ENSG1 and ENSG2 both map to A, ENSG3 maps to B and C, ENSG4 maps nowhere.
    """
    return WideMatrix(
        np.array([
            [1.0, 3.0],
            [2.0, 5.0],
            [7.0, 8.0],
            [9.0, 9.0],
        ]),
        feature_ids=["ENSG1", "ENSG2", "ENSG3", "ENSG4"],
        sample_ids=["S1", "S2"],
    )


@pytest.fixture
def idmap():
    return IdentifierMap.build_from([
        ("ENSG1", "A"),
        ("ENSG2", "A"),
        ("ENSG3", "C"),
        ("ENSG3", "B"),
        ("ENSG3", "C"),
        ("ENSG4", None),
    ])


@pytest.fixture
def metadata():
    """Attributes for S1 and S2."""
    return SampleMetadata(
        pd.DataFrame(
            {"group": ["CTRL", "CASE"], "batch": [1, 2]},
            index=["S1", "S2"],
        )
    )


@pytest.fixture
def plier_summary_frame():
    """
    PLIER-style summary: one row per latent variable / pathway association.

    Under FDR < 0.05 AND AUC > 0.75, LV 1 passes through PW_a and LV 3 passes
    through both of its pathways; LV 2 fails on FDR.
    """
    return pd.DataFrame({
        "pathway": ["PW_a", "PW_b", "PW_c", "PW_d", "PW_e"],
        "LV index": ["1", "1", "2", "3", "3"],
        "AUC": [0.90, 0.60, 0.80, 0.80, 0.95],
        "p-value": [0.001, 0.20, 0.03, 0.002, 0.004],
        "FDR": [0.01, 0.30, 0.10, 0.01, 0.04],
    })


@pytest.fixture
def plier_summary(plier_summary_frame):
    return FactorSummary.from_wide(plier_summary_frame, factor_col="LV index", label_col="pathway")


@pytest.fixture
def activity():
    """Factor activity: LV 1..3 x S1, S2."""
    return WideMatrix(
        np.array([[0.5, -0.5], [1.0, 2.0], [-1.5, 1.5]]),
        feature_ids=["1", "2", "3"],
        sample_ids=["S1", "S2"],
    )


@pytest.fixture
def counts():
    """Integer counts: 4 genes x 4 samples, LOW has total 3."""
    return WideMatrix(
        np.array([
            [10, 12, 30, 33],
            [100, 90, 20, 25],
            [1, 0, 2, 0],
            [5, 6, 7, 8],
        ]),
        feature_ids=["GA", "GB", "LOW", "GD"],
        sample_ids=["S1", "S2", "S3", "S4"],
    )


@pytest.fixture
def count_metadata():
    """Metadata for the counts fixture, deliberately in a different sample order."""
    return SampleMetadata(
        pd.DataFrame(
            {"group": ["CASE", "CTRL", "CASE", "CTRL"]},
            index=["S4", "S1", "S3", "S2"],
        )
    )
