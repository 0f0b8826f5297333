"""
Tests for the exprtidy command-line interface and its config layer.

Commands run in-process through ``main`` against small files in tmp_path.
"""

import json
from argparse import Namespace
from pathlib import Path

import numpy as np
import pytest

from exprtidy.cli import main
from exprtidy.cli.config import PipelineConfig, load_config, merge_config_with_args
from exprtidy.core.errors import ConfigurationError
from exprtidy.io.loaders import load_matrix
from exprtidy.io.writers import write_matrix


@pytest.fixture
def prepare_inputs(tmp_path):
    matrix = tmp_path / "expression.csv"
    matrix.write_text("gene,S1,S2\nENSG1,1,3\nENSG2,2,5\nENSG3,7,8\nENSG4,9,9\n")
    mapping = tmp_path / "mapping.csv"
    mapping.write_text("source_id,target_id\nENSG1,A\nENSG2,A\nENSG3,B\nENSG3,C\nENSG4,\n")
    metadata = tmp_path / "samples.csv"
    metadata.write_text("sample,group,batch\nS1,CTRL,1\nS2,CASE,2\n")
    return {"matrix": matrix, "mapping": mapping, "metadata": metadata}


def _prepare_args(inputs, output, *extra):
    return [
        "prepare",
        "--input", str(inputs["matrix"]),
        "--mapping", str(inputs["mapping"]),
        "--output", str(output),
        *extra,
    ]


class TestMain:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "prepare" in capsys.readouterr().out

    def test_missing_input_file(self, tmp_path, prepare_inputs):
        args = _prepare_args(prepare_inputs, tmp_path / "out")
        args[2] = str(tmp_path / "absent.csv")
        assert main(args) == 1


class TestPrepareCommand:
    """prepare: map, expand, aggregate, write."""

    def test_writes_prepared_matrix(self, tmp_path, prepare_inputs):
        out = tmp_path / "out"
        assert main(_prepare_args(prepare_inputs, out)) == 0

        prepared = load_matrix(out / "prepared_matrix.csv")
        assert list(prepared.feature_ids) == ["A", "B", "C"]
        np.testing.assert_allclose(prepared.data, [[1.5, 4.0], [7.0, 8.0], [7.0, 8.0]])

        report = json.loads((out / "diagnostics.json").read_text())
        assert report["n_ambiguous"] == 1
        assert report["n_unresolved"] == 1
        assert report["counts"]["rows_dropped_unresolved"] == 1
        assert report["counts"]["duplicate_records_aggregated"] == 2
        assert report["parameters"]["reducer"] == "mean"

        assert (out / "mapping.csv").read_text().splitlines()[0] == "source_id,target_id"

    def test_reducer_option(self, tmp_path, prepare_inputs):
        out = tmp_path / "out"
        assert main(_prepare_args(prepare_inputs, out, "--reducer", "max")) == 0
        prepared = load_matrix(out / "prepared_matrix.csv")
        assert prepared.data[0].tolist() == [2.0, 5.0]

    def test_metadata_join_and_zscore(self, tmp_path, prepare_inputs):
        out = tmp_path / "out"
        args = _prepare_args(
            prepare_inputs, out, "--metadata", str(prepare_inputs["metadata"]), "--zscore"
        )
        assert main(args) == 0
        long_lines = (out / "prepared_long.csv").read_text().splitlines()
        assert long_lines[0] == "entity_id,sample_id,value,group,batch"
        assert len(long_lines) == 1 + 6
        zscored = load_matrix(out / "zscored_matrix.csv")
        np.testing.assert_allclose(zscored.data[:, 0], -zscored.data[:, 1])

    def test_priors_without_zscore_fails(self, tmp_path, prepare_inputs):
        args = _prepare_args(prepare_inputs, tmp_path / "out", "--priors", str(prepare_inputs["matrix"]))
        assert main(args) == 1

    def test_config_file_sets_reducer(self, tmp_path, prepare_inputs):
        config = tmp_path / "pipeline.yaml"
        config.write_text("aggregation:\n  reducer: min\n")
        out = tmp_path / "out"
        assert main(_prepare_args(prepare_inputs, out, "--config", str(config))) == 0
        assert load_matrix(out / "prepared_matrix.csv").data[0].tolist() == [1.0, 3.0]

    def test_explicit_option_beats_config(self, tmp_path, prepare_inputs):
        config = tmp_path / "pipeline.yaml"
        config.write_text("aggregation:\n  reducer: min\n")
        out = tmp_path / "out"
        args = _prepare_args(prepare_inputs, out, "--config", str(config), "--reducer", "sum")
        assert main(args) == 0
        assert load_matrix(out / "prepared_matrix.csv").data[0].tolist() == [3.0, 8.0]

    def test_identifier_source_required(self, tmp_path, prepare_inputs):
        args = ["prepare", "--input", str(prepare_inputs["matrix"]), "--output", str(tmp_path / "out")]
        assert main(args) == 1

    def test_target_namespace_from_config(self, tmp_path, prepare_inputs, monkeypatch):
        class _SymbolSource:
            def __init__(self, source_namespace, species, cache_dir):
                self.source_namespace = source_namespace

            def lookup(self, source_ids, target_namespace):
                assert target_namespace == "symbol"
                return {"ENSG1": "A", "ENSG3": ["B"]}

        monkeypatch.setattr("exprtidy.cli.prepare.MyGeneInfoSource", _SymbolSource)
        config = tmp_path / "pipeline.yaml"
        config.write_text("mapping:\n  target_namespace: symbol\n")
        out = tmp_path / "out"
        args = [
            "prepare", "--input", str(prepare_inputs["matrix"]),
            "--output", str(out), "--config", str(config),
        ]
        assert main(args) == 0
        prepared = load_matrix(out / "prepared_matrix.csv")
        assert list(prepared.feature_ids) == ["A", "B"]

    def test_unknown_config_key_fails(self, tmp_path, prepare_inputs):
        config = tmp_path / "pipeline.yaml"
        config.write_text("aggregation:\n  reduce: min\n")
        args = _prepare_args(prepare_inputs, tmp_path / "out", "--config", str(config))
        assert main(args) == 1


class TestSelectCommand:
    """select: criteria, extraction, tidy export."""

    @pytest.fixture
    def select_inputs(self, tmp_path, activity, plier_summary_frame, prepare_inputs):
        activity_path = write_matrix(activity, tmp_path / "activity.csv", index_label="factor_index")
        summary_path = tmp_path / "summary.csv"
        plier_summary_frame.to_csv(summary_path, index=False)
        return [
            "select",
            "--activity", str(activity_path),
            "--summary", str(summary_path),
            "--label-col", "pathway",
        ]

    def test_selects_and_joins(self, tmp_path, select_inputs, prepare_inputs):
        out = tmp_path / "selected"
        args = select_inputs + [
            "--metadata", str(prepare_inputs["metadata"]),
            "--output", str(out),
            "--criteria", "FDR<0.05", "AUC>0.75",
        ]
        assert main(args) == 0

        selected = load_matrix(out / "selected_activity.csv")
        assert list(selected.feature_ids) == ["1", "3"]
        lines = (out / "selected_long.csv").read_text().splitlines()
        assert lines[0] == "entity_id,sample_id,value,group,batch"
        assert len(lines) == 1 + 4
        report = json.loads((out / "diagnostics.json").read_text())
        assert report["factors"] == ["1", "3"]
        assert report["criteria"] == "FDR < 0.05 AND AUC > 0.75"
        assert report["counts"]["factors_selected"] == 2

    def test_derive_fdr(self, tmp_path, select_inputs):
        out = tmp_path / "selected"
        args = select_inputs + [
            "--derive-fdr", "p-value", "--output", str(out), "--criteria", "FDR<0.01",
        ]
        assert main(args) == 0
        # BH-adjusted p-values below 0.01 fall on LV 1 and LV 3 only.
        assert json.loads((out / "diagnostics.json").read_text())["factors"] == ["1", "3"]

    def test_no_criteria_fails(self, tmp_path, select_inputs):
        assert main(select_inputs + ["--output", str(tmp_path / "selected")]) == 1

    def test_unknown_statistic_fails(self, tmp_path, select_inputs):
        args = select_inputs + ["--output", str(tmp_path / "s"), "--criteria", "padj<0.05"]
        assert main(args) == 1


class TestDeprepCommand:
    """deprep: count checks and sample alignment."""

    @pytest.fixture
    def deprep_args(self, tmp_path, counts):
        counts_path = write_matrix(counts, tmp_path / "counts.csv")
        metadata_path = tmp_path / "samples.csv"
        metadata_path.write_text("sample,group\nS4,CASE\nS1,CTRL\nS3,CASE\nS2,CTRL\n")
        return ["deprep", "--counts", str(counts_path), "--metadata", str(metadata_path)]

    def test_aligns_and_filters(self, tmp_path, deprep_args):
        out = tmp_path / "de"
        assert main(deprep_args + ["--output", str(out)]) == 0

        filtered = load_matrix(out / "counts.csv")
        assert list(filtered.feature_ids) == ["GA", "GB", "GD"]
        assert (out / "counts.csv").read_text().splitlines()[1] == "GA,10,12,30,33"
        metadata_lines = (out / "metadata.csv").read_text().splitlines()
        assert [line.split(",")[0] for line in metadata_lines[1:]] == ["S1", "S2", "S3", "S4"]
        report = json.loads((out / "diagnostics.json").read_text())
        assert report["counts"]["rows_dropped_low_count"] == 1
        assert report["parameters"]["levels"] == ["CASE", "CTRL"]

    def test_missing_group_column(self, tmp_path, deprep_args):
        args = deprep_args + ["--group-col", "condition", "--output", str(tmp_path / "de")]
        assert main(args) == 1

    def test_invalid_alpha_rejected_by_parser(self, deprep_args):
        with pytest.raises(SystemExit):
            main(deprep_args + ["--alpha", "2"])


class TestConfig:
    """Config loading and merging."""

    def test_load_yaml_and_json(self, tmp_path):
        yaml_path = tmp_path / "c.yaml"
        yaml_path.write_text("join:\n  policy: inner\n")
        json_path = tmp_path / "c.json"
        json_path.write_text('{"join": {"policy": "inner"}}')
        assert load_config(yaml_path) == load_config(json_path) == {"join": {"policy": "inner"}}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("")
        assert load_config(path) == {}

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "c.toml"
        path.write_text("x = 1")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_from_dict(self):
        config = PipelineConfig.from_dict({
            "output": "results",
            "selection": {"criteria": ["FDR<0.05"]},
        })
        assert config.output == Path("results")
        assert config.selection.criteria == ["FDR<0.05"]
        assert config.aggregation.reducer == "mean"

    def test_from_dict_unknown_section(self):
        with pytest.raises(ConfigurationError) as excinfo:
            PipelineConfig.from_dict({"plotting": {}})
        assert excinfo.value.keys == ["plotting"]

    def test_merge_precedence(self):
        args = Namespace(reducer="mean", join_policy="strict", output=Path("results/prepared"))
        config = {
            "output": "elsewhere",
            "aggregation": {"reducer": "median"},
            "join": {"policy": "inner"},
            "selection": {"criteria": ["FDR<0.05"]},
        }
        merged = merge_config_with_args(config, args, ["--reducer", "mean"])
        assert merged.reducer == "mean"
        assert merged.join_policy == "inner"
        assert merged.output == Path("elsewhere")
        assert not hasattr(merged, "criteria")
        assert args.join_policy == "strict"

    def test_explicit_equals_form(self):
        args = Namespace(join_policy="strict")
        merged = merge_config_with_args({"join": {"policy": "inner"}}, args, ["--join-policy=strict"])
        assert merged.join_policy == "strict"
