"""Tests for the coexnet command-line interface."""

import json

import pandas as pd
import pytest

from conftest import FakeNetworkBackend
from coexnet.cli import main


@pytest.fixture
def fake_pywgcna(monkeypatch):
    """Route every PyWGCNABackend construction to the numpy/scipy backend."""
    def factory(n_threads=None):
        return FakeNetworkBackend()

    monkeypatch.setattr("coexnet.pipeline.PyWGCNABackend", factory)
    monkeypatch.setattr("coexnet.network.pywgcna.PyWGCNABackend", factory)


class TestMain:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "coexnet" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert "0.1.0" in capsys.readouterr().out

    def test_invalid_flag_value_exits(self):
        with pytest.raises(SystemExit):
            main(["outliers", "--top-k", "0"])


class TestOutliersCommand:

    def test_writes_connectivity_table(self, input_files, tmp_path, capsys):
        output = tmp_path / "qc"
        code = main([
            "outliers",
            "--input", str(input_files['expression']),
            "--output", str(output),
            "--top-k", "60",
            "--outlier-threshold", "-1.5",
        ])
        assert code == 0
        table = pd.read_csv(output / "sample_connectivity.csv", index_col=0)
        assert len(table) == 24
        assert (table['is_outlier'] == (table['z_score'] < -1.5)).all()
        assert "Lowest standardized connectivity" in capsys.readouterr().out

    def test_with_metadata_and_plots(self, input_files, tmp_path):
        output = tmp_path / "qc"
        code = main([
            "outliers",
            "--input", str(input_files['expression']),
            "--metadata", str(input_files['metadata']),
            "--output", str(output),
            "--top-k", "60",
            "--plots",
        ])
        assert code == 0
        assert (output / "sample_dendrogram.png").exists()

    def test_missing_output_is_an_error(self, input_files, capsys):
        assert main(["outliers", "--input", str(input_files['expression'])]) == 1
        assert "--output is required" in capsys.readouterr().out

    def test_missing_input_file(self, tmp_path, capsys):
        code = main(["outliers", "--input", str(tmp_path / "absent.csv"), "--output", str(tmp_path)])
        assert code == 1
        assert "ERROR" in capsys.readouterr().out

    def test_top_k_above_gene_count(self, input_files, tmp_path, capsys):
        code = main([
            "outliers",
            "--input", str(input_files['expression']),
            "--output", str(tmp_path / "qc"),
        ])
        assert code == 1
        assert "exceeds the number of genes" in capsys.readouterr().out

    def test_config_file(self, input_files, tmp_path):
        output = tmp_path / "from_config"
        config = tmp_path / "qc.yaml"
        config.write_text(
            f"input: {input_files['expression']}\n"
            f"output: {output}\n"
            "top_k_genes: 40\n"
            "outliers:\n"
            "  threshold: -1.0\n"
        )
        assert main(["outliers", "--config", str(config)]) == 0
        table = pd.read_csv(output / "sample_connectivity.csv", index_col=0)
        assert (table['is_outlier'] == (table['z_score'] < -1.0)).all()


class TestSoftThresholdCommand:

    def test_writes_fit_table(self, input_files, tmp_path, fake_pywgcna, capsys):
        output = tmp_path / "sft"
        code = main([
            "soft-threshold",
            "--input", str(input_files['expression']),
            "--output", str(output),
            "--top-k", "60",
            "--powers", "1-6",
        ])
        assert code == 0
        fit = pd.read_csv(output / "soft_threshold.csv")
        assert list(fit['power']) == [1, 2, 3, 4, 5, 6]
        assert "Power estimate" in capsys.readouterr().out


class TestRunCommand:

    def test_full_run(self, input_files, tmp_path, fake_pywgcna, capsys):
        output = tmp_path / "wgcna"
        code = main([
            "run",
            "--input", str(input_files['expression']),
            "--metadata", str(input_files['metadata']),
            "--output", str(output),
            "--top-k", "60",
            "--power", "6",
            "--min-module-size", "10",
            "--traits", "diagnosis", "age_onset",
        ])
        assert code == 0
        assert (output / "module_trait_correlations.csv").exists()
        assert (output / "gene_trait_significance_diagnosis.CTRL.csv").exists()

        params = json.loads((output / "run_parameters.json").read_text())
        assert params['config']['network']['power'] == 6
        assert params['config']['traits']['columns'] == ['diagnosis', 'age_onset']
        assert params['traits'] == ['diagnosis.CTRL', 'age_onset']
        assert "Soft-threshold power: 6 (fixed)" in capsys.readouterr().out

    def test_unknown_trait_column(self, input_files, tmp_path, fake_pywgcna, capsys):
        code = main([
            "run",
            "--input", str(input_files['expression']),
            "--metadata", str(input_files['metadata']),
            "--output", str(tmp_path / "wgcna"),
            "--top-k", "60",
            "--power", "6",
            "--min-module-size", "10",
            "--traits", "tissue",
        ])
        assert code == 1
        assert "tissue" in capsys.readouterr().out
