"""End-to-end pipeline and report writer tests (numpy/scipy backend)."""

import json

import numpy as np
import pandas as pd
import pytest

from coexnet.config import NetworkConfig, OutlierConfig, PipelineConfig, TraitConfig
from coexnet.core.exceptions import ConfigurationError, SampleIdMismatchError
from coexnet.core.expression import ExpressionMatrix
from coexnet.io.writers import write_report, write_outlier_report, safe_filename
from coexnet.pipeline import load_inputs, run_pipeline, screen_samples


def _config(**overrides):
    values = dict(
        top_k_genes=60,
        outliers=OutlierConfig(threshold=-1.5),
        network=NetworkConfig(power=6, min_module_size=10),
    )
    values.update(overrides)
    return PipelineConfig(**values)


@pytest.fixture
def matrix_with_outlier(expression_matrix):
    """expression_matrix with one sample shifted far from the others."""
    data = expression_matrix.data.copy()
    data[:, 3] += 6.0
    return ExpressionMatrix(
        data=data,
        gene_ids=expression_matrix.gene_ids,
        sample_ids=expression_matrix.sample_ids,
    )


class TestScreenSamples:

    def test_filter_then_detect(self, matrix_with_outlier):
        ranking, filtered, outliers = screen_samples(matrix_with_outlier, _config())
        assert filtered.n_genes == 60
        assert list(filtered.gene_ids) == list(ranking.selected_genes)
        assert outliers.outlier_ids == [matrix_with_outlier.sample_ids[3]]
        assert filtered.n_samples == matrix_with_outlier.n_samples


class TestRunPipeline:

    def test_flags_are_advisory_by_default(self, matrix_with_outlier, sample_metadata, fake_backend):
        result = run_pipeline(matrix_with_outlier, sample_metadata, _config(), backend=fake_backend)

        assert result.outliers.n_outliers == 1
        assert result.removed_samples == []
        assert result.filtered.n_samples == matrix_with_outlier.n_samples
        assert result.network.eigengenes.shape[0] == matrix_with_outlier.n_samples

    def test_remove_outliers_when_configured(self, matrix_with_outlier, sample_metadata, fake_backend):
        config = _config(outliers=OutlierConfig(threshold=-1.5, remove=True))
        result = run_pipeline(matrix_with_outlier, sample_metadata, config, backend=fake_backend)

        flagged = matrix_with_outlier.sample_ids[3]
        assert result.removed_samples == [flagged]
        assert flagged not in result.filtered.sample_ids
        assert result.network.eigengenes.shape[0] == matrix_with_outlier.n_samples - 1
        assert flagged not in result.traits.index

    def test_metadata_reconciled_and_traits_encoded(self, expression_matrix, sample_metadata, fake_backend):
        result = run_pipeline(expression_matrix, sample_metadata, _config(), backend=fake_backend)

        assert result.matrix.sample_metadata.index.equals(expression_matrix.sample_ids)
        assert 'diagnosis.CTRL' in result.traits.columns
        assert 'age_onset' in result.traits.columns
        assert result.traits['age_onset'].isna().sum() == 12

    def test_significance_for_every_trait(self, expression_matrix, sample_metadata, fake_backend):
        result = run_pipeline(expression_matrix, sample_metadata, _config(), backend=fake_backend)
        assert set(result.gene_significance) == set(result.traits.columns)
        for table in result.gene_significance.values():
            assert len(table) == result.filtered.n_genes

    def test_association_tables_align(self, expression_matrix, sample_metadata, fake_backend):
        result = run_pipeline(expression_matrix, sample_metadata, _config(), backend=fake_backend)
        assert list(result.module_traits.cor.index) == list(result.network.eigengenes.columns)
        assert result.membership.cor.shape == (
            result.filtered.n_genes, result.network.eigengenes.shape[1]
        )

    def test_selected_trait_columns(self, expression_matrix, sample_metadata, fake_backend):
        config = _config(traits=TraitConfig(columns=['diagnosis']))
        result = run_pipeline(expression_matrix, sample_metadata, config, backend=fake_backend)
        assert list(result.traits.columns) == ['diagnosis.CTRL']

    def test_without_metadata(self, expression_matrix, fake_backend):
        result = run_pipeline(expression_matrix, None, _config(), backend=fake_backend)
        assert result.traits.shape == (expression_matrix.n_samples, 0)
        assert result.gene_significance == {}

    def test_traits_requested_without_metadata(self, expression_matrix, fake_backend):
        config = _config(traits=TraitConfig(columns=['diagnosis']))
        with pytest.raises(ConfigurationError, match="no metadata"):
            run_pipeline(expression_matrix, None, config, backend=fake_backend)

    def test_mismatched_metadata(self, expression_matrix, sample_metadata, fake_backend):
        with pytest.raises(SampleIdMismatchError):
            run_pipeline(expression_matrix, sample_metadata.iloc[1:], _config(), backend=fake_backend)

    def test_id_map_from_config(self, tmp_path, expression_matrix, sample_metadata, fake_backend):
        renamed = sample_metadata.rename(index={'ALS_iPSC_01': 'ALS_iPSC_1b'})
        id_map = tmp_path / "id_map.csv"
        id_map.write_text("metadata_id,expression_id\nALS_iPSC_1b,ALS-iPSC-01\n")
        config = PipelineConfig.from_dict({
            'top_k_genes': 60,
            'metadata': {'id_map': str(id_map)},
            'network': {'power': 6, 'min_module_size': 10},
        })
        result = run_pipeline(expression_matrix, renamed, config, backend=fake_backend)
        assert result.matrix.n_samples == expression_matrix.n_samples

    def test_invalid_config_rejected(self, expression_matrix, fake_backend):
        with pytest.raises(ConfigurationError, match="top_k_genes"):
            run_pipeline(expression_matrix, None, _config(top_k_genes=0), backend=fake_backend)

    def test_backend_info_recorded(self, expression_matrix, fake_backend):
        result = run_pipeline(expression_matrix, None, _config(), backend=fake_backend)
        assert result.backend_info == {'backend': 'fake', 'version': None}


class TestLoadInputs:

    def test_reads_both_tables(self, input_files):
        config = PipelineConfig(expression=input_files['expression'], metadata_path=input_files['metadata'])
        matrix, metadata = load_inputs(config)
        assert matrix.shape == (80, 24)
        assert len(metadata) == 24

    def test_metadata_optional(self, input_files):
        matrix, metadata = load_inputs(PipelineConfig(expression=input_files['expression']))
        assert metadata is None

    def test_expression_required(self):
        with pytest.raises(ConfigurationError, match="expression"):
            load_inputs(PipelineConfig())


class TestWriteReport:

    def test_tables_written(self, tmp_path, expression_matrix, sample_metadata, fake_backend):
        config = _config(network=NetworkConfig(powers=[1, 2, 4, 6], min_module_size=10))
        result = run_pipeline(expression_matrix, sample_metadata, config, backend=fake_backend)
        paths = write_report(result, tmp_path / "report")

        for name in ('sample_connectivity', 'soft_threshold', 'merged_module_eigengenes',
                     'gene_modules', 'gene_module_membership', 'module_trait_correlations',
                     'run_parameters'):
            assert paths[name].exists(), name
        for trait in result.traits.columns:
            assert (tmp_path / "report" / f"gene_trait_significance_{safe_filename(trait)}.csv").exists()

        genes = pd.read_csv(paths['gene_modules'], index_col=0)
        assert list(genes.columns) == ['variance', 'dynamic_module', 'module']
        assert len(genes) == 60

        long = pd.read_csv(paths['module_trait_correlations'])
        assert list(long.columns) == ['module', 'trait', 'cor', 'pvalue', 'n']

        membership = pd.read_csv(paths['gene_module_membership'], index_col=0)
        mm = [c for c in membership.columns if not c.startswith('p.')]
        assert all(f"p.{c}" in membership.columns for c in mm)

    def test_run_parameters(self, tmp_path, expression_matrix, fake_backend):
        result = run_pipeline(expression_matrix, None, _config(), backend=fake_backend)
        paths = write_report(result, tmp_path)
        params = json.loads(paths['run_parameters'].read_text())

        assert params['power'] == 6
        assert params['power_source'] == 'fixed'
        assert params['config']['top_k_genes'] == 60
        assert params['config']['outliers']['threshold'] == -1.5
        assert params['n_genes_network'] == 60
        assert params['removed_samples'] == []
        assert params['backend']['backend'] == 'fake'

    def test_sample_connectivity_table(self, tmp_path, matrix_with_outlier):
        _, _, outliers = screen_samples(matrix_with_outlier, _config())
        paths = write_outlier_report(outliers, tmp_path)
        table = pd.read_csv(paths['sample_connectivity'], index_col=0)
        assert list(table.columns) == ['connectivity', 'z_score', 'is_outlier']
        assert table['is_outlier'].sum() == 1
        np.testing.assert_allclose(table['z_score'].mean(), 0.0, atol=1e-9)

    def test_plots_written(self, tmp_path, expression_matrix, sample_metadata, fake_backend):
        config = _config(network=NetworkConfig(powers=[1, 2, 4, 6], min_module_size=10))
        result = run_pipeline(expression_matrix, sample_metadata, config, backend=fake_backend)
        paths = write_report(result, tmp_path, plots=True, plot_format="png")

        for name in ('sample_dendrogram', 'soft_threshold_plot', 'gene_dendrogram', 'module_trait_heatmap'):
            assert paths[name].exists(), name
            assert paths[name].suffix == '.png'

    def test_safe_filename(self):
        assert safe_filename('cell_type.iPSC') == 'cell_type.iPSC'
        assert safe_filename('age of onset (y)') == 'age_of_onset_y'
