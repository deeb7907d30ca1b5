"""
Report writer for pipeline results.

Writes one CSV per result table plus a JSON record of the parameters used, so
a run can be audited and repeated without the Python objects.

Output Files:
    sample_connectivity.csv               connectivity, z_score, is_outlier per sample
    soft_threshold.csv                    scale-free fit per power (if the power was picked)
    merged_module_eigengenes.csv          samples × ME<color>
    gene_modules.csv                      variance, dynamic_module, module per gene
    gene_module_membership.csv            MM<color> and p.MM<color> per gene
    module_trait_correlations.csv         module, trait, cor, pvalue, n
    gene_trait_significance_<trait>.csv   one table per trait
    run_parameters.json                   configuration, power, backend, removed samples

Plots (optional): sample_dendrogram, soft_threshold, gene_dendrogram,
module_trait_heatmap in the requested format.

Examples:
    >>> from coexnet.io.writers import write_report
    >>> paths = write_report(result, Path("report"), plots=True)
    >>> paths['module_trait_correlations']
    PosixPath('report/module_trait_correlations.csv')
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from coexnet.pipeline import PipelineResult
    from coexnet.network.backend import SoftThresholdResult
    from coexnet.quality.outliers import SampleOutlierResult

__all__ = ['write_report', 'write_outlier_report', 'write_soft_threshold', 'safe_filename']

logger = logging.getLogger(__name__)


def safe_filename(name: str) -> str:
    """Replace characters that are awkward in file names."""
    return re.sub(r'[^A-Za-z0-9_.-]+', '_', str(name)).strip('_') or 'trait'


def _write_csv(frame: pd.DataFrame, path: Path, index: bool = True) -> Path:
    try:
        frame.to_csv(path, index=index)
    except OSError as e:
        raise OSError(f"Failed to write {path}: {e}") from e
    logger.info(f"Wrote {path}")
    return path


def _prepare_dir(output_dir: Path) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def write_outlier_report(
    outliers: SampleOutlierResult,
    output_dir: Path,
    plots: bool = False,
    plot_format: str = "png",
) -> dict[str, Path]:
    """Write sample_connectivity.csv (and the sample dendrogram)."""
    output_dir = _prepare_dir(output_dir)
    paths = {
        'sample_connectivity': _write_csv(
            outliers.to_frame(), output_dir / "sample_connectivity.csv"
        ),
    }
    if plots:
        from coexnet.viz.plots import NetworkVisualizer

        figure = NetworkVisualizer().plot_sample_dendrogram(outliers)
        paths['sample_dendrogram'] = figure.save(output_dir / f"sample_dendrogram.{plot_format}")
        figure.close()
    return paths


def write_soft_threshold(
    sft: SoftThresholdResult,
    output_dir: Path,
    rsquared_cut: float = 0.9,
    plots: bool = False,
    plot_format: str = "png",
) -> dict[str, Path]:
    """Write soft_threshold.csv (and the scale independence plot)."""
    output_dir = _prepare_dir(output_dir)
    paths = {
        'soft_threshold': _write_csv(sft.fit, output_dir / "soft_threshold.csv", index=False),
    }
    if plots:
        from coexnet.viz.plots import NetworkVisualizer

        figure = NetworkVisualizer().plot_soft_threshold(sft, rsquared_cut=rsquared_cut)
        paths['soft_threshold_plot'] = figure.save(output_dir / f"soft_threshold.{plot_format}")
        figure.close()
    return paths


def _membership_frame(result: PipelineResult) -> pd.DataFrame:
    membership = result.membership
    columns = {}
    for column in membership.cor.columns:
        columns[column] = membership.cor[column]
        columns[f"p.{column}"] = membership.pvalue[column]
    frame = pd.DataFrame(columns, index=membership.cor.index)
    frame.index.name = 'gene'
    return frame


def _run_parameters(result: PipelineResult) -> dict:
    from coexnet import __version__

    network = result.network
    return {
        'created_at': datetime.now().isoformat(),
        'coexnet_version': __version__,
        'backend': result.backend_info,
        'config': result.config.to_dict(),
        'n_genes_input': result.matrix.n_genes,
        'n_samples_input': result.matrix.n_samples,
        'n_genes_network': result.filtered.n_genes,
        'n_samples_network': result.filtered.n_samples,
        'outlier_samples': result.outliers.outlier_ids,
        'removed_samples': result.removed_samples,
        'power': network.power,
        'power_source': 'fixed' if network.soft_threshold is None else 'scale-free fit',
        'n_modules': network.n_modules,
        'module_sizes': {str(k): int(v) for k, v in network.module_sizes.items()},
        'traits': list(result.traits.columns),
    }


def write_report(
    result: PipelineResult,
    output_dir: Path,
    plots: bool = False,
    plot_format: str = "png",
) -> dict[str, Path]:
    """
    Write every result table (and optional plots) to output_dir.

    Args:
        result: Output of run_pipeline()
        output_dir: Directory, created if missing
        plots: Also save diagnostic figures
        plot_format: png, pdf or svg

    Returns:
        Mapping of output name to written path

    Raises:
        OSError: If a file cannot be written
    """
    output_dir = _prepare_dir(output_dir)
    paths = write_outlier_report(result.outliers, output_dir, plots=plots, plot_format=plot_format)
    network = result.network

    if network.soft_threshold is not None:
        paths.update(write_soft_threshold(
            network.soft_threshold,
            output_dir,
            rsquared_cut=result.config.network.rsquared_cut,
            plots=plots,
            plot_format=plot_format,
        ))

    eigengenes = network.eigengenes.copy()
    eigengenes.index.name = 'sample'
    paths['merged_module_eigengenes'] = _write_csv(
        eigengenes, output_dir / "merged_module_eigengenes.csv"
    )

    genes = network.to_frame()
    genes.insert(0, 'variance', result.variance.variances.reindex(genes.index).values)
    paths['gene_modules'] = _write_csv(genes, output_dir / "gene_modules.csv")

    paths['gene_module_membership'] = _write_csv(
        _membership_frame(result), output_dir / "gene_module_membership.csv"
    )

    paths['module_trait_correlations'] = _write_csv(
        result.module_traits.to_long(row_name='module', col_name='trait'),
        output_dir / "module_trait_correlations.csv",
        index=False,
    )

    for trait, table in result.gene_significance.items():
        key = f"gene_trait_significance_{safe_filename(trait)}"
        paths[key] = _write_csv(table, output_dir / f"{key}.csv")

    params_path = output_dir / "run_parameters.json"
    with open(params_path, 'w') as f:
        json.dump(_run_parameters(result), f, indent=2, default=str)
    paths['run_parameters'] = params_path
    logger.info(f"Wrote {params_path}")

    if plots:
        paths.update(_write_plots(result, output_dir, plot_format))

    return paths


def _write_plots(result: PipelineResult, output_dir: Path, plot_format: str) -> dict[str, Path]:
    from coexnet.viz.plots import NetworkVisualizer

    viz = NetworkVisualizer()
    figures = {}
    network = result.network
    figures['gene_dendrogram'] = viz.plot_gene_dendrogram(network)
    if result.module_traits.cor.size > 0:
        figures['module_trait_heatmap'] = viz.plot_module_trait_heatmap(result.module_traits)

    paths = {}
    for name, figure in figures.items():
        paths[name] = figure.save(output_dir / f"{name}.{plot_format}")
        figure.close()
    return paths
