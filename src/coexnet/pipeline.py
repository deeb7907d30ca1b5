"""
End-to-end WGCNA exploratory analysis.

Stages (each takes explicit inputs and returns explicit outputs):

    1. Sample reconciliation   expression + metadata -> annotated matrix
    2. Variance filter         top-K most variable genes
    3. Sample outlier screen   advisory flags (removed only if configured)
    4. Network construction    power, TOM, modules, merged eigengenes
    5. Trait association       module-trait, membership, gene significance

Examples:
    >>> from coexnet.config import PipelineConfig
    >>> from coexnet.pipeline import load_inputs, run_pipeline
    >>>
    >>> config = PipelineConfig(expression=Path("counts.csv"), metadata_path=Path("samples.csv"))
    >>> matrix, metadata = load_inputs(config)
    >>> result = run_pipeline(matrix, metadata, config)
    >>> result.module_traits.cor
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional
import pandas as pd

from coexnet.config import PipelineConfig
from coexnet.core.expression import ExpressionMatrix
from coexnet.core.exceptions import ConfigurationError
from coexnet.io.loaders import load_expression_matrix, load_sample_metadata
from coexnet.io.metadata import SampleIdReconciler, load_id_map
from coexnet.network.backend import NetworkBackend
from coexnet.network.builder import NetworkBuilder, NetworkResult
from coexnet.network.pywgcna import PyWGCNABackend
from coexnet.quality.filtering import VarianceFilter, VarianceRanking
from coexnet.quality.outliers import SampleOutlierDetector, SampleOutlierResult
from coexnet.stats.correlation import TraitAssociation
from coexnet.stats.traits import (
    encode_traits,
    gene_module_membership,
    gene_trait_significance,
    module_trait_association,
)

logger = logging.getLogger(__name__)

__all__ = ['PipelineResult', 'run_pipeline', 'load_inputs', 'reconcile_samples', 'screen_samples']


@dataclass
class PipelineResult:
    """Everything one run produces."""
    config: PipelineConfig
    matrix: ExpressionMatrix
    filtered: ExpressionMatrix
    variance: VarianceRanking
    outliers: SampleOutlierResult
    network: NetworkResult
    traits: pd.DataFrame
    module_traits: TraitAssociation
    membership: TraitAssociation
    gene_significance: dict[str, pd.DataFrame]
    removed_samples: list[str] = field(default_factory=list)
    backend_info: dict = field(default_factory=dict)


def load_inputs(config: PipelineConfig) -> tuple[ExpressionMatrix, Optional[pd.DataFrame]]:
    """
    Read the expression matrix and (if configured) the metadata table.

    Raises:
        ConfigurationError: If no expression path is configured
    """
    if config.expression is None:
        raise ConfigurationError("No expression matrix given (config 'expression' or --input)")
    matrix = load_expression_matrix(config.expression)
    metadata = None
    if config.metadata_path is not None:
        metadata = load_sample_metadata(config.metadata_path, sample_column=config.metadata.sample_column)
    return matrix, metadata


def reconcile_samples(
    matrix: ExpressionMatrix,
    metadata: pd.DataFrame,
    config: PipelineConfig,
    reconciler: Optional[SampleIdReconciler] = None,
) -> ExpressionMatrix:
    """Attach metadata to matrix, matching sample IDs per config.metadata."""
    if reconciler is None:
        id_map = load_id_map(config.metadata.id_map) if config.metadata.id_map else None
        reconciler = SampleIdReconciler(
            id_map=id_map,
            normalize=config.metadata.normalize_ids,
            drop_unused_metadata=config.metadata.drop_unused,
        )
    return reconciler.reconcile(matrix, metadata)


def screen_samples(
    matrix: ExpressionMatrix,
    config: PipelineConfig,
) -> tuple[VarianceRanking, ExpressionMatrix, SampleOutlierResult]:
    """
    Variance filter followed by the sample outlier screen.

    The returned matrix is the filtered matrix; flagged samples are NOT removed
    here, whatever config.outliers.remove says.
    """
    variance_filter = VarianceFilter(top_k=config.top_k_genes)
    ranking = variance_filter.rank(matrix)
    filtered = variance_filter.apply(matrix)

    detector = SampleOutlierDetector(
        threshold=config.outliers.threshold,
        linkage_method=config.outliers.linkage_method,
    )
    return ranking, filtered, detector.detect(filtered)


def run_pipeline(
    matrix: ExpressionMatrix,
    metadata: Optional[pd.DataFrame],
    config: Optional[PipelineConfig] = None,
    backend: Optional[NetworkBackend] = None,
    reconciler: Optional[SampleIdReconciler] = None,
) -> PipelineResult:
    """
    Run all stages on in-memory inputs.

    Args:
        matrix: Expression (genes × samples)
        metadata: Sample metadata indexed by sample ID, or None for a run
            without trait association
        config: Parameters (defaults if None)
        backend: Network backend (PyWGCNABackend if None)
        reconciler: Sample ID reconciler (built from config.metadata if None)

    Raises:
        SampleIdMismatchError: If samples cannot be matched to metadata
        ConfigurationError: If parameters are invalid
        DegenerateConnectivityError: If all samples are equally connected
        NetworkBackendError: If network construction fails
    """
    config = (config or PipelineConfig()).check()

    if metadata is not None:
        matrix = reconcile_samples(matrix, metadata, config, reconciler)
    logger.info(f"Input: {matrix.n_genes:,} genes × {matrix.n_samples} samples")

    ranking, filtered, outliers = screen_samples(matrix, config)

    removed: list[str] = []
    if config.outliers.remove and outliers.n_outliers:
        removed = outliers.outlier_ids
        filtered = outliers.remove_outliers(filtered)
    elif outliers.n_outliers:
        logger.info(
            "Outlier flags are advisory; all samples kept "
            "(set outliers.remove to drop them)"
        )

    if backend is None:
        backend = PyWGCNABackend(n_threads=config.network.n_threads)
    network = NetworkBuilder(backend, config.network).build(filtered)

    if filtered.sample_metadata.shape[1] > 0:
        traits = encode_traits(filtered.sample_metadata, config.traits.columns)
    else:
        if config.traits.columns:
            raise ConfigurationError("Trait columns were requested but no metadata was given")
        traits = pd.DataFrame(index=filtered.sample_ids)

    method = config.traits.method
    module_traits = module_trait_association(network.eigengenes, traits, method=method)
    membership = gene_module_membership(filtered, network.eigengenes, method=method)
    significance = gene_trait_significance(
        filtered, traits, network.module_colors, membership=membership, method=method
    )

    return PipelineResult(
        config=config,
        matrix=matrix,
        filtered=filtered,
        variance=ranking,
        outliers=outliers,
        network=network,
        traits=traits,
        module_traits=module_traits,
        membership=membership,
        gene_significance=significance,
        removed_samples=removed,
        backend_info=backend.describe(),
    )
