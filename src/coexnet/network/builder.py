"""
Gene co-expression network construction and module detection.

Step order follows the standard one-step WGCNA workflow:

    1. Soft-thresholding power (scale-free fit) unless a power is fixed
    2. Adjacency = |cor|^power (or signed variants)
    3. Topological overlap (TOM); dissimilarity = 1 - TOM
    4. Average-linkage gene tree on the dissimilarity
    5. Dynamic hybrid tree cut -> initial ("dynamic") module colors
    6. Merge modules whose eigengenes are closer than merge_cut_height

All numerical work is done by the NetworkBackend; this module sequences the
calls, validates shapes between steps and logs progress.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
import numpy as np
import pandas as pd

from coexnet.config import NetworkConfig
from coexnet.core.expression import ExpressionMatrix
from coexnet.core.exceptions import ConfigurationError, DataValidationError
from coexnet.network.backend import GREY, NetworkBackend, SoftThresholdResult

logger = logging.getLogger(__name__)

__all__ = ['NetworkBuilder', 'NetworkResult']


@dataclass
class NetworkResult:
    """
    Modules found in one network build.

    Attributes:
        power: Soft-thresholding power used
        soft_threshold: Scale-free fit table (None when the power was fixed)
        gene_tree: scipy linkage matrix over 1 - TOM
        gene_ids: Genes in tree leaf-index order
        dynamic_colors: Module colors before merging
        module_colors: Module colors after merging
        eigengenes: Merged module eigengenes (samples × ME<color>, no MEgrey)
    """
    power: int
    soft_threshold: Optional[SoftThresholdResult]
    gene_tree: np.ndarray
    gene_ids: pd.Index
    dynamic_colors: pd.Series
    module_colors: pd.Series
    eigengenes: pd.DataFrame

    @property
    def module_sizes(self) -> pd.Series:
        return self.module_colors.value_counts().rename('n_genes')

    @property
    def n_modules(self) -> int:
        """Modules other than grey."""
        return int((self.module_sizes.index != GREY).sum())

    def to_frame(self) -> pd.DataFrame:
        """Per-gene table: dynamic_module, module."""
        return pd.DataFrame(
            {'dynamic_module': self.dynamic_colors, 'module': self.module_colors},
            index=pd.Index(self.gene_ids, name='gene'),
        )


class NetworkBuilder:
    """
    Build a co-expression network through a NetworkBackend.

    Args:
        backend: Implementation of the WGCNA routines
        config: Network parameters

    Examples:
        >>> from coexnet.network import NetworkBuilder, PyWGCNABackend
        >>> builder = NetworkBuilder(PyWGCNABackend(), NetworkConfig(min_module_size=20))
        >>> result = builder.build(filtered)
        >>> result.module_sizes
    """

    def __init__(self, backend: NetworkBackend, config: Optional[NetworkConfig] = None):
        self.backend = backend
        self.config = config or NetworkConfig()
        errors = self.config.validate()
        if errors:
            raise ConfigurationError("; ".join(errors))

    def pick_power(self, matrix: ExpressionMatrix) -> SoftThresholdResult:
        """Scale-free topology fit over config.powers."""
        cfg = self.config
        logger.info(f"Fitting scale-free topology for powers {list(cfg.powers)}")
        result = self.backend.soft_threshold(
            matrix.to_samples_frame(),
            powers=cfg.powers,
            network_type=cfg.network_type,
            rsquared_cut=cfg.rsquared_cut,
            mean_cut=cfg.mean_cut,
            correlation=cfg.correlation,
        )
        best = result.fit.loc[result.fit['power'] == result.power_estimate]
        if not best.empty and best['sft_r_sq'].iloc[0] < cfg.rsquared_cut:
            logger.warning(
                f"No power reached R² >= {cfg.rsquared_cut}; using best fit power "
                f"{result.power_estimate} (R² = {best['sft_r_sq'].iloc[0]:.3f})"
            )
        else:
            logger.info(f"Soft-thresholding power estimate: {result.power_estimate}")
        return result

    def build(self, matrix: ExpressionMatrix) -> NetworkResult:
        """
        Run the network workflow on matrix (genes × samples).

        Raises:
            DataValidationError: If the matrix is too small for a network or
                the backend returns inconsistent shapes
            NetworkBackendError: If the backend fails
        """
        cfg = self.config
        if matrix.n_genes < 2 or matrix.n_samples < 3:
            raise DataValidationError(
                f"Network construction needs >= 2 genes and >= 3 samples, got "
                f"{matrix.n_genes} × {matrix.n_samples}"
            )
        expr = matrix.to_samples_frame()

        if cfg.power is None:
            soft_threshold = self.pick_power(matrix)
            power = soft_threshold.power_estimate
        else:
            soft_threshold = None
            power = int(cfg.power)
            logger.info(f"Using fixed soft-thresholding power {power}")

        logger.info(f"Computing {cfg.network_type} adjacency for {matrix.n_genes:,} genes")
        adjacency = self.backend.adjacency(
            expr, power=power, network_type=cfg.network_type, correlation=cfg.correlation
        )
        _check_square(adjacency, matrix.gene_ids, "adjacency")

        logger.info("Computing topological overlap")
        tom = self.backend.topological_overlap(adjacency, tom_type=cfg.tom_type)
        _check_square(tom, matrix.gene_ids, "topological overlap")
        dissimilarity = 1.0 - tom
        del adjacency, tom

        gene_tree = self.backend.cluster(dissimilarity, method=cfg.gene_linkage_method)
        dynamic = self.backend.cut_tree(
            gene_tree,
            dissimilarity,
            min_module_size=cfg.min_module_size,
            deep_split=cfg.deep_split,
        ).reindex(matrix.gene_ids)
        if dynamic.isna().any():
            raise DataValidationError("Tree cut did not assign a color to every gene")
        logger.info(f"Dynamic tree cut: {_describe_modules(dynamic)}")

        merged = self.backend.merge_modules(expr, dynamic, cut_height=cfg.merge_cut_height)
        colors = merged.colors.reindex(matrix.gene_ids)
        eigengenes = merged.eigengenes.drop(columns=['ME' + GREY], errors='ignore')
        logger.info(f"After merging at height {cfg.merge_cut_height}: {_describe_modules(colors)}")

        return NetworkResult(
            power=power,
            soft_threshold=soft_threshold,
            gene_tree=gene_tree,
            gene_ids=matrix.gene_ids,
            dynamic_colors=dynamic.rename('dynamic_module'),
            module_colors=colors.rename('module'),
            eigengenes=eigengenes,
        )


def _check_square(frame: pd.DataFrame, genes: pd.Index, what: str) -> None:
    if frame.shape != (len(genes), len(genes)):
        raise DataValidationError(
            f"Backend returned {what} of shape {frame.shape}, expected {(len(genes), len(genes))}"
        )


def _describe_modules(colors: pd.Series) -> str:
    sizes = colors.value_counts()
    n_grey = int(sizes.get(GREY, 0))
    n_modules = int((sizes.index != GREY).sum())
    return f"{n_modules} module(s), {n_grey} unassigned gene(s)"
