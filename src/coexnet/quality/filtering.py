"""
Variance-based gene selection.

WGCNA is run on the most variable genes: low-variance genes carry little
co-expression signal and inflate the gene × gene matrices quadratically.
The filter ranks genes by sample variance and keeps the top K.

Engineering Design:
    - Pure Transform: input matrix -> output matrix
    - Deterministic ranking: ties keep original row order (stable sort)
    - Output rows follow the ranking (most variable first)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict
import numpy as np
import pandas as pd

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.transform import Transform
from coexnet.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ['VarianceFilter', 'VarianceRanking']


@dataclass
class VarianceRanking:
    """Genes ordered by descending variance, with the selected prefix."""
    variances: pd.Series
    ranked_genes: pd.Index
    top_k: int
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def selected_genes(self) -> pd.Index:
        return self.ranked_genes[:self.top_k]

    @property
    def variance_cutoff(self) -> float:
        """Smallest variance among the selected genes."""
        return float(self.variances.loc[self.ranked_genes[self.top_k - 1]])


class VarianceFilter(Transform):
    """
    Keep the top_k genes with the highest variance across samples.

    Params:
        top_k: Number of genes to keep. Must not exceed the gene count.
        ddof: Delta degrees of freedom for the variance (1 = sample variance).

    Examples:
        >>> filtered = VarianceFilter(top_k=5000).apply(matrix)
        >>> filtered.n_genes
        5000
    """

    def __init__(self, top_k: int = 10000, ddof: int = 1):
        super().__init__(
            name="VarianceFilter",
            params={"top_k": top_k, "ddof": ddof}
        )
        if top_k < 1:
            raise ConfigurationError(f"top_k must be >= 1, got {top_k}")
        self.top_k = top_k
        self.ddof = ddof

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if self.top_k > matrix.n_genes:
            errors.append(
                f"top_k ({self.top_k}) exceeds the number of genes ({matrix.n_genes})"
            )
        if matrix.n_samples <= self.ddof:
            errors.append(
                f"Need more than {self.ddof} samples to compute variance, got {matrix.n_samples}"
            )
        return errors

    def rank(self, matrix: ExpressionMatrix) -> VarianceRanking:
        """
        Rank genes without subsetting the matrix.

        Raises:
            ConfigurationError: If validate() reports problems
        """
        errors = self.validate(matrix)
        if errors:
            raise ConfigurationError("; ".join(errors))

        variances = np.var(matrix.data, axis=1, ddof=self.ddof)
        order = np.argsort(-variances, kind='stable')

        return VarianceRanking(
            variances=pd.Series(variances, index=matrix.gene_ids, name='variance'),
            ranked_genes=matrix.gene_ids[order],
            top_k=self.top_k,
            parameters=dict(self.params),
        )

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """Return a matrix holding only the top_k most variable genes."""
        ranking = self.rank(matrix)
        order = matrix.gene_ids.get_indexer(ranking.selected_genes)

        logger.info(
            f"VarianceFilter: kept {self.top_k:,}/{matrix.n_genes:,} genes "
            f"(variance >= {ranking.variance_cutoff:.4g})"
        )
        return matrix.select_genes(order)
