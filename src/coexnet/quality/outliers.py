"""
Sample outlier detection from sample-network connectivity.

Before building a gene network, WGCNA screens samples: a sample whose overall
expression profile is far from every other sample drags correlations around
and tends to form its own branch in the sample tree. The screen builds a
sample × sample similarity network and standardizes each sample's
connectivity; samples with a strongly negative standardized connectivity are
reported as outliers.

Algorithm:
    1. D[i, j] = Σ_genes (x_gi - x_gj)²                 (squared Euclidean)
    2. A = 1 - D / max(D)                                (A[i, i] = 1, A in [0, 1])
       This is the WGCNA distance adjacency 1 - (d / max d)² written in terms
       of squared distances. If every sample is identical, A is all ones.
    3. k_i = Σ_j A[i, j] - 1
    4. Z_i = (k_i - mean(k)) / sd(k)                     (sample sd, ddof=1)
    5. outlier_i = Z_i < threshold                       (default -2.5)
    6. Hierarchical clustering of 1 - A for the diagnostic sample tree

The decision is the threshold test alone; the tree is for inspection.

Detection is advisory. detect() never drops samples: callers that want the
flagged samples gone call SampleOutlierResult.remove_outliers() explicitly.

References:
    - Oldham MC, Langfelder P, Horvath S (2012) "Network methods for
      describing sample relationships in genomic datasets: application to
      Huntington's disease". BMC Syst Biol 6:63

Examples:
    >>> from coexnet.quality.outliers import SampleOutlierDetector
    >>>
    >>> result = SampleOutlierDetector(threshold=-2.5).detect(matrix)
    >>> result.outlier_ids
    ['iPSC_17']
    >>> cleaned = result.remove_outliers(matrix)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import linkage
from scipy.spatial.distance import pdist, squareform

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.transform import Transform
from coexnet.core.exceptions import (
    ConfigurationError,
    DataValidationError,
    DegenerateConnectivityError,
)

logger = logging.getLogger(__name__)

__all__ = [
    'SampleOutlierDetector',
    'SampleOutlierResult',
    'sample_similarity',
    'sample_connectivity',
    'standardized_connectivity',
    'LINKAGE_METHODS',
]

LINKAGE_METHODS = ('single', 'complete', 'average', 'weighted', 'centroid', 'median', 'ward')

MIN_SAMPLES = 3


def sample_similarity(data: np.ndarray) -> np.ndarray:
    """
    Sample × sample similarity from squared Euclidean distances.

    Args:
        data: Expression values (genes × samples)

    Returns:
        Symmetric (n_samples × n_samples) array with values in [0, 1] and a
        unit diagonal
    """
    dist = squareform(pdist(data.T, metric='sqeuclidean'))
    max_dist = dist.max()
    if max_dist == 0:
        return np.ones_like(dist)
    similarity = 1.0 - dist / max_dist
    np.fill_diagonal(similarity, 1.0)
    return similarity


def sample_connectivity(similarity: np.ndarray) -> np.ndarray:
    """Row sums of the similarity matrix without the self term."""
    return similarity.sum(axis=1) - 1.0


def standardized_connectivity(connectivity: np.ndarray) -> np.ndarray:
    """
    Z-score connectivity with the sample standard deviation.

    Raises:
        DegenerateConnectivityError: If connectivity has no spread
    """
    mean = connectivity.mean()
    sd = connectivity.std(ddof=1)
    # Rounding in the row sums can leave a tiny non-zero sd for tied samples
    tolerance = np.finfo(float).eps * len(connectivity) * max(1.0, abs(mean))
    if not np.isfinite(sd) or sd <= tolerance:
        raise DegenerateConnectivityError(
            "Sample connectivity has zero standard deviation: every sample is "
            "equally connected, so standardized connectivity is undefined. "
            "Check for constant or duplicated expression profiles."
        )
    return (connectivity - mean) / sd


@dataclass(frozen=True)
class SampleOutlierResult:
    """
    Output of SampleOutlierDetector.detect().

    Attributes:
        sample_ids: Samples in matrix column order
        similarity: Sample × sample similarity (A)
        connectivity: k per sample
        z_scores: Standardized connectivity per sample
        flags: True where z_scores < threshold
        linkage: scipy linkage matrix of the sample tree over 1 - A
        threshold: Z cutoff used
        linkage_method: Agglomeration method of the sample tree
    """
    sample_ids: pd.Index
    similarity: pd.DataFrame
    connectivity: pd.Series
    z_scores: pd.Series
    flags: pd.Series
    linkage: np.ndarray
    threshold: float
    linkage_method: str

    @property
    def outlier_ids(self) -> list[str]:
        return self.flags.index[self.flags.values].tolist()

    @property
    def n_outliers(self) -> int:
        return int(self.flags.sum())

    def to_frame(self) -> pd.DataFrame:
        """Per-sample table: connectivity, z_score, is_outlier."""
        return pd.DataFrame(
            {
                'connectivity': self.connectivity,
                'z_score': self.z_scores,
                'is_outlier': self.flags,
            },
            index=pd.Index(self.sample_ids, name='sample'),
        )

    def remove_outliers(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """
        Return matrix without the flagged samples.

        Raises:
            DataValidationError: If matrix has samples this result never saw
        """
        unknown = matrix.sample_ids.difference(self.sample_ids)
        if len(unknown) > 0:
            raise DataValidationError(
                f"Matrix contains samples not covered by the outlier result: {unknown.tolist()[:10]}"
            )
        keep = ~self.flags.reindex(matrix.sample_ids).to_numpy(dtype=bool)
        logger.info(
            f"Removing {int((~keep).sum())} outlier sample(s): "
            f"{matrix.sample_ids[~keep].tolist()}"
        )
        return matrix.select_samples(keep)


class SampleOutlierDetector(Transform):
    """
    Flag samples with low standardized connectivity in the sample network.

    Args:
        threshold: Flag samples with Z < threshold. -inf flags nothing,
            +inf flags every sample.
        linkage_method: scipy agglomeration method for the diagnostic tree

    Examples:
        >>> detector = SampleOutlierDetector(threshold=-2.5)
        >>> result = detector.detect(matrix)
        >>> result.to_frame().sort_values('z_score').head()
    """

    def __init__(self, threshold: float = -2.5, linkage_method: str = "average"):
        threshold = float(threshold)
        if np.isnan(threshold):
            raise ConfigurationError("threshold must be a number, got NaN")
        if linkage_method not in LINKAGE_METHODS:
            raise ConfigurationError(
                f"linkage_method must be one of {LINKAGE_METHODS}, got '{linkage_method}'"
            )

        super().__init__(
            name="SampleOutlierDetector",
            params={"threshold": threshold, "linkage_method": linkage_method}
        )
        self.threshold = threshold
        self.linkage_method = linkage_method

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        errors = super().validate(matrix)
        if matrix.n_samples < MIN_SAMPLES:
            errors.append(
                f"Need at least {MIN_SAMPLES} samples for outlier detection, got {matrix.n_samples}"
            )
        return errors

    def detect(self, matrix: ExpressionMatrix) -> SampleOutlierResult:
        """
        Compute sample connectivity and outlier flags.

        Raises:
            DataValidationError: If validate() reports problems
            DegenerateConnectivityError: If connectivity has zero spread
        """
        errors = self.validate(matrix)
        if errors:
            raise DataValidationError(
                "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )

        similarity = sample_similarity(matrix.data)
        connectivity = sample_connectivity(similarity)
        z_scores = standardized_connectivity(connectivity)
        flags = z_scores < self.threshold

        tree = linkage(
            squareform(1.0 - similarity, checks=False),
            method=self.linkage_method,
        )

        ids = matrix.sample_ids
        result = SampleOutlierResult(
            sample_ids=ids,
            similarity=pd.DataFrame(similarity, index=ids, columns=ids),
            connectivity=pd.Series(connectivity, index=ids, name='connectivity'),
            z_scores=pd.Series(z_scores, index=ids, name='z_score'),
            flags=pd.Series(flags, index=ids, name='is_outlier'),
            linkage=tree,
            threshold=self.threshold,
            linkage_method=self.linkage_method,
        )

        if result.n_outliers:
            logger.warning(
                f"{result.n_outliers}/{matrix.n_samples} sample(s) below Z={self.threshold}: "
                f"{result.outlier_ids}"
            )
        else:
            logger.info(f"No samples below Z={self.threshold} ({matrix.n_samples} samples)")
        return result

    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """
        Annotate samples without changing the data.

        Adds 'connectivity_z' and 'is_outlier' columns to sample_metadata;
        expression values and sample set are unchanged.
        """
        result = self.detect(matrix)
        metadata = matrix.sample_metadata.copy()
        metadata['connectivity_z'] = result.z_scores.values
        metadata['is_outlier'] = result.flags.values
        return matrix.with_metadata(metadata)
