"""
NetworkBackend backed by the PyWGCNA package.

PyWGCNA exposes the WGCNA routines as static methods of PyWGCNA.WGCNA and is
imported lazily so that loading, QC and the outlier screen work without it.

Library behaviour this adapter accounts for:
    - Failures are reported with sys.exit(); the SystemExit is re-raised as
      NetworkBackendError. Other exceptions propagate unchanged.
    - Progress is printed to stdout; it is captured and sent to the debug log.
    - TOMsimilarity writes to the diagonal of its input, so it gets a copy.
    - Spearman networks are built from per-gene ranks.
"""

from __future__ import annotations

import contextlib
import io
import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Callable, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.spatial.distance import squareform
from threadpoolctl import threadpool_limits

from coexnet.core.exceptions import ConfigurationError, NetworkBackendError
from coexnet.network.backend import (
    NETWORK_TYPES,
    TOM_TYPES,
    SOFT_THRESHOLD_COLUMNS,
    ModuleMergeResult,
    NetworkBackend,
    SoftThresholdResult,
)

logger = logging.getLogger(__name__)

__all__ = ['PyWGCNABackend']

_FIT_COLUMNS = {
    'Power': 'power',
    'SFT.R.sq': 'sft_r_sq',
    'slope': 'slope',
    'truncated R.sq': 'truncated_r_sq',
    'mean(k)': 'mean_k',
    'median(k)': 'median_k',
    'max(k)': 'max_k',
}


def _load_wgcna():
    try:
        from PyWGCNA import WGCNA
    except ImportError as e:
        raise NetworkBackendError(
            "PyWGCNA is required for network construction. Install it with: pip install PyWGCNA"
        ) from e
    return WGCNA


class PyWGCNABackend(NetworkBackend):
    """
    WGCNA network construction via PyWGCNA.

    Args:
        n_threads: Cap on BLAS/OpenMP threads during library calls
            (None = library default)

    Examples:
        >>> backend = PyWGCNABackend(n_threads=4)
        >>> sft = backend.soft_threshold(expr, powers=range(1, 21))
        >>> sft.power_estimate
        6
    """

    name = "PyWGCNA"

    def __init__(self, n_threads: Optional[int] = None):
        if n_threads is not None and n_threads < 1:
            raise ConfigurationError(f"n_threads must be >= 1, got {n_threads}")
        self.n_threads = n_threads
        self._wgcna = None

    @property
    def wgcna(self):
        if self._wgcna is None:
            self._wgcna = _load_wgcna()
        return self._wgcna

    def _call(self, step: str, func: Callable[..., Any], *args, **kwargs) -> Any:
        limits = (
            threadpool_limits(limits=self.n_threads)
            if self.n_threads is not None
            else contextlib.nullcontext()
        )
        captured = io.StringIO()
        try:
            with limits, contextlib.redirect_stdout(captured):
                return func(*args, **kwargs)
        except SystemExit as e:
            raise NetworkBackendError(f"PyWGCNA {step} failed: {e.code}") from e
        finally:
            output = captured.getvalue().strip()
            if output:
                logger.debug(f"PyWGCNA {step} output:\n{output}")

    @staticmethod
    def _prepare(expr: pd.DataFrame, correlation: str) -> pd.DataFrame:
        if correlation == 'pearson':
            return expr
        if correlation == 'spearman':
            return expr.rank(axis=0)
        raise ConfigurationError(f"correlation must be 'pearson' or 'spearman', got '{correlation}'")

    @staticmethod
    def _check_network_type(network_type: str) -> None:
        if network_type not in NETWORK_TYPES:
            raise ConfigurationError(
                f"network_type must be one of {NETWORK_TYPES}, got '{network_type}'"
            )

    def soft_threshold(
        self,
        expr: pd.DataFrame,
        powers: Sequence[int],
        network_type: str = 'unsigned',
        rsquared_cut: float = 0.9,
        mean_cut: float = 100,
        correlation: str = 'pearson',
    ) -> SoftThresholdResult:
        self._check_network_type(network_type)
        power_estimate, fit = self._call(
            "pickSoftThreshold",
            self.wgcna.pickSoftThreshold,
            self._prepare(expr, correlation),
            RsquaredCut=rsquared_cut,
            MeanCut=mean_cut,
            powerVector=np.asarray(list(powers), dtype=int),
            networkType=network_type,
        )
        fit = fit.rename(columns=_FIT_COLUMNS)[SOFT_THRESHOLD_COLUMNS].astype(float)
        fit['power'] = fit['power'].astype(int)
        return SoftThresholdResult(power_estimate=int(power_estimate), fit=fit.reset_index(drop=True))

    def adjacency(
        self,
        expr: pd.DataFrame,
        power: int,
        network_type: str = 'unsigned',
        correlation: str = 'pearson',
    ) -> pd.DataFrame:
        self._check_network_type(network_type)
        adj = self._call(
            "adjacency",
            self.wgcna.adjacency,
            self._prepare(expr, correlation),
            power=power,
            adjacencyType=network_type,
        )
        return pd.DataFrame(np.asarray(adj, dtype=float), index=expr.columns, columns=expr.columns)

    def topological_overlap(self, adjacency: pd.DataFrame, tom_type: str = 'unsigned') -> pd.DataFrame:
        if tom_type not in TOM_TYPES:
            raise ConfigurationError(f"tom_type must be one of {TOM_TYPES}, got '{tom_type}'")
        tom = self._call(
            "TOMsimilarity",
            self.wgcna.TOMsimilarity,
            adjacency.to_numpy(dtype=float, copy=True),
            TOMType=tom_type,
        )
        return pd.DataFrame(
            np.asarray(tom, dtype=float), index=adjacency.index, columns=adjacency.columns
        )

    def cluster(self, dissimilarity: pd.DataFrame, method: str = 'average') -> np.ndarray:
        condensed = squareform(dissimilarity.to_numpy(dtype=float), checks=False)
        return self._call("hclust", self.wgcna.hclust, condensed, method=method)

    def cut_tree(
        self,
        linkage: np.ndarray,
        dissimilarity: pd.DataFrame,
        min_module_size: int = 30,
        deep_split: int = 2,
    ) -> pd.Series:
        labels = self._call(
            "cutreeHybrid",
            self.wgcna.cutreeHybrid,
            dendro=linkage,
            distM=dissimilarity,
            minClusterSize=min_module_size,
            deepSplit=deep_split,
            pamRespectsDendro=False,
        )
        colors = self._call("labels2colors", self.wgcna.labels2colors, labels=labels)
        return pd.Series(np.asarray(colors, dtype=str), index=dissimilarity.index, name='module')

    def module_eigengenes(self, expr: pd.DataFrame, colors: pd.Series) -> pd.DataFrame:
        result = self._call(
            "moduleEigengenes",
            self.wgcna.moduleEigengenes,
            expr,
            colors.reindex(expr.columns).to_numpy(),
        )
        eigengenes = pd.DataFrame(result['eigengenes'])
        eigengenes.index = expr.index
        return eigengenes

    def merge_modules(
        self,
        expr: pd.DataFrame,
        colors: pd.Series,
        cut_height: float = 0.25,
    ) -> ModuleMergeResult:
        merged = self._call(
            "mergeCloseModules",
            self.wgcna.mergeCloseModules,
            expr,
            colors.reindex(expr.columns).to_numpy(),
            cutHeight=cut_height,
        )
        eigengenes = pd.DataFrame(merged['newMEs'])
        eigengenes.index = expr.index
        return ModuleMergeResult(
            colors=pd.Series(np.asarray(merged['colors'], dtype=str), index=expr.columns, name='module'),
            eigengenes=eigengenes,
        )

    def describe(self) -> dict[str, Optional[str]]:
        try:
            installed = version("PyWGCNA")
        except PackageNotFoundError:
            installed = None
        return {'backend': self.name, 'version': installed}
