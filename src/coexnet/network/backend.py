"""
Interface to the library that builds the gene co-expression network.

Scale-free fit statistics, adjacency, topological overlap, gene clustering,
dynamic tree cutting, eigengenes and module merging are established WGCNA
routines and are not reimplemented here. NetworkBuilder talks to them through
NetworkBackend so an alternative implementation (another WGCNA port, or a
lightweight test double) can be dropped in without touching the pipeline.

Conventions:
    - Expression is passed samples × genes (WGCNA orientation)
    - Gene-level matrices are square DataFrames labelled by gene ID
    - Module colors are a Series indexed by gene ID; "grey" = unassigned
    - Eigengene columns are named "ME<color>"
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence
import numpy as np
import pandas as pd

__all__ = [
    'NetworkBackend',
    'SoftThresholdResult',
    'ModuleMergeResult',
    'NETWORK_TYPES',
    'TOM_TYPES',
    'GREY',
]

NETWORK_TYPES = ('unsigned', 'signed', 'signed hybrid')
TOM_TYPES = ('unsigned', 'signed')
GREY = 'grey'

SOFT_THRESHOLD_COLUMNS = [
    'power', 'sft_r_sq', 'slope', 'truncated_r_sq', 'mean_k', 'median_k', 'max_k',
]


@dataclass
class SoftThresholdResult:
    """
    Scale-free topology fit across candidate powers.

    Attributes:
        power_estimate: Lowest power whose fit R² exceeds the cutoff (with
            mean connectivity under the cap), else the best-fitting power
        fit: One row per power with columns power, sft_r_sq, slope,
            truncated_r_sq, mean_k, median_k, max_k
    """
    power_estimate: int
    fit: pd.DataFrame

    @property
    def signed_r_sq(self) -> pd.Series:
        """-sign(slope) * R², the quantity plotted against power."""
        return -np.sign(self.fit['slope']) * self.fit['sft_r_sq']


@dataclass
class ModuleMergeResult:
    """Module colors and eigengenes after merging close modules."""
    colors: pd.Series
    eigengenes: pd.DataFrame


class NetworkBackend(ABC):
    """Matrix-in/matrix-out contract for WGCNA network construction."""

    name: str = "backend"

    @abstractmethod
    def soft_threshold(
        self,
        expr: pd.DataFrame,
        powers: Sequence[int],
        network_type: str = 'unsigned',
        rsquared_cut: float = 0.9,
        mean_cut: float = 100,
        correlation: str = 'pearson',
    ) -> SoftThresholdResult:
        """Fit scale-free topology for each candidate power."""

    @abstractmethod
    def adjacency(
        self,
        expr: pd.DataFrame,
        power: int,
        network_type: str = 'unsigned',
        correlation: str = 'pearson',
    ) -> pd.DataFrame:
        """Gene × gene soft-thresholded adjacency."""

    @abstractmethod
    def topological_overlap(
        self,
        adjacency: pd.DataFrame,
        tom_type: str = 'unsigned',
    ) -> pd.DataFrame:
        """Gene × gene topological overlap (unit diagonal)."""

    @abstractmethod
    def cluster(self, dissimilarity: pd.DataFrame, method: str = 'average') -> np.ndarray:
        """Hierarchical clustering of genes; returns a scipy linkage matrix."""

    @abstractmethod
    def cut_tree(
        self,
        linkage: np.ndarray,
        dissimilarity: pd.DataFrame,
        min_module_size: int = 30,
        deep_split: int = 2,
    ) -> pd.Series:
        """Dynamic hybrid tree cut; returns gene -> module color."""

    @abstractmethod
    def module_eigengenes(self, expr: pd.DataFrame, colors: pd.Series) -> pd.DataFrame:
        """First principal component per module (samples × ME<color>)."""

    @abstractmethod
    def merge_modules(
        self,
        expr: pd.DataFrame,
        colors: pd.Series,
        cut_height: float = 0.25,
    ) -> ModuleMergeResult:
        """Merge modules whose eigengenes correlate above 1 - cut_height."""

    def describe(self) -> dict[str, Optional[str]]:
        """Name and version, written to the run report."""
        return {'backend': self.name, 'version': None}
