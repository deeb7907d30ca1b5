"""
Pytest configuration and shared fixtures.

Provides synthetic expression data with planted co-expression modules, sample
metadata with missing phenotypes, and a small numpy/scipy NetworkBackend so the
network and pipeline tests run without PyWGCNA.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
from pathlib import Path
from scipy.cluster.hierarchy import fcluster, linkage
from scipy.spatial.distance import squareform

from coexnet.core.expression import ExpressionMatrix
from coexnet.network.backend import (
    GREY,
    SOFT_THRESHOLD_COLUMNS,
    ModuleMergeResult,
    NetworkBackend,
    SoftThresholdResult,
)

MODULE_COLORS = ['turquoise', 'blue', 'brown', 'yellow', 'green', 'red', 'black', 'pink']


def generate_synthetic_expression_matrix(
    n_genes: int = 80,
    n_samples: int = 24,
    n_modules: int = 3,
    module_size: int = 20,
    seed: int = 42,
) -> ExpressionMatrix:
    """
    Generate a log-scale expression matrix with planted gene modules.

    Args:
        n_genes: Number of genes
        n_samples: Number of samples
        n_modules: Number of co-expressed gene groups
        module_size: Genes per group; the remaining genes are independent noise
        seed: Random seed for reproducibility

    Returns:
        ExpressionMatrix with sample IDs like "ALS-iPSC-01" / "CTRL-iPSC-02"
        and no metadata attached

    Design:
        - Each module shares one sample pattern, so its genes correlate strongly
        - Gene baselines differ (log2 expression between 4 and 12)
        - Sample IDs use '-' so metadata written with '_' exercises ID matching
    """
    rng = np.random.RandomState(seed)

    baseline = rng.uniform(4, 12, size=(n_genes, 1))
    data = baseline + rng.normal(scale=0.3, size=(n_genes, n_samples))

    for module_idx in range(n_modules):
        pattern = rng.normal(size=n_samples)
        start = module_idx * module_size
        end = min(start + module_size, n_genes)
        loadings = rng.uniform(0.8, 1.5, size=(end - start, 1))
        data[start:end, :] += loadings * pattern

    gene_ids = pd.Index([f"GENE_{i:04d}" for i in range(n_genes)])
    sample_ids = pd.Index([
        f"{'ALS' if i % 2 == 0 else 'CTRL'}-iPSC-{i + 1:02d}" for i in range(n_samples)
    ])
    return ExpressionMatrix(data=data, gene_ids=gene_ids, sample_ids=sample_ids)


def generate_sample_metadata(sample_ids, seed: int = 42, separator: str = '_') -> pd.DataFrame:
    """
    Phenotype table for the synthetic samples.

    Columns: diagnosis (ALS/CTRL), sex (F/M), cell_type (3 levels),
    age_onset (NaN for controls). IDs are written with `separator` in place
    of '-' and the rows are shuffled.
    """
    rng = np.random.RandomState(seed)
    ids = [str(s).replace('-', separator) for s in sample_ids]
    diagnosis = ['ALS' if str(s).startswith('ALS') else 'CTRL' for s in sample_ids]
    metadata = pd.DataFrame({
        'diagnosis': diagnosis,
        'sex': rng.choice(['F', 'M'], size=len(ids)),
        'cell_type': [['iPSC', 'MN', 'astro'][i % 3] for i in range(len(ids))],
        'age_onset': [
            float(rng.randint(35, 70)) if d == 'ALS' else np.nan for d in diagnosis
        ],
    }, index=pd.Index(ids, name='sample'))
    return metadata.sample(frac=1.0, random_state=seed)


def divergent_matrix(n_genes: int = 50, seed: int = 0) -> ExpressionMatrix:
    """
    5 samples: 3 near-identical profiles and 2 shifted far in opposite directions.

    Squared distances: similar/similar ~ 0, similar/divergent = 100 * n_genes,
    divergent/divergent = 400 * n_genes, so A(similar, divergent) = 0.75 and
    A(divergent, divergent) = 0. Connectivity Z is about +0.73 for the similar
    samples and -1.10 for the divergent ones.
    """
    rng = np.random.RandomState(seed)
    base = rng.normal(loc=8.0, scale=2.0, size=n_genes)
    columns = [base + rng.normal(scale=1e-3, size=n_genes) for _ in range(3)]
    columns.append(base + 10.0)
    columns.append(base - 10.0)
    return ExpressionMatrix(
        data=np.column_stack(columns),
        gene_ids=pd.Index([f"GENE_{i:03d}" for i in range(n_genes)]),
        sample_ids=pd.Index(['similar_1', 'similar_2', 'similar_3', 'divergent_up', 'divergent_down']),
    )


def save_test_matrix_csv(matrix: ExpressionMatrix, path: Path) -> Path:
    """Save ExpressionMatrix as genes × samples CSV (first column = gene ID)."""
    matrix.to_frame().to_csv(path)
    return path


class FakeNetworkBackend(NetworkBackend):
    """
    Small numpy/scipy stand-in for the WGCNA library.

    Adjacency is |cor|^power, TOM uses the standard unsigned formula, the tree
    cut takes flat clusters from the linkage and greys out small ones, and
    eigengenes are first principal components of standardized module genes.
    Modules are never merged.
    """

    name = "fake"

    def __init__(self):
        self.calls = []

    @staticmethod
    def _cor(expr: pd.DataFrame, correlation: str) -> np.ndarray:
        values = expr.rank(axis=0).to_numpy() if correlation == 'spearman' else expr.to_numpy()
        return np.nan_to_num(np.corrcoef(values, rowvar=False))

    @staticmethod
    def _soft(cor: np.ndarray, power: int, network_type: str) -> np.ndarray:
        if network_type == 'signed':
            adj = ((1 + cor) / 2) ** power
        elif network_type == 'signed hybrid':
            adj = np.where(cor > 0, cor, 0.0) ** power
        else:
            adj = np.abs(cor) ** power
        np.fill_diagonal(adj, 1.0)
        return adj

    def soft_threshold(self, expr, powers, network_type='unsigned', rsquared_cut=0.9,
                       mean_cut=100, correlation='pearson'):
        self.calls.append('soft_threshold')
        cor = self._cor(expr, correlation)
        rows = []
        for power in powers:
            k = self._soft(cor, power, network_type).sum(axis=1) - 1
            counts, edges = np.histogram(k, bins=10)
            centers = (edges[:-1] + edges[1:]) / 2
            keep = (counts > 0) & (centers > 0)
            x = np.log10(centers[keep])
            y = np.log10(counts[keep] / counts.sum())
            if len(x) > 1 and np.ptp(x) > 0:
                slope, intercept = np.polyfit(x, y, 1)
                ss_res = np.sum((y - (slope * x + intercept)) ** 2)
                ss_tot = np.sum((y - y.mean()) ** 2)
                r_sq = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0
            else:
                slope, r_sq = 0.0, 0.0
            rows.append([power, r_sq, slope, r_sq, k.mean(), np.median(k), k.max()])
        fit = pd.DataFrame(rows, columns=SOFT_THRESHOLD_COLUMNS)
        fit['power'] = fit['power'].astype(int)

        ok = fit[(fit['sft_r_sq'] >= rsquared_cut) & (fit['mean_k'] <= mean_cut)]
        if ok.empty:
            estimate = int(fit.loc[fit['sft_r_sq'].idxmax(), 'power'])
        else:
            estimate = int(ok['power'].iloc[0])
        return SoftThresholdResult(power_estimate=estimate, fit=fit)

    def adjacency(self, expr, power, network_type='unsigned', correlation='pearson'):
        self.calls.append('adjacency')
        adj = self._soft(self._cor(expr, correlation), power, network_type)
        return pd.DataFrame(adj, index=expr.columns, columns=expr.columns)

    def topological_overlap(self, adjacency, tom_type='unsigned'):
        self.calls.append('topological_overlap')
        a = adjacency.to_numpy(copy=True)
        np.fill_diagonal(a, 0.0)
        k = a.sum(axis=1)
        shared = a @ a
        tom = (shared + a) / (np.minimum.outer(k, k) + 1 - a)
        np.fill_diagonal(tom, 1.0)
        return pd.DataFrame(tom, index=adjacency.index, columns=adjacency.columns)

    def cluster(self, dissimilarity, method='average'):
        self.calls.append('cluster')
        condensed = squareform(dissimilarity.to_numpy(), checks=False)
        return linkage(np.clip(condensed, 0, None), method=method)

    def cut_tree(self, linkage, dissimilarity, min_module_size=30, deep_split=2):
        self.calls.append('cut_tree')
        labels = fcluster(linkage, t=deep_split + 2, criterion='maxclust')
        sizes = pd.Series(labels).value_counts()
        big = [label for label in sizes.index if sizes[label] >= min_module_size]
        color_of = {label: MODULE_COLORS[i] for i, label in enumerate(big)}
        colors = [color_of.get(label, GREY) for label in labels]
        return pd.Series(colors, index=dissimilarity.index, name='module')

    def module_eigengenes(self, expr, colors):
        self.calls.append('module_eigengenes')
        colors = colors.reindex(expr.columns)
        eigengenes = {}
        for color in sorted(colors.unique()):
            genes = colors.index[colors == color]
            block = expr[genes].to_numpy()
            scaled = (block - block.mean(axis=0)) / block.std(axis=0, ddof=1)
            u, s, _ = np.linalg.svd(scaled, full_matrices=False)
            pc = u[:, 0]
            if np.corrcoef(pc, scaled.mean(axis=1))[0, 1] < 0:
                pc = -pc
            eigengenes['ME' + color] = (pc - pc.mean()) / pc.std(ddof=1)
        return pd.DataFrame(eigengenes, index=expr.index)

    def merge_modules(self, expr, colors, cut_height=0.25):
        self.calls.append('merge_modules')
        return ModuleMergeResult(
            colors=colors.reindex(expr.columns).copy(),
            eigengenes=self.module_eigengenes(expr, colors),
        )


@pytest.fixture
def expression_matrix():
    """80 genes x 24 samples, three planted modules of 20 genes."""
    return generate_synthetic_expression_matrix()


@pytest.fixture
def sample_metadata(expression_matrix):
    """Metadata for expression_matrix, IDs written with '_' and rows shuffled."""
    return generate_sample_metadata(expression_matrix.sample_ids)


@pytest.fixture
def annotated_matrix(expression_matrix):
    """expression_matrix with metadata already aligned to its sample IDs."""
    metadata = generate_sample_metadata(expression_matrix.sample_ids, separator='-')
    return expression_matrix.with_metadata(metadata.loc[expression_matrix.sample_ids])


@pytest.fixture
def outlier_scenario():
    """Three similar and two divergent samples."""
    return divergent_matrix()


@pytest.fixture
def fake_backend():
    return FakeNetworkBackend()


@pytest.fixture
def input_files(tmp_path, expression_matrix, sample_metadata):
    """Expression and metadata CSVs on disk."""
    expression = save_test_matrix_csv(expression_matrix, tmp_path / "counts.csv")
    metadata = tmp_path / "samples.csv"
    sample_metadata.reset_index().to_csv(metadata, index=False)
    return {'expression': expression, 'metadata': metadata, 'dir': tmp_path}
