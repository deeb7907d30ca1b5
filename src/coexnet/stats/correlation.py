"""
Column-wise correlations with pairwise-complete observations.

Trait tables almost always have holes (age of onset is undefined for
controls, some donors lack a sex annotation). Each (x column, y column)
correlation therefore uses exactly the samples where both values are present,
and the number of pairs used is returned next to the estimate so the p-value
can use the right degrees of freedom. Missing values are never filled.

Statistical Notes:
    - Pearson: computed from masked sums, equivalent to pearsonr() on the
      complete pairs of each column pair
    - Spearman: Pearson on average ranks, with ranks taken over the complete
      pairs of each column pair (cor(..., use="pairwise.complete.obs"))
    - Student p-value: t = r * sqrt((n - 2) / (1 - r²)), df = n - 2,
      two-sided (WGCNA corPvalueStudent)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal
import numpy as np
import pandas as pd
from scipy import stats

from coexnet.core.exceptions import ConfigurationError, DataValidationError

logger = logging.getLogger(__name__)

__all__ = [
    'TraitAssociation',
    'pairwise_correlation',
    'student_pvalue',
    'correlate_with_pvalues',
    'CORRELATION_METHODS',
]

CORRELATION_METHODS = ('pearson', 'spearman')


@dataclass
class TraitAssociation:
    """
    Correlation, p-value and pair-count matrices (x columns × y columns).

    Attributes:
        cor: Correlation coefficients (NaN where undefined)
        pvalue: Two-sided Student p-values (NaN where n < 3)
        n_obs: Number of complete pairs behind each estimate
        method: 'pearson' or 'spearman'
    """
    cor: pd.DataFrame
    pvalue: pd.DataFrame
    n_obs: pd.DataFrame
    method: str = 'pearson'

    def to_long(self, row_name: str = 'x', col_name: str = 'y') -> pd.DataFrame:
        """One row per (x, y) pair: row_name, col_name, cor, pvalue, n."""
        n_rows, n_cols = self.cor.shape
        return pd.DataFrame({
            row_name: np.repeat(self.cor.index.to_numpy(), n_cols),
            col_name: np.tile(self.cor.columns.to_numpy(), n_rows),
            'cor': self.cor.to_numpy().ravel(),
            'pvalue': self.pvalue.to_numpy().ravel(),
            'n': self.n_obs.to_numpy().ravel(),
        })


def _column_means(values: np.ndarray, present: np.ndarray) -> np.ndarray:
    counts = np.maximum(present.sum(axis=0, keepdims=True), 1.0)
    return np.where(present > 0, values, 0.0).sum(axis=0, keepdims=True) / counts


def _masked_pearson(X: np.ndarray, Y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Pearson r and pair counts for every column pair, skipping NaN pairs."""
    mx = (~np.isnan(X)).astype(float)
    my = (~np.isnan(Y)).astype(float)

    # centering each column first keeps the masked sums well conditioned
    X0 = np.where(mx > 0, X - _column_means(X, mx), 0.0)
    Y0 = np.where(my > 0, Y - _column_means(Y, my), 0.0)

    n = mx.T @ my
    sx = X0.T @ my
    sy = mx.T @ Y0
    sxx = (X0 ** 2).T @ my
    syy = mx.T @ (Y0 ** 2)
    sxy = X0.T @ Y0

    with np.errstate(divide='ignore', invalid='ignore'):
        cov = sxy - sx * sy / n
        var_x = sxx - sx ** 2 / n
        var_y = syy - sy ** 2 / n
        cor = cov / np.sqrt(var_x * var_y)

    # a column constant over the shared pairs leaves only rounding in var
    undefined = (n < 2) | (var_x <= 1e-12 * sxx) | (var_y <= 1e-12 * syy)
    cor = np.clip(cor, -1.0, 1.0)
    cor[undefined] = np.nan
    return cor, n.astype(int)


def _masked_spearman(x: pd.DataFrame, y: pd.DataFrame) -> tuple[np.ndarray, np.ndarray]:
    """Rank within the complete pairs of each column pair, then Pearson."""
    x_complete = not x.isna().to_numpy().any()
    if x_complete and not y.isna().to_numpy().any():
        return _masked_pearson(x.rank().to_numpy(), y.rank().to_numpy())

    cor = np.full((x.shape[1], y.shape[1]), np.nan)
    n = np.zeros((x.shape[1], y.shape[1]), dtype=int)
    for j, trait in enumerate(y.columns):
        present = y[trait].notna().to_numpy()
        y_ranked = y.loc[present, [trait]].rank().to_numpy()
        if x_complete:
            c, k = _masked_pearson(x.loc[present].rank().to_numpy(), y_ranked)
            cor[:, j], n[:, j] = c[:, 0], k[:, 0]
            continue
        for i, column in enumerate(x.columns):
            ok = present & x[column].notna().to_numpy()
            c, k = _masked_pearson(
                x.loc[ok, [column]].rank().to_numpy(),
                y.loc[ok, [trait]].rank().to_numpy(),
            )
            cor[i, j], n[i, j] = c[0, 0], k[0, 0]
    return cor, n


def pairwise_correlation(
    x: pd.DataFrame,
    y: pd.DataFrame,
    method: Literal['pearson', 'spearman'] = 'pearson',
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Correlate every column of x with every column of y.

    Args:
        x: Samples × variables (e.g. module eigengenes)
        y: Samples × variables (e.g. encoded traits); same index as x
        method: 'pearson' or 'spearman'

    Returns:
        (cor, n_obs): both x.columns × y.columns. cor is NaN where fewer than
        two complete pairs exist or either side is constant over those pairs.

    Raises:
        ConfigurationError: Unknown method
        DataValidationError: If x and y are not indexed by the same samples
    """
    if method not in CORRELATION_METHODS:
        raise ConfigurationError(f"method must be one of {CORRELATION_METHODS}, got '{method}'")
    if not x.index.equals(y.index):
        raise DataValidationError(
            "x and y must share the same sample index in the same order"
        )

    x = x.astype(float)
    y = y.astype(float)
    if method == 'spearman':
        cor, n = _masked_spearman(x, y)
    else:
        cor, n = _masked_pearson(x.to_numpy(), y.to_numpy())

    return (
        pd.DataFrame(cor, index=x.columns, columns=y.columns),
        pd.DataFrame(n, index=x.columns, columns=y.columns),
    )


def student_pvalue(cor: pd.DataFrame | np.ndarray, n_obs: pd.DataFrame | np.ndarray | int):
    """
    Two-sided Student p-value for correlation coefficients.

    Args:
        cor: Correlations
        n_obs: Number of observations behind each correlation (array of the
            same shape, or a scalar)

    Returns:
        p-values with the type and labels of cor. NaN where cor is NaN or
        n_obs < 3; 0 where |cor| == 1.
    """
    r = np.asarray(cor, dtype=float)
    n = np.broadcast_to(np.asarray(n_obs, dtype=float), r.shape)
    df = n - 2

    with np.errstate(divide='ignore', invalid='ignore'):
        t = r * np.sqrt(df / (1.0 - r ** 2))
        p = 2.0 * stats.t.sf(np.abs(t), df)

    p = np.where(np.abs(r) >= 1.0, 0.0, p)
    p = np.where((n < 3) | np.isnan(r), np.nan, p)

    if isinstance(cor, pd.DataFrame):
        return pd.DataFrame(p, index=cor.index, columns=cor.columns)
    return p


def correlate_with_pvalues(
    x: pd.DataFrame,
    y: pd.DataFrame,
    method: Literal['pearson', 'spearman'] = 'pearson',
) -> TraitAssociation:
    """
    Correlations, Student p-values and pair counts in one call.

    Examples:
        >>> assoc = correlate_with_pvalues(eigengenes, traits)
        >>> assoc.cor.loc['MEturquoise', 'diagnosis.CTRL']
        0.71
    """
    cor, n_obs = pairwise_correlation(x, y, method=method)
    pvalue = student_pvalue(cor, n_obs)

    n_undefined = int(cor.isna().to_numpy().sum())
    if n_undefined:
        logger.debug(f"{n_undefined} correlation(s) undefined (constant column or < 2 pairs)")

    return TraitAssociation(cor=cor, pvalue=pvalue, n_obs=n_obs, method=method)
