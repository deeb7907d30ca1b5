"""
Trait encoding and module/gene-trait association tables.

Phenotype sheets mix continuous variables (age of onset, disease duration)
with categorical ones (diagnosis, sex, cell type). Correlation needs numbers,
so categorical columns are expanded to 0/1 indicators; missing values stay
missing and are dropped pairwise by the correlation layer.

Tables Produced:
    - module_trait_association: eigengenes × traits
    - gene_module_membership (kME): genes × module eigengenes
    - gene_trait_significance: one genes table per trait column
"""

from __future__ import annotations

import logging
from typing import Literal, Optional, Sequence
import numpy as np
import pandas as pd

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.exceptions import DataValidationError
from coexnet.stats.correlation import TraitAssociation, correlate_with_pvalues

logger = logging.getLogger(__name__)

__all__ = [
    'encode_traits',
    'module_trait_association',
    'gene_module_membership',
    'gene_trait_significance',
]


def _as_numeric(values: pd.Series) -> Optional[pd.Series]:
    if pd.api.types.is_bool_dtype(values) or pd.api.types.is_numeric_dtype(values):
        return values.astype(float)
    converted = pd.to_numeric(values.astype(object), errors='coerce')
    if converted[values.notna()].notna().all():
        return converted.astype(float)
    return None


def encode_traits(
    metadata: pd.DataFrame,
    columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Encode phenotype columns as a numeric trait matrix.

    Encoding:
        numeric             -> float, unchanged
        two levels          -> one indicator "{column}.{second level}"
        three or more       -> one indicator "{column}.{level}" per level
        one level           -> dropped with a warning (no variation)
    Levels are sorted as strings; missing values stay NaN in every indicator.

    Args:
        metadata: Samples × phenotype columns
        columns: Columns to encode. Defaults to all columns.

    Returns:
        Samples × encoded traits (float), same index as metadata

    Raises:
        DataValidationError: If a requested column is not in metadata

    Examples:
        >>> encode_traits(meta, ["diagnosis", "age_onset"]).columns.tolist()
        ['diagnosis.CTRL', 'age_onset']
    """
    if columns is None:
        columns = list(metadata.columns)
    missing = [c for c in columns if c not in metadata.columns]
    if missing:
        raise DataValidationError(
            f"Trait column(s) not in metadata: {missing}. "
            f"Available: {list(metadata.columns)}"
        )

    encoded = {}
    for column in columns:
        values = metadata[column]
        numeric = _as_numeric(values)
        if numeric is not None:
            encoded[str(column)] = numeric
            continue

        present = values.notna()
        labels = values.astype(str).where(present)
        levels = sorted(labels.dropna().unique())
        if len(levels) < 2:
            logger.warning(f"Trait '{column}' has {len(levels)} level(s); skipping")
            continue

        targets = levels[1:] if len(levels) == 2 else levels
        for level in targets:
            indicator = (labels == level).astype(float)
            encoded[f"{column}.{level}"] = indicator.where(present)

    traits = pd.DataFrame(encoded, index=metadata.index)
    n_missing = int(traits.isna().to_numpy().sum())
    logger.info(
        f"Encoded {len(columns)} phenotype column(s) into {traits.shape[1]} trait(s)"
        + (f"; {n_missing} missing value(s) kept as NaN" if n_missing else "")
    )
    return traits


def _check_aligned(left: pd.Index, right: pd.Index, what: str) -> None:
    if not left.equals(right):
        raise DataValidationError(
            f"{what}: sample order differs. Reconcile sample IDs before computing associations."
        )


def module_trait_association(
    eigengenes: pd.DataFrame,
    traits: pd.DataFrame,
    method: Literal['pearson', 'spearman'] = 'pearson',
) -> TraitAssociation:
    """Correlate module eigengenes (samples × ME) with traits (samples × trait)."""
    _check_aligned(eigengenes.index, traits.index, "module_trait_association")
    return correlate_with_pvalues(eigengenes, traits, method=method)


def gene_module_membership(
    matrix: ExpressionMatrix,
    eigengenes: pd.DataFrame,
    method: Literal['pearson', 'spearman'] = 'pearson',
) -> TraitAssociation:
    """
    Module membership (kME): correlation of each gene with each eigengene.

    Returns:
        TraitAssociation with genes as rows and one "MM<color>" column per
        eigengene
    """
    _check_aligned(matrix.sample_ids, eigengenes.index, "gene_module_membership")
    membership = correlate_with_pvalues(matrix.to_samples_frame(), eigengenes, method=method)
    renamed = {
        c: 'MM' + str(c)[2:] if str(c).startswith('ME') else f"MM{c}"
        for c in eigengenes.columns
    }
    for frame in (membership.cor, membership.pvalue, membership.n_obs):
        frame.rename(columns=renamed, inplace=True)
    return membership


def gene_trait_significance(
    matrix: ExpressionMatrix,
    traits: pd.DataFrame,
    colors: pd.Series,
    membership: Optional[TraitAssociation] = None,
    method: Literal['pearson', 'spearman'] = 'pearson',
) -> dict[str, pd.DataFrame]:
    """
    Gene significance for every trait column.

    Each table has one row per gene with columns module, GS, p.GS, n and,
    when membership is given, MM/p.MM for the gene's own module (NaN for
    unassigned grey genes). Rows are ordered by module, then by decreasing
    |GS|.

    Args:
        matrix: Expression matrix whose genes carry module colors
        traits: Encoded traits (samples × traits)
        colors: Gene -> module color
        membership: Output of gene_module_membership()
        method: 'pearson' or 'spearman'

    Returns:
        {trait name: table}, one entry per trait column
    """
    _check_aligned(matrix.sample_ids, traits.index, "gene_trait_significance")
    colors = colors.reindex(matrix.gene_ids)
    if colors.isna().any():
        raise DataValidationError(
            f"{int(colors.isna().sum())} gene(s) have no module color"
        )

    significance = correlate_with_pvalues(matrix.to_samples_frame(), traits, method=method)

    own_mm = own_p = None
    if membership is not None:
        if not membership.cor.index.equals(matrix.gene_ids):
            raise DataValidationError("membership was computed on a different gene set")
        mm_columns = ['MM' + str(c) for c in colors]
        col_index = membership.cor.columns.get_indexer(mm_columns)
        rows = np.arange(len(colors))
        valid = col_index >= 0
        own_mm = np.full(len(colors), np.nan)
        own_p = np.full(len(colors), np.nan)
        own_mm[valid] = membership.cor.to_numpy()[rows[valid], col_index[valid]]
        own_p[valid] = membership.pvalue.to_numpy()[rows[valid], col_index[valid]]

    tables: dict[str, pd.DataFrame] = {}
    for trait in traits.columns:
        table = pd.DataFrame(
            {
                'module': colors.values,
                'GS': significance.cor[trait].values,
                'p.GS': significance.pvalue[trait].values,
                'n': significance.n_obs[trait].values,
            },
            index=pd.Index(matrix.gene_ids, name='gene'),
        )
        if own_mm is not None:
            table['MM'] = own_mm
            table['p.MM'] = own_p
        tables[str(trait)] = (
            table.assign(_abs_gs=table['GS'].abs())
            .sort_values(['module', '_abs_gs'], ascending=[True, False], kind='mergesort')
            .drop(columns='_abs_gs')
        )

    logger.info(f"Gene-trait significance computed for {len(tables)} trait(s)")
    return tables
