"""
Core data structure for gene expression matrices.

ExpressionMatrix couples a numerical genes × samples matrix with its gene and
sample identifiers and the per-sample phenotype annotations used for trait
association.

Biological Context:
    - Rows = genes (Ensembl IDs or symbols)
    - Columns = samples (one RNA-seq library each)
    - Values = normalized, typically log-scale expression

    WGCNA routines expect the transposed orientation (samples × genes);
    to_samples_frame() provides it without changing the stored layout.

Engineering Design:
    - Immutable: selection methods return new instances
    - Validated: constructor enforces shape, label uniqueness and finiteness
    - Metadata travels with the samples it describes

Examples:
    >>> import numpy as np
    >>> import pandas as pd
    >>> from coexnet.core.expression import ExpressionMatrix
    >>>
    >>> matrix = ExpressionMatrix(
    ...     data=np.array([[5.1, 6.3], [2.0, 2.4]]),
    ...     gene_ids=pd.Index(["ENSG001", "ENSG002"]),
    ...     sample_ids=pd.Index(["S1", "S2"]),
    ... )
    >>> matrix.shape
    (2, 2)
"""

from __future__ import annotations

from typing import Optional
import numpy as np
import pandas as pd

from coexnet.core.exceptions import DataValidationError

__all__ = ['ExpressionMatrix']


class ExpressionMatrix:
    """
    Immutable container for an expression matrix plus sample annotations.

    Attributes:
        data: Expression values (genes × samples), float
        gene_ids: Row identifiers
        sample_ids: Column identifiers
        sample_metadata: Phenotype annotations indexed by sample_ids

    Shape Invariants:
        - data.shape == (len(gene_ids), len(sample_ids))
        - gene_ids and sample_ids are unique
        - sample_metadata.index equals sample_ids
        - every value in data is finite
    """

    def __init__(
        self,
        data: np.ndarray,
        gene_ids: pd.Index,
        sample_ids: pd.Index,
        sample_metadata: Optional[pd.DataFrame] = None,
    ):
        """
        Initialize ExpressionMatrix with validation.

        Args:
            data: Expression matrix (genes × samples)
            gene_ids: Row identifiers
            sample_ids: Column identifiers
            sample_metadata: DataFrame indexed by sample_ids. Defaults to an
                empty frame with the right index.

        Raises:
            TypeError: If arguments have the wrong types
            DataValidationError: If shapes, labels or values are invalid
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(gene_ids, pd.Index):
            raise TypeError(f"gene_ids must be pd.Index, got {type(gene_ids)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")
        if sample_metadata is None:
            sample_metadata = pd.DataFrame(index=sample_ids)
        if not isinstance(sample_metadata, pd.DataFrame):
            raise TypeError(f"sample_metadata must be pd.DataFrame, got {type(sample_metadata)}")

        if data.ndim != 2:
            raise DataValidationError(f"data must be 2D, got shape {data.shape}")

        n_genes, n_samples = data.shape
        if len(gene_ids) != n_genes:
            raise DataValidationError(
                f"gene_ids length ({len(gene_ids)}) must match data rows ({n_genes})"
            )
        if len(sample_ids) != n_samples:
            raise DataValidationError(
                f"sample_ids length ({len(sample_ids)}) must match data columns ({n_samples})"
            )

        if gene_ids.has_duplicates:
            dupes = gene_ids[gene_ids.duplicated()].unique().tolist()
            raise DataValidationError(f"Duplicate gene identifiers: {dupes[:10]}")
        if sample_ids.has_duplicates:
            dupes = sample_ids[sample_ids.duplicated()].unique().tolist()
            raise DataValidationError(f"Duplicate sample identifiers: {dupes[:10]}")

        if not np.issubdtype(data.dtype, np.number):
            raise DataValidationError(f"data must be numeric, got dtype {data.dtype}")
        data = data.astype(float, copy=False)
        finite = np.isfinite(data)
        if not finite.all():
            n_bad = int((~finite).sum())
            raise DataValidationError(
                f"Expression matrix contains {n_bad} non-finite values (NaN/Inf). "
                "Remove or impute them before analysis."
            )

        if not sample_metadata.index.equals(sample_ids):
            raise DataValidationError(
                "sample_metadata.index must match sample_ids exactly. "
                f"Got {len(sample_metadata.index)} metadata rows for {len(sample_ids)} samples."
            )

        self._data = data
        self._gene_ids = gene_ids
        self._sample_ids = sample_ids
        self._sample_metadata = sample_metadata

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        sample_metadata: Optional[pd.DataFrame] = None,
    ) -> ExpressionMatrix:
        """Build from a genes × samples DataFrame."""
        return cls(
            data=frame.to_numpy(dtype=float),
            gene_ids=pd.Index(frame.index.astype(str)),
            sample_ids=pd.Index(frame.columns.astype(str)),
            sample_metadata=sample_metadata,
        )

    @property
    def data(self) -> np.ndarray:
        """Expression matrix (genes × samples)."""
        return self._data

    @property
    def gene_ids(self) -> pd.Index:
        return self._gene_ids

    @property
    def sample_ids(self) -> pd.Index:
        return self._sample_ids

    @property
    def sample_metadata(self) -> pd.DataFrame:
        return self._sample_metadata

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_genes, n_samples)."""
        return self._data.shape

    @property
    def n_genes(self) -> int:
        return self._data.shape[0]

    @property
    def n_samples(self) -> int:
        return self._data.shape[1]

    def select_samples(self, mask: np.ndarray | pd.Series) -> ExpressionMatrix:
        """
        Subset by samples (columns), keeping metadata aligned.

        Args:
            mask: Boolean array/Series over samples. Series values are used
                positionally.

        Raises:
            ValueError: If mask length doesn't match n_samples
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)

        if len(mask) != self.n_samples:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_samples ({self.n_samples})"
            )

        kept = self._sample_ids[mask]
        return ExpressionMatrix(
            data=self._data[:, mask],
            gene_ids=self._gene_ids,
            sample_ids=kept,
            sample_metadata=self._sample_metadata.loc[kept],
        )

    def select_genes(self, mask: np.ndarray | pd.Series) -> ExpressionMatrix:
        """
        Subset by genes (rows).

        Args:
            mask: Boolean array/Series over genes, or an integer index array
                (order is preserved, which lets callers keep a ranking).

        Raises:
            ValueError: If a boolean mask length doesn't match n_genes
        """
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask)

        if mask.dtype == bool and len(mask) != self.n_genes:
            raise ValueError(
                f"mask length ({len(mask)}) must match n_genes ({self.n_genes})"
            )

        return ExpressionMatrix(
            data=self._data[mask, :],
            gene_ids=self._gene_ids[mask],
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
        )

    def with_metadata(self, sample_metadata: pd.DataFrame) -> ExpressionMatrix:
        """Return a new matrix carrying different sample annotations."""
        return ExpressionMatrix(
            data=self._data,
            gene_ids=self._gene_ids,
            sample_ids=self._sample_ids,
            sample_metadata=sample_metadata,
        )

    def to_frame(self) -> pd.DataFrame:
        """Genes × samples DataFrame."""
        return pd.DataFrame(self._data, index=self._gene_ids, columns=self._sample_ids)

    def to_samples_frame(self) -> pd.DataFrame:
        """Samples × genes DataFrame (WGCNA orientation)."""
        return pd.DataFrame(self._data.T, index=self._sample_ids, columns=self._gene_ids)

    def copy(self) -> ExpressionMatrix:
        """Deep copy."""
        return ExpressionMatrix(
            data=self._data.copy(),
            gene_ids=self._gene_ids.copy(),
            sample_ids=self._sample_ids.copy(),
            sample_metadata=self._sample_metadata.copy(),
        )

    def __repr__(self) -> str:
        if self.n_genes and self.n_samples:
            return (
                f"ExpressionMatrix({self.n_genes} genes × {self.n_samples} samples)\n"
                f"  Genes: {self.gene_ids[0]}...{self.gene_ids[-1]}\n"
                f"  Samples: {self.sample_ids[0]}...{self.sample_ids[-1]}\n"
                f"  Metadata columns: {list(self.sample_metadata.columns)}"
            )
        return f"ExpressionMatrix({self.n_genes} genes × {self.n_samples} samples)"
