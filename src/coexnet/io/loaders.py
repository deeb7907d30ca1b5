"""
Loaders for expression matrices and sample metadata tables.

Biological Context:
    Normalized RNA-seq exports usually arrive as delimited text:
    - Expression: rows = genes, columns = samples, first column = gene ID
    - Metadata: rows = samples, one column holding the sample ID, remaining
      columns = phenotypes (cell type, diagnosis, sex, age of onset, ...)

    Example expression header:
    ```
    "","CTRL_iPSC_01","ALS_iPSC_02"
    "ENSG00000000003",7.21,6.98
    ```

Engineering Design:
    - Delimiter chosen from the extension, sniffed otherwise
    - Duplicate gene rows are tolerated with a UserWarning (first kept)
    - Non-numeric or non-finite expression values are rejected up front
    - Metadata keeps its raw dtypes; trait encoding happens later

Examples:
    >>> from pathlib import Path
    >>> from coexnet.io.loaders import load_expression_matrix, load_sample_metadata
    >>>
    >>> matrix = load_expression_matrix(Path("normalized_counts.csv"))
    >>> metadata = load_sample_metadata(Path("samples.csv"), sample_column="sample")
"""

from __future__ import annotations

import csv
import logging
import warnings
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.exceptions import DataValidationError

__all__ = ['load_expression_matrix', 'load_sample_metadata', 'sniff_delimiter']

logger = logging.getLogger(__name__)

_EXTENSION_DELIMITERS = {
    '.csv': ',',
    '.tsv': '\t',
    '.tab': '\t',
}


def sniff_delimiter(path: Path, sample_size: int = 8192) -> str:
    """
    Pick the delimiter for a text table.

    Known extensions win; otherwise csv.Sniffer inspects the head of the file,
    falling back to counting candidates on the header line.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in _EXTENSION_DELIMITERS:
        return _EXTENSION_DELIMITERS[suffix]

    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        sample = f.read(sample_size)

    try:
        return csv.Sniffer().sniff(sample, delimiters='\t,;').delimiter
    except csv.Error:
        pass

    first_line = sample.split('\n')[0]
    counts = {d: first_line.count(d) for d in ('\t', ',', ';')}
    best = max(counts, key=counts.get)
    return best if counts[best] > 0 else ','


def _read_table(path: Path, index_col: Optional[int]) -> pd.DataFrame:
    if not isinstance(path, Path):
        path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise DataValidationError(f"Path is not a file: {path}")

    sep = sniff_delimiter(path)
    try:
        df = pd.read_csv(path, sep=sep, index_col=index_col)
    except pd.errors.EmptyDataError as e:
        raise DataValidationError(f"File is empty: {path}") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise DataValidationError(f"Failed to parse {path}: {e}") from e

    if df.empty:
        raise DataValidationError(f"Table contains no data: {path}")
    return df


def _read_header(path: Path) -> pd.Index:
    # read_csv renames repeated headers ("S1", "S1.1"), so check the raw row
    with open(path, 'r', newline='', encoding='utf-8', errors='ignore') as f:
        row = next(csv.reader(f, delimiter=sniff_delimiter(path)), [])
    return pd.Index([cell.strip() for cell in row])


def load_expression_matrix(path: Path) -> ExpressionMatrix:
    """
    Load a genes × samples expression table.

    Args:
        path: CSV/TSV file; first column = gene identifiers, header = sample IDs

    Returns:
        ExpressionMatrix with an empty sample_metadata frame

    Raises:
        FileNotFoundError: If path does not exist
        DataValidationError: If the table is empty, has duplicate sample
            columns, non-numeric cells, or NaN/Inf values
    """
    path = Path(path)
    df = _read_table(path, index_col=0)

    if df.shape[1] == 0:
        raise DataValidationError(f"Expression table has no sample columns: {path}")

    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)

    if df.index.duplicated().any():
        n_duplicates = int(df.index.duplicated().sum())
        warnings.warn(
            f"Found {n_duplicates} duplicate gene IDs. "
            "Using first occurrence of each.",
            UserWarning
        )
        df = df[~df.index.duplicated(keep='first')]

    header = _read_header(path)[1:]
    if header.duplicated().any():
        dupes = header[header.duplicated()].unique().tolist()
        raise DataValidationError(f"Duplicate sample columns in {path}: {dupes[:10]}")

    numeric = df.apply(pd.to_numeric, errors='coerce')
    bad = numeric.isna() & df.notna()
    if bad.values.any():
        examples = []
        rows, cols = np.nonzero(bad.values)
        for i, j in list(zip(rows, cols))[:5]:
            examples.append(f"row '{df.index[i]}', col '{df.columns[j]}': {df.iat[i, j]!r}")
        raise DataValidationError(
            "Expression table contains non-numeric values:\n" +
            "\n".join(f"  - {x}" for x in examples)
        )

    data = numeric.to_numpy(dtype=float)
    n_missing = int(np.isnan(data).sum())
    if n_missing:
        raise DataValidationError(
            f"Expression table contains {n_missing:,} missing values. "
            "Impute or drop them before network analysis."
        )
    n_inf = int(np.isinf(data).sum())
    if n_inf:
        raise DataValidationError(f"Expression table contains {n_inf} infinite values.")

    matrix = ExpressionMatrix(
        data=data,
        gene_ids=pd.Index(df.index),
        sample_ids=pd.Index(df.columns),
    )
    logger.info(f"Loaded expression matrix: {matrix.n_genes:,} genes × {matrix.n_samples} samples")
    return matrix


def load_sample_metadata(path: Path, sample_column: Optional[str] = None) -> pd.DataFrame:
    """
    Load a sample metadata table indexed by sample identifier.

    Args:
        path: CSV/TSV file, one row per sample
        sample_column: Column holding sample IDs. Defaults to the first column.

    Returns:
        DataFrame indexed by sample ID (as strings), phenotype columns as read

    Raises:
        FileNotFoundError: If path does not exist
        DataValidationError: If the column is missing, has blanks or
            duplicate identifiers
    """
    path = Path(path)
    df = _read_table(path, index_col=None)

    if sample_column is None:
        sample_column = df.columns[0]
    if sample_column not in df.columns:
        raise DataValidationError(
            f"Sample column '{sample_column}' not found in {path}. "
            f"Available columns: {list(df.columns)}"
        )

    ids = df[sample_column]
    if ids.isna().any():
        raise DataValidationError(
            f"{int(ids.isna().sum())} metadata rows have no sample identifier in {path}"
        )
    ids = ids.astype(str)
    if ids.duplicated().any():
        dupes = ids[ids.duplicated()].unique().tolist()
        raise DataValidationError(f"Duplicate sample identifiers in metadata: {dupes[:10]}")

    metadata = df.drop(columns=[sample_column])
    metadata.index = pd.Index(ids.values, name=str(sample_column))
    logger.info(f"Loaded sample metadata: {len(metadata)} samples × {metadata.shape[1]} columns")
    return metadata
