"""
Sample identifier reconciliation between expression and metadata tables.

Expression exports and phenotype sheets are maintained by different people and
drift apart: R's check.names turns "ALS-01" into "ALS.01", spreadsheets add
trailing spaces, and a handful of samples are simply renamed. Rather than
patching identifiers with string literals, the corrections live in a mapping
table that is loaded as configuration, applied here and logged.

Matching Rules:
    1. Metadata IDs found in the mapping table are replaced by the mapped
       expression ID.
    2. With normalize=True, both sides are compared after normalize_sample_id()
       (strip whitespace; '-', '.' and ' ' become '_').
    3. Every expression sample must match exactly one metadata row.
    4. Metadata rows without an expression sample are an error unless
       drop_unused_metadata=True, in which case they are dropped and logged.

Examples:
    >>> from coexnet.io.metadata import SampleIdReconciler
    >>>
    >>> reconciler = SampleIdReconciler.from_file("id_map.csv")
    >>> annotated = reconciler.reconcile(matrix, metadata)
    >>> print(reconciler.summary())

Mapping Table Formats:
    CSV/TSV with columns metadata_id, expression_id:
    ```
    metadata_id,expression_id
    ALS_iPSC_7b,ALS_iPSC_07
    ```
    or YAML/JSON with a flat mapping:
    ```
    ALS_iPSC_7b: ALS_iPSC_07
    ```
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import pandas as pd
import yaml

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.exceptions import DataValidationError, SampleIdMismatchError
from coexnet.io.loaders import sniff_delimiter

__all__ = [
    'SampleIdReconciler',
    'ReconciliationSummary',
    'normalize_sample_id',
    'load_id_map',
]

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r'[-.\s]+')


def normalize_sample_id(sample_id: object) -> str:
    """
    Canonical form used for matching.

    Examples:
        >>> normalize_sample_id(" ALS-iPSC.01 ")
        'ALS_iPSC_01'
    """
    return _SEPARATORS.sub('_', str(sample_id).strip())


def load_id_map(path: Path | str) -> dict[str, str]:
    """
    Load a metadata_id -> expression_id mapping table.

    Raises:
        FileNotFoundError: If path does not exist
        DataValidationError: If the file is not a flat mapping or repeats a
            metadata ID
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"ID map not found: {path}")

    suffix = path.suffix.lower()
    if suffix in ('.yaml', '.yml', '.json'):
        with open(path) as f:
            raw = json.load(f) if suffix == '.json' else yaml.safe_load(f)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise DataValidationError(
                f"ID map {path} must be a mapping of metadata_id: expression_id"
            )
        return {str(k): str(v) for k, v in raw.items()}

    df = pd.read_csv(path, sep=sniff_delimiter(path), dtype=str)
    missing = {'metadata_id', 'expression_id'} - set(df.columns)
    if missing:
        raise DataValidationError(
            f"ID map {path} is missing column(s) {sorted(missing)}. "
            f"Found: {list(df.columns)}"
        )
    df = df.dropna(subset=['metadata_id', 'expression_id'])
    if df['metadata_id'].duplicated().any():
        dupes = df.loc[df['metadata_id'].duplicated(), 'metadata_id'].tolist()
        raise DataValidationError(f"ID map {path} repeats metadata IDs: {dupes}")
    return dict(zip(df['metadata_id'].str.strip(), df['expression_id'].str.strip()))


@dataclass
class ReconciliationSummary:
    """Outcome of one reconcile() call."""
    n_expression_samples: int
    n_metadata_rows: int
    n_matched: int
    mapped: dict[str, str] = field(default_factory=dict)
    dropped_metadata: list[str] = field(default_factory=list)
    unused_map_entries: list[str] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"ReconciliationSummary(\n"
            f"  expression_samples: {self.n_expression_samples}\n"
            f"  metadata_rows: {self.n_metadata_rows}\n"
            f"  matched: {self.n_matched}\n"
            f"  remapped: {len(self.mapped)}\n"
            f"  dropped_metadata: {len(self.dropped_metadata)}\n"
            f")"
        )


class SampleIdReconciler:
    """
    Attach metadata rows to expression samples using an explicit ID map.

    Attributes:
        id_map: metadata_id -> expression_id corrections
        normalize: Compare identifiers after normalize_sample_id()
        drop_unused_metadata: Drop metadata rows with no expression sample
            instead of raising
    """

    def __init__(
        self,
        id_map: Optional[Mapping[str, str]] = None,
        normalize: bool = True,
        drop_unused_metadata: bool = False,
    ):
        self.id_map = {str(k): str(v) for k, v in (id_map or {}).items()}
        self.normalize = normalize
        self.drop_unused_metadata = drop_unused_metadata
        self._summary: Optional[ReconciliationSummary] = None

        targets = pd.Series(list(self.id_map.values()))
        if targets.duplicated().any():
            raise DataValidationError(
                f"ID map sends several metadata IDs to the same expression ID: "
                f"{targets[targets.duplicated()].unique().tolist()}"
            )

    @classmethod
    def from_file(
        cls,
        path: Path | str,
        normalize: bool = True,
        drop_unused_metadata: bool = False,
    ) -> SampleIdReconciler:
        """Create a reconciler from a mapping table on disk."""
        return cls(
            id_map=load_id_map(path),
            normalize=normalize,
            drop_unused_metadata=drop_unused_metadata,
        )

    def _key(self, sample_id: str) -> str:
        return normalize_sample_id(sample_id) if self.normalize else str(sample_id)

    def _keyed(self, ids: pd.Index, what: str) -> dict[str, str]:
        keyed: dict[str, str] = {}
        for sid in ids:
            key = self._key(sid)
            if key in keyed:
                raise DataValidationError(
                    f"{what} identifiers '{keyed[key]}' and '{sid}' collide after "
                    f"normalization (both become '{key}'). Disambiguate them in the ID map."
                )
            keyed[key] = sid
        return keyed

    def reconcile(self, matrix: ExpressionMatrix, metadata: pd.DataFrame) -> ExpressionMatrix:
        """
        Return a copy of matrix whose sample_metadata is the matched metadata.

        Expression sample IDs are kept as-is; metadata rows are re-indexed to
        them in expression column order.

        Raises:
            SampleIdMismatchError: If any expression sample has no metadata,
                or metadata rows are left over and drop_unused_metadata is off
            DataValidationError: If identifiers collide after normalization
        """
        metadata_ids = pd.Index(metadata.index.astype(str))

        mapped: dict[str, str] = {}
        corrected = []
        for sid in metadata_ids:
            target = self.id_map.get(sid)
            if target is not None and target != sid:
                mapped[sid] = target
                logger.info(f"ID map: metadata '{sid}' -> expression '{target}'")
            corrected.append(target if target is not None else sid)
        unused = sorted(set(self.id_map) - set(metadata_ids))
        if unused:
            logger.warning(f"{len(unused)} ID map entries match no metadata row: {unused[:10]}")

        expr_keys = self._keyed(matrix.sample_ids, "Expression sample")
        meta_keys = self._keyed(pd.Index(corrected), "Metadata sample")
        original_by_key = {
            self._key(c): original for c, original in zip(corrected, metadata_ids)
        }

        missing_in_metadata = [expr_keys[k] for k in expr_keys if k not in meta_keys]
        missing_in_expression = [original_by_key[k] for k in meta_keys if k not in expr_keys]

        if missing_in_metadata or (missing_in_expression and not self.drop_unused_metadata):
            raise SampleIdMismatchError(
                missing_in_metadata=missing_in_metadata,
                missing_in_expression=missing_in_expression,
            )
        if missing_in_expression:
            logger.warning(
                f"Dropping {len(missing_in_expression)} metadata rows with no expression "
                f"sample: {sorted(missing_in_expression)[:10]}"
            )

        row_of_key = {self._key(c): i for i, c in enumerate(corrected)}
        order = [row_of_key[self._key(sid)] for sid in matrix.sample_ids]
        aligned = metadata.iloc[order].copy()
        aligned.index = matrix.sample_ids

        self._summary = ReconciliationSummary(
            n_expression_samples=matrix.n_samples,
            n_metadata_rows=len(metadata),
            n_matched=matrix.n_samples,
            mapped=mapped,
            dropped_metadata=sorted(missing_in_expression),
            unused_map_entries=unused,
        )
        logger.info(
            f"Reconciled {matrix.n_samples} samples "
            f"({len(mapped)} remapped, {len(missing_in_expression)} metadata rows dropped)"
        )
        return matrix.with_metadata(aligned)

    def summary(self) -> Optional[ReconciliationSummary]:
        """Summary of the most recent reconcile() call."""
        return self._summary
