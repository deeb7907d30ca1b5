"""
I/O for expression data, sample metadata and analysis reports.

Key Functions:
    - load_expression_matrix: genes × samples table -> ExpressionMatrix
    - load_sample_metadata: phenotype table indexed by sample ID
    - SampleIdReconciler: attach metadata using an explicit ID map
    - write_report: every result table plus run parameters

Examples:
    >>> from coexnet.io import load_expression_matrix, load_sample_metadata, SampleIdReconciler
    >>>
    >>> matrix = load_expression_matrix(Path("counts.csv"))
    >>> metadata = load_sample_metadata(Path("samples.csv"))
    >>> matrix = SampleIdReconciler.from_file("id_map.csv").reconcile(matrix, metadata)
"""

from coexnet.io.loaders import load_expression_matrix, load_sample_metadata
from coexnet.io.metadata import SampleIdReconciler, load_id_map, normalize_sample_id
from coexnet.io.writers import write_report, write_outlier_report, write_soft_threshold

__all__ = [
    'load_expression_matrix',
    'load_sample_metadata',
    'SampleIdReconciler',
    'load_id_map',
    'normalize_sample_id',
    'write_report',
    'write_outlier_report',
    'write_soft_threshold',
]
