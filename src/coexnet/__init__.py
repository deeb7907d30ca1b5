"""
coexnet - Weighted gene co-expression network analysis for RNA-seq

A batch pipeline that reconciles expression and phenotype tables, screens
samples for outliers via sample-network connectivity, builds WGCNA modules
through a pluggable backend, and relates modules and genes to every trait.
"""

__version__ = "0.1.0"

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.transform import Transform
from coexnet.core.exceptions import CoexnetError

__all__ = [
    "ExpressionMatrix",
    "Transform",
    "CoexnetError",
]
