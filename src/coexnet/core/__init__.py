"""
Core data structures and abstractions.

1. ExpressionMatrix: genes × samples matrix with sample annotations
2. Transform: Abstract base class for immutable matrix transformations
3. Exceptions: the package error hierarchy

Design Philosophy:
    - Immutability: operations return new instances
    - Validation at construction: invalid matrices cannot exist
    - Explicit stage boundaries: no process-wide mutable state
"""

from coexnet.core.expression import ExpressionMatrix
from coexnet.core.transform import Transform
from coexnet.core.exceptions import (
    CoexnetError,
    DataValidationError,
    SampleIdMismatchError,
    DegenerateConnectivityError,
    ConfigurationError,
    NetworkBackendError,
)

__all__ = [
    'ExpressionMatrix',
    'Transform',
    'CoexnetError',
    'DataValidationError',
    'SampleIdMismatchError',
    'DegenerateConnectivityError',
    'ConfigurationError',
    'NetworkBackendError',
]
