"""
Base transformation framework for immutable matrix operations.

Transformations are pure: they take an ExpressionMatrix and return a new one,
never modifying the input. Each transform records its name and parameters,
which show up in its repr and in the results it returns.

Examples:
    >>> from coexnet.core.transform import Transform
    >>>
    >>> class Log2Transform(Transform):
    ...     def __init__(self, pseudocount: float = 1.0):
    ...         super().__init__(name="Log2Transform", params={"pseudocount": pseudocount})
    ...         self.pseudocount = pseudocount
    ...
    ...     def apply(self, matrix):
    ...         import numpy as np
    ...         return ExpressionMatrix(
    ...             data=np.log2(matrix.data + self.pseudocount),
    ...             gene_ids=matrix.gene_ids,
    ...             sample_ids=matrix.sample_ids,
    ...             sample_metadata=matrix.sample_metadata,
    ...         )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING
from datetime import datetime

if TYPE_CHECKING:
    from coexnet.core.expression import ExpressionMatrix

__all__ = ['Transform']


class Transform(ABC):
    """
    Abstract base class for matrix transformations.

    Attributes:
        name: Human-readable transformation name
        params: JSON-serializable parameters (written to the run report)
        timestamp: When this transform instance was created
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, matrix: ExpressionMatrix) -> ExpressionMatrix:
        """
        Execute transformation and return a new matrix.

        Must never modify the input matrix.

        Raises:
            ValueError: If transformation cannot be applied (see validate())
        """

    def validate(self, matrix: ExpressionMatrix) -> list[str]:
        """
        Check preconditions before applying transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size == 0:
            errors.append("Cannot process empty matrix")

        return errors

    def __repr__(self) -> str:
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"
