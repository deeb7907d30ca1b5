"""
Exception hierarchy for coexnet.

Every error raised by the package derives from CoexnetError so callers (and
the CLI) can catch package failures without swallowing programming errors.
Validation failures also derive from ValueError, matching how the rest of the
scientific Python stack reports bad inputs.
"""

from __future__ import annotations

from typing import Iterable, List

__all__ = [
    'CoexnetError',
    'DataValidationError',
    'SampleIdMismatchError',
    'DegenerateConnectivityError',
    'ConfigurationError',
    'NetworkBackendError',
]


class CoexnetError(Exception):
    """Base class for all coexnet errors."""


class DataValidationError(CoexnetError, ValueError):
    """Input data violates a structural or numerical invariant."""


class SampleIdMismatchError(DataValidationError):
    """
    Expression and metadata sample identifiers do not line up.

    Attributes:
        missing_in_metadata: Expression samples with no metadata row
        missing_in_expression: Metadata samples with no expression column
    """

    def __init__(
        self,
        missing_in_metadata: Iterable[str] = (),
        missing_in_expression: Iterable[str] = (),
    ):
        self.missing_in_metadata: List[str] = sorted(str(s) for s in missing_in_metadata)
        self.missing_in_expression: List[str] = sorted(str(s) for s in missing_in_expression)

        parts = []
        if self.missing_in_metadata:
            parts.append(
                f"{len(self.missing_in_metadata)} expression sample(s) have no metadata: "
                f"{self.missing_in_metadata}"
            )
        if self.missing_in_expression:
            parts.append(
                f"{len(self.missing_in_expression)} metadata sample(s) have no expression column: "
                f"{self.missing_in_expression}"
            )
        message = "Sample identifiers do not match. " + "; ".join(parts)
        message += ". Add the corrections to the ID map instead of editing the inputs."
        super().__init__(message)


class DegenerateConnectivityError(DataValidationError):
    """Sample connectivity has zero spread, so it cannot be standardized."""


class ConfigurationError(CoexnetError, ValueError):
    """A parameter or configuration file is invalid."""


class NetworkBackendError(CoexnetError, RuntimeError):
    """The external network-construction library reported a failure."""
