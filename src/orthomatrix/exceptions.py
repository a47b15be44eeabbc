from __future__ import annotations


class OrthoMatrixError(Exception):
    """Base class for OrthoMatrix exceptions."""

    exit_code: int = 1


class OrthoMatrixUsageError(OrthoMatrixError):
    """Raised when command arguments or inputs are invalid."""

    exit_code = 2


class EmptySimilarityReportError(OrthoMatrixError):
    """Raised when the all-vs-all search returns nothing for a non-empty input."""

    exit_code = 3


class CoverageInvariantError(OrthoMatrixError):
    """Raised when a surviving exemplar cannot reach the minimum marker coverage."""

    exit_code = 4
