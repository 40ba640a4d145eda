"""
Custom exceptions for the K0s tracking efficiency analysis

Provides a hierarchy of exceptions for better error handling and diagnostics.
All custom exceptions inherit from AnalysisError for easy catching.
"""

from __future__ import annotations


class AnalysisError(Exception):
    """
    Base exception for all analysis errors

    All custom exceptions inherit from this class, allowing users to catch
    all analysis-specific errors with a single except clause.
    """

    pass


class ConfigurationError(AnalysisError):
    """
    Raised when configuration is invalid or missing required fields

    Examples:
    - Missing required config file
    - Invalid threshold values (e.g. v0cospa outside [-1, 1])
    - Unknown keys in the [v0_selection] table
    """

    pass


class DataLoadError(AnalysisError):
    """
    Raised when input ROOT files cannot be loaded or are inconsistent

    Examples:
    - File not found
    - Missing collision, V0 or track tree
    - V0 pointing to a track or collision that does not exist
    """

    pass


class BranchMissingError(AnalysisError):
    """
    Raised when a required branch is not found in an input tree

    Examples:
    - Missing daughter index branch in the V0 tree
    - Branch name typo in branches_config.toml
    """

    def __init__(self, branch_name: str, table: str | None = None):
        """
        Initialize BranchMissingError

        Args:
            branch_name: Name of the missing branch
            table: Optional name of the table (collisions, v0s, tracks)
        """
        self.branch_name = branch_name
        self.table = table

        message = f"Required branch '{branch_name}' not found"
        if table:
            message += f" in table: {table}"

        super().__init__(message)


class HistogramError(AnalysisError):
    """
    Raised when the histogram registry is misused

    Examples:
    - Registering the same histogram name twice
    - Filling a histogram that was never registered
    - Filling with the wrong number of coordinates
    """

    pass


class EfficiencyError(AnalysisError):
    """
    Raised when efficiency calculation fails

    Examples:
    - Unknown projection axis or daughter selection
    - Status histogram missing from the registry
    """

    pass
