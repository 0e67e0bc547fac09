"""
Custom exception classes for PlacNet.

Provides stage-specific error types so callers can tell which step of the
annotation pipeline failed and on which key.
"""


class PlacNetError(Exception):
    """Base exception for all PlacNet errors."""
    pass


# ============================================================================
# Input / File errors
# ============================================================================

class FileFormatError(PlacNetError):
    """Raised when an input table has an unexpected or invalid format."""
    pass


# ============================================================================
# Data validation errors
# ============================================================================

class ValidationError(PlacNetError):
    """Raised when input data fails validation checks."""
    pass


class MissingColumnError(ValidationError):
    """Raised when a required column is missing from a DataFrame."""

    def __init__(self, column: str, dataframe_name: str = "DataFrame", available: list = None):
        available_str = f" Available columns: {available}" if available else ""
        super().__init__(
            f"Required column '{column}' not found in {dataframe_name}.{available_str}"
        )
        self.column = column
        self.dataframe_name = dataframe_name
        self.available = available


class EmptyDataError(ValidationError):
    """Raised when data is empty where it should not be."""

    def __init__(self, data_name: str = "data"):
        super().__init__(f"Empty {data_name} provided where non-empty data is required")
        self.data_name = data_name


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is out of valid range."""

    def __init__(self, param: str, value, valid_range: str = ""):
        msg = f"Invalid value for '{param}': {value}"
        if valid_range:
            msg += f". Expected: {valid_range}"
        super().__init__(msg)
        self.param = param
        self.value = value


# ============================================================================
# Analysis errors
# ============================================================================

class AnalysisError(PlacNetError):
    """Base class for stage-specific errors.

    ``stage`` names the pipeline step and ``keys`` holds the offending
    join keys (interaction ids or peak ids) when there are any.
    """

    stage = "analysis"

    def __init__(self, message: str, keys: list = None):
        self.keys = list(keys) if keys is not None else []
        if self.keys:
            shown = ", ".join(str(k) for k in self.keys[:10])
            more = f" (+{len(self.keys) - 10} more)" if len(self.keys) > 10 else ""
            message = f"{message} [keys: {shown}{more}]"
        super().__init__(f"{self.stage}: {message}")


class AnnotationMergeError(AnalysisError):
    """Raised when anchor annotations cannot be aligned to interactions."""

    stage = "annotation merge"


class PeakClassificationError(AnalysisError):
    """Raised when a peak set cannot be classified."""

    stage = "peak classification"


class GraphBuildError(AnalysisError):
    """Raised when interaction graph edges cannot be derived."""

    stage = "graph build"


class MembershipError(AnalysisError):
    """Raised when set-membership tables cannot be built."""

    stage = "set membership"


# ============================================================================
# Pipeline errors
# ============================================================================

class PipelineError(PlacNetError):
    """Base class for pipeline execution errors."""
    pass


class PipelineConfigError(PipelineError):
    """Raised when pipeline configuration is invalid."""
    pass


# ============================================================================
# Validation helpers
# ============================================================================

def validate_dataframe(
    df,
    name: str = "DataFrame",
    required_columns: list = None,
    min_rows: int = 0,
) -> None:
    """Validate a DataFrame has expected shape and columns.

    Parameters
    ----------
    df : pd.DataFrame
        The DataFrame to validate.
    name : str
        Human-readable name for error messages.
    required_columns : list, optional
        Columns that must be present.
    min_rows : int
        Minimum number of rows required.

    Raises
    ------
    EmptyDataError
        If df is None or empty and min_rows > 0.
    MissingColumnError
        If a required column is missing.
    """
    import pandas as pd

    if df is None:
        raise EmptyDataError(name)

    if not isinstance(df, pd.DataFrame):
        raise ValidationError(f"Expected DataFrame for {name}, got {type(df).__name__}")

    if min_rows > 0 and len(df) < min_rows:
        if len(df) == 0:
            raise EmptyDataError(name)
        raise ValidationError(
            f"{name} has {len(df)} rows but at least {min_rows} are required"
        )

    if required_columns:
        for col in required_columns:
            if col not in df.columns:
                raise MissingColumnError(col, name, available=list(df.columns))


def validate_numeric_param(value, name: str, min_val=None, max_val=None) -> None:
    """Validate a numeric parameter is within acceptable bounds.

    Raises
    ------
    InvalidParameterError
        If the value is out of range.
    """
    if min_val is not None and value < min_val:
        raise InvalidParameterError(name, value, f">= {min_val}")
    if max_val is not None and value > max_val:
        raise InvalidParameterError(name, value, f"<= {max_val}")
