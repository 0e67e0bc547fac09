"""
Request/response models for the PlacNet API.
"""

from .schemas import (
    FactorPeakInput,
    PipelineRunRequest,
    PipelineRunResponse,
)

__all__ = [
    "FactorPeakInput",
    "PipelineRunRequest",
    "PipelineRunResponse",
]
