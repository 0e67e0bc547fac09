"""
Pydantic schemas for API request/response validation.

Defines schemas for:
- Pipeline run requests (input files and run options)
- Run responses (output tables and summary counts)
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

from ..core.peak_classifier import MultipleAnnotationMode


class FactorPeakInput(BaseModel):
    """Peak set of one factor."""

    name: str = Field(..., min_length=1, description="Factor name (e.g., CTCF, H3K27ac)")
    proximity: str = Field(..., description="annotatePeaks.pl output for the peaks")
    overlaps1: str = Field(..., description="bedtools intersect of the peaks with anchor1")
    overlaps2: str = Field(..., description="bedtools intersect of the peaks with anchor2")


class PipelineRunRequest(BaseModel):
    """Schema for a pipeline run."""

    interactions: str = Field(..., description="2D-bed interaction table")
    anchor1_annotation: str = Field(..., description="annotatePeaks.pl output for anchor1")
    anchor2_annotation: str = Field(..., description="annotatePeaks.pl output for anchor2")
    genome_overlaps1: str = Field(..., description="All-factor peaks intersected with anchor1")
    genome_overlaps2: str = Field(..., description="All-factor peaks intersected with anchor2")
    factors: List[FactorPeakInput] = Field(default_factory=list)
    gene_list: Optional[str] = Field(default=None, description="Single-column gene symbol list")

    prefix: Optional[str] = Field(default=None, description="Output file name stem")
    unannotated_fallback: Optional[bool] = None
    multiple_annotation_mode: Optional[MultipleAnnotationMode] = None
    output_dir: Optional[str] = None


class PipelineRunResponse(BaseModel):
    """Schema for a completed run."""

    prefix: str
    outputs: Dict[str, str]
    summary: Dict[str, Any]
