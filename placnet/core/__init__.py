"""
Core analysis modules for PlacNet.

Includes:
- Anchor indexing of 2D-bed interactions
- Anchor annotation merge
- Peak classification (promoter / proximal / interaction-based)
- Interaction graph construction
- Set membership aggregation for UpSet and chord plots
"""

# Anchor indexing
from .anchors import IndexedInteractions, index_interactions

# Anchor annotation merge
from .annotation_merge import merge_anchor_annotations, prepare_anchor_annotation

# Peak classification
from .peak_classifier import (
    PeakClassifier,
    ClassifierConfig,
    ClassificationResult,
    MultipleAnnotationMode,
    resolve_multiple_annotations,
    summarize_annotation,
)

# Interaction graph
from .interaction_graph import (
    InteractionGraphBuilder,
    GraphViews,
    derive_nodes,
    factor_view,
    gene_view,
    summarize_graph,
)

# Set membership
from .set_membership import (
    SetMembershipAggregator,
    MembershipResults,
    membership_matrix,
    membership_counts,
    category_labels,
    category_crosstab,
)

# Pipeline
from .pipeline import (
    PipelineConfig,
    PipelineInputs,
    PipelineResults,
    FactorPeakFiles,
    run_pipeline,
    run_pipeline_frames,
    prepare_anchors,
)

__all__ = [
    "IndexedInteractions",
    "index_interactions",
    "merge_anchor_annotations",
    "prepare_anchor_annotation",
    "PeakClassifier",
    "ClassifierConfig",
    "ClassificationResult",
    "MultipleAnnotationMode",
    "resolve_multiple_annotations",
    "summarize_annotation",
    "InteractionGraphBuilder",
    "GraphViews",
    "derive_nodes",
    "factor_view",
    "gene_view",
    "summarize_graph",
    "SetMembershipAggregator",
    "MembershipResults",
    "membership_matrix",
    "membership_counts",
    "category_labels",
    "category_crosstab",
    "PipelineConfig",
    "PipelineInputs",
    "PipelineResults",
    "FactorPeakFiles",
    "run_pipeline",
    "run_pipeline_frames",
    "prepare_anchors",
]
