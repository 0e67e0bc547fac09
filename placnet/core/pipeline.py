"""
Annotation pipeline.

Runs the stages in order:

1. anchor indexing
2. anchor annotation merge
3. per-factor peak classification (in parallel, one task per factor)
4. interaction graph construction
5. set-membership aggregation

and writes every derived table under a common output prefix.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..config import settings
from .anchors import IndexedInteractions, index_interactions
from .annotation_merge import merge_anchor_annotations
from .exceptions import PipelineConfigError, PlacNetError
from .interaction_graph import GraphViews, InteractionGraphBuilder, summarize_graph
from .peak_classifier import (
    ClassificationResult,
    ClassifierConfig,
    MultipleAnnotationMode,
    PeakClassifier,
)
from .set_membership import MembershipResults, SetMembershipAggregator, ordered_factors
from .tables import (
    read_gene_list,
    read_homer_annotation,
    read_interactions,
    read_overlaps,
    write_table,
)

logger = logging.getLogger(__name__)

# (proximity annotation, anchor1 overlaps, anchor2 overlaps)
FactorTables = Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]


@dataclass
class PipelineConfig:
    """Run configuration; unset values fall back to application settings."""

    prefix: str = field(default_factory=lambda: settings.default_prefix)
    unannotated_fallback: bool = field(default_factory=lambda: settings.default_unannotated_fallback)
    multiple_annotation_mode: str = field(
        default_factory=lambda: settings.default_multiple_annotation_mode
    )
    output_dir: Optional[str] = None

    tss_distance: int = field(default_factory=lambda: settings.tss_distance)
    proximal_distance: int = field(default_factory=lambda: settings.proximal_distance)
    min_q_value: float = field(default_factory=lambda: settings.min_q_value)
    max_workers: int = field(default_factory=lambda: settings.max_workers)

    def __post_init__(self):
        if not self.prefix or "/" in self.prefix:
            raise PipelineConfigError(f"Invalid output prefix: {self.prefix!r}")
        if self.max_workers < 1:
            raise PipelineConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        try:
            self.multiple_annotation_mode = MultipleAnnotationMode(self.multiple_annotation_mode)
        except ValueError:
            raise PipelineConfigError(
                f"Unknown multiple annotation mode: {self.multiple_annotation_mode}"
            )

    def classifier_config(self) -> ClassifierConfig:
        return ClassifierConfig(
            unannotated_fallback=self.unannotated_fallback,
            multiple_annotation_mode=self.multiple_annotation_mode,
            promoter_distance=self.tss_distance,
            proximal_distance=self.proximal_distance,
        )


@dataclass
class FactorPeakFiles:
    """Input files for one factor's peak set."""

    name: str
    proximity: str
    overlaps1: str
    overlaps2: str


@dataclass
class PipelineInputs:
    """Input files for a full run."""

    interactions: str
    anchor1_annotation: str
    anchor2_annotation: str
    genome_overlaps1: str
    genome_overlaps2: str
    factors: List[FactorPeakFiles] = field(default_factory=list)
    gene_list: Optional[str] = None


@dataclass
class PipelineResults:
    """Everything a run derives, in memory."""

    indexed: IndexedInteractions
    interactions: pd.DataFrame
    classifications: Dict[str, ClassificationResult]
    graph: GraphViews
    membership: MembershipResults
    genes: List[str]

    def combined_annotation(self) -> pd.DataFrame:
        """All factors' annotated peaks with a leading ``Factor`` column."""
        frames = [
            result.annotated.assign(Factor=name)[["Factor"] + list(result.annotated.columns)]
            for name, result in self.classifications.items()
        ]
        if not frames:
            return pd.DataFrame(columns=["Factor"])
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> Dict[str, Any]:
        return {
            "interactions": len(self.interactions),
            "promoter_anchors": int(self.interactions["TSS_1"].sum() + self.interactions["TSS_2"].sum()),
            "factors": self.membership.factors,
            "annotation": {name: r.summary() for name, r in self.classifications.items()},
            "genes": {name: len(r.genes) for name, r in self.classifications.items()},
            "edges": summarize_graph(self.graph),
        }

    def write(self, output_dir: Path, prefix: str) -> Dict[str, str]:
        """Write every output table; returns {label: path}."""
        output_dir = Path(output_dir)
        out = {}

        def put(label: str, df: pd.DataFrame, name: str, header: bool = True):
            out[label] = str(write_table(df, output_dir / f"{prefix}_{name}.txt", header=header))

        put("interaction_annotation", self.interactions, "interaction_annotation")

        for name, result in self.classifications.items():
            put(f"{name}_annotated", result.annotated, f"{name}_annotated")
            put(f"{name}_genes", result.gene_table(), f"{name}_genes", header=False)
        put("annotated_all", self.combined_annotation(), "annotated_all")

        for view, edges in self.graph.views().items():
            put(f"edges_{view}", edges, f"edges_{view}")
            put(f"nodes_{view}", self.graph.nodes(view), f"nodes_{view}")
        put("factor_promoter_edges", self.graph.factor_promoter(), "factor_promoter_edges")
        put("factor_distal_edges", self.graph.factor_distal(), "factor_distal_edges")

        for key, matrix in self.membership.matrices.items():
            put(f"upset_{key}", matrix, f"upset_{key}")
            put(f"upset_{key}_counts", self.membership.counts[key], f"upset_{key}_counts")
        for view, table in self.membership.crosstabs.items():
            put(f"circos_{view}", table, f"circos_{view}")

        logger.info(f"Wrote {len(out)} tables to {output_dir}")
        return out


def prepare_anchors(interactions_path: str, output_dir: str, prefix: str) -> Dict[str, str]:
    """
    Index an interaction file and write the anchor BEDs for the external
    annotation and intersection tools.
    """
    indexed = index_interactions(read_interactions(interactions_path))
    output_dir = Path(output_dir)
    return {
        "indexed": str(write_table(indexed.interactions, output_dir / f"{prefix}_indexed.txt")),
        "anchor1": str(write_table(indexed.anchor1, output_dir / f"{prefix}_anchor1.bed", header=False)),
        "anchor2": str(write_table(indexed.anchor2, output_dir / f"{prefix}_anchor2.bed", header=False)),
    }


def classify_factors(
    factor_tables: Dict[str, FactorTables],
    interactions: pd.DataFrame,
    config: ClassifierConfig,
    max_workers: int = 1,
) -> Dict[str, ClassificationResult]:
    """
    Classify every factor's peaks; factors are independent, so they run
    concurrently. Results come back in the input order of ``factor_tables``.
    """
    classifier = PeakClassifier(config)
    results: Dict[str, ClassificationResult] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(classifier.classify, prox, ov1, ov2, interactions, name): name
            for name, (prox, ov1, ov2) in factor_tables.items()
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except PlacNetError:
                logger.error(f"Classification failed for factor {name}")
                raise

    return {name: results[name] for name in factor_tables}


def run_pipeline_frames(
    interactions: pd.DataFrame,
    anchor1_annotation: pd.DataFrame,
    anchor2_annotation: pd.DataFrame,
    factor_tables: Dict[str, FactorTables],
    genome_overlaps1: pd.DataFrame,
    genome_overlaps2: pd.DataFrame,
    genes: Optional[List[str]] = None,
    config: Optional[PipelineConfig] = None,
) -> PipelineResults:
    """
    Run every stage on in-memory tables.

    When ``genes`` is None the gene-restricted view is seeded with the
    genes annotated to any factor's peaks.
    """
    config = config or PipelineConfig()

    indexed = index_interactions(interactions)
    unified = merge_anchor_annotations(
        indexed.interactions, anchor1_annotation, anchor2_annotation,
        tss_distance=config.tss_distance,
    )

    classifications = classify_factors(
        factor_tables, unified, config.classifier_config(), max_workers=config.max_workers
    )

    if genes is None:
        genes = list(dict.fromkeys(g for r in classifications.values() for g in r.genes))
        logger.info(f"No gene list supplied; using {len(genes)} annotated genes")

    builder = InteractionGraphBuilder(min_q_value=config.min_q_value)
    graph = builder.build(genome_overlaps1, genome_overlaps2, unified, genes=genes)

    factors = ordered_factors(
        list(classifications)
        + genome_overlaps1["peak_name"].astype(str).tolist()
        + genome_overlaps2["peak_name"].astype(str).tolist()
    )
    membership = SetMembershipAggregator().aggregate(graph, factors)

    return PipelineResults(
        indexed=indexed,
        interactions=unified,
        classifications=classifications,
        graph=graph,
        membership=membership,
        genes=list(genes),
    )


def run_pipeline(inputs: PipelineInputs, config: Optional[PipelineConfig] = None) -> Tuple[PipelineResults, Dict[str, str]]:
    """
    Run the pipeline from files and write all outputs.

    Returns:
        (results, {label: output path})
    """
    config = config or PipelineConfig()
    names = [f.name for f in inputs.factors]
    if len(set(names)) != len(names):
        raise PipelineConfigError(f"Duplicate factor names: {names}")

    logger.info(f"Starting run '{config.prefix}' with {len(names)} factors")

    factor_tables = {
        f.name: (
            read_homer_annotation(f.proximity),
            read_overlaps(f.overlaps1),
            read_overlaps(f.overlaps2),
        )
        for f in inputs.factors
    }

    results = run_pipeline_frames(
        interactions=read_interactions(inputs.interactions),
        anchor1_annotation=read_homer_annotation(inputs.anchor1_annotation),
        anchor2_annotation=read_homer_annotation(inputs.anchor2_annotation),
        factor_tables=factor_tables,
        genome_overlaps1=read_overlaps(inputs.genome_overlaps1),
        genome_overlaps2=read_overlaps(inputs.genome_overlaps2),
        genes=read_gene_list(inputs.gene_list) if inputs.gene_list else None,
        config=config,
    )

    output_dir = Path(config.output_dir) if config.output_dir else settings.results_dir
    outputs = results.write(output_dir, config.prefix)
    logger.info(f"Run '{config.prefix}' completed")
    return results, outputs
