"""
Interaction Graph Module

Builds the Factor-Distal-Promoter-Gene network from genome-wide
peak x anchor intersections and the unified interaction-annotation table:

- Factor-Distal: factor bound at a non-promoter anchor looping to a promoter
- Factor-Promoter: factor bound at a promoter anchor
- Distal-Promoter: loop with exactly one promoter anchor (score = q-value)
- Promoter-Promoter: loop between two promoter anchors (score = -log10 q-value)
- Promoter-Gene: promoter anchor and its own gene

Edges are exported in three views (all, factor-restricted, gene-restricted)
with node tables derived from each view.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import pandas as pd

from .exceptions import GraphBuildError, validate_dataframe
from .genomic_utils import (
    DISTAL_PROMOTER,
    EDGE_COLUMNS,
    EDGE_TYPES,
    FACTOR_DISTAL,
    FACTOR_PROMOTER,
    INTERACTION_COLUMNS,
    NODE_COLUMNS,
    OVERLAP_COLUMNS,
    PROMOTER_GENE,
    PROMOTER_PROMOTER,
    coordinate_string,
    neg_log10,
)

logger = logging.getLogger(__name__)

FACTOR_EDGE_TYPES = [FACTOR_DISTAL, FACTOR_PROMOTER]
REGION_EDGE_TYPES = [DISTAL_PROMOTER, PROMOTER_PROMOTER, PROMOTER_GENE]

# Node type priority, highest first
NODE_TYPES = ["Factor", "Distal", "Promoter", "Gene"]


@dataclass
class GraphViews:
    """Edge tables for the three graph views."""

    all: pd.DataFrame
    factor: pd.DataFrame
    gene: pd.DataFrame

    def views(self) -> Dict[str, pd.DataFrame]:
        return {"all": self.all, "factor": self.factor, "gene": self.gene}

    def nodes(self, view: str = "all") -> pd.DataFrame:
        return derive_nodes(self.views()[view])

    def factor_promoter(self, view: str = "all") -> pd.DataFrame:
        return edges_of_type(self.views()[view], FACTOR_PROMOTER)

    def factor_distal(self, view: str = "all") -> pd.DataFrame:
        return edges_of_type(self.views()[view], FACTOR_DISTAL)

    def factors(self) -> list:
        """Sorted distinct factor names with an edge in the all view."""
        factor_edges = self.all[self.all["Edge_type"].isin(FACTOR_EDGE_TYPES)]
        return sorted(factor_edges["Source"].astype(str).unique().tolist())


class InteractionGraphBuilder:
    """
    Derive typed edges from factor-bound anchors and annotated interactions.

    Duplicate (Source, Target, Edge_type) keys keep the first occurrence,
    ordered by edge type, then interaction id, then anchor side.
    """

    def __init__(self, min_q_value: float = sys.float_info.min):
        if not min_q_value > 0:
            raise GraphBuildError(f"min_q_value must be positive, got {min_q_value}")
        self.min_q_value = min_q_value

    def build(
        self,
        overlaps1: pd.DataFrame,
        overlaps2: pd.DataFrame,
        interactions: pd.DataFrame,
        genes: Optional[Iterable[str]] = None,
    ) -> GraphViews:
        """
        Build all three graph views.

        Args:
            overlaps1: all-factor peak x anchor1 intersections; ``peak_name`` is the factor
            overlaps2: all-factor peak x anchor2 intersections
            interactions: unified interaction-annotation table
            genes: gene symbols seeding the gene-restricted view

        Returns:
            GraphViews
        """
        merged = self.merge_factor_overlaps(overlaps1, overlaps2, interactions)
        edges = self.build_edges(merged)

        if genes is None:
            logger.warning("No gene list supplied; gene-restricted view is empty")
            genes = []

        views = GraphViews(
            all=edges,
            factor=factor_view(edges),
            gene=gene_view(edges, genes),
        )
        for name, view in views.views().items():
            logger.info(f"Graph view '{name}': {len(view)} edges")
        return views

    def merge_factor_overlaps(
        self,
        overlaps1: pd.DataFrame,
        overlaps2: pd.DataFrame,
        interactions: pd.DataFrame,
    ) -> pd.DataFrame:
        """
        Attach the factors bound at each anchor to the interaction table.

        One row per interaction and combination of bound peaks; anchors
        without a peak keep a null ``Factor_<side>``.
        """
        validate_dataframe(
            interactions, "interaction annotation table",
            required_columns=["interaction_id", "TSS_1", "TSS_2", "Gene_Name_1", "Gene_Name_2"]
            + INTERACTION_COLUMNS,
        )

        merged = interactions[
            ["interaction_id", "q_value", "TSS_1", "TSS_2", "Gene_Name_1", "Gene_Name_2"]
        ].copy()
        merged["interaction_id"] = merged["interaction_id"].astype(int)
        for side in (1, 2):
            merged[f"Anchor_{side}"] = coordinate_string(
                interactions[f"chr{side}"], interactions[f"start{side}"], interactions[f"end{side}"]
            )

        known_ids = set(merged["interaction_id"])
        for side, overlaps in ((1, overlaps1), (2, overlaps2)):
            validate_dataframe(overlaps, f"anchor{side} factor overlaps", required_columns=OVERLAP_COLUMNS)

            ids = pd.to_numeric(overlaps["interaction_id"], errors="coerce")
            hits = pd.DataFrame({
                "interaction_id": ids,
                f"Factor_{side}": overlaps["peak_name"].astype(str),
                # intersection starts are 1-based; Peak_ID uses BED starts
                f"Peak_ID_{side}": coordinate_string(
                    overlaps["peak_chr"],
                    pd.to_numeric(overlaps["peak_start"], errors="coerce") - 1,
                    overlaps["peak_end"],
                ),
            })
            hits = hits[hits["interaction_id"].notna()].drop_duplicates()
            hits["interaction_id"] = hits["interaction_id"].astype(int)

            orphans = ~hits["interaction_id"].isin(known_ids)
            if orphans.any():
                logger.warning(
                    f"Ignoring {orphans.sum()} anchor{side} overlaps with unknown interaction ids"
                )

            merged = merged.merge(hits, on="interaction_id", how="left")

        return merged.sort_values("interaction_id", kind="mergesort").reset_index(drop=True)

    def build_edges(self, merged: pd.DataFrame) -> pd.DataFrame:
        """Derive and deduplicate every edge type from the merged table."""
        parts = []
        for side in (1, 2):
            parts.extend(self._factor_edges(merged, side))
        parts.extend(self._interaction_edges(merged))

        edges = pd.concat(parts, ignore_index=True)
        edges["_type_rank"] = edges["Edge_type"].map({t: i for i, t in enumerate(EDGE_TYPES)})
        edges = edges.sort_values(["_type_rank", "_iid", "_side"], kind="mergesort")
        edges = edges.drop_duplicates(["Source", "Target", "Edge_type"], keep="first")
        edges = edges[EDGE_COLUMNS].reset_index(drop=True)
        edges["Edge_score"] = edges["Edge_score"].astype(float)
        return edges

    def _factor_edges(self, merged: pd.DataFrame, side: int) -> list:
        other = 2 if side == 1 else 1
        bound = merged[merged[f"Factor_{side}"].notna()]

        at_promoter = bound[bound[f"TSS_{side}"] == 1]
        at_distal = bound[(bound[f"TSS_{side}"] == 0) & (bound[f"TSS_{other}"] == 1)]

        return [
            _edge_frame(at_distal, f"Factor_{side}", f"Anchor_{side}", 1.0, FACTOR_DISTAL, side),
            _edge_frame(at_promoter, f"Factor_{side}", f"Anchor_{side}", 1.0, FACTOR_PROMOTER, side),
        ]

    def _interaction_edges(self, merged: pd.DataFrame) -> list:
        loops = merged.drop_duplicates("interaction_id")

        distal_first = loops[(loops["TSS_1"] == 0) & (loops["TSS_2"] == 1)]
        distal_second = loops[(loops["TSS_1"] == 1) & (loops["TSS_2"] == 0)]

        both = loops[(loops["TSS_1"] == 1) & (loops["TSS_2"] == 1)].copy()
        q = pd.to_numeric(both["q_value"], errors="coerce")
        invalid = q.isna() | (q < 0)
        if invalid.any():
            raise GraphBuildError(
                "Promoter-Promoter interactions need a non-negative q-value",
                keys=both.loc[invalid, "interaction_id"].tolist(),
            )
        floored = (q < self.min_q_value).sum()
        if floored:
            logger.warning(
                f"{floored} Promoter-Promoter q-values floored to {self.min_q_value:g} before -log10"
            )
        both["_score"] = neg_log10(q, self.min_q_value)

        parts = [
            _edge_frame(distal_first, "Anchor_1", "Anchor_2", "q_value", DISTAL_PROMOTER, 1),
            _edge_frame(distal_second, "Anchor_2", "Anchor_1", "q_value", DISTAL_PROMOTER, 2),
            _edge_frame(both, "Anchor_1", "Anchor_2", "_score", PROMOTER_PROMOTER, 1),
        ]
        for side in (1, 2):
            promoters = loops[(loops[f"TSS_{side}"] == 1) & loops[f"Gene_Name_{side}"].notna()]
            parts.append(
                _edge_frame(promoters, f"Anchor_{side}", f"Gene_Name_{side}", 1.0, PROMOTER_GENE, side)
            )
        return parts


def _edge_frame(rows: pd.DataFrame, source: str, target: str, score, edge_type: str, side: int) -> pd.DataFrame:
    """Edge rows plus the ordering keys used for deduplication."""
    return pd.DataFrame({
        "Source": rows[source].astype(str).to_numpy(),
        "Target": rows[target].astype(str).to_numpy(),
        "Edge_score": rows[score].to_numpy(dtype=float) if isinstance(score, str) else score,
        "Edge_type": edge_type,
        "_iid": rows["interaction_id"].to_numpy(),
        "_side": side,
    }, columns=EDGE_COLUMNS + ["_iid", "_side"])


def edges_of_type(edges: pd.DataFrame, *edge_types: str) -> pd.DataFrame:
    return edges[edges["Edge_type"].isin(edge_types)].reset_index(drop=True)


# ============================================================================
# Views
# ============================================================================


def factor_view(edges: pd.DataFrame) -> pd.DataFrame:
    """
    Keep factor edges, plus region edges touching a factor-bound anchor.

    A region edge survives if its Source or Target is the Target of any
    Factor-Distal or Factor-Promoter edge.
    """
    is_factor = edges["Edge_type"].isin(FACTOR_EDGE_TYPES)
    bound = set(edges.loc[is_factor, "Target"])
    touches = edges["Source"].isin(bound) | edges["Target"].isin(bound)
    keep = is_factor | (edges["Edge_type"].isin(REGION_EDGE_TYPES) & touches)
    return edges[keep].reset_index(drop=True)


def gene_view(edges: pd.DataFrame, genes: Iterable[str]) -> pd.DataFrame:
    """
    Keep the subgraph reachable backwards from the given genes.

    Promoter-Gene edges to listed genes seed a promoter set; Distal-Promoter
    edges into it and Promoter-Promoter edges touching it are kept, then
    Factor-Distal edges onto kept distal anchors and Factor-Promoter edges
    onto seeded or Promoter-Promoter promoters.
    """
    genes = set(str(g) for g in genes)
    edge_type = edges["Edge_type"]

    seeded = (edge_type == PROMOTER_GENE) & edges["Target"].isin(genes)
    promoters = set(edges.loc[seeded, "Source"])

    dp = (edge_type == DISTAL_PROMOTER) & edges["Target"].isin(promoters)
    pp = (edge_type == PROMOTER_PROMOTER) & (
        edges["Source"].isin(promoters) | edges["Target"].isin(promoters)
    )
    distal = set(edges.loc[dp, "Source"])
    linked = promoters | set(edges.loc[pp, "Source"]) | set(edges.loc[pp, "Target"])

    fd = (edge_type == FACTOR_DISTAL) & edges["Target"].isin(distal)
    fp = (edge_type == FACTOR_PROMOTER) & edges["Target"].isin(linked)

    return edges[seeded | dp | pp | fd | fp].reset_index(drop=True)


def derive_nodes(edges: pd.DataFrame) -> pd.DataFrame:
    """
    Node table for an edge view.

    A node reachable under several types takes the first of
    Factor > Distal > Promoter > Gene; rows are ordered by type, then by
    first appearance in the edge table.
    """
    def ends(edge_types, column):
        return edges.loc[edges["Edge_type"].isin(edge_types), column]

    by_type = {
        "Factor": [ends(FACTOR_EDGE_TYPES, "Source")],
        "Distal": [ends([FACTOR_DISTAL], "Target"), ends([DISTAL_PROMOTER], "Source")],
        "Promoter": [
            ends([FACTOR_PROMOTER, DISTAL_PROMOTER], "Target"),
            ends([PROMOTER_PROMOTER], "Source"),
            ends([PROMOTER_PROMOTER], "Target"),
            ends([PROMOTER_GENE], "Source"),
        ],
        "Gene": [ends([PROMOTER_GENE], "Target")],
    }

    frames = [
        pd.DataFrame({"Node": series.to_numpy(), "Node_type": node_type}, columns=NODE_COLUMNS)
        for node_type in NODE_TYPES
        for series in by_type[node_type]
    ]
    nodes = pd.concat(frames, ignore_index=True)
    return nodes.drop_duplicates("Node", keep="first").reset_index(drop=True)


def summarize_graph(views: GraphViews) -> Dict[str, Dict[str, int]]:
    """Edge counts per type for each view."""
    summary = {}
    for name, view in views.views().items():
        counts = view["Edge_type"].value_counts()
        summary[name] = {t: int(counts.get(t, 0)) for t in EDGE_TYPES}
    return summary
