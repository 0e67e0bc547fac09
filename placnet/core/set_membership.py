"""
Set Membership Module

Turns factor incidence edges into the tables behind UpSet and chord
plots:

- Membership matrix: one row per promoter or distal anchor, one boolean
  column per factor
- Combination counts: number of anchors per combination of factors
- Category labels: ``Promoter_True_False_...`` strings per anchor
- Category cross-tab: Distal-Promoter loops counted by the categories of
  their two anchors
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

import pandas as pd

from .exceptions import MembershipError, validate_dataframe
from .genomic_utils import DISTAL_PROMOTER, EDGE_COLUMNS, FACTOR_DISTAL, FACTOR_PROMOTER
from .interaction_graph import GraphViews, edges_of_type

logger = logging.getLogger(__name__)

REGION_KINDS = {"Promoter": FACTOR_PROMOTER, "Distal": FACTOR_DISTAL}


def ordered_factors(factors: Iterable[str]) -> List[str]:
    """Factor names sorted once; every table uses this column order."""
    return sorted(set(str(f) for f in factors))


def membership_matrix(edges: pd.DataFrame, factors: Iterable[str]) -> pd.DataFrame:
    """
    Boolean region x factor matrix from Factor-* edges.

    Args:
        edges: edges whose Source is a factor and Target a region
        factors: every factor name to report as a column

    Returns:
        DataFrame with ``Region`` and one bool column per factor; a region
        bound by the same factor more than once is a single True
    """
    validate_dataframe(edges, "factor edges", required_columns=EDGE_COLUMNS)
    factors = ordered_factors(factors)

    unknown = sorted(set(edges["Source"].astype(str)) - set(factors))
    if unknown:
        raise MembershipError("edges reference factors outside the factor list", keys=unknown)

    if edges.empty:
        matrix = pd.DataFrame({"Region": pd.Series(dtype=object)})
        for factor in factors:
            matrix[factor] = pd.Series(dtype=bool)
        return matrix

    matrix = pd.crosstab(edges["Target"].astype(str), edges["Source"].astype(str)) > 0
    matrix = matrix.reindex(columns=factors, fill_value=False).astype(bool)
    matrix.index.name = "Region"
    matrix.columns.name = None
    return matrix.reset_index()


def membership_counts(matrix: pd.DataFrame, factors: Iterable[str]) -> pd.DataFrame:
    """Number of regions for each combination of factor columns."""
    factors = ordered_factors(factors)
    if matrix.empty or not factors:
        return pd.DataFrame(columns=factors + ["Count"])
    counts = matrix.groupby(factors).size().reset_index(name="Count")
    return counts.sort_values("Count", ascending=False, kind="mergesort").reset_index(drop=True)


def category_labels(matrix: pd.DataFrame, factors: Iterable[str], kind: str) -> pd.DataFrame:
    """
    Literal category per region, e.g. ``Promoter_True_False`` for two factors.

    Args:
        matrix: membership matrix
        factors: factor names (sorted before use)
        kind: "Promoter" or "Distal"
    """
    factors = ordered_factors(factors)
    if matrix.empty:
        return pd.DataFrame(columns=["Region", "Category"])
    flags = matrix[factors].astype(bool).astype(str)
    labels = kind + "_" + flags.apply(lambda row: "_".join(row), axis=1)
    return pd.DataFrame({"Region": matrix["Region"].to_numpy(), "Category": labels.to_numpy()})


def category_crosstab(
    loops: pd.DataFrame,
    promoter_labels: pd.DataFrame,
    distal_labels: pd.DataFrame,
) -> pd.DataFrame:
    """
    Count Distal-Promoter loops by (promoter category, distal category).

    Anchors without any factor get ``Promoter_NoBinding`` / ``Distal_NoBinding``.
    """
    loops = edges_of_type(loops, DISTAL_PROMOTER)
    if loops.empty:
        return pd.DataFrame(columns=["Promoter_Category"])

    promoter = dict(zip(promoter_labels["Region"], promoter_labels["Category"]))
    distal = dict(zip(distal_labels["Region"], distal_labels["Category"]))
    pairs = pd.DataFrame({
        "Promoter_Category": loops["Target"].map(promoter).fillna("Promoter_NoBinding"),
        "Distal_Category": loops["Source"].map(distal).fillna("Distal_NoBinding"),
    })
    table = pd.crosstab(pairs["Promoter_Category"], pairs["Distal_Category"])
    table.columns.name = None
    return table.reset_index()


@dataclass
class MembershipResults:
    """Membership matrices, combination counts and cross-tabs per view."""

    factors: List[str]
    matrices: Dict[str, pd.DataFrame] = field(default_factory=dict)
    counts: Dict[str, pd.DataFrame] = field(default_factory=dict)
    labels: Dict[str, pd.DataFrame] = field(default_factory=dict)
    crosstabs: Dict[str, pd.DataFrame] = field(default_factory=dict)


class SetMembershipAggregator:
    """Build membership and category tables for the all and gene graph views."""

    VIEWS = ("all", "gene")

    def aggregate(self, graph: GraphViews, factors: Iterable[str]) -> MembershipResults:
        factors = ordered_factors(factors)
        results = MembershipResults(factors=factors)

        for view in self.VIEWS:
            edges = graph.views()[view]
            for kind, edge_type in REGION_KINDS.items():
                key = f"{kind.lower()}_{view}"
                matrix = membership_matrix(edges_of_type(edges, edge_type), factors)
                results.matrices[key] = matrix
                results.counts[key] = membership_counts(matrix, factors)
                results.labels[key] = category_labels(matrix, factors, kind)

            results.crosstabs[view] = category_crosstab(
                edges,
                results.labels[f"promoter_{view}"],
                results.labels[f"distal_{view}"],
            )
            logger.info(
                f"Membership '{view}': {len(results.matrices[f'promoter_{view}'])} promoters, "
                f"{len(results.matrices[f'distal_{view}'])} distal anchors"
            )

        return results
