"""
Anchor indexing for chromatin interaction calls.

Every 2D-bed row gets a stable 1-based ``interaction_id`` which is the only
join key used downstream, and is split into two single-anchor BED tables
that the interval-intersection and gene-annotation tools consume.
"""

import logging
from dataclasses import dataclass

import pandas as pd

from .exceptions import validate_dataframe
from .genomic_utils import ANCHOR_COLUMNS, INTERACTION_COLUMNS

logger = logging.getLogger(__name__)


@dataclass
class IndexedInteractions:
    """Indexed interaction table plus its two anchor tables."""

    interactions: pd.DataFrame
    anchor1: pd.DataFrame
    anchor2: pd.DataFrame

    def __len__(self) -> int:
        return len(self.interactions)


def index_interactions(interactions: pd.DataFrame) -> IndexedInteractions:
    """
    Assign interaction ids and split anchors.

    Args:
        interactions: DataFrame with the nine 2D-bed columns
            (chr1, start1, end1, chr2, start2, end2, contact_count,
            p_value, q_value)

    Returns:
        IndexedInteractions with ``interaction_id`` = 1..N in row order
    """
    validate_dataframe(interactions, "interaction table", required_columns=INTERACTION_COLUMNS)

    indexed = interactions[INTERACTION_COLUMNS].reset_index(drop=True).copy()
    indexed.insert(0, "interaction_id", pd.RangeIndex(1, len(indexed) + 1))
    indexed["interaction_id"] = indexed["interaction_id"].astype(int)

    anchor1 = _split_anchor(indexed, 1)
    anchor2 = _split_anchor(indexed, 2)

    logger.info(f"Indexed {len(indexed)} interactions")
    return IndexedInteractions(interactions=indexed, anchor1=anchor1, anchor2=anchor2)


def _split_anchor(indexed: pd.DataFrame, side: int) -> pd.DataFrame:
    """Single-anchor BED table (chr, start, end, interaction_id)."""
    anchor = indexed[[f"chr{side}", f"start{side}", f"end{side}", "interaction_id"]].copy()
    anchor.columns = ANCHOR_COLUMNS
    return anchor
