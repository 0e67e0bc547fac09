"""
Anchor Annotation Merge Module

Joins the per-anchor nearest-gene annotations back onto the indexed
interaction table, producing the unified interaction-annotation table that
the peak classifier and the graph builder both read.
"""

import logging
from typing import List

import pandas as pd

from .exceptions import AnnotationMergeError, validate_dataframe
from .genomic_utils import (
    ANNOTATION_OPTIONAL_COLUMNS,
    ANNOTATION_REQUIRED_COLUMNS,
    INTERACTION_COLUMNS,
    TSS_DISTANCE,
    annotation_column_name,
    homer_id_column,
    tss_flag,
)

logger = logging.getLogger(__name__)


def annotation_columns(raw: pd.DataFrame) -> List[str]:
    """HOMER columns present in ``raw`` that are carried into the unified table."""
    optional = [c for c in ANNOTATION_OPTIONAL_COLUMNS if c in raw.columns]
    return ANNOTATION_REQUIRED_COLUMNS + optional


def prepare_anchor_annotation(raw: pd.DataFrame, side: int) -> pd.DataFrame:
    """
    Key an anchor annotation table by interaction id and suffix its columns.

    Args:
        raw: annotatePeaks.pl output for one anchor BED; its row id is the
            interaction id written by the anchor indexer
        side: 1 or 2

    Returns:
        DataFrame with ``interaction_id`` and ``<Column>_<side>`` columns
    """
    name = f"anchor{side} annotation"
    validate_dataframe(raw, name, required_columns=ANNOTATION_REQUIRED_COLUMNS)

    id_col = homer_id_column(raw)
    cols = annotation_columns(raw)
    prepared = raw[[id_col] + cols].copy()
    prepared.columns = ["interaction_id"] + [f"{annotation_column_name(c)}_{side}" for c in cols]

    ids = pd.to_numeric(prepared["interaction_id"], errors="coerce")
    if ids.isna().any():
        bad = prepared.loc[ids.isna(), "interaction_id"].tolist()
        raise AnnotationMergeError(f"non-integer row ids in {name}", keys=bad)
    prepared["interaction_id"] = ids.astype(int)

    dupes = prepared["interaction_id"].duplicated(keep=False)
    if dupes.any():
        raise AnnotationMergeError(
            f"{name} has more than one row per interaction",
            keys=sorted(prepared.loc[dupes, "interaction_id"].unique().tolist()),
        )

    return prepared


def merge_anchor_annotations(
    interactions: pd.DataFrame,
    anchor1_annotation: pd.DataFrame,
    anchor2_annotation: pd.DataFrame,
    tss_distance: int = TSS_DISTANCE,
) -> pd.DataFrame:
    """
    Build the unified interaction-annotation table.

    Both annotations are aligned to the interaction ids with a left join,
    so the output has exactly one row per interaction. Interactions whose
    anchor was not annotated keep null annotation columns and a TSS flag
    of 0.

    Args:
        interactions: indexed interaction table (``interaction_id`` + 2D-bed columns)
        anchor1_annotation: raw annotation of anchor 1
        anchor2_annotation: raw annotation of anchor 2
        tss_distance: max absolute distance to TSS for an anchor to count as a promoter

    Returns:
        Unified table with ``TSS_1`` / ``TSS_2`` as 0/1 ints
    """
    validate_dataframe(
        interactions, "indexed interaction table",
        required_columns=["interaction_id"] + INTERACTION_COLUMNS,
    )

    merged = interactions[["interaction_id"] + INTERACTION_COLUMNS].copy()
    known_ids = set(merged["interaction_id"])

    for side, raw in ((1, anchor1_annotation), (2, anchor2_annotation)):
        prepared = prepare_anchor_annotation(raw, side)

        orphans = prepared.loc[~prepared["interaction_id"].isin(known_ids), "interaction_id"]
        if len(orphans) > 0:
            logger.warning(
                f"Ignoring {len(orphans)} anchor{side} annotations with unknown interaction ids"
            )

        merged = merged.merge(prepared, on="interaction_id", how="left", validate="one_to_one")

        missing = merged[f"Distance_to_TSS_{side}"].isna().sum()
        if missing:
            logger.warning(f"{missing} interactions have no anchor{side} annotation")

    if len(merged) != len(interactions):
        raise AnnotationMergeError(
            f"row count changed from {len(interactions)} to {len(merged)}"
        )

    merged["TSS_1"] = tss_flag(merged["Distance_to_TSS_1"], tss_distance)
    merged["TSS_2"] = tss_flag(merged["Distance_to_TSS_2"], tss_distance)

    logger.info(
        f"Merged annotations for {len(merged)} interactions "
        f"({int(merged['TSS_1'].sum())} anchor1 / {int(merged['TSS_2'].sum())} anchor2 at TSS)"
    )
    return merged
