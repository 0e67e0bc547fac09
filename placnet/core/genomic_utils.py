"""
Shared genomic utilities for PlacNet.

Holds the column schemas that every stage agrees on, the anchor/peak
coordinate-string helpers used as graph node identifiers, and the TSS
flag derivation shared by the merger and the classifier.
"""

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# ============================================================================
# Column schemas
# ============================================================================

INTERACTION_COLUMNS = [
    "chr1", "start1", "end1",
    "chr2", "start2", "end2",
    "contact_count", "p_value", "q_value",
]

ANCHOR_COLUMNS = ["chr", "start", "end", "interaction_id"]

# HOMER annotatePeaks.pl columns every annotation table must expose
ANNOTATION_REQUIRED_COLUMNS = [
    "Chr", "Start", "End", "Distance to TSS",
    "Entrez ID", "Nearest Refseq", "Nearest Ensembl", "Gene Name",
]

# Carried through when the annotator reports them
ANNOTATION_OPTIONAL_COLUMNS = [
    "Strand", "Peak Score", "Focus Ratio/Region Size", "Annotation",
    "Detailed Annotation", "Nearest PromoterID", "Nearest Unigene",
    "Gene Alias", "Gene Description", "Gene Type",
]

# bedtools intersect -wa -wb of peaks against an anchor BED
OVERLAP_COLUMNS = [
    "peak_chr", "peak_start", "peak_end", "peak_name",
    "anchor_chr", "anchor_start", "anchor_end", "interaction_id",
]

EDGE_COLUMNS = ["Source", "Target", "Edge_score", "Edge_type"]
NODE_COLUMNS = ["Node", "Node_type"]

# ============================================================================
# Literal tags (compatibility surface)
# ============================================================================

PROMOTER = "Promoter"
PROXIMAL = "Proximal_anno"
PLAC = "Plac_anno"
UNANNOTATED = "Distal_no_Interaction"

FACTOR_DISTAL = "Factor-Distal"
FACTOR_PROMOTER = "Factor-Promoter"
DISTAL_PROMOTER = "Distal-Promoter"
PROMOTER_PROMOTER = "Promoter-Promoter"
PROMOTER_GENE = "Promoter-Gene"

EDGE_TYPES = [FACTOR_DISTAL, FACTOR_PROMOTER, DISTAL_PROMOTER, PROMOTER_PROMOTER, PROMOTER_GENE]

# Default TSS window in bp
TSS_DISTANCE = 2500


def annotation_column_name(column: str) -> str:
    """Turn a HOMER header ("Distance to TSS") into a table-safe name."""
    return column.strip().replace("/", "_").replace(" ", "_")


def detect_column(df: pd.DataFrame, candidates: List[str], required: bool = False) -> Optional[str]:
    """Find the first matching column name from a list of candidates.

    Matching is case-insensitive and also accepts a column that starts with
    the candidate, which covers HOMER's ``PeakID (cmd=annotatePeaks.pl ...)``
    header.
    """
    cols_lower = {str(c).lower(): c for c in df.columns}
    for cand in candidates:
        if cand.lower() in cols_lower:
            return cols_lower[cand.lower()]
    for cand in candidates:
        for low, col in cols_lower.items():
            if low.startswith(cand.lower()):
                return col
    if required:
        raise ValueError(
            f"Could not find any of {candidates} in columns: {list(df.columns)}"
        )
    return None


def homer_id_column(df: pd.DataFrame) -> str:
    """Return the annotator's row-id column (``PeakID ...`` or the first column)."""
    col = detect_column(df, ["PeakID", "Peak_ID", "interaction_id"])
    if col is None:
        col = df.columns[0]
    return col


def coordinate_string(chrom: pd.Series, start: pd.Series, end: pd.Series) -> pd.Series:
    """Build ``chr:start-end`` identifiers element-wise.

    Rows with a missing chromosome give a null identifier.
    """
    if len(chrom) == 0:
        return pd.Series([], dtype=object, index=chrom.index)
    ids = (
        chrom.astype(str)
        + ":"
        + _int_str(start)
        + "-"
        + _int_str(end)
    )
    return ids.where(chrom.notna(), None)


def _int_str(values: pd.Series) -> pd.Series:
    return pd.to_numeric(values, errors="coerce").astype("Int64").astype(str)


def tss_flag(distance: pd.Series, threshold: int = TSS_DISTANCE) -> pd.Series:
    """0/1 flag for ``|distance| <= threshold``; missing distances give 0."""
    dist = pd.to_numeric(distance, errors="coerce")
    return (dist.abs() <= threshold).astype(int)


def neg_log10(values: pd.Series, floor: float) -> pd.Series:
    """``-log10`` with values below ``floor`` clamped to ``floor``."""
    clipped = np.maximum(pd.to_numeric(values, errors="coerce").to_numpy(dtype=float), floor)
    return pd.Series(-np.log10(clipped), index=values.index)
