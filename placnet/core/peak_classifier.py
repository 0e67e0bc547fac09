"""
Peak Classification Module

Assigns every binding peak of one factor to a gene, either through linear
proximity or through a chromatin loop:

- Promoter: peak within 2.5 kb of its nearest TSS
- Proximal_anno: peak within 10 kb of its nearest TSS
- Plac_anno: distal peak at a non-promoter anchor looping to a promoter anchor
- Distal_no_Interaction: everything else (optional fallback)

Each peak set is classified independently, so factors can be processed
in parallel and combined by concatenation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .exceptions import (
    InvalidParameterError,
    PeakClassificationError,
    validate_dataframe,
    validate_numeric_param,
)
from .genomic_utils import (
    ANNOTATION_REQUIRED_COLUMNS,
    OVERLAP_COLUMNS,
    PLAC,
    PROMOTER,
    PROXIMAL,
    TSS_DISTANCE,
    UNANNOTATED,
    annotation_column_name,
    homer_id_column,
)

logger = logging.getLogger(__name__)

GENE_COLUMNS = ["Gene_Name", "Entrez_ID", "Nearest_Refseq", "Nearest_Ensembl"]

OUTPUT_COLUMNS = [
    "Chr", "Start", "End", "Peak_ID", "Annotation", "Distance_to_TSS",
    "Gene_Name", "Entrez_ID", "Nearest_Refseq", "Nearest_Ensembl",
    "Overlap", "Interaction_ID", "Q-value",
]

ANNOTATION_ORDER = [PROMOTER, PROXIMAL, PLAC, UNANNOTATED]


class MultipleAnnotationMode(str, Enum):
    """How to handle a peak that ends up with more than one annotation row."""

    KEEP = "keep"
    QVALUE = "q-value"
    CONCENTRATE = "concentrate"


@dataclass
class ClassifierConfig:
    """Configuration for peak classification."""

    unannotated_fallback: bool = False
    multiple_annotation_mode: MultipleAnnotationMode = MultipleAnnotationMode.KEEP

    # Distance thresholds (bp, absolute distance to nearest TSS)
    promoter_distance: int = TSS_DISTANCE
    proximal_distance: int = 10000

    def __post_init__(self):
        try:
            self.multiple_annotation_mode = MultipleAnnotationMode(self.multiple_annotation_mode)
        except ValueError:
            raise InvalidParameterError(
                "multiple_annotation_mode",
                self.multiple_annotation_mode,
                ", ".join(m.value for m in MultipleAnnotationMode),
            )
        validate_numeric_param(self.promoter_distance, "promoter_distance", min_val=0)
        validate_numeric_param(
            self.proximal_distance, "proximal_distance", min_val=self.promoter_distance
        )


@dataclass
class ClassificationResult:
    """Annotated peak table and gene list for one factor."""

    factor: str
    annotated: pd.DataFrame
    genes: List[str] = field(default_factory=list)

    def gene_table(self) -> pd.DataFrame:
        """Single-column gene list table."""
        return pd.DataFrame({"Gene": self.genes})

    def summary(self) -> Dict[str, int]:
        return summarize_annotation(self.annotated)


class PeakClassifier:
    """
    Classify one factor's peaks against the unified interaction table.

    Holds only configuration; ``classify`` is a pure function of its inputs.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        self.config = config or ClassifierConfig()

    def classify(
        self,
        proximity: pd.DataFrame,
        overlaps1: pd.DataFrame,
        overlaps2: pd.DataFrame,
        interactions: pd.DataFrame,
        factor: str = "",
    ) -> ClassificationResult:
        """
        Classify a peak set.

        Args:
            proximity: annotatePeaks.pl output for the peaks
            overlaps1: peak x anchor1 intersections (OVERLAP_COLUMNS)
            overlaps2: peak x anchor2 intersections (OVERLAP_COLUMNS)
            interactions: unified interaction-annotation table
            factor: factor name, used for logging and the result label

        Returns:
            ClassificationResult with the resolved table and gene list
        """
        peaks = self._prepare_proximity(proximity, factor)

        candidates = pd.concat(
            [
                self._join_side(peaks, overlaps1, interactions, 1, factor),
                self._join_side(peaks, overlaps2, interactions, 2, factor),
            ],
            ignore_index=True,
        )
        candidates["Annotation"] = self._classify_distance(candidates["Distance_to_TSS"])

        proximal = self._proximal_set(candidates)
        distal = self._distal_set(candidates)
        annotated = pd.concat([proximal, distal], ignore_index=True)

        if self.config.unannotated_fallback:
            annotated = pd.concat(
                [annotated, self._unannotated_set(peaks, annotated)], ignore_index=True
            )
        else:
            dropped = (~peaks["Peak_ID"].isin(annotated["Peak_ID"])).sum()
            if dropped:
                logger.info(f"[{factor}] dropping {dropped} peaks without annotation")

        annotated = annotated.sort_values(
            ["_peak_order", "_rule", "Overlap", "Interaction_ID"],
            kind="mergesort",
            na_position="first",
        )
        annotated = annotated[OUTPUT_COLUMNS].reset_index(drop=True)
        annotated["Overlap"] = annotated["Overlap"].astype("float64").astype("Int64")
        annotated["Interaction_ID"] = annotated["Interaction_ID"].astype("float64").astype("Int64")

        # annotatePeaks.pl reports 1-based starts; emit BED-style starts
        annotated["Start"] = annotated["Start"] - 1

        mode = self.config.multiple_annotation_mode
        resolved = resolve_multiple_annotations(annotated, mode)
        if mode == MultipleAnnotationMode.CONCENTRATE:
            genes = _unique_values(
                resolved["Gene_Name"].dropna().astype(str).str.split(", ").explode()
            )
        else:
            genes = _unique_values(annotated["Gene_Name"])

        logger.info(
            f"[{factor}] {len(peaks)} peaks -> {len(resolved)} annotation rows, "
            f"{len(genes)} genes ({mode.value})"
        )
        return ClassificationResult(factor=factor, annotated=resolved, genes=genes)

    def _prepare_proximity(self, proximity: pd.DataFrame, factor: str) -> pd.DataFrame:
        """Rename annotator columns and record the input order of peaks."""
        validate_dataframe(
            proximity, f"{factor or 'peak'} proximity annotation",
            required_columns=ANNOTATION_REQUIRED_COLUMNS,
        )
        id_col = homer_id_column(proximity)
        peaks = proximity[[id_col] + ANNOTATION_REQUIRED_COLUMNS].copy()
        peaks.columns = ["Peak_ID"] + [annotation_column_name(c) for c in ANNOTATION_REQUIRED_COLUMNS]
        peaks["Peak_ID"] = peaks["Peak_ID"].astype(str)
        for col in ("Start", "End", "Distance_to_TSS"):
            peaks[col] = pd.to_numeric(peaks[col], errors="coerce")

        unannotated = peaks["Distance_to_TSS"].isna()
        if unannotated.any():
            raise PeakClassificationError(
                f"{factor or 'peak set'} has peaks without a nearest-TSS distance",
                keys=peaks.loc[unannotated, "Peak_ID"].tolist(),
            )

        peaks = peaks.drop_duplicates("Peak_ID").reset_index(drop=True)
        peaks["_peak_order"] = np.arange(len(peaks))
        return peaks

    def _join_side(
        self,
        peaks: pd.DataFrame,
        overlaps: pd.DataFrame,
        interactions: pd.DataFrame,
        side: int,
        factor: str,
    ) -> pd.DataFrame:
        """
        Join peaks to the anchors they overlap on one side.

        The partner anchor (the other side of the loop) provides the gene
        and TSS flag that an interaction-based annotation would use.
        """
        other = 2 if side == 1 else 1
        validate_dataframe(overlaps, f"anchor{side} overlaps", required_columns=OVERLAP_COLUMNS)
        validate_dataframe(
            interactions, "interaction annotation table",
            required_columns=["interaction_id", "q_value", f"TSS_{side}", f"TSS_{other}"]
            + [f"{c}_{other}" for c in GENE_COLUMNS],
        )

        hits = overlaps[["peak_name", "interaction_id"]].rename(columns={"peak_name": "Peak_ID"})
        hits = hits.assign(
            Peak_ID=hits["Peak_ID"].astype(str),
            interaction_id=pd.to_numeric(hits["interaction_id"], errors="coerce").astype("Int64"),
        ).drop_duplicates()

        orphans = ~hits["Peak_ID"].isin(peaks["Peak_ID"])
        if orphans.any():
            logger.warning(
                f"[{factor}] {orphans.sum()} anchor{side} overlaps reference peaks "
                f"missing from the proximity annotation"
            )

        partner = interactions[
            ["interaction_id", f"TSS_{side}", f"TSS_{other}", "q_value"]
            + [f"{c}_{other}" for c in GENE_COLUMNS]
        ].copy()
        partner.columns = (
            ["interaction_id", "Anchor_Overlap_TSS", "Anchor_Interaction_TSS", "Q-value"]
            + [f"Interaction_{c}" for c in GENE_COLUMNS]
        )
        partner["interaction_id"] = partner["interaction_id"].astype("Int64")

        joined = peaks.merge(hits, on="Peak_ID", how="left")
        joined = joined.merge(partner, on="interaction_id", how="left", validate="many_to_one")
        joined["Overlap"] = side
        return joined

    def _classify_distance(self, distance: pd.Series) -> np.ndarray:
        dist = distance.abs()
        return np.select(
            [dist <= self.config.promoter_distance, dist <= self.config.proximal_distance],
            [PROMOTER, PROXIMAL],
            default=PLAC,
        )

    def _proximal_set(self, candidates: pd.DataFrame) -> pd.DataFrame:
        """Promoter / Proximal_anno peaks keep their own nearest gene."""
        proximal = candidates[candidates["Annotation"].isin([PROMOTER, PROXIMAL])]
        proximal = proximal.drop_duplicates("Peak_ID").copy()
        proximal["Overlap"] = np.nan
        proximal["Interaction_ID"] = np.nan
        proximal["Q-value"] = np.nan
        proximal["_rule"] = 0
        return proximal

    def _distal_set(self, candidates: pd.DataFrame) -> pd.DataFrame:
        """Distal peaks at a non-TSS anchor looping to a TSS anchor take the partner's gene."""
        distal = candidates[
            (candidates["Annotation"] == PLAC)
            & (candidates["Anchor_Overlap_TSS"] == 0)
            & (candidates["Anchor_Interaction_TSS"] == 1)
        ].copy()
        for col in GENE_COLUMNS:
            distal[col] = distal[f"Interaction_{col}"]
        distal["Interaction_ID"] = distal["interaction_id"].astype("float64")
        distal = distal.drop_duplicates(["Peak_ID", "Interaction_ID"])
        distal["_rule"] = 1
        return distal

    def _unannotated_set(self, peaks: pd.DataFrame, annotated: pd.DataFrame) -> pd.DataFrame:
        rest = peaks[~peaks["Peak_ID"].isin(annotated["Peak_ID"])].copy()
        rest["Annotation"] = UNANNOTATED
        for col in GENE_COLUMNS:
            rest[col] = None
        rest["Overlap"] = np.nan
        rest["Interaction_ID"] = np.nan
        rest["Q-value"] = np.nan
        rest["_rule"] = 2
        return rest


# ============================================================================
# Multiple-annotation resolution
# ============================================================================


def resolve_multiple_annotations(
    table: pd.DataFrame,
    mode,
    peak_column: str = "Peak_ID",
) -> pd.DataFrame:
    """
    Resolve peaks that carry more than one annotation row.

    Args:
        table: annotated peak table, in its deterministic output order
        mode: MultipleAnnotationMode or its string value
        peak_column: column identifying a peak

    Returns:
        keep: the table unchanged
        q-value: one row per peak, smallest ``Q-value`` (nulls last, ties
            go to the earlier row); classify() passes rows sorted by peak
            order, rule, Overlap then Interaction_ID, so that is the order
        concentrate: one row per peak, each column the ", "-joined unique
            values in first-seen order
    """
    mode = MultipleAnnotationMode(mode)
    table = table.reset_index(drop=True)

    if mode == MultipleAnnotationMode.KEEP or table.empty:
        return table.copy()

    if mode == MultipleAnnotationMode.QVALUE:
        ranked = table.assign(
            _q=pd.to_numeric(table["Q-value"], errors="coerce"),
            _row=np.arange(len(table)),
        )
        best = ranked.sort_values(["_q", "_row"], na_position="last", kind="mergesort")
        best = best.drop_duplicates(peak_column, keep="first").sort_values("_row")
        return best.drop(columns=["_q", "_row"]).reset_index(drop=True)

    rows = [
        {col: peak if col == peak_column else _join_unique(group[col]) for col in table.columns}
        for peak, group in table.groupby(peak_column, sort=False)
    ]
    return pd.DataFrame(rows, columns=table.columns)


def _format_value(value) -> str:
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value)


def _join_unique(values: pd.Series) -> Optional[str]:
    seen = []
    for value in values:
        if pd.isna(value):
            continue
        text = _format_value(value)
        if text not in seen:
            seen.append(text)
    return ", ".join(seen) if seen else None


def _unique_values(values: pd.Series) -> List[str]:
    """Unique non-null values in first-seen order."""
    return [str(v) for v in pd.unique(values.dropna()) if str(v) != ""]


def summarize_annotation(table: pd.DataFrame) -> Dict[str, int]:
    """Count annotation rows per tag; concentrated rows count once per tag they list."""
    tags = table["Annotation"].dropna().astype(str).str.split(", ").explode()
    counts = tags.value_counts()
    return {tag: int(counts.get(tag, 0)) for tag in ANNOTATION_ORDER}
