"""
Tab-separated table readers and writers for the pipeline seams.

Readers validate the columns each stage needs and raise FileFormatError
when a file cannot be parsed at all.
"""

import logging
from pathlib import Path
from typing import List, Union

import pandas as pd

from .exceptions import FileFormatError, validate_dataframe
from .genomic_utils import ANNOTATION_REQUIRED_COLUMNS, INTERACTION_COLUMNS, OVERLAP_COLUMNS

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _read_tsv(path: PathLike, name: str, **kwargs) -> pd.DataFrame:
    try:
        return pd.read_csv(path, sep="\t", **kwargs)
    except pd.errors.EmptyDataError:
        return None
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise FileFormatError(f"Could not parse {name} '{path}': {e}") from e


def read_interactions(path: PathLike) -> pd.DataFrame:
    """Read a 2D-bed interaction table (header row required)."""
    df = _read_tsv(path, "interaction table")
    if df is None:
        raise FileFormatError(f"Interaction table '{path}' has no header row")
    validate_dataframe(df, f"interaction table '{path}'", required_columns=INTERACTION_COLUMNS)
    logger.info(f"Read {len(df)} interactions from {path}")
    return df


def read_homer_annotation(path: PathLike) -> pd.DataFrame:
    """Read annotatePeaks.pl output; the row id column is kept as text."""
    df = _read_tsv(path, "annotation table", dtype={0: str})
    if df is None:
        raise FileFormatError(f"Annotation table '{path}' has no header row")
    validate_dataframe(df, f"annotation table '{path}'", required_columns=ANNOTATION_REQUIRED_COLUMNS)
    return df


def read_overlaps(path: PathLike) -> pd.DataFrame:
    """
    Read a bedtools ``intersect -wa -wb`` result (8 columns, no header).

    An empty file is a valid result with no overlaps.
    """
    df = _read_tsv(path, "overlap table", header=None, dtype={3: str})
    if df is None:
        return pd.DataFrame(columns=OVERLAP_COLUMNS)
    if df.shape[1] < len(OVERLAP_COLUMNS):
        raise FileFormatError(
            f"Overlap table '{path}' has {df.shape[1]} columns, expected {len(OVERLAP_COLUMNS)}"
        )
    df = df.iloc[:, : len(OVERLAP_COLUMNS)]
    df.columns = OVERLAP_COLUMNS
    # bedtools -loj writes "." / -1 for peaks without a hit
    df = df[df["anchor_chr"].astype(str) != "."].reset_index(drop=True)
    return df


def read_gene_list(path: PathLike) -> List[str]:
    """Read a single-column gene symbol list (no header)."""
    df = _read_tsv(path, "gene list", header=None, dtype=str)
    if df is None:
        return []
    genes = df.iloc[:, 0].dropna().str.strip()
    return [g for g in pd.unique(genes) if g]


def write_table(df: pd.DataFrame, path: PathLike, header: bool = True) -> Path:
    """Write a tab-separated table, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, sep="\t", index=False, header=header, na_rep="NA")
    return path
