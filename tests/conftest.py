"""
Shared test fixtures for PlacNet test suite.

The scenario used throughout:

    loop 1: chr1:100-200 (distal, GENE_A) <-> chr1:5000-5100 (TSS, GENE_B), q=0.01
    loop 2: chr1:100-200 (distal, GENE_A) <-> chr1:9000-9100 (TSS, GENE_C), q=0.04
    loop 3: chr2:1000-1100 (TSS, GENE_D) <-> chr2:8000-8100 (TSS, GENE_E), q=0.001

CTCF peaks:

    p1  distal (50 kb) at the chr1:100-200 anchor of loops 1 and 2
    p2  promoter (2 kb), at the chr1:5000-5100 anchor of loop 1
    p3  proximal (5 kb), no loop
    p4  distal, no loop
    p5  distal, at the promoter anchor chr2:1000-1100 of loop 3
"""

import tempfile
from pathlib import Path

import pandas as pd
import pytest

from placnet.core.anchors import index_interactions
from placnet.core.annotation_merge import merge_anchor_annotations
from placnet.core.genomic_utils import INTERACTION_COLUMNS, OVERLAP_COLUMNS

HOMER_ID = "PeakID (cmd=annotatePeaks.pl anchors.bed hg38)"


def homer_table(rows):
    """annotatePeaks.pl-style table from (id, chr, start, end, distance, gene) tuples."""
    return pd.DataFrame({
        HOMER_ID: [str(r[0]) for r in rows],
        "Chr": [r[1] for r in rows],
        "Start": [r[2] for r in rows],
        "End": [r[3] for r in rows],
        "Strand": ["+"] * len(rows),
        "Annotation": ["Intergenic"] * len(rows),
        "Distance to TSS": [r[4] for r in rows],
        "Entrez ID": [f"E{r[5]}" if r[5] else None for r in rows],
        "Nearest Refseq": [f"NM_{r[5]}" if r[5] else None for r in rows],
        "Nearest Ensembl": [f"ENSG_{r[5]}" if r[5] else None for r in rows],
        "Gene Name": [r[5] for r in rows],
    })


def overlap_table(rows):
    """bedtools -wa -wb style overlap table."""
    return pd.DataFrame(rows, columns=OVERLAP_COLUMNS)


# ============================================================================
# Interactions
# ============================================================================


@pytest.fixture
def raw_interactions():
    """Three loops in 2D-bed layout."""
    return pd.DataFrame({
        "chr1": ["chr1", "chr1", "chr2"],
        "start1": [100, 100, 1000],
        "end1": [200, 200, 1100],
        "chr2": ["chr1", "chr1", "chr2"],
        "start2": [5000, 9000, 8000],
        "end2": [5100, 9100, 8100],
        "contact_count": [12, 8, 30],
        "p_value": [0.001, 0.004, 0.0001],
        "q_value": [0.01, 0.04, 0.001],
    })


@pytest.fixture
def anchor1_annotation():
    return homer_table([
        (1, "chr1", 101, 200, 20000, "GENE_A"),
        (2, "chr1", 101, 200, 20000, "GENE_A"),
        (3, "chr2", 1001, 1100, 100, "GENE_D"),
    ])


@pytest.fixture
def anchor2_annotation():
    return homer_table([
        (1, "chr1", 5001, 5100, -300, "GENE_B"),
        (2, "chr1", 9001, 9100, 1000, "GENE_C"),
        (3, "chr2", 8001, 8100, 2500, "GENE_E"),
    ])


@pytest.fixture
def indexed(raw_interactions):
    return index_interactions(raw_interactions)


@pytest.fixture
def unified(indexed, anchor1_annotation, anchor2_annotation):
    """Unified interaction-annotation table for the three loops."""
    return merge_anchor_annotations(indexed.interactions, anchor1_annotation, anchor2_annotation)


@pytest.fixture
def distal_loop():
    """One loop chr3:100-200 <-> chr3:9000-9100 with neither anchor at a TSS."""
    raw = pd.DataFrame(
        [["chr3", 100, 200, "chr3", 9000, 9100, 4, 0.002, 0.02]],
        columns=INTERACTION_COLUMNS,
    )
    return merge_anchor_annotations(
        index_interactions(raw).interactions,
        homer_table([(1, "chr3", 101, 200, 40000, "GENE_P")]),
        homer_table([(1, "chr3", 9001, 9100, -60000, "GENE_Q")]),
    )


# ============================================================================
# Peaks
# ============================================================================


@pytest.fixture
def ctcf_proximity():
    return homer_table([
        ("p1", "chr1", 141, 160, 50000, "GENE_A"),
        ("p2", "chr1", 5041, 5060, 2000, "GENE_B"),
        ("p3", "chr3", 501, 600, 5000, "GENE_F"),
        ("p4", "chr3", 9001, 9100, 80000, "GENE_G"),
        ("p5", "chr2", 1041, 1060, 30000, "GENE_H"),
    ])


@pytest.fixture
def ctcf_overlaps1():
    return overlap_table([
        ["chr1", 141, 160, "p1", "chr1", 100, 200, 1],
        ["chr1", 141, 160, "p1", "chr1", 100, 200, 2],
        ["chr2", 1041, 1060, "p5", "chr2", 1000, 1100, 3],
    ])


@pytest.fixture
def ctcf_overlaps2():
    return overlap_table([
        ["chr1", 5041, 5060, "p2", "chr1", 5000, 5100, 1],
    ])


@pytest.fixture
def empty_overlaps():
    return overlap_table([])


# ============================================================================
# Genome-wide factor overlaps
# ============================================================================


@pytest.fixture
def genome_overlaps1():
    return overlap_table([
        ["chr1", 141, 160, "CTCF", "chr1", 100, 200, 1],
        ["chr1", 141, 160, "CTCF", "chr1", 100, 200, 2],
        ["chr2", 1041, 1060, "CTCF", "chr2", 1000, 1100, 3],
        ["chr1", 151, 170, "YY1", "chr1", 100, 200, 1],
    ])


@pytest.fixture
def genome_overlaps2():
    return overlap_table([
        ["chr1", 5041, 5060, "CTCF", "chr1", 5000, 5100, 1],
        ["chr2", 8041, 8060, "YY1", "chr2", 8000, 8100, 3],
    ])


# ============================================================================
# Temporary files
# ============================================================================


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that gets cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def input_files(
    temp_dir, raw_interactions, anchor1_annotation, anchor2_annotation,
    ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2, genome_overlaps1, genome_overlaps2,
):
    """Write the scenario to disk in the upstream tools' formats."""
    paths = {
        "interactions": temp_dir / "loops.txt",
        "anchor1_annotation": temp_dir / "anchor1.anno.txt",
        "anchor2_annotation": temp_dir / "anchor2.anno.txt",
        "ctcf_proximity": temp_dir / "ctcf.anno.txt",
        "ctcf_overlaps1": temp_dir / "ctcf.anchor1.bed",
        "ctcf_overlaps2": temp_dir / "ctcf.anchor2.bed",
        "genome_overlaps1": temp_dir / "all.anchor1.bed",
        "genome_overlaps2": temp_dir / "all.anchor2.bed",
        "gene_list": temp_dir / "genes.txt",
    }
    raw_interactions.to_csv(paths["interactions"], sep="\t", index=False)
    anchor1_annotation.to_csv(paths["anchor1_annotation"], sep="\t", index=False)
    anchor2_annotation.to_csv(paths["anchor2_annotation"], sep="\t", index=False)
    ctcf_proximity.to_csv(paths["ctcf_proximity"], sep="\t", index=False)
    for key, df in [
        ("ctcf_overlaps1", ctcf_overlaps1),
        ("ctcf_overlaps2", ctcf_overlaps2),
        ("genome_overlaps1", genome_overlaps1),
        ("genome_overlaps2", genome_overlaps2),
    ]:
        df.to_csv(paths[key], sep="\t", index=False, header=False)
    paths["gene_list"].write_text("GENE_C\n")
    return paths


# ============================================================================
# API
# ============================================================================


@pytest.fixture
def api_client(temp_dir, monkeypatch):
    """TestClient with results written under a temporary directory."""
    from fastapi.testclient import TestClient

    from placnet.config import settings
    from placnet.main import app

    monkeypatch.setattr(settings, "results_dir", temp_dir / "results")
    with TestClient(app) as client:
        yield client


@pytest.fixture
def run_payload(input_files, temp_dir):
    """POST /runs body for the shared scenario."""
    return {
        "interactions": str(input_files["interactions"]),
        "anchor1_annotation": str(input_files["anchor1_annotation"]),
        "anchor2_annotation": str(input_files["anchor2_annotation"]),
        "genome_overlaps1": str(input_files["genome_overlaps1"]),
        "genome_overlaps2": str(input_files["genome_overlaps2"]),
        "factors": [
            {
                "name": "CTCF",
                "proximity": str(input_files["ctcf_proximity"]),
                "overlaps1": str(input_files["ctcf_overlaps1"]),
                "overlaps2": str(input_files["ctcf_overlaps2"]),
            }
        ],
        "gene_list": str(input_files["gene_list"]),
        "output_dir": str(temp_dir / "api_out"),
    }
