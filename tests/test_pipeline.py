"""
Integration tests for the annotation pipeline.

Runs every stage on the shared scenario, both from in-memory tables and
from files in the upstream tools' formats.
"""

import pandas as pd
import pytest

from placnet.core.exceptions import PipelineConfigError
from placnet.core.genomic_utils import INTERACTION_COLUMNS
from placnet.core.peak_classifier import ClassifierConfig, MultipleAnnotationMode
from placnet.core.pipeline import (
    FactorPeakFiles,
    PipelineConfig,
    PipelineInputs,
    classify_factors,
    prepare_anchors,
    run_pipeline,
    run_pipeline_frames,
)

from conftest import homer_table, overlap_table


@pytest.fixture
def inputs(input_files):
    return PipelineInputs(
        interactions=str(input_files["interactions"]),
        anchor1_annotation=str(input_files["anchor1_annotation"]),
        anchor2_annotation=str(input_files["anchor2_annotation"]),
        genome_overlaps1=str(input_files["genome_overlaps1"]),
        genome_overlaps2=str(input_files["genome_overlaps2"]),
        factors=[
            FactorPeakFiles(
                name="CTCF",
                proximity=str(input_files["ctcf_proximity"]),
                overlaps1=str(input_files["ctcf_overlaps1"]),
                overlaps2=str(input_files["ctcf_overlaps2"]),
            )
        ],
        gene_list=str(input_files["gene_list"]),
    )


@pytest.fixture
def frame_kwargs(
    raw_interactions, anchor1_annotation, anchor2_annotation,
    ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2, genome_overlaps1, genome_overlaps2,
):
    return dict(
        interactions=raw_interactions,
        anchor1_annotation=anchor1_annotation,
        anchor2_annotation=anchor2_annotation,
        factor_tables={"CTCF": (ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2)},
        genome_overlaps1=genome_overlaps1,
        genome_overlaps2=genome_overlaps2,
    )


class TestPipelineConfig:

    def test_defaults_from_settings(self):
        config = PipelineConfig()
        assert config.prefix == "placnet"
        assert config.tss_distance == 2500
        assert config.proximal_distance == 10000
        assert config.multiple_annotation_mode == MultipleAnnotationMode.KEEP

    def test_mode_from_string(self):
        config = PipelineConfig(multiple_annotation_mode="concentrate")
        assert config.multiple_annotation_mode == MultipleAnnotationMode.CONCENTRATE
        assert config.classifier_config().multiple_annotation_mode == MultipleAnnotationMode.CONCENTRATE

    def test_unknown_mode(self):
        with pytest.raises(PipelineConfigError):
            PipelineConfig(multiple_annotation_mode="best")

    @pytest.mark.parametrize("prefix", ["", "runs/a"])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(PipelineConfigError):
            PipelineConfig(prefix=prefix)

    def test_invalid_workers(self):
        with pytest.raises(PipelineConfigError):
            PipelineConfig(max_workers=0)


class TestRunPipelineFrames:

    def test_stages(self, frame_kwargs):
        results = run_pipeline_frames(**frame_kwargs, genes=["GENE_C"])
        assert len(results.indexed) == 3
        assert results.interactions["TSS_1"].tolist() == [0, 0, 1]
        assert results.interactions["TSS_2"].tolist() == [1, 1, 1]
        assert results.classifications["CTCF"].genes == ["GENE_B", "GENE_C", "GENE_F"]
        assert len(results.graph.all) == 12
        assert results.membership.factors == ["CTCF", "YY1"]

    def test_summary(self, frame_kwargs):
        summary = run_pipeline_frames(**frame_kwargs, genes=["GENE_C"]).summary()
        assert summary["interactions"] == 3
        assert summary["promoter_anchors"] == 4
        assert summary["annotation"]["CTCF"] == {
            "Promoter": 1, "Proximal_anno": 1, "Plac_anno": 2, "Distal_no_Interaction": 0,
        }
        assert summary["genes"] == {"CTCF": 3}
        assert summary["edges"]["gene"]["Distal-Promoter"] == 1

    def test_gene_list_defaults_to_annotated_genes(self, frame_kwargs):
        results = run_pipeline_frames(**frame_kwargs)
        assert results.genes == ["GENE_B", "GENE_C", "GENE_F"]
        targets = set(results.graph.gene.loc[results.graph.gene["Edge_type"] == "Promoter-Gene", "Target"])
        assert targets == {"GENE_B", "GENE_C"}

    def test_fallback_and_mode_flow_through(self, frame_kwargs):
        config = PipelineConfig(unannotated_fallback=True, multiple_annotation_mode="q-value")
        results = run_pipeline_frames(**frame_kwargs, config=config)
        annotated = results.classifications["CTCF"].annotated
        assert annotated["Peak_ID"].is_unique
        assert "Distal_no_Interaction" in set(annotated["Annotation"])

    def test_combined_annotation(self, frame_kwargs):
        results = run_pipeline_frames(**frame_kwargs)
        combined = results.combined_annotation()
        assert combined.columns[0] == "Factor"
        assert (combined["Factor"] == "CTCF").all()
        assert len(combined) == len(results.classifications["CTCF"].annotated)

    def test_no_factors(self, frame_kwargs):
        frame_kwargs["factor_tables"] = {}
        results = run_pipeline_frames(**frame_kwargs)
        assert results.genes == []
        assert results.combined_annotation().empty
        assert results.graph.gene.empty

    def test_single_promoter_peak(self):
        """One loop, one peak at a TSS anchor: promoter-only network."""
        loops = pd.DataFrame(
            [["chr1", 100, 200, "chr2", 5000, 5100, 5, 0.001, 0.01]], columns=INTERACTION_COLUMNS
        )
        results = run_pipeline_frames(
            interactions=loops,
            anchor1_annotation=homer_table([(1, "chr1", 101, 200, 0, "GENE_A")]),
            anchor2_annotation=homer_table([(1, "chr2", 5001, 5100, 40000, "GENE_Z")]),
            factor_tables={
                "CTCF": (
                    homer_table([("p1", "chr1", 141, 160, 0, "GENE_A")]),
                    overlap_table([["chr1", 141, 160, "p1", "chr1", 100, 200, 1]]),
                    overlap_table([]),
                )
            },
            genome_overlaps1=overlap_table([["chr1", 141, 160, "CTCF", "chr1", 100, 200, 1]]),
            genome_overlaps2=overlap_table([]),
        )
        annotated = results.classifications["CTCF"].annotated
        assert annotated["Annotation"].tolist() == ["Promoter"]
        assert annotated["Start"].tolist() == [140]
        assert results.classifications["CTCF"].genes == ["GENE_A"]
        assert results.graph.factor_distal().empty
        edges = set(zip(results.graph.all["Source"], results.graph.all["Target"], results.graph.all["Edge_type"]))
        assert edges == {
            ("CTCF", "chr1:100-200", "Factor-Promoter"),
            ("chr2:5000-5100", "chr1:100-200", "Distal-Promoter"),
            ("chr1:100-200", "GENE_A", "Promoter-Gene"),
        }


class TestClassifyFactors:

    def test_results_in_input_order(self, unified, ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2, empty_overlaps):
        tables = {
            "YY1": (ctcf_proximity, empty_overlaps, empty_overlaps),
            "CTCF": (ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2),
            "ATF3": (ctcf_proximity.iloc[:1], empty_overlaps, empty_overlaps),
        }
        results = classify_factors(tables, unified, ClassifierConfig(), max_workers=3)
        assert list(results) == ["YY1", "CTCF", "ATF3"]
        assert results["CTCF"].factor == "CTCF"
        assert "Plac_anno" not in set(results["YY1"].annotated["Annotation"])

    def test_parallel_matches_serial(self, unified, ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2):
        tables = {
            name: (ctcf_proximity, ctcf_overlaps1, ctcf_overlaps2) for name in ("A", "B", "C", "D")
        }
        serial = classify_factors(tables, unified, ClassifierConfig(), max_workers=1)
        parallel = classify_factors(tables, unified, ClassifierConfig(), max_workers=4)
        for name in tables:
            pd.testing.assert_frame_equal(serial[name].annotated, parallel[name].annotated)


class TestRunPipeline:

    def test_writes_outputs(self, inputs, temp_dir):
        config = PipelineConfig(prefix="run1", output_dir=str(temp_dir / "out"))
        results, outputs = run_pipeline(inputs, config)

        assert len(outputs) == 22
        for path in outputs.values():
            assert path.startswith(str(temp_dir / "out" / "run1_"))
        assert results.genes == ["GENE_C"]

    def test_edge_tables_on_disk(self, inputs, temp_dir):
        config = PipelineConfig(output_dir=str(temp_dir))
        results, outputs = run_pipeline(inputs, config)

        edges = pd.read_csv(outputs["edges_all"], sep="\t")
        assert list(edges.columns) == ["Source", "Target", "Edge_score", "Edge_type"]
        assert len(edges) == len(results.graph.all)
        nodes = pd.read_csv(outputs["nodes_gene"], sep="\t")
        assert set(nodes["Node_type"]) == {"Factor", "Distal", "Promoter", "Gene"}

    def test_gene_table_headerless(self, inputs, temp_dir):
        _, outputs = run_pipeline(inputs, PipelineConfig(output_dir=str(temp_dir)))
        with open(outputs["CTCF_genes"]) as fh:
            assert fh.read().split() == ["GENE_B", "GENE_C", "GENE_F"]

    def test_annotation_nulls_written_as_na(self, inputs, temp_dir):
        _, outputs = run_pipeline(inputs, PipelineConfig(output_dir=str(temp_dir)))
        annotated = pd.read_csv(outputs["CTCF_annotated"], sep="\t", keep_default_na=False)
        promoter = annotated[annotated["Annotation"] == "Promoter"].iloc[0]
        assert promoter["Interaction_ID"] == "NA"
        assert promoter["Q-value"] == "NA"

    def test_duplicate_factor_names(self, inputs):
        inputs.factors = inputs.factors * 2
        with pytest.raises(PipelineConfigError, match="Duplicate"):
            run_pipeline(inputs)

    def test_missing_input_file(self, inputs, temp_dir):
        inputs.interactions = str(temp_dir / "missing.txt")
        with pytest.raises(FileNotFoundError):
            run_pipeline(inputs, PipelineConfig(output_dir=str(temp_dir)))


class TestPrepareAnchors:

    def test_anchor_beds(self, input_files, temp_dir):
        paths = prepare_anchors(str(input_files["interactions"]), str(temp_dir / "anchors"), "run1")
        anchor1 = pd.read_csv(paths["anchor1"], sep="\t", header=None)
        assert anchor1.values.tolist() == [
            ["chr1", 100, 200, 1],
            ["chr1", 100, 200, 2],
            ["chr2", 1000, 1100, 3],
        ]
        indexed = pd.read_csv(paths["indexed"], sep="\t")
        assert indexed["interaction_id"].tolist() == [1, 2, 3]
