"""
FastAPI application for PlacNet.

Provides REST API endpoints for:
- Health and configuration
- Running the annotation pipeline on tables produced by the upstream
  annotation and intersection tools
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from .config import settings
from .core.exceptions import PlacNetError, PipelineConfigError, ValidationError
from .core.peak_classifier import MultipleAnnotationMode
from .core.pipeline import FactorPeakFiles, PipelineConfig, PipelineInputs, run_pipeline
from .models.schemas import PipelineRunRequest, PipelineRunResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting PlacNet API...")
    settings.ensure_directories()
    yield
    logger.info("Shutting down PlacNet API...")


app = FastAPI(
    title=settings.app_name,
    description="Annotate chromatin interactions with genes and binding peaks and build interaction graphs",
    version=settings.app_version,
    lifespan=lifespan
)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


@app.get("/config")
async def get_config():
    """Get analysis defaults."""
    return {
        "tss_distance": settings.tss_distance,
        "proximal_distance": settings.proximal_distance,
        "multiple_annotation_modes": [m.value for m in MultipleAnnotationMode],
        "default_multiple_annotation_mode": settings.default_multiple_annotation_mode,
        "default_unannotated_fallback": settings.default_unannotated_fallback,
    }


# ============================================================================
# Pipeline runs
# ============================================================================

@app.post("/runs", response_model=PipelineRunResponse)
def create_run(request: PipelineRunRequest):
    """Run the pipeline synchronously and return the written tables."""
    options = {
        key: value
        for key, value in {
            "prefix": request.prefix,
            "unannotated_fallback": request.unannotated_fallback,
            "multiple_annotation_mode": request.multiple_annotation_mode,
            "output_dir": request.output_dir,
        }.items()
        if value is not None
    }

    inputs = PipelineInputs(
        interactions=request.interactions,
        anchor1_annotation=request.anchor1_annotation,
        anchor2_annotation=request.anchor2_annotation,
        genome_overlaps1=request.genome_overlaps1,
        genome_overlaps2=request.genome_overlaps2,
        factors=[FactorPeakFiles(**f.model_dump()) for f in request.factors],
        gene_list=request.gene_list,
    )

    try:
        config = PipelineConfig(**options)
        results, outputs = run_pipeline(inputs, config)
    except FileNotFoundError as e:
        raise HTTPException(status_code=400, detail=f"Input file not found: {e.filename}")
    except (ValidationError, PipelineConfigError) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PlacNetError as e:
        logger.error(f"Run failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return PipelineRunResponse(prefix=config.prefix, outputs=outputs, summary=results.summary())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "placnet.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
