"""
Configuration settings for PlacNet.

Distance thresholds, pipeline defaults and service options, loaded from
environment variables or a ``.env`` file.
"""

import sys
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "PlacNet"
    app_version: str = "0.1.0"
    debug: bool = False

    # Paths
    results_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent / "results")

    # Annotation thresholds (bp, absolute distance to nearest TSS)
    tss_distance: int = 2500
    proximal_distance: int = 10000

    # Floor applied to q-values before -log10 (smallest normal double)
    min_q_value: float = sys.float_info.min

    # Pipeline defaults
    default_prefix: str = "placnet"
    default_multiple_annotation_mode: str = "keep"
    default_unannotated_fallback: bool = False
    max_workers: int = 4

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "PLACNET_"

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        self.results_dir.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
