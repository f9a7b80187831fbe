"""
CarbonLens Configuration
========================

This module handles configuration loading for the CarbonLens agent.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CARBONLENS_SOURCE               -> capture.source
    CARBONLENS_CAPTURE_POLICY       -> capture.policy
    CARBONLENS_SIMILARITY_THRESHOLD -> admission.threshold
    CARBONLENS_QUEUE_CAPACITY       -> queue.capacity
    CARBONLENS_ANALYZER_BACKEND     -> analyzer.backend
    CARBONLENS_GEMINI_MODEL         -> analyzer.model
    GEMINI_API_KEY                  -> analyzer.api_key
    CARBONLENS_PORT                 -> server.port
    CARBONLENS_LOG_LEVEL            -> logging.level
    PORT                            -> server.port (Cloud Run)

Example:
    from carbonlens.config import settings

    print(settings.capture.frames_per_batch)
    print(settings.admission.threshold)
    print(settings.queue.capacity)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServiceConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="carbonlens-agent", description="Service name")
    version: str = Field(default="v0.1.0", description="Protocol version")


class CaptureConfig(BaseModel):
    """Frame sampling and batch assembly configuration."""

    source: str = Field(
        default="0",
        description="Video source: camera index, file path or stream URL",
    )
    policy: str = Field(
        default="continuous",
        description="Capture policy: 'bounded' or 'continuous'",
    )
    frames_per_batch: int = Field(
        default=12,
        ge=1,
        description="Accepted frames per grid batch",
    )
    grid_cols: int = Field(default=4, ge=1, description="Grid columns")
    grid_rows: int = Field(default=3, ge=1, description="Grid rows")
    sample_interval_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay between frame samples",
    )
    frame_retry_delay_seconds: float = Field(
        default=0.2,
        ge=0,
        description="Delay before retrying when no frame is ready",
    )
    timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Wall-clock limit of a bounded capture run",
    )
    queue_poll_interval_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Re-poll interval while the batch queue is full",
    )
    jpeg_quality: int = Field(
        default=90,
        ge=1,
        le=100,
        description="JPEG quality of composed grids",
    )
    autostart: bool = Field(
        default=False,
        description="Start a capture run when the service starts",
    )


class AdmissionConfig(BaseModel):
    """Perceptual-hash admission filter configuration."""

    threshold: int = Field(
        default=20,
        ge=0,
        le=64,
        description="Minimum Hamming distance for a frame to count as new",
    )


class QueueConfig(BaseModel):
    """Batch queue configuration."""

    capacity: int = Field(
        default=3,
        ge=1,
        description="Maximum pending plus analyzing jobs",
    )
    history_limit: int = Field(
        default=5,
        ge=0,
        description="Terminal jobs retained for observability",
    )


class AnalyzerConfig(BaseModel):
    """External analyzer configuration."""

    backend: str = Field(
        default="mock",
        description="Analyzer backend: 'mock' or 'gemini'",
    )
    model: str = Field(default="gemini-2.0-flash", description="Gemini model name")
    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    temperature: float = Field(default=0.0, ge=0, le=2.0)
    min_interval_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Minimum delay between analyzer calls",
    )
    reference_daily_co2_kg: float = Field(
        default=12.85,
        gt=0,
        description="Baseline daily emissions used to normalise scores",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for CarbonLens.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Capture settings
    if env_source := os.environ.get("CARBONLENS_SOURCE"):
        config_data.setdefault("capture", {})["source"] = env_source
    if env_policy := os.environ.get("CARBONLENS_CAPTURE_POLICY"):
        config_data.setdefault("capture", {})["policy"] = env_policy

    # Admission and queue
    if env_threshold := os.environ.get("CARBONLENS_SIMILARITY_THRESHOLD"):
        config_data.setdefault("admission", {})["threshold"] = int(env_threshold)
    if env_capacity := os.environ.get("CARBONLENS_QUEUE_CAPACITY"):
        config_data.setdefault("queue", {})["capacity"] = int(env_capacity)

    # Analyzer settings
    if env_backend := os.environ.get("CARBONLENS_ANALYZER_BACKEND"):
        config_data.setdefault("analyzer", {})["backend"] = env_backend
    if env_model := os.environ.get("CARBONLENS_GEMINI_MODEL"):
        config_data.setdefault("analyzer", {})["model"] = env_model
    if env_key := os.environ.get("GEMINI_API_KEY"):
        config_data.setdefault("analyzer", {})["api_key"] = env_key

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CARBONLENS_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("CARBONLENS_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
