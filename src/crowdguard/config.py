"""
CrowdGuard Configuration
========================

This module handles configuration loading for the monitoring service.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    CROWDGUARD_SITE_ID          -> monitor.site_id
    CROWDGUARD_METRIC_INTERVAL  -> monitor.metric_interval_sec
    CROWDGUARD_SOURCE_BACKEND   -> source.backend
    CROWDGUARD_FEED_URL         -> source.feed_url
    CROWDGUARD_OFFLINE_MODE     -> analysis.offline_mode
    CROWDGUARD_ANALYSIS_INTERVAL -> analysis.interval_sec
    CROWDGUARD_VIDEO_INFERENCE  -> video.inference_backend
    GEMINI_API_KEY              -> gemini.api_key
    CROWDGUARD_LOG_LEVEL        -> logging.level
    PORT / CROWDGUARD_PORT      -> server.port

Example:
    from crowdguard.config import settings

    print(settings.monitor.site_id)
    print(settings.alerts.density_threshold)
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

    name: str = Field(default="crowdguard", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class MonitorConfig(BaseModel):
    """Live monitoring configuration."""

    site_id: str = Field(default="MAIN_GATE", description="Monitored site identifier")
    metric_interval_sec: float = Field(
        default=3.0,
        gt=0,
        description="Interval between metric samples",
    )
    window_capacity: int = Field(
        default=20,
        ge=1,
        description="Number of recent samples retained",
    )
    enabled: bool = Field(default=True, description="Monitor enabled at startup")


class SyntheticConfig(BaseModel):
    """Synthetic metric ranges, half-open [min, max)."""

    density_min: float = Field(default=2.0, ge=0)
    density_max: float = Field(default=6.0, ge=0)
    flow_min: int = Field(default=40, ge=0)
    flow_max: int = Field(default=100, ge=0)
    velocity_min: float = Field(default=1.0)
    velocity_max: float = Field(default=1.8)
    anomaly_min: float = Field(default=0.0, ge=0, le=100)
    anomaly_max: float = Field(default=100.0, ge=0, le=100)
    seed: Optional[int] = Field(default=None, description="Random seed (None = OS entropy)")


class SourceConfig(BaseModel):
    """Metric source selection."""

    backend: str = Field(
        default="synthetic",
        description="Metric source: 'synthetic' or 'feed'",
    )
    feed_url: str = Field(
        default="ws://localhost:8000/ws/metrics",
        description="WebSocket URL of the camera-analytics feed",
    )
    reconnect_backoff_ms: int = Field(
        default=500,
        ge=100,
        description="Backoff in milliseconds between reconnect attempts",
    )
    max_reconnect_attempts: int = Field(
        default=0,
        ge=0,
        description="Maximum reconnection attempts (0 = unlimited)",
    )


class AlertsConfig(BaseModel):
    """Alert trigger policy and board size."""

    density_threshold: float = Field(default=5.0, ge=0, description="Density trigger")
    trigger_cutoff: float = Field(
        default=0.7,
        ge=0,
        le=1.0,
        description="Random draw must exceed this to raise an alert",
    )
    capacity: int = Field(default=10, ge=1, description="Maximum active alerts")
    location: str = Field(default="East Corridor 4B", description="Alert location label")
    message: str = Field(
        default="Density exceeded safe threshold (5.2 p/m²). Bottleneck forming.",
        description="Alert message",
    )


class AnalysisConfig(BaseModel):
    """Risk analysis cycle configuration."""

    interval_sec: float = Field(default=30.0, gt=0, description="Cycle interval")
    metrics_context: int = Field(default=5, ge=1, description="Samples sent per cycle")
    alerts_context: int = Field(default=3, ge=0, description="Alert messages sent per cycle")
    timeout_sec: float = Field(default=10.0, gt=0, description="Scoring timeout")
    offline_mode: bool = Field(default=False, description="Never call the scoring service")
    backend: str = Field(default="gemini", description="Scorer: 'gemini' or 'offline'")
    venue: str = Field(default="major temple gathering", description="Venue description")


class GeminiConfig(BaseModel):
    """Gemini API configuration."""

    api_key: str = Field(default="", description="Gemini API key")
    model: str = Field(default="gemini-2.0-flash", description="Model name")
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="API root URL",
    )
    request_timeout_sec: float = Field(default=10.0, gt=0, description="HTTP timeout")


class MockInferenceConfig(BaseModel):
    """Mock per-frame inference configuration."""

    base_count: int = Field(default=12, ge=0)
    variation_amplitude: float = Field(default=3.0, ge=0)


class VideoConfig(BaseModel):
    """Video crowd estimation configuration."""

    sample_frames: int = Field(default=3, ge=1, le=30, description="Frames sampled per video")
    jpeg_quality: int = Field(default=80, ge=10, le=100, description="Frame JPEG quality")
    inference_backend: str = Field(
        default="gemini",
        description="Per-frame inference: 'gemini' or 'mock'",
    )
    frame_timeout_sec: float = Field(default=15.0, gt=0, description="Per-frame timeout")
    location: str = Field(default="VIDEO_ANALYSIS", description="Result source tag")
    upload_dir: str = Field(default="./data/uploads", description="Where uploads are stored")
    mock: MockInferenceConfig = Field(default_factory=MockInferenceConfig)


class ActivityConfig(BaseModel):
    """Activity log configuration."""

    max_entries: int = Field(default=500, ge=1, description="Events kept in memory")


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
    Main settings class for CrowdGuard.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    synthetic: SyntheticConfig = Field(default_factory=SyntheticConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    video: VideoConfig = Field(default_factory=VideoConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)
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


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Monitor settings
    if env_site := os.environ.get("CROWDGUARD_SITE_ID"):
        config_data.setdefault("monitor", {})["site_id"] = env_site
    if env_interval := os.environ.get("CROWDGUARD_METRIC_INTERVAL"):
        config_data.setdefault("monitor", {})["metric_interval_sec"] = float(env_interval)

    # Source settings
    if env_backend := os.environ.get("CROWDGUARD_SOURCE_BACKEND"):
        config_data.setdefault("source", {})["backend"] = env_backend
    if env_url := os.environ.get("CROWDGUARD_FEED_URL"):
        config_data.setdefault("source", {})["feed_url"] = env_url

    # Analysis settings
    if env_offline := os.environ.get("CROWDGUARD_OFFLINE_MODE"):
        config_data.setdefault("analysis", {})["offline_mode"] = _env_flag(env_offline)
    if env_cycle := os.environ.get("CROWDGUARD_ANALYSIS_INTERVAL"):
        config_data.setdefault("analysis", {})["interval_sec"] = float(env_cycle)

    # Video settings
    if env_inference := os.environ.get("CROWDGUARD_VIDEO_INFERENCE"):
        config_data.setdefault("video", {})["inference_backend"] = env_inference

    # Gemini credentials
    if env_key := os.environ.get("GEMINI_API_KEY"):
        config_data.setdefault("gemini", {})["api_key"] = env_key

    # Server settings (PORT takes precedence for container platforms)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("CROWDGUARD_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("CROWDGUARD_LOG_LEVEL"):
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
