"""Configuration models using Pydantic for validation."""
from pathlib import Path
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import os


def default_base_dir() -> Path:
    """Base directory for data and images when none is configured."""
    data_home = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(data_home) / ".sts"


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    host: str = "127.0.0.1"
    port: int = 8443
    ssl_keyfile: Optional[str] = None
    ssl_certfile: Optional[str] = None

    @model_validator(mode='after')
    def validate_tls_pair(self):
        """Key and certificate must be given together."""
        if (self.ssl_keyfile is None) != (self.ssl_certfile is None):
            raise ValueError("ssl_keyfile and ssl_certfile must be set together")
        return self


class StorageConfig(BaseModel):
    """Locations of durable logs and rendered images."""
    data_path: Path = Field(default_factory=lambda: default_base_dir() / "data")
    image_path: Path = Field(default_factory=lambda: default_base_dir() / "images")


class PersistenceConfig(BaseModel):
    """Persistence queue sizing and backpressure."""
    queue_size: int = Field(default=10000, gt=0)
    enqueue_timeout_s: float = Field(default=1.0, ge=0)


class RenderConfig(BaseModel):
    """Plot rendering through an external gnuplot process."""
    enabled: bool = True
    executable: str = "gnuplot"
    timeout_s: float = Field(default=30.0, gt=0)


class PrometheusExporterConfig(BaseModel):
    """Prometheus self-metrics served on /metrics."""
    enabled: bool = True
    prefix: str = "sts_"


class OTELExporterConfig(BaseModel):
    """OpenTelemetry push exporter configuration."""
    enabled: bool = False
    endpoint: str = "localhost:4317"
    insecure: bool = True
    prefix: str = "sts_"
    export_interval_s: int = 10
    headers: Dict[str, str] = Field(default_factory=dict)
    resource: Dict[str, str] = Field(default_factory=dict)


class ExportersConfig(BaseModel):
    """Configuration for all exporters."""
    prometheus: PrometheusExporterConfig = Field(default_factory=PrometheusExporterConfig)
    otel: OTELExporterConfig = Field(default_factory=OTELExporterConfig)


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Accept standard logging level names only."""
        level = v.upper()
        if level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError(f"Invalid log level: {v}")
        return level


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    exporters: ExportersConfig = Field(default_factory=ExportersConfig)


def apply_env_overrides(raw_config: dict) -> dict:
    """Apply environment variable overrides to a raw config mapping."""
    # STS_RS_* are the names used by earlier deployments
    if env_data := os.getenv('STS_DATA_PATH') or os.getenv('STS_RS_DATA_PATH'):
        raw_config.setdefault('storage', {})['data_path'] = env_data

    if env_images := os.getenv('STS_IMAGE_PATH') or os.getenv('STS_RS_IMAGE_PATH'):
        raw_config.setdefault('storage', {})['image_path'] = env_images

    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    if env_endpoint := os.getenv('OTEL_ENDPOINT'):
        exporters = raw_config.setdefault('exporters', {})
        exporters.setdefault('otel', {})['endpoint'] = env_endpoint

    return raw_config


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate configuration from an optional YAML file."""
    import yaml

    raw_config = {}
    if config_path is not None:
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ValueError(f"Configuration root must be a mapping: {config_path}")

    apply_env_overrides(raw_config)

    try:
        return Config(**raw_config)
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
