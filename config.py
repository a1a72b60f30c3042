"""Configuration management for the request telemetry pipeline"""
from pathlib import Path
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Configuration class with Pydantic validation and environment-based settings"""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Collector settings (required)
    collector_url: str = Field(..., description="Collector endpoint receiving OTLP/JSON metrics")
    api_key: str = Field(..., description="Bearer token sent to the collector")

    # Export cycle
    flush_period_ms: int = Field(default=30000, ge=1, description="Export tick period in milliseconds")
    export_timeout_seconds: float = Field(default=10.0, gt=0, description="Collector request timeout in seconds")
    shutdown_timeout_seconds: float = Field(default=5.0, ge=0, description="Bound on the final flush at shutdown")

    # Aggregation policy
    active_user_window_ms: int = Field(default=300000, ge=1, description="Presence window for active users")
    latency_reset_on_flush: bool = Field(default=False, description="Reset latency accumulators after each export")
    percent_precision: int = Field(
        default=0,
        description="Decimal places of CPU and memory percentages (0 = integer percent, 2 = hundredths)"
    )
    track_endpoints: bool = Field(default=True, description="Count requests per METHOD PATH")
    max_series_per_metric: int = Field(
        default=500, ge=1,
        description="Cap on attributed series (per endpoint) kept per metric, least recently updated evicted"
    )
    presence_retention_multiplier: int = Field(
        default=2, ge=0,
        description="Drop presence entries older than this many active-user windows (0 keeps them forever)"
    )

    # Service identification
    service_name: str = Field(default="jwt-pizza-service", description="Value of the source attribute")
    service_version: str = Field(default="1.0.0", description="Service version")

    # Server settings (health, status and manual flush)
    metrics_port: int = Field(default=9100, ge=1, le=65535, description="Admin server port")
    metrics_host: str = Field(default="0.0.0.0", description="Admin server host")
    enable_request_logging: bool = Field(default=True, description="Log each instrumented request at debug level")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO", description="Log level")
    log_file: Optional[Path] = Field(default=None, description="Optional log file path")

    @field_validator('collector_url')
    @classmethod
    def validate_collector_url(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("COLLECTOR_URL is required")
        if not v.startswith(("http://", "https://")):
            raise ValueError("COLLECTOR_URL must be an http(s) URL")
        return v

    @field_validator('api_key')
    @classmethod
    def validate_api_key(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("API_KEY is required")
        return v

    @field_validator('percent_precision')
    @classmethod
    def validate_percent_precision(cls, v):
        if v not in (0, 2):
            raise ValueError("PERCENT_PRECISION must be 0 or 2")
        return v

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def flush_period_seconds(self) -> float:
        """Export tick period in seconds"""
        return self.flush_period_ms / 1000.0

    @property
    def presence_retention_ms(self) -> int:
        """Age beyond which presence entries are discarded, 0 when disabled"""
        return self.presence_retention_multiplier * self.active_user_window_ms

    def get_auth_headers(self) -> dict:
        """Headers sent with every export"""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
