"""Deployment configuration loaded from environment variables and ``.env``.

Validation failures are reported as ``ConfigurationError`` so the entrypoint
can refuse to start with undefined telemetry destinations.
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from instrumentipy.adapters.dispatch import OverflowPolicy
from instrumentipy.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Deployment configuration, read from the environment and ``.env``.

    Immutable once loaded. Use :func:`load_settings` so validation failures
    surface as :class:`ConfigurationError`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    app_name: str = Field(alias="APP_NAME")
    namespace: str = Field(alias="NAMESPACE")
    log_group_name: str = Field(alias="LOG_GROUP_NAME")
    log_stream_name: str = Field(alias="LOG_STREAM_NAME")

    sink_backend: Literal["aws", "sqlite", "memory"] = Field(default="aws", alias="SINK_BACKEND")
    aws_region: str | None = Field(default=None, alias="AWS_REGION")
    aws_access_key_id: str | None = Field(default=None, alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = Field(default=None, alias="AWS_SECRET_ACCESS_KEY")
    aws_endpoint_url: str | None = Field(default=None, alias="AWS_ENDPOINT_URL")
    sqlite_path: str = Field(default="telemetry.db", alias="SQLITE_PATH")

    queue_max_size: int = Field(default=10000, gt=0, alias="QUEUE_MAX_SIZE")
    batch_size: int = Field(default=20, gt=0, le=1000, alias="BATCH_SIZE")
    flush_interval_seconds: float = Field(default=1.0, gt=0, alias="FLUSH_INTERVAL_SECONDS")
    overflow_policy: OverflowPolicy = Field(
        default=OverflowPolicy.DROP_NEWEST, alias="OVERFLOW_POLICY"
    )
    trace_header: str = Field(default="X-Amzn-Trace-Id", alias="TRACE_HEADER")

    long_running_delay_seconds: float = Field(
        default=180.0, ge=0, alias="LONG_RUNNING_DELAY_SECONDS"
    )
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, gt=0, lt=65536, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("app_name", "namespace", "log_group_name", "log_stream_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @model_validator(mode="after")
    def _aws_needs_region(self) -> "Settings":
        if self.sink_backend == "aws" and not self.aws_region:
            raise ValueError("AWS_REGION is required when SINK_BACKEND is 'aws'")
        return self


def load_settings(**overrides: Any) -> Settings:
    """Load and validate settings.

    Raises:
        ConfigurationError: If a deployment identifier is missing or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
