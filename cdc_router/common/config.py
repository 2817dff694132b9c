"""Configuration management for the CDC router."""

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from cdc_router.common.exceptions import ConfigError

CommitPolicy = Literal["after_forward", "auto"]


class KafkaSection(BaseModel):
    """The ``kafka`` block of the routing file."""

    model_config = ConfigDict(extra="forbid")

    bootstrap_servers: str = Field(min_length=1)
    group: str = Field(min_length=1)
    bindings: List[str] = Field(min_length=1)


class TransformRule(BaseModel):
    """One entry of the ``transforms`` list."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source_topic: str
    db: str
    table: str
    target_topic: str = Field(min_length=1)


class RouterConfig(BaseModel):
    """Declarative routing file: consumer bindings plus ordered routing rules."""

    model_config = ConfigDict(extra="forbid")

    kafka: KafkaSection
    transforms: List[TransformRule] = Field(default_factory=list)


def load_router_config(path: Union[str, Path]) -> RouterConfig:
    """
    Read and validate the YAML routing file.

    Args:
        path: Location of the routing file

    Returns:
        Validated routing configuration

    Raises:
        ConfigError: If the file is unreadable, not valid YAML, or does not
            match the expected structure
    """
    path = Path(path)
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Unable to read config file {path}: {e}") from e

    try:
        document = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Unable to parse config file {path}: {e}") from e

    if not isinstance(document, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")

    try:
        return RouterConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e


class PipelineConfig(BaseSettings):
    """Routing pipeline runtime configuration."""

    model_config = SettingsConfigDict(env_prefix="ROUTER_")

    config_path: Path = Path("config.yaml")
    max_in_flight: int = Field(default=64, ge=1)
    publish_timeout_seconds: float = Field(default=5.0, gt=0)
    commit_policy: CommitPolicy = "after_forward"
    poll_timeout_ms: int = Field(default=1000, ge=0)
    max_poll_records: int = Field(default=500, ge=1)
    session_timeout_ms: int = 6000
    shutdown_timeout_seconds: float = Field(default=30.0, gt=0)
    reconnect_max_attempts: int = Field(default=5, ge=0)
    reconnect_initial_delay_seconds: float = Field(default=1.0, ge=0)
    reconnect_backoff_factor: float = Field(default=2.0, ge=1.0)
    reconnect_max_delay_seconds: float = Field(default=30.0, ge=0)
    producer_batch_size: int = 1048576
    producer_linger_ms: int = 5


class HTTPConfig(BaseSettings):
    """Operational HTTP surface configuration."""

    model_config = SettingsConfigDict(env_prefix="HTTP_")

    host: str = "0.0.0.0"
    port: int = 9266


class ApplicationConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = "INFO"


class Settings(BaseSettings):
    """Main settings container."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    app: ApplicationConfig = Field(default_factory=ApplicationConfig)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
