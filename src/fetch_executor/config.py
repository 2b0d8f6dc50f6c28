"""
Settings for the execution core.

Settings are a pydantic model that can be built in code or loaded from a
YAML file. camelCase option names are accepted alongside snake_case.
Callables (retry condition, delay calculator) can only be set from code.
"""
import logging
from pathlib import Path
from typing import Any, Callable, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from cache_store import CacheConfig
from fetch_scheduler import SchedulerConfig
from request_coalesce import CoalesceConfig
from retry_policy import RetryConfig

logger = logging.getLogger(__name__)


class CacheSettings(BaseModel):
    """Cache options"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = False
    ttl: Optional[float] = Field(default=300.0, description="Default TTL in seconds")
    strategy: Literal["lru", "lfu", "ttl", "smart"] = "lru"
    max_size: int = Field(default=100, alias="maxSize", ge=1)
    storage: Literal["memory", "local", "indexeddb"] = "memory"
    prefix: str = "http_cache_"
    path: Optional[str] = Field(default=None, description="File for local or indexeddb storage")
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    def to_cache_config(self) -> CacheConfig:
        return CacheConfig(
            enabled=self.enabled,
            default_ttl_seconds=self.ttl,
            methods=[m.upper() for m in self.methods],
        )


class RetrySettings(BaseModel):
    """Retry options"""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", arbitrary_types_allowed=True
    )

    retries: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=1.0, alias="retryDelay", ge=0)
    max_delay: Optional[float] = Field(default=None, alias="maxDelay")
    retry_condition: Optional[Callable[..., bool]] = Field(
        default=None, alias="retryCondition", exclude=True
    )
    retry_delay_calculator: Optional[Callable[..., float]] = Field(
        default=None, alias="retryDelayCalculator", exclude=True
    )

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.retries,
            base_delay_seconds=self.retry_delay,
            max_delay_seconds=self.max_delay,
            retry_condition=self.retry_condition,
            delay_calculator=self.retry_delay_calculator,
        )


class FetchCoreSettings(BaseModel):
    """Global configuration of the execution core"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    max_concurrent: int = Field(default=10, alias="maxConcurrent", ge=1)
    max_queue_size: int = Field(default=100, alias="maxQueueSize", ge=0)
    deduplication_enabled: bool = Field(default=True, alias="deduplicationEnabled")
    max_pending: int = Field(default=1000, alias="maxPending", ge=1)
    request_timeout: float = Field(default=60.0, alias="requestTimeout", gt=0)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    def to_scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(
            max_concurrent=self.max_concurrent,
            max_queue_size=self.max_queue_size,
        )

    def to_coalesce_config(self) -> CoalesceConfig:
        return CoalesceConfig(
            max_pending=self.max_pending,
            request_timeout_seconds=self.request_timeout,
        )


def settings_from_mapping(data: Optional[Mapping[str, Any]]) -> FetchCoreSettings:
    """Validate a plain mapping into settings."""
    return FetchCoreSettings.model_validate(dict(data or {}))


def load_settings(path: Union[str, Path]) -> FetchCoreSettings:
    """
    Load settings from a YAML file.

    A top-level ``fetch_core`` key is used when present, otherwise the
    whole document.
    """
    file_path = Path(path)
    logger.debug(f"load_settings: Parsing YAML file: {file_path}")
    data = yaml.safe_load(file_path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {file_path}, got {type(data).__name__}")
    section = data.get("fetch_core", data)
    settings = settings_from_mapping(section)
    logger.info(
        f"Loaded fetch core settings from {file_path} "
        f"(max_concurrent={settings.max_concurrent}, cache={settings.cache.enabled})"
    )
    return settings
