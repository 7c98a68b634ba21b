from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransportSettings(BaseSettings):
    """Batch transport configuration, read from LOGSHIP_* env vars or .env."""

    model_config = SettingsConfigDict(env_prefix="LOGSHIP_", env_file=".env", case_sensitive=False)

    api_url: str
    batch_size: int = Field(gt=0)
    flush_interval_ms: int = Field(gt=0)
    api_key: Optional[str] = None
    retry_limit: int = Field(default=3, ge=0)
    backoff_factor_ms: int = Field(default=1000, ge=0)
    backup_file_path: str = "./unsent-logs.json"
    request_timeout_ms: int = Field(default=5000, gt=0)
    max_concurrent_batches: int = Field(default=3, gt=0)
    use_compression: bool = False
    retry_interval_ms: int = Field(default=10000, gt=0)
    transport_id: str = "default"


@lru_cache()
def get_settings() -> TransportSettings:
    return TransportSettings()
