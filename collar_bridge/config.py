"""
Configuration Management for the Collar Bridge

Environment-based configuration using Pydantic Settings. Durations keep the
millisecond units used by the collar deployment's .env files.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache

from collar_bridge.core.hardware.port_detection import (
    DEFAULT_NAME_PATTERNS,
    DEFAULT_SIGNATURE_PATTERNS,
)
from collar_bridge.core.inference.health_status import BreedSize


class ConfigError(RuntimeError):
    """Raised when required bridge configuration is missing or invalid."""


class Settings(BaseSettings):
    """Bridge settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra fields from .env file
    )

    # Serial
    serial_port: str = Field(default="auto", description="Port path or 'auto' for detection")
    baud_rate: int = Field(default=115200, gt=0)
    serial_reconnect_delay: int = Field(default=5000, ge=0, description="Reconnect delay (ms)")
    port_signatures: List[str] = Field(default_factory=lambda: list(DEFAULT_SIGNATURE_PATTERNS))
    port_name_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_NAME_PATTERNS))

    # API
    api_base_url: str = "http://localhost:3000/api"
    dog_id: str = Field(default="", description="Target dog record id")
    auth_token: str = Field(default="", description="Bearer token for the vitals endpoint")
    max_retries: int = Field(default=3, ge=1)
    retry_delay: int = Field(default=2000, ge=0, description="Base retry delay (ms)")
    update_interval: int = Field(default=5000, ge=0, description="Minimum time between sends (ms)")
    request_timeout: int = Field(default=10000, gt=0, description="HTTP timeout (ms)")

    # Pipeline
    breed_size: BreedSize = BreedSize.UNKNOWN
    max_buffer_chars: int = Field(default=4096, gt=0)
    max_concurrent_sends: int = Field(default=2, ge=1)
    chunk_queue_size: int = Field(default=100, ge=1)

    log_level: str = "INFO"

    @field_validator("breed_size", mode="before")
    @classmethod
    def _normalize_breed_size(cls, value):
        if isinstance(value, str):
            return BreedSize.parse(value)
        return value

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def missing_required(self) -> List[str]:
        """Names of required settings that are empty."""
        missing = []
        if not self.dog_id.strip():
            missing.append("DOG_ID")
        if not self.auth_token.strip():
            missing.append("AUTH_TOKEN")
        return missing

    def require_complete(self) -> None:
        """Raise ConfigError when a required value is absent."""
        missing = self.missing_required()
        if missing:
            raise ConfigError(f"{', '.join(missing)} is required in the environment or .env file")

    @property
    def auto_detect_port(self) -> bool:
        return self.serial_port.strip().lower() in ("", "auto")


@lru_cache()
def get_settings(env_file: Optional[str] = ".env") -> Settings:
    """Get cached settings instance."""
    return Settings(_env_file=env_file)
