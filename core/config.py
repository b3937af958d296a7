"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from datetime import tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="CNAB Import Service", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CNAB processing
    cnab_timezone: str = Field(default="America/Sao_Paulo", alias="CNAB_TIMEZONE")
    parse_yield_interval: int = Field(default=1000, alias="PARSE_YIELD_INTERVAL")

    # Storage
    database_path: str = Field(default="cnab.db", alias="DATABASE_PATH")
    db_batch_size: int = Field(default=500, alias="DB_BATCH_SIZE")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("cnab_timezone")
    @classmethod
    def validate_timezone(cls, v):
        """Validate the CNAB time zone resolves to a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown time zone: {v}")
        return v

    @field_validator("parse_yield_interval", "db_batch_size")
    @classmethod
    def validate_positive(cls, v):
        """Validate counters are at least 1."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    def cnab_tzinfo(self) -> tzinfo:
        """Return the time zone CNAB local timestamps are expressed in."""
        return ZoneInfo(self.cnab_timezone)

    def ensure_directories(self) -> None:
        """Ensure the database directory exists."""
        Path(self.database_path).resolve().parent.mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None


def load_settings() -> Settings:
    """
    Load settings, reporting invalid values as a ConfigurationError.

    Raises:
        ConfigurationError: If any setting fails validation
    """
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid configuration",
            details={"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]}
        )
