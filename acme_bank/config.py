"""
Configuration Management Module

Environment-based configuration using pydantic-settings. A BankConfig is
built once by the host and passed to the service at construction, so several
independently configured services can coexist in one process.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BankConfig(BaseSettings):
    """Acme bank ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="ACME_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///acme_bank.db"  # or sqlite:///:memory:, memory://
    database_timeout: float = 5.0  # Seconds to wait on a locked database
    create_schema: bool = True  # Create missing tables on startup

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    transfer_payee: str = "Transfer"  # Payee recorded on both transfer legs

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        fmt = value.lower()
        if fmt not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return fmt

    @field_validator("database_timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError("database_timeout must not be negative")
        return value


def load_config(**overrides) -> BankConfig:
    """Build a fresh configuration from the environment plus explicit overrides"""
    return BankConfig(**overrides)
