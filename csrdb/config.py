"""Environment-backed settings for the database connection."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Connection settings read from the environment (or a local .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    host: str | None = Field(default=None, validation_alias=AliasChoices("DB_HOST", "DB2_HOST"))
    user: str | None = Field(
        default=None, validation_alias=AliasChoices("DB_ID", "DB_USER", "DB2_USER")
    )
    password: str | None = Field(
        default=None, validation_alias=AliasChoices("DB_PASSWORD", "DB2_PASS"), repr=False
    )
    database: str | None = Field(default=None, validation_alias=AliasChoices("DB_NAME"))
    sni: str | None = Field(default=None, validation_alias=AliasChoices("DB_SNI", "DB2_SNI"))
    cert_path: Path | None = Field(default=None, validation_alias=AliasChoices("DB_CERT_PATH"))
    ca_pem: str | None = Field(default=None, validation_alias=AliasChoices("DB_CA_PEM"), repr=False)
    tls_insecure: bool = Field(default=False, validation_alias=AliasChoices("DB_TLS_INSECURE"))
    log_config: bool = Field(default=False, validation_alias=AliasChoices("DB_LOG_CONFIG"))
    schema_name: str | None = Field(default=None, validation_alias=AliasChoices("DB_SCHEMA"))
    connect_timeout: float = Field(default=10.0, validation_alias=AliasChoices("DB_CONNECT_TIMEOUT"))
    cert_timeout: float = Field(default=5.0, validation_alias=AliasChoices("DB_CERT_TIMEOUT"))
    pool_max_size: int = Field(default=5, ge=1, validation_alias=AliasChoices("DB_POOL_MAX_SIZE"))

    @field_validator(
        "host", "user", "password", "database", "sni", "ca_pem", "schema_name", "cert_path",
        mode="before",
    )
    @classmethod
    def _blank_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("tls_insecure", "log_config", mode="before")
    @classmethod
    def _blank_is_false(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return False
        return value

    @field_validator("cert_path")
    @classmethod
    def _resolve_cert_path(cls, value: Path | None) -> Path | None:
        if value is None or value.is_absolute():
            return value
        return Path.cwd() / value

    @property
    def has_credentials(self) -> bool:
        return bool(self.host and self.user and self.password)


def load_settings() -> DatabaseSettings:
    """Read a fresh settings snapshot from the environment."""

    return DatabaseSettings()


__all__ = ["DatabaseSettings", "load_settings"]
