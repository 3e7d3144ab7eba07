"""Env var config loading with pydantic-settings."""

from __future__ import annotations

import structlog
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()



class CspSettings(BaseSettings):
    """Service configuration, overridden by ``CSP_*`` env vars."""

    model_config = SettingsConfigDict(
        env_prefix="CSP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # YAML policy file; empty means the built-in default policy only
    policies_file: str = ""
    # Overrides the file's default_policy when set
    default_policy: str = ""

    log_level: str = "info"
    log_json: bool = True

    nonce_bit_length: int = 128

    # Root for hashed static files, and the app's mount prefix
    web_root: str = "."
    path_base: str = ""

    skip_paths: list[str] = ["/docs", "/docs/oauth2-redirect", "/redoc", "/openapi.json"]

    @field_validator("nonce_bit_length")
    @classmethod
    def _check_nonce_bits(cls, value: int) -> int:
        if value < 64 or value % 8:
            raise ValueError("nonce_bit_length must be a multiple of 8 and at least 64")
        return value


_settings: CspSettings | None = None


def get_settings() -> CspSettings:
    """Get or create the singleton settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def load_settings() -> CspSettings:
    """Load settings from env vars (env vars override model defaults)."""
    global _settings
    _settings = CspSettings()
    logger.info(
        "config_loaded",
        policies_file=_settings.policies_file or "<builtin>",
        default_policy=_settings.default_policy or "<file>",
    )
    return _settings
