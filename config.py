# config.py
from __future__ import annotations
from typing import List, Optional, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices, model_validator

class Settings(BaseSettings):
    # Read .env; ignore extra env vars to avoid crashes
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_nested_delimiter="__",
        env_prefix="",
    )

    # --- Runtime env / debugging ---
    APP_ENV: Literal["development", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("APP_ENV", "app_env"),
    )
    DEBUG: bool = Field(
        default=False,
        validation_alias=AliasChoices("DEBUG", "debug"),
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )

    # --- Text generation ---
    OPENAI_API_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    OPENAI_MODEL: str = Field(
        default="gpt-4o-mini",
        validation_alias=AliasChoices("OPENAI_MODEL", "openai_model"),
    )
    OPENAI_TIMEOUT_S: float = Field(
        default=60.0,
        validation_alias=AliasChoices("OPENAI_TIMEOUT_S", "openai_timeout_s"),
    )
    GENERATION_MAX_ATTEMPTS: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("GENERATION_MAX_ATTEMPTS", "generation_max_attempts"),
    )
    GENERATION_RETRY_DELAY_S: float = Field(
        default=2.0,
        ge=0,
        validation_alias=AliasChoices("GENERATION_RETRY_DELAY_S", "generation_retry_delay_s"),
    )

    # --- Activity images ---
    IMAGE_SEARCH_BASE_URL: str = Field(
        default="https://en.wikipedia.org",
        validation_alias=AliasChoices("IMAGE_SEARCH_BASE_URL", "image_search_base_url"),
    )
    IMAGE_LOOKUP_TIMEOUT_S: float = Field(
        default=5.0,
        validation_alias=AliasChoices("IMAGE_LOOKUP_TIMEOUT_S", "image_lookup_timeout_s"),
    )
    IMAGE_LOOKUP_CONCURRENCY: int = Field(
        default=4,
        ge=1,
        validation_alias=AliasChoices("IMAGE_LOOKUP_CONCURRENCY", "image_lookup_concurrency"),
    )
    IMAGE_PLACEHOLDER_URL: str = Field(
        default="https://placehold.co/640x360?text=PlayDay",
        validation_alias=AliasChoices("IMAGE_PLACEHOLDER_URL", "image_placeholder_url"),
    )

    # --- Planning sessions ---
    SESSION_TTL_S: int = Field(
        default=6 * 3600,
        validation_alias=AliasChoices("SESSION_TTL_S", "session_ttl_s"),
    )

    # --- Server Settings (for deployment) ---
    PORT: int = Field(
        default=3001,
        validation_alias=AliasChoices("PORT", "port"),
    )
    HOST: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("HOST", "host"),
    )

    # --- CORS (env-driven) ---
    CORS_ALLOW_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"],
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS", "cors_allow_origins"),
    )
    # Optional comma-separated alternative that overrides the above
    FRONTEND_ORIGINS: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("FRONTEND_ORIGINS", "frontend_origins"),
    )
    CORS_ALLOW_METHODS: List[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        validation_alias=AliasChoices("CORS_ALLOW_METHODS", "cors_allow_methods"),
    )
    CORS_ALLOW_HEADERS: List[str] = Field(
        default_factory=lambda: ["Accept", "Content-Type", "X-Request-Id"],
        validation_alias=AliasChoices("CORS_ALLOW_HEADERS", "cors_allow_headers"),
    )
    CORS_EXPOSE_HEADERS: List[str] = Field(
        default_factory=lambda: ["X-Request-Id"],
        validation_alias=AliasChoices("CORS_EXPOSE_HEADERS", "cors_expose_headers"),
    )

    @model_validator(mode="after")
    def _merge_frontend_origins(self) -> "Settings":
        if self.FRONTEND_ORIGINS:
            parts = [p.strip() for p in self.FRONTEND_ORIGINS.split(",") if p.strip()]
            if parts:
                self.CORS_ALLOW_ORIGINS = parts
        return self

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Production must talk to the real generator; elsewhere every plan degrades to the fallback."""
        if self.APP_ENV == "production":
            if not self.OPENAI_API_KEY or self.OPENAI_API_KEY in ("", "your-openai-api-key-here"):
                raise ValueError(
                    "OPENAI_API_KEY must be set to a valid key in production."
                )
        return self

    @property
    def is_dev(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.DEBUG else self.LOG_LEVEL.upper()

settings = Settings()
