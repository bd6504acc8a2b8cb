from __future__ import annotations

from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field("STEPS KPI API", validation_alias="APP_NAME")
    api_host: str = Field(default="127.0.0.1", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT", ge=1, le=65535)
    database_url: str = Field(
        "sqlite:///./steps_kpi.db",
        validation_alias="DATABASE_URL",
        description="SQLAlchemy connection string for the STEPS operations store.",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Python logging verbosity for application modules (e.g. INFO, DEBUG).",
    )
    report_export_filename_prefix: str = Field(
        default="steps",
        validation_alias="REPORT_EXPORT_FILENAME_PREFIX",
        description="Prefix applied to CSV filenames produced by the KPI export endpoint.",
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        validation_alias="MAX_UPLOAD_BYTES",
        description="Largest dataset CSV accepted by the upload endpoint.",
        ge=1,
    )
    frontend_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        validation_alias="FRONTEND_ORIGINS",
        description="Comma-separated list of allowed CORS origins for the frontend UI.",
    )

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    @field_validator("frontend_origins", mode="before")
    @classmethod
    def split_origins(cls, raw_value):
        if isinstance(raw_value, str):
            return [origin.strip() for origin in raw_value.split(",") if origin.strip()]
        return raw_value


@lru_cache()
def get_settings() -> Settings:
    return Settings()
