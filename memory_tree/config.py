# FILE: memory_tree/config.py
"""
Configuration management for Memory Tree
Loads from environment variables with validation
"""
from typing import List, Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )

    # Backend server
    backend_host: str = Field(default="0.0.0.0", alias="BACKEND_HOST")
    backend_port: int = Field(default=8000, alias="BACKEND_PORT")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Object store
    blob_backend: str = Field(default="local", alias="BLOB_BACKEND")
    blob_read_write_token: Optional[str] = Field(default=None, alias="BLOB_READ_WRITE_TOKEN")
    blob_api_url: str = Field(default="https://blob.vercel-storage.com", alias="VERCEL_BLOB_API_URL")
    blob_timeout: float = Field(default=30.0, alias="BLOB_TIMEOUT")
    local_blob_dir: str = Field(default="./data/blobs", alias="LOCAL_BLOB_DIR")
    public_base_url: str = Field(
        default="http://localhost:8000",
        alias="PUBLIC_BASE_URL",
        description="Base URL under which the local backend's objects are served (mounted at /blobs)"
    )

    # Memory layout inside the object store
    memories_index_path: str = Field(default="memories/data.json", alias="MEMORIES_INDEX_PATH")
    memories_image_prefix: str = Field(default="memories/images/", alias="MEMORIES_IMAGE_PREFIX")

    # Security
    body_size_limit_mb: int = Field(default=20, alias="BODY_SIZE_LIMIT_MB")

    # CORS
    cors_origins: List[str] = Field(default=["http://localhost:3000"], alias="CORS_ORIGINS")

    # Validators
    @field_validator("blob_backend")
    @classmethod
    def validate_blob_backend(cls, v):
        v = v.strip().lower()
        if v not in ["local", "vercel"]:
            raise ValueError("blob_backend must be 'local' or 'vercel'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.strip().upper()
        if v not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("log_level must be a standard logging level name")
        return v

    @field_validator("memories_image_prefix")
    @classmethod
    def validate_image_prefix(cls, v):
        if not v.endswith("/"):
            v = v + "/"
        return v

    @field_validator("body_size_limit_mb")
    @classmethod
    def validate_body_size_limit(cls, v):
        if v < 1:
            raise ValueError("body_size_limit_mb must be at least 1")
        return v

    @model_validator(mode="after")
    def validate_vercel_token(self):
        if self.blob_backend == "vercel" and not self.blob_read_write_token:
            raise ValueError("BLOB_READ_WRITE_TOKEN is required when BLOB_BACKEND=vercel")
        return self


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create singleton settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings (useful for testing)"""
    global _settings
    _settings = None
    return get_settings()
