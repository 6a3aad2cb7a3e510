"""Configuration management."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="PY_TERRAIN_", env_file=".env", extra="ignore"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", description="console or json")

    # Storage
    distance_field_dir: str = Field(
        default="./distance_fields", description="Directory for persisted distance fields"
    )
    preset_dir: str = Field(default="./presets", description="Directory for preset JSON files")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Limits
    max_grid_size: int = Field(default=1025, description="Largest grid width or height accepted")


settings = Settings()
