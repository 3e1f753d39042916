"""Configuration models."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

STATUS_ONLINE = 1


class EnvSettings(BaseSettings):
    """Overrides read from the environment or the .env file."""

    host: Optional[str] = Field(None, description="Override server host")
    port: Optional[int] = Field(None, description="Override server port")
    db_path: Optional[str] = Field(None, description="Override database file path")
    log_level: Optional[str] = Field(None, description="Override logging level")

    model_config = SettingsConfigDict(
        env_prefix="MARKSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppConfig(BaseModel):
    """Application configuration from config.yaml."""

    # Server settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8080, description="Server port", ge=1, le=65535)
    allowed_origins: List[str] = Field(
        default_factory=list,
        description="CORS origins allowed to call the API (e.g., chrome-extension://<id>)",
    )

    # Storage
    db_path: Optional[str] = Field(
        None,
        description="Database file path. Defaults to marksync.db in the config directory; "
        "':memory:' keeps everything in memory.",
    )
    id_length: int = Field(default=32, ge=8, le=128, description="Length of generated sync IDs")

    # Service info reported by GET /info
    api_version: str = Field(default="1.1.13", description="xBrowserSync API version")
    service_message: str = Field(default="", description="Service information message")
    service_status: Literal[1, 2, 3] = Field(
        default=STATUS_ONLINE,
        description="1 = Online, 2 = Offline, 3 = Not accepting new syncs",
    )
    max_sync_size: int = Field(default=204800, ge=1, description="Maximum sync size in bytes")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "host": "0.0.0.0",
            "port": 8080,
            "db_path": "/var/lib/marksync/marksync.db",
            "api_version": "1.1.13",
            "service_message": "Hello World!",
            "service_status": 1,
            "allowed_origins": ["chrome-extension://your-extension-id"],
        }
    })
