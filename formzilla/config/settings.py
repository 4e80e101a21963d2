"""
Application settings using Pydantic Settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults for the form filling service.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import (
    AnyHttpUrl,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format enumeration."""

    JSON = "json"
    CONSOLE = "console"
    TEXT = "text"


class VisionSettings(BaseSettings):
    """Vision language model endpoint settings."""

    model_config = SettingsConfigDict(
        env_prefix="VISION_",
        extra="ignore",
    )

    base_url: AnyHttpUrl = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        description="OpenAI-compatible inference endpoint base URL",
    )
    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="API key for the inference endpoint",
    )
    model: str = Field(
        default="gemini-2.0-flash",
        description="Model identifier for vision requests",
    )
    max_tokens: Annotated[int, Field(ge=1, le=32768)] = Field(
        default=8192,
        description="Maximum tokens in the model response",
    )
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = Field(
        default=0.0,
        description="Sampling temperature (lower = more deterministic)",
    )
    timeout: Annotated[int, Field(ge=1, le=600)] = Field(
        default=120,
        description="Inference request timeout in seconds",
    )
    max_retries: Annotated[int, Field(ge=0, le=10)] = Field(
        default=2,
        description="Maximum retry attempts for transient failures",
    )
    retry_min_wait: Annotated[int, Field(ge=1, le=60)] = Field(
        default=2,
        description="Minimum wait time between retries in seconds",
    )
    retry_max_wait: Annotated[int, Field(ge=1, le=300)] = Field(
        default=20,
        description="Maximum wait time between retries in seconds",
    )

    @property
    def is_configured(self) -> bool:
        """Check whether an API key has been provided."""
        return bool(self.api_key.get_secret_value())


class PDFSettings(BaseSettings):
    """PDF handling and rasterization settings."""

    model_config = SettingsConfigDict(
        env_prefix="PDF_",
        extra="ignore",
    )

    render_width: Annotated[int, Field(ge=200, le=4000)] = Field(
        default=1240,
        description="Pixel width every page is rendered at",
    )
    max_pages: Annotated[int, Field(ge=1, le=200)] = Field(
        default=30,
        description="Maximum pages accepted per document",
    )
    max_file_size_mb: Annotated[int, Field(ge=1, le=100)] = Field(
        default=10,
        description="Maximum PDF upload size in megabytes",
    )

    @property
    def max_file_size_bytes(self) -> int:
        """Maximum upload size in bytes."""
        return self.max_file_size_mb * 1024 * 1024


class ReviewSettings(BaseSettings):
    """Interactive review settings."""

    model_config = SettingsConfigDict(
        env_prefix="REVIEW_",
        extra="ignore",
    )

    poll_interval_ms: Annotated[int, Field(ge=0, le=60000)] = Field(
        default=1000,
        description="Live value poll interval in milliseconds (0 disables polling)",
    )


class StorageSettings(BaseSettings):
    """File storage settings for documents and profiles."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore",
    )

    data_dir: Path = Field(
        default=Path("./data"),
        description="Root directory for stored documents and profiles",
    )

    @field_validator("data_dir", mode="before")
    @classmethod
    def create_data_dir(cls, v: Any) -> Path:
        """Ensure the data directory exists."""
        path = Path(v) if isinstance(v, str) else v
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def documents_dir(self) -> Path:
        """Directory holding document blobs and metadata."""
        return self.data_dir / "documents"

    @property
    def profiles_dir(self) -> Path:
        """Directory holding user profiles."""
        return self.data_dir / "profiles"


class APISettings(BaseSettings):
    """FastAPI server configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = Field(
        default="0.0.0.0",
        description="API server host address",
    )
    port: Annotated[int, Field(ge=1, le=65535)] = Field(
        default=8000,
        description="API server port",
    )
    reload: bool = Field(
        default=False,
        description="Enable auto-reload for development",
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )


class SecuritySettings(BaseSettings):
    """Security configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
    )

    secret_key: SecretStr = Field(
        default=SecretStr("change-this-secret-key-in-production"),
        description="Secret used to sign access tokens",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_access_token_expire_minutes: Annotated[int, Field(ge=5, le=10080)] = Field(
        default=60,
        description="Access token expiration time in minutes",
    )


class PrivacySettings(BaseSettings):
    """Personal data handling settings."""

    model_config = SettingsConfigDict(
        env_prefix="PRIVACY_",
        extra="ignore",
    )

    pii_masking_enabled: bool = Field(
        default=True,
        description="Mask personal data in logs",
    )


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    file_path: Path = Field(
        default=Path("./logs/formzilla.log"),
        description="Log file path",
    )
    file_max_size_mb: Annotated[int, Field(ge=1, le=1000)] = Field(
        default=50,
        description="Maximum log file size in MB",
    )
    file_backup_count: Annotated[int, Field(ge=1, le=20)] = Field(
        default=5,
        description="Number of backup log files to keep",
    )
    include_timestamp: bool = Field(
        default=True,
        description="Include timestamp in log entries",
    )
    include_caller: bool = Field(
        default=True,
        description="Include caller information in log entries",
    )

    @field_validator("file_path", mode="before")
    @classmethod
    def create_log_dir(cls, v: Any) -> Path:
        """Ensure log directory exists."""
        path = Path(v) if isinstance(v, str) else v
        path.parent.mkdir(parents=True, exist_ok=True)
        return path


class Settings(BaseSettings):
    """
    Main application settings aggregating all configuration sections.

    Settings are loaded from environment variables with optional .env file support.
    Each section has its own prefix for environment variable naming.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application metadata
    app_name: str = Field(
        default="formzilla",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Component settings
    vision: VisionSettings = Field(default_factory=VisionSettings)
    pdf: PDFSettings = Field(default_factory=PDFSettings)
    review: ReviewSettings = Field(default_factory=ReviewSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    api: APISettings = Field(default_factory=APISettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @staticmethod
    def _is_weak_secret(secret: str) -> bool:
        """Check if a secret is weak or uses default patterns."""
        weak_patterns = [
            "change-this",
            "your-secret",
            "changeme",
            "password",
            "secret",
            "default",
            "example",
            "test",
            "dev-",
        ]
        secret_lower = secret.lower()
        return any(pattern in secret_lower for pattern in weak_patterns)

    @staticmethod
    def _has_sufficient_entropy(secret: str, min_length: int = 32) -> bool:
        """Check if secret has sufficient length and character variety."""
        if len(secret) < min_length:
            return False
        # At least 3 of: upper, lower, digit, special
        has_upper = any(c.isupper() for c in secret)
        has_lower = any(c.islower() for c in secret)
        has_digit = any(c.isdigit() for c in secret)
        has_special = any(not c.isalnum() for c in secret)
        return sum([has_upper, has_lower, has_digit, has_special]) >= 3

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate critical settings for production environment."""
        if self.app_env == Environment.PRODUCTION:
            secret_key = self.security.secret_key.get_secret_value()

            if self._is_weak_secret(secret_key):
                raise ValueError(
                    "SECRET_KEY appears to be a default or weak value. "
                    "Use a strong, randomly generated secret in production."
                )
            if not self._has_sufficient_entropy(secret_key, min_length=32):
                raise ValueError(
                    "SECRET_KEY must be at least 32 characters with mixed "
                    "uppercase, lowercase, digits, and special characters."
                )
            if not self.vision.is_configured:
                raise ValueError("VISION_API_KEY must be set in production")
            if self.debug:
                raise ValueError("DEBUG must be False in production")

        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.app_env == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
