"""
Configuration management for the sheet fetcher.

Provides environment-tiered defaults (development / production) and loads
overrides from environment variables and .env files.
"""

import os
import logging
from pathlib import Path
from typing import Optional, Tuple
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .state import EndpointConfig

logger = logging.getLogger(__name__)


class FtpSettings(BaseModel):
    """
    Remote endpoint defaults and connection policy.

    Attributes:
        default_host: Host used when no saved endpoint exists
        default_port: Control port of the FTP server
        connection_timeout: Seconds allowed for a single connect attempt
        retry_attempts: Attempts per transfer operation before giving up
    """

    model_config = ConfigDict(frozen=True)

    default_host: str = Field(default="ftp.example.com")
    default_port: int = Field(default=21, ge=1, le=65535)
    default_username: str = Field(default="user")
    default_password: str = Field(default="password")
    default_filename: str = Field(default="data.xls")
    connection_timeout: float = Field(default=30.0, gt=0, le=600)
    retry_attempts: int = Field(default=3, ge=1, le=10)


class RefreshSettings(BaseModel):
    """Fetch cycle scheduling and artifact limits."""

    model_config = ConfigDict(frozen=True)

    refresh_interval: float = Field(default=30.0, gt=0)
    auto_refresh: bool = Field(default=True)
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)
    supported_file_types: Tuple[str, ...] = Field(default=(".xls", ".xlsx", ".csv"))
    download_dir: str = Field(default="data/downloads")
    allow_synthetic_fallback: bool = Field(default=True)


class LoggingSettings(BaseModel):
    """Log queue and console logging settings."""

    model_config = ConfigDict(frozen=True)

    enable_console_logging: bool = Field(default=True)
    enable_remote_logging: bool = Field(default=False)
    log_level: str = Field(default="debug")
    log_dir: str = Field(default="data/logs")
    queue_capacity: int = Field(default=100, ge=1)
    flush_interval: float = Field(default=30.0, gt=0)
    sink_url: Optional[str] = Field(default=None)
    json_output: bool = Field(default=False)


class AppConfig(BaseModel):
    """Complete application configuration for one environment tier."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="development")
    ftp: FtpSettings = Field(default_factory=FtpSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    credential_db_path: str = Field(default="data/credentials.db")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def default_endpoint(self) -> EndpointConfig:
        """Endpoint built from tier defaults, used when nothing is saved."""
        return EndpointConfig(
            host=self.ftp.default_host,
            port=self.ftp.default_port,
            username=self.ftp.default_username,
            password=self.ftp.default_password,
            target_filename=self.ftp.default_filename,
        )


DEVELOPMENT = AppConfig(
    environment="development",
    ftp=FtpSettings(connection_timeout=30.0, retry_attempts=3),
    refresh=RefreshSettings(
        refresh_interval=30.0,
        max_file_size=10 * 1024 * 1024,
        supported_file_types=(".xls", ".xlsx", ".csv"),
        allow_synthetic_fallback=True,
    ),
    logging=LoggingSettings(
        enable_console_logging=True,
        enable_remote_logging=False,
        log_level="debug",
    ),
)

PRODUCTION = AppConfig(
    environment="production",
    ftp=FtpSettings(connection_timeout=45.0, retry_attempts=5),
    refresh=RefreshSettings(
        refresh_interval=60.0,
        max_file_size=50 * 1024 * 1024,
        supported_file_types=(".xls", ".xlsx", ".csv", ".tsv"),
        allow_synthetic_fallback=False,
    ),
    logging=LoggingSettings(
        enable_console_logging=False,
        enable_remote_logging=True,
        log_level="error",
        json_output=True,
    ),
)

TIERS = {
    "development": DEVELOPMENT,
    "production": PRODUCTION,
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigLoader:
    """
    Load the tiered application configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Tier defaults (APP_ENV selects development or production)

    Example:
        >>> loader = ConfigLoader()
        >>> config = loader.load()
        >>> config.ftp.retry_attempts
        3
    """

    def __init__(self, env_file: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            env_file: Path to .env file (default: .env in working directory)
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.info(f"Loaded configuration from {env_path}")
        self._loaded_from_env = env_path.exists()

    def load(self, environment: Optional[str] = None) -> AppConfig:
        """
        Build the AppConfig for the requested (or APP_ENV) tier.

        Environment variables:
        - FTP_HOST / FTP_PORT / FTP_USERNAME / FTP_PASSWORD / FTP_FILENAME
        - FTP_CONNECTION_TIMEOUT: Seconds per connect attempt
        - FTP_RETRY_ATTEMPTS: Attempts per operation
        - REFRESH_INTERVAL: Seconds between automatic fetch cycles
        - MAX_FILE_SIZE: Byte ceiling for downloaded files
        - SUPPORTED_FILE_TYPES: Comma-separated extensions (".xls,.csv")
        - DOWNLOAD_DIR: Directory for downloaded artifacts
        - ALLOW_SYNTHETIC_FALLBACK: Substitute placeholder data on failure
        - LOG_LEVEL / LOG_DIR / LOG_SINK_URL / LOG_QUEUE_CAPACITY
        - CREDENTIAL_DB_PATH: SQLite file for saved endpoints

        Returns:
            AppConfig: Validated configuration instance
        """
        name = (environment or os.getenv("APP_ENV", "development")).strip().lower()
        if name not in TIERS:
            logger.warning(f"Unknown APP_ENV '{name}', using development defaults")
            name = "development"
        base = TIERS[name]

        ftp = base.ftp.model_copy(update={
            "default_host": os.getenv("FTP_HOST", base.ftp.default_host),
            "default_port": int(os.getenv("FTP_PORT", str(base.ftp.default_port))),
            "default_username": os.getenv("FTP_USERNAME", base.ftp.default_username),
            "default_password": os.getenv("FTP_PASSWORD", base.ftp.default_password),
            "default_filename": os.getenv("FTP_FILENAME", base.ftp.default_filename),
            "connection_timeout": float(
                os.getenv("FTP_CONNECTION_TIMEOUT", str(base.ftp.connection_timeout))
            ),
            "retry_attempts": int(os.getenv("FTP_RETRY_ATTEMPTS", str(base.ftp.retry_attempts))),
        })

        file_types = os.getenv("SUPPORTED_FILE_TYPES")
        refresh = base.refresh.model_copy(update={
            "refresh_interval": float(
                os.getenv("REFRESH_INTERVAL", str(base.refresh.refresh_interval))
            ),
            "auto_refresh": _env_bool("AUTO_REFRESH", base.refresh.auto_refresh),
            "max_file_size": int(os.getenv("MAX_FILE_SIZE", str(base.refresh.max_file_size))),
            "supported_file_types": (
                tuple(t.strip().lower() for t in file_types.split(",") if t.strip())
                if file_types
                else base.refresh.supported_file_types
            ),
            "download_dir": os.getenv("DOWNLOAD_DIR", base.refresh.download_dir),
            "allow_synthetic_fallback": _env_bool(
                "ALLOW_SYNTHETIC_FALLBACK", base.refresh.allow_synthetic_fallback
            ),
        })

        log_settings = base.logging.model_copy(update={
            "log_level": os.getenv("LOG_LEVEL", base.logging.log_level).lower(),
            "log_dir": os.getenv("LOG_DIR", base.logging.log_dir),
            "sink_url": os.getenv("LOG_SINK_URL", base.logging.sink_url),
            "queue_capacity": int(
                os.getenv("LOG_QUEUE_CAPACITY", str(base.logging.queue_capacity))
            ),
        })

        config = AppConfig.model_validate({
            "environment": name,
            "ftp": ftp.model_dump(),
            "refresh": refresh.model_dump(),
            "logging": log_settings.model_dump(),
            "credential_db_path": os.getenv("CREDENTIAL_DB_PATH", base.credential_db_path),
        })

        logger.info(
            f"Loaded AppConfig: environment={config.environment}, "
            f"retries={config.ftp.retry_attempts}, refresh={config.refresh.refresh_interval}s"
        )
        return config


def load_config(environment: Optional[str] = None, env_file: Optional[str] = None) -> AppConfig:
    """Convenience wrapper around ConfigLoader."""
    return ConfigLoader(env_file).load(environment)
