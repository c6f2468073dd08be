"""Tiler configuration using pydantic-settings.

All configuration is strongly typed and supports environment variables
and .env files. The imaging engine never reads these values directly;
callers build a ``PyramidConfig`` from them and pass it in explicitly.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid.

    This exception provides clear, actionable error messages when
    configuration values required by a specific operation are not set.

    Example:
        >>> Settings(STORAGE_DIR="", _env_file=None).require_storage_dir()
        Traceback (most recent call last):
        ...
        ConfigError: Storage directory not configured. Set it in .env file or
        STORAGE_DIR environment variable.
    """

    def __init__(self, key_name: str, env_var: str) -> None:
        """Initialize configuration error.

        Args:
            key_name: Human-readable name of the missing key.
            env_var: Environment variable name to set.
        """
        self.key_name = key_name
        self.env_var = env_var
        message = (
            f"{key_name} not configured. "
            f"Set it in .env file or {env_var} environment variable."
        )
        super().__init__(message)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" or "json"

    # Pyramid / tiling
    TILE_SIZE: int = 512  # Nominal tile edge in pixels
    MIN_LEVEL_SIZE: int = 128  # Smallest allowed level edge
    GAUSSIAN_KERNEL_SIZE: int = 5  # Odd; 5 gives the binomial kernel
    BORDER_MODE: str = "replicate"  # "replicate", "reflect" or "zero"

    # Encoding
    TILE_FORMAT: str = "png"  # Storage format for tiles
    JPEG_QUALITY: int = 85

    # Compression (brotli)
    BROTLI_QUALITY: int = 10
    BROTLI_LG_WINDOW: int = 24

    # Concurrency
    TILE_WORKERS: int = 4  # Threads used to encode/compress tiles

    # Persistence
    RETAIN_ORIGINAL: bool = True
    STORAGE_BACKEND: str = "memory"  # "memory" or "filesystem"
    STORAGE_DIR: str = "./tiler_data"

    def require_storage_dir(self) -> Path:
        """Get the filesystem storage root, raising ConfigError if not set.

        Returns:
            The storage directory as a Path.

        Raises:
            ConfigError: If STORAGE_DIR is empty or blank.
        """
        if not self.STORAGE_DIR.strip():
            raise ConfigError("Storage directory", "STORAGE_DIR")
        return Path(self.STORAGE_DIR)


# Singleton instance for import convenience
settings = Settings()
