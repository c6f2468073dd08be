"""Shared pytest fixtures and configuration."""

from collections.abc import Callable, Iterator

import numpy as np
import pytest

from tiler.config import Settings
from tiler.core.pyramid import PyramidConfig
from tiler.raster.codec import ImageFormat, encode
from tiler.raster.types import Raster
from tiler.service.images import ImageService
from tiler.service.matrices import MatrixService
from tiler.storage.memory import InMemoryStorage
from tiler.utils.logging import clear_correlation_context, configure_logging


def gradient_raster(width: int, height: int, channels: int = 3) -> Raster:
    """Deterministic raster whose pixels differ across both axes and channels."""
    ys, xs = np.mgrid[0:height, 0:width]
    planes = [((xs * 7 + ys * 13 + c * 50) % 256) for c in range(channels)]
    return Raster(np.stack(planes, axis=-1).astype(np.uint8))


@pytest.fixture(autouse=True)
def reset_logging_context() -> Iterator[None]:
    """Reset correlation context between tests."""
    clear_correlation_context()
    yield
    clear_correlation_context()


@pytest.fixture
def test_settings() -> Settings:
    """Create a Settings instance with test-safe defaults."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        LOG_LEVEL="DEBUG",
        LOG_FORMAT="console",
        TILE_WORKERS=2,
        STORAGE_BACKEND="memory",
    )


@pytest.fixture
def configure_test_logging() -> Iterator[None]:
    """Configure logging for tests with console output."""
    configure_logging(level="DEBUG", log_format="console")
    yield


@pytest.fixture
def make_raster() -> Callable[..., Raster]:
    """Factory for deterministic gradient rasters."""
    return gradient_raster


@pytest.fixture
def png_bytes() -> Callable[..., bytes]:
    """Factory for PNG-encoded gradient images."""

    def _make(width: int, height: int, channels: int = 3) -> bytes:
        return encode(gradient_raster(width, height, channels), ImageFormat.PNG)

    return _make


@pytest.fixture
def small_config() -> PyramidConfig:
    """Pyramid constants scaled down so tests stay fast."""
    return PyramidConfig(tile_size=64, min_level_size=16)


@pytest.fixture
def storage() -> InMemoryStorage:
    """Fresh in-memory storage backend."""
    return InMemoryStorage()


@pytest.fixture
def image_service(
    storage: InMemoryStorage, small_config: PyramidConfig, test_settings: Settings
) -> ImageService:
    """ImageService over in-memory storage with small tiles."""
    return ImageService(storage, config=small_config, settings=test_settings)


@pytest.fixture
def matrix_service(storage: InMemoryStorage) -> MatrixService:
    """MatrixService over in-memory storage."""
    return MatrixService(storage)
