"""Image and matrix services over the filesystem backend."""

from __future__ import annotations

from pathlib import Path

import pytest

from tiler.config import Settings
from tiler.core.pyramid import PyramidConfig
from tiler.raster.codec import ImageFormat, decode, encode
from tiler.service.images import ImageService
from tiler.service.matrices import MatrixService
from tiler.storage import FilesystemStorage, create_storage

pytestmark = pytest.mark.integration


@pytest.fixture
def fs_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        STORAGE_BACKEND="filesystem",
        STORAGE_DIR=str(tmp_path / "data"),
        TILE_WORKERS=2,
    )


@pytest.mark.asyncio
async def test_image_lifecycle_on_disk(fs_settings: Settings, make_raster) -> None:
    storage = create_storage(fs_settings)
    assert isinstance(storage, FilesystemStorage)
    service = ImageService(
        storage, config=PyramidConfig(tile_size=32, min_level_size=8), settings=fs_settings
    )
    raster = make_raster(50, 40)

    image_id = await service.create(encode(raster, ImageFormat.PNG), name="disk")

    blob_dir = storage.root / "blobs"
    record = await service.describe(image_id)
    assert sorted(p.name for p in blob_dir.iterdir()) == sorted(record.blob_ids())
    assert decode(await service.read_level(image_id, 0)) == raster
    assert decode(await service.read_tile(image_id, 0, 1, 1)) == raster.crop(32, 32, 18, 8)

    # A fresh service over the same directory sees the same image
    reopened = ImageService(
        FilesystemStorage(storage.root),
        config=PyramidConfig(tile_size=32, min_level_size=8),
        settings=fs_settings,
    )
    assert (await reopened.describe(image_id)).name == "disk"

    await service.update(image_id, encode(make_raster(20, 20, 1), ImageFormat.PNG))
    record = await service.describe(image_id)
    assert sorted(p.name for p in blob_dir.iterdir()) == sorted(record.blob_ids())

    await service.delete(image_id)
    assert list(blob_dir.iterdir()) == []
    assert await service.list_images() == []


@pytest.mark.asyncio
async def test_matrices_on_disk(fs_settings: Settings) -> None:
    service = MatrixService(create_storage(fs_settings))
    a = await service.create("A", [[1, 0], [0, 1]])
    b = await service.create("B", [[3, 4], [5, 6]])

    assert await service.multiply(b, a) == [[3.0, 4.0], [5.0, 6.0]]
    assert await service.add(a, b) == [[4.0, 4.0], [5.0, 7.0]]
