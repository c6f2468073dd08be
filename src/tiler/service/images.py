"""Image lifecycle: upload, derivation, reads, updates and deletion.

Derivation is synchronous with the request that triggers it. For each
upload the service decodes the bytes, builds the Gaussian pyramid, cuts
every level into tiles, encodes and compresses the tiles on a thread
pool, and stores them. The image document only becomes ``ready`` after
every blob it references has been written.

Updates never expose a half-built version: the new pyramid is written to
fresh blobs, the document is swapped in a single ``update_document``,
and only then are the previous version's blobs removed.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from pydantic import ValidationError

from tiler.config import Settings
from tiler.config import settings as default_settings
from tiler.core.compressor import Compressor
from tiler.core.pyramid import Pyramid, PyramidBuilder, PyramidConfig
from tiler.core.tiling import Tile, TileGrid, Tiler, reassemble
from tiler.exceptions import (
    CorruptData,
    DerivationFailed,
    DocumentNotFound,
    NotFound,
    NotReady,
    TileNotFound,
)
from tiler.raster.codec import ImageFormat, convert, decode, encode, resolve_format
from tiler.raster.types import Raster
from tiler.service.schemas import (
    ImageRecord,
    ImageStatus,
    LevelRecord,
    PyramidRecord,
    TileRecord,
    utcnow,
)
from tiler.storage.protocol import StorageBackend
from tiler.utils.logging import (
    clear_correlation_context,
    get_logger,
    set_correlation_context,
)

logger = get_logger(__name__)

IMAGE_KIND = "image"
_DEFAULT_NAME = re.compile(r"image_(\d+)")


@dataclass(frozen=True)
class _PackedTile:
    """A tile ready for storage."""

    tile: Tile
    payload: bytes
    digest: str


def _digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _output_format(source: str, channels: int) -> ImageFormat:
    """Return the source format, or PNG when it cannot hold the channel layout."""
    fmt = ImageFormat.parse(source)
    if channels in fmt.spec.channels:
        return fmt
    return ImageFormat.PNG


class ImageService:
    """Stores images together with their tiled Gaussian pyramids.

    Example:
        >>> service = ImageService(InMemoryStorage())
        >>> image_id = await service.create(png_bytes)
        >>> tile = await service.read_tile(image_id, level=1, row=0, col=0)
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: PyramidConfig | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            storage: Backend for blobs and documents.
            config: Pyramid and tiling constants. Built from settings if omitted.
            settings: Application settings. The module singleton if omitted.
        """
        self._storage = storage
        self._settings = settings or default_settings
        self._config = config or PyramidConfig.from_settings(self._settings)
        self._builder = PyramidBuilder(self._config)
        self._tiler = Tiler(self._config.tile_size)
        self._compressor = Compressor(
            quality=self._settings.BROTLI_QUALITY,
            lg_window=self._settings.BROTLI_LG_WINDOW,
        )
        self._tile_format = ImageFormat.parse(self._settings.TILE_FORMAT)
        self._workers = max(1, self._settings.TILE_WORKERS)
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def config(self) -> PyramidConfig:
        """Return the pyramid configuration."""
        return self._config

    @property
    def tile_format(self) -> ImageFormat:
        """Return the format tiles are stored in."""
        return self._tile_format

    def _lock_for(self, image_id: str) -> asyncio.Lock:
        return self._locks.setdefault(image_id, asyncio.Lock())

    async def _get_locked_record(self, image_id: str) -> ImageRecord:
        try:
            return await self._get_record(image_id)
        except NotFound:
            self._locks.pop(image_id, None)
            raise

    @staticmethod
    def _begin(operation: str, image_id: str | None = None, level: int | None = None) -> None:
        clear_correlation_context()
        set_correlation_context(image_id=image_id, operation=operation, level=level)

    # --- Derivation ----------------------------------------------------------

    def _pack_tile(self, tile: Tile) -> _PackedTile:
        encoded = encode(tile.raster, self._tile_format, jpeg_quality=self._settings.JPEG_QUALITY)
        payload = self._compressor.compress(encoded)
        return _PackedTile(tile=tile, payload=payload, digest=_digest(payload))

    def _pack_grid(self, grid: TileGrid) -> list[_PackedTile]:
        if self._workers == 1 or len(grid) == 1:
            return [self._pack_tile(t) for t in grid]
        with ThreadPoolExecutor(
            max_workers=min(self._workers, len(grid)),
            thread_name_prefix="tiler-pack",
        ) as pool:
            return list(pool.map(self._pack_tile, grid))

    async def _put_blobs(self, payloads: Sequence[bytes], written: list[str]) -> list[str]:
        """Store payloads concurrently, recording every id that was written.

        Raises the first storage error after all calls have settled, so that
        ``written`` is complete for rollback.
        """
        results = await asyncio.gather(
            *(self._storage.put_blob(p) for p in payloads),
            return_exceptions=True,
        )
        ids: list[str] = []
        error: BaseException | None = None
        for result in results:
            if isinstance(result, BaseException):
                error = error or result
            else:
                written.append(result)
                ids.append(result)
        if error is not None:
            raise error
        return ids

    async def _discard(self, blob_ids: Sequence[str]) -> None:
        """Delete blobs, logging any that could not be removed."""
        if not blob_ids:
            return
        results = await asyncio.gather(
            *(self._storage.delete_blob(b) for b in blob_ids),
            return_exceptions=True,
        )
        failures = [
            (blob_id, r)
            for blob_id, r in zip(blob_ids, results, strict=True)
            if isinstance(r, Exception) and not isinstance(r, NotFound)
        ]
        for blob_id, r in failures:
            logger.warning("Failed to delete blob", blob_id=blob_id, error=str(r))

    async def _derive(self, raster: Raster, written: list[str]) -> PyramidRecord:
        """Build, tile and store the pyramid of a raster."""
        logger.info(
            "Derivation started",
            width=raster.width,
            height=raster.height,
            tile_size=self._config.tile_size,
        )
        pyramid: Pyramid = await asyncio.to_thread(self._builder.build, raster)

        levels: list[LevelRecord] = []
        tile_count = 0
        for level in pyramid:
            set_correlation_context(level=level.index)
            grid = self._tiler.tile(level.raster)
            packed = await asyncio.to_thread(self._pack_grid, grid)
            blob_ids = await self._put_blobs([p.payload for p in packed], written)
            tiles = [
                TileRecord(
                    row=p.tile.row,
                    col=p.tile.col,
                    x=p.tile.x,
                    y=p.tile.y,
                    width=p.tile.width,
                    height=p.tile.height,
                    blob_id=blob_id,
                    digest=p.digest,
                )
                for p, blob_id in zip(packed, blob_ids, strict=True)
            ]
            levels.append(
                LevelRecord(
                    index=level.index,
                    width=level.width,
                    height=level.height,
                    rows=grid.rows,
                    cols=grid.cols,
                    tiles=tiles,
                )
            )
            tile_count += len(tiles)
            logger.debug("Level stored", width=level.width, height=level.height, tiles=len(tiles))

        logger.info("Derivation finished", levels=len(levels), tiles=tile_count)
        return PyramidRecord(
            tile_size=self._config.tile_size,
            min_level_size=self._config.min_level_size,
            tile_format=self._tile_format.value,
            compression=self._compressor.name,
            levels=levels,
        )

    async def _store_original(self, data: bytes, written: list[str]) -> str | None:
        if not self._settings.RETAIN_ORIGINAL:
            return None
        (blob_id,) = await self._put_blobs([data], written)
        return blob_id

    # --- Document access -----------------------------------------------------

    async def _get_record(self, image_id: str) -> ImageRecord:
        fields = await self._storage.get_document(image_id)
        try:
            return ImageRecord.model_validate(fields)
        except ValidationError as e:
            raise DocumentNotFound("Document is not an image", image_id=image_id) from e

    async def _get_ready(self, image_id: str) -> ImageRecord:
        record = await self._get_record(image_id)
        if record.status is ImageStatus.PROCESSING:
            raise NotReady("Image derivation has not completed", image_id=image_id)
        if record.status is ImageStatus.FAILED:
            raise DerivationFailed(
                "Image derivation failed",
                image_id=image_id,
                reason=record.error_message,
            )
        return record

    @staticmethod
    def _dump(record: ImageRecord) -> dict:
        return record.model_dump(mode="json")

    async def _default_name(self) -> str:
        existing = await self._storage.list_documents(IMAGE_KIND)
        highest = len(existing)
        for _, fields in existing:
            match = _DEFAULT_NAME.fullmatch(str(fields.get("name", "")))
            if match:
                highest = max(highest, int(match.group(1)))
        return f"image_{highest + 1}"

    # --- Operations ----------------------------------------------------------

    async def create(
        self,
        data: bytes,
        format_hint: str | ImageFormat | None = None,
        name: str | None = None,
    ) -> str:
        """Store an image and derive its tiled pyramid.

        Args:
            data: Encoded image bytes.
            format_hint: Format name, extension or MIME type. The content
                signature wins when both are present.
            name: Display name. Defaults to ``image_<n>``.

        Returns:
            The new image id.

        Raises:
            UnsupportedFormat: If the format cannot be determined.
            CorruptData: If the bytes cannot be decoded.
            StorageFailure: If the backend fails. Everything written so far
                is rolled back and the document is marked failed.
        """
        self._begin("create")
        source_format = resolve_format(data, format_hint)
        raster = await asyncio.to_thread(decode, data, source_format)

        record = ImageRecord(
            name=name or await self._default_name(),
            source_format=source_format.value,
            width=raster.width,
            height=raster.height,
            channels=raster.channels,
        )
        image_id = await self._storage.put_document(IMAGE_KIND, self._dump(record))
        set_correlation_context(image_id=image_id)
        logger.info("Image accepted", name=record.name, format=source_format.value)

        written: list[str] = []
        try:
            original_blob_id = await self._store_original(data, written)
            pyramid = await self._derive(raster, written)
            record = record.model_copy(
                update={
                    "original_blob_id": original_blob_id,
                    "pyramid": pyramid,
                    "status": ImageStatus.READY,
                    "updated_at": utcnow(),
                }
            )
            await self._storage.update_document(image_id, self._dump(record))
        except Exception as e:
            logger.warning("Derivation failed, rolling back", blobs=len(written), error=str(e))
            await self._discard(written)
            failed = record.model_copy(
                update={
                    "status": ImageStatus.FAILED,
                    "original_blob_id": None,
                    "pyramid": None,
                    "error_message": str(e),
                    "updated_at": utcnow(),
                }
            )
            try:
                await self._storage.update_document(image_id, self._dump(failed))
            except Exception as mark_error:
                logger.error(
                    "Could not mark image as failed",
                    error=str(mark_error),
                )
            raise

        logger.info("Image ready", version=record.version)
        return image_id

    async def describe(self, image_id: str) -> ImageRecord:
        """Return the image document, whatever its status."""
        return await self._get_record(image_id)

    async def list_images(self) -> list[tuple[str, ImageRecord]]:
        """Return (id, record) for every stored image."""
        docs = await self._storage.list_documents(IMAGE_KIND)
        return [(doc_id, ImageRecord.model_validate(fields)) for doc_id, fields in docs]

    async def read(self, image_id: str, target_format: str | ImageFormat | None = None) -> bytes:
        """Return the full-resolution image.

        Returns the stored original byte-for-byte when no target format is
        given. When originals are not retained, level 0 is rebuilt from its
        tiles and encoded in the source format, or PNG when the source format
        cannot hold the channel layout.

        Raises:
            NotFound: If the image is unknown or a blob has gone.
            NotReady: If derivation has not completed.
            DerivationFailed: If derivation failed.
        """
        self._begin("read", image_id)
        record = await self._get_ready(image_id)
        if record.original_blob_id is not None:
            data = await self._storage.get_blob(record.original_blob_id)
            if target_format is None:
                return data
            return await asyncio.to_thread(
                convert,
                data,
                target_format,
                record.source_format,
                jpeg_quality=self._settings.JPEG_QUALITY,
            )
        raster = await self._assemble_level(image_id, record, 0)
        return await asyncio.to_thread(
            encode,
            raster,
            target_format or _output_format(record.source_format, record.channels),
            jpeg_quality=self._settings.JPEG_QUALITY,
        )

    async def read_level(
        self,
        image_id: str,
        level: int,
        target_format: str | ImageFormat | None = None,
    ) -> bytes:
        """Return one whole pyramid level, rebuilt from its tiles.

        Encoded in the tile format unless a target format is given.

        Raises:
            TileNotFound: If the level index is out of range.
        """
        self._begin("read_level", image_id, level)
        record = await self._get_ready(image_id)
        raster = await self._assemble_level(image_id, record, level)
        fmt = target_format or record.pyramid.tile_format
        return await asyncio.to_thread(
            encode, raster, fmt, jpeg_quality=self._settings.JPEG_QUALITY
        )

    async def read_tile(
        self,
        image_id: str,
        level: int,
        row: int,
        col: int,
        target_format: str | ImageFormat | None = None,
    ) -> bytes:
        """Return one tile.

        Args:
            image_id: Image id.
            level: Pyramid level (0 = full resolution).
            row: Tile row.
            col: Tile column.
            target_format: Re-encode into this format if given.

        Returns:
            Encoded tile bytes, in the tile format unless a target is given.

        Raises:
            TileNotFound: If (level, row, col) is outside the current pyramid.
            CorruptData: If the stored tile fails its digest check.
            DecompressError: If the stored tile is not a valid brotli stream.
        """
        self._begin("read_tile", image_id, level)
        record = await self._get_ready(image_id)
        tile = self._tile_record(image_id, record, level, row, col)
        encoded = await self._fetch_tile(image_id, tile)
        tile_format = record.pyramid.tile_format
        if target_format is None:
            return encoded
        return await asyncio.to_thread(
            convert,
            encoded,
            target_format,
            tile_format,
            jpeg_quality=self._settings.JPEG_QUALITY,
        )

    async def update(
        self,
        image_id: str,
        data: bytes,
        format_hint: str | ImageFormat | None = None,
    ) -> int:
        """Replace an image and re-derive its pyramid.

        Updates of the same image are serialised. Readers see either the old
        or the new version, never a mix; a reader that asks for a blob of the
        old version after the swap gets NotFound.

        Returns:
            The new version number.

        Raises:
            NotFound: If the image is unknown.
            NotReady: If the image is still being created.
        """
        async with self._lock_for(image_id):
            self._begin("update", image_id)
            current = await self._get_locked_record(image_id)
            if current.status is ImageStatus.PROCESSING:
                raise NotReady("Image derivation has not completed", image_id=image_id)

            source_format = resolve_format(data, format_hint)
            raster = await asyncio.to_thread(decode, data, source_format)

            written: list[str] = []
            try:
                original_blob_id = await self._store_original(data, written)
                pyramid = await self._derive(raster, written)
                replacement = current.model_copy(
                    update={
                        "source_format": source_format.value,
                        "width": raster.width,
                        "height": raster.height,
                        "channels": raster.channels,
                        "version": current.version + 1,
                        "status": ImageStatus.READY,
                        "original_blob_id": original_blob_id,
                        "pyramid": pyramid,
                        "error_message": None,
                        "updated_at": utcnow(),
                    }
                )
                await self._storage.update_document(image_id, self._dump(replacement))
            except Exception as e:
                logger.warning("Update failed, rolling back", blobs=len(written), error=str(e))
                await self._discard(written)
                raise

            await self._discard(current.blob_ids())
            logger.info("Image updated", version=replacement.version)
            return replacement.version

    async def delete(self, image_id: str) -> None:
        """Delete an image, its original and every tile.

        Raises:
            NotFound: If the image is unknown.
        """
        async with self._lock_for(image_id):
            self._begin("delete", image_id)
            record = await self._get_locked_record(image_id)
            await self._discard(record.blob_ids())
            await self._storage.delete_document(image_id)
            logger.info("Image deleted", blobs=len(record.blob_ids()))
        self._locks.pop(image_id, None)

    # --- Tile reads ----------------------------------------------------------

    @staticmethod
    def _level_record(image_id: str, record: ImageRecord, level: int) -> LevelRecord:
        levels = record.pyramid.levels if record.pyramid else []
        if not 0 <= level < len(levels):
            raise TileNotFound(
                "Level outside pyramid",
                image_id=image_id,
                level=level,
                level_count=len(levels),
            )
        return levels[level]

    def _tile_record(
        self, image_id: str, record: ImageRecord, level: int, row: int, col: int
    ) -> TileRecord:
        level_record = self._level_record(image_id, record, level)
        tile = level_record.tile_at(row, col)
        if tile is None:
            raise TileNotFound(
                "Tile coordinate outside grid",
                image_id=image_id,
                level=level,
                row=row,
                col=col,
                shape=(level_record.rows, level_record.cols),
            )
        return tile

    def _unpack(self, image_id: str, tile: TileRecord, payload: bytes) -> bytes:
        if _digest(payload) != tile.digest:
            raise CorruptData(
                "Stored tile failed its digest check",
                image_id=image_id,
                row=tile.row,
                col=tile.col,
            )
        return self._compressor.decompress(payload)

    async def _fetch_tile(self, image_id: str, tile: TileRecord) -> bytes:
        payload = await self._storage.get_blob(tile.blob_id)
        return await asyncio.to_thread(self._unpack, image_id, tile, payload)

    async def _assemble_level(self, image_id: str, record: ImageRecord, level: int) -> Raster:
        level_record = self._level_record(image_id, record, level)
        tile_format = record.pyramid.tile_format
        encoded = await asyncio.gather(
            *(self._fetch_tile(image_id, t) for t in level_record.tiles)
        )

        def build() -> Raster:
            tiles = tuple(
                Tile(row=t.row, col=t.col, x=t.x, y=t.y, raster=decode(data, tile_format))
                for t, data in zip(level_record.tiles, encoded, strict=True)
            )
            grid = TileGrid(
                width=level_record.width,
                height=level_record.height,
                tile_size=record.pyramid.tile_size,
                rows=level_record.rows,
                cols=level_record.cols,
                tiles=tiles,
            )
            return reassemble(grid)

        return await asyncio.to_thread(build)
