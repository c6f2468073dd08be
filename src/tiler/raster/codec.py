"""Codec adapter: bytes <-> Raster across a closed set of formats.

Formats are an enum plus an explicit codec table. Each entry records how
Pillow names the format, how to recognise it from its first bytes, which
channel layouts it can hold, and which encoder options keep it lossless
where the format allows. Anything outside the table fails fast with
UnsupportedFormat.

Format inference:
    1. The content signature, when it matches a known format.
    2. Otherwise the caller's hint (name, extension, or MIME type).
    3. Otherwise UnsupportedFormat.

    A hint that disagrees with the signature is logged and ignored; the
    bytes are the better witness.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from io import BytesIO
from typing import Any

import numpy as np
from PIL import Image, UnidentifiedImageError

from tiler.exceptions import CorruptData, EncodeError, UnsupportedFormat
from tiler.raster.types import Raster
from tiler.utils.logging import get_logger

logger = get_logger(__name__)

_DEFAULT_JPEG_QUALITY = 85


class ImageFormat(str, Enum):
    """Supported image formats."""

    PNG = "png"
    JPEG = "jpeg"
    BMP = "bmp"
    TIFF = "tiff"
    WEBP = "webp"

    @property
    def spec(self) -> FormatSpec:
        """Return the codec table entry for this format."""
        return CODECS[self]

    @property
    def mime_type(self) -> str:
        """Return the canonical MIME type."""
        return self.spec.mime_type

    @property
    def extension(self) -> str:
        """Return the preferred file extension, with leading dot."""
        return self.spec.extensions[0]

    @property
    def lossless(self) -> bool:
        """Return True if encode/decode preserves pixels exactly."""
        return self.spec.lossless

    @classmethod
    def parse(cls, hint: str | ImageFormat) -> ImageFormat:
        """Resolve a format from a name, file extension, or MIME type.

        Args:
            hint: e.g. "png", ".JPG", "image/webp", or an ImageFormat.

        Returns:
            The matching ImageFormat.

        Raises:
            UnsupportedFormat: If the hint names no supported format.
        """
        if isinstance(hint, ImageFormat):
            return hint
        key = hint.strip().lower()
        # Accept-style headers may carry parameters ("image/png; q=0.9")
        key = key.split(";", 1)[0].strip()
        for fmt, spec in CODECS.items():
            if (
                key == fmt.value
                or key == spec.mime_type
                or key in spec.aliases
                or key in spec.extensions
                or f".{key}" in spec.extensions
            ):
                return fmt
        raise UnsupportedFormat("Unknown image format", hint=hint)


@dataclass(frozen=True)
class FormatSpec:
    """Codec table entry.

    Attributes:
        pil_format: Name Pillow uses for the format.
        mime_type: Canonical MIME type.
        extensions: File extensions, preferred first.
        signature: Predicate on the leading bytes.
        lossless: True if round trips are pixel-exact.
        channels: Channel counts the format can represent.
        save_options: Extra keyword arguments for Image.save.
        aliases: Additional accepted names or MIME types.
    """

    pil_format: str
    mime_type: str
    extensions: tuple[str, ...]
    signature: Callable[[bytes], bool]
    lossless: bool
    channels: frozenset[int]
    save_options: Mapping[str, Any] = field(default_factory=dict)
    aliases: frozenset[str] = frozenset()


CODECS: dict[ImageFormat, FormatSpec] = {
    ImageFormat.PNG: FormatSpec(
        pil_format="PNG",
        mime_type="image/png",
        extensions=(".png",),
        signature=lambda b: b.startswith(b"\x89PNG\r\n\x1a\n"),
        lossless=True,
        channels=frozenset({1, 2, 3, 4}),
    ),
    ImageFormat.JPEG: FormatSpec(
        pil_format="JPEG",
        mime_type="image/jpeg",
        extensions=(".jpg", ".jpeg", ".jpe"),
        signature=lambda b: b.startswith(b"\xff\xd8\xff"),
        lossless=False,
        channels=frozenset({1, 3}),
        save_options={"quality": _DEFAULT_JPEG_QUALITY},
        aliases=frozenset({"jpg", "image/jpg", "image/pjpeg"}),
    ),
    ImageFormat.BMP: FormatSpec(
        pil_format="BMP",
        mime_type="image/bmp",
        extensions=(".bmp",),
        signature=lambda b: b.startswith(b"BM"),
        lossless=True,
        channels=frozenset({1, 3}),
        aliases=frozenset({"image/x-ms-bmp", "image/x-bmp"}),
    ),
    ImageFormat.TIFF: FormatSpec(
        pil_format="TIFF",
        mime_type="image/tiff",
        extensions=(".tiff", ".tif"),
        signature=lambda b: b.startswith((b"II*\x00", b"MM\x00*")),
        lossless=True,
        channels=frozenset({1, 2, 3, 4}),
        aliases=frozenset({"tif"}),
    ),
    ImageFormat.WEBP: FormatSpec(
        pil_format="WEBP",
        mime_type="image/webp",
        extensions=(".webp",),
        signature=lambda b: len(b) >= 12 and b[:4] == b"RIFF" and b[8:12] == b"WEBP",
        lossless=True,
        channels=frozenset({3, 4}),
        save_options={"lossless": True, "exact": True},
    ),
}

# Integer and float greyscale modes, rescaled to 8 bits rather than clipped
_WIDE_GREY_MODES = frozenset({"I", "I;16", "I;16B", "I;16L", "I;16N", "F"})

# Pillow modes that are not one of the four raster layouts
_MODE_CONVERSIONS: dict[str, str] = {
    "1": "L",
    "CMYK": "RGB",
    "YCbCr": "RGB",
    "LAB": "RGB",
    "HSV": "RGB",
    "RGBX": "RGB",
    "La": "LA",
    "RGBa": "RGBA",
    "PA": "RGBA",
}


def sniff(data: bytes) -> ImageFormat | None:
    """Return the format whose signature matches the leading bytes."""
    head = bytes(data[:16])
    for fmt, spec in CODECS.items():
        if spec.signature(head):
            return fmt
    return None


def _rescale_grey(image: Image.Image) -> Image.Image:
    """Map a wide greyscale image onto 8-bit L.

    16-bit samples keep their high byte. 32-bit integers that fit in 16 bits
    are treated the same way, and floats in [0, 1] are scaled by 255. Any
    other range is stretched min-max onto 0-255.
    """
    arr = np.asarray(image)
    if image.mode.startswith("I;16"):
        scaled = arr.astype(np.uint16) >> 8
    else:
        values = np.nan_to_num(arr.astype(np.float64))
        lo, hi = float(values.min()), float(values.max())
        if image.mode == "I" and lo >= 0 and hi <= 0xFFFF:
            scaled = values.astype(np.uint32) >> 8
        elif image.mode == "F" and lo >= 0 and hi <= 1:
            scaled = np.rint(values * 255)
        elif hi > lo:
            scaled = np.rint((values - lo) * (255 / (hi - lo)))
        else:
            scaled = np.zeros_like(values)
    return Image.fromarray(np.clip(scaled, 0, 255).astype(np.uint8))


def _normalize_mode(image: Image.Image) -> Image.Image:
    """Convert any Pillow mode onto L, LA, RGB or RGBA."""
    if image.mode in _WIDE_GREY_MODES:
        return _rescale_grey(image)
    if image.mode == "P":
        has_alpha = "transparency" in image.info
        return image.convert("RGBA" if has_alpha else "RGB")
    target = _MODE_CONVERSIONS.get(image.mode)
    if target is not None:
        return image.convert(target)
    return image


def decode(data: bytes, hint: str | ImageFormat | None = None) -> Raster:
    """Decode encoded image bytes into a Raster.

    Args:
        data: Encoded image bytes.
        hint: Optional format name, extension, or MIME type.

    Returns:
        Decoded 8-bit Raster.

    Raises:
        UnsupportedFormat: If the format cannot be determined or is unknown.
        CorruptData: If the bytes cannot be decoded as that format.
    """
    fmt = resolve_format(data, hint)
    if not data:
        raise CorruptData("Empty image data", format=fmt.value)

    spec = fmt.spec
    try:
        with Image.open(BytesIO(data), formats=[spec.pil_format]) as image:
            image.load()
            normalized = _normalize_mode(image)
            raster = Raster.from_pil(normalized)
    except Image.DecompressionBombError as e:
        raise CorruptData(
            f"Image exceeds the decoder pixel limit: {e}",
            format=fmt.value,
            nbytes=len(data),
        ) from e
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, EOFError) as e:
        raise CorruptData(
            f"Failed to decode image: {e}", format=fmt.value, nbytes=len(data)
        ) from e

    logger.debug(
        "Decoded image",
        format=fmt.value,
        width=raster.width,
        height=raster.height,
        channels=raster.channels,
    )
    return raster


def resolve_format(
    data: bytes, hint: str | ImageFormat | None = None
) -> ImageFormat:
    """Determine the format of encoded bytes from signature and hint.

    Raises:
        UnsupportedFormat: If neither the signature nor the hint resolves.
    """
    hinted = ImageFormat.parse(hint) if hint is not None else None
    sniffed = sniff(data)
    if sniffed is not None:
        if hinted is not None and hinted is not sniffed:
            logger.warning(
                "Format hint disagrees with content signature",
                hint=hinted.value,
                detected=sniffed.value,
            )
        return sniffed
    if hinted is not None:
        return hinted
    raise UnsupportedFormat(
        "Unrecognised image signature and no format hint given",
        head=bytes(data[:8]),
    )


def encode(
    raster: Raster,
    fmt: str | ImageFormat,
    *,
    jpeg_quality: int | None = None,
) -> bytes:
    """Encode a Raster into the target format.

    Args:
        raster: Raster to encode (8-bit samples).
        fmt: Target format or format hint.
        jpeg_quality: Overrides the JPEG quality (1-100).

    Returns:
        Encoded bytes.

    Raises:
        UnsupportedFormat: If the format cannot represent the channel layout.
        EncodeError: If the encoder fails.
    """
    target = ImageFormat.parse(fmt)
    spec = target.spec
    if raster.channels not in spec.channels:
        raise UnsupportedFormat(
            f"{target.value} cannot represent {raster.mode} rasters",
            format=target.value,
            channels=raster.channels,
        )

    options = dict(spec.save_options)
    if target is ImageFormat.JPEG and jpeg_quality is not None:
        if not 1 <= jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be 1-100, got {jpeg_quality}")
        options["quality"] = jpeg_quality

    image = raster.to_pil()
    buffer = BytesIO()
    try:
        image.save(buffer, format=spec.pil_format, **options)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeError(
            f"Failed to encode image: {e}",
            format=target.value,
            size=raster.size,
        ) from e
    return buffer.getvalue()


def convert(
    data: bytes,
    target: str | ImageFormat,
    hint: str | ImageFormat | None = None,
    *,
    jpeg_quality: int | None = None,
) -> bytes:
    """Re-encode image bytes in another format.

    Returns the input unchanged when it is already in the target format.
    """
    target_fmt = ImageFormat.parse(target)
    source_fmt = resolve_format(data, hint)
    if source_fmt is target_fmt:
        return data
    return encode(decode(data, source_fmt), target_fmt, jpeg_quality=jpeg_quality)
