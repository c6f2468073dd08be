"""Raster model and image codec.

Key Components:
    - Raster: Immutable H x W x C pixel array with 1-4 channels
    - ImageFormat: Supported encodings (PNG, JPEG, BMP, TIFF, WebP)
    - decode / encode / convert: Bytes <-> Raster conversions

Example:
    from tiler.raster import ImageFormat, decode, encode

    raster = decode(png_bytes)
    jpeg_bytes = encode(raster, ImageFormat.JPEG)
"""

from tiler.raster.codec import (
    CODECS,
    FormatSpec,
    ImageFormat,
    convert,
    decode,
    encode,
    resolve_format,
    sniff,
)
from tiler.raster.types import Raster

__all__ = [
    "CODECS",
    "FormatSpec",
    "ImageFormat",
    "Raster",
    "convert",
    "decode",
    "encode",
    "resolve_format",
    "sniff",
]
