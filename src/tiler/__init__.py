"""Tiler: Gaussian image pyramids cut into compressed, addressable tiles."""

__version__ = "0.1.0"
