"""CLI module for tiler.

Provides the command-line interface for tiling images and writing
their pyramid levels.
"""

from __future__ import annotations

from tiler.cli.main import app

__all__ = ["app"]
