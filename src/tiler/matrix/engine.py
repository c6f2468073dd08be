"""Matrix arithmetic on rectangular numeric grids.

Grids cross the API as nested lists of floats and are computed with
numpy. Every operation is pure: operands are never modified and results
are fresh lists.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from tiler.exceptions import DimensionMismatch, InvalidMatrix

Grid = list[list[float]]


def as_array(grid: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Validate a grid and return it as a 2-D float64 array.

    Raises:
        InvalidMatrix: If the grid is empty, ragged or non-finite.
    """
    if isinstance(grid, np.ndarray):
        arr = grid.astype(np.float64, copy=False)
    else:
        rows = list(grid)
        if not rows:
            raise InvalidMatrix("Matrix must have at least one row")
        try:
            lengths = {len(r) for r in rows}
        except TypeError as e:
            raise InvalidMatrix("Matrix rows must be sequences of numbers") from e
        if len(lengths) != 1:
            raise InvalidMatrix("Matrix rows must all have the same length", lengths=sorted(lengths))
        try:
            arr = np.array(rows, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidMatrix(f"Matrix elements must be numbers: {e}") from e
    if arr.ndim != 2 or arr.shape[0] == 0 or arr.shape[1] == 0:
        raise InvalidMatrix("Matrix must be a non-empty 2-D grid", shape=arr.shape)
    if not np.all(np.isfinite(arr)):
        raise InvalidMatrix("Matrix elements must be finite")
    return arr


def to_grid(arr: np.ndarray) -> Grid:
    """Convert a 2-D array into nested lists of Python floats."""
    return [[float(v) for v in row] for row in arr]


def dims(grid: Sequence[Sequence[float]]) -> tuple[int, int]:
    """Return (rows, cols)."""
    rows, cols = as_array(grid).shape
    return (int(rows), int(cols))


def _require_same_shape(a: np.ndarray, b: np.ndarray, op: str) -> None:
    if a.shape != b.shape:
        raise DimensionMismatch(
            f"Cannot {op} matrices of different dimensions",
            left=a.shape,
            right=b.shape,
        )


def add(a: Sequence[Sequence[float]], b: Sequence[Sequence[float]]) -> Grid:
    """Elementwise sum of two equally shaped matrices."""
    x, y = as_array(a), as_array(b)
    _require_same_shape(x, y, "add")
    return to_grid(x + y)


def subtract(a: Sequence[Sequence[float]], b: Sequence[Sequence[float]]) -> Grid:
    """Elementwise difference of two equally shaped matrices."""
    x, y = as_array(a), as_array(b)
    _require_same_shape(x, y, "subtract")
    return to_grid(x - y)


def multiply(a: Sequence[Sequence[float]], b: Sequence[Sequence[float]]) -> Grid:
    """Matrix product; A's column count must equal B's row count."""
    x, y = as_array(a), as_array(b)
    if x.shape[1] != y.shape[0]:
        raise DimensionMismatch(
            "Cannot multiply: left column count must equal right row count",
            left=x.shape,
            right=y.shape,
        )
    return to_grid(x @ y)


def transpose(a: Sequence[Sequence[float]]) -> Grid:
    """Swap rows and columns."""
    return to_grid(as_array(a).T)


def identity(n: int) -> Grid:
    """Return the n x n identity matrix."""
    if n < 1:
        raise InvalidMatrix("Identity size must be positive", n=n)
    return to_grid(np.eye(n))
