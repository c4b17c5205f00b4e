from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from labelmaps.container import INTEGER_KINDS, NumericArray, Value, read_numeric
from labelmaps.errors import InconsistentRleError, InvalidShapeError, MissingFieldError

IMAGE_SHAPE_FIELD = "image_shape"
RLE_FIELD = "atomic_SLIC_rle"


@dataclass(frozen=True)
class ImageSize:
    rows: int
    cols: int
    stride: int

    @property
    def pixel_count(self) -> int:
        return self.rows * self.cols


def load_image_size(value: Optional[Value], name: str = IMAGE_SHAPE_FIELD) -> ImageSize:
    """Read a 1x3 int32/int64 vector as (rows, cols, stride)."""
    if value is None:
        raise MissingFieldError(name, f"File does not include {name}")
    if not isinstance(value, NumericArray) or value.rank != 2 or value.is_complex or value.shape != (1, 3):
        raise InvalidShapeError(f"{name} is invalid")

    data = read_numeric(value, name, INTEGER_KINDS, f"{name} has unknown type")
    rows, cols, stride = (int(v) for v in data)
    if rows < 0 or cols < 0 or stride < 0:
        raise InvalidShapeError(f"{name} is invalid: negative extent in ({rows}, {cols}, {stride})")
    return ImageSize(rows=rows, cols=cols, stride=stride)


def expand_rle(
    value: Optional[Value],
    size: ImageSize,
    *,
    strict: bool = True,
    name: str = RLE_FIELD,
) -> np.ndarray:
    """Expand an Nx2 run-length table into one atomic superpixel id per pixel.

    Column 0 holds run lengths and column 1 the ids; runs fill the output in
    order. With ``strict`` the runs must cover exactly ``rows * cols`` pixels.
    Otherwise runs past the end are cut off and uncovered pixels stay 0.
    """
    if value is None:
        raise MissingFieldError(name, f"File does not include {name}")
    if not isinstance(value, NumericArray) or value.rank != 2 or value.is_complex or value.shape[1] != 2:
        raise InvalidShapeError(f"{name} is invalid")

    data = read_numeric(value, name, INTEGER_KINDS, f"{name} has unknown type")
    n = value.shape[0]
    run_lengths = data[:n]
    labels = data[n : 2 * n]
    total = size.pixel_count

    if strict:
        if np.any(run_lengths < 0):
            bad = int(run_lengths[run_lengths < 0][0])
            raise InconsistentRleError(f"{name} has a negative run length: {bad}")
        covered = int(run_lengths.sum())
        if covered != total:
            raise InconsistentRleError(f"{name} covers {covered} pixels, expected {total}")
        return np.repeat(labels, run_lengths).astype(np.uint64)

    out = np.zeros((total,), dtype=np.uint64)
    if n == 0:
        return out
    ends = np.minimum(np.cumsum(np.clip(run_lengths, 0, None)), total)
    starts = np.concatenate(([0], ends[:-1]))
    filled = int(ends[-1])
    out[:filled] = np.repeat(labels, ends - starts).astype(np.uint64)
    return out


def label_map(pixel_index: np.ndarray, size: ImageSize, order: str = "C") -> np.ndarray:
    """Reshape a flat pixel index array to (rows, cols); ``order`` is "C" or "F"."""
    if order not in ("C", "F"):
        raise ValueError(f"order must be 'C' or 'F', got {order!r}")
    if pixel_index.size != size.pixel_count:
        raise InvalidShapeError(
            f"pixel index holds {pixel_index.size} values, expected {size.rows}x{size.cols}"
        )
    return pixel_index.reshape((size.rows, size.cols), order=order)
