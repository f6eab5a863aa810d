"""Image helpers for 28x28 greyscale digit images."""

from __future__ import annotations

import math
import os
from typing import Iterable, Union

import numpy as np

IMAGE_SIDE = 28
IMAGE_SIZE = IMAGE_SIDE * IMAGE_SIDE

PathLike = Union[str, "os.PathLike[str]"]


def rotate(image: Iterable[int], degrees: float) -> np.ndarray:
    """Return a copy of a 28x28 uint8 image rotated by ``degrees`` about its centre.

    Pixels whose source position falls outside the image become 0. Source
    coordinates are truncated towards zero, as an integer conversion would.
    """
    pixels = np.asarray(image, dtype=np.uint8).reshape(-1)
    if pixels.size != IMAGE_SIZE:
        raise ValueError(
            f"expected an image of {IMAGE_SIZE} pixels, got {pixels.size}"
        )
    source = pixels.reshape(IMAGE_SIDE, IMAGE_SIDE)

    rad = degrees * math.pi / 180.0
    cos_r = math.cos(rad)
    sin_r = math.sin(rad)
    center = IMAGE_SIDE // 2

    ys, xs = np.meshgrid(
        np.arange(IMAGE_SIDE), np.arange(IMAGE_SIDE), indexing="ij"
    )
    dx = (xs - center).astype(np.float64)
    dy = (ys - center).astype(np.float64)
    xp = (dx * cos_r - dy * sin_r + center).astype(np.int64)
    yp = (dx * sin_r + dy * cos_r + center).astype(np.int64)

    inside = (xp >= 0) & (xp < IMAGE_SIDE) & (yp >= 0) & (yp < IMAGE_SIDE)
    rotated = np.zeros((IMAGE_SIDE, IMAGE_SIDE), dtype=np.uint8)
    rotated[ys[inside], xs[inside]] = source[yp[inside], xp[inside]]
    return rotated.reshape(-1)


def save_binary(data: Iterable[int], path: PathLike) -> None:
    """Write ``data`` to ``path`` as raw unsigned bytes."""
    raw = np.asarray(data, dtype=np.uint8).reshape(-1).tobytes()
    with open(path, "wb") as handle:
        handle.write(raw)