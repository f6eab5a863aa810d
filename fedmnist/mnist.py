"""Readers for MNIST IDX files and the per-worker binary data files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO, List, Tuple, Union

import numpy as np

log = logging.getLogger(__name__)

IMAGE_MAGIC = 2051
LABEL_MAGIC = 2049
IMAGE_SIDE = 28
IMAGE_SIZE = IMAGE_SIDE * IMAGE_SIDE
EXPECTED_IMAGE_COUNT = 10000

DEFAULT_TEST_IMAGES = Path("../federated/test_images.bin")
DEFAULT_TEST_LABELS = Path("../federated/test_labels.bin")

PathLike = Union[str, "os.PathLike[str]"]


class MNISTFormatError(ValueError):
    """Raised when an MNIST or worker data file is malformed or truncated."""


def read_int(stream: BinaryIO) -> int:
    """Read a signed big-endian 32-bit integer from ``stream``."""
    raw = stream.read(4)
    if len(raw) != 4:
        raise MNISTFormatError("Failed to read 4 bytes for integer")
    return int.from_bytes(raw, "big", signed=True)


def _read_u32(stream: BinaryIO, what: str) -> int:
    raw = stream.read(4)
    if len(raw) != 4:
        raise MNISTFormatError(f"Truncated header in MNIST {what} file")
    return int.from_bytes(raw, "big", signed=False)


def load_idx_images(path: PathLike) -> np.ndarray:
    """Load an IDX image file as a flat uint8 array.

    Missing trailing pixel data is left as zeros.
    """
    with open(path, "rb") as handle:
        magic = _read_u32(handle, "image")
        if magic != IMAGE_MAGIC:
            raise MNISTFormatError(
                f"Invalid MNIST image file format. Expected {IMAGE_MAGIC}, got {magic}"
            )
        count = _read_u32(handle, "image")
        rows = _read_u32(handle, "image")
        cols = _read_u32(handle, "image")
        total = count * rows * cols
        raw = handle.read(total)
    images = np.zeros(total, dtype=np.uint8)
    images[: len(raw)] = np.frombuffer(raw, dtype=np.uint8)
    return images


def load_idx_labels(path: PathLike) -> np.ndarray:
    """Load an IDX label file as a uint8 array.

    Missing trailing labels are left as zeros.
    """
    with open(path, "rb") as handle:
        magic = _read_u32(handle, "label")
        if magic != LABEL_MAGIC:
            raise MNISTFormatError(
                f"Invalid MNIST label file format. Expected {LABEL_MAGIC}, got {magic}"
            )
        count = _read_u32(handle, "label")
        raw = handle.read(count)
    labels = np.zeros(count, dtype=np.uint8)
    labels[: len(raw)] = np.frombuffer(raw, dtype=np.uint8)
    return labels


def load_mnist_images(path: PathLike) -> np.ndarray:
    """Load a 10000-image 28x28 IDX file as flat float32 pixels scaled to [0, 1]."""
    with open(path, "rb") as handle:
        magic = read_int(handle)
        if magic != IMAGE_MAGIC:
            raise MNISTFormatError(
                f"Invalid MNIST image file. Expected magic {IMAGE_MAGIC}, got {magic}"
            )
        count = read_int(handle)
        if count != EXPECTED_IMAGE_COUNT:
            raise MNISTFormatError(
                f"Unexpected image count. Expected {EXPECTED_IMAGE_COUNT}, got {count}"
            )
        rows = read_int(handle)
        cols = read_int(handle)
        if rows != IMAGE_SIDE or cols != IMAGE_SIDE:
            raise MNISTFormatError("Unexpected image dimensions")
        size = rows * cols
        raw = handle.read(count * size)
    if len(raw) != count * size:
        raise MNISTFormatError(f"Incomplete image data at index {len(raw) // size}")
    return np.frombuffer(raw, dtype=np.uint8).astype(np.float32) / np.float32(255.0)


def load_mnist_labels(path: PathLike) -> np.ndarray:
    """Load an IDX label file, requiring every announced label to be present."""
    with open(path, "rb") as handle:
        magic = read_int(handle)
        if magic != LABEL_MAGIC:
            raise MNISTFormatError(
                f"Invalid MNIST labels file. Expected magic {LABEL_MAGIC}, got {magic}"
            )
        count = read_int(handle)
        raw = handle.read(max(count, 0))
    if len(raw) != count:
        raise MNISTFormatError("Failed to read all labels")
    return np.frombuffer(raw, dtype=np.uint8).copy()


def _read_float_images(path: Path, count: int) -> np.ndarray:
    wanted = count * IMAGE_SIZE * np.dtype(np.float32).itemsize
    with open(path, "rb") as handle:
        raw = handle.read(wanted)
    if len(raw) != wanted:
        raise MNISTFormatError(f"Error reading image data from {path}")
    return np.frombuffer(raw, dtype=np.float32).reshape(count, IMAGE_SIZE).copy()


def load_test_data(
    images_path: PathLike = DEFAULT_TEST_IMAGES,
    labels_path: PathLike = DEFAULT_TEST_LABELS,
) -> Tuple[np.ndarray, np.ndarray]:
    """Load the preprocessed test set: raw labels and float32 images.

    The number of samples is the size of the label file in bytes.
    """
    labels_path = Path(labels_path)
    images_path = Path(images_path)
    try:
        labels = np.frombuffer(labels_path.read_bytes(), dtype=np.uint8).copy()
    except OSError as exc:
        raise FileNotFoundError(
            f"Cannot open test labels file: {labels_path}"
        ) from exc
    log.info("Loaded %d labels", labels.size)
    try:
        images = _read_float_images(images_path, labels.size)
    except OSError as exc:
        raise FileNotFoundError(
            f"Cannot open test images file: {images_path}"
        ) from exc
    log.info("Loaded %d images, each with %d pixels", len(images), IMAGE_SIZE)
    return images, labels


def _worker_file(directory: PathLike, worker_id: int, kind: str) -> Path:
    return Path(directory) / f"worker_{worker_id}_{kind}.bin"


def load_worker_labels(rank: int, directory: PathLike = ".") -> np.ndarray:
    """Load the label file written for worker ``rank``."""
    path = _worker_file(directory, rank, "labels")
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise FileNotFoundError(
            f"Worker {rank} failed to open labels: {path}"
        ) from exc
    if not raw:
        raise MNISTFormatError(f"Worker {rank} labels file is empty: {path}")
    log.info("Worker %d loaded %d labels", rank, len(raw))
    return np.frombuffer(raw, dtype=np.uint8).copy()


def load_worker_data(
    worker_id: int, directory: PathLike = "."
) -> Tuple[np.ndarray, np.ndarray]:
    """Load worker ``worker_id``'s images (n x 784 float32) and labels."""
    labels = load_worker_labels(worker_id, directory)
    path = _worker_file(directory, worker_id, "images")
    try:
        images = _read_float_images(path, labels.size)
    except OSError as exc:
        raise FileNotFoundError(f"Cannot open images file: {path}") from exc
    return images, labels


def worker_files_exist(num_workers: int, directory: PathLike = ".") -> bool:
    """Tell whether every worker's image file is present."""
    return all(
        _worker_file(directory, worker, "images").is_file()
        for worker in range(1, num_workers + 1)
    )


def delete_worker_data(
    num_workers: int, rank: int, directory: PathLike = "."
) -> List[Path]:
    """Remove the worker data files; only rank 0 does so.

    Returns the files that could not be removed.
    """
    failed: List[Path] = []
    if rank != 0:
        return failed
    log.info("Process 0 finished, deleting worker data")
    for worker in range(1, num_workers + 1):
        for kind in ("images", "labels"):
            path = _worker_file(directory, worker, kind)
            try:
                path.unlink()
            except OSError:
                log.warning("Failed to delete %s", path)
                failed.append(path)
    return failed