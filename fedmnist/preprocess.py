"""Split MNIST into non-IID worker datasets and write them as binary files."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from fedmnist.imaging import rotate, save_binary
from fedmnist.mnist import IMAGE_SIZE, MNISTFormatError, load_idx_images, load_idx_labels

log = logging.getLogger(__name__)

TRAIN_IMAGES = "train-images.idx3-ubyte"
TRAIN_LABELS = "train-labels.idx1-ubyte"
TEST_IMAGES = "t10k-images.idx3-ubyte"
TEST_LABELS = "t10k-labels.idx1-ubyte"

NUM_CLASSES = 10
PREFERRED_ACCEPT_PERCENT = 70
OTHER_ACCEPT_PERCENT = 30
ROTATION_STEP_DEGREES = 10.0

_PREFERRED = {
    1: (0, 1, 2),
    2: (2, 3, 4),
    3: (4, 5, 6),
    4: (6, 7, 8),
}
_DEFAULT_PREFERRED = (8, 9, 0)

PathLike = Union[str, "os.PathLike[str]"]


def preferred_classes(worker: int) -> Tuple[int, ...]:
    """Classes that worker ``worker`` (numbered from 1) samples more often."""
    return _PREFERRED.get(worker, _DEFAULT_PREFERRED)


def worker_rotation(worker: int) -> float:
    """Rotation in degrees applied to every image of worker ``worker``."""
    return ROTATION_STEP_DEGREES * (worker - 1)


def class_distribution(labels) -> List[int]:
    """Number of samples of each digit class 0..9."""
    values = np.asarray(labels, dtype=np.int64).reshape(-1)
    if values.size and (values.min() < 0 or values.max() >= NUM_CLASSES):
        raise ValueError("labels must lie between 0 and 9")
    return [int(count) for count in np.bincount(values, minlength=NUM_CLASSES)]


def _format_distribution(labels) -> str:
    return " ".join(f"{cls}:{count}" for cls, count in enumerate(class_distribution(labels)))


def partition_worker(
    images,
    labels,
    worker: int,
    samples_per_worker: int,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Draw one worker's class-skewed, rotated sample of the training set.

    A first pass walks the data in order, keeping preferred classes with
    70% probability and others with 30%, for at most twice the data size;
    any shortfall is then filled with uniformly random samples. Returns
    images scaled to [0, 1] as float32 rows of 784 and their labels.
    """
    if rng is None:
        rng = np.random.default_rng()
    pixels = np.asarray(images, dtype=np.uint8).reshape(-1, IMAGE_SIZE)
    all_labels = np.asarray(labels, dtype=np.uint8).reshape(-1)
    total = len(pixels)
    if samples_per_worker > 0 and total == 0:
        raise ValueError("cannot draw samples from an empty dataset")

    preferred = set(preferred_classes(worker))
    rotation = worker_rotation(worker)

    chosen: List[int] = []
    attempts = 0
    max_attempts = total * 2
    while len(chosen) < samples_per_worker and attempts < max_attempts:
        idx = attempts % total
        threshold = (
            PREFERRED_ACCEPT_PERCENT
            if int(all_labels[idx]) in preferred
            else OTHER_ACCEPT_PERCENT
        )
        if rng.integers(100) < threshold:
            chosen.append(idx)
        attempts += 1

    while len(chosen) < samples_per_worker:
        chosen.append(int(rng.integers(total)))

    index = np.asarray(chosen, dtype=np.int64)
    selected = pixels[index]
    if rotation > 0 and len(selected):
        selected = np.stack([rotate(image, rotation) for image in selected])
    scaled = selected.astype(np.float32) / np.float32(255.0)
    return scaled.reshape(-1, IMAGE_SIZE), all_labels[index].copy()


def _write_floats(values: np.ndarray, path: Path) -> None:
    with open(path, "wb") as handle:
        handle.write(np.ascontiguousarray(values, dtype=np.float32).tobytes())


def preprocess_data(
    num_workers: int,
    data_dir: PathLike = "../data",
    output_dir: PathLike = ".",
    rng: Optional[np.random.Generator] = None,
) -> List[Path]:
    """Write each worker's data set and the normalised test set.

    Returns the paths of the files written.
    """
    if num_workers < 1:
        raise ValueError("num_workers must be at least 1")
    if rng is None:
        rng = np.random.default_rng()
    data_dir = Path(data_dir)
    output_dir = Path(output_dir)

    train_images = load_idx_images(data_dir / TRAIN_IMAGES)
    train_labels = load_idx_labels(data_dir / TRAIN_LABELS)
    total = train_images.size // IMAGE_SIZE
    train_images = train_images[: total * IMAGE_SIZE]
    log.info("Loaded %d training images", total)

    samples_per_worker = total // num_workers
    log.info(
        "Creating %d worker datasets with %d samples each",
        num_workers,
        samples_per_worker,
    )

    written: List[Path] = []
    for worker in range(1, num_workers + 1):
        log.info(
            "Processing worker %d with rotation %s degrees",
            worker,
            worker_rotation(worker),
        )
        images, labels = partition_worker(
            train_images, train_labels, worker, samples_per_worker, rng
        )
        image_path = output_dir / f"worker_{worker}_images.bin"
        label_path = output_dir / f"worker_{worker}_labels.bin"
        _write_floats(images, image_path)
        save_binary(labels, label_path)
        written.extend([image_path, label_path])
        log.info(
            "Worker %d: Saved %d float values (%d images)",
            worker,
            images.size,
            len(images),
        )
        log.info("Worker %d class distribution: %s", worker, _format_distribution(labels))

    test_images = load_idx_images(data_dir / TEST_IMAGES)
    test_labels = load_idx_labels(data_dir / TEST_LABELS)
    needed = len(test_labels) * IMAGE_SIZE
    if test_images.size < needed:
        raise MNISTFormatError("Test image file holds fewer images than labels")
    normalised = test_images[:needed].astype(np.float32) / np.float32(255.0)

    test_image_path = output_dir / "test_images.bin"
    test_label_path = output_dir / "test_labels.bin"
    _write_floats(normalised, test_image_path)
    save_binary(test_labels, test_label_path)
    written.extend([test_image_path, test_label_path])
    log.info("Saved test set: %d images and labels.", len(test_labels))
    return written