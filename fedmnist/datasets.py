"""Train/validation datasets and the loss-based convergence checks used in training."""

from __future__ import annotations

import logging
import os
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Union

import numpy as np

from fedmnist.mnist import IMAGE_SIZE, MNISTFormatError, load_idx_images, load_idx_labels
from fedmnist.preprocess import class_distribution, partition_worker, preferred_classes, worker_rotation

log = logging.getLogger(__name__)

NO_CHANGE = float(np.finfo(np.float32).max)
NON_IID_SEED = 42

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class Dataset:
    """Training and validation samples: float32 rows of 784 pixels and uint8 labels."""

    train_images: np.ndarray
    train_labels: np.ndarray
    validation_images: np.ndarray
    validation_labels: np.ndarray


class ConvergenceChecker:
    """Decides convergence from the variance of recent epoch and round losses."""

    def __init__(
        self,
        window_size: int = 5,
        tolerance: float = 1e-4,
        min_epochs: int = 5,
        round_window_size: int = 3,
        round_tolerance: float = 1e-3,
        min_rounds: int = 3,
    ) -> None:
        if window_size < 1 or round_window_size < 1:
            raise ValueError("window sizes must be positive")
        self.window_size = window_size
        self.tolerance = tolerance
        self.min_epochs = min_epochs
        self.round_window_size = round_window_size
        self.round_tolerance = round_tolerance
        self.min_rounds = min_rounds
        self.current_round = 0
        self.loss_history: Deque[float] = deque(maxlen=window_size)
        self.round_loss_history: Deque[float] = deque(maxlen=round_window_size)

    def add_loss(self, loss: float) -> None:
        """Record one epoch's loss, forgetting the oldest beyond the window."""
        self.loss_history.append(float(loss))

    def add_round_loss(self, round_loss: float) -> None:
        """Record the loss at the end of a round and count the round."""
        self.round_loss_history.append(float(round_loss))
        self.current_round += 1

    @staticmethod
    def _variance(values: Deque[float], size: int) -> float:
        mean = sum(values) / size
        return sum((value - mean) ** 2 for value in values) / size

    def has_converged(self, current_epoch: int) -> bool:
        """True once enough epochs have passed and the windowed loss variance is small."""
        if current_epoch < self.min_epochs or len(self.loss_history) < self.window_size:
            return False
        return self._variance(self.loss_history, self.window_size) < self.tolerance

    def has_round_converged(self) -> bool:
        """True once enough rounds have passed and the round loss variance is small."""
        if (
            self.current_round < self.min_rounds
            or len(self.round_loss_history) < self.round_window_size
        ):
            return False
        return (
            self._variance(self.round_loss_history, self.round_window_size)
            < self.round_tolerance
        )

    def recent_loss_change(self) -> float:
        """Absolute change across the epoch window; the float32 maximum if under two entries."""
        if len(self.loss_history) < 2:
            return NO_CHANGE
        return abs(self.loss_history[-1] - self.loss_history[0])

    def recent_round_loss_change(self) -> float:
        """Absolute change across the round window; the float32 maximum if under two entries."""
        if len(self.round_loss_history) < 2:
            return NO_CHANGE
        return abs(self.round_loss_history[-1] - self.round_loss_history[0])


def split_dataset(
    images,
    labels,
    validation_ratio: float,
    rng: Optional[np.random.Generator] = None,
) -> Dataset:
    """Shuffle the samples and put the first ``int(n * ratio)`` into validation."""
    if not 0.0 <= validation_ratio <= 1.0:
        raise ValueError("validation_ratio must lie between 0 and 1")
    if rng is None:
        rng = np.random.default_rng()
    matrix = np.asarray(images, dtype=np.float32).reshape(-1, IMAGE_SIZE)
    targets = np.asarray(labels, dtype=np.uint8).reshape(-1)
    if len(matrix) != len(targets):
        raise ValueError(f"got {len(matrix)} images but {len(targets)} labels")

    order = rng.permutation(len(targets))
    validation_size = int(len(targets) * validation_ratio)
    val_idx, train_idx = order[:validation_size], order[validation_size:]
    return Dataset(
        train_images=matrix[train_idx].copy(),
        train_labels=targets[train_idx].copy(),
        validation_images=matrix[val_idx].copy(),
        validation_labels=targets[val_idx].copy(),
    )


def load_and_split_data(
    images_path: PathLike,
    labels_path: PathLike,
    validation_ratio: float,
    rng: Optional[np.random.Generator] = None,
) -> Dataset:
    """Load an IDX image/label pair, scale pixels to [0, 1] and split it."""
    pixels = load_idx_images(images_path)
    labels = load_idx_labels(labels_path)
    needed = labels.size * IMAGE_SIZE
    if pixels.size < needed:
        raise MNISTFormatError("Image file holds fewer images than there are labels")
    images = pixels[:needed].astype(np.float32) / np.float32(255.0)
    return split_dataset(images.reshape(-1, IMAGE_SIZE), labels, validation_ratio, rng)


def create_non_iid_data(
    train_images_path: PathLike,
    train_labels_path: PathLike,
    num_workers: int,
    validation_ratio: float,
    rng: Optional[np.random.Generator] = None,
) -> Dataset:
    """Pool the class-skewed, rotated samples every worker would draw, then split them.

    Without ``rng`` the worker sampling is seeded with 42 and the split is random.
    """
    if num_workers < 1:
        raise ValueError("num_workers must be at least 1")
    sample_rng = rng if rng is not None else np.random.default_rng(NON_IID_SEED)
    split_rng = rng if rng is not None else np.random.default_rng()

    log.info("Creating non-IID dataset for %d workers", num_workers)
    pixels = load_idx_images(train_images_path)
    labels = load_idx_labels(train_labels_path)
    total = pixels.size // IMAGE_SIZE
    pixels = pixels[: total * IMAGE_SIZE]
    samples_per_worker = total // num_workers
    log.info("Original dataset: %d samples", total)
    log.info("Target samples per worker: %d", samples_per_worker)

    image_parts: List[np.ndarray] = []
    label_parts: List[np.ndarray] = []
    for worker in range(1, num_workers + 1):
        log.info(
            "Worker %d - Preferred classes: %s - Rotation: %s degrees",
            worker,
            " ".join(str(cls) for cls in preferred_classes(worker)),
            worker_rotation(worker),
        )
        images, worker_labels = partition_worker(
            pixels, labels, worker, samples_per_worker, sample_rng
        )
        image_parts.append(images)
        label_parts.append(worker_labels)
        log.info(
            "Worker %d class distribution: %s",
            worker,
            " ".join(f"{c}:{n}" for c, n in enumerate(class_distribution(worker_labels))),
        )

    all_images = np.concatenate(image_parts).reshape(-1, IMAGE_SIZE)
    all_labels = np.concatenate(label_parts)
    log.info(
        "Combined non-IID dataset class distribution: %s",
        " ".join(f"{c}:{n}" for c, n in enumerate(class_distribution(all_labels))),
    )
    log.info("Total samples: %d", len(all_labels))

    data = split_dataset(all_images, all_labels, validation_ratio, split_rng)
    log.info(
        "Final dataset split: %d training, %d validation",
        len(data.train_labels),
        len(data.validation_labels),
    )
    return data