import struct

import numpy as np
import pytest

from fedmnist.imaging import rotate
from fedmnist.mnist import load_test_data, load_worker_data, worker_files_exist
from fedmnist.preprocess import (
    class_distribution,
    partition_worker,
    preferred_classes,
    preprocess_data,
    worker_rotation,
)


def _dataset(count, seed=0):
    rng = np.random.default_rng(seed)
    images = rng.integers(0, 256, size=(count, 784), dtype=np.uint8)
    labels = (np.arange(count) % 10).astype(np.uint8)
    return images, labels


def _write_idx_images(path, images):
    path.write_bytes(
        struct.pack(">IIII", 2051, len(images), 28, 28)
        + np.asarray(images, dtype=np.uint8).tobytes()
    )


def _write_idx_labels(path, labels):
    path.write_bytes(
        struct.pack(">II", 2049, len(labels))
        + np.asarray(labels, dtype=np.uint8).tobytes()
    )


def _scaled(images):
    return np.asarray(images, dtype=np.uint8).astype(np.float32) / np.float32(255.0)


@pytest.mark.parametrize(
    "worker, expected",
    [
        (1, (0, 1, 2)),
        (2, (2, 3, 4)),
        (3, (4, 5, 6)),
        (4, (6, 7, 8)),
        (5, (8, 9, 0)),
        (9, (8, 9, 0)),
    ],
)
def test_preferred_classes(worker, expected):
    assert preferred_classes(worker) == expected


@pytest.mark.parametrize("worker, degrees", [(1, 0.0), (2, 10.0), (5, 40.0)])
def test_worker_rotation(worker, degrees):
    assert worker_rotation(worker) == degrees


def test_class_distribution_counts_each_class():
    assert class_distribution([0, 0, 3, 9]) == [2, 0, 0, 1, 0, 0, 0, 0, 0, 1]


def test_class_distribution_totals_match():
    labels = np.random.default_rng(1).integers(0, 10, size=200)
    counts = class_distribution(labels)
    assert len(counts) == 10
    assert sum(counts) == 200


def test_class_distribution_rejects_out_of_range():
    with pytest.raises(ValueError):
        class_distribution([3, 12])


def test_partition_size_and_range():
    images, labels = _dataset(30)
    out_images, out_labels = partition_worker(
        images, labels, 1, 15, np.random.default_rng(2)
    )
    assert out_images.shape == (15, 784)
    assert out_images.dtype == np.float32
    assert out_images.min() >= 0.0 and out_images.max() <= 1.0
    assert sum(class_distribution(out_labels)) == 15


def test_unrotated_worker_keeps_source_images_and_labels():
    images, labels = _dataset(30)
    source = _scaled(images)
    out_images, out_labels = partition_worker(
        images, labels, 1, 12, np.random.default_rng(3)
    )
    for row, label in zip(out_images, out_labels):
        matches = np.where(np.all(np.isclose(source, row), axis=1))[0]
        assert any(labels[m] == label for m in matches)


def test_rotated_worker_rotates_source_images():
    images, labels = _dataset(20)
    candidates = _scaled(np.stack([rotate(image, 20.0) for image in images]))
    out_images, out_labels = partition_worker(
        images, labels, 3, 8, np.random.default_rng(4)
    )
    for row, label in zip(out_images, out_labels):
        matches = np.where(np.all(np.isclose(candidates, row), axis=1))[0]
        assert any(labels[m] == label for m in matches)


def test_partition_is_reproducible_with_same_seed():
    images, labels = _dataset(40)
    first = partition_worker(images, labels, 2, 10, np.random.default_rng(9))
    second = partition_worker(images, labels, 2, 10, np.random.default_rng(9))
    assert np.array_equal(first[0], second[0])
    assert np.array_equal(first[1], second[1])


def test_partition_fills_shortfall_randomly():
    images, labels = _dataset(5)
    out_images, out_labels = partition_worker(
        images, labels, 1, 20, np.random.default_rng(5)
    )
    assert len(out_images) == 20
    assert len(out_labels) == 20


def test_partition_favours_preferred_classes():
    images, labels = _dataset(1000)
    _, out_labels = partition_worker(
        images, labels, 1, 300, np.random.default_rng(6)
    )
    counts = class_distribution(out_labels)
    preferred = [counts[c] for c in preferred_classes(1)]
    others = [counts[c] for c in range(10) if c not in preferred_classes(1)]
    assert min(preferred) > max(others)


def test_partition_from_empty_source_raises():
    with pytest.raises(ValueError):
        partition_worker(np.zeros((0, 784)), [], 1, 3, np.random.default_rng(0))


def test_preprocess_data_writes_loadable_files(tmp_path):
    data_dir = tmp_path / "data"
    out_dir = tmp_path / "out"
    data_dir.mkdir()
    out_dir.mkdir()
    train_images, train_labels = _dataset(20, seed=7)
    test_images, test_labels = _dataset(7, seed=8)
    _write_idx_images(data_dir / "train-images.idx3-ubyte", train_images)
    _write_idx_labels(data_dir / "train-labels.idx1-ubyte", train_labels)
    _write_idx_images(data_dir / "t10k-images.idx3-ubyte", test_images)
    _write_idx_labels(data_dir / "t10k-labels.idx1-ubyte", test_labels)

    written = preprocess_data(2, data_dir, out_dir, np.random.default_rng(10))

    assert len(written) == 6
    assert all(path.is_file() for path in written)
    assert worker_files_exist(2, out_dir)
    images, labels = load_worker_data(1, out_dir)
    assert images.shape == (10, 784)
    assert len(labels) == 10

    loaded_images, loaded_labels = load_test_data(
        out_dir / "test_images.bin", out_dir / "test_labels.bin"
    )
    assert np.array_equal(loaded_labels, test_labels)
    assert np.allclose(loaded_images, _scaled(test_images))


def test_preprocess_data_rejects_zero_workers(tmp_path):
    with pytest.raises(ValueError):
        preprocess_data(0, tmp_path, tmp_path)


def test_preprocess_data_missing_inputs_raise(tmp_path):
    with pytest.raises(FileNotFoundError):
        preprocess_data(2, tmp_path / "absent", tmp_path)