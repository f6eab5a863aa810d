# fedmnist

Building blocks for federated learning experiments on the MNIST
handwritten digit data set, and a centralised k-means clustering baseline.

## Installation

```
pip install .
```

The only runtime dependency is NumPy.

## Data

Download the four MNIST IDX files and place them in one directory:

```
train-images.idx3-ubyte
train-labels.idx1-ubyte
t10k-images.idx3-ubyte
t10k-labels.idx1-ubyte
```

## Command line

Run the k-means baseline (k = 10, at most 100 iterations, tolerance 1e-5,
k-means++ seeding) over an IDX image file:

```
fedmnist-kmeans [IMAGES]
```

`IMAGES` defaults to `../data/train-images.idx3-ubyte`. The command prints
the number of samples loaded, the final inertia, the number of clusters and
the number of training samples. It exits with status 1 and prints the error
if the file cannot be read or is malformed.

## Modules

* `fedmnist.mnist` – readers for MNIST data.
  `load_idx_images` / `load_idx_labels` read any IDX image or label file as
  flat `uint8` arrays. `load_mnist_images` / `load_mnist_labels` are strict
  readers: images must be a 10000-image, 28×28 file and are returned as
  float32 pixels in `[0, 1]`. `load_test_data`, `load_worker_data` and
  `load_worker_labels` read the binary files written by
  `fedmnist.preprocess`; `worker_files_exist` and `delete_worker_data`
  check for and remove the worker files. Malformed files raise
  `MNISTFormatError`.
* `fedmnist.imaging` – `rotate` turns a 28×28 `uint8` image about its
  centre; `save_binary` writes raw bytes.
* `fedmnist.preprocess` – non-IID partitioning. Worker *n* (counted from 1)
  favours three digit classes (`preferred_classes`) and has its images
  rotated by `worker_rotation(n)` = 10·(n−1) degrees. `partition_worker`
  draws one worker's sample; `preprocess_data` writes
  `worker_<n>_images.bin` / `worker_<n>_labels.bin` (raw float32 pixels and
  raw label bytes) for every worker, plus `test_images.bin` and
  `test_labels.bin`, and returns the paths written. `class_distribution`
  counts labels per class.
* `fedmnist.datasets` – `Dataset` (training and validation arrays),
  `split_dataset`, `load_and_split_data`, `create_non_iid_data` (the pooled
  samples every worker would draw, then split), and `ConvergenceChecker`, a
  windowed loss-variance test at epoch and round level.
* `fedmnist.kmeans` – `CentralizedKMeans` with `fit` and
  `calculate_inertia`, and the `main` function behind `fedmnist-kmeans`.
* `fedmnist.protocol` – in-process message links. `make_link` returns two
  connected `Endpoint`s with `send` and `receive`. `send_model` /
  `receive_model` exchange a `LogisticModel` (weights and bias);
  `receive_model` raises `EOFError` when `send_termination_signal` was sent
  instead. `average_models` takes the element-wise mean of several models.

## Library use

```python
import numpy as np

from fedmnist.datasets import ConvergenceChecker, split_dataset
from fedmnist.kmeans import CentralizedKMeans
from fedmnist.mnist import load_idx_images, load_idx_labels

pixels = load_idx_images("data/train-images.idx3-ubyte")
labels = load_idx_labels("data/train-labels.idx1-ubyte")
images = (pixels.astype(np.float32) / 255.0).reshape(-1, 784)

rng = np.random.default_rng(0)
data = split_dataset(images, labels, 0.1, rng)
print(len(data.train_labels), len(data.validation_labels))

kmeans = CentralizedKMeans(10, rng=rng).fit(data.train_images[:2000])
print(kmeans.calculate_inertia(data.validation_images))

checker = ConvergenceChecker()
for loss in (0.5, 0.5, 0.5, 0.5, 0.5):
    checker.add_loss(loss)
print(checker.has_converged(5))  # True
```

## What the package does not do

The package has no classification model and no training loop: it does not
train a softmax regression, run a centralised training baseline, or run a
federated session between a server and workers, and it has no command for
any of these. It provides the data preparation, convergence checks and
message-exchange helpers such a session would use, and the k-means
baseline.

## Tests

```
pip install .[test]
pytest
```