"""MNIST data handling, non-IID partitioning, convergence checks, model exchange and k-means."""

__version__ = "0.1.0"