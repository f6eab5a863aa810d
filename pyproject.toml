[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fedmnist"
version = "0.1.0"
description = "MNIST data handling, non-IID worker partitioning, convergence checks, model exchange helpers and a k-means baseline"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "federated-learning",
    "mnist",
    "idx",
    "k-means",
    "non-iid",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
fedmnist-kmeans = "fedmnist.kmeans:main"

[tool.hatch.build.targets.wheel]
packages = ["fedmnist"]

[tool.pytest.ini_options]
addopts = "-ra"
