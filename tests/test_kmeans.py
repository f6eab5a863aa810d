import numpy as np
import pytest

from fedmnist.kmeans import CentralizedKMeans, main

CENTRES = np.array([[0.0, 0.0], [10.0, 10.0], [20.0, 0.0]])


def _clusters(seed=0, per_cluster=30):
    rng = np.random.default_rng(seed)
    groups = [centre + rng.normal(0.0, 0.1, size=(per_cluster, 2)) for centre in CENTRES]
    return groups, np.concatenate(groups)


def _sorted_rows(array):
    return array[np.lexsort(array.T[::-1])]


def test_recovers_well_separated_clusters():
    groups, data = _clusters()
    model = CentralizedKMeans(3, rng=np.random.default_rng(1)).fit(data)
    expected = _sorted_rows(np.array([group.mean(axis=0) for group in groups]))
    assert np.allclose(_sorted_rows(model.centroids.astype(np.float64)), expected, atol=1e-4)
    assert model.converged


def test_single_cluster_is_the_mean():
    _, data = _clusters(seed=2)
    model = CentralizedKMeans(1, rng=np.random.default_rng(3)).fit(data)
    assert np.allclose(model.centroids[0], data.mean(axis=0), atol=1e-4)


def test_more_clusters_lower_inertia():
    _, data = _clusters(seed=4)
    one = CentralizedKMeans(1, rng=np.random.default_rng(5)).fit(data)
    three = CentralizedKMeans(3, rng=np.random.default_rng(5)).fit(data)
    assert three.calculate_inertia(data) < one.calculate_inertia(data)
    assert three.calculate_inertia(data) >= 0.0


def test_same_seed_gives_same_centroids():
    _, data = _clusters(seed=6)
    first = CentralizedKMeans(3, rng=np.random.default_rng(7)).fit(data)
    second = CentralizedKMeans(3, rng=np.random.default_rng(7)).fit(data)
    assert np.array_equal(first.centroids, second.centroids)


def test_iterations_bounded_by_max_iters():
    _, data = _clusters(seed=8)
    model = CentralizedKMeans(3, max_iters=1, rng=np.random.default_rng(9)).fit(data)
    assert model.iterations == 1
    assert model.centroids.shape == (3, 2)


def test_inertia_before_fit_raises():
    with pytest.raises(RuntimeError):
        CentralizedKMeans(2).calculate_inertia(np.zeros((3, 2)))


def test_inertia_dimension_mismatch_raises():
    _, data = _clusters(seed=10)
    model = CentralizedKMeans(2, rng=np.random.default_rng(11)).fit(data)
    with pytest.raises(ValueError):
        model.calculate_inertia(np.zeros((3, 5)))


def test_invalid_k_and_data():
    with pytest.raises(ValueError):
        CentralizedKMeans(0)
    with pytest.raises(ValueError):
        CentralizedKMeans(2).fit(np.zeros((0, 2)))


def test_main_reports_results(tmp_path, capsys):
    rng = np.random.default_rng(12)
    count = 25
    pixels = rng.integers(0, 256, size=count * 784, dtype=np.uint8)
    header = b"".join(v.to_bytes(4, "big") for v in (2051, count, 28, 28))
    path = tmp_path / "images.idx3-ubyte"
    path.write_bytes(header + pixels.tobytes())
    assert main([str(path)]) == 0
    out = capsys.readouterr().out
    assert f"Loaded {count} training samples" in out
    assert "Number of clusters: 10" in out
    assert "Final inertia:" in out


def test_main_fails_on_missing_file(tmp_path, capsys):
    assert main([str(tmp_path / "absent.idx3-ubyte")]) == 1
    assert "Error:" in capsys.readouterr().err