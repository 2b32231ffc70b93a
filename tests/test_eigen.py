"""Tests for kinship eigendecomposition and data rotation."""

import numpy as np
import pytest
from conftest import make_kinship

from lmmscan.core import configure_jax
from lmmscan.errors import DimensionError, NumericalError
from lmmscan.lmm.eigen import (
    RotatedData,
    _select_eigendecomp_driver,
    eigendecompose_kinship,
    rotate_data,
    rotate_data_weighted,
    transform_rotation,
)


@pytest.fixture(autouse=True)
def setup_jax():
    """Configure JAX with 64-bit precision before each test."""
    configure_jax(enable_x64=True)


@pytest.fixture
def kinship() -> np.ndarray:
    return make_kinship(30, np.random.default_rng(0))


@pytest.mark.tier0
class TestEigendecomposition:
    """Tests for eigendecompose_kinship."""

    def test_shapes_and_order(self, kinship):
        """Eigenvalues are ascending and non-negative, one per sample."""
        eigenvalues, U = eigendecompose_kinship(kinship)

        assert eigenvalues.shape == (30,)
        assert U.shape == (30, 30)
        assert np.all(np.diff(eigenvalues) >= 0)
        assert np.all(eigenvalues >= 0)

    def test_eigenvectors_orthonormal(self, kinship):
        _, U = eigendecompose_kinship(kinship)
        np.testing.assert_allclose(U.T @ U, np.eye(30), atol=1e-10)

    def test_reconstruction(self, kinship):
        """U diag(lambda) U' reproduces K."""
        eigenvalues, U = eigendecompose_kinship(kinship)
        np.testing.assert_allclose(U @ np.diag(eigenvalues) @ U.T, kinship, atol=1e-10)

    def test_input_not_modified(self, kinship):
        original = kinship.copy()
        eigendecompose_kinship(kinship)
        np.testing.assert_array_equal(kinship, original)

    def test_identity(self):
        eigenvalues, _ = eigendecompose_kinship(np.eye(10))
        np.testing.assert_allclose(eigenvalues, 1.0)

    def test_non_square_raises(self):
        with pytest.raises(DimensionError, match="square"):
            eigendecompose_kinship(np.ones((3, 4)))

    def test_asymmetric_raises(self):
        K = np.eye(4)
        K[0, 1] = 0.5
        with pytest.raises(NumericalError, match="symmetric"):
            eigendecompose_kinship(K)

    def test_negative_eigenvalue_raises(self):
        """A clearly indefinite matrix is rejected."""
        with pytest.raises(NumericalError, match="positive semi-definite"):
            eigendecompose_kinship(np.diag([1.0, -1.0, 2.0]))

    def test_non_finite_raises(self):
        K = np.eye(3)
        K[1, 1] = np.nan
        with pytest.raises(NumericalError):
            eigendecompose_kinship(K)

    def test_rank_deficient_warns(self):
        """Several zero eigenvalues trigger a rank-deficiency warning."""
        with pytest.warns(UserWarning, match="rank-deficient"):
            eigenvalues, _ = eigendecompose_kinship(np.ones((4, 4)))

        assert np.sum(eigenvalues == 0.0) == 3
        assert eigenvalues[-1] == pytest.approx(4.0)

    def test_zeroing_tolerance_scales_with_largest_eigenvalue(self):
        """Small eigenvalues are zeroed relative to the spectrum's scale."""
        eigenvalues, _ = eigendecompose_kinship(np.diag([1e6, 1e-3, 1.0]))
        np.testing.assert_array_equal(eigenvalues[:1], [0.0])
        assert eigenvalues[1] == pytest.approx(1.0)

        eigenvalues, _ = eigendecompose_kinship(np.diag([1.0, 1e-9, 1e-7]))
        assert eigenvalues[0] == 0.0
        assert eigenvalues[1] == pytest.approx(1e-7)

    def test_small_matrix_uses_evd_driver(self):
        assert _select_eigendecomp_driver(100) == "evd"


@pytest.mark.tier0
class TestRotation:
    """Tests for rotate_data, rotate_data_weighted and transform_rotation."""

    def test_rotation_preserves_norms(self, kinship):
        rng = np.random.default_rng(1)
        y = rng.standard_normal(30)
        X = rng.standard_normal((30, 4))

        rotated = rotate_data(y, X, kinship)

        assert isinstance(rotated, RotatedData)
        assert rotated.y.shape == (30, 1)
        assert rotated.n_samples == 30
        assert np.sum(rotated.y**2) == pytest.approx(np.sum(y**2), rel=1e-10)
        np.testing.assert_allclose(
            np.sum(rotated.X**2, axis=0), np.sum(X**2, axis=0), rtol=1e-10
        )

    def test_rotation_matches_eigenvectors(self, kinship):
        rng = np.random.default_rng(2)
        y = rng.standard_normal(30)
        X = rng.standard_normal((30, 2))
        eigenvalues, U = eigendecompose_kinship(kinship)

        rotated = rotate_data(y, X, kinship)

        np.testing.assert_allclose(rotated.y[:, 0], U.T @ y, atol=1e-12)
        np.testing.assert_allclose(rotated.X, U.T @ X, atol=1e-12)
        np.testing.assert_array_equal(rotated.eigenvalues, eigenvalues)

    def test_dimension_mismatch_raises(self, kinship):
        with pytest.raises(DimensionError):
            rotate_data(np.ones(29), np.ones((30, 1)), kinship)
        with pytest.raises(DimensionError):
            rotate_data(np.ones(30), np.ones((29, 1)), kinship)

    def test_transform_rotation_intercept(self, kinship):
        """The rotated intercept is U' 1 and precedes the markers."""
        rng = np.random.default_rng(3)
        y = rng.standard_normal(30)
        G = rng.standard_normal((30, 5))
        _, U = eigendecompose_kinship(kinship)

        rotated = transform_rotation(y, G, kinship)

        assert rotated.X.shape == (30, 6)
        assert rotated.n_covariates == 1
        assert rotated.covariates.shape == (30, 1)
        assert rotated.markers.shape == (30, 5)
        np.testing.assert_allclose(
            rotated.covariates[:, 0], U.T @ np.ones(30), atol=1e-12
        )

    def test_transform_rotation_without_intercept(self, kinship):
        G = np.random.default_rng(4).standard_normal((30, 5))
        rotated = transform_rotation(np.ones(30), G, kinship, add_intercept=False)

        assert rotated.n_covariates == 0
        assert rotated.covariates.shape == (30, 0)
        assert rotated.markers.shape == (30, 5)

    def test_unit_weights_match_unweighted(self, kinship):
        rng = np.random.default_rng(5)
        y = rng.standard_normal(30)
        X = rng.standard_normal((30, 3))

        plain = rotate_data(y, X, kinship)
        weighted = rotate_data_weighted(y, X, kinship, np.ones(30))

        np.testing.assert_allclose(weighted.y, plain.y, atol=1e-12)
        np.testing.assert_allclose(weighted.X, plain.X, atol=1e-12)

    def test_weights_scale_samples(self, kinship):
        """Rotation of D y preserves sum(w * y^2)."""
        rng = np.random.default_rng(6)
        y = rng.standard_normal(30)
        w = rng.uniform(0.5, 3.0, 30)

        weighted = rotate_data_weighted(y, np.ones((30, 1)), kinship, w)

        assert np.sum(weighted.y**2) == pytest.approx(np.sum(w * y**2), rel=1e-10)

    def test_weights_must_be_vector(self, kinship):
        with pytest.raises(DimensionError, match="vector"):
            rotate_data_weighted(np.ones(30), np.ones((30, 1)), kinship, 2.0)
        with pytest.raises(DimensionError, match="vector"):
            rotate_data_weighted(np.ones(30), np.ones((30, 1)), kinship, np.ones(10))

    def test_weights_must_be_positive(self, kinship):
        w = np.ones(30)
        w[3] = 0.0
        with pytest.raises(NumericalError, match="positive"):
            rotate_data_weighted(np.ones(30), np.ones((30, 1)), kinship, w)
