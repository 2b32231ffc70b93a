"""Pytest fixtures for the lmmscan test suite."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

# =============================================================================
# Test Tier System
# =============================================================================
#
# tier0 - Fast Unit Tests (<5s each)
#   - Pure computation on small synthetic data, no files
#   - Run on every commit
#   - Run: pytest -m tier0
#
# tier1 - End-to-end Scan Tests (<60s each)
#   - Full scans and permutation scans on simulated data with known signal
#   - Run: pytest -m tier1
#
# tier2 - Scale Tests (memory/time intensive)
#   - Thousands of samples or markers
#   - Run manually
#   - Run: pytest -m tier2
#
# The @pytest.mark.slow marker is an alias for tier2.
#
# Quick reference:
#   pytest -m tier0             # Fast tests only
#   pytest -m "not tier2"       # Exclude slow tests
#   pytest                      # All tests
# =============================================================================


def make_kinship(n_samples: int, rng: np.random.Generator) -> np.ndarray:
    """Positive definite relatedness matrix from simulated standardized genotypes."""
    Z = rng.standard_normal((n_samples, 2 * n_samples))
    return Z @ Z.T / Z.shape[1]


def simulate_trait(
    K: np.ndarray, h2: float, rng: np.random.Generator
) -> np.ndarray:
    """Phenotype with polygenic variance h2 * K and residual variance 1 - h2."""
    n = K.shape[0]
    L = np.linalg.cholesky(K + 1e-10 * np.eye(n))
    u = L @ rng.standard_normal(n)
    e = rng.standard_normal(n)
    return np.sqrt(h2) * u + np.sqrt(1.0 - h2) * e


@pytest.fixture
def related_data() -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """(y, G, K) for 80 related samples and 12 markers, h2 = 0.6, no QTL."""
    rng = np.random.default_rng(2024)
    n, p = 80, 12
    K = make_kinship(n, rng)
    y = 1.5 + simulate_trait(K, 0.6, rng)
    G = rng.binomial(2, 0.4, size=(n, p)).astype(np.float64)
    return y, G, K


@pytest.fixture
def causal_data() -> tuple[np.ndarray, np.ndarray, np.ndarray, int]:
    """(y, G, K, causal index) for 200 unrelated samples and 50 markers."""
    rng = np.random.default_rng(7)
    n, p, causal = 200, 50, 17
    G = rng.standard_normal((n, p))
    y = 1.0 * G[:, causal] + rng.standard_normal(n)
    return y, G, np.eye(n), causal


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Create temporary output directory for test results."""
    out = tmp_path / "output"
    out.mkdir()
    return out
