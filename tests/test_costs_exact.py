"""
Tests for cost matrices, exact OT, Sinkhorn divergence and plan diagnostics.
"""

import pytest
import numpy as np
import scipy.sparse as sp

from regot import emd, emd2, sinkhorn_divergence, cost_matrix, ConvergenceWarning
from regot.core.validation import DimensionMismatch, MassImbalanceError
from regot.optimal_transport import (
    LPSolver,
    NetworkSimplexSolver,
    analyze_coupling,
    marginal_residual,
    normalize_cost_matrix,
)


def test_cost_matrix():
    """Squared Euclidean by default, any scipy metric otherwise."""
    x = np.array([[0.0, 0.0], [1.0, 0.0]])
    y = np.array([[0.0, 1.0], [3.0, 4.0], [1.0, 0.0]])

    C = cost_matrix(x, y)
    C_euc = cost_matrix(x, y, metric='euclidean')

    assert C.shape == (2, 3)
    assert np.allclose(C, [[1.0, 25.0, 1.0], [2.0, 20.0, 0.0]])
    assert np.allclose(C_euc, np.sqrt(C))


def test_cost_matrix_1d_and_self():
    """1-D supports are points on a line; y defaults to x."""
    x = np.array([0.0, 1.0, 3.0])

    C = cost_matrix(x)

    assert C.shape == (3, 3)
    assert np.allclose(np.diag(C), 0)
    assert C[0, 2] == 9.0


def test_cost_matrix_dtype():
    """float32 points give a float32 cost matrix."""
    x = np.random.RandomState(0).rand(4, 2).astype(np.float32)
    assert cost_matrix(x).dtype == np.float32
    with pytest.raises(ValueError):
        cost_matrix(np.zeros((3, 2)), np.zeros((3, 3)))


def test_normalize_cost_matrix():
    """Max, min-max and median scaling."""
    C = np.array([[0.0, 2.0], [4.0, 8.0]])

    assert np.isclose(normalize_cost_matrix(C, 'max').max(), 1.0)
    assert np.allclose(normalize_cost_matrix(C + 1, 'minmax'), C / 8.0)
    assert np.isclose(np.median(normalize_cost_matrix(C, 'median')[C > 0]), 1.0)
    with pytest.raises(ValueError):
        normalize_cost_matrix(C, 'unknown')


def test_emd_two_point():
    """Exact plan of the 2x2 problem is the identity coupling."""
    mu = np.array([0.5, 0.5])
    C = np.array([[0.0, 1.0], [1.0, 0.0]])

    plan, log = emd(mu, mu, C)
    cost, _ = emd2(mu, mu, C)

    assert log['converged']
    assert log['status'] == 'optimal'
    assert np.allclose(plan, np.diag([0.5, 0.5]))
    assert np.isclose(cost, 0.0)


def test_emd_precomputed_plan():
    """Cost from a supplied plan equals the solved cost."""
    rng = np.random.RandomState(1)
    mu = rng.rand(5)
    nu = rng.rand(6)
    mu /= mu.sum()
    nu /= nu.sum()
    C = cost_matrix(rng.rand(5, 2), rng.rand(6, 2))

    plan, _ = emd(mu, nu, C)
    cost, _ = emd2(mu, nu, C)
    cost_pre, log = emd2(mu, nu, C, plan=plan)

    assert cost_pre == cost
    assert log['n_iter'] == 0


def test_emd_validation():
    """Exact OT runs the same input checks as the regularized solvers."""
    C = np.zeros((2, 2))
    with pytest.raises(MassImbalanceError):
        emd([0.5, 0.5], [0.5, 0.6], C)
    with pytest.raises(DimensionMismatch):
        emd([0.5, 0.5], [1.0], C)


class FixedPlanSolver(LPSolver):
    """LP backend stub that always stops at its iteration limit."""

    def __init__(self):
        self.calls = []

    def optimize(self, C, supply, demand):
        self.calls.append((supply, demand))
        return np.outer(supply, demand), 'max_iter_reached'


def test_custom_solver():
    """Any LPSolver can be plugged in; a non-optimal status is reported."""
    mu = np.array([0.5, 0.5])
    C = np.array([[0.0, 1.0], [1.0, 0.0]])
    solver = FixedPlanSolver()

    with pytest.warns(ConvergenceWarning):
        plan, log = emd(mu, mu, C, solver=solver)

    assert len(solver.calls) == 1
    assert not log['converged']
    assert log['status'] == 'max_iter_reached'
    assert np.allclose(plan, 0.25)
    assert log['residual'] < 1e-12


def test_network_simplex_repr():
    assert repr(NetworkSimplexSolver(max_iter=10)) == 'NetworkSimplexSolver(max_iter=10)'


def test_sinkhorn_divergence():
    """Zero on identical inputs, positive otherwise."""
    x = np.linspace(0, 1, 15)
    C = cost_matrix(x)
    mu = np.exp(-0.5 * ((x - 0.3) / 0.1) ** 2)
    nu = np.exp(-0.5 * ((x - 0.7) / 0.1) ** 2)
    mu /= mu.sum()
    nu /= nu.sum()

    same, log_same = sinkhorn_divergence(mu, mu, C, eps=0.1, regularization=True)
    value, log = sinkhorn_divergence(mu, nu, C, eps=0.1, regularization=True)

    assert np.isclose(same, 0.0, atol=1e-12)
    assert value > 0
    assert log['converged']
    assert len(log['terms']) == 3


def test_sinkhorn_divergence_needs_self_costs():
    """Rectangular costs need the self-costs of both supports."""
    x = np.linspace(0, 1, 5)
    y = np.linspace(0, 1, 4)
    mu = np.full(5, 0.2)
    nu = np.full(4, 0.25)

    with pytest.raises(ValueError):
        sinkhorn_divergence(mu, nu, cost_matrix(x, y), eps=0.1)

    value, _ = sinkhorn_divergence(mu, nu, cost_matrix(x, y), eps=0.1,
                                   C_mu=cost_matrix(x), C_nu=cost_matrix(y))
    assert np.isfinite(value)


def test_analyze_coupling():
    """Statistics of a diagonal plan, dense or sparse."""
    plan = np.diag([0.5, 0.5, 0.0])

    stats = analyze_coupling(plan)
    stats_sparse = analyze_coupling(sp.csr_matrix(plan))

    assert stats['shape'] == (3, 3)
    assert np.isclose(stats['total_mass'], 1.0)
    assert np.isclose(stats['entropy'], np.log(2))
    assert np.isclose(stats['sparsity'], 7 / 9)
    assert stats['num_zero_rows'] == 1
    assert stats['num_zero_cols'] == 1
    assert stats_sparse == stats


def test_marginal_residual():
    """Worst L1 violation over rows and columns."""
    plan = np.array([[0.5, 0.0], [0.1, 0.4]])
    mu = np.array([0.5, 0.5])
    nu = np.array([0.5, 0.5])

    assert np.isclose(marginal_residual(plan, mu, nu), 0.2)
    assert np.isclose(marginal_residual(sp.csr_matrix(plan), mu, nu), 0.2)


if __name__ == '__main__':
    pytest.main([__file__])
