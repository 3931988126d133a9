"""
Tests for plain Sinkhorn: plans, costs, batching and convergence reporting.
"""

import pytest
import numpy as np

from regot import sinkhorn, sinkhorn2, emd2, cost_matrix, ConvergenceWarning
from regot.core.config import SinkhornConfig
from regot.core.convergence import SolverStrategy
from regot.optimal_transport.kernel import entropy_term


def random_problem(M=6, N=8, seed=0):
    """Random histograms on random points, cost scaled to [0, 1]."""
    rng = np.random.RandomState(seed)
    mu = rng.rand(M) + 0.1
    nu = rng.rand(N) + 0.1
    mu /= mu.sum()
    nu /= nu.sum()
    C = cost_matrix(rng.rand(M, 2), rng.rand(N, 2))
    return mu, nu, C / C.max()


def two_point_problem():
    mu = np.array([0.5, 0.5])
    C = np.array([[0.0, 1.0], [1.0, 0.0]])
    return mu, mu.copy(), C


def test_marginals():
    """Plan marginals match mu and nu within tolerance."""
    mu, nu, C = random_problem()

    plan, log = sinkhorn(mu, nu, C, eps=0.1)

    assert log['converged']
    assert plan.shape == (6, 8)
    assert np.all(plan >= 0)
    assert np.allclose(plan.sum(axis=1), mu, atol=1e-8)
    assert np.allclose(plan.sum(axis=0), nu, atol=1e-8)


@pytest.mark.parametrize('eps', [0.1, 0.5, 1.0])
def test_two_point_closed_form(eps):
    """2x2 problem: off-diagonal mass is 1 / (2 (1 + e^(1/eps)))."""
    mu, nu, C = two_point_problem()
    off = 1.0 / (2.0 * (1.0 + np.exp(1.0 / eps)))

    plan, log = sinkhorn(mu, nu, C, eps=eps)
    cost, _ = sinkhorn2(mu, nu, C, eps=eps)

    expected = np.array([[0.5 - off, off], [off, 0.5 - off]])
    assert log['converged']
    assert np.allclose(plan, expected, atol=1e-12)
    assert np.isclose(cost, 1.0 / (1.0 + np.exp(1.0 / eps)), atol=1e-12)


def test_precomputed_plan():
    """A supplied plan gives exactly the cost of the full solve."""
    mu, nu, C = random_problem(seed=1)

    plan, _ = sinkhorn(mu, nu, C, eps=0.1)
    cost, _ = sinkhorn2(mu, nu, C, eps=0.1)
    cost_pre, log = sinkhorn2(mu, nu, C, eps=0.1, plan=plan)

    assert cost_pre == cost
    assert log['n_iter'] == 0
    assert log['precomputed']
    assert log['converged']


def test_regularized_cost():
    """regularization=True adds eps * sum(p log p)."""
    mu, nu, C = random_problem(seed=2)
    eps = 0.2

    plan, _ = sinkhorn(mu, nu, C, eps=eps)
    cost, _ = sinkhorn2(mu, nu, C, eps=eps, plan=plan)
    cost_reg, _ = sinkhorn2(mu, nu, C, eps=eps, plan=plan, regularization=True)

    expected = np.sum(C * plan) + eps * np.sum(plan * np.log(plan))
    assert np.isclose(cost_reg, expected)
    assert np.isclose(cost_reg - cost, eps * entropy_term(plan))


def test_entropy_of_zero_entries():
    """0 log 0 counts as 0."""
    plan = np.array([[0.5, 0.0], [0.0, 0.5]])
    assert np.isclose(entropy_term(plan), np.log(0.5))


def test_cost_above_exact():
    """Entropic transport cost decreases to the exact cost as eps shrinks."""
    mu, nu, C = random_problem(seed=3)
    exact, _ = emd2(mu, nu, C)

    gaps = []
    for eps in [0.5, 0.1, 0.05]:
        cost, _ = sinkhorn2(mu, nu, C, eps=eps, max_iter=20000)
        assert cost >= exact - 1e-8
        gaps.append(cost - exact)

    assert gaps[0] > gaps[1] > gaps[2]


def test_float32_preserved():
    """Single-precision inputs give a single-precision plan."""
    mu, nu, C = random_problem(seed=4)
    mu, nu, C = mu.astype(np.float32), nu.astype(np.float32), C.astype(np.float32)

    plan, log = sinkhorn(mu, nu, C, eps=0.1, tol=1e-5)

    assert plan.dtype == np.float32
    assert log['converged']
    assert np.allclose(plan.sum(axis=0), nu, atol=1e-5)


def test_batched():
    """Matrix nu solves one problem per column."""
    mu, nu, C = random_problem(seed=5)
    rng = np.random.RandomState(5)
    nus = rng.rand(8, 3) + 0.1
    nus /= nus.sum(axis=0)

    plans, log = sinkhorn(mu, nus, C, eps=0.1)
    costs, _ = sinkhorn2(mu, nus, C, eps=0.1)

    assert plans.shape == (6, 8, 3)
    assert costs.shape == (3,)
    assert log['converged']
    for k in range(3):
        plan_k, _ = sinkhorn(mu, nus[:, k], C, eps=0.1)
        assert np.allclose(plans[:, :, k], plan_k, atol=1e-7)
        assert np.isclose(costs[k], np.sum(C * plan_k), atol=1e-7)


def test_batched_precomputed():
    """Precomputed stacks of plans are checked column by column."""
    mu, nu, C = random_problem(seed=6)
    nus = np.stack([nu, nu[::-1]], axis=1)

    plans, _ = sinkhorn(mu, nus, C, eps=0.1)
    costs, log = sinkhorn2(mu, nus, C, eps=0.1, plan=plans)

    assert costs.shape == (2,)
    assert log['converged']


def test_batched_single_column_source():
    """A (M, 1) source is shared by every column of a (N, d) target."""
    mu, _, C = random_problem(seed=7)
    rng = np.random.RandomState(7)
    nus = rng.rand(8, 3) + 0.1
    nus /= nus.sum(axis=0)

    plans, log = sinkhorn(mu[:, None], nus, C, eps=0.1)
    costs, _ = sinkhorn2(mu[:, None], nus, C, eps=0.1)

    assert plans.shape == (6, 8, 3)
    assert costs.shape == (3,)
    assert log['converged']
    for k in range(3):
        plan_k, _ = sinkhorn(mu, nus[:, k], C, eps=0.1)
        assert np.allclose(plans[:, :, k], plan_k, atol=1e-7)


def test_not_converged_warns():
    """Hitting max_iter warns and reports converged=False."""
    mu, nu, C = random_problem(seed=7)

    with pytest.warns(ConvergenceWarning):
        plan, log = sinkhorn(mu, nu, C, eps=0.01, max_iter=1, tol=1e-14)

    assert not log['converged']
    assert log['n_iter'] == 1
    assert log['residual'] > 1e-14
    assert plan.shape == C.shape


def test_underflow_reports_divergence():
    """Kernel underflow gives a non-finite residual, reported as non-convergence."""
    mu = np.full(3, 1.0 / 3)
    C = 10.0 + np.arange(9.0).reshape(3, 3)

    with pytest.warns(ConvergenceWarning, match='non-finite'):
        with np.errstate(all='ignore'):
            _, log = sinkhorn(mu, mu, C, eps=1e-3)

    assert not log['converged']
    assert not np.isfinite(log['residual'])


def test_check_convergence_interval():
    """Residual is only checked every check_convergence iterations."""
    mu, nu, C = random_problem(seed=8)

    _, log = sinkhorn(mu, nu, C, eps=0.1, check_convergence=10)

    assert log['converged']
    assert log['n_iter'] % 10 == 0


def test_config_not_mutated():
    """Keyword overrides leave the caller's config untouched."""
    mu, nu, C = random_problem(seed=9)
    config = SinkhornConfig()

    with pytest.warns(ConvergenceWarning):
        _, log = sinkhorn(mu, nu, C, eps=0.1, config=config, max_iter=2)

    assert log['n_iter'] == 2
    assert config.max_iter == 1000


def test_verbose(capsys):
    """Verbose mode prints the residual table."""
    mu, nu, C = two_point_problem()

    sinkhorn(mu, nu, C, eps=0.5, verbose=True)

    out = capsys.readouterr().out
    assert 'It.' in out
    assert 'Err' in out


def test_strategy_requires_core_methods():
    """A strategy missing step, residual or plan cannot be built."""
    class StepOnly(SolverStrategy):
        def step(self):
            pass

    with pytest.raises(TypeError):
        SolverStrategy()
    with pytest.raises(TypeError):
        StepOnly()


if __name__ == '__main__':
    pytest.main([__file__])
