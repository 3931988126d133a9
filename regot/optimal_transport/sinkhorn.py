"""
Entropic optimal transport via Sinkhorn scaling.

All Sinkhorn variants share the loop of `regot.core.convergence.solve`,
driving a small strategy object that owns the scaling vectors of a single
solve. The Gibbs strategy defined here is the plain algorithm; the
stabilized, unbalanced and barycenter modules plug their own strategies
into the same loop.
"""

from typing import Optional, Dict, Any, Tuple

from ot.backend import get_backend

from regot.core.config import SinkhornConfig, resolve_config
from regot.core.convergence import SolverStrategy, solve
from regot.core.validation import as_array, check_eps, check_plan, validate_problem
from regot.optimal_transport.coupling import marginal_residual
from regot.optimal_transport.kernel import gibbs_kernel, plan_from_scalings, transport_cost


class SinkhornGibbs(SolverStrategy):
    """
    Alternating scaling u <- mu / (K v), v <- nu / (K^T u).

    After each step the column marginals are exact; the residual is the L1
    error of the row marginals (worst column when batched).
    """

    name = 'Sinkhorn'

    def __init__(self, mu, nu, K):
        self.nx = get_backend(mu, nu, K)
        self.mu, self.nu, self.K = mu, nu, K
        self.u = self.nx.ones(mu.shape, type_as=K)
        self.v = self.nx.ones(nu.shape, type_as=K)
        self.Kv = self.nx.dot(K, self.v)

    def step(self) -> None:
        nx = self.nx
        self.u = self.mu / self.Kv
        self.v = self.nu / nx.dot(self.K.T, self.u)
        self.Kv = nx.dot(self.K, self.v)

    def residual(self) -> float:
        return l1_error(self.u * self.Kv, self.mu)

    def plan(self):
        return plan_from_scalings(self.u, self.K, self.v)

    def potentials(self) -> Dict[str, Any]:
        return {'u': self.u, 'v': self.v}


def l1_error(a, b) -> float:
    """L1 distance between vectors; worst column for (n, d) inputs."""
    nx = get_backend(a, b)
    return float(nx.max(nx.sum(nx.abs(a - b), axis=0)))


def broadcast_marginals(mu, nu, batch: Tuple[int, ...]):
    """Turn a vector marginal into a column when the other side is batched."""
    if batch:
        if mu.ndim == 1:
            mu = mu[:, None]
        if nu.ndim == 1:
            nu = nu[:, None]
    return mu, nu


def sinkhorn(mu, nu, C, eps: float,
             config: Optional[SinkhornConfig] = None,
             **options,
             ) -> Tuple[Any, Dict[str, Any]]:
    """
    Entropically regularized transport plan.

    Args:
        mu: (M,) or (M, d) source marginals
        nu: (N,) or (N, d) target marginals, same total mass as mu
        C: (M, N) cost matrix
        eps: Entropic regularization strength
        config: Solver configuration (defaults if None)
        **options: Overrides of config fields (max_iter, tol, ...)

    Returns:
        plan: (M, N) coupling, or (M, N, d) for batched marginals
        log: converged, n_iter, residual, scalings u and v
    """
    config = resolve_config(config, SinkhornConfig, **options)
    check_eps(eps)
    mu, nu, C, batch = validate_problem(mu, nu, C, balanced=True, mass_tol=config.mass_tol)
    mu, nu = broadcast_marginals(mu, nu, batch)

    strategy = SinkhornGibbs(mu, nu, gibbs_kernel(C, eps))
    state = solve(strategy, config)

    log = state.to_log()
    log.update(strategy.potentials())
    return strategy.plan(), log


def sinkhorn2(mu, nu, C, eps: float,
              regularization: bool = False,
              plan=None,
              config: Optional[SinkhornConfig] = None,
              **options,
              ) -> Tuple[Any, Dict[str, Any]]:
    """
    Entropically regularized transport cost <C, plan>.

    Args:
        mu, nu, C, eps: As in `sinkhorn`
        regularization: Add eps * sum(p log p) to the cost
        plan: Precomputed plan; skips the iteration entirely
        config: Solver configuration (defaults if None)

    Returns:
        cost: Scalar, or (d,) for batched marginals
        log: Solver log, or for a supplied plan its marginal residual with n_iter=0
    """
    config = resolve_config(config, SinkhornConfig, **options)
    if plan is None:
        plan, log = sinkhorn(mu, nu, C, eps, config=config)
        C = as_array(C)
    else:
        check_eps(eps)
        mu, nu, C, batch = validate_problem(mu, nu, C, balanced=True, mass_tol=config.mass_tol)
        check_plan(plan, C)
        log = precomputed_log(plan, *broadcast_marginals(mu, nu, batch), tol=config.tol)

    cost = transport_cost(C, plan, eps if regularization else None)
    return cost, log


def precomputed_log(plan, mu, nu, tol: float) -> Dict[str, Any]:
    """Diagnostics for a caller-supplied plan: how well it meets the marginals."""
    residual = marginal_residual(plan, mu, nu)
    return {
        'converged': residual < tol,
        'n_iter': 0,
        'residual': residual,
        'precomputed': True,
    }
