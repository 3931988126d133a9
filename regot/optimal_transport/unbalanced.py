"""
Unbalanced entropic optimal transport.

The marginal constraints are replaced by KL penalties of strength lambda1
(rows) and lambda2 (columns), which turns the Sinkhorn updates into powers:

    u <- (mu / (K v)) ** (lambda1 / (lambda1 + eps))
    v <- (nu / (K^T u)) ** (lambda2 / (lambda2 + eps))

An infinite lambda gives exponent one, i.e. the balanced update.
"""

import math
from typing import Optional, Dict, Any, Tuple

from ot.backend import get_backend

from regot.core.config import SinkhornConfig, resolve_config
from regot.core.convergence import SolverStrategy, solve
from regot.core.validation import as_array, check_eps, check_plan, validate_problem
from regot.optimal_transport.kernel import gibbs_kernel, plan_from_scalings, transport_cost
from regot.optimal_transport.sinkhorn import broadcast_marginals


def penalty_exponent(lam: float, eps: float) -> float:
    """lambda / (lambda + eps), equal to 1 for lambda = inf."""
    check_eps(lam, 'lambda')
    if math.isinf(lam):
        return 1.0
    return lam / (lam + eps)


class SinkhornUnbalanced(SolverStrategy):
    """
    KL-relaxed scaling updates.

    The marginals are not matched at the fixed point, so the residual is the
    relative sup-norm change that the next u update would make.
    """

    name = 'Unbalanced Sinkhorn'

    def __init__(self, mu, nu, K, exponent1: float, exponent2: float):
        self.nx = nx = get_backend(mu, nu, K)
        self.mu, self.nu, self.K = mu, nu, K
        self.exponent1, self.exponent2 = exponent1, exponent2
        self.u = nx.ones(mu.shape, type_as=K)
        self.v = nx.ones(nu.shape, type_as=K)
        self.u_next = self._row_update(nx.dot(K, self.v))

    def _row_update(self, Kv):
        return (self.mu / Kv) ** self.exponent1

    def step(self) -> None:
        nx = self.nx
        self.u = self.u_next
        self.v = (self.nu / nx.dot(self.K.T, self.u)) ** self.exponent2
        self.u_next = self._row_update(nx.dot(self.K, self.v))

    def residual(self) -> float:
        nx = self.nx
        change = float(nx.max(nx.abs(self.u_next - self.u)))
        scale = float(nx.max(nx.abs(self.u_next)))
        return change / scale if scale > 0 else change

    def plan(self):
        return plan_from_scalings(self.u, self.K, self.v)

    def potentials(self) -> Dict[str, Any]:
        return {'u': self.u, 'v': self.v}


def sinkhorn_unbalanced(mu, nu, C, lambda1: float, lambda2: float, eps: float,
                        config: Optional[SinkhornConfig] = None,
                        **options,
                        ) -> Tuple[Any, Dict[str, Any]]:
    """
    Unbalanced entropically regularized transport plan.

    Args:
        mu: (M,) or (M, d) source measure, any total mass
        nu: (N,) or (N, d) target measure, any total mass
        C: (M, N) cost matrix
        lambda1: KL penalty on the row marginal (inf = exact)
        lambda2: KL penalty on the column marginal (inf = exact)
        eps: Entropic regularization strength
        config: Solver configuration
        **options: Overrides of config fields

    Returns:
        plan: (M, N) coupling, or (M, N, d) for batched measures
        log: converged, n_iter, residual, scalings u and v
    """
    config = resolve_config(config, SinkhornConfig, **options)
    check_eps(eps)
    p1, p2 = penalty_exponent(lambda1, eps), penalty_exponent(lambda2, eps)
    mu, nu, C, batch = validate_problem(mu, nu, C, balanced=False)
    mu, nu = broadcast_marginals(mu, nu, batch)

    strategy = SinkhornUnbalanced(mu, nu, gibbs_kernel(C, eps), p1, p2)
    state = solve(strategy, config)

    log = state.to_log()
    log.update(strategy.potentials())
    return strategy.plan(), log


def sinkhorn_unbalanced2(mu, nu, C, lambda1: float, lambda2: float, eps: float,
                         regularization: bool = False,
                         plan=None,
                         config: Optional[SinkhornConfig] = None,
                         **options,
                         ) -> Tuple[Any, Dict[str, Any]]:
    """
    Unbalanced entropically regularized transport cost <C, plan>.

    Args:
        mu, nu, C, lambda1, lambda2, eps: As in `sinkhorn_unbalanced`
        regularization: Add eps * sum(p log p) to the cost
        plan: Precomputed plan; skips the iteration entirely
        config: Solver configuration

    Returns:
        cost: Scalar, or (d,) for batched measures
        log: Solver log; for a supplied plan converged is None (nothing to check)
    """
    config = resolve_config(config, SinkhornConfig, **options)
    if plan is None:
        plan, log = sinkhorn_unbalanced(mu, nu, C, lambda1, lambda2, eps, config=config)
        C = as_array(C)
    else:
        check_eps(eps)
        mu, nu, C, _ = validate_problem(mu, nu, C, balanced=False)
        check_plan(plan, C)
        log = {'converged': None, 'n_iter': 0, 'residual': math.nan, 'precomputed': True}

    cost = transport_cost(C, plan, eps if regularization else None)
    return cost, log
