"""
Fixed-support Wasserstein barycenters by Sinkhorn iterations.

Each input marginal mu_i is coupled to the shared barycenter b through its
own kernel K_i. One outer step makes a row update for every marginal, sets
the barycenter to the weighted geometric mean of the column contributions
K_i^T u_i, then makes the column updates against the new barycenter.

The debiased variant additionally tracks the symmetric Sinkhorn potential d
of the barycenter against itself, which removes the entropic blur: a set of
identical marginals is then an exact fixed point.
"""

from typing import Optional, Dict, Any, Tuple, Sequence, Union, List

from ot.backend import get_backend

from regot.core.config import BarycenterConfig, resolve_config
from regot.core.convergence import SolverStrategy, solve
from regot.core.validation import (
    DimensionMismatch,
    as_array,
    check_balanced,
    check_eps,
    check_nonnegative,
    check_weights,
)
from regot.optimal_transport.kernel import gibbs_kernel, plan_from_scalings
from regot.optimal_transport.sinkhorn import l1_error


class SinkhornBarycenter(SolverStrategy):
    """Iterative Bregman projections, optionally debiased."""

    name = 'Sinkhorn barycenter'

    def __init__(self, mu_all, kernels: List, weights, debias_kernel=None):
        self.nx = nx = get_backend(mu_all, *kernels)
        self.mu_all = mu_all
        self.kernels = kernels
        self.weights = [float(w) for w in weights]
        self.debias_kernel = debias_kernel

        m = kernels[0].shape[1]
        mass = float(nx.sum(mu_all[:, 0]))
        self.barycenter = nx.full((m,), mass / m, type_as=kernels[0])
        self.previous = self.barycenter
        self.u = [nx.ones((K.shape[0],), type_as=K) for K in kernels]
        self.v = [nx.ones((m,), type_as=K) for K in kernels]
        self.d = nx.ones((m,), type_as=kernels[0]) if debias_kernel is not None else None

    def step(self) -> None:
        nx = self.nx
        KTu = []
        for i, K in enumerate(self.kernels):
            self.u[i] = self.mu_all[:, i] / nx.dot(K, self.v[i])
            KTu.append(nx.dot(K.T, self.u[i]))

        barycenter = nx.ones(KTu[0].shape, type_as=KTu[0])
        for w, contribution in zip(self.weights, KTu):
            barycenter = barycenter * contribution ** w
        if self.d is not None:
            barycenter = self.d * barycenter

        self.v = [barycenter / contribution for contribution in KTu]
        if self.d is not None:
            self.d = nx.sqrt(self.d * barycenter / nx.dot(self.debias_kernel, self.d))

        self.previous, self.barycenter = self.barycenter, barycenter

    def residual(self) -> float:
        return l1_error(self.barycenter, self.previous)

    def plan(self):
        """Couplings between each marginal and the barycenter."""
        return [plan_from_scalings(u, K, v) for u, K, v in zip(self.u, self.kernels, self.v)]

    def potentials(self) -> Dict[str, Any]:
        return {'u': self.u, 'v': self.v, 'debias': self.d}


def _cost_list(C_all, k: int) -> list:
    if isinstance(C_all, (list, tuple)):
        costs = [as_array(C) for C in C_all]
    else:
        C_all = as_array(C_all)
        costs = [C_all] * k if C_all.ndim == 2 else [C_all[i] for i in range(C_all.shape[0])]
    if len(costs) != k:
        raise DimensionMismatch(f"Expected {k} cost matrices, got {len(costs)}")
    return costs


def sinkhorn_barycenter(mu_all, C_all: Union[Any, Sequence[Any]], eps: float,
                        weights=None,
                        barycenter_cost=None,
                        config: Optional[BarycenterConfig] = None,
                        **options,
                        ) -> Tuple[Any, Dict[str, Any]]:
    """
    Entropic Wasserstein barycenter on a fixed support.

    Args:
        mu_all: (n, k) matrix, one marginal per column, all of equal mass
        C_all: One (n, m) cost matrix shared by all marginals, or k of them
        eps: Entropic regularization strength
        weights: (k,) convex combination coefficients (uniform if None)
        barycenter_cost: (m, m) cost on the barycenter support, used by the
            debiased variant; defaults to the first cost matrix when square
        config: Solver configuration; `debiased` selects the variant
        **options: Overrides of config fields

    Returns:
        barycenter: (m,) weights
        log: converged, n_iter, residual, scalings, plans (one per marginal)
    """
    config = resolve_config(config, BarycenterConfig, **options)
    check_eps(eps)
    mu_all = as_array(mu_all)
    if mu_all.ndim != 2:
        raise DimensionMismatch(f"mu_all must be (n, k), got shape {tuple(mu_all.shape)}")
    n, k = mu_all.shape
    check_nonnegative(mu_all, 'mu_all')
    check_balanced(mu_all, mu_all[:, :1], config.mass_tol)
    weights = check_weights(weights, k)

    costs = _cost_list(C_all, k)
    m = costs[0].shape[1]
    for C in costs:
        if tuple(C.shape) != (n, m):
            raise DimensionMismatch(
                f"Cost matrix shape {tuple(C.shape)} does not match ({n}, {m})"
            )

    debias_kernel = None
    if config.debiased:
        if barycenter_cost is None:
            if n != m:
                raise ValueError(
                    "Debiased barycenter needs barycenter_cost when costs are not square"
                )
            barycenter_cost = costs[0]
        barycenter_cost = as_array(barycenter_cost)
        if tuple(barycenter_cost.shape) != (m, m):
            raise DimensionMismatch(
                f"barycenter_cost must be ({m}, {m}), got {tuple(barycenter_cost.shape)}"
            )
        debias_kernel = gibbs_kernel(barycenter_cost, eps)

    strategy = SinkhornBarycenter(
        mu_all, [gibbs_kernel(C, eps) for C in costs], weights, debias_kernel,
    )
    state = solve(strategy, config)

    log = state.to_log()
    log.update(strategy.potentials())
    log['plans'] = strategy.plan()
    return strategy.barycenter, log
