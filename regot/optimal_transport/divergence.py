"""
Sinkhorn divergence.

S(mu, nu) = OT_eps(mu, nu) - (OT_eps(mu, mu) + OT_eps(nu, nu)) / 2

removes the entropic bias of OT_eps: S(mu, mu) = 0.
"""

from typing import Optional, Dict, Any, Tuple

from regot.core.config import SinkhornConfig, resolve_config
from regot.core.validation import as_array
from regot.optimal_transport.sinkhorn import sinkhorn2


def _self_cost(C_self, C, name: str):
    if C_self is not None:
        return as_array(C_self)
    if C.shape[0] != C.shape[1]:
        raise ValueError(f"{name} is required when the cost matrix is not square")
    return C


def sinkhorn_divergence(mu, nu, C, eps: float,
                        C_mu=None,
                        C_nu=None,
                        regularization: bool = False,
                        config: Optional[SinkhornConfig] = None,
                        **options,
                        ) -> Tuple[Any, Dict[str, Any]]:
    """
    Debiased entropic transport cost.

    Args:
        mu: (M,) source marginal
        nu: (N,) target marginal
        C: (M, N) cost between the supports
        eps: Entropic regularization strength
        C_mu: (M, M) cost on the support of mu (C if None and C is square)
        C_nu: (N, N) cost on the support of nu (C if None and C is square)
        regularization: Include the entropy term in each of the three costs
        config: Solver configuration shared by the three solves

    Returns:
        value: Sinkhorn divergence
        log: converged (all three), total n_iter, worst residual, terms
    """
    config = resolve_config(config, SinkhornConfig, **options)
    C = as_array(C)
    C_mu = _self_cost(C_mu, C, 'C_mu')
    C_nu = _self_cost(C_nu, C, 'C_nu')

    cost_ab, log_ab = sinkhorn2(mu, nu, C, eps, regularization=regularization, config=config)
    cost_aa, log_aa = sinkhorn2(mu, mu, C_mu, eps, regularization=regularization, config=config)
    cost_bb, log_bb = sinkhorn2(nu, nu, C_nu, eps, regularization=regularization, config=config)

    logs = (log_ab, log_aa, log_bb)
    log = {
        'converged': all(entry['converged'] for entry in logs),
        'n_iter': sum(entry['n_iter'] for entry in logs),
        'residual': max(entry['residual'] for entry in logs),
        'terms': (cost_ab, cost_aa, cost_bb),
    }
    return cost_ab - 0.5 * (cost_aa + cost_bb), log
