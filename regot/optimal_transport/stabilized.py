"""
Log-domain stabilized Sinkhorn and epsilon scaling.

The scalings u, v are periodically absorbed into additive log potentials
alpha, beta (alpha += eps log u, beta += eps log v) and the kernel is rebuilt
as exp((alpha + beta - C) / eps). The scalings therefore stay close to one,
which keeps the iteration finite for regularization strengths at which the
plain Gibbs kernel under- or overflows.
"""

import warnings
from dataclasses import replace
from typing import Optional, Dict, Any, Tuple, Sequence, Union, List

import numpy as np
from ot.backend import get_backend

from regot.core.config import StabilizedConfig, EpsilonScalingConfig, resolve_config
from regot.core.convergence import ConvergenceWarning, SolverStrategy, solve
from regot.core.validation import DimensionMismatch, check_eps, validate_problem
from regot.optimal_transport.kernel import stabilized_kernel, plan_from_scalings
from regot.optimal_transport.sinkhorn import l1_error


def safe_divide(a, b):
    """a / b with 0 wherever b == 0 (zero-mass rows/columns)."""
    nx = get_backend(a, b)
    positive = b > 0
    denom = nx.where(positive, b, nx.ones(b.shape, type_as=b))
    return nx.where(positive, a / denom, nx.zeros(b.shape, type_as=b))


def reduced_potentials(C):
    """
    Row minima of C, then column minima of the row-reduced cost.

    Every row and column of the resulting kernel has a largest entry of one,
    so the first scaling update cannot underflow.
    """
    nx = get_backend(C)
    alpha = nx.min(C, axis=1)
    beta = nx.min(C - alpha[:, None], axis=0)
    return alpha, beta


class SinkhornStabilized(SolverStrategy):
    """Sinkhorn updates on a kernel with absorbed log potentials."""

    name = 'Stabilized Sinkhorn'

    def __init__(self, mu, nu, C, eps: float,
                 absorb_threshold: float = 1e3,
                 alpha=None,
                 beta=None,
                 ):
        self.nx = get_backend(mu, nu, C)
        self.mu, self.nu, self.C = mu, nu, C
        self.eps = eps
        self.absorb_threshold = absorb_threshold
        if alpha is None or beta is None:
            alpha, beta = reduced_potentials(C)
        self.alpha, self.beta = alpha, beta
        self.n_absorb = 0
        self._reset_scalings()

    def _reset_scalings(self) -> None:
        nx = self.nx
        self.u = nx.ones(self.mu.shape, type_as=self.C)
        self.v = nx.ones(self.nu.shape, type_as=self.C)
        self.K = stabilized_kernel(self.C, self.alpha, self.beta, self.eps)
        self.Kv = nx.dot(self.K, self.v)

    def absorb(self) -> None:
        """Move the scalings into alpha, beta and rebuild the kernel."""
        nx = self.nx
        with np.errstate(divide='ignore'):
            self.alpha = self.alpha + self.eps * nx.log(self.u)
            self.beta = self.beta + self.eps * nx.log(self.v)
        self.n_absorb += 1
        self._reset_scalings()

    def step(self) -> None:
        nx = self.nx
        self.u = safe_divide(self.mu, self.Kv)
        self.v = safe_divide(self.nu, nx.dot(self.K.T, self.u))
        if max(float(nx.max(self.u)), float(nx.max(self.v))) > self.absorb_threshold:
            self.absorb()
        else:
            self.Kv = nx.dot(self.K, self.v)

    def residual(self) -> float:
        return l1_error(self.u * self.Kv, self.mu)

    def finalize(self) -> None:
        self.absorb()

    def plan(self):
        return plan_from_scalings(self.u, self.K, self.v)

    def potentials(self) -> Dict[str, Any]:
        return {'alpha': self.alpha, 'beta': self.beta, 'n_absorb': self.n_absorb}


def _validate_unbatched(mu, nu, C, config):
    mu, nu, C, batch = validate_problem(mu, nu, C, balanced=True, mass_tol=config.mass_tol)
    if batch:
        raise DimensionMismatch("Stabilized Sinkhorn does not support batched marginals")
    return mu, nu, C


def sinkhorn_stabilized(mu, nu, C, eps: float,
                        alpha=None,
                        beta=None,
                        config: Optional[StabilizedConfig] = None,
                        **options,
                        ) -> Tuple[Any, Dict[str, Any]]:
    """
    Log-domain stabilized Sinkhorn plan.

    Args:
        mu: (M,) source marginal
        nu: (N,) target marginal, same total mass as mu
        C: (M, N) cost matrix
        eps: Entropic regularization strength
        alpha, beta: Initial log potentials (warm start); reduced cost minima if None
        config: Solver configuration; `absorb_threshold` triggers absorption
        **options: Overrides of config fields

    Returns:
        plan: (M, N) coupling
        log: converged, n_iter, residual, alpha, beta, n_absorb
    """
    config = resolve_config(config, StabilizedConfig, **options)
    check_eps(eps)
    mu, nu, C = _validate_unbatched(mu, nu, C, config)

    strategy = SinkhornStabilized(mu, nu, C, eps, config.absorb_threshold, alpha, beta)
    state = solve(strategy, config)

    log = state.to_log()
    log.update(strategy.potentials())
    return strategy.plan(), log


def epsilon_schedule(eps: Union[float, Sequence[float]],
                     scaling_factor: float = 0.5,
                     scaling_steps: int = 5,
                     ) -> List[float]:
    """
    Decreasing sequence of regularization strengths ending at the target eps.

    Args:
        eps: Final eps (a geometric schedule is built) or an explicit schedule
        scaling_factor: Ratio between consecutive values, in (0, 1)
        scaling_steps: Number of values of the geometric schedule

    Returns:
        List of eps values, largest first
    """
    if np.isscalar(eps):
        check_eps(eps)
        if not 0 < scaling_factor < 1:
            raise ValueError(f"scaling_factor must be in (0, 1), got {scaling_factor}")
        if scaling_steps < 1:
            raise ValueError(f"scaling_steps must be at least 1, got {scaling_steps}")
        return [eps * scaling_factor ** -k for k in range(scaling_steps - 1, -1, -1)]

    schedule = [float(e) for e in eps]
    if not schedule:
        raise ValueError("Empty eps schedule")
    for e in schedule:
        check_eps(e)
    if any(b > a for a, b in zip(schedule, schedule[1:])):
        raise ValueError(f"eps schedule must be non-increasing, got {schedule}")
    return schedule


def sinkhorn_epsilon_scaling(mu, nu, C, eps: Union[float, Sequence[float]],
                             config: Optional[EpsilonScalingConfig] = None,
                             **options,
                             ) -> Tuple[Any, Dict[str, Any]]:
    """
    Stabilized Sinkhorn run over a decreasing eps schedule.

    Every stage warm-starts from the log potentials of the previous one.
    Stages before the last stop at the looser `stage_tol`; only the final
    stage's convergence is reported.

    Args:
        mu: (M,) source marginal
        nu: (N,) target marginal, same total mass as mu
        C: (M, N) cost matrix
        eps: Final eps, or an explicit non-increasing schedule
        config: Solver configuration
        **options: Overrides of config fields

    Returns:
        plan: (M, N) coupling at the final eps
        log: final-stage diagnostics plus eps_schedule, stage_iters, stage_converged
    """
    config = resolve_config(config, EpsilonScalingConfig, **options)
    schedule = epsilon_schedule(eps, config.scaling_factor, config.scaling_steps)
    mu, nu, C = _validate_unbatched(mu, nu, C, config)

    stage_config = replace(config, tol=max(config.stage_tol, config.tol))
    alpha, beta = None, None
    stage_iters, stage_converged = [], []

    for eps_k in schedule[:-1]:
        strategy = SinkhornStabilized(mu, nu, C, eps_k, config.absorb_threshold, alpha, beta)
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            state = solve(strategy, stage_config)
        alpha, beta = strategy.alpha, strategy.beta
        stage_iters.append(state.n_iter)
        stage_converged.append(state.converged)

    strategy = SinkhornStabilized(mu, nu, C, schedule[-1], config.absorb_threshold, alpha, beta)
    state = solve(strategy, config)
    stage_iters.append(state.n_iter)
    stage_converged.append(state.converged)

    log = state.to_log()
    log.update(strategy.potentials())
    log['eps_schedule'] = schedule
    log['stage_iters'] = stage_iters
    log['stage_converged'] = stage_converged
    return strategy.plan(), log
