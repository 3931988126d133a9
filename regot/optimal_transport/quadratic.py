"""
Quadratically regularized optimal transport.

Minimizes <C, P> + eps/2 ||P||^2 over plans with marginals mu, nu. The dual

    Phi(alpha, beta) = 1/(2 eps) ||[alpha + beta^T - C]_+||^2 - <alpha, mu> - <beta, nu>

is convex and piecewise quadratic, with primal solution
P = [alpha + beta^T - C]_+ / eps. It is minimized by a semismooth Newton
method: the generalized Hessian only involves the active set
{alpha_i + beta_j >= C_ij}, so it is sparse, and so is the optimal plan.

Runs on numpy/scipy only; other array backends are converted on entry. The
Newton iterates are kept in double precision and the plan, potentials and
costs come back in the floating type of the input.
"""

from typing import Optional, Dict, Any, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import cg
from ot.backend import get_backend

from regot.core.config import QuadraticConfig, resolve_config
from regot.core.convergence import SolverStrategy, solve
from regot.core.validation import (
    DimensionMismatch,
    as_array,
    check_eps,
    check_plan,
    validate_problem,
)
from regot.optimal_transport.coupling import compute_coupling_sparsity
from regot.optimal_transport.sinkhorn import precomputed_log


class QuadraticNewton(SolverStrategy):
    """Semismooth Newton iteration on the dual potentials (alpha, beta)."""

    name = 'Quadratic OT (semismooth Newton)'

    def __init__(self, mu, nu, C, eps: float, config: QuadraticConfig):
        self.mu, self.nu, self.C = mu, nu, C
        self.eps = eps
        self.config = config
        self.M, self.N = C.shape

        # Column minima make every column start with one active entry
        self.alpha = np.zeros(self.M, dtype=C.dtype)
        self.beta = C.min(axis=0)
        self.n_line_search = 0

    def _slack(self, alpha, beta):
        return alpha[:, None] + beta[None, :] - self.C

    def objective(self, alpha, beta) -> float:
        positive = np.maximum(self._slack(alpha, beta), 0)
        return float(0.5 / self.eps * np.sum(positive ** 2) - alpha @ self.mu - beta @ self.nu)

    def dense_plan(self):
        return np.maximum(self._slack(self.alpha, self.beta), 0) / self.eps

    def gradient(self, P):
        return np.concatenate([P.sum(axis=1) - self.mu, P.sum(axis=0) - self.nu])

    def hessian(self, active):
        """Generalized Hessian (plus ridge) on the active set, as a sparse matrix."""
        sigma = sp.csr_matrix(active.astype(self.C.dtype))
        rows = sp.diags(np.asarray(sigma.sum(axis=1)).ravel())
        cols = sp.diags(np.asarray(sigma.sum(axis=0)).ravel())
        H = sp.bmat([[rows, sigma], [sigma.T, cols]], format='csr') / self.eps
        return H + self.config.delta * sp.identity(self.M + self.N, dtype=self.C.dtype, format='csr')

    def step(self) -> None:
        config = self.config
        slack = self._slack(self.alpha, self.beta)
        P = np.maximum(slack, 0) / self.eps
        grad = self.gradient(P)

        direction, _ = cg(self.hessian(slack >= 0), -grad, rtol=config.cg_tol, atol=0.0)
        direction = direction.astype(self.C.dtype, copy=False)
        d_alpha, d_beta = direction[:self.M], direction[self.M:]

        # Armijo backtracking
        phi = self.objective(self.alpha, self.beta)
        slope = float(grad @ direction)
        t = 1.0
        for _ in range(config.max_line_search):
            trial = self.objective(self.alpha + t * d_alpha, self.beta + t * d_beta)
            if trial <= phi + config.armijo_theta * t * slope:
                break
            t *= config.armijo_beta
            self.n_line_search += 1

        self.alpha = self.alpha + t * d_alpha
        self.beta = self.beta + t * d_beta

    def residual(self) -> float:
        P = self.dense_plan()
        return float(np.abs(P.sum(axis=1) - self.mu).sum() + np.abs(P.sum(axis=0) - self.nu).sum())

    def plan(self):
        return sp.csr_matrix(self.dense_plan(), dtype=self.C.dtype)

    def potentials(self) -> Dict[str, Any]:
        return {'alpha': self.alpha, 'beta': self.beta, 'n_line_search': self.n_line_search}


def _to_numpy(mu, nu, C):
    nx = get_backend(mu, nu, C)
    return nx.to_numpy(mu), nx.to_numpy(nu), nx.to_numpy(C)


def _output_dtype(*arrays):
    """Floating type of the inputs (float64 for integer inputs)."""
    return np.result_type(*[a.dtype for a in arrays], np.float32)


def quadreg(mu, nu, C, eps: float,
            config: Optional[QuadraticConfig] = None,
            **options,
            ) -> Tuple[sp.csr_matrix, Dict[str, Any]]:
    """
    Quadratically regularized transport plan.

    Args:
        mu: (M,) source marginal
        nu: (N,) target marginal, same total mass as mu
        C: (M, N) cost matrix
        eps: Regularization strength of eps/2 ||P||^2
        config: Solver configuration (Newton ridge, Armijo constants, ...)
        **options: Overrides of config fields

    Returns:
        plan: (M, N) scipy CSR matrix, exact zeros outside the support
        log: converged, n_iter, residual, alpha, beta, sparsity
    """
    config = resolve_config(config, QuadraticConfig, **options)
    check_eps(eps)
    mu, nu, C, batch = validate_problem(mu, nu, C, balanced=True, mass_tol=config.mass_tol)
    if batch:
        raise DimensionMismatch("Quadratic OT does not support batched marginals")
    mu, nu, C = _to_numpy(mu, nu, C)
    dtype = _output_dtype(mu, nu, C)

    # Armijo steps stall on float32 rounding; iterate in double precision
    strategy = QuadraticNewton(mu.astype(np.float64), nu.astype(np.float64),
                               C.astype(np.float64), eps, config)
    state = solve(strategy, config)

    plan = strategy.plan().astype(dtype)
    log = state.to_log()
    log.update(strategy.potentials())
    log['alpha'] = log['alpha'].astype(dtype)
    log['beta'] = log['beta'].astype(dtype)
    log['sparsity'] = compute_coupling_sparsity(plan)
    return plan, log


def quadratic_cost(C, plan, eps: Optional[float] = None):
    """
    <C, P>, plus eps/2 ||P||^2 when eps is given. Accepts dense or sparse plans.

    The result is a scalar of the floating type shared by C and the plan.
    """
    C = np.asarray(C)
    if not sp.issparse(plan):
        plan = np.asarray(plan)
    dtype = _output_dtype(C, plan)
    if sp.issparse(plan):
        cost = plan.multiply(C).sum()
        penalty = plan.multiply(plan).sum()
    else:
        cost = np.sum(C * plan)
        penalty = np.sum(plan ** 2)
    if eps is not None:
        cost = cost + 0.5 * eps * penalty
    return dtype.type(cost)


def quadreg2(mu, nu, C, eps: float,
             regularization: bool = False,
             plan=None,
             config: Optional[QuadraticConfig] = None,
             **options,
             ) -> Tuple[float, Dict[str, Any]]:
    """
    Quadratically regularized transport cost.

    Args:
        mu, nu, C, eps: As in `quadreg`
        regularization: Add eps/2 ||P||^2 to the cost
        plan: Precomputed (dense or sparse) plan; skips the iteration
        config: Solver configuration

    Returns:
        cost: Scalar
        log: Solver log, or the supplied plan's marginal residual with n_iter=0
    """
    config = resolve_config(config, QuadraticConfig, **options)
    if plan is None:
        plan, log = quadreg(mu, nu, C, eps, config=config)
    else:
        check_eps(eps)
        mu, nu, C, _ = validate_problem(mu, nu, C, balanced=True, mass_tol=config.mass_tol)
        check_plan(plan, C)
        log = precomputed_log(plan, mu, nu, tol=config.tol)
    C = as_array(C)
    C = get_backend(C).to_numpy(C)

    return quadratic_cost(C, plan, eps if regularization else None), log
