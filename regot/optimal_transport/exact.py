"""
Exact (unregularized) optimal transport through an external LP solver.

The solve itself is delegated to an `LPSolver`; the default one wraps POT's
network simplex (`ot.emd`). This module only validates inputs and packages
the result the same way as the regularized solvers.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Tuple
import warnings

import ot

from regot.core.convergence import ConvergenceWarning
from regot.core.validation import DimensionMismatch, as_array, check_plan, validate_problem
from regot.optimal_transport.coupling import marginal_residual
from regot.optimal_transport.kernel import transport_cost
from regot.optimal_transport.sinkhorn import precomputed_log


class LPSolver(ABC):
    """
    Abstract linear-programming backend for exact transport.

    Implementations solve min <C, P> s.t. P 1 = supply, P^T 1 = demand, P >= 0.
    """

    @abstractmethod
    def optimize(self, C, supply, demand) -> Tuple[Any, str]:
        """
        Solve the transport LP.

        Args:
            C: (M, N) cost matrix
            supply: (M,) row marginal
            demand: (N,) column marginal

        Returns:
            plan: (M, N) optimal plan
            status: 'optimal', 'infeasible', 'unbounded' or 'max_iter_reached'
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class NetworkSimplexSolver(LPSolver):
    """Network simplex from POT."""

    STATUS = {
        0: 'infeasible',
        1: 'optimal',
        2: 'unbounded',
        3: 'max_iter_reached',
    }

    def __init__(self, max_iter: int = 100000):
        self.max_iter = max_iter

    def optimize(self, C, supply, demand) -> Tuple[Any, str]:
        with warnings.catch_warnings():
            # Status is reported through the returned code instead
            warnings.simplefilter('ignore', UserWarning)
            plan, log = ot.emd(supply, demand, C, numItermax=self.max_iter, log=True)
        return plan, self.STATUS.get(int(log['result_code']), 'unknown')

    def __repr__(self) -> str:
        return f"NetworkSimplexSolver(max_iter={self.max_iter})"


def emd(mu, nu, C,
        solver: Optional[LPSolver] = None,
        mass_tol: float = 1e-6,
        ) -> Tuple[Any, Dict[str, Any]]:
    """
    Exact optimal transport plan.

    Args:
        mu: (M,) source marginal
        nu: (N,) target marginal, same total mass as mu
        C: (M, N) cost matrix
        solver: LP backend (network simplex if None)
        mass_tol: Tolerance of the balanced-mass check

    Returns:
        plan: (M, N) optimal plan
        log: converged (status == 'optimal'), status, n_iter (None), residual
    """
    mu, nu, C, batch = validate_problem(mu, nu, C, balanced=True, mass_tol=mass_tol)
    if batch:
        raise DimensionMismatch("Exact OT does not support batched marginals")
    if solver is None:
        solver = NetworkSimplexSolver()

    plan, status = solver.optimize(C, mu, nu)
    converged = status == 'optimal'
    if not converged:
        warnings.warn(f"{solver!r} terminated with status '{status}'", ConvergenceWarning)

    log = {
        'converged': converged,
        'status': status,
        'n_iter': None,
        'residual': marginal_residual(plan, mu, nu),
    }
    return plan, log


def emd2(mu, nu, C,
         solver: Optional[LPSolver] = None,
         plan=None,
         mass_tol: float = 1e-6,
         tol: float = 1e-9,
         ) -> Tuple[Any, Dict[str, Any]]:
    """
    Exact optimal transport cost <C, P*>.

    A precomputed plan skips the LP solve.
    """
    if plan is None:
        plan, log = emd(mu, nu, C, solver=solver, mass_tol=mass_tol)
    else:
        mu, nu, C, _ = validate_problem(mu, nu, C, balanced=True, mass_tol=mass_tol)
        check_plan(plan, C)
        log = precomputed_log(plan, mu, nu, tol=tol)
    return transport_cost(as_array(C), plan), log
