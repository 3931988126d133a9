"""
Convergence policy shared by all iterative solvers.

A solver loop records a scalar residual after an iteration; the loop stops
once the residual drops below the tolerance or the iteration cap is reached.
Reaching the cap is never an error: it is reported in the result log and
through a ConvergenceWarning.
"""

import math
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any


class ConvergenceWarning(UserWarning):
    """Solver stopped before meeting its tolerance."""


@dataclass
class ConvergenceState:
    """Iteration counter, last residual and converged flag of one solve."""
    tol: float
    max_iter: int
    n_iter: int = 0
    residual: float = math.inf
    converged: bool = False
    diverged: bool = False

    def record(self, n_iter: int, residual: float) -> bool:
        """
        Store the residual of iteration `n_iter`.

        Returns:
            True when the loop should stop
        """
        self.n_iter = n_iter
        self.residual = float(residual)
        if not math.isfinite(self.residual):
            self.diverged = True
            return True
        if self.residual < self.tol:
            self.converged = True
            return True
        return False

    def should_check(self, n_iter: int, every: int) -> bool:
        return n_iter % every == 0 or n_iter >= self.max_iter

    def to_log(self) -> Dict[str, Any]:
        return {
            'converged': self.converged,
            'n_iter': self.n_iter,
            'residual': self.residual,
        }

    def report(self, solver: str) -> None:
        """Warn the caller about an unconverged result."""
        if self.diverged:
            warnings.warn(
                f"{solver}: residual became non-finite at iteration {self.n_iter}; "
                f"the kernel under/overflowed. Use a stabilized solver for small eps.",
                ConvergenceWarning,
                stacklevel=4,
            )
        elif not self.converged:
            warnings.warn(
                f"{solver} did not converge in {self.max_iter} iterations "
                f"(residual {self.residual:.3e}, tol {self.tol:.1e})",
                ConvergenceWarning,
                stacklevel=4,
            )


def print_header() -> None:
    print('{:5s}|{:12s}'.format('It.', 'Err') + '\n' + '-' * 19)


def print_iteration(n_iter: int, residual: float) -> None:
    print('{:5d}|{:8e}|'.format(n_iter, residual))


class SolverStrategy(ABC):
    """
    One fixed-point scheme driven by `solve`.

    Subclasses keep their iterates as attributes and implement a single
    update (`step`), the scalar residual of the current state, and the
    extraction of the plan once the loop has ended.
    """

    name = 'Solver'

    @abstractmethod
    def step(self) -> None:
        pass

    @abstractmethod
    def residual(self) -> float:
        pass

    def finalize(self) -> None:
        """Hook run once after the loop, before `plan` is read."""

    @abstractmethod
    def plan(self):
        pass

    def potentials(self) -> Dict[str, Any]:
        return {}


def solve(strategy: SolverStrategy, config) -> ConvergenceState:
    """
    Run `strategy` until its residual meets `config.tol` or `config.max_iter`.

    Args:
        strategy: Fixed-point scheme, mutated in place
        config: Any solver config (tol, max_iter, check_convergence, verbose)

    Returns:
        Final convergence state (never raises on non-convergence)
    """
    state = ConvergenceState(tol=config.tol, max_iter=config.max_iter)
    if config.verbose:
        print_header()

    for n_iter in range(1, config.max_iter + 1):
        strategy.step()
        if state.should_check(n_iter, config.check_convergence):
            residual = strategy.residual()
            if config.verbose:
                print_iteration(n_iter, residual)
            if state.record(n_iter, residual):
                break

    strategy.finalize()
    state.report(strategy.name)
    return state
