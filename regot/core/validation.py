"""
Input validation for optimal transport problems.

All checks are side-effect free and run before any iteration.
"""

import numpy as np
from ot.backend import get_backend
from typing import Tuple, Optional


class DimensionMismatch(ValueError):
    """Cost matrix or marginal shapes disagree."""


class MassImbalanceError(ValueError):
    """Balanced problem with marginals of different total mass."""


def as_array(x, dtype=None):
    """Convert lists/tuples to numpy arrays, leave backend arrays untouched."""
    if isinstance(x, (list, tuple, float, int)):
        return np.asarray(x, dtype=dtype if dtype is not None else np.float64)
    return x


def check_eps(eps: float, name: str = 'eps') -> None:
    """Regularization strengths must be strictly positive."""
    if not eps > 0:
        raise ValueError(f"{name} must be positive, got {eps}")


def check_nonnegative(x, name: str = 'marginal') -> None:
    """
    Reject marginals with negative weights.

    Args:
        x: Weight vector or matrix of weight columns
        name: Name used in the error message
    """
    nx = get_backend(x)
    if bool(nx.any(x < 0)):
        raise ValueError(f"{name} has negative entries")


def check_size(mu, nu, C) -> Tuple[int, ...]:
    """
    Check that `C` has shape (len(mu), len(nu)).

    Either marginal may be a (n, d) matrix holding d problems column-wise.
    If both are matrices they must have the same number of columns, or one
    of them a single column that is shared by every problem.

    Args:
        mu: (M,) or (M, d) source marginals
        nu: (N,) or (N, d) target marginals
        C: (M, N) cost matrix

    Returns:
        Batch shape: () for a single problem, (d,) for d problems
    """
    if mu.ndim not in (1, 2) or nu.ndim not in (1, 2):
        raise DimensionMismatch(
            f"Marginals must be vectors or matrices, got ndim {mu.ndim} and {nu.ndim}"
        )
    if C.ndim != 2:
        raise DimensionMismatch(f"Cost matrix must be 2-D, got shape {tuple(C.shape)}")
    if tuple(C.shape) != (mu.shape[0], nu.shape[0]):
        raise DimensionMismatch(
            f"Cost matrix shape {tuple(C.shape)} does not match marginals "
            f"({mu.shape[0]}, {nu.shape[0]})"
        )

    batch_mu = tuple(mu.shape[1:])
    batch_nu = tuple(nu.shape[1:])
    if batch_mu and batch_nu and batch_mu != batch_nu and (1,) not in (batch_mu, batch_nu):
        raise DimensionMismatch(
            f"Batched marginals disagree: {batch_mu[0]} vs {batch_nu[0]} columns"
        )
    return max(batch_mu, batch_nu)


def check_balanced(mu, nu, tol: float = 1e-6) -> None:
    """
    Check that marginals carry the same total mass (per column when batched).

    Raises:
        MassImbalanceError: if |sum(mu) - sum(nu)| >= tol for any column
    """
    nx = get_backend(mu, nu)
    mass_mu = nx.sum(mu, axis=0)
    mass_nu = nx.sum(nu, axis=0)
    gap = nx.max(nx.abs(mass_mu - mass_nu))
    if not float(gap) < tol:
        raise MassImbalanceError(
            f"Marginals are unbalanced: total masses differ by {float(gap):.3e} "
            f"(tolerance {tol:.1e})"
        )


def check_weights(weights, k: int, tol: float = 1e-6):
    """
    Validate barycenter weights.

    Args:
        weights: (k,) convex combination coefficients or None for uniform
        k: Number of marginals

    Returns:
        Weight vector
    """
    if weights is None:
        return np.full(k, 1.0 / k)
    weights = as_array(weights)
    if weights.ndim != 1 or weights.shape[0] != k:
        raise DimensionMismatch(f"Expected {k} weights, got shape {tuple(weights.shape)}")
    check_nonnegative(weights, 'weights')
    total = float(get_backend(weights).sum(weights))
    if abs(total - 1.0) > tol:
        raise ValueError(f"Weights must sum to 1, got {total}")
    return weights


def check_plan(plan, C) -> None:
    """A supplied transport plan must have the cost matrix's shape."""
    if tuple(plan.shape[:2]) != tuple(C.shape):
        raise DimensionMismatch(
            f"Plan shape {tuple(plan.shape)} does not match cost matrix {tuple(C.shape)}"
        )


def validate_problem(mu, nu, C,
                     balanced: bool = True,
                     mass_tol: Optional[float] = 1e-6,
                     ):
    """
    Run the standard checks for a two-marginal problem.

    Returns:
        (mu, nu, C, batch_shape) with list inputs converted to arrays
    """
    mu, nu, C = as_array(mu), as_array(nu), as_array(C)
    batch = check_size(mu, nu, C)
    check_nonnegative(mu, 'mu')
    check_nonnegative(nu, 'nu')
    if balanced:
        check_balanced(mu, nu, mass_tol)
    return mu, nu, C, batch
