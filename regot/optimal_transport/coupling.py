"""
Transport plan diagnostics.

Works on dense backend arrays and on scipy sparse plans.
"""

import numpy as np
import scipy.sparse as sp
from ot.backend import get_backend


def _dense_margins(plan):
    if sp.issparse(plan):
        rows = np.asarray(plan.sum(axis=1)).ravel()
        cols = np.asarray(plan.sum(axis=0)).ravel()
        return rows, cols
    nx = get_backend(plan)
    return nx.sum(plan, axis=1), nx.sum(plan, axis=0)


def marginal_residual(plan, mu, nu) -> float:
    """
    Worst L1 violation of the marginal constraints.

    Args:
        plan: (M, N) plan, (M, N, d) stack of plans, or scipy sparse (M, N)
        mu: (M,) or (M, d) row marginals
        nu: (N,) or (N, d) column marginals

    Returns:
        max(||P 1 - mu||_1, ||P^T 1 - nu||_1), worst column when batched
    """
    rows, cols = _dense_margins(plan)
    nx = get_backend(rows, cols)
    row_err = nx.max(nx.sum(nx.abs(rows - mu), axis=0))
    col_err = nx.max(nx.sum(nx.abs(cols - nu), axis=0))
    return max(float(row_err), float(col_err))


def compute_coupling_sparsity(plan, threshold: float = 0.0) -> float:
    """
    Fraction of plan entries that are zero (or <= threshold).

    Args:
        plan: Dense or scipy sparse plan
        threshold: Values at or below this count as zero

    Returns:
        Sparsity ratio (0 = dense, 1 = completely sparse)
    """
    total = plan.shape[0] * plan.shape[1]
    if sp.issparse(plan):
        num_nonzero = int((plan.data > threshold).sum())
    else:
        num_nonzero = int((np.asarray(plan) > threshold).sum())
    return 1.0 - num_nonzero / total


def compute_coupling_entropy(plan) -> float:
    """
    Shannon entropy of the normalized plan.

    Higher entropy = more diffuse matching.
    """
    T = plan.toarray() if sp.issparse(plan) else np.asarray(plan)
    T = T / T.sum()
    T = T[T > 0]
    return float(-np.sum(T * np.log(T)))


def analyze_coupling(plan) -> dict:
    """
    Summary statistics of a transport plan.

    Args:
        plan: Dense or scipy sparse (M, N) plan

    Returns:
        Dictionary of statistics
    """
    T = plan.toarray() if sp.issparse(plan) else np.asarray(plan)
    row_mass = T.sum(axis=1)
    col_mass = T.sum(axis=0)

    return {
        'shape': T.shape,
        'dtype': str(T.dtype),
        'total_mass': float(T.sum()),
        'max_coupling': float(T.max()),
        'min_coupling': float(T.min()),
        'entropy': compute_coupling_entropy(T),
        'sparsity': compute_coupling_sparsity(T),
        'row_mass_min': float(row_mass.min()),
        'col_mass_min': float(col_mass.min()),
        'num_zero_rows': int((row_mass == 0).sum()),
        'num_zero_cols': int((col_mass == 0).sum()),
    }
