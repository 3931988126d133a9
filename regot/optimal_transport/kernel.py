"""
Gibbs kernels, plans and transport costs.

Kernels are always rebuilt from the cost matrix; nothing here mutates its
inputs.
"""

from ot.backend import get_backend


def gibbs_kernel(C, eps: float):
    """
    Elementwise kernel K = exp(-C / eps).

    Args:
        C: (M, N) cost matrix
        eps: Regularization strength

    Returns:
        (M, N) kernel with the dtype of C
    """
    nx = get_backend(C)
    return nx.exp(-C / eps)


def stabilized_kernel(C, alpha, beta, eps: float):
    """Kernel with absorbed log potentials: exp((alpha_i + beta_j - C_ij) / eps)."""
    nx = get_backend(C, alpha, beta)
    return nx.exp((alpha[:, None] + beta[None, :] - C) / eps)


def plan_from_scalings(u, K, v):
    """
    Transport plan diag(u) K diag(v).

    With (M, d) and (N, d) scalings the result is the (M, N, d) stack of plans.
    """
    if u.ndim == 2:
        return u[:, None, :] * K[:, :, None] * v[None, :, :]
    return u[:, None] * K * v[None, :]


def entropy_term(plan):
    """Sum of p log p over the plan's first two axes, with 0 log 0 = 0."""
    nx = get_backend(plan)
    positive = plan > 0
    safe = nx.where(positive, plan, nx.ones(plan.shape, type_as=plan))
    values = plan * nx.log(safe)
    return nx.sum(values, axis=(0, 1)) if plan.ndim == 3 else nx.sum(values)


def transport_cost(C, plan, eps=None):
    """
    Cost <C, plan>, plus eps * sum(p log p) when eps is given.

    Args:
        C: (M, N) cost matrix
        plan: (M, N) plan or (M, N, d) stack of plans
        eps: Regularization strength of the entropy term (None = omit)

    Returns:
        Scalar cost, or (d,) costs for a stack of plans
    """
    nx = get_backend(C, plan)
    if plan.ndim == 3:
        cost = nx.sum(C[:, :, None] * plan, axis=(0, 1))
    else:
        cost = nx.sum(C * plan)
    if eps is not None:
        cost = cost + eps * entropy_term(plan)
    return cost
