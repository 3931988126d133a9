"""
regot: Regularized Optimal Transport

Entropic (Sinkhorn) and quadratically regularized optimal transport between
discrete measures: plain, log-domain stabilized and epsilon-scaled Sinkhorn,
unbalanced transport, Sinkhorn barycenters and sparse quadratic transport.
"""

__version__ = "0.1.0"

from regot.core.config import OTConfig
from regot.core.convergence import ConvergenceWarning
from regot.core.validation import DimensionMismatch, MassImbalanceError
from regot.optimal_transport import (
    sinkhorn,
    sinkhorn2,
    sinkhorn_stabilized,
    sinkhorn_epsilon_scaling,
    sinkhorn_unbalanced,
    sinkhorn_unbalanced2,
    sinkhorn_barycenter,
    sinkhorn_divergence,
    quadreg,
    quadreg2,
    emd,
    emd2,
    cost_matrix,
)

__all__ = [
    "OTConfig",
    "ConvergenceWarning",
    "DimensionMismatch",
    "MassImbalanceError",
    "sinkhorn",
    "sinkhorn2",
    "sinkhorn_stabilized",
    "sinkhorn_epsilon_scaling",
    "sinkhorn_unbalanced",
    "sinkhorn_unbalanced2",
    "sinkhorn_barycenter",
    "sinkhorn_divergence",
    "quadreg",
    "quadreg2",
    "emd",
    "emd2",
    "cost_matrix",
    "__version__",
]
