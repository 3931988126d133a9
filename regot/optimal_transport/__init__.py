"""Optimal transport solvers."""

from regot.optimal_transport.sinkhorn import sinkhorn, sinkhorn2
from regot.optimal_transport.stabilized import sinkhorn_stabilized, sinkhorn_epsilon_scaling
from regot.optimal_transport.unbalanced import sinkhorn_unbalanced, sinkhorn_unbalanced2
from regot.optimal_transport.barycenter import sinkhorn_barycenter
from regot.optimal_transport.divergence import sinkhorn_divergence
from regot.optimal_transport.quadratic import quadreg, quadreg2
from regot.optimal_transport.exact import emd, emd2, LPSolver, NetworkSimplexSolver
from regot.optimal_transport.costs import cost_matrix, normalize_cost_matrix
from regot.optimal_transport.coupling import analyze_coupling, marginal_residual

__all__ = [
    'sinkhorn',
    'sinkhorn2',
    'sinkhorn_stabilized',
    'sinkhorn_epsilon_scaling',
    'sinkhorn_unbalanced',
    'sinkhorn_unbalanced2',
    'sinkhorn_barycenter',
    'sinkhorn_divergence',
    'quadreg',
    'quadreg2',
    'emd',
    'emd2',
    'LPSolver',
    'NetworkSimplexSolver',
    'cost_matrix',
    'normalize_cost_matrix',
    'analyze_coupling',
    'marginal_residual',
]
