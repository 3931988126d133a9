#!/usr/bin/env python3
"""
Command-line script for solving a regularized transport problem.

Example usage:
    python solve_pair.py \\
        --config configs/default.yaml \\
        --mu mu.npy \\
        --nu nu.npy \\
        --cost C.npy \\
        --method epsilon_scaling \\
        --eps 0.01 \\
        --output-plan plan.npy
"""

import argparse
from pathlib import Path
import sys

import numpy as np
import scipy.sparse as sp

from regot.core import OTConfig
from regot.optimal_transport import (
    sinkhorn,
    sinkhorn_stabilized,
    sinkhorn_epsilon_scaling,
    sinkhorn_unbalanced,
    quadreg,
    analyze_coupling,
)
from regot.optimal_transport.kernel import transport_cost
from regot.optimal_transport.quadratic import quadratic_cost

METHODS = ['sinkhorn', 'stabilized', 'epsilon_scaling', 'unbalanced', 'quadreg']


def run_method(method, mu, nu, C, eps, config, lambda1, lambda2, max_iter, tol):
    """Dispatch to the solver named `method` with its config section."""
    overrides = {'max_iter': max_iter, 'tol': tol}
    if method == 'sinkhorn':
        return sinkhorn(mu, nu, C, eps, config=config.sinkhorn, **overrides)
    if method == 'stabilized':
        return sinkhorn_stabilized(mu, nu, C, eps, config=config.stabilized, **overrides)
    if method == 'epsilon_scaling':
        return sinkhorn_epsilon_scaling(mu, nu, C, eps, config=config.epsilon_scaling, **overrides)
    if method == 'unbalanced':
        return sinkhorn_unbalanced(mu, nu, C, lambda1, lambda2, eps,
                                   config=config.sinkhorn, **overrides)
    if method == 'quadreg':
        return quadreg(mu, nu, C, eps, config=config.quadratic, **overrides)
    raise ValueError(f"Unknown method: {method}")


def main():
    parser = argparse.ArgumentParser(
        description='regot: Solve a regularized optimal transport problem',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument('--mu', required=True, help='Path to source marginal (.npy)')
    parser.add_argument('--nu', required=True, help='Path to target marginal (.npy)')
    parser.add_argument('--cost', required=True, help='Path to cost matrix (.npy)')
    parser.add_argument('--eps', type=float, required=True,
                        help='Regularization strength')

    # Output arguments
    parser.add_argument('--output-plan', help='Path to save the plan (.npy or .npz for quadreg)')

    # Configuration
    parser.add_argument('--config', default='configs/default.yaml',
                        help='Path to YAML configuration file')
    parser.add_argument('--method', choices=METHODS, default='sinkhorn',
                        help='Solver')

    # Override options
    parser.add_argument('--lambda1', type=float, default=float('inf'),
                        help='Row KL penalty (unbalanced only)')
    parser.add_argument('--lambda2', type=float, default=float('inf'),
                        help='Column KL penalty (unbalanced only)')
    parser.add_argument('--max-iter', type=int, help='Iteration cap')
    parser.add_argument('--tol', type=float, help='Convergence tolerance')
    parser.add_argument('--verbose', action='store_true',
                        help='Print the residual at every check')

    args = parser.parse_args()

    # Load configuration
    if Path(args.config).exists():
        config = OTConfig.from_yaml(args.config)
    else:
        print(f"Warning: Config file {args.config} not found, using defaults")
        config = OTConfig()

    if args.verbose:
        for section in (config.sinkhorn, config.stabilized, config.epsilon_scaling,
                        config.quadratic):
            section.verbose = True

    print(f"Loading marginals: {args.mu}, {args.nu}")
    mu = np.load(args.mu)
    nu = np.load(args.nu)
    print(f"Loading cost matrix: {args.cost}")
    C = np.load(args.cost)
    print(f"Problem size: {C.shape[0]} x {C.shape[1]}, eps = {args.eps}")

    print(f"\nSolving with '{args.method}'...")
    plan, log = run_method(args.method, mu, nu, C, args.eps, config,
                           args.lambda1, args.lambda2, args.max_iter, args.tol)

    if args.method == 'quadreg':
        cost = quadratic_cost(C, plan)
    else:
        cost = float(transport_cost(C, plan))

    # Print statistics
    print("\n" + "="*60)
    print("Solver Statistics:")
    print("="*60)
    print(f"Converged: {log['converged']}")
    print(f"Iterations: {log['n_iter']}")
    print(f"Residual: {log['residual']:.3e}")
    print(f"Transport cost <C, P>: {cost:.6f}")
    print(f"\nPlan statistics:")
    stats = analyze_coupling(plan)
    print(f"  - Total mass: {stats['total_mass']:.6f}")
    print(f"  - Max entry: {stats['max_coupling']:.3e}")
    print(f"  - Entropy: {stats['entropy']:.4f}")
    print(f"  - Sparsity: {stats['sparsity']:.2%}")

    if args.output_plan:
        print(f"\nSaving plan to: {args.output_plan}")
        if sp.issparse(plan):
            sp.save_npz(args.output_plan, plan)
        else:
            np.save(args.output_plan, plan)

    return 0 if log['converged'] else 1


if __name__ == '__main__':
    sys.exit(main())
