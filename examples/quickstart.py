"""
regot Quickstart Example

This script demonstrates basic usage of regot on two 1-D histograms.
"""

import numpy as np

from regot import (
    sinkhorn,
    sinkhorn2,
    sinkhorn_epsilon_scaling,
    sinkhorn_unbalanced,
    sinkhorn_barycenter,
    quadreg,
    emd2,
    cost_matrix,
)
from regot.optimal_transport import analyze_coupling


def gaussian_histogram(x, mean, std):
    h = np.exp(-0.5 * ((x - mean) / std) ** 2)
    return h / h.sum()


def main():
    print("="*60)
    print("regot Quickstart Example")
    print("="*60)

    # 1. Build the problem
    print("\n[1] Building histograms...")
    x = np.linspace(0, 1, 100)
    mu = gaussian_histogram(x, 0.3, 0.05)
    nu = gaussian_histogram(x, 0.7, 0.1)
    C = cost_matrix(x)
    print(f"    Support size: {len(x)}, cost range: [{C.min():.2f}, {C.max():.2f}]")

    # 2. Entropic transport
    print("\n[2] Sinkhorn...")
    plan, log = sinkhorn(mu, nu, C, eps=0.01)
    cost, _ = sinkhorn2(mu, nu, C, eps=0.01, plan=plan)
    exact, _ = emd2(mu, nu, C)
    print(f"    Converged: {log['converged']} in {log['n_iter']} iterations")
    print(f"    Entropic cost: {float(cost):.6f} (exact: {float(exact):.6f})")

    # 3. Small eps through epsilon scaling
    print("\n[3] Epsilon scaling down to eps = 1e-4...")
    plan_small, log = sinkhorn_epsilon_scaling(mu, nu, C, eps=1e-4)
    print(f"    Schedule: {['%.1e' % e for e in log['eps_schedule']]}")
    print(f"    Stage iterations: {log['stage_iters']}")

    # 4. Unbalanced transport
    print("\n[4] Unbalanced Sinkhorn (nu has twice the mass)...")
    plan_ub, log = sinkhorn_unbalanced(mu, 2 * nu, C, lambda1=1.0, lambda2=1.0, eps=0.01)
    print(f"    Transported mass: {plan_ub.sum():.4f}")

    # 5. Barycenter
    print("\n[5] Barycenter of the two histograms...")
    bary, log = sinkhorn_barycenter(np.stack([mu, nu], axis=1), C, eps=0.01)
    print(f"    Barycenter mean: {float(x @ bary):.4f}")

    # 6. Quadratic regularization
    print("\n[6] Quadratically regularized transport...")
    plan_q, log = quadreg(mu, nu, C, eps=0.1)
    stats = analyze_coupling(plan_q)
    print(f"    Newton iterations: {log['n_iter']}")
    print(f"    Plan sparsity: {stats['sparsity']:.2%}")

    print("\n" + "="*60)
    print("Quickstart complete!")
    print("="*60)


if __name__ == '__main__':
    main()
