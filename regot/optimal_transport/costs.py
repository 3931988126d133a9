"""
Cost matrix construction and normalization.

Ground costs between point clouds, built with scipy's pairwise distances.
"""

import numpy as np
from scipy.spatial.distance import cdist
from typing import Optional
import warnings


def cost_matrix(x: np.ndarray,
                y: Optional[np.ndarray] = None,
                metric: str = 'sqeuclidean',
                ) -> np.ndarray:
    """
    Pairwise cost matrix between two point clouds.

    Args:
        x: (M,) or (M, D) source support points
        y: (N,) or (N, D) target support points (x if None)
        metric: Any scipy `cdist` metric ('sqeuclidean', 'euclidean', 'cityblock', ...)

    Returns:
        C: (M, N) cost matrix with the dtype of x
    """
    x = np.asarray(x)
    y = x if y is None else np.asarray(y)
    if x.ndim == 1:
        x = x[:, None]
    if y.ndim == 1:
        y = y[:, None]
    if x.shape[1] != y.shape[1]:
        raise ValueError(f"Point dimensions differ: {x.shape[1]} vs {y.shape[1]}")

    dtype = np.result_type(x.dtype, y.dtype, np.float32)
    return cdist(x, y, metric=metric).astype(dtype, copy=False)


def normalize_cost_matrix(C: np.ndarray, method: str = 'max') -> np.ndarray:
    """
    Rescale a cost matrix so that eps has a scale-free meaning.

    Args:
        C: (M, N) non-negative cost matrix
        method: 'max', 'minmax', or 'median'

    Returns:
        Normalized cost matrix
    """
    if method == 'max':
        max_val = C.max()
        if max_val < 1e-8:
            warnings.warn("Cost matrix has near-zero max value")
            return C
        return C / max_val

    elif method == 'minmax':
        cmin = C.min()
        cmax = C.max()
        if cmax - cmin < 1e-8:
            warnings.warn("Cost matrix has near-zero range")
            return C - cmin
        return (C - cmin) / (cmax - cmin)

    elif method == 'median':
        median = np.median(C[C > 0]) if np.any(C > 0) else 0.0
        if median < 1e-8:
            warnings.warn("Cost matrix has near-zero median")
            return C
        return C / median

    else:
        raise ValueError(f"Unknown normalization method: {method}")
