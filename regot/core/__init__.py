"""Configuration, validation and convergence policy."""

from regot.core.config import (
    SinkhornConfig,
    StabilizedConfig,
    EpsilonScalingConfig,
    BarycenterConfig,
    QuadraticConfig,
    OTConfig,
    create_default_config,
)
from regot.core.convergence import ConvergenceState, ConvergenceWarning, SolverStrategy, solve
from regot.core.validation import DimensionMismatch, MassImbalanceError, validate_problem

__all__ = [
    'SinkhornConfig',
    'StabilizedConfig',
    'EpsilonScalingConfig',
    'BarycenterConfig',
    'QuadraticConfig',
    'OTConfig',
    'create_default_config',
    'ConvergenceState',
    'ConvergenceWarning',
    'SolverStrategy',
    'solve',
    'DimensionMismatch',
    'MassImbalanceError',
    'validate_problem',
]
