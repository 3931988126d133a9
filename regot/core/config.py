"""
Configuration system for regot.

YAML-loadable dataclasses for every solver. Solvers receive their config by
value: keyword overrides produce a modified copy, the caller's instance is
never touched.
"""

from dataclasses import dataclass, field, asdict, replace, fields
from typing import Optional, Dict, Any
import yaml
from pathlib import Path


@dataclass
class SinkhornConfig:
    """Configuration shared by every iterative solver."""
    max_iter: int = 1000  # Iteration cap
    tol: float = 1e-9  # Residual tolerance (marginal violation)
    check_convergence: int = 1  # Evaluate the residual every k iterations
    mass_tol: float = 1e-6  # Allowed |sum(mu) - sum(nu)| in balanced mode
    verbose: bool = False


@dataclass
class StabilizedConfig(SinkhornConfig):
    """Configuration for log-domain stabilized Sinkhorn."""
    absorb_threshold: float = 1e3  # Absorb scalings once they exceed this


@dataclass
class EpsilonScalingConfig(StabilizedConfig):
    """Configuration for the epsilon-scaling controller."""
    scaling_factor: float = 0.5  # Ratio between consecutive eps values
    scaling_steps: int = 5  # Number of stages when only the final eps is given
    stage_tol: float = 1e-5  # Tolerance of every stage but the last


@dataclass
class BarycenterConfig(SinkhornConfig):
    """Configuration for Sinkhorn barycenters."""
    debiased: bool = True  # Identical inputs are an exact fixed point


@dataclass
class QuadraticConfig(SinkhornConfig):
    """Configuration for the quadratically regularized (semismooth Newton) solver."""
    max_iter: int = 100
    delta: float = 1e-5  # Ridge added to the generalized Hessian
    armijo_theta: float = 0.1  # Sufficient decrease constant
    armijo_beta: float = 0.5  # Backtracking factor
    max_line_search: int = 50
    cg_tol: float = 1e-12  # Relative tolerance of the inner CG solve


@dataclass
class OTConfig:
    """Bundle of solver configurations, one per solver family."""
    sinkhorn: SinkhornConfig = field(default_factory=SinkhornConfig)
    stabilized: StabilizedConfig = field(default_factory=StabilizedConfig)
    epsilon_scaling: EpsilonScalingConfig = field(default_factory=EpsilonScalingConfig)
    barycenter: BarycenterConfig = field(default_factory=BarycenterConfig)
    quadratic: QuadraticConfig = field(default_factory=QuadraticConfig)

    @classmethod
    def from_yaml(cls, path: str) -> 'OTConfig':
        """
        Load configuration from YAML file.

        Missing sections fall back to their defaults.

        Args:
            path: Path to YAML config file

        Returns:
            OTConfig instance
        """
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OTConfig':
        """Build from a nested dictionary (as produced by `to_dict`)."""
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        return cls(
            sinkhorn=SinkhornConfig(**data.get('sinkhorn', {})),
            stabilized=StabilizedConfig(**data.get('stabilized', {})),
            epsilon_scaling=EpsilonScalingConfig(**data.get('epsilon_scaling', {})),
            barycenter=BarycenterConfig(**data.get('barycenter', {})),
            quadratic=QuadraticConfig(**data.get('quadratic', {})),
        )

    def to_yaml(self, path: str) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Output path
        """
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'sinkhorn': asdict(self.sinkhorn),
            'stabilized': asdict(self.stabilized),
            'epsilon_scaling': asdict(self.epsilon_scaling),
            'barycenter': asdict(self.barycenter),
            'quadratic': asdict(self.quadratic),
        }


def resolve_config(config: Optional[SinkhornConfig],
                   default_cls: type,
                   **overrides) -> SinkhornConfig:
    """
    Return a private copy of `config` with keyword overrides applied.

    Overrides set to None are ignored so that solver signatures can expose
    optional keywords. Unknown keys raise TypeError.
    """
    if config is None:
        config = default_cls()
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return replace(config, **overrides)


def create_default_config() -> OTConfig:
    """Create default configuration."""
    return OTConfig()
