"""
Engine configuration.

Defaults for significance level, power, Monte Carlo settings and the fixed
SRM / minimum-user thresholds. Can be built from a dict or a YAML file.
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .exceptions import ExperimentConfigError

logger = logging.getLogger(__name__)

SRM_THRESHOLD = 0.001
MIN_USERS_PER_VARIANT = 100
SAMPLERS = ("normal", "beta")


@dataclass(frozen=True)
class EngineConfig:
    """Analysis settings shared by all engine components."""
    alpha: float = 0.05
    power: float = 0.8
    monte_carlo_trials: int = 10000
    monte_carlo_batch_size: int = 10000
    monte_carlo_workers: int = 1
    sampler: str = "normal"  # normal approximation or true Beta draws
    seed: Optional[int] = None
    exact_distributions: bool = False  # Student-t instead of normal for p-values
    srm_threshold: float = SRM_THRESHOLD
    min_users_per_variant: int = MIN_USERS_PER_VARIANT
    bayesian_min_probability: float = 0.95
    bayesian_max_expected_loss: float = 0.01

    def __post_init__(self) -> None:
        if not 0 < self.alpha < 1:
            raise ExperimentConfigError(f"alpha must be in (0, 1), got {self.alpha}")
        if not 0 < self.power < 1:
            raise ExperimentConfigError(f"power must be in (0, 1), got {self.power}")
        if self.monte_carlo_trials <= 0:
            raise ExperimentConfigError("monte_carlo_trials must be positive")
        if self.monte_carlo_batch_size <= 0:
            raise ExperimentConfigError("monte_carlo_batch_size must be positive")
        if self.monte_carlo_workers <= 0:
            raise ExperimentConfigError("monte_carlo_workers must be positive")
        if self.sampler not in SAMPLERS:
            raise ExperimentConfigError(
                f"Unknown sampler '{self.sampler}', expected one of {SAMPLERS}"
            )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        """Build a config from a mapping; unknown keys are ignored with a warning."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown engine config keys: {unknown}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """
    Load engine settings from a YAML file.

    The settings may sit at the top level or under an ``engine:`` key.
    """
    p = Path(path)
    data = yaml.safe_load(p.read_text()) or {}
    if not isinstance(data, dict):
        raise ExperimentConfigError(f"Config file {p} must contain a mapping")
    if isinstance(data.get("engine"), dict):
        data = data["engine"]
    config = EngineConfig.from_dict(data)
    logger.debug(f"Loaded engine config from {p}: {config}")
    return config
