"""Experiment analysis engine: assignment, statistics and monitoring for A/B tests."""

from .schema import (
    Experiment,
    ExperimentStatus,
    Variant,
    Metric,
    MetricType,
    Exposure,
    MetricValue,
    GuardrailConfig,
    ExperimentResult,
    ExperimentAnalysis,
)
from .config import EngineConfig, load_config
from .exceptions import (
    ExperimentEngineError,
    ExperimentConfigError,
    ExperimentNotFoundError,
    InvalidTransitionError,
)
from .assignment import VariantAssigner, assign_variant, should_include_in_experiment
from .store import InMemoryRecordStore, RecordStore
from .tracking import track_exposure, track_metric_value
from .analyze import analyze_experiment, run_analysis, validate_configuration

__all__ = [
    "Experiment",
    "ExperimentStatus",
    "Variant",
    "Metric",
    "MetricType",
    "Exposure",
    "MetricValue",
    "GuardrailConfig",
    "ExperimentResult",
    "ExperimentAnalysis",
    "EngineConfig",
    "load_config",
    "ExperimentEngineError",
    "ExperimentConfigError",
    "ExperimentNotFoundError",
    "InvalidTransitionError",
    "VariantAssigner",
    "assign_variant",
    "should_include_in_experiment",
    "InMemoryRecordStore",
    "RecordStore",
    "track_exposure",
    "track_metric_value",
    "analyze_experiment",
    "run_analysis",
    "validate_configuration",
]
