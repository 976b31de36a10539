"""
Experiment data models for the analysis engine.

Dataclass schemas for experiment configuration records (experiments, variants,
metrics), the immutable exposure and metric-value facts, and the derived
analysis results. Derived results are rebuilt on every analysis call.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .exceptions import InvalidTransitionError

Timestamp = Union[str, datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[Timestamp]) -> Optional[datetime]:
    """Normalise an ISO-8601 string or datetime to an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class ExperimentStatus(str, Enum):
    """Experiment lifecycle status."""
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class MetricType(str, Enum):
    """Metric type. Used for display and to pick conversion metrics for Bayesian analysis."""
    CONVERSION = "conversion"
    REVENUE = "revenue"
    ENGAGEMENT = "engagement"
    GUARDRAIL = "guardrail"


class RandomizationUnit(str, Enum):
    USER_ID = "user_id"
    SESSION_ID = "session_id"
    DEVICE_ID = "device_id"


class Recommendation(str, Enum):
    """Sequential test recommendation."""
    CONTINUE = "continue"
    STOP_WINNER = "stop_winner"
    STOP_NO_EFFECT = "stop_no_effect"


class GuardrailAction(str, Enum):
    CONTINUE = "continue"
    PAUSE = "pause"
    STOP = "stop"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ThresholdType(str, Enum):
    UPPER = "upper"  # violated when the variant mean rises above the threshold
    LOWER = "lower"


_ALLOWED_TRANSITIONS = {
    ExperimentStatus.DRAFT: {ExperimentStatus.RUNNING, ExperimentStatus.ARCHIVED},
    ExperimentStatus.RUNNING: {
        ExperimentStatus.PAUSED,
        ExperimentStatus.COMPLETED,
        ExperimentStatus.ARCHIVED,
    },
    ExperimentStatus.PAUSED: {
        ExperimentStatus.RUNNING,
        ExperimentStatus.COMPLETED,
        ExperimentStatus.ARCHIVED,
    },
    ExperimentStatus.COMPLETED: {ExperimentStatus.ARCHIVED},
    ExperimentStatus.ARCHIVED: set(),
}


@dataclass(frozen=True)
class Experiment:
    """An A/B experiment. Status transitions are the only mutation."""
    id: str
    name: str
    status: ExperimentStatus = ExperimentStatus.DRAFT
    target_sample_size: int = 1000
    traffic_allocation: float = 100.0  # percentage of units entering the experiment
    randomization_unit: RandomizationUnit = RandomizationUnit.USER_ID
    description: str = ""
    hypothesis: str = ""
    owner: str = ""
    start_date: Optional[Timestamp] = None
    end_date: Optional[Timestamp] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def can_transition(self, new_status: ExperimentStatus) -> bool:
        return ExperimentStatus(new_status) in _ALLOWED_TRANSITIONS[ExperimentStatus(self.status)]

    def transition(self, new_status: ExperimentStatus) -> "Experiment":
        """
        Return a copy of the experiment in ``new_status``.

        Raises:
            InvalidTransitionError: if the transition is not allowed
                (archived is terminal).
        """
        new_status = ExperimentStatus(new_status)
        if not self.can_transition(new_status):
            raise InvalidTransitionError(
                f"Experiment {self.id}: cannot move from "
                f"{ExperimentStatus(self.status).value} to {new_status.value}"
            )
        now = utc_now()
        changes: Dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == ExperimentStatus.RUNNING and self.start_date is None:
            changes["start_date"] = now
        if new_status == ExperimentStatus.COMPLETED and self.end_date is None:
            changes["end_date"] = now
        return replace(self, **changes)


@dataclass(frozen=True)
class Variant:
    """Experiment arm. Traffic splits are normalised by their sum at assignment."""
    id: str
    experiment_id: str
    name: str
    traffic_split: float
    is_control: bool = False
    description: str = ""


@dataclass(frozen=True)
class Metric:
    """Metric tracked by an experiment."""
    id: str
    experiment_id: str
    name: str
    metric_type: MetricType = MetricType.CONVERSION
    is_primary: bool = False
    description: str = ""
    minimum_detectable_effect: Optional[float] = None  # relative, percent


@dataclass(frozen=True)
class Exposure:
    """Fact: a unit was shown a variant."""
    id: str
    experiment_id: str
    variant_id: str
    user_id: str
    timestamp: Timestamp = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class MetricValue:
    """Fact: one observed metric value for a unit."""
    id: str
    experiment_id: str
    variant_id: str
    metric_id: str
    user_id: str
    value: float
    timestamp: Timestamp = field(default_factory=utc_now)


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return _jsonable(asdict(self))


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    return obj


@dataclass
class ExperimentResult(_Serializable):
    """Frequentist result for one (metric, variant) pair."""
    experiment_id: str
    variant_id: str
    variant_name: str
    metric_id: str
    metric_name: str
    sample_size: int
    mean: float
    variance: float
    standard_error: float
    confidence_interval: Tuple[float, float]
    p_value: float
    is_significant: bool
    relative_uplift: float = 0.0
    absolute_uplift: float = 0.0
    is_control: bool = False
    t_statistic: Optional[float] = None
    degrees_of_freedom: Optional[float] = None


@dataclass
class BayesianResult(_Serializable):
    variant_id: str
    variant_name: str
    posterior_alpha: float
    posterior_beta: float
    posterior_mean: float
    posterior_std: float
    credible_interval: Tuple[float, float]
    probability_to_be_best: float
    expected_loss: float


@dataclass
class BayesianDecision(_Serializable):
    should_stop: bool
    reason: str
    recommended_variant: Optional[str] = None


@dataclass
class SequentialTestResult(_Serializable):
    should_stop: bool
    reason: str
    confidence: float
    recommendation: Recommendation
    information_fraction: float = 0.0
    adjusted_alpha: float = 0.0


@dataclass
class StoppingEstimate(_Serializable):
    """Rough projection of the sample still needed for the observed effect."""
    can_stop_early: bool
    estimated_sample_size_needed: int
    days_remaining: int


@dataclass
class SRMResult(_Serializable):
    chi_square: float
    p_value: float
    has_srm: bool
    degrees_of_freedom: int = 0
    observed: Dict[str, float] = field(default_factory=dict)
    expected: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class GuardrailConfig:
    """Threshold configuration for a non-primary metric."""
    metric_id: str
    threshold: float
    threshold_type: ThresholdType = ThresholdType.UPPER
    severity: Severity = Severity.WARNING


@dataclass
class GuardrailCheck(_Serializable):
    metric_id: str
    metric_name: str
    variant_id: str
    variant_name: str
    current_value: float
    threshold: float
    threshold_type: ThresholdType
    is_violated: bool
    severity: Severity


@dataclass
class ActionRecommendation(_Serializable):
    action: GuardrailAction
    reason: str


@dataclass
class HealthReport(_Serializable):
    score: int
    issues: List[str]
    sample_size_progress: float
    srm: Optional[SRMResult] = None


@dataclass
class AnomalyAlert(_Serializable):
    id: str
    experiment_id: str
    alert_type: str  # sample_ratio_mismatch, low_traffic, metric_anomaly, guardrail_violation
    severity: Severity
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PowerAnalysis(_Serializable):
    baseline_rate: float
    minimum_detectable_effect: float
    alpha: float
    power: float
    required_sample_size_per_variant: int
    total_sample_size: int
    estimated_duration_days: int


@dataclass
class ExperimentSummary(_Serializable):
    experiment_id: str
    total_users: int
    primary_metric_result: Optional[ExperimentResult]
    has_winner: bool
    winning_variant: Optional[str]
    health_score: int
    health_issues: List[str]
    sample_size_progress: float


@dataclass
class ExperimentAnalysis(_Serializable):
    """Complete experiment analysis result."""
    experiment_id: str
    analysis_timestamp: datetime = field(default_factory=utc_now)
    configuration_warnings: List[str] = field(default_factory=list)
    results: Dict[str, List[ExperimentResult]] = field(default_factory=dict)
    summary: Optional[ExperimentSummary] = None
    sequential: Optional[SequentialTestResult] = None
    srm: Optional[SRMResult] = None
    health: Optional[HealthReport] = None
    guardrail_checks: List[GuardrailCheck] = field(default_factory=list)
    guardrail_action: Optional[ActionRecommendation] = None
    anomalies: List[AnomalyAlert] = field(default_factory=list)
    bayesian: Dict[str, List[BayesianResult]] = field(default_factory=dict)
    bayesian_decisions: Dict[str, BayesianDecision] = field(default_factory=dict)
