"""End-to-end: store -> analyze produces a complete analysis."""
import pytest

from experiment_engine.analyze import analyze_experiment, run_analysis, validate_configuration
from experiment_engine.config import EngineConfig
from experiment_engine.exceptions import ExperimentConfigError, ExperimentNotFoundError
from experiment_engine.schema import (
    GuardrailAction,
    GuardrailConfig,
    Metric,
    Recommendation,
    Severity,
)
from experiment_engine.store import (
    EXPERIMENTS,
    EXPOSURES,
    METRIC_VALUES,
    METRICS,
    VARIANTS,
    InMemoryRecordStore,
)

CONFIG = EngineConfig(monte_carlo_trials=4000, monte_carlo_batch_size=1000, seed=7)


@pytest.fixture
def store(experiment, variants, metrics, make_exposures, make_values):
    """600 users per arm; control converts at 10%, treatment at 20% with slower latency."""
    s = InMemoryRecordStore()
    s.put(EXPERIMENTS, experiment.id, experiment)
    s.put_many(VARIANTS, variants)
    s.put_many(METRICS, metrics)
    s.put_many(EXPOSURES, make_exposures("exp_1", {"v_control": 600, "v_treatment": 600}))
    s.put_many(METRIC_VALUES, make_values("exp_1", "m_conv", "v_control", [1] * 60 + [0] * 540))
    s.put_many(METRIC_VALUES, make_values("exp_1", "m_conv", "v_treatment", [1] * 120 + [0] * 480))
    s.put_many(METRIC_VALUES, make_values("exp_1", "m_latency", "v_control", [100.0] * 600))
    s.put_many(METRIC_VALUES, make_values("exp_1", "m_latency", "v_treatment", [250.0] * 600))
    return s


def test_run_analysis_end_to_end(store):
    guardrails = [GuardrailConfig("m_latency", 200.0, severity=Severity.CRITICAL)]
    analysis = run_analysis("exp_1", store, guardrail_configs=guardrails, config=CONFIG)

    assert analysis.configuration_warnings == []
    assert set(analysis.results) == {"m_conv", "m_latency"}
    control, treatment = analysis.results["m_conv"]
    assert control.is_control
    assert control.mean == pytest.approx(0.10)
    assert treatment.mean == pytest.approx(0.20)
    assert treatment.relative_uplift == pytest.approx(100.0)
    assert treatment.is_significant

    summary = analysis.summary
    assert summary.total_users == 1200
    assert summary.has_winner
    assert summary.winning_variant == "treatment"
    assert summary.health_score == 100
    assert summary.sample_size_progress == 120.0

    assert analysis.sequential.recommendation == Recommendation.STOP_WINNER
    assert analysis.sequential.information_fraction == 1.0
    assert not analysis.srm.has_srm

    assert len(analysis.guardrail_checks) == 1
    assert analysis.guardrail_checks[0].is_violated
    assert analysis.guardrail_action.action == GuardrailAction.STOP

    assert list(analysis.bayesian) == ["m_conv"]
    bayes_treatment = analysis.bayesian["m_conv"][1]
    assert bayes_treatment.probability_to_be_best > 0.99
    assert analysis.bayesian_decisions["m_conv"].should_stop
    assert analysis.anomalies == []


def test_analysis_is_reproducible_with_seed(store):
    first = run_analysis("exp_1", store, config=CONFIG)
    second = run_analysis("exp_1", store, config=CONFIG)
    p1 = [r.probability_to_be_best for r in first.bayesian["m_conv"]]
    p2 = [r.probability_to_be_best for r in second.bayesian["m_conv"]]
    assert p1 == p2


def test_analysis_serialises(store):
    d = run_analysis("exp_1", store, config=CONFIG).to_dict()
    assert d["experiment_id"] == "exp_1"
    assert d["sequential"]["recommendation"] == "stop_winner"
    assert d["summary"]["primary_metric_result"]["variant_name"] == "treatment"
    assert isinstance(d["analysis_timestamp"], str)


def test_run_analysis_missing_experiment():
    with pytest.raises(ExperimentNotFoundError) as exc_info:
        run_analysis("nope", InMemoryRecordStore())
    assert exc_info.value.experiment_id == "nope"
    assert str(exc_info.value) == "Experiment not found: nope"
    with pytest.raises(KeyError):
        run_analysis("nope", InMemoryRecordStore())


def test_no_data_yet(experiment, variants, metrics):
    analysis = analyze_experiment(experiment, variants, metrics, [], [], config=CONFIG)
    assert analysis.results == {}
    assert analysis.summary.primary_metric_result is None
    assert not analysis.summary.has_winner
    assert analysis.sequential is None
    assert analysis.bayesian == {}
    assert "Sample size below 50% of target" in analysis.health.issues


def test_other_experiments_ignored(experiment, variants, metrics, make_exposures, make_values):
    exposures = make_exposures("exp_other", {"v_control": 500})
    values = make_values("exp_other", "m_conv", "v_control", [1] * 500)
    analysis = analyze_experiment(experiment, variants, metrics, exposures, values, config=CONFIG)
    assert analysis.summary.total_users == 0
    assert analysis.results == {}


def test_missing_control_warns(experiment, variants, metrics, make_exposures, make_values):
    treatments = [v for v in variants if not v.is_control]
    analysis = analyze_experiment(
        experiment,
        treatments,
        metrics,
        make_exposures("exp_1", {"v_treatment": 300}),
        make_values("exp_1", "m_conv", "v_treatment", [1, 0] * 150),
        config=CONFIG,
    )
    assert analysis.results == {}
    assert any("No control" in w for w in analysis.configuration_warnings)
    assert "m_conv" in analysis.bayesian


def test_validate_configuration(variants, metrics):
    assert validate_configuration(variants, metrics) == []
    secondary_only = [m for m in metrics if not m.is_primary]
    assert any("primary" in w for w in validate_configuration(variants, secondary_only))

    extra = Metric(id="m_rev", experiment_id="exp_1", name="revenue", is_primary=True)
    with pytest.raises(ExperimentConfigError):
        validate_configuration(variants, metrics + [extra])
