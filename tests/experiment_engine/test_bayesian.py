"""Tests for Bayesian conversion analysis."""
import pytest

from experiment_engine.schema import BayesianResult, MetricValue
from experiment_engine.stats.bayesian import (
    ConversionData,
    analyze,
    beta_posterior,
    conversion_data_from_values,
    credible_interval,
    monte_carlo_best,
    should_stop_experiment,
)


def test_beta_posterior():
    assert beta_posterior(10, 100) == (11.0, 91.0)
    assert beta_posterior(0, 0) == (1.0, 1.0)


def test_credible_interval_clipped():
    low, high = credible_interval(1, 1)
    assert low == 0.0
    assert high == 1.0
    low, high = credible_interval(101, 901)
    assert 0.08 < low < 0.1 < high < 0.12


def test_identical_variants_split_probability(variants):
    data = [
        ConversionData("v_control", 100, 1000),
        ConversionData("v_treatment", 100, 1000),
    ]
    results = analyze(variants, data, n_trials=20000, seed=1)
    for r in results:
        assert r.probability_to_be_best == pytest.approx(0.5, abs=0.03)
    assert sum(r.probability_to_be_best for r in results) == pytest.approx(1.0)


def test_zero_conversion_ties_are_shared(variants):
    """Identical zero-conversion arms clip to 0 together; neither arm takes the ties."""
    data = [
        ConversionData("v_control", 0, 1000),
        ConversionData("v_treatment", 0, 1000),
    ]
    control, treatment = analyze(variants, data, n_trials=100000, seed=11)
    assert control.probability_to_be_best == pytest.approx(0.5, abs=0.005)
    assert treatment.probability_to_be_best == pytest.approx(0.5, abs=0.005)
    assert control.expected_loss == pytest.approx(treatment.expected_loss, rel=0.05)


def test_zero_conversion_ties_three_arms():
    posteriors = [beta_posterior(0, 1000)] * 3
    p_best, _ = monte_carlo_best(posteriors, n_trials=100000, seed=11)
    assert p_best.sum() == pytest.approx(1.0)
    for p in p_best:
        assert p == pytest.approx(1 / 3, abs=0.006)


def test_clear_winner(variants):
    data = [
        ConversionData("v_control", 100, 1000),
        ConversionData("v_treatment", 200, 1000),
    ]
    results = analyze(variants, data, n_trials=10000, seed=3, sampler="beta")
    control, treatment = results
    assert treatment.probability_to_be_best > 0.99
    assert treatment.expected_loss < 0.001
    assert control.expected_loss == pytest.approx(0.1, abs=0.02)

    decision = should_stop_experiment(results)
    assert decision.should_stop
    assert decision.recommended_variant == "treatment"


def test_seed_reproducible_across_workers():
    posteriors = [(101, 901), (111, 891), (96, 906)]
    serial = monte_carlo_best(posteriors, n_trials=10000, seed=42, batch_size=2500, workers=1)
    threaded = monte_carlo_best(posteriors, n_trials=10000, seed=42, batch_size=2500, workers=4)
    assert serial[0].tolist() == threaded[0].tolist()
    assert serial[1].tolist() == threaded[1].tolist()


def test_uneven_batches_cover_all_trials():
    p_best, _ = monte_carlo_best([(5, 5), (5, 5)], n_trials=1001, seed=0, batch_size=250)
    assert p_best.sum() == pytest.approx(1.0)


def test_variant_without_data_keeps_flat_prior(variants):
    results = analyze(variants, [ConversionData("v_treatment", 30, 100)], n_trials=1000, seed=0)
    control = results[0]
    assert control.posterior_alpha == 1.0
    assert control.posterior_beta == 1.0
    assert control.posterior_mean == pytest.approx(0.5)


def test_analyze_no_variants():
    assert analyze([], [ConversionData("x", 1, 2)]) == []


def _result(name, p_best, loss):
    return BayesianResult(
        variant_id=name,
        variant_name=name,
        posterior_alpha=1,
        posterior_beta=1,
        posterior_mean=0.5,
        posterior_std=0.1,
        credible_interval=(0.3, 0.7),
        probability_to_be_best=p_best,
        expected_loss=loss,
    )


def test_decision_rule_messages():
    assert not should_stop_experiment([]).should_stop

    unclear = should_stop_experiment([_result("a", 0.55, 0.02), _result("b", 0.45, 0.03)])
    assert not unclear.should_stop
    assert "No clear winner" in unclear.reason

    close = should_stop_experiment([_result("a", 0.9, 0.005), _result("b", 0.1, 0.05)])
    assert not close.should_stop
    assert "decision threshold" in close.reason

    high_loss = should_stop_experiment([_result("a", 0.97, 0.02), _result("b", 0.03, 0.05)])
    assert not high_loss.should_stop


def test_conversion_data_from_values():
    values = [
        MetricValue(id="1", experiment_id="e", variant_id="c", metric_id="m", user_id="u1", value=0),
        MetricValue(id="2", experiment_id="e", variant_id="c", metric_id="m", user_id="u1", value=1),
        MetricValue(id="3", experiment_id="e", variant_id="c", metric_id="m", user_id="u2", value=0),
        MetricValue(id="4", experiment_id="e", variant_id="t", metric_id="m", user_id="u3", value=1),
        MetricValue(id="5", experiment_id="e", variant_id="t", metric_id="other", user_id="u4", value=1),
    ]
    data = {d.variant_id: d for d in conversion_data_from_values(values, "m")}
    assert data["c"] == ConversionData("c", 1, 2)
    assert data["t"] == ConversionData("t", 1, 1)
    assert conversion_data_from_values(values, "missing") == []
