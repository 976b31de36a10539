"""Tests for sequential testing decisions."""
import math
from dataclasses import replace

import pytest

from experiment_engine.schema import ExperimentResult, Recommendation
from experiment_engine.stats.sequential import (
    alpha_spending,
    evaluate,
    information_fraction,
    obf_boundary,
    optimal_stopping_time,
    repeated_peek_warning,
)


def _primary(p_value):
    return ExperimentResult(
        experiment_id="exp_1",
        variant_id="v_treatment",
        variant_name="treatment",
        metric_id="m_conv",
        metric_name="conversion",
        sample_size=500,
        mean=0.12,
        variance=0.1,
        standard_error=0.01,
        confidence_interval=(0.1, 0.14),
        p_value=p_value,
        is_significant=p_value < 0.05,
    )


def test_alpha_spending_full_information():
    assert alpha_spending(1.0, 0.05) == pytest.approx(0.05, abs=1e-6)


def test_alpha_spending_early_look_is_strict():
    assert alpha_spending(0.25, 0.05) < 0.001
    assert alpha_spending(0.25) < alpha_spending(0.5) < alpha_spending(1.0)


def test_alpha_spending_outside_range():
    assert alpha_spending(0.0) == 0.0
    assert alpha_spending(1.5) == 0.0
    assert math.isinf(obf_boundary(0.05, 0.0))


def test_information_fraction():
    assert information_fraction(600, 1000) == pytest.approx(0.6)
    assert information_fraction(2000, 1000) == 1.0
    assert information_fraction(10, 0) == 0.0


def test_futility_stop():
    result = evaluate(600, 1000, _primary(0.8))
    assert result.should_stop
    assert result.recommendation == Recommendation.STOP_NO_EFFECT
    assert result.confidence == 0.95


def test_winner_stop():
    result = evaluate(800, 1000, _primary(1e-6))
    assert result.should_stop
    assert result.recommendation == Recommendation.STOP_WINNER
    assert result.adjusted_alpha == pytest.approx(0.0284, abs=1e-3)
    assert result.confidence == pytest.approx(1 - 1e-6)


def test_no_winner_before_half_sample():
    result = evaluate(300, 1000, _primary(1e-6))
    assert not result.should_stop
    assert result.recommendation == Recommendation.CONTINUE
    assert result.confidence == pytest.approx(0.3)
    assert "30.0%" in result.reason


def test_continue_when_not_significant_enough():
    result = evaluate(800, 1000, _primary(0.04))
    assert result.recommendation == Recommendation.CONTINUE


def test_repeated_peek_warning():
    is_warning, _ = repeated_peek_warning(1000, 1000, 1)
    assert not is_warning
    is_warning, msg = repeated_peek_warning(1000, 400, 3)
    assert is_warning
    assert "40%" in msg
    assert "Multiple analyses (3)" in msg


def test_past_target_look_uses_full_alpha():
    """Information beyond the target is capped at 1, so the full alpha is available."""
    result = evaluate(1200, 1000, _primary(0.01))
    assert result.information_fraction == 1.0
    assert result.adjusted_alpha == pytest.approx(0.05, abs=1e-6)
    assert result.recommendation == Recommendation.STOP_WINNER


def test_optimal_stopping_reached():
    results = [replace(_primary(0.01), relative_uplift=3.0)]
    estimate = optimal_stopping_time(results, 500, 1000)
    assert estimate.estimated_sample_size_needed == 45
    assert estimate.can_stop_early
    assert estimate.days_remaining == 0


def test_optimal_stopping_projects_days():
    results = [replace(_primary(0.01), relative_uplift=3.0)]
    estimate = optimal_stopping_time(results, 20, 1000, elapsed_days=7)
    assert not estimate.can_stop_early
    assert estimate.days_remaining == 9


def test_optimal_stopping_uses_largest_effect():
    control = replace(_primary(1.0), variant_id="v_control", is_control=True, relative_uplift=0.0)
    results = [
        control,
        replace(_primary(0.2), variant_id="a", relative_uplift=3.0),
        replace(_primary(0.2), variant_id="b", relative_uplift=-6.0),
    ]
    estimate = optimal_stopping_time(results, 5, 1000)
    assert estimate.estimated_sample_size_needed == 12
    assert not estimate.can_stop_early


def test_optimal_stopping_without_effect():
    assert optimal_stopping_time([], 100, 1000).days_remaining == 14
    assert optimal_stopping_time([], 100, 1000).estimated_sample_size_needed == 1000
    flat = [replace(_primary(0.9), relative_uplift=0.0)]
    assert optimal_stopping_time(flat, 100, 1000).estimated_sample_size_needed == 1000
