"""Tests for guardrail checks and action recommendation."""
from experiment_engine.guardrails import check_guardrails, guardrail_alert_message, recommend_action
from experiment_engine.schema import (
    GuardrailAction,
    GuardrailCheck,
    GuardrailConfig,
    Severity,
    ThresholdType,
)


def _check(severity, violated=True):
    return GuardrailCheck(
        metric_id="m",
        metric_name="latency_ms",
        variant_id="v",
        variant_name="treatment",
        current_value=250.0,
        threshold=200.0,
        threshold_type=ThresholdType.UPPER,
        is_violated=violated,
        severity=severity,
    )


def test_upper_threshold_violation(variants, metrics, make_values):
    values = (
        make_values("exp_1", "m_latency", "v_control", [300.0] * 10)
        + make_values("exp_1", "m_latency", "v_treatment", [240.0, 260.0] * 5)
    )
    configs = [GuardrailConfig("m_latency", 200.0, ThresholdType.UPPER, Severity.CRITICAL)]
    checks = check_guardrails("exp_1", metrics, configs, variants, values)

    assert len(checks) == 1  # control is never checked
    check = checks[0]
    assert check.variant_id == "v_treatment"
    assert check.current_value == 250.0
    assert check.is_violated
    assert check.severity == Severity.CRITICAL


def test_lower_threshold(variants, metrics, make_values):
    values = make_values("exp_1", "m_latency", "v_treatment", [150.0] * 10)
    below = [GuardrailConfig("m_latency", 200.0, ThresholdType.LOWER)]
    above = [GuardrailConfig("m_latency", 100.0, ThresholdType.LOWER)]
    assert check_guardrails("exp_1", metrics, below, variants, values)[0].is_violated
    assert not check_guardrails("exp_1", metrics, above, variants, values)[0].is_violated


def test_primary_metric_config_ignored(variants, metrics, make_values):
    values = make_values("exp_1", "m_conv", "v_treatment", [1.0] * 10)
    configs = [GuardrailConfig("m_conv", 0.5)]
    assert check_guardrails("exp_1", metrics, configs, variants, values) == []


def test_unconfigured_metrics_skipped(variants, metrics, make_values):
    values = make_values("exp_1", "m_latency", "v_treatment", [500.0] * 10)
    assert check_guardrails("exp_1", metrics, [], variants, values) == []


def test_alert_message():
    message = guardrail_alert_message(_check(Severity.CRITICAL))
    assert message.startswith("CRITICAL: treatment has exceeded the latency_ms threshold")


def test_recommend_stop_on_critical():
    rec = recommend_action([_check(Severity.CRITICAL), _check(Severity.WARNING)])
    assert rec.action == GuardrailAction.STOP
    assert rec.reason.startswith("1 critical")


def test_recommend_pause_on_multiple_warnings():
    rec = recommend_action([_check(Severity.WARNING), _check(Severity.WARNING)])
    assert rec.action == GuardrailAction.PAUSE


def test_recommend_continue_on_single_warning():
    rec = recommend_action([_check(Severity.WARNING)])
    assert rec.action == GuardrailAction.CONTINUE
    assert "Monitor closely" in rec.reason


def test_recommend_continue_without_violations():
    rec = recommend_action([_check(Severity.CRITICAL, violated=False)])
    assert rec.action == GuardrailAction.CONTINUE
    assert rec.reason == "All guardrail metrics within acceptable ranges."
    assert recommend_action([]).action == GuardrailAction.CONTINUE


def test_info_violations_do_not_change_action():
    rec = recommend_action([_check(Severity.INFO), _check(Severity.INFO)])
    assert rec.action == GuardrailAction.CONTINUE
