"""
Guardrail metric monitoring and action recommendation.

Guardrails watch non-primary metrics (latency, errors, ...) for unacceptable
treatment behaviour regardless of the primary outcome. Control variants are not
checked; they are the baseline.
"""

import logging
from typing import Iterable, List, Sequence

from .schema import (
    ActionRecommendation,
    GuardrailAction,
    GuardrailCheck,
    GuardrailConfig,
    Metric,
    MetricValue,
    Severity,
    ThresholdType,
    Variant,
)
from .stats.frequentist import aggregate_metric_by_variant

logger = logging.getLogger(__name__)


def _is_violated(value: float, config: GuardrailConfig) -> bool:
    if ThresholdType(config.threshold_type) == ThresholdType.UPPER:
        return value > config.threshold
    return value < config.threshold


def check_guardrails(
    experiment_id: str,
    metrics: Sequence[Metric],
    configs: Sequence[GuardrailConfig],
    variants: Sequence[Variant],
    metric_values: Iterable[MetricValue],
) -> List[GuardrailCheck]:
    """
    Evaluate guardrail thresholds for every treatment variant.

    Args:
        experiment_id: Experiment ID
        metrics: Metric definitions; only those with a config are checked
        configs: Guardrail thresholds per metric
        variants: Experiment variants
        metric_values: Recorded metric values

    Returns:
        One GuardrailCheck per (configured metric, treatment variant with data),
        violated or not
    """
    metric_values = list(metric_values)
    config_by_metric = {c.metric_id: c for c in configs}
    checks = []

    for metric in metrics:
        config = config_by_metric.get(metric.id)
        if config is None:
            continue
        if metric.is_primary:
            logger.warning(f"Guardrail config for primary metric {metric.id} ignored")
            continue

        aggregated = aggregate_metric_by_variant(experiment_id, metric.id, metric_values)
        for variant in variants:
            if variant.is_control or variant.id not in aggregated:
                continue
            value = aggregated[variant.id].mean
            check = GuardrailCheck(
                metric_id=metric.id,
                metric_name=metric.name,
                variant_id=variant.id,
                variant_name=variant.name,
                current_value=value,
                threshold=config.threshold,
                threshold_type=ThresholdType(config.threshold_type),
                is_violated=_is_violated(value, config),
                severity=Severity(config.severity),
            )
            if check.is_violated:
                logger.warning(guardrail_alert_message(check))
            checks.append(check)

    return checks


def guardrail_alert_message(check: GuardrailCheck) -> str:
    direction = "exceeded" if check.threshold_type == ThresholdType.UPPER else "fallen below"
    return (
        f"{check.severity.value.upper()}: {check.variant_name} has {direction} the "
        f"{check.metric_name} threshold ({check.current_value:.4f} vs {check.threshold:.4f})"
    )


def recommend_action(checks: Iterable[GuardrailCheck]) -> ActionRecommendation:
    """
    Recommend continue / pause / stop from guardrail violations.

    Any critical violation stops; two or more warnings pause; a single warning
    continues under close monitoring.
    """
    violations = [c for c in checks if c.is_violated]
    critical = [v for v in violations if v.severity == Severity.CRITICAL]
    warnings = [v for v in violations if v.severity == Severity.WARNING]

    if critical:
        return ActionRecommendation(
            action=GuardrailAction.STOP,
            reason=(
                f"{len(critical)} critical guardrail metric(s) violated. "
                "Immediate action required."
            ),
        )
    if len(warnings) >= 2:
        return ActionRecommendation(
            action=GuardrailAction.PAUSE,
            reason="Multiple warning-level guardrail metrics violated. Consider pausing to investigate.",
        )
    if len(warnings) == 1:
        return ActionRecommendation(
            action=GuardrailAction.CONTINUE,
            reason="One warning-level guardrail metric violated. Monitor closely but safe to continue.",
        )
    return ActionRecommendation(
        action=GuardrailAction.CONTINUE,
        reason="All guardrail metrics within acceptable ranges.",
    )
