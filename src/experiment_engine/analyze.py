"""
Experiment analysis entrypoint.

Input: experiment, variants, metrics, exposures and metric values (or a record
store to load them from), optional guardrail configs.
Output: ExperimentAnalysis with frequentist, Bayesian, sequential, SRM, health,
guardrail and anomaly results. Nothing is written back to storage.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import EngineConfig
from .exceptions import ExperimentConfigError, ExperimentNotFoundError
from .guardrails import check_guardrails, recommend_action
from .health import health_score
from .monitoring import detect_outliers
from .schema import (
    Experiment,
    ExperimentAnalysis,
    ExperimentResult,
    ExperimentSummary,
    Exposure,
    GuardrailConfig,
    HealthReport,
    Metric,
    MetricType,
    MetricValue,
    Variant,
)
from .store import EXPERIMENTS, EXPOSURES, METRIC_VALUES, METRICS, VARIANTS, RecordStore
from .stats import bayesian, sequential
from .stats.frequentist import compute_all_results, find_control
from .tracking import distinct_users

logger = logging.getLogger(__name__)


def validate_configuration(
    variants: Sequence[Variant],
    metrics: Sequence[Metric],
) -> List[str]:
    """
    Check variant and metric flags.

    Returns:
        Warnings for recoverable gaps (no control, no primary metric)

    Raises:
        ExperimentConfigError: more than one control or more than one primary metric
    """
    warnings = []
    if find_control(variants) is None:
        warnings.append("No control variant configured; frequentist results unavailable")

    primaries = [m for m in metrics if m.is_primary]
    if len(primaries) > 1:
        raise ExperimentConfigError(
            f"Expected at most one primary metric, found {len(primaries)}: "
            f"{[m.id for m in primaries]}"
        )
    if not primaries:
        warnings.append("No primary metric configured; headline decision unavailable")
    return warnings


def primary_metric(metrics: Sequence[Metric]) -> Optional[Metric]:
    return next((m for m in metrics if m.is_primary), None)


def best_treatment(results: Sequence[ExperimentResult]) -> Optional[ExperimentResult]:
    """Treatment row with the highest mean."""
    treatments = [r for r in results if not r.is_control]
    if not treatments:
        return None
    return max(treatments, key=lambda r: r.mean)


def build_summary(
    experiment_id: str,
    primary_results: Sequence[ExperimentResult],
    total_users: int,
    health: HealthReport,
) -> ExperimentSummary:
    """Headline summary: best treatment on the primary metric, winner iff significant."""
    best = best_treatment(primary_results)
    has_winner = bool(best and best.is_significant)
    return ExperimentSummary(
        experiment_id=experiment_id,
        total_users=total_users,
        primary_metric_result=best,
        has_winner=has_winner,
        winning_variant=best.variant_name if has_winner else None,
        health_score=health.score,
        health_issues=list(health.issues),
        sample_size_progress=health.sample_size_progress,
    )


def analyze_experiment(
    experiment: Experiment,
    variants: Sequence[Variant],
    metrics: Sequence[Metric],
    exposures: Iterable[Exposure],
    metric_values: Iterable[MetricValue],
    guardrail_configs: Sequence[GuardrailConfig] = (),
    config: Optional[EngineConfig] = None,
) -> ExperimentAnalysis:
    """
    Run full experiment analysis.

    Args:
        experiment: Experiment record
        variants: Experiment variants
        metrics: Experiment metrics
        exposures: Exposure facts
        metric_values: Metric value facts
        guardrail_configs: Thresholds for guardrail metrics
        config: Engine settings (defaults when omitted)

    Returns:
        ExperimentAnalysis
    """
    config = config or EngineConfig()
    exposures = [e for e in exposures if e.experiment_id == experiment.id]
    metric_values = [mv for mv in metric_values if mv.experiment_id == experiment.id]

    warnings = validate_configuration(variants, metrics)
    for w in warnings:
        logger.warning(f"{experiment.id}: {w}")

    results = compute_all_results(
        experiment.id,
        metrics,
        variants,
        metric_values,
        alpha=config.alpha,
        exact=config.exact_distributions,
    )

    health = health_score(
        experiment.id,
        experiment.target_sample_size,
        variants,
        exposures,
        min_users_per_variant=config.min_users_per_variant,
        srm_threshold=config.srm_threshold,
    )
    total_users = distinct_users(exposures)

    primary = primary_metric(metrics)
    primary_results = results.get(primary.id, []) if primary else []
    summary = build_summary(experiment.id, primary_results, total_users, health)

    seq_result = None
    if summary.primary_metric_result is not None:
        seq_result = sequential.evaluate(
            total_users,
            experiment.target_sample_size,
            summary.primary_metric_result,
            alpha=config.alpha,
        )

    checks = check_guardrails(experiment.id, metrics, guardrail_configs, variants, metric_values)

    bayes_results = {}
    bayes_decisions = {}
    for metric in metrics:
        if MetricType(metric.metric_type) != MetricType.CONVERSION:
            continue
        data = bayesian.conversion_data_from_values(metric_values, metric.id, experiment.id)
        if not data:
            continue
        res = bayesian.analyze(
            variants,
            data,
            n_trials=config.monte_carlo_trials,
            seed=config.seed,
            sampler=config.sampler,
            batch_size=config.monte_carlo_batch_size,
            workers=config.monte_carlo_workers,
        )
        bayes_results[metric.id] = res
        bayes_decisions[metric.id] = bayesian.should_stop_experiment(
            res,
            min_probability=config.bayesian_min_probability,
            max_expected_loss=config.bayesian_max_expected_loss,
        )

    analysis = ExperimentAnalysis(
        experiment_id=experiment.id,
        configuration_warnings=warnings,
        results=results,
        summary=summary,
        sequential=seq_result,
        srm=health.srm,
        health=health,
        guardrail_checks=checks,
        guardrail_action=recommend_action(checks),
        anomalies=detect_outliers(metric_values, metrics, experiment_id=experiment.id),
        bayesian=bayes_results,
        bayesian_decisions=bayes_decisions,
    )
    logger.info(
        f"Analysis complete for {experiment.id}: {total_users} users, "
        f"{len(results)} metric(s) with results, health={health.score}"
    )
    return analysis


def load_experiment_data(
    experiment_id: str,
    store: RecordStore,
) -> Tuple[Experiment, List[Variant], List[Metric], List[Exposure], List[MetricValue]]:
    """
    Load every record of an experiment from a store.

    Raises:
        ExperimentNotFoundError: if the store has no such experiment
    """
    experiment = store.get(EXPERIMENTS, experiment_id)
    if experiment is None:
        raise ExperimentNotFoundError(experiment_id)
    return (
        experiment,
        store.list(VARIANTS, experiment_id),
        store.list(METRICS, experiment_id),
        store.list(EXPOSURES, experiment_id),
        store.list(METRIC_VALUES, experiment_id),
    )


def run_analysis(
    experiment_id: str,
    store: RecordStore,
    guardrail_configs: Sequence[GuardrailConfig] = (),
    config: Optional[EngineConfig] = None,
) -> ExperimentAnalysis:
    """Load an experiment's records from ``store`` and analyze them."""
    experiment, variants, metrics, exposures, metric_values = load_experiment_data(
        experiment_id, store
    )
    return analyze_experiment(
        experiment,
        variants,
        metrics,
        exposures,
        metric_values,
        guardrail_configs=guardrail_configs,
        config=config,
    )
