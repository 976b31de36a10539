"""
Frequentist analysis of experiment metrics.

Aggregates metric values per variant (sample size = distinct users) and tests
each treatment against the control with Welch's t-test.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from ..exceptions import ExperimentConfigError
from ..schema import ExperimentResult, Metric, MetricValue, Variant
from ..tracking import metric_values_frame
from .hypothesis_tests import (
    confidence_interval,
    relative_uplift,
    standard_error,
    welch_t_test,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantAggregate:
    """Per-variant aggregate of one metric."""
    variant_id: str
    n_values: int
    n_users: int
    mean: float
    variance: float  # population variance (ddof=0)


def find_control(variants: Sequence[Variant]) -> Optional[Variant]:
    """
    Return the single control variant, or None when no variant is flagged.

    Raises:
        ExperimentConfigError: if more than one variant is flagged as control
    """
    controls = [v for v in variants if v.is_control]
    if len(controls) > 1:
        raise ExperimentConfigError(
            f"Expected one control variant, found {len(controls)}: "
            f"{[v.id for v in controls]}"
        )
    return controls[0] if controls else None


def aggregate_metric_by_variant(
    experiment_id: str,
    metric_id: str,
    metric_values: Iterable[MetricValue],
) -> Dict[str, VariantAggregate]:
    """
    Aggregate one metric's values per variant.

    Returns:
        Dict variant_id -> VariantAggregate (variants without values are absent)
    """
    df = metric_values_frame(metric_values, experiment_id, metric_id)
    if df.empty:
        return {}

    grouped = df.groupby("variant_id").agg(
        n_values=("value", "size"),
        n_users=("user_id", "nunique"),
        mean=("value", "mean"),
        variance=("value", lambda s: s.var(ddof=0)),
    )
    return {
        str(vid): VariantAggregate(
            variant_id=str(vid),
            n_values=int(row["n_values"]),
            n_users=int(row["n_users"]),
            mean=float(row["mean"]),
            variance=float(row["variance"]),
        )
        for vid, row in grouped.iterrows()
    }


def compute_results(
    experiment_id: str,
    metric: Metric,
    variants: Sequence[Variant],
    metric_values: Iterable[MetricValue],
    alpha: float = 0.05,
    exact: bool = False,
) -> List[ExperimentResult]:
    """
    Compute per-variant results for one metric.

    Args:
        experiment_id: Experiment ID
        metric: Metric to analyze
        variants: Experiment variants (exactly one should be control)
        metric_values: Recorded metric values (filtered to experiment + metric here)
        alpha: Significance level
        exact: Student-t p-values instead of the normal approximation

    Returns:
        Control row first, then one row per treatment with data. Empty when
        there is no control or the control has no values yet.
    """
    control = find_control(variants)
    if control is None:
        logger.warning(f"Experiment {experiment_id}: no control variant, skipping {metric.id}")
        return []

    aggregated = aggregate_metric_by_variant(experiment_id, metric.id, metric_values)
    ctrl = aggregated.get(control.id)
    if ctrl is None:
        logger.debug(f"Experiment {experiment_id}: no control data for {metric.id} yet")
        return []

    ctrl_se = standard_error(ctrl.variance, ctrl.n_users)
    results = [
        ExperimentResult(
            experiment_id=experiment_id,
            variant_id=control.id,
            variant_name=control.name,
            metric_id=metric.id,
            metric_name=metric.name,
            sample_size=ctrl.n_users,
            mean=ctrl.mean,
            variance=ctrl.variance,
            standard_error=ctrl_se,
            confidence_interval=confidence_interval(ctrl.mean, ctrl_se, alpha),
            p_value=1.0,
            is_significant=False,
            is_control=True,
        )
    ]

    for variant in variants:
        if variant.is_control or variant.id not in aggregated:
            continue
        treat = aggregated[variant.id]
        se = standard_error(treat.variance, treat.n_users)
        test = welch_t_test(
            ctrl.mean, ctrl.variance, ctrl.n_users,
            treat.mean, treat.variance, treat.n_users,
            alpha=alpha,
            exact=exact,
        )
        results.append(ExperimentResult(
            experiment_id=experiment_id,
            variant_id=variant.id,
            variant_name=variant.name,
            metric_id=metric.id,
            metric_name=metric.name,
            sample_size=treat.n_users,
            mean=treat.mean,
            variance=treat.variance,
            standard_error=se,
            confidence_interval=confidence_interval(treat.mean, se, alpha),
            p_value=test.p_value,
            is_significant=test.is_significant,
            relative_uplift=relative_uplift(ctrl.mean, treat.mean),
            absolute_uplift=treat.mean - ctrl.mean,
            t_statistic=test.t_statistic,
            degrees_of_freedom=test.degrees_of_freedom,
        ))

    return results


def compute_all_results(
    experiment_id: str,
    metrics: Sequence[Metric],
    variants: Sequence[Variant],
    metric_values: Iterable[MetricValue],
    alpha: float = 0.05,
    exact: bool = False,
) -> Dict[str, List[ExperimentResult]]:
    """Results per metric id; metrics without results are omitted."""
    metric_values = list(metric_values)
    by_metric = {}
    for metric in metrics:
        results = compute_results(
            experiment_id, metric, variants, metric_values, alpha=alpha, exact=exact
        )
        if results:
            by_metric[metric.id] = results
    return by_metric
