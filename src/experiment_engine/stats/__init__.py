"""Experiment statistics module."""

from .bayesian import (
    ConversionData,
    analyze as bayesian_analyze,
    beta_posterior,
    conversion_data_from_values,
    should_stop_experiment,
)
from .distributions import chi_square_cdf, normal_cdf, normal_ppf
from .frequentist import aggregate_metric_by_variant, compute_all_results, compute_results
from .hypothesis_tests import confidence_interval, relative_uplift, welch_t_test
from .power import achieved_power, mde_proportion, power_analysis, power_proportion
from .sequential import (
    alpha_spending,
    evaluate as sequential_evaluate,
    obf_boundary,
    optimal_stopping_time,
)
from .srm import check_srm, detect_srm

__all__ = [
    "ConversionData",
    "bayesian_analyze",
    "beta_posterior",
    "conversion_data_from_values",
    "should_stop_experiment",
    "chi_square_cdf",
    "normal_cdf",
    "normal_ppf",
    "aggregate_metric_by_variant",
    "compute_all_results",
    "compute_results",
    "confidence_interval",
    "relative_uplift",
    "welch_t_test",
    "achieved_power",
    "mde_proportion",
    "power_analysis",
    "power_proportion",
    "alpha_spending",
    "sequential_evaluate",
    "obf_boundary",
    "optimal_stopping_time",
    "check_srm",
    "detect_srm",
]
