"""
Power analysis and MDE (Minimum Detectable Effect) calculator.

Computes required sample size, MDE and achieved power for conversion and
continuous metrics.
"""

import math

import numpy as np
from scipy import stats

from ..schema import PowerAnalysis

DEFAULT_USERS_PER_DAY = 1000


def _z_alpha(alpha: float, two_tailed: bool = True) -> float:
    return float(stats.norm.ppf(1 - alpha / 2 if two_tailed else 1 - alpha))


def power_analysis(
    baseline_rate: float,
    minimum_detectable_effect: float,
    alpha: float = 0.05,
    power: float = 0.8,
    two_tailed: bool = True,
    users_per_day: int = DEFAULT_USERS_PER_DAY,
) -> PowerAnalysis:
    """
    Sample size for a conversion-rate experiment.

    Args:
        baseline_rate: Baseline conversion rate (e.g., 0.10)
        minimum_detectable_effect: Relative MDE in percent (e.g., 5 = +5% relative)
        alpha: Type I error rate
        power: Statistical power (1 - Type II)
        two_tailed: Two-sided test
        users_per_day: Expected users per variant per day, for the duration estimate

    Returns:
        PowerAnalysis with per-variant and total sample size
    """
    if not 0 < baseline_rate < 1:
        raise ValueError(f"baseline_rate must be in (0, 1), got {baseline_rate}")
    if minimum_detectable_effect == 0:
        raise ValueError("minimum_detectable_effect must be non-zero")

    mde_abs = baseline_rate * (minimum_detectable_effect / 100)
    treatment_rate = baseline_rate + mde_abs

    z_alpha = _z_alpha(alpha, two_tailed)
    z_beta = float(stats.norm.ppf(power))

    p = (baseline_rate + treatment_rate) / 2
    variance = p * (1 - p)

    n = int(math.ceil(2 * variance * (z_alpha + z_beta) ** 2 / mde_abs ** 2))
    duration = int(math.ceil(n / users_per_day)) if users_per_day > 0 else 0

    return PowerAnalysis(
        baseline_rate=baseline_rate,
        minimum_detectable_effect=minimum_detectable_effect,
        alpha=alpha,
        power=power,
        required_sample_size_per_variant=n,
        total_sample_size=n * 2,
        estimated_duration_days=duration,
    )


def mde_proportion(
    baseline: float,
    n_per_arm: int,
    alpha: float = 0.05,
    power: float = 0.8,
) -> float:
    """
    Smallest relative lift detectable with ``n_per_arm`` users in each of two arms.

    Returns 1.0 (100%) for a zero baseline or an empty arm.
    """
    if baseline <= 0 or n_per_arm <= 0:
        return 1.0
    se = math.sqrt(2 * baseline * (1 - baseline) / n_per_arm)
    z = _z_alpha(alpha) + float(stats.norm.ppf(power))
    return z * se / baseline


def sample_size_continuous(
    std: float,
    mde_abs: float,
    alpha: float = 0.05,
    power: float = 0.8,
    allocation: float = 0.5,
) -> int:
    """
    Total users needed to detect an absolute difference in means.

    ``allocation`` is the treatment share; uneven splits need more users.
    """
    z = _z_alpha(alpha) + float(stats.norm.ppf(power))
    total = (z * std / mde_abs) ** 2 / (allocation * (1 - allocation))
    return int(math.ceil(total))


def power_proportion(
    baseline: float,
    effect_relative: float,
    n_per_arm: int,
    alpha: float = 0.05,
) -> float:
    """
    Power of a two-sided two-proportion z-test.

    Args:
        baseline: Control conversion rate
        effect_relative: Relative lift to detect (0.1 = +10%)
        n_per_arm: Users in each arm
        alpha: Significance level

    Returns:
        Probability (0-1) of detecting the lift
    """
    treatment = baseline * (1 + effect_relative)
    variance = baseline * (1 - baseline) + treatment * (1 - treatment)
    if n_per_arm <= 0 or variance <= 0:
        return 0.0

    shift = abs(treatment - baseline) / math.sqrt(variance / n_per_arm)
    z_alpha = _z_alpha(alpha)
    achieved = stats.norm.cdf(shift - z_alpha) + stats.norm.cdf(-shift - z_alpha)
    return float(np.clip(achieved, 0, 1))


def achieved_power(
    control_size: int,
    treatment_size: int,
    control_mean: float,
    treatment_mean: float,
    pooled_variance: float,
    alpha: float = 0.05,
) -> float:
    """Normal-approximation power for the observed effect at the smaller arm size."""
    if pooled_variance <= 0:
        return 0.0
    effect_size = abs(treatment_mean - control_mean) / math.sqrt(pooled_variance)
    n = min(control_size, treatment_size)
    z_beta = effect_size * math.sqrt(n / 2) - _z_alpha(alpha)
    return float(stats.norm.cdf(z_beta))
