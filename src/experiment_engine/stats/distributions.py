"""
Distribution primitives used by all analysis components.

Normal CDF / inverse CDF, Student-t and chi-square tails, and Beta moments and
sampling. Exact functions come from scipy; the classic approximations are kept
alongside for callers that want them.
"""

import math
from typing import Optional

import numpy as np
from scipy import stats

_EPS = 1e-12


def normal_cdf(z: float) -> float:
    return float(stats.norm.cdf(z))


def normal_ppf(p: float) -> float:
    """Inverse standard normal CDF. Returns +/-inf at p = 1 / p = 0."""
    return float(stats.norm.ppf(p))


def two_sided_p_value(z: float) -> float:
    """Two-tailed p-value of a standard normal statistic."""
    if math.isinf(z):
        return 0.0
    return float(2 * stats.norm.sf(abs(z)))


def student_t_cdf(t: float, df: float) -> float:
    return float(stats.t.cdf(t, df))


def student_t_two_sided_p_value(t: float, df: float) -> float:
    if math.isinf(t):
        return 0.0
    return float(2 * stats.t.sf(abs(t), df))


def student_t_ppf(p: float, df: float) -> float:
    return float(stats.t.ppf(p, df))


def wilson_hilferty_cdf(x: float, df: int) -> float:
    """Chi-square CDF via the Wilson-Hilferty cube-root normal transform."""
    if x <= 0:
        return 0.0
    z = ((x / df) ** (1 / 3) - (1 - 2 / (9 * df))) / math.sqrt(2 / (9 * df))
    return normal_cdf(z)


def chi_square_cdf(x: float, df: int, exact: bool = True) -> float:
    """
    Chi-square CDF.

    Args:
        x: Chi-square statistic
        df: Degrees of freedom (>= 1)
        exact: Use scipy's exact CDF. Otherwise Wilson-Hilferty for df > 30 and
            the crude linear ``min(1, x / 2df)`` for smaller df, which is only a
            rough stand-in.
    """
    if x <= 0:
        return 0.0
    if exact:
        return float(stats.chi2.cdf(x, df))
    if df > 30:
        return wilson_hilferty_cdf(x, df)
    return min(1.0, x / (df * 2))


def chi_square_sf(x: float, df: int, exact: bool = True) -> float:
    """Right-tail probability P(X >= x); the p-value of a chi-square test."""
    if x <= 0:
        return 1.0
    if exact:
        return float(stats.chi2.sf(x, df))
    return 1.0 - chi_square_cdf(x, df, exact=False)


def beta_mean(alpha: float, beta: float) -> float:
    return alpha / (alpha + beta)


def beta_variance(alpha: float, beta: float) -> float:
    total = alpha + beta
    return (alpha * beta) / (total ** 2 * (total + 1))


def sample_beta(
    rng: np.random.Generator,
    alpha: float,
    beta: float,
    size: Optional[int] = None,
    method: str = "normal",
) -> np.ndarray:
    """
    Draw from Beta(alpha, beta), clipped to [0, 1].

    ``method="normal"`` uses mean + std * Z, adequate for alpha, beta >~ 10 and
    biased for small counts. ``method="beta"`` draws true Beta samples.
    """
    alpha = max(alpha, _EPS)
    beta = max(beta, _EPS)
    if method == "beta":
        draws = rng.beta(alpha, beta, size=size)
    elif method == "normal":
        std = math.sqrt(beta_variance(alpha, beta))
        draws = beta_mean(alpha, beta) + std * rng.standard_normal(size)
    else:
        raise ValueError(f"Unknown sampling method: {method}")
    return np.clip(draws, 0.0, 1.0)
