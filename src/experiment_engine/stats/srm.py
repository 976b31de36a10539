"""
Sample Ratio Mismatch (SRM) chi-square test.

Detects if the observed traffic split across variants deviates from the
configured split beyond chance. The threshold is deliberately strict (0.001)
so natural allocation noise does not raise alarms.
"""

import logging
from typing import Mapping, Optional, Sequence

from ..config import SRM_THRESHOLD
from ..schema import SRMResult, Variant
from .distributions import chi_square_sf

logger = logging.getLogger(__name__)


def detect_srm(
    observed_counts: Mapping[str, float],
    expected_ratios: Mapping[str, float],
    threshold: float = SRM_THRESHOLD,
    exact: bool = True,
) -> SRMResult:
    """
    Chi-square goodness-of-fit between observed and expected variant traffic.

    H0: observed split equals the expected split

    Args:
        observed_counts: Variant id -> observed units
        expected_ratios: Variant id -> expected share (normalised to sum 1)
        threshold: p-value below which SRM is declared
        exact: Exact chi-square tail; False uses the classic approximations

    Returns:
        SRMResult; an expected count of 0 is treated as 1 in the denominator
    """
    variant_ids = list(expected_ratios)
    total_ratio = sum(max(0.0, float(expected_ratios[v])) for v in variant_ids)
    total_observed = sum(float(observed_counts.get(v, 0)) for v in variant_ids)

    observed = {}
    expected = {}
    chi2 = 0.0
    for vid in variant_ids:
        ratio = max(0.0, float(expected_ratios[vid])) / total_ratio if total_ratio > 0 else 0.0
        exp = ratio * total_observed
        obs = float(observed_counts.get(vid, 0))
        observed[vid] = obs
        expected[vid] = exp
        chi2 += (obs - exp) ** 2 / (exp if exp > 0 else 1.0)

    df = len(variant_ids) - 1
    if df < 1:
        p_value = 1.0
    else:
        p_value = chi_square_sf(chi2, df, exact=exact)

    has_srm = p_value < threshold
    if has_srm:
        logger.warning(f"SRM detected: chi2={chi2:.2f}, p={p_value:.2e}, observed={observed}")

    return SRMResult(
        chi_square=float(chi2),
        p_value=float(p_value),
        has_srm=has_srm,
        degrees_of_freedom=max(df, 0),
        observed=observed,
        expected=expected,
    )


def expected_ratios_from_variants(variants: Sequence[Variant]) -> dict:
    """Variant id -> traffic split; normalisation happens in ``detect_srm``."""
    return {v.id: float(v.traffic_split) for v in variants}


def check_srm(
    observed_counts: Mapping[str, float],
    variants: Sequence[Variant],
    threshold: Optional[float] = None,
) -> SRMResult:
    """SRM check of observed counts against the variants' configured splits."""
    return detect_srm(
        observed_counts,
        expected_ratios_from_variants(variants),
        threshold=SRM_THRESHOLD if threshold is None else threshold,
    )
