"""
Experiment health score.

Starts at 100 and subtracts fixed penalties for low sample progress, sample
ratio mismatch and under-filled variants. Each penalty records an issue.
"""

import logging
from typing import Iterable, Sequence

from .config import MIN_USERS_PER_VARIANT, SRM_THRESHOLD
from .schema import Exposure, HealthReport, Variant
from .stats.srm import check_srm
from .tracking import distinct_users, user_count_by_variant

logger = logging.getLogger(__name__)

LOW_PROGRESS_PENALTY = 20
SRM_PENALTY = 30
LOW_USERS_PENALTY = 10


def health_score(
    experiment_id: str,
    target_sample_size: int,
    variants: Sequence[Variant],
    exposures: Iterable[Exposure],
    min_users_per_variant: int = MIN_USERS_PER_VARIANT,
    srm_threshold: float = SRM_THRESHOLD,
) -> HealthReport:
    """
    Composite 0-100 health score for an experiment.

    Penalties:
        -20 if distinct users are below 50% of the target sample size
        -30 if SRM p-value < 0.001
        -10 (once) if any variant has fewer than 100 distinct users

    Returns:
        HealthReport with score, issues, sample size progress (percent) and the SRM result
    """
    exposures = list(exposures)
    issues = []
    score = 100

    total_users = distinct_users(exposures, experiment_id)
    progress = total_users / target_sample_size * 100 if target_sample_size > 0 else 0.0
    if progress < 50:
        score -= LOW_PROGRESS_PENALTY
        issues.append("Sample size below 50% of target")

    counts = user_count_by_variant(exposures, experiment_id)
    srm = check_srm(counts, variants, threshold=srm_threshold) if variants else None
    if srm is not None and srm.has_srm:
        score -= SRM_PENALTY
        issues.append("Sample Ratio Mismatch detected")

    if any(counts.get(v.id, 0) < min_users_per_variant for v in variants):
        score -= LOW_USERS_PENALTY
        issues.append(f"Variant has fewer than {min_users_per_variant} users")

    score = max(0, score)
    logger.debug(f"Health for {experiment_id}: score={score}, issues={issues}")
    return HealthReport(
        score=score,
        issues=issues,
        sample_size_progress=progress,
        srm=srm,
    )
